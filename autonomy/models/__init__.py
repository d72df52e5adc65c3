#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Conversation and execution plan models for autonomy."""

from autonomy.models.conversation import (
    AIResponse,
    Message,
    PromptData,
    ToolCall,
    ToolDefinition,
)
from autonomy.models.plan import (
    ExecutionPlan,
    ExecutionStep,
    InvalidStepTransition,
    StepStatus,
)

__all__ = [
    "AIResponse",
    "Message",
    "PromptData",
    "ToolCall",
    "ToolDefinition",
    "ExecutionPlan",
    "ExecutionStep",
    "InvalidStepTransition",
    "StepStatus",
]
