#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Per-turn tool-choice heuristic.

Decides from the latest user-visible text whether the model must call a tool
on this turn or may answer in free text. The bias is toward tools: anything
that is not clearly an informational question forces a tool call.

Keyword tables are data (``data/tool_choice_keywords.yaml``); more languages can
be merged in with :meth:`KeywordTables.load`.
"""

import re
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Pattern, Tuple, Union

import yaml

DEFAULT_KEYWORDS_FILE = Path(__file__).resolve().parent / "data" / "tool_choice_keywords.yaml"

_TABLE_KEYS = (
    "result_patterns",
    "result_indicators",
    "force_phrases",
    "question_starters",
    "strong_action_verbs",
    "action_keywords",
)


class ToolChoiceMode(Enum):
    """Whether the model must call a tool this turn."""
    FORCE_TOOL = "force_tool"
    AUTO = "auto"


class MessageKind(Enum):
    ACTION = "action"
    QUESTION = "question"
    UNCERTAIN = "uncertain"


@dataclass(frozen=True)
class KeywordTables:
    result_patterns: Tuple[str, ...] = ()
    result_indicators: Tuple[str, ...] = ()
    force_phrases: Tuple[str, ...] = ()
    question_starters: Tuple[str, ...] = ()
    strong_action_verbs: Tuple[str, ...] = ()
    action_keywords: Tuple[str, ...] = ()

    @classmethod
    def from_mapping(cls, data: Dict) -> "KeywordTables":
        """Build tables from a parsed YAML document (``languages: {code: {...}}``)."""
        merged: Dict[str, List[str]] = {key: [] for key in _TABLE_KEYS}
        languages = (data or {}).get("languages") or {}
        if not isinstance(languages, dict):
            raise ValueError("'languages' must be a mapping of language code to tables")

        for code, tables in languages.items():
            if not isinstance(tables, dict):
                raise ValueError(f"Keyword tables for language {code!r} must be a mapping")
            for key, values in tables.items():
                if key not in merged:
                    raise ValueError(f"Unknown keyword table {key!r} for language {code!r}")
                for value in values or ():
                    value = str(value).lower()
                    if value not in merged[key]:
                        merged[key].append(value)

        return cls(**{key: tuple(values) for key, values in merged.items()})

    @classmethod
    def load(cls, *paths: Union[str, Path]) -> "KeywordTables":
        """Load and merge one or more keyword files. Defaults to the bundled tables."""
        tables = cls()
        for path in paths or (DEFAULT_KEYWORDS_FILE,):
            with open(path, "r", encoding="utf-8") as f:
                tables = tables.merge(cls.from_mapping(yaml.safe_load(f)))
        return tables

    def merge(self, other: "KeywordTables") -> "KeywordTables":
        values = {}
        for key in _TABLE_KEYS:
            combined = list(getattr(self, key))
            combined.extend(v for v in getattr(other, key) if v not in combined)
            values[key] = tuple(combined)
        return KeywordTables(**values)


def _word_alternation(words: Iterable[str], anchored: bool = False) -> Optional[Pattern]:
    words = sorted({w for w in words if w}, key=len, reverse=True)
    if not words:
        return None
    body = "|".join(re.escape(w) for w in words)
    prefix = "^" if anchored else r"(?<!\w)"
    return re.compile(rf"{prefix}(?:{body})(?!\w)")


class ToolChoiceClassifier:
    """Pure, deterministic classifier over a set of keyword tables."""

    def __init__(self, tables: Optional[KeywordTables] = None):
        self.tables = tables or KeywordTables.load()
        self._result_patterns = [re.compile(p) for p in self.tables.result_patterns]
        self._question_re = _word_alternation(self.tables.question_starters, anchored=True)
        self._strong_re = _word_alternation(self.tables.strong_action_verbs)
        self._action_re = _word_alternation(self.tables.action_keywords)

    def is_tool_result(self, text: str) -> bool:
        if any(p.search(text) for p in self._result_patterns):
            return True
        return any(indicator in text for indicator in self.tables.result_indicators)

    def is_force_phrase(self, text: str) -> bool:
        return any(phrase in text for phrase in self.tables.force_phrases)

    def classify(self, text: str) -> MessageKind:
        """Split already lower-cased text into action / question / uncertain."""
        if self._question_re is not None and self._question_re.search(text):
            if self._strong_re is not None and self._strong_re.search(text):
                return MessageKind.ACTION
            return MessageKind.QUESTION
        if self._action_re is not None and self._action_re.search(text):
            return MessageKind.ACTION
        return MessageKind.UNCERTAIN

    def determine_mode(self, text: Optional[str]) -> ToolChoiceMode:
        lowered = (text or "").strip().lower()

        if self.is_tool_result(lowered) or self.is_force_phrase(lowered):
            return ToolChoiceMode.FORCE_TOOL

        if self.classify(lowered) is MessageKind.QUESTION:
            return ToolChoiceMode.AUTO
        return ToolChoiceMode.FORCE_TOOL


@lru_cache(maxsize=1)
def default_classifier() -> ToolChoiceClassifier:
    return ToolChoiceClassifier(KeywordTables.load())


def determine_mode(text: Optional[str]) -> ToolChoiceMode:
    """Classify ``text`` with the bundled English/Russian tables."""
    return default_classifier().determine_mode(text)

