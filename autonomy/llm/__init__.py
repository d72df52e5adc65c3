"""LLM layer: provider adapters, retry, streaming and tool-choice heuristics."""
