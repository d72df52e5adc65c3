"""Tests for the per-turn tool-choice classifier."""

import pytest
import yaml

from autonomy.llm.tool_choice import (
    KeywordTables,
    MessageKind,
    ToolChoiceClassifier,
    ToolChoiceMode,
    determine_mode,
)


@pytest.mark.parametrize("text", [
    "What is dependency injection?",
    "how does the retry handler work",
    "Explain the difference between a list and a tuple",
    "Почему тест падает?",
])
def test_informational_questions_allow_free_text(text):
    assert determine_mode(text) is ToolChoiceMode.AUTO


@pytest.mark.parametrize("text", [
    "Fix the failing test in parser_test.go",
    "please read main.go",
    "How do I fix this import error",
    "Исправь ошибку в main.go",
])
def test_action_requests_force_tools(text):
    assert determine_mode(text) is ToolChoiceMode.FORCE_TOOL


@pytest.mark.parametrize("text", [
    "Result of read_file: package main",
    "Error executing run_tests: exit status 1",
    "What is next? The build completed.",
    "You must use a tool to continue.",
])
def test_tool_results_and_force_phrases_force_tools(text):
    assert determine_mode(text) is ToolChoiceMode.FORCE_TOOL


@pytest.mark.parametrize("text", ["", None, "hello there", "ok"])
def test_uncertain_text_defaults_to_forcing(text):
    assert determine_mode(text) is ToolChoiceMode.FORCE_TOOL


def test_question_starter_must_be_a_whole_word():
    classifier = ToolChoiceClassifier()
    # "however" starts with "how" but is not a question.
    assert classifier.classify("however it goes") is not MessageKind.QUESTION


def test_classification_is_case_insensitive():
    assert determine_mode("WHAT IS A MONAD") is ToolChoiceMode.AUTO


class TestKeywordTables:
    def test_languages_are_merged(self):
        tables = KeywordTables.from_mapping({
            "languages": {
                "en": {"question_starters": ["What is"]},
                "de": {"question_starters": ["was ist", "what is"]},
            }
        })
        assert tables.question_starters == ("what is", "was ist")

    def test_unknown_table_is_rejected(self):
        with pytest.raises(ValueError):
            KeywordTables.from_mapping({"languages": {"en": {"nonsense": ["x"]}}})

    def test_extra_language_file_extends_bundled_tables(self, tmp_path):
        extra = tmp_path / "de.yaml"
        extra.write_text(yaml.safe_dump({
            "languages": {"de": {"question_starters": ["was ist"]}}
        }, allow_unicode=True), encoding="utf-8")

        base = KeywordTables.load()
        tables = base.merge(KeywordTables.load(extra))
        classifier = ToolChoiceClassifier(tables)

        assert classifier.determine_mode("Was ist ein Monad") is ToolChoiceMode.AUTO
        assert len(tables.question_starters) == len(base.question_starters) + 1
