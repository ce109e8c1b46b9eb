"""
Unit tests for LLM response JSON parsing and repair.
"""

import logging

import pytest

from src.email_processing.errors import MalformedResponseError
from src.email_processing.json_repair import extract_json_block, parse_json_response


class TestParseJsonResponse:
    """Parsing with a single repair pass."""

    def test_valid_json_parsed_without_repair(self, caplog):
        with caplog.at_level(logging.WARNING):
            value = parse_json_response('{"summary": "Hi", "actionItems": []}')

        assert value == {"summary": "Hi", "actionItems": []}
        assert "repair" not in caplog.text

    def test_prose_around_object_is_stripped(self):
        text = 'Here is the analysis:\n{"priority": "low"}\nLet me know if you need more.'

        assert parse_json_response(text) == {"priority": "low"}

    def test_markdown_fence_is_stripped(self):
        text = '```json\n[{"index": 1}, {"index": 2}]\n```'

        assert parse_json_response(text) == [{"index": 1}, {"index": 2}]

    def test_trailing_commas_removed(self):
        assert parse_json_response('{"a": [1, 2,], "b": "x",}') == {"a": [1, 2], "b": "x"}

    def test_unquoted_keys_quoted(self):
        assert parse_json_response('{summary: "Hi", priority: "high"}') == {
            "summary": "Hi",
            "priority": "high",
        }

    def test_smart_quotes_normalised(self):
        text = '{“summary”: “Hello”}'

        assert parse_json_response(text) == {"summary": "Hello"}

    def test_single_quotes_normalised(self):
        text = "{'summary': 'Hello', 'actionItems': ['a', 'b']}"

        assert parse_json_response(text) == {"summary": "Hello", "actionItems": ["a", "b"]}

    def test_repair_is_logged(self, caplog):
        with caplog.at_level(logging.WARNING, logger="src.email_processing.json_repair"):
            parse_json_response('{"a": 1,}')

        assert "required JSON repair" in caplog.text

    def test_unrepairable_text_raises(self):
        with pytest.raises(MalformedResponseError) as excinfo:
            parse_json_response("I could not analyze this email, sorry.")

        assert excinfo.value.raw_text == "I could not analyze this email, sorry."

    def test_empty_text_raises(self):
        with pytest.raises(MalformedResponseError):
            parse_json_response("   ")


class TestExtractJsonBlock:
    """Outermost JSON value isolation."""

    def test_prefers_earliest_opening_bracket(self):
        assert extract_json_block('x [{"a": 1}] y') == '[{"a": 1}]'

    def test_returns_none_without_json(self):
        assert extract_json_block("no json here") is None
