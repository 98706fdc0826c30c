"""Unit tests for JSON extraction and repair of LLM responses."""

import json

import pytest

from digestq.llm.json_repair import extract_json


class TestExtractJSON:
    def test_valid_json(self):
        assert extract_json('{"summary": "ok", "score": 0.95}') == {"summary": "ok", "score": 0.95}

    def test_markdown_code_block(self):
        assert extract_json('```json\n{"categories": []}\n```') == {"categories": []}

    def test_markdown_without_json_tag(self):
        assert extract_json('```\n{"summary": "x"}\n```') == {"summary": "x"}

    def test_surrounding_text(self):
        text = 'Here is the result: {"summary": "x"} hope that helps'
        assert extract_json(text) == {"summary": "x"}

    def test_top_level_array(self):
        assert extract_json('Result: [{"id": "t1"}]') == [{"id": "t1"}]

    def test_missing_commas_between_strings(self):
        text = """{
            "name": "Payments"
            "title": "Bills"
        }"""
        assert extract_json(text) == {"name": "Payments", "title": "Bills"}

    def test_missing_comma_after_number(self):
        text = """{
            "priorityScore": 80
            "messageId": "m1"
        }"""
        assert extract_json(text) == {"priorityScore": 80, "messageId": "m1"}

    def test_missing_comma_between_objects(self):
        text = """{"summaries": [
            {"messageId": "m1"}
            {"messageId": "m2"}
        ]}"""
        assert [s["messageId"] for s in extract_json(text)["summaries"]] == ["m1", "m2"]

    def test_trailing_commas(self):
        text = '{"categories": [{"name": "Travel", "threads": [],},],}'
        assert extract_json(text) == {"categories": [{"name": "Travel", "threads": []}]}

    def test_unrepairable_raises(self):
        with pytest.raises(json.JSONDecodeError):
            extract_json('{"summary": "unterminated')

    def test_no_json_raises(self):
        with pytest.raises(json.JSONDecodeError):
            extract_json("I could not categorize these threads.")
