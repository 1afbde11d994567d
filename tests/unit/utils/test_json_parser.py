"""Unit tests for LLM JSON cleaning and parsing."""

import pytest

from takeoff.utils.json_parser import clean_json_response, parse_json_safely


class TestCleanJsonResponse:
    def test_strips_code_fence(self):
        assert clean_json_response("```json\n{\"a\": 1}\n```") == "{\"a\": 1}"

    def test_strips_bare_fence(self):
        assert clean_json_response("```\n{\"a\": 1}\n```") == "{\"a\": 1}"

    def test_cuts_surrounding_prose(self):
        assert clean_json_response("Sure! {\"a\": 1} Done.") == "{\"a\": 1}"

    @pytest.mark.parametrize("text", [None, "", "   ", "```\n```"])
    def test_empty(self, text):
        assert clean_json_response(text) is None


class TestParseJsonSafely:
    def test_plain_object(self):
        assert parse_json_safely("{\"quantities\": []}") == {"quantities": []}

    def test_concatenated_objects_are_merged(self):
        text = "{\"quantities\": [{\"item\": \"a\"}]}\n{\"quantities\": [{\"item\": \"b\"}], \"page_type\": \"Site Plan\"}"

        result = parse_json_safely(text)

        assert result["quantities"] == [{"item": "a"}, {"item": "b"}]
        assert result["page_type"] == "Site Plan"

    def test_braces_inside_strings(self):
        text = "Result: {\"note\": \"see {detail} 5\", \"ok\": true} trailing } junk"
        assert parse_json_safely(text) == {"note": "see {detail} 5", "ok": True}

    def test_unparseable(self):
        assert parse_json_safely("{not: valid") is None
