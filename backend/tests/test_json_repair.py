"""
Tests for JSON extraction and repair of model output.
"""

import json

from services.json_repair import (
    extract_json_from_response,
    parse_json_response,
    parse_tool_arguments,
    repair_json,
)


class TestExtract:
    def test_fenced_block(self):
        text = 'Here you go:\n```json\n{"part_type": "filter"}\n```'
        assert extract_json_from_response(text) == '{"part_type": "filter"}'

    def test_bare_object(self):
        assert extract_json_from_response('The answer is {"a": 1} ok') == '{"a": 1}'

    def test_no_object(self):
        assert extract_json_from_response("no json here") is None
        assert extract_json_from_response("") is None


class TestRepair:
    def test_python_literals_and_trailing_comma(self):
        repaired = repair_json('{"brand": None, "used": True,}')
        assert repaired == '{"brand": null, "used": true}'

    def test_truncated_object_is_closed(self):
        assert parse_json_response('{"part_type": "alternator", "brand": "Bos') == {
            "part_type": "alternator",
            "brand": "Bos",
        }

    def test_trailing_content_dropped(self):
        assert repair_json('{"a": {"b": 1}} and more') == '{"a": {"b": 1}}'

    def test_braces_inside_strings_ignored(self):
        assert json.loads(repair_json('{"note": "use {curly}", "n": 1')) == {"note": "use {curly}", "n": 1}


class TestToolArguments:
    def test_valid(self):
        assert parse_tool_arguments('{"part_name": "faros led"}') == {"part_name": "faros led"}

    def test_empty(self):
        assert parse_tool_arguments("") == {}
        assert parse_tool_arguments(None) == {}
        assert parse_tool_arguments("   ") == {}

    def test_unparseable_or_not_object(self):
        assert parse_tool_arguments("not json") == {}
        assert parse_tool_arguments("[1, 2]") == {}

    def test_repaired(self):
        assert parse_tool_arguments("{'title': 'Call supplier',}") == {"title": "Call supplier"}
