import json

import pytest

from listing_engine.utils.json_sanitizer import (
    InvalidJsonError,
    MalformedResponseError,
    NoJsonFoundError,
    parse_json_object,
    recover_truncated_json,
    sanitize_json_text,
)


class TestSanitizeJsonText:
    def test_bare_object_is_unchanged(self):
        """
        Test: Text that is already a bare JSON object
        How: Sanitize it once and then sanitize the result again
        Ensures: Sanitizing is idempotent on clean input
        """
        text = '{"brand": "Nike", "sizes": [9, 10]}'
        once = sanitize_json_text(text)
        assert once == text
        assert sanitize_json_text(once) == once

    @pytest.mark.parametrize("wrapped", [
        '```json\n{"brand": "Nike", "model": "Air Max 90"}\n```',
        '```\n{"brand": "Nike", "model": "Air Max 90"}\n```',
        '  ```JSON {"brand": "Nike", "model": "Air Max 90"}```  ',
    ])
    def test_fenced_output_matches_inner_object(self, wrapped):
        """
        Test: Model output wrapped in markdown code fences
        How: Parse fenced variants and compare with the unwrapped object
        Ensures: Fences and language tags never reach the JSON parser
        """
        inner = {"brand": "Nike", "model": "Air Max 90"}
        assert json.loads(sanitize_json_text(wrapped)) == inner

    def test_surrounding_prose_is_discarded(self):
        text = 'Sure! Here is the listing:\n{"title": "Vintage Lamp"}\nLet me know if you need anything else.'
        assert sanitize_json_text(text) == '{"title": "Vintage Lamp"}'

    def test_stray_fence_inside_text_is_removed(self):
        text = 'Result ``` {"a": 1} ``` done'
        assert json.loads(sanitize_json_text(text)) == {"a": 1}

    @pytest.mark.parametrize("text", ["", "   ", "no json here at all", "[1, 2, 3]", None])
    def test_no_opening_brace_raises(self, text):
        """
        Test: Output without any '{'
        How: Sanitize empty, prose-only and array-only inputs
        Ensures: NoJsonFoundError (a MalformedResponseError) is raised
        """
        with pytest.raises(NoJsonFoundError):
            sanitize_json_text(text)

    def test_error_hierarchy(self):
        assert issubclass(NoJsonFoundError, MalformedResponseError)
        assert issubclass(InvalidJsonError, MalformedResponseError)
        assert issubclass(MalformedResponseError, ValueError)


class TestTruncationRecovery:
    def test_nested_object_and_array_are_closed(self):
        """
        Test: Output cut off inside an array inside an object
        How: Parse '{"a": {"b": [1, 2'
        Ensures: Closers are appended so the result parses with a.b == [1, 2]
        """
        data = parse_json_object('{"a": {"b": [1, 2')
        assert data == {"a": {"b": [1, 2]}}

    def test_open_string_is_closed(self):
        data = parse_json_object('{"title": "Nike Air Max 90 Mens Size 10')
        assert data == {"title": "Nike Air Max 90 Mens Size 10"}

    def test_escaped_quote_does_not_end_string(self):
        data = parse_json_object('{"note": "says \\"hello')
        assert data == {"note": 'says "hello'}

    def test_braces_inside_strings_are_ignored(self):
        assert recover_truncated_json('{"a": "{[", "b": [1') == '{"a": "{[", "b": [1]}'

    def test_truncation_after_fence(self):
        data = parse_json_object('```json\n{"pricing": {"suggestedPrice": 45, "currency": "USD"')
        assert data == {"pricing": {"suggestedPrice": 45, "currency": "USD"}}

    def test_interleaved_nesting_is_a_known_approximation(self):
        """
        Test: Truncation inside an object that sits inside an array
        How: Recover '{"items": [{"name": "x"' which needs '}]}' to balance
        Ensures: All arrays are closed before all objects, so this shape stays
                 unparseable and surfaces as InvalidJsonError instead of a guess
        """
        truncated = '{"items": [{"name": "x"'
        assert recover_truncated_json(truncated) == '{"items": [{"name": "x"]}}'
        with pytest.raises(InvalidJsonError):
            parse_json_object(truncated)


class TestParseJsonObject:
    def test_parses_object(self):
        assert parse_json_object('Here: {"ok": true}') == {"ok": True}

    def test_invalid_json_raises_invalid_json_error(self):
        with pytest.raises(InvalidJsonError, match="Invalid JSON from AI"):
            parse_json_object('{"a": 1,, "b": 2}')

    def test_single_quoted_keys_are_invalid(self):
        with pytest.raises(InvalidJsonError):
            parse_json_object("{'a': 1}")
