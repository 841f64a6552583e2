"""Tests for extracting JSON objects from vision model output."""

from __future__ import annotations

import pytest

from diabfit.core.llm.errors import DecodingError, InvalidResponseError
from diabfit.core.llm.response import extract_json_object, extract_json_text


class TestExtractJsonText:
    def test_plain_object(self):
        assert extract_json_text('{"a": 1}') == '{"a": 1}'

    def test_markdown_fence_stripped(self):
        content = '```json\n{"a": 1}\n```'
        assert extract_json_text(content) == '{"a": 1}'

    def test_surrounding_prose_ignored(self):
        content = 'Here is the analysis:\n{"a": {"b": 2}}\nHope this helps!'
        assert extract_json_text(content) == '{"a": {"b": 2}}'

    def test_no_braces_raises(self):
        with pytest.raises(InvalidResponseError):
            extract_json_text("I cannot analyze this image.")


class TestExtractJsonObject:
    def test_decodes_nested(self):
        assert extract_json_object('```\n{"x": [1, 2]}\n```') == {"x": [1, 2]}

    def test_malformed_json_raises_decoding_error(self):
        with pytest.raises(DecodingError):
            extract_json_object('{"a": 1,,}')
