"""
Tests for ResponseFormatter and the local HTML converter.
"""

import asyncio

from errors import LLMError
from routers.chat_orchestration.formatter import (
    FORMATTER_SYSTEM_PROMPT,
    ResponseFormatter,
    is_already_markup,
    local_format,
    normalize,
)
from fakes import FakeLLMClient


class TestLocalFormat:
    """Deterministic fallback converter."""

    def test_paragraphs(self):
        assert local_format("first\n\nsecond") == "<p>first</p><p>second</p>"

    def test_unordered_list(self):
        assert local_format("- a\n- b") == "<ul><li>a</li><li>b</li></ul>"

    def test_ordered_list(self):
        assert local_format("1. one\n2.  two") == "<ol><li>one</li><li>two</li></ol>"

    def test_switching_list_type_closes_previous(self):
        html = local_format("- a\n1. b\n- c")
        assert html == "<ul><li>a</li></ul><ol><li>b</li></ol><ul><li>c</li></ul>"

    def test_paragraph_closes_list(self):
        assert local_format("- a\ntext") == "<ul><li>a</li></ul><p>text</p>"

    def test_blank_line_closes_list(self):
        assert local_format("- a\n\n- b") == "<ul><li>a</li></ul><ul><li>b</li></ul>"

    def test_escapes_content(self):
        html = local_format('<script>alert("x")</script> & more')
        assert "<script>" not in html
        assert "&lt;script&gt;" in html
        assert "&amp; more" in html

    def test_escapes_list_items(self):
        assert local_format("- a < b") == "<ul><li>a &lt; b</li></ul>"


class TestNormalize:
    def test_line_endings_and_bullets(self):
        assert normalize("a\r\n•b") == "a\n- b"

    def test_mis_decoded_bullet(self):
        assert normalize("â€¢item") == "- item"


class TestResponseFormatter:
    """LLM path, fallback and idempotence."""

    def test_markup_passes_through(self):
        llm = FakeLLMClient()
        formatter = ResponseFormatter(llm, use_llm=True)
        text = "<p>already</p>"
        assert asyncio.run(formatter.format(text)) == text
        assert llm.calls == []

    def test_blank_returned_as_is(self):
        formatter = ResponseFormatter(None)
        assert asyncio.run(formatter.format("   ")) == "   "
        assert asyncio.run(formatter.format(None)) == ""

    def test_llm_path(self):
        llm = FakeLLMClient(["<html><body><p>Root cause</p></body></html>"])
        formatter = ResponseFormatter(llm, use_llm=True)

        assert asyncio.run(formatter.format("Root cause")) == "<p>Root cause</p>"
        assert llm.calls[0]["system_instruction"] == FORMATTER_SYSTEM_PROMPT
        assert llm.calls[0]["temperature"] == 0.0

    def test_llm_failure_falls_back(self):
        llm = FakeLLMClient([LLMError("boom")])
        formatter = ResponseFormatter(llm, use_llm=True)
        assert asyncio.run(formatter.format("- x\n- y")) == "<ul><li>x</li><li>y</li></ul>"

    def test_empty_llm_output_falls_back(self):
        llm = FakeLLMClient(["<html></html>"])
        formatter = ResponseFormatter(llm, use_llm=True)
        assert asyncio.run(formatter.format("plain")) == "<p>plain</p>"

    def test_unstructured_llm_output_falls_back(self):
        """A heading-only fragment would be sent back to the model on a second pass."""
        llm = FakeLLMClient(["<h3>Root cause</h3>"])
        formatter = ResponseFormatter(llm, use_llm=True)

        once = asyncio.run(formatter.format("Root cause"))
        assert once == "<p>Root cause</p>"
        assert asyncio.run(formatter.format(once)) == once
        assert len(llm.calls) == 1

    def test_table_passes_through(self):
        llm = FakeLLMClient()
        table = "<table><tr><td>TX1</td></tr></table>"
        assert asyncio.run(ResponseFormatter(llm, use_llm=True).format(table)) == table
        assert llm.calls == []

    def test_disabled_llm_uses_local(self):
        llm = FakeLLMClient()
        formatter = ResponseFormatter(llm, use_llm=False)
        assert asyncio.run(formatter.format("plain")) == "<p>plain</p>"
        assert llm.calls == []

    def test_idempotent(self):
        formatter = ResponseFormatter(None)
        for text in ["plain", "- a\n- b", "1. x\n\nfoo & bar", "Summary:\n• one\n• two"]:
            once = asyncio.run(formatter.format(text))
            assert is_already_markup(once)
            assert asyncio.run(formatter.format(once)) == once
