"""
Response formatting into safe HTML fragments.

Text that already carries structural tags passes through untouched, so
formatting is idempotent. Plain text/markdown goes through the formatter
model when enabled; any failure there drops to the local converter.
"""

import html
import logging
import re
from typing import List, Optional

from config import runtime_config
from errors import FormatterError, LLMError

logger = logging.getLogger(__name__)

FORMATTER_SYSTEM_PROMPT = (
    "You are an HTML formatter. Convert the given plain text/markdown into clean, safe HTML. "
    "Preserve headings, lists, and paragraphs. Use <p>, <ul>/<ol>, <li>, <strong>/<em> where appropriate. "
    "Do not invent content. Do not wrap in html/body. Return only the HTML fragment."
)

_MARKUP_TOKENS = ("<p>", "<ul>", "<li>", "<ol>", "<table>", "<pre>")
_ORDERED_ITEM = re.compile(r"^\d+\.\s+")
_DOCUMENT_WRAPPER = re.compile(r"</?(html|body|head)[^>]*>", re.IGNORECASE)


def normalize(text: str) -> str:
    """Unify line endings and bullet glyphs (including their mis-decoded form)."""
    return text.replace("\r\n", "\n").replace("â€¢", "- ").replace("•", "- ")


def is_already_markup(text: Optional[str]) -> bool:
    return bool(text) and any(token in text for token in _MARKUP_TOKENS)


def local_format(text: str) -> str:
    """Deterministic plain-text to HTML conversion.

    Blank lines close any open list. "- " lines become <ul> items,
    "1. " lines become <ol> items, anything else is a paragraph.
    """
    out: List[str] = []
    open_list: Optional[str] = None

    def close_list():
        nonlocal open_list
        if open_list:
            out.append(f"</{open_list}>")
            open_list = None

    def open_(tag: str):
        nonlocal open_list
        if open_list != tag:
            close_list()
            out.append(f"<{tag}>")
            open_list = tag

    for raw_line in text.split("\n"):
        line = raw_line.strip()
        if not line:
            close_list()
            continue

        if line.startswith("- "):
            open_("ul")
            out.append(f"<li>{html.escape(line[2:].strip())}</li>")
            continue

        ordered = _ORDERED_ITEM.match(line)
        if ordered:
            open_("ol")
            out.append(f"<li>{html.escape(line[ordered.end():].strip())}</li>")
            continue

        close_list()
        out.append(f"<p>{html.escape(line)}</p>")

    close_list()
    return "".join(out)


class ResponseFormatter:
    """Turns agent output into an HTML fragment for the chat UI."""

    def __init__(self, llm_client=None, use_llm: Optional[bool] = None):
        self.llm_client = llm_client
        self._use_llm = use_llm

    @property
    def use_llm(self) -> bool:
        enabled = runtime_config.formatter_llm_enabled if self._use_llm is None else self._use_llm
        return enabled and self.llm_client is not None

    async def format(self, raw: Optional[str]) -> str:
        if raw is None:
            return ""

        text = normalize(raw)
        if not text.strip():
            return text
        if is_already_markup(text):
            return text

        if self.use_llm:
            try:
                return await self._format_with_llm(text)
            except (FormatterError, LLMError) as e:
                logger.warning(f"Formatter model failed ({e}); using local formatter")

        return local_format(text)

    async def _format_with_llm(self, text: str) -> str:
        content = await self.llm_client.acomplete(
            system_instruction=FORMATTER_SYSTEM_PROMPT,
            user_content=text,
            model=runtime_config.model_formatter,
            temperature=0.0,
        )
        fragment = _DOCUMENT_WRAPPER.sub("", content or "").strip()
        if not fragment:
            raise FormatterError("Formatter returned no content")
        # Output must be recognizable as markup or a second pass would reformat it
        if not is_already_markup(fragment):
            raise FormatterError("Formatter returned no structural markup", details=fragment[:200])
        return fragment
