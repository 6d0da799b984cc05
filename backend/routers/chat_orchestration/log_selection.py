"""
Log relevance selection.

Keeps a head and tail of the transaction timeline plus a window around
every line that mentions a significant event, then caps the result by a
character budget. The cap is a hard stop: once a kept line would overflow
the budget, nothing after it is emitted.
"""

import logging
from typing import List, Optional, Sequence, Tuple

from config import runtime_config

logger = logging.getLogger(__name__)

# Case-sensitive substrings; common casings are listed explicitly
SIGNIFICANT_KEYWORDS: Tuple[str, ...] = (
    "ERROR",
    "WARN",
    "FATAL",
    "Exception",
    "exception",
    "timeout",
    "TIMEOUT",
    "failed",
    "FAILED",
    "failure",
    "FAILURE",
    "rollback",
    "ROLLBACK",
)


class LogRelevanceSelector:
    """Selects a bounded, order-preserving, high-signal subset of log lines."""

    def __init__(
        self,
        head: Optional[int] = None,
        tail: Optional[int] = None,
        before: Optional[int] = None,
        after: Optional[int] = None,
        keywords: Sequence[str] = SIGNIFICANT_KEYWORDS,
    ):
        self.head = runtime_config.log_head_lines if head is None else head
        self.tail = runtime_config.log_tail_lines if tail is None else tail
        self.before = runtime_config.log_context_before if before is None else before
        self.after = runtime_config.log_context_after if after is None else after
        self.keywords = tuple(keywords)

    def is_significant(self, line: Optional[str]) -> bool:
        if not line:
            return False
        return any(kw in line for kw in self.keywords)

    def mark(self, lines: Sequence[Optional[str]]) -> List[bool]:
        """Return the keep-mask before the character budget is applied."""
        n = len(lines)
        keep = [False] * n

        for i in range(min(self.head, n)):
            keep[i] = True
        for i in range(max(0, n - self.tail), n):
            keep[i] = True

        for i, line in enumerate(lines):
            if not self.is_significant(line):
                continue
            start = max(0, i - self.before)
            end = min(n - 1, i + self.after)
            for j in range(start, end + 1):
                keep[j] = True

        return keep

    def select(self, lines: Sequence[Optional[str]], max_chars: Optional[int] = None) -> List[str]:
        if not lines:
            return []

        max_chars = runtime_config.log_max_chars if max_chars is None else max_chars
        keep = self.mark(lines)

        result: List[str] = []
        total_chars = 0
        for i, line in enumerate(lines):
            if not keep[i] or not line:
                continue
            if total_chars + len(line) > max_chars:
                break
            result.append(line)
            total_chars += len(line)

        logger.info(
            f"Selected relevant logs: original lines = {len(lines)}, kept = {len(result)}, "
            f"approx chars = {total_chars}"
        )
        return result
