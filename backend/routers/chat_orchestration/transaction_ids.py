"""
Transaction ID extraction from free text.

Patterns are tried in order and the first pattern that matches wins.
Domain-specific TX ids come first so that generic catch-alls (UUIDs,
long uppercase tokens) never shadow them.
"""

import re
from typing import List, Optional, Pattern

_UUID = r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"

TRANSACTION_ID_PATTERNS: List[Pattern] = [
    # TX + exactly nine digits, the production format
    re.compile(r"\b(TX\d{9})\b"),
    re.compile(r"\b(TX\d+)\b"),
    re.compile(r"transaction[_-]?id[\s:=]+(TX\d+)", re.IGNORECASE),
    re.compile(r"txn[_-]?id[\s:=]+(TX\d+)", re.IGNORECASE),
    re.compile(r"tx[_-]?id[\s:=]+(TX\d+)", re.IGNORECASE),
    re.compile(r"transaction[_-]?id[\s:=]+([a-zA-Z0-9-]+)", re.IGNORECASE),
    re.compile(r"txn[_-]?id[\s:=]+([a-zA-Z0-9-]+)", re.IGNORECASE),
    re.compile(r"tx[_-]?id[\s:=]+([a-zA-Z0-9-]+)", re.IGNORECASE),
    re.compile(rf"id[\s:=]+({_UUID})", re.IGNORECASE),
    re.compile(rf"\b({_UUID})\b"),
    re.compile(r"\b([A-Z0-9]{10,})\b"),
]


class TransactionIdExtractor:
    """Pulls a transaction identifier out of a user prompt."""

    def __init__(self, patterns: Optional[List[Pattern]] = None):
        self.patterns = patterns or TRANSACTION_ID_PATTERNS

    def extract(self, text: Optional[str]) -> Optional[str]:
        if not text or not text.strip():
            return None

        for pattern in self.patterns:
            match = pattern.search(text)
            if match:
                return match.group(1).strip()
        return None

    def has_transaction_id(self, text: Optional[str]) -> bool:
        return self.extract(text) is not None
