"""
Evidence store - where log lines and transaction records come from.

Backends:
- ElasticsearchEvidenceStore: paged _search over a log index, record lookup in a transactions index
- FileEvidenceStore: grep a plain log file for the transaction id
- InMemoryEvidenceStore: fixed dictionaries (local runs, tests)

Every backend renders log lines as "[Line <n>] <text>" in original line order.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

import httpx

from config import runtime_config
from errors import ExternalServiceError

logger = logging.getLogger(__name__)


def format_log_line(line_number: Optional[int], text: str) -> str:
    return f"[Line {line_number if line_number is not None else 0}] {text}"


@dataclass
class TransactionRecord:
    """Secondary identifiers for a transaction, used to widen log search."""

    transaction_id: str
    correlation_id: Optional[str] = None
    service_id: Optional[str] = None


class EvidenceStore(ABC):
    """Read-only access to per-transaction evidence."""

    name: str = "base"

    @abstractmethod
    async def find_logs_by_transaction_id(self, transaction_id: str) -> List[str]:
        """Return all log lines for the id, ordered by original line number."""

    @abstractmethod
    async def find_transaction_record(self, transaction_id: str) -> Optional[TransactionRecord]:
        """Return the record for the id, or None when unknown."""

    async def health_check(self) -> Dict[str, str]:
        return {"status": "ok", "backend": self.name}

    async def close(self) -> None:
        pass


class ElasticsearchEvidenceStore(EvidenceStore):
    """Elasticsearch-backed evidence via the REST _search API."""

    name = "elasticsearch"

    def __init__(
        self,
        base_url: str,
        log_index: str = "logs",
        transaction_index: str = "transactions",
        page_size: int = 100,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.log_index = log_index
        self.transaction_index = transaction_index
        self.page_size = page_size
        self._client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    async def _search(self, index: str, body: dict) -> dict:
        try:
            resp = await self._client.post(f"/{index}/_search", json=body)
        except httpx.HTTPError as e:
            raise ExternalServiceError(
                "Elasticsearch request failed",
                details=str(e),
                service="evidence",
                index=index,
            ) from e

        if resp.status_code == 404:
            # Missing index behaves like an empty one
            logger.warning(f"Elasticsearch index not found: {index}")
            return {"hits": {"hits": [], "total": {"value": 0}}}
        if resp.status_code >= 400:
            raise ExternalServiceError(
                f"Elasticsearch returned {resp.status_code}",
                details=resp.text[:300],
                service="evidence",
                status_code=resp.status_code,
                index=index,
            )
        try:
            data = resp.json()
        except ValueError as e:
            raise ExternalServiceError(
                "Elasticsearch returned a non-JSON body",
                details=resp.text[:300],
                service="evidence",
                status_code=resp.status_code,
                index=index,
            ) from e
        if not isinstance(data, dict):
            raise ExternalServiceError("Elasticsearch returned an unexpected body", service="evidence", index=index)
        return data

    async def find_logs_by_transaction_id(self, transaction_id: str) -> List[str]:
        logger.info(f"Fetching logs for transaction ID: {transaction_id} (page size {self.page_size})")
        lines: List[str] = []
        offset = 0

        while True:
            body = {
                "query": {"match_phrase": {"transaction_id": transaction_id}},
                "sort": [{"line_number": {"order": "asc", "unmapped_type": "integer"}}],
                "from": offset,
                "size": self.page_size,
            }
            data = await self._search(self.log_index, body)
            hits = data.get("hits", {}).get("hits", [])
            for hit in hits:
                source = hit.get("_source") or {}
                lines.append(format_log_line(source.get("line_number"), source.get("log_line", "")))

            if len(hits) < self.page_size:
                break
            offset += self.page_size

        logger.info(f"Retrieved {len(lines)} total log lines for transaction ID: {transaction_id}")
        return lines

    async def find_transaction_record(self, transaction_id: str) -> Optional[TransactionRecord]:
        body = {"query": {"term": {"transaction_id": transaction_id}}, "size": 1}
        data = await self._search(self.transaction_index, body)
        hits = data.get("hits", {}).get("hits", [])
        if not hits:
            return None

        source = hits[0].get("_source") or {}
        return TransactionRecord(
            transaction_id=transaction_id,
            correlation_id=source.get("uuid") or source.get("correlation_id"),
            service_id=source.get("service_id"),
        )

    async def health_check(self) -> Dict[str, str]:
        try:
            resp = await self._client.get("/_cluster/health")
            status = "ok" if resp.status_code == 200 else "down"
        except httpx.HTTPError:
            status = "down"
        return {"status": status, "backend": self.name}

    async def close(self) -> None:
        await self._client.aclose()


class FileEvidenceStore(EvidenceStore):
    """Greps a single application log file for lines containing the id."""

    name = "file"

    def __init__(self, log_path: Path | str, records: Optional[Dict[str, TransactionRecord]] = None):
        self.log_path = Path(log_path)
        self._records = records or {}

    def _grep(self, needle: str) -> List[str]:
        matches = []
        with open(self.log_path, "r", encoding="utf-8", errors="replace") as f:
            for line_number, line in enumerate(f, start=1):
                if needle in line:
                    matches.append(format_log_line(line_number, line.rstrip("\n")))
        return matches

    async def find_logs_by_transaction_id(self, transaction_id: str) -> List[str]:
        if not self.log_path.exists():
            logger.warning(f"Log file not found: {self.log_path}")
            return []
        try:
            lines = await asyncio.to_thread(self._grep, transaction_id)
        except OSError as e:
            raise ExternalServiceError(
                "Could not read log file",
                details=str(e),
                service="evidence",
                path=str(self.log_path),
            ) from e
        logger.info(f"Found {len(lines)} log lines matching transaction ID: {transaction_id}")
        return lines

    async def find_transaction_record(self, transaction_id: str) -> Optional[TransactionRecord]:
        return self._records.get(transaction_id)

    async def health_check(self) -> Dict[str, str]:
        return {"status": "ok" if self.log_path.exists() else "down", "backend": self.name}


class InMemoryEvidenceStore(EvidenceStore):
    """Serves log lines and records from dictionaries."""

    name = "memory"

    def __init__(
        self,
        logs: Optional[Dict[str, List[str]]] = None,
        records: Optional[Dict[str, TransactionRecord]] = None,
    ):
        self._logs = logs or {}
        self._records = records or {}

    async def find_logs_by_transaction_id(self, transaction_id: str) -> List[str]:
        return list(self._logs.get(transaction_id, []))

    async def find_transaction_record(self, transaction_id: str) -> Optional[TransactionRecord]:
        return self._records.get(transaction_id)


def create_evidence_store() -> EvidenceStore:
    """Build the backend selected by runtime config."""
    backend = runtime_config.evidence_backend
    if backend == "file":
        return FileEvidenceStore(runtime_config.log_file_path)
    if backend == "memory":
        return InMemoryEvidenceStore()
    return ElasticsearchEvidenceStore(
        runtime_config.elasticsearch_url,
        log_index=runtime_config.es_log_index,
        transaction_index=runtime_config.es_transaction_index,
        page_size=runtime_config.es_page_size,
        timeout=runtime_config.evidence_timeout_s,
    )
