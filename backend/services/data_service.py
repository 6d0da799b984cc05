"""
Data agent client.

POSTs {query, limit} to the data service and renders its JSON answer
as an HTML fragment. The data service owns SQL generation and execution;
this side only picks the best representation it returned.
"""

import html
import json
import logging
from typing import Any, List, Optional

import httpx

from config import runtime_config
from errors import ExternalServiceError

logger = logging.getLogger(__name__)

NOT_CONFIGURED_MESSAGE = "<p>Data service URL is not configured on the server.</p>"


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value)


def render_results_table(results: List[dict]) -> str:
    """Render rows as an escaped HTML table; headers come from the first row."""
    headers = list(results[0].keys())
    parts = ["<table><thead><tr>"]
    for header in headers:
        parts.append(f"<th>{html.escape(str(header))}</th>")
    parts.append("</tr></thead><tbody>")
    for row in results:
        parts.append("<tr>")
        for header in headers:
            cell = row.get(header) if isinstance(row, dict) else None
            parts.append(f"<td>{html.escape(_cell_text(cell))}</td>")
        parts.append("</tr>")
    parts.append("</tbody></table>")
    return "".join(parts)


def render_data_response(raw: str) -> str:
    """Pick formatted_output, then results, then sql_query; fall back to the raw body."""
    try:
        node = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.warning("Could not parse data service response as JSON; returning raw")
        return raw

    if not isinstance(node, dict):
        return raw

    formatted = node.get("formatted_output")
    if isinstance(formatted, str) and formatted.strip():
        return formatted

    results = node.get("results")
    if isinstance(results, list) and results and isinstance(results[0], dict):
        return render_results_table(results)

    sql = node.get("sql_query")
    if isinstance(sql, str) and sql.strip():
        return f"<p><strong>SQL:</strong></p><pre>{html.escape(sql)}</pre>"

    return raw


class DataServiceClient:
    """Thin async client for the data agent."""

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._url = url
        self._timeout = timeout
        self._transport = transport

    @property
    def url(self) -> str:
        return (self._url if self._url is not None else runtime_config.data_service_url).strip()

    async def query(self, prompt: str, limit: int) -> str:
        """Ask the data agent; returns an HTML fragment (or raw text it could not parse).

        Raises:
            ExternalServiceError: Transport failure or non-2xx response
        """
        url = self.url
        if not url:
            logger.warning("Data service URL is not configured; returning fallback message")
            return NOT_CONFIGURED_MESSAGE

        timeout = self._timeout or runtime_config.data_service_timeout_s
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                resp = await client.post(url, json={"query": prompt, "limit": limit})
        except httpx.HTTPError as e:
            raise ExternalServiceError(
                "Data service request failed",
                details=str(e),
                service="data",
            ) from e

        if resp.status_code >= 400:
            raise ExternalServiceError(
                f"Data service returned {resp.status_code}",
                details=resp.text[:300],
                service="data",
                status_code=resp.status_code,
            )

        if not resp.text.strip():
            return "No content returned from data service."
        return render_data_response(resp.text)
