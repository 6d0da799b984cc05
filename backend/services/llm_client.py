"""
LLM Client - wraps the OpenAI SDK to talk to any OpenAI-compatible endpoint.

Response format of chat():
    {"message": {"role": "assistant", "content": "...", "thinking": "..."}}

complete() is the narrow text-in/text-out contract used by the router,
the formatter and transaction analysis. acomplete() runs it in the default
executor under a timeout, behind a shared circuit breaker.
"""

import asyncio
import logging
import re
import time
from typing import Dict, List, Optional

import httpx
from openai import OpenAI, OpenAIError

from config import runtime_config
from errors import LLMError
from logging_config import log_llm

logger = logging.getLogger(__name__)


def _extract_thinking(content: str) -> tuple:
    """Extract <think>...</think> tags from content.

    Reasoning models served behind OpenAI-compatible servers may return
    their thinking inline in content.

    Returns:
        (clean_content, thinking_text)
    """
    if not content:
        return "", ""

    think_pattern = re.compile(r"<think>(.*?)</think>", re.DOTALL)
    thinking_parts = think_pattern.findall(content)
    thinking = "\n".join(thinking_parts).strip()

    clean = think_pattern.sub("", content).strip()
    return clean, thinking


class _CircuitBreaker:
    """Prevents cascading failures when LLM service is down."""

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 30):
        self.failures = 0
        self.threshold = failure_threshold
        self.timeout = recovery_timeout
        self.last_failure_time = 0.0
        self.state = "closed"  # closed, open, half_open

    def is_open(self) -> bool:
        if self.state == "open":
            if time.time() - self.last_failure_time > self.timeout:
                self.state = "half_open"
                return False
            return True
        return False

    def record_success(self) -> None:
        self.failures = 0
        self.state = "closed"

    def record_failure(self) -> None:
        self.failures += 1
        self.last_failure_time = time.time()
        if self.failures >= self.threshold:
            self.state = "open"
            logger.error("Circuit breaker OPEN - LLM service unavailable")


_circuit_breaker = _CircuitBreaker()


class LLMClient:
    """Wraps OpenAI SDK pointing at an OpenAI-compatible server."""

    def __init__(self, base_url: str, api_key: str = "", timeout: float = 60.0):
        """
        Args:
            base_url: API base URL including the version path (e.g., "https://api.openai.com/v1")
            api_key: Bearer key; local servers accept any value
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._openai = OpenAI(
            base_url=self.base_url,
            api_key=api_key or "not-needed",
            timeout=timeout,
        )

    def is_healthy(self, timeout: float = 3.0) -> bool:
        """Sync health check against the /models endpoint."""
        headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}
        try:
            resp = httpx.get(f"{self.base_url}/models", headers=headers, timeout=timeout)
            return resp.status_code == 200
        except httpx.HTTPError:
            return False

    def chat(
        self,
        model: str = "",
        messages: List[Dict] = None,
        options: Optional[Dict] = None,
        format: str = None,
    ) -> Dict:
        """Call the chat completions endpoint.

        Args:
            model: Model name
            messages: List of {"role", "content"} dicts
            options: Generation options (temperature, max_tokens)
            format: Response format ("json" for JSON mode)

        Returns:
            dict with "message" key
        """
        messages = messages or []
        options = options or {}

        kwargs = {
            "model": model or "default",
            "messages": [{"role": m.get("role", "user"), "content": m.get("content", "")} for m in messages],
        }

        if "temperature" in options:
            kwargs["temperature"] = options["temperature"]
        if "max_tokens" in options:
            kwargs["max_tokens"] = options["max_tokens"]

        if format == "json":
            kwargs["response_format"] = {"type": "json_object"}

        response = self._openai.chat.completions.create(stream=False, **kwargs)

        raw_content = (response.choices[0].message.content or "") if response.choices else ""
        content, thinking = _extract_thinking(raw_content)

        result = {
            "message": {
                "role": "assistant",
                "content": content,
            }
        }
        if thinking:
            result["message"]["thinking"] = thinking

        return result

    def complete(
        self,
        system_instruction: str,
        user_content: str,
        prior_turns: Optional[List[Dict]] = None,
        model: str = "",
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
    ) -> str:
        """System + prior turns + user message in, assistant text out."""
        messages = [{"role": "system", "content": system_instruction}]
        messages.extend(prior_turns or [])
        messages.append({"role": "user", "content": user_content})

        options = {}
        if temperature is not None:
            options["temperature"] = temperature
        if max_tokens is not None:
            options["max_tokens"] = max_tokens

        response = self.chat(model=model, messages=messages, options=options, format="json" if json_mode else None)
        content = response["message"]["content"]
        if not content:
            raise LLMError("Empty completion", error_type="invalid", model=model)
        return content

    async def acomplete(self, *, timeout_seconds: Optional[float] = None, **kwargs) -> str:
        """Run complete() off the event loop with a timeout.

        Raises:
            LLMError: On timeout, open circuit, or any SDK/transport error
        """
        timeout_seconds = timeout_seconds or runtime_config.llm_timeout_s
        model = kwargs.get("model") or "default"

        # Circuit breaker: fail fast if LLM is down
        if _circuit_breaker.is_open():
            raise LLMError(
                message="LLM service temporarily unavailable (circuit breaker open, retrying in 30s)",
                error_type="circuit_open",
                model=model,
            )

        loop = asyncio.get_running_loop()
        start_time = time.time()
        log_llm(logger, "start", model=model)

        try:
            content = await asyncio.wait_for(
                loop.run_in_executor(None, lambda: self.complete(**kwargs)), timeout=timeout_seconds
            )
        except asyncio.TimeoutError:
            duration = time.time() - start_time
            logger.warning(f"LLM call timed out after {duration:.2f}s (limit={timeout_seconds}s, model={model})")
            _circuit_breaker.record_failure()
            raise LLMError(
                message=f"Model response timed out after {timeout_seconds}s",
                error_type="timeout",
                model=model,
            ) from None
        except LLMError:
            _circuit_breaker.record_failure()
            raise
        except (OpenAIError, httpx.HTTPError) as e:
            _circuit_breaker.record_failure()
            raise LLMError(message="LLM request failed", details=str(e), model=model) from e

        duration = time.time() - start_time
        log_llm(logger, "end", model=model, duration=duration)
        _circuit_breaker.record_success()
        return content


_client: Optional[LLMClient] = None


def get_llm_client() -> LLMClient:
    """Get or create the shared client from runtime config."""
    global _client
    if _client is None:
        _client = LLMClient(
            base_url=runtime_config.openai_base_url,
            api_key=runtime_config.openai_api_key,
            timeout=runtime_config.llm_timeout_s,
        )
    return _client


def reset_llm_client() -> None:
    """Drop the shared client so the next call picks up new endpoint settings."""
    global _client
    _client = None
