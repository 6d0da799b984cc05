"""
Runtime Configuration for Sensei.

Provides a singleton RuntimeConfig class that allows dynamic adjustment of
model parameters and selection knobs at runtime, without requiring a restart.

Usage:
    from config import runtime_config
    budget = runtime_config.log_max_chars
    runtime_config.update(log_max_chars=12000, temperature=0.5)
"""

import os
import re
import logging
from dataclasses import dataclass, field
from typing import Dict, Any
from threading import Lock

logger = logging.getLogger(__name__)


def _first_env(*keys: str, default: str) -> str:
    """Return the first non-empty environment value from keys, else default."""
    for key in keys:
        value = os.environ.get(key, "").strip()
        if value:
            return value
    return default


def _env_bool(key: str, default: str = "true") -> bool:
    return os.environ.get(key, default).strip().lower() == "true"


@dataclass
class RuntimeConfig:
    """
    Singleton configuration for runtime-adjustable parameters.

    All values have defaults from environment variables, but can be
    changed at runtime via the update() method.
    """

    # LLM endpoint (any OpenAI-compatible server)
    openai_api_key: str = field(default_factory=lambda: os.environ.get("OPENAI_API_KEY", ""), repr=False)
    openai_base_url: str = field(
        default_factory=lambda: _first_env("OPENAI_BASE_URL", default="https://api.openai.com/v1").rstrip("/")
    )

    # Model names (can be hot-swapped)
    model_analysis: str = field(default_factory=lambda: _first_env("LLM_ANALYSIS_MODEL", "LLM_MODEL", default="gpt-4"))
    model_router: str = field(
        default_factory=lambda: _first_env("LLM_ROUTER_MODEL", "LLM_MODEL", default="gpt-4.1-mini")
    )
    model_formatter: str = field(
        default_factory=lambda: _first_env("LLM_FORMATTER_MODEL", "LLM_ROUTER_MODEL", "LLM_MODEL", default="gpt-4.1-mini")
    )

    # Model parameters
    temperature: float = field(default_factory=lambda: float(os.environ.get("LLM_TEMPERATURE", "0.7")))
    router_temperature: float = field(default_factory=lambda: float(os.environ.get("LLM_ROUTER_TEMPERATURE", "0.0")))
    max_output_tokens: int = field(default_factory=lambda: int(os.environ.get("LLM_MAX_TOKENS", "2000")))
    llm_timeout_s: float = field(default_factory=lambda: float(os.environ.get("LLM_TIMEOUT_S", "60")))
    formatter_llm_enabled: bool = field(default_factory=lambda: _env_bool("FORMATTER_LLM_ENABLED", "true"))

    # Evidence store
    evidence_backend: str = field(default_factory=lambda: os.environ.get("EVIDENCE_BACKEND", "elasticsearch").lower())
    elasticsearch_url: str = field(
        default_factory=lambda: os.environ.get("ELASTICSEARCH_URL", "http://localhost:9200").rstrip("/")
    )
    es_log_index: str = field(default_factory=lambda: os.environ.get("ES_LOG_INDEX", "logs"))
    es_transaction_index: str = field(default_factory=lambda: os.environ.get("ES_TRANSACTION_INDEX", "transactions"))
    es_page_size: int = field(default_factory=lambda: int(os.environ.get("ES_PAGE_SIZE", "100")))
    evidence_timeout_s: float = field(default_factory=lambda: float(os.environ.get("EVIDENCE_TIMEOUT_S", "15")))
    log_file_path: str = field(default_factory=lambda: os.environ.get("LOG_FILE_PATH", "data/logs/application.log"))

    # Data agent (empty URL = not configured)
    data_service_url: str = field(default_factory=lambda: os.environ.get("DATA_SERVICE_URL", "").strip())
    data_service_timeout_s: float = field(default_factory=lambda: float(os.environ.get("DATA_SERVICE_TIMEOUT_S", "30")))

    # Log relevance selection
    log_max_chars: int = field(default_factory=lambda: int(os.environ.get("LOG_MAX_CHARS", "10000")))
    log_head_lines: int = field(default_factory=lambda: int(os.environ.get("LOG_HEAD_LINES", "15")))
    log_tail_lines: int = field(default_factory=lambda: int(os.environ.get("LOG_TAIL_LINES", "15")))
    log_context_before: int = field(default_factory=lambda: int(os.environ.get("LOG_CONTEXT_BEFORE", "5")))
    log_context_after: int = field(default_factory=lambda: int(os.environ.get("LOG_CONTEXT_AFTER", "3")))

    # Chat context
    history_window: int = field(default_factory=lambda: int(os.environ.get("CHAT_HISTORY_WINDOW", "10")))
    routing_history_limit: int = field(default_factory=lambda: int(os.environ.get("ROUTING_HISTORY_LIMIT", "5")))
    title_max_length: int = field(default_factory=lambda: int(os.environ.get("TITLE_MAX_LENGTH", "60")))

    # Data query limits
    default_limit: int = field(default_factory=lambda: int(os.environ.get("DATA_DEFAULT_LIMIT", "5")))
    max_limit: int = field(default_factory=lambda: int(os.environ.get("DATA_MAX_LIMIT", "1000")))

    # Conversation storage
    conversation_store: str = field(default_factory=lambda: os.environ.get("CONVERSATION_STORE", "sqlite").lower())
    database_path: str = field(default_factory=lambda: os.environ.get("DATABASE_PATH", "data/sensei.sqlite"))

    log_level: str = field(default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO").upper())

    # Internal state
    _lock: Lock = field(default_factory=Lock, repr=False, compare=False)
    _update_count: int = field(default=0, repr=False)

    # Validation ranges for numeric config values
    _VALIDATION_RANGES: Dict[str, tuple] = field(default_factory=lambda: {
        "temperature": (0.0, 2.0),
        "router_temperature": (0.0, 2.0),
        "max_output_tokens": (64, 32768),
        "llm_timeout_s": (1.0, 600.0),
        "es_page_size": (1, 10000),
        "evidence_timeout_s": (1.0, 300.0),
        "data_service_timeout_s": (1.0, 300.0),
        "log_max_chars": (500, 1_000_000),
        "log_head_lines": (0, 1000),
        "log_tail_lines": (0, 1000),
        "log_context_before": (0, 100),
        "log_context_after": (0, 100),
        "history_window": (1, 100),
        "routing_history_limit": (0, 50),
        "title_max_length": (10, 500),
        "default_limit": (1, 1000),
        "max_limit": (1, 100000),
    }, repr=False, compare=False)

    _CHOICES: Dict[str, tuple] = field(default_factory=lambda: {
        "evidence_backend": ("elasticsearch", "file", "memory"),
        "conversation_store": ("sqlite", "memory"),
        "log_level": ("DEBUG", "INFO", "WARNING", "ERROR"),
    }, repr=False, compare=False)

    def update(self, **kwargs) -> Dict[str, Any]:
        """
        Update configuration values at runtime.

        Args:
            **kwargs: Key-value pairs to update (e.g., log_max_chars=12000)

        Returns:
            Dict with 'updated' (changed keys) and 'ignored' (unknown or rejected keys)
        """
        updated = []
        ignored = []

        with self._lock:
            for key, value in kwargs.items():
                if key.startswith("_"):
                    ignored.append(key)
                    continue

                if not hasattr(self, key):
                    ignored.append(key)
                    logger.warning(f"Config ignored unknown key: {key}")
                    continue

                if key.endswith("_url") and isinstance(value, str):
                    cleaned = value.strip()
                    # data_service_url may be cleared to disable the data agent
                    if cleaned and not cleaned.startswith(("http://", "https://")):
                        ignored.append(key)
                        logger.warning(f"Config rejected invalid URL: {key}={value!r}")
                        continue
                    value = cleaned.rstrip("/")

                if key in self._CHOICES and isinstance(value, str):
                    value = value.strip().upper() if key == "log_level" else value.strip().lower()
                    if value not in self._CHOICES[key]:
                        ignored.append(key)
                        logger.warning(f"Config rejected {key}={value!r} (must be one of {self._CHOICES[key]})")
                        continue

                # Validate model names (alphanumeric, colons, dots, dashes only)
                if key.startswith("model_") and isinstance(value, str) and value:
                    if not re.match(r"^[a-zA-Z0-9._:/-]+$", value) or len(value) > 100:
                        ignored.append(key)
                        logger.warning(f"Config rejected invalid model name: {key}={value!r}")
                        continue

                # Validate numeric ranges
                if key in self._VALIDATION_RANGES:
                    lo, hi = self._VALIDATION_RANGES[key]
                    if isinstance(value, bool) or not isinstance(value, (int, float)) or not (lo <= value <= hi):
                        ignored.append(key)
                        logger.warning(f"Config rejected {key}={value} (must be {lo}-{hi})")
                        continue

                old_value = getattr(self, key)
                setattr(self, key, value)
                updated.append(key)
                if key == "openai_api_key":
                    logger.info("Config updated: openai_api_key")
                else:
                    logger.info(f"Config updated: {key} = {value} (was {old_value})")

            self._update_count += 1

        return {"updated": updated, "ignored": ignored, "update_count": self._update_count}

    @property
    def llm_configured(self) -> bool:
        """True when an API key or a non-default (self-hosted) base URL is set."""
        return bool(self.openai_api_key) or not self.openai_base_url.startswith("https://api.openai.com")

    def to_dict(self) -> Dict[str, Any]:
        """Export current config as dict (excludes internal fields, masks the API key)."""
        from dataclasses import fields as dataclass_fields

        result = {}
        for field_info in dataclass_fields(self):
            if not field_info.name.startswith("_"):
                result[field_info.name] = getattr(self, field_info.name)
        if result.get("openai_api_key"):
            result["openai_api_key"] = "***"
        return result

    def reset_to_defaults(self) -> Dict[str, Any]:
        """Reset all values to environment defaults."""
        defaults = RuntimeConfig()
        changes = {}

        with self._lock:
            for key in self.to_dict().keys():
                old_value = getattr(self, key)
                new_value = getattr(defaults, key)
                if old_value != new_value:
                    setattr(self, key, new_value)
                    changes[key] = {"old": "***" if key == "openai_api_key" else old_value, "new": "***" if key == "openai_api_key" else new_value}
                    logger.info(f"Config reset: {key}")

            self._update_count += 1

        return {"reset": True, "changes": changes, "update_count": self._update_count}


# Singleton instance
runtime_config = RuntimeConfig()


def get_config() -> RuntimeConfig:
    """Get the singleton config instance."""
    return runtime_config
