"""
Sensei Logging Configuration - Color-Coded Container Logs

Provides:
- ColorFormatter: ANSI color-coded log output
- Helper functions: log_message_in, log_message_out, log_route, log_agent, log_llm
- setup_logging(): Configure application logging

Usage:
    from logging_config import setup_logging, log_message_in, log_agent
    setup_logging()
    logger = logging.getLogger(__name__)
    log_message_in(logger, "Why did TX651750504 fail?", chat_id="...")
"""

import logging
import sys

# ANSI color codes
COLORS = {
    "RESET": "\033[0m",
    "BOLD": "\033[1m",
    "DIM": "\033[2m",
    # Event colors
    "MSG_IN": "\033[96m",  # Cyan - incoming prompt
    "MSG_OUT": "\033[92m",  # Green - outgoing reply
    "ROUTE": "\033[95m",  # Magenta - routing decisions
    "AGENT": "\033[93m",  # Yellow - agent execution
    "LLM": "\033[94m",  # Blue - LLM operations
    "ERROR": "\033[91m",  # Red - errors
    "WARN": "\033[33m",  # Orange/Yellow - warnings
    "DEBUG": "\033[90m",  # Gray - debug info
}


class ColorFormatter(logging.Formatter):
    """Custom formatter with colors for different log levels."""

    LEVEL_COLORS = {
        logging.DEBUG: COLORS["DEBUG"],
        logging.INFO: COLORS["RESET"],
        logging.WARNING: COLORS["WARN"],
        logging.ERROR: COLORS["ERROR"],
        logging.CRITICAL: COLORS["ERROR"] + COLORS["BOLD"],
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, COLORS["RESET"])

        # Format: timestamp [LEVEL] message
        timestamp = self.formatTime(record, "%H:%M:%S")
        level = record.levelname[:4]

        formatted = (
            f"{COLORS['DIM']}{timestamp}{COLORS['RESET']} "
            f"[{color}{level}{COLORS['RESET']}] "
            f"{record.getMessage()}"
        )

        if record.exc_info:
            formatted += "\n" + self.formatException(record.exc_info)

        return formatted


def setup_logging(level: int | str = logging.INFO) -> None:
    """Configure colored logging for the application."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ColorFormatter())

    # Configure root logger
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [handler]

    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


# =============================================================================
# COLORED LOG HELPER FUNCTIONS
# =============================================================================


def log_message_in(logger: logging.Logger, message: str, **context) -> None:
    """Log incoming user prompt.

    Args:
        logger: Logger instance
        message: Prompt text
        **context: Additional context (owner, chat_id, limit, etc.)
    """
    preview = message[:80] + "..." if len(message) > 80 else message
    ctx = " ".join(f"{k}={v}" for k, v in context.items())
    logger.info(f"{COLORS['MSG_IN']}>>> PROMPT{COLORS['RESET']} {preview} [{ctx}]")


def log_message_out(logger: logging.Logger, target: str = "", chars: int = 0) -> None:
    """Log outgoing reply.

    Args:
        logger: Logger instance
        target: Agent that produced the reply
        chars: Reply size in characters
    """
    logger.info(f"{COLORS['MSG_OUT']}<<< REPLY{COLORS['RESET']} target={target or 'none'} chars={chars}")


def log_route(logger: logging.Logger, target: str, source: str, reason: str = "") -> None:
    """Log a routing decision and where it came from (classifier, heuristic, greeting, direct)."""
    suffix = f" reason={reason}" if reason else ""
    logger.info(f"{COLORS['ROUTE']}--> ROUTE{COLORS['RESET']} {target} via {source}{suffix}")


def log_agent(
    logger: logging.Logger,
    agent: str,
    state: str,
    **context,
) -> None:
    """Log agent execution.

    Args:
        logger: Logger instance
        agent: Agent name
        state: 'start' or 'end'
        **context: Additional context (transaction_id, lines, limit, etc.)
    """
    ctx = " ".join(f"{k}={v}" for k, v in context.items()) if context else ""
    if state == "start":
        logger.info(f"{COLORS['AGENT']}>>> AGENT{COLORS['RESET']} {agent} {ctx}")
    else:
        logger.info(f"{COLORS['AGENT']}<<< AGENT{COLORS['RESET']} {agent} {ctx}")


def log_llm(
    logger: logging.Logger,
    state: str,
    model: str = "",
    duration: float = 0,
) -> None:
    """Log LLM call.

    Args:
        logger: Logger instance
        state: 'start' or 'end'
        model: Model name
        duration: Call duration in seconds (for end state)
    """
    if state == "start":
        logger.info(f"{COLORS['LLM']}>>> LLM{COLORS['RESET']} calling {model}")
    else:
        logger.info(f"{COLORS['LLM']}<<< LLM{COLORS['RESET']} " f"{model} completed in {duration:.1f}s")
