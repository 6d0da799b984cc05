"""
Sensei - Transaction RCA chat assistant
FastAPI Backend: routing, log selection and LLM analysis for transaction failures
"""

from contextlib import asynccontextmanager
from typing import Any, Dict
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from routers import chat
from routers.chat_orchestration import TurnOrchestrator
from errors import SenseiError, error_response, http_status_for, log_error
from logging_config import setup_logging
from services.conversation_store import create_conversation_store
from services.data_service import DataServiceClient
from services.evidence_store import create_evidence_store
from services.llm_client import get_llm_client, reset_llm_client
from config import runtime_config

setup_logging(runtime_config.log_level)
logger = logging.getLogger(__name__)

# Changing any of these requires a fresh LLM client
_LLM_CLIENT_KEYS = {"openai_base_url", "openai_api_key", "llm_timeout_s"}


def build_orchestrator(app: FastAPI) -> TurnOrchestrator:
    """Wire the orchestrator from the stores held on app.state."""
    return TurnOrchestrator(
        store=app.state.conversation_store,
        evidence_store=app.state.evidence_store,
        llm_client=get_llm_client(),
        data_client=DataServiceClient(),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown events"""
    # Startup
    app.state.conversation_store = create_conversation_store()
    app.state.evidence_store = create_evidence_store()
    app.state.orchestrator = build_orchestrator(app)

    logger.info(
        f"Sensei ready: evidence={app.state.evidence_store.name} "
        f"conversations={app.state.conversation_store.name} "
        f"llm={'configured' if runtime_config.llm_configured else 'unconfigured'}"
    )
    if not runtime_config.data_service_url:
        logger.warning("DATA_SERVICE_URL not set; data queries will answer with a not-configured message")

    yield

    # Shutdown
    await app.state.evidence_store.close()
    logger.info("Evidence store closed")
    logger.info("Sensei signing off")


app = FastAPI(
    title="Sensei",
    description="Transaction root-cause analysis over logs and data",
    version="1.0.0",
    lifespan=lifespan,
)


# Security Headers Middleware
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        # Prevent clickjacking
        response.headers["X-Frame-Options"] = "DENY"
        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response


# Prompts are short; anything larger is a client bug
MAX_BODY_SIZE_API = 256 * 1024


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject requests with bodies exceeding the size limit."""

    async def dispatch(self, request: Request, call_next):
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit():
            size = int(content_length)
            if size > MAX_BODY_SIZE_API:
                return JSONResponse(
                    status_code=413,
                    content={"detail": f"Request body too large ({size} bytes, limit {MAX_BODY_SIZE_API} bytes)"},
                )
        return await call_next(request)


app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestSizeLimitMiddleware)

# CORS - the chat UI runs on a dev server or behind the same gateway
app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1|192\.168\.\d+\.\d+|[a-zA-Z][a-zA-Z0-9\-]*):(3000|5173)$",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(SenseiError)
async def sensei_error_handler(request: Request, exc: SenseiError):
    status = http_status_for(exc)
    if status >= 500:
        log_error(logger, exc, context=request.url.path)
    else:
        logger.info(f"{request.method} {request.url.path} -> {status} [{exc.code.value}] {exc.message}")
    return JSONResponse(status_code=status, content=error_response(exc, source=request.url.path))


# API Routers
app.include_router(chat.router, tags=["chat"])


@app.get("/health")
async def health(request: Request):
    """Health check - pings the evidence and conversation stores."""
    checks = {"llm": "configured" if runtime_config.llm_configured else "unconfigured"}

    evidence = await request.app.state.evidence_store.health_check()
    checks["evidence_store"] = evidence.get("status", "down")

    conversations = request.app.state.conversation_store.health_check()
    checks["conversation_store"] = conversations.get("status", "down")

    all_ok = checks["evidence_store"] == "ok" and checks["conversation_store"] == "ok"
    return {
        "status": "healthy" if all_ok else "degraded",
        "service": "sensei",
        "checks": checks,
        "backends": {
            "evidence_store": evidence.get("backend"),
            "conversation_store": conversations.get("backend"),
        },
    }


@app.get("/api/config")
async def get_runtime_config() -> Dict[str, Any]:
    return runtime_config.to_dict()


@app.put("/api/config")
async def update_runtime_config(request: Request, updates: Dict[str, Any]) -> Dict[str, Any]:
    """
    Update runtime configuration.

    Changes take effect immediately without restart.
    """
    # Sanitize string config values
    updates = {k: v.strip() if isinstance(v, str) else v for k, v in updates.items()}
    result = runtime_config.update(**updates)

    if _LLM_CLIENT_KEYS.intersection(result["updated"]):
        reset_llm_client()
        request.app.state.orchestrator.use_llm_client(get_llm_client())
        logger.info("LLM client rebuilt after endpoint change")
    if "log_level" in result["updated"]:
        setup_logging(runtime_config.log_level)

    return {
        "success": True,
        "updated": result["updated"],
        "ignored": result["ignored"],
        "update_count": result["update_count"],
    }
