"""lms_agent/api.py

FastAPI HTTP interface for the LMS assistant.

Endpoints:
  GET  /health                 liveness probe
  POST /api/auth/login         exchange email/password for a bearer token
  POST /api/ai-agent/chat      stream the assistant's reply as ``0:<json>\\n`` lines
  POST /api/ai-agent/upload    parse a student roster file
"""

from __future__ import annotations

# Standard Library
import asyncio
import json
import logging
from collections.abc import AsyncGenerator

# Third-Party Libraries
import uvicorn
from dotenv import load_dotenv
from fastapi import Depends, FastAPI, File, Request, Response, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

# Local Modules
from lms_agent.agent import AgentLoop
from lms_agent.auth import STAFF_ROLES, Principal, issue_token, require_roles
from lms_agent.config import AgentSettings
from lms_agent.engine import InferenceEngine, OllamaEngine
from lms_agent.errors import EngineUnavailableError
from lms_agent.registry import ToolRegistry
from lms_agent.roster import ALLOWED_TYPES, parse_roster
from lms_agent.store import DomainStore, InMemoryStore, seed_demo_data, verify_password
from lms_agent.tools import build_lms_registry

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logger = logging.getLogger("lms-agent.api")

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
}

# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)


def encode_fragment(fragment: str) -> str:
    """Frame one fragment as a ``0:<json-string>`` line."""
    return f"0:{json.dumps(fragment, ensure_ascii=False)}\n"


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(
    settings: AgentSettings | None = None,
    store: DomainStore | None = None,
    engine: InferenceEngine | None = None,
    registry: ToolRegistry | None = None,
) -> FastAPI:
    """Wire the store, engine, tool registry and agent loop into an app.

    Args:
        settings: Runtime settings; read from the environment when omitted.
        store: Domain store; a fresh :class:`InMemoryStore` when omitted.
        engine: Inference engine; an :class:`OllamaEngine` when omitted.
        registry: Tool registry; the LMS tools bound to ``store`` when omitted.

    Returns:
        The configured FastAPI application.
    """
    settings = settings or AgentSettings()
    if store is None:
        store = InMemoryStore()
        if settings.seed_demo_data:
            seed_demo_data(store)
    if engine is None:
        engine = OllamaEngine(host=settings.ollama_host, timeout=settings.request_timeout)
    registry = registry or build_lms_registry(store)
    agent = AgentLoop(engine=engine, registry=registry, settings=settings)

    if settings.jwt_secret == "change-me":
        logger.warning("JWT_SECRET is not set; using the insecure default secret")

    app = FastAPI(
        title="LMS Assistant",
        version="0.1.0",
        description=(
            "Natural-language assistant for LMS administrators and professors, "
            "backed by a local Ollama model with native tool calling."
        ),
    )
    app.state.settings = settings
    app.state.store = store
    app.state.engine = engine
    app.state.registry = registry
    app.state.agent = agent

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    staff_only = require_roles(*STAFF_ROLES)

    # -----------------------------------------------------------------------
    # Endpoints
    # -----------------------------------------------------------------------

    @app.get("/health", tags=["meta"])
    async def health() -> dict[str, str]:
        """Liveness probe."""
        return {"status": "ok", "server": "lms-agent", "model": settings.ollama_model}

    @app.post("/api/auth/login", tags=["auth"])
    async def login(body: LoginRequest) -> JSONResponse:
        user = store.find_user_by_email(body.email)
        # PBKDF2 is CPU bound; keep it off the event loop.
        verified = user is not None and await asyncio.to_thread(
            verify_password, body.password, user.password_hash
        )
        if not verified:
            return JSONResponse(status_code=401, content={"message": "Invalid email or password"})
        return JSONResponse(
            content={
                "token": issue_token(user.id, settings),
                "user": {"id": user.id, "name": user.name, "email": user.email, "role": user.role},
            }
        )

    @app.post("/api/ai-agent/chat", tags=["agent"])
    async def chat(
        request: Request,
        principal: Principal = Depends(staff_only),
    ) -> Response:
        """Run one assistant turn and stream the reply.

        Body: ``{"messages": [{"role": "user", "content": "..."}, ...]}``.

        Returns:
            400 when ``messages`` is missing or not an array, 503 when the
            model is not available, otherwise a ``text/plain`` stream of
            ``0:<json-string>`` lines closed when the turn ends.
        """
        try:
            try:
                body = await request.json()
            except ValueError:
                body = None
            messages = body.get("messages") if isinstance(body, dict) else None
            if not isinstance(messages, list):
                return JSONResponse(status_code=400, content={"message": "Messages array is required"})
            if not all(isinstance(message, dict) for message in messages):
                return JSONResponse(
                    status_code=400, content={"message": "Each message must be an object"}
                )

            logger.info(
                "Agent request from %s (%s): %d message(s), model=%s",
                principal.id,
                principal.role,
                len(messages),
                settings.ollama_model,
            )

            if not await engine.is_model_available(settings.ollama_model):
                raise EngineUnavailableError(settings.ollama_model, settings.ollama_host)

            run = agent.run(messages)
            fragments = aiter(run)
        except EngineUnavailableError as exc:
            logger.warning("%s", exc)
            return JSONResponse(
                status_code=503,
                content={
                    "message": "Ollama is not available",
                    "error": "Please ensure Ollama is running with: ollama serve",
                    "help": (
                        "Install Ollama from https://ollama.com and run: "
                        f"ollama pull {exc.model}"
                    ),
                },
            )
        except Exception as exc:
            logger.error("AI agent error: %s", exc, exc_info=True)
            return JSONResponse(
                status_code=500, content={"message": "AI agent error", "error": str(exc)}
            )

        async def _frames() -> AsyncGenerator[str, None]:
            try:
                async for fragment in fragments:
                    yield encode_fragment(fragment)
            finally:
                # Also reached when the client disconnects mid-stream.
                await fragments.aclose()
                logger.info(
                    "Agent stream closed: %d tool invocation(s)", len(run.outcomes)
                )

        return StreamingResponse(
            _frames(),
            media_type="text/plain; charset=utf-8",
            headers=STREAM_HEADERS,
        )

    @app.post("/api/ai-agent/upload", tags=["agent"])
    async def upload(
        file: UploadFile | None = File(None),
        principal: Principal = Depends(staff_only),
    ) -> JSONResponse:
        """Parse a CSV, Excel or PDF roster into ``{name, email, section?}`` rows."""
        if file is None:
            return JSONResponse(status_code=400, content={"message": "No file uploaded"})

        content_type = (file.content_type or "").split(";", 1)[0].strip().lower()
        if content_type not in ALLOWED_TYPES:
            return JSONResponse(
                status_code=400,
                content={"message": "Invalid file type. Only PDFs, Excel, and CSV files are allowed."},
            )

        data = await file.read(settings.max_upload_bytes + 1)
        if len(data) > settings.max_upload_bytes:
            return JSONResponse(status_code=413, content={"message": "File too large"})

        result = await asyncio.to_thread(parse_roster, data, content_type)
        logger.info(
            "Roster upload by %s: %s (%s) -> %d student(s)",
            principal.id,
            file.filename,
            content_type,
            result.count,
        )
        return JSONResponse(content=result.to_dict())

    return app


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def run_api() -> None:
    """Start the API server via uvicorn."""
    load_dotenv()
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    settings = AgentSettings()
    logger.info("Starting lms-agent API on %s:%d", settings.api_host, settings.api_port)
    uvicorn.run(
        "lms_agent.api:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
        log_level="info",
        reload=False,
    )


if __name__ == "__main__":
    run_api()
