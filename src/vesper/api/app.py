"""
Core API backend for Vesper.

It exposes the following endpoints:
- **GET /health**               - liveness probe for health checks.
- **POST /agent**               - run one request (message, chat_id, options).
- **DELETE /context/{chat_id}** - forget the persisted context and history of a conversation.
"""

import logging

from fastapi import (
    Depends,
    FastAPI,
    HTTPException,
)
from fastapi.middleware.cors import CORSMiddleware

from vesper.agent.model_interface import ModelTransportError
from vesper.agent.orchestrator import (
    AgentOrchestrator,
    create_orchestrator,
)
from vesper.api.models import (
    ClearContextResponse,
    MessageRequest,
    MessageResponse,
)
from vesper.common import (
    AnsiColors,
    colored_print,
)
from vesper.config import settings

logger = logging.getLogger(__name__)

app = FastAPI(title="Vesper API", version="0.1.0", description="Vesper autonomous agent API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[f"http://localhost:{settings.API_PORT}"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_orchestrator: AgentOrchestrator | None = None


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------
def get_orchestrator() -> AgentOrchestrator:
    """Build the orchestrator on first use."""
    global _orchestrator  # pylint: disable=global-statement
    if _orchestrator is None:
        _orchestrator = create_orchestrator()
    return _orchestrator


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@app.get("/health", summary="Health check")
async def health() -> dict[str, str]:
    """Return a simple liveness payload."""
    return {"status": "ok"}


@app.post("/agent", response_model=MessageResponse, summary="Process a message")
async def agent_endpoint(
    req: MessageRequest, orchestrator: AgentOrchestrator = Depends(get_orchestrator)
) -> MessageResponse:
    """Run the agent on one user message."""
    logger.debug("Agent request for chat %s: %s", req.chat_id, req.message)
    try:
        result = await orchestrator.execute(
            req.message, req.chat_id, req.options.model_dump(exclude_none=True)
        )
    except ModelTransportError as exc:
        logger.error("Model transport failure for chat %s: %s", req.chat_id, exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return MessageResponse(**result.model_dump(), chat_id=req.chat_id)


@app.delete(
    "/context/{chat_id}", response_model=ClearContextResponse, summary="Clear conversation context"
)
async def clear_context(
    chat_id: str, orchestrator: AgentOrchestrator = Depends(get_orchestrator)
) -> ClearContextResponse:
    """Delete the persisted context snapshot and history of *chat_id*."""
    cleared = await orchestrator.context_manager.clear(chat_id)
    try:
        await orchestrator.history.clear(chat_id)
    except Exception:  # pylint: disable=broad-except
        logger.exception("Could not clear history for chat %s", chat_id)
    return ClearContextResponse(chat_id=chat_id, cleared=cleared)


@app.get("/", summary="API root")
async def root() -> dict[str, str]:
    """Return a simple welcome message."""
    return {"message": "Welcome to the Vesper API! Use /docs for API documentation."}


# ---------------------------------------------------------------------------
# Public helper to launch the API (imported by main.py)
# ---------------------------------------------------------------------------
def run_api(
    host: str = "0.0.0.0", port: int = 8000, reload: bool = False, log_level: str | None = None
) -> None:
    """Start a uvicorn server hosting *app*.

    Parameters
    ----------
    host, port:
        Bind address for the HTTP server.
    reload:
        If *True*, enable auto-reload (useful in dev docker-compose).
    log_level:
        Logging level to use (default from settings if not provided).
    """

    # Lazy import - keeps uvicorn out of the import path of library users
    import uvicorn  # pylint: disable=import-outside-toplevel

    if log_level is None:
        log_level = settings.LOG_LEVEL

    logger.info(
        "Starting Vesper API at %s:%d (reload=%s, log_level=%s)", host, port, reload, log_level
    )
    colored_print(f"Vesper API is running at http://localhost:{port}.", AnsiColors.GREEN)
    colored_print(f"Visit http://localhost:{port}/docs for API documentation.", AnsiColors.BLUE)
    uvicorn.run(
        "vesper.api.app:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )


# ---------------------------------------------------------------------------
# `python -m vesper.api.app` helper
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    run_api(reload=True)
