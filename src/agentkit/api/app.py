"""
HTTP host for agentkit.

It exposes the following endpoints:
- **GET /health**  - liveness probe for health checks.
- **POST /sessions** - create a new session, returns a session ID.
- **GET /sessions** - list all active sessions.
- **POST /agent**   - multi-turn interaction: {"message": "...", "session_id": "..."}

Sessions only hold conversation history, in memory.  Every request runs a fresh :class:`Agent`
over that history; no approval source is attached, so every tool proceeds.
"""

import logging
import uuid
from contextlib import asynccontextmanager
from typing import (
    AsyncIterator,
    Dict,
    List,
    Optional,
)

from fastapi import FastAPI

from agentkit.agent.agent_loop import Agent
from agentkit.agent.delegation import with_task_tool
from agentkit.api.models import (
    MessageRequest,
    MessageResponse,
    SessionResponse,
)
from agentkit.common import (
    AnsiColors,
    colored_print,
)
from agentkit.config import settings
from agentkit.core.schema import Message
from agentkit.providers import (
    ProviderClient,
    load_provider,
)
from agentkit.tools import ToolRegistry
from agentkit.tools.math_tools import register_math_tools

logger = logging.getLogger(__name__)

# Session storage (in-memory for now, could be moved to a database)
sessions: Dict[str, List[Message]] = {}

_provider: Optional[ProviderClient] = None


def get_provider() -> ProviderClient:
    """Provider shared by every request, created on first use from settings."""
    global _provider  # pylint: disable=global-statement
    if _provider is None:
        _provider = load_provider()
    return _provider


def set_provider(provider: Optional[ProviderClient]) -> None:
    """Replace the shared provider (used by the entry point and by tests)."""
    global _provider  # pylint: disable=global-statement
    _provider = provider


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    yield
    if _provider is not None:
        await _provider.aclose()


app = FastAPI(
    title="agentkit API",
    version="0.1.0",
    description="Agentic tool-use runtime",
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------
def get_or_create_session(session_id: Optional[str] = None) -> str:
    """Get existing session or create a new one."""
    if session_id and session_id in sessions:
        return session_id

    new_session_id = str(uuid.uuid4())
    sessions[new_session_id] = []
    return new_session_id


def build_registry(provider: ProviderClient) -> ToolRegistry:
    """Tools offered to API sessions: the math tools plus ``task``."""
    return with_task_tool(register_math_tools(ToolRegistry()), provider)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@app.get("/health", summary="Health check")
async def health() -> dict[str, str]:
    """Return a simple liveness payload."""
    return {"status": "ok"}


@app.post("/sessions", response_model=SessionResponse, summary="Create a new session")
async def create_session() -> SessionResponse:
    """Create a new conversation session."""
    session_id = get_or_create_session()
    return SessionResponse(session_id=session_id)


@app.get("/sessions", response_model=List[str], summary="List active sessions")
async def list_sessions() -> List[str]:
    """List all active session IDs."""
    return list(sessions.keys())


@app.post("/agent", response_model=MessageResponse, summary="Process a message")
async def agent_endpoint(req: MessageRequest) -> MessageResponse:
    """Run the agent on a user message, continuing the session's conversation."""
    session_id = get_or_create_session(req.session_id)
    provider = get_provider()

    agent = Agent(provider, build_registry(provider))
    result = await agent.run(req.message, sessions[session_id])
    logger.debug("Session %s: status=%s iterations=%d", session_id, result.status, result.iterations)

    sessions[session_id] = result.messages
    return MessageResponse(
        reply=result.answer,
        status=result.status,
        iterations=result.iterations,
        usage=result.usage,
        session_id=session_id,
    )


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
        If *True*, enable auto-reload (useful in development).
    log_level:
        Logging level to use (default from settings if not provided).
    """

    # Lazy import - keeps uvicorn out of the import path for library users
    import uvicorn  # pylint: disable=import-outside-toplevel

    if log_level is None:
        log_level = settings.LOG_LEVEL

    logger.info(
        "Starting agentkit API at %s:%d (reload=%s, log_level=%s)", host, port, reload, log_level
    )
    colored_print(f"agentkit API is running at http://localhost:{port}.", AnsiColors.GREEN)
    colored_print(f"Visit http://localhost:{port}/docs for API documentation.", AnsiColors.BLUE)
    uvicorn.run(
        "agentkit.api.app:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )


# ---------------------------------------------------------------------------
# `python -m agentkit.api.app` helper
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    run_api(reload=True)
