"""
HTTP transport (MCP legacy SSE layout).

  GET  /sse      -> event stream: `endpoint` event (where to POST, including the
                    session id), `session` event, then `message` events
  POST /message  -> {session_id, correlation_id?, tool_name, arguments}
                    202 Accepted; the result arrives on the stream
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional, Union

import pydantic
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, StrictInt, StrictStr
from sse_starlette.sse import EventSourceResponse

from . import __version__
from .config import Settings
from .errors import DuplicateCorrelation, MalformedMessage, SessionNotFound, ToolError
from .session import SessionManager
from .sql.executor import CompanyDatabase
from .tools.dispatcher import Dispatcher
from .tools.registry import ToolRegistry, build_registry

logger = logging.getLogger(__name__)

SSE_PATH = "/sse"
MESSAGE_PATH = "/message"

SERVER_INSTRUCTIONS = (
    "This server provides read-only SQL tools for the company database. "
    "Open the stream, then POST invocations tagged with your session id; "
    "match responses by correlation_id."
)

ERROR_STATUS = {
    MalformedMessage: 400,
    SessionNotFound: 404,
    DuplicateCorrelation: 409,
}


class InvocationMessage(BaseModel):
    model_config = ConfigDict(extra="forbid")

    session_id: StrictStr
    correlation_id: Optional[Union[StrictStr, StrictInt]] = None
    tool_name: StrictStr
    arguments: Any = None


def _error_response(error: ToolError) -> JSONResponse:
    status = next((s for cls, s in ERROR_STATUS.items() if isinstance(error, cls)), 400)
    return JSONResponse(status_code=status, content={"error": error.to_payload()})


async def _read_message(request: Request) -> InvocationMessage:
    try:
        body = await request.json()
    except ValueError:
        raise MalformedMessage("Body must be valid JSON.") from None
    if not isinstance(body, dict):
        raise MalformedMessage("Body must be a JSON object.")
    query_session = request.query_params.get("session_id")
    if query_session and "session_id" not in body:
        body = {**body, "session_id": query_session}
    try:
        return InvocationMessage.model_validate(body)
    except pydantic.ValidationError as e:
        raise MalformedMessage(
            "Message does not match {session_id, correlation_id?, tool_name, arguments}.",
            details=[".".join(str(p) for p in err["loc"]) for err in e.errors()],
        ) from None


def create_app(
    settings: Settings,
    database: Optional[CompanyDatabase] = None,
    registry: Optional[ToolRegistry] = None,
) -> FastAPI:
    """Build the ASGI app. The database is opened here unless one is supplied."""
    owns_database = database is None and registry is None
    if owns_database:
        database = CompanyDatabase(settings.db_path, query_timeout=settings.query_timeout)
    if registry is None:
        registry = build_registry(database, settings.row_cap)

    sessions = SessionManager(Dispatcher(registry), idle_timeout=settings.session_idle_timeout)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sessions.start()
        logger.info("Serving %d tools (row cap %d)", len(registry), settings.row_cap)
        try:
            yield
        finally:
            await sessions.shutdown()
            if owns_database:
                database.close()
            logger.info("SSE server stopped")

    app = FastAPI(title="nest-mcp", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.registry = registry
    app.state.sessions = sessions

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.exception_handler(ToolError)
    async def tool_error_handler(request: Request, exc: ToolError):
        logger.warning("%s %s rejected: [%s] %s", request.method, request.url.path, exc.code, exc.message)
        return _error_response(exc)

    @app.get(SSE_PATH)
    async def open_stream(request: Request):
        session = await sessions.open_session()

        async def event_generator():
            try:
                yield {"event": "endpoint", "data": f"{MESSAGE_PATH}?session_id={session.session_id}"}
                async for event, data in session.stream():
                    yield {"event": event, "data": json.dumps(data, ensure_ascii=False)}
            finally:
                await sessions.close_session(session.session_id)

        return EventSourceResponse(event_generator(), ping=settings.keepalive_seconds)

    @app.post(MESSAGE_PATH, status_code=202)
    async def post_message(request: Request) -> Dict[str, Any]:
        message = await _read_message(request)
        correlation_id = await sessions.submit(
            message.session_id,
            message.tool_name,
            message.arguments,
            correlation_id=message.correlation_id,
        )
        return {"accepted": True, "correlation_id": correlation_id}

    @app.get("/tools")
    async def list_tools() -> Dict[str, Any]:
        return {
            "server": {"name": "nest-mcp", "version": __version__},
            "instructions": SERVER_INSTRUCTIONS,
            "tools": registry.list_tools(),
        }

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return {"status": "ok", "sessions": sessions.active_count}

    @app.get("/.well-known/oauth-protected-resource")
    async def oauth_protected_resource() -> Dict[str, Any]:
        return {
            "resource": "mcp",
            "authorization_servers": [],
            "bearer_methods_supported": ["header"],
        }

    return app
