"""
Session manager for the SSE transport.

A client holds one long-lived stream (GET) and posts invocations on separate
short-lived requests (POST) that name the stream's session id. This module
owns the session table and routes each posted invocation to the dispatcher,
writing the correlated response frame back onto the right stream.

Lifecycle:
- open_session(): new unguessable id, registered before the first frame.
- submit(): dispatch in arrival order; completion order is unordered, clients
  match responses by correlation id.
- close_session(): removes the session, fails every pending correlation with
  SessionClosed; late responses are dropped (logged) instead of raising.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
import uuid
from typing import Any, AsyncIterator, Callable, Dict, Optional, Set, Tuple, Union

from .errors import DuplicateCorrelation, SessionClosed, SessionNotFound, TransportFault
from .tools.dispatcher import Dispatcher

logger = logging.getLogger(__name__)

CorrelationId = Union[str, int]
Frame = Tuple[str, Any]

_CLOSED = object()


def _consume(fut: asyncio.Future) -> None:
    # Nobody is obliged to await a pending slot; don't warn about unread errors.
    if not fut.cancelled():
        fut.exception()


class Session:
    def __init__(self, session_id: str, clock: Callable[[], float] = time.monotonic):
        self.session_id = session_id
        self._clock = clock
        self.created_at = clock()
        self.last_activity = self.created_at
        self.pending: Dict[CorrelationId, asyncio.Future] = {}
        self.closed = False
        self.close_reason: Optional[str] = None
        self._outbox: asyncio.Queue = asyncio.Queue()

    @property
    def short_id(self) -> str:
        return self.session_id[:8]

    def touch(self) -> None:
        self.last_activity = self._clock()

    def register(self, correlation_id: CorrelationId) -> asyncio.Future:
        if correlation_id in self.pending:
            raise DuplicateCorrelation(
                f"Correlation id {correlation_id!r} is already pending on this session."
            )
        fut = asyncio.get_running_loop().create_future()
        fut.add_done_callback(_consume)
        self.pending[correlation_id] = fut
        return fut

    def send(self, frame: Frame) -> None:
        """Queue a frame for the stream."""
        if self.closed:
            raise TransportFault(f"Session {self.short_id}... has no open stream")
        self._outbox.put_nowait(frame)

    def resolve(self, correlation_id: CorrelationId, payload: Dict[str, Any]) -> bool:
        """Fill the pending slot and write the response; False if the stream is gone."""
        fut = self.pending.pop(correlation_id, None)
        if fut is not None and not fut.done():
            fut.set_result(payload)
        try:
            self.send(("message", payload))
        except TransportFault:
            return False
        return True

    def close(self, reason: str = "closed") -> None:
        if self.closed:
            return
        self.closed = True
        self.close_reason = reason
        for correlation_id, fut in self.pending.items():
            if not fut.done():
                fut.set_exception(SessionClosed(
                    f"Session closed ({reason}) before the invocation completed.",
                    details={"correlation_id": correlation_id},
                ))
        self.pending.clear()
        self._outbox.put_nowait(_CLOSED)

    async def stream(self) -> AsyncIterator[Frame]:
        """Frames for the client: the session identity first, then responses."""
        yield ("session", {"session_id": self.session_id})
        while True:
            frame = await self._outbox.get()
            if frame is _CLOSED:
                return
            yield frame


class SessionManager:
    """
    Process-wide session table.

    The table is the only shared mutable state; every access goes through the
    manager's lock. One manager is created per app and handed to the endpoints.
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        idle_timeout: float = 1800.0,
        reap_interval: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.dispatcher = dispatcher
        self.idle_timeout = idle_timeout
        self.reap_interval = reap_interval if reap_interval is not None else min(60.0, idle_timeout / 2)
        self._clock = clock
        self._sessions: Dict[str, Session] = {}
        self._lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()
        self._reaper: Optional[asyncio.Task] = None

    @property
    def active_count(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def open_session(self) -> Session:
        async with self._lock:
            session_id = secrets.token_urlsafe(32)
            while session_id in self._sessions:
                session_id = secrets.token_urlsafe(32)
            session = Session(session_id, clock=self._clock)
            self._sessions[session_id] = session
        logger.info("SSE session %s... connected (%d active)", session.short_id, self.active_count)
        return session

    async def get(self, session_id: str) -> Session:
        async with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound("Session not found or expired")
        return session

    async def close_session(self, session_id: str, reason: str = "client disconnected") -> bool:
        async with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.close(reason)
        logger.info("SSE session %s... closed: %s", session.short_id, reason)
        return True

    async def reap_idle(self, now: Optional[float] = None) -> int:
        """Close sessions with nothing pending and no posts for idle_timeout."""
        now = self._clock() if now is None else now
        async with self._lock:
            idle = [
                s.session_id for s in self._sessions.values()
                if not s.pending and now - s.last_activity >= self.idle_timeout
            ]
        for session_id in idle:
            await self.close_session(session_id, reason="idle timeout")
        return len(idle)

    async def _reap_forever(self) -> None:
        while True:
            await asyncio.sleep(self.reap_interval)
            try:
                await self.reap_idle()
            except Exception:
                logger.exception("Idle session sweep failed")

    def start(self) -> None:
        if self._reaper is None:
            self._reaper = asyncio.create_task(self._reap_forever())

    async def shutdown(self) -> None:
        if self._reaper is not None:
            self._reaper.cancel()
            await asyncio.gather(self._reaper, return_exceptions=True)
            self._reaper = None
        for session_id in list(self._sessions):
            await self.close_session(session_id, reason="server shutdown")
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Invocations
    # ------------------------------------------------------------------
    async def submit(
        self,
        session_id: str,
        tool_name: str,
        arguments: Any,
        correlation_id: Optional[CorrelationId] = None,
    ) -> CorrelationId:
        """Accept one invocation; its response is delivered on the session's stream."""
        session = await self.get(session_id)
        if session.closed:
            raise SessionNotFound("Session not found or expired")
        if correlation_id is None:
            correlation_id = uuid.uuid4().hex
        session.register(correlation_id)
        session.touch()

        task = asyncio.create_task(self._invoke(session, correlation_id, tool_name, arguments))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return correlation_id

    async def _invoke(
        self, session: Session, correlation_id: CorrelationId, tool_name: str, arguments: Any
    ) -> None:
        response = await self.dispatcher.dispatch(tool_name, arguments)
        frame = {"correlation_id": correlation_id, "tool_name": tool_name, **response.to_payload()}
        if not session.resolve(correlation_id, frame):
            logger.info(
                "SSE session %s... gone (%s); dropped response %s",
                session.short_id, session.close_reason, correlation_id,
            )
