"""Per-user mode sessions kept in process memory."""

import asyncio
import contextlib
import logging
import threading
from collections import Counter
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from teleweb_bot.domain.models import Mode, Session

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class ModeStore:
    """Track which feature each user is in, plus that feature's scratch state.

    Sessions idle for longer than ``idle_timeout`` are treated as absent and
    removed, either on lookup or by the periodic sweep started with ``start``.
    """

    idle_timeout: timedelta = timedelta(hours=24)
    sweep_interval: timedelta = timedelta(minutes=30)
    clock: Callable[[], datetime] = _utcnow
    _sessions: dict[int, Session] = field(default_factory=dict, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False)
    _sweeper: asyncio.Task | None = field(default=None, init=False)

    def set_mode(
        self,
        user_id: int,
        mode: Mode,
        initial_state: Mapping[str, object] | None = None,
    ) -> None:
        """Switch the user into ``mode`` and reset its state."""
        if mode is Mode.IDLE:
            self.clear_mode(user_id)
            return
        now = self.clock()
        with self._lock:
            existing = self._sessions.get(user_id)
            created_at = existing.created_at if existing else now
            self._sessions[user_id] = Session(
                user_id=user_id,
                mode=mode,
                mode_state=dict(initial_state or {}),
                created_at=created_at,
                last_activity_at=now,
            )
        logger.info("Mode changed", extra={"user_id": user_id, "mode": mode.value})

    def get_mode(self, user_id: int) -> Mode:
        session = self._touch(user_id)
        return session.mode if session else Mode.IDLE

    def is_in_mode(self, user_id: int, mode: Mode) -> bool:
        return self.get_mode(user_id) is mode

    def clear_mode(self, user_id: int) -> None:
        with self._lock:
            self._sessions.pop(user_id, None)

    def get_session(self, user_id: int) -> Session | None:
        session = self._touch(user_id)
        if session is None:
            return None
        return Session(
            user_id=session.user_id,
            mode=session.mode,
            mode_state=dict(session.mode_state),
            created_at=session.created_at,
            last_activity_at=session.last_activity_at,
        )

    def get_state(self, user_id: int) -> dict[str, object]:
        """Return a copy of the user's mode state, empty when idle."""
        session = self._touch(user_id)
        return dict(session.mode_state) if session else {}

    def update_state(self, user_id: int, patch: Mapping[str, object]) -> None:
        """Shallow-merge ``patch`` into the mode state of an existing session."""
        with self._lock:
            session = self._live_session(user_id)
            if session is None:
                return
            session.mode_state.update(patch)
            session.last_activity_at = self.clock()

    def sweep_expired(self) -> int:
        """Remove idle sessions and return how many were dropped."""
        cutoff = self.clock() - self.idle_timeout
        with self._lock:
            expired = [
                user_id
                for user_id, session in self._sessions.items()
                if session.last_activity_at < cutoff
            ]
            for user_id in expired:
                del self._sessions[user_id]
        if expired:
            logger.info("Swept idle sessions", extra={"count": len(expired)})
        return len(expired)

    def stats(self) -> dict[str, object]:
        with self._lock:
            distribution = Counter(
                session.mode.value for session in self._sessions.values()
            )
            return {
                "total_sessions": len(self._sessions),
                "mode_distribution": dict(distribution),
            }

    def start(self) -> None:
        """Start the periodic idle sweep on the running event loop."""
        if self._sweeper is not None and not self._sweeper.done():
            return
        self._sweeper = asyncio.create_task(self._sweep_forever())

    async def stop(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._sweeper
        self._sweeper = None

    async def _sweep_forever(self) -> None:
        interval = self.sweep_interval.total_seconds()
        while True:
            await asyncio.sleep(interval)
            try:
                self.sweep_expired()
            except Exception:
                logger.exception("Session sweep failed")

    def _touch(self, user_id: int) -> Session | None:
        with self._lock:
            session = self._live_session(user_id)
            if session is not None:
                session.last_activity_at = self.clock()
            return session

    def _live_session(self, user_id: int) -> Session | None:
        # Caller holds the lock.
        session = self._sessions.get(user_id)
        if session is None:
            return None
        if self.clock() - session.last_activity_at > self.idle_timeout:
            del self._sessions[user_id]
            return None
        return session
