"""
Session Registry
================
Single source of truth for which hub sessions exist.

Mutations (put/remove/sweep) are serialized by one asyncio.Lock. Sessions are
inserted only after they are fully opened, so readers never observe a
half-built entry. Reads are plain dict lookups on the event loop thread.
"""

import asyncio
import time
from typing import Dict, List, Optional

from ...core.logger import StructuredLogger
from ..config.settings import RegistrySettings
from .session import HubSession


class SessionRegistry:

    def __init__(self, settings: RegistrySettings, logger: StructuredLogger):
        self.settings = settings
        self.logger = logger
        self._sessions: Dict[str, HubSession] = {}
        self._lock = asyncio.Lock()
        self._sweep_task: Optional[asyncio.Task] = None
        self._running = False

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    async def put(self, session: HubSession) -> Optional[HubSession]:
        """Insert or replace by id. Returns the replaced session, if any."""
        async with self._lock:
            previous = self._sessions.get(session.session_id)
            self._sessions[session.session_id] = session
        self.logger.debug("session_registry.put", {
            "session_id": session.session_id,
            "game_id": session.game_id,
            "replaced": previous is not None,
            "total_sessions": len(self._sessions)
        })
        return previous

    def get(self, session_id: str) -> Optional[HubSession]:
        return self._sessions.get(session_id)

    async def remove(self, session_id: str, expected: Optional[HubSession] = None) -> Optional[HubSession]:
        """
        Remove by id. With ``expected``, only remove if the entry is still that
        object, so a stale remover cannot evict a freshly recreated session.
        """
        async with self._lock:
            current = self._sessions.get(session_id)
            if current is None or (expected is not None and current is not expected):
                return None
            del self._sessions[session_id]
        return current

    def list_sessions(self, game_id: Optional[str] = None, owner: Optional[str] = None) -> List[HubSession]:
        sessions = list(self._sessions.values())
        if game_id is not None:
            sessions = [s for s in sessions if s.game_id == game_id]
        if owner is not None:
            sessions = [s for s in sessions if s.owner == owner]
        return sessions

    def list_by_game(self, game_id: str) -> List[HubSession]:
        return self.list_sessions(game_id=game_id)

    def list_by_owner(self, owner: str) -> List[HubSession]:
        return self.list_sessions(owner=owner)

    async def sweep_expired(self, now: Optional[float] = None) -> List[str]:
        """
        Evict closed sessions past the retention window and force-close sessions
        idle past the inactivity window. Returns the evicted ids.
        """
        now = now if now is not None else time.time()
        retention = self.settings.closed_retention_seconds
        inactivity = self.settings.inactivity_timeout_seconds

        async with self._lock:
            expired = [
                s for s in self._sessions.values()
                if (s.closed_at is not None and now - s.closed_at >= retention)
                or now - s.last_activity >= inactivity
            ]
            for session in expired:
                del self._sessions[session.session_id]

        for session in expired:
            if session.closed_at is None:
                self.logger.info("session_registry.inactive_session_closed", {
                    "session_id": session.session_id,
                    "idle_seconds": round(now - session.last_activity, 1)
                })
                await session.disconnect("inactivity_timeout")

        if expired:
            self.logger.info("session_registry.sweep_completed", {
                "evicted": len(expired),
                "remaining": len(self._sessions)
            })
        return [s.session_id for s in expired]

    async def _sweep_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.settings.sweep_interval_seconds)
                await self.sweep_expired()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self.logger.error("session_registry.sweep_error", {
                    "error": str(e),
                    "error_type": type(e).__name__
                })

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._sweep_task = asyncio.create_task(self._sweep_loop(), name="session_registry_sweep")

    async def stop(self) -> None:
        self._running = False
        if self._sweep_task and not self._sweep_task.done():
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
        self._sweep_task = None

    async def close_all(self) -> int:
        """Disconnect and drop every session (process shutdown)."""
        async with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        if sessions:
            await asyncio.gather(*(s.disconnect("shutdown") for s in sessions), return_exceptions=True)
        self.logger.info("session_registry.closed_all", {"sessions": len(sessions)})
        return len(sessions)
