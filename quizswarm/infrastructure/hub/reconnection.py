"""
Reconnection Orchestrator
=========================
Handles PlayAgain: the remote service tears the old game down and announces a
new game id. Each restart signal runs as its own tracked task:

1. wait the settle delay so the service finishes the old game;
2. pick the owner's bot sessions of the old game that were connected or are
   themselves waiting on the restart, unless another task already took them;
3. re-negotiate and recreate the signalling session first, keeping its id;
4. recreate each bot sequentially under a new id.

One task per (owner, old game) collects bots; a second primary of the same
owner rebuilds only itself. A failing bot is logged and skipped. The
signalling session's ``reconnect_status`` shows how far the task got.
"""

import asyncio
import uuid
from typing import Dict, List, Optional, Set, Tuple

from ...core.exceptions import HubSocketError, NegotiationError
from ...core.logger import StructuredLogger
from ...core.utils import cancel_tracked_tasks, create_tracked_task
from ...domain.models.hub_session import ReconnectStatus, SessionRole
from ..config.settings import HubSettings
from .negotiator import HubNegotiator
from .session import HubSession
from .session_registry import SessionRegistry


class ReconnectionOrchestrator:

    def __init__(self, registry: SessionRegistry, negotiator: HubNegotiator,
                 settings: HubSettings, logger: StructuredLogger):
        self.registry = registry
        self.negotiator = negotiator
        self.settings = settings
        self.logger = logger
        self._active_tasks: Set[asyncio.Task] = set()
        # (owner, old game id) -> session id of the task rebuilding that game
        self._claims: Dict[Tuple[str, Optional[str]], str] = {}
        # bot session ids already picked up by a running task
        self._taken_bots: Set[str] = set()

    @property
    def active_count(self) -> int:
        return len(self._active_tasks)

    def _has_primary_in_game(self, session: HubSession, game_id: Optional[str]) -> bool:
        return any(
            other.role == SessionRole.PRIMARY and other.owner == session.owner
            for other in self.registry.list_by_game(game_id)
            if other is not session
        )

    def on_restart_signal(self, session: HubSession) -> Optional[asyncio.Task]:
        """Schedule reconnection for ``session``; never blocks the caller's reader."""
        restart = session.pending_restart
        old_game_id = restart.old_game_id if restart and restart.old_game_id else session.game_id

        claim = (session.owner, old_game_id)
        leader = self._claims.get(claim)
        # Bots are rebuilt by the task holding the claim, or by their game's primary
        if session.role == SessionRole.BOT and (
                leader is not None or self._has_primary_in_game(session, old_game_id)):
            session.reconnect_status = ReconnectStatus.DEFERRED
            self.logger.debug("reconnection.deferred", {
                "session_id": session.session_id,
                "game_id": old_game_id,
                "leader": leader
            })
            return None

        # Another primary of the same owner already leads this game: rebuild only this session
        include_bots = leader is None
        if include_bots:
            self._claims[claim] = session.session_id
        return create_tracked_task(
            self._active_tasks, self._run(session, claim, include_bots), f"reconnect_{session.session_id}"
        )

    async def _run(self, session: HubSession, claim: Tuple[str, Optional[str]], include_bots: bool) -> None:
        try:
            await self._reconnect(session, include_bots)
        except asyncio.CancelledError:
            session.reconnect_status = ReconnectStatus.FAILED
            raise
        except Exception as e:
            session.reconnect_status = ReconnectStatus.FAILED
            self.logger.error("reconnection.unexpected_error", {
                "session_id": session.session_id,
                "error": str(e),
                "error_type": type(e).__name__
            }, exc_info=True)
        finally:
            if self._claims.get(claim) == session.session_id:
                del self._claims[claim]

    def _take_dependent_bots(self, session: HubSession, old_game_id: str) -> List[HubSession]:
        """Select the owner's bots of ``old_game_id`` and mark them taken by this task."""
        bots = [
            other for other in self.registry.list_by_game(old_game_id)
            if other is not session
            and other.role == SessionRole.BOT
            and other.owner == session.owner
            and (other.connected or other.pending_restart is not None)
            and other.session_id not in self._taken_bots
        ]
        self._taken_bots.update(bot.session_id for bot in bots)
        return bots

    async def _recreate(self, old: HubSession, new_game_id: str, session_id: Optional[str]) -> HubSession:
        if not old.is_terminal:
            await old.disconnect("restart_teardown")
        descriptor = await self.negotiator.negotiate()
        successor = old.spawn_successor(new_game_id, session_id=session_id)
        await successor.open(descriptor)
        return successor

    async def _reconnect(self, session: HubSession, include_bots: bool = True) -> None:
        restart = session.pending_restart
        if restart is None or not restart.new_game_id:
            session.reconnect_status = ReconnectStatus.FAILED
            self.logger.warning("reconnection.missing_new_game", {"session_id": session.session_id})
            return

        old_game_id = restart.old_game_id or session.game_id
        new_game_id = restart.new_game_id

        await asyncio.sleep(self.settings.restart_settle_delay_seconds)
        session.reconnect_status = ReconnectStatus.RECONNECTING

        bots = self._take_dependent_bots(session, old_game_id) if include_bots else []
        try:
            await self._reconnect_all(session, bots, new_game_id, old_game_id)
        finally:
            self._taken_bots.difference_update(bot.session_id for bot in bots)

    async def _reconnect_all(self, session: HubSession, bots: List[HubSession],
                             new_game_id: str, old_game_id: str) -> None:
        self.logger.info("reconnection.started", {
            "session_id": session.session_id,
            "old_game_id": old_game_id,
            "new_game_id": new_game_id,
            "bots": len(bots)
        })

        try:
            successor = await self._recreate(session, new_game_id, session.session_id)
        except (NegotiationError, HubSocketError) as e:
            session.reconnect_status = ReconnectStatus.FAILED
            self.logger.error("reconnection.primary_failed", {
                "session_id": session.session_id,
                "error": str(e),
                "error_type": type(e).__name__
            })
        else:
            successor.reconnect_status = ReconnectStatus.RECONNECTED
            await self.registry.put(successor)
            session.reconnect_status = ReconnectStatus.RECONNECTED

        recreated = 0
        for bot in bots:
            try:
                new_bot = await self._recreate(bot, new_game_id, str(uuid.uuid4()))
            except (NegotiationError, HubSocketError) as e:
                bot.reconnect_status = ReconnectStatus.FAILED
                self.logger.warning("reconnection.bot_failed", {
                    "session_id": bot.session_id,
                    "error": str(e),
                    "error_type": type(e).__name__
                })
                continue
            new_bot.reconnect_status = ReconnectStatus.RECONNECTED
            await self.registry.put(new_bot)
            await self.registry.remove(bot.session_id, expected=bot)
            bot.reconnect_status = ReconnectStatus.RECONNECTED
            recreated += 1

        self.logger.info("reconnection.completed", {
            "session_id": session.session_id,
            "new_game_id": new_game_id,
            "primary_status": session.reconnect_status.value,
            "bots_recreated": recreated,
            "bots_failed": len(bots) - recreated
        })

    async def shutdown(self) -> None:
        cancelled = await cancel_tracked_tasks(self._active_tasks)
        if cancelled:
            self.logger.info("reconnection.tasks_cancelled", {"cancelled_count": cancelled})
