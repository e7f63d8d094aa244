"""
Liveness sub-probe: joins a validated game with a throwaway session and waits a
short window for QuizAlreadyStarted. Silence for the whole window means the
game is still accepting players. The throwaway socket is always closed.
"""

import asyncio
from enum import Enum
from typing import Optional

from ...core.exceptions import HubSocketError, NegotiationError
from ...core.logger import StructuredLogger
from ...core.utils import wait_any_event
from ...domain.models.hub_session import SessionDescriptor, SessionRole
from ..config.settings import ProbeSettings
from ..hub.negotiator import HubNegotiator
from ..hub.session import HubSessionFactory

PROBE_OWNER = "liveness-probe"


class LivenessResult(Enum):
    AVAILABLE = "available"
    ALREADY_STARTED = "already_started"
    UNREACHABLE = "unreachable"
    CANCELLED = "cancelled"


class LivenessProbe:

    def __init__(self, negotiator: HubNegotiator, session_factory: HubSessionFactory,
                 settings: ProbeSettings, logger: StructuredLogger):
        self.negotiator = negotiator
        self.session_factory = session_factory
        self.settings = settings
        self.logger = logger

    async def _negotiate(self, cancel_event: Optional[asyncio.Event]) -> Optional[SessionDescriptor]:
        """Negotiate, giving up as soon as ``cancel_event`` fires. None means cancelled."""
        negotiation = asyncio.ensure_future(self.negotiator.negotiate())
        if cancel_event is None:
            return await negotiation

        cancel_wait = asyncio.ensure_future(cancel_event.wait())
        try:
            await asyncio.wait({negotiation, cancel_wait}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancel_wait.cancel()

        if negotiation.done():
            return negotiation.result()
        negotiation.cancel()
        await asyncio.gather(negotiation, return_exceptions=True)
        return None

    async def check(self, play_id: str, pin: str,
                    cancel_event: Optional[asyncio.Event] = None) -> LivenessResult:
        if cancel_event is not None and cancel_event.is_set():
            return LivenessResult.CANCELLED

        try:
            descriptor = await self._negotiate(cancel_event)
        except NegotiationError as e:
            self.logger.warning("liveness_probe.negotiation_failed", {
                "pin": pin,
                "reason": e.reason.value
            })
            return LivenessResult.UNREACHABLE
        if descriptor is None:
            return LivenessResult.CANCELLED

        session = self.session_factory.create(
            play_id, self.settings.decoy_display_name, SessionRole.BOT, PROBE_OWNER,
            pin=pin, auto_answer=False, restartable=False
        )
        try:
            try:
                await session.open(descriptor)
            except HubSocketError as e:
                self.logger.warning("liveness_probe.socket_failed", {"pin": pin, "error": e.reason})
                return LivenessResult.UNREACHABLE

            # The window only counts once PlayerJoined is out
            await wait_any_event(
                session.joined_event, session.rejected_event, session.closed_event, cancel_event,
                timeout=self.session_factory.settings.socket_open_timeout_seconds
            )
            if session.rejected:
                return LivenessResult.ALREADY_STARTED
            if cancel_event is not None and cancel_event.is_set():
                return LivenessResult.CANCELLED
            if not session.joined_event.is_set():
                self.logger.warning("liveness_probe.join_timeout", {"pin": pin, "state": session.state.value})
                return LivenessResult.UNREACHABLE

            woke = await wait_any_event(
                session.rejected_event, session.closed_event, cancel_event,
                timeout=self.settings.liveness_timeout_seconds
            )
            if session.rejected:
                return LivenessResult.ALREADY_STARTED
            if cancel_event is not None and cancel_event.is_set():
                return LivenessResult.CANCELLED
            if woke:
                # Socket went away without the started signal
                return LivenessResult.UNREACHABLE
            return LivenessResult.AVAILABLE
        finally:
            await session.disconnect("liveness_probe_done")
