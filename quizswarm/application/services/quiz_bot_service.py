"""
Quiz Bot Service
================
Application facade over the hub engine and the PIN prober.

Owns every long-lived collaborator (HTTP session, registry, reconnection
orchestrator, prober) and wires them together; adapters such as the REST
layer only talk to this class.

Join flow: validate PIN -> negotiate -> open socket -> register. A session
enters the registry only after its socket is open, so a failed join leaves
nothing behind.
"""

import time
from typing import Any, Dict, Iterable, List, Optional

import aiohttp

from ...core.exceptions import (
    HubSocketError,
    InvalidPinError,
    NegotiationError,
    SessionNotFoundError,
)
from ...core.logger import StructuredLogger
from ...domain.models.hub_session import AnswerOutcome, SessionRole
from ...infrastructure.config.settings import AppSettings
from ...infrastructure.hub.http_client import HubHttpClient
from ...infrastructure.hub.negotiator import HubNegotiator
from ...infrastructure.hub.pin_validator import PinValidationResult, PinValidator
from ...infrastructure.hub.reconnection import ReconnectionOrchestrator
from ...infrastructure.hub.session import Connector, HubSession, HubSessionFactory
from ...infrastructure.hub.session_registry import SessionRegistry
from ...infrastructure.probing.liveness_probe import LivenessProbe
from ...infrastructure.probing.pin_prober import PinProber


class QuizBotService:

    def __init__(self, settings: AppSettings, logger: StructuredLogger, *,
                 connector: Optional[Connector] = None,
                 http_session: Optional[aiohttp.ClientSession] = None):
        self.settings = settings
        self.logger = logger

        self._http = HubHttpClient(settings.hub, logger, session=http_session)
        self.negotiator = HubNegotiator(settings.hub, logger)
        self.validator = PinValidator(settings.hub, logger)
        if http_session is not None:
            self.negotiator.use_session(http_session)
            self.validator.use_session(http_session)

        self.registry = SessionRegistry(settings.registry, logger)
        self.orchestrator = ReconnectionOrchestrator(self.registry, self.negotiator, settings.hub, logger)
        self.session_factory = HubSessionFactory(
            settings.hub, logger,
            connector=connector,
            on_restart=self.orchestrator.on_restart_signal
        )
        self.liveness_probe = LivenessProbe(self.negotiator, self.session_factory, settings.probe, logger)
        self.prober = PinProber(self.validator, self.liveness_probe, settings.probe, logger)

        self._started_at: Optional[float] = None

    # ------------------------------------------------------------- lifecycle

    async def start(self) -> None:
        if self._started_at is not None:
            return
        await self._http.start()
        self.negotiator.use_session(self._http.session)
        self.validator.use_session(self._http.session)
        await self.registry.start()
        self._started_at = time.time()
        self.logger.info("quiz_bot_service.started", {
            "origin": self.settings.hub.origin,
            "probe_batch_size": self.settings.probe.batch_size
        })

    async def shutdown(self) -> None:
        await self.prober.shutdown()
        await self.orchestrator.shutdown()
        await self.registry.stop()
        closed = await self.registry.close_all()
        await self._http.stop()
        self._started_at = None
        self.logger.info("quiz_bot_service.stopped", {"sessions_closed": closed})

    # --------------------------------------------------------------- helpers

    def _require_session(self, session_id: str) -> HubSession:
        session = self.registry.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def _require_valid_pin(self, pin: str) -> PinValidationResult:
        result = await self.validator.validate(pin)
        if not result.accepted:
            raise InvalidPinError(result.pin, result.error_code)
        return result

    async def _open_session(self, play_id: str, pin: str, display_name: str, role: SessionRole,
                            owner: str, auto_answer: bool) -> HubSession:
        descriptor = await self.negotiator.negotiate()
        session = self.session_factory.create(
            play_id, display_name, role, owner, pin=pin, auto_answer=auto_answer
        )
        await session.open(descriptor)
        await self.registry.put(session)
        return session

    @staticmethod
    def _clean_name(display_name: str) -> str:
        name = (display_name or "").strip()
        if not name:
            raise ValueError("display_name must not be empty")
        return name

    # ------------------------------------------------------------------ pins

    async def validate_pin(self, pin: str) -> PinValidationResult:
        result = await self.validator.validate(pin)
        self.logger.info("quiz_bot_service.pin_validated", {
            "pin": result.pin,
            "accepted": result.accepted,
            "error_code": result.error_code
        })
        return result

    # -------------------------------------------------------------- sessions

    async def join_session(self, pin: str, display_name: str, role: SessionRole = SessionRole.PRIMARY,
                           owner: str = "", auto_answer: bool = True) -> HubSession:
        name = self._clean_name(display_name)
        validation = await self._require_valid_pin(pin)
        session = await self._open_session(validation.play_id, validation.pin, name, role, owner, auto_answer)
        self.logger.info("quiz_bot_service.session_joined", {
            "session_id": session.session_id,
            "game_id": session.game_id,
            "role": role.value,
            "owner": owner
        })
        return session

    async def bulk_join(self, pin: str, display_names: Iterable[str], owner: str = "",
                        auto_answer: bool = True) -> Dict[str, Any]:
        """
        Join one bot per name. The PIN is validated once; each bot negotiates
        its own socket, and a failing bot does not stop the rest.
        """
        names = [name.strip() for name in display_names if name and name.strip()]
        if not names:
            raise ValueError("display_names must contain at least one name")

        validation = await self._require_valid_pin(pin)
        joined: List[Dict[str, Any]] = []
        errors: List[Dict[str, Any]] = []

        for name in names:
            try:
                session = await self._open_session(
                    validation.play_id, validation.pin, name, SessionRole.BOT, owner, auto_answer
                )
            except (NegotiationError, HubSocketError) as e:
                errors.append({"display_name": name, "error": e.message})
                self.logger.warning("quiz_bot_service.bot_join_failed", {
                    "display_name": name,
                    "error": e.message,
                    "error_type": type(e).__name__
                })
                continue
            joined.append({"id": session.session_id, "display_name": name, "game_id": session.game_id})

        self.logger.info("quiz_bot_service.bulk_join_completed", {
            "game_id": validation.play_id,
            "requested": len(names),
            "joined": len(joined),
            "failed": len(errors)
        })
        return {
            "game_id": validation.play_id,
            "pin": validation.pin,
            "total": len(names),
            "joined": joined,
            "errors": errors,
        }

    def get_session(self, session_id: str) -> Dict[str, Any]:
        return self._require_session(session_id).to_dict()

    def set_auto_answer(self, session_id: str, enabled: bool) -> Dict[str, Any]:
        session = self._require_session(session_id)
        session.set_auto_answer(enabled)
        return session.to_dict()

    async def submit_answer(self, session_id: str, answer_index: int) -> AnswerOutcome:
        return await self._require_session(session_id).submit_answer(answer_index)

    async def disconnect(self, session_id: str) -> Dict[str, Any]:
        session = self._require_session(session_id)
        if not session.is_terminal:
            await session.disconnect("caller_disconnect")
        return session.to_dict()

    async def bulk_disconnect(self, session_ids: Iterable[str]) -> Dict[str, Any]:
        disconnected: List[str] = []
        errors: List[Dict[str, str]] = []
        for session_id in session_ids:
            try:
                await self.disconnect(session_id)
            except SessionNotFoundError as e:
                errors.append({"id": session_id, "error": e.message})
                continue
            disconnected.append(session_id)
        return {"disconnected": disconnected, "errors": errors}

    def list_sessions(self, game_id: Optional[str] = None, owner: Optional[str] = None) -> List[Dict[str, Any]]:
        return [session.to_dict() for session in self.registry.list_sessions(game_id=game_id, owner=owner)]

    # ---------------------------------------------------------------- probes

    def start_probe(self, start_value: int, owner: str) -> str:
        return self.prober.start(start_value, owner)

    def stop_probe(self, job_id: str) -> Dict[str, Any]:
        return self.prober.stop(job_id)

    def get_probe_status(self, job_id: str) -> Dict[str, Any]:
        return self.prober.status(job_id)

    def list_probe_jobs(self, owner: Optional[str] = None) -> List[Dict[str, Any]]:
        return self.prober.list_jobs(owner)

    async def find_random_pin(self, max_attempts: Optional[int] = None, start: Optional[int] = None,
                              end: Optional[int] = None) -> Dict[str, Any]:
        return await self.prober.find_random(max_attempts, start, end)

    # ---------------------------------------------------------------- health

    def health(self) -> Dict[str, Any]:
        sessions = self.registry.list_sessions()
        return {
            "status": "ok" if self._started_at is not None else "stopped",
            "sessions": len(sessions),
            "connected_sessions": sum(1 for s in sessions if s.connected),
            "active_reconnections": self.orchestrator.active_count,
            "probe_jobs": len(self.prober.list_jobs()),
            "uptime_seconds": round(time.time() - self._started_at, 1) if self._started_at else 0.0,
        }
