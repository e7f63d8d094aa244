"""
Hub Session - one headless quiz client over a persistent WebSocket
=================================================================

Each session owns exactly one socket and one reader task. Inbound frames are
decoded and dispatched strictly in arrival order by that reader; outbound
frames go through a per-session send lock. The lifecycle is an explicit state
machine (see ``SessionState``); transitions outside ``VALID_TRANSITIONS`` are
logged and ignored.

A closed session object stays around for status queries until the registry
evicts it. A PlayAgain restart never reuses the socket: the session records the
restart, closes, and hands itself to the ``on_restart`` callback, which builds
a successor via ``spawn_successor()``.
"""

import asyncio
import time
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK, WebSocketException

from ...core.exceptions import HubSocketError
from ...core.logger import StructuredLogger
from ...core.utils import cancel_tracked_tasks, create_tracked_task
from ...domain.models.hub_session import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    AnswerOutcome,
    CurrentQuestion,
    MedalResult,
    PendingRestart,
    ReconnectStatus,
    SessionDescriptor,
    SessionRole,
    SessionState,
)
from ...domain.services.answer_resolution import resolve_answer_index
from ..config.settings import HubSettings
from . import frame_codec
from .frame_codec import HANDSHAKE_REQUEST, MessageType

Connector = Callable[[str], Awaitable[Any]]
RestartCallback = Callable[['HubSession'], Any]

CONNECTED_STATES = frozenset({SessionState.HANDSHAKE_SENT, SessionState.JOINED, SessionState.ACTIVE})


def websocket_connector(settings: HubSettings) -> Connector:
    """Default connector: a ``websockets`` client connection with the hub's timeouts."""
    async def connect(url: str):
        return await websockets.connect(
            url,
            open_timeout=settings.socket_open_timeout_seconds,
            close_timeout=settings.socket_close_timeout_seconds,
            ping_interval=20,
            ping_timeout=30,
        )
    return connect


class HubSession:

    def __init__(self, session_id: str, game_id: str, display_name: str, role: SessionRole,
                 owner: str, settings: HubSettings, logger: StructuredLogger, *,
                 pin: Optional[str] = None, auto_answer: bool = True,
                 connector: Optional[Connector] = None,
                 on_restart: Optional[RestartCallback] = None):
        self.session_id = session_id
        self.game_id = game_id
        self.display_name = display_name
        self.role = role
        self.owner = owner
        self.pin = pin
        self.settings = settings
        self.logger = logger
        self.auto_answer = auto_answer
        self.on_restart = on_restart
        self._connector = connector or websocket_connector(settings)

        self.state = SessionState.CONNECTING
        self.questions_answered = 0
        self.current_question: Optional[CurrentQuestion] = None
        self.last_medal: Optional[MedalResult] = None
        self.pending_restart: Optional[PendingRestart] = None
        self.rejected = False
        self.game_complete = False
        self.restart_count = 0
        self.reconnect_status = ReconnectStatus.NONE
        self.created_at = time.time()
        self.last_activity = self.created_at
        self.closed_at: Optional[float] = None
        self.close_reason: Optional[str] = None

        self._websocket = None
        self._closing_reason: Optional[str] = None
        self._send_lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()
        self._reader_task: Optional[asyncio.Task] = None
        self._delayed_close_task: Optional[asyncio.Task] = None
        self._closed_event = asyncio.Event()
        self._rejected_event = asyncio.Event()
        self._joined_event = asyncio.Event()

        self._handlers: Dict[str, Callable[[List[Any]], Awaitable[None]]] = {
            "ShowQuestion": self._on_show_question,
            "ShowMedal": self._on_show_medal,
            "QuizAlreadyStarted": self._on_quiz_already_started,
            "PlayerDisconnected": self._on_player_disconnected,
            "PlayAgain": self._on_play_again,
        }

    # ------------------------------------------------------------------ state

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def connected(self) -> bool:
        return self.state in CONNECTED_STATES

    @property
    def closed_event(self) -> asyncio.Event:
        return self._closed_event

    @property
    def rejected_event(self) -> asyncio.Event:
        return self._rejected_event

    @property
    def joined_event(self) -> asyncio.Event:
        return self._joined_event

    def _transition(self, new_state: SessionState) -> bool:
        if new_state == self.state:
            return True
        if new_state not in VALID_TRANSITIONS[self.state]:
            self.logger.warning("hub_session.invalid_transition", {
                "session_id": self.session_id,
                "from_state": self.state.value,
                "to_state": new_state.value
            })
            return False
        previous = self.state
        self.state = new_state
        if new_state == SessionState.JOINED:
            self._joined_event.set()
        self.logger.debug("hub_session.transition", {
            "session_id": self.session_id,
            "from_state": previous.value,
            "to_state": new_state.value
        })
        return True

    def _finalize(self, state: SessionState, reason: str) -> None:
        """Mark the socket instance as finished. Safe to call more than once."""
        if self.closed_at is not None:
            return
        target = SessionState.CLOSED if self._closing_reason else state
        self._transition(target)
        self.closed_at = time.time()
        self.close_reason = self._closing_reason or reason
        self._websocket = None
        self._closed_event.set()

        current = asyncio.current_task()
        for task in list(self._tasks):
            if task is not current and task is not self._reader_task and not task.done():
                task.cancel()

        self.logger.info("hub_session.closed", {
            "session_id": self.session_id,
            "game_id": self.game_id,
            "state": self.state.value,
            "reason": self.close_reason,
            "questions_answered": self.questions_answered
        })

    # ------------------------------------------------------------- lifecycle

    async def open(self, descriptor: SessionDescriptor) -> None:
        """Open the socket, send the protocol handshake and start the reader."""
        if self._websocket is not None or self.closed_at is not None:
            raise RuntimeError(f"Session {self.session_id} already opened")

        try:
            self._websocket = await self._connector(descriptor.socket_url)
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            self.logger.warning("hub_session.connect_failed", {
                "session_id": self.session_id,
                "error": str(e),
                "error_type": type(e).__name__
            })
            self._finalize(SessionState.FAILED, "connect_failed")
            raise HubSocketError(self.session_id, f"connect failed: {type(e).__name__}") from e

        self.last_activity = time.time()
        try:
            await self._send(HANDSHAKE_REQUEST)
        except HubSocketError:
            self._finalize(SessionState.FAILED, "handshake_send_failed")
            raise

        self._transition(SessionState.HANDSHAKE_SENT)
        self._reader_task = create_tracked_task(
            self._tasks, self._message_loop(), f"hub_reader_{self.session_id}"
        )
        if self.settings.keepalive_interval_seconds > 0:
            create_tracked_task(self._tasks, self._keepalive_loop(), f"hub_keepalive_{self.session_id}")

        self.logger.info("hub_session.opened", {
            "session_id": self.session_id,
            "game_id": self.game_id,
            "role": self.role.value,
            "connection_id": descriptor.connection_id
        })

    async def _message_loop(self) -> None:
        final_state, reason = SessionState.CLOSED, "remote_closed"
        try:
            async for message in self._websocket:
                self.last_activity = time.time()
                await self.handle_payload(message)
        except ConnectionClosedOK:
            pass
        except ConnectionClosed as e:
            final_state, reason = SessionState.FAILED, f"connection_lost: {getattr(e, 'code', None)}"
            self.logger.warning("hub_session.connection_lost", {
                "session_id": self.session_id,
                "error": str(e)
            })
        except (WebSocketException, OSError) as e:
            final_state, reason = SessionState.FAILED, f"socket_error: {type(e).__name__}"
            self.logger.error("hub_session.socket_error", {
                "session_id": self.session_id,
                "error": str(e),
                "error_type": type(e).__name__
            })
        except asyncio.CancelledError:
            reason = "cancelled"
            raise
        finally:
            self._finalize(final_state, reason)

    async def _keepalive_loop(self) -> None:
        interval = self.settings.keepalive_interval_seconds
        while not self.is_terminal:
            await asyncio.sleep(interval)
            if self.is_terminal:
                break
            try:
                await self._send({"type": int(MessageType.PING)})
            except HubSocketError:
                break

    async def _send(self, value: Any) -> None:
        websocket = self._websocket
        if websocket is None:
            raise HubSocketError(self.session_id, "socket not open")
        async with self._send_lock:
            try:
                await websocket.send(frame_codec.encode(value))
            except (WebSocketException, OSError) as e:
                raise HubSocketError(self.session_id, f"send failed: {type(e).__name__}") from e

    async def _close(self, reason: str) -> None:
        """Start closing the socket; the reader loop finalizes the state."""
        if self._closing_reason is None:
            self._closing_reason = reason
        websocket = self._websocket
        if websocket is None:
            return
        try:
            await websocket.close()
        except (WebSocketException, OSError) as e:
            self.logger.debug("hub_session.close_error", {
                "session_id": self.session_id,
                "error": str(e)
            })

    async def disconnect(self, reason: str = "caller_disconnect") -> None:
        """Close the socket and wait (bounded) for the reader to finish."""
        await self._close(reason)

        reader = self._reader_task
        if reader is not None and not reader.done() and reader is not asyncio.current_task():
            _, pending = await asyncio.wait({reader}, timeout=self.settings.socket_close_timeout_seconds)
            if pending:
                reader.cancel()
                await asyncio.wait(pending)

        if self.closed_at is None:
            self._finalize(SessionState.CLOSED, reason)
        await cancel_tracked_tasks(self._tasks)

    async def wait_closed(self, timeout: Optional[float] = None) -> bool:
        try:
            await asyncio.wait_for(self._closed_event.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    # -------------------------------------------------------------- dispatch

    async def handle_payload(self, payload) -> None:
        """Decode one WebSocket message and dispatch its records in order."""
        for value in frame_codec.decode(payload, self.logger):
            try:
                await self._dispatch(value)
            except HubSocketError as e:
                self.logger.warning("hub_session.send_failed", {
                    "session_id": self.session_id,
                    "error": e.reason
                })
            except (KeyError, ValueError, TypeError) as e:
                self.logger.warning("hub_session.message_validation_error", {
                    "session_id": self.session_id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "message_sample": str(value)[:200]
                })

    async def _dispatch(self, value: Any) -> None:
        if frame_codec.is_handshake_ack(value):
            await self._on_handshake_ack()
            return
        if not isinstance(value, dict):
            self.logger.debug("hub_session.unexpected_record", {
                "session_id": self.session_id,
                "record_sample": str(value)[:200]
            })
            return

        message_type = value.get("type")
        if message_type == MessageType.PING:
            return
        if message_type == MessageType.CLOSE:
            await self._on_close_message(value)
            return
        if message_type != MessageType.INVOCATION:
            self.logger.debug("hub_session.ignored_message_type", {
                "session_id": self.session_id,
                "type": message_type
            })
            return

        target = value.get("target")
        handler = self._handlers.get(target)
        if handler is None:
            self.logger.debug("hub_session.unhandled_target", {
                "session_id": self.session_id,
                "target": target
            })
            return

        arguments = value.get("arguments") or []
        if not isinstance(arguments, list):
            arguments = [arguments]
        await handler(arguments)

    async def _on_handshake_ack(self) -> None:
        if self.state != SessionState.HANDSHAKE_SENT:
            self.logger.debug("hub_session.duplicate_handshake_ack", {
                "session_id": self.session_id,
                "state": self.state.value
            })
            return
        await self._send(frame_codec.invocation("PlayerJoined", [self.game_id, self.display_name]))
        self._transition(SessionState.JOINED)
        self.logger.info("hub_session.joined", {
            "session_id": self.session_id,
            "game_id": self.game_id,
            "display_name": self.display_name
        })

    async def _on_show_question(self, arguments: List[Any]) -> None:
        if self.state not in (SessionState.JOINED, SessionState.ACTIVE):
            self.logger.debug("hub_session.question_ignored", {
                "session_id": self.session_id,
                "state": self.state.value
            })
            return
        if not arguments or not isinstance(arguments[0], dict):
            raise ValueError("ShowQuestion without question payload")

        question = CurrentQuestion.from_payload(arguments[0])
        question.correct_answer_index = resolve_answer_index(question.right_answer, question.max_answers)
        self._transition(SessionState.ACTIVE)
        self.current_question = question

        if not self.auto_answer:
            self.logger.info("hub_session.question_stored", {
                "session_id": self.session_id,
                "question_number": question.question_number
            })
            return

        if question.correct_answer_index is None:
            self.logger.warning("hub_session.answer_unresolved", {
                "session_id": self.session_id,
                "right_answer": question.right_answer,
                "max_answers": question.max_answers
            })
            return

        await self._send_answer(question.correct_answer_index)
        self.current_question = None
        self.logger.info("hub_session.answer_sent", {
            "session_id": self.session_id,
            "answer_index": question.correct_answer_index,
            "questions_answered": self.questions_answered
        })

    async def _send_answer(self, answer_index: int) -> None:
        await self._send(frame_codec.invocation(
            "AnswerGivenFromPlayer",
            [self.game_id, str(answer_index), self.settings.answer_latency_ms]
        ))
        self.questions_answered += 1

    async def _on_show_medal(self, arguments: List[Any]) -> None:
        ranking_code = arguments[0] if arguments else None
        self.last_medal = MedalResult.from_code(ranking_code, self.settings.medal_places)
        self.game_complete = True
        self.logger.info("hub_session.medal_received", {
            "session_id": self.session_id,
            "ranking_code": ranking_code,
            "place": self.last_medal.place
        })

    async def _on_quiz_already_started(self, arguments: List[Any]) -> None:
        self.rejected = True
        self._rejected_event.set()
        self.logger.info("hub_session.quiz_already_started", {
            "session_id": self.session_id,
            "game_id": self.game_id
        })
        await self._close("quiz_already_started")

    async def _on_player_disconnected(self, arguments: List[Any]) -> None:
        if not arguments or arguments[0] is not True:
            return
        if self._delayed_close_task is not None:
            return
        self.logger.info("hub_session.player_disconnected", {
            "session_id": self.session_id,
            "grace_seconds": self.settings.disconnect_grace_seconds
        })
        self._delayed_close_task = create_tracked_task(
            self._tasks, self._close_after_grace(), f"hub_grace_close_{self.session_id}"
        )

    async def _close_after_grace(self) -> None:
        # Medal frames have been observed after PlayerDisconnected
        await asyncio.sleep(self.settings.disconnect_grace_seconds)
        await self._close("player_disconnected")

    async def _on_play_again(self, arguments: List[Any]) -> None:
        if self.state not in (SessionState.JOINED, SessionState.ACTIVE):
            self.logger.debug("hub_session.play_again_ignored", {
                "session_id": self.session_id,
                "state": self.state.value
            })
            return

        self.pending_restart = PendingRestart.from_arguments(arguments)
        self._transition(SessionState.RESTARTING)
        self.reconnect_status = ReconnectStatus.PENDING
        self.logger.info("hub_session.play_again", {
            "session_id": self.session_id,
            **self.pending_restart.to_dict()
        })
        await self._close("play_again")

        if self.on_restart is not None:
            try:
                self.on_restart(self)
            except Exception as e:
                self.reconnect_status = ReconnectStatus.FAILED
                self.logger.error("hub_session.restart_signal_failed", {
                    "session_id": self.session_id,
                    "error": str(e),
                    "error_type": type(e).__name__
                })

    async def _on_close_message(self, value: Dict[str, Any]) -> None:
        self.logger.warning("hub_session.server_close", {
            "session_id": self.session_id,
            "error": value.get("error"),
            "allow_reconnect": value.get("allowReconnect")
        })
        await self._close("server_close")

    # -------------------------------------------------------------- commands

    def set_auto_answer(self, enabled: bool) -> None:
        self.auto_answer = bool(enabled)
        self.last_activity = time.time()

    async def submit_answer(self, answer_index: int) -> AnswerOutcome:
        """Answer the pending question; nothing is sent without one."""
        question = self.current_question
        if question is None or not self.connected:
            return AnswerOutcome(sent=False)
        if answer_index < 0 or (question.max_answers and answer_index >= question.max_answers):
            raise ValueError(f"answer_index {answer_index} outside [0, {question.max_answers})")

        try:
            await self._send_answer(answer_index)
        except HubSocketError as e:
            self.logger.warning("hub_session.manual_answer_failed", {
                "session_id": self.session_id,
                "error": e.reason
            })
            return AnswerOutcome(sent=False, answer_index=answer_index)

        self.current_question = None
        self.last_activity = time.time()
        was_correct = None
        if question.correct_answer_index is not None:
            was_correct = answer_index == question.correct_answer_index
        return AnswerOutcome(sent=True, was_correct=was_correct, answer_index=answer_index)

    def spawn_successor(self, game_id: str, session_id: Optional[str] = None) -> 'HubSession':
        """New, unopened session continuing this one in a restarted game."""
        new_pin = self.pending_restart.new_pin if self.pending_restart else None
        successor = HubSession(
            session_id or self.session_id, game_id, self.display_name, self.role, self.owner,
            self.settings, self.logger,
            pin=new_pin or self.pin,
            auto_answer=self.auto_answer,
            connector=self._connector,
            on_restart=self.on_restart,
        )
        successor.questions_answered = self.questions_answered
        successor.restart_count = self.restart_count + 1
        return successor

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.session_id,
            "game_id": self.game_id,
            "pin": self.pin,
            "display_name": self.display_name,
            "role": self.role.value,
            "owner": self.owner,
            "state": self.state.value,
            "connected": self.connected,
            "auto_answer": self.auto_answer,
            "questions_answered": self.questions_answered,
            "current_question": self.current_question.to_dict() if self.current_question else None,
            "last_medal": self.last_medal.to_dict() if self.last_medal else None,
            "game_complete": self.game_complete,
            "rejected": self.rejected,
            "pending_restart": self.pending_restart.to_dict() if self.pending_restart else None,
            "restart_count": self.restart_count,
            "reconnect_status": self.reconnect_status.value,
            "created_at": self.created_at,
            "last_activity": self.last_activity,
            "closed_at": self.closed_at,
            "close_reason": self.close_reason,
        }


class HubSessionFactory:
    """Builds sessions sharing one settings object, logger and connector."""

    def __init__(self, settings: HubSettings, logger: StructuredLogger,
                 connector: Optional[Connector] = None,
                 on_restart: Optional[RestartCallback] = None):
        self.settings = settings
        self.logger = logger
        self.connector = connector or websocket_connector(settings)
        self.on_restart = on_restart

    def create(self, game_id: str, display_name: str, role: SessionRole = SessionRole.PRIMARY,
               owner: str = "", *, session_id: Optional[str] = None, pin: Optional[str] = None,
               auto_answer: bool = True, restartable: bool = True) -> HubSession:
        return HubSession(
            session_id or str(uuid.uuid4()), game_id, display_name, role, owner,
            self.settings, self.logger,
            pin=pin,
            auto_answer=auto_answer,
            connector=self.connector,
            on_restart=self.on_restart if restartable else None,
        )
