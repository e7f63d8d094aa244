"""
Hub Session Models
==================
Pure data structures describing one headless hub client.

Provides:
- SessionState enum with the explicit per-socket lifecycle
- SessionRole / ReconnectStatus enums
- SessionDescriptor produced by negotiation
- CurrentQuestion, MedalResult, PendingRestart parsed from hub messages
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional


class SessionState(Enum):
    """
    Per-socket lifecycle.

    State Machine:
        [CONNECTING] ─open─► [HANDSHAKE_SENT] ─ack─► [JOINED] ─question─► [ACTIVE]
                                                        │                    │
                                                        └──PlayAgain──► [RESTARTING]
                                                                             │
        any live state ──socket closed──► [CLOSED]      any live state ──error──► [FAILED]
    """
    CONNECTING = "connecting"
    HANDSHAKE_SENT = "handshake_sent"
    JOINED = "joined"
    ACTIVE = "active"
    RESTARTING = "restarting"
    CLOSED = "closed"
    FAILED = "failed"


TERMINAL_STATES = frozenset({SessionState.CLOSED, SessionState.FAILED})

VALID_TRANSITIONS: Dict[SessionState, frozenset] = {
    SessionState.CONNECTING: frozenset({SessionState.HANDSHAKE_SENT, SessionState.CLOSED, SessionState.FAILED}),
    SessionState.HANDSHAKE_SENT: frozenset({SessionState.JOINED, SessionState.CLOSED, SessionState.FAILED}),
    SessionState.JOINED: frozenset({SessionState.ACTIVE, SessionState.RESTARTING, SessionState.CLOSED, SessionState.FAILED}),
    SessionState.ACTIVE: frozenset({SessionState.RESTARTING, SessionState.CLOSED, SessionState.FAILED}),
    SessionState.RESTARTING: frozenset({SessionState.CLOSED, SessionState.FAILED}),
    SessionState.CLOSED: frozenset(),
    SessionState.FAILED: frozenset(),
}


class SessionRole(Enum):
    PRIMARY = "primary"
    BOT = "bot"


class ReconnectStatus(Enum):
    """Progress of a PlayAgain-triggered reconnection, as seen on the signalling session."""
    NONE = "none"
    PENDING = "pending"
    RECONNECTING = "reconnecting"
    RECONNECTED = "reconnected"
    DEFERRED = "deferred"
    FAILED = "failed"


@dataclass(frozen=True)
class SessionDescriptor:
    """Result of one negotiation attempt; consumed by exactly one socket open."""
    socket_url: str
    access_token: str
    connection_token: str
    connection_id: str


@dataclass
class CurrentQuestion:
    question_number: Optional[int]
    prompt_text: str
    answer_texts: List[str]
    right_answer: Any
    max_answers: int
    correct_answer_index: Optional[int] = None
    received_at: float = field(default_factory=time.time)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> 'CurrentQuestion':
        """Build from the first ShowQuestion argument; missing display fields default to empty."""
        answers = payload.get("answers")
        if not isinstance(answers, list):
            answers = [payload.get(f"answer{i}") for i in range(1, 7)]
            answers = [a for a in answers if a]

        number = payload.get("questionNumber", payload.get("questionIndex"))
        try:
            number = int(number) if number is not None else None
        except (TypeError, ValueError):
            number = None

        try:
            max_answers = int(payload.get("maxAnswers") or 0)
        except (TypeError, ValueError):
            max_answers = 0

        return cls(
            question_number=number,
            prompt_text=str(payload.get("question") or payload.get("text") or ""),
            answer_texts=[str(a) for a in answers],
            right_answer=payload.get("rightAnswer"),
            max_answers=max_answers,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question_number": self.question_number,
            "prompt_text": self.prompt_text,
            "answer_texts": list(self.answer_texts),
            "max_answers": self.max_answers,
            "correct_answer_index": self.correct_answer_index,
            "received_at": self.received_at,
        }


@dataclass(frozen=True)
class MedalResult:
    ranking_code: Any
    place: Optional[int]
    received_at: float = field(default_factory=time.time)

    @classmethod
    def from_code(cls, ranking_code: Any, places: Mapping[int, int]) -> 'MedalResult':
        try:
            place = places.get(int(ranking_code))
        except (TypeError, ValueError):
            place = None
        return cls(ranking_code=ranking_code, place=place)

    def to_dict(self) -> Dict[str, Any]:
        return {"ranking_code": self.ranking_code, "place": self.place, "received_at": self.received_at}


@dataclass(frozen=True)
class PendingRestart:
    """Arguments of a PlayAgain message: oldGameId, newGameId, restartSequence, newPin."""
    old_game_id: Optional[str]
    new_game_id: Optional[str]
    restart_sequence: Any = None
    new_pin: Optional[str] = None

    @classmethod
    def from_arguments(cls, arguments: List[Any]) -> 'PendingRestart':
        padded = list(arguments) + [None] * (4 - len(arguments))
        old_game_id, new_game_id, sequence, pin = padded[:4]
        return cls(
            old_game_id=str(old_game_id) if old_game_id is not None else None,
            new_game_id=str(new_game_id) if new_game_id is not None else None,
            restart_sequence=sequence,
            new_pin=str(pin) if pin is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "old_game_id": self.old_game_id,
            "new_game_id": self.new_game_id,
            "restart_sequence": self.restart_sequence,
            "new_pin": self.new_pin,
        }


@dataclass(frozen=True)
class AnswerOutcome:
    sent: bool
    was_correct: Optional[bool] = None
    answer_index: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"sent": self.sent, "was_correct": self.was_correct, "answer_index": self.answer_index}
