from .hub_session import (
    AnswerOutcome,
    CurrentQuestion,
    MedalResult,
    PendingRestart,
    ReconnectStatus,
    SessionDescriptor,
    SessionRole,
    SessionState,
)
from .probe_job import FoundPin, ProbeJob, ProbeStatus

__all__ = [
    'AnswerOutcome',
    'CurrentQuestion',
    'FoundPin',
    'MedalResult',
    'PendingRestart',
    'ProbeJob',
    'ProbeStatus',
    'ReconnectStatus',
    'SessionDescriptor',
    'SessionRole',
    'SessionState',
]
