"""
Core Exceptions - quizswarm
===========================
Centralized exception definitions for the hub session engine and the PIN prober.

Negotiation, socket and PIN errors surface to the caller of a join or probe
start. Frame and per-candidate errors are absorbed by the session/prober loops
and only show up in logs and status snapshots.
"""

from enum import Enum


class QuizSwarmError(Exception):
    """Base exception for everything raised by the core."""
    pass


class NegotiationFailure(str, Enum):
    NO_TOKEN = "no_token"
    NO_CONNECTION_TOKEN = "no_connection_token"
    TRANSPORT = "transport"


class NegotiationError(QuizSwarmError):
    """
    Raised when the two-step hub negotiation does not yield a usable descriptor.

    Always retryable by calling ``negotiate()`` again; the core never retries by itself.
    """
    def __init__(self, reason: NegotiationFailure, detail: str = None):
        self.reason = reason
        self.detail = detail
        self.message = f"Negotiation failed: {reason.value}" + (f" ({detail})" if detail else "")
        super().__init__(self.message)


class FrameDecodeError(QuizSwarmError):
    """Raised for a single malformed record inside a hub frame."""
    def __init__(self, segment: str, reason: str):
        self.segment = segment
        self.reason = reason
        self.message = f"Malformed hub record: {reason}"
        super().__init__(self.message)


class HubSocketError(QuizSwarmError):
    """Raised when the hub WebSocket cannot be opened or drops while sending."""
    def __init__(self, session_id: str, reason: str):
        self.session_id = session_id
        self.reason = reason
        self.message = f"Socket error for session {session_id}: {reason}"
        super().__init__(self.message)


class ProbeTransportError(QuizSwarmError):
    """Raised when a PIN validation request fails at the transport level."""
    def __init__(self, pin: str, reason: str):
        self.pin = pin
        self.reason = reason
        self.message = f"Validation request for PIN {pin} failed: {reason}"
        super().__init__(self.message)


class InvalidPinError(QuizSwarmError):
    """
    Raised when the remote service rejects a PIN at join time.

    HTTP Status: 400 Bad Request
    """
    def __init__(self, pin: str, error_code=None):
        self.pin = pin
        self.error_code = error_code
        self.message = f"PIN {pin} is not valid"
        super().__init__(self.message)


class AlreadyRunningError(QuizSwarmError):
    """
    Raised when a probe is started for an owner that already has one running.

    HTTP Status: 409 Conflict
    """
    def __init__(self, owner: str, job_id: str):
        self.owner = owner
        self.job_id = job_id
        self.message = f"Probe job {job_id} is already running for {owner}"
        super().__init__(self.message)


class SessionNotFoundError(QuizSwarmError):
    """HTTP Status: 404 Not Found"""
    def __init__(self, session_id: str):
        self.session_id = session_id
        self.message = f"Session not found: {session_id}"
        super().__init__(self.message)


class ProbeJobNotFoundError(QuizSwarmError):
    """HTTP Status: 404 Not Found"""
    def __init__(self, job_id: str):
        self.job_id = job_id
        self.message = f"Probe job not found: {job_id}"
        super().__init__(self.message)
