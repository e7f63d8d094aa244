"""
Error Mapper
============
Maps core exceptions and error codes to a stable taxonomy with
human-readable messages and HTTP statuses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Tuple, Type

from ..core.exceptions import (
    AlreadyRunningError,
    HubSocketError,
    InvalidPinError,
    NegotiationError,
    ProbeJobNotFoundError,
    ProbeTransportError,
    SessionNotFoundError,
)


@dataclass(frozen=True)
class ErrorInfo:
    error_code: str
    error_message: str
    http_status: int = 400


DEFAULT_ERRORS: Dict[str, ErrorInfo] = {
    # Request validation
    "validation_error": ErrorInfo("validation_error", "Validation failed", 400),
    "invalid_pin": ErrorInfo("invalid_pin", "PIN is not valid", 400),

    # Lookups
    "session_not_found": ErrorInfo("session_not_found", "Session not found", 404),
    "probe_job_not_found": ErrorInfo("probe_job_not_found", "Probe job not found", 404),
    "probe_already_running": ErrorInfo("probe_already_running", "A probe is already running", 409),

    # Remote service
    "negotiation_failed": ErrorInfo("negotiation_failed", "Could not negotiate a hub connection", 502),
    "hub_socket_error": ErrorInfo("hub_socket_error", "Hub connection failed", 502),
    "pin_validation_unavailable": ErrorInfo("pin_validation_unavailable", "PIN validation request failed", 502),

    "service_unavailable": ErrorInfo("service_unavailable", "Service unavailable", 503),
    "internal_error": ErrorInfo("internal_error", "Internal server error", 500),
}

# Checked in order; first isinstance match wins
EXCEPTION_CODES: Tuple[Tuple[Type[BaseException], str], ...] = (
    (InvalidPinError, "invalid_pin"),
    (SessionNotFoundError, "session_not_found"),
    (ProbeJobNotFoundError, "probe_job_not_found"),
    (AlreadyRunningError, "probe_already_running"),
    (NegotiationError, "negotiation_failed"),
    (HubSocketError, "hub_socket_error"),
    (ProbeTransportError, "pin_validation_unavailable"),
    (ValueError, "validation_error"),
)


class ErrorMapper:
    """Maps error codes / exceptions to ErrorInfo"""

    def __init__(self, overrides: Optional[Dict[str, ErrorInfo]] = None):
        self._map = dict(DEFAULT_ERRORS)
        if overrides:
            self._map.update(overrides)

    def map(self, error_code: str, message: Optional[str] = None) -> ErrorInfo:
        base = self._map.get(error_code)
        if not base:
            base = ErrorInfo(error_code=error_code or "internal_error",
                             error_message="Internal server error",
                             http_status=500)
        if message:
            return ErrorInfo(error_code=base.error_code, error_message=message, http_status=base.http_status)
        return base

    def code_for(self, exc: BaseException) -> str:
        for exc_type, code in EXCEPTION_CODES:
            if isinstance(exc, exc_type):
                return code
        return "internal_error"

    def map_exception(self, exc: BaseException) -> ErrorInfo:
        code = self.code_for(exc)
        if code == "internal_error":
            # Unexpected errors never leak their text
            return self.map(code)
        message = getattr(exc, "message", None) or str(exc).strip() or None
        return self.map(code, message)
