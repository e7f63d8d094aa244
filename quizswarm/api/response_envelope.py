"""
Response Envelope Utilities
===========================
Every REST response carries the same outer fields: ``type``
(``response``/``error``), ``version`` and an ISO ``timestamp``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict

from fastapi.responses import JSONResponse

from .error_mapper import ErrorInfo

PROTOCOL_VERSION = "1.0"


def ensure_envelope(message: Dict[str, Any]) -> Dict[str, Any]:
    """Return a shallow copy of ``message`` with missing envelope fields filled in."""
    enriched = dict(message)
    enriched.setdefault("version", PROTOCOL_VERSION)
    if not enriched.get("timestamp"):
        enriched["timestamp"] = datetime.now().isoformat()
    return enriched


def json_ok(payload: Any, status: int = 200) -> JSONResponse:
    return JSONResponse(content=ensure_envelope({"type": "response", "data": payload}), status_code=status)


def json_error(info: ErrorInfo) -> JSONResponse:
    body = ensure_envelope({
        "type": "error",
        "error_code": info.error_code,
        "error_message": info.error_message,
    })
    return JSONResponse(content=body, status_code=info.http_status)
