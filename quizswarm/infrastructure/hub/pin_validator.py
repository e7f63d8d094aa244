"""
PIN validation against the remote player endpoint.

A response with a ``playId`` means the PIN belongs to a joinable game;
``errorCode == 1`` is the service's "wrong PIN" answer. Anything else is
reported back as an unusual response and treated as a rejection.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Optional

import aiohttp

from ...core.exceptions import ProbeTransportError
from .http_client import HubHttpClient

WRONG_PIN_ERROR_CODE = 1


@dataclass(frozen=True)
class PinValidationResult:
    pin: str
    play_id: Optional[str]
    error_code: Any
    raw: Any
    http_status: Optional[int] = None

    @property
    def accepted(self) -> bool:
        return bool(self.play_id)

    @property
    def wrong_pin(self) -> bool:
        return self.error_code == WRONG_PIN_ERROR_CODE


class PinValidator(HubHttpClient):

    async def validate(self, pin: str) -> PinValidationResult:
        pin = str(pin).strip()
        session = await self._ensure_session()
        headers = self.base_headers()
        headers["Content-Type"] = "application/x-www-form-urlencoded; charset=UTF-8"

        try:
            async with session.post(self.settings.pin_validation_url,
                                    headers=headers, data={"pinCode": pin}) as response:
                status = response.status
                try:
                    data = await response.json(content_type=None)
                except ValueError:
                    data = None
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ProbeTransportError(pin, f"{type(e).__name__}: {e}") from e

        if not isinstance(data, dict):
            return PinValidationResult(pin=pin, play_id=None, error_code=None, raw=data, http_status=status)

        play_id = data.get("playId")
        return PinValidationResult(
            pin=pin,
            play_id=str(play_id) if play_id else None,
            error_code=data.get("errorCode"),
            raw=data,
            http_status=status,
        )
