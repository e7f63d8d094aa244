"""
Hub Negotiator
==============
Two-step negotiation that turns the public hub endpoint into a WebSocket URL:

1. POST the hub's negotiate endpoint -> short-lived bearer token + redirect URL
   carrying ``asrs_request_id``.
2. POST ``<redirect origin>/client/negotiate`` with the bearer token ->
   connection token + connection id.
3. Final socket URL = redirect URL + ``id=<connection token>`` +
   ``access_token=<url-encoded bearer token>``.

Every failure is terminal for the attempt; callers retry by calling
``negotiate()`` again.
"""

import asyncio
from typing import Any, Dict
from urllib.parse import parse_qs, quote, urlencode, urlsplit

import aiohttp

from ...core.exceptions import NegotiationError, NegotiationFailure
from ...domain.models.hub_session import SessionDescriptor
from .http_client import HubHttpClient


class HubNegotiator(HubHttpClient):

    def _headers(self) -> Dict[str, str]:
        headers = self.base_headers()
        headers["Content-Type"] = "text/plain;charset=UTF-8"
        headers["x-signalr-user-agent"] = self.settings.signalr_user_agent
        return headers

    async def _post_json(self, url: str, headers: Dict[str, str], step: str) -> Dict[str, Any]:
        session = await self._ensure_session()
        try:
            async with session.post(url, headers=headers) as response:
                data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            self.logger.warning("negotiator.transport_error", {
                "step": step,
                "error": str(e),
                "error_type": type(e).__name__
            })
            raise NegotiationError(NegotiationFailure.TRANSPORT, f"{step}: {type(e).__name__}") from e

        if not isinstance(data, dict):
            raise NegotiationError(NegotiationFailure.TRANSPORT, f"{step}: unexpected body")
        return data

    def _second_negotiate_url(self, socket_url: str, request_id: str) -> str:
        parts = urlsplit(socket_url)
        origin = f"{parts.scheme}://{parts.netloc}"
        query = urlencode({
            "hub": self.settings.hub_name,
            "asrs.op": self.settings.hub_operation,
            "negotiateVersion": 1,
            "asrs_request_id": request_id,
        })
        return f"{origin}/client/negotiate?{query}"

    @staticmethod
    def _final_socket_url(socket_url: str, connection_token: str, access_token: str) -> str:
        separator = "&" if "?" in socket_url else "?"
        return (f"{socket_url}{separator}id={quote(connection_token, safe='')}"
                f"&access_token={quote(access_token, safe='')}")

    async def negotiate(self) -> SessionDescriptor:
        first = await self._post_json(self.settings.negotiate_url, self._headers(), "negotiate")

        access_token = first.get("accessToken")
        socket_url = first.get("url")
        if not access_token or not socket_url:
            self.logger.warning("negotiator.no_token", {
                "has_token": bool(access_token),
                "has_url": bool(socket_url)
            })
            raise NegotiationError(NegotiationFailure.NO_TOKEN)

        request_id = parse_qs(urlsplit(socket_url).query).get("asrs_request_id", [""])[0]
        if not request_id:
            self.logger.warning("negotiator.no_request_id", {"url": socket_url})
            raise NegotiationError(NegotiationFailure.NO_TOKEN, "missing asrs_request_id")

        headers = self._headers()
        headers["Authorization"] = f"Bearer {access_token}"
        second = await self._post_json(
            self._second_negotiate_url(socket_url, request_id), headers, "client_negotiate"
        )

        connection_token = second.get("connectionToken")
        connection_id = second.get("connectionId")
        if not connection_token or not connection_id:
            self.logger.warning("negotiator.no_connection_token", {
                "has_connection_token": bool(connection_token),
                "has_connection_id": bool(connection_id)
            })
            raise NegotiationError(NegotiationFailure.NO_CONNECTION_TOKEN)

        self.logger.debug("negotiator.negotiated", {"connection_id": connection_id})
        return SessionDescriptor(
            socket_url=self._final_socket_url(socket_url, connection_token, access_token),
            access_token=access_token,
            connection_token=connection_token,
            connection_id=connection_id,
        )
