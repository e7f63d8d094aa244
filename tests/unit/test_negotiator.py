"""
Unit Tests for the two-step hub negotiation
===========================================
"""

import asyncio

import aiohttp
import pytest

from conftest import NEGOTIATE_URL, FakeResponse
from quizswarm.core.exceptions import NegotiationError, NegotiationFailure
from quizswarm.infrastructure.hub.negotiator import HubNegotiator


@pytest.fixture
def negotiator(hub_settings, logger, fake_hub):
    return HubNegotiator(hub_settings, logger, session=fake_hub.session)


class TestNegotiateSuccess:

    @pytest.mark.asyncio
    async def test_descriptor_fields(self, negotiator):
        descriptor = await negotiator.negotiate()

        assert descriptor.access_token == "bearer token/1"
        assert descriptor.connection_token == "conn-token"
        assert descriptor.connection_id == "conn-id"

    @pytest.mark.asyncio
    async def test_socket_url_carries_id_and_encoded_token(self, negotiator):
        descriptor = await negotiator.negotiate()

        assert descriptor.socket_url.startswith("https://socket.test/client/?hub=playhub")
        assert descriptor.socket_url.endswith("&id=conn-token&access_token=bearer%20token%2F1")

    @pytest.mark.asyncio
    async def test_second_step_targets_redirect_origin_with_bearer(self, negotiator, fake_hub):
        await negotiator.negotiate()

        first, second = fake_hub.session.calls
        assert first["url"] == NEGOTIATE_URL
        assert second["url"].startswith("https://socket.test/client/negotiate?")
        assert "hub=playhub" in second["url"]
        assert "asrs_request_id=req-1" in second["url"]
        assert "negotiateVersion=1" in second["url"]
        assert second["headers"]["Authorization"] == "Bearer bearer token/1"
        assert "x-signalr-user-agent" in second["headers"]

    @pytest.mark.asyncio
    async def test_browser_headers_sent(self, negotiator, fake_hub, hub_settings):
        await negotiator.negotiate()

        headers = fake_hub.session.calls[0]["headers"]
        assert headers["Origin"] == hub_settings.origin
        assert headers["User-Agent"] == hub_settings.user_agent


class TestNegotiateFailures:

    @pytest.mark.asyncio
    async def test_token_without_url_is_no_token(self, negotiator, fake_hub):
        fake_hub.negotiate_body = {"accessToken": "abc"}

        with pytest.raises(NegotiationError) as exc_info:
            await negotiator.negotiate()

        assert exc_info.value.reason == NegotiationFailure.NO_TOKEN
        assert len(fake_hub.session.calls) == 1

    @pytest.mark.asyncio
    async def test_missing_request_id_is_no_token(self, negotiator, fake_hub):
        fake_hub.negotiate_body = {"accessToken": "abc", "url": "https://socket.test/client/?hub=playhub"}

        with pytest.raises(NegotiationError) as exc_info:
            await negotiator.negotiate()

        assert exc_info.value.reason == NegotiationFailure.NO_TOKEN

    @pytest.mark.asyncio
    async def test_missing_connection_token(self, negotiator, fake_hub):
        fake_hub.client_negotiate_body = {"connectionId": "conn-id"}

        with pytest.raises(NegotiationError) as exc_info:
            await negotiator.negotiate()

        assert exc_info.value.reason == NegotiationFailure.NO_CONNECTION_TOKEN

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        aiohttp.ClientConnectionError("refused"),
        asyncio.TimeoutError(),
    ])
    async def test_transport_errors(self, hub_settings, logger, fake_hub, error):
        fake_hub.session.handler = lambda url, data: error
        negotiator = HubNegotiator(hub_settings, logger, session=fake_hub.session)

        with pytest.raises(NegotiationError) as exc_info:
            await negotiator.negotiate()

        assert exc_info.value.reason == NegotiationFailure.TRANSPORT
        logger.warning.assert_called()

    @pytest.mark.asyncio
    async def test_invalid_json_is_transport(self, hub_settings, logger, fake_hub):
        fake_hub.session.handler = lambda url, data: FakeResponse(ValueError("bad json"))
        negotiator = HubNegotiator(hub_settings, logger, session=fake_hub.session)

        with pytest.raises(NegotiationError) as exc_info:
            await negotiator.negotiate()

        assert exc_info.value.reason == NegotiationFailure.TRANSPORT

    @pytest.mark.asyncio
    async def test_non_object_body_is_transport(self, negotiator, fake_hub):
        fake_hub.negotiate_body = ["not", "an", "object"]

        with pytest.raises(NegotiationError) as exc_info:
            await negotiator.negotiate()

        assert exc_info.value.reason == NegotiationFailure.TRANSPORT
