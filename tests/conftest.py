"""
Shared fixtures: in-memory hub WebSocket, fake aiohttp session answering the
negotiation/PIN endpoints, and a mock StructuredLogger.
"""

import asyncio
import json
from typing import Any, Callable, Dict, List, Optional, Set
from unittest.mock import MagicMock

import pytest
from websockets.exceptions import WebSocketException

from quizswarm.core.logger import StructuredLogger
from quizswarm.infrastructure.config.settings import (
    AppSettings,
    HubSettings,
    LoggingSettings,
    ProbeSettings,
    RegistrySettings,
)
from quizswarm.infrastructure.hub.frame_codec import RECORD_SEPARATOR

_CLOSE = object()

NEGOTIATE_URL = "https://hub.test/api/v1/playHub/negotiate?negotiateVersion=1"
PIN_URL = "https://hub.test/api/v1/player/pin"
SOCKET_BASE_URL = "https://socket.test/client/?hub=playhub&asrs.op=%2Fv1%2FplayHub&asrs_request_id=req-1"


def frame(*records: Any) -> str:
    return "".join(json.dumps(record) + RECORD_SEPARATOR for record in records)


def invocation(target: str, *arguments: Any) -> dict:
    return {"type": 1, "target": target, "arguments": list(arguments)}


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Yield to the loop until ``predicate`` holds; fails the test on timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.001)


class FakeWebSocket:
    """
    Stands in for a ``websockets`` client connection. Inbound messages are fed
    through ``feed()``; outbound frames are recorded in ``sent``. An optional
    ``responder(record, ws)`` sees every decoded outbound record.
    """

    def __init__(self, responder: Optional[Callable[[dict, 'FakeWebSocket'], None]] = None):
        self.responder = responder
        self.sent: List[str] = []
        self.closed = False
        self.close_calls = 0
        self.fail_sends = False
        self._incoming: asyncio.Queue = asyncio.Queue()

    def feed(self, *records: Any) -> None:
        self._incoming.put_nowait(frame(*records))

    def feed_raw(self, payload) -> None:
        self._incoming.put_nowait(payload)

    def drop(self, error: BaseException) -> None:
        self._incoming.put_nowait(error)

    def records(self) -> List[Any]:
        out = []
        for message in self.sent:
            out.extend(json.loads(part) for part in message.split(RECORD_SEPARATOR) if part)
        return out

    def invocations(self, target: Optional[str] = None) -> List[dict]:
        return [
            r for r in self.records()
            if isinstance(r, dict) and r.get("type") == 1 and (target is None or r.get("target") == target)
        ]

    async def send(self, message: str) -> None:
        if self.closed or self.fail_sends:
            raise WebSocketException("socket closed")
        self.sent.append(message)
        if self.responder is not None:
            for part in message.split(RECORD_SEPARATOR):
                if part:
                    self.responder(json.loads(part), self)

    async def close(self) -> None:
        self.close_calls += 1
        if not self.closed:
            self.closed = True
            self._incoming.put_nowait(_CLOSE)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._incoming.get()
        if item is _CLOSE:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            self.closed = True
            raise item
        return item


def ack_handshake(record: dict, ws: FakeWebSocket) -> None:
    """Responder answering the protocol handshake like the real hub."""
    if record.get("protocol") == "json":
        ws.feed({})


class FakeConnector:
    """
    Connector returning a fresh FakeWebSocket per call. Queued ``errors`` are
    raised first; ``fail_calls`` holds 0-based call numbers that fail. A non-zero
    ``delay`` suspends every call before the socket is returned.
    """

    def __init__(self, responder: Optional[Callable[[dict, FakeWebSocket], None]] = ack_handshake):
        self.responder = responder
        self.urls: List[str] = []
        self.sockets: List[FakeWebSocket] = []
        self.errors: List[BaseException] = []
        self.fail_calls: Set[int] = set()
        self.delay = 0.0

    async def __call__(self, url: str) -> FakeWebSocket:
        call_number = len(self.urls)
        self.urls.append(url)
        if self.errors:
            raise self.errors.pop(0)
        if call_number in self.fail_calls:
            raise OSError(f"connect refused (call {call_number})")
        if self.delay:
            await asyncio.sleep(self.delay)
        ws = FakeWebSocket(self.responder)
        self.sockets.append(ws)
        return ws


class FakeResponse:
    def __init__(self, body: Any = None, status: int = 200):
        self.body = body
        self.status = status

    async def json(self, content_type=None):
        if isinstance(self.body, BaseException):
            raise self.body
        return self.body

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False


class FakeHttpSession:
    """Minimal ``aiohttp.ClientSession`` replacement routing POSTs to a handler."""

    def __init__(self, handler: Callable[[str, Optional[dict]], Any]):
        self.handler = handler
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    def post(self, url: str, headers: Optional[dict] = None, data: Optional[dict] = None):
        self.calls.append({"url": url, "headers": headers, "data": data})
        result = self.handler(url, data)
        if isinstance(result, BaseException):
            raise result
        return result

    async def close(self) -> None:
        self.closed = True


class FakeHub:
    """
    Answers the two negotiation steps and the PIN endpoint. ``pin_bodies``
    maps a PIN to its JSON body (or to an exception raised on POST).
    """

    def __init__(self):
        self.negotiate_body: Any = {"accessToken": "bearer token/1", "url": SOCKET_BASE_URL}
        self.client_negotiate_body: Any = {"connectionToken": "conn-token", "connectionId": "conn-id"}
        self.pin_bodies: Dict[str, Any] = {}
        self.default_pin_body: Any = {"errorCode": 1}
        self.session = FakeHttpSession(self.respond)

    def respond(self, url: str, data: Optional[dict]):
        if url == NEGOTIATE_URL:
            return FakeResponse(self.negotiate_body)
        if "/client/negotiate" in url:
            return FakeResponse(self.client_negotiate_body)
        if url == PIN_URL:
            body = self.pin_bodies.get(data["pinCode"], self.default_pin_body)
            if isinstance(body, BaseException):
                return body
            return FakeResponse(body)
        raise AssertionError(f"unexpected POST {url}")

    def calls_to(self, url_part: str) -> List[Dict[str, Any]]:
        return [call for call in self.session.calls if url_part in call["url"]]


@pytest.fixture
def logger():
    """Mock StructuredLogger for capturing log calls"""
    mock_logger = MagicMock(spec=StructuredLogger)
    mock_logger.info = MagicMock()
    mock_logger.warning = MagicMock()
    mock_logger.error = MagicMock()
    mock_logger.debug = MagicMock()
    return mock_logger


@pytest.fixture
def hub_settings():
    return HubSettings(
        negotiate_url=NEGOTIATE_URL,
        pin_validation_url=PIN_URL,
        disconnect_grace_seconds=0.05,
        keepalive_interval_seconds=0,
        restart_settle_delay_seconds=0,
        socket_close_timeout_seconds=0.5,
    )


@pytest.fixture
def registry_settings():
    return RegistrySettings(closed_retention_seconds=30, inactivity_timeout_seconds=300, sweep_interval_seconds=60)


@pytest.fixture
def probe_settings():
    return ProbeSettings(batch_size=10, liveness_timeout_seconds=0.05, log_max_entries=1000)


@pytest.fixture
def app_settings(hub_settings, registry_settings, probe_settings):
    return AppSettings(
        hub=hub_settings,
        registry=registry_settings,
        probe=probe_settings,
        logging=LoggingSettings(console_enabled=False, file_enabled=False),
    )


@pytest.fixture
def fake_hub():
    return FakeHub()


@pytest.fixture
def connector():
    return FakeConnector()


def logged_events(logger_mock: MagicMock, level: str = "warning") -> List[str]:
    """Event names logged at ``level`` on a mock logger."""
    return [c.args[0] for c in getattr(logger_mock, level).call_args_list]
