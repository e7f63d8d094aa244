"""
Shared aiohttp session holder for the hub's HTTP endpoints.
"""

from typing import Dict, Optional

import aiohttp

from ...core.logger import StructuredLogger
from ..config.settings import HubSettings


class HubHttpClient:
    """
    Owns (or borrows) an ``aiohttp.ClientSession`` and the browser-like headers
    the remote service expects on every request.
    """

    def __init__(self, settings: HubSettings, logger: StructuredLogger,
                 session: Optional[aiohttp.ClientSession] = None):
        self.settings = settings
        self.logger = logger
        self.session = session
        self._owns_session = session is None

    def base_headers(self) -> Dict[str, str]:
        return {
            "Accept": "*/*",
            "Origin": self.settings.origin,
            "Referer": self.settings.origin.rstrip("/") + "/",
            "User-Agent": self.settings.user_agent,
            "X-Requested-With": "XMLHttpRequest",
        }

    async def start(self) -> None:
        """Initialize HTTP session"""
        if not self.session:
            timeout = aiohttp.ClientTimeout(
                total=self.settings.http_timeout_seconds,
                connect=self.settings.http_connect_timeout_seconds
            )
            self.session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
            self.logger.info("hub_http.started")

    def use_session(self, session: aiohttp.ClientSession) -> None:
        """Borrow a session owned by someone else; ``stop()`` will not close it."""
        self.session = session
        self._owns_session = False

    async def stop(self) -> None:
        """Close HTTP session if this client created it"""
        if self.session and self._owns_session:
            await self.session.close()
            self.logger.info("hub_http.stopped")
        self.session = None

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if not self.session:
            await self.start()
        return self.session
