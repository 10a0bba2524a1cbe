"""
Async client for the Attended SysUpgrade (ASU) build API.
"""

import asyncio
import logging
import time
from typing import Optional
from urllib.parse import quote

import aiohttp
from pydantic import ValidationError

from asu_cli import __version__
from asu_cli.exceptions import BuildRequestError
from asu_cli.models.build import BuildRequest, BuildResponse, parse_build_response

log = logging.getLogger(__name__)


class AsuAPIClient:
    """
    Async client for the ASU JSON API (v1).

    Both calls return either a finished `BuildResult` or a `BuildStatus`;
    the HTTP status code decides which. Transport and decoding failures are
    raised as `BuildRequestError`. There is no retry or backoff here: the
    service rate-limits submissions itself.
    """

    API_PATH = "/api/v1/build"

    def __init__(
        self,
        server: str,
        session: Optional[aiohttp.ClientSession] = None,
        max_connections: int = 16,
    ):
        """
        Initializes the API client.

        Args:
            server: Base URL of the build service, without trailing slash.
            session: An existing session to share. The client only closes
                sessions it created itself.
            max_connections: Connection pool limit for a self-created session.
        """
        self.server = server.rstrip("/")
        self.max_connections = max_connections
        self._session = session
        self._owns_session = session is None

    async def _initialize_session(self) -> aiohttp.ClientSession:
        """Ensures an active aiohttp session is available."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=self.max_connections,
                ttl_dns_cache=300,
                enable_cleanup_closed=True,
            )
            self._session = aiohttp.ClientSession(
                connector=connector,
                headers={"User-Agent": f"asu-cli/{__version__}"},
                timeout=aiohttp.ClientTimeout(total=None, sock_connect=15, sock_read=90),
            )
            self._owns_session = True
        return self._session

    async def session(self) -> aiohttp.ClientSession:
        """The underlying session, shared with the image downloader."""
        return await self._initialize_session()

    async def close(self) -> None:
        """Gracefully closes the aiohttp session if this client created it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
            log.debug("API client session closed.")

    def store_url(self, bin_dir: str, image_name: str) -> str:
        """URL of a built image in the artifact store."""
        return f"{self.server}/store/{bin_dir}/{image_name}"

    async def _call(self, method: str, url: str, **kwargs) -> BuildResponse:
        session = await self._initialize_session()
        start_time = time.monotonic()
        try:
            async with session.request(method, url, **kwargs) as r:
                body = await r.read()
                duration_ms = (time.monotonic() - start_time) * 1000
                log.debug(f"{method} {url} -> {r.status} ({duration_ms:.0f} ms)")
                return parse_build_response(r.status, body)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise BuildRequestError(str(e) or type(e).__name__) from e
        except ValidationError as e:
            first = e.errors()[0]
            raise BuildRequestError(
                f"invalid response from {url}: {first['msg']}"
            ) from e

    async def submit_build(self, request: BuildRequest) -> BuildResponse:
        """Submits a new build request."""
        return await self._call(
            "POST", self.server + self.API_PATH, json=request.model_dump()
        )

    async def fetch_build_status(self, request_hash: str) -> BuildResponse:
        """Polls an already submitted build by its request hash."""
        url = f"{self.server}{self.API_PATH}/{quote(request_hash, safe='')}"
        return await self._call("GET", url)
