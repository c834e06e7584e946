"""
Fetch gateway for HLTV pages.

Two strategies:
- direct: a curl_cffi request impersonating Chrome, with browser headers
- flaresolverr: the URL is handed to a local FlareSolverr instance, which
  solves the Cloudflare challenge and returns the page inside a JSON envelope

Successful bodies go into the ResponseCache; failures never do.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from curl_cffi import CurlError
from curl_cffi.requests import AsyncSession

from .cache import ResponseCache

logger = logging.getLogger(__name__)

MODE_DIRECT = 'direct'
MODE_FLARESOLVERR = 'flaresolverr'
FETCH_MODES = (MODE_DIRECT, MODE_FLARESOLVERR)

DEFAULT_FLARESOLVERR_URL = 'http://localhost:8191'
DIRECT_TIMEOUT = 30
FLARESOLVERR_TIMEOUT = 60

BROWSER_HEADERS = {
    'User-Agent': 'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36',
    'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8',
    'Accept-Language': 'en-GB,en;q=0.9',
}


class FetchError(Exception):
    """Raised when a page cannot be obtained from the origin or FlareSolverr."""


@dataclass
class SessionHandle:
    """Holds the FlareSolverr session id, if one is live."""
    token: Optional[str] = None

    @property
    def active(self) -> bool:
        return bool(self.token)


class FetchGateway:
    """Cache-checked page fetching with an optional FlareSolverr session."""

    def __init__(
        self,
        cache: ResponseCache,
        mode: str = MODE_DIRECT,
        flaresolverr_url: str = DEFAULT_FLARESOLVERR_URL,
        session: Optional[SessionHandle] = None,
        direct_timeout: float = DIRECT_TIMEOUT,
        flaresolverr_timeout: float = FLARESOLVERR_TIMEOUT,
        session_factory=AsyncSession,
        impersonate: str = 'chrome',
    ):
        if mode not in FETCH_MODES:
            raise ValueError(f"Unknown fetch mode: {mode!r} (expected one of {', '.join(FETCH_MODES)})")
        self.cache = cache
        self.mode = mode
        self.flaresolverr_url = flaresolverr_url.rstrip('/')
        self.session = session or SessionHandle()
        self.direct_timeout = direct_timeout
        self.flaresolverr_timeout = flaresolverr_timeout
        self._session_factory = session_factory
        self._impersonate = impersonate

    @property
    def control_url(self) -> str:
        return f"{self.flaresolverr_url}/v1"

    async def fetch(self, url: str) -> str:
        """Return the page HTML for url, from cache when fresh."""
        cached = self.cache.get(url)
        if cached is not None:
            logger.debug(f"Cache hit: {url}")
            return cached

        if self.mode == MODE_FLARESOLVERR:
            body = await self._fetch_via_flaresolverr(url)
        else:
            body = await self._fetch_direct(url)

        self.cache.put(url, body)
        return body

    async def _fetch_direct(self, url: str) -> str:
        logger.info(f"Fetching {url}")
        try:
            async with self._session_factory(impersonate=self._impersonate) as http:
                response = await http.get(url, headers=BROWSER_HEADERS, timeout=self.direct_timeout)
        except CurlError as e:
            raise FetchError(f"Failed to fetch {url}: {e}") from e

        if not 200 <= response.status_code < 300:
            reason = getattr(response, 'reason', '') or ''
            raise FetchError(f"Failed to fetch {url}: {response.status_code} {reason}".rstrip())
        return response.text

    async def _fetch_via_flaresolverr(self, url: str) -> str:
        logger.info(f"Fetching {url} via FlareSolverr")
        payload = {
            'cmd': 'request.get',
            'url': url,
            'maxTimeout': int(self.flaresolverr_timeout * 1000),
        }
        if self.session.active:
            payload['session'] = self.session.token

        envelope = await self._command(payload)
        solution = envelope.get('solution') or {}
        status = solution.get('status')
        if isinstance(status, int) and status >= 400:
            raise FetchError(f"Failed to fetch {url}: {status} (via FlareSolverr)")
        html = solution.get('response')
        if not isinstance(html, str):
            raise FetchError(f"FlareSolverr returned no page body for {url}")
        return html

    async def _command(self, payload: dict) -> dict:
        """POST one command to the FlareSolverr control API and check its envelope."""
        try:
            async with self._session_factory() as http:
                response = await http.post(self.control_url, json=payload, timeout=self.flaresolverr_timeout)
        except CurlError as e:
            raise FetchError(f"FlareSolverr unreachable at {self.control_url}: {e}") from e

        try:
            envelope = response.json()
        except ValueError as e:
            raise FetchError(f"FlareSolverr returned an invalid response (HTTP {response.status_code})") from e
        if not isinstance(envelope, dict):
            raise FetchError(f"FlareSolverr returned an invalid response (HTTP {response.status_code})")

        if envelope.get('status') != 'ok':
            message = envelope.get('message') or f"status {envelope.get('status')!r}"
            raise FetchError(f"FlareSolverr {payload['cmd']} failed: {message}")
        return envelope

    async def start(self) -> None:
        """Create a FlareSolverr session. Failure leaves fetches session-less."""
        if self.mode != MODE_FLARESOLVERR or self.session.active:
            return
        try:
            envelope = await self._command({'cmd': 'sessions.create'})
        except FetchError as e:
            logger.warning(f"Could not create FlareSolverr session, continuing without one: {e}")
            return
        token = envelope.get('session')
        if not token:
            logger.warning("FlareSolverr did not return a session id, continuing without one")
            return
        self.session.token = token
        logger.info(f"FlareSolverr session created: {token}")

    async def stop(self) -> None:
        """Destroy the live FlareSolverr session, if any. Never raises."""
        token = self.session.token
        if not token:
            return
        self.session.token = None
        try:
            await self._command({'cmd': 'sessions.destroy', 'session': token})
        except FetchError as e:
            logger.warning(f"Could not destroy FlareSolverr session {token}: {e}")
            return
        logger.info(f"FlareSolverr session destroyed: {token}")
