from __future__ import annotations

import logging
from dataclasses import dataclass, field

import aiohttp
from aiolimiter import AsyncLimiter

from link_previews.core.config import PreviewSettings

logger = logging.getLogger(__name__)


FINAL_URL_HEADER = "x-final-url"

DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}


@dataclass(frozen=True)
class FetchResponse:
    url: str
    status: int
    text: str
    headers: dict[str, str] = field(default_factory=dict)

    def header(self, name: str) -> str | None:
        lower = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lower:
                return value
        return None

    @property
    def final_url(self) -> str:
        """Redirect target, preferring an explicit ``x-final-url`` header."""

        return self.header(FINAL_URL_HEADER) or self.url

    @property
    def content_type(self) -> str:
        return (self.header("content-type") or "").lower()


def _build_limiter(requests_per_second: float) -> AsyncLimiter:
    # aiolimiter takes one token per request; below 1 rps the period is stretched
    # instead, since a fractional max_rate can never be acquired.
    rps = max(0.1, float(requests_per_second))
    if rps >= 1.0:
        return AsyncLimiter(max_rate=rps, time_period=1.0)
    return AsyncLimiter(max_rate=1.0, time_period=1.0 / rps)


class MetadataFetcher:
    """HTTP GET/HEAD with an identifying User-Agent and an optional timeout.

    Raises ``aiohttp.ClientError`` / ``asyncio.TimeoutError`` on transport
    failures; HTTP error statuses are returned, not raised.
    """

    def __init__(self, *, session: aiohttp.ClientSession, settings: PreviewSettings) -> None:
        self._session = session
        self._settings = settings
        self._limiter = _build_limiter(settings.requests_per_second)

    def update_settings(self, settings: PreviewSettings) -> None:
        if settings.requests_per_second != self._settings.requests_per_second:
            self._limiter = _build_limiter(settings.requests_per_second)
        self._settings = settings

    def build_headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        headers = dict(DEFAULT_HEADERS)
        headers["User-Agent"] = self._settings.user_agent
        if extra:
            headers.update(extra)
        return headers

    def _timeout(self, timeout_ms: int | None) -> aiohttp.ClientTimeout:
        ms = self._settings.request_timeout_ms if timeout_ms is None else timeout_ms
        if ms <= 0:
            return aiohttp.ClientTimeout(total=None)
        return aiohttp.ClientTimeout(total=ms / 1000.0)

    async def request(
        self,
        url: str,
        *,
        method: str = "GET",
        headers: dict[str, str] | None = None,
        timeout_ms: int | None = None,
    ) -> FetchResponse:
        async with self._limiter:
            async with self._session.request(
                method,
                url,
                headers=self.build_headers(headers),
                timeout=self._timeout(timeout_ms),
                allow_redirects=True,
            ) as resp:
                text = "" if method.upper() == "HEAD" else await resp.text(errors="ignore")
                response_headers = {k: v for k, v in resp.headers.items()}
                final_url = str(resp.url)
                if final_url != url and FINAL_URL_HEADER not in {k.lower() for k in response_headers}:
                    response_headers[FINAL_URL_HEADER] = final_url
                logger.debug("%s %s -> %s", method, url, resp.status)
                return FetchResponse(url=url, status=int(resp.status), text=text, headers=response_headers)
