from __future__ import annotations

import asyncio
import logging
from urllib.parse import urlencode

import aiohttp

from link_previews.core.config import PreviewSettings
from link_previews.core.favicon_cache import MISSING, FaviconCache
from link_previews.core.fetcher import FetchResponse, MetadataFetcher
from link_previews.core.utils import origin_of, parse_url

logger = logging.getLogger(__name__)


FAVICON_SERVICE_URL = "https://www.google.com/s2/favicons"
FAVICON_SIZE = "128"
IMAGE_ACCEPT = "image/avif,image/webp,image/png,image/svg+xml,image/*;q=0.8,*/*;q=0.5"


def favicon_service_url(page_url: str) -> str | None:
    parsed = parse_url(page_url)
    if parsed is None or not parsed.host:
        return None
    return f"{FAVICON_SERVICE_URL}?{urlencode({'domain': parsed.host, 'sz': FAVICON_SIZE})}"


def native_favicon_url(page_url: str) -> str | None:
    origin = origin_of(page_url)
    return f"{origin}/favicon.ico" if origin else None


def _is_image(resp: FetchResponse) -> bool:
    return "image" in resp.content_type


class FaviconResolver:
    """Find a favicon for a page's origin, consulting the persistent cache first."""

    def __init__(
        self,
        *,
        fetcher: MetadataFetcher,
        settings: PreviewSettings,
        cache: FaviconCache | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._settings = settings
        self._cache = cache
        self._validated: dict[str, str | None] = {}

    @property
    def cache(self) -> FaviconCache | None:
        return self._cache

    def update_settings(self, settings: PreviewSettings) -> None:
        self._settings = settings

    def clear_validation_cache(self) -> None:
        self._validated.clear()

    async def resolve(self, page_url: str, declared: str | None = None) -> str | None:
        origin = origin_of(page_url)
        if origin is None:
            return None

        if self._cache is not None:
            cached = self._cache.get(origin)
            if cached is not MISSING:
                return cached

        result: str | None = None
        if self._settings.use_favicon_service:
            result = favicon_service_url(page_url)
        else:
            for candidate in (declared, native_favicon_url(page_url)):
                result = await self._validate(candidate)
                if result:
                    break

        if self._cache is not None:
            self._cache.set(origin, result)
        return result

    async def _validate(self, candidate: str | None) -> str | None:
        if not candidate:
            return None
        if candidate.startswith("data:"):
            return candidate
        if candidate in self._validated:
            return self._validated[candidate]

        headers = {"Accept": IMAGE_ACCEPT}
        verified: str | None = None
        try:
            resp = await self._fetcher.request(candidate, method="HEAD", headers=headers)
            if 200 <= resp.status < 400 and _is_image(resp):
                verified = candidate
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError):
            # Some servers reject HEAD outright; retry once with GET.
            try:
                resp = await self._fetcher.request(candidate, headers=headers)
                if 200 <= resp.status < 400 and _is_image(resp):
                    verified = candidate
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
                logger.debug("Favicon probe failed for %s: %s", candidate, e)

        self._validated[candidate] = verified
        return verified
