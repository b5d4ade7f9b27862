from __future__ import annotations

import asyncio
import logging

import aiohttp

from link_previews.core.config import PreviewSettings
from link_previews.core.favicon_resolver import FaviconResolver
from link_previews.core.fetcher import MetadataFetcher
from link_previews.core.handlers import HandlerContext, MetadataHandler, handler_matches
from link_previews.core.html_metadata import parse_html_metadata
from link_previews.core.models import LinkMetadata, MetadataDraft
from link_previews.core.utils import hostname_title, normalize_url, parse_url, sanitize_or_none
from link_previews.core.validation import is_soft_404

logger = logging.getLogger(__name__)


TIMEOUT_REASON = "Request timed out"
SOFT_404_ERROR = "http:Soft 404"


def network_error(reason: str) -> str:
    return f"network:{reason}"


def http_error(status: int) -> str:
    return f"http:{status}"


def _is_html(content_type: str) -> bool:
    # Servers that omit the header are given the benefit of the doubt.
    return not content_type or "html" in content_type


def _network_reason(exc: BaseException) -> str:
    if isinstance(exc, asyncio.TimeoutError):
        return TIMEOUT_REASON
    return str(exc) or exc.__class__.__name__


class LinkPreviewService:
    """Per-URL metadata cache with one in-flight fetch per URL.

    ``get_metadata`` is not a coroutine: it checks and registers pending
    fetches synchronously and returns an awaitable future, so two callers in
    the same tick always share one request.
    """

    def __init__(
        self,
        *,
        fetcher: MetadataFetcher,
        settings: PreviewSettings,
        handlers: tuple[MetadataHandler, ...] | list[MetadataHandler] = (),
        favicon_resolver: FaviconResolver | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._settings = settings
        self._handlers: list[MetadataHandler] = list(handlers)
        self._favicons = favicon_resolver
        self._cache: dict[str, LinkMetadata] = {}
        self._pending: dict[str, asyncio.Task[LinkMetadata]] = {}
        self._generation = 0

    @property
    def settings(self) -> PreviewSettings:
        return self._settings

    def get_cached_metadata(self, url: str) -> LinkMetadata | None:
        return self._cache.get(normalize_url(url))

    def has_cached_metadata(self, url: str) -> bool:
        return normalize_url(url) in self._cache

    def has_pending_fetch(self, url: str) -> bool:
        return normalize_url(url) in self._pending

    def register_metadata_handler(self, handler: MetadataHandler) -> None:
        self._handlers.append(handler)

    def get_metadata(self, url: str) -> asyncio.Future[LinkMetadata]:
        key = normalize_url(url)
        loop = asyncio.get_running_loop()

        cached = self._cache.get(key)
        if cached is not None:
            done: asyncio.Future[LinkMetadata] = loop.create_future()
            done.set_result(cached)
            return done

        pending = self._pending.get(key)
        if pending is not None:
            return pending

        task = loop.create_task(self._produce(key, self._generation))
        self._pending[key] = task

        def _cleanup(t: asyncio.Task[LinkMetadata]) -> None:
            if self._pending.get(key) is t:
                del self._pending[key]

        task.add_done_callback(_cleanup)
        return task

    def schedule_fetch(self, url: str) -> None:
        """Start a fetch without waiting for it; results land in the cache."""

        self.get_metadata(url)

    def clear_cache(self) -> None:
        self._cache.clear()
        self._pending.clear()
        # Fetches already in flight finish but no longer write into the cache.
        self._generation += 1
        if self._favicons is not None:
            self._favicons.clear_validation_cache()

    def update_settings(self, settings: PreviewSettings) -> None:
        previous = self._settings
        self._settings = settings
        self._fetcher.update_settings(settings)
        if self._favicons is not None:
            self._favicons.update_settings(settings)
        if (
            previous.request_timeout_ms != settings.request_timeout_ms
            or previous.show_http_error_warnings != settings.show_http_error_warnings
        ):
            logger.info("Fetch settings changed; clearing metadata cache")
            self.clear_cache()

    async def aclose(self) -> None:
        pending = list(self._pending.values())
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        if self._favicons is not None and self._favicons.cache is not None:
            await self._favicons.cache.aclose()

    async def _produce(self, url: str, generation: int) -> LinkMetadata:
        metadata = await self._fetch_metadata(url)
        if generation == self._generation:
            self._cache[url] = metadata
        return metadata

    async def _fetch_metadata(self, url: str) -> LinkMetadata:
        settings = self._settings
        try:
            resp = await self._fetcher.request(url, timeout_ms=settings.request_timeout_ms)
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            reason = _network_reason(e)
            logger.warning("Metadata fetch failed for %s: %s", url, reason)
            return LinkMetadata(error=network_error(reason))

        final_url = resp.final_url
        if resp.status >= 400:
            logger.info("Metadata fetch for %s returned HTTP %s", url, resp.status)
            if settings.show_http_error_warnings:
                return LinkMetadata(error=http_error(resp.status))
            return LinkMetadata(title=hostname_title(final_url))

        if not _is_html(resp.content_type):
            favicon = await self._resolve_favicon(final_url, None)
            return LinkMetadata(title=hostname_title(final_url), favicon=favicon)

        parsed = parse_html_metadata(resp.text, final_url)
        if is_soft_404(resp.text, parsed, final_url):
            logger.info("Soft 404 detected for %s", url)
            if settings.show_http_error_warnings:
                return LinkMetadata(error=SOFT_404_ERROR)

        draft = MetadataDraft(
            title=parsed.title,
            description=parsed.description,
            site_name=parsed.site_name,
        )
        await self._run_handlers(url, final_url, draft)

        if not draft.title:
            draft.title = hostname_title(final_url)
        if draft.favicon is None:
            draft.favicon = await self._resolve_favicon(final_url, parsed.favicon)
        return draft.freeze()

    async def _run_handlers(self, url: str, final_url: str, draft: MetadataDraft) -> None:
        parsed_url = parse_url(final_url) or parse_url(url)
        if parsed_url is None or not self._handlers:
            return
        ctx = HandlerContext(
            original_url=url,
            url=parsed_url,
            metadata=draft,
            request=self._fetcher.request,
            sanitize_text=sanitize_or_none,
        )
        for handler in list(self._handlers):
            try:
                if await handler_matches(handler, ctx):
                    await handler.enrich(ctx)
            except Exception:
                logger.warning("Metadata handler %r failed for %s", handler, url, exc_info=True)

    async def _resolve_favicon(self, page_url: str, declared: str | None) -> str | None:
        if self._favicons is None:
            return None
        return await self._favicons.resolve(page_url, declared)
