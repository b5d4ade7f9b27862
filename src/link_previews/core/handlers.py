"""
Enrichment handler contract.

A handler refines the metadata parsed from a page for one family of sites::

    class ForumHandler:
        def matches(self, ctx: HandlerContext) -> bool:
            return ctx.url.host == "forum.example"

        async def enrich(self, ctx: HandlerContext) -> None:
            resp = await ctx.request(str(ctx.url.with_path("/api/thread.json")))
            ctx.metadata.description = ctx.sanitize_text(resp.text)

Handlers run in registration order after HTML parsing; each may overwrite any
field of ``ctx.metadata`` (the last writer wins). ``matches`` may be a plain
function or a coroutine. A handler that raises is logged and skipped.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol

from yarl import URL

from link_previews.core.fetcher import FetchResponse
from link_previews.core.models import MetadataDraft


RequestFn = Callable[..., Awaitable[FetchResponse]]


@dataclass
class HandlerContext:
    original_url: str
    url: URL
    metadata: MetadataDraft
    request: RequestFn
    sanitize_text: Callable[[str | None], str | None]


class MetadataHandler(Protocol):
    def matches(self, ctx: HandlerContext) -> bool | Awaitable[bool]: ...

    async def enrich(self, ctx: HandlerContext) -> None: ...


async def handler_matches(handler: MetadataHandler, ctx: HandlerContext) -> bool:
    result = handler.matches(ctx)
    if inspect.isawaitable(result):
        result = await result
    return bool(result)
