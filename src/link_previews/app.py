from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path

import aiohttp

from link_previews.core.config import PREVIEW_STYLES, AppConfig, normalize_style
from link_previews.core.decorations import Decoration, ErrorIndicator, PreviewContent, build_decorations
from link_previews.core.favicon_cache import FaviconCache
from link_previews.core.favicon_resolver import FaviconResolver
from link_previews.core.fetcher import MetadataFetcher
from link_previews.core.logging_config import configure_logging
from link_previews.core.matching import CodeRegions, scan
from link_previews.core.page_config import effective_settings
from link_previews.core.service import LinkPreviewService
from link_previews.core.storage import Database, KvBlobStore

logger = logging.getLogger(__name__)


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="link-previews",
        description="Fetch link metadata for a Markdown file and print the planned previews.",
    )
    parser.add_argument("file", type=Path)
    parser.add_argument("--cursor", type=int, default=None, help="cursor offset; hides the compact preview under it")
    parser.add_argument(
        "--style",
        choices=PREVIEW_STYLES + ("inline", "card"),
        default=None,
        help="preview style; overrides the config file and the page block",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


def _describe(decoration: Decoration) -> str:
    span = f"{decoration.start}-{decoration.end}"
    payload = decoration.payload
    if isinstance(payload, ErrorIndicator):
        return f"{span} {decoration.kind} ! {payload.tooltip}"
    if isinstance(payload, PreviewContent):
        if payload.is_loading:
            return f"{span} {decoration.kind} (loading) {payload.title}"
        extra = f" [{payload.site_name}]" if payload.site_name else ""
        return f"{span} {decoration.kind} {payload.text}{extra}"
    return f"{span} {decoration.kind}"


async def _run(config: AppConfig, text: str, cursor: int | None, style: str | None = None) -> list[Decoration]:
    db = Database(config.paths.db_path)
    db.initialize_sync()
    favicons = FaviconCache(KvBlobStore(db))
    await favicons.load()

    settings = effective_settings(text, config.previews)
    if style:
        # The command line wins over both the config file and the page block.
        settings = replace(settings, preview_style=style)
    regions = CodeRegions.from_text(text)

    async with aiohttp.ClientSession() as session:
        fetcher = MetadataFetcher(session=session, settings=settings)
        service = LinkPreviewService(
            fetcher=fetcher,
            settings=settings,
            favicon_resolver=FaviconResolver(fetcher=fetcher, settings=settings, cache=favicons),
        )
        try:
            urls = {m.url for m in scan(text, regions.is_inside)}
            logger.info("Fetching metadata for %d URL(s)", len(urls))
            await asyncio.gather(*(service.get_metadata(url) for url in urls))
            return build_decorations(
                text,
                settings,
                cursor,
                metadata=service,
                is_inside_code_region=regions.is_inside,
            )
        finally:
            await service.aclose()


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    config = AppConfig.load()
    configure_logging(config, verbose=args.verbose)

    try:
        text = args.file.read_text(encoding="utf-8")
    except OSError as e:
        print(f"link-previews: cannot read {args.file}: {e}", file=sys.stderr)
        return 2

    for decoration in asyncio.run(_run(config, text, args.cursor, normalize_style(args.style))):
        print(_describe(decoration))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
