from __future__ import annotations

import json
import logging
import math
import os
import re
import sys
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any

from link_previews.core.models import STYLE_COMPACT, STYLE_DETAILED

logger = logging.getLogger(__name__)


PREVIEW_STYLES = (STYLE_COMPACT, STYLE_DETAILED)
STYLE_ALIASES = {
    STYLE_COMPACT: STYLE_COMPACT,
    STYLE_DETAILED: STYLE_DETAILED,
    "inline": STYLE_COMPACT,
    "card": STYLE_DETAILED,
}

MIN_LENGTH_LIMIT = 1
MAX_LENGTH_LIMIT = 5000
DEFAULT_CARD_LENGTH = 300
DEFAULT_INLINE_LENGTH = 150

_HEX_COLOR_RE = re.compile(r"^#(?:[0-9a-f]{3}|[0-9a-f]{6})$", re.IGNORECASE)

DEFAULT_USER_AGENT = "link-previews/0.1 (+metadata fetcher for inline link previews)"


def normalize_style(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    return STYLE_ALIASES.get(value.strip().lower())


def normalize_color_mode(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    v = value.strip().lower()
    if v in {"none", "subtle"}:
        return v
    if _HEX_COLOR_RE.match(v):
        return v
    return None


def valid_length_limit(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        return None
    rounded = int(round(value))
    if MIN_LENGTH_LIMIT <= rounded <= MAX_LENGTH_LIMIT:
        return rounded
    return None


@dataclass(frozen=True)
class PreviewSettings:
    preview_style: str = STYLE_COMPACT
    max_card_length: int = DEFAULT_CARD_LENGTH
    max_inline_length: int = DEFAULT_INLINE_LENGTH
    include_description: bool = True
    show_favicon: bool = True
    keep_emoji: bool = True
    inline_color_mode: str = "subtle"
    card_color_mode: str = "none"
    request_timeout_ms: int = 7000
    show_http_error_warnings: bool = True
    require_page_config: bool = False
    use_favicon_service: bool = True
    user_agent: str = DEFAULT_USER_AGENT
    requests_per_second: float = 10.0

    def length_limit(self) -> int:
        """Character budget for the active preview style."""

        if self.preview_style == STYLE_DETAILED:
            return valid_length_limit(self.max_card_length) or DEFAULT_CARD_LENGTH
        return valid_length_limit(self.max_inline_length) or DEFAULT_INLINE_LENGTH

    def color_mode(self) -> str:
        if self.preview_style == STYLE_DETAILED:
            return self.card_color_mode
        return self.inline_color_mode

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PreviewSettings:
        """Build settings from loosely-typed JSON, keeping defaults for bad values."""

        base = cls()
        updates: dict[str, Any] = {}
        style = normalize_style(data.get("preview_style"))
        if style:
            updates["preview_style"] = style
        for key in ("max_card_length", "max_inline_length"):
            if key in data:
                limit = valid_length_limit(data[key])
                if limit is not None:
                    updates[key] = limit
        for key in (
            "include_description",
            "show_favicon",
            "keep_emoji",
            "show_http_error_warnings",
            "require_page_config",
            "use_favicon_service",
        ):
            if isinstance(data.get(key), bool):
                updates[key] = data[key]
        for key in ("inline_color_mode", "card_color_mode"):
            mode = normalize_color_mode(data.get(key))
            if mode:
                updates[key] = mode
        timeout = data.get("request_timeout_ms")
        if isinstance(timeout, (int, float)) and not isinstance(timeout, bool) and math.isfinite(timeout):
            updates["request_timeout_ms"] = int(timeout)
        ua = data.get("user_agent")
        if isinstance(ua, str) and ua.strip():
            updates["user_agent"] = ua.strip()
        rps = data.get("requests_per_second")
        if isinstance(rps, (int, float)) and not isinstance(rps, bool) and math.isfinite(rps) and rps > 0:
            updates["requests_per_second"] = float(rps)
        return replace(base, **updates)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def default_app_dir() -> Path:
    override = os.environ.get("LINK_PREVIEWS_HOME")
    if override:
        return Path(override)
    if os.name == "nt":
        base = Path(os.environ.get("APPDATA") or (Path.home() / "AppData" / "Roaming"))
    elif sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        base = Path(os.environ.get("XDG_DATA_HOME") or (Path.home() / ".local" / "share"))
    return base / "link-previews"


@dataclass(frozen=True)
class AppPaths:
    app_dir: Path

    @property
    def config_path(self) -> Path:
        return self.app_dir / "config.json"

    @property
    def db_path(self) -> Path:
        return self.app_dir / "link_previews.sqlite3"

    @property
    def log_path(self) -> Path:
        return self.app_dir / "link_previews.log"


@dataclass
class AppConfig:
    paths: AppPaths
    previews: PreviewSettings = field(default_factory=PreviewSettings)

    @classmethod
    def load(cls, app_dir: Path | None = None) -> AppConfig:
        paths = AppPaths(app_dir=app_dir or default_app_dir())
        paths.app_dir.mkdir(parents=True, exist_ok=True)
        if not paths.config_path.exists():
            return cls(paths=paths)
        try:
            raw = json.loads(paths.config_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Could not read config %s (%s); using defaults", paths.config_path, e)
            return cls(paths=paths)
        previews_raw = raw.get("previews") if isinstance(raw, dict) else None
        if not isinstance(previews_raw, dict):
            return cls(paths=paths)
        return cls(paths=paths, previews=PreviewSettings.from_dict(previews_raw))

    def save(self) -> None:
        self.paths.app_dir.mkdir(parents=True, exist_ok=True)
        payload = {"previews": self.previews.to_dict()}
        tmp = self.paths.config_path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        os.replace(tmp, self.paths.config_path)


