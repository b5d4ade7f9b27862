from __future__ import annotations

import json
from pathlib import Path

from link_previews.core.config import (
    AppConfig,
    PreviewSettings,
    normalize_color_mode,
    normalize_style,
    valid_length_limit,
)


def test_defaults() -> None:
    s = PreviewSettings()
    assert s.preview_style == "compact"
    assert s.length_limit() == 150
    assert s.color_mode() == "subtle"
    detailed = PreviewSettings(preview_style="detailed")
    assert detailed.length_limit() == 300
    assert detailed.color_mode() == "none"


def test_out_of_domain_budget_uses_style_default() -> None:
    assert PreviewSettings(max_inline_length=0).length_limit() == 150
    assert PreviewSettings(preview_style="detailed", max_card_length=10_000).length_limit() == 300
    assert PreviewSettings(max_inline_length=40).length_limit() == 40


def test_value_normalisers() -> None:
    assert normalize_style("Card") == "detailed"
    assert normalize_style("inline") == "compact"
    assert normalize_style("triangle") is None
    assert normalize_color_mode("#abc") == "#abc"
    assert normalize_color_mode("#abcd") is None
    assert valid_length_limit(float("nan")) is None
    assert valid_length_limit(True) is None
    assert valid_length_limit("120") == 120


def test_from_dict_ignores_invalid_values() -> None:
    s = PreviewSettings.from_dict(
        {
            "preview_style": "card",
            "max_card_length": -5,
            "keep_emoji": "no",
            "request_timeout_ms": 0,
            "unknown": 1,
        }
    )
    assert s.preview_style == "detailed"
    assert s.max_card_length == 300
    assert s.keep_emoji is True
    assert s.request_timeout_ms == 0


def test_app_config_round_trip(tmp_path: Path) -> None:
    cfg = AppConfig.load(tmp_path)
    assert cfg.previews == PreviewSettings()
    cfg.previews = PreviewSettings(preview_style="detailed", show_favicon=False)
    cfg.save()

    reloaded = AppConfig.load(tmp_path)
    assert reloaded.previews.preview_style == "detailed"
    assert reloaded.previews.show_favicon is False
    assert reloaded.paths.db_path.parent == tmp_path


def test_app_config_unreadable_file_uses_defaults(tmp_path: Path) -> None:
    (tmp_path / "config.json").write_text("{not json", encoding="utf-8")
    assert AppConfig.load(tmp_path).previews == PreviewSettings()
    (tmp_path / "config.json").write_text(json.dumps({"previews": "x"}), encoding="utf-8")
    assert AppConfig.load(tmp_path).previews == PreviewSettings()
