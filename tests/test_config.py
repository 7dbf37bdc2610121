"""Tests for YAML configuration loading."""

from __future__ import annotations

from pathlib import Path

from wolog.config import IN_MEMORY_DATABASE_URL, AppConfig, StoreConfig, get_database_url, load_config


def test_defaults_without_file() -> None:
    cfg = load_config(None)

    assert cfg == AppConfig()
    assert cfg.index.rescan_seconds == 1800
    assert cfg.webmention.max_response_bytes == 0xFFFFFF
    assert cfg.webmention.bucket_capacity == 8
    assert cfg.feed.order == "created"


def test_yaml_overrides_merge_per_section(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(
        "site:\n"
        "  url: https://blog.example\n"
        "webmention:\n"
        "  workers: 8\n"
        "unknown_section:\n"
        "  ignored: true\n",
        encoding="utf-8",
    )

    cfg = load_config(str(path))

    assert cfg.site.url == "https://blog.example"
    assert cfg.site.title == "wolog"
    assert cfg.webmention.workers == 8
    assert cfg.webmention.timeout_seconds == 10.0


def test_empty_yaml_gives_defaults(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("", encoding="utf-8")
    assert load_config(str(path)) == AppConfig()


def test_database_url_precedence(monkeypatch) -> None:
    monkeypatch.delenv("DATABASE_URL", raising=False)
    assert get_database_url(StoreConfig()) == IN_MEMORY_DATABASE_URL

    monkeypatch.setenv("DATABASE_URL", "sqlite:///from-env.db")
    assert get_database_url(StoreConfig()) == "sqlite:///from-env.db"
    assert get_database_url(StoreConfig(url="sqlite:///inline.db")) == "sqlite:///inline.db"
