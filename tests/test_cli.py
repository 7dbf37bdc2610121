"""Tests for the command-line interface."""

from __future__ import annotations

from pathlib import Path

from typer.testing import CliRunner

from wolog.cli import app


runner = CliRunner()


def test_check_reports_failures(content_dir: Path, write_article, monkeypatch) -> None:
    monkeypatch.delenv("DATABASE_URL", raising=False)
    write_article("good")
    (content_dir / "bad.md").write_text("no front matter\n", encoding="utf-8")

    result = runner.invoke(app, ["check", "--content-dir", str(content_dir)])

    assert result.exit_code == 1
    assert "1 articles, 0 drafts, 1 failures" in result.output
    assert "bad" in result.output


def test_feed_writes_file(content_dir: Path, write_article, tmp_path: Path, monkeypatch) -> None:
    monkeypatch.delenv("DATABASE_URL", raising=False)
    write_article("blog/post", title="Post")
    output = tmp_path / "out" / "feed.xml"

    result = runner.invoke(app, ["feed", "blog", "--content-dir", str(content_dir), "--output", str(output)])

    assert result.exit_code == 0, result.output
    assert "<title>Post</title>" in output.read_text(encoding="utf-8")


def test_search_rejects_unknown_sort(content_dir: Path, write_article, monkeypatch) -> None:
    monkeypatch.delenv("DATABASE_URL", raising=False)
    write_article("post")

    result = runner.invoke(app, ["search", "--sort", "Sideways", "--content-dir", str(content_dir)])

    assert result.exit_code == 2


def test_tags_rejects_blank_tag(content_dir: Path, write_article, monkeypatch) -> None:
    monkeypatch.delenv("DATABASE_URL", raising=False)
    write_article("post", tags=["x"])

    result = runner.invoke(app, ["tags", " ", "--content-dir", str(content_dir)])

    assert result.exit_code == 2
    assert "at least one tag" in result.output
