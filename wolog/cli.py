"""
Command-line interface for wolog.

Uses Typer to expose the publishing core for inspection and maintenance:
checking a content directory, running searches, writing feeds and driving
webmention verification and sending by hand. Loads .env so DATABASE_URL can
live next to the content.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from .config import AppConfig, load_config
from .core.types import SearchQuery
from .errors import QueryValidationError, ReloadFailure
from .logging_utils import setup_logging
from .site import Site
from .views import ArticleSummaryView

app = typer.Typer(add_completion=False, help="Markdown publishing core with webmentions.")
console = Console()

ConfigOption = typer.Option(None, "--config", "-c", exists=True, help="YAML config file.")
ContentOption = typer.Option(None, "--content-dir", "-d", help="Override site.content_dir.")
LogLevelOption = typer.Option(None, "--log-level", help="Logging level.")


def _load(config: Path | None, content_dir: Path | None, log_level: str | None) -> AppConfig:
    load_dotenv()
    cfg = load_config(str(config) if config else None)
    if content_dir is not None:
        cfg.site.content_dir = str(content_dir)
    if log_level:
        cfg.logging.level = log_level
    setup_logging(cfg.logging)
    return cfg


def _open_site(cfg: AppConfig) -> Site:
    site = Site(cfg)
    if site.reload() is None:
        console.print(f"[red]Could not load articles from {cfg.site.content_dir}[/red]")
        raise typer.Exit(code=1)
    return site


def _print_articles(title: str, articles: list[ArticleSummaryView]) -> None:
    table = Table(title=title)
    table.add_column("Path")
    table.add_column("Title")
    table.add_column("Created")
    table.add_column("Updated")
    table.add_column("Tags")
    for article in articles:
        table.add_row(
            article.path,
            article.title,
            article.created.isoformat(),
            article.updated.isoformat(),
            ", ".join(article.tags),
        )
    console.print(table)


@app.command()
def check(
    config: Path | None = ConfigOption,
    content_dir: Path | None = ContentOption,
    log_level: str | None = LogLevelOption,
):
    """Load the corpus once and report what would be published.

    Exits with status 1 when any document failed to parse.
    """
    cfg = _load(config, content_dir, log_level)
    site = Site(cfg)
    try:
        result = site.loader.load()
    except ReloadFailure as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)

    console.print(
        f"{len(result.articles)} articles, {len(result.drafts)} drafts, {len(result.failures)} failures"
    )
    for failure in result.failures:
        console.print(f"[yellow]{failure.path}[/yellow]: {failure.reason}")
    if result.failures:
        raise typer.Exit(code=1)


@app.command("search")
def search_command(
    path_prefix: str = typer.Argument("", help="Only articles under this path."),
    title: str | None = typer.Option(None, "--title", help="Case-insensitive title substring."),
    created_since: str | None = typer.Option(None, "--created-since"),
    created_before: str | None = typer.Option(None, "--created-before"),
    updated_since: str | None = typer.Option(None, "--updated-since"),
    updated_before: str | None = typer.Option(None, "--updated-before"),
    tag: list[str] = typer.Option([], "--tag", "-t", help="Match any of these tags."),
    sort: str = typer.Option("CreateDesc", "--sort", help="CreateAsc, CreateDesc, UpdateAsc, UpdateDesc, NameAsc or NameDesc."),
    config: Path | None = ConfigOption,
    content_dir: Path | None = ContentOption,
    log_level: str | None = LogLevelOption,
):
    """Search listed articles."""
    site = _open_site(_load(config, content_dir, log_level))
    try:
        view = site.search(
            path_prefix=path_prefix,
            title_filter=title,
            created_since=created_since,
            created_before=created_before,
            updated_since=updated_since,
            updated_before=updated_before,
            tags=tag,
            sort_type=sort,
        )
    except QueryValidationError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=2)
    _print_articles(f"{len(view)} results ({view.sort_type.value})", view.results)


@app.command()
def tags(
    tag: list[str] = typer.Argument(..., help="Tags; articles with any of them are listed."),
    path_prefix: str = typer.Option("", "--prefix"),
    config: Path | None = ConfigOption,
    content_dir: Path | None = ContentOption,
    log_level: str | None = LogLevelOption,
):
    """List articles carrying any of the given tags, newest first."""
    site = _open_site(_load(config, content_dir, log_level))
    try:
        view = site.tags(tag, path_prefix=path_prefix)
    except QueryValidationError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=2)
    _print_articles("Tagged " + ", ".join(view.tags), view.articles)


@app.command("tag-list")
def tag_list(
    config: Path | None = ConfigOption,
    content_dir: Path | None = ContentOption,
    log_level: str | None = LogLevelOption,
):
    """Show every tag with its article count."""
    site = _open_site(_load(config, content_dir, log_level))
    table = Table(title="Tags")
    table.add_column("Tag")
    table.add_column("Articles", justify="right")
    for name, count in site.tag_directory().tags:
        table.add_row(name, str(count))
    console.print(table)


@app.command()
def feed(
    path_prefix: str = typer.Argument("", help="Only articles under this path."),
    limit: int | None = typer.Option(None, "--limit", "-n"),
    tag: list[str] = typer.Option([], "--tag", "-t"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write here instead of stdout."),
    config: Path | None = ConfigOption,
    content_dir: Path | None = ContentOption,
    log_level: str | None = LogLevelOption,
):
    """Render the RSS feed."""
    site = _open_site(_load(config, content_dir, log_level))
    query = SearchQuery(tags=frozenset(tag)) if tag else None
    try:
        document = site.feed(path_prefix=path_prefix, query=query, limit=limit)
    except QueryValidationError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=2)
    if output is None:
        typer.echo(document, nl=False)
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(document, encoding="utf-8")
    console.print(f"Feed written: {output}")


@app.command()
def receive(
    source: str = typer.Argument(..., help="URL of the page that links to us."),
    target: str = typer.Argument(..., help="URL or path of our article."),
    config: Path | None = ConfigOption,
    content_dir: Path | None = ContentOption,
    log_level: str | None = LogLevelOption,
):
    """Accept a webmention and verify it immediately."""
    site = _open_site(_load(config, content_dir, log_level))

    async def _run():
        await site.webmentions.start()
        try:
            response = await site.receive_webmention(source, target)
            await site.webmentions.join()
        finally:
            await site.webmentions.stop()
        return response

    response = asyncio.run(_run())
    if not response.accepted:
        console.print(f"[red]Refused: {response.reason}[/red]")
        raise typer.Exit(code=1)
    record = site.store.get(response.target_url, source)
    status = record.status.value if record else "unknown"
    reason = f" ({record.reason.value})" if record and record.reason else ""
    console.print(f"{source} -> {response.target_url}: {status}{reason}")


@app.command()
def recheck(
    config: Path | None = ConfigOption,
    content_dir: Path | None = ContentOption,
    log_level: str | None = LogLevelOption,
):
    """Re-verify every accepted webmention, revoking those whose link is gone."""
    site = _open_site(_load(config, content_dir, log_level))

    async def _run():
        await site.webmentions.start()
        try:
            return await site.webmentions.recheck_all()
        finally:
            await site.webmentions.stop()

    records = asyncio.run(_run())
    table = Table(title=f"Rechecked {len(records)} mentions")
    table.add_column("Target")
    table.add_column("Source")
    table.add_column("Status")
    for record in records:
        table.add_row(record.target_url, record.source_url, record.status.value)
    console.print(table)


@app.command("send-mentions")
def send_mentions(
    path_prefix: str = typer.Argument("", help="Only articles under this path."),
    config: Path | None = ConfigOption,
    content_dir: Path | None = ContentOption,
    log_level: str | None = LogLevelOption,
):
    """Notify every site linked from listed articles."""
    site = _open_site(_load(config, content_dir, log_level))
    paths = [summary.path for summary in site.search(path_prefix=path_prefix).results]

    async def _run():
        await site.webmentions.start()
        try:
            attempts = []
            for path in paths:
                attempts.extend(await site.webmentions.send_for(site.index.get(path)))
            return attempts
        finally:
            await site.webmentions.stop()

    attempts = asyncio.run(_run())
    table = Table(title=f"{len(attempts)} notifications")
    table.add_column("Source")
    table.add_column("Target")
    table.add_column("Status")
    table.add_column("Endpoint")
    for attempt in attempts:
        table.add_row(attempt.source_url, attempt.target_url, attempt.status.value, attempt.endpoint or "")
    console.print(table)


@app.command()
def mentions(
    path: str = typer.Argument(..., help="Article path."),
    config: Path | None = ConfigOption,
    content_dir: Path | None = ContentOption,
    log_level: str | None = LogLevelOption,
):
    """List verified webmentions of an article."""
    cfg = _load(config, content_dir, log_level)
    site = _open_site(cfg)
    try:
        view = site.article(path)
    except LookupError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)
    if not view.mentioners:
        console.print(f"No verified mentions of {view.url}")
        return
    for source in view.mentioners:
        console.print(source)


if __name__ == "__main__":
    app()
