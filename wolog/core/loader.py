"""
Corpus loading from a directory of Markdown articles.

Every load is a full, independent rebuild: the directory is scanned, each
document parsed and rendered, and a fresh snapshot produced. A malformed
document is skipped and logged; the rest of the corpus still loads.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import hashlib
import logging
from pathlib import Path
from typing import Callable

import markdown

from ..errors import ContentParseError, ReloadFailure
from ..logging_utils import log_event
from .frontmatter import parse_date, parse_flag, parse_tags, require_fields, split_front_matter
from .types import Article


logger = logging.getLogger(__name__)

MARKDOWN_SUFFIX = ".md"
MARKDOWN_EXTENSIONS = ["extra", "toc", "sane_lists"]

# Front-matter keys consumed into Article fields; everything else goes to extra.
_KNOWN_KEYS = {
    "title",
    "blurb",
    "tags",
    "created",
    "updated",
    "template",
    "hidden",
    "exclude_from_rss",
    "ready",
}


def render_markdown(body: str) -> str:
    """Convert Markdown to HTML.

    A new converter per call; markdown.Markdown instances keep state and
    are not safe to share across threads.
    """
    return markdown.Markdown(extensions=MARKDOWN_EXTENSIONS, output_format="html").convert(body)


@dataclass
class LoadResult:
    """Outcome of scanning the content directory.

    Attributes:
        articles: Successfully parsed articles keyed by path
        failures: Per-file parse errors, in scan order
        drafts: Paths skipped because they are marked not ready
    """
    articles: dict[str, Article] = field(default_factory=dict)
    failures: list[ContentParseError] = field(default_factory=list)
    drafts: list[str] = field(default_factory=list)


class ArticleLoader:
    """Builds articles from a content directory.

    Args:
        content_dir: Root of the article tree
        converter: Pure Markdown to HTML function
    """

    def __init__(self, content_dir: Path, converter: Callable[[str], str] = render_markdown):
        self.content_dir = Path(content_dir)
        self.converter = converter

    def load(self) -> LoadResult:
        """Scan and parse every Markdown document.

        Raises:
            ReloadFailure: If the directory is unreadable, or if it contains
                documents and none of them could be parsed
        """
        files = self._scan()
        result = LoadResult()

        for file_path in files:
            article_path = article_path_for(self.content_dir, file_path)
            try:
                article = self.load_file(file_path, article_path)
            except ContentParseError as exc:
                result.failures.append(exc)
                log_event(
                    logger,
                    "Skipping malformed article",
                    level=logging.WARNING,
                    event="content_parse_failed",
                    article=exc.path,
                    reason=exc.reason,
                )
                continue
            if article is None:
                result.drafts.append(article_path)
                log_event(logger, "Skipping draft", event="content_draft", article=article_path)
                continue
            result.articles[article.path] = article

        if files and not result.articles and len(result.failures) == len(files):
            raise ReloadFailure(
                f"all {len(files)} documents in {self.content_dir} failed to parse"
            )
        return result

    def load_file(self, file_path: Path, article_path: str) -> Article | None:
        """Parse one document. Returns None for drafts (ready: false).

        Raises:
            ContentParseError: If the document cannot become an Article
        """
        try:
            text = file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ContentParseError(article_path, f"unreadable: {exc}") from exc

        meta, body = split_front_matter(article_path, text)
        if not parse_flag(article_path, "ready", meta.get("ready"), default=True):
            return None
        require_fields(article_path, meta)

        created = parse_date(article_path, "created", meta["created"])
        updated = parse_date(article_path, "updated", meta["updated"])
        if updated < created:
            raise ContentParseError(article_path, f"updated {updated} is before created {created}")

        try:
            rendered = self.converter(body)
        except Exception as exc:  # noqa: BLE001
            raise ContentParseError(article_path, f"conversion failed: {exc}") from exc

        return Article(
            path=article_path,
            title=str(meta["title"]).strip(),
            blurb=str(meta.get("blurb") or "").strip(),
            tags=parse_tags(article_path, meta.get("tags")),
            created=created,
            updated=updated,
            rendered_content=rendered,
            template=str(meta.get("template") or "article"),
            hidden=parse_flag(article_path, "hidden", meta.get("hidden")),
            exclude_from_rss=parse_flag(article_path, "exclude_from_rss", meta.get("exclude_from_rss")),
            extra={key: value for key, value in meta.items() if key not in _KNOWN_KEYS},
        )

    def _scan(self) -> list[Path]:
        if not self.content_dir.is_dir():
            raise ReloadFailure(f"content directory {self.content_dir} is not readable")
        try:
            return sorted(_iter_markdown(self.content_dir))
        except OSError as exc:
            raise ReloadFailure(f"scanning {self.content_dir} failed: {exc}") from exc


def _iter_markdown(content_dir: Path):
    for file_path in content_dir.rglob(f"*{MARKDOWN_SUFFIX}"):
        relative = file_path.relative_to(content_dir)
        if any(part.startswith(".") for part in relative.parts):
            continue
        if file_path.is_file():
            yield file_path


def article_path_for(content_dir: Path, file_path: Path) -> str:
    """Article identifier for a file: POSIX relative path without ".md".

    Example:
        >>> article_path_for(Path("/srv/articles"), Path("/srv/articles/blog/hi.md"))
        'blog/hi'
    """
    return file_path.relative_to(content_dir).with_suffix("").as_posix()


def corpus_fingerprint(content_dir: Path) -> str:
    """Digest of every document's path, mtime and size.

    Changes whenever a document is added, removed or modified, which lets a
    poller decide cheaply whether a reload is worthwhile.

    Raises:
        ReloadFailure: If the directory cannot be read
    """
    content_dir = Path(content_dir)
    if not content_dir.is_dir():
        raise ReloadFailure(f"content directory {content_dir} is not readable")
    digest = hashlib.sha256()
    try:
        for file_path in sorted(_iter_markdown(content_dir)):
            stat = file_path.stat()
            digest.update(article_path_for(content_dir, file_path).encode("utf-8"))
            digest.update(f"\0{stat.st_mtime_ns}\0{stat.st_size}\n".encode("ascii"))
    except OSError as exc:
        raise ReloadFailure(f"fingerprinting {content_dir} failed: {exc}") from exc
    return digest.hexdigest()
