"""Content loading for liteblog.

This module reads Markdown files from a project's ``pages/`` directory,
splits YAML front-matter from the body, converts the body to HTML and
computes the derived fields (reading time, heading ids, table of contents).

Key classes:
- Post: Dataclass representing one parsed content document.
- FileContentLoader: Discovers Markdown files under a directory.
- PostParser: Builds Post objects from source files.
- ContentProcessor: Facade that loads every post of a project.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date as date_type
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import yaml

from .derived import add_heading_ids, build_toc, reading_time
from .renderers import MarkdownRenderer, default_markdown_renderer
from .utils import is_hidden, is_markdown

logger = logging.getLogger(__name__)

FRONTMATTER_RE = re.compile(r"\A---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)", re.DOTALL)

DEFAULT_TITLE = "Untitled"
DEFAULT_TEMPLATE = "post"


@dataclass(frozen=True)
class Post:
    """One parsed content document.

    Attributes:
        slug: Path relative to the pages directory without ``.md``, using
            forward slashes. Unique, and the stem of the output URL.
        title: Human-readable title.
        date: Publication date (naive, UTC when the source had a zone).
        description: Short summary used in listings, meta tags and feeds.
        tags: Tags in source order.
        template: Name of the template used to render the post.
        draft: Drafts are parsed but never written.
        image: Optional cover image path, relative to the site root.
        reading_time: Estimated minutes to read the body.
        toc: Table of contents HTML fragment (may be empty).
        content: Rendered HTML body.
        source_path: Absolute path of the source file.
        body: Raw Markdown body without front-matter.
        frontmatter: Parsed front-matter mapping.
    """

    slug: str
    title: str
    date: datetime
    description: str
    tags: tuple[str, ...]
    template: str
    draft: bool
    image: str
    reading_time: int
    toc: str
    content: str
    source_path: Path
    body: str = ""
    frontmatter: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def url(self) -> str:
        """Root-relative URL of the post's output page."""
        return f"/{self.slug}.html"


def extract_frontmatter(text: str, source: Path | None = None) -> tuple[dict[str, Any], str]:
    """Extract YAML front-matter from content.

    A block that does not parse, or that parses to something other than a
    mapping, is treated as absent: the whole text becomes the body.

    Args:
        text: Raw file content.
        source: Source path, used only for log messages.

    Returns:
        Tuple of (front-matter dict, remaining content).
    """
    match = FRONTMATTER_RE.match(text)
    if not match:
        return {}, text
    try:
        data = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as exc:
        logger.warning("Ignoring malformed front-matter in %s: %s", source or "<text>", exc)
        return {}, text
    if not isinstance(data, dict):
        logger.warning("Ignoring front-matter in %s: expected a mapping", source or "<text>")
        return {}, text
    return data, text[match.end() :]


def parse_tags(value: Any) -> list[str]:
    """Normalize a front-matter ``tags`` value to a list of strings.

    A string is split on commas and trimmed; a sequence is used as-is.
    """
    if value is None:
        return []
    if isinstance(value, str):
        return [tag.strip() for tag in value.split(",") if tag.strip()]
    if isinstance(value, (list, tuple)):
        return [str(tag) for tag in value]
    return [str(value)]


def parse_flag(value: Any) -> bool:
    """Interpret a front-matter boolean, accepting "true"/"yes"/"1" strings."""
    if isinstance(value, str):
        return value.strip().lower() in {"true", "yes", "on", "1"}
    return bool(value)


def parse_date(value: Any, source: Path | None = None) -> datetime:
    """Normalize a front-matter ``date`` value to a naive datetime.

    Args:
        value: A YAML date, datetime, or ISO-like string.
        source: Source path, used only for log messages.

    Returns:
        Parsed datetime; the current instant when missing or unparseable.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date_type):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            logger.warning("Unrecognized date %r in %s; using now", value, source)
            return datetime.now()
    else:
        if value not in (None, ""):
            logger.warning("Unrecognized date %r in %s; using now", value, source)
        return datetime.now()
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


class FileContentLoader:
    """Discovers Markdown files in a directory tree.

    Hidden files and directories (``.drafts``, editor swap files) are
    skipped. Files are returned in sorted order so passes are repeatable.

    Attributes:
        pages_dir: Directory containing content files.
    """

    def __init__(self, pages_dir: Path):
        self.pages_dir = pages_dir

    def iter_files(self) -> list[Path]:
        """Return every Markdown file below ``pages_dir``."""
        if not self.pages_dir.exists():
            return []
        files: list[Path] = []
        for path in sorted(self.pages_dir.rglob("*")):
            rel = path.relative_to(self.pages_dir)
            if path.is_dir() or is_hidden(rel):
                continue
            if is_markdown(path):
                files.append(path)
        return files


class PostParser:
    """Builds Post objects from source files.

    Attributes:
        pages_dir: Directory the slugs are relative to.
        markdown: Converter used for the body.
    """

    def __init__(self, pages_dir: Path, markdown: MarkdownRenderer | None = None):
        self.pages_dir = pages_dir
        self.markdown = markdown or default_markdown_renderer

    def slug_for(self, path: Path) -> str:
        """Derive a post slug from its path."""
        rel = path.relative_to(self.pages_dir)
        return rel.with_suffix("").as_posix()

    def parse(self, path: Path) -> Post:
        """Parse one source file.

        Args:
            path: Path to a Markdown file below ``pages_dir``.

        Returns:
            A freshly built Post.

        Raises:
            OSError: If the file cannot be read.
        """
        raw = path.read_text(encoding="utf-8")
        frontmatter, body = extract_frontmatter(raw, path)

        document = add_heading_ids(self.markdown.render(body))
        return Post(
            slug=self.slug_for(path),
            title=str(frontmatter.get("title") or DEFAULT_TITLE),
            date=parse_date(frontmatter.get("date"), path),
            description=str(frontmatter.get("description") or ""),
            tags=tuple(parse_tags(frontmatter.get("tags"))),
            template=str(frontmatter.get("template") or DEFAULT_TEMPLATE),
            draft=parse_flag(frontmatter.get("draft", False)),
            image=str(frontmatter.get("image") or ""),
            reading_time=reading_time(body),
            toc=build_toc(document),
            content=document,
            source_path=path.resolve(),
            body=body,
            frontmatter=frontmatter,
        )


class ContentProcessor:
    """Facade for loading every post of a project.

    Attributes:
        pages_dir: Directory containing content files.
    """

    def __init__(
        self,
        pages_dir: Path,
        content_loader: FileContentLoader | None = None,
        parser: PostParser | None = None,
    ):
        self.pages_dir = pages_dir
        self._content_loader = content_loader or FileContentLoader(pages_dir)
        self._parser = parser or PostParser(pages_dir)

    def load(self) -> list[Post]:
        """Load and parse every Markdown file, drafts included."""
        return [self._parser.parse(path) for path in self._content_loader.iter_files()]
