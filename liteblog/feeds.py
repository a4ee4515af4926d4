"""Feed generation for liteblog.

This module generates ``rss.xml`` and ``sitemap.xml`` from the posts of a
build pass. The XML itself lives in Jinja2 templates shipped as package
resources (``liteblog/resources/feeds``) and rendered with XML autoescaping,
so titles and descriptions never need manual escaping.

Output is a pure function of the posts and configuration; in particular the
RSS ``lastBuildDate`` is the newest post date rather than the wall clock, so
rebuilding unchanged sources produces identical feeds.

Classes:
    FeedGenerator: Base class for feed generators.
    SitemapGenerator: Generates sitemap.xml files.
    RSSGenerator: Generates RSS feed files.
    FeedRegistry: Registry for managing feed generators.

Functions:
    create_default_feed_registry: Create a registry with default generators.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING, Any

from jinja2 import Environment, FileSystemLoader, select_autoescape

from .collections import listed_posts

if TYPE_CHECKING:
    from .content import Post

FEED_TEMPLATES_DIR = Path(__file__).parent / "resources" / "feeds"
RSS_LIMIT = 20


@lru_cache(maxsize=1)
def feed_environment() -> Environment:
    """Jinja2 environment over the bundled feed templates."""
    return Environment(
        loader=FileSystemLoader(str(FEED_TEMPLATES_DIR)),
        autoescape=select_autoescape(["xml"]),
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )


def rfc822(value: datetime) -> str:
    """Format a (UTC) datetime for RSS."""
    return value.strftime("%a, %d %b %Y %H:%M:%S +0000")


def _site_url(config: Mapping[str, Any]) -> str:
    return str(config.get("siteUrl", "")).rstrip("/")


class FeedGenerator(ABC):
    """Abstract base class for feed generators."""

    @property
    @abstractmethod
    def filename(self) -> str:
        """Output filename, such as 'sitemap.xml' or 'rss.xml'."""
        ...

    @abstractmethod
    def generate(self, posts: Sequence[Post], config: Mapping[str, Any]) -> str:
        """Generate feed content from the posts of a pass.

        Args:
            posts: Every post loaded in the pass (drafts included).
            config: Site configuration.

        Returns:
            Feed content as a string.
        """
        ...

    def write(self, output_dir: Path, posts: Sequence[Post], config: Mapping[str, Any]) -> Path:
        """Generate the feed and write it to the output directory."""
        output_path = output_dir / self.filename
        output_path.write_text(self.generate(posts, config), encoding="utf-8")
        return output_path


class SitemapGenerator(FeedGenerator):
    """Generates sitemap.xml: the site root plus every published page.

    Tag pages and the index page are left out; drafts never appear.
    """

    @property
    def filename(self) -> str:
        return "sitemap.xml"

    def generate(self, posts: Sequence[Post], config: Mapping[str, Any]) -> str:
        site_url = _site_url(config)
        entries = [
            {
                "loc": f"{site_url}{post.url}",
                "lastmod": post.date.strftime("%Y-%m-%d"),
            }
            for post in posts
            if not post.draft and post.slug != "index" and not post.slug.startswith("tags/")
        ]
        template = feed_environment().get_template("sitemap.xml")
        return template.render(site_url=site_url, entries=entries)


class RSSGenerator(FeedGenerator):
    """Generates an RSS 2.0 feed of the most recent posts, newest first."""

    def __init__(self, limit: int = RSS_LIMIT):
        self.limit = limit

    @property
    def filename(self) -> str:
        return "rss.xml"

    def generate(self, posts: Sequence[Post], config: Mapping[str, Any]) -> str:
        site_url = _site_url(config)
        recent = listed_posts(posts)[: self.limit]
        items = [
            {
                "title": post.title,
                "link": f"{site_url}{post.url}",
                "pub_date": rfc822(post.date),
                "description": post.description,
            }
            for post in recent
        ]
        template = feed_environment().get_template("rss.xml")
        return template.render(
            title=config.get("title", ""),
            description=config.get("description", ""),
            language=config.get("language", "en"),
            site_url=site_url,
            last_build_date=rfc822(recent[0].date) if recent else "",
            items=items,
        )


class FeedRegistry:
    """Registry for managing feed generators.

    Attributes:
        _generators: List of registered feed generators.
    """

    def __init__(self) -> None:
        self._generators: list[FeedGenerator] = []

    def register(self, generator: FeedGenerator) -> None:
        self._generators.append(generator)

    def generate_all(
        self, output_dir: Path, posts: Iterable[Post], config: Mapping[str, Any]
    ) -> list[str]:
        """Write every registered feed.

        Returns:
            Filenames that were written.
        """
        posts_list = list(posts)
        generated = []
        for generator in self._generators:
            generator.write(output_dir, posts_list, config)
            generated.append(generator.filename)
        return generated


def create_default_feed_registry() -> FeedRegistry:
    """Create a registry with RSS and sitemap generators."""
    registry = FeedRegistry()
    registry.register(RSSGenerator())
    registry.register(SitemapGenerator())
    return registry
