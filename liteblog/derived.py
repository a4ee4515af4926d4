"""Derived content for posts.

Everything here is computed from a post's Markdown body, its converted HTML,
or its sibling posts. The functions are pure and deterministic so that two
builds over the same sources produce byte-identical pages.

Functions:
    reading_time: Minutes needed to read a body of text.
    heading_id: URL-safe anchor for a heading's text.
    add_heading_ids: Give every heading element in an HTML document an id.
    build_toc: Table of contents fragment from h2-h4 headings.
    find_related_posts: Rank sibling posts by shared tags.
    is_listed: Whether a post shows up in listings, feeds and rankings.
"""

from __future__ import annotations

import html
import math
import re
from collections.abc import Iterable
from typing import TYPE_CHECKING

from markupsafe import escape

from .utils import fold_accents

if TYPE_CHECKING:
    from .content import Post

WORDS_PER_MINUTE = 200
RELATED_POSTS_LIMIT = 3
SPECIAL_SLUGS = frozenset({"index", "about"})

_HEADING_RE = re.compile(r"<h([1-6])([^>]*)>(.*?)</h\1>", re.IGNORECASE | re.DOTALL)
_ID_ATTR_RE = re.compile(r'\bid\s*=\s*["\']([^"\']*)["\']', re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")


def reading_time(text: str) -> int:
    """Estimate reading time in whole minutes (at least one)."""
    words = len(text.split())
    return max(1, math.ceil(words / WORDS_PER_MINUTE))


def strip_tags(fragment: str) -> str:
    """Remove tags from an HTML fragment and decode entities."""
    return html.unescape(_TAG_RE.sub("", fragment)).strip()


def heading_id(text: str) -> str:
    """Generate a URL-safe id from heading text.

    Args:
        text: Plain heading text.

    Returns:
        Lower-cased text with non-alphanumeric runs collapsed to hyphens,
        or "section" when nothing is left.

    Examples:
        >>> heading_id("Getting Started!")
        'getting-started'
    """
    slug = re.sub(r"[^a-z0-9]+", "-", fold_accents(text)).strip("-")
    return slug or "section"


def add_heading_ids(document: str) -> str:
    """Give every heading element in an HTML document a unique id.

    Headings that already have an id keep it. Duplicate ids get ``-2``,
    ``-3``, ... suffixes in the order they are first seen.

    Args:
        document: HTML produced by the Markdown converter.

    Returns:
        HTML with ``id`` attributes on every heading.
    """
    seen: dict[str, int] = {}

    def claim(base: str) -> str:
        count = seen.get(base, 0) + 1
        seen[base] = count
        if count == 1:
            return base
        candidate = f"{base}-{count}"
        while candidate in seen:
            count += 1
            candidate = f"{base}-{count}"
        seen[base] = count
        seen[candidate] = 1
        return candidate

    def repl(match: re.Match) -> str:
        level, attrs, inner = match.group(1), match.group(2), match.group(3)
        existing = _ID_ATTR_RE.search(attrs)
        if existing:
            seen.setdefault(existing.group(1), 1)
            return match.group(0)
        anchor = claim(heading_id(strip_tags(inner)))
        return f'<h{level} id="{anchor}"{attrs}>{inner}</h{level}>'

    return _HEADING_RE.sub(repl, document)


def build_toc(document: str) -> str:
    """Build a table of contents from h2-h4 headings that carry an id.

    Args:
        document: HTML with heading ids already assigned.

    Returns:
        A ``<nav class="toc">`` fragment, or an empty string when there
        are no qualifying headings.
    """
    items: list[str] = []
    for match in _HEADING_RE.finditer(document):
        level = int(match.group(1))
        if not 2 <= level <= 4:
            continue
        anchor = _ID_ATTR_RE.search(match.group(2))
        if not anchor:
            continue
        indent = (level - 2) * 20
        text = escape(strip_tags(match.group(3)))
        items.append(
            f'<li style="margin-left: {indent}px">'
            f'<a href="#{anchor.group(1)}">{text}</a></li>'
        )
    if not items:
        return ""
    return (
        '<nav class="toc"><h2>Table of Contents</h2><ul>'
        + "".join(items)
        + "</ul></nav>"
    )


def is_special(slug: str) -> bool:
    """Whether a slug names a site page rather than a blog post."""
    return slug in SPECIAL_SLUGS or slug.startswith("tags/")


def is_listed(post: Post) -> bool:
    """Whether a post appears in listings, pagination, feeds and rankings."""
    return not post.draft and not is_special(post.slug)


def find_related_posts(
    post: Post, posts: Iterable[Post], limit: int = RELATED_POSTS_LIMIT
) -> list[Post]:
    """Rank other posts by the number of tags they share with ``post``.

    Drafts, special pages and the post itself are never related. Ties keep
    the input order.

    Args:
        post: The post being rendered.
        posts: Every post loaded in this pass.
        limit: Maximum number of posts to return.

    Returns:
        Up to ``limit`` posts, highest score first.
    """
    if not post.tags:
        return []
    wanted = set(post.tags)
    scored: list[tuple[int, Post]] = []
    for other in posts:
        if other.slug == post.slug or not is_listed(other):
            continue
        score = sum(1 for tag in other.tags if tag in wanted)
        if score > 0:
            scored.append((score, other))
    scored.sort(key=lambda item: item[0], reverse=True)
    return [other for _, other in scored[:limit]]

