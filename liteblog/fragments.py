"""HTML fragments substituted into site templates.

Templates have no control flow, so lists, links and navigation are rendered
here into strings and dropped into a single placeholder each. All
user-supplied text goes through :func:`markupsafe.escape`.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from markupsafe import escape

from .collections import PaginationPage, TagIndex
from .content import Post
from .utils import format_date

PROGRESS_BAR = (
    "<style>.reading-progress{position:fixed;top:0;left:0;width:0;height:4px;"
    "background:linear-gradient(90deg,#667eea 0%,#764ba2 100%);z-index:9999;"
    "transition:width .1s ease-out}</style>"
    '<div class="reading-progress" id="reading-progress"></div>'
    '<script>!function(){var e=document.getElementById("reading-progress");'
    "function t(){var t=window.scrollY,n=document.documentElement.scrollHeight-window.innerHeight;"
    'e.style.width=(n>0?t/n*100:0)+"%"}window.addEventListener("scroll",t),'
    'window.addEventListener("resize",t),t()}();</script>'
)


def meta_tags(post: Post, config: Mapping[str, Any]) -> str:
    """Description, author, Open Graph and Twitter card meta tags."""
    site_url = str(config.get("siteUrl", "")).rstrip("/")
    title = escape(post.title)
    description = escape(post.description)
    page_url = escape(f"{site_url}/{post.slug}.html")
    image_url = escape(f"{site_url}/{post.image.lstrip('/')}") if post.image else ""

    lines = [
        f'<meta name="description" content="{description}">',
        f'<meta name="author" content="{escape(config.get("author", ""))}">',
        f'<meta property="og:title" content="{title}">',
        f'<meta property="og:description" content="{description}">',
        '<meta property="og:type" content="article">',
        f'<meta property="og:url" content="{page_url}">',
    ]
    if image_url:
        lines.append(f'<meta property="og:image" content="{image_url}">')
    lines.extend(
        [
            '<meta name="twitter:card" content="summary_large_image">',
            f'<meta name="twitter:title" content="{title}">',
            f'<meta name="twitter:description" content="{description}">',
        ]
    )
    if image_url:
        lines.append(f'<meta name="twitter:image" content="{image_url}">')
    return "\n    ".join(lines)


def tag_links(tags: Sequence[str]) -> str:
    """Tag chips shown under a post title."""
    if not tags:
        return ""
    links = " ".join(
        f'<a href="{TagIndex.url_for(tag)}" class="tag">{escape(tag)}</a>' for tag in tags
    )
    return f'<div class="post-tags">{links}</div>'


def related_posts(posts: Sequence[Post]) -> str:
    if not posts:
        return ""
    items = "".join(f'<li><a href="{post.url}">{escape(post.title)}</a></li>' for post in posts)
    return f'<section class="related-posts"><h3>Related Posts</h3><ul>{items}</ul></section>'


def post_list(posts: Iterable[Post], language: str, detailed: bool = True) -> str:
    """Render a ``<ul class="posts-list">`` of posts.

    Args:
        posts: Posts in display order.
        language: Locale tag for date formatting.
        detailed: Include reading time and description (listing pages)
            rather than just title and date (tag pages).

    Returns:
        List HTML, or a "No posts yet." paragraph for an empty detailed list.
    """
    items: list[str] = []
    for post in posts:
        parts = [
            f'<a href="{post.url}" class="post-title">{escape(post.title)}</a>',
            f'<span class="post-date">{format_date(post.date, language)}</span>',
        ]
        if detailed:
            parts.append(f'<span class="post-reading-time">{post.reading_time} min read</span>')
            if post.description:
                parts.append(f'<p class="post-description">{escape(post.description)}</p>')
        items.append('<li class="post-item">' + "".join(parts) + "</li>")
    if not items:
        return "<p>No posts yet.</p>" if detailed else '<ul class="posts-list"></ul>'
    return '<ul class="posts-list">' + "".join(items) + "</ul>"


def pagination_nav(page: PaginationPage) -> str:
    html = '<nav class="pagination">'
    if page.prev_url:
        html += f'<a href="{page.prev_url}" class="prev">&larr; Previous</a>'
    html += f'<span class="current">Page {page.number} / {page.total}</span>'
    if page.next_url:
        html += f'<a href="{page.next_url}" class="next">Next &rarr;</a>'
    return html + "</nav>"


def tag_cloud(index: TagIndex) -> str:
    """All tags with their counts, most used first."""
    items = "".join(
        f'<li><a href="{index.url_for(tag)}">{escape(tag)} ({count})</a></li>'
        for tag, count in index.by_popularity()
    )
    return f'<ul class="tags-list">{items}</ul>'
