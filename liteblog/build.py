"""Site building functionality for liteblog.

This module contains the core logic for building a static blog from a
project directory. It loads configuration, parses posts, renders templates
and writes the output tree, skipping posts whose sources have not changed
since the last successful pass.

Key functions:
- build_site: Build the whole site, incrementally or from scratch.
- load_config: Load site configuration from config.json.
"""

from __future__ import annotations

import json
import logging
import shutil
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from markupsafe import escape

from .assets import AssetPipeline
from .cache import CONTENT_CACHE_NAME, IMAGE_CACHE_NAME, BuildCache, tree_hash
from .collections import PaginationPage, TagIndex, listed_posts, paginate
from .content import ContentProcessor, Post
from .derived import find_related_posts
from .feeds import create_default_feed_registry
from .fragments import (
    PROGRESS_BAR,
    meta_tags,
    pagination_nav,
    post_list,
    related_posts,
    tag_cloud,
    tag_links,
)
from .templates import TemplateSet, render_template
from .utils import ensure_clean_dir, ensure_dir, format_date, slugify

logger = logging.getLogger(__name__)


class BuildError(Exception):
    """Error during site build with file context.

    Attributes:
        source_path: Path to the file that caused the error.
        message: Human-readable error message.
        original_error: The original exception that was caught.
    """

    def __init__(
        self,
        source_path: Path,
        message: str,
        original_error: Exception | None = None,
    ):
        self.source_path = source_path
        self.message = message
        self.original_error = original_error
        super().__init__(f"{source_path}: {message}")


CONFIG_NAME = "config.json"
OUTPUT_DIR_NAME = "public"

DEFAULT_CONFIG: dict[str, Any] = {
    "title": "My Blog",
    "description": "A blog built with liteblog",
    "siteUrl": "http://localhost:3000",
    "author": "Anonymous",
    "postsPerPage": 10,
    "language": "en",
}

# Every placeholder a page template may use; unused ones render empty.
PLACEHOLDERS = (
    "title",
    "content",
    "date",
    "dateISO",
    "description",
    "tags",
    "toc",
    "readingTime",
    "relatedPosts",
    "metaTags",
    "progressBar",
    "posts",
    "pagination",
    "tagsList",
    "tag",
    "postCount",
    "siteTitle",
    "siteDescription",
    "siteUrl",
    "author",
)


@dataclass
class BuildResult:
    """Result of a site build operation.

    Attributes:
        posts: Every post loaded in the pass, drafts included.
        output_dir: Directory where the site was built.
        config: Effective site configuration.
        rebuilt: Slugs of the posts written in this pass.
    """

    posts: list[Post]
    output_dir: Path
    config: dict[str, Any]
    rebuilt: list[str] = field(default_factory=list)


def load_config(project_root: Path) -> dict[str, Any]:
    """Load site configuration from config.json.

    A missing file yields the defaults. A file that cannot be parsed is
    logged and also yields the defaults. Unknown keys are kept but unused.

    Args:
        project_root: Root directory of the project.

    Returns:
        Dictionary containing configuration values, with defaults applied.
    """
    config_path = project_root / CONFIG_NAME
    config = DEFAULT_CONFIG.copy()
    if not config_path.exists():
        return config
    try:
        loaded = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning("Could not read %s (%s); using default configuration", config_path, exc)
        return config
    if not isinstance(loaded, dict):
        logger.warning("%s must contain a JSON object; using default configuration", config_path)
        return config
    config.update(loaded)

    per_page = config.get("postsPerPage")
    if isinstance(per_page, bool) or not isinstance(per_page, int) or per_page < 1:
        logger.warning(
            "Invalid postsPerPage %r; using %d", per_page, DEFAULT_CONFIG["postsPerPage"]
        )
        config["postsPerPage"] = DEFAULT_CONFIG["postsPerPage"]
    return config


def build_site(
    project_root: Path,
    incremental: bool = True,
    output_dir_override: Path | None = None,
    optimize_images: bool = True,
) -> BuildResult:
    """Build the entire static site.

    Args:
        project_root: Root directory of the project.
        incremental: Skip posts whose sources are unchanged since the last
            successful pass. A full pass wipes the output directory first.
        output_dir_override: Optional path to write the build output instead
            of ``public/``.
        optimize_images: Whether to produce WebP versions of images.

    Returns:
        BuildResult describing the pass.

    Raises:
        BuildError: If reading or writing the tree fails. The caches are not
            saved, so the next pass retries the same work.
    """
    try:
        return _build(project_root, incremental, output_dir_override, optimize_images)
    except OSError as exc:
        source = Path(exc.filename) if exc.filename else project_root
        raise BuildError(source, _format_error_message(exc), exc) from exc


def _build(
    project_root: Path,
    incremental: bool,
    output_dir_override: Path | None,
    optimize_images: bool,
) -> BuildResult:
    config = load_config(project_root)
    output_dir = output_dir_override or (project_root / OUTPUT_DIR_NAME)
    if incremental:
        ensure_dir(output_dir)
    else:
        ensure_clean_dir(output_dir)

    cache = BuildCache(project_root / CONTENT_CACHE_NAME, incremental=incremental)
    image_cache = BuildCache(project_root / IMAGE_CACHE_NAME, incremental=incremental)

    templates_dir = project_root / "templates"
    templates = TemplateSet.load(templates_dir)
    layout_inputs = templates.files()
    config_path = project_root / CONFIG_NAME
    if config_path.exists():
        layout_inputs.append(config_path)
    cache.record(templates_dir, tree_hash(layout_inputs))
    layout_changed = cache.should_rebuild(templates_dir)

    posts = ContentProcessor(project_root / "pages").load()
    for post in posts:
        cache.record(post.source_path)
    tags = TagIndex(posts)

    changed = [p for p in posts if layout_changed or cache.should_rebuild(p.source_path)]
    removed = set(cache.previous) - set(cache.current)

    rebuilt: list[str] = []
    attempted: set[str] = set()
    for post in changed:
        if post.draft:
            continue
        attempted.add(post.slug)
        if _write_post(output_dir, post, posts, tags, templates, config):
            rebuilt.append(post.slug)

    # Listing pages aggregate every post; refresh them on any source change,
    # drafts and deletions included.
    if changed or removed:
        for post in posts:
            if post.draft or post.slug in attempted or not is_aggregate(post):
                continue
            _write_post(output_dir, post, posts, tags, templates, config)

    index_post = next((p for p in posts if p.slug == "index" and not p.draft), None)

    _write_tag_pages(output_dir, tags, templates, config)
    _write_pagination(output_dir, posts, templates, config, mirror_root=index_post is None)

    create_default_feed_registry().generate_all(output_dir, posts, config)
    AssetPipeline(
        project_root / "static",
        output_dir,
        image_cache,
        optimize_images=optimize_images,
    ).run()
    _copy_error_page(templates_dir, output_dir)

    cache.save()
    image_cache.save()
    logger.info("Built %d of %d posts into %s", len(rebuilt), len(posts), output_dir)
    return BuildResult(posts=posts, output_dir=output_dir, config=config, rebuilt=rebuilt)


def _format_error_message(exc: Exception) -> str:
    """Format an exception into a user-friendly error message."""
    if isinstance(exc, OSError) and exc.strerror:
        return exc.strerror
    return f"{type(exc).__name__}: {exc}"


def _site_values(config: Mapping[str, Any]) -> dict[str, Any]:
    values: dict[str, Any] = dict.fromkeys(PLACEHOLDERS, "")
    values.update(
        siteTitle=config.get("title", ""),
        siteDescription=config.get("description", ""),
        siteUrl=config.get("siteUrl", ""),
        author=config.get("author", ""),
    )
    return values


def is_aggregate(post: Post) -> bool:
    """Whether a post's page lists other posts: the root page, listings or tags."""
    return post.template in ("list", "tag") or post.slug == "index" or post.slug.startswith("tags/")


def post_values(
    post: Post,
    posts: Sequence[Post],
    tags: TagIndex,
    config: Mapping[str, Any],
) -> dict[str, Any]:
    """Placeholder values for a single post page.

    Args:
        post: Post being rendered.
        posts: Every post of the pass.
        tags: Tag index of the pass.
        config: Site configuration.

    Returns:
        Mapping of placeholder name to value.
    """
    language = str(config.get("language", "en"))
    values = _site_values(config)
    values.update(
        title=post.title,
        description=post.description,
        date=format_date(post.date, language),
        dateISO=post.date.isoformat(),
        content=post.content,
        toc=post.toc,
        readingTime=post.reading_time,
        tags=tag_links(post.tags),
        relatedPosts=related_posts(find_related_posts(post, posts)),
        metaTags=meta_tags(post, config),
        progressBar=PROGRESS_BAR,
    )
    if post.template == "list" or post.slug == "index":
        values["posts"] = post_list(listed_posts(posts), language)
    if post.template == "tag" or post.slug.startswith("tags/"):
        values["tagsList"] = tag_cloud(tags)
    return values


def _write_post(
    output_dir: Path,
    post: Post,
    posts: Sequence[Post],
    tags: TagIndex,
    templates: TemplateSet,
    config: Mapping[str, Any],
) -> bool:
    template = templates.resolve(post.template)
    if template is None:
        logger.warning("No template %r for %s; skipping", post.template, post.slug)
        return False
    rendered = render_template(template, post_values(post, posts, tags, config))
    _write_page(output_dir / f"{post.slug}.html", rendered)
    return True


def _write_page(path: Path, rendered: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(rendered, encoding="utf-8")


def _write_tag_pages(
    output_dir: Path,
    tags: TagIndex,
    templates: TemplateSet,
    config: Mapping[str, Any],
) -> None:
    """Write ``tags/{slug}.html`` for every tag, posts newest first."""
    template = templates.resolve("tag", fallbacks=("default",))
    if template is None:
        if tags:
            logger.warning("No tag or default template; skipping tag pages")
        return
    language = str(config.get("language", "en"))
    for tag, tagged in tags.items():
        ordered = sorted(tagged, key=lambda p: p.date, reverse=True)
        values = _site_values(config)
        values.update(
            title=f"Tag: {escape(tag)}",
            tag=escape(tag),
            postCount=len(ordered),
            posts=post_list(ordered, language, detailed=False),
        )
        _write_page(output_dir / "tags" / f"{slugify(tag)}.html", render_template(template, values))


def _write_pagination(
    output_dir: Path,
    posts: Sequence[Post],
    templates: TemplateSet,
    config: Mapping[str, Any],
    mirror_root: bool,
) -> None:
    """Write ``page/{n}.html`` for the listing, optionally mirroring page 1.

    Args:
        output_dir: Site output root.
        posts: Every post of the pass.
        templates: Loaded templates.
        config: Site configuration.
        mirror_root: Also write page 1 as ``index.html``.
    """
    template = templates.resolve("list", fallbacks=("default",))
    if template is None:
        logger.warning("No list or default template; skipping pagination pages")
        return
    language = str(config.get("language", "en"))
    site_title = str(config.get("title", ""))
    pages = paginate(listed_posts(posts), int(config.get("postsPerPage", 10)))
    if not pages:
        pages = [PaginationPage(items=(), number=1, total=1)]
    for page in pages:
        values = _site_values(config)
        values.update(
            title=site_title if page.number == 1 else f"Page {page.number} - {site_title}",
            description=config.get("description", ""),
            posts=post_list(page.items, language),
            pagination=pagination_nav(page),
        )
        rendered = render_template(template, values)
        _write_page(output_dir / "page" / f"{page.number}.html", rendered)
        if page.number == 1 and mirror_root:
            _write_page(output_dir / "index.html", rendered)


def _copy_error_page(templates_dir: Path, output_dir: Path) -> None:
    error_page = templates_dir / "404.html"
    if error_page.exists():
        shutil.copyfile(error_page, output_dir / "404.html")
