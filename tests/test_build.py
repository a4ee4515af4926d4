import json
from pathlib import Path

import pytest

from liteblog.build import (
    DEFAULT_CONFIG,
    BuildError,
    BuildResult,
    build_site,
    load_config,
    post_values,
)
from liteblog.cache import CONTENT_CACHE_NAME
from liteblog.collections import TagIndex
from liteblog.content import ContentProcessor


def write_post(project: Path, slug: str, title: str, date: str, tags=(), extra: str = "") -> Path:
    path = project / "pages" / f"{slug}.md"
    path.parent.mkdir(parents=True, exist_ok=True)
    tag_line = f"tags: [{', '.join(tags)}]\n" if tags else ""
    path.write_text(
        f"---\ntitle: {title}\ndate: {date}\ndescription: About {title}\n{tag_line}{extra}---\n"
        f"# {title}\n\n## Details\n\nBody of {title}.\n",
        encoding="utf-8",
    )
    return path


def create_project(tmp_path: Path) -> Path:
    project = tmp_path / "blog"
    templates = project / "templates"
    templates.mkdir(parents=True)
    (templates / "post.html").write_text(
        "<html><head><title>{{title}} - {{siteTitle}}</title></head>"
        "<body>{{date}}{{tags}}{{toc}}{{content}}{{relatedPosts}}</body></html>",
        encoding="utf-8",
    )
    (templates / "default.html").write_text(
        "<html><body><h1>{{title}}</h1>{{content}}</body></html>", encoding="utf-8"
    )
    (templates / "list.html").write_text(
        "<html><body><h1>{{title}}</h1>{{posts}}{{pagination}}</body></html>",
        encoding="utf-8",
    )
    (templates / "tag.html").write_text(
        "<html><body><h1>{{title}}</h1>{{tagsList}}{{posts}}</body></html>",
        encoding="utf-8",
    )
    (templates / "404.html").write_text("<html><body>Missing</body></html>", encoding="utf-8")
    (project / "config.json").write_text(
        json.dumps({"title": "Test Blog", "siteUrl": "https://example.com"}), encoding="utf-8"
    )
    (project / "static" / "css").mkdir(parents=True)
    (project / "static" / "css" / "style.css").write_text("body{}", encoding="utf-8")

    write_post(project, "first", "First Post", "2025-01-01", tags=["python", "web"])
    write_post(project, "second", "Second Post", "2025-01-02", tags=["python"])
    write_post(project, "third", "Third Post", "2025-01-03", tags=["misc"])
    write_post(project, "hidden", "Hidden Draft", "2025-01-04", extra="draft: true\n")
    write_post(project, "about", "About Me", "2024-12-01", extra="template: default\n")
    return project


def snapshot(output: Path) -> dict:
    return {
        path.relative_to(output).as_posix(): path.read_bytes()
        for path in sorted(output.rglob("*"))
        if path.is_file()
    }


def test_full_build_writes_site(tmp_path):
    project = create_project(tmp_path)
    result = build_site(project, incremental=False)

    assert isinstance(result, BuildResult)
    output = project / "public"
    assert result.output_dir == output
    assert sorted(result.rebuilt) == ["about", "first", "second", "third"]

    first = (output / "first.html").read_text(encoding="utf-8")
    assert "<title>First Post - Test Blog</title>" in first
    assert "January 1, 2025" in first
    assert '<a href="/tags/python.html" class="tag">python</a>' in first
    assert '<h2 id="details">Details</h2>' in first
    assert '<a href="#details">Details</a>' in first
    assert '<a href="/second.html">Second Post</a>' in first
    assert "{{" not in first

    about = (output / "about.html").read_text(encoding="utf-8")
    assert "<h1>About Me</h1>" in about

    assert not (output / "hidden.html").exists()
    assert (output / "tags" / "python.html").exists()
    assert (output / "tags" / "misc.html").exists()
    python_tag = (output / "tags" / "python.html").read_text(encoding="utf-8")
    assert "<h1>Tag: python</h1>" in python_tag
    assert python_tag.index("Second Post") < python_tag.index("First Post")

    index = (output / "index.html").read_text(encoding="utf-8")
    assert index == (output / "page" / "1.html").read_text(encoding="utf-8")
    assert "<h1>Test Blog</h1>" in index
    assert index.index("Third Post") < index.index("Second Post") < index.index("First Post")
    assert "About Me" not in index
    assert "Hidden Draft" not in index

    assert (output / "rss.xml").exists()
    assert "https://example.com/about.html" in (output / "sitemap.xml").read_text(encoding="utf-8")
    assert (output / "404.html").read_text(encoding="utf-8") == "<html><body>Missing</body></html>"
    assert (output / "css" / "style.css").exists()
    assert (project / CONTENT_CACHE_NAME).exists()


def test_full_build_is_idempotent(tmp_path):
    project = create_project(tmp_path)
    build_site(project, incremental=False)
    first = snapshot(project / "public")
    build_site(project, incremental=False)
    assert snapshot(project / "public") == first


def test_full_build_clears_output(tmp_path):
    project = create_project(tmp_path)
    stale = project / "public" / "stale.html"
    stale.parent.mkdir(parents=True)
    stale.write_text("old", encoding="utf-8")
    build_site(project, incremental=False)
    assert not stale.exists()


def test_incremental_build_only_rewrites_changed_posts(tmp_path):
    project = create_project(tmp_path)
    build_site(project, incremental=False)
    output = project / "public"
    untouched = (output / "third.html").stat().st_mtime_ns

    result = build_site(project)
    assert result.rebuilt == []

    write_post(project, "first", "First Post Revised", "2025-01-01", tags=["python", "web"])
    result = build_site(project)

    assert result.rebuilt == ["first"]
    assert "First Post Revised" in (output / "first.html").read_text(encoding="utf-8")
    assert (output / "third.html").stat().st_mtime_ns == untouched
    assert "First Post Revised" in (output / "index.html").read_text(encoding="utf-8")
    assert "First Post Revised" in (output / "tags" / "web.html").read_text(encoding="utf-8")


def test_incremental_build_keeps_deleted_output(tmp_path):
    project = create_project(tmp_path)
    build_site(project, incremental=False)
    (project / "pages" / "third.md").unlink()

    build_site(project)
    assert (project / "public" / "third.html").exists()
    assert "Third Post" not in (project / "public" / "index.html").read_text(encoding="utf-8")


def test_template_change_rebuilds_every_post(tmp_path):
    project = create_project(tmp_path)
    build_site(project, incremental=False)

    post_template = project / "templates" / "post.html"
    post_template.write_text("<main>{{title}}</main>", encoding="utf-8")
    result = build_site(project)

    assert sorted(result.rebuilt) == ["about", "first", "second", "third"]
    assert (project / "public" / "first.html").read_text(encoding="utf-8") == "<main>First Post</main>"
    assert build_site(project).rebuilt == []


def test_index_post_replaces_root_listing(tmp_path):
    project = create_project(tmp_path)
    (project / "pages" / "index.md").write_text(
        "---\ntitle: Home\ntemplate: list\n---\n", encoding="utf-8"
    )
    build_site(project, incremental=False)
    output = project / "public"

    index = (output / "index.html").read_text(encoding="utf-8")
    assert "<h1>Home</h1>" in index
    assert "Third Post" in index
    assert "<h1>Test Blog</h1>" in (output / "page" / "1.html").read_text(encoding="utf-8")

    write_post(project, "fourth", "Fourth Post", "2025-01-05")
    result = build_site(project)
    assert result.rebuilt == ["fourth"]
    assert "Fourth Post" in (output / "index.html").read_text(encoding="utf-8")


def test_index_post_drops_drafted_and_deleted_posts(tmp_path):
    project = create_project(tmp_path)
    (project / "pages" / "index.md").write_text(
        "---\ntitle: Home\ntemplate: list\n---\n", encoding="utf-8"
    )
    build_site(project, incremental=False)
    index = project / "public" / "index.html"
    assert "Third Post" in index.read_text(encoding="utf-8")

    write_post(project, "third", "Third Post", "2025-01-03", tags=["misc"], extra="draft: true\n")
    result = build_site(project)
    assert result.rebuilt == []
    assert "Third Post" not in index.read_text(encoding="utf-8")

    (project / "pages" / "second.md").unlink()
    result = build_site(project)
    assert result.rebuilt == []
    assert "Second Post" not in index.read_text(encoding="utf-8")
    assert "First Post" in index.read_text(encoding="utf-8")


def test_new_tag_refreshes_tag_cloud_page(tmp_path):
    project = create_project(tmp_path)
    (project / "pages" / "tags").mkdir()
    (project / "pages" / "tags" / "index.md").write_text(
        "---\ntitle: Tags\ntemplate: tag\n---\n", encoding="utf-8"
    )
    build_site(project, incremental=False)
    output = project / "public"
    untouched = (output / "third.html").stat().st_mtime_ns
    assert "newtag" not in (output / "tags" / "index.html").read_text(encoding="utf-8")

    write_post(project, "fourth", "Fourth Post", "2025-01-05", tags=["newtag"])
    result = build_site(project)

    assert result.rebuilt == ["fourth"]
    assert "newtag (1)" in (output / "tags" / "index.html").read_text(encoding="utf-8")
    assert (output / "tags" / "newtag.html").exists()
    assert (output / "third.html").stat().st_mtime_ns == untouched


def test_tag_pages_escape_tag_names(tmp_path):
    project = create_project(tmp_path)
    write_post(project, "markup", "Markup Post", "2025-01-06", tags=['"<b>bold</b>"', '"C&C"'])
    build_site(project, incremental=False)
    output = project / "public"

    bold = (output / "tags" / "bbold.html").read_text(encoding="utf-8")
    assert "<h1>Tag: &lt;b&gt;bold&lt;/b&gt;</h1>" in bold
    assert "<b>bold</b>" not in bold
    assert "<h1>Tag: C&amp;C</h1>" in (output / "tags" / "cc.html").read_text(encoding="utf-8")


def test_pagination_splits_listing(tmp_path):
    project = create_project(tmp_path)
    (project / "config.json").write_text(json.dumps({"postsPerPage": 10}), encoding="utf-8")
    for name in ("first", "second", "third"):
        (project / "pages" / f"{name}.md").unlink()
    for i in range(25):
        write_post(project, f"post-{i:02d}", f"Post {i:02d}", f"2025-02-{i + 1:02d}")

    build_site(project, incremental=False)
    output = project / "public"
    counts = [
        (output / "page" / f"{n}.html").read_text(encoding="utf-8").count('class="post-item"')
        for n in (1, 2, 3)
    ]
    assert counts == [10, 10, 5]
    assert not (output / "page" / "4.html").exists()

    page1 = (output / "page" / "1.html").read_text(encoding="utf-8")
    assert "Post 24" in page1
    assert '<a href="/page/2.html" class="next">' in page1
    page2 = (output / "page" / "2.html").read_text(encoding="utf-8")
    assert "<h1>Page 2 - My Blog</h1>" in page2
    assert '<a href="/" class="prev">' in page2


def test_missing_template_skips_post(tmp_path, caplog):
    project = create_project(tmp_path)
    for name in ("post.html", "default.html"):
        (project / "templates" / name).unlink()

    result = build_site(project, incremental=False)
    assert result.rebuilt == []
    assert not (project / "public" / "first.html").exists()
    assert "No template 'post' for first; skipping" in caplog.text
    assert (project / "public" / "page" / "1.html").exists()


def test_build_error_does_not_save_cache(tmp_path):
    project = create_project(tmp_path)
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x", encoding="utf-8")

    with pytest.raises(BuildError) as excinfo:
        build_site(project, output_dir_override=blocker)

    assert excinfo.value.source_path == blocker
    assert isinstance(excinfo.value.original_error, OSError)
    assert not (project / CONTENT_CACHE_NAME).exists()


def test_load_config_defaults_and_warnings(tmp_path, caplog):
    assert load_config(tmp_path) == DEFAULT_CONFIG

    (tmp_path / "config.json").write_text("{broken", encoding="utf-8")
    assert load_config(tmp_path) == DEFAULT_CONFIG
    assert "using default configuration" in caplog.text

    (tmp_path / "config.json").write_text(
        json.dumps({"title": "Mine", "postsPerPage": 0, "extra": 1}), encoding="utf-8"
    )
    config = load_config(tmp_path)
    assert config["title"] == "Mine"
    assert config["postsPerPage"] == 10
    assert config["author"] == "Anonymous"
    assert "Invalid postsPerPage" in caplog.text


def test_post_values_for_special_pages(tmp_path):
    project = create_project(tmp_path)
    (project / "pages" / "tags").mkdir()
    (project / "pages" / "tags" / "index.md").write_text(
        "---\ntitle: Tags\ntemplate: tag\n---\n", encoding="utf-8"
    )
    posts = ContentProcessor(project / "pages").load()
    tags = TagIndex(posts)
    config = load_config(project)
    by_slug = {p.slug: p for p in posts}

    tag_page = post_values(by_slug["tags/index"], posts, tags, config)
    assert "python (2)" in tag_page["tagsList"]
    assert tag_page["posts"] == ""

    first = post_values(by_slug["first"], posts, tags, config)
    assert first["tagsList"] == ""
    assert first["dateISO"] == "2025-01-01T00:00:00"
    assert first["siteUrl"] == "https://example.com"
    assert 'class="reading-progress"' in first["progressBar"]
