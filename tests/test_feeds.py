from datetime import datetime, timedelta
from pathlib import Path
from xml.etree import ElementTree

from liteblog.content import Post
from liteblog.feeds import (
    RSSGenerator,
    SitemapGenerator,
    create_default_feed_registry,
    rfc822,
)

CONFIG = {
    "title": "Blog & Co",
    "description": "Notes",
    "siteUrl": "https://blog.example.com/",
    "language": "en",
}


def make_post(slug, days=0, draft=False, title=None):
    return Post(
        slug=slug,
        title=title or slug,
        date=datetime(2025, 1, 1) + timedelta(days=days),
        description=f"About {slug}",
        tags=(),
        template="post",
        draft=draft,
        image="",
        reading_time=1,
        toc="",
        content="",
        source_path=Path(f"/pages/{slug}.md"),
    )


def test_rfc822_format():
    assert rfc822(datetime(2025, 1, 5, 9, 3, 7)) == "Sun, 05 Jan 2025 09:03:07 +0000"


def test_rss_lists_recent_posts_newest_first():
    posts = [make_post(f"post-{i}", days=i) for i in range(25)]
    posts += [make_post("draft", days=99, draft=True), make_post("about", days=99)]
    xml = RSSGenerator().generate(posts, CONFIG)

    root = ElementTree.fromstring(xml)
    channel = root.find("channel")
    assert channel.findtext("title") == "Blog & Co"
    assert channel.findtext("link") == "https://blog.example.com"
    items = channel.findall("item")
    assert len(items) == 20
    assert items[0].findtext("link") == "https://blog.example.com/post-24.html"
    assert items[-1].findtext("link") == "https://blog.example.com/post-5.html"
    assert channel.findtext("lastBuildDate") == items[0].findtext("pubDate")
    assert "draft" not in xml
    assert "about.html" not in xml


def test_rss_escapes_text_and_is_deterministic():
    posts = [make_post("x", title="<b>Bold</b> & more")]
    first = RSSGenerator().generate(posts, CONFIG)
    assert "&lt;b&gt;Bold&lt;/b&gt; &amp; more" in first
    assert RSSGenerator().generate(posts, CONFIG) == first

    empty = RSSGenerator().generate([], CONFIG)
    assert "<item>" not in empty
    assert "lastBuildDate" not in empty


def test_sitemap_includes_root_and_pages():
    posts = [
        make_post("hello", days=4),
        make_post("about"),
        make_post("index"),
        make_post("tags/index"),
        make_post("secret", draft=True),
    ]
    xml = SitemapGenerator().generate(posts, CONFIG)
    ns = {"sm": "http://www.sitemaps.org/schemas/sitemap/0.9"}
    locs = [loc.text for loc in ElementTree.fromstring(xml).findall("sm:url/sm:loc", ns)]
    assert locs == [
        "https://blog.example.com/",
        "https://blog.example.com/hello.html",
        "https://blog.example.com/about.html",
    ]
    assert "<lastmod>2025-01-05</lastmod>" in xml


def test_registry_writes_all_feeds(tmp_path):
    written = create_default_feed_registry().generate_all(tmp_path, [make_post("a")], CONFIG)
    assert written == ["rss.xml", "sitemap.xml"]
    assert (tmp_path / "rss.xml").exists()
    assert (tmp_path / "sitemap.xml").exists()
