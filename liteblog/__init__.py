"""liteblog static blog generator.

This package turns a folder of Markdown posts with YAML front-matter into a
static blog: post pages, tag pages, paginated listings, an RSS feed and a
sitemap. Builds are incremental, keyed on content hashes, and a development
server rebuilds on change and reloads connected browsers.

The main entry point is the CLI module, which provides commands for
scaffolding new projects, building sites, and running the development server.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
