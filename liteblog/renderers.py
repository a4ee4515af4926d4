"""Markdown rendering for liteblog.

Markdown is converted to HTML with mistune; fenced code blocks that name a
language are highlighted with Pygments. Heading ids are not assigned here:
they are added afterwards by :func:`liteblog.derived.add_heading_ids`, which
works on any HTML regardless of which converter produced it.

Key classes:
- MarkdownRenderer: Renders Markdown to HTML with syntax highlighting.
"""

from __future__ import annotations

import mistune
from markupsafe import escape
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

MARKDOWN_PLUGINS = ["strikethrough", "footnotes", "table", "url"]


class _HighlightRenderer(mistune.HTMLRenderer):
    """HTML renderer that passes raw HTML through and highlights code."""

    def __init__(self):
        super().__init__(escape=False)

    def block_code(self, code: str, info: str | None = None) -> str:
        """Render a code block with Pygments syntax highlighting.

        Args:
            code: The code content.
            info: Language identifier (e.g., 'python', 'javascript').

        Returns:
            HTML string with highlighted code.
        """
        lang = info.split()[0] if info else ""
        if lang:
            try:
                lexer = get_lexer_by_name(lang, stripall=True)
            except ClassNotFound:
                lexer = None
            if lexer is not None:
                formatter = HtmlFormatter(nowrap=False, cssclass="highlight")
                return highlight(code, lexer, formatter)
        lang_class = f' class="language-{escape(lang)}"' if lang else ""
        return f"<pre><code{lang_class}>{escape(code)}</code></pre>\n"


class MarkdownRenderer:
    """Renders Markdown content to HTML.

    Single newlines inside a paragraph become ``<br>`` (hard wrap), which
    matches how most blog authors expect their text to look.
    """

    def __init__(self, hard_wrap: bool = True):
        self.hard_wrap = hard_wrap

    def render(self, content: str) -> str:
        """Render Markdown content to HTML.

        Args:
            content: Markdown source content.

        Returns:
            Rendered HTML.
        """
        markdown = mistune.create_markdown(
            renderer=_HighlightRenderer(),
            hard_wrap=self.hard_wrap,
            plugins=MARKDOWN_PLUGINS,
        )
        return markdown(content)


def pygments_css(selector: str = ".highlight") -> str:
    """Return Pygments CSS rules for highlighted code blocks."""
    return HtmlFormatter().get_style_defs(selector)


default_markdown_renderer = MarkdownRenderer()
