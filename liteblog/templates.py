"""Template rendering for liteblog.

Site templates are plain HTML files with ``{{ name }}`` placeholders. There
are no loops, conditionals or includes: anything structured (post lists,
tag links, pagination) is rendered to an HTML string first and substituted
as a single value.

Key class:
- TemplateSet: Name-keyed templates with post/default fallback.

Functions:
    render_template: Substitute placeholders into a template string.
"""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import Any

__all__ = ["TemplateSet", "render_template", "FALLBACK_TEMPLATES"]

FALLBACK_TEMPLATES = ("post", "default")


def render_template(template: str, values: Mapping[str, Any]) -> str:
    """Replace ``{{ name }}`` placeholders with values.

    Only names present in ``values`` are substituted; any other placeholder
    stays in the output as written. Falsy values (None, "", 0) render as an
    empty string.

    Args:
        template: Template text.
        values: Placeholder name to replacement value.

    Returns:
        The rendered text.

    Examples:
        >>> render_template("<h1>{{ title }}</h1>{{other}}", {"title": "Hi"})
        '<h1>Hi</h1>{{other}}'
    """
    if not values:
        return template
    names = "|".join(re.escape(name) for name in sorted(values, key=len, reverse=True))
    pattern = re.compile(r"\{\{\s*(" + names + r")\s*\}\}")

    def repl(match: re.Match) -> str:
        value = values[match.group(1)]
        return str(value) if value else ""

    return pattern.sub(repl, template)


class TemplateSet(Mapping[str, str]):
    """Templates loaded from a directory, keyed by file stem.

    Attributes:
        templates_dir: Directory the ``*.html`` files were read from.
    """

    def __init__(self, templates: Mapping[str, str], templates_dir: Path | None = None):
        self._templates = dict(templates)
        self.templates_dir = templates_dir

    @classmethod
    def load(cls, templates_dir: Path) -> TemplateSet:
        """Read every ``*.html`` file in ``templates_dir``.

        A missing directory yields an empty set; every page will then be
        skipped with a warning.
        """
        templates: dict[str, str] = {}
        if templates_dir.is_dir():
            for path in sorted(templates_dir.glob("*.html")):
                templates[path.stem] = path.read_text(encoding="utf-8")
        return cls(templates, templates_dir)

    def files(self) -> list[Path]:
        """Paths of the loaded template files."""
        if self.templates_dir is None:
            return []
        return [self.templates_dir / f"{name}.html" for name in self._templates]

    def __getitem__(self, key: str) -> str:
        return self._templates[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._templates)

    def __len__(self) -> int:
        return len(self._templates)

    def resolve(self, name: str, fallbacks: tuple[str, ...] = FALLBACK_TEMPLATES) -> str | None:
        """Return the named template, or the first available fallback.

        Args:
            name: Requested template name.
            fallbacks: Names tried in order when ``name`` is missing.

        Returns:
            Template text, or None when nothing matches.
        """
        for candidate in (name, *fallbacks):
            if candidate in self._templates:
                return self._templates[candidate]
        return None
