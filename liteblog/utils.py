"""Utility functions for liteblog.

This module contains small helpers used throughout the liteblog codebase:
string processing, path handling, date formatting and file copying.

Key functions:
    slugify: Convert tag names and titles to URL slugs.
    is_markdown: Check if a path is a Markdown file.
    is_hidden: Check if a path has a dot-prefixed component.
    format_date: Format a date for display in the configured language.
    ensure_clean_dir: Ensure a directory exists and is empty.
    copy_tree: Copy a directory tree over an existing one.
"""

from __future__ import annotations

import re
import shutil
import unicodedata
from datetime import datetime
from pathlib import Path


def fold_accents(text: str) -> str:
    """Lower-case ``text`` and strip combining marks ("Việt" becomes "viet")."""
    normalized = unicodedata.normalize("NFD", text.lower())
    return "".join(ch for ch in normalized if not unicodedata.combining(ch))


def slugify(text: str) -> str:
    """Convert text to a URL-friendly slug.

    Accents are folded to their base letters, anything that is not a
    letter, digit, space or hyphen is dropped, and whitespace runs become
    single hyphens.

    Args:
        text: Text to convert, typically a tag name.

    Returns:
        URL-friendly slug, or "tag" when nothing survives.

    Examples:
        >>> slugify("Python Tips")
        'python-tips'

        >>> slugify("Tiếng Việt")
        'tieng-viet'
    """
    stripped = fold_accents(text)
    cleaned = re.sub(r"[^a-z0-9\s-]", "", stripped)
    cleaned = re.sub(r"\s+", "-", cleaned.strip())
    cleaned = re.sub(r"-+", "-", cleaned)
    return cleaned or "tag"


def is_markdown(path: Path) -> bool:
    """Check if a path is a Markdown file.

    Args:
        path: Path to check.

    Returns:
        True if the file has .md extension (case-insensitive).
    """
    return path.suffix.lower() == ".md"


def is_hidden(path: Path) -> bool:
    """Check if any component of a path starts with a dot."""
    return any(part.startswith(".") for part in path.parts)


def format_date(value: datetime, language: str = "en") -> str:
    """Format a date for display.

    English locales get the long form ("January 5, 2025"); every other
    language gets the day-first numeric form ("05/01/2025").

    Args:
        value: Date to format.
        language: Locale tag from the site configuration.

    Returns:
        Human-readable date string.
    """
    if language.lower().startswith("en"):
        return f"{value:%B} {value.day}, {value.year}"
    return f"{value:%d/%m/%Y}"


def ensure_dir(path: Path) -> Path:
    """Create a directory (and parents) if it does not exist."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def ensure_clean_dir(path: Path) -> None:
    """Ensure a directory exists and is empty.

    If the directory exists, removes all contents. Creates the
    directory if it doesn't exist.

    Args:
        path: Directory path to clean or create.
    """
    if path.exists():
        shutil.rmtree(path)
    path.mkdir(parents=True, exist_ok=True)


def copy_tree(source: Path, dest: Path) -> list[Path]:
    """Copy every file under source into dest, overwriting existing files.

    Hidden files (cache files, editor swap files) are skipped.

    Args:
        source: Directory to copy from.
        dest: Directory to copy into; created when missing.

    Returns:
        List of destination paths written.
    """
    written: list[Path] = []
    for item in sorted(source.rglob("*")):
        rel = item.relative_to(source)
        if item.is_dir() or is_hidden(rel):
            continue
        target = dest / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(item, target)
        written.append(target)
    return written
