"""Project scaffolding for ``liteblog init``.

The default project ships as package resources under
``liteblog/resources/scaffold``. Files are copied as-is, except that files
ending in ``.jinja`` are rendered with Jinja2 first (the sample post gets
today's date) and written without the suffix. The syntax highlighting
stylesheet is generated from the active Pygments style.

Existing files are never overwritten, so ``init`` can be re-run on a
project to restore deleted defaults.
"""

from __future__ import annotations

import logging
import shutil
from datetime import date
from pathlib import Path

from jinja2 import Environment, FileSystemLoader

from .renderers import pygments_css

logger = logging.getLogger(__name__)

SCAFFOLD_DIR = Path(__file__).parent / "resources" / "scaffold"
HIGHLIGHT_CSS = Path("static") / "css" / "highlight.css"
PROJECT_DIRS = ("pages", "templates", "static/css", "static/images")


def scaffold_project(root: Path, today: date | None = None) -> list[Path]:
    """Create the directory structure and files for a new project.

    Args:
        root: Root directory for the project; created when missing.
        today: Date written into the sample post.

    Returns:
        Paths (relative to ``root``) of the files that were created.
    """
    for folder in PROJECT_DIRS:
        (root / folder).mkdir(parents=True, exist_ok=True)

    env = Environment(loader=FileSystemLoader(str(SCAFFOLD_DIR)), keep_trailing_newline=True)
    context = {"today": (today or date.today()).isoformat()}
    created: list[Path] = []
    for src_path in sorted(SCAFFOLD_DIR.rglob("*")):
        if src_path.is_dir():
            continue
        rel_path = src_path.relative_to(SCAFFOLD_DIR)
        render = rel_path.suffix == ".jinja"
        if render:
            rel_path = rel_path.with_suffix("")
        dest_path = root / rel_path
        if dest_path.exists():
            logger.debug("Keeping existing %s", rel_path)
            continue
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        if render:
            template = env.get_template(src_path.relative_to(SCAFFOLD_DIR).as_posix())
            dest_path.write_text(template.render(**context), encoding="utf-8")
        else:
            shutil.copy2(src_path, dest_path)
        created.append(rel_path)

    highlight = root / HIGHLIGHT_CSS
    if not highlight.exists():
        highlight.write_text(pygments_css() + "\n", encoding="utf-8")
        created.append(HIGHLIGHT_CSS)
    return created
