"""Static asset pipeline for liteblog.

Everything under a project's ``static/`` directory is copied verbatim to the
output root (``static/css/style.css`` becomes ``/css/style.css``). Images
under ``static/images/`` are then handed to :class:`ImageOptimizer`, which
adds WebP versions next to the copied originals.

Key components:
- AssetPipeline: Copies static files and runs image optimization.
"""

from __future__ import annotations

import logging
from pathlib import Path

from .cache import BuildCache
from .images import ImageOptimizer, ImageReport
from .utils import copy_tree

logger = logging.getLogger(__name__)


class AssetPipeline:
    """Handles static files for a build pass.

    Attributes:
        static_dir: Directory containing source assets.
        output_dir: Site output root.
        image_cache: Cache gating image conversion.
        optimize_images: Whether to produce WebP versions.
    """

    def __init__(
        self,
        static_dir: Path,
        output_dir: Path,
        image_cache: BuildCache,
        optimize_images: bool = True,
    ):
        self.static_dir = static_dir
        self.output_dir = output_dir
        self.image_cache = image_cache
        self.optimize_images = optimize_images

    def run(self) -> ImageReport | None:
        """Copy static files, then optimize images.

        Returns:
            The image report, or None when there is no static directory or
            optimization is disabled.
        """
        if not self.static_dir.is_dir():
            return None
        copied = copy_tree(self.static_dir, self.output_dir)
        logger.info("Copied %d static files", len(copied))
        if not self.optimize_images:
            return None
        optimizer = ImageOptimizer(
            self.static_dir / "images",
            self.output_dir / "images",
            self.image_cache,
        )
        return optimizer.run()
