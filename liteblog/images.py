"""Image optimization for liteblog.

JPEG and PNG files under ``static/images`` get a WebP sibling in the output
tree. Conversion runs in small fixed-width batches: each batch is submitted
to a thread pool and fully awaited before the next one starts, which bounds
memory and open file handles without serializing the whole set.

Key classes:
- ImageOptimizer: Cache-gated, batched WebP conversion.

Functions:
    transcode_webp: Encode image bytes as WebP.
    is_optimizable: Whether a file is converted (JPEG/PNG).
"""

from __future__ import annotations

import io
import logging
import shutil
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from PIL import Image

from .cache import BuildCache
from .utils import is_hidden

logger = logging.getLogger(__name__)

OPTIMIZABLE_EXTENSIONS = {".jpg", ".jpeg", ".png"}
DEFAULT_BATCH_SIZE = 5
DEFAULT_QUALITY = 80


def is_optimizable(path: Path) -> bool:
    """Check if an image is converted to WebP (GIF, SVG and WebP are not)."""
    return path.suffix.lower() in OPTIMIZABLE_EXTENSIONS


def transcode_webp(data: bytes, quality: int = DEFAULT_QUALITY) -> bytes:
    """Encode image bytes as WebP, keeping the original dimensions.

    Args:
        data: Encoded source image.
        quality: WebP quality (0-100).

    Returns:
        WebP-encoded bytes.

    Raises:
        OSError: If Pillow cannot decode or encode the image.
    """
    with Image.open(io.BytesIO(data)) as img:
        if img.mode not in ("RGB", "RGBA"):
            img = img.convert("RGBA" if "A" in img.getbands() else "RGB")
        out = io.BytesIO()
        img.save(out, format="WEBP", quality=quality)
    return out.getvalue()


@dataclass
class ImageReport:
    """Outcome of an optimization run."""

    converted: list[Path] = field(default_factory=list)
    skipped: list[Path] = field(default_factory=list)
    fallbacks: list[Path] = field(default_factory=list)


class ImageOptimizer:
    """Converts images to WebP, skipping ones unchanged since the last pass.

    Attributes:
        source_dir: Directory holding the original images.
        output_dir: Directory receiving the ``.webp`` files.
        cache: Image build cache, separate from the content cache.
        batch_size: Number of conversions running at once.
        quality: WebP quality.
    """

    def __init__(
        self,
        source_dir: Path,
        output_dir: Path,
        cache: BuildCache,
        batch_size: int = DEFAULT_BATCH_SIZE,
        quality: int = DEFAULT_QUALITY,
    ):
        self.source_dir = source_dir
        self.output_dir = output_dir
        self.cache = cache
        self.batch_size = max(1, batch_size)
        self.quality = quality

    def webp_path(self, source: Path) -> Path:
        rel = source.relative_to(self.source_dir)
        return (self.output_dir / rel).with_suffix(".webp")

    def iter_images(self) -> list[Path]:
        if not self.source_dir.is_dir():
            return []
        return [
            path
            for path in sorted(self.source_dir.rglob("*"))
            if path.is_file()
            and is_optimizable(path)
            and not is_hidden(path.relative_to(self.source_dir))
        ]

    def run(self) -> ImageReport:
        """Convert every changed image, one batch at a time."""
        report = ImageReport()
        pending: list[Path] = []
        for source in self.iter_images():
            changed = self.cache.should_rebuild(source)
            self.cache.record(source)
            if not changed and self.webp_path(source).exists():
                report.skipped.append(source)
            else:
                pending.append(source)

        if pending:
            with ThreadPoolExecutor(max_workers=self.batch_size) as pool:
                for start in range(0, len(pending), self.batch_size):
                    batch = pending[start : start + self.batch_size]
                    for source, ok in zip(batch, pool.map(self._convert, batch)):
                        (report.converted if ok else report.fallbacks).append(source)

        if report.skipped:
            logger.info("Skipped %d unchanged images", len(report.skipped))
        return report

    def _convert(self, source: Path) -> bool:
        """Write the WebP version of ``source``.

        Returns:
            True on success; False when the original was copied instead.
        """
        target = self.webp_path(source)
        target.parent.mkdir(parents=True, exist_ok=True)
        try:
            target.write_bytes(transcode_webp(source.read_bytes(), self.quality))
        except (OSError, ValueError, Image.DecompressionBombError) as exc:
            logger.error("Could not optimize %s: %s; copying original", source.name, exc)
            shutil.copy2(source, target.with_name(source.name))
            return False
        logger.info("Optimized %s", source.relative_to(self.source_dir))
        return True
