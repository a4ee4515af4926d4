"""Build cache for incremental builds.

A build cache maps absolute source paths to the content hash recorded when
the source was last built. Each pass reads the previous snapshot, records
fresh hashes into a new mapping as it goes, and replaces the snapshot file
wholesale once the pass has finished. A pass that fails never calls
:meth:`BuildCache.save`, so the next pass still sees the old snapshot.

Key classes:
- BuildCache: Previous/current hash snapshots backed by a JSON file.

Functions:
    file_hash: Content hash of a file.
    tree_hash: Combined hash of several files.
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Iterable
from pathlib import Path

logger = logging.getLogger(__name__)

CONTENT_CACHE_NAME = ".liteblog-cache.json"
IMAGE_CACHE_NAME = ".liteblog-images.json"


def file_hash(path: Path) -> str | None:
    """Return the SHA-256 hex digest of a file, or None if it is missing."""
    try:
        data = path.read_bytes()
    except FileNotFoundError:
        return None
    return hashlib.sha256(data).hexdigest()


def tree_hash(paths: Iterable[Path]) -> str:
    """Hash a set of files together, keyed by name so renames count."""
    digest = hashlib.sha256()
    for path in sorted(paths):
        digest.update(path.name.encode("utf-8"))
        digest.update(b"\0")
        digest.update((file_hash(path) or "").encode("ascii"))
        digest.update(b"\0")
    return digest.hexdigest()


def load_snapshot(path: Path) -> dict[str, str]:
    """Read a persisted path-to-hash mapping.

    A missing file is an empty snapshot. A corrupt one is logged and also
    treated as empty, which simply makes the next pass rebuild everything.
    """
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning("Ignoring unreadable build cache %s: %s", path, exc)
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring build cache %s: expected a JSON object", path)
        return {}
    return {str(k): str(v) for k, v in data.items()}


class BuildCache:
    """Decides which sources must be rebuilt in a pass.

    Attributes:
        path: JSON file holding the persisted snapshot.
        incremental: False forces every source to rebuild.
        previous: Snapshot loaded at the start of the pass.
        current: Hashes recorded during this pass.
    """

    def __init__(self, path: Path, incremental: bool = True):
        self.path = path
        self.incremental = incremental
        self.previous: dict[str, str] = load_snapshot(path) if incremental else {}
        self.current: dict[str, str] = {}

    @staticmethod
    def key(source: Path) -> str:
        return str(source.resolve())

    def should_rebuild(self, source: Path) -> bool:
        """Whether ``source`` changed since the last successful pass.

        Args:
            source: Path to an input file or directory key.

        Returns:
            True for a full pass, for a path missing from the previous
            snapshot, or when the current hash differs from the stored one.
        """
        if not self.incremental:
            return True
        stored = self.previous.get(self.key(source))
        if stored is None:
            return True
        return stored != self._current_hash(source)

    def record(self, source: Path, digest: str | None = None) -> str | None:
        """Store the current hash of ``source`` in the new snapshot.

        Args:
            source: Path to record.
            digest: Precomputed hash; computed from the file when omitted.

        Returns:
            The recorded hash, or None if the file no longer exists.
        """
        key = self.key(source)
        value = digest if digest is not None else file_hash(source)
        if value is None:
            self.current.pop(key, None)
            return None
        self.current[key] = value
        return value

    def _current_hash(self, source: Path) -> str | None:
        key = self.key(source)
        if key in self.current:
            return self.current[key]
        return file_hash(source)

    def save(self) -> None:
        """Replace the persisted snapshot with the hashes of this pass."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        tmp.write_text(json.dumps(self.current, indent=2, sort_keys=True), encoding="utf-8")
        tmp.replace(self.path)
