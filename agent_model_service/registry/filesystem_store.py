"""
Filesystem-backed cache of everything fetched or derived for an Agent.

Layout under the cache root, one entry per metadata content hash:

    <root>/metadata/<hash>          raw metadata JSON
    <root>/models/tar/<hash>        raw model archive (gzipped tar)
    <root>/models/proto/<hash>/     unpacked .proto tree
    <root>/models/json/<hash>       compiled interface description

Entries are content addressed, so they are written once and never
invalidated. Writes go through a temporary sibling and `os.replace`, so an
entry that exists is always complete.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Optional

from ..config import DEFAULT_CACHE_ROOT
from ..errors import BadRequestError

TMP_PREFIX = ".tmp-"


class FilesystemModelCache:
    """Resolves content hashes to cache paths and writes entries atomically."""

    def __init__(self, root: Optional[Path] = None) -> None:
        self._root = Path(root or DEFAULT_CACHE_ROOT).resolve()

    @property
    def root(self) -> Path:
        return self._root

    @property
    def metadata_dir(self) -> Path:
        return self._root / "metadata"

    @property
    def tar_dir(self) -> Path:
        return self._root / "models" / "tar"

    @property
    def proto_dir(self) -> Path:
        return self._root / "models" / "proto"

    @property
    def json_dir(self) -> Path:
        return self._root / "models" / "json"

    def ensure_layout(self) -> None:
        for directory in (self.metadata_dir, self.tar_dir, self.proto_dir, self.json_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def metadata_path(self, content_hash: str) -> Path:
        return self.metadata_dir / _safe_name(content_hash)

    def tar_path(self, content_hash: str) -> Path:
        return self.tar_dir / _safe_name(content_hash)

    def proto_path(self, content_hash: str) -> Path:
        return self.proto_dir / _safe_name(content_hash)

    def json_path(self, content_hash: str) -> Path:
        return self.json_dir / _safe_name(content_hash)

    def write_atomic(self, path: Path, data: bytes) -> Path:
        """Write `data` to `path` so readers never see a partial file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=TMP_PREFIX, dir=path.parent)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        return path

    def temp_dir_for(self, path: Path) -> Path:
        """Create an empty directory next to `path` to build it in."""
        path.parent.mkdir(parents=True, exist_ok=True)
        return Path(tempfile.mkdtemp(prefix=TMP_PREFIX, dir=path.parent))


def _safe_name(content_hash: str) -> str:
    # Hashes come from URIs and URL paths; never let one climb out of the cache.
    name = content_hash.strip()
    if not name or name in (".", "..") or "/" in name or "\\" in name or name.startswith(TMP_PREFIX):
        raise BadRequestError(f"{content_hash!r} is not a valid content hash")
    return name
