"""Local-disk blob store for caption, video and thumbnail payloads."""

from __future__ import annotations

import shutil
import time
from pathlib import Path
from typing import BinaryIO
from uuid import uuid4

from shared.utils import ensure_directory, sanitize_filename, setup_logging

logger = setup_logging("blob-store")


class BlobStore:
    """Store payloads under opaque refs.

    Callers only ever see the ref; :meth:`path` exists for the thumbnail
    generator and for streaming responses.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root)
        ensure_directory(str(self.root))

    def _new_ref(self, original_name: str, prefix: str = "") -> str:
        safe_name = sanitize_filename(Path(original_name).name) or "blob"
        return f"{prefix}{int(time.time() * 1000)}-{uuid4().hex[:8]}-{safe_name}"

    def path(self, ref: str) -> Path:
        if not ref or ref != Path(ref).name or ref in {".", ".."}:
            raise ValueError(f"Invalid blob ref: {ref!r}")
        return self.root / ref

    def put(self, data: bytes, original_name: str, prefix: str = "") -> str:
        ref = self._new_ref(original_name, prefix)
        self.path(ref).write_bytes(data)
        logger.debug(f"Stored blob {ref} ({len(data)} bytes)")
        return ref

    def put_stream(self, stream: BinaryIO, original_name: str, prefix: str = "") -> str:
        ref = self._new_ref(original_name, prefix)
        with open(self.path(ref), "wb") as target:
            shutil.copyfileobj(stream, target)
        return ref

    def reserve(self, original_name: str, prefix: str = "") -> str:
        """Allocate a ref for a payload another process will write."""
        return self._new_ref(original_name, prefix)

    def read(self, ref: str) -> bytes:
        target = self.path(ref)
        if not target.exists():
            raise FileNotFoundError(f"Blob not found: {ref}")
        return target.read_bytes()

    def exists(self, ref: str | None) -> bool:
        if not ref:
            return False
        try:
            return self.path(ref).exists()
        except ValueError:
            return False

    def delete(self, ref: str | None) -> bool:
        """Remove a blob; a missing blob is not an error."""
        if not ref:
            return False
        target = self.path(ref)
        if not target.exists():
            return False
        target.unlink()
        logger.debug(f"Deleted blob {ref}")
        return True
