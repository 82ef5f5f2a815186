"""Flat-file persistence for assets and folders.

Each asset is one JSON document under ``data_root``; folders share a single JSON
list. Writes go to a temporary file that is then renamed over the target, and
every read-modify-write of an asset runs under that asset's lock.
"""

from __future__ import annotations

import asyncio
import json
import os
import tempfile
import weakref
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, TypeVar

from shared.exceptions import AssetNotFoundError, FolderNotFoundError
from shared.models import Asset, Folder
from shared.utils import ensure_directory, generate_id, setup_logging

logger = setup_logging("asset-store")

T = TypeVar("T")


def _atomic_write(path: Path, payload: str) -> None:
    ensure_directory(str(path.parent))
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as stream:
            stream.write(payload)
            stream.flush()
            os.fsync(stream.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class AssetStore:
    """Directory of asset records keyed by id."""

    def __init__(self, data_root: str | Path):
        self.data_root = Path(data_root)
        ensure_directory(str(self.data_root))
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _path(self, asset_id: str) -> Path:
        if not asset_id or asset_id != Path(asset_id).name:
            raise AssetNotFoundError(f"Asset {asset_id!r} not found")
        return self.data_root / f"{asset_id}.json"

    def lock_for(self, asset_id: str) -> asyncio.Lock:
        lock = self._locks.get(asset_id)
        if lock is None:
            lock = self._locks[asset_id] = asyncio.Lock()
        return lock

    def exists(self, asset_id: str) -> bool:
        try:
            return self._path(asset_id).exists()
        except AssetNotFoundError:
            return False

    def get(self, asset_id: str) -> Asset:
        path = self._path(asset_id)
        if not path.exists():
            raise AssetNotFoundError(f"Asset {asset_id} not found")
        return Asset.model_validate_json(path.read_text(encoding="utf-8"))

    def list(self, folder_id: str | None = None) -> list[Asset]:
        """All assets, newest upload first, optionally limited to one folder."""
        assets = [
            Asset.model_validate_json(path.read_text(encoding="utf-8"))
            for path in self.data_root.glob("*.json")
        ]
        if folder_id:
            assets = [asset for asset in assets if asset.folder_id == folder_id]
        return sorted(assets, key=lambda asset: asset.upload_date, reverse=True)

    def find_by_base_name(self, base_name: str, folder_id: str | None) -> Asset | None:
        """Most recently modified asset with this base name in the folder scope."""
        candidates = [
            asset
            for asset in self.list()
            if asset.base_name == base_name and asset.folder_id == folder_id
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda asset: asset.last_modified)

    def _write(self, asset: Asset) -> None:
        _atomic_write(self._path(asset.id), asset.model_dump_json(indent=2))

    async def create(self, asset: Asset) -> Asset:
        async with self.lock_for(asset.id):
            if self._path(asset.id).exists():
                raise FileExistsError(f"Asset {asset.id} already exists")
            self._write(asset)
        logger.info(f"Created asset {asset.id} ({asset.original_name})")
        return asset

    async def update(self, asset_id: str, mutate: Callable[[Asset], T | Awaitable[T]]) -> tuple[Asset, T]:
        """Read, mutate and write one asset under its lock.

        ``mutate`` works on a private copy; if it raises, nothing is written.
        """
        async with self.lock_for(asset_id):
            asset = self.get(asset_id)
            result = mutate(asset)
            if asyncio.iscoroutine(result):
                result = await result
            asset.last_modified = datetime.now(UTC)
            self._write(asset)
        return asset, result  # type: ignore[return-value]

    async def delete(self, asset_id: str) -> Asset:
        async with self.lock_for(asset_id):
            asset = self.get(asset_id)
            self._path(asset_id).unlink()
        logger.info(f"Deleted asset record {asset_id}")
        return asset


class FolderStore:
    """Folders persisted as one JSON list."""

    def __init__(self, folders_file: str | Path):
        self.folders_file = Path(folders_file)
        self._lock = asyncio.Lock()
        if not self.folders_file.exists():
            _atomic_write(self.folders_file, "[]")

    def _read(self) -> list[Folder]:
        raw: list[dict[str, Any]] = json.loads(self.folders_file.read_text(encoding="utf-8"))
        return [Folder.model_validate(item) for item in raw]

    def _save(self, folders: list[Folder]) -> None:
        payload = json.dumps([folder.model_dump(mode="json") for folder in folders], indent=2)
        _atomic_write(self.folders_file, payload)

    def list(self) -> list[Folder]:
        return self._read()

    def get(self, folder_id: str) -> Folder:
        for folder in self._read():
            if folder.id == folder_id:
                return folder
        raise FolderNotFoundError(f"Folder {folder_id} not found")

    async def create(self, name: str) -> Folder:
        async with self._lock:
            folders = self._read()
            folder = Folder(id=generate_id(), name=name)
            folders.append(folder)
            self._save(folders)
        logger.info(f"Created folder {folder.id} ({name})")
        return folder

    async def delete(self, folder_id: str) -> bool:
        async with self._lock:
            folders = self._read()
            remaining = [folder for folder in folders if folder.id != folder_id]
            if len(remaining) == len(folders):
                return False
            self._save(remaining)
        logger.info(f"Deleted folder {folder_id}")
        return True
