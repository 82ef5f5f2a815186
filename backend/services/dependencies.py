"""Process-wide service singletons shared by the HTTP apps."""

from __future__ import annotations

from pathlib import Path

from services.assets.blobs import BlobStore
from services.assets.store import AssetStore, FolderStore
from services.ingest.pipeline import IngestPipeline
from services.media.thumbnails import ThumbnailGenerator
from shared.utils import config, setup_logging

logger = setup_logging("service-container")


class ServiceContainer:
    """Wires the stores, thumbnail generator and ingest pipeline from config.

    Tests call :meth:`configure` with temporary directories and may swap
    ``thumbnails`` for a fake before the pipeline is rebuilt.
    """

    def __init__(self) -> None:
        self.configure()

    def configure(
        self,
        data_root: str | Path | None = None,
        upload_root: str | Path | None = None,
        folders_file: str | Path | None = None,
        thumbnails: ThumbnailGenerator | None = None,
    ) -> None:
        self.blobs = BlobStore(upload_root or config.get("upload_root"))
        self.assets = AssetStore(data_root or config.get("data_root"))
        self.folders = FolderStore(folders_file or config.get("folders_file"))
        if thumbnails is None and config.get("thumbnails_enabled", True):
            thumbnails = ThumbnailGenerator(self.blobs)
        self.thumbnails = thumbnails
        on_ingest = config.get_ingest_value("thumbnails.on_ingest", True)
        self.pipeline = IngestPipeline(self.assets, self.blobs, thumbnails if on_ingest else None)
        logger.info(f"Storage ready: records in {self.assets.data_root}, blobs in {self.blobs.root}")


container = ServiceContainer()
