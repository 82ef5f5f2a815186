import os
import sys
import tempfile
from pathlib import Path
from typing import Generator

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
PROJECT_ROOT = ROOT_DIR.parent
for path in (PROJECT_ROOT, ROOT_DIR):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

# Keep import-time storage out of the working directory
_IMPORT_ROOT = Path(tempfile.mkdtemp(prefix="caption-review-"))
os.environ.setdefault("DATA_ROOT", str(_IMPORT_ROOT / "data"))
os.environ.setdefault("UPLOAD_ROOT", str(_IMPORT_ROOT / "uploads"))
os.environ.setdefault("FOLDERS_FILE", str(_IMPORT_ROOT / "folders.json"))

from app import app as gateway_app  # noqa: E402
from services.assets.app import app as assets_app  # noqa: E402
from services.assets.blobs import BlobStore  # noqa: E402
from services.assets.store import AssetStore, FolderStore  # noqa: E402
from services.auth import require_admin  # noqa: E402
from services.dependencies import container as service_container  # noqa: E402
from services.ingest.app import app as ingest_app  # noqa: E402
from services.ingest.pipeline import IngestPipeline  # noqa: E402
from services.media.app import app as media_app  # noqa: E402
from shared.exceptions import ThumbnailError  # noqa: E402
from shared.models import UploadedFile  # noqa: E402

SERVICE_APPS = [gateway_app, assets_app, ingest_app, media_app]

SAMPLE_CSV = (
    "index,start_seconds,end_seconds,text,action,reason,speaker\n"
    "1,0.0,1.5,Hello there,keep,,Anna\n"
    "2,1.5,3.25,\"Cut this, please\",cut,filler,Ben\n"
)

SAMPLE_SRT = (
    "1\n"
    "00:00:00,000 --> 00:00:01,500\n"
    "Hello there\n"
    "\n"
    "2\n"
    "00:00:01,500 --> 00:00:03,250\n"
    "<i>General</i> Kenobi\n"
)


class FakeThumbnailGenerator:
    """Writes a placeholder PNG instead of running ffmpeg."""

    def __init__(self, blob_store: BlobStore):
        self.blob_store = blob_store
        self.fail_for: set[str] = set()
        self.calls: list[str] = []

    async def generate(self, video_ref: str) -> str:
        self.calls.append(video_ref)
        if video_ref in self.fail_for or not self.blob_store.exists(video_ref):
            raise ThumbnailError(f"cannot grab a frame from {video_ref}")
        thumbnail_ref = f"thumb-{video_ref}.png"
        self.blob_store.path(thumbnail_ref).write_bytes(b"\x89PNG fake")
        return thumbnail_ref


@pytest.fixture
def blob_store(tmp_path: Path) -> BlobStore:
    return BlobStore(tmp_path / "uploads")


@pytest.fixture
def asset_store(tmp_path: Path) -> AssetStore:
    return AssetStore(tmp_path / "data")


@pytest.fixture
def folder_store(tmp_path: Path) -> FolderStore:
    return FolderStore(tmp_path / "folders.json")


@pytest.fixture
def thumbnails(blob_store: BlobStore) -> FakeThumbnailGenerator:
    return FakeThumbnailGenerator(blob_store)


@pytest.fixture
def pipeline(asset_store: AssetStore, blob_store: BlobStore, thumbnails: FakeThumbnailGenerator) -> IngestPipeline:
    return IngestPipeline(asset_store, blob_store, thumbnails)


@pytest.fixture
def upload(blob_store: BlobStore):
    """Store a payload in the blob store and describe it the way ingest expects."""

    def _upload(name: str, payload: bytes | str = b"") -> UploadedFile:
        data = payload.encode("utf-8") if isinstance(payload, str) else payload
        return UploadedFile(stored_ref=blob_store.put(data, name), original_name=name)

    return _upload


@pytest.fixture(autouse=True)
def test_environment(tmp_path: Path) -> Generator:
    """Point the shared service container at per-test storage and fake thumbnails."""
    blobs = BlobStore(tmp_path / "service-uploads")
    service_container.configure(
        data_root=tmp_path / "service-data",
        upload_root=blobs.root,
        folders_file=tmp_path / "service-folders.json",
        thumbnails=FakeThumbnailGenerator(blobs),
    )
    yield


@pytest.fixture
def admin_override() -> Generator:
    """Treat every request as coming from a logged-in admin."""

    async def fake_admin() -> bool:
        return True

    for service_app in SERVICE_APPS:
        service_app.dependency_overrides[require_admin] = fake_admin
    try:
        yield
    finally:
        for service_app in SERVICE_APPS:
            service_app.dependency_overrides.pop(require_admin, None)
