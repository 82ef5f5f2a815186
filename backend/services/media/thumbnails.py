"""Video thumbnail extraction using the ffmpeg command-line tool."""

from __future__ import annotations

import asyncio
from pathlib import Path

from services.assets.blobs import BlobStore
from services.assets.store import AssetStore
from shared.exceptions import ThumbnailError
from shared.models import Asset, ThumbnailBackfillResult
from shared.utils import config, setup_logging

logger = setup_logging("thumbnail-generator")

THUMBNAIL_PREFIX = "thumb-"


class ThumbnailGenerator:
    """Grab one frame from a stored video and store it as a PNG blob."""

    def __init__(
        self,
        blob_store: BlobStore,
        ffmpeg_path: str | None = None,
        width: int | None = None,
        timestamp: str | None = None,
        timeout: float | None = None,
    ):
        self.blob_store = blob_store
        self.ffmpeg_path = ffmpeg_path or config.get("ffmpeg_path", "ffmpeg")
        self.width = width or config.get("thumbnail_width", 320)
        self.timestamp = timestamp or config.get("thumbnail_timestamp", "00:00:01")
        self.timeout = timeout or config.get("thumbnail_timeout", 30.0)

    def _command(self, source: Path, target: Path) -> list[str]:
        return [
            self.ffmpeg_path,
            "-y",
            "-ss",
            self.timestamp,
            "-i",
            str(source),
            "-frames:v",
            "1",
            "-vf",
            f"scale={self.width}:-1",
            str(target),
        ]

    async def generate(self, video_ref: str) -> str:
        """Return the blob ref of a new thumbnail for ``video_ref``.

        Raises:
            ThumbnailError: ffmpeg is missing, fails, times out, or writes nothing
        """
        source = self.blob_store.path(video_ref)
        if not source.exists():
            raise ThumbnailError(f"Video not found: {video_ref}")

        thumbnail_ref = f"{THUMBNAIL_PREFIX}{video_ref}.png"
        target = self.blob_store.path(thumbnail_ref)

        try:
            process = await asyncio.create_subprocess_exec(
                *self._command(source, target),
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise ThumbnailError(f"Unable to start ffmpeg: {exc}") from exc

        try:
            _, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            process.kill()
            await process.wait()
            target.unlink(missing_ok=True)
            raise ThumbnailError(f"ffmpeg timed out after {self.timeout}s for {video_ref}") from exc
        except asyncio.CancelledError:
            process.kill()
            await process.wait()
            target.unlink(missing_ok=True)
            raise

        if process.returncode != 0 or not target.exists():
            target.unlink(missing_ok=True)
            detail = stderr.decode("utf-8", errors="replace").strip().splitlines()[-1:] if stderr else []
            raise ThumbnailError(
                f"ffmpeg exited with {process.returncode} for {video_ref}: {' '.join(detail)}"
            )

        logger.info(f"Generated thumbnail {thumbnail_ref}")
        return thumbnail_ref


async def backfill_thumbnails(store: AssetStore, generator: ThumbnailGenerator) -> ThumbnailBackfillResult:
    """Generate thumbnails for every asset whose video has none on disk."""
    generated = skipped = failed = 0
    for asset in store.list():
        if not generator.blob_store.exists(asset.video_file):
            skipped += 1
            continue
        if generator.blob_store.exists(asset.thumbnail_file):
            skipped += 1
            continue

        try:
            thumbnail_ref = await generator.generate(asset.video_file)
        except ThumbnailError as e:
            logger.error(f"Failed: {asset.original_name}: {e}")
            failed += 1
            continue

        def set_thumbnail(record: Asset) -> None:
            record.thumbnail_file = thumbnail_ref

        await store.update(asset.id, set_thumbnail)
        generated += 1
        logger.info(f"Generated: {asset.original_name}")

    message = f"Generated {generated} thumbnails. Skipped: {skipped}, Failed: {failed}"
    logger.info(message)
    return ThumbnailBackfillResult(generated=generated, skipped=skipped, failed=failed, message=message)
