"""Batch ingest: turn matched uploads into assets and stacked versions."""

from __future__ import annotations

import asyncio

from services.assets.blobs import BlobStore
from services.assets.store import AssetStore
from services.assets.versions import append_version, promote_to_active, self_snapshot, snapshot
from services.captions.codec import parse_caption
from services.captions.filenames import group_key, stacking_key
from services.ingest.matcher import AssetMatcher, DecisionKind, IngestDecision, missing_caption_warning
from services.media.thumbnails import ThumbnailGenerator
from shared.exceptions import CaptionReviewError, ParseError, ThumbnailError
from shared.models import (
    Asset,
    CreatedEntry,
    ErrorEntry,
    IngestReport,
    MatchedEntry,
    Segment,
    StackedEntry,
    StackKind,
    UploadedFile,
    VideoAttachResult,
    WarningEntry,
)
from shared.utils import generate_id, setup_logging

logger = setup_logging("ingest-pipeline")


class IngestPipeline:
    """Applies match decisions to the asset store, one file at a time.

    Each decision commits on its own; a failure is recorded in the report and
    the batch moves on. Discarded and failed uploads are removed from the blob
    store only once nothing will reference them.
    """

    def __init__(
        self,
        store: AssetStore,
        blobs: BlobStore,
        thumbnails: ThumbnailGenerator | None = None,
    ):
        self.store = store
        self.blobs = blobs
        self.thumbnails = thumbnails

    async def ingest(
        self,
        captions: list[UploadedFile],
        videos: list[UploadedFile],
        folder_id: str | None = None,
    ) -> IngestReport:
        report = IngestReport()
        plan = AssetMatcher(self.store.find_by_base_name).plan(captions, videos, folder_id)
        pending = list(plan.decisions)
        unmatched_videos = list(plan.unmatched_videos)

        try:
            while pending:
                decision = pending[0]
                try:
                    await self._apply(decision, folder_id, report)
                except CaptionReviewError as e:
                    self._record_failure(decision, e, report, unmatched_videos)
                pending.pop(0)
        except BaseException as e:
            abandoned = [upload for decision in pending for upload in self._uncommitted_files(decision)]
            abandoned += unmatched_videos
            self._discard(abandoned)
            reason = "cancelled" if isinstance(e, asyncio.CancelledError) else f"aborted ({e!r})"
            logger.warning(
                f"Ingest {reason} with {len(pending)} decision(s) outstanding; "
                f"discarded {len(abandoned)} upload(s)"
            )
            raise

        for video in unmatched_videos:
            report.unmatched.videos.append(video.original_name)
        self._discard(unmatched_videos)

        logger.info(
            f"Ingest finished: {len(report.created)} created, {len(report.matched)} matched, "
            f"{len(report.stacked)} stacked, {len(report.warnings)} warning(s), "
            f"{len(report.errors)} error(s), {len(report.unmatched.videos)} video(s) discarded"
        )
        return report

    async def _apply(self, decision: IngestDecision, folder_id: str | None, report: IngestReport) -> None:
        if decision.kind == DecisionKind.NEW_ASSET:
            await self._create_asset(decision, folder_id, report)
        elif decision.kind == DecisionKind.VIDEO_VERSION:
            await self._stack_video(decision, report)
        else:
            await self._stack_caption(decision, report)

    def _record_failure(
        self,
        decision: IngestDecision,
        error: CaptionReviewError,
        report: IngestReport,
        unmatched_videos: list[UploadedFile],
    ) -> None:
        failed = decision.caption if isinstance(error, ParseError) and decision.caption else None
        name = failed.original_name if failed else decision.display_name
        logger.error(f"Failed to ingest {name}: {error}")
        report.errors.append(ErrorEntry(file=name, error=str(error)))

        if failed is not None and decision.video is not None:
            # the video loses its caption and is discarded with the leftovers
            self._discard([failed])
            unmatched_videos.append(decision.video)
        else:
            self._discard(decision.files)

    @staticmethod
    def _uncommitted_files(decision: IngestDecision) -> list[UploadedFile]:
        # once written, the video belongs to the asset
        if decision.committed:
            return [decision.caption] if decision.caption else []
        return decision.files

    def _read_caption(self, upload: UploadedFile) -> list[Segment]:
        try:
            payload = self.blobs.read(upload.stored_ref)
        except FileNotFoundError as e:
            raise ParseError("Uploaded caption file is missing", filename=upload.original_name) from e
        return parse_caption(upload.original_name, payload)

    async def _thumbnail_for(self, video_ref: str) -> str | None:
        if self.thumbnails is None:
            return None
        try:
            return await self.thumbnails.generate(video_ref)
        except ThumbnailError as e:
            logger.warning(f"Continuing without thumbnail for {video_ref}: {e}")
            return None

    def _discard(self, uploads: list[UploadedFile]) -> None:
        for upload in uploads:
            self.blobs.delete(upload.stored_ref)

    async def _create_asset(self, decision: IngestDecision, folder_id: str | None, report: IngestReport) -> Asset:
        caption = decision.caption
        video = decision.video
        segments = self._read_caption(caption)
        thumbnail = await self._thumbnail_for(video.stored_ref) if video else None

        asset = Asset(
            id=generate_id(),
            original_name=caption.original_name,
            base_name=decision.base_name or stacking_key(caption.original_name).base_name,
            folder_id=folder_id,
            group_key=group_key(caption.original_name),
            video_file=video.stored_ref if video else None,
            thumbnail_file=thumbnail,
            segments=segments,
        )
        try:
            await self.store.create(asset)
        except BaseException:
            self.blobs.delete(thumbnail)
            raise
        decision.committed = True
        self.blobs.delete(caption.stored_ref)

        report.created.append(
            CreatedEntry(id=asset.id, name=asset.original_name, has_video=bool(video), group_key=asset.group_key)
        )
        if video:
            report.matched.append(MatchedEntry(caption=caption.original_name, video=video.original_name))
        else:
            report.unmatched.captions.append(caption.original_name)
        logger.info(f"Created asset {asset.id} from {caption.original_name} ({len(segments)} segments)")
        return asset

    async def _stack_video(self, decision: IngestDecision, report: IngestReport) -> None:
        caption = decision.caption
        video = decision.video
        segments = self._read_caption(caption) if caption else None
        thumbnail = await self._thumbnail_for(video.stored_ref)

        def stack(asset: Asset) -> None:
            version = snapshot(
                decision.version_tag,
                caption.original_name if caption else video.original_name,
                segments if segments is not None else asset.segments,
                video_file=video.stored_ref,
                thumbnail_file=thumbnail,
            )
            promote_to_active(asset, append_version(asset, decision.version_tag, version))

        try:
            await self.store.update(decision.asset_id, stack)
        except BaseException:
            self.blobs.delete(thumbnail)
            raise
        decision.committed = True
        if caption:
            self.blobs.delete(caption.stored_ref)

        report.stacked.append(
            StackedEntry(
                asset_id=decision.asset_id,
                version=decision.version_tag,
                kind=StackKind.VIDEO,
                name=video.original_name,
            )
        )
        if caption:
            report.matched.append(MatchedEntry(caption=caption.original_name, video=video.original_name))
        if decision.warning:
            report.warnings.append(
                WarningEntry(file=video.original_name, asset_id=decision.asset_id, message=decision.warning)
            )
        logger.info(f"Stacked video {video.original_name} as {decision.version_tag} on asset {decision.asset_id}")

    async def _stack_caption(self, decision: IngestDecision, report: IngestReport) -> None:
        caption = decision.caption
        segments = self._read_caption(caption)

        def stack(asset: Asset) -> None:
            version = snapshot(decision.version_tag, caption.original_name, segments)
            promote_to_active(asset, append_version(asset, decision.version_tag, version))

        await self.store.update(decision.asset_id, stack)
        decision.committed = True
        self.blobs.delete(caption.stored_ref)

        report.stacked.append(
            StackedEntry(
                asset_id=decision.asset_id,
                version=decision.version_tag,
                kind=StackKind.CAPTION,
                name=caption.original_name,
            )
        )
        logger.info(f"Stacked caption {caption.original_name} as {decision.version_tag} on asset {decision.asset_id}")

    async def create_from_caption(self, upload: UploadedFile, folder_id: str | None = None) -> Asset:
        """Create one asset from a single caption upload, without stacking."""
        decision = IngestDecision(
            kind=DecisionKind.NEW_ASSET,
            caption=upload,
            base_name=stacking_key(upload.original_name).base_name,
        )
        try:
            return await self._create_asset(decision, folder_id, IngestReport())
        except BaseException:
            self.blobs.delete(upload.stored_ref)
            raise

    async def attach_video(self, asset_id: str, upload: UploadedFile) -> VideoAttachResult:
        """Attach a video uploaded for one specific asset.

        A ``_v<digits>`` name with a tag the asset does not hold yet stacks a new
        video version; anything else replaces the active video.
        """
        _, version_tag = stacking_key(upload.original_name)
        try:
            self.store.get(asset_id)
            thumbnail = await self._thumbnail_for(upload.stored_ref)
        except BaseException:
            self.blobs.delete(upload.stored_ref)
            raise

        def attach(asset: Asset) -> tuple[VideoAttachResult, list[str | None]]:
            known_tags = {version.version_tag for version in asset.versions} or {self_snapshot(asset).version_tag}
            if version_tag and version_tag not in known_tags:
                warning = missing_caption_warning(upload.original_name, asset)
                version = snapshot(
                    version_tag,
                    upload.original_name,
                    asset.segments,
                    video_file=upload.stored_ref,
                    thumbnail_file=thumbnail,
                )
                promote_to_active(asset, append_version(asset, version_tag, version))
                result = VideoAttachResult(
                    asset_id=asset.id,
                    video_file=upload.stored_ref,
                    thumbnail_file=thumbnail,
                    is_new_version=True,
                    version=version_tag,
                    warning=warning,
                )
                return result, []

            superseded = [asset.video_file, asset.thumbnail_file]
            asset.video_file = upload.stored_ref
            asset.thumbnail_file = thumbnail
            return VideoAttachResult(asset_id=asset.id, video_file=upload.stored_ref, thumbnail_file=thumbnail), superseded

        try:
            asset, (result, superseded) = await self.store.update(asset_id, attach)
        except BaseException:
            self.blobs.delete(thumbnail)
            self.blobs.delete(upload.stored_ref)
            raise

        still_referenced = asset.referenced_blobs()
        for ref in superseded:
            if ref and ref not in still_referenced:
                self.blobs.delete(ref)
        logger.info(
            f"Attached video {upload.original_name} to asset {asset_id}"
            + (f" as {result.version}" if result.is_new_version else "")
        )
        return result

    async def delete_asset(self, asset_id: str) -> Asset:
        """Remove an asset record, then every blob it or its versions referenced."""
        asset = await self.store.delete(asset_id)
        for ref in asset.referenced_blobs():
            self.blobs.delete(ref)
        logger.info(f"Deleted asset {asset_id} and {len(asset.referenced_blobs())} blob(s)")
        return asset
