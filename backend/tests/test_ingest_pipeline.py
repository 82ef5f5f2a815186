"""
Tests for batch ingest, single uploads, video attach and asset deletion.
"""

import asyncio

import pytest

from shared.exceptions import AssetNotFoundError, ParseError
from shared.models import Asset, StackKind
from shared.utils import setup_logging

from conftest import SAMPLE_CSV, SAMPLE_SRT

setup_logging("ingest-pipeline", log_level="CRITICAL")

OTHER_CSV = "index,start_seconds,end_seconds,text\n1,0,2,Second take\n"


async def _seed(pipeline, upload, caption: str = "scene1.csv", video: str | None = "scene1.mp4") -> Asset:
    videos = [upload(video, b"video-1")] if video else []
    report = await pipeline.ingest([upload(caption, SAMPLE_CSV)], videos)
    return pipeline.store.get(report.created[0].id)


class TestBatchIngest:
    @pytest.mark.asyncio
    async def test_pairs_reports_and_discards(self, pipeline, upload, blob_store):
        captions = [upload("a.csv", SAMPLE_CSV), upload("b.csv", SAMPLE_CSV)]
        videos = [upload("a.mp4", b"aaa"), upload("c.mp4", b"ccc")]

        report = await pipeline.ingest(captions, videos)

        assert [(m.caption, m.video) for m in report.matched] == [("a.csv", "a.mp4")]
        assert report.unmatched.captions == ["b.csv"]
        assert report.unmatched.videos == ["c.mp4"]
        assert report.errors == []
        assert not blob_store.exists(videos[1].stored_ref)
        assert blob_store.exists(videos[0].stored_ref)
        assert [entry.name for entry in report.created] == ["a.csv", "b.csv"]
        assert [entry.has_video for entry in report.created] == [True, False]

    @pytest.mark.asyncio
    async def test_created_asset_fields(self, pipeline, upload, blob_store):
        video = upload("LT01_B02_P03_677_split.mp4", b"v")
        report = await pipeline.ingest([upload("LT01_B02_P03_677_split.csv", SAMPLE_CSV)], [video], "folder-1")

        asset = pipeline.store.get(report.created[0].id)
        assert asset.base_name == "LT01_B02_P03_677"
        assert asset.group_key == "LT01_B02_P03_677"
        assert asset.folder_id == "folder-1"
        assert asset.video_file == video.stored_ref
        assert asset.thumbnail_file == f"thumb-{video.stored_ref}.png"
        assert blob_store.exists(asset.thumbnail_file)
        assert len(asset.segments) == 2
        assert asset.versions == []

    @pytest.mark.asyncio
    async def test_caption_blobs_removed_after_commit(self, pipeline, upload, blob_store):
        caption = upload("a.srt", SAMPLE_SRT)
        await pipeline.ingest([caption], [])
        assert not blob_store.exists(caption.stored_ref)

    @pytest.mark.asyncio
    async def test_empty_caption_is_error_and_creates_nothing(self, pipeline, upload, blob_store):
        bad = upload("empty.csv", "index,start_seconds,end_seconds,text\n")
        video = upload("empty.mp4", b"v")
        good = upload("fine.csv", SAMPLE_CSV)

        report = await pipeline.ingest([bad, good], [video])

        assert [error.file for error in report.errors] == ["empty.csv"]
        assert [entry.name for entry in report.created] == ["fine.csv"]
        assert report.unmatched.videos == ["empty.mp4"]
        assert not blob_store.exists(bad.stored_ref)
        assert not blob_store.exists(video.stored_ref)
        assert len(pipeline.store.list()) == 1

    @pytest.mark.asyncio
    async def test_thumbnail_failure_is_not_fatal(self, pipeline, upload, thumbnails):
        video = upload("a.mp4", b"v")
        thumbnails.fail_for.add(video.stored_ref)

        report = await pipeline.ingest([upload("a.csv", SAMPLE_CSV)], [video])

        asset = pipeline.store.get(report.created[0].id)
        assert asset.video_file == video.stored_ref
        assert asset.thumbnail_file is None
        assert report.errors == []

    @pytest.mark.asyncio
    async def test_without_thumbnail_generator(self, asset_store, blob_store, upload):
        from services.ingest.pipeline import IngestPipeline

        report = await IngestPipeline(asset_store, blob_store).ingest([upload("a.csv", SAMPLE_CSV)], [upload("a.mp4", b"v")])
        assert asset_store.get(report.created[0].id).thumbnail_file is None

    @pytest.mark.asyncio
    async def test_non_finite_timing_is_error_and_store_stays_readable(self, pipeline, upload, blob_store):
        bad = upload("a.csv", "start_seconds,end_seconds,text\nnan,inf,hi\n")

        report = await pipeline.ingest([bad, upload("good.csv", SAMPLE_CSV)], [])

        assert [error.file for error in report.errors] == ["a.csv"]
        assert [entry.name for entry in report.created] == ["good.csv"]
        assert [asset.original_name for asset in pipeline.store.list()] == ["good.csv"]
        assert not blob_store.exists(bad.stored_ref)

    @pytest.mark.asyncio
    async def test_non_ascii_digit_index_does_not_abort_batch(self, pipeline, upload):
        odd = upload("odd.csv", "index,start_seconds,end_seconds,text\n²,0,1,hi\n")

        report = await pipeline.ingest([odd, upload("good.csv", SAMPLE_CSV)], [])

        assert report.errors == []
        assert [entry.name for entry in report.created] == ["odd.csv", "good.csv"]
        created = pipeline.store.get(report.created[0].id)
        assert created.segments[0].index == "²"


class TestVersionStacking:
    @pytest.mark.asyncio
    async def test_video_version_without_caption_warns_and_inherits(self, pipeline, upload, blob_store):
        asset = await _seed(pipeline, upload)
        new_video = upload("scene1_v002.mp4", b"video-2")

        report = await pipeline.ingest([], [new_video])

        assert [w.file for w in report.warnings] == ["scene1_v002.mp4"]
        assert report.warnings[0].asset_id == asset.id
        assert [(s.asset_id, s.version, s.kind) for s in report.stacked] == [(asset.id, "v002", StackKind.VIDEO)]
        updated = pipeline.store.get(asset.id)
        assert [v.version_tag for v in updated.versions] == ["v001", "v002"]
        assert updated.video_file == new_video.stored_ref
        assert updated.segments == asset.segments
        assert list(updated.versions[-1].segments) == updated.segments
        assert blob_store.exists(asset.video_file)
        assert report.unmatched.videos == []

    @pytest.mark.asyncio
    async def test_video_version_with_caption(self, pipeline, upload):
        asset = await _seed(pipeline, upload)

        report = await pipeline.ingest([upload("scene1_v002_split.csv", OTHER_CSV)], [upload("scene1_v002.mp4", b"v2")])

        assert report.warnings == []
        assert [(m.caption, m.video) for m in report.matched] == [("scene1_v002_split.csv", "scene1_v002.mp4")]
        updated = pipeline.store.get(asset.id)
        assert [s.text for s in updated.segments] == ["Second take"]
        assert updated.original_name == "scene1_v002_split.csv"
        assert len(pipeline.store.list()) == 1

    @pytest.mark.asyncio
    async def test_caption_only_version_keeps_video(self, pipeline, upload):
        asset = await _seed(pipeline, upload)

        report = await pipeline.ingest([upload("scene1_v003.csv", OTHER_CSV)], [])

        assert [(s.version, s.kind) for s in report.stacked] == [("v003", StackKind.CAPTION)]
        assert report.created == []
        updated = pipeline.store.get(asset.id)
        assert updated.video_file == asset.video_file
        assert updated.versions[-1].video_file is None
        assert [s.text for s in updated.segments] == ["Second take"]

    @pytest.mark.asyncio
    async def test_duplicate_version_is_conflict(self, pipeline, upload, blob_store):
        asset = await _seed(pipeline, upload)
        await pipeline.ingest([], [upload("scene1_v002.mp4", b"v2")])
        before = pipeline.store.get(asset.id)
        again = upload("scene1_v002.mp4", b"v2-again")

        report = await pipeline.ingest([], [again])

        assert [error.file for error in report.errors] == ["scene1_v002.mp4"]
        assert pipeline.store.get(asset.id).versions == before.versions
        assert not blob_store.exists(again.stored_ref)

    @pytest.mark.asyncio
    async def test_stacking_is_scoped_to_folder(self, pipeline, upload):
        await _seed(pipeline, upload)

        report = await pipeline.ingest([], [upload("scene1_v002.mp4", b"v2")], folder_id="other")

        assert report.stacked == []
        assert report.unmatched.videos == ["scene1_v002.mp4"]

    @pytest.mark.asyncio
    async def test_unversioned_caption_travels_with_new_video_version(self, pipeline, upload):
        asset = await _seed(pipeline, upload)

        report = await pipeline.ingest([upload("scene1.csv", OTHER_CSV)], [upload("scene1_v002.mp4", b"v2")])

        assert report.warnings == []
        assert report.created == []
        assert [(s.asset_id, s.version, s.kind) for s in report.stacked] == [(asset.id, "v002", StackKind.VIDEO)]
        assert [(m.caption, m.video) for m in report.matched] == [("scene1.csv", "scene1_v002.mp4")]
        assert len(pipeline.store.list()) == 1
        assert [s.text for s in pipeline.store.get(asset.id).segments] == ["Second take"]


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_keeps_committed_and_discards_rest(self, pipeline, upload, blob_store, thumbnails):
        started = asyncio.Event()
        release = asyncio.Event()
        original_generate = thumbnails.generate

        async def slow_generate(video_ref: str) -> str:
            if video_ref == second_video.stored_ref:
                started.set()
                await release.wait()
            return await original_generate(video_ref)

        thumbnails.generate = slow_generate
        first_video = upload("a.mp4", b"a")
        second_video = upload("b.mp4", b"b")
        captions = [upload("a.csv", SAMPLE_CSV), upload("b.csv", SAMPLE_CSV), upload("c.csv", SAMPLE_CSV)]
        leftover = upload("z.mp4", b"z")

        task = asyncio.create_task(pipeline.ingest(captions, [first_video, second_video, leftover]))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assets = pipeline.store.list()
        assert [asset.original_name for asset in assets] == ["a.csv"]
        assert blob_store.exists(first_video.stored_ref)
        for abandoned in (second_video, leftover, captions[1], captions[2]):
            assert not blob_store.exists(abandoned.stored_ref)

    @pytest.mark.asyncio
    async def test_unexpected_error_discards_outstanding_uploads(self, pipeline, upload, blob_store, thumbnails):
        original_generate = thumbnails.generate

        async def broken_generate(video_ref: str) -> str:
            if video_ref == second_video.stored_ref:
                raise RuntimeError("disk on fire")
            return await original_generate(video_ref)

        thumbnails.generate = broken_generate
        first_video = upload("a.mp4", b"a")
        second_video = upload("b.mp4", b"b")
        captions = [upload("a.csv", SAMPLE_CSV), upload("b.csv", SAMPLE_CSV), upload("c.csv", SAMPLE_CSV)]
        leftover = upload("z.mp4", b"z")

        with pytest.raises(RuntimeError):
            await pipeline.ingest(captions, [first_video, second_video, leftover])

        assert [asset.original_name for asset in pipeline.store.list()] == ["a.csv"]
        assert blob_store.exists(first_video.stored_ref)
        for abandoned in (second_video, leftover, captions[0], captions[1], captions[2]):
            assert not blob_store.exists(abandoned.stored_ref)


class TestSingleUploads:
    @pytest.mark.asyncio
    async def test_create_from_caption(self, pipeline, upload, blob_store):
        caption = upload("notes_v002.srt", SAMPLE_SRT)

        asset = await pipeline.create_from_caption(caption, "folder-1")

        assert asset.base_name == "notes"
        assert asset.folder_id == "folder-1"
        assert asset.video_file is None
        assert len(asset.segments) == 2
        assert not blob_store.exists(caption.stored_ref)

    @pytest.mark.asyncio
    async def test_create_from_bad_caption_raises_and_cleans_up(self, pipeline, upload, blob_store):
        caption = upload("bad.srt", "nothing useful")

        with pytest.raises(ParseError):
            await pipeline.create_from_caption(caption)
        assert not blob_store.exists(caption.stored_ref)
        assert pipeline.store.list() == []

    @pytest.mark.asyncio
    async def test_attach_replaces_and_deletes_superseded(self, pipeline, upload, blob_store):
        asset = await _seed(pipeline, upload)
        replacement = upload("scene1-final.mp4", b"new")

        result = await pipeline.attach_video(asset.id, replacement)

        assert result.is_new_version is False
        updated = pipeline.store.get(asset.id)
        assert updated.video_file == replacement.stored_ref
        assert updated.thumbnail_file == result.thumbnail_file
        assert not blob_store.exists(asset.video_file)
        assert not blob_store.exists(asset.thumbnail_file)

    @pytest.mark.asyncio
    async def test_attach_versioned_video_stacks(self, pipeline, upload, blob_store):
        asset = await _seed(pipeline, upload)

        result = await pipeline.attach_video(asset.id, upload("scene1_v002.mp4", b"v2"))

        assert result.is_new_version is True
        assert result.version == "v002"
        assert "scene1.csv" in result.warning
        updated = pipeline.store.get(asset.id)
        assert [v.version_tag for v in updated.versions] == ["v001", "v002"]
        assert blob_store.exists(asset.video_file)

    @pytest.mark.asyncio
    async def test_attach_known_tag_replaces_but_keeps_versioned_blob(self, pipeline, upload, blob_store):
        asset = await _seed(pipeline, upload)
        await pipeline.attach_video(asset.id, upload("scene1_v002.mp4", b"v2"))
        stacked = pipeline.store.get(asset.id)

        result = await pipeline.attach_video(asset.id, upload("scene1_v002.mp4", b"v2-fixed"))

        assert result.is_new_version is False
        assert blob_store.exists(stacked.video_file)

    @pytest.mark.asyncio
    async def test_attach_to_missing_asset_cleans_up(self, pipeline, upload, blob_store):
        video = upload("x.mp4", b"x")
        with pytest.raises(AssetNotFoundError):
            await pipeline.attach_video("missing", video)
        assert not blob_store.exists(video.stored_ref)

    @pytest.mark.asyncio
    async def test_delete_asset_removes_all_blobs(self, pipeline, upload, blob_store):
        asset = await _seed(pipeline, upload)
        await pipeline.ingest([], [upload("scene1_v002.mp4", b"v2")])
        stacked = pipeline.store.get(asset.id)

        await pipeline.delete_asset(asset.id)

        assert not pipeline.store.exists(asset.id)
        for ref in stacked.referenced_blobs():
            assert not blob_store.exists(ref)
