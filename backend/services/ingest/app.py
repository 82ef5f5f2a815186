"""Ingest Service API - single caption upload, bulk pairing upload and video attach."""

from fastapi import Depends, FastAPI, File, Form, HTTPException, UploadFile

from services.auth import add_session_middleware, require_admin
from services.captions.filenames import is_caption_file, is_video_file
from services.dependencies import container
from shared.exceptions import CaptionReviewError, http_status_for
from shared.models import IngestReport, UploadedFile, VideoAttachResult
from shared.utils import config, setup_logging

logger = setup_logging("ingest-service")

app = FastAPI(
    title="Ingest Service",
    description="Caption and video uploads with automatic pairing and version stacking",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)
add_session_middleware(app)


def _store_upload(upload: UploadFile, prefix: str = "") -> UploadedFile:
    original_name = upload.filename or "upload"
    ref = container.blobs.put_stream(upload.file, original_name, prefix=prefix)
    return UploadedFile(stored_ref=ref, original_name=original_name)


@app.get("/health", tags=["Health"])
async def health_check():
    return {"status": "healthy", "service": "ingest"}


@app.post("/upload", tags=["Uploads"])
async def upload_caption(
    file: UploadFile = File(..., description="CSV or SRT caption file"),
    folder_id: str | None = Form(None),
    _: bool = Depends(require_admin),
):
    if not file.filename or not is_caption_file(file.filename):
        raise HTTPException(status_code=400, detail="Only CSV and SRT caption files are allowed")

    try:
        asset = await container.pipeline.create_from_caption(_store_upload(file), folder_id or None)
        return {"success": True, "file_id": asset.id, "file_name": asset.original_name}
    except CaptionReviewError as e:
        raise HTTPException(status_code=http_status_for(e), detail=str(e)) from e
    except Exception as e:
        logger.error(f"Upload error: {e!s}")
        raise HTTPException(status_code=500, detail="Failed to process file") from e


@app.post("/upload-bulk", response_model=IngestReport, tags=["Uploads"])
async def upload_bulk(
    files: list[UploadFile] = File(..., description="Caption and video files"),
    folder_id: str | None = Form(None),
    _: bool = Depends(require_admin),
) -> IngestReport:
    """Pair captions with videos by name and stack versioned uploads.

    Files that are neither captions nor videos are ignored.
    """
    if not files:
        raise HTTPException(status_code=400, detail="No files uploaded")
    max_files = config.get("max_bulk_files", 200)
    if len(files) > max_files:
        raise HTTPException(status_code=400, detail=f"At most {max_files} files per upload")

    captions = [upload for upload in files if upload.filename and is_caption_file(upload.filename)]
    videos = [upload for upload in files if upload.filename and is_video_file(upload.filename)]
    logger.info(f"Bulk upload received: {len(files)} files ({len(captions)} captions, {len(videos)} videos)")

    stored: list[UploadedFile] = []
    try:
        stored_captions = [_store_upload(upload) for upload in captions]
        stored.extend(stored_captions)
        stored_videos = [_store_upload(upload) for upload in videos]
        stored.extend(stored_videos)
    except Exception as e:
        for upload in stored:
            container.blobs.delete(upload.stored_ref)
        logger.error(f"Bulk upload error while storing files: {e!s}")
        raise HTTPException(status_code=500, detail="Failed to process bulk upload") from e

    try:
        return await container.pipeline.ingest(stored_captions, stored_videos, folder_id or None)
    except Exception as e:
        logger.error(f"Bulk upload error: {e!s}")
        raise HTTPException(status_code=500, detail="Failed to process bulk upload") from e


@app.post("/files/{asset_id}/upload-video", response_model=VideoAttachResult, tags=["Uploads"])
async def upload_video(
    asset_id: str,
    video: UploadFile = File(..., description="MP4, WebM, MOV or AVI video"),
    _: bool = Depends(require_admin),
) -> VideoAttachResult:
    if not video.filename or not is_video_file(video.filename):
        raise HTTPException(status_code=400, detail="Only video files are allowed")

    try:
        return await container.pipeline.attach_video(asset_id, _store_upload(video))
    except CaptionReviewError as e:
        raise HTTPException(status_code=http_status_for(e), detail=str(e)) from e
    except Exception as e:
        logger.error(f"Error uploading video: {e!s}")
        raise HTTPException(status_code=500, detail="Failed to upload video") from e
