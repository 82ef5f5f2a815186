"""Media Service API - stored videos, thumbnails and thumbnail backfill."""

from fastapi import Depends, FastAPI, HTTPException
from fastapi.responses import FileResponse

from services.auth import add_session_middleware, require_admin
from services.dependencies import container
from services.media.thumbnails import ThumbnailGenerator, backfill_thumbnails
from shared.models import ThumbnailBackfillResult
from shared.utils import setup_logging

logger = setup_logging("media-service")

app = FastAPI(
    title="Media Service",
    description="Video and thumbnail delivery",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)
add_session_middleware(app)


def _serve_blob(ref: str, kind: str) -> FileResponse:
    if not container.blobs.exists(ref):
        raise HTTPException(status_code=404, detail=f"{kind} not found")
    return FileResponse(container.blobs.path(ref))


@app.get("/health", tags=["Health"])
async def health_check():
    return {"status": "healthy", "service": "media", "thumbnails": container.thumbnails is not None}


@app.get("/videos/{ref}", tags=["Media"])
async def get_video(ref: str) -> FileResponse:
    try:
        return _serve_blob(ref, "Video")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error serving video {ref}: {e!s}")
        raise HTTPException(status_code=500, detail="Failed to serve video") from e


@app.get("/thumbnails/{ref}", tags=["Media"])
async def get_thumbnail(ref: str) -> FileResponse:
    try:
        return _serve_blob(ref, "Thumbnail")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error serving thumbnail {ref}: {e!s}")
        raise HTTPException(status_code=500, detail="Failed to serve thumbnail") from e


@app.post("/generate-thumbnails", response_model=ThumbnailBackfillResult, tags=["Media"])
async def generate_thumbnails(_: bool = Depends(require_admin)) -> ThumbnailBackfillResult:
    """Create missing thumbnails for every asset that has a stored video."""
    generator = container.thumbnails or ThumbnailGenerator(container.blobs)
    try:
        return await backfill_thumbnails(container.assets, generator)
    except Exception as e:
        logger.error(f"Error generating thumbnails: {e!s}")
        raise HTTPException(status_code=500, detail="Failed to generate thumbnails") from e
