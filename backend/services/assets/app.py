"""Assets Service API - caption files, folders, comments, exports and version history."""

from datetime import UTC, datetime

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response

from services.assets.versions import get_version
from services.auth import add_session_middleware, is_admin, require_admin
from services.captions.codec import export_filename, export_subtitle, export_tabular
from services.dependencies import container
from shared.exceptions import CaptionReviewError, CommentNotFoundError, http_status_for
from shared.models import (
    Asset,
    AssetSummary,
    AssetUpdateRequest,
    Comment,
    CommentAuthor,
    CommentRequest,
    CommentUpdateRequest,
    Folder,
    FolderAssignRequest,
    FolderCreateRequest,
    Version,
)
from shared.utils import generate_id, setup_logging

logger = setup_logging("assets-service")

app = FastAPI(
    title="Assets Service",
    description="Caption review records, folders, comments and exports",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)
add_session_middleware(app)


def _domain_error(e: CaptionReviewError) -> HTTPException:
    return HTTPException(status_code=http_status_for(e), detail=str(e))


@app.get("/health", tags=["Health"])
async def health_check():
    return {"status": "healthy", "service": "assets"}


# Folders


@app.get("/folders", response_model=list[Folder], tags=["Folders"])
async def list_folders() -> list[Folder]:
    try:
        return container.folders.list()
    except Exception as e:
        logger.error(f"Error listing folders: {e!s}")
        raise HTTPException(status_code=500, detail="Failed to list folders") from e


@app.post("/folders", response_model=Folder, tags=["Folders"])
async def create_folder(request: FolderCreateRequest, _: bool = Depends(require_admin)) -> Folder:
    try:
        return await container.folders.create(request.name)
    except Exception as e:
        logger.error(f"Error creating folder: {e!s}")
        raise HTTPException(status_code=500, detail="Failed to create folder") from e


@app.delete("/folders/{folder_id}", tags=["Folders"])
async def delete_folder(folder_id: str, _: bool = Depends(require_admin)):
    """Delete a folder; assets that pointed at it keep their stale folder id."""
    try:
        deleted = await container.folders.delete(folder_id)
        return {"success": True, "deleted": deleted}
    except Exception as e:
        logger.error(f"Error deleting folder: {e!s}")
        raise HTTPException(status_code=500, detail="Failed to delete folder") from e


# Files


@app.get("/files", tags=["Files"])
async def list_files(
    folder_id: str | None = Query(None, description="Only files in this folder"),
    grouped: bool = Query(False, description="Group files by their group key"),
):
    try:
        summaries = [AssetSummary.from_asset(asset) for asset in container.assets.list(folder_id)]
        if not grouped:
            return summaries

        groups: dict[str, list[AssetSummary]] = {}
        for summary in summaries:
            groups.setdefault(summary.group_key or "ungrouped", []).append(summary)
        return {"grouped": True, "groups": groups}
    except Exception as e:
        logger.error(f"Error listing files: {e!s}")
        raise HTTPException(status_code=500, detail="Failed to list files") from e


@app.get("/files/{asset_id}", response_model=Asset, tags=["Files"])
async def get_file(asset_id: str) -> Asset:
    try:
        return container.assets.get(asset_id)
    except CaptionReviewError as e:
        raise _domain_error(e) from e
    except Exception as e:
        logger.error(f"Error reading file {asset_id}: {e!s}")
        raise HTTPException(status_code=500, detail="Failed to read file") from e


@app.put("/files/{asset_id}", tags=["Files"])
async def update_file(asset_id: str, request: AssetUpdateRequest):
    """Save reviewer edits: the segment list and/or the completed flag."""

    def apply(asset: Asset) -> None:
        if request.segments is not None:
            asset.segments = request.segments
        if request.completed is not None:
            asset.completed = request.completed

    try:
        asset, _ = await container.assets.update(asset_id, apply)
        logger.info(f"Saved file {asset_id} (completed={asset.completed})")
        return {"success": True, "completed": asset.completed}
    except CaptionReviewError as e:
        raise _domain_error(e) from e
    except Exception as e:
        logger.error(f"Error updating file {asset_id}: {e!s}")
        raise HTTPException(status_code=500, detail="Failed to update file") from e


@app.put("/files/{asset_id}/folder", tags=["Files"])
async def move_file(asset_id: str, request: FolderAssignRequest, _: bool = Depends(require_admin)):
    try:
        if request.folder_id:
            container.folders.get(request.folder_id)

        def assign(asset: Asset) -> None:
            asset.folder_id = request.folder_id or None

        await container.assets.update(asset_id, assign)
        return {"success": True}
    except CaptionReviewError as e:
        raise _domain_error(e) from e
    except Exception as e:
        logger.error(f"Error updating file folder: {e!s}")
        raise HTTPException(status_code=500, detail="Failed to update file folder") from e


@app.delete("/files/{asset_id}", tags=["Files"])
async def delete_file(asset_id: str, _: bool = Depends(require_admin)):
    try:
        await container.pipeline.delete_asset(asset_id)
        return {"success": True}
    except CaptionReviewError as e:
        raise _domain_error(e) from e
    except Exception as e:
        logger.error(f"Error deleting file {asset_id}: {e!s}")
        raise HTTPException(status_code=500, detail="Failed to delete file") from e


@app.get("/files/{asset_id}/download", tags=["Export"])
async def download_csv(asset_id: str, _: bool = Depends(require_admin)) -> Response:
    try:
        asset = container.assets.get(asset_id)
        return Response(
            content=export_tabular(asset),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{export_filename(asset, "csv")}"'},
        )
    except CaptionReviewError as e:
        raise _domain_error(e) from e
    except Exception as e:
        logger.error(f"Error downloading file {asset_id}: {e!s}")
        raise HTTPException(status_code=500, detail="Failed to download file") from e


@app.get("/files/{asset_id}/export-srt", tags=["Export"])
async def export_srt(asset_id: str, _: bool = Depends(require_admin)) -> Response:
    try:
        asset = container.assets.get(asset_id)
        return Response(
            content=export_subtitle(asset),
            media_type="application/x-subrip",
            headers={"Content-Disposition": f'attachment; filename="{export_filename(asset, "srt")}"'},
        )
    except CaptionReviewError as e:
        raise _domain_error(e) from e
    except Exception as e:
        logger.error(f"Error exporting SRT for {asset_id}: {e!s}")
        raise HTTPException(status_code=500, detail="Failed to export SRT") from e


@app.get("/files/{asset_id}/versions", tags=["Versions"])
async def list_versions(asset_id: str):
    try:
        asset = container.assets.get(asset_id)
        return {"asset_id": asset.id, "versions": asset.versions}
    except CaptionReviewError as e:
        raise _domain_error(e) from e
    except Exception as e:
        logger.error(f"Error listing versions for {asset_id}: {e!s}")
        raise HTTPException(status_code=500, detail="Failed to list versions") from e


@app.get("/files/{asset_id}/versions/{version_tag}", response_model=Version, tags=["Versions"])
async def get_file_version(asset_id: str, version_tag: str) -> Version:
    try:
        return get_version(container.assets.get(asset_id), version_tag)
    except CaptionReviewError as e:
        raise _domain_error(e) from e
    except Exception as e:
        logger.error(f"Error reading version {version_tag} of {asset_id}: {e!s}")
        raise HTTPException(status_code=500, detail="Failed to read version") from e


# Comments


@app.get("/files/{asset_id}/comments", tags=["Comments"])
async def list_comments(asset_id: str):
    try:
        return {"comments": container.assets.get(asset_id).comments}
    except CaptionReviewError as e:
        raise _domain_error(e) from e
    except Exception as e:
        logger.error(f"Error reading comments: {e!s}")
        raise HTTPException(status_code=500, detail="Failed to read comments") from e


@app.post("/files/{asset_id}/comments", tags=["Comments"])
async def add_comment(asset_id: str, comment_request: CommentRequest, request: Request):
    comment = Comment(
        id=generate_id(),
        text=comment_request.text,
        timestamp=comment_request.timestamp,
        author=CommentAuthor.ADMIN if is_admin(request) else CommentAuthor.USER,
    )

    def append(asset: Asset) -> None:
        asset.comments.append(comment)

    try:
        await container.assets.update(asset_id, append)
        return {"success": True, "comment": comment}
    except CaptionReviewError as e:
        raise _domain_error(e) from e
    except Exception as e:
        logger.error(f"Error adding comment: {e!s}")
        raise HTTPException(status_code=500, detail="Failed to add comment") from e


def _find_comment(asset: Asset, comment_id: str) -> Comment:
    for comment in asset.comments:
        if comment.id == comment_id:
            return comment
    raise CommentNotFoundError(f"Comment {comment_id} not found")


@app.put("/files/{asset_id}/comments/{comment_id}", tags=["Comments"])
async def update_comment(asset_id: str, comment_id: str, request: CommentUpdateRequest):
    def edit(asset: Asset) -> Comment:
        comment = _find_comment(asset, comment_id)
        comment.text = request.text
        comment.updated_at = datetime.now(UTC)
        return comment

    try:
        _, comment = await container.assets.update(asset_id, edit)
        return {"success": True, "comment": comment}
    except CaptionReviewError as e:
        raise _domain_error(e) from e
    except Exception as e:
        logger.error(f"Error updating comment: {e!s}")
        raise HTTPException(status_code=500, detail="Failed to update comment") from e


@app.delete("/files/{asset_id}/comments/{comment_id}", tags=["Comments"])
async def delete_comment(asset_id: str, comment_id: str):
    def remove(asset: Asset) -> None:
        asset.comments.remove(_find_comment(asset, comment_id))

    try:
        await container.assets.update(asset_id, remove)
        return {"success": True}
    except CaptionReviewError as e:
        raise _domain_error(e) from e
    except Exception as e:
        logger.error(f"Error deleting comment: {e!s}")
        raise HTTPException(status_code=500, detail="Failed to delete comment") from e
