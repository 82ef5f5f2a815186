from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator


def _utc_now() -> datetime:
    return datetime.now(UTC)


class SegmentAction(str, Enum):
    KEEP = "keep"
    CUT = "cut"


class CommentAuthor(str, Enum):
    ADMIN = "Admin"
    USER = "User"


class StackKind(str, Enum):
    CAPTION = "caption"
    VIDEO = "video"


class Segment(BaseModel):
    """One caption row or subtitle block.

    Columns the codec does not know about are kept as extra fields so they can be
    written back out on export.
    """

    model_config = ConfigDict(extra="allow")

    index: int | str = Field(..., description="1-based sequence label")
    start_seconds: float = Field(default=0.0, allow_inf_nan=False, description="Start time in seconds")
    end_seconds: float = Field(default=0.0, allow_inf_nan=False, description="End time in seconds")
    text: str = Field(default="", description="Caption text")
    action: SegmentAction | None = Field(default=None, description="keep/cut decision; absent means keep")
    reason: str | None = Field(default=None, description="Free-text reason for the decision")

    @model_validator(mode="before")
    @classmethod
    def _drop_derived(cls, data: Any) -> Any:
        # duration is always recomputed from start/end
        if isinstance(data, dict) and "duration_seconds" in data:
            data = {key: value for key, value in data.items() if key != "duration_seconds"}
        return data

    @field_validator("action", mode="before")
    @classmethod
    def _normalize_action(cls, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, str):
            value = value.strip().lower()
            return value or None
        return value

    @field_validator("reason", mode="before")
    @classmethod
    def _empty_reason(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _clamp_timing(self) -> "Segment":
        if self.start_seconds < 0:
            self.start_seconds = 0.0
        if self.end_seconds < self.start_seconds:
            self.end_seconds = self.start_seconds
        return self

    @computed_field  # type: ignore[prop-decorator]
    @property
    def duration_seconds(self) -> float:
        return round(self.end_seconds - self.start_seconds, 3)

    @property
    def passthrough(self) -> dict[str, Any]:
        """Unknown columns carried alongside the known fields."""
        return dict(self.model_extra or {})


class Comment(BaseModel):
    id: str
    text: str
    timestamp: float | None = Field(default=None, description="Seconds into the video")
    author: CommentAuthor = CommentAuthor.USER
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime | None = None


class Version(BaseModel):
    """Immutable snapshot of an asset at the time a newer upload was stacked."""

    model_config = ConfigDict(frozen=True)

    version_tag: str = Field(..., pattern=r"^v\d{3,}$")
    original_name: str
    upload_date: datetime = Field(default_factory=_utc_now)
    segments: tuple[Segment, ...] = ()
    video_file: str | None = None
    thumbnail_file: str | None = None


class Asset(BaseModel):
    """A caption/video pairing and its version history."""

    id: str
    original_name: str
    base_name: str
    upload_date: datetime = Field(default_factory=_utc_now)
    last_modified: datetime = Field(default_factory=_utc_now)
    completed: bool = False
    folder_id: str | None = None
    group_key: str | None = None
    video_file: str | None = None
    thumbnail_file: str | None = None
    segments: list[Segment] = Field(default_factory=list)
    comments: list[Comment] = Field(default_factory=list)
    versions: list[Version] = Field(default_factory=list)

    def find_version(self, version_tag: str) -> Version | None:
        for version in self.versions:
            if version.version_tag == version_tag:
                return version
        return None

    def referenced_blobs(self) -> set[str]:
        """Every blob ref held by the active fields or any version."""
        refs = {self.video_file, self.thumbnail_file}
        for version in self.versions:
            refs.update((version.video_file, version.thumbnail_file))
        return {ref for ref in refs if ref}


class AssetSummary(BaseModel):
    id: str
    name: str
    upload_date: datetime
    row_count: int
    completed: bool
    folder_id: str | None
    group_key: str | None
    has_video: bool
    thumbnail_file: str | None
    comment_count: int
    is_stacked: bool
    version_count: int

    @classmethod
    def from_asset(cls, asset: Asset) -> "AssetSummary":
        return cls(
            id=asset.id,
            name=asset.original_name,
            upload_date=asset.upload_date,
            row_count=len(asset.segments),
            completed=asset.completed,
            folder_id=asset.folder_id,
            group_key=asset.group_key,
            has_video=bool(asset.video_file),
            thumbnail_file=asset.thumbnail_file,
            comment_count=len(asset.comments),
            is_stacked=bool(asset.versions),
            version_count=len(asset.versions),
        )


class Folder(BaseModel):
    id: str
    name: str
    created_date: datetime = Field(default_factory=_utc_now)


class UploadedFile(BaseModel):
    """A file already written to the blob store, as handed to ingest."""

    stored_ref: str
    original_name: str


# Ingest report
class CreatedEntry(BaseModel):
    id: str
    name: str
    has_video: bool
    group_key: str | None = None


class MatchedEntry(BaseModel):
    caption: str
    video: str


class StackedEntry(BaseModel):
    asset_id: str
    version: str
    kind: StackKind
    name: str


class WarningEntry(BaseModel):
    file: str
    asset_id: str
    message: str


class ErrorEntry(BaseModel):
    file: str
    error: str


class UnmatchedFiles(BaseModel):
    captions: list[str] = Field(default_factory=list)
    videos: list[str] = Field(default_factory=list)


class IngestReport(BaseModel):
    created: list[CreatedEntry] = Field(default_factory=list)
    matched: list[MatchedEntry] = Field(default_factory=list)
    stacked: list[StackedEntry] = Field(default_factory=list)
    warnings: list[WarningEntry] = Field(default_factory=list)
    unmatched: UnmatchedFiles = Field(default_factory=UnmatchedFiles)
    errors: list[ErrorEntry] = Field(default_factory=list)


class VideoAttachResult(BaseModel):
    asset_id: str
    video_file: str
    thumbnail_file: str | None = None
    is_new_version: bool = False
    version: str | None = None
    warning: str | None = None


# Request models
class LoginRequest(BaseModel):
    username: str
    password: str


class AssetUpdateRequest(BaseModel):
    segments: list[Segment] | None = Field(None, description="Replacement segment list")
    completed: bool | None = None


class FolderCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)


class FolderAssignRequest(BaseModel):
    folder_id: str | None = None


class CommentRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=5000)
    timestamp: float | None = Field(None, ge=0)


class CommentUpdateRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=5000)


class ThumbnailBackfillResult(BaseModel):
    generated: int = 0
    skipped: int = 0
    failed: int = 0
    message: str = ""
