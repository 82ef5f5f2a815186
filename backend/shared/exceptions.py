"""
Error taxonomy shared by the caption review services.
"""


class CaptionReviewError(Exception):
    """Base class for recoverable, per-file or per-request failures."""


class ParseError(CaptionReviewError):
    """Raised when a caption payload cannot be turned into segments."""

    def __init__(self, message: str, filename: str | None = None, line: int | None = None):
        super().__init__(message)
        self.filename = filename
        self.line = line


class ThumbnailError(CaptionReviewError):
    """Raised when a thumbnail cannot be extracted from a video."""


class ConflictError(CaptionReviewError):
    """Raised when a version tag already exists on an asset."""


class NotFoundError(CaptionReviewError):
    """Raised when a referenced record does not exist."""


class AssetNotFoundError(NotFoundError):
    """Raised when an asset id has no stored record."""


class VersionNotFoundError(NotFoundError):
    """Raised when an asset has no version with the requested tag."""


class FolderNotFoundError(NotFoundError):
    """Raised when a folder id is unknown."""


class CommentNotFoundError(NotFoundError):
    """Raised when a comment id is unknown on an asset."""


def http_status_for(error: CaptionReviewError) -> int:
    """HTTP status an API endpoint reports for a domain error."""
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, ConflictError):
        return 409
    if isinstance(error, ParseError):
        return 400
    return 500
