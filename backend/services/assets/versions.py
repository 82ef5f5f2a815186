"""Append-only version history for assets."""

from __future__ import annotations

from datetime import UTC, datetime

from services.captions.filenames import base_name_and_version
from shared.exceptions import ConflictError, VersionNotFoundError
from shared.models import Asset, Segment, Version
from shared.utils import setup_logging

logger = setup_logging("version-store")

INITIAL_VERSION_TAG = "v001"


def snapshot(
    version_tag: str,
    original_name: str,
    segments: list[Segment],
    video_file: str | None = None,
    thumbnail_file: str | None = None,
) -> Version:
    """Build an immutable version record, deep-copying the segments."""
    return Version(
        version_tag=version_tag,
        original_name=original_name,
        upload_date=datetime.now(UTC),
        segments=tuple(segment.model_copy(deep=True) for segment in segments),
        video_file=video_file,
        thumbnail_file=thumbnail_file,
    )


def self_snapshot(asset: Asset) -> Version:
    """Capture the asset's current active state as its first version."""
    tag = base_name_and_version(asset.original_name).version or INITIAL_VERSION_TAG
    return Version(
        version_tag=tag,
        original_name=asset.original_name,
        upload_date=asset.upload_date,
        segments=tuple(segment.model_copy(deep=True) for segment in asset.segments),
        video_file=asset.video_file,
        thumbnail_file=asset.thumbnail_file,
    )


def get_version(asset: Asset, version_tag: str) -> Version:
    version = asset.find_version(version_tag)
    if version is None:
        raise VersionNotFoundError(f"Asset {asset.id} has no version {version_tag}")
    return version


def append_version(asset: Asset, version_tag: str, version: Version) -> Version:
    """Stack ``version`` onto ``asset``.

    The first stacking also records the pre-stacking state so it is never lost.
    Raises ConflictError without touching the asset when the tag is taken.
    """
    if version.version_tag != version_tag:
        version = version.model_copy(update={"version_tag": version_tag})

    pending: list[Version] = []
    if not asset.versions:
        pending.append(self_snapshot(asset))

    existing_tags = {item.version_tag for item in asset.versions + pending}
    if version_tag in existing_tags:
        raise ConflictError(f"Version {version_tag} already exists on asset {asset.id}")

    asset.versions.extend(pending)
    asset.versions.append(version)
    logger.info(f"Stacked {version_tag} onto asset {asset.id} ({len(asset.versions)} versions)")
    return version


def promote_to_active(asset: Asset, version: Version) -> Asset:
    """Copy a version's content onto the asset's active fields.

    A caption-only version carries no video, so the active video is kept.
    """
    asset.segments = [segment.model_copy(deep=True) for segment in version.segments]
    asset.original_name = version.original_name
    if version.video_file:
        asset.video_file = version.video_file
        asset.thumbnail_file = version.thumbnail_file
    asset.last_modified = datetime.now(UTC)
    return asset
