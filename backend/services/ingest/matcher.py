"""Pair uploaded caption and video files and decide what each pair becomes."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from services.captions.filenames import normalized_match_key, stacking_key
from shared.models import Asset, UploadedFile
from shared.utils import setup_logging

logger = setup_logging("asset-matcher")

AssetLookup = Callable[[str, str | None], Asset | None]


class DecisionKind(str, Enum):
    NEW_ASSET = "new_asset"
    VIDEO_VERSION = "video_version"
    CAPTION_VERSION = "caption_version"


@dataclass
class IngestDecision:
    """One unit of ingest work: the files it consumes and where they go."""

    kind: DecisionKind
    caption: UploadedFile | None = None
    video: UploadedFile | None = None
    asset_id: str | None = None
    base_name: str | None = None
    version_tag: str | None = None
    warning: str | None = None
    committed: bool = False

    @property
    def files(self) -> list[UploadedFile]:
        return [upload for upload in (self.caption, self.video) if upload is not None]

    @property
    def display_name(self) -> str:
        upload = self.caption or self.video
        return upload.original_name if upload else ""


@dataclass
class MatchPlan:
    decisions: list[IngestDecision] = field(default_factory=list)
    unmatched_videos: list[UploadedFile] = field(default_factory=list)

    def by_kind(self, kind: DecisionKind) -> list[IngestDecision]:
        return [decision for decision in self.decisions if decision.kind == kind]


def missing_caption_warning(video_name: str, asset: Asset) -> str:
    return (
        f"New version {video_name} has no matching caption file; it uses the captions of "
        f"{asset.original_name} until a caption file with the same name is uploaded."
    )


class AssetMatcher:
    """Exact, first-found matching of one upload batch against existing assets."""

    def __init__(self, lookup: AssetLookup):
        self.lookup = lookup

    def plan(
        self,
        captions: list[UploadedFile],
        videos: list[UploadedFile],
        folder_id: str | None = None,
    ) -> MatchPlan:
        plan = MatchPlan()
        remaining_captions = list(captions)
        remaining_videos: list[UploadedFile] = []

        # Versioned videos that extend an existing asset
        stacks: list[tuple[IngestDecision, Asset]] = []
        for video in videos:
            base_name, version = stacking_key(video.original_name)
            asset = self.lookup(base_name, folder_id) if version else None
            if asset is None:
                remaining_videos.append(video)
                continue

            decision = IngestDecision(
                kind=DecisionKind.VIDEO_VERSION,
                video=video,
                asset_id=asset.id,
                base_name=base_name,
                version_tag=version,
            )
            plan.decisions.append(decision)
            stacks.append((decision, asset))

        # Same base and version first, then any caption sharing the base name
        for decision, _ in stacks:
            decision.caption = self._take_caption(remaining_captions, decision.base_name, decision.version_tag)
        for decision, asset in stacks:
            if decision.caption is None:
                decision.caption = self._take_caption(remaining_captions, decision.base_name)
            if decision.caption is None:
                decision.warning = missing_caption_warning(decision.video.original_name, asset)

        # Plain caption/video pairs, captions without video, caption-only versions
        for caption in remaining_captions:
            caption_key = normalized_match_key(caption.original_name)
            video = next(
                (item for item in remaining_videos if normalized_match_key(item.original_name) == caption_key),
                None,
            )
            base_name, version = stacking_key(caption.original_name)
            if video is not None:
                remaining_videos.remove(video)
                plan.decisions.append(
                    IngestDecision(kind=DecisionKind.NEW_ASSET, caption=caption, video=video, base_name=base_name)
                )
                continue

            asset = self.lookup(base_name, folder_id) if version else None
            if asset is not None:
                plan.decisions.append(
                    IngestDecision(
                        kind=DecisionKind.CAPTION_VERSION,
                        caption=caption,
                        asset_id=asset.id,
                        base_name=base_name,
                        version_tag=version,
                    )
                )
            else:
                plan.decisions.append(
                    IngestDecision(kind=DecisionKind.NEW_ASSET, caption=caption, base_name=base_name)
                )

        plan.unmatched_videos = remaining_videos
        logger.info(
            f"Planned {len(plan.decisions)} decision(s) for {len(captions)} caption(s) and "
            f"{len(videos)} video(s); {len(remaining_videos)} video(s) unmatched"
        )
        return plan

    @staticmethod
    def _take_caption(
        captions: list[UploadedFile], base_name: str, version: str | None = None
    ) -> UploadedFile | None:
        """First caption with this base name, and with this version when one is given."""
        for caption in captions:
            key = stacking_key(caption.original_name)
            if key.base_name == base_name and (version is None or key.version == version):
                captions.remove(caption)
                return caption
        return None
