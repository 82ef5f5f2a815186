"""Filename analysis used to group, pair and stack uploaded caption/video files."""

from __future__ import annotations

import re
from typing import NamedTuple

CAPTION_EXTENSIONS = (".csv", ".srt")
VIDEO_EXTENSIONS = (".mp4", ".webm", ".mov", ".avi")

_EXTENSION_RE = re.compile(
    r"\.(" + "|".join(ext.lstrip(".") for ext in CAPTION_EXTENSIONS + VIDEO_EXTENSIONS) + r")$",
    re.IGNORECASE,
)
_SPLIT_SUFFIX_RE = re.compile(r"_split$", re.IGNORECASE)
_VERSION_SUFFIX_RE = re.compile(r"^(?P<base>.*)_v(?P<digits>\d+)$", re.IGNORECASE)

GROUP_KEY_TOKENS = 4


class BaseNameVersion(NamedTuple):
    base_name: str
    version: str | None


def strip_extension(filename: str) -> str:
    """Remove a known caption or video extension, leaving other names untouched."""
    return _EXTENSION_RE.sub("", filename)


def is_caption_file(filename: str) -> bool:
    return filename.lower().endswith(CAPTION_EXTENSIONS)


def is_video_file(filename: str) -> bool:
    return filename.lower().endswith(VIDEO_EXTENSIONS)


def group_key(filename: str) -> str:
    """First four underscore-delimited tokens, e.g. ``LT0023_B251103_Person1+NL_677``.

    Display grouping only; collisions between unrelated files are expected.
    """
    tokens = strip_extension(filename).split("_")
    return "_".join(tokens[:GROUP_KEY_TOKENS])


def normalized_match_key(filename: str) -> str:
    """Key under which a caption and a video are considered the same content."""
    return _SPLIT_SUFFIX_RE.sub("", strip_extension(filename))


def format_version_tag(digits: str | int) -> str:
    return f"v{int(digits):03d}"


def base_name_and_version(filename: str) -> BaseNameVersion:
    """Split a trailing ``_v<digits>`` suffix off the extension-less name.

    ``clip_v7.mp4`` gives ``("clip", "v007")``; ``clip.mp4`` gives ``("clip", None)``.
    """
    stem = strip_extension(filename)
    match = _VERSION_SUFFIX_RE.match(stem)
    if not match or not match.group("base"):
        return BaseNameVersion(stem, None)
    return BaseNameVersion(match.group("base"), format_version_tag(match.group("digits")))


def stacking_key(filename: str) -> BaseNameVersion:
    """Like :func:`base_name_and_version`, with ``_split`` removed from the base.

    Caption exports are often named ``<name>_split.csv`` while the video is
    ``<name>.mp4``; both must resolve to the same asset base.
    """
    stem = _SPLIT_SUFFIX_RE.sub("", strip_extension(filename))
    base, version = base_name_and_version(stem)
    return BaseNameVersion(_SPLIT_SUFFIX_RE.sub("", base), version)
