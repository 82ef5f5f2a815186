"""Caption codec: CSV (tabular) and SRT (subtitle-block) parsing and export."""

from __future__ import annotations

import csv
import io
import math
import re
from typing import Any

from pydantic import ValidationError

from services.captions.filenames import strip_extension
from shared.exceptions import ParseError
from shared.models import Asset, Segment
from shared.utils import setup_logging

logger = setup_logging("caption-codec")

KNOWN_COLUMNS = ("index", "start_seconds", "end_seconds", "duration_seconds", "text", "action", "reason")
TABULAR_HEADER = list(KNOWN_COLUMNS)

_TIMESTAMP_RE = re.compile(r"^\s*(\d+):(\d{2}):(\d{2})[,.](\d{1,3})\s*$")
_TIMING_LINE_RE = re.compile(
    r"^\s*(\d+:\d{2}:\d{2}[,.]\d{1,3})\s*-->\s*(\d+:\d{2}:\d{2}[,.]\d{1,3})"
)
_BLOCK_SEPARATOR_RE = re.compile(r"\n\s*\n")
_MARKUP_RE = re.compile(r"</?[A-Za-z][^>]*>")
_INDEX_RE = re.compile(r"\d+", re.ASCII)


def _decode(payload: bytes | str) -> str:
    if isinstance(payload, bytes):
        try:
            text = payload.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise ParseError(f"Caption file is not valid UTF-8: {e}") from e
    else:
        text = payload.lstrip("\ufeff")
    return text.replace("\r\n", "\n").replace("\r", "\n")


def parse_timestamp(value: str) -> float:
    """Parse ``HH:MM:SS,mmm`` (or ``.mmm``) into seconds."""
    match = _TIMESTAMP_RE.match(value)
    if not match:
        raise ParseError(f"Invalid timestamp: {value!r}")
    hours, minutes, seconds, fraction = match.groups()
    millis = int(fraction.ljust(3, "0"))
    return int(hours) * 3600 + int(minutes) * 60 + int(seconds) + millis / 1000.0


def format_timestamp(seconds: float) -> str:
    """Format seconds as ``HH:MM:SS,mmm``, rounded to whole milliseconds."""
    total_millis = max(0, int(round(float(seconds) * 1000)))
    hours, remainder = divmod(total_millis, 3_600_000)
    minutes, remainder = divmod(remainder, 60_000)
    secs, millis = divmod(remainder, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d},{millis:03d}"


def _parse_seconds(raw: str | None, column: str, line: int) -> float:
    if raw is None or raw == "":
        return 0.0
    try:
        value = float(raw)
    except ValueError as e:
        raise ParseError(f"Row {line}: {column} is not a number: {raw!r}", line=line) from e
    if not math.isfinite(value):
        raise ParseError(f"Row {line}: {column} must be a finite number: {raw!r}", line=line)
    return value


def _parse_index(raw: str | None, position: int) -> int | str:
    if raw is None or raw == "":
        return position
    return int(raw) if _INDEX_RE.fullmatch(raw) else raw


def parse_tabular(payload: bytes | str) -> list[Segment]:
    """Parse a header + comma-delimited caption table.

    Cells are trimmed, blank lines skipped, and unknown columns carried through
    on the segment unchanged.
    """
    text = _decode(payload)
    reader = csv.reader(io.StringIO(text))

    header: list[str] | None = None
    segments: list[Segment] = []
    for row in reader:
        cells = [cell.strip() for cell in row]
        if not any(cells):
            continue
        if header is None:
            header = cells
            continue

        line = reader.line_num
        record: dict[str, Any] = {}
        for position, column in enumerate(header):
            if not column:
                continue
            record[column] = cells[position] if position < len(cells) else ""

        fields: dict[str, Any] = {
            key: value for key, value in record.items() if key not in KNOWN_COLUMNS
        }
        fields["index"] = _parse_index(record.get("index"), len(segments) + 1)
        fields["start_seconds"] = _parse_seconds(record.get("start_seconds"), "start_seconds", line)
        fields["end_seconds"] = _parse_seconds(record.get("end_seconds"), "end_seconds", line)
        fields["text"] = record.get("text", "")
        fields["action"] = record.get("action") or None
        fields["reason"] = record.get("reason") or None

        try:
            segments.append(Segment(**fields))
        except ValidationError as e:
            raise ParseError(f"Row {line}: {e.errors()[0]['msg']}", line=line) from e

    if header is None:
        raise ParseError("Caption file is empty")
    if not segments:
        raise ParseError("Caption file has a header but no data rows")

    logger.debug(f"Parsed {len(segments)} tabular segments")
    return segments


def parse_subtitle(payload: bytes | str) -> list[Segment]:
    """Parse numbered subtitle blocks.

    Blocks with fewer than two non-empty lines or an unreadable timing line are
    dropped rather than failing the whole file.
    """
    text = _decode(payload)
    segments: list[Segment] = []
    dropped = 0

    for block in _BLOCK_SEPARATOR_RE.split(text):
        lines = [line.strip() for line in block.split("\n") if line.strip()]
        if len(lines) < 2:
            dropped += 1 if lines else 0
            continue

        if _INDEX_RE.fullmatch(lines[0]):
            index: int = int(lines[0])
            timing_line, text_lines = lines[1], lines[2:]
        else:
            index = len(segments) + 1
            timing_line, text_lines = lines[0], lines[1:]

        match = _TIMING_LINE_RE.match(timing_line)
        if not match:
            dropped += 1
            continue

        start = parse_timestamp(match.group(1))
        end = parse_timestamp(match.group(2))
        caption = _MARKUP_RE.sub("", " ".join(text_lines)).strip()
        try:
            segments.append(Segment(index=index, start_seconds=start, end_seconds=end, text=caption))
        except ValidationError as e:
            raise ParseError(f"Subtitle {index}: {e.errors()[0]['msg']}") from e

    if not segments:
        raise ParseError("No usable subtitle blocks found")
    if dropped:
        logger.info(f"Dropped {dropped} malformed subtitle block(s)")
    return segments


def parse_caption(filename: str, payload: bytes | str) -> list[Segment]:
    """Parse a caption file, choosing the format from its extension."""
    lowered = filename.lower()
    try:
        if lowered.endswith(".csv"):
            return parse_tabular(payload)
        if lowered.endswith(".srt"):
            return parse_subtitle(payload)
    except ParseError as e:
        e.filename = filename
        raise
    raise ParseError(f"Unsupported caption format: {filename}", filename=filename)


def _format_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float):
        return repr(value)
    if hasattr(value, "value"):
        return str(value.value)
    return str(value)


def serialize_tabular(segments: list[Segment]) -> bytes:
    """Write segments as CSV with the fixed header followed by passthrough columns."""
    extra_columns: list[str] = []
    for segment in segments:
        for column in segment.passthrough:
            if column not in extra_columns:
                extra_columns.append(column)

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(TABULAR_HEADER + extra_columns)
    for segment in segments:
        extras = segment.passthrough
        writer.writerow(
            [
                _format_cell(segment.index),
                _format_cell(segment.start_seconds),
                _format_cell(segment.end_seconds),
                _format_cell(segment.duration_seconds),
                segment.text,
                _format_cell(segment.action),
                _format_cell(segment.reason),
            ]
            + [_format_cell(extras.get(column)) for column in extra_columns]
        )
    return buffer.getvalue().encode("utf-8")


def serialize_subtitle(segments: list[Segment]) -> bytes:
    """Write every segment as an SRT block, renumbered from 1."""
    srt_content: list[str] = []

    for number, segment in enumerate(segments, start=1):
        srt_content.append(f"{number}")
        srt_content.append(
            f"{format_timestamp(segment.start_seconds)} --> {format_timestamp(segment.end_seconds)}"
        )
        srt_content.append(segment.text)
        srt_content.append("")

    return ("\n".join(srt_content) + ("\n" if srt_content else "")).encode("utf-8")


def export_tabular(asset: Asset) -> bytes:
    return serialize_tabular(asset.segments)


def export_subtitle(asset: Asset) -> bytes:
    return serialize_subtitle(asset.segments)


def export_filename(asset: Asset, extension: str) -> str:
    return f"{strip_extension(asset.original_name)}.{extension}"
