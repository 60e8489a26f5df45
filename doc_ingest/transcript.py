"""
Helpers for turning video transcripts into chunkable text.

Transcripts arrive either as SRT or as plain text with ``[mm:ss]`` markers.
Chunks are cut between timestamped lines so a caption is never split.
"""

import logging
import re
from typing import List, Optional

logger = logging.getLogger(__name__)

TIMESTAMP_RE = re.compile(r"\[\d{1,2}:\d{2}(?::\d{2})?\]")
_YOUTUBE_ID_RE = re.compile(r"^.*((youtu.be/)|(v/)|(/u/\w/)|(embed/)|(watch\?))\??v?=?([^#&?]*).*")
_SRT_TIME_RE = re.compile(r"(\d+):(\d{2}):(\d{2})[,.]\d+\s*-->")

# A chunk is only closed once it holds this many timestamped lines
MIN_TIMESTAMPS_PER_CHUNK = 5
# Overlap always carries at least this many timestamped lines
MIN_OVERLAP_TIMESTAMPS = 3


def extract_youtube_id(url: str) -> Optional[str]:
    """Extract the 11-character video id from any common YouTube URL form."""
    match = _YOUTUBE_ID_RE.match(url.strip())
    if match and len(match.group(7)) == 11:
        return match.group(7)
    return None


def video_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"


def id_prefix_for_video(video_id: str) -> str:
    return f"youtube_{video_id}"


def parse_srt(srt_data: str) -> str:
    """
    Convert SRT subtitles to one ``[mm:ss] text`` line per caption.

    Captions past the first hour use ``[hh:mm:ss]``. Malformed entries are
    skipped.
    """
    lines = []
    for entry in re.split(r"\r?\n\s*\r?\n", srt_data.strip()):
        parts = [part.strip() for part in re.split(r"\r?\n", entry) if part.strip()]
        if len(parts) < 3:
            continue
        match = _SRT_TIME_RE.search(parts[1])
        if not match:
            continue
        hours, minutes, seconds = (int(group) for group in match.groups())
        if hours:
            stamp = f"[{hours:02d}:{minutes:02d}:{seconds:02d}]"
        else:
            stamp = f"[{minutes:02d}:{seconds:02d}]"
        lines.append(f"{stamp} {' '.join(parts[2:])}")
    return "\n".join(lines)


def clean_timestamps(text: str) -> str:
    """Strip timestamp markers and collapse whitespace, for prompts."""
    return re.sub(r"\s{2,}", " ", TIMESTAMP_RE.sub("", text)).strip()


def default_title(index: int, video_title: str) -> str:
    return f"Part {index + 1} of {video_title}"


def default_summary(index: int, video_title: str) -> str:
    return f"Part {index + 1} of transcript for video: {video_title}"


def split_transcript(text: str, chunk_size: int, chunk_overlap: int) -> List[str]:
    """
    Split a transcript into overlapping chunks.

    Uses timestamp-aware chunking when the text has timestamp markers and
    sentence chunking otherwise.
    """
    if len(text) <= chunk_size:
        return [text]

    timestamps = TIMESTAMP_RE.findall(text)
    if len(timestamps) <= 1:
        logger.info("No timestamps found, using sentence chunking")
        return split_sentences(text, chunk_size, chunk_overlap)

    lines = _timestamped_lines(text)
    chunks: List[str] = []
    current: List[str] = []
    stamp_count = 0

    for line in lines:
        candidate_length = len("\n".join(current + [line]))
        if current and candidate_length > chunk_size and stamp_count >= MIN_TIMESTAMPS_PER_CHUNK:
            chunks.append("\n".join(current))
            current, stamp_count = _overlap_lines(current, chunk_overlap)
        current.append(line)
        if TIMESTAMP_RE.search(line):
            stamp_count += 1

    if current:
        chunks.append("\n".join(current))
    return chunks or [text]


def split_sentences(text: str, chunk_size: int, chunk_overlap: int) -> List[str]:
    """Greedy sentence packing with whole-sentence overlap."""
    sentences = [s.strip() for s in re.split(r"(?<=[.!?])\s+|\n", text) if s.strip()]
    if not sentences:
        return [text]

    chunks: List[str] = []
    current: List[str] = []
    for sentence in sentences:
        if current and len(" ".join(current + [sentence])) > chunk_size:
            chunks.append(" ".join(current))
            overlap: List[str] = []
            size = 0
            for previous in reversed(current[1:]):
                if size + len(previous) > chunk_overlap:
                    break
                overlap.insert(0, previous)
                size += len(previous) + 1
            current = overlap
        current.append(sentence)

    if current:
        chunks.append(" ".join(current))
    return chunks or [text]


def _timestamped_lines(text: str) -> List[str]:
    lines = []
    positions = [match.start() for match in TIMESTAMP_RE.finditer(text)]
    lead = text[:positions[0]].strip()
    if lead:
        lines.append(lead)
    for start, end in zip(positions, positions[1:] + [len(text)]):
        line = re.sub(r"\s+", " ", text[start:end]).strip()
        if line:
            lines.append(line)
    return lines


def _overlap_lines(lines: List[str], chunk_overlap: int):
    """Trailing lines that fit in ``chunk_overlap``, keeping enough timestamp context."""
    if chunk_overlap <= 0:
        return [], 0
    overlap: List[str] = []
    size = 0
    stamps = 0
    # The first line never carries over, so every chunk makes progress
    for line in reversed(lines[1:]):
        if size + len(line) > chunk_overlap and stamps >= MIN_OVERLAP_TIMESTAMPS:
            break
        overlap.insert(0, line)
        size += len(line) + 1
        if TIMESTAMP_RE.search(line):
            stamps += 1
    return overlap, stamps
