"""
Shared data models for the ingestion pipeline.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Page:
    """One page of source text. Repair returns a new Page instead of mutating."""

    page_number: int
    content: str
    modified: bool = False

    def __post_init__(self):
        if self.page_number < 1:
            raise ValueError(f"page_number must be >= 1, got {self.page_number}")


@dataclass
class Chunk:
    """A segmented slice of a page, before embedding."""

    id: str
    document_name: str
    content: str
    source_file: str
    domains: List[str] = field(default_factory=list)
    page_number: Optional[int] = None


@dataclass
class DocumentChunk(Chunk):
    """A chunk with its embedding and generated metadata, ready for storage."""

    embedding: List[float] = field(default_factory=list)
    title: str = ""
    summary: str = ""
    enhanced_content: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        """Convert to the JSON-serializable record handed to the vector store."""
        payload = {
            "id": self.id,
            "documentName": self.document_name,
            "content": self.content,
            "title": self.title,
            "summary": self.summary,
            "sourceFile": self.source_file,
            "domains": list(self.domains),
        }
        if self.page_number is not None:
            payload["pageNumber"] = self.page_number
        if self.enhanced_content:
            payload["enhancedContent"] = self.enhanced_content
        return payload

    def to_dict(self) -> Dict[str, Any]:
        """Payload plus the embedding, for JSON output files."""
        data = self.to_payload()
        data["embedding"] = list(self.embedding)
        return data


@dataclass
class ChunkingConfig:
    """Recognized chunking options."""

    chunks_per_page: int = config.CHUNKS_PER_PAGE
    chunk_overlap: float = config.CHUNK_OVERLAP
    generate_titles: bool = True
    generate_summaries: bool = True
    respect_boundaries: bool = True
    preserve_headings: bool = True
    enhance_content: bool = False

    # camelCase keys accepted from request-style dicts
    _ALIASES = {
        "chunksPerPage": "chunks_per_page",
        "chunkOverlap": "chunk_overlap",
        "generateTitles": "generate_titles",
        "generateSummaries": "generate_summaries",
        "respectBoundaries": "respect_boundaries",
        "preserveHeadings": "preserve_headings",
        "enhanceContent": "enhance_content",
    }

    def __post_init__(self):
        if self.chunks_per_page < 1:
            raise ValueError(f"chunks_per_page must be >= 1, got {self.chunks_per_page}")
        if not 0 <= self.chunk_overlap < 1:
            raise ValueError(f"chunk_overlap must be in [0, 1), got {self.chunk_overlap}")

    @classmethod
    def from_dict(cls, options: Optional[Dict[str, Any]]) -> "ChunkingConfig":
        """
        Build a config from a dict of options, ignoring unknown keys.

        Args:
            options: Options keyed by snake_case or camelCase names

        Returns:
            ChunkingConfig instance
        """
        known = set(cls._ALIASES.values())
        kwargs = {}
        for key, value in (options or {}).items():
            name = cls._ALIASES.get(key, key)
            if name not in known:
                logger.warning(f"Ignoring unknown chunking option: {key}")
                continue
            kwargs[name] = value
        return cls(**kwargs)


def document_name_from_path(path) -> str:
    """Derive a stable document name from a file path."""
    stem = Path(str(path)).stem
    return re.sub(r"[^a-zA-Z0-9]", "_", stem)


def make_chunk_id(document_name: str, page_number: int, index: int) -> str:
    return f"{document_name}_page{page_number:03d}_chunk{index}"


def make_stream_chunk_id(id_prefix: str, index: int) -> str:
    return f"{id_prefix}_chunk_{index}"
