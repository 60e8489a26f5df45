"""
Chunk assembly: drives repair, segmentation, embedding and metadata
generation over a document and persists the results.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from tqdm import tqdm

from . import config
from .continuity import ContinuityRepairEngine
from .embedding import EmbeddingService
from .enhancement import ContentEnhancer
from .llm_client import create_text_client
from .models import (
    Chunk,
    ChunkingConfig,
    DocumentChunk,
    Page,
    document_name_from_path,
    make_chunk_id,
    make_stream_chunk_id,
)
from .parser import DocumentParser
from .segmenter import BoundaryAwareSegmenter, chunk_dimensions, slice_fixed
from .storage import VectorDB, create_vector_store
from .transcript import (
    clean_timestamps,
    default_summary,
    default_title,
    extract_youtube_id,
    id_prefix_for_video,
    parse_srt,
    split_transcript,
    video_url,
)

logger = logging.getLogger(__name__)

DEFAULT_TRANSCRIPT_DOMAINS = ["youtube"]


def _video_id(video: str) -> str:
    video_id = extract_youtube_id(video) or video.strip()
    if len(video_id) != 11:
        raise ValueError(f"Could not extract a YouTube video id from: {video}")
    return video_id


class ChunkAssembler:
    """
    Main orchestrator of the ingestion pipeline.

    This class drives the entire process:
    1. Parses a document into pages
    2. Repairs sentences split across page boundaries
    3. Segments each page into chunks
    4. Embeds chunks and generates titles and summaries
    5. Stores chunks in the vector store
    """

    def __init__(
        self,
        chunking_config: Optional[ChunkingConfig] = None,
        parser: Optional[DocumentParser] = None,
        repair_engine: Optional[ContinuityRepairEngine] = None,
        segmenter: Optional[BoundaryAwareSegmenter] = None,
        embedder: Optional[EmbeddingService] = None,
        enhancer: Optional[ContentEnhancer] = None,
        store: Optional[VectorDB] = None,
        show_progress: bool = True,
    ):
        """
        Initialize the assembler. Collaborators default to configured instances.

        Args:
            chunking_config: Chunking options
            parser: Document parser
            repair_engine: Page boundary repair engine
            segmenter: Page segmenter
            embedder: Embedding service
            enhancer: Title, summary and enhancement generator
            store: Vector store; created from configuration on first ingest when None
            show_progress: Show tqdm progress bars
        """
        self.config = chunking_config or ChunkingConfig()
        self.parser = parser or DocumentParser()
        self.segmenter = segmenter or BoundaryAwareSegmenter()
        self.embedder = embedder or EmbeddingService()
        self.show_progress = show_progress

        text_client = None
        if repair_engine is None or enhancer is None:
            text_client = create_text_client()
        self.repair_engine = repair_engine or ContinuityRepairEngine(text_client=text_client)
        self.enhancer = enhancer or ContentEnhancer(text_client=text_client)

        self.store = store
        self._store_initialized = False

    def process_document(
        self,
        document_path: Union[str, Path],
        domains: Optional[List[str]] = None,
        document_title: str = "",
        mime_type: Optional[str] = None,
    ) -> List[DocumentChunk]:
        """
        Parse and chunk a document.

        Args:
            document_path: Path to a file or to a folder of page images
            domains: Domain tags attached to every chunk
            document_title: Title used for every chunk instead of generated ones
            mime_type: MIME type override

        Returns:
            List of DocumentChunk records
        """
        logger.info(f"Processing document: {document_path}")
        document_path = Path(document_path)
        pages = self.parser.parse_to_pages(document_path, mime_type)
        return self.assemble(
            pages,
            document_name=document_name_from_path(document_path),
            source_file=str(document_path),
            domains=domains,
            document_title=document_title,
        )

    def prepare_pages(self, pages: List[Page]) -> List[Page]:
        """Repair fragments at page boundaries, strictly in page order."""
        return self.repair_engine.repair_document(pages, show_progress=self.show_progress)

    def build_chunks(
        self,
        pages: List[Page],
        document_name: str,
        source_file: str,
        domains: Optional[List[str]] = None,
    ) -> List[Chunk]:
        """
        Segment repaired pages into chunks with deterministic ids.

        Empty pages produce no chunks.
        """
        chunks: List[Chunk] = []
        for page in pages:
            text = page.content.strip()
            if not text:
                logger.debug(f"Skipping empty page {page.page_number}")
                continue

            target, overlap = chunk_dimensions(len(text), self.config.chunks_per_page, self.config.chunk_overlap)
            if self.config.respect_boundaries:
                pieces = self.segmenter.segment(
                    text,
                    self.config.chunks_per_page,
                    target,
                    overlap,
                    preserve_headings=self.config.preserve_headings,
                )
            else:
                pieces = slice_fixed(text, self.config.chunks_per_page, target, overlap)

            for index, piece in enumerate(pieces):
                chunks.append(Chunk(
                    id=make_chunk_id(document_name, page.page_number, index),
                    document_name=document_name,
                    content=piece,
                    source_file=source_file,
                    domains=list(domains or []),
                    page_number=page.page_number,
                ))
        return chunks

    def assemble(
        self,
        pages: List[Page],
        document_name: str,
        source_file: str,
        domains: Optional[List[str]] = None,
        document_title: str = "",
    ) -> List[DocumentChunk]:
        """
        Run repair, segmentation, embedding and metadata generation.

        Args:
            pages: Parsed pages in order
            document_name: Name used in chunk ids and payloads
            source_file: Provenance recorded on every chunk
            domains: Domain tags attached to every chunk
            document_title: Title used for every chunk instead of generated ones

        Returns:
            List of DocumentChunk records
        """
        repaired = self.prepare_pages(pages)
        chunks = self.build_chunks(repaired, document_name, source_file, domains)
        logger.info(f"Segmented {len(repaired)} pages into {len(chunks)} chunks")

        # Embeddings fan out per page; pages stay in order
        by_page: Dict[int, List[Chunk]] = {}
        for chunk in chunks:
            by_page.setdefault(chunk.page_number, []).append(chunk)

        document_chunks: List[DocumentChunk] = []
        page_groups = list(by_page.items())
        if self.show_progress:
            page_groups = tqdm(page_groups, desc="Embedding pages")
        for page_number, page_chunks in page_groups:
            vectors = self.embedder.embed_many([chunk.content for chunk in page_chunks])
            for chunk, vector in zip(page_chunks, vectors):
                document_chunks.append(self._finish_chunk(chunk, vector, document_title))

        logger.info(f"Created {len(document_chunks)} chunks for document {document_name}")
        return document_chunks

    def assemble_transcript(
        self,
        transcript: str,
        video: str,
        video_title: Optional[str] = None,
        domains: Optional[List[str]] = None,
    ) -> List[DocumentChunk]:
        """
        Chunk a video transcript.

        Args:
            transcript: Transcript text with ``[mm:ss]`` markers, or SRT
            video: YouTube URL or 11-character video id
            video_title: Human-readable title, defaults to the video id
            domains: Domain tags, defaults to ["youtube"]

        Returns:
            List of DocumentChunk records with ids ``youtube_{id}_chunk_{i}``
        """
        video_id = _video_id(video)

        if "-->" in transcript:
            transcript = parse_srt(transcript)
        if not transcript.strip():
            raise ValueError(f"Transcript for video {video_id} is empty")

        title = video_title or f"YouTube Video: {video_id}"
        id_prefix = id_prefix_for_video(video_id)
        pieces = split_transcript(transcript, config.TRANSCRIPT_CHUNK_SIZE, config.TRANSCRIPT_CHUNK_OVERLAP)
        logger.info(f"Split transcript into {len(pieces)} chunks")

        vectors = self.embedder.embed_many(pieces)
        document_chunks: List[DocumentChunk] = []
        for index, (content, vector) in enumerate(zip(pieces, vectors)):
            clean = clean_timestamps(content)
            chunk_title, summary = self.enhancer.generate_title_and_summary(
                clean,
                default_title(index, title),
                default_summary(index, title),
            )
            chunk = DocumentChunk(
                id=make_stream_chunk_id(id_prefix, index),
                document_name=title,
                content=content,
                source_file=video_url(video_id),
                domains=list(domains or DEFAULT_TRANSCRIPT_DOMAINS),
                embedding=vector,
                title=chunk_title,
                summary=summary,
            )
            if self.config.enhance_content:
                chunk.enhanced_content = self.enhancer.enhance(clean)
            document_chunks.append(chunk)
        return document_chunks

    def transcript_exists(self, video: str) -> bool:
        """True when chunks for this video are already stored."""
        video_id = _video_id(video)
        return self._get_store().exists({"id_prefix": id_prefix_for_video(video_id)})

    def ingest_transcript(
        self,
        transcript: str,
        video: str,
        video_title: Optional[str] = None,
        domains: Optional[List[str]] = None,
        replace_existing: bool = False,
    ) -> List[DocumentChunk]:
        """
        Chunk and store a transcript, skipping videos that are already stored.

        Returns:
            The stored chunks, or an empty list when the video was skipped
        """
        video_id = _video_id(video)
        id_prefix = id_prefix_for_video(video_id)
        store = self._get_store()
        if store.exists({"id_prefix": id_prefix}):
            if not replace_existing:
                logger.info(f"Transcript for video {video_id} is already stored, skipping")
                return []
            deleted = store.delete_by_filter({"id_prefix": id_prefix})
            logger.info(f"Deleted {deleted} existing chunks for video {video_id}")

        chunks = self.assemble_transcript(transcript, video, video_title, domains)
        self.ingest(chunks)
        return chunks

    def ingest(self, chunks: List[DocumentChunk], replace_existing: bool = False) -> int:
        """
        Store chunks in the vector store.

        Args:
            chunks: Chunks to store
            replace_existing: Delete stored chunks of the same documents first

        Returns:
            Number of chunks written
        """
        if not chunks:
            logger.warning("No chunks to ingest")
            return 0

        store = self._get_store()
        if replace_existing:
            for document_name in sorted({chunk.document_name for chunk in chunks}):
                criteria = {"document_name": document_name}
                existing = store.count_by_filter(criteria)
                if existing:
                    deleted = store.delete_by_filter(criteria)
                    logger.info(f"Replaced document {document_name}: deleted {deleted} existing chunks")

        written = store.upsert(chunks)
        logger.info(f"Ingested {written} chunks")
        return written

    def save_chunks(
        self,
        chunks: List[DocumentChunk],
        output_path: Union[str, Path],
        source_metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Save chunks and a short summary to a JSON file.

        Args:
            chunks: Chunks to save
            output_path: Destination JSON file
            source_metadata: Metadata of the source document, e.g. from
                ``DocumentParser.get_metadata``
        """
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        data: Dict[str, Any] = {
            "total_chunks": len(chunks),
            "documents": sorted({chunk.document_name for chunk in chunks}),
            "source_metadata": source_metadata or {},
            "chunks": [chunk.to_dict() for chunk in chunks],
        }
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        logger.info(f"Saved {len(chunks)} chunks to {output_path}")

    def _finish_chunk(self, chunk: Chunk, vector: List[float], document_title: str) -> DocumentChunk:
        title = document_title
        if self.config.generate_titles and not document_title:
            title = self.enhancer.generate_title(chunk.content)
        summary = self.enhancer.generate_summary(chunk.content) if self.config.generate_summaries else ""

        document_chunk = DocumentChunk(
            id=chunk.id,
            document_name=chunk.document_name,
            content=chunk.content,
            source_file=chunk.source_file,
            domains=list(chunk.domains),
            page_number=chunk.page_number,
            embedding=vector,
            title=title,
            summary=summary,
        )
        if self.config.enhance_content:
            document_chunk.enhanced_content = self.enhancer.enhance(chunk.content)
        return document_chunk

    def _get_store(self) -> VectorDB:
        if self.store is None:
            self.store = create_vector_store()
        if not self._store_initialized:
            self.store.initialize()
            self._store_initialized = True
        return self.store
