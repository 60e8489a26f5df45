"""
Document Ingestion & Chunking Pipeline
======================================

This package turns PDFs, DOCX files, scanned pages and video transcripts into
retrieval-ready chunks: it repairs sentences split across page boundaries,
segments pages along their structure and embeds the chunks for a vector store.
"""

__version__ = "0.1.0"

# Expose the data model
from .models import Chunk, ChunkingConfig, DocumentChunk, Page

# Avoid importing the SDK-backed modules until they are needed
def get_chunk_assembler():
    from .chunker import ChunkAssembler
    return ChunkAssembler

def get_document_parser():
    from .parser import DocumentParser
    return DocumentParser

__all__ = [
    "get_chunk_assembler",
    "get_document_parser",
    "Chunk",
    "ChunkingConfig",
    "DocumentChunk",
    "Page",
]
