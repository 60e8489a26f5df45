"""
Test suite for the chunk assembler.
"""

import json
import os
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock

# Add the project root to the Python path
sys.path.append(str(Path(__file__).parent.parent))

from doc_ingest.chunker import ChunkAssembler
from doc_ingest.continuity import ContinuityRepairEngine
from doc_ingest.models import ChunkingConfig, DocumentChunk, Page
from doc_ingest.parser import DocumentParser
from doc_ingest.storage import InMemoryVectorStore

VIDEO_ID = "dQw4w9WgXcQ"


def fake_embedder() -> MagicMock:
    embedder = MagicMock()
    embedder.embed_many.side_effect = lambda texts: [[float(len(text)), 1.0] for text in texts]
    return embedder


def fake_enhancer() -> MagicMock:
    enhancer = MagicMock()
    enhancer.generate_title.return_value = "Generated title"
    enhancer.generate_summary.return_value = "Generated summary."
    enhancer.generate_title_and_summary.return_value = ("Segment title", "Segment summary.")
    enhancer.enhance.return_value = "Enhanced content."
    return enhancer


def make_assembler(store=None, **options) -> ChunkAssembler:
    return ChunkAssembler(
        chunking_config=ChunkingConfig(chunks_per_page=1, **options),
        parser=DocumentParser(),
        repair_engine=ContinuityRepairEngine(text_client=None, ai_enabled=False),
        embedder=fake_embedder(),
        enhancer=fake_enhancer(),
        store=store,
        show_progress=False,
    )


PAGES = [
    Page(1, "The first page describes the system."),
    Page(2, "   "),
    Page(3, "The third page lists the results."),
]


class TestBuildChunks(unittest.TestCase):
    """Tests for segmentation into chunks."""

    def test_ids_and_empty_pages(self):
        assembler = make_assembler()
        chunks = assembler.build_chunks(PAGES, "report", "/tmp/report.pdf", ["finance"])

        self.assertEqual([chunk.id for chunk in chunks], ["report_page001_chunk0", "report_page003_chunk0"])
        self.assertEqual([chunk.page_number for chunk in chunks], [1, 3])
        self.assertTrue(all(chunk.domains == ["finance"] for chunk in chunks))
        self.assertEqual(chunks[0].source_file, "/tmp/report.pdf")

    def test_fixed_slicing_without_boundaries(self):
        assembler = ChunkAssembler(
            chunking_config=ChunkingConfig(chunks_per_page=3, chunk_overlap=0.0, respect_boundaries=False),
            parser=DocumentParser(),
            repair_engine=ContinuityRepairEngine(text_client=None, ai_enabled=False),
            embedder=fake_embedder(),
            enhancer=fake_enhancer(),
            show_progress=False,
        )
        chunks = assembler.build_chunks([Page(1, "a" * 30)], "doc", "doc.txt")

        self.assertEqual([len(chunk.content) for chunk in chunks], [10, 10, 10])
        self.assertEqual(chunks[2].id, "doc_page001_chunk2")


class TestAssemble(unittest.TestCase):
    """Tests for embedding and metadata generation."""

    def test_assemble(self):
        assembler = make_assembler()
        chunks = assembler.assemble(PAGES, "report", "report.pdf", ["finance"])

        self.assertEqual(len(chunks), 2)
        self.assertIsInstance(chunks[0], DocumentChunk)
        self.assertEqual(chunks[0].embedding, [float(len(chunks[0].content)), 1.0])
        self.assertEqual(chunks[0].title, "Generated title")
        self.assertEqual(chunks[0].summary, "Generated summary.")
        self.assertIsNone(chunks[0].enhanced_content)
        # One embedding batch per non-empty page
        self.assertEqual(assembler.embedder.embed_many.call_count, 2)

    def test_document_title_overrides_generated(self):
        assembler = make_assembler()
        chunks = assembler.assemble(PAGES, "report", "report.pdf", document_title="Annual Report")

        self.assertEqual({chunk.title for chunk in chunks}, {"Annual Report"})
        assembler.enhancer.generate_title.assert_not_called()

    def test_generation_flags(self):
        assembler = make_assembler(generate_titles=False, generate_summaries=False, enhance_content=True)
        chunks = assembler.assemble(PAGES, "report", "report.pdf")

        self.assertEqual(chunks[0].title, "")
        self.assertEqual(chunks[0].summary, "")
        self.assertEqual(chunks[0].enhanced_content, "Enhanced content.")
        assembler.enhancer.generate_summary.assert_not_called()

    def test_process_text_document(self):
        assembler = make_assembler()
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "meeting notes.txt")
            with open(path, "w", encoding="utf-8") as f:
                f.write("The team met on Monday.\fThe budget was approved.")

            chunks = assembler.process_document(path, domains=["internal"])

        self.assertEqual([chunk.id for chunk in chunks], ["meeting_notes_page001_chunk0", "meeting_notes_page002_chunk0"])
        self.assertEqual(chunks[1].content, "The budget was approved.")
        self.assertEqual(chunks[0].domains, ["internal"])


class TestIngest(unittest.TestCase):
    """Tests for storing chunks."""

    def test_replace_existing_document(self):
        store = InMemoryVectorStore()
        assembler = make_assembler(store=store)

        assembler.ingest(assembler.assemble(PAGES, "report", "report.pdf"))
        self.assertEqual(len(store), 2)

        assembler.ingest(assembler.assemble(PAGES[:1], "report", "report.pdf"), replace_existing=True)
        self.assertEqual(len(store), 1)
        self.assertIsNotNone(store.get("report_page001_chunk0"))

    def test_ingest_nothing(self):
        assembler = make_assembler(store=InMemoryVectorStore())
        self.assertEqual(assembler.ingest([]), 0)

    def test_store_initialized_once(self):
        store = MagicMock()
        store.upsert.return_value = 1
        assembler = make_assembler(store=store)
        chunks = assembler.assemble(PAGES[:1], "report", "report.pdf")

        assembler.ingest(chunks)
        assembler.ingest(chunks)
        store.initialize.assert_called_once()


class TestTranscripts(unittest.TestCase):
    """Tests for transcript chunking."""

    TRANSCRIPT = "[00:00] Welcome to the channel.\n[00:04] Today we cover the basics.\n[00:09] Let us begin."

    def test_assemble_transcript(self):
        assembler = make_assembler()
        chunks = assembler.assemble_transcript(self.TRANSCRIPT, f"https://youtu.be/{VIDEO_ID}")

        self.assertEqual(len(chunks), 1)
        chunk = chunks[0]
        self.assertEqual(chunk.id, f"youtube_{VIDEO_ID}_chunk_0")
        self.assertEqual(chunk.document_name, f"YouTube Video: {VIDEO_ID}")
        self.assertEqual(chunk.source_file, f"https://www.youtube.com/watch?v={VIDEO_ID}")
        self.assertEqual(chunk.domains, ["youtube"])
        self.assertEqual(chunk.title, "Segment title")
        self.assertIsNone(chunk.page_number)

        # Metadata is generated from text without timestamps
        content = assembler.enhancer.generate_title_and_summary.call_args.args[0]
        self.assertNotIn("[00:00]", content)

    def test_srt_transcript(self):
        srt = "1\n00:00:01,000 --> 00:00:03,000\nHello there.\n\n2\n00:00:04,000 --> 00:00:06,000\nGeneral remarks.\n"
        chunks = make_assembler().assemble_transcript(srt, VIDEO_ID, video_title="Greetings")

        self.assertEqual(chunks[0].document_name, "Greetings")
        self.assertIn("Hello there.", chunks[0].content)

    def test_invalid_inputs(self):
        assembler = make_assembler()
        with self.assertRaises(ValueError):
            assembler.assemble_transcript(self.TRANSCRIPT, "https://example.com/video")
        with self.assertRaises(ValueError):
            assembler.assemble_transcript("   ", VIDEO_ID)

    def test_ingest_transcript_skips_stored_video(self):
        store = InMemoryVectorStore()
        assembler = make_assembler(store=store)

        first = assembler.ingest_transcript(self.TRANSCRIPT, VIDEO_ID)
        second = assembler.ingest_transcript(self.TRANSCRIPT, VIDEO_ID)

        self.assertEqual(len(first), 1)
        self.assertEqual(second, [])
        self.assertTrue(assembler.transcript_exists(VIDEO_ID))
        self.assertEqual(assembler.embedder.embed_many.call_count, 1)

    def test_ingest_transcript_replace(self):
        store = InMemoryVectorStore()
        assembler = make_assembler(store=store)

        assembler.ingest_transcript(self.TRANSCRIPT, VIDEO_ID)
        chunks = assembler.ingest_transcript(self.TRANSCRIPT, VIDEO_ID, replace_existing=True)

        self.assertEqual(len(chunks), 1)
        self.assertEqual(len(store), 1)


class TestSaveChunks(unittest.TestCase):

    def test_save_chunks(self):
        assembler = make_assembler()
        chunks = assembler.assemble(PAGES, "report", "report.pdf")
        with tempfile.TemporaryDirectory() as tmp:
            output_path = os.path.join(tmp, "out", "report_chunks.json")
            assembler.save_chunks(chunks, output_path, {"title": "Annual Report", "page_count": 3})
            with open(output_path, encoding="utf-8") as f:
                data = json.load(f)

        self.assertEqual(data["total_chunks"], 2)
        self.assertEqual(data["documents"], ["report"])
        self.assertEqual(data["source_metadata"], {"title": "Annual Report", "page_count": 3})
        self.assertEqual(data["chunks"][0]["documentName"], "report")
        self.assertEqual(data["chunks"][0]["pageNumber"], 1)
        self.assertIn("embedding", data["chunks"][0])


if __name__ == "__main__":
    unittest.main()
