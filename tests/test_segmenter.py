"""
Tests for boundary-aware segmentation.
"""

import sys
import unittest
from pathlib import Path

# Add the project root to the Python path
sys.path.append(str(Path(__file__).parent.parent))

from doc_ingest.rules import HEADING, is_heading
from doc_ingest.segmenter import BoundaryAwareSegmenter, chunk_dimensions, slice_fixed


def paragraph(words: int = 100, word: str = "word") -> str:
    return " ".join([word] * words)


class TestChunkDimensions(unittest.TestCase):
    """Tests for chunk size derivation."""

    def test_dimensions(self):
        self.assertEqual(chunk_dimensions(3000, 2, 0.2), (1667, 333))
        self.assertEqual(chunk_dimensions(900, 3, 0.0), (300, 0))

    def test_slice_fixed(self):
        """Legacy slicing advances by target minus overlap."""
        self.assertEqual(slice_fixed("abcdefghij", 3, 4, 1), ["abcd", "defg", "hij"])
        self.assertEqual(slice_fixed("abc", 3, 4, 1), ["abc"])


class TestBoundaryAwareSegmenter(unittest.TestCase):
    """Tests for the BoundaryAwareSegmenter class."""

    def setUp(self):
        self.segmenter = BoundaryAwareSegmenter()

    def test_section_heading_page(self):
        """A heading followed by ~2,800 chars of body gives exactly 2 chunks, the first led by the heading."""
        body = "\n\n".join((("Lorem ipsum dolor sit amet consectetur. " * 10).strip()) for _ in range(7))
        text = "## Section A\n\n" + body
        target, overlap = chunk_dimensions(len(text), 2, 0.2)

        chunks = self.segmenter.segment(text, 2, target, overlap, preserve_headings=True)

        self.assertEqual(len(chunks), 2)
        self.assertTrue(chunks[0].startswith("## Section A"))

    def test_idempotent(self):
        text = "\n\n".join(paragraph(60 + i) for i in range(12))
        first = self.segmenter.segment(text, 3, 1500, 300)
        second = self.segmenter.segment(text, 3, 1500, 300)
        self.assertEqual(first, second)

    def test_max_chunks_respected(self):
        text = "\n\n".join(paragraph(80) for _ in range(20))
        chunks = self.segmenter.segment(text, 3, 500, 100)
        self.assertLessEqual(len(chunks), 3)
        self.assertTrue(all(chunk.strip() for chunk in chunks))

    def test_max_chunks_validated(self):
        with self.assertRaises(ValueError):
            self.segmenter.segment("text", 0, 100, 10)

    def test_empty_page(self):
        self.assertEqual(self.segmenter.segment("  \n\n ", 3, 100, 10), [])

    def test_trailing_heading_moves_forward(self):
        """A heading at the end of a full chunk moves into the next one instead of being orphaned."""
        text = "\n\n".join([paragraph(100), paragraph(100), "## Next", paragraph(100, "body")])
        chunks = self.segmenter.segment(text, 3, 1100, 200, preserve_headings=True)

        self.assertEqual(len(chunks), 2)
        self.assertFalse(is_heading(chunks[0].split("\n\n")[-1]))
        self.assertTrue(chunks[1].startswith("## Next"))

    def test_heading_trigger_starts_chunk(self):
        """A heading that overflows the chunk opens the next chunk with no overlap."""
        text = "\n\n".join([paragraph(100), paragraph(100), "## Next", paragraph(100, "body")])
        chunks = self.segmenter.segment(text, 3, 1000, 200)

        self.assertEqual(len(chunks), 2)
        self.assertEqual(chunks[1].split("\n\n")[0], "## Next")

    def test_paragraph_overlap(self):
        """A short last paragraph is repeated at the start of the next chunk."""
        short = "A short closing paragraph."
        text = "\n\n".join([paragraph(100), short, paragraph(100, "next")])
        chunks = self.segmenter.segment(text, 2, 600, 100, preserve_headings=False)

        self.assertEqual(len(chunks), 2)
        self.assertTrue(chunks[0].endswith(short))
        self.assertTrue(chunks[1].startswith(short))

    def test_recent_heading_reattached(self):
        """A heading one item back opens the next chunk together with the overflowing paragraph."""
        setup = "Install the package and configure the client before running the tool."
        text = "\n\n".join(["## Setup", setup, "Then run the first import job."])
        chunks = self.segmenter.segment(text, 3, 100, 20, preserve_headings=True)

        self.assertEqual(chunks, [
            f"## Setup\n\n{setup}",
            "## Setup\n\nThen run the first import job.",
        ])

    def test_trailing_sentence_overlap(self):
        """Without a short paragraph to repeat, the text after the last sentence end carries over."""
        first = "The cluster has three nodes. Each node runs a worker. Logs go to disk."
        text = "\n\n".join([first, "Restart the service after changes."])
        chunks = self.segmenter.segment(text, 3, 100, 20, preserve_headings=False)

        self.assertEqual(chunks, [first, "Logs go to disk.\n\nRestart the service after changes."])

    def test_no_overlap_when_overlap_is_zero(self):
        first = "The cluster has three nodes. Each node runs a worker. Logs go to disk."
        text = "\n\n".join([first, "Restart the service after changes."])
        chunks = self.segmenter.segment(text, 3, 100, 0, preserve_headings=False)

        self.assertEqual(chunks, [first, "Restart the service after changes."])

    def test_page_ending_in_heading(self):
        """A heading at the very end of a page is not left as a chunk of its own."""
        text = "word " * 200 + "\n\n## Next Section"
        chunks = self.segmenter.segment(text, 3, 1000, 200)

        self.assertEqual(len(chunks), 1)
        self.assertTrue(chunks[0].endswith("\n\n## Next Section"))

    def test_list_items_joined_by_newline(self):
        chunks = self.segmenter.segment("- one\n- two\n- three", 3, 1000, 0)
        self.assertEqual(chunks, ["- one\n- two\n- three"])

    def test_oversized_paragraph_split_into_sentences(self):
        """Sentence pieces of one paragraph are rejoined with single spaces."""
        text = "First sentence here. Second sentence here. Third one."
        items = self.segmenter.parse_items(text, 25)
        self.assertEqual(len(items), 3)
        self.assertFalse(items[0].continues)
        self.assertTrue(items[1].continues)
        self.assertEqual(self.segmenter.segment(text, 1, 25, 0), [text])

    def test_leading_heading_line_split_off(self):
        items = self.segmenter.parse_items("## Title\nBody text follows here.", 1000)
        self.assertEqual([item.kind for item in items], [HEADING, "paragraph"])

    def test_normalize(self):
        self.assertEqual(self.segmenter.normalize("  a\n\n\n\nb  "), "a\n\nb")


if __name__ == "__main__":
    unittest.main()
