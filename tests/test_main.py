"""
Tests for the command line entry point.
"""

import os
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

# Add the project root to the Python path
sys.path.append(str(Path(__file__).parent.parent))

import main
from doc_ingest.exceptions import ParseFailure


class TestMain(unittest.TestCase):
    """Tests for the main() entry point."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.source = os.path.join(self.tmp.name, "report.txt")
        with open(self.source, "w", encoding="utf-8") as f:
            f.write("Quarterly results.")
        self.output = os.path.join(self.tmp.name, "report_chunks.json")

    def test_document_metadata_saved_with_chunks(self):
        with patch("main.ChunkAssembler") as assembler_cls:
            assembler = assembler_cls.return_value
            assembler.process_document.return_value = ["chunk"]
            assembler.parser.get_metadata.return_value = {"title": "report"}

            main.main(["-i", self.source, "-o", self.output, "--domains", "finance, legal"])

        assembler.process_document.assert_called_once_with(self.source, domains=["finance", "legal"], document_title="")
        assembler.parser.get_metadata.assert_called_once_with(self.source)
        assembler.save_chunks.assert_called_once_with(["chunk"], self.output, {"title": "report"})
        assembler.ingest.assert_not_called()

    def test_missing_input_exits(self):
        with self.assertRaises(SystemExit) as cm:
            main.main(["-i", os.path.join(self.tmp.name, "missing.pdf")])
        self.assertEqual(cm.exception.code, 1)

    def test_parse_failure_exits(self):
        with patch("main.ChunkAssembler") as assembler_cls:
            assembler_cls.return_value.process_document.side_effect = ParseFailure(self.source, "no text")
            with self.assertRaises(SystemExit) as cm:
                main.main(["-i", self.source, "-o", self.output])
        self.assertEqual(cm.exception.code, 1)

    def test_youtube_requires_transcript(self):
        with self.assertRaises(SystemExit) as cm:
            main.main(["--youtube", "dQw4w9WgXcQ"])
        self.assertEqual(cm.exception.code, 2)


if __name__ == "__main__":
    unittest.main()
