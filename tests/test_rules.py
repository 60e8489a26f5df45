"""
Tests for the structure and fragment heuristics.
"""

import sys
import unittest
from pathlib import Path

# Add the project root to the Python path
sys.path.append(str(Path(__file__).parent.parent))

from doc_ingest.rules import (
    ENGLISH,
    HEADING,
    HEADING_RULES,
    LIST_ITEM,
    LIST_ITEM_RULES,
    PARAGRAPH,
    VIETNAMESE,
    VocabularyDriftValidator,
    classify_block,
    detect_end_fragment,
    detect_language,
    detect_start_fragment,
    first_match,
    has_short_tail,
    is_split_word,
)


class TestClassification(unittest.TestCase):
    """Tests for heading and list-item classification."""

    def test_headings(self):
        self.assertEqual(first_match(HEADING_RULES, "## Section A"), "markdown_heading")
        self.assertEqual(first_match(HEADING_RULES, "1.2.3 Scope of work"), "numbered_section")
        self.assertEqual(first_match(HEADING_RULES, "EXECUTIVE SUMMARY"), "all_caps_block")
        self.assertEqual(classify_block("I. INTRODUCTION"), HEADING)

    def test_all_caps_sentence_is_not_heading(self):
        """Terminal punctuation means a shouted sentence, not a heading."""
        self.assertEqual(classify_block("DO NOT OPEN THIS DOOR."), PARAGRAPH)

    def test_list_items(self):
        self.assertEqual(first_match(LIST_ITEM_RULES, "- first"), "bullet")
        self.assertEqual(first_match(LIST_ITEM_RULES, "2) second"), "numeral")
        self.assertEqual(first_match(LIST_ITEM_RULES, "iv. fourth"), "roman")
        self.assertEqual(first_match(LIST_ITEM_RULES, "b) option"), "letter")
        self.assertEqual(classify_block("1. first step"), LIST_ITEM)

    def test_paragraph(self):
        self.assertEqual(classify_block("A plain sentence about nothing in particular."), PARAGRAPH)


class TestFragments(unittest.TestCase):
    """Tests for page-boundary fragment detection."""

    def test_start_fragments(self):
        self.assertEqual(detect_start_fragment(", which was late."), "continuation_punctuation")
        self.assertEqual(detect_start_fragment("and then it stopped."), "continuation_word")
        self.assertEqual(detect_start_fragment("tinuously through the night."), "mid_word_syllable")
        self.assertEqual(detect_start_fragment("already over by then."), "lowercase_letter")
        self.assertIsNone(detect_start_fragment("The start of a sentence."))

    def test_end_fragments(self):
        self.assertIsNone(detect_end_fragment("It ended here."))
        self.assertIsNone(detect_end_fragment('He said "stop."'))
        self.assertEqual(detect_end_fragment("The fire burns con"), "missing_terminal")

    def test_split_word(self):
        self.assertTrue(is_split_word("con", "tinuously through", ENGLISH))
        self.assertTrue(is_split_word("inter-", "national trade", ENGLISH))
        self.assertFalse(is_split_word("the", "night was long", ENGLISH))
        self.assertFalse(is_split_word("con", "Tinuously", ENGLISH))
        # Both halves are ordinary words
        self.assertFalse(is_split_word("xyz", "and more", ENGLISH))

    def test_short_tail(self):
        self.assertTrue(has_short_tail("một câu bị cắt ở nh"))
        self.assertFalse(has_short_tail("ends with ok."))
        self.assertFalse(has_short_tail("see page 12"))
        self.assertFalse(has_short_tail("a sentence that ends normally"))


class TestLanguage(unittest.TestCase):
    """Tests for language detection and drift validation."""

    VIETNAMESE_TEXT = "Đây là một câu tiếng Việt có dấu đầy đủ để kiểm tra."

    def test_detect_language(self):
        self.assertIs(detect_language(self.VIETNAMESE_TEXT), VIETNAMESE)
        self.assertIs(detect_language("This is plain English text."), ENGLISH)
        self.assertIs(detect_language("12345"), ENGLISH)

    def test_drift(self):
        validator = VocabularyDriftValidator()
        translated = "This is the translation of the text and it is in English"
        self.assertTrue(validator.is_drifted(self.VIETNAMESE_TEXT, translated))
        self.assertFalse(validator.is_drifted(self.VIETNAMESE_TEXT, self.VIETNAMESE_TEXT))
        self.assertEqual(validator.drift_ratio(self.VIETNAMESE_TEXT, ""), 0.0)


if __name__ == "__main__":
    unittest.main()
