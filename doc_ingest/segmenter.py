"""
Structure-aware segmentation of page text into chunks.
"""

import logging
import math
import re
from dataclasses import dataclass
from typing import List, Tuple

from .rules import HEADING, LIST_ITEM, PARAGRAPH, SENTENCE_END_RE, classify_block, first_match, is_heading, LIST_ITEM_RULES

logger = logging.getLogger(__name__)

HEADING_AFFINITY_WINDOW = 2
HEADING_AFFINITY_RATIO = 0.7
PARAGRAPH_OVERLAP_RATIO = 1.5
_TERMINATOR_RE = re.compile(r"[.!?:;。…][\"'”’)\]]?(?=\s)")


@dataclass(frozen=True)
class StructuredItem:
    """A classified unit of page text. Only lives inside the segmenter."""

    kind: str
    text: str
    # True for the second and later pieces of a paragraph split into sentences
    continues: bool = False


def chunk_dimensions(text_length: int, chunks_per_page: int, chunk_overlap: float) -> Tuple[int, int]:
    """
    Target chunk size and overlap for a page.

    Sized so that ``chunks_per_page`` chunks overlapping by ``chunk_overlap``
    cover the page exactly.
    """
    divisor = chunks_per_page * (1 - chunk_overlap) + chunk_overlap
    target = max(1, math.ceil(text_length / divisor))
    return target, math.floor(target * chunk_overlap)


def slice_fixed(text: str, max_chunks: int, target_chunk_size: int, overlap_size: int) -> List[str]:
    """Legacy fixed-offset slicing, used when boundaries are not respected."""
    chunks = []
    for i in range(max_chunks):
        start = 0 if i == 0 else i * target_chunk_size - overlap_size
        if start >= len(text):
            break
        piece = text[start:min(start + target_chunk_size, len(text))].strip()
        if piece:
            chunks.append(piece)
    return chunks


class BoundaryAwareSegmenter:
    """
    Splits page text into at most ``max_chunks`` chunks along paragraph,
    heading and list boundaries.

    Headings travel with the first body item that follows them, and overlap
    between chunks is taken from whole paragraphs or sentences rather than
    arbitrary character offsets.
    """

    def segment(
        self,
        page_text: str,
        max_chunks: int,
        target_chunk_size: int,
        overlap_size: int,
        preserve_headings: bool = True,
    ) -> List[str]:
        """
        Segment a page.

        Args:
            page_text: Page content, already continuity-repaired
            max_chunks: Upper bound on the number of chunks
            target_chunk_size: Preferred chunk length in characters
            overlap_size: Preferred overlap between consecutive chunks
            preserve_headings: Keep headings attached to their first body item

        Returns:
            List of non-empty chunk strings
        """
        if max_chunks < 1:
            raise ValueError(f"max_chunks must be >= 1, got {max_chunks}")

        items = self.parse_items(page_text, target_chunk_size)
        if not items:
            return []

        chunks: List[List[StructuredItem]] = []
        current: List[StructuredItem] = []
        for item in items:
            can_split = (
                current
                and len(chunks) < max_chunks - 1
                and not all(existing.kind == HEADING for existing in current)
                and len(self.render(current + [item])) > target_chunk_size
            )
            if can_split:
                closed, current = self._open_chunk(current, item, target_chunk_size, overlap_size, preserve_headings)
                chunks.append(closed)
            else:
                current.append(item)
        if chunks and all(item.kind == HEADING for item in current):
            # A page that ends on a heading keeps it in its last chunk
            chunks[-1] = chunks[-1] + current
        else:
            chunks.append(current)

        texts = [self.normalize(self.render(chunk)) for chunk in chunks]
        texts = [text for text in texts if text]
        logger.debug(f"Segmented {len(page_text)} chars into {len(texts)} chunks (target {target_chunk_size})")
        return texts

    def parse_items(self, text: str, target_chunk_size: int) -> List[StructuredItem]:
        """Split text on blank lines and classify each block."""
        items: List[StructuredItem] = []
        for block in re.split(r"\n\s*\n", text):
            block = block.strip()
            if not block:
                continue

            kind = classify_block(block)
            lines = block.split("\n")
            if len(lines) > 1 and is_heading(lines[0].strip()):
                body = "\n".join(lines[1:]).strip()
                # A multi-line title stays one heading
                if not is_heading(body):
                    items.append(StructuredItem(HEADING, lines[0].strip()))
                    block = body
                    kind = classify_block(block)

            if kind == HEADING:
                items.append(StructuredItem(HEADING, block))
            elif kind == LIST_ITEM:
                items.extend(self._split_list(block))
            elif len(block) > target_chunk_size:
                items.extend(self._split_paragraph(block, target_chunk_size))
            else:
                items.append(StructuredItem(PARAGRAPH, block))
        return items

    @staticmethod
    def render(items: List[StructuredItem]) -> str:
        parts = []
        for index, item in enumerate(items):
            if index == 0:
                parts.append(item.text)
            elif item.continues and items[index - 1].kind != HEADING:
                parts.append(" " + item.text)
            elif item.kind == LIST_ITEM:
                parts.append("\n" + item.text)
            else:
                parts.append("\n\n" + item.text)
        return "".join(parts)

    @staticmethod
    def normalize(text: str) -> str:
        return re.sub(r"\n{3,}", "\n\n", text).strip()

    def _open_chunk(
        self,
        outgoing: List[StructuredItem],
        trigger: StructuredItem,
        target_chunk_size: int,
        overlap_size: int,
        preserve_headings: bool,
    ) -> Tuple[List[StructuredItem], List[StructuredItem]]:
        """
        Close ``outgoing`` and pick the opening items of the next chunk.

        Returns:
            (closed chunk items, opening items of the new chunk)
        """
        # Never overlap into a new heading
        if trigger.kind == HEADING:
            return outgoing, [trigger]

        if preserve_headings:
            window = outgoing[-HEADING_AFFINITY_WINDOW:]
            heading = next((item for item in reversed(window) if item.kind == HEADING), None)
            if heading is not None and len(heading.text) + 2 + len(trigger.text) <= HEADING_AFFINITY_RATIO * target_chunk_size:
                if outgoing[-1] is heading and len(outgoing) > 1:
                    # Move a trailing heading instead of leaving it orphaned
                    return outgoing[:-1], [heading, trigger]
                return outgoing, [heading, trigger]

        if overlap_size <= 0:
            return outgoing, [trigger]

        last = outgoing[-1]
        if len(outgoing) > 1 and last.kind != HEADING and len(last.text) <= PARAGRAPH_OVERLAP_RATIO * overlap_size:
            return outgoing, [last, trigger]

        sentence = self._trailing_sentence(self.render(outgoing), overlap_size)
        if sentence:
            return outgoing, [StructuredItem(PARAGRAPH, sentence), trigger]

        return outgoing, [trigger]

    @staticmethod
    def _trailing_sentence(text: str, overlap_size: int) -> str:
        """Text after the last sentence terminator inside the last ``2 * overlap_size`` chars."""
        window = text[-2 * overlap_size:]
        # A terminator at the very end closes the last sentence; it does not start one
        body = window.rstrip()
        ends = [m.end() for m in _TERMINATOR_RE.finditer(body) if m.end() < len(body)]
        if not ends:
            return ""
        return body[ends[-1]:].strip()

    @staticmethod
    def _split_list(block: str) -> List[StructuredItem]:
        items: List[StructuredItem] = []
        for line in block.split("\n"):
            line = line.strip()
            if not line:
                continue
            if items and not first_match(LIST_ITEM_RULES, line):
                # Wrapped continuation of the previous list item
                previous = items.pop()
                items.append(StructuredItem(LIST_ITEM, previous.text + "\n" + line))
            else:
                items.append(StructuredItem(LIST_ITEM, line))
        return items

    @staticmethod
    def _split_paragraph(block: str, target_chunk_size: int) -> List[StructuredItem]:
        pieces: List[str] = []
        for sentence in SENTENCE_END_RE.split(block):
            sentence = sentence.strip()
            if not sentence:
                continue
            if len(sentence) <= target_chunk_size:
                pieces.append(sentence)
                continue
            group = ""
            for word in sentence.split():
                if group and len(group) + 1 + len(word) > target_chunk_size:
                    pieces.append(group)
                    group = word
                else:
                    group = f"{group} {word}" if group else word
            if group:
                pieces.append(group)
        return [
            StructuredItem(PARAGRAPH, piece, continues=index > 0)
            for index, piece in enumerate(pieces)
        ]
