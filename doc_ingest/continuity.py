"""
Sentence continuity repair across page boundaries.

Text extracted page by page often starts or ends mid-sentence, sometimes
mid-word. ``ContinuityRepairEngine`` detects those fragments and borrows the
smallest amount of text from the neighbouring page that completes them, so
that no chunk built from the page starts or ends in the middle of a thought.

The engine asks a text generation model first and falls back to a
deterministic heuristic when the model is unavailable, slow, or returns
something it cannot trust.
"""

import logging
import re
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import List, Optional

from tqdm import tqdm

from . import config
from .exceptions import AIRewriteRejected
from .llm_client import TextGenerationClient
from .models import Page
from .rules import (
    LanguageProfile,
    DriftValidator,
    VocabularyDriftValidator,
    SENTENCE_END_RE,
    detect_end_fragment,
    detect_language,
    detect_start_fragment,
    has_short_tail,
    is_heading,
    is_split_word,
    last_token,
)

logger = logging.getLogger(__name__)

MIN_REPAIR_LENGTH = 10
MIN_OUTPUT_RATIO = 0.5
MAX_BORROW_CHARS = 500
TAIL_MIN_CHARS = 100
TAIL_MAX_CHARS = 150
SHORT_TAIL_WORDS = 3
MIN_DUPLICATE_CHARS = 6
AI_REPAIR_MAX_TOKENS = 4096

_CODE_FENCE_RE = re.compile(r"^```[\w-]*\n?|\n?```$")


class CircuitBreakerState:
    """
    Consecutive-failure counter for the AI repair path.

    Once ``max_failures`` consecutive calls time out or error, the AI path
    stays disabled for the rest of the run.
    """

    def __init__(self, max_failures: int = config.AI_REPAIR_MAX_FAILURES, disabled: bool = False):
        self.max_failures = max_failures
        self.consecutive_failures = 0
        self.disabled = disabled

    def record_failure(self) -> None:
        self.consecutive_failures += 1
        if not self.disabled and self.consecutive_failures >= self.max_failures:
            self.disabled = True
            logger.warning(
                f"AI continuity repair disabled after {self.consecutive_failures} consecutive failures; "
                "using deterministic repair for the rest of the run"
            )

    def record_success(self) -> None:
        self.consecutive_failures = 0


def _paragraphs(text: str) -> List[str]:
    return [p.strip() for p in re.split(r"\n\s*\n", text) if p.strip()]


def _sentences(text: str) -> List[str]:
    return [s.strip() for s in SENTENCE_END_RE.split(text) if s and s.strip()]


def _cut_tail(text: str, min_chars: int = TAIL_MIN_CHARS, max_chars: int = TAIL_MAX_CHARS) -> str:
    """Last ``min_chars``..``max_chars`` characters, starting at a word boundary."""
    if len(text) <= max_chars:
        return text
    window = text[-max_chars:]
    space = window.find(" ", 0, max_chars - min_chars + 1)
    return window[space + 1:] if space >= 0 else window


def _cut_head(text: str, min_chars: int = TAIL_MIN_CHARS, max_chars: int = TAIL_MAX_CHARS) -> str:
    """First ``min_chars``..``max_chars`` characters, ending at a word boundary."""
    if len(text) <= max_chars:
        return text
    window = text[:max_chars]
    space = window.rfind(" ", min_chars - 1)
    return window[:space] if space >= 0 else window


def previous_tail(text: str) -> str:
    """
    The text a fragmented page start should borrow from the previous page.

    Priority: last sentence (complete or the trailing incomplete one), then
    last paragraph, then the last 100-150 characters.
    """
    paragraphs = _paragraphs(text)
    if not paragraphs:
        return ""
    sentences = _sentences(paragraphs[-1])
    if sentences and len(sentences[-1]) <= MAX_BORROW_CHARS:
        return sentences[-1]
    if len(paragraphs[-1]) <= MAX_BORROW_CHARS:
        return paragraphs[-1]
    return _cut_tail(paragraphs[-1])


def next_head(text: str) -> str:
    """
    The text a fragmented page end should borrow from the next page.

    Priority: first sentence, then first paragraph, then the first 100-150
    characters.
    """
    paragraphs = _paragraphs(text)
    if not paragraphs:
        return ""
    sentences = _sentences(paragraphs[0])
    if sentences and len(sentences[0]) <= MAX_BORROW_CHARS:
        return sentences[0]
    if len(paragraphs[0]) <= MAX_BORROW_CHARS:
        return paragraphs[0]
    return _cut_head(paragraphs[0])


def join_fragments(left: str, right: str, profile: LanguageProfile) -> str:
    """
    Join two pieces of text, gluing a word that was split between them.

    Text after a heading starts a new block so the heading stays on its own line.
    """
    left = left.rstrip()
    right = right.lstrip()
    if not left:
        return right
    if not right:
        return left
    if is_heading(_paragraphs(left)[-1]):
        return f"{left}\n\n{right}"
    token = last_token(left)
    if is_split_word(token, right, profile):
        if token.endswith("-"):
            left = left[:-1]
        return left + right
    return f"{left} {right}"


def drop_borrowed_head(previous: str, content: str) -> str:
    """
    Remove the start of ``content`` that the previous page already borrowed.

    Looks for the longest word-aligned prefix of ``content`` that the
    previous page ends with. Returns ``content`` unchanged when there is none.
    """
    previous = previous.rstrip()
    window = content[:MAX_BORROW_CHARS + TAIL_MAX_CHARS]
    ends = [m.end() for m in re.finditer(r"\S+", window)]
    for end in reversed(ends):
        prefix = content[:end]
        if len(prefix) < MIN_DUPLICATE_CHARS:
            break
        if previous.endswith(prefix):
            return content[end:].lstrip()
    return content


class ContinuityRepairEngine:
    """
    Repairs sentence and word fragments at page boundaries.

    Usage:
        engine = ContinuityRepairEngine(text_client=create_text_client())
        pages = engine.repair_document(pages)
    """

    def __init__(
        self,
        text_client: Optional[TextGenerationClient] = None,
        breaker: Optional[CircuitBreakerState] = None,
        timeout: float = config.AI_REPAIR_TIMEOUT,
        drift_validator: Optional[DriftValidator] = None,
        context_chars: int = config.REPAIR_CONTEXT_CHARS,
        ai_enabled: bool = not config.DISABLE_AI_REPAIR,
    ):
        """
        Initialize the repair engine.

        Args:
            text_client: Text generation client; None means deterministic repair only
            breaker: Shared circuit breaker state for the AI path
            timeout: Wall-clock limit for one AI rewrite, in seconds
            drift_validator: Rejects rewrites that changed language
            context_chars: Characters of each neighbour sent to the model
            ai_enabled: False disables the AI path before any call is made
        """
        self.text_client = text_client
        self.breaker = breaker or CircuitBreakerState()
        self.timeout = timeout
        self.drift_validator = drift_validator or VocabularyDriftValidator()
        self.context_chars = context_chars
        self.ai_enabled = ai_enabled
        if not ai_enabled:
            logger.info("AI continuity repair disabled by configuration")

    @property
    def ai_available(self) -> bool:
        return self.ai_enabled and self.text_client is not None and not self.breaker.disabled

    def repair(self, prev: Optional[Page], current: Page, next: Optional[Page]) -> Page:
        """
        Repair fragments at the start and end of ``current``.

        Args:
            prev: The previous page, already repaired, or None
            current: Page to repair
            next: The following page, or None

        Returns:
            A new Page when the content changed, otherwise ``current``
        """
        original = current.content.strip()
        if len(original) < MIN_REPAIR_LENGTH:
            return current

        prev_text = prev.content.strip() if prev else ""
        next_text = next.content.strip() if next else ""
        profile = detect_language(original)

        content = original
        deduplicated = False
        if prev is not None and prev.modified and prev_text:
            trimmed = drop_borrowed_head(prev_text, content)
            if trimmed != content and len(trimmed) >= MIN_OUTPUT_RATIO * len(original):
                logger.info(f"Page {current.page_number}: dropped {len(content) - len(trimmed)} chars already borrowed by page {prev.page_number}")
                content = trimmed
                deduplicated = True

        start_rule = None if deduplicated or not prev_text else detect_start_fragment(content, profile)
        end_rule = detect_end_fragment(content, profile) if next_text else None
        short_tail = bool(next_text) and has_short_tail(content)

        if not start_rule and not end_rule and not short_tail:
            if deduplicated:
                return Page(current.page_number, content, modified=True)
            return current

        logger.info(
            f"Page {current.page_number}: fragment detected "
            f"(start={start_rule}, end={end_rule}, short_tail={short_tail})"
        )

        repaired = None
        if self.ai_available:
            try:
                repaired = self._ai_repair(prev_text, content, next_text)
                self.breaker.record_success()
                logger.info(f"Page {current.page_number}: repaired by AI rewrite")
            except AIRewriteRejected as e:
                if e.counts_toward_breaker:
                    self.breaker.record_failure()
                logger.warning(f"Page {current.page_number}: {e}; using deterministic repair")

        if repaired is None:
            repaired = self._manual_repair(prev_text, content, next_text, bool(start_rule), bool(end_rule), profile)

        return self._finalize(current, original, repaired)

    def repair_document(self, pages: List[Page], show_progress: bool = True) -> List[Page]:
        """
        Repair every page strictly left to right.

        Each page sees the repaired version of its predecessor, which is how
        text borrowed across a boundary is kept from being duplicated.
        """
        repaired: List[Page] = []
        iterator = enumerate(pages)
        if show_progress:
            iterator = tqdm(iterator, total=len(pages), desc="Repairing page boundaries")
        for index, page in iterator:
            if not page.content.strip():
                repaired.append(page)
                continue
            prev = repaired[-1] if repaired else None
            nxt = pages[index + 1] if index + 1 < len(pages) else None
            repaired.append(self.repair(prev, page, nxt))

        modified = sum(1 for page in repaired if page.modified)
        logger.info(f"Continuity repair modified {modified}/{len(pages)} pages")
        return repaired

    def _finalize(self, current: Page, original: str, repaired: str) -> Page:
        repaired = repaired.strip()
        if not repaired:
            logger.warning(f"Page {current.page_number}: repair produced empty content, keeping original")
            return current
        if repaired == original:
            return current
        if len(repaired) < MIN_OUTPUT_RATIO * len(original):
            logger.warning(
                f"Page {current.page_number}: repaired content shrank to {len(repaired)}/{len(original)} chars, "
                "keeping original"
            )
            return current
        return Page(current.page_number, repaired, modified=True)

    def _manual_repair(
        self,
        prev_text: str,
        content: str,
        next_text: str,
        fix_start: bool,
        fix_end: bool,
        profile: LanguageProfile,
    ) -> str:
        result = content

        if fix_start and prev_text:
            tail = previous_tail(prev_text)
            if tail and not result.startswith(tail):
                result = join_fragments(tail, result, profile)
                logger.debug(f"Borrowed from previous page: {tail[:40]!r}")

        if fix_end and next_text:
            head = next_head(next_text)
            if head and not result.endswith(head):
                result = join_fragments(result, head, profile)
                logger.debug(f"Borrowed from next page: {head[:40]!r}")

        if next_text and has_short_tail(result):
            words = next_text.split()[:SHORT_TAIL_WORDS]
            if words:
                result = join_fragments(result, " ".join(words), profile)
                logger.debug(f"Healed short trailing token with: {' '.join(words)!r}")

        return result

    def _ai_repair(self, prev_text: str, content: str, next_text: str) -> str:
        """
        Ask the model for a boundary-corrected version of ``content``.

        Raises:
            AIRewriteRejected: on timeout, error, or untrustworthy output
        """
        prompt = self._build_prompt(
            prev_text[-self.context_chars:],
            content,
            next_text[:self.context_chars],
        )

        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="continuity-ai")
        future = executor.submit(
            self.text_client.generate,
            prompt,
            temperature=0.0,
            max_tokens=AI_REPAIR_MAX_TOKENS,
        )
        try:
            output = future.result(timeout=self.timeout)
        except FutureTimeout:
            # The worker may still finish; its result is never read
            future.cancel()
            raise AIRewriteRejected("timeout", f"no response within {self.timeout}s")
        except Exception as e:
            raise AIRewriteRejected("error", str(e)) from e
        finally:
            executor.shutdown(wait=False)

        output = _CODE_FENCE_RE.sub("", (output or "").strip()).strip()
        if not output:
            raise AIRewriteRejected("empty")
        if len(output) < MIN_OUTPUT_RATIO * len(content):
            raise AIRewriteRejected("too_short", f"{len(output)}/{len(content)} chars")
        if self.drift_validator.is_drifted(content, output):
            raise AIRewriteRejected("drift", "output appears to be translated")
        return output

    @staticmethod
    def _build_prompt(prev_context: str, content: str, next_context: str) -> str:
        return f"""You are fixing text extracted from a document page by page. Sentences and words
may have been cut where one page ends and the next begins.

Rewrite ONLY the CURRENT PAGE so that it does not begin or end in the middle of a
sentence or a word:
- If it begins mid-sentence, prepend the minimal text from the end of the PREVIOUS PAGE
  needed to complete that sentence.
- If it ends mid-sentence or mid-word, append the minimal text from the start of the
  NEXT PAGE needed to complete it.
- Keep everything else exactly as written. Do not summarize, paraphrase or shorten.
- Write in the SAME LANGUAGE as the current page. Never translate.
- Do not add formatting: no new headings, bullets, numbering or markdown.
- Output only the corrected current page text, with no commentary.

PREVIOUS PAGE (end):
{prev_context or "(none)"}

CURRENT PAGE:
{content}

NEXT PAGE (start):
{next_context or "(none)"}
"""
