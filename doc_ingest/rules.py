"""
Heuristic rules for text structure and page-boundary fragments.

Every heuristic is an ordered list of named ``Rule`` objects. The first rule
that matches wins, so more specific rules come first. Callers get the rule
name back, which keeps the logs readable and lets each rule be tested on its
own.

Precedence:
    HEADING_RULES      markdown_heading > numbered_section > all_caps_block
    LIST_ITEM_RULES    bullet > numeral > roman > letter
    START_FRAGMENT     continuation_punctuation > continuation_word >
                       mid_word_syllable > lowercase_letter
    END_FRAGMENT       missing_terminal > partial_syllable

Heading rules are checked before list-item rules, so ``I. INTRODUCTION`` is a
heading and ``i. first point`` is a list item.
"""

import re
from dataclasses import dataclass, field
from typing import Callable, FrozenSet, List, Optional, Pattern, Union

# Full stops accepted as the end of a sentence, including the CJK glyph
TERMINAL_GLYPHS = ".!?:;。…"
TERMINAL_RE = re.compile(r"[.!?:;。…][\"'”’)\]]*\s*$")
# Whitespace after a terminator, optionally followed by one closing quote/bracket
SENTENCE_END_RE = re.compile(r"(?:(?<=[.!?:;。…])|(?<=[.!?:;。…][\"'”’)\]]))\s+")

VIETNAMESE_CHARS = re.compile(
    r"[àáạảãâầấậẩẫăằắặẳẵèéẹẻẽêềếệểễìíịỉĩòóọỏõôồốộổỗơờớợởỡùúụủũưừứựửữỳýỵỷỹđ]",
    re.IGNORECASE,
)
WORD_RE = re.compile(r"[^\W\d_]+", re.UNICODE)


@dataclass(frozen=True)
class Rule:
    """A named predicate over a piece of text."""

    name: str
    test: Union[Pattern, Callable[[str], bool]]

    def matches(self, text: str) -> bool:
        if isinstance(self.test, re.Pattern):
            return bool(self.test.search(text))
        return bool(self.test(text))


def first_match(rules: List[Rule], text: str) -> Optional[str]:
    """Return the name of the first rule matching ``text``, or None."""
    for rule in rules:
        if rule.matches(text):
            return rule.name
    return None


# ---------------------------------------------------------------------------
# Language profiles
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LanguageProfile:
    """Vocabulary the boundary heuristics need for one source language."""

    name: str
    continuation_words: FrozenSet[str]
    partial_syllables: FrozenSet[str]
    # Words that should not dominate a rewrite of text in this language
    drift_words: FrozenSet[str] = field(default_factory=frozenset)
    # Short tokens that are whole words; any other short lowercase token at a
    # page break is treated as a split word when the profile allows it
    common_short_words: FrozenSet[str] = field(default_factory=frozenset)
    glue_unknown_short_tokens: bool = False


VIETNAMESE = LanguageProfile(
    name="vi",
    continuation_words=frozenset([
        "của", "và", "hoặc", "hay", "nhưng", "bởi", "vì", "rằng", "nên", "để",
        "mà", "thì", "là", "với", "cho", "trong", "từ", "đến", "vào", "ra",
        "lên", "xuống", "ngoài", "theo", "sau", "trước", "cùng",
    ]),
    partial_syllables=frozenset([
        "b", "c", "d", "đ", "g", "h", "k", "l", "m", "n", "p", "r", "s", "t",
        "v", "x", "gh", "gi", "kh", "ng", "nh", "ph", "th", "tr", "ch", "qu",
        "vi", "ba", "bo", "ca", "co", "cu", "du", "đi", "đo", "đa", "ga", "ha",
        "ho", "la", "lo", "ma", "mi", "mo", "mu", "na", "pa", "ta", "to", "tu",
        "xa", "xu", "xe",
    ]),
    drift_words=frozenset([
        "the", "and", "of", "to", "is", "in", "that", "it", "for", "with",
        "as", "was", "on", "are", "this", "be", "by", "from", "have", "or",
        "an", "which", "not", "they", "their", "were", "has", "been",
    ]),
)

ENGLISH = LanguageProfile(
    name="en",
    continuation_words=frozenset([
        "and", "or", "but", "nor", "which", "whose", "whom", "whereas",
    ]),
    # Lone consonants; "a" and "i" are words in their own right
    partial_syllables=frozenset("bcdfghjklmnpqrstvwxz"),
    drift_words=frozenset([
        "của", "và", "là", "các", "những", "được", "trong", "một", "có",
        "cho", "với", "không", "này", "người", "đã", "để",
    ]),
    common_short_words=frozenset([
        "a", "i", "an", "as", "at", "be", "by", "do", "go", "he", "if", "in",
        "is", "it", "me", "my", "no", "of", "on", "or", "so", "to", "up", "us",
        "we", "all", "and", "any", "are", "but", "can", "did", "few", "for",
        "got", "had", "has", "her", "him", "his", "how", "its", "may", "new",
        "not", "now", "old", "one", "our", "out", "own", "per", "put", "say",
        "see", "she", "the", "too", "two", "use", "via", "was", "way", "who",
        "why", "yet", "you", "also", "been", "both", "does", "done", "each",
        "even", "from", "have", "here", "into", "just", "like", "made", "many",
        "more", "most", "much", "must", "next", "only", "over", "same", "some",
        "such", "than", "that", "them", "then", "they", "this", "time", "upon",
        "very", "well", "were", "what", "when", "will", "with", "work", "year",
        "your", "fire", "data", "part", "page", "last", "long", "high", "used",
        "act", "add", "age", "aid", "air", "art", "ask", "bad", "big", "box",
        "boy", "buy", "car", "cut", "day", "due", "end", "eye", "far", "fit",
        "fix", "fun", "gas", "get", "hot", "job", "key", "law", "let", "lot",
        "low", "map", "men", "net", "off", "oil", "pay", "raw", "red", "run",
        "sea", "set", "sun", "tax", "ten", "top", "try", "war", "win", "yes",
    ]),
    glue_unknown_short_tokens=True,
)


def detect_language(text: str) -> LanguageProfile:
    """Pick a language profile from the density of Vietnamese diacritics."""
    letters = sum(1 for ch in text if ch.isalpha())
    if not letters:
        return ENGLISH
    hits = len(VIETNAMESE_CHARS.findall(text))
    return VIETNAMESE if hits >= max(1, letters // 50) else ENGLISH


# ---------------------------------------------------------------------------
# Structure classification
# ---------------------------------------------------------------------------

HEADING = "heading"
LIST_ITEM = "list-item"
PARAGRAPH = "paragraph"

MAX_HEADING_LENGTH = 120


def _is_all_caps_block(text: str) -> bool:
    stripped = text.strip()
    if len(stripped) > MAX_HEADING_LENGTH or stripped.count("\n") > 2:
        return False
    letters = [ch for ch in stripped if ch.isalpha()]
    if len(letters) < 2 or any(ch.islower() for ch in letters):
        return False
    return not re.search(r"[.!?;,]\s*$", stripped)


def _is_numbered_section(text: str) -> bool:
    stripped = text.strip()
    if "\n" in stripped or len(stripped) > MAX_HEADING_LENGTH:
        return False
    if not re.match(r"^\d+(\.\d+)+\.?\s+\S", stripped):
        return False
    return not re.search(r"[.!?;,]\s*$", stripped)


HEADING_RULES = [
    Rule("markdown_heading", re.compile(r"^#{1,6}\s+\S")),
    Rule("numbered_section", _is_numbered_section),
    Rule("all_caps_block", _is_all_caps_block),
]

LIST_ITEM_RULES = [
    Rule("bullet", re.compile(r"^\s*[-*•·▪◦‣–]\s+\S")),
    Rule("numeral", re.compile(r"^\s*\d{1,3}[.)]\s+\S")),
    Rule("roman", re.compile(r"^\s*(?:[ivxlcdm]{1,6}|[IVXLCDM]{1,6})[.)]\s+\S")),
    Rule("letter", re.compile(r"^\s*[a-zA-Z][.)]\s+\S")),
]


def classify_block(text: str) -> str:
    """Classify a paragraph as heading, list-item or paragraph."""
    if first_match(HEADING_RULES, text):
        return HEADING
    if first_match(LIST_ITEM_RULES, text):
        return LIST_ITEM
    return PARAGRAPH


def is_heading(text: str) -> bool:
    return first_match(HEADING_RULES, text) is not None


# ---------------------------------------------------------------------------
# Page-boundary fragments
# ---------------------------------------------------------------------------

def _first_word(text: str) -> str:
    match = WORD_RE.match(text.lstrip())
    return match.group(0).lower() if match else ""


def last_token(text: str) -> str:
    parts = text.strip().split()
    return parts[-1] if parts else ""


def start_fragment_rules(profile: LanguageProfile) -> List[Rule]:
    return [
        Rule("continuation_punctuation", re.compile(r"^\s*[,;)}\]]")),
        Rule("continuation_word", lambda text: _first_word(text) in profile.continuation_words),
        Rule("mid_word_syllable", re.compile(r"^\s*[bcdfghjklmnpqrstvwxzđ][aeiouyăâêôơưàáạảãèéẹẻẽìíịỉĩòóọỏõùúụủũ]")),
        Rule("lowercase_letter", lambda text: text.lstrip()[:1].islower()),
    ]


def is_partial_token(token: str, profile: LanguageProfile) -> bool:
    """True when ``token`` looks like the first half of a word split at a page break."""
    if not token or re.search(r"[^\w]$", token):
        return False
    return token.lower() in profile.partial_syllables


def is_split_word(token: str, following: str, profile: LanguageProfile) -> bool:
    """
    True when ``token`` and the first word of ``following`` are two halves
    of one word and must be joined without a space.

    Hyphenated breaks and consonant-only stubs always qualify. Profiles
    whose short words are a closed set (English) also glue any other short
    lowercase token, so ``con`` + ``tinuously`` becomes ``continuously``.
    """
    head = following.lstrip()
    if not token or not head[:1].isalpha() or not head[:1].islower():
        return False
    if token.endswith("-") and token[:-1].isalpha():
        return True
    if not token.isalpha() or not token.islower():
        return False
    if is_partial_token(token, profile) and not re.search(r"[aeiouyăâêôơư]", token):
        return True
    following_word = _first_word(head)
    return (
        profile.glue_unknown_short_tokens
        and len(token) <= 3
        and token not in profile.common_short_words
        and following_word not in profile.common_short_words
        and following_word not in profile.continuation_words
    )


def end_fragment_rules(profile: LanguageProfile) -> List[Rule]:
    return [
        Rule("missing_terminal", lambda text: not TERMINAL_RE.search(text)),
        Rule("partial_syllable", lambda text: is_partial_token(last_token(text), profile)),
    ]


def detect_start_fragment(text: str, profile: Optional[LanguageProfile] = None) -> Optional[str]:
    profile = profile or detect_language(text)
    return first_match(start_fragment_rules(profile), text)


def detect_end_fragment(text: str, profile: Optional[LanguageProfile] = None) -> Optional[str]:
    profile = profile or detect_language(text)
    return first_match(end_fragment_rules(profile), text)


def has_short_tail(text: str) -> bool:
    """
    A residual last token of at most two characters with no punctuation.

    Catches partial-word splits that the sentence-boundary check misses,
    e.g. ``"... nh"`` at the end of a page.
    """
    token = last_token(text)
    if not token or len(token) > 2:
        return False
    if re.search(r"[.!?:;。,)}\]]", token):
        return False
    return not token.isdigit()


# ---------------------------------------------------------------------------
# Rewrite validation
# ---------------------------------------------------------------------------

class DriftValidator:
    """Decides whether an AI rewrite drifted away from the source language."""

    def is_drifted(self, source: str, output: str) -> bool:
        raise NotImplementedError


class VocabularyDriftValidator(DriftValidator):
    """
    Flags a rewrite when too many of its tokens come from the source
    profile's drift vocabulary.

    This is an approximation tuned for Vietnamese/English pairs. A false
    negative only means an accidental translation slips through, so swap in
    a stronger validator where that matters.
    """

    def __init__(self, threshold: float = 0.2):
        self.threshold = threshold

    def drift_ratio(self, source: str, output: str) -> float:
        profile = detect_language(source)
        tokens = [token.lower() for token in WORD_RE.findall(output)]
        if not tokens:
            return 0.0
        hits = sum(1 for token in tokens if token in profile.drift_words)
        return hits / len(tokens)

    def is_drifted(self, source: str, output: str) -> bool:
        return self.drift_ratio(source, output) > self.threshold
