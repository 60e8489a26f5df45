"""
Titles, summaries and content enhancement through the text generation client.

All calls degrade to defaults when generation is unavailable.
"""

import logging
import re
from enum import Enum
from typing import Iterable, Optional, Tuple

from .fallback import ResilientExecutor
from .llm_client import TextGenerationClient, require_client
from .rules import VIETNAMESE, DriftValidator, VocabularyDriftValidator, detect_language

logger = logging.getLogger(__name__)

CONTENT_SAMPLE_CHARS = 8000
TRANSCRIPT_SAMPLE_CHARS = 1500


class EnhancementType(str, Enum):
    FORMATTING = "formatting"
    EXPLANATION = "explanation"
    CONTEXT = "context"
    READABILITY = "readability"
    STRUCTURE = "structure"
    COMPLETE = "complete"


DEFAULT_ENHANCEMENTS = (EnhancementType.FORMATTING, EnhancementType.READABILITY)

_ENHANCEMENT_INSTRUCTIONS = {
    EnhancementType.FORMATTING: "Fix formatting issues while maintaining the original structure. Only fix inconsistent spacing where necessary. DO NOT add new bullet points or decorative formatting.",
    EnhancementType.EXPLANATION: "Add brief explanations to technical terms or complex concepts in parentheses.",
    EnhancementType.CONTEXT: "Add relevant contextual information to improve understanding where necessary.",
    EnhancementType.READABILITY: "Improve readability without changing meaning (fix awkward phrasing, run-on sentences) while preserving the original text structure.",
    EnhancementType.STRUCTURE: "Improve the structure only by fixing issues with existing headings and paragraphs. DO NOT add new bullet points, asterisks, or reorganize content if not already organized that way.",
    EnhancementType.COMPLETE: "Apply improvements while preserving the original meaning and formatting structure.",
}


def _sample(content: str, limit: int) -> str:
    return content[:limit] + "..." if len(content) > limit else content


def language_name(text: str) -> str:
    return "Vietnamese" if detect_language(text) is VIETNAMESE else "English"


class ContentEnhancer:
    """
    Generates chunk titles and summaries and optionally rewrites chunk
    content for readability.
    """

    def __init__(
        self,
        text_client: Optional[TextGenerationClient] = None,
        executor: Optional[ResilientExecutor] = None,
        drift_validator: Optional[DriftValidator] = None,
    ):
        self.text_client = text_client
        self.executor = executor or ResilientExecutor("TextGeneration")
        self.drift_validator = drift_validator or VocabularyDriftValidator()

    def generate_title(self, content: str) -> str:
        """Concise title of at most 8 words, or "" when generation is unavailable."""
        prompt = (
            "Create a concise, descriptive title (max 8 words) for this text without any prefixes "
            f"or additional explanations. Just respond with the title itself:\n\n{_sample(content, CONTENT_SAMPLE_CHARS)}"
        )
        title = self.executor.run(
            "generateTitle",
            lambda: "",
            lambda: require_client(self.text_client).generate(prompt, temperature=0.2, max_tokens=30),
        )
        return title.strip().strip('"').strip()

    def generate_summary(self, content: str) -> str:
        """Two to three sentence summary, or "" when generation is unavailable."""
        prompt = (
            "Write a brief summary (2-3 sentences) of the key points in this text. "
            f"Be concise and factual:\n\n{_sample(content, CONTENT_SAMPLE_CHARS)}"
        )
        summary = self.executor.run(
            "generateSummary",
            lambda: "",
            lambda: require_client(self.text_client).generate(prompt, temperature=0.2, max_tokens=100),
        )
        return summary.strip()

    def generate_title_and_summary(
        self,
        content: str,
        default_title: str,
        default_summary: str,
    ) -> Tuple[str, str]:
        """
        Title and summary from a single call, for transcript segments.

        Falls back to the given defaults for any part the model does not return.
        """
        prompt = f"""Generate a concise title (max 10 words) and a brief summary (2-3 sentences) for this transcript segment.
Respond in the same language as the transcript, in exactly this format:
TITLE: <title>
SUMMARY: <summary>

Transcript segment:
{_sample(content, TRANSCRIPT_SAMPLE_CHARS)}"""

        response = self.executor.run(
            "generateMetadata",
            lambda: "",
            lambda: require_client(self.text_client).generate(prompt, temperature=0.2, max_tokens=200),
        )
        title_match = re.search(r"TITLE:\s*(.+)", response)
        summary_match = re.search(r"SUMMARY:\s*([\s\S]+)", response)
        title = title_match.group(1).strip() if title_match else ""
        summary = summary_match.group(1).strip() if summary_match else ""
        return title or default_title, summary or default_summary

    def enhance(
        self,
        content: str,
        types: Iterable[EnhancementType] = DEFAULT_ENHANCEMENTS,
        domain: Optional[str] = None,
    ) -> Optional[str]:
        """
        Rewrite ``content`` for readability in its own language.

        Returns:
            Enhanced text, or None when generation is unavailable or the
            result was translated
        """
        if not content.strip():
            return None

        language = language_name(content)
        instructions = [
            f"IMPORTANT: The text is in {language}. Your response MUST be in {language} as well. Do not translate to any other language.",
            "CRITICAL: Preserve the original text structure. DO NOT add bullet points, asterisks (*), or any additional formatting if not in the original text.",
            "CRITICAL: DO NOT reorganize content into lists or add numbering if they weren't in the original text.",
        ]
        instructions.extend(_ENHANCEMENT_INSTRUCTIONS[EnhancementType(t)] for t in types)
        prompt = "Enhance the following content according to these specific instructions:\n\n"
        if domain:
            prompt += f"This content is about {domain}.\n"
        prompt += "\n".join(f"- {line}" for line in instructions)
        prompt += (
            f"\n\nCONTENT:\n{content}\n\nReturn ONLY the enhanced content in {language}, "
            "with no additional explanations or commentary. PRESERVE THE ORIGINAL TEXT STRUCTURE."
        )

        enhanced = self.executor.run(
            "enhanceContent",
            lambda: "",
            lambda: require_client(self.text_client).generate(prompt, temperature=0.2, max_tokens=8000),
        ).strip()
        if not enhanced:
            return None
        if self.drift_validator.is_drifted(content, enhanced):
            logger.warning("Discarding enhanced content that appears to be translated")
            return None
        return enhanced
