"""
Embedding generation with payload-size splitting and a placeholder fallback.
"""

import logging
import random
import re
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional

from . import config
from .exceptions import DependencyUnavailable
from .fallback import ResilientExecutor
from .rules import SENTENCE_END_RE

logger = logging.getLogger(__name__)

RETRIEVAL_DOCUMENT = "retrieval_document"
RETRIEVAL_QUERY = "retrieval_query"

# Paragraph, then sentence, then word boundaries
_SPLIT_LEVELS = [
    (re.compile(r"\n\s*\n"), "\n\n"),
    (SENTENCE_END_RE, " "),
    (re.compile(r"\s+"), " "),
]


def average_vectors(vectors: List[List[float]]) -> List[float]:
    """Element-wise mean of equally sized vectors."""
    if not vectors:
        return []
    size = len(vectors[0])
    if any(len(vector) != size for vector in vectors):
        raise ValueError("Cannot average embeddings of different dimensionality")
    count = len(vectors)
    return [sum(column) / count for column in zip(*vectors)]


class OversizedTextSplitter:
    """
    Keeps embedding requests under the provider's payload ceiling.

    Text over ``limit`` characters is split at paragraph boundaries, then
    sentence boundaries, then between words. Pieces are packed greedily up
    to the limit. Each piece is embedded on its own and the piece vectors
    are averaged with equal weight.
    """

    def __init__(
        self,
        limit: int = config.EMBEDDING_MAX_CHARS,
        embed_fn: Optional[Callable[[str], List[float]]] = None,
        max_workers: int = config.EMBEDDING_MAX_WORKERS,
    ):
        if limit < 1:
            raise ValueError(f"limit must be positive, got {limit}")
        self.limit = limit
        self.embed_fn = embed_fn
        self.max_workers = max_workers

    def split(self, text: str) -> List[str]:
        """
        Split ``text`` into pieces no longer than the limit.

        Words are never split unless a single word is longer than the limit.
        """
        if not text.strip():
            return []
        if len(text) <= self.limit:
            return [text]
        return self._split_level(text, 0)

    def embed(self, text: str) -> List[float]:
        """
        Embed ``text``, splitting and averaging when it exceeds the limit.

        Args:
            text: Text to embed

        Returns:
            One vector for the whole text
        """
        if self.embed_fn is None:
            raise ValueError("OversizedTextSplitter.embed requires an embed_fn")

        if len(text) <= self.limit:
            return self.embed_fn(text)

        pieces = self.split(text)
        logger.info(f"Text is too large ({len(text)} chars), embedding {len(pieces)} pieces")
        if len(pieces) == 1:
            return self.embed_fn(pieces[0])

        with ThreadPoolExecutor(max_workers=max(1, min(self.max_workers, len(pieces)))) as pool:
            vectors = list(pool.map(self.embed_fn, pieces))
        return average_vectors(vectors)

    def _split_level(self, text: str, level: int) -> List[str]:
        if len(text) <= self.limit:
            return [text]
        if level >= len(_SPLIT_LEVELS):
            logger.warning(f"Hard-slicing a {len(text)}-char token that exceeds the embedding limit")
            return [text[i:i + self.limit] for i in range(0, len(text), self.limit)]

        pattern, joiner = _SPLIT_LEVELS[level]
        parts = [part.strip() for part in pattern.split(text) if part and part.strip()]

        pieces: List[str] = []
        current = ""
        for part in parts:
            if len(part) > self.limit:
                if current:
                    pieces.append(current)
                    current = ""
                pieces.extend(self._split_level(part, level + 1))
            elif not current:
                current = part
            elif len(current) + len(joiner) + len(part) <= self.limit:
                current = current + joiner + part
            else:
                pieces.append(current)
                current = part
        if current:
            pieces.append(current)
        return pieces


class EmbeddingService:
    """
    Embedding collaborator backed by Gemini or OpenAI.

    Every call goes through a ResilientExecutor; when the provider is down
    the service returns a random placeholder vector of the configured size
    so ingestion can finish.
    """

    def __init__(
        self,
        model_name: str = config.EMBEDDING_MODEL,
        api_key: Optional[str] = None,
        vector_size: int = config.VECTOR_SIZE,
        max_chars: int = config.EMBEDDING_MAX_CHARS,
        max_workers: int = config.EMBEDDING_MAX_WORKERS,
        executor: Optional[ResilientExecutor] = None,
    ):
        """
        Initialize the embedding service.

        Args:
            model_name: ``text-embedding-*`` models use OpenAI, anything else Gemini
            api_key: API key for the provider
            vector_size: Dimensionality of the index and of placeholder vectors
            max_chars: Payload ceiling per provider call
            max_workers: Parallel provider calls
            executor: Resilience wrapper (defaults to one named "Embedding")
        """
        self.model_name = model_name
        self.is_openai = model_name.startswith("text-embedding-")
        self.api_key = api_key or (config.OPENAI_API_KEY if self.is_openai else config.GEMINI_API_KEY)
        self.vector_size = vector_size
        self.max_workers = max_workers
        self.executor = executor or ResilientExecutor("Embedding")
        self.max_chars = max_chars
        self.client = None

    def embed(self, text: str, task_type: str = RETRIEVAL_DOCUMENT) -> List[float]:
        """Embed one text. Never raises because the provider is unavailable."""
        return self.executor.run(
            "generateVector",
            self.placeholder_vector,
            lambda: self._embed_text(text, task_type),
        )

    def embed_many(self, texts: List[str], task_type: str = RETRIEVAL_DOCUMENT) -> List[List[float]]:
        """Embed several independent texts concurrently, preserving order."""
        if not texts:
            return []
        with ThreadPoolExecutor(max_workers=max(1, min(self.max_workers, len(texts)))) as pool:
            return list(pool.map(lambda text: self.embed(text, task_type), texts))

    def placeholder_vector(self) -> List[float]:
        logger.debug(f"Generated placeholder embedding of size {self.vector_size}")
        return [random.random() - 0.5 for _ in range(self.vector_size)]

    def _embed_text(self, text: str, task_type: str) -> List[float]:
        splitter = OversizedTextSplitter(
            limit=self.max_chars,
            embed_fn=lambda piece: self._embed_piece(piece, task_type),
            max_workers=self.max_workers,
        )
        vector = splitter.embed(text)
        if len(vector) != self.vector_size:
            logger.warning(f"Embedding size {len(vector)} does not match VECTOR_SIZE={self.vector_size}")
        return vector

    def _embed_piece(self, text: str, task_type: str) -> List[float]:
        if not self.api_key:
            raise DependencyUnavailable("Embedding", f"no API key configured for {self.model_name}")
        if self.client is None:
            self._init_client()
        if self.is_openai:
            return self._get_openai_embedding(text)
        return self._get_gemini_embedding(text, task_type)

    def _init_client(self):
        """Initialize the provider client based on model name."""
        if self.is_openai:
            try:
                from openai import OpenAI

                self.client = OpenAI(api_key=self.api_key)
            except ImportError:
                raise ImportError(
                    "openai package not installed. "
                    "Install it with: pip install openai"
                )
        else:
            try:
                import google.generativeai as genai

                genai.configure(api_key=self.api_key)
                self.client = genai
            except ImportError:
                raise ImportError(
                    "google-generativeai package not installed. "
                    "Install it with: pip install google-generativeai"
                )
        logger.info(f"Initialized embedding client with model: {self.model_name}")

    def _get_gemini_embedding(self, text: str, task_type: str) -> List[float]:
        try:
            result = self.client.embed_content(
                model=self.model_name,
                content=text,
                task_type=task_type,
            )
            return list(result["embedding"])
        except Exception as e:
            logger.error(f"Error getting Gemini embedding: {str(e)}")
            raise

    def _get_openai_embedding(self, text: str) -> List[float]:
        try:
            response = self.client.embeddings.create(model=self.model_name, input=[text])
            return list(response.data[0].embedding)
        except Exception as e:
            logger.error(f"Error getting OpenAI embeddings: {str(e)}")
            raise
