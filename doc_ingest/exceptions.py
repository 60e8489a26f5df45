"""
Error taxonomy for the ingestion pipeline.
"""

from typing import Optional


class DocIngestError(Exception):
    """Base class for all pipeline errors."""


class ParseFailure(DocIngestError):
    """A source document could not be read. Fatal for that document."""

    def __init__(self, source: str, reason: str):
        super().__init__(f"Failed to parse {source}: {reason}")
        self.source = source
        self.reason = reason


class DependencyUnavailable(DocIngestError):
    """An external dependency (vector store, embedding, generation) is unreachable."""

    def __init__(self, service: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{service} unavailable: {message}")
        self.service = service
        self.status_code = status_code


class AIRewriteRejected(DocIngestError):
    """
    An AI rewrite of a page boundary was not accepted.

    Only dependency failures (timeouts and errors) count toward the circuit
    breaker; content-quality rejections do not.
    """

    BREAKER_REASONS = ("timeout", "error")

    def __init__(self, reason: str, detail: str = ""):
        super().__init__(f"AI rewrite rejected ({reason}){': ' + detail if detail else ''}")
        self.reason = reason
        self.detail = detail

    @property
    def counts_toward_breaker(self) -> bool:
        return self.reason in self.BREAKER_REASONS
