"""
Primary/fallback execution for unreliable external dependencies.

Every call to the vector store, the embedding service or the text generator
goes through a ``ResilientExecutor``. When the primary fails the executor
answers with a deterministic fallback and keeps answering with it until the
retry interval elapses, at which point the primary is tried again.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple, TypeVar

from . import config
from .exceptions import DependencyUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")

REMEDIATION_HINTS = {
    "Elasticsearch": (
        "Ensure Elasticsearch is running at the configured VECTOR_DB_HOST/VECTOR_DB_PORT "
        "with proper credentials. You can start one with Docker: "
        "docker run -p 9200:9200 -e discovery.type=single-node -e xpack.security.enabled=false "
        "docker.elastic.co/elasticsearch/elasticsearch:8.13.4"
    ),
    "Embedding": "Check your embedding service configuration (EMBEDDING_MODEL, GEMINI_API_KEY/OPENAI_API_KEY) and connectivity.",
    "TextGeneration": "Check GENERATION_MODEL and GEMINI_API_KEY/OPENAI_API_KEY.",
}


@dataclass
class FallbackState:
    """Failure bookkeeping for one (service, operation) pair."""

    warned: bool = False
    last_failure_at: Optional[float] = None
    using_fallback: bool = False


class FallbackRegistry:
    """
    Process-wide store of FallbackState, keyed by (service, operation).

    Guarded by a lock because pages fan out embedding calls on worker threads.
    """

    def __init__(self):
        self._states: Dict[Tuple[str, str], FallbackState] = {}
        self._lock = threading.Lock()

    def get(self, service: str, operation: str) -> Optional[FallbackState]:
        with self._lock:
            state = self._states.get((service, operation))
            return FallbackState(**vars(state)) if state else None

    def record_failure(self, service: str, operation: str, now: float) -> bool:
        """
        Record a failure and return True if this is the first one to warn about.
        """
        with self._lock:
            state = self._states.setdefault((service, operation), FallbackState())
            first = not state.warned
            state.warned = True
            state.using_fallback = True
            state.last_failure_at = now
            return first

    def should_try_primary(self, service: str, operation: str, now: float, interval: float) -> bool:
        """Check, and optimistically reset, the fallback flag for a key."""
        with self._lock:
            state = self._states.get((service, operation))
            if state is None or not state.using_fallback:
                return True
            if state.last_failure_at is None or now - state.last_failure_at >= interval:
                state.using_fallback = False
                return True
            return False

    def clear(self, service: str, operation: str) -> bool:
        """Drop state for a key. Returns True if the key was in fallback mode."""
        with self._lock:
            state = self._states.pop((service, operation), None)
            return bool(state and state.using_fallback)

    def reset_warning(self, service: str, operation: str) -> None:
        with self._lock:
            state = self._states.get((service, operation))
            if state:
                state.warned = False

    def force_retry(self, service: str, operation: Optional[str] = None) -> None:
        with self._lock:
            for (svc, op), state in self._states.items():
                if svc == service and (operation is None or op == operation):
                    state.using_fallback = False

    def is_active(self, service: str, operation: Optional[str] = None) -> bool:
        with self._lock:
            return any(
                state.using_fallback
                for (svc, op), state in self._states.items()
                if svc == service and (operation is None or op == operation)
            )

    def reset(self) -> None:
        with self._lock:
            self._states.clear()


default_registry = FallbackRegistry()


def classify_failure(error: BaseException) -> str:
    """
    Classify a dependency error for logging.

    Returns one of ``connection_refused``, ``client_error``, ``server_error``,
    ``connection_error`` or ``unexpected``. The classification never changes
    behavior; every failure routes to the fallback.
    """
    current = error
    # Walk the cause chain; SDKs usually wrap the socket error
    for _ in range(5):
        if current is None:
            break
        if isinstance(current, ConnectionRefusedError) or getattr(current, "errno", None) == 111:
            return "connection_refused"
        status = _status_code(current)
        if status is not None:
            if 400 <= status < 500:
                return "client_error"
            if status >= 500:
                return "server_error"
        if isinstance(current, (ConnectionError, TimeoutError)) or "Connection" in type(current).__name__:
            return "connection_error"
        current = current.__cause__ or current.__context__
    return "unexpected"


def _status_code(error: BaseException) -> Optional[int]:
    for attr in ("status_code", "status", "code"):
        value = getattr(error, attr, None)
        if isinstance(value, int) and 100 <= value < 600:
            return value
    meta = getattr(error, "meta", None)
    status = getattr(meta, "status", None)
    if isinstance(status, int):
        return status
    return None


class ResilientExecutor:
    """
    Run a primary operation with a deterministic fallback.

    ``run`` never raises because a dependency is unavailable: it degrades to
    ``fallback_fn`` instead. Errors raised by ``fallback_fn`` itself do
    propagate.
    """

    def __init__(
        self,
        service_name: str,
        retry_interval: float = config.FALLBACK_RETRY_INTERVAL,
        registry: Optional[FallbackRegistry] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            service_name: Dependency name used for state keys and log messages
            retry_interval: Seconds to stay on the fallback before retrying the primary
            registry: State registry (defaults to the process-wide one)
            clock: Monotonic time source, injectable for tests
        """
        self.service_name = service_name
        self.retry_interval = retry_interval
        self.registry = registry if registry is not None else default_registry
        self.clock = clock

    def run(self, operation: str, fallback_fn: Callable[[], T], primary_fn: Callable[[], T]) -> T:
        """
        Execute ``primary_fn`` unless the operation is in fallback mode.

        Args:
            operation: Operation name, e.g. ``upsert`` or ``generateVector``
            fallback_fn: Side-effect-safe substitute, called on failure
            primary_fn: Call against the real dependency

        Returns:
            Result of the primary, or of the fallback when the primary is down
        """
        now = self.clock()
        if not self.registry.should_try_primary(self.service_name, operation, now, self.retry_interval):
            logger.debug(f"{self.service_name} in fallback mode for {operation}, skipping primary")
            return fallback_fn()

        try:
            result = primary_fn()
        except Exception as e:
            self._handle_failure(operation, e)
            return fallback_fn()

        if self.registry.clear(self.service_name, operation):
            logger.info(f"{self.service_name} recovered during {operation}; leaving fallback mode")
        return result

    def _handle_failure(self, operation: str, error: Exception) -> None:
        first = self.registry.record_failure(self.service_name, operation, self.clock())
        kind = classify_failure(error)
        if first:
            logger.warning(f"{self.service_name} unavailable during {operation} ({kind}): {error}. Using fallback.")
            hint = REMEDIATION_HINTS.get(self.service_name)
            if hint:
                logger.warning(hint)
            if kind == "unexpected" and not isinstance(error, DependencyUnavailable):
                logger.error(f"Unexpected error in {self.service_name} during {operation}", exc_info=error)
        else:
            logger.debug(f"{self.service_name} still unavailable during {operation} ({kind}). Using fallback.")

    def is_fallback_active(self, operation: Optional[str] = None) -> bool:
        return self.registry.is_active(self.service_name, operation)

    def force_retry_primary(self, operation: Optional[str] = None) -> None:
        """Make the next call try the primary regardless of the retry interval."""
        self.registry.force_retry(self.service_name, operation)

    def set_retry_interval(self, seconds: float) -> None:
        if seconds < 0:
            raise ValueError("retry interval must be non-negative")
        self.retry_interval = seconds

    def reset_warning(self, operation: str) -> None:
        """Allow the next failure of ``operation`` to warn loudly again."""
        self.registry.reset_warning(self.service_name, operation)
