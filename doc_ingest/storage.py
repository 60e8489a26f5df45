"""
Vector database storage module for chunk storage and retrieval.
"""

import logging
import math
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from .config import VECTOR_DB_CONFIG, VECTOR_DB_TYPE, VECTOR_SIZE
from .fallback import ResilientExecutor
from .models import DocumentChunk

logger = logging.getLogger(__name__)

# Filter keys accepted by every store, mapped to payload field names
FILTER_FIELDS = {
    "id": "id",
    "document_name": "documentName",
    "source_file": "sourceFile",
    "domains": "domains",
}


class VectorDB(ABC):
    """
    Abstract base class for vector database integration.

    This defines the interface for storing and retrieving chunks in a vector database.
    Filters are dicts over ``id``, ``document_name``, ``source_file``,
    ``domains`` (any-of) and ``id_prefix``.
    """

    @classmethod
    def create(cls, db_type: str, config: Dict[str, Any]) -> 'VectorDB':
        """
        Factory method to create a VectorDB instance.

        Args:
            db_type: Type of vector database ('elasticsearch' or 'memory')
            config: Configuration parameters for the database

        Returns:
            VectorDB instance
        """
        if db_type.lower() == 'elasticsearch':
            return ElasticsearchDB(config)
        elif db_type.lower() == 'memory':
            return InMemoryVectorStore()
        else:
            raise ValueError(f"Unsupported vector database type: {db_type}")

    @abstractmethod
    def initialize(self) -> None:
        """Create the collection/index if it does not exist."""

    @abstractmethod
    def upsert(self, chunks: List[DocumentChunk]) -> int:
        """
        Insert or replace chunks, keyed by chunk id.

        Returns:
            Number of chunks written
        """

    @abstractmethod
    def search(
        self,
        vector: List[float],
        limit: int = 5,
        filter_criteria: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """
        Search for the chunks closest to ``vector`` by cosine similarity.

        Returns:
            Payloads ranked by descending ``score``
        """

    @abstractmethod
    def delete_by_filter(self, filter_criteria: Dict[str, Any]) -> int:
        """Delete matching chunks and return how many were removed."""

    @abstractmethod
    def count_by_filter(self, filter_criteria: Optional[Dict[str, Any]] = None) -> int:
        """Count matching chunks."""

    @abstractmethod
    def scroll(
        self,
        filter_criteria: Optional[Dict[str, Any]] = None,
        page_size: int = 100,
        offset: int = 0,
    ) -> Tuple[List[Dict[str, Any]], Optional[int]]:
        """
        Page through matching chunks in id order.

        Returns:
            (payloads, offset of the next page or None when exhausted)
        """

    def exists(self, filter_criteria: Dict[str, Any]) -> bool:
        return self.count_by_filter(filter_criteria) > 0


def cosine_similarity(a: List[float], b: List[float]) -> float:
    if len(a) != len(b):
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


def matches_filter(payload: Dict[str, Any], filter_criteria: Optional[Dict[str, Any]]) -> bool:
    """Evaluate a store filter against a payload in memory."""
    for key, value in (filter_criteria or {}).items():
        if key == "id_prefix":
            if not str(payload.get("id", "")).startswith(value):
                return False
            continue
        field = FILTER_FIELDS.get(key)
        if field is None:
            raise ValueError(f"Unsupported filter field: {key}")
        if field == "domains":
            wanted = [value] if isinstance(value, str) else list(value)
            if not set(wanted) & set(payload.get("domains", [])):
                return False
        elif payload.get(field) != value:
            return False
    return True


class InMemoryVectorStore(VectorDB):
    """
    Vector store held in process memory.

    Used as the fallback behind Elasticsearch and in tests. Each instance
    owns its data; pass the same instance around to share it.
    """

    def __init__(self):
        self._points: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def initialize(self) -> None:
        logger.debug("In-memory vector store ready")

    def upsert(self, chunks: List[DocumentChunk]) -> int:
        with self._lock:
            for chunk in chunks:
                self._points[chunk.id] = {
                    "payload": chunk.to_payload(),
                    "embedding": list(chunk.embedding),
                }
        logger.info(f"Stored {len(chunks)} chunks in memory")
        return len(chunks)

    def search(
        self,
        vector: List[float],
        limit: int = 5,
        filter_criteria: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        with self._lock:
            points = list(self._points.values())
        scored = []
        for point in points:
            if not matches_filter(point["payload"], filter_criteria):
                continue
            result = dict(point["payload"])
            result["score"] = cosine_similarity(vector, point["embedding"])
            scored.append(result)
        scored.sort(key=lambda item: item["score"], reverse=True)
        return scored[:limit]

    def delete_by_filter(self, filter_criteria: Dict[str, Any]) -> int:
        with self._lock:
            doomed = [pid for pid, point in self._points.items() if matches_filter(point["payload"], filter_criteria)]
            for pid in doomed:
                del self._points[pid]
        return len(doomed)

    def count_by_filter(self, filter_criteria: Optional[Dict[str, Any]] = None) -> int:
        with self._lock:
            return sum(1 for point in self._points.values() if matches_filter(point["payload"], filter_criteria))

    def scroll(
        self,
        filter_criteria: Optional[Dict[str, Any]] = None,
        page_size: int = 100,
        offset: int = 0,
    ) -> Tuple[List[Dict[str, Any]], Optional[int]]:
        with self._lock:
            payloads = sorted(
                (dict(point["payload"]) for point in self._points.values()
                 if matches_filter(point["payload"], filter_criteria)),
                key=lambda payload: payload["id"],
            )
        page = payloads[offset:offset + page_size]
        next_offset = offset + len(page) if offset + len(page) < len(payloads) else None
        return page, next_offset

    def get(self, chunk_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            point = self._points.get(chunk_id)
            return dict(point["payload"]) if point else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._points)


class ElasticsearchDB(VectorDB):
    """
    Elasticsearch implementation of the VectorDB interface.

    This class handles:
    1. Connection to Elasticsearch
    2. Creating and managing indices
    3. Storing chunks with their embeddings
    4. Searching for chunks using vector similarity
    """

    def __init__(self, config: Dict[str, Any], vector_size: int = VECTOR_SIZE):
        """
        Initialize the Elasticsearch client.

        Args:
            config: Configuration parameters for Elasticsearch
                host: Elasticsearch host, including scheme
                port: Elasticsearch port
                username: Elasticsearch username (optional)
                password: Elasticsearch password (optional)
                index: Elasticsearch index name
            vector_size: Dimensionality of the embedding field
        """
        self.config = config
        self.index_name = config.get('index', 'knowledge_base')
        self.vector_size = vector_size
        self._index_ready = False
        self._init_client()

    def _init_client(self):
        """Initialize the Elasticsearch client."""
        try:
            from elasticsearch import Elasticsearch

            url = f"{self.config['host']}:{self.config['port']}"
            # Create client with authentication if provided
            if self.config.get('username') and self.config.get('password'):
                self.client = Elasticsearch(
                    [url],
                    basic_auth=(self.config['username'], self.config['password'])
                )
            else:
                self.client = Elasticsearch([url])

            logger.info(f"Configured Elasticsearch client for {url}")

        except ImportError:
            raise ImportError(
                "elasticsearch package not installed. "
                "Install it with: pip install elasticsearch"
            )

    def initialize(self) -> None:
        """Initialize the Elasticsearch index if it doesn't exist."""
        try:
            if not self.client.indices.exists(index=self.index_name):
                # Create index with appropriate mappings for vector search
                mappings = {
                    "properties": {
                        "id": {"type": "keyword"},
                        "documentName": {"type": "keyword"},
                        "content": {"type": "text"},
                        "title": {"type": "text"},
                        "summary": {"type": "text"},
                        "sourceFile": {"type": "keyword"},
                        "domains": {"type": "keyword"},
                        "pageNumber": {"type": "integer"},
                        "enhancedContent": {"type": "text"},
                        "embedding": {
                            "type": "dense_vector",
                            "dims": self.vector_size,
                            "index": True,
                            "similarity": "cosine"
                        }
                    }
                }

                self.client.indices.create(
                    index=self.index_name,
                    mappings=mappings
                )

                logger.info(f"Created Elasticsearch index: {self.index_name}")
            self._index_ready = True

        except Exception as e:
            logger.error(f"Error creating Elasticsearch index: {str(e)}")
            raise

    def _ensure_index(self):
        if not self._index_ready:
            self.initialize()

    def upsert(self, chunks: List[DocumentChunk]) -> int:
        """
        Index chunks with their embeddings in one bulk request.

        Args:
            chunks: Chunks to index, keyed by chunk id

        Returns:
            Number of chunks indexed
        """
        self._ensure_index()
        try:
            # Prepare documents for bulk indexing
            bulk_data = []
            for chunk in chunks:
                document = chunk.to_payload()
                document["embedding"] = list(chunk.embedding)
                bulk_data.append({"index": {"_index": self.index_name, "_id": chunk.id}})
                bulk_data.append(document)

            if not bulk_data:
                return 0

            response = self.client.bulk(operations=bulk_data, refresh=True)
            if response.get("errors"):
                failed = [item for item in response["items"] if item.get("index", {}).get("error")]
                raise RuntimeError(f"{len(failed)} chunks failed to index: {failed[0]['index']['error']}")

            logger.info(f"Ingested {len(chunks)} chunks into Elasticsearch")
            return len(chunks)

        except Exception as e:
            logger.error(f"Error ingesting chunks into Elasticsearch: {str(e)}")
            raise

    def search(
        self,
        vector: List[float],
        limit: int = 5,
        filter_criteria: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """
        Search for relevant chunks in Elasticsearch using vector similarity.

        Args:
            vector: Query embedding
            limit: Number of results to return
            filter_criteria: Additional filter criteria

        Returns:
            List of relevant chunks with metadata
        """
        self._ensure_index()
        try:
            query = {
                "script_score": {
                    "query": self._build_filter(filter_criteria),
                    "script": {
                        "source": "cosineSimilarity(params.query_vector, 'embedding') + 1.0",
                        "params": {"query_vector": vector}
                    }
                }
            }

            response = self.client.search(
                index=self.index_name,
                query=query,
                size=limit,
                source_excludes=["embedding"],
            )

            # Extract results
            results = []
            for hit in response["hits"]["hits"]:
                source = hit["_source"]
                # Undo the +1.0 shift that keeps script scores non-negative
                source["score"] = hit["_score"] - 1.0
                results.append(source)

            logger.info(f"Found {len(results)} results")
            return results

        except Exception as e:
            logger.error(f"Error searching Elasticsearch: {str(e)}")
            raise

    def delete_by_filter(self, filter_criteria: Dict[str, Any]) -> int:
        self._ensure_index()
        try:
            response = self.client.delete_by_query(
                index=self.index_name,
                query=self._build_filter(filter_criteria),
                refresh=True,
            )
            deleted = response.get("deleted", 0)
            logger.info(f"Deleted {deleted} chunks from Elasticsearch")
            return deleted
        except Exception as e:
            logger.error(f"Error deleting chunks from Elasticsearch: {str(e)}")
            raise

    def count_by_filter(self, filter_criteria: Optional[Dict[str, Any]] = None) -> int:
        self._ensure_index()
        try:
            response = self.client.count(index=self.index_name, query=self._build_filter(filter_criteria))
            return response["count"]
        except Exception as e:
            logger.error(f"Error counting chunks in Elasticsearch: {str(e)}")
            raise

    def scroll(
        self,
        filter_criteria: Optional[Dict[str, Any]] = None,
        page_size: int = 100,
        offset: int = 0,
    ) -> Tuple[List[Dict[str, Any]], Optional[int]]:
        self._ensure_index()
        try:
            response = self.client.search(
                index=self.index_name,
                query=self._build_filter(filter_criteria),
                size=page_size,
                from_=offset,
                sort=[{"id": "asc"}],
                source_excludes=["embedding"],
                track_total_hits=True,
            )
            hits = response["hits"]["hits"]
            total = response["hits"]["total"]["value"]
            results = [hit["_source"] for hit in hits]
            next_offset = offset + len(results) if offset + len(results) < total else None
            return results, next_offset
        except Exception as e:
            logger.error(f"Error scrolling Elasticsearch: {str(e)}")
            raise

    def _build_filter(self, filter_criteria: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Build Elasticsearch filter from filter criteria.

        Args:
            filter_criteria: Filter criteria

        Returns:
            Elasticsearch query
        """
        if not filter_criteria:
            return {"match_all": {}}

        filters = []
        for key, value in filter_criteria.items():
            if key == "id_prefix":
                filters.append({"prefix": {"id": value}})
                continue
            field = FILTER_FIELDS.get(key)
            if field is None:
                raise ValueError(f"Unsupported filter field: {key}")
            if field == "domains":
                # Any-of match on domain tags
                filters.append({"terms": {field: [value] if isinstance(value, str) else list(value)}})
            else:
                filters.append({"term": {field: value}})

        return {"bool": {"filter": filters}}


class ResilientVectorStore(VectorDB):
    """
    Routes every store call through a ResilientExecutor, using an in-memory
    store as the fallback when the primary is unreachable.
    """

    def __init__(
        self,
        primary: VectorDB,
        fallback: Optional[InMemoryVectorStore] = None,
        executor: Optional[ResilientExecutor] = None,
    ):
        self.primary = primary
        self.fallback = fallback if fallback is not None else InMemoryVectorStore()
        self.executor = executor or ResilientExecutor("Elasticsearch")

    def initialize(self) -> None:
        self.executor.run("initialize", self.fallback.initialize, self.primary.initialize)

    def upsert(self, chunks: List[DocumentChunk]) -> int:
        return self.executor.run(
            "upsert",
            lambda: self.fallback.upsert(chunks),
            lambda: self.primary.upsert(chunks),
        )

    def search(
        self,
        vector: List[float],
        limit: int = 5,
        filter_criteria: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        return self.executor.run(
            "search",
            lambda: self.fallback.search(vector, limit, filter_criteria),
            lambda: self.primary.search(vector, limit, filter_criteria),
        )

    def delete_by_filter(self, filter_criteria: Dict[str, Any]) -> int:
        return self.executor.run(
            "delete",
            lambda: self.fallback.delete_by_filter(filter_criteria),
            lambda: self.primary.delete_by_filter(filter_criteria),
        )

    def count_by_filter(self, filter_criteria: Optional[Dict[str, Any]] = None) -> int:
        return self.executor.run(
            "count",
            lambda: self.fallback.count_by_filter(filter_criteria),
            lambda: self.primary.count_by_filter(filter_criteria),
        )

    def scroll(
        self,
        filter_criteria: Optional[Dict[str, Any]] = None,
        page_size: int = 100,
        offset: int = 0,
    ) -> Tuple[List[Dict[str, Any]], Optional[int]]:
        return self.executor.run(
            "scroll",
            lambda: self.fallback.scroll(filter_criteria, page_size, offset),
            lambda: self.primary.scroll(filter_criteria, page_size, offset),
        )


def create_vector_store(
    db_type: str = VECTOR_DB_TYPE,
    db_config: Optional[Dict[str, Any]] = None,
    fallback: Optional[InMemoryVectorStore] = None,
) -> VectorDB:
    """
    Build the configured store, wrapped with an in-memory fallback.

    A ``memory`` store needs no fallback and is returned as is.
    """
    if db_type.lower() == "memory":
        return fallback if fallback is not None else InMemoryVectorStore()
    primary = VectorDB.create(db_type, db_config or VECTOR_DB_CONFIG)
    return ResilientVectorStore(primary, fallback=fallback)
