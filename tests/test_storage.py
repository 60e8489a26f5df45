"""
Tests for the vector store implementations.
"""

import sys
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

# Add the project root to the Python path
sys.path.append(str(Path(__file__).parent.parent))

from doc_ingest.fallback import FallbackRegistry, ResilientExecutor
from doc_ingest.models import DocumentChunk
from doc_ingest.storage import (
    ElasticsearchDB,
    InMemoryVectorStore,
    ResilientVectorStore,
    VectorDB,
    cosine_similarity,
    create_vector_store,
)


def make_chunk(chunk_id: str, embedding, document_name: str = "report", domains=None) -> DocumentChunk:
    return DocumentChunk(
        id=chunk_id,
        document_name=document_name,
        content=f"content of {chunk_id}",
        source_file=f"/docs/{document_name}.pdf",
        domains=domains or ["finance"],
        page_number=1,
        embedding=embedding,
        title="Title",
        summary="Summary",
    )


class TestInMemoryVectorStore(unittest.TestCase):
    """Tests for the InMemoryVectorStore class."""

    def setUp(self):
        self.store = InMemoryVectorStore()
        self.store.upsert([
            make_chunk("report_page001_chunk0", [1.0, 0.0]),
            make_chunk("report_page001_chunk1", [0.0, 1.0], domains=["legal"]),
            make_chunk("memo_page001_chunk0", [0.7, 0.7], document_name="memo"),
        ])

    def test_search_ranked_by_cosine(self):
        results = self.store.search([1.0, 0.0], limit=3)
        self.assertEqual(
            [r["id"] for r in results],
            ["report_page001_chunk0", "memo_page001_chunk0", "report_page001_chunk1"],
        )
        self.assertAlmostEqual(results[0]["score"], 1.0)

    def test_filters(self):
        self.assertEqual(self.store.count_by_filter({"document_name": "report"}), 2)
        self.assertEqual(self.store.count_by_filter({"domains": ["legal", "hr"]}), 1)
        self.assertEqual(self.store.count_by_filter({"id_prefix": "memo_"}), 1)
        self.assertTrue(self.store.exists({"id": "memo_page001_chunk0"}))
        with self.assertRaises(ValueError):
            self.store.count_by_filter({"color": "red"})

    def test_upsert_replaces_by_id(self):
        self.store.upsert([make_chunk("report_page001_chunk0", [0.0, 1.0])])
        self.assertEqual(len(self.store), 3)

    def test_delete_by_filter(self):
        self.assertEqual(self.store.delete_by_filter({"document_name": "report"}), 2)
        self.assertEqual(self.store.count_by_filter(), 1)

    def test_scroll(self):
        page, next_offset = self.store.scroll(page_size=2)
        self.assertEqual([p["id"] for p in page], ["memo_page001_chunk0", "report_page001_chunk0"])
        self.assertEqual(next_offset, 2)
        page, next_offset = self.store.scroll(page_size=2, offset=2)
        self.assertEqual(len(page), 1)
        self.assertIsNone(next_offset)

    def test_payload_has_no_embedding(self):
        payload = self.store.get("report_page001_chunk0")
        self.assertNotIn("embedding", payload)
        self.assertEqual(payload["documentName"], "report")


class TestResilientVectorStore(unittest.TestCase):
    """Tests for routing store calls through the fallback."""

    def test_unreachable_primary_uses_memory_mirror(self):
        """Upsert and search keep working against the in-memory mirror when the primary is down."""
        primary = MagicMock(spec=VectorDB)
        primary.upsert.side_effect = ConnectionRefusedError("connection refused")
        primary.search.side_effect = ConnectionRefusedError("connection refused")
        mirror = InMemoryVectorStore()
        store = ResilientVectorStore(
            primary, fallback=mirror, executor=ResilientExecutor("Elasticsearch", registry=FallbackRegistry())
        )

        written = store.upsert([make_chunk("a", [1.0, 0.0]), make_chunk("b", [0.0, 1.0])])
        results = store.search([0.9, 0.1], limit=2)

        self.assertEqual(written, 2)
        self.assertIsNotNone(mirror.get("a"))
        self.assertEqual([r["id"] for r in results], ["a", "b"])
        self.assertTrue(store.executor.is_fallback_active("upsert"))

    def test_healthy_primary_used(self):
        primary = MagicMock(spec=VectorDB)
        primary.count_by_filter.return_value = 7
        store = ResilientVectorStore(primary, executor=ResilientExecutor("Elasticsearch", registry=FallbackRegistry()))
        self.assertEqual(store.count_by_filter({"document_name": "x"}), 7)

    def test_create_memory_store(self):
        mirror = InMemoryVectorStore()
        self.assertIs(create_vector_store("memory", fallback=mirror), mirror)
        with self.assertRaises(ValueError):
            VectorDB.create("qdrant", {})


class TestElasticsearchDB(unittest.TestCase):
    """Tests for the ElasticsearchDB class with a mocked client."""

    def setUp(self):
        patcher = patch("elasticsearch.Elasticsearch")
        self.es_class = patcher.start()
        self.addCleanup(patcher.stop)
        self.client = self.es_class.return_value
        self.db = ElasticsearchDB(
            {"host": "http://localhost", "port": 9200, "username": "", "password": "", "index": "kb"},
            vector_size=2,
        )

    def test_initialize_creates_index(self):
        self.client.indices.exists.return_value = False
        self.db.initialize()
        kwargs = self.client.indices.create.call_args.kwargs
        self.assertEqual(kwargs["index"], "kb")
        self.assertEqual(kwargs["mappings"]["properties"]["embedding"]["dims"], 2)

    def test_upsert_bulk(self):
        self.client.indices.exists.return_value = True
        self.client.bulk.return_value = {"errors": False, "items": []}
        self.assertEqual(self.db.upsert([make_chunk("a", [1.0, 0.0])]), 1)
        operations = self.client.bulk.call_args.kwargs["operations"]
        self.assertEqual(operations[0], {"index": {"_index": "kb", "_id": "a"}})
        self.assertEqual(operations[1]["embedding"], [1.0, 0.0])

    def test_search_unshifts_score(self):
        self.client.indices.exists.return_value = True
        self.client.search.return_value = {"hits": {"hits": [{"_source": {"id": "a"}, "_score": 1.75}]}}
        results = self.db.search([1.0, 0.0], limit=1)
        self.assertAlmostEqual(results[0]["score"], 0.75)

    def test_build_filter(self):
        self.assertEqual(self.db._build_filter(None), {"match_all": {}})
        query = self.db._build_filter({"document_name": "report", "domains": "finance", "id_prefix": "youtube_"})
        self.assertEqual(query["bool"]["filter"], [
            {"term": {"documentName": "report"}},
            {"terms": {"domains": ["finance"]}},
            {"prefix": {"id": "youtube_"}},
        ])

    def test_errors_propagate(self):
        self.client.indices.exists.side_effect = ConnectionError("down")
        with self.assertRaises(ConnectionError):
            self.db.count_by_filter()


class TestCosineSimilarity(unittest.TestCase):

    def test_cosine(self):
        self.assertAlmostEqual(cosine_similarity([1.0, 0.0], [1.0, 0.0]), 1.0)
        self.assertEqual(cosine_similarity([0.0, 0.0], [1.0, 0.0]), 0.0)
        self.assertEqual(cosine_similarity([1.0], [1.0, 0.0]), 0.0)


if __name__ == "__main__":
    unittest.main()
