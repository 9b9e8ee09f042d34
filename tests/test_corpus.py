from __future__ import annotations

import asyncio
import json
import tempfile
import threading
import unittest
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import patch

import numpy as np

from hadith_nlp.apps.corpus import CorpusIndex
from hadith_nlp.apps.embeddings import EmbeddingEngine
from hadith_nlp.apps.errors import InitializationFailure

from fakes import FakeEncoder


def _run_async(coro):
    return asyncio.run(coro)


class FakeCollection:
    """In-memory collection answering queries in cosine-distance order."""

    def __init__(self) -> None:
        self.rows = {}
        self.upserts = 0
        self.threads = set()

    def count(self) -> int:
        self.threads.add(threading.get_ident())
        return len(self.rows)

    def upsert(self, ids, documents, metadatas, embeddings) -> None:
        self.upserts += 1
        self.threads.add(threading.get_ident())
        for doc_id, doc, meta, vector in zip(ids, documents, metadatas, embeddings):
            self.rows[doc_id] = (doc, meta, np.asarray(vector, dtype=np.float64))

    def query(self, query_embeddings, n_results, include):
        self.threads.add(threading.get_ident())
        query = np.asarray(query_embeddings[0], dtype=np.float64)
        scored = sorted(
            ((1.0 - float(vector @ query), doc_id, doc) for doc_id, (doc, _, vector) in self.rows.items()),
        )[:n_results]
        return {
            "ids": [[doc_id for _, doc_id, _ in scored]],
            "distances": [[distance for distance, _, _ in scored]],
            "documents": [[doc for _, _, doc in scored]],
        }


def _fake_chromadb(collection: FakeCollection):
    client = SimpleNamespace(get_or_create_collection=lambda name, metadata: collection)
    return SimpleNamespace(PersistentClient=lambda path: client)


CORPUS = {
    "bukhari:1": "حدثنا محمد بن إسماعيل",
    "bukhari:2": "قال رسول الله صلى الله عليه وسلم",
    "muslim:1": "حدثنا محمد",
}


class CorpusIndexTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.collection = FakeCollection()
        self.embeddings = EmbeddingEngine(FakeEncoder(), model_name="fake-model")
        with patch("hadith_nlp.apps.corpus.chromadb", _fake_chromadb(self.collection)):
            self.index = CorpusIndex(self.embeddings, persist_directory=Path(self.tmp.name) / "corpus")

    def tearDown(self) -> None:
        self.tmp.cleanup()

    def test_collection_calls_run_off_the_event_loop_thread(self) -> None:
        async def scenario():
            loop_thread = threading.get_ident()
            await self.index.upsert(CORPUS)
            await self.index.query("حدثنا محمد", n_results=2)
            return loop_thread

        loop_thread = _run_async(scenario())
        self.assertTrue(self.collection.threads)
        self.assertNotIn(loop_thread, self.collection.threads)

    def test_upsert_skips_unchanged_entries(self) -> None:
        first = _run_async(self.index.upsert(CORPUS))
        self.assertEqual((first.inserted, first.skipped), (3, 0))
        again = _run_async(self.index.upsert(CORPUS))
        self.assertEqual((again.inserted, again.skipped), (0, 3))
        forced = _run_async(self.index.upsert(CORPUS, force=True))
        self.assertEqual(forced.inserted, 3)
        self.assertEqual(self.collection.upserts, 2)

        checksums = json.loads(self.index.checksum_path.read_text(encoding="utf-8"))
        self.assertEqual(set(checksums), set(CORPUS))

    def test_query_returns_ranked_similarities(self) -> None:
        _run_async(self.index.upsert(CORPUS))
        results = _run_async(self.index.query("حدثنا محمد", n_results=2))
        self.assertEqual(results[0].source_id, "muslim:1")
        self.assertAlmostEqual(results[0].similarity, 1.0, places=4)
        self.assertEqual(results[0].text, "حدثنا محمد")
        self.assertEqual(results[1].source_id, "bukhari:1")
        self.assertGreater(results[0].similarity, results[1].similarity)

    def test_query_threshold(self) -> None:
        _run_async(self.index.upsert(CORPUS))
        results = _run_async(self.index.query("حدثنا محمد", n_results=3, threshold=0.9))
        self.assertEqual([r.source_id for r in results], ["muslim:1"])

    def test_empty_index(self) -> None:
        self.assertEqual(_run_async(self.index.query("حدثنا محمد")), [])

    def test_status(self) -> None:
        _run_async(self.index.upsert(CORPUS))
        status = self.index.status()
        self.assertEqual(status["document_count"], 3)
        self.assertEqual(status["cached_documents"], 3)
        self.assertEqual(status["model"], "fake-model")
        self.assertTrue(status["dependencies_ok"])
        self.assertIsNotNone(status["last_updated"])


class MissingDependencyTests(unittest.TestCase):
    def test_reports_and_raises(self) -> None:
        with tempfile.TemporaryDirectory() as tmp, patch("hadith_nlp.apps.corpus.chromadb", None):
            index = CorpusIndex(EmbeddingEngine(FakeEncoder()), persist_directory=tmp)
            self.assertFalse(index.status()["dependencies_ok"])
            with self.assertRaises(InitializationFailure):
                _run_async(index.query("حدثنا محمد"))


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
