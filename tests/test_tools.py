from __future__ import annotations

import asyncio
import unittest
from unittest.mock import patch

from hadith_nlp import tools
from hadith_nlp.apps.errors import InitializationFailure, TimeoutFailure, ValidationFailure
from hadith_nlp.config import EngineSettings
from hadith_nlp.engine import Engine

from fakes import FakeEncoder, FakeSentiment, make_engine


def _run_async(coro):
    return asyncio.run(coro)


CHAIN = "حدثنا محمد بن إسماعيل قال حدثنا عبد الله بن موسى"


class ToolFunctionTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = make_engine()

    def test_analyze_text_initializes_and_serializes(self) -> None:
        data = _run_async(tools.analyze_text(CHAIN, engine=self.engine))
        self.assertTrue(self.engine.initialized)
        self.assertEqual(data["language"], "arabic")
        self.assertIn("narratorMentions", data)

    def test_text_similarity(self) -> None:
        data = _run_async(tools.text_similarity("حدثنا محمد", "حدثنا محمد", engine=self.engine))
        self.assertAlmostEqual(data["similarity"], 1.0, places=6)

    def test_find_similar_accepts_entry_dicts(self) -> None:
        corpus = [{"id": "a", "text": "حدثنا محمد"}, {"id": "b", "text": "قال رسول الله"}]
        data = _run_async(tools.find_similar("حدثنا محمد", corpus, top_k=5, engine=self.engine))
        self.assertEqual(data["source"], "corpus")
        self.assertEqual(data["total"], 2)
        self.assertEqual(data["hits"][0]["sourceId"], "a")

    def test_find_similar_rejects_malformed_corpus(self) -> None:
        with self.assertRaises(ValidationFailure):
            _run_async(tools.find_similar("حدثنا محمد", "not a corpus", engine=self.engine))
        with self.assertRaises(ValidationFailure):
            _run_async(tools.find_similar("حدثنا محمد", [{"text": "no id"}], engine=self.engine))
        with self.assertRaises(ValidationFailure):
            _run_async(tools.find_similar("حدثنا محمد", {"a": 5}, engine=self.engine))
        with self.assertRaises(ValidationFailure):
            _run_async(tools.find_similar("حدثنا محمد", 5, engine=self.engine))

    def test_find_similar_accepts_id_to_text_object(self) -> None:
        corpus = {"x": "قال رسول الله", "y": "حدثنا محمد"}
        data = _run_async(tools.find_similar("حدثنا محمد", corpus, top_k=1, engine=self.engine))
        self.assertEqual([hit["sourceId"] for hit in data["hits"]], ["y"])

    def test_batch_round_trip(self) -> None:
        async def scenario():
            submitted = await tools.submit_batch(["حدثنا محمد", "حدثنا أنس"], engine=self.engine)
            await self.engine.wait_for_job(submitted["jobId"], timeout=5, poll_interval=0.01)
            status = await tools.batch_status(submitted["jobId"], engine=self.engine)
            return submitted, status

        submitted, status = _run_async(scenario())
        self.assertEqual(submitted["status"], "pending")
        self.assertEqual(submitted["total"], 2)
        self.assertEqual(status["status"], "completed")
        self.assertEqual(status["jobId"], submitted["jobId"])
        self.assertEqual(len(status["results"]), 2)

    def test_engine_status_reports_failed_initialization(self) -> None:
        engine = Engine(EngineSettings(), sentiment=FakeSentiment(), encoder=FakeEncoder())
        failure = InitializationFailure("no network", operation="initialize")
        with patch("hadith_nlp.engine.load_ner_pipeline", side_effect=failure):
            data = _run_async(tools.engine_status(engine=engine))
        self.assertFalse(data["initialized"])
        self.assertEqual(data["last_error"]["kind"], "initialization")


class EngineRunnerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.runner = tools.EngineRunner(timeout=5)

    def tearDown(self) -> None:
        self.runner.close()

    def test_runs_coroutines(self) -> None:
        engine = make_engine()
        data = self.runner.run(tools.analyze_text(CHAIN, engine=engine))
        self.assertEqual(data["language"], "arabic")

    def test_batches_progress_between_calls(self) -> None:
        engine = make_engine()
        submitted = self.runner.run(tools.submit_batch(["حدثنا محمد"], engine=engine))
        job = self.runner.run(engine.wait_for_job(submitted["jobId"], timeout=5, poll_interval=0.01))
        self.assertEqual(job.status, "completed")

    def test_timeout(self) -> None:
        with self.assertRaises(TimeoutFailure):
            self.runner.run(asyncio.sleep(5), timeout=0.05)

    def test_propagates_engine_errors(self) -> None:
        engine = make_engine()
        with self.assertRaises(ValidationFailure):
            self.runner.run(tools.text_similarity("", "حدثنا", engine=engine))


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
