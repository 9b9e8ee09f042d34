from __future__ import annotations

import time
import unittest
from unittest.mock import patch

from hadith_nlp.apps.errors import InitializationFailure
from hadith_nlp.config import EngineSettings
from hadith_nlp.engine import Engine
from hadith_nlp.http_server import create_app
from hadith_nlp.tools import EngineRunner

from fakes import FakeEncoder, FakeSentiment, make_engine


CHAIN = "حدثنا محمد بن إسماعيل قال حدثنا عبد الله بن موسى"


class HttpServerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.runner = EngineRunner(timeout=5)
        self.engine = make_engine()
        self.client = create_app(self.engine, runner=self.runner).test_client()

    def tearDown(self) -> None:
        self.runner.close()

    def test_health(self) -> None:
        res = self.client.get("/health")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json(), {"ok": True})

    def test_analyze(self) -> None:
        res = self.client.post("/api/analyze", json={"text": CHAIN})
        self.assertEqual(res.status_code, 200)
        payload = res.get_json()
        self.assertEqual(payload["language"], "arabic")
        self.assertGreaterEqual(len(payload["narratorMentions"]), 2)

    def test_analyze_requires_text(self) -> None:
        res = self.client.post("/api/analyze", json={})
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.get_json()["error"]["kind"], "validation")

    def test_similarity(self) -> None:
        res = self.client.post("/api/similarity", json={"textA": "حدثنا محمد", "textB": "حدثنا محمد"})
        self.assertEqual(res.status_code, 200)
        self.assertAlmostEqual(res.get_json()["similarity"], 1.0, places=6)

    def test_blank_similarity_input_is_a_validation_error(self) -> None:
        res = self.client.post("/api/similarity", json={"textA": "  ", "textB": "حدثنا محمد"})
        self.assertEqual(res.status_code, 400)
        error = res.get_json()["error"]
        self.assertEqual(error["kind"], "validation")
        self.assertFalse(error["retryable"])

    def test_similar_over_supplied_corpus(self) -> None:
        res = self.client.post(
            "/api/similar",
            json={
                "text": "حدثنا محمد",
                "corpus": [{"id": "a", "text": "قال رسول الله"}, {"id": "b", "text": "حدثنا محمد"}],
                "topK": 1,
            },
        )
        self.assertEqual(res.status_code, 200)
        hits = res.get_json()["hits"]
        self.assertEqual([hit["sourceId"] for hit in hits], ["b"])

    def test_similar_rejects_malformed_corpus(self) -> None:
        for corpus in ({"a": 5}, 5, "حدثنا", [{"id": "a"}], [3]):
            res = self.client.post("/api/similar", json={"text": "حدثنا محمد", "corpus": corpus})
            self.assertEqual(res.status_code, 400, corpus)
            self.assertEqual(res.get_json()["error"]["kind"], "validation")

    def test_batch_lifecycle(self) -> None:
        res = self.client.post("/api/batch", json={"texts": ["حدثنا محمد", "حدثنا أنس", "حدثنا سفيان"]})
        self.assertEqual(res.status_code, 202)
        job_id = res.get_json()["jobId"]

        deadline = time.monotonic() + 5
        while True:
            job = self.client.get(f"/api/batch/{job_id}").get_json()
            self.assertEqual(len(job["results"]), job["processed"])
            if job["status"] in {"completed", "error"} or time.monotonic() > deadline:
                break
            time.sleep(0.01)
        self.assertEqual(job["status"], "completed")
        self.assertEqual(job["processed"], 3)

    def test_batch_validation(self) -> None:
        self.assertEqual(self.client.post("/api/batch", json={"texts": "حدثنا"}).status_code, 400)
        self.assertEqual(self.client.post("/api/batch", json={"texts": ["", " "]}).status_code, 400)

    def test_unknown_batch(self) -> None:
        res = self.client.get("/api/batch/does-not-exist")
        self.assertEqual(res.status_code, 404)
        self.assertEqual(res.get_json()["error"]["kind"], "not_found")

    def test_status(self) -> None:
        self.client.post("/api/analyze", json={"text": CHAIN})
        status = self.client.get("/api/status").get_json()
        self.assertTrue(status["initialized"])
        self.assertEqual(status["counters"]["analyses"], 1)


class NotReadyTests(unittest.TestCase):
    def test_initialization_failure_maps_to_503(self) -> None:
        runner = EngineRunner(timeout=5)
        engine = Engine(EngineSettings(), sentiment=FakeSentiment(), encoder=FakeEncoder())
        client = create_app(engine, runner=runner).test_client()
        failure = InitializationFailure("model download failed", operation="initialize")
        try:
            with patch("hadith_nlp.engine.load_ner_pipeline", side_effect=failure):
                res = client.post("/api/analyze", json={"text": CHAIN})
        finally:
            runner.close()
        self.assertEqual(res.status_code, 503)
        error = res.get_json()["error"]
        self.assertEqual(error["kind"], "initialization")
        self.assertTrue(error["retryable"])
        self.assertEqual(error["user_message"], "AI engine not ready.")


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
