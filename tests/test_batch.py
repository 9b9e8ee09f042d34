from __future__ import annotations

import asyncio
import unittest
from datetime import timedelta

from hadith_nlp.apps.batch import BatchProcessor, wait_for_job
from hadith_nlp.apps.errors import AnalysisFailure, NotFoundFailure, TimeoutFailure, ValidationFailure

from fakes import make_result


def _run_async(coro):
    return asyncio.run(coro)


class RecordingAnalyzer:
    def __init__(self, fail_on=None) -> None:
        self.fail_on = fail_on
        self.seen = []

    async def __call__(self, text: str):
        self.seen.append(text)
        await asyncio.sleep(0)
        if text == self.fail_on:
            raise AnalysisFailure("model crashed", operation="analyze")
        return make_result(text)


class SubmitTests(unittest.TestCase):
    def test_rejects_blank_batches(self) -> None:
        processor = BatchProcessor(RecordingAnalyzer())
        with self.assertRaises(ValidationFailure):
            _run_async(processor.submit([]))
        with self.assertRaises(ValidationFailure):
            _run_async(processor.submit(["", "   "]))

    def test_rejects_oversized_batches(self) -> None:
        processor = BatchProcessor(RecordingAnalyzer(), max_items=2)
        with self.assertRaises(ValidationFailure):
            _run_async(processor.submit(["أ", "ب", "ت"]))

    def test_blank_entries_are_dropped(self) -> None:
        async def scenario():
            processor = BatchProcessor(RecordingAnalyzer())
            job_id = await processor.submit(["حدثنا محمد", "  ", "حدثنا أنس"])
            return processor.poll(job_id)

        job = _run_async(scenario())
        self.assertEqual(job.total, 2)

    def test_unknown_job(self) -> None:
        with self.assertRaises(NotFoundFailure):
            BatchProcessor(RecordingAnalyzer()).poll("missing")


class ProcessingTests(unittest.TestCase):
    def test_completes_in_order(self) -> None:
        analyzer = RecordingAnalyzer()
        texts = ["حدثنا محمد", "حدثنا أنس", "حدثنا سفيان"]

        async def scenario():
            processor = BatchProcessor(analyzer)
            job_id = await processor.submit(texts)
            first = processor.poll(job_id)
            final = await wait_for_job(processor.poll, job_id, poll_interval=0.01, timeout=5)
            return first, final

        first, final = _run_async(scenario())
        self.assertIn(first.status, {"pending", "processing"})
        self.assertLess(first.processed, 3)
        self.assertEqual(final.status, "completed")
        self.assertEqual(final.processed, 3)
        self.assertEqual(len(final.results), 3)
        self.assertEqual([r.original_text for r in final.results], texts)
        self.assertEqual(analyzer.seen, texts)
        self.assertIsNone(final.current_item)
        self.assertIsNotNone(final.finished_at)

    def test_progress_is_monotonic(self) -> None:
        async def scenario():
            processor = BatchProcessor(RecordingAnalyzer())
            job_id = await processor.submit([f"حديث {i}" for i in range(8)])
            snapshots = []
            while True:
                snapshot = processor.poll(job_id)
                snapshots.append(snapshot)
                if snapshot.is_terminal:
                    return snapshots
                await asyncio.sleep(0)

        snapshots = _run_async(scenario())
        processed = [s.processed for s in snapshots]
        self.assertEqual(processed, sorted(processed))
        for snapshot in snapshots:
            self.assertEqual(len(snapshot.results), snapshot.processed)
            self.assertLessEqual(snapshot.processed, snapshot.total)
        self.assertEqual(snapshots[-1].processed, 8)

    def test_snapshots_are_isolated(self) -> None:
        async def scenario():
            processor = BatchProcessor(RecordingAnalyzer())
            job_id = await processor.submit(["حدثنا محمد", "حدثنا أنس"])
            early = processor.poll(job_id)
            await wait_for_job(processor.poll, job_id, poll_interval=0.01, timeout=5)
            return early

        early = _run_async(scenario())
        self.assertEqual(early.results, [])

    def test_fails_fast_on_item_error(self) -> None:
        analyzer = RecordingAnalyzer(fail_on="ب")

        async def scenario():
            processor = BatchProcessor(analyzer)
            job_id = await processor.submit(["أ", "ب", "ت"])
            return await wait_for_job(processor.poll, job_id, poll_interval=0.01, timeout=5)

        job = _run_async(scenario())
        self.assertEqual(job.status, "error")
        self.assertEqual(len(job.results), 1)
        self.assertEqual(job.processed, 1)
        self.assertIsNotNone(job.error)
        self.assertEqual(job.error.kind, "batch_item")
        self.assertEqual(job.error.index, 1)
        self.assertIn("model crashed", job.error.message)
        self.assertEqual(analyzer.seen, ["أ", "ب"])


class RetentionTests(unittest.TestCase):
    def test_observed_jobs_are_pruned_on_next_submit(self) -> None:
        async def scenario():
            processor = BatchProcessor(RecordingAnalyzer())
            job_id = await processor.submit(["حدثنا محمد"])
            await wait_for_job(processor.poll, job_id, poll_interval=0.01, timeout=5)
            again = processor.poll(job_id)
            await processor.submit(["حدثنا أنس"])
            return processor, job_id, again

        processor, job_id, again = _run_async(scenario())
        self.assertEqual(again.status, "completed")
        with self.assertRaises(NotFoundFailure):
            processor.poll(job_id)

    def test_unobserved_jobs_expire(self) -> None:
        async def scenario():
            processor = BatchProcessor(RecordingAnalyzer(), retention_seconds=60)
            job_id = await processor.submit(["حدثنا محمد"])
            while not processor._jobs[job_id].is_terminal:
                await asyncio.sleep(0)
            return processor, job_id

        processor, job_id = _run_async(scenario())
        finished = processor._jobs[job_id].finished_at
        self.assertEqual(processor.prune(finished + timedelta(seconds=30)), 0)
        self.assertEqual(processor.prune(finished + timedelta(seconds=61)), 1)
        self.assertEqual(len(processor), 0)


class WaitTests(unittest.TestCase):
    def test_times_out_without_terminal_status(self) -> None:
        async def scenario():
            gate = asyncio.Event()

            async def stalled(text):
                await gate.wait()
                return make_result(text)

            processor = BatchProcessor(stalled)
            job_id = await processor.submit(["حدثنا محمد"])
            try:
                await wait_for_job(processor.poll, job_id, poll_interval=0.01, timeout=0.05)
            finally:
                gate.set()

        with self.assertRaises(TimeoutFailure):
            _run_async(scenario())

    def test_accepts_async_poll(self) -> None:
        async def scenario():
            processor = BatchProcessor(RecordingAnalyzer())
            job_id = await processor.submit(["حدثنا محمد"])

            async def poll(job):
                return processor.poll(job)

            return await wait_for_job(poll, job_id, poll_interval=0.01, timeout=5)

        self.assertEqual(_run_async(scenario()).status, "completed")


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
