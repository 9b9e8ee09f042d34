"""Command-line access to narrator extraction, similarity and batch analysis.

Examples:
  python3 -m hadith_nlp.cli analyze "حدثنا محمد بن إسماعيل قال حدثنا عبد الله بن موسى"
  python3 -m hadith_nlp.cli similarity "حدثنا محمد" "أخبرنا محمد"
  python3 -m hadith_nlp.cli batch hadiths.txt --format csv -o report.csv
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .apps.errors import EngineError
from .apps.export import to_csv, to_json
from .config import EngineSettings
from .engine import Engine

LOGGER = logging.getLogger(__name__)


def read_texts(path: Path) -> List[str]:
    """Read a JSON list of strings, or one text per non-blank line."""
    raw = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        data = json.loads(raw)
        if not isinstance(data, list):
            raise ValueError(f"{path} must contain a JSON list of texts")
        return [str(item) for item in data]
    return [line for line in raw.splitlines() if line.strip()]


def _emit(output: str, destination: Optional[Path]) -> None:
    if destination is None:
        print(output)
    else:
        destination.write_text(output, encoding="utf-8")
        LOGGER.info("Wrote %s", destination)


async def _analyze(engine: Engine, args: argparse.Namespace) -> int:
    text = args.text if args.text is not None else sys.stdin.read()
    result = await engine.analyze(text)
    if args.format == "csv":
        _emit(to_csv(result), args.output)
        return 0
    if args.json:
        _emit(to_json(result), args.output)
        return 0

    print(
        f"language={result.language} sentiment={result.sentiment} "
        f"confidence={result.overall_confidence:.3f} readability={result.readability_score:.1f} "
        f"time_ms={result.processing_time_ms:.1f}"
    )
    if result.extraction_degraded:
        print(f"warning: {'; '.join(result.warnings)}")
    for i, m in enumerate(result.narrator_mentions, 1):
        print(f" {i}. {m.name} [{m.category}, {m.method}] confidence={m.confidence:.2f} span={m.span.start}-{m.span.end}")
    if result.key_terms:
        print(f"key terms: {', '.join(result.key_terms)}")
    return 0


async def _similarity(engine: Engine, args: argparse.Namespace) -> int:
    result = await engine.similarity(args.text_a, args.text_b)
    if args.json:
        print(json.dumps(result.model_dump(mode="json", by_alias=True), ensure_ascii=False, indent=2))
    else:
        print(f"similarity={result.similarity:.4f} time_ms={result.processing_time_ms:.1f}")
    return 0


async def _batch(engine: Engine, args: argparse.Namespace) -> int:
    texts = read_texts(args.file)
    job_id = await engine.submit_batch(texts)
    LOGGER.info("Batch %s submitted with %d text(s)", job_id, len(texts))
    job = await engine.wait_for_job(job_id, timeout=args.timeout, poll_interval=args.poll_interval)
    exporter = to_csv if args.format == "csv" else to_json
    _emit(exporter(job if args.format == "json" else job.results), args.output)
    if job.status == "error" and job.error is not None:
        print(
            f"Batch stopped at item {job.error.index}: {job.error.message} "
            f"({job.processed}/{job.total} completed)",
            file=sys.stderr,
        )
        return 1
    return 0


async def _run(args: argparse.Namespace) -> int:
    engine = Engine(EngineSettings.from_env(device=args.device))
    await engine.initialize()
    handlers = {"analyze": _analyze, "similarity": _similarity, "batch": _batch}
    return await handlers[args.command](engine, args)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Hadith text-analysis CLI")
    parser.add_argument("--device", help="Torch device for all models (cpu, cuda, cuda:1)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    analyze = sub.add_parser("analyze", help="Analyze one text (argument or stdin)")
    analyze.add_argument("text", nargs="?", help="Text to analyze. Reads stdin if omitted")
    analyze.add_argument("--json", action="store_true", help="Output JSON")
    analyze.add_argument("--format", choices=["text", "csv"], default="text")
    analyze.add_argument("-o", "--output", type=Path, help="Write output to a file")

    similarity = sub.add_parser("similarity", help="Cosine similarity of two texts")
    similarity.add_argument("text_a")
    similarity.add_argument("text_b")
    similarity.add_argument("--json", action="store_true", help="Output JSON")

    batch = sub.add_parser("batch", help="Analyze a file of texts sequentially")
    batch.add_argument("file", type=Path, help="Text file (one hadith per line) or JSON list")
    batch.add_argument("--format", choices=["json", "csv"], default="json")
    batch.add_argument("-o", "--output", type=Path, help="Write export to a file")
    batch.add_argument("--timeout", type=float, help="Give up waiting after N seconds")
    batch.add_argument("--poll-interval", type=float, help="Seconds between progress polls")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(_run(args))
    except EngineError as exc:
        print(f"Error ({exc.kind}): {exc.message}", file=sys.stderr)
        return 2
    except (OSError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
