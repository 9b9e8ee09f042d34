"""Flask HTTP server exposing the hadith text-analysis engine.

Endpoints:
- GET  /health
- GET  /api/status
- POST /api/analyze            { text }
- POST /api/similarity         { textA, textB }
- POST /api/similar            { text, corpus?, topK?, threshold? }
- POST /api/batch              { texts }
- GET  /api/batch/<job_id>

Run:
  python3 -m hadith_nlp.http_server --host 127.0.0.1 --port 8000
"""

from __future__ import annotations

import argparse
import logging
import os
from typing import Any, Dict, Optional

try:
    from flask import Flask, jsonify, request
except Exception as exc:  # pragma: no cover
    raise RuntimeError("Flask is required: pip install Flask") from exc

from .apps.errors import EngineError
from .config import EngineSettings
from .engine import Engine
from .tools import (
    EngineRunner,
    analyze_text,
    batch_status,
    engine_status,
    find_similar,
    submit_batch,
    text_similarity,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000

STATUS_BY_KIND = {
    "validation": 400,
    "not_found": 404,
    "initialization": 503,
    "timeout": 504,
}


def _resolve_port(port: int | None) -> int:
    if port is not None:
        return port
    env_port = os.getenv("HADITH_NLP_PORT")
    if env_port:
        try:
            return int(env_port)
        except ValueError as exc:
            raise ValueError(f"Invalid HADITH_NLP_PORT value: {env_port!r}") from exc
    return DEFAULT_PORT


def _bad_request(message: str) -> Any:
    return jsonify({"error": {"kind": "validation", "message": message, "retryable": False}}), 400


def _first(payload: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in payload:
            return payload[key]
    return None


def create_app(
    engine: Optional[Engine] = None,
    *,
    runner: Optional[EngineRunner] = None,
    settings: Optional[EngineSettings] = None,
) -> Flask:
    settings = settings or (engine.settings if engine is not None else EngineSettings.from_env())
    engine = engine or Engine(settings)
    runner = runner or EngineRunner(timeout=settings.call_timeout_seconds)

    app = Flask(__name__)
    app.config["ENGINE"] = engine
    app.config["RUNNER"] = runner

    @app.errorhandler(EngineError)
    def handle_engine_error(exc: EngineError) -> Any:
        status = STATUS_BY_KIND.get(exc.kind, 500)
        if status >= 500:
            LOGGER.error("%s failed (%s): %s", exc.operation or request.path, exc.kind, exc.message)
        return jsonify({"error": exc.to_dict()}), status

    @app.get("/health")
    def health() -> Any:
        return jsonify({"ok": True})

    @app.get("/api/status")
    def api_status() -> Any:
        return jsonify(runner.run(engine_status(engine=engine)))

    @app.post("/api/analyze")
    def api_analyze() -> Any:
        payload: Dict[str, Any] = request.get_json(silent=True) or {}
        text = payload.get("text")
        if not isinstance(text, str):
            return _bad_request("Missing 'text'")
        return jsonify(runner.run(analyze_text(text, engine=engine)))

    @app.post("/api/similarity")
    def api_similarity() -> Any:
        payload: Dict[str, Any] = request.get_json(silent=True) or {}
        text_a = _first(payload, "textA", "text_a")
        text_b = _first(payload, "textB", "text_b")
        if not isinstance(text_a, str) or not isinstance(text_b, str):
            return _bad_request("Missing 'textA' or 'textB'")
        return jsonify(runner.run(text_similarity(text_a, text_b, engine=engine)))

    @app.post("/api/similar")
    def api_similar() -> Any:
        payload: Dict[str, Any] = request.get_json(silent=True) or {}
        text = payload.get("text")
        if not isinstance(text, str):
            return _bad_request("Missing 'text'")
        try:
            top_k = int(_first(payload, "topK", "top_k") or 10)
            threshold = payload.get("threshold")
            threshold = float(threshold) if threshold is not None else None
        except (TypeError, ValueError):
            return _bad_request("'topK' and 'threshold' must be numbers")
        result = runner.run(
            find_similar(
                text,
                payload.get("corpus"),
                top_k=top_k,
                threshold=threshold,
                engine=engine,
            )
        )
        return jsonify(result)

    @app.post("/api/batch")
    def api_submit_batch() -> Any:
        payload: Dict[str, Any] = request.get_json(silent=True) or {}
        texts = payload.get("texts")
        if not isinstance(texts, list):
            return _bad_request("Missing 'texts' list")
        return jsonify(runner.run(submit_batch(texts, engine=engine))), 202

    @app.get("/api/batch/<job_id>")
    def api_batch_status(job_id: str) -> Any:
        return jsonify(runner.run(batch_status(job_id, engine=engine)))

    return app


def main(argv: list[str] | None = None) -> None:  # pragma: no cover - dev runner
    parser = argparse.ArgumentParser(description="Hadith text-analysis HTTP server (Flask)")
    parser.add_argument("--host", default=os.getenv("HADITH_NLP_HOST") or DEFAULT_HOST)
    parser.add_argument("--port", type=int, default=None)
    parser.add_argument("--cert", help="TLS certificate (PEM); enables HTTPS with --key")
    parser.add_argument("--key", help="TLS private key (PEM)")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    context = (args.cert, args.key) if args.cert and args.key else None
    app = create_app()
    app.run(host=args.host, port=_resolve_port(args.port), ssl_context=context)


if __name__ == "__main__":  # pragma: no cover
    main()
