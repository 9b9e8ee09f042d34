"""MCP stdio server exposing hadith text-analysis tools.

Tools are served through the low-level request handlers for `tools/list`
and `tools/call`; every tool delegates to :mod:`hadith_nlp.tools`, so the
HTTP server and this one return the same payloads.

Run locally (Inspector):
  npx -y @modelcontextprotocol/inspector --command "python3 -m hadith_nlp.mcp_stdio"
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Any, Dict, List, Optional

try:
    from mcp.server import Server
    from mcp.server.stdio import stdio_server
    from mcp.types import (
        CallToolRequest,
        CallToolResult,
        ListToolsRequest,
        ListToolsResult,
        ServerResult,
        TextContent,
        Tool,
    )
except Exception as exc:  # pragma: no cover
    raise RuntimeError("The 'mcp' package is required. Install with: pip install mcp") from exc

from .apps.errors import EngineError, ValidationFailure
from .tools import analyze_text as do_analyze_text
from .tools import batch_status as do_batch_status
from .tools import engine_status as do_engine_status
from .tools import find_similar as do_find_similar
from .tools import submit_batch as do_submit_batch
from .tools import text_similarity as do_text_similarity

LOGGER = logging.getLogger(__name__)

server = Server("hadith-nlp")

_STRING = {"type": "string"}
_CORPUS_SCHEMA = {
    "type": "array",
    "items": {
        "type": "object",
        "properties": {"id": _STRING, "text": _STRING},
        "required": ["id", "text"],
    },
}


def _tool(name: str, description: str, properties: Dict[str, Any], *required: str) -> Tool:
    schema: Dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        schema["required"] = list(required)
    return Tool(name=name, description=description, inputSchema=schema)


TOOLS: List[Tool] = [
    _tool(
        "analyze_text",
        "Extract narrators, language, sentiment and key terms from a hadith text",
        {"text": _STRING},
        "text",
    ),
    _tool(
        "text_similarity",
        "Cosine similarity of two texts after Arabic normalization",
        {"text_a": _STRING, "text_b": _STRING},
        "text_a",
        "text_b",
    ),
    _tool(
        "find_similar",
        "Rank a supplied corpus, or the persistent corpus index, by similarity to a text",
        {
            "text": _STRING,
            "corpus": _CORPUS_SCHEMA,
            "top_k": {"type": "integer", "default": 10, "minimum": 1},
            "threshold": {"type": "number"},
        },
        "text",
    ),
    _tool(
        "submit_batch",
        "Queue up to 50 texts for sequential analysis; returns a job id to poll",
        {"texts": {"type": "array", "items": _STRING}},
        "texts",
    ),
    _tool("batch_status", "Progress, results and error of a batch job", {"job_id": _STRING}, "job_id"),
    _tool("engine_status", "Engine readiness, configured models and counters", {}),
]


def list_tools() -> List[Tool]:
    return list(TOOLS)


def _result(data: Optional[Dict[str, Any]] = None, *, is_error: bool = False, text: Optional[str] = None) -> CallToolResult:
    if text is None:
        text = json.dumps(data, ensure_ascii=False) if data is not None else ""
    return CallToolResult(
        content=[TextContent(type="text", text=text)],
        structuredContent=data,
        isError=is_error,
    )


def _number(args: Dict[str, Any], key: str, cast: Any, default: Any = None) -> Any:
    value = args.get(key)
    if value is None:
        return default
    try:
        return cast(value)
    except (TypeError, ValueError) as exc:
        raise ValidationFailure(f"'{key}' must be a number, got {value!r}", operation="find_similar") from exc


async def _dispatch(name: str, args: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    if name == "analyze_text":
        return await do_analyze_text(args.get("text") or "")
    if name == "text_similarity":
        return await do_text_similarity(args.get("text_a") or "", args.get("text_b") or "")
    if name == "find_similar":
        return await do_find_similar(
            args.get("text") or "",
            args.get("corpus"),
            top_k=_number(args, "top_k", int, 10),
            threshold=_number(args, "threshold", float),
        )
    if name == "submit_batch":
        return await do_submit_batch(args.get("texts") or [])
    if name == "batch_status":
        return await do_batch_status(str(args.get("job_id") or ""))
    if name == "engine_status":
        return await do_engine_status()
    return None


async def call_tool(name: str, args: Dict[str, Any]) -> CallToolResult:
    """Run one tool; engine errors come back as ``isError`` results carrying the error record."""
    try:
        data = await _dispatch(name, args)
    except EngineError as exc:
        LOGGER.warning("Tool %s failed (%s): %s", name, exc.kind, exc.message)
        return _result({"error": exc.to_dict()}, is_error=True, text=exc.user_message)
    if data is None:
        return _result(is_error=True, text=f"Unknown tool: {name}")
    return _result(data)


async def handle_list_tools_handler(request: Any = None) -> ServerResult:
    return ServerResult(ListToolsResult(tools=list_tools()))


async def handle_call_tool_handler(request: Any = None, *, name: Optional[str] = None) -> ServerResult:
    arguments: Dict[str, Any] = {}
    params = getattr(request, "params", None)
    if params is not None:
        name = params.name
        arguments = params.arguments or {}
    if not name:
        return ServerResult(_result(is_error=True, text="Missing tool name"))
    return ServerResult(await call_tool(name, arguments))


def _register_handlers() -> None:
    server.request_handlers[ListToolsRequest] = handle_list_tools_handler
    server.request_handlers[CallToolRequest] = handle_call_tool_handler


async def main() -> None:  # pragma: no cover - entrypoint
    # stdout carries the protocol
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    _register_handlers()
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


if __name__ == "__main__":  # pragma: no cover
    asyncio.run(main())
