from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import socket
from typing import AsyncIterator, Mapping

import uvicorn
from fastapi import Body, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse

from .cache import CacheError
from .chat import last_user_text, parse_chat_request
from .clipboard import ClipboardWatcher
from .events import INCOMING_TEXT, NotificationError
from .furigana import TokenizerUnavailableError
from .replacements import parse_rule_payloads
from .state import Translator

__all__ = ["bind_listener", "create_app", "run_http_server", "serve"]

logger = logging.getLogger(__name__)

# Pending events per SSE client before the oldest are dropped.
EVENT_QUEUE_SIZE = 256


def _submitted_text(content_type: str, body: bytes) -> str:
    """Raw body text, or the ``text`` field when a JSON object is posted."""
    if "json" in content_type.lower():
        try:
            payload = json.loads(body)
        except ValueError:
            payload = None
        if isinstance(payload, Mapping) and isinstance(payload.get("text"), str):
            return payload["text"]
    try:
        return body.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise HTTPException(status_code=400, detail="Request body must be valid UTF-8.") from exc


def _require_bool(payload: Mapping[str, object], key: str) -> bool:
    value = payload.get(key)
    if not isinstance(value, bool):
        raise HTTPException(status_code=400, detail=f"{key} must be a boolean.")
    return value


def _require_str(payload: Mapping[str, object], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str):
        raise HTTPException(status_code=400, detail=f"{key} must be a string.")
    return value


def _format_sse(name: str, payload: object) -> str:
    return f"event: {name}\ndata: {json.dumps(payload, ensure_ascii=False)}\n\n"


def _offer_event(queue: asyncio.Queue[tuple[str, object]], item: tuple[str, object]) -> None:
    if queue.full():
        dropped, _ = queue.get_nowait()
        logger.warning("Event stream client is lagging; dropped %s", dropped)
    queue.put_nowait(item)


def create_app(translator: Translator) -> FastAPI:
    app = FastAPI(title="rubyhook")
    app.state.translator = translator
    hub = translator.hub

    def _emit_processed(raw: str) -> None:
        hub.emit(INCOMING_TEXT, translator.replacements.apply(raw))

    @app.post("/submit")
    async def submit(request: Request) -> Response:
        body = await request.body()
        text = _submitted_text(request.headers.get("content-type", ""), body)
        logger.info("Received /submit, len=%d", len(text))
        try:
            _emit_processed(text)
        except NotificationError as exc:
            logger.error("Failed to emit incoming_text: %s", exc)
            return Response(status_code=500)
        return Response(status_code=200)

    @app.post("/v1/chat/completions")
    async def chat_completions(request: Request) -> Response:
        # Interception point only: the answer is always 404.
        if not translator.openai_compatible_input.is_enabled():
            return Response(status_code=404)
        try:
            messages = parse_chat_request(json.loads(await request.body()))
        except ValueError as exc:
            logger.warning("Ignoring malformed chat-completions request: %s", exc)
            return Response(status_code=404)
        text = last_user_text(messages)
        if text is None:
            logger.warning("OpenAI-compatible request missing user message")
            return Response(status_code=404)
        logger.info("Received OpenAI-compatible /v1/chat/completions, len=%d", len(text))
        try:
            _emit_processed(text)
        except NotificationError as exc:
            logger.error("Failed to emit incoming_text from OpenAI-compatible input: %s", exc)
        return Response(status_code=404)

    @app.post("/api/clipboard-watch")
    def api_clipboard_watch(payload: dict[str, object] = Body(...)) -> JSONResponse:
        enabled = _require_bool(payload, "enabled")
        translator.clipboard_watch.set(enabled)
        return JSONResponse({"enabled": enabled})

    @app.post("/api/openai-compatible-input")
    def api_openai_compatible_input(payload: dict[str, object] = Body(...)) -> JSONResponse:
        enabled = _require_bool(payload, "enabled")
        translator.openai_compatible_input.set(enabled)
        return JSONResponse({"enabled": enabled})

    @app.put("/api/text-replacements")
    def api_text_replacements(payload: dict[str, object] = Body(...)) -> JSONResponse:
        try:
            rules = parse_rule_payloads(payload.get("rules"))
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        installed = translator.replacements.install(rules)
        return JSONResponse({"installed": installed, "submitted": len(rules)})

    @app.post("/api/furigana")
    def api_furigana(payload: dict[str, object] = Body(...)) -> JSONResponse:
        text = _require_str(payload, "text")
        try:
            html = translator.annotator.annotate(text)
        except TokenizerUnavailableError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        return JSONResponse({"html": html})

    @app.get("/api/translations")
    async def api_get_translation(text: str = Query(...)) -> JSONResponse:
        loop = asyncio.get_running_loop()
        try:
            translation = await loop.run_in_executor(None, translator.cache.get, text)
        except CacheError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return JSONResponse({"translation": translation})

    @app.post("/api/translations")
    async def api_store_translation(payload: dict[str, object] = Body(...)) -> JSONResponse:
        text = _require_str(payload, "text")
        translation = _require_str(payload, "translation")
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, translator.cache.put, text, translation)
        except CacheError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return JSONResponse({"stored": bool(translation.strip())})

    @app.get("/api/history")
    def api_history() -> JSONResponse:
        return JSONResponse({"entries": [entry.to_dict() for entry in translator.history.list()]})

    @app.post("/api/history")
    def api_record_history(payload: dict[str, object] = Body(...)) -> JSONResponse:
        original = _require_str(payload, "original")
        translation = _require_str(payload, "translation")
        recorded = translator.history.record(original, translation)
        return JSONResponse({"recorded": recorded})

    @app.get("/api/http-server-error")
    def api_http_server_error() -> JSONResponse:
        error = translator.http_error.get()
        return JSONResponse({"error": error.to_dict() if error else None})

    @app.get("/api/events")
    async def api_events() -> StreamingResponse:
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[tuple[str, object]] = asyncio.Queue(maxsize=EVENT_QUEUE_SIZE)

        def _enqueue(name: str, payload: object) -> None:
            loop.call_soon_threadsafe(_offer_event, queue, (name, payload))

        unsubscribe = hub.subscribe(_enqueue)

        async def _stream() -> AsyncIterator[str]:
            try:
                while True:
                    name, payload = await queue.get()
                    yield _format_sse(name, payload)
            finally:
                unsubscribe()

        return StreamingResponse(_stream(), media_type="text/event-stream")

    return app


def bind_listener(host: str, port: int) -> socket.socket:
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
    except OSError:
        sock.close()
        raise
    return sock


async def run_http_server(translator: Translator) -> bool:
    """Serve until shutdown. Returns ``False`` when the port could not be bound."""
    config = translator.config
    try:
        sock = bind_listener(config.host, config.port)
    except OSError as exc:
        logger.error("Failed to start HTTP listener on port %d: %s", config.port, exc)
        translator.record_http_error(config.port, exc)
        return False

    server = uvicorn.Server(
        uvicorn.Config(
            create_app(translator),
            log_config=None,
            log_level="info",
        )
    )
    logger.info("HTTP server listening on http://%s:%d", config.host, config.port)
    try:
        await server.serve(sockets=[sock])
    finally:
        sock.close()
    return True


async def serve(translator: Translator, *, watcher: ClipboardWatcher | None = None) -> None:
    if watcher is None:
        watcher = ClipboardWatcher(
            translator.replacements,
            translator.hub,
            translator.clipboard_watch,
        )
    watcher_task = asyncio.create_task(watcher.run())
    if await run_http_server(translator):
        watcher_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await watcher_task
    else:
        # No listener; keep the clipboard watcher alive on its own.
        await watcher_task
