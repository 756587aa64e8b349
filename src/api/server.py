"""Async HTTP API for the browser client.

Uses aiohttp's AppRunner/TCPSite for non-blocking start/stop. Every
response carries permissive CORS headers, and any ``ZoxaaError`` raised by
a handler is rendered as ``{"error", "details"}`` with its status.
"""

from __future__ import annotations

import logging
import time
from datetime import UTC, datetime
from typing import Any

from aiohttp import web

from src.chat.service import ChatService
from src.chat.store import ConversationStore
from src.config import settings
from src.errors import InvalidRequestError, NotFoundError, ZoxaaError
from src.llm.client import _get_client, complete_chat
from src.memory.retrieval import get_relevant_memories
from src.memory.store import MemoryStore
from src.plans.generator import generate_plan_steps
from src.plans.models import (
    Plan,
    PlanStatus,
    PlanStep,
    optional_text,
    step_list,
    string_list,
)
from src.plans.store import PlanStore
from src.voice.tts import AUDIO_MIME, synthesize_speech

logger = logging.getLogger(__name__)

VERSION = "1.0.0"
DEFAULT_SESSION = "default"
DEFAULT_MEMORY_LIMIT = 20

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PATCH, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

MEMORY_STORE = web.AppKey("memory_store", MemoryStore)
PLAN_STORE = web.AppKey("plan_store", PlanStore)
CHAT_SERVICE = web.AppKey("chat_service", ChatService)


# -- Middleware ----------------------------------------------------------------


@web.middleware
async def _cors_middleware(request: web.Request, handler) -> web.StreamResponse:
    if request.method == "OPTIONS":
        return web.Response(status=200, headers=CORS_HEADERS)
    try:
        response = await handler(request)
    except web.HTTPException as exc:
        exc.headers.update(CORS_HEADERS)
        raise
    response.headers.update(CORS_HEADERS)
    return response


@web.middleware
async def _error_middleware(request: web.Request, handler) -> web.StreamResponse:
    try:
        return await handler(request)
    except ZoxaaError as exc:
        logger.warning("%s %s -> %d: %s", request.method, request.path, exc.status, exc)
        return web.json_response(exc.to_dict(), status=exc.status)
    except web.HTTPException:
        raise
    except Exception as exc:
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return web.json_response(
            {"error": "Internal server error", "details": str(exc)}, status=500
        )


# -- Helpers -------------------------------------------------------------------


async def _read_json(request: web.Request) -> dict[str, Any]:
    try:
        payload = await request.json()
    except ValueError:
        raise InvalidRequestError("Request body must be valid JSON") from None
    if not isinstance(payload, dict):
        raise InvalidRequestError("Request body must be a JSON object")
    return payload


def _int_param(request: web.Request, name: str, default: int) -> int:
    raw = request.query.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise InvalidRequestError(f"{name} must be an integer") from None
    if value < 0:
        raise InvalidRequestError(f"{name} must not be negative")
    return value


def _timestamp() -> str:
    return datetime.now(UTC).isoformat()


def _key_info() -> dict[str, Any]:
    key = settings.openai_api_key
    return {
        "hasApiKey": bool(key),
        "apiKeyLength": len(key),
        "apiKeyFormat": "valid" if key.startswith("sk-") else ("missing" if not key else "unexpected"),
    }


# -- Relay routes --------------------------------------------------------------


async def _chat(request: web.Request) -> web.Response:
    """POST /api/chat: forward a message list to the completions endpoint."""
    payload = await _read_json(request)
    messages = payload.get("messages")
    if not isinstance(messages, list):
        raise InvalidRequestError("messages array is required")
    system_prompt = payload.get("systemPrompt")
    if system_prompt is not None and not isinstance(system_prompt, str):
        raise InvalidRequestError("systemPrompt must be a string")

    completion = await complete_chat(messages, system_prompt)
    return web.json_response(completion.to_dict())


async def _tts(request: web.Request) -> web.Response:
    """POST /api/tts: synthesize speech as JSON (base64) or raw MPEG."""
    payload = await _read_json(request)
    speech = await synthesize_speech(
        payload.get("text"), payload.get("voice"), payload.get("speed", 1.0)
    )
    if settings.tts_response_format == "audio":
        return web.Response(
            body=speech.audio,
            content_type=AUDIO_MIME,
            headers={"Content-Length": str(speech.size)},
        )
    return web.json_response(speech.to_payload())


async def _health(request: web.Request) -> web.Response:
    """GET /api/health: liveness plus configuration presence."""
    return web.json_response(
        {
            "status": "OK",
            "message": "Zoxaa API server is running",
            "timestamp": _timestamp(),
            "environment": settings.environment,
            "apiKey": "configured" if settings.openai_api_key else "missing",
            "version": VERSION,
        }
    )


async def _test(request: web.Request) -> web.Response:
    """GET /api/test: development echo of configuration flags."""
    return web.json_response(
        {
            "message": "Test endpoint working",
            "timestamp": _timestamp(),
            "environment": settings.environment,
            **_key_info(),
            "userAgent": request.headers.get("User-Agent", ""),
            "origin": request.headers.get("Origin", ""),
        }
    )


async def _debug(request: web.Request) -> web.Response:
    """GET /api/debug: /api/test plus a probe of the upstream model list."""
    upstream: dict[str, Any] = {"ok": False}
    if settings.openai_api_key:
        started = time.monotonic()
        try:
            models = await _get_client().models.list()
            upstream = {"ok": True, "models": len(models.data)}
        except Exception as exc:
            logger.warning("Upstream probe failed: %s", exc)
            upstream = {"ok": False, "error": str(exc)}
        upstream["elapsedMs"] = round((time.monotonic() - started) * 1000)
    else:
        upstream["error"] = "OPENAI_API_KEY not set"

    return web.json_response(
        {
            "timestamp": _timestamp(),
            "environment": settings.environment,
            "debugEndpoints": True,
            **_key_info(),
            "chatModel": settings.chat_model,
            "ttsModel": settings.tts_model,
            "database": "turso" if settings.turso_database_url else "local",
            "userAgent": request.headers.get("User-Agent", ""),
            "origin": request.headers.get("Origin", ""),
            "upstream": upstream,
        }
    )


async def _index(request: web.Request) -> web.Response:
    """GET / and GET /api: service banner."""
    endpoints = [
        "POST /api/chat",
        "POST /api/tts",
        "GET /api/health",
        "POST /api/conversation",
        "GET /api/memories",
        "DELETE /api/memories",
        "DELETE /api/memories/{id}",
        "GET /api/plans",
        "POST /api/plans",
        "GET|PATCH|DELETE /api/plans/{id}",
        "POST /api/plans/{id}/steps",
        "PATCH|DELETE /api/plans/{id}/steps/{step_id}",
    ]
    if settings.debug_endpoints():
        endpoints += ["GET /api/debug", "GET /api/test"]
    return web.json_response(
        {"message": "Zoxaa API server", "version": VERSION, "endpoints": endpoints}
    )


# -- Conversation and memories -------------------------------------------------


async def _conversation(request: web.Request) -> web.Response:
    """POST /api/conversation: one turn through ChatService."""
    payload = await _read_json(request)
    session_id = payload.get("sessionId") or DEFAULT_SESSION
    reply = await request.app[CHAT_SERVICE].send_message(str(session_id), payload.get("message"))
    return web.json_response(reply.to_dict())


async def _list_memories(request: web.Request) -> web.Response:
    """GET /api/memories?q=&limit=: relevant memories for q, else the latest."""
    store = request.app[MEMORY_STORE]
    limit = _int_param(request, "limit", DEFAULT_MEMORY_LIMIT)
    query = request.query.get("q", "").strip()
    if query:
        memories = await get_relevant_memories(query, limit, store=store)
    else:
        memories = (await store.list_all())[-limit:] if limit else []
    return web.json_response({"memories": [m.to_public() for m in memories]})


async def _delete_memory(request: web.Request) -> web.Response:
    memory_id = request.match_info["memory_id"]
    if not await request.app[MEMORY_STORE].delete(memory_id):
        raise NotFoundError(f"Memory {memory_id} not found")
    return web.json_response({"deleted": True})


async def _clear_memories(request: web.Request) -> web.Response:
    count = await request.app[MEMORY_STORE].clear()
    return web.json_response({"deleted": count})


# -- Plans ---------------------------------------------------------------------


def _plan_or_404(plan: Plan | None, plan_id: str) -> web.Response:
    if plan is None:
        raise NotFoundError(f"Plan {plan_id} not found")
    return web.json_response(plan.to_dict())


async def _list_plans(request: web.Request) -> web.Response:
    status = request.query.get("status")
    try:
        plans = await request.app[PLAN_STORE].list_plans(status or None)
    except ValueError:
        raise InvalidRequestError(f"Unknown plan status: {status}") from None
    return web.json_response({"plans": [plan.to_dict() for plan in plans]})


async def _create_plan(request: web.Request) -> web.Response:
    """POST /api/plans: optionally asks the model for the steps."""
    payload = await _read_json(request)
    title = payload.get("title")
    if not isinstance(title, str) or not title.strip():
        raise InvalidRequestError("title is required")

    try:
        plan = Plan(
            title=title.strip(),
            description=optional_text("description", payload.get("description"), ""),
            goals=string_list("goals", payload.get("goals")),
            steps=step_list(payload.get("steps")),
            status=payload.get("status") or PlanStatus.ACTIVE,
            category=optional_text("category", payload.get("category")),
            tags=string_list("tags", payload.get("tags")),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidRequestError(f"Invalid plan: {exc}") from None

    if not plan.steps and payload.get("generateSteps"):
        plan.steps = await generate_plan_steps(plan.title, plan.description, plan.goals)

    await request.app[PLAN_STORE].create_plan(plan)
    return web.json_response(plan.to_dict(), status=201)


async def _get_plan(request: web.Request) -> web.Response:
    plan_id = request.match_info["plan_id"]
    return _plan_or_404(await request.app[PLAN_STORE].get_plan(plan_id), plan_id)


async def _update_plan(request: web.Request) -> web.Response:
    plan_id = request.match_info["plan_id"]
    payload = await _read_json(request)
    try:
        plan = await request.app[PLAN_STORE].update_plan(plan_id, **payload)
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidRequestError(str(exc)) from None
    return _plan_or_404(plan, plan_id)


async def _delete_plan(request: web.Request) -> web.Response:
    plan_id = request.match_info["plan_id"]
    if not await request.app[PLAN_STORE].delete_plan(plan_id):
        raise NotFoundError(f"Plan {plan_id} not found")
    return web.json_response({"deleted": True})


async def _add_step(request: web.Request) -> web.Response:
    plan_id = request.match_info["plan_id"]
    payload = await _read_json(request)
    payload.pop("id", None)
    try:
        step = PlanStep.from_dict(payload)
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidRequestError(f"Invalid step: {exc}") from None
    plan = await request.app[PLAN_STORE].add_step(plan_id, step)
    if plan is None:
        raise NotFoundError(f"Plan {plan_id} not found")
    return web.json_response(plan.to_dict(), status=201)


async def _update_step(request: web.Request) -> web.Response:
    plan_id = request.match_info["plan_id"]
    step_id = request.match_info["step_id"]
    payload = await _read_json(request)
    try:
        plan = await request.app[PLAN_STORE].update_step(plan_id, step_id, **payload)
    except (TypeError, ValueError) as exc:
        raise InvalidRequestError(str(exc)) from None
    if plan is None:
        raise NotFoundError(f"Step {step_id} not found in plan {plan_id}")
    return web.json_response(plan.to_dict())


async def _delete_step(request: web.Request) -> web.Response:
    plan_id = request.match_info["plan_id"]
    step_id = request.match_info["step_id"]
    plan = await request.app[PLAN_STORE].delete_step(plan_id, step_id)
    if plan is None:
        raise NotFoundError(f"Step {step_id} not found in plan {plan_id}")
    return web.json_response(plan.to_dict())


# -- Application ---------------------------------------------------------------


async def _drain_background(app: web.Application) -> None:
    await app[CHAT_SERVICE].drain()


def _create_web_app(
    *,
    memory_store: MemoryStore | None = None,
    conversation_store: ConversationStore | None = None,
    plan_store: PlanStore | None = None,
    chat_service: ChatService | None = None,
) -> web.Application:
    """Build the aiohttp Application with routes."""
    app = web.Application(middlewares=[_cors_middleware, _error_middleware])
    app[MEMORY_STORE] = memory_store or MemoryStore.get()
    app[PLAN_STORE] = plan_store or PlanStore.get()
    app[CHAT_SERVICE] = chat_service or ChatService(
        memory_store=app[MEMORY_STORE],
        conversation_store=conversation_store or ConversationStore.get(),
    )
    app.on_cleanup.append(_drain_background)

    app.router.add_get("/", _index)
    app.router.add_get("/api", _index)
    app.router.add_post("/api/chat", _chat)
    app.router.add_post("/api/tts", _tts)
    app.router.add_get("/api/health", _health)

    app.router.add_post("/api/conversation", _conversation)
    app.router.add_get("/api/memories", _list_memories)
    app.router.add_delete("/api/memories", _clear_memories)
    app.router.add_delete("/api/memories/{memory_id}", _delete_memory)

    app.router.add_get("/api/plans", _list_plans)
    app.router.add_post("/api/plans", _create_plan)
    app.router.add_get("/api/plans/{plan_id}", _get_plan)
    app.router.add_patch("/api/plans/{plan_id}", _update_plan)
    app.router.add_delete("/api/plans/{plan_id}", _delete_plan)
    app.router.add_post("/api/plans/{plan_id}/steps", _add_step)
    app.router.add_patch("/api/plans/{plan_id}/steps/{step_id}", _update_step)
    app.router.add_delete("/api/plans/{plan_id}/steps/{step_id}", _delete_step)

    if settings.debug_endpoints():
        app.router.add_get("/api/debug", _debug)
        app.router.add_get("/api/test", _test)
        logger.info("Debug endpoints registered at /api/debug and /api/test")

    return app


class ApiServer:
    """Manages the aiohttp server lifecycle."""

    def __init__(self, host: str | None = None, port: int | None = None) -> None:
        self.host = host or settings.host
        self.port = settings.port if port is None else port
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        app = _create_web_app()
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info(
            "Zoxaa API listening on %s:%d (environment: %s)",
            self.host,
            self.port,
            settings.environment,
        )

    async def stop(self) -> None:
        """Shut down the server gracefully."""
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Zoxaa API server stopped")
