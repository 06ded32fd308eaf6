"""Async HTTP API for the chat app.

Collaborators (memory manager, conversation store, upload store) are
injected through :func:`create_app` and stored on the application.
"""

from __future__ import annotations

import logging
from typing import Any

from aiohttp import web
from aiohttp.web_request import FileField
from pydantic import ValidationError

from src.config import settings
from src.conversations.models import DEFAULT_TITLE, Conversation
from src.conversations.store import ConversationStore
from src.memory.manager import MemoryManager
from src.memory.models import Message
from src.memory.store import MemoryBackendError, create_memory_store
from src.uploads import UploadStore
from src.web.chat import run_turn
from src.webhooks.registry import webhook_registry

logger = logging.getLogger(__name__)

MEMORY_KEY = web.AppKey("memory", MemoryManager)
CONVERSATIONS_KEY = web.AppKey("conversations", ConversationStore)
UPLOADS_KEY = web.AppKey("uploads", UploadStore)

DEFAULT_USER_ID = "anonymous"
DEFAULT_CONVERSATION_ID = "current"
FORM_OVERHEAD = 64 * 1024


# -- Helpers -----------------------------------------------------------------


def _user_id(request: web.Request, body: dict[str, Any] | None = None) -> str:
    """Caller identity: explicit userId, then X-Forwarded-For, then anonymous."""
    if body and body.get("userId"):
        return str(body["userId"])
    if request.query.get("userId"):
        return request.query["userId"]
    return request.headers.get("X-Forwarded-For") or DEFAULT_USER_ID


def _error(message: str, status: int) -> web.Response:
    return web.json_response({"error": message}, status=status)


async def _json_body(request: web.Request) -> dict[str, Any] | None:
    try:
        body = await request.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def _parse_messages(raw: Any) -> list[Message]:
    if not isinstance(raw, list):
        msg = "messages must be a list"
        raise ValueError(msg)
    return [Message.model_validate(m) for m in raw]


# -- Health ------------------------------------------------------------------


async def _health(request: web.Request) -> web.Response:
    """GET /health: basic liveness check."""
    return web.json_response({"status": "ok"})


# -- Chat --------------------------------------------------------------------


async def _handle_chat(request: web.Request) -> web.StreamResponse:
    """POST /api/chat: stream a reply to the conversation so far."""
    body = await _json_body(request)
    if body is None:
        return _error("invalid JSON", 400)
    try:
        messages = _parse_messages(body.get("messages"))
    except (ValueError, ValidationError):
        return _error("invalid messages", 400)

    user_id = _user_id(request, body)
    conversation_id = str(body.get("conversationId") or DEFAULT_CONVERSATION_ID)
    chunks = run_turn(request.app[MEMORY_KEY], user_id, conversation_id, messages)

    # Pull the first chunk before committing to a 200 so early failures
    # still produce an error status.
    try:
        first = await anext(chunks)
    except StopAsyncIteration:
        first = ""
    except Exception:
        logger.exception("Chat API error")
        return web.Response(status=500, text="Internal Server Error")

    response = web.StreamResponse(headers={"Content-Type": "text/plain; charset=utf-8"})
    await response.prepare(request)
    if first:
        await response.write(first.encode("utf-8"))
    try:
        async for chunk in chunks:
            await response.write(chunk.encode("utf-8"))
    except Exception:
        logger.exception("Chat stream interrupted for %s:%s", user_id, conversation_id)
    await response.write_eof()
    return response


# -- Conversations -----------------------------------------------------------


async def _list_conversations(request: web.Request) -> web.Response:
    """GET /api/conversations?userId=&q=: list or search."""
    store = request.app[CONVERSATIONS_KEY]
    user_id = _user_id(request)
    query = request.query.get("q")
    try:
        if query:
            conversations = await store.search(user_id, query)
        else:
            conversations = await store.list_for_user(user_id)
    except Exception:
        logger.exception("Error fetching conversations")
        return _error("Failed to fetch conversations", 500)
    return web.json_response({"conversations": [c.to_dict() for c in conversations]})


async def _create_conversation(request: web.Request) -> web.Response:
    """POST /api/conversations: create and return the new ID."""
    body = await _json_body(request)
    if body is None:
        return _error("invalid JSON", 400)
    try:
        messages = _parse_messages(body.get("messages") or [])
    except (ValueError, ValidationError):
        return _error("invalid messages", 400)

    conversation = Conversation(
        user_id=_user_id(request, body),
        title=body.get("title") or DEFAULT_TITLE,
        messages=messages,
    )
    try:
        conversation_id = await request.app[CONVERSATIONS_KEY].create(conversation)
    except Exception:
        logger.exception("Error creating conversation")
        return _error("Failed to create conversation", 500)
    return web.json_response({"conversationId": conversation_id})


async def _get_conversation(request: web.Request) -> web.Response:
    """GET /api/conversations/{id}."""
    conversation_id = request.match_info["id"]
    try:
        conversation = await request.app[CONVERSATIONS_KEY].get(conversation_id)
    except Exception:
        logger.exception("Error fetching conversation %s", conversation_id)
        return _error("Failed to fetch conversation", 500)
    if conversation is None:
        return _error("Conversation not found", 404)
    return web.json_response({"conversation": conversation.to_dict()})


async def _update_conversation(request: web.Request) -> web.Response:
    """PUT /api/conversations/{id}: update title and/or messages."""
    conversation_id = request.match_info["id"]
    body = await _json_body(request)
    if body is None:
        return _error("invalid JSON", 400)
    try:
        if "messages" in body:
            body["messages"] = _parse_messages(body["messages"])
    except (ValueError, ValidationError):
        return _error("invalid messages", 400)

    try:
        updated = await request.app[CONVERSATIONS_KEY].update(conversation_id, body)
    except Exception:
        logger.exception("Error updating conversation %s", conversation_id)
        return _error("Failed to update conversation", 500)
    if not updated:
        return _error("Conversation not found", 404)
    return web.json_response({"success": True})


async def _delete_conversation(request: web.Request) -> web.Response:
    """DELETE /api/conversations/{id}."""
    conversation_id = request.match_info["id"]
    try:
        await request.app[CONVERSATIONS_KEY].delete(conversation_id)
    except Exception:
        logger.exception("Error deleting conversation %s", conversation_id)
        return _error("Failed to delete conversation", 500)
    return web.json_response({"success": True})


# -- Uploads -----------------------------------------------------------------


async def _handle_upload(request: web.Request) -> web.Response:
    """POST /api/upload: multipart form with a ``file`` field."""
    uploads = request.app[UPLOADS_KEY]
    try:
        form = await request.post()
    except web.HTTPRequestEntityTooLarge:
        return _error(uploads.too_large_message(), 400)
    except ValueError:
        return _error("invalid form data", 400)

    field = form.get("file")
    if not isinstance(field, FileField):
        return _error("No file provided", 400)

    data = field.file.read()
    try:
        stored = uploads.save(field.filename or "upload", data, field.content_type)
    except ValueError as exc:
        return _error(str(exc), 400)
    except OSError:
        logger.exception("Upload error")
        return _error("Failed to upload file", 500)

    return web.json_response({"url": stored.url, "public_id": stored.public_id})


async def _serve_upload(request: web.Request) -> web.StreamResponse:
    """GET /uploads/{name}: return a stored upload."""
    try:
        path = request.app[UPLOADS_KEY].resolve(request.match_info["name"])
    except (ValueError, FileNotFoundError):
        return _error("not found", 404)
    return web.FileResponse(path)


# -- Webhooks ----------------------------------------------------------------


async def _handle_webhook(request: web.Request) -> web.Response:
    """POST /api/webhook: ``{"event": ..., "data": ...}``."""
    if settings.webhook_secret:
        secret = request.headers.get("X-Webhook-Secret", "")
        if secret != settings.webhook_secret:
            logger.warning("Webhook rejected: invalid secret")
            return _error("unauthorized", 401)

    body = await _json_body(request)
    if body is None:
        logger.warning("Webhook bad request: invalid JSON")
        return _error("invalid JSON", 400)

    event = str(body.get("event", ""))
    data = body.get("data") or {}
    try:
        await webhook_registry.dispatch(event, data if isinstance(data, dict) else {"value": data})
    except Exception:
        logger.exception("Webhook handler failed: event=%s", event)
        return _error("Webhook processing failed", 500)
    return web.json_response({"success": True})


# -- Memory ------------------------------------------------------------------


async def _search_memories(request: web.Request) -> web.Response:
    """GET /api/memory?userId=&q=: memory records matching ``q``."""
    user_id = _user_id(request)
    query = request.query.get("q", "")
    try:
        records = await request.app[MEMORY_KEY].search_memories(user_id, query)
    except MemoryBackendError:
        logger.exception("Memory search failed for %s", user_id)
        return _error("Memory backend unavailable", 503)
    return web.json_response(
        {"memories": [r.model_dump(mode="json", by_alias=True) for r in records]}
    )


async def _get_memory(request: web.Request) -> web.Response:
    """GET /api/memory/{conversation_id}?userId=."""
    user_id = _user_id(request)
    conversation_id = request.match_info["conversation_id"]
    try:
        record = await request.app[MEMORY_KEY].get_memory(user_id, conversation_id)
    except MemoryBackendError:
        logger.exception("Memory lookup failed for %s:%s", user_id, conversation_id)
        return _error("Memory backend unavailable", 503)
    if record is None:
        return _error("Memory not found", 404)
    return web.json_response({"memory": record.model_dump(mode="json", by_alias=True)})


# -- App ---------------------------------------------------------------------


def create_app(
    *,
    memory: MemoryManager | None = None,
    conversations: ConversationStore | None = None,
    uploads: UploadStore | None = None,
) -> web.Application:
    """Build the aiohttp Application. Missing collaborators come from settings."""
    import src.webhooks.events  # noqa: F401  (registers built-in handlers)

    uploads = uploads or UploadStore()
    # Room for multipart framing around a maximum-size file.
    app = web.Application(client_max_size=uploads.max_size + FORM_OVERHEAD)
    app[MEMORY_KEY] = memory or MemoryManager(create_memory_store(settings))
    app[CONVERSATIONS_KEY] = conversations or ConversationStore()
    app[UPLOADS_KEY] = uploads

    app.router.add_get("/health", _health)
    app.router.add_post("/api/chat", _handle_chat)
    app.router.add_get("/api/conversations", _list_conversations)
    app.router.add_post("/api/conversations", _create_conversation)
    app.router.add_get("/api/conversations/{id}", _get_conversation)
    app.router.add_put("/api/conversations/{id}", _update_conversation)
    app.router.add_delete("/api/conversations/{id}", _delete_conversation)
    app.router.add_post("/api/upload", _handle_upload)
    app.router.add_get("/uploads/{name}", _serve_upload)
    app.router.add_post("/api/webhook", _handle_webhook)
    app.router.add_get("/api/memory", _search_memories)
    app.router.add_get("/api/memory/{conversation_id}", _get_memory)
    return app