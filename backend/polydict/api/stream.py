"""
WebSocket endpoint for as-you-type querying.
"""

import asyncio
import json
import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ValidationError

from ..services.models import AUTO
from ..services.orchestrator import QueryOrchestrator, query_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["stream"])


async def _forward_snapshots(websocket: WebSocket, queue: asyncio.Queue) -> None:
    while True:
        snapshot = await queue.get()
        await websocket.send_json({"type": "sections", **snapshot.to_dict()})


class QueryMessage(BaseModel):
    text: str
    sourceLang: Optional[str] = None
    targetLang: Optional[str] = None


class LanguageMessage(BaseModel):
    targetLang: str


def _validation_message(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
    )


async def _handle_message(websocket: WebSocket, session: QueryOrchestrator, message: dict) -> None:
    msg_type = message.get("type")

    if msg_type == "query":
        query = QueryMessage.model_validate(message)
        session.submit(query.text, source_lang=query.sourceLang or AUTO, target_lang=query.targetLang or None)
    elif msg_type == "language":
        language = LanguageMessage.model_validate(message)
        session.override_target(language.targetLang)
    else:
        await websocket.send_json({"type": "error", "message": f"Unknown message type: {msg_type}"})


@router.websocket("/query/stream")
async def query_stream(websocket: WebSocket) -> None:
    """
    WebSocket endpoint for incremental query results.

    Client sends:
    - {"type": "query", "text": "...", "sourceLang": "auto", "targetLang": "en"} - on every text change
    - {"type": "language", "targetLang": "ja"} - re-dispatch current text to another target

    Server sends:
    - {"type": "sections", "sequence": 3, "detection_pending": false, "sections": [...], "notices": [...]}
    - {"type": "error", "message": "..."}
    """
    await websocket.accept()
    logger.info("Client connected to query stream")

    session = query_service.new_session()
    queue = session.subscribe()
    sender = asyncio.create_task(_forward_snapshots(websocket, queue))

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                await websocket.send_json({"type": "error", "message": "Invalid JSON"})
                continue
            if not isinstance(message, dict):
                await websocket.send_json({"type": "error", "message": "Expected a JSON object"})
                continue
            try:
                await _handle_message(websocket, session, message)
            except ValidationError as exc:
                await websocket.send_json({"type": "error", "message": _validation_message(exc)})
            except ValueError as exc:
                await websocket.send_json({"type": "error", "message": str(exc)})
    except WebSocketDisconnect:
        logger.info("Client disconnected from query stream")
    finally:
        session.unsubscribe(queue)
        sender.cancel()
        try:
            await sender
        except asyncio.CancelledError:
            pass
