"""Chat relay socket: `/ws?token=<bearer token>`.

Frames in both directions are JSON objects `{"event": ..., "data": {...}}`.
Client events: join-chat, leave-chat, send-message, update-location.
Server events: joined, new-message, message-sent, location-updated,
presence, error.
"""
import json
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ValidationError

from ..core.errors import FridgeShareError, Unauthorized, ValidationFailed
from ..core.logging import get_logger
from ..core.security import user_from_token
from ..db.base import SessionLocal
from ..models.database import User
from ..schemas.transactions import ChatMessageCreate, LiveLocation
from ..services.chat_relay import ConnectionRegistry
from ..services.transactions import TransactionService, message_to_dict
from .deps import get_chat_registry

logger = get_logger(__name__)

router = APIRouter()

# Closed before accept when the token does not resolve to a user
POLICY_VIOLATION = 1008


def _transaction_id(data: Dict[str, Any]) -> UUID:
    try:
        return UUID(str(data.get("transaction_id")))
    except (TypeError, ValueError):
        raise ValidationFailed("transaction_id required")


def _parse(model, data: Dict[str, Any]) -> BaseModel:
    """Validate a frame body with the same schema the HTTP route uses."""
    try:
        return model.model_validate(data)
    except ValidationError as e:
        error = e.errors()[0]
        field = ".".join(str(part) for part in error["loc"])
        raise ValidationFailed(f"{field}: {error['msg']}" if field else error["msg"])


class ChatSession:
    """One authenticated socket. Each event runs in its own database session."""

    def __init__(self, websocket: WebSocket, registry: ConnectionRegistry, user_id, username: str):
        self.websocket = websocket
        self.registry = registry
        self.user_id = user_id
        self.username = username

    async def send(self, event: str, data: Any) -> None:
        await self.websocket.send_json({"event": event, "data": data})

    async def handle(self, event: Optional[str], data: Dict[str, Any]) -> None:
        handlers = {
            "join-chat": self.join,
            "leave-chat": self.leave,
            "send-message": self.send_message,
            "update-location": self.update_location,
        }
        handler = handlers.get(event)
        if handler is None:
            raise ValidationFailed(f"Unknown event: {event}")
        await handler(data)

    async def join(self, data: Dict[str, Any]) -> None:
        room_id = _transaction_id(data)
        with SessionLocal() as db:
            user = self._user(db)
            service = TransactionService(db)
            service.set_presence(room_id, user, True)
            history = [message_to_dict(m, room_id) for m in service.messages(room_id, user)]
        self.registry.join(room_id, self.username, self.websocket)
        await self.send("joined", {
            "transaction_id": str(room_id),
            "messages": history,
            "online": sorted(self.registry.online_users(room_id)),
        })
        await self.registry.broadcast(room_id, "presence",
                                      {"transaction_id": str(room_id), "username": self.username, "online": True},
                                      exclude=self.websocket)

    async def leave(self, data: Dict[str, Any]) -> None:
        room_id = _transaction_id(data)
        username = self.registry.leave(room_id, self.websocket)
        if username:
            await self.went_offline(room_id)

    async def send_message(self, data: Dict[str, Any]) -> None:
        room_id = _transaction_id(data)
        if not self.registry.is_joined(room_id, self.websocket):
            raise ValidationFailed("Join the chat first")
        body = _parse(ChatMessageCreate, data)
        with SessionLocal() as db:
            message = TransactionService(db).send_message(
                room_id, self._user(db),
                content=body.content,
                message_type=body.type,
                location=body.location.model_dump() if body.location else None,
            )
            payload = message_to_dict(message, room_id)
        delivered = await self.registry.broadcast(room_id, "new-message", payload, exclude=self.websocket)
        await self.send("message-sent", {**payload, "delivered": delivered})

    async def update_location(self, data: Dict[str, Any]) -> None:
        room_id = _transaction_id(data)
        point = _parse(LiveLocation, data)
        with SessionLocal() as db:
            update = TransactionService(db).update_live_location(room_id, self._user(db),
                                                                 point.latitude, point.longitude)
        await self.registry.broadcast(room_id, "location-updated", update, exclude=self.websocket)

    async def went_offline(self, room_id) -> None:
        with SessionLocal() as db:
            try:
                TransactionService(db).set_presence(room_id, self._user(db), False)
            except FridgeShareError as e:
                logger.debug("Presence update skipped for %s in %s: %s", self.username, room_id, e.detail)
        await self.registry.broadcast(room_id, "presence",
                                      {"transaction_id": str(room_id), "username": self.username, "online": False})

    def _user(self, db) -> User:
        user = db.get(User, self.user_id)
        if user is None:
            raise Unauthorized("Invalid token")
        return user


@router.websocket("/ws")
async def chat_socket(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
    registry: ConnectionRegistry = Depends(get_chat_registry),
):
    with SessionLocal() as db:
        try:
            user = user_from_token(db, token)
        except Unauthorized as e:
            logger.info("Rejected chat socket: %s", e.detail)
            await websocket.close(code=POLICY_VIOLATION)
            return
        session = ChatSession(websocket, registry, user.id, user.username)

    await websocket.accept()
    logger.debug("Chat socket opened for %s", session.username)
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = json.loads(raw)
                if not isinstance(frame, dict):
                    raise ValueError("frame must be an object")
            except ValueError:
                await session.send("error", {"detail": "Malformed frame", "status": 400})
                continue
            data = frame.get("data") if isinstance(frame.get("data"), dict) else {}
            try:
                await session.handle(frame.get("event"), data)
            except FridgeShareError as e:
                await session.send("error", {"event": frame.get("event"), "detail": e.detail,
                                             "status": e.status_code})
    except WebSocketDisconnect:
        pass
    finally:
        for room_id, _ in registry.disconnect(websocket):
            await session.went_offline(UUID(room_id))
        logger.debug("Chat socket closed for %s", session.username)
