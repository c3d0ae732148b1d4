from fastapi import WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ValidationError, field_validator
from typing import Dict, List, Optional
import json
import time
import uuid
import asyncio
import logging
import re

import config
from errors import InvalidPayload, TriviaError
from game_session import GameSession, Notifier
from room_registry import RoomRegistry

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Inbound payloads
# ---------------------------------------------------------------------------

class RoomPayload(BaseModel):
    room_id: str

    @field_validator('room_id', mode='before')
    @classmethod
    def coerce_room_id(cls, v) -> str:
        if isinstance(v, int) and not isinstance(v, bool):
            v = str(v)
        if not isinstance(v, str):
            raise ValueError('room_id must be a string')
        return v.strip()


class CreateRoomPayload(BaseModel):
    round_plan: List[int]
    mode: int = 1
    question_time_limit: int = config.DEFAULT_QUESTION_TIME_LIMIT
    questions_per_round: int = config.DEFAULT_QUESTIONS_PER_ROUND

    @field_validator('round_plan')
    @classmethod
    def validate_round_plan(cls, v: List[int]) -> List[int]:
        if not v or len(v) > config.MAX_ROUNDS:
            raise ValueError(f'Round plan must have 1-{config.MAX_ROUNDS} categories')
        if any(category < 1 for category in v):
            raise ValueError('Category ids must be positive')
        return v

    @field_validator('question_time_limit')
    @classmethod
    def validate_time_limit(cls, v: int) -> int:
        if v < 0 or v > config.MAX_QUESTION_TIME_LIMIT:
            raise ValueError(f'Question time limit must be 0-{config.MAX_QUESTION_TIME_LIMIT} seconds')
        return v

    @field_validator('questions_per_round')
    @classmethod
    def validate_questions_per_round(cls, v: int) -> int:
        if v < 1 or v > config.MAX_QUESTIONS_PER_ROUND:
            raise ValueError(f'Questions per round must be 1-{config.MAX_QUESTIONS_PER_ROUND}')
        return v


class JoinPayload(RoomPayload):
    name: str

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        # Sanitize: strip HTML tags and control characters
        v = re.sub(r'<[^>]+>', '', v)
        v = re.sub(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]', '', v).strip()
        if not v or len(v) > config.MAX_PLAYER_NAME_LENGTH:
            raise ValueError(f'Name must be 1-{config.MAX_PLAYER_NAME_LENGTH} characters')
        return v


class NextQuestionPayload(RoomPayload):
    question_id: int


class SubmitAnswerPayload(RoomPayload):
    answer: int


def _describe_validation_error(e: ValidationError) -> str:
    first = e.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or "payload"
    return f"{location}: {first.get('msg', 'invalid value')}"


# ---------------------------------------------------------------------------
# Connections and event dispatch
# ---------------------------------------------------------------------------

class SocketManager(Notifier):
    def __init__(self, registry: RoomRegistry):
        self.registry = registry
        self.session = GameSession(registry, self)
        self.connections: Dict[str, WebSocket] = {}
        self.msg_timestamps: Dict[str, list] = {}
        self.allowed_origins: List[str] = []
        self._cleanup_task: Optional[asyncio.Task] = None
        self._handlers = {
            "CREATE_ROOM": self._on_create_room,
            "START_QUIZ": self._on_start_quiz,
            "JOIN": self._on_join,
            "NEXT_QUESTION": self._on_next_question,
            "SUBMIT_ANSWER": self._on_submit_answer,
            "END_OF_ROUND": self._on_end_of_round,
            "NEXT_ROUND": self._on_next_round,
            "END_OF_GAME": self._on_end_of_game,
        }

    def start_cleanup_loop(self):
        """Start the background room cleanup task when rooms can expire."""
        if self._cleanup_task is None and config.ROOM_TTL_SECONDS > 0:
            self._cleanup_task = asyncio.create_task(self._cleanup_expired_rooms())

    def stop_cleanup_loop(self):
        if self._cleanup_task:
            self._cleanup_task.cancel()
            self._cleanup_task = None

    async def _cleanup_expired_rooms(self):
        """Periodically remove expired rooms."""
        while True:
            try:
                await asyncio.sleep(config.ROOM_CLEANUP_INTERVAL)
                self.registry.evict_expired()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Error in room cleanup loop")

    # --- Notifier -----------------------------------------------------------

    async def send_to(self, connection_id: str, message: dict):
        ws = self.connections.get(connection_id)
        if ws is None:
            logger.debug("Dropping %s for disconnected client %s", message.get("type"), connection_id)
            return
        try:
            await ws.send_json(message)
        except Exception:
            logger.debug("Send to client %s failed, dropping connection", connection_id)
            self._remove_connection(connection_id)

    async def broadcast(self, connection_ids: List[str], message: dict):
        for connection_id in connection_ids:
            await self.send_to(connection_id, message)

    # --- Connection lifecycle ----------------------------------------------

    def _remove_connection(self, client_id: str):
        """Forget the socket. The player's record stays in its room."""
        self.connections.pop(client_id, None)
        self.msg_timestamps.pop(client_id, None)

    def _rate_limited(self, client_id: str) -> bool:
        now = time.time()
        timestamps = self.msg_timestamps.setdefault(client_id, [])
        timestamps[:] = [t for t in timestamps if now - t < 1.0]
        if len(timestamps) >= config.WS_RATE_LIMIT_PER_SEC:
            return True
        timestamps.append(now)
        return False

    async def connect(self, websocket: WebSocket):
        # Validate WebSocket origin
        origin = websocket.headers.get("origin", "")
        if self.allowed_origins and origin not in self.allowed_origins:
            logger.warning("Rejected WebSocket from unauthorized origin: %s", origin)
            await websocket.close(code=1008)
            return

        await websocket.accept()
        client_id = uuid.uuid4().hex
        self.connections[client_id] = websocket
        logger.info("Client %s connected (Total connections: %d)", client_id, len(self.connections))
        await websocket.send_json({"type": "CONNECTED", "connection_id": client_id})

        try:
            while True:
                data = await websocket.receive_text()

                # Enforce message size limit
                if len(data) > config.MAX_WS_MESSAGE_SIZE:
                    await websocket.send_json({"type": "ERROR", "message": "Message too large"})
                    continue

                if self._rate_limited(client_id):
                    await websocket.send_json({"type": "ERROR", "message": "Too many messages"})
                    continue

                try:
                    message = json.loads(data)
                except json.JSONDecodeError:
                    logger.warning("Malformed JSON from client %s: %s", client_id, data[:100])
                    await websocket.send_json({"type": "ERROR", "message": "Invalid message format"})
                    continue
                if not isinstance(message, dict):
                    await websocket.send_json({"type": "ERROR", "message": "Invalid message format"})
                    continue

                await self.handle_message(client_id, message)
        except WebSocketDisconnect:
            logger.info("Client %s disconnected", client_id)
        except Exception:
            logger.exception("WebSocket error for client %s", client_id)
        finally:
            self._remove_connection(client_id)

    async def handle_message(self, client_id: str, message: dict):
        """Run one inbound event and answer with an ACK carrying error or result."""
        msg_type = message.get("type")
        handler = self._handlers.get(msg_type) if isinstance(msg_type, str) else None
        if handler is None:
            await self.send_to(client_id, {"type": "ERROR", "message": f"Unknown message type: {msg_type}"})
            return

        result = None
        error = None
        try:
            result = await handler(client_id, message)
        except ValidationError as e:
            error = InvalidPayload(_describe_validation_error(e)).to_dict()
        except TriviaError as e:
            logger.warning("%s from client %s failed: %s", msg_type, client_id, e.message)
            error = e.to_dict()
        except Exception:
            logger.exception("Unexpected error handling %s from client %s", msg_type, client_id)
            error = {"code": "internal_error", "message": "Internal server error"}

        await self.send_to(client_id, {
            "type": "ACK",
            "event": msg_type,
            "request_id": message.get("request_id"),
            "error": error,
            "result": result,
        })

    # --- Event handlers ----------------------------------------------------

    async def _on_create_room(self, client_id: str, message: dict) -> dict:
        payload = CreateRoomPayload.model_validate(message)
        room = await self.session.create_room(
            client_id, payload.round_plan, payload.mode,
            question_time_limit=payload.question_time_limit,
            questions_per_round=payload.questions_per_round,
        )
        return room.snapshot()

    async def _on_start_quiz(self, client_id: str, message: dict) -> dict:
        payload = RoomPayload.model_validate(message)
        return {"message": await self.session.start_quiz(payload.room_id, client_id)}

    async def _on_join(self, client_id: str, message: dict) -> dict:
        payload = JoinPayload.model_validate(message)
        room = await self.session.join(payload.room_id, client_id, payload.name)
        return room.snapshot(include_answers=False)

    async def _on_next_question(self, client_id: str, message: dict) -> dict:
        payload = NextQuestionPayload.model_validate(message)
        room = await self.session.advance_question(payload.room_id, client_id, payload.question_id)
        return room.snapshot()

    async def _on_submit_answer(self, client_id: str, message: dict) -> dict:
        payload = SubmitAnswerPayload.model_validate(message)
        return {"message": await self.session.submit_answer(payload.room_id, client_id, payload.answer)}

    async def _on_end_of_round(self, client_id: str, message: dict) -> dict:
        payload = RoomPayload.model_validate(message)
        room = await self.session.end_of_round(payload.room_id, client_id)
        return room.snapshot()

    async def _on_next_round(self, client_id: str, message: dict) -> dict:
        payload = RoomPayload.model_validate(message)
        room = await self.session.next_round(payload.room_id, client_id)
        return room.snapshot()

    async def _on_end_of_game(self, client_id: str, message: dict) -> dict:
        payload = RoomPayload.model_validate(message)
        room = await self.session.end_of_game(payload.room_id, client_id)
        return room.snapshot()
