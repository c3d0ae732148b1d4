from fastapi import FastAPI, WebSocket, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import uvicorn
import logging
import socket as socketlib

import config
config.setup_logging()

from room_registry import RoomRegistry
from round_generator import RoundGenerator
from socket_manager import SocketManager
from trivia_source import CATEGORIES, trivia_source

logger = logging.getLogger(__name__)

registry = RoomRegistry(RoundGenerator(trivia_source))
socket_manager = SocketManager(registry)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting trivia backend")
    socket_manager.start_cleanup_loop()
    yield
    socket_manager.stop_cleanup_loop()
    logger.info("Shutting down trivia backend")


app = FastAPI(title="Trivia Game Backend", lifespan=lifespan)


def get_local_ip():
    try:
        s = socketlib.socket(socketlib.AF_INET, socketlib.SOCK_DGRAM)
        s.connect(("8.8.8.8", 80))
        ip = s.getsockname()[0]
        s.close()
        return ip
    except Exception:
        return "127.0.0.1"


@app.get("/categories")
async def get_categories():
    return {"categories": [{"id": cid, "name": name} for cid, name in CATEGORIES.items()]}


@app.get("/room/{room_id}")
async def get_room(room_id: str):
    room = registry.get(room_id)
    if room is None:
        raise HTTPException(status_code=404, detail="Room not found")
    return room.snapshot(include_answers=False)


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await socket_manager.connect(websocket)


# Configure CORS
if config.ALLOWED_ORIGINS.strip():
    origins = [o.strip() for o in config.ALLOWED_ORIGINS.split(",")]
    socket_manager.allowed_origins = origins
else:
    local_ip = get_local_ip()
    origins = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        f"http://{local_ip}:3000",
    ]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=False,
    allow_methods=["GET"],
    allow_headers=["Content-Type"],
)


@app.get("/")
async def root():
    return {"message": "Trivia Game API is running"}


@app.get("/health")
async def health():
    return {"status": "healthy", "rooms": len(registry)}


if __name__ == "__main__":
    uvicorn.run("main:app", host=config.HOST, port=config.PORT, reload=True)
