"""FastAPI backend for the realtime sales coach."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from starlette.websockets import WebSocketDisconnect

from sales_coach.coaches import create_coach
from sales_coach.config import Config
from sales_coach.publisher import Publisher
from sales_coach.session import CoachSession

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    for item in Config.validate():
        logger.warning("[CONFIG] missing %s", item)
    yield


app = FastAPI(title="Realtime Sales Coach", lifespan=lifespan)

# CORS for the browser extension and local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _coach_for_session():
    try:
        return create_coach(Config.COACH_PROVIDER)
    except ValueError as e:
        logger.error("[COACH] %s, using heuristic insights only", e)
        return None


@app.get("/health")
async def health():
    """Report which external providers are configured."""
    coach = _coach_for_session()
    return {
        "status": "ok",
        "transcription": Config.get_deepgram_key() is not None,
        "coach": coach.name if coach else None,
        "missing": Config.validate(),
    }


@app.websocket("/ws")
async def coach_socket(websocket: WebSocket):
    """One coaching session per connection, torn down when the socket goes away."""
    await websocket.accept()
    session = CoachSession(Publisher(websocket.send_text), coach=_coach_for_session())
    logger.info("[SESSION] client connected %s", websocket.client)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            text = message.get("text")
            if text is None:
                # binary frames are not part of the protocol
                continue
            await session.handle_message(text)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("[SESSION] connection error")
    finally:
        await session.close()
        logger.info("[SESSION] client disconnected %s", websocket.client)

