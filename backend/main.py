import json
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Dict, Optional, Any

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel, Field
from starlette.websockets import WebSocketState, WebSocketDisconnect

from config import settings
from lessons import CatalogError, LessonCatalog, load_catalog
from rooms import ClientConnection, RoomRegistry, SlideEventRelay
from slides import SlideData, SlideKind, now_ms, resolve_slide

# --- Basic Setup ---
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# --- Global Variables (Initialized in lifespan) ---
catalog: Optional[LessonCatalog] = None
registry: Optional[RoomRegistry] = None
relay: Optional[SlideEventRelay] = None


# --- FastAPI Lifespan Manager (for startup and shutdown) ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    global catalog, registry, relay
    logger.info("--- Relay Startup Initiated ---")
    try:
        catalog = load_catalog(settings.LESSON_CATALOG_PATH)
    except CatalogError as e:
        logger.error(f"!!! STARTUP FAILED !!! Lesson catalog is unusable: {e}", exc_info=True)
        raise
    registry = RoomRegistry()
    relay = SlideEventRelay(registry)
    logger.info(f"Relay ready with {len(catalog)} lessons: {', '.join(catalog.keys())}")

    yield
    logger.info("--- Relay Shutdown ---")


# --- FastAPI App Initialization ---
app = FastAPI(lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class SlideUpdateRequest(BaseModel):
    roomName: str = Field(min_length=1)
    slideData: SlideData


class AgentMessageRequest(BaseModel):
    roomName: str = Field(min_length=1)
    message: str
    type: str = "agent-speech"


def slide_update_event(slide: SlideData, source: str) -> Dict[str, Any]:
    return {"type": "slide-update", "data": {"type": source, "slideData": slide.to_wire(), "timestamp": now_ms()}}


def agent_message_event(message: str, message_type: str, **extra) -> Dict[str, Any]:
    data = {"type": message_type, "message": message, "timestamp": now_ms()}
    data.update(extra)
    return {"type": "agent-message", "data": data}


# --- Agent Push Endpoints ---
@app.post("/api/agent/slide-update")
async def agent_slide_update(request_body: SlideUpdateRequest):
    try:
        logger.info(f"Agent sending slide update to room: {request_body.roomName}")
        await relay.publish(request_body.roomName, slide_update_event(request_body.slideData, "agent-slide"))
        return {"success": True}
    except Exception as e:
        logger.error(f"Error broadcasting slide update: {e}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": str(e)})


@app.post("/api/agent/message")
async def agent_message(request_body: AgentMessageRequest):
    try:
        logger.info(f"Agent sending message to room: {request_body.roomName}")
        await relay.publish(request_body.roomName, agent_message_event(request_body.message, request_body.type))
        return {"success": True}
    except Exception as e:
        logger.error(f"Error broadcasting message: {e}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": str(e)})


# --- Query Endpoints ---
@app.get("/api/lessons")
async def get_lessons():
    return {lesson.key: lesson.to_public_dict() for lesson in catalog}


@app.get("/api/lesson/{lesson_key}")
async def get_lesson(lesson_key: str):
    return catalog.lesson_or_fallback(lesson_key).to_public_dict()


@app.get("/api/slide/{lesson_key}/{slide_type}")
async def get_slide(lesson_key: str, slide_type: SlideKind):
    return resolve_slide(slide_type, catalog.lesson_or_fallback(lesson_key), 0).to_wire()


@app.get("/health")
async def health():
    counts = await registry.counts()
    return {"status": "ok", "rooms": counts, "connections": sum(counts.values())}


# --- HTML Frontend ---
html = """
<!DOCTYPE html>
<html>
<head>
    <title>HCV Training - Visual Slides</title>
    <style>
        body { font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif; margin: 0; background-color: #f0f2f5; }
        #header { background-color: #2c5aa0; color: white; padding: 16px 32px; font-size: 1.6em; font-weight: bold; }
        #room-bar { display: flex; gap: 10px; align-items: center; padding: 12px 32px; background: #fff; box-shadow: 0 1px 5px rgba(0,0,0,0.1); }
        #main-content { display: flex; gap: 20px; padding: 20px 32px; }
        #slide { flex: 2; background: white; border-radius: 10px; box-shadow: 0 4px 15px rgba(0,0,0,0.1); padding: 40px; min-height: 480px; }
        #slide h1 { color: #2c5aa0; text-align: center; }
        #slide li { font-size: 1.4em; margin: 14px 0; }
        .chart-bars { display: flex; align-items: flex-end; gap: 20px; height: 240px; }
        .chart-bar { background: #2c5aa0; color: white; min-width: 80px; text-align: center; border-radius: 4px 4px 0 0; }
        .bar-label { text-align: center; font-size: 0.9em; }
        .process-steps { display: flex; flex-wrap: wrap; gap: 24px; justify-content: center; }
        .process-step { background: #e3f2fd; border: 3px solid #2c5aa0; border-radius: 8px; padding: 16px; min-width: 140px; text-align: center; }
        #messages { flex: 1; background: #e0ffff; border-radius: 8px; padding: 16px; height: 520px; overflow-y: auto; }
        .message { margin: 8px 0; padding: 10px 14px; border-radius: 18px; background-color: #e4e6eb; }
    </style>
</head>
<body>
    <div id="header">HCV Training System</div>
    <div id="room-bar">
        <label for="room-name">Room:</label>
        <input id="room-name" value="hcv-training-room">
        <button id="join-button">Join</button>
        <span id="status">Not connected</span>
    </div>
    <div id="main-content">
        <div id="slide"><h1>Waiting for the first slide...</h1></div>
        <div id="messages"></div>
    </div>
    <script>
        const slideDiv = document.getElementById('slide');
        const messagesDiv = document.getElementById('messages');
        const statusSpan = document.getElementById('status');
        const scheme = window.location.protocol === 'https:' ? 'wss' : 'ws';
        const ws = new WebSocket(`${scheme}://${window.location.host}/ws`);

        ws.onopen = () => { statusSpan.textContent = 'Connected'; };
        ws.onclose = () => { statusSpan.textContent = 'Disconnected'; };

        document.getElementById('join-button').onclick = () => {
            const roomName = document.getElementById('room-name').value.trim();
            if (roomName) ws.send(JSON.stringify({ type: 'join-room', roomName }));
        };

        function escapeHtml(text) {
            const div = document.createElement('div');
            div.textContent = text;
            return div.innerHTML;
        }

        function renderSlide(slide) {
            let body = `<h1>${escapeHtml(slide.title)}</h1>`;
            if (slide.type === 'chart' && slide.chartData) {
                const maxValue = Math.max(...slide.chartData.map(d => d.value));
                body += '<div class="chart-bars">';
                slide.chartData.forEach(d => {
                    body += `<div><div class="chart-bar" style="height: ${(d.value / maxValue) * 200}px">${d.value.toLocaleString()}</div><div class="bar-label">${escapeHtml(d.label)}</div></div>`;
                });
                body += '</div>';
            } else if (slide.type === 'process' && slide.processSteps) {
                body += '<div class="process-steps">';
                slide.processSteps.forEach((step, i) => { body += `<div class="process-step"><b>${i + 1}</b><br>${escapeHtml(step)}</div>`; });
                body += '</div>';
            }
            body += '<ul>' + slide.content.map(item => `<li>${escapeHtml(item)}</li>`).join('') + '</ul>';
            slideDiv.innerHTML = body;
        }

        function addMessage(text) {
            const el = document.createElement('div');
            el.className = 'message';
            el.textContent = text;
            messagesDiv.appendChild(el);
            messagesDiv.scrollTop = messagesDiv.scrollHeight;
        }

        ws.onmessage = (event) => {
            const msg = JSON.parse(event.data);
            if (msg.type === 'slide-update') renderSlide(msg.data.slideData);
            else if (msg.type === 'agent-message') addMessage(msg.data.message);
            else if (msg.type === 'room-joined') statusSpan.textContent = `In room ${msg.roomName}`;
            else if (msg.type === 'error') addMessage(`Error: ${msg.message}`);
        };
    </script>
</body>
</html>
"""


# --- Client Channel ---
class RoomConnectionManager:
    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self.connection = ClientConnection(
            connection_id=uuid.uuid4().hex,
            websocket=websocket,
            outbox_size=settings.CLIENT_OUTBOX_SIZE,
            send_timeout=settings.CLIENT_SEND_TIMEOUT_SECONDS,
        )

    @property
    def connection_id(self) -> str:
        return self.connection.connection_id

    def send(self, message: Dict[str, Any]):
        self.connection.deliver(message)

    def send_error(self, text: str):
        self.send({"type": "error", "message": text})

    def lesson_key(self, data: dict) -> Optional[str]:
        lesson_key = data.get("lesson") or ""
        if not isinstance(lesson_key, str):
            self.send_error(f"lesson must be a string, got {lesson_key!r}")
            return None
        return lesson_key

    async def handle_text_message(self, data: dict):
        msg_type = data.get("type")
        if msg_type == "join-room":
            room_name = data.get("roomName")
            if not isinstance(room_name, str) or not room_name.strip():
                self.send_error("join-room requires a roomName.")
                return
            room_name = room_name.strip()
            await registry.join(self.connection, room_name)
            self.send({"type": "room-joined", "roomName": room_name})
            self.send(agent_message_event(
                "Welcome to HCV Training! I'm your AI assistant. Let's start learning about Housing Choice Vouchers.",
                "welcome",
            ))
        elif msg_type == "leave-room":
            room_name = await registry.leave(self.connection_id)
            self.send({"type": "room-left", "roomName": room_name})
        elif msg_type == "request-slide":
            lesson_key = self.lesson_key(data)
            if lesson_key is None:
                return
            try:
                slide_type = SlideKind(data.get("slideType", SlideKind.CONTENT.value))
                topic_index = int(data.get("topicIndex", 0))
            except (ValueError, TypeError, OverflowError):
                self.send_error(f"Unknown slide request: {data.get('slideType')!r} / {data.get('topicIndex')!r}")
                return
            logger.info(f"Slide requested: {lesson_key} - topic {topic_index} ({slide_type.value})")
            slide = resolve_slide(slide_type, catalog.lesson_or_fallback(lesson_key), max(topic_index, 0))
            self.send(slide_update_event(slide, "slide-generated"))
        elif msg_type == "start-lesson":
            lesson_key = self.lesson_key(data)
            if lesson_key is None:
                return
            logger.info(f"Lesson started: {lesson_key}")
            title = catalog.lesson_or_fallback(lesson_key).title
            self.send(agent_message_event(
                f"Great! Let's begin the {title} lesson. I'll be showing you visual slides as we go through each topic.",
                "lesson-started",
                lesson=lesson_key,
            ))
        elif msg_type == "next-topic":
            lesson_key = self.lesson_key(data)
            if lesson_key is None:
                return
            logger.info(f"Next topic requested for: {lesson_key}")
            title = catalog.lesson_or_fallback(lesson_key).title
            self.send(agent_message_event(
                f"Moving to the next topic in {title}. Let me explain this in detail...",
                "topic-progress",
                lesson=lesson_key,
            ))
        else:
            self.send_error(f"Unknown message type: {msg_type!r}")

    async def run(self):
        self.connection.start()
        try:
            while self.websocket.client_state == WebSocketState.CONNECTED:
                message = await self.websocket.receive()
                if message.get("type") == "websocket.disconnect":
                    break
                if message.get("text") is not None:
                    try:
                        data = json.loads(message["text"])
                    except json.JSONDecodeError:
                        self.send_error("Messages must be JSON objects.")
                        continue
                    if not isinstance(data, dict):
                        self.send_error("Messages must be JSON objects.")
                        continue
                    await self.handle_text_message(data)
        except WebSocketDisconnect:
            logger.info(f"Client {self.connection_id} disconnected.")
        except Exception as e:
            logger.error(f"Error in connection manager: {e}", exc_info=True)
        finally:
            await registry.leave(self.connection_id)
            await self.connection.close()
            if self.websocket.client_state == WebSocketState.CONNECTED:
                try:
                    await self.websocket.close(code=1011)
                except RuntimeError as e:
                    logger.warning(f"Could not close WebSocket {self.connection_id}: {e}")
            logger.info(f"WebSocket connection {self.connection_id} closed.")


# --- Main Endpoints ---
@app.get("/")
async def get(): return HTMLResponse(html)

@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await websocket.accept()
    logger.info("WebSocket connection established.")
    manager = RoomConnectionManager(websocket)
    await manager.run()
