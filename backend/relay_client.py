"""
Agent-side publisher for the relay server.

Slides and messages are queued and POSTed by a single worker task, so callers
never wait on the network and the relay sees events in the order they were
published. A failed or slow delivery is logged and dropped; the voice session
carries on without the slide.
"""
import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp

from slides import SlideData

logger = logging.getLogger(__name__)

SLIDE_UPDATE_PATH = "/api/agent/slide-update"
MESSAGE_PATH = "/api/agent/message"


class SlideRelayClient:
    def __init__(self, base_url: str, timeout_seconds: float = 3.0, session: Optional[aiohttp.ClientSession] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session = session
        self._owns_session = session is None
        self._queue: asyncio.Queue = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None

    def start(self):
        if self._worker is not None:
            return
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        self._worker = asyncio.create_task(self._run())
        logger.info(f"Relay client started for {self.base_url}")

    def publish_slide(self, room_name: str, slide: SlideData):
        self._enqueue(SLIDE_UPDATE_PATH, {"roomName": room_name, "slideData": slide.to_wire()})

    def publish_message(self, room_name: str, message: str, message_type: str = "agent-speech"):
        self._enqueue(MESSAGE_PATH, {"roomName": room_name, "message": message, "type": message_type})

    def _enqueue(self, path: str, payload: Dict[str, Any]):
        if self._worker is None:
            logger.warning(f"Relay client not started; dropping POST {path} for room {payload.get('roomName')}")
            return
        self._queue.put_nowait((path, payload))

    async def _run(self):
        while True:
            path, payload = await self._queue.get()
            try:
                await self._post(path, payload)
            finally:
                self._queue.task_done()

    async def _post(self, path: str, payload: Dict[str, Any]) -> bool:
        url = f"{self.base_url}{path}"
        try:
            async with self._session.post(url, json=payload, timeout=self.timeout) as response:
                if response.status >= 400:
                    body = await response.text()
                    logger.warning(f"Relay rejected POST {path} for room {payload.get('roomName')}: {response.status} {body}")
                    return False
                return True
        except asyncio.TimeoutError:
            logger.warning(f"Relay POST {path} timed out after {self.timeout.total}s; event dropped.")
        except aiohttp.ClientError as e:
            logger.warning(f"Relay POST {path} failed: {e}")
        return False

    async def aclose(self):
        """Gives queued events one timeout's worth of time to go out, then shuts down."""
        if self._worker is not None:
            try:
                await asyncio.wait_for(self._queue.join(), timeout=self.timeout.total)
            except asyncio.TimeoutError:
                logger.warning(f"Dropping {self._queue.qsize()} undelivered relay event(s) on shutdown.")
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
