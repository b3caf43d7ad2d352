# talkpair/client/signaling.py
import json
import logging
from collections import defaultdict
from urllib.parse import urlencode

import websockets
from websockets.exceptions import ConnectionClosed

logger = logging.getLogger(__name__)


class SignalingClient:
    """
    서버 /ws/calls/ 에 붙는 headless 클라이언트.
    이벤트 envelope: {"event": "...", "data": {...}}

        client = SignalingClient("ws://localhost:8000/ws/calls/", token=jwt)
        client.on("call_matched", handle_match)
        await client.connect()
        await client.emit("user_online", {"userId": 1})
        await client.run()
    """

    def __init__(self, url: str, token: str = None, *, connector=None):
        if token:
            sep = "&" if "?" in url else "?"
            url = f"{url}{sep}{urlencode({'token': token})}"
        self.url = url
        self._connector = connector or websockets.connect
        self._handlers = defaultdict(list)
        self._ws = None

    def on(self, event: str, handler=None):
        # client.on("x", fn) 또는 @client.on("x") 둘 다 가능
        if handler is None:
            def decorator(fn):
                self._handlers[event].append(fn)
                return fn
            return decorator
        self._handlers[event].append(handler)
        return handler

    def off(self, event: str, handler) -> None:
        handlers = self._handlers.get(event) or []
        if handler in handlers:
            handlers.remove(handler)

    async def connect(self):
        self._ws = await self._connector(self.url)
        return self

    async def emit(self, event: str, data: dict = None) -> None:
        if self._ws is None:
            raise RuntimeError("signaling client is not connected")
        await self._ws.send(json.dumps({"event": event, "data": data or {}}))

    async def run(self) -> None:
        try:
            async for raw in self._ws:
                await self.dispatch(raw)
        except ConnectionClosed as e:
            logger.info("signaling connection closed: %s", e)

    async def dispatch(self, raw) -> None:
        try:
            message = json.loads(raw)
            event = message["event"]
            data = message.get("data") or {}
        except (ValueError, KeyError, TypeError):
            logger.warning("ignoring malformed server message: %r", raw)
            return

        if event == "error":
            logger.warning("server error: %s", data.get("message"))

        for handler in list(self._handlers.get(event) or []):
            try:
                await handler(data)
            except Exception:
                logger.exception("handler for %s failed", event)

    async def close(self) -> None:
        if self._ws is not None:
            await self._ws.close()
            self._ws = None
