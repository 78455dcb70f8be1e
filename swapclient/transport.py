# swapclient/transport.py
import asyncio
import logging
from typing import Any, Callable

import socketio

from .errors import TransportError
from .models import GatewayNode


class SocketTransport:
    """
    One Socket.IO connection to a Smart Node's /gateway namespace.

    Handlers are keyed by event name; a second `on()` for the same event
    replaces the first. `off_all()` detaches everything this transport
    registered, and `close()` is safe to call more than once.
    """
    def __init__(self, node: GatewayNode, wallet_id: str, logger: logging.Logger,
                 namespace: str = "/gateway", connect_timeout: float = 10.0):
        self.node = node
        self.wallet_id = wallet_id
        self.logger = logger
        self.namespace = namespace
        self.connect_timeout = connect_timeout
        self.sio = socketio.AsyncClient(reconnection=False, logger=False, engineio_logger=False)
        self.sio.on("disconnect", self._on_disconnect, namespace=namespace)

    @property
    def connected(self) -> bool:
        return self.sio.connected

    def on(self, event: str, handler: Callable[..., Any]):
        self.sio.on(event, handler, namespace=self.namespace)

    def off(self, event: str):
        self.sio.handlers.get(self.namespace, {}).pop(event, None)

    def off_all(self):
        self.sio.handlers.pop(self.namespace, None)

    async def connect(self):
        url = f"{self.node.url}?wallet={self.wallet_id}"
        try:
            await asyncio.wait_for(
                self.sio.connect(
                    url,
                    namespaces=[self.namespace],
                    transports=["websocket"],
                    wait_timeout=self.connect_timeout,
                ),
                timeout=self.connect_timeout,
            )
        except asyncio.TimeoutError as e:
            raise TransportError(f"WebSocket connect timeout ({self.connect_timeout:.0f}s) to {self.node.gateway_url}") from e
        except socketio.exceptions.SocketIOError as e:
            raise TransportError(f"WebSocket connect_error: {e}") from e
        self.logger.info(f"✓ connected to {self.node.url}")

    async def emit(self, event: str, data: Any):
        try:
            await self.sio.emit(event, data, namespace=self.namespace)
        except socketio.exceptions.SocketIOError as e:
            raise TransportError(f"Cannot emit {event} to {self.node.url}: {type(e).__name__} {e}") from e

    async def close(self):
        self.off_all()
        try:
            await self.sio.disconnect()
        except Exception as e:
            self.logger.debug(f"Ignoring disconnect error from {self.node.url}: {e}")

    async def _on_disconnect(self, *args):
        reason = args[0] if args else "closed"
        self.logger.info(f"⚠️ WebSocket disconnected from {self.node.url}: {reason}")
