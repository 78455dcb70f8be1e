# swapclient/operation_channel.py
import asyncio
import logging
import uuid
from collections import OrderedDict
from typing import Any, Dict, Optional

from .errors import InvalidResponseShape, OperationTimeout, SwapRejected, TransportError


class OperationChannel:
    """
    Named request/response operations multiplexed over one authenticated transport.

    Every call carries a fresh `requestId`. A response that echoes the id
    resolves exactly that call; a response without one resolves the oldest
    pending call of the same operation. One listener is registered per
    operation name and removed once nothing is pending for it.
    """
    def __init__(self, transport, logger: logging.Logger):
        self.transport = transport
        self.logger = logger
        # { 'request-swap-transaction': OrderedDict({request_id: Future}) }
        self._pending: Dict[str, "OrderedDict[str, asyncio.Future]"] = {}

    def pending_count(self, operation: Optional[str] = None) -> int:
        if operation is not None:
            return len(self._pending.get(operation, {}))
        return sum(len(p) for p in self._pending.values())

    async def call(self, operation: str, payload: Dict[str, Any], timeout: float = 30.0) -> Any:
        """
        Emits `operation` and waits for its response.

        {status: "success", payload: X} resolves with X; a success envelope
        without a payload resolves with the envelope itself.
        """
        request_id = uuid.uuid4().hex
        future = asyncio.get_running_loop().create_future()
        waiting = self._pending.setdefault(operation, OrderedDict())
        if not waiting:
            self.transport.on(operation, self._make_listener(operation))
        waiting[request_id] = future

        try:
            await self.transport.emit(operation, {**payload, "type": operation, "requestId": request_id})
            response = await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError as e:
            raise OperationTimeout(f"{operation} timed out after {timeout:.0f}s", operation=operation) from e
        finally:
            self._forget(operation, request_id)

        return self._unwrap(operation, response)

    def close(self):
        """Fails every pending call and detaches all operation listeners."""
        for operation, waiting in self._pending.items():
            self.transport.off(operation)
            for future in waiting.values():
                if not future.done():
                    future.set_exception(TransportError(f"Channel released while {operation} was pending"))
        self._pending.clear()

    def _make_listener(self, operation: str):
        async def listener(*args):
            response = args[0] if args else None
            self._dispatch(operation, response)
        return listener

    def _dispatch(self, operation: str, response: Any):
        waiting = self._pending.get(operation)
        if not waiting:
            self.logger.debug(f"Dropping unsolicited {operation} response")
            return

        request_id = response.get("requestId") if isinstance(response, dict) else None
        if request_id is not None:
            future = waiting.get(request_id)
            if future is None:
                self.logger.debug(f"Dropping {operation} response for unknown request {request_id}")
                return
        else:
            future = next((f for f in waiting.values() if not f.done()), None)
            if future is None:
                return

        if not future.done():
            future.set_result(response)

    def _forget(self, operation: str, request_id: str):
        waiting = self._pending.get(operation)
        if waiting is None:
            return
        waiting.pop(request_id, None)
        if not waiting:
            del self._pending[operation]
            self.transport.off(operation)

    @staticmethod
    def _unwrap(operation: str, response: Any) -> Any:
        if not isinstance(response, dict):
            raise InvalidResponseShape(f"Invalid response format for {operation}", operation=operation, response=response)
        if response.get("status") == "success":
            return response["payload"] if "payload" in response else response
        message = response.get("error") or response.get("message") or f"{operation} failed"
        raise SwapRejected(str(message), operation=operation, response=response)
