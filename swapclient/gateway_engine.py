# swapclient/gateway_engine.py
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from .auth import AuthHandshake, SignFn
from .errors import AllNodesExhausted, AuthTimeout, SwapClientError
from .models import ConnectionAttempt, ConnectionState, GatewayNode
from .node_registry import NodeRegistry
from .operation_channel import OperationChannel
from .transport import SocketTransport

TransportFactory = Callable[[GatewayNode, str], Any]

ALL_NODES_FAILED_HINT = (
    "⚠️ All Smart Node WebSocket connections failed (nodes may be under maintenance).\n\n"
    "📋 Next steps:\n"
    "  1. Check Smart Node status: python main.py --check-nodes\n"
    "  2. Wait for maintenance to complete\n"
    "  3. Retry the swap once nodes are back"
)


class AuthenticatedChannel:
    """
    A live, authenticated connection to one Smart Node.
    The owner must call `release()` (or use `async with`) on every exit path.
    """
    def __init__(self, node: GatewayNode, transport, logger: logging.Logger):
        self.node = node
        self.transport = transport
        self.logger = logger
        self.operations = OperationChannel(transport, logger)
        self.released = False

    async def call(self, operation: str, payload: Dict[str, Any], timeout: float = 30.0) -> Any:
        return await self.operations.call(operation, payload, timeout)

    async def release(self):
        if self.released:
            return
        self.released = True
        self.operations.close()
        self.transport.off_all()
        await self.transport.close()
        self.logger.debug(f"Channel to {self.node.url} released")

    async def __aenter__(self) -> "AuthenticatedChannel":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.release()


class FailoverConnector:
    """
    Connects and authenticates to the first healthy Smart Node.

    Each `connect()` walks the registry once from a random start so load is
    spread across nodes. Attempts are sequential, a failed node is followed
    by a capped exponential backoff, and only exhaustion of the whole list
    surfaces as an error.
    """
    def __init__(self, registry: NodeRegistry, config: dict, logger: logging.Logger,
                 transport_factory: Optional[TransportFactory] = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        gw = config["gateway"]
        self.registry = registry
        self.logger = logger
        self.namespace = gw["namespace"]
        self.connect_timeout = float(gw["connect_timeout_seconds"])
        self.auth_timeout = float(gw["auth_timeout_seconds"])
        self.backoff_base = gw["backoff"]["base_ms"] / 1000.0
        self.backoff_cap = gw["backoff"]["cap_ms"] / 1000.0
        self.challenge_event = gw["events"]["challenge"]
        self.authenticate_event = gw["events"]["authenticate"]
        self.transport_factory = transport_factory or self._socket_transport
        self._sleep = sleep
        self.last_attempts: List[ConnectionAttempt] = []

    def _socket_transport(self, node: GatewayNode, wallet_id: str):
        return SocketTransport(node, wallet_id, self.logger, namespace=self.namespace,
                               connect_timeout=self.connect_timeout)

    def backoff_delay(self, failures: int) -> float:
        """Seconds to wait after `failures` consecutive failed nodes (1-based)."""
        return min(self.backoff_base * (2 ** (failures - 1)), self.backoff_cap)

    async def connect(self, wallet_id: str, sign: SignFn) -> AuthenticatedChannel:
        order = self.registry.traversal()
        if not order:
            raise AllNodesExhausted("No Smart Nodes configured")

        failures: List[Tuple[str, Exception]] = []
        self.last_attempts = []

        for i, node in enumerate(order):
            attempt = ConnectionAttempt(node=node)
            self.last_attempts.append(attempt)
            self.logger.info(f"Attempting WebSocket → {node.gateway_url} ({node.operator_id}) [{i + 1}/{len(order)}]")

            try:
                transport = await self._attempt(attempt, wallet_id, sign)
            except (SwapClientError, OSError) as e:
                attempt.state = ConnectionState.FAILED
                failures.append((node.url, e))
                self.logger.warning(f"Connection attempt failed for {node.gateway_url}: {e}")
                if i < len(order) - 1:
                    await self._sleep(self.backoff_delay(len(failures)))
                continue

            attempt.state = ConnectionState.AUTHENTICATED
            self.logger.info(f"🔐 Authenticated to {node.url} as {wallet_id}")
            return AuthenticatedChannel(node, transport, self.logger)

        summary = "; ".join(f"{url}: {err}" for url, err in failures)
        self.logger.debug(f"Failover exhausted: {summary}")
        raise AllNodesExhausted(ALL_NODES_FAILED_HINT, failures)

    async def _attempt(self, attempt: ConnectionAttempt, wallet_id: str, sign: SignFn):
        transport = self.transport_factory(attempt.node, wallet_id)
        handshake = AuthHandshake(
            transport, wallet_id, sign, self.logger,
            timeout=self.auth_timeout,
            challenge_event=self.challenge_event,
            authenticate_event=self.authenticate_event,
        )
        handshake.arm()
        try:
            # one deadline for connect + login; the transport keeps its own connect bound
            await asyncio.wait_for(self._open(attempt, transport, handshake), timeout=self.auth_timeout)
        except asyncio.TimeoutError as e:
            handshake.disarm()
            await transport.close()
            raise AuthTimeout(f"WebSocket/authentication timeout after {self.auth_timeout:.0f}s") from e
        except BaseException:
            handshake.disarm()
            await transport.close()
            raise
        return transport

    async def _open(self, attempt: ConnectionAttempt, transport, handshake: AuthHandshake):
        attempt.state = ConnectionState.CONNECTING
        await transport.connect()
        attempt.state = ConnectionState.AUTHENTICATING
        await handshake.wait()
