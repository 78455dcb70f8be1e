import asyncio
import logging

import pytest

from swapclient.config import load_config
from swapclient.models import GatewayNode
from swapclient.node_registry import NodeRegistry

DEFAULT_CHALLENGE = {"payload": {"nonce": "abc", "ts": 1}, "signedData": {"signature": [1, 2, 3]}}
SILENT = object()


class FixedRng:
    """Always starts traversal at `start`."""
    def __init__(self, start=0):
        self.start = start

    def randrange(self, n):
        return self.start % n

    def choice(self, seq):
        return seq[self.start % len(seq)]


class FakeTransport:
    """
    In-memory stand-in for SocketTransport that plays the Smart Node side.
    `responders` maps an emitted event to a function returning the reply (or None).
    `fail_emit` maps an event to the exception its emit raises.
    """
    def __init__(self, node, fail_connect=None, challenge=DEFAULT_CHALLENGE,
                 auth_result=None, responders=None, fail_emit=None,
                 connect_delay=0.0, challenge_delay=0.0):
        self.node = node
        self.fail_connect = fail_connect
        self.challenge = challenge
        self.auth_result = {"isValidSignature": True} if auth_result is None else auth_result
        self.responders = responders or {}
        self.fail_emit = fail_emit or {}
        self.connect_delay = connect_delay
        self.challenge_delay = challenge_delay
        self.handlers = {}
        self.emitted = []
        self.connected = False
        self.closed = False
        self._tasks = set()

    def on(self, event, handler):
        self.handlers[event] = handler

    def off(self, event):
        self.handlers.pop(event, None)

    def off_all(self):
        self.handlers.clear()

    def _spawn(self, coro):
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def fire(self, event, data):
        handler = self.handlers.get(event)
        if handler is not None:
            await handler(data)

    async def connect(self):
        if self.connect_delay:
            await asyncio.sleep(self.connect_delay)
        if self.fail_connect is not None:
            raise self.fail_connect
        self.connected = True
        if self.challenge is not None:
            self._spawn(self._send_challenge())

    async def _send_challenge(self):
        if self.challenge_delay:
            await asyncio.sleep(self.challenge_delay)
        await self.fire("challenge", self.challenge)

    async def emit(self, event, data):
        if event in self.fail_emit:
            raise self.fail_emit[event]
        self.emitted.append((event, data))
        if event == "authenticate":
            if self.auth_result is not SILENT:
                self._spawn(self.fire("authenticate", self.auth_result))
        elif event in self.responders:
            reply = self.responders[event](data)
            if reply is not None:
                self._spawn(self.fire(event, reply))

    async def close(self):
        self.closed = True
        self.connected = False


class FakeSigner:
    def __init__(self):
        self.signed_transactions = []

    def sign_bytes(self, data):
        return b"sig:" + data[:8]

    def sign_transaction(self, tx_bytes):
        self.signed_transactions.append(tx_bytes)
        return b"signed:" + tx_bytes


@pytest.fixture
def logger():
    return logging.getLogger("swapclient-tests")


@pytest.fixture
def config(tmp_path):
    cfg = load_config(str(tmp_path / "missing.yaml"))
    cfg["gateway"]["auth_timeout_seconds"] = 0.2
    cfg["gateway"]["operation_timeout_seconds"] = 0.2
    return cfg


@pytest.fixture
def nodes():
    return [
        GatewayNode(operator_id="0.0.1001", url="https://node-1.example"),
        GatewayNode(operator_id="0.0.1002", url="https://node-2.example"),
    ]


@pytest.fixture
def registry(nodes):
    return NodeRegistry(nodes, rng=FixedRng(0))
