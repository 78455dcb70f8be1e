# swapclient/auth.py
import asyncio
import json
import logging
from typing import Any, Callable, Dict, Optional

from .errors import AuthRejected, AuthTimeout

SignFn = Callable[[bytes], bytes]


def challenge_body(challenge: Dict[str, Any]) -> Dict[str, Any]:
    signed_data = challenge.get("signedData") or {}
    return {
        "serverSignature": signed_data.get("signature"),
        "originalPayload": challenge.get("payload"),
    }


def canonical_bytes(body: Dict[str, Any]) -> bytes:
    """
    Bytes the wallet signs: compact JSON with serverSignature first and
    originalPayload second.
    """
    return json.dumps(body, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


class AuthHandshake:
    """
    Challenge-response login on a freshly connected transport.

    `arm()` must run before the transport connects since the node sends its
    challenge right after the connection opens. `wait()` then bounds the
    whole exchange with `timeout` and always detaches its listeners.
    """
    def __init__(self, transport, wallet_id: str, sign: SignFn, logger: logging.Logger,
                 timeout: float = 20.0, challenge_event: str = "challenge",
                 authenticate_event: str = "authenticate"):
        self.transport = transport
        self.wallet_id = wallet_id
        self.sign = sign
        self.logger = logger
        self.timeout = timeout
        self.challenge_event = challenge_event
        self.authenticate_event = authenticate_event
        self._result: Optional[asyncio.Future] = None

    def arm(self):
        self._result = asyncio.get_running_loop().create_future()
        self.transport.on(self.challenge_event, self._on_challenge)
        self.transport.on(self.authenticate_event, self._on_result)

    async def wait(self):
        if self._result is None:
            self.arm()
        try:
            await asyncio.wait_for(asyncio.shield(self._result), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise AuthTimeout(f"WebSocket/authentication timeout after {self.timeout:.0f}s") from e
        finally:
            self.disarm()

    def disarm(self):
        self.transport.off(self.challenge_event)
        self.transport.off(self.authenticate_event)
        if self._result is not None and not self._result.done():
            self._result.cancel()

    def _settle(self, exc: Optional[Exception] = None):
        if self._result is None or self._result.done():
            return
        if exc is None:
            self._result.set_result(True)
        else:
            self._result.set_exception(exc)

    async def _on_challenge(self, *args):
        challenge = args[0] if args else None
        if not isinstance(challenge, dict):
            self._settle(AuthRejected(f"Malformed authentication challenge: {challenge!r}"))
            return
        try:
            signed_payload = challenge_body(challenge)
            user_signature = self.sign(canonical_bytes(signed_payload))
        except Exception as e:
            self._settle(AuthRejected(f"Failed to sign authentication challenge: {e}"))
            return
        await self.transport.emit(self.authenticate_event, {
            "signedData": {"signedPayload": signed_payload, "userSignature": user_signature},
            "walletId": self.wallet_id,
        })
        self.logger.debug(f"Challenge answered for {self.wallet_id}")

    async def _on_result(self, *args):
        result = args[0] if args else None
        if isinstance(result, dict) and result.get("isValidSignature") is True:
            self._settle()
        else:
            self._settle(AuthRejected(f"Authentication rejected by Smart Node {self.transport.node.url}"))
