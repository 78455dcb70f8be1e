# swapclient/models.py
import base64
import time
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from .errors import InvalidAmount, MalformedTransaction

class ConnectionState(Enum):
    """
    Enum representing the lifecycle states of a single node connection attempt.
    """
    PENDING = "PENDING"
    CONNECTING = "CONNECTING"
    AUTHENTICATING = "AUTHENTICATING"
    AUTHENTICATED = "AUTHENTICATED"
    FAILED = "FAILED"

class SniperPhase(Enum):
    IDLE = "IDLE"
    POLLING = "POLLING"
    FOUND = "FOUND"
    SWAPPING = "SWAPPING"
    DONE = "DONE"
    TIMED_OUT = "TIMED_OUT"
    CANCELLED = "CANCELLED"

@dataclass(frozen=True, slots=True)
class GatewayNode:
    """
    A Smart Node endpoint. Identity is the URL; the operator id is informational.
    """
    operator_id: str = field(compare=False)
    url: str

    @property
    def ws_origin(self) -> str:
        if self.url.startswith("https"):
            return "wss" + self.url[len("https"):]
        if self.url.startswith("http"):
            return "ws" + self.url[len("http"):]
        return self.url

    @property
    def gateway_url(self) -> str:
        return f"{self.ws_origin.rstrip('/')}/gateway"

@dataclass(slots=True)
class ConnectionAttempt:
    node: GatewayNode
    started_at: float = field(default_factory=time.time)
    state: ConnectionState = ConnectionState.PENDING

    @property
    def age(self) -> float:
        """Seconds since the attempt started."""
        return time.time() - self.started_at

@dataclass(frozen=True, slots=True)
class AssetDetails:
    id: str
    symbol: str
    decimals: int

    def to_wire(self) -> Dict[str, Any]:
        return {"id": self.id, "symbol": self.symbol, "decimals": self.decimals}

@dataclass(frozen=True, slots=True)
class SwapRequest:
    """
    Exact-input swap: spend `base_amount` of `base` and receive `quote`.
    The amount is kept as a Decimal all the way to the wire.
    """
    base: AssetDetails
    base_amount: Decimal
    quote: AssetDetails

    def __post_init__(self):
        if not isinstance(self.base_amount, Decimal):
            raise InvalidAmount(f"Amount must be a Decimal, got {type(self.base_amount).__name__}")
        if not self.base_amount.is_finite() or self.base_amount <= 0:
            raise InvalidAmount(f"Amount must be strictly positive, got {self.base_amount}")

    def to_wire(self) -> Dict[str, Any]:
        return {
            "baseToken": {"details": self.base.to_wire(), "amount": {"value": str(self.base_amount)}},
            "swapToken": {"details": self.quote.to_wire(), "amount": {"value": None}},
        }

    def matches_pool(self, pool: Dict[str, Any]) -> bool:
        """True when the pool pairs the two assets, in either token order."""
        t1, t2 = pool.get("token1_id"), pool.get("token2_id")
        return (t1 == self.base.id and t2 == self.quote.id) or (t1 == self.quote.id and t2 == self.base.id)

    def describe(self) -> str:
        return f"{self.base_amount} {self.base.symbol} -> {self.quote.symbol}"

@dataclass(slots=True)
class SniperState:
    """
    Durable sniper progress. Serialized as {startedAt, attemptCount, poolFound}.
    """
    started_at: float
    attempt_count: int = 0
    pool_found: bool = False

    def to_json(self) -> Dict[str, Any]:
        return {"startedAt": self.started_at, "attemptCount": self.attempt_count, "poolFound": self.pool_found}

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "SniperState":
        return cls(
            started_at=float(data["startedAt"]),
            attempt_count=int(data.get("attemptCount", 0)),
            pool_found=bool(data.get("poolFound", False)),
        )

@dataclass(slots=True)
class SwapResult:
    """
    Outcome of a completed swap handed back to the caller.
    `result` is the gateway's execution response, passed through untouched.
    """
    result: Any
    node: Optional[GatewayNode] = None
    attempts: int = 1

def ensure_transaction_bytes(raw: Any) -> bytes:
    """
    Normalizes the transaction blob sent by the gateway.
    Accepts raw bytes, a list of ints, a base64 string or a Node Buffer object.
    """
    if raw is None or (hasattr(raw, "__len__") and len(raw) == 0):
        raise MalformedTransaction("No transaction bytes provided")
    if isinstance(raw, (bytes, bytearray, memoryview)):
        return bytes(raw)
    if isinstance(raw, dict) and raw.get("type") == "Buffer" and isinstance(raw.get("data"), list):
        raw = raw["data"]
    if isinstance(raw, list):
        try:
            return bytes(raw)
        except (TypeError, ValueError) as e:
            raise MalformedTransaction(f"Transaction byte array is invalid: {e}") from e
    if isinstance(raw, str):
        try:
            return base64.b64decode(raw, validate=True)
        except ValueError as e:
            raise MalformedTransaction(f"Transaction string is not valid base64: {e}") from e
    raise MalformedTransaction(f"Unrecognized transaction bytes format: {type(raw).__name__}")
