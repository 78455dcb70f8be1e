# swapclient/validation.py
import re
from decimal import Decimal, InvalidOperation
from typing import Optional

from .errors import InvalidAmount, InvalidAsset, ValidationError
from .models import AssetDetails, SwapRequest

ENTITY_ID = re.compile(r"^\d+\.\d+\.\d+$")
HBAR = "HBAR"


def is_valid_token(token) -> bool:
    """'HBAR' (any case) or a shard.realm.num token id."""
    if not token or not isinstance(token, str):
        return False
    s = token.strip()
    return s.upper() == HBAR or bool(ENTITY_ID.match(s))


def normalize_token(token: str, label: str = "token") -> str:
    if not is_valid_token(token):
        raise InvalidAsset(f"Invalid {label}: {token!r}. Must be 'HBAR' or a token id like 0.0.123456.")
    s = token.strip()
    return HBAR if s.upper() == HBAR else s


def validate_account_id(account_id: str) -> str:
    s = (account_id or "").strip()
    if not ENTITY_ID.match(s):
        raise ValidationError(f"Invalid account id: {account_id!r}. Expected a value like 0.0.123456.")
    return s


def parse_amount(raw) -> Decimal:
    if raw is None or str(raw).strip() == "":
        raise InvalidAmount("Missing base amount. Pass --base-amount or set BASE_AMOUNT.")
    try:
        amount = Decimal(str(raw).strip())
    except InvalidOperation as e:
        raise InvalidAmount(f"Invalid amount: {raw!r}") from e
    if not amount.is_finite() or amount <= 0:
        raise InvalidAmount(f"Amount must be a positive number, got {raw!r}")
    return amount


def default_decimals(token: str) -> int:
    return 8 if token == HBAR else 4


def build_swap_request(base_token: str, base_amount, swap_token: str,
                       base_decimals: Optional[int] = None, swap_decimals: Optional[int] = None) -> SwapRequest:
    base = normalize_token(base_token, "base token")
    quote = normalize_token(swap_token, "swap token")
    if base == quote:
        raise InvalidAsset("Base token and swap token must differ")
    return SwapRequest(
        base=AssetDetails(id=base, symbol=base, decimals=base_decimals if base_decimals is not None else default_decimals(base)),
        base_amount=parse_amount(base_amount),
        quote=AssetDetails(id=quote, symbol=quote, decimals=swap_decimals if swap_decimals is not None else default_decimals(quote)),
    )
