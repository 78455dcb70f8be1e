# swapclient/mirror.py
import asyncio
import logging
from decimal import Decimal
from typing import Any, Dict, Optional

import aiohttp

TINYBARS_PER_HBAR = Decimal(100_000_000)


class MirrorNodeClient:
    """
    Read-only account lookups against the public Hedera mirror node.
    Lookups are advisory: callers treat a failed lookup as "unknown", not as an error.
    """
    def __init__(self, config: dict, logger: logging.Logger, session: Optional[aiohttp.ClientSession] = None):
        cfg = config["mirror_node"]
        self.base_url = cfg["url"].rstrip("/")
        self.low_balance = Decimal(str(cfg["low_balance_hbar"]))
        self.timeout = aiohttp.ClientTimeout(total=float(cfg["timeout_seconds"]))
        self.logger = logger
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def fetch_account(self, account_id: str) -> Dict[str, Any]:
        session = await self._get_session()
        async with session.get(f"{self.base_url}/api/v1/accounts/{account_id}") as resp:
            resp.raise_for_status()
            return await resp.json(content_type=None)

    async def hbar_balance(self, account_id: str) -> Optional[Decimal]:
        """HBAR balance, or None if the mirror node cannot be reached."""
        try:
            account = await self.fetch_account(account_id)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            self.logger.warning(f"ℹ️ Could not fetch balance from Hedera Mirror Node: {e}")
            return None
        balance = (account or {}).get("balance") or {}
        tinybars = Decimal(str(balance.get("balance") or 0))
        hbar = tinybars / TINYBARS_PER_HBAR
        self.logger.info(f"💰 HBAR Balance: {hbar:.8f} HBAR")
        if hbar < self.low_balance:
            self.logger.warning(f"⚠️ WARNING: Balance is very low (<{self.low_balance} HBAR). You may not have enough for transaction fees.")
        return hbar

    async def is_token_associated(self, account_id: str, token_id: str) -> Optional[bool]:
        """
        True/False from the mirror node, None when it cannot be verified.
        HBAR is native and never needs an association.
        """
        if token_id.upper() == "HBAR":
            return True
        try:
            account = await self.fetch_account(account_id)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            self.logger.warning(f"⚠️ Could not verify token association (network issue): {e}")
            return None
        tokens = ((account or {}).get("balance") or {}).get("tokens") or []
        return any(t.get("token_id") == token_id for t in tokens)

    async def shutdown(self):
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
