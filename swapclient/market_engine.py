# swapclient/market_engine.py
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from .models import GatewayNode, SwapRequest
from .node_registry import NodeRegistry


class MarketEngine:
    """
    Read-only REST access to the Smart Nodes' pool listing.
    Every query picks a random node so polling load is spread across the registry.
    """
    def __init__(self, registry: NodeRegistry, config: dict, logger: logging.Logger,
                 session: Optional[aiohttp.ClientSession] = None):
        self.registry = registry
        self.logger = logger
        self.pools_path = config["pools"]["path"]
        self.timeout = aiohttp.ClientTimeout(total=float(config["pools"]["timeout_seconds"]))
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def fetch_pools(self, node: Optional[GatewayNode] = None) -> List[Dict[str, Any]]:
        """
        GET <node>/pools/list. Raises aiohttp.ClientError on network or HTTP errors.
        A body that is not a JSON list is treated as no pools.
        """
        node = node or self.registry.pick()
        session = await self._get_session()
        async with session.get(f"{node.url}{self.pools_path}") as resp:
            resp.raise_for_status()
            data = await resp.json(content_type=None)
        if not isinstance(data, list):
            self.logger.debug(f"Unexpected pool listing shape from {node.url}: {type(data).__name__}")
            return []
        return [p for p in data if isinstance(p, dict)]

    async def find_pool(self, request: SwapRequest) -> Optional[Dict[str, Any]]:
        """Returns the pool pairing the request's assets (either order), or None."""
        pools = await self.fetch_pools()
        return next((p for p in pools if request.matches_pool(p)), None)

    async def shutdown(self):
        """
        Closes the HTTP session if this engine created it.
        """
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
