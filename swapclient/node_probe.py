# swapclient/node_probe.py
import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional

import aiohttp
from rich.table import Table

from .errors import SwapClientError
from .models import GatewayNode
from .node_registry import NodeRegistry
from .transport import SocketTransport

PROBE_TIMEOUT = 5.0

TROUBLESHOOTING = (
    "If HTTP works but WebSocket fails:\n"
    "  • Check firewall rules (WSS uses TCP 443)\n"
    "  • Verify no corporate proxy is blocking WebSocket upgrades\n"
    "  • Try from a different network to isolate the issue\n"
    "If both fail:\n"
    "  • Smart Nodes may be temporarily unavailable\n"
    "For Mirror Node issues:\n"
    "  • Usually a network connectivity problem"
)


@dataclass(slots=True)
class ProbeResult:
    node: GatewayNode
    http_ok: bool
    http_detail: str
    ws_ok: bool
    ws_detail: str


class NodeProbe:
    """
    Connectivity diagnostics for every configured Smart Node plus the mirror node.
    Never raises for an unreachable endpoint; results are reported instead.
    """
    def __init__(self, registry: NodeRegistry, config: dict, logger: logging.Logger):
        self.registry = registry
        self.config = config
        self.logger = logger
        self.timeout = aiohttp.ClientTimeout(total=PROBE_TIMEOUT)

    async def _probe_http(self, session: aiohttp.ClientSession, url: str):
        try:
            async with session.get(url) as resp:
                return resp.status == 200, f"status {resp.status}"
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            return False, str(e) or type(e).__name__

    async def _probe_ws(self, node: GatewayNode):
        transport = SocketTransport(node, "0.0.1", self.logger,
                                    namespace=self.config["gateway"]["namespace"],
                                    connect_timeout=PROBE_TIMEOUT)
        try:
            await transport.connect()
            return True, "connected"
        except SwapClientError as e:
            return False, str(e)
        finally:
            await transport.close()

    async def probe_node(self, session: aiohttp.ClientSession, node: GatewayNode) -> ProbeResult:
        http_ok, http_detail = await self._probe_http(session, f"{node.url}{self.config['pools']['path']}")
        ws_ok, ws_detail = await self._probe_ws(node)
        return ProbeResult(node, http_ok, http_detail, ws_ok, ws_detail)

    async def run(self):
        """Returns (per-node results, mirror node reachable, mirror detail)."""
        results: List[ProbeResult] = []
        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            for node in self.registry:
                self.logger.info(f"📍 Testing {node.url} ({node.operator_id})")
                results.append(await self.probe_node(session, node))
            mirror_url = f"{self.config['mirror_node']['url'].rstrip('/')}/api/v1/accounts/0.0.1"
            mirror_ok, mirror_detail = await self._probe_http(session, mirror_url)
        return results, mirror_ok, mirror_detail


def render_probe_table(results: List[ProbeResult], mirror_ok: Optional[bool] = None, mirror_detail: str = "") -> Table:
    table = Table(title="🔍 Smart Node Connectivity")
    table.add_column("Node", style="cyan")
    table.add_column("Operator", style="magenta")
    table.add_column("HTTP /pools/list")
    table.add_column("WebSocket /gateway")

    for r in results:
        http = f"[green]✅ {r.http_detail}[/green]" if r.http_ok else f"[red]❌ {r.http_detail}[/red]"
        ws = f"[green]✅ {r.ws_detail}[/green]" if r.ws_ok else f"[red]❌ {r.ws_detail}[/red]"
        table.add_row(r.node.url, r.node.operator_id, http, ws)

    if mirror_ok is not None:
        status = f"[green]✅ {mirror_detail}[/green]" if mirror_ok else f"[red]❌ {mirror_detail}[/red]"
        table.add_row("Mirror Node", "-", status, "-")
    return table
