# swapclient/node_registry.py
import random
from typing import Dict, Iterator, List, Optional, Sequence

from .errors import ValidationError
from .models import GatewayNode


class NodeRegistry:
    """
    Static list of Smart Node endpoints for one network, loaded from config.yaml.
    """
    def __init__(self, nodes: Sequence[GatewayNode], rng: Optional[random.Random] = None):
        self.nodes: List[GatewayNode] = list(nodes)
        self._rng = rng or random.Random()

    @classmethod
    def from_config(cls, config: dict, rng: Optional[random.Random] = None) -> "NodeRegistry":
        network = config["network"]
        entries: List[Dict[str, str]] = (config.get("nodes") or {}).get(network) or []
        nodes = [GatewayNode(operator_id=str(e["operator"]), url=str(e["url"]).rstrip("/")) for e in entries]
        if not nodes:
            raise ValidationError(f"No Smart Nodes configured for network: {network}")
        return cls(nodes, rng)

    def __len__(self) -> int:
        return len(self.nodes)

    def __iter__(self) -> Iterator[GatewayNode]:
        return iter(self.nodes)

    def pick(self) -> GatewayNode:
        """Uniformly random node, used for read-only HTTP calls."""
        return self._rng.choice(self.nodes)

    def traversal(self) -> List[GatewayNode]:
        """
        Every node exactly once, starting at a random index and wrapping around.
        """
        if not self.nodes:
            return []
        start = self._rng.randrange(len(self.nodes))
        return [self.nodes[(start + i) % len(self.nodes)] for i in range(len(self.nodes))]
