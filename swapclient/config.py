# swapclient/config.py
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from .errors import MissingCredentials, ValidationError

DEFAULT_CONFIG_PATH = "config.yaml"
SUPPORTED_NETWORKS = ("mainnet",)

# Fallbacks for keys missing from config.yaml
DEFAULTS: Dict[str, Any] = {
    "network": "mainnet",
    "gateway": {
        "namespace": "/gateway",
        "connect_timeout_seconds": 10,
        "auth_timeout_seconds": 20,
        "operation_timeout_seconds": 30,
        "backoff": {"base_ms": 500, "cap_ms": 3000},
        "events": {
            "challenge": "challenge",
            "authenticate": "authenticate",
            "request_swap": "request-swap-transaction",
            "execute_swap": "execute-swap-transaction",
        },
    },
    "pools": {"path": "/pools/list", "timeout_seconds": 10},
    "sniper": {"poll_interval_ms": 650, "max_duration_hours": 5, "cache_dir": ".sniper-cache"},
    "mirror_node": {
        "url": "https://mainnet-public.mirrornode.hedera.com",
        "timeout_seconds": 10,
        "low_balance_hbar": "0.1",
    },
    "audit": {"trade_log": "logs/swaps.csv"},
    "logging": {"level": "INFO"},
    "defaults": {"base_token": "0.0.786931", "swap_token": "HBAR"},
}


@dataclass
class Credentials:
    """Operator wallet identity. The private key is treated as an opaque string."""
    operator_id: str
    private_key: str = field(repr=False)


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(path: str = DEFAULT_CONFIG_PATH) -> Dict[str, Any]:
    """
    Reads config.yaml and fills in defaults. A missing file yields the defaults,
    which carry no nodes; callers fail on an empty node list.
    """
    raw: Dict[str, Any] = {}
    if os.path.exists(path):
        with open(path, "r") as f:
            raw = yaml.safe_load(f) or {}
    cfg = _merge(DEFAULTS, raw)
    if cfg["network"] not in SUPPORTED_NETWORKS:
        raise ValidationError(f"Only {', '.join(SUPPORTED_NETWORKS)} is supported by this client (got {cfg['network']!r})")
    return cfg


def load_credentials(env_file: Optional[str] = None) -> Credentials:
    """
    Loads operator credentials from the environment (and .env when present).
    """
    load_dotenv(env_file)
    operator_id = (os.getenv("MAINNET_OPERATOR_ID") or "").strip()
    private_key = (os.getenv("MAINNET_OPERATOR_PRIVATE_KEY") or "").strip()
    if not operator_id or not private_key:
        raise MissingCredentials(
            "Missing operator credentials. Set MAINNET_OPERATOR_ID and "
            "MAINNET_OPERATOR_PRIVATE_KEY (environment or .env) or run with --interactive."
        )
    return Credentials(operator_id=operator_id, private_key=private_key)


def env_flag(name: str) -> bool:
    return (os.getenv(name) or "").strip().lower() in ("1", "true", "yes")
