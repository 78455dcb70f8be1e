# swapclient/state_store.py
import json
import logging
import os
import re
from typing import Optional

import aiofiles
import aiofiles.os

from .models import SniperState


def run_key_for(base_id: str, quote_id: str) -> str:
    """File-safe key for one logical sniper run, e.g. 'snipe-0.0.786931-HBAR'."""
    return "snipe-" + re.sub(r"[^A-Za-z0-9._-]", "_", f"{base_id}-{quote_id}")


class SniperStateStore:
    """
    JSON file per run key under a process-local cache directory.
    Single writer: the sniper loop that owns the key.
    """
    def __init__(self, cache_dir: str, key: str, logger: logging.Logger):
        self.cache_dir = cache_dir
        self.key = key
        self.logger = logger

    @property
    def path(self) -> str:
        return os.path.join(self.cache_dir, f"{self.key}.json")

    async def load(self) -> Optional[SniperState]:
        if not os.path.exists(self.path):
            return None
        try:
            async with aiofiles.open(self.path, mode="r", encoding="utf-8") as f:
                return SniperState.from_json(json.loads(await f.read()))
        except (OSError, ValueError, KeyError, TypeError) as e:
            self.logger.warning(f"⚠️ Ignoring unreadable sniper state {self.path}: {e}")
            return None

    async def save(self, state: SniperState):
        os.makedirs(self.cache_dir, exist_ok=True)
        tmp_path = self.path + ".tmp"
        try:
            async with aiofiles.open(tmp_path, mode="w", encoding="utf-8") as f:
                await f.write(json.dumps(state.to_json(), indent=2))
            await aiofiles.os.replace(tmp_path, self.path)
        except OSError as e:
            self.logger.warning(f"⚠️ Failed to write sniper state for {self.key}: {e}")

    async def delete(self):
        try:
            if os.path.exists(self.path):
                await aiofiles.os.remove(self.path)
                self.logger.info("🧹 Sniper state cleaned up")
            if os.path.isdir(self.cache_dir) and not os.listdir(self.cache_dir):
                os.rmdir(self.cache_dir)
        except OSError as e:
            self.logger.warning(f"⚠️ Failed to clean sniper state: {e}")
