# swapclient/logger.py
import asyncio
import aiofiles
from aiocsv import AsyncWriter
import logging
import sys
import os
from datetime import datetime, timezone
from typing import List, Any

AUDIT_HEADER = ["timestamp", "mode", "operator", "base_token", "base_amount", "swap_token", "node", "status", "detail"]

class AsyncAuditLogger:
    """
    Non-blocking CSV audit trail of swap outcomes.
    Disk I/O runs in a background task fed by an asyncio Queue so the
    sniper loop never waits on the filesystem.
    """
    def __init__(self, filepath: str):
        self.filepath = filepath
        self._queue = asyncio.Queue()
        self._worker_task = None

    async def start(self):
        """
        Creates the log directory and header row if missing, then starts the background writer.
        """
        directory = os.path.dirname(self.filepath)
        if directory and not os.path.exists(directory):
            os.makedirs(directory, exist_ok=True)

        if not os.path.exists(self.filepath):
            async with aiofiles.open(self.filepath, mode='a', newline='') as f:
                writer = AsyncWriter(f, dialect='unix')
                await writer.writerow(AUDIT_HEADER)
        self._worker_task = asyncio.create_task(self._writer_worker())

    async def log_swap(self, mode: str, operator: str, request, node: str, status: str, detail: str = ""):
        row = [
            datetime.now(timezone.utc).isoformat(),
            mode,
            operator,
            request.base.id,
            str(request.base_amount),
            request.quote.id,
            node,
            status,
            detail,
        ]
        await self.log_row(row)

    async def log_row(self, data: List[Any]):
        """
        Non-blocking call to add a record to the queue.
        """
        await self._queue.put(data)

    async def _writer_worker(self):
        while True:
            row = await self._queue.get()
            try:
                async with aiofiles.open(self.filepath, mode='a', newline='') as f:
                    writer = AsyncWriter(f, dialect='unix')
                    await writer.writerow(row)
            except Exception as e:
                # Fallback to stderr if disk I/O fails, don't crash the client
                print(f"LOGGING FAILURE: {e}", file=sys.stderr)
            finally:
                self._queue.task_done()

    async def stop(self):
        """Flushes pending rows and stops the writer."""
        if self._worker_task is None:
            return
        await self._queue.join()
        self._worker_task.cancel()
        try:
            await self._worker_task
        except asyncio.CancelledError:
            pass
        self._worker_task = None

def setup_console_logger(name: str, level: str):
    """
    Console logger for the client. Socket.IO internals stay at WARNING
    unless the client itself runs at DEBUG.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)
    for noisy in ("socketio", "engineio"):
        logging.getLogger(noisy).setLevel(level if logger.level <= logging.DEBUG else logging.WARNING)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        formatter = logging.Formatter('%(asctime)s | %(levelname)s | %(module)s | %(message)s')
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger
