# swapclient/execution.py
import json
import logging
from typing import Any, Callable

from .errors import MissingTransaction
from .models import SwapRequest, ensure_transaction_bytes

TransactionSigner = Callable[[bytes], bytes]

class SwapExecutor:
    """
    Drives one swap over an authenticated channel:
    request the unsigned transaction, sign it locally, submit it for execution.

    The channel is released on every path, success or failure, so a caller
    never holds a half-used connection.
    """
    def __init__(self, config: dict, logger: logging.Logger):
        gw = config["gateway"]
        self.logger = logger
        self.timeout = float(gw["operation_timeout_seconds"])
        self.request_event = gw["events"]["request_swap"]
        self.execute_event = gw["events"]["execute_swap"]

    async def execute(self, channel, sender_id: str, request: SwapRequest, sign_transaction: TransactionSigner) -> Any:
        """
        Returns the gateway's execution response unchanged.
        """
        try:
            # 1. UNSIGNED TRANSACTION
            self.logger.info(f"📝 Requesting swap transaction from {channel.node.url} ({request.describe()})...")
            payload = await channel.call(
                self.request_event,
                {"senderId": sender_id, "swap": request.to_wire()},
                self.timeout,
            )
            if not isinstance(payload, dict) or not payload.get("transaction"):
                raise MissingTransaction("Smart Node did not return a transaction")

            # 2. LOCAL SIGNATURE
            tx_bytes = ensure_transaction_bytes(payload["transaction"])
            signed_bytes = sign_transaction(tx_bytes)
            self.logger.info("✍️ Transaction signed locally")

            # 3. EXECUTION
            self.logger.info("🚀 Executing signed transaction via Smart Node...")
            result = await channel.call(self.execute_event, {"transactionBytes": signed_bytes}, self.timeout)

            self.logger.info(f"🎉 SWAP SUCCESS | Result: {json.dumps(result, default=str)}")
            return result
        finally:
            await channel.release()
