# swapclient/trader.py
import logging

from .execution import SwapExecutor
from .gateway_engine import FailoverConnector
from .models import SwapRequest, SwapResult


class GatewayTrader:
    """
    One swap attempt end to end: fresh authenticated channel, then SwapExecutor.
    `signer` provides sign_bytes() for the login challenge and
    sign_transaction() for the swap body.
    """
    def __init__(self, connector: FailoverConnector, executor: SwapExecutor, signer,
                 operator_id: str, logger: logging.Logger):
        self.connector = connector
        self.executor = executor
        self.signer = signer
        self.operator_id = operator_id
        self.logger = logger

    async def swap(self, request: SwapRequest) -> SwapResult:
        channel = await self.connector.connect(self.operator_id, self.signer.sign_bytes)
        result = await self.executor.execute(channel, self.operator_id, request, self.signer.sign_transaction)
        return SwapResult(result=result, node=channel.node)
