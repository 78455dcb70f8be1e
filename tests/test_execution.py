from decimal import Decimal

import pytest

from swapclient.errors import MalformedTransaction, MissingTransaction, OperationTimeout, SwapRejected, TransportError
from swapclient.execution import SwapExecutor
from swapclient.gateway_engine import AuthenticatedChannel, FailoverConnector
from swapclient.trader import GatewayTrader
from swapclient.validation import build_swap_request

from conftest import FakeSigner, FakeTransport

REQUEST_OP = "request-swap-transaction"
EXECUTE_OP = "execute-swap-transaction"
TX = b"\x0a\x0bunsigned-tx"


def gateway(nodes, request_reply, execute_reply):
    return FakeTransport(nodes[0], responders={REQUEST_OP: request_reply, EXECUTE_OP: execute_reply})


@pytest.mark.asyncio
async def test_full_swap_returns_execution_result_and_releases(config, logger, nodes):
    executed = {"status": "success", "transactionId": "0.0.42@1700000000.1"}
    transport = gateway(
        nodes,
        lambda data: {"status": "success", "payload": {"transaction": list(TX)}},
        lambda data: executed,
    )
    channel = AuthenticatedChannel(nodes[0], transport, logger)
    signer = FakeSigner()
    request = build_swap_request("0.0.786931", "10.5", "0.0.999")

    result = await SwapExecutor(config, logger).execute(channel, "0.0.42", request, signer.sign_transaction)

    assert result == executed
    assert signer.signed_transactions == [TX]
    (req_event, req_data), (exec_event, exec_data) = transport.emitted
    assert req_event == REQUEST_OP and exec_event == EXECUTE_OP
    assert req_data["senderId"] == "0.0.42"
    assert req_data["swap"]["baseToken"]["amount"]["value"] == "10.5"
    assert Decimal(req_data["swap"]["baseToken"]["amount"]["value"]) == Decimal("10.5")
    assert exec_data["transactionBytes"] == b"signed:" + TX
    assert channel.released and transport.closed and transport.handlers == {}


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [{}, {"transaction": None}, "nothing"])
async def test_missing_transaction(config, logger, nodes, payload):
    transport = gateway(nodes, lambda data: {"status": "success", "payload": payload}, lambda data: None)
    channel = AuthenticatedChannel(nodes[0], transport, logger)
    with pytest.raises(MissingTransaction):
        await SwapExecutor(config, logger).execute(channel, "0.0.42", build_swap_request("HBAR", "1", "0.0.5"),
                                                    FakeSigner().sign_transaction)
    assert transport.closed


@pytest.mark.asyncio
async def test_malformed_transaction(config, logger, nodes):
    transport = gateway(nodes, lambda data: {"status": "success", "payload": {"transaction": 42}}, lambda data: None)
    channel = AuthenticatedChannel(nodes[0], transport, logger)
    with pytest.raises(MalformedTransaction):
        await SwapExecutor(config, logger).execute(channel, "0.0.42", build_swap_request("HBAR", "1", "0.0.5"),
                                                    FakeSigner().sign_transaction)
    assert transport.closed


@pytest.mark.asyncio
async def test_rejected_execution_keeps_server_response(config, logger, nodes):
    rejection = {"status": "error", "error": "INSUFFICIENT_PAYER_BALANCE"}
    transport = gateway(
        nodes,
        lambda data: {"status": "success", "payload": {"transaction": "CgsK"}},
        lambda data: rejection,
    )
    channel = AuthenticatedChannel(nodes[0], transport, logger)
    with pytest.raises(SwapRejected) as excinfo:
        await SwapExecutor(config, logger).execute(channel, "0.0.42", build_swap_request("HBAR", "1", "0.0.5"),
                                                    FakeSigner().sign_transaction)
    assert excinfo.value.response == rejection
    assert "INSUFFICIENT_PAYER_BALANCE" in str(excinfo.value)
    assert transport.closed


@pytest.mark.asyncio
async def test_request_timeout_releases(config, logger, nodes):
    config["gateway"]["operation_timeout_seconds"] = 0.05
    transport = gateway(nodes, lambda data: None, lambda data: None)
    channel = AuthenticatedChannel(nodes[0], transport, logger)
    with pytest.raises(OperationTimeout):
        await SwapExecutor(config, logger).execute(channel, "0.0.42", build_swap_request("HBAR", "1", "0.0.5"),
                                                    FakeSigner().sign_transaction)
    assert transport.closed


@pytest.mark.asyncio
async def test_trader_connects_then_swaps(config, logger, registry, nodes):
    transport = FakeTransport(nodes[0], responders={
        REQUEST_OP: lambda data: {"status": "success", "payload": {"transaction": list(TX)}},
        EXECUTE_OP: lambda data: {"status": "success", "payload": {"ok": True}},
    })
    connector = FailoverConnector(registry, config, logger, transport_factory=lambda node, wallet: transport)
    trader = GatewayTrader(connector, SwapExecutor(config, logger), FakeSigner(), "0.0.42", logger)

    result = await trader.swap(build_swap_request("HBAR", "2", "0.0.5"))

    assert result.result == {"ok": True}
    assert result.node == nodes[0]
    assert [event for event, _ in transport.emitted] == ["authenticate", REQUEST_OP, EXECUTE_OP]
    assert transport.closed


@pytest.mark.asyncio
async def test_socket_drop_before_execute_releases_channel(config, logger, nodes):
    transport = FakeTransport(
        nodes[0],
        responders={REQUEST_OP: lambda data: {"status": "success", "payload": {"transaction": list(TX)}}},
        fail_emit={EXECUTE_OP: TransportError("Cannot emit execute-swap-transaction: BadNamespaceError")},
    )
    channel = AuthenticatedChannel(nodes[0], transport, logger)

    with pytest.raises(TransportError):
        await SwapExecutor(config, logger).execute(channel, "0.0.42", build_swap_request("HBAR", "1", "0.0.5"),
                                                    FakeSigner().sign_transaction)

    assert channel.released and transport.closed
    assert channel.operations.pending_count() == 0
