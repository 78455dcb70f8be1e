# main.py
import argparse
import asyncio
import os
import signal
import sys
import questionary
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel

from swapclient.association import TokenAssociator
from swapclient.config import Credentials, env_flag, load_config, load_credentials
from swapclient.errors import OperationError, SniperCancelled, SwapClientError, ValidationError
from swapclient.execution import SwapExecutor
from swapclient.gateway_engine import FailoverConnector
from swapclient.logger import AsyncAuditLogger, setup_console_logger
from swapclient.market_engine import MarketEngine
from swapclient.mirror import MirrorNodeClient
from swapclient.node_probe import NodeProbe, TROUBLESHOOTING, render_probe_table
from swapclient.node_registry import NodeRegistry
from swapclient.signing import HederaSigner
from swapclient.sniper import CancellationToken, SniperLoop
from swapclient.state_store import SniperStateStore, run_key_for
from swapclient.trader import GatewayTrader
from swapclient.validation import build_swap_request, is_valid_token, validate_account_id

console = Console()

# --- UI HELPER FUNCTIONS ---

def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Smart Node DEX swap client (mainnet only)")
    parser.add_argument("--config", default="config.yaml")
    parser.add_argument("--network", "-n", default=None, help="Only 'mainnet' is accepted")
    parser.add_argument("--base-token", "-b", dest="base_token")
    parser.add_argument("--base-amount", "-A", dest="base_amount")
    parser.add_argument("--swap-token", "-s", dest="swap_token")
    parser.add_argument("--base-decimals", dest="base_decimals", type=int)
    parser.add_argument("--swap-decimals", dest="swap_decimals", type=int)
    parser.add_argument("--snipe", action="store_true", help="Wait for the pool to appear, then swap")
    parser.add_argument("--associate", action="store_true", help="Associate missing tokens before swapping")
    parser.add_argument("--interactive", "-i", action="store_true", help="Prompt for credentials and swap parameters")
    parser.add_argument("--check-nodes", action="store_true", help="Test Smart Node and Mirror Node connectivity")
    parser.add_argument("--debug", action="store_true")
    return parser.parse_args(argv)

def interactive_setup(config):
    """Prompts for credentials and swap parameters."""
    console.print(Panel("[bold]Silksuite DEX Trading Client - MAINNET ONLY[/bold]", style="white on blue"))
    defaults = config["defaults"]

    account_id = questionary.text("Hedera account ID (e.g. 0.0.123456):").ask()
    private_key = questionary.password("Private key (hidden):").ask()
    if not account_id or not private_key:
        raise ValidationError("Account ID and private key are required")

    base_token = questionary.text("Base token (HBAR or token id):", default=defaults["base_token"],
                                  validate=is_valid_token).ask()
    swap_token = questionary.text("Swap token (HBAR or token id):", default=defaults["swap_token"],
                                  validate=is_valid_token).ask()
    amount = questionary.text(f"Amount to spend ({base_token}):").ask()
    mode = questionary.select("Swap Mode?", choices=[
        "Regular Swap (execute immediately)",
        "Snipe Mode (monitor pool for 5 hours, execute when found)",
    ]).ask()
    if mode is None:
        raise ValidationError("No swap mode selected")

    creds = Credentials(operator_id=validate_account_id(account_id), private_key=private_key.strip())
    params = {
        "base_token": base_token,
        "swap_token": swap_token,
        "base_amount": amount,
        "snipe": mode.startswith("Snipe"),
        "associate": True,
    }
    return creds, params

def _decimals(value, name):
    if value in (None, ""):
        return None
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f"{name} must be an integer, got {value!r}")

def swap_params_from_args(args, config):
    defaults = config["defaults"]
    base_decimals = args.base_decimals if args.base_decimals is not None else os.getenv("BASE_DECIMALS")
    swap_decimals = args.swap_decimals if args.swap_decimals is not None else os.getenv("SWAP_DECIMALS")
    return {
        "base_token": args.base_token or os.getenv("BASE_TOKEN") or defaults["base_token"],
        "swap_token": args.swap_token or os.getenv("SWAP_TOKEN") or defaults["swap_token"],
        "base_amount": args.base_amount or os.getenv("BASE_AMOUNT"),
        "base_decimals": _decimals(base_decimals, "BASE_DECIMALS"),
        "swap_decimals": _decimals(swap_decimals, "SWAP_DECIMALS"),
        "snipe": args.snipe,
        "associate": args.associate,
    }

def audit_status(error: SwapClientError) -> str:
    """Audit CSV status for a run that ended with `error`."""
    if isinstance(error, SniperCancelled):
        return "CANCELLED"
    return "FAILED"

def result_panel(result, title: str) -> Panel:
    node = result.node.url if result.node else "-"
    body = f"[bold green]Node:[/bold green] {node}\n[bold green]Result:[/bold green] {result.result}"
    if result.attempts > 1:
        body += f"\n[bold green]Checks:[/bold green] {result.attempts}"
    return Panel(body, title=title, style="green")

# --- MAIN CONTROLLER ---

class SwapClientApp:
    def __init__(self, config: dict, creds: Credentials, params: dict, debug: bool = False):
        self.config = config
        self.creds = creds
        self.params = params
        self.logger = setup_console_logger("SwapClient", "DEBUG" if debug else config["logging"]["level"])
        self.audit_log = AsyncAuditLogger(config["audit"]["trade_log"])
        self.registry = NodeRegistry.from_config(config)
        self.mirror = MirrorNodeClient(config, self.logger)
        self.market = MarketEngine(self.registry, config, self.logger)
        self.token = CancellationToken()

    def _install_signal_handlers(self):
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._on_stop_signal)
            except NotImplementedError:
                signal.signal(sig, lambda *_: loop.call_soon_threadsafe(self._on_stop_signal))

    def _on_stop_signal(self):
        self.logger.info("📍 Received stop signal...")
        self.token.cancel()

    async def run(self) -> int:
        try:
            request = build_swap_request(
                self.params["base_token"], self.params["base_amount"], self.params["swap_token"],
                self.params.get("base_decimals"), self.params.get("swap_decimals"),
            )
            operator_id = validate_account_id(self.creds.operator_id)

            self.logger.info(f"🔐 Validating wallet credentials for account {operator_id}...")
            signer = HederaSigner(self.creds.private_key)
            self.logger.info(f"📍 Public Key (derived): {signer.public_key_hex}")
            await self.mirror.hbar_balance(operator_id)

            associator = TokenAssociator(self.mirror, signer, operator_id, self.logger, self.config["network"])
            if self.params.get("associate"):
                await associator.ensure(request.base.id, "Base token")
                await associator.ensure(request.quote.id, "Swap token")
            elif await self.mirror.is_token_associated(operator_id, request.quote.id) is False:
                raise ValidationError(f"Token {request.quote.id} is NOT associated. Re-run with --associate first.")

            self.logger.info(f"🔧 Network: {self.config['network']} | 👤 Operator: {operator_id} | 💱 Swap: {request.describe()}")

            await self.audit_log.start()
            connector = FailoverConnector(self.registry, self.config, self.logger)
            trader = GatewayTrader(connector, SwapExecutor(self.config, self.logger), signer, operator_id, self.logger)

            mode = "snipe" if self.params.get("snipe") else "single"
            try:
                if mode == "snipe":
                    self._install_signal_handlers()
                    sniper_cfg = self.config["sniper"]
                    store = SniperStateStore(sniper_cfg["cache_dir"], run_key_for(request.base.id, request.quote.id), self.logger)
                    sniper = SniperLoop(self.market, trader.swap, store, self.logger)
                    result = await sniper.run(
                        request,
                        max_duration=float(sniper_cfg["max_duration_hours"]) * 3600,
                        poll_interval=float(sniper_cfg["poll_interval_ms"]) / 1000.0,
                        token=self.token,
                    )
                else:
                    result = await trader.swap(request)
            except SwapClientError as e:
                await self.audit_log.log_swap(mode, operator_id, request, "-", audit_status(e), str(e))
                raise
            await self.audit_log.log_swap(mode, operator_id, request, result.node.url if result.node else "-", "SUCCESS")

            console.print(result_panel(result, "🎉 SWAP SUCCESS"))
            return 0

        except SniperCancelled as e:
            console.print(f"[yellow]🛑 Sniper stopped by user after {e.attempts} checks.[/yellow]")
            return 0
        except SwapClientError as e:
            console.print(f"[bold red]❌ {type(e).__name__}:[/bold red] {e}")
            if isinstance(e, OperationError) and e.response is not None:
                console.print(f"[red]Server response:[/red] {e.response}")
            return 1
        finally:
            await self.audit_log.stop()
            await self.market.shutdown()
            await self.mirror.shutdown()

async def check_nodes(config: dict, debug: bool) -> int:
    logger = setup_console_logger("SwapClient", "DEBUG" if debug else config["logging"]["level"])
    registry = NodeRegistry.from_config(config)
    results, mirror_ok, mirror_detail = await NodeProbe(registry, config, logger).run()
    console.print(render_probe_table(results, mirror_ok, mirror_detail))
    console.print(Panel(TROUBLESHOOTING, title="Troubleshooting"))
    return 0 if any(r.ws_ok for r in results) else 1

def cli(argv=None) -> int:
    args = parse_args(argv)
    load_dotenv()
    debug = args.debug or env_flag("DEBUG")
    try:
        config = load_config(args.config)
        if args.network and args.network != config["network"]:
            raise ValidationError(f"Only {config['network']} is supported by this client")

        if args.check_nodes:
            return asyncio.run(check_nodes(config, debug))

        if args.interactive:
            creds, params = interactive_setup(config)
        else:
            creds, params = load_credentials(), swap_params_from_args(args, config)
        app = SwapClientApp(config, creds, params, debug)
    except SwapClientError as e:
        console.print(f"[bold red]❌ {e}[/bold red]")
        return 1

    try:
        import uvloop
        asyncio.set_event_loop_policy(uvloop.EventLoopPolicy())
    except ImportError:
        pass
    return asyncio.run(app.run())

if __name__ == "__main__":
    try:
        sys.exit(cli())
    except KeyboardInterrupt:
        print("\n🛑 Stopped by User.")
        sys.exit(1)
