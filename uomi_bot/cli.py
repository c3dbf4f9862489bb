#!/usr/bin/env python3
"""
UOMI Testnet Bot CLI
====================

Interactive menu for running swaps, wraps, unwraps and liquidity
provisioning across every key in accounts.txt.

Usage:
    python -m uomi_bot
    uomi-bot

Startup fails (exit code 1) when the RPC is unreachable or accounts.txt
is missing. Everything else is reported and the menu comes back.
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Callable, List, Optional

from rich import box
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .accounts import AccountSource
from .chain import ChainClient
from .config import BotConfig, ConfigManager
from .logging_utils import console, get_logger, setup_logging
from .models import ActionResult, BalanceRow, Outcome, RunMode, RunPlan, RunSummary
from .orchestrator import Orchestrator, RunListener
from .utils import (
    BotError,
    ConfigError,
    NetworkError,
    UserInputError,
    format_address,
    format_amount,
    format_duration,
)


logger = get_logger(__name__)


@dataclass(frozen=True)
class MenuItem:
    label: str
    mode: Optional[RunMode] = None
    command: Optional[str] = None


MENU_ITEMS = [
    MenuItem("Swap Tokens", mode=RunMode.SWAP),
    MenuItem("Wrap UOMI", mode=RunMode.WRAP),
    MenuItem("Unwrap WUOMI", mode=RunMode.UNWRAP),
    MenuItem("Auto Wrap + Unwrap", mode=RunMode.AUTO),
    MenuItem("Add Liquidity", mode=RunMode.LIQUIDITY),
    MenuItem("Run Everything", mode=RunMode.ALL),
    MenuItem("Set Repetition Count", command="set_count"),
    MenuItem("Show Balances", mode=RunMode.BALANCES),
    MenuItem("Exit", command="exit"),
]

OUTCOME_STYLES = {
    Outcome.SUCCESS: ("green", "✓"),
    Outcome.SKIPPED: ("yellow", "⚠"),
    Outcome.FAILED: ("red", "✗"),
}


def print_banner(config: BotConfig):
    """Print the CLI banner."""
    banner = f"""
    UOMI Testnet Bot
    ═══════════════════════════════════
    Swap · Wrap · Unwrap · Liquidity on chain {config.chain_id}
    """
    console.print(Panel(banner, style="bold cyan", box=box.DOUBLE))
    if config.dry_run:
        console.print("[yellow]DRY RUN: transactions are built but never sent[/yellow]")


def print_menu(items: List[MenuItem] = MENU_ITEMS):
    table = Table(box=box.ROUNDED, show_header=False)
    table.add_column("#", style="cyan", justify="right")
    table.add_column("Option")
    for number, item in enumerate(items, 1):
        table.add_row(str(number), item.label)
    console.print(table)


def parse_menu_choice(text: str, option_count: int = len(MENU_ITEMS)) -> int:
    """Menu number typed by the operator as a 0-based index."""
    try:
        choice = int(text.strip())
    except (ValueError, AttributeError):
        raise UserInputError(f"Invalid option. Enter a number between 1 and {option_count}.")
    if not 1 <= choice <= option_count:
        raise UserInputError(f"Invalid option. Enter a number between 1 and {option_count}.")
    return choice - 1


def parse_positive_int(text: str) -> int:
    """Integer greater than zero."""
    try:
        value = int(text.strip())
    except (ValueError, AttributeError):
        raise UserInputError("Invalid input. Enter a number.")
    if value <= 0:
        raise UserInputError("Count must be > 0.")
    return value


def balances_table(rows: List[BalanceRow], symbols: List[str]) -> Table:
    """Rich table with one row per account."""
    table = Table(title="Account Balances", box=box.ROUNDED)
    table.add_column("#", style="dim", justify="right")
    table.add_column("Address", style="cyan")
    for symbol in symbols:
        table.add_column(symbol, style="green", justify="right")

    for row in rows:
        if row.error:
            cells = [f"[red]{escape(row.error)}[/red]"] + [""] * (len(symbols) - 1)
        else:
            cells = [format_amount(row.balances.get(symbol, 0)) for symbol in symbols]
        table.add_row(str(row.index), format_address(row.address), *cells)
    return table


def summary_table(summary: RunSummary) -> Table:
    """Per-kind outcome counts plus totals."""
    table = Table(title=f"Run Summary ({summary.mode.value})", box=box.ROUNDED)
    table.add_column("Operation", style="cyan")
    table.add_column("Succeeded", style="green", justify="right")
    table.add_column("Skipped", style="yellow", justify="right")
    table.add_column("Failed", style="red", justify="right")

    for kind, counts in summary.by_kind().items():
        table.add_row(
            kind.value,
            str(counts[Outcome.SUCCESS]),
            str(counts[Outcome.SKIPPED]),
            str(counts[Outcome.FAILED]),
        )
    table.add_row(
        "[bold]Total[/bold]",
        str(summary.succeeded),
        str(summary.skipped),
        str(summary.failed),
    )
    table.caption = f"{summary.success_rate:.1f}% success in {format_duration(summary.duration_seconds)}"
    return table


class ConsoleReporter(RunListener):
    """Renders orchestrator events on the console."""

    def __init__(self, symbols: List[str]):
        self.symbols = symbols

    def on_step(self, number: int, total: int, mode: RunMode):
        console.rule(f"[bold cyan]Step {number}/{total}: {mode.value}[/bold cyan]")

    def on_result(self, result: ActionResult):
        colour, mark = OUTCOME_STYLES[result.outcome]
        line = f"[{colour}]{mark} {format_address(result.account)} | {result.kind.value} {result.outcome.value}"
        if result.message:
            line += f": {escape(result.message)}"
        console.print(line + f"[/{colour}]", highlight=False)

    def on_balances(self, rows: List[BalanceRow]):
        console.print(balances_table(rows, self.symbols))

    def on_wait(self, seconds: float):
        console.print(f"[dim]Waiting {seconds:g}s...[/dim]")


class BotCLI:
    """Interactive menu loop."""

    def __init__(
        self,
        config: BotConfig,
        chain: ChainClient,
        source: AccountSource,
        input_func: Optional[Callable[[str], str]] = None,
        rng: Optional[random.Random] = None
    ):
        self.config = config
        self.chain = chain
        self.source = source
        self.input = input_func or console.input
        self.rng = rng or random.Random()
        self.repetitions = config.repetitions

        self.orchestrator = Orchestrator(config, chain, rng=self.rng)
        symbols = [asset.symbol for asset in self.orchestrator.catalog.assets]
        self.orchestrator.listener = ConsoleReporter(symbols)

    def prompt_repetitions(self, label: str = "Set number of transactions") -> int:
        """Ask until a positive integer is entered."""
        while True:
            try:
                self.repetitions = parse_positive_int(self.input(f"[cyan]{label}[/cyan] > "))
            except UserInputError as e:
                logger.error(str(e))
                continue
            logger.info(f"Transaction count set to: {self.repetitions}")
            return self.repetitions

    def prompt_menu(self) -> MenuItem:
        while True:
            print_menu()
            try:
                index = parse_menu_choice(self.input(f"[cyan]Select an option (1-{len(MENU_ITEMS)})[/cyan] > "))
            except UserInputError as e:
                logger.error(str(e))
                continue
            return MENU_ITEMS[index]

    def choose_proxy(self) -> Optional[str]:
        """Offer a random proxy from proxies.txt, if there are any."""
        proxies = self.source.load_proxies()
        if not proxies:
            logger.info("No proxies found, running without proxy")
            return None

        console.print("1. Run with private proxy\n2. Run without proxy")
        choice = self.input("[cyan]Choose [1/2][/cyan] > ").strip() or "2"
        if choice != "1":
            return None
        return self.rng.choice(proxies)

    def run_selection(self, item: MenuItem) -> Optional[RunSummary]:
        """Build a plan for ``item`` with freshly loaded accounts and run it."""
        credentials = self.source.load_private_keys()
        try:
            proxy = self.choose_proxy() if item.mode in (RunMode.LIQUIDITY, RunMode.ALL) and credentials else None
            plan = RunPlan(item.mode, self.repetitions, tuple(credentials), proxy=proxy)
        except BotError as e:
            logger.error(str(e))
            return None

        logger.info(f"Starting {item.label}...")
        summary = asyncio.run(self.orchestrator.run(plan))
        if summary.total:
            console.print(summary_table(summary))
        logger.info(f"{item.label} completed")
        return summary

    def loop(self) -> int:
        """Prompt for the repetition count, then serve the menu until Exit."""
        self.prompt_repetitions()
        while True:
            item = self.prompt_menu()
            if item.command == "exit":
                logger.info("Exiting...")
                return 0
            if item.command == "set_count":
                self.prompt_repetitions()
                continue

            self.run_selection(item)
            self.input("[dim]Press Enter to continue...[/dim]")


def main() -> int:
    try:
        config = ConfigManager().load_config()
    except ConfigError as e:
        console.print(f"[red]✗ {e}[/red]")
        return 1

    setup_logging(config.log_level, config.log_file)
    print_banner(config)

    chain = ChainClient(config)
    try:
        chain.check_connection()
    except NetworkError as e:
        logger.error(f"Failed to connect to RPC: {e}. Please check if {config.rpc_url} is accessible.")
        return 1
    logger.info("Successfully connected to RPC")

    source = AccountSource.from_config(config)
    if not source.exists():
        logger.error(f"{source.accounts_path} not found. Please create it and add your private keys.")
        return 1

    cli = BotCLI(config, chain, source)
    try:
        return cli.loop()
    except (KeyboardInterrupt, EOFError):
        console.print("\n[yellow]Bot terminated by user[/yellow]")
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
