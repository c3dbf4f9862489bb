"""
Run Orchestrator
================
Turns a RunPlan into a sequence of operations and drives each one to a
terminal outcome.

Traversal:
- swap / wrap / unwrap / auto: accounts in file order, ``repetitions``
  iterations per account (auto = wrap then unwrap each iteration)
- liquidity: one randomly chosen account, ``repetitions`` iterations over
  the configured pairs
- all: balances, swaps, wrap, unwrap, auto, liquidity, balances

Everything runs strictly one action at a time. Each action is isolated:
precondition failures become Skipped, any other error becomes Failed, and
the loop moves on.
"""

import asyncio
import random
from datetime import datetime
from typing import Awaitable, Callable, List, Optional

from .accounts import derive_account
from .chain import TxReceiptInfo
from .config import BotConfig
from .logging_utils import get_logger
from .models import (
    RUN_EVERYTHING_STEPS,
    ActionResult,
    AddLiquiditySpec,
    BalanceRow,
    OperationSpec,
    Outcome,
    RunMode,
    RunPlan,
    RunSummary,
    SwapSpec,
    UnwrapSpec,
    WrapSpec,
)
from .operations import OperationCatalog
from .utils import BotError, PreconditionError, format_address, sanitize_error_message


logger = get_logger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


class RunListener:
    """Receives structured progress events; all hooks are optional."""

    def on_step(self, number: int, total: int, mode: RunMode):
        pass

    def on_result(self, result: ActionResult):
        pass

    def on_balances(self, rows: List[BalanceRow]):
        pass

    def on_wait(self, seconds: float):
        pass


class Orchestrator:
    """Sequences operations across accounts with pacing and failure isolation."""

    def __init__(
        self,
        config: BotConfig,
        chain,
        catalog: Optional[OperationCatalog] = None,
        sleep: SleepFunc = asyncio.sleep,
        rng: Optional[random.Random] = None,
        listener: Optional[RunListener] = None
    ):
        self.config = config
        self.chain = chain
        self.catalog = catalog or OperationCatalog(config, chain)
        self._sleep = sleep
        self.rng = rng or random.Random()
        self.listener = listener or RunListener()

    async def run(self, plan: RunPlan) -> RunSummary:
        """Execute ``plan`` and return its summary. Never raises for action errors."""
        summary = RunSummary(mode=plan.mode)
        logger.info(
            f"Starting {plan.mode.value} run: {plan.account_count} account(s), "
            f"{plan.repetitions} repetition(s)"
        )
        try:
            await self._run_mode(plan.mode, plan, summary)
        finally:
            summary.finished_at = datetime.now()

        logger.info(
            f"Run {plan.mode.value} finished: {summary.succeeded} succeeded, "
            f"{summary.skipped} skipped, {summary.failed} failed",
            fields={'summary': summary.to_dict()},
        )
        return summary

    async def _run_mode(self, mode: RunMode, plan: RunPlan, summary: RunSummary):
        if mode is RunMode.SWAP:
            await self._run_swaps(plan, summary)
        elif mode in (RunMode.WRAP, RunMode.UNWRAP, RunMode.AUTO):
            await self._run_wrap_cycle(mode, plan, summary)
        elif mode is RunMode.LIQUIDITY:
            await self._run_liquidity(plan, summary)
        elif mode is RunMode.BALANCES:
            await self._run_balances(plan, summary)
        elif mode is RunMode.ALL:
            await self._run_everything(plan, summary)
        else:
            raise ValueError(f"Unsupported run mode: {mode}")

    # Spec construction

    def random_amount(self, low: float, high: float, places: int = 6) -> float:
        """Uniform draw in [low, high] rounded to ``places`` decimals."""
        amount = round(self.rng.uniform(low, high), places)
        return min(max(amount, low), high)

    def random_swap_spec(self) -> SwapSpec:
        symbol = self.rng.choice(self.config.swap_targets)
        return SwapSpec(
            from_token=self.config.wrapped_native_address,
            to_token=self.config.token_address(symbol),
            amount=self.random_amount(self.config.swap_amount_min, self.config.swap_amount_max),
            to_symbol=symbol,
        )

    def random_wrap_amount(self) -> float:
        return self.random_amount(self.config.wrap_amount_min, self.config.wrap_amount_max)

    def liquidity_specs(self) -> List[AddLiquiditySpec]:
        """Configured pairs with a positive amount, in configured order."""
        return [
            AddLiquiditySpec(symbol_a, symbol_b, amount)
            for symbol_a, symbol_b, amount in self.config.liquidity_pairs
            if amount > 0
        ]

    # Traversals

    async def _run_swaps(self, plan: RunPlan, summary: RunSummary):
        n = plan.repetitions
        first = True
        for index, key in enumerate(plan.credentials, 1):
            logger.info(f"{self._label(key, index)} | Processing account ({n} swap(s))")
            for i in range(n):
                if not first:
                    await self._pause(self.rng.uniform(self.config.swap_delay_min, self.config.swap_delay_max))
                first = False

                spec = self.random_swap_spec()
                logger.info(
                    f"{self._label(key, index)} | Swap {i + 1}/{n}: "
                    f"{spec.amount} {self.config.native_symbol} -> {spec.to_symbol}"
                )
                await self._execute(key, index, spec, i + 1, summary)

    async def _run_wrap_cycle(self, mode: RunMode, plan: RunPlan, summary: RunSummary):
        n = plan.repetitions
        delay = self.config.step_delay_seconds
        for index, key in enumerate(plan.credentials, 1):
            for j in range(n):
                logger.info(f"{self._label(key, index)} | Processing transaction {j + 1}/{n} for account {index}")
                # One amount per iteration so auto unwraps what it just wrapped
                amount = self.random_wrap_amount()

                if mode in (RunMode.WRAP, RunMode.AUTO):
                    await self._execute(key, index, WrapSpec(amount), j + 1, summary)
                    if j < n - 1 or mode is RunMode.AUTO:
                        await self._pause(delay)

                if mode in (RunMode.UNWRAP, RunMode.AUTO):
                    await self._execute(key, index, UnwrapSpec(amount), j + 1, summary)
                    if j < n - 1:
                        await self._pause(delay)

    async def _run_liquidity(self, plan: RunPlan, summary: RunSummary):
        n = plan.repetitions
        position = self.rng.randrange(len(plan.credentials))
        key = plan.credentials[position]
        index = position + 1

        catalog = self.catalog
        if plan.proxy:
            logger.info(f"Using proxy {plan.proxy[:15]}...")
            catalog = self.catalog.with_chain(self.chain.with_proxy(plan.proxy))

        specs = self.liquidity_specs()
        for i in range(n):
            logger.info(f"Processing liquidity iteration {i + 1}/{n} with {self._label(key, index)}")
            for spec in specs:
                await self._execute(key, index, spec, i + 1, summary, catalog=catalog)
            if i < n - 1:
                await self._pause(self.rng.uniform(
                    self.config.liquidity_delay_min, self.config.liquidity_delay_max
                ))

    async def _run_balances(self, plan: RunPlan, summary: RunSummary):
        logger.info("Reading account balances")
        rows = [self.catalog.balances(index, key) for index, key in enumerate(plan.credentials, 1)]
        summary.balances.extend(rows)
        self._notify("on_balances", rows)

    async def _run_everything(self, plan: RunPlan, summary: RunSummary):
        total = len(RUN_EVERYTHING_STEPS)
        for number, step in enumerate(RUN_EVERYTHING_STEPS, 1):
            if number > 1:
                await self._pause(self.config.step_delay_seconds)
            logger.info(f"Step {number}/{total}: {step.value}")
            summary.steps.append(step)
            self._notify("on_step", number, total, step)
            await self._run_mode(step, plan, summary)

    # Execution boundary

    async def _execute(
        self,
        key: str,
        index: int,
        spec: OperationSpec,
        iteration: int,
        summary: RunSummary,
        catalog: Optional[OperationCatalog] = None
    ) -> ActionResult:
        """Run one spec to a terminal outcome; never raises for action errors."""
        catalog = catalog or self.catalog
        label = f"Account {index}"
        account_ref = label
        try:
            account = derive_account(key)
            label = account.short_address
            account_ref = account.address
            receipt: TxReceiptInfo = catalog.execute(account, spec)
        except PreconditionError as e:
            logger.warning(f"{label} | {spec.kind.value} skipped: {e}")
            result = ActionResult(account_ref, spec.kind, Outcome.SKIPPED, message=str(e), iteration=iteration)
        except BotError as e:
            message = sanitize_error_message(e)
            logger.error(f"{label} | {spec.kind.value} failed: {message}")
            result = ActionResult(
                account_ref, spec.kind, Outcome.FAILED,
                tx_hash=getattr(e, 'tx_hash', None), message=message, iteration=iteration
            )
        except Exception as e:
            logger.exception(f"{label} | {spec.kind.value} failed unexpectedly")
            result = ActionResult(
                account_ref, spec.kind, Outcome.FAILED,
                message=sanitize_error_message(e), iteration=iteration
            )
        else:
            message = "dry run" if receipt.dry_run else self.chain.tx_url(receipt.tx_hash)
            result = ActionResult(
                account_ref, spec.kind, Outcome.SUCCESS,
                tx_hash=receipt.tx_hash, message=message, iteration=iteration
            )

        summary.add(result)
        self._notify("on_result", result)
        return result

    async def _pause(self, seconds: float):
        logger.info(f"Waiting {seconds:g}s...")
        self._notify("on_wait", seconds)
        await self._sleep(seconds)

    def _notify(self, hook: str, *args):
        """Deliver a listener event; a broken listener never stops the run."""
        try:
            getattr(self.listener, hook)(*args)
        except Exception:
            logger.exception(f"Run listener {hook} failed")

    @staticmethod
    def _label(key: str, index: int) -> str:
        try:
            return format_address(derive_account(key).address)
        except BotError:
            return f"Account {index}"
