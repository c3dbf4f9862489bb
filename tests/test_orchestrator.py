"""
Orchestrator Tests
==================
Traversal order, pacing, failure isolation and end-to-end runs against the
in-memory chain client.

Run with: pytest tests/test_orchestrator.py -v
"""

import asyncio

import pytest

from conftest import BAD_KEY, KEY_1, KEY_2, KEY_3, address_of
from uomi_bot.cli import ConsoleReporter
from uomi_bot.config import BotConfig
from uomi_bot.models import (
    RUN_EVERYTHING_STEPS,
    OperationKind,
    Outcome,
    RunMode,
    RunPlan,
)
from uomi_bot.orchestrator import RunListener
from uomi_bot.utils import NetworkError, QuoteError, RevertError, to_base_units


def run(orchestrator, mode, credentials, repetitions=1, proxy=None):
    plan = RunPlan(mode, repetitions, tuple(credentials), proxy=proxy)
    return asyncio.run(orchestrator.run(plan))


class TestWrapTraversal:
    """Per-account repeated actions."""

    def test_wrap_attempts_every_account_and_repetition_in_order(self, make_orchestrator, fake_chain):
        keys = [KEY_1, KEY_2, KEY_3]
        summary = run(make_orchestrator(), RunMode.WRAP, keys, repetitions=2)

        assert summary.total == 6
        assert all(r.kind is OperationKind.WRAP for r in summary.results)
        expected = [address_of(k) for k in keys for _ in range(2)]
        assert [address for address, _ in fake_chain.submitted] == expected
        assert [r.account for r in summary.results] == expected

    def test_wrap_pauses_between_repetitions_only(self, make_orchestrator, sleeper):
        run(make_orchestrator(), RunMode.WRAP, [KEY_1, KEY_2, KEY_3], repetitions=2)
        # one pause per account, none after each account's final wrap
        assert sleeper.calls == [1.0, 1.0, 1.0]

    def test_single_repetition_wrap_never_sleeps(self, make_orchestrator, sleeper):
        run(make_orchestrator(), RunMode.WRAP, [KEY_1], repetitions=1)
        assert sleeper.calls == []

    def test_auto_wraps_then_unwraps_each_iteration(self, make_orchestrator, fake_chain, sleeper):
        summary = run(make_orchestrator(), RunMode.AUTO, [KEY_1], repetitions=2)

        kinds = [r.kind for r in summary.results]
        assert kinds == [OperationKind.WRAP, OperationKind.UNWRAP] * 2
        # wrap/pause/unwrap/pause, then wrap/pause/unwrap on the last iteration
        assert sleeper.calls == [1.0, 1.0, 1.0]

    def test_auto_unwraps_the_amount_it_wrapped(self, make_orchestrator, fake_chain):
        run(make_orchestrator(), RunMode.AUTO, [KEY_1], repetitions=3)

        wraps = fake_chain.calls_named("Wrap")
        unwraps = fake_chain.calls_named("Unwrap")
        assert [c.value for c in wraps] == [c.args[0] for c in unwraps]

    def test_unwrap_mode(self, make_orchestrator, fake_chain):
        summary = run(make_orchestrator(), RunMode.UNWRAP, [KEY_1, KEY_2], repetitions=1)

        assert [r.kind for r in summary.results] == [OperationKind.UNWRAP] * 2
        assert all(call.function == "withdraw" for _, call in fake_chain.submitted)


class TestPreconditions:
    """Balance checks come before any submission."""

    def test_low_native_balance_skips_wrap(self, make_orchestrator, fake_chain):
        fake_chain.set_balance(address_of(KEY_1), "UOMI", 0)

        summary = run(make_orchestrator(), RunMode.WRAP, [KEY_1], repetitions=3)

        assert summary.skipped == 3
        assert summary.failed == 0
        assert fake_chain.submitted == []

    def test_low_wrapped_balance_skips_unwrap(self, make_orchestrator, fake_chain):
        fake_chain.set_balance(address_of(KEY_1), "WUOMI", 0)

        summary = run(make_orchestrator(), RunMode.UNWRAP, [KEY_1])

        assert [r.outcome for r in summary.results] == [Outcome.SKIPPED]
        assert "Insufficient WUOMI" in summary.results[0].message
        assert fake_chain.submitted == []

    def test_balance_equal_to_amount_is_enough(self, make_orchestrator, fake_chain):
        config = BotConfig(wrap_amount_min=0.002, wrap_amount_max=0.002, log_file=None)
        fake_chain.set_balance(address_of(KEY_1), "UOMI", to_base_units(0.002))
        fake_chain.set_balance(address_of(KEY_2), "UOMI", to_base_units(0.002) - 1)

        summary = run(make_orchestrator(config), RunMode.WRAP, [KEY_1, KEY_2])

        assert [r.outcome for r in summary.results] == [Outcome.SUCCESS, Outcome.SKIPPED]
        assert len(fake_chain.submitted) == 1

    def test_swap_with_low_balance_is_skipped_before_quoting(self, make_orchestrator, fake_chain):
        fake_chain.set_balance(address_of(KEY_1), "UOMI", 0)

        summary = run(make_orchestrator(), RunMode.SWAP, [KEY_1])

        assert summary.skipped == 1
        assert fake_chain.quotes == []
        assert fake_chain.submitted == []

    def test_invalid_credential_is_skipped_and_others_continue(self, make_orchestrator, fake_chain):
        summary = run(make_orchestrator(), RunMode.WRAP, [BAD_KEY, KEY_1])

        assert [r.outcome for r in summary.results] == [Outcome.SKIPPED, Outcome.SUCCESS]
        assert summary.results[0].account == "Account 1"
        assert [address for address, _ in fake_chain.submitted] == [address_of(KEY_1)]


class TestFailureIsolation:
    """One failing action never stops the run."""

    def test_quote_failure_never_submits(self, make_orchestrator, fake_chain):
        fake_chain.quote_error = QuoteError("Failed to get amount out min")

        summary = run(make_orchestrator(), RunMode.SWAP, [KEY_1], repetitions=2)

        assert [r.outcome for r in summary.results] == [Outcome.FAILED, Outcome.FAILED]
        assert len(fake_chain.quotes) == 2
        assert fake_chain.submitted == []

    def test_revert_for_one_account_does_not_stop_the_next(self, make_orchestrator, fake_chain):
        fake_chain.fail("Wrap", RevertError("Wrap reverted", tx_hash="0xabc"), address=address_of(KEY_1))

        summary = run(make_orchestrator(), RunMode.WRAP, [KEY_1, KEY_2])

        assert [r.outcome for r in summary.results] == [Outcome.FAILED, Outcome.SUCCESS]
        assert summary.results[0].tx_hash == "0xabc"
        assert summary.results[1].tx_hash is not None

    def test_unexpected_exception_is_counted_as_failed(self, make_orchestrator, fake_chain):
        fake_chain.fail("Wrap", RuntimeError("boom"))

        summary = run(make_orchestrator(), RunMode.WRAP, [KEY_1, KEY_2], repetitions=2)

        assert summary.failed == 4
        assert len(fake_chain.submitted) == 4

    def test_network_error_mid_run_is_failed_not_fatal(self, make_orchestrator, fake_chain):
        fake_chain.balance_error = NetworkError("connection reset")

        summary = run(make_orchestrator(), RunMode.AUTO, [KEY_1])

        assert [r.outcome for r in summary.results] == [Outcome.FAILED, Outcome.FAILED]

    def test_mint_failure_after_approvals_fails_the_spec(self, make_orchestrator, fake_chain):
        config = BotConfig(liquidity_pairs=(("WUOMI", "SIM", 0.001),), log_file=None)
        fake_chain.fail("Add liquidity", RevertError("Add liquidity reverted", tx_hash="0xdef"))

        summary = run(make_orchestrator(config), RunMode.LIQUIDITY, [KEY_1])

        assert [r.outcome for r in summary.results] == [Outcome.FAILED]
        assert len(fake_chain.calls_named("Approve")) == 2
        assert len(fake_chain.calls_named("Add liquidity")) == 1


class TestSwaps:

    def test_swaps_pause_randomly_between_swaps(self, make_orchestrator, sleeper, fake_chain):
        summary = run(make_orchestrator(), RunMode.SWAP, [KEY_1, KEY_2], repetitions=2)

        assert summary.succeeded == 4
        assert len(sleeper.calls) == 3
        assert all(5.0 <= s <= 10.0 for s in sleeper.calls)
        assert len(fake_chain.quotes) == 4

    def test_swap_targets_come_from_configuration(self, make_orchestrator, config):
        orchestrator = make_orchestrator()
        targets = {orchestrator.random_swap_spec().to_symbol for _ in range(200)}
        assert targets <= set(config.swap_targets)
        assert len(targets) > 1

    def test_random_amounts_stay_in_range(self, make_orchestrator, config):
        orchestrator = make_orchestrator()

        for _ in range(1000):
            amount = orchestrator.random_swap_spec().amount
            assert config.swap_amount_min <= amount <= config.swap_amount_max
            assert round(amount, 6) == amount

            wrap_amount = orchestrator.random_wrap_amount()
            assert config.wrap_amount_min <= wrap_amount <= config.wrap_amount_max


class TestLiquidity:

    def test_one_account_for_the_whole_plan(self, make_orchestrator):
        summary = run(make_orchestrator(), RunMode.LIQUIDITY, [KEY_1, KEY_2, KEY_3], repetitions=2)

        assert summary.total == 8
        assert len({r.account for r in summary.results}) == 1

    def test_pairs_without_amount_are_skipped(self, make_orchestrator, sleeper):
        config = BotConfig(
            liquidity_pairs=(("WUOMI", "SIM", 0.001), ("USDC", "SYN", 0.0)),
            log_file=None,
        )

        summary = run(make_orchestrator(config), RunMode.LIQUIDITY, [KEY_1], repetitions=3)

        assert summary.total == 3
        assert all(r.kind is OperationKind.ADD_LIQUIDITY for r in summary.results)
        assert sleeper.calls == [1, 1]

    def test_proxy_is_used_for_liquidity(self, make_orchestrator, fake_chain):
        run(make_orchestrator(), RunMode.LIQUIDITY, [KEY_1], proxy="http://10.0.0.1:8080")
        assert fake_chain.proxies == ["http://10.0.0.1:8080"]

    def test_low_token_balance_skips_pair_without_approvals(self, make_orchestrator, fake_chain):
        config = BotConfig(liquidity_pairs=(("USDC", "SYN", 0.001),), log_file=None)
        fake_chain.set_balance(address_of(KEY_1), "SYN", 0)

        summary = run(make_orchestrator(config), RunMode.LIQUIDITY, [KEY_1])

        assert summary.skipped == 1
        assert fake_chain.submitted == []


class TestEndToEnd:

    def test_two_funded_accounts_wrap_once(self, make_orchestrator):
        summary = run(make_orchestrator(), RunMode.WRAP, [KEY_1, KEY_2])

        assert (summary.succeeded, summary.skipped, summary.failed) == (2, 0, 0)

    def test_empty_account_unwrap_is_skipped(self, make_orchestrator, fake_chain):
        fake_chain.set_balance(address_of(KEY_1), "UOMI", 0)
        fake_chain.set_balance(address_of(KEY_1), "WUOMI", 0)

        summary = run(make_orchestrator(), RunMode.UNWRAP, [KEY_1])

        assert (summary.succeeded, summary.skipped, summary.failed) == (0, 1, 0)
        assert fake_chain.submitted == []

    def test_run_everything_steps_in_order_with_pauses(self, make_orchestrator, listener, sleeper):
        summary = run(make_orchestrator(), RunMode.ALL, [KEY_1])

        assert summary.steps == list(RUN_EVERYTHING_STEPS)

        steps = [e[1] for e in listener.events if e[0] == "step"]
        assert steps == list(RUN_EVERYTHING_STEPS)

        step_positions = [i for i, e in enumerate(listener.events) if e[0] == "step"]
        assert step_positions[0] == 0
        for position in step_positions[1:]:
            assert listener.events[position - 1] == ("wait", 1.0)

        kinds = [r.kind for r in summary.results]
        assert kinds == [
            OperationKind.SWAP,
            OperationKind.WRAP,
            OperationKind.UNWRAP,
            OperationKind.WRAP,
            OperationKind.UNWRAP,
        ] + [OperationKind.ADD_LIQUIDITY] * 4
        assert summary.failed == 0
        assert len(summary.balances) == 2
        # six step pauses plus the pause inside the auto wrap/unwrap pair
        assert sleeper.calls == [1.0] * 7

    def test_balances_mode_reports_rows(self, make_orchestrator, listener):
        summary = run(make_orchestrator(), RunMode.BALANCES, [KEY_1, KEY_2])

        assert summary.total == 0
        assert [row.index for row in summary.balances] == [1, 2]
        assert listener.events == [("balances", 2)]

    def test_summary_serializes(self, make_orchestrator):
        summary = run(make_orchestrator(), RunMode.AUTO, [KEY_1])
        data = summary.to_dict()

        assert data['mode'] == "auto"
        assert data['succeeded'] == 2
        assert data['by_kind'] == {"wrap": {"success": 1}, "unwrap": {"success": 1}}
        assert data['finished_at'] is not None


class TestRunPlan:

    def test_empty_credentials_are_rejected(self):
        from uomi_bot.utils import NoAccountsError

        with pytest.raises(NoAccountsError):
            RunPlan(RunMode.WRAP, 1, ())

    def test_repetitions_must_be_positive(self):
        with pytest.raises(ValueError):
            RunPlan(RunMode.WRAP, 0, (KEY_1,))


class TestListenerIsolation:
    """Listener failures and odd messages never cut a run short."""

    def test_markup_in_error_message_does_not_stop_the_run(self, make_orchestrator, fake_chain):
        fake_chain.fail(
            "Wrap", RevertError("execution reverted: bad [/x] reason"), address=address_of(KEY_1)
        )
        orchestrator = make_orchestrator()
        orchestrator.listener = ConsoleReporter(["UOMI", "WUOMI"])

        summary = run(orchestrator, RunMode.WRAP, [KEY_1, KEY_2])

        assert [r.outcome for r in summary.results] == [Outcome.FAILED, Outcome.SUCCESS]
        assert "[/x]" in summary.results[0].message
        assert [sender for sender, _ in fake_chain.submitted] == [address_of(KEY_1), address_of(KEY_2)]

    def test_raising_listener_is_contained(self, make_orchestrator, fake_chain, sleeper):
        class BrokenListener(RunListener):
            def on_result(self, result):
                raise RuntimeError("display gone")

            def on_wait(self, seconds):
                raise RuntimeError("display gone")

            def on_step(self, number, total, mode):
                raise RuntimeError("display gone")

            def on_balances(self, rows):
                raise RuntimeError("display gone")

        orchestrator = make_orchestrator()
        orchestrator.listener = BrokenListener()

        summary = run(orchestrator, RunMode.ALL, [KEY_1])

        assert summary.steps == list(RUN_EVERYTHING_STEPS)
        assert summary.failed == 0
        assert len(summary.balances) == 2
        assert len(sleeper.calls) >= len(RUN_EVERYTHING_STEPS) - 1


class TestLiquidityPacing:

    def test_fractional_delay_is_kept(self, make_orchestrator, sleeper):
        config = BotConfig(
            liquidity_pairs=(("WUOMI", "SIM", 0.001),),
            liquidity_delay_min=0.5,
            liquidity_delay_max=0.5,
            log_file=None,
        )

        run(make_orchestrator(config), RunMode.LIQUIDITY, [KEY_1], repetitions=3)

        assert sleeper.calls == [0.5, 0.5]

    def test_delay_stays_within_range(self, make_orchestrator, sleeper):
        config = BotConfig(
            liquidity_pairs=(("WUOMI", "SIM", 0.001),),
            liquidity_delay_min=1.5,
            liquidity_delay_max=2.5,
            log_file=None,
        )

        run(make_orchestrator(config), RunMode.LIQUIDITY, [KEY_1], repetitions=5)

        assert len(sleeper.calls) == 4
        assert all(1.5 <= s <= 2.5 for s in sleeper.calls)

    def test_duplicate_keys_keep_their_own_position(self, make_orchestrator):
        config = BotConfig(liquidity_pairs=(("WUOMI", "SIM", 0.001),), log_file=None)

        labels = set()
        for seed in range(20):
            summary = run(make_orchestrator(config, seed=seed), RunMode.LIQUIDITY, [BAD_KEY, BAD_KEY])
            labels.update(r.account for r in summary.results)

        assert labels == {"Account 1", "Account 2"}
