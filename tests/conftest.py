"""
Shared fixtures: an in-memory chain client that records every call, a
recording sleep and a recording run listener.
"""

import random
from typing import Dict, List, Optional, Tuple

import pytest
from eth_account import Account

from uomi_bot.chain import ContractCall, TxReceiptInfo
from uomi_bot.config import BotConfig
from uomi_bot.models import Asset
from uomi_bot.orchestrator import Orchestrator, RunListener


KEY_1 = "0x" + "1" * 64
KEY_2 = "0x" + "2" * 64
KEY_3 = "0x" + "3" * 64
BAD_KEY = "0x" + "z" * 64

DEFAULT_BALANCE = 10 ** 24


class FakeChainClient:
    """Stands in for ChainClient; balances default to plenty of everything."""

    def __init__(self, config: BotConfig):
        self.config = config
        self.dry_run = False
        self.balances: Dict[Tuple[str, str], int] = {}
        self.decimals: Dict[str, int] = {}
        self.quote_amount = 1_000_000
        self.quote_error: Optional[Exception] = None
        self.quotes: List[Tuple[bytes, int]] = []
        self.submitted: List[Tuple[str, ContractCall]] = []
        self.failures: List[Tuple[Optional[str], str, Exception]] = []
        self.proxies: List[str] = []
        self.balance_error: Optional[Exception] = None

    def set_balance(self, address: str, symbol: str, amount: int):
        self.balances[(address.lower(), symbol)] = amount

    def fail(self, description_prefix: str, error: Exception, address: Optional[str] = None):
        """Make send_and_confirm raise for matching calls."""
        self.failures.append((address, description_prefix, error))

    def get_decimals(self, token: str) -> int:
        return self.decimals.get(token.lower(), 18)

    def get_balance(self, address: str, asset: Asset):
        if self.balance_error is not None:
            raise self.balance_error
        decimals = 18 if asset.is_native else self.get_decimals(asset.address)
        return self.balances.get((address.lower(), asset.symbol), DEFAULT_BALANCE), decimals

    def quote_exact_input(self, path: bytes, amount_in: int) -> int:
        self.quotes.append((path, amount_in))
        if self.quote_error is not None:
            raise self.quote_error
        return self.quote_amount

    def send_and_confirm(self, account, call: ContractCall) -> TxReceiptInfo:
        self.submitted.append((account.address, call))
        for address, prefix, error in self.failures:
            if call.description.startswith(prefix) and address in (None, account.address):
                raise error
        return TxReceiptInfo(tx_hash=f"0x{len(self.submitted):064x}", status=1)

    def tx_url(self, tx_hash: str) -> str:
        return self.config.tx_url(tx_hash)

    def with_proxy(self, proxy):
        if proxy:
            self.proxies.append(proxy)
        return self

    def calls_named(self, prefix: str) -> List[ContractCall]:
        return [call for _, call in self.submitted if call.description.startswith(prefix)]


class RecordingSleep:
    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float):
        self.calls.append(seconds)


class RecordingListener(RunListener):
    def __init__(self):
        self.events = []

    def on_step(self, number, total, mode):
        self.events.append(("step", mode))

    def on_result(self, result):
        self.events.append(("result", result.kind, result.outcome))

    def on_balances(self, rows):
        self.events.append(("balances", len(rows)))

    def on_wait(self, seconds):
        self.events.append(("wait", seconds))


def address_of(key: str) -> str:
    return Account.from_key(key).address


@pytest.fixture
def config():
    return BotConfig(log_file=None)


@pytest.fixture
def fake_chain(config):
    return FakeChainClient(config)


@pytest.fixture
def sleeper():
    return RecordingSleep()


@pytest.fixture
def listener():
    return RecordingListener()


@pytest.fixture
def make_orchestrator(fake_chain, sleeper, listener):
    def factory(config: Optional[BotConfig] = None, seed: int = 7):
        cfg = config or fake_chain.config
        fake_chain.config = cfg
        return Orchestrator(
            cfg,
            fake_chain,
            sleep=sleeper,
            rng=random.Random(seed),
            listener=listener,
        )
    return factory
