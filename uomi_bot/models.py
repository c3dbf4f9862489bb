"""
Data Models
===========
Value types shared by the operation catalog, the orchestrator and the CLI:
accounts, assets, operation specs, run plans and run outcomes.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from .utils import NoAccountsError, format_address


@dataclass(frozen=True)
class WalletAccount:
    """A signing key and the address derived from it."""
    address: str
    key: str = field(repr=False)

    @property
    def short_address(self) -> str:
        return format_address(self.address)


@dataclass(frozen=True)
class Asset:
    """A fungible asset; ``address`` is None for the chain's native coin."""
    symbol: str
    address: Optional[str] = None

    @property
    def is_native(self) -> bool:
        return self.address is None


class OperationKind(Enum):
    """On-chain action types."""
    SWAP = "swap"
    WRAP = "wrap"
    UNWRAP = "unwrap"
    ADD_LIQUIDITY = "add_liquidity"


@dataclass(frozen=True)
class SwapSpec:
    """Exact-input swap of ``amount`` native units along from_token -> to_token."""
    from_token: str
    to_token: str
    amount: float
    to_symbol: str = ""

    kind = OperationKind.SWAP


@dataclass(frozen=True)
class WrapSpec:
    amount: float

    kind = OperationKind.WRAP


@dataclass(frozen=True)
class UnwrapSpec:
    amount: float

    kind = OperationKind.UNWRAP


@dataclass(frozen=True)
class AddLiquiditySpec:
    """Full-range position with ``amount`` of each side of the pair."""
    symbol_a: str
    symbol_b: str
    amount: float

    kind = OperationKind.ADD_LIQUIDITY

    @property
    def pair_label(self) -> str:
        return f"{self.symbol_a}/{self.symbol_b}"


OperationSpec = Union[SwapSpec, WrapSpec, UnwrapSpec, AddLiquiditySpec]


class RunMode(Enum):
    """What a menu selection asks the orchestrator to do."""
    SWAP = "swap"
    WRAP = "wrap"
    UNWRAP = "unwrap"
    AUTO = "auto"
    LIQUIDITY = "liquidity"
    ALL = "all"
    BALANCES = "balances"


# Step order for RunMode.ALL
RUN_EVERYTHING_STEPS: Tuple[RunMode, ...] = (
    RunMode.BALANCES,
    RunMode.SWAP,
    RunMode.WRAP,
    RunMode.UNWRAP,
    RunMode.AUTO,
    RunMode.LIQUIDITY,
    RunMode.BALANCES,
)


@dataclass(frozen=True)
class RunPlan:
    """One menu selection: a mode over a non-empty list of credentials."""
    mode: RunMode
    repetitions: int
    credentials: Tuple[str, ...]
    proxy: Optional[str] = None

    def __post_init__(self):
        if not self.credentials:
            raise NoAccountsError("No valid private keys found in accounts file")
        if self.repetitions < 1:
            raise ValueError(f"Repetition count must be > 0, got {self.repetitions}")
        object.__setattr__(self, 'credentials', tuple(self.credentials))

    @property
    def account_count(self) -> int:
        return len(self.credentials)


class Outcome(Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class ActionResult:
    """Result of a single OperationSpec attempt."""
    account: str
    kind: OperationKind
    outcome: Outcome
    tx_hash: Optional[str] = None
    message: str = ""
    iteration: int = 0
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def succeeded(self) -> bool:
        return self.outcome is Outcome.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        return {
            'account': self.account,
            'kind': self.kind.value,
            'outcome': self.outcome.value,
            'tx_hash': self.tx_hash,
            'message': self.message,
            'iteration': self.iteration,
            'timestamp': self.timestamp.isoformat(),
        }


@dataclass
class BalanceRow:
    """Balances of one account, or the error that prevented reading them."""
    index: int
    address: str
    balances: Dict[str, Decimal] = field(default_factory=dict)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'index': self.index,
            'address': self.address,
            'balances': {k: str(v) for k, v in self.balances.items()},
            'error': self.error,
        }


@dataclass
class RunSummary:
    """Aggregated outcomes of one RunPlan."""
    mode: RunMode
    results: List[ActionResult] = field(default_factory=list)
    steps: List[RunMode] = field(default_factory=list)
    balances: List[BalanceRow] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None

    def add(self, result: ActionResult):
        self.results.append(result)

    def count(self, outcome: Outcome) -> int:
        return sum(1 for r in self.results if r.outcome is outcome)

    @property
    def succeeded(self) -> int:
        return self.count(Outcome.SUCCESS)

    @property
    def skipped(self) -> int:
        return self.count(Outcome.SKIPPED)

    @property
    def failed(self) -> int:
        return self.count(Outcome.FAILED)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def success_rate(self) -> float:
        if self.total == 0:
            return 0.0
        return (self.succeeded / self.total) * 100

    @property
    def duration_seconds(self) -> float:
        end = self.finished_at or datetime.now()
        return (end - self.started_at).total_seconds()

    def by_kind(self) -> Dict[OperationKind, Counter]:
        """Outcome counts per operation kind."""
        breakdown: Dict[OperationKind, Counter] = {}
        for result in self.results:
            breakdown.setdefault(result.kind, Counter())[result.outcome] += 1
        return breakdown

    def to_dict(self) -> Dict[str, Any]:
        return {
            'mode': self.mode.value,
            'total': self.total,
            'succeeded': self.succeeded,
            'skipped': self.skipped,
            'failed': self.failed,
            'success_rate': self.success_rate,
            'by_kind': {
                kind.value: {outcome.value: n for outcome, n in counts.items()}
                for kind, counts in self.by_kind().items()
            },
            'steps': [step.value for step in self.steps],
            'results': [r.to_dict() for r in self.results],
            'started_at': self.started_at.isoformat(),
            'finished_at': self.finished_at.isoformat() if self.finished_at else None,
        }
