"""
UOMI Testnet Bot

Drives a set of wallets through swaps, wraps, unwraps and liquidity
provisioning on the UOMI test network from an interactive menu.

Usage:
    from uomi_bot import BotConfig, ChainClient, Orchestrator, RunMode, RunPlan

    config = BotConfig()
    orchestrator = Orchestrator(config, ChainClient(config))
    summary = asyncio.run(orchestrator.run(RunPlan(RunMode.WRAP, 1, keys)))
"""

__version__ = "1.0.0"
__license__ = "MIT"

from .accounts import AccountSource, derive_account
from .chain import ChainClient, ContractCall, FeeMode, GasPolicy, TxReceiptInfo
from .config import BotConfig, ConfigManager
from .models import (
    ActionResult,
    AddLiquiditySpec,
    Asset,
    BalanceRow,
    OperationKind,
    Outcome,
    RunMode,
    RunPlan,
    RunSummary,
    SwapSpec,
    UnwrapSpec,
    WalletAccount,
    WrapSpec,
)
from .operations import OperationCatalog
from .orchestrator import Orchestrator, RunListener
from .utils import (
    BotError,
    ChainError,
    ConfigError,
    InsufficientBalanceError,
    InvalidCredentialError,
    NetworkError,
    NoAccountsError,
    PreconditionError,
    QuoteError,
    RevertError,
    SubmissionError,
    UserInputError,
)

__all__ = [
    "AccountSource",
    "derive_account",
    "ChainClient",
    "ContractCall",
    "FeeMode",
    "GasPolicy",
    "TxReceiptInfo",
    "BotConfig",
    "ConfigManager",
    "ActionResult",
    "AddLiquiditySpec",
    "Asset",
    "BalanceRow",
    "OperationKind",
    "Outcome",
    "RunMode",
    "RunPlan",
    "RunSummary",
    "SwapSpec",
    "UnwrapSpec",
    "WalletAccount",
    "WrapSpec",
    "OperationCatalog",
    "Orchestrator",
    "RunListener",
    "BotError",
    "ChainError",
    "ConfigError",
    "InsufficientBalanceError",
    "InvalidCredentialError",
    "NetworkError",
    "NoAccountsError",
    "PreconditionError",
    "QuoteError",
    "RevertError",
    "SubmissionError",
    "UserInputError",
]
