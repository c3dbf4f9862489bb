"""
Operation Catalog
=================
Maps each OperationSpec to the chain calls that carry it out:

- Swap:          balance check -> quote -> execute(wrap, v3 swap)
- Wrap:          balance check -> deposit() with the native value
- Unwrap:        balance check -> withdraw(amount)
- AddLiquidity:  balance checks -> approve token A -> approve token B -> mint

Every mutating call is preceded by a balance check that raises
InsufficientBalanceError. Nothing here retries or catches chain errors; they
propagate to the orchestrator, which owns failure isolation.
"""

import time
from typing import Callable, List, Optional

from .abis import DEPOSIT_SELECTOR, ERC20_ABI, POSITION_MANAGER_ABI, SWAP_ROUTER_ABI
from .accounts import derive_account
from .chain import ContractCall, FeeMode, TxReceiptInfo
from .config import BotConfig
from .encoding import RouterEncoder, apply_slippage, canonical_pair, deadline_from_now
from .logging_utils import get_logger
from .models import (
    AddLiquiditySpec,
    Asset,
    BalanceRow,
    OperationSpec,
    SwapSpec,
    UnwrapSpec,
    WalletAccount,
    WrapSpec,
)
from .utils import (
    BotError,
    InsufficientBalanceError,
    format_units,
    from_base_units,
    sanitize_error_message,
    to_base_units,
)


logger = get_logger(__name__)


class OperationCatalog:
    """Stateless recipes for the bot's on-chain actions."""

    def __init__(self, config: BotConfig, chain, clock: Callable[[], float] = time.time):
        self.config = config
        self.chain = chain
        self.clock = clock
        self.encoder = RouterEncoder(pool_fee=config.pool_fee)

        self.native = Asset(config.native_symbol)
        self.wrapped = Asset(config.wrapped_native_symbol, config.wrapped_native_address)

    def with_chain(self, chain) -> "OperationCatalog":
        """Same recipes against another chain client (e.g. a proxied one)."""
        if chain is self.chain:
            return self
        return OperationCatalog(self.config, chain, clock=self.clock)

    @property
    def assets(self) -> List[Asset]:
        """Native coin, wrapped native and every configured token, in display order."""
        tokens = [Asset(symbol, address) for symbol, address in self.config.tokens.items()]
        return [self.native, self.wrapped] + tokens

    def execute(self, account: WalletAccount, spec: OperationSpec) -> TxReceiptInfo:
        """Run ``spec`` for ``account``; returns the receipt of the final call."""
        if isinstance(spec, SwapSpec):
            return self.swap(account, spec)
        elif isinstance(spec, WrapSpec):
            return self.wrap(account, spec)
        elif isinstance(spec, UnwrapSpec):
            return self.unwrap(account, spec)
        elif isinstance(spec, AddLiquiditySpec):
            return self.add_liquidity(account, spec)
        raise TypeError(f"Unsupported operation spec: {spec!r}")

    def _deadline(self) -> int:
        return deadline_from_now(self.config.deadline_seconds, now=self.clock())

    def require_balance(self, account: WalletAccount, asset: Asset, required: int) -> int:
        """Raise InsufficientBalanceError unless ``account`` holds ``required``."""
        balance, decimals = self.chain.get_balance(account.address, asset)
        if balance < required:
            raise InsufficientBalanceError(asset.symbol, balance, required, decimals)
        return balance

    def swap(self, account: WalletAccount, spec: SwapSpec) -> TxReceiptInfo:
        """
        Exact input swap of native coin through the execute router.

        The router wraps the sent value and swaps it along a single hop path.
        A failed quote raises QuoteError before anything is submitted.
        """
        amount_in = to_base_units(spec.amount)
        self.require_balance(account, self.native, amount_in)

        path = self.encoder.encode_path(spec.from_token, spec.to_token)
        quoted = self.chain.quote_exact_input(path, amount_in)
        min_out = apply_slippage(quoted, self.config.slippage_bps)
        logger.debug(
            f"{account.short_address} | Quote {quoted}, min out {min_out}",
            fields={'to_token': spec.to_token, 'amount_in': amount_in},
        )

        commands, inputs = self.encoder.build_swap(path, amount_in, min_out)
        target = spec.to_symbol or spec.to_token
        call = ContractCall(
            to=self.config.router_address,
            description=f"Swap {spec.amount} {self.native.symbol} -> {target}",
            abi=SWAP_ROUTER_ABI,
            function="execute",
            args=(commands, inputs, self._deadline()),
            value=amount_in,
            fee_mode=FeeMode.SWAP,
        )
        return self.chain.send_and_confirm(account, call)

    def wrap(self, account: WalletAccount, spec: WrapSpec) -> TxReceiptInfo:
        amount = to_base_units(spec.amount)
        self.require_balance(account, self.native, amount)

        call = ContractCall(
            to=self.wrapped.address,
            description=f"Wrap {format_units(amount)} {self.native.symbol}",
            data=DEPOSIT_SELECTOR,
            value=amount,
            gas_limit=self.config.wrap_gas_limit,
            fee_mode=FeeMode.MARKET,
        )
        return self.chain.send_and_confirm(account, call)

    def unwrap(self, account: WalletAccount, spec: UnwrapSpec) -> TxReceiptInfo:
        amount = to_base_units(spec.amount)
        self.require_balance(account, self.wrapped, amount)

        call = ContractCall(
            to=self.wrapped.address,
            description=f"Unwrap {format_units(amount)} {self.wrapped.symbol}",
            abi=ERC20_ABI,
            function="withdraw",
            args=(amount,),
            gas_limit=self.config.unwrap_gas_limit,
            fee_mode=FeeMode.MARKET,
        )
        return self.chain.send_and_confirm(account, call)

    def approve(self, account: WalletAccount, asset: Asset, spender: str, amount: int) -> TxReceiptInfo:
        call = ContractCall(
            to=asset.address,
            description=f"Approve {asset.symbol}",
            abi=ERC20_ABI,
            function="approve",
            args=(spender, amount),
            gas_limit=self.config.approve_gas_limit,
            fee_mode=FeeMode.FIXED,
        )
        return self.chain.send_and_confirm(account, call)

    def mint_params(
        self,
        token_a: str,
        token_b: str,
        amount_a: int,
        amount_b: int,
        recipient: str,
        deadline: int
    ) -> tuple:
        """MintParams for a full-range position, token0 first."""
        token0, token1, amount0, amount1 = canonical_pair(token_a, token_b, amount_a, amount_b)
        return (
            token0,
            token1,
            self.config.pool_fee,
            self.config.tick_lower,
            self.config.tick_upper,
            amount0,
            amount1,
            0,
            0,
            recipient,
            deadline,
        )

    def add_liquidity(self, account: WalletAccount, spec: AddLiquiditySpec) -> TxReceiptInfo:
        """
        Provide ``spec.amount`` of each token to the pair's pool.

        Both approvals are confirmed before minting. If the mint fails the
        approvals stay on chain and the whole spec counts as failed.
        """
        asset_a = Asset(spec.symbol_a, self.config.token_address(spec.symbol_a))
        asset_b = Asset(spec.symbol_b, self.config.token_address(spec.symbol_b))

        amount_a = to_base_units(spec.amount, self.chain.get_decimals(asset_a.address))
        amount_b = to_base_units(spec.amount, self.chain.get_decimals(asset_b.address))

        self.require_balance(account, asset_a, amount_a)
        self.require_balance(account, asset_b, amount_b)

        spender = self.config.position_manager_address
        logger.info(f"{account.short_address} | Approving {asset_a.symbol} for liquidity")
        self.approve(account, asset_a, spender, amount_a)
        logger.info(f"{account.short_address} | Approving {asset_b.symbol} for liquidity")
        self.approve(account, asset_b, spender, amount_b)

        params = self.mint_params(
            asset_a.address, asset_b.address, amount_a, amount_b,
            account.address, self._deadline()
        )
        call = ContractCall(
            to=spender,
            description=f"Add liquidity {spec.pair_label}",
            abi=POSITION_MANAGER_ABI,
            function="mint",
            args=(params,),
            gas_limit=self.config.mint_gas_limit,
            fee_mode=FeeMode.FIXED,
        )
        return self.chain.send_and_confirm(account, call)

    def balances(self, index: int, key: str, account: Optional[WalletAccount] = None) -> BalanceRow:
        """Balances of every known asset; a failed read is recorded on the row."""
        try:
            account = account or derive_account(key)
        except BotError as e:
            return BalanceRow(index=index, address="N/A", error=str(e))

        row = BalanceRow(index=index, address=account.address)
        try:
            for asset in self.assets:
                amount, decimals = self.chain.get_balance(account.address, asset)
                row.balances[asset.symbol] = from_base_units(amount, decimals)
        except BotError as e:
            row.error = sanitize_error_message(e)
            logger.error(f"{account.short_address} | Reading balances failed: {row.error}")
        return row
