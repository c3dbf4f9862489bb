"""
Chain Client Module
===================
Thin wrapper around web3 used by every on-chain operation:
- balance, decimals and fee reads (retried on transport errors)
- static quote calls
- transaction building, gas pricing, signing, submission and confirmation
- translation of web3 / requests exceptions into the bot's error taxonomy

Gas pricing follows three fixed policies (see GasPolicy); which one a call
uses is carried on the ContractCall itself.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import requests
from eth_account import Account
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted

from .abis import ERC20_ABI, SWAP_ROUTER_ABI
from .config import BotConfig
from .logging_utils import get_logger
from .models import Asset, WalletAccount
from .utils import (
    BotError,
    ConfirmationTimeoutError,
    NetworkError,
    QuoteError,
    RevertError,
    SubmissionError,
    format_address,
    sanitize_error_message,
)


logger = get_logger(__name__)

DRY_RUN_TX_HASH = "0xDRYRUN"

# Transient read failures only; writes and quotes are never retried
read_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type(NetworkError),
    reraise=True
)


class FeeMode(Enum):
    """Gas pricing policy for a transaction."""
    SWAP = "swap"      # fixed priority fee, max fee equal to it
    MARKET = "market"  # latest base fee + priority fee
    FIXED = "fixed"    # fixed base fee + priority fee


@dataclass(frozen=True)
class FeeParams:
    """EIP-1559 fee fields in wei."""
    max_fee_per_gas: int
    max_priority_fee_per_gas: int

    def to_tx_params(self) -> Dict[str, int]:
        return {
            'maxFeePerGas': self.max_fee_per_gas,
            'maxPriorityFeePerGas': self.max_priority_fee_per_gas,
        }


@dataclass(frozen=True)
class ContractCall:
    """
    A transaction to submit.

    Either ``function`` (with ``abi`` and ``args``) or raw ``data`` describes
    the call. ``gas_limit=None`` means estimate and apply the safety margin.
    """
    to: str
    description: str
    abi: Optional[list] = field(default=None, repr=False)
    function: Optional[str] = None
    args: Tuple[Any, ...] = ()
    data: Optional[str] = None
    value: int = 0
    gas_limit: Optional[int] = None
    fee_mode: FeeMode = FeeMode.FIXED


@dataclass(frozen=True)
class TxReceiptInfo:
    """The parts of a receipt the bot reports on."""
    tx_hash: str
    status: int
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    dry_run: bool = False

    @property
    def success(self) -> bool:
        return self.status == 1


class GasPolicy:
    """Computes fee parameters and gas limits from configuration."""

    def __init__(self, config: BotConfig):
        self.config = config

    @staticmethod
    def gwei(amount: float) -> int:
        return Web3.to_wei(Decimal(str(amount)), 'gwei')

    def swap_fees(self) -> FeeParams:
        priority = self.gwei(self.config.swap_priority_fee_gwei)
        return FeeParams(max_fee_per_gas=priority, max_priority_fee_per_gas=priority)

    def market_fees(self, base_fee: int) -> FeeParams:
        priority = self.gwei(self.config.priority_fee_gwei)
        return FeeParams(max_fee_per_gas=base_fee + priority, max_priority_fee_per_gas=priority)

    def fixed_fees(self) -> FeeParams:
        priority = self.gwei(self.config.priority_fee_gwei)
        base = self.gwei(self.config.fixed_base_fee_gwei)
        return FeeParams(max_fee_per_gas=base + priority, max_priority_fee_per_gas=priority)

    def buffered_gas_limit(self, estimate: int) -> int:
        """Estimated gas scaled by the configured margin, rounded down."""
        return int(Decimal(estimate) * Decimal(str(self.config.gas_limit_buffer)))


def translate_error(error: Exception, action: str, default=SubmissionError) -> BotError:
    """Map a web3 / requests exception onto the bot's taxonomy."""
    if isinstance(error, BotError):
        return error

    message = f"{action} failed: {sanitize_error_message(error)}"
    if isinstance(error, TimeExhausted):
        return ConfirmationTimeoutError(message)
    if isinstance(error, ContractLogicError):
        return RevertError(message)
    if isinstance(error, (requests.exceptions.RequestException, ConnectionError, TimeoutError)):
        return NetworkError(message)
    return default(message)


class ChainClient:
    """
    Shared connection to the chain.

    One instance is reused for every account and operation in a run. Use
    with_proxy() to get a client whose HTTP traffic goes through a proxy.
    """

    def __init__(self, config: BotConfig, w3: Optional[Web3] = None, proxy: Optional[str] = None):
        self.config = config
        self.proxy = proxy
        self.w3 = w3 if w3 is not None else self._make_web3(config, proxy)
        self.gas = GasPolicy(config)
        self._decimals_cache: Dict[str, int] = {}

    @staticmethod
    def _make_web3(config: BotConfig, proxy: Optional[str] = None) -> Web3:
        session = requests.Session()
        if proxy:
            session.proxies = {'http': proxy, 'https': proxy}
        provider = Web3.HTTPProvider(
            config.rpc_url,
            request_kwargs={'timeout': config.request_timeout_seconds},
            session=session
        )
        return Web3(provider)

    def with_proxy(self, proxy: Optional[str]) -> "ChainClient":
        """Client for the same chain whose requests go through ``proxy``."""
        if not proxy:
            return self
        client = ChainClient(self.config, proxy=proxy)
        client._decimals_cache = dict(self._decimals_cache)
        return client

    @property
    def dry_run(self) -> bool:
        return self.config.dry_run

    def tx_url(self, tx_hash: str) -> str:
        return self.config.tx_url(tx_hash)

    # Reads

    @read_retry
    def check_connection(self) -> int:
        """Verify the RPC is reachable; returns the latest block number."""
        try:
            connected = self.w3.is_connected()
        except Exception as e:
            raise translate_error(e, "Connection check", default=NetworkError) from e
        if not connected:
            raise NetworkError(f"Cannot connect to RPC at {self.config.rpc_url}")

        try:
            chain_id = self.w3.eth.chain_id
            block_number = self.w3.eth.block_number
        except Exception as e:
            raise translate_error(e, "Reading chain info", default=NetworkError) from e

        if chain_id != self.config.chain_id:
            logger.warning(f"RPC reports chain id {chain_id}, expected {self.config.chain_id}")
        logger.debug(f"Connected to chain {chain_id} at block {block_number}")
        return block_number

    def _token(self, address: str):
        return self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=ERC20_ABI)

    @read_retry
    def get_native_balance(self, address: str) -> int:
        try:
            return self.w3.eth.get_balance(Web3.to_checksum_address(address))
        except Exception as e:
            raise translate_error(e, "Reading native balance", default=NetworkError) from e

    @read_retry
    def get_token_balance(self, token: str, address: str) -> int:
        try:
            return self._token(token).functions.balanceOf(Web3.to_checksum_address(address)).call()
        except Exception as e:
            raise translate_error(e, f"Reading balance of {format_address(token)}", default=NetworkError) from e

    @read_retry
    def get_decimals(self, token: str) -> int:
        """ERC20 decimals, cached per token."""
        key = token.lower()
        if key not in self._decimals_cache:
            try:
                self._decimals_cache[key] = int(self._token(token).functions.decimals().call())
            except Exception as e:
                raise translate_error(e, f"Reading decimals of {format_address(token)}", default=NetworkError) from e
        return self._decimals_cache[key]

    def get_balance(self, address: str, asset: Asset) -> Tuple[int, int]:
        """Balance of ``asset`` held by ``address`` as (base units, decimals)."""
        if asset.is_native:
            return self.get_native_balance(address), 18
        return self.get_token_balance(asset.address, address), self.get_decimals(asset.address)

    @read_retry
    def latest_base_fee(self) -> int:
        try:
            block = self.w3.eth.get_block('latest')
        except Exception as e:
            raise translate_error(e, "Reading latest block", default=NetworkError) from e
        return block.get('baseFeePerGas', 0) or 0

    def quote_exact_input(self, path: bytes, amount_in: int) -> int:
        """Static call to the quoter; any failure is a QuoteError."""
        quoter = self.w3.eth.contract(
            address=Web3.to_checksum_address(self.config.quoter_address),
            abi=SWAP_ROUTER_ABI
        )
        try:
            amount_out = quoter.functions.quoteExactInput(path, amount_in).call()
        except Exception as e:
            raise QuoteError(f"Failed to get amount out min: {sanitize_error_message(e)}") from e
        if not amount_out:
            raise QuoteError("Failed to get amount out min: quoter returned zero")
        return int(amount_out)

    # Writes

    def _contract_function(self, call: ContractCall):
        contract = self.w3.eth.contract(address=Web3.to_checksum_address(call.to), abi=call.abi)
        return getattr(contract.functions, call.function)(*call.args)

    def estimate_gas(self, sender: str, call: ContractCall) -> int:
        params = {'from': Web3.to_checksum_address(sender), 'value': call.value}
        try:
            if call.function:
                return self._contract_function(call).estimate_gas(params)
            return self.w3.eth.estimate_gas(
                dict(params, to=Web3.to_checksum_address(call.to), data=call.data)
            )
        except Exception as e:
            raise translate_error(e, f"Gas estimation for {call.description}") from e

    def fee_params(self, call: ContractCall) -> FeeParams:
        if call.fee_mode is FeeMode.SWAP:
            return self.gas.swap_fees()
        elif call.fee_mode is FeeMode.MARKET:
            return self.gas.market_fees(self.latest_base_fee())
        elif call.fee_mode is FeeMode.FIXED:
            return self.gas.fixed_fees()
        raise ValueError(f"Unknown fee mode: {call.fee_mode}")

    def build_transaction(self, account: WalletAccount, call: ContractCall) -> Dict[str, Any]:
        """Complete, unsigned EIP-1559 transaction for ``call``."""
        sender = Web3.to_checksum_address(account.address)
        if call.gas_limit is not None:
            gas_limit = call.gas_limit
        else:
            gas_limit = self.gas.buffered_gas_limit(self.estimate_gas(sender, call))

        try:
            nonce = self.w3.eth.get_transaction_count(sender, 'pending')
        except Exception as e:
            raise translate_error(e, "Reading nonce", default=NetworkError) from e

        params = {
            'from': sender,
            'nonce': nonce,
            'chainId': self.config.chain_id,
            'gas': gas_limit,
            'value': call.value,
            **self.fee_params(call).to_tx_params(),
        }

        if call.function:
            try:
                return self._contract_function(call).build_transaction(params)
            except Exception as e:
                raise translate_error(e, f"Building {call.description}") from e
        return dict(params, to=Web3.to_checksum_address(call.to), data=call.data or "0x")

    def send_and_confirm(self, account: WalletAccount, call: ContractCall) -> TxReceiptInfo:
        """
        Sign, send and wait for ``call``.

        Raises SubmissionError when the node rejects the transaction,
        ConfirmationTimeoutError when it isn't mined in time and RevertError
        when the receipt reports failure.
        """
        tx = self.build_transaction(account, call)
        short = format_address(account.address)

        if self.dry_run:
            logger.info(f"[DRY RUN] {short} | Would send {call.description}", fields={
                'to': tx.get('to'), 'gas': tx.get('gas'), 'value': tx.get('value'),
            })
            return TxReceiptInfo(tx_hash=DRY_RUN_TX_HASH, status=1, dry_run=True)

        try:
            signed = Account.sign_transaction(tx, account.key)
            raw_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        except Exception as e:
            raise translate_error(e, f"Sending {call.description}") from e

        tx_hash = Web3.to_hex(raw_hash)
        logger.info(f"{short} | {call.description} sent: {tx_hash}")

        receipt = self.wait_for_receipt(tx_hash)
        info = TxReceiptInfo(
            tx_hash=tx_hash,
            status=receipt['status'],
            block_number=receipt.get('blockNumber'),
            gas_used=receipt.get('gasUsed'),
        )
        if not info.success:
            raise RevertError(f"{call.description} reverted (status={info.status})", tx_hash=tx_hash)

        logger.info(f"{short} | {call.description} confirmed: {self.tx_url(tx_hash)}")
        return info

    def wait_for_receipt(self, tx_hash: str) -> Dict[str, Any]:
        try:
            return self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.config.confirmation_timeout_seconds
            )
        except Exception as e:
            raise translate_error(e, f"Waiting for {tx_hash}", default=NetworkError) from e
