"""
Router Encoding Module
======================

Encodes commands and inputs for the execute router and the helpers used to
build swap and liquidity parameters.

Command Reference:
- 0x0b: WRAP_ETH - Wrap the native value sent with the call
- 0x00: V3_SWAP_EXACT_IN - Exact input swap along a packed path

Router recipient sentinels:
- 0x...01: MSG_SENDER - the caller of execute()
- 0x...02: ADDRESS_THIS - the router itself
"""

import time
from typing import List, Optional, Tuple

from eth_abi import encode
from eth_abi.packed import encode_packed
from web3 import Web3


COMMANDS = {
    'V3_SWAP_EXACT_IN': 0x00,
    'WRAP_ETH': 0x0b,
}

MSG_SENDER = "0x0000000000000000000000000000000000000001"
ADDRESS_THIS = "0x0000000000000000000000000000000000000002"

BPS_DENOMINATOR = 10000


class RouterEncoder:
    """
    Builds execute(commands, inputs, deadline) arguments for a native-in
    exact input swap: wrap the sent value inside the router, then swap it.
    """

    def __init__(self, pool_fee: int = 3000):
        self.pool_fee = pool_fee

    def encode_path(self, token_in: str, token_out: str) -> bytes:
        """Packed single hop path: token_in | fee (uint24) | token_out."""
        return encode_packed(
            ['address', 'uint24', 'address'],
            [Web3.to_checksum_address(token_in), self.pool_fee, Web3.to_checksum_address(token_out)]
        )

    def encode_wrap_eth(self, amount: int, recipient: str = ADDRESS_THIS) -> bytes:
        """Encode WRAP_ETH command input."""
        return encode(['address', 'uint256'], [recipient, amount])

    def encode_v3_swap_exact_in(
        self,
        path: bytes,
        amount_in: int,
        min_amount_out: int,
        recipient: str = MSG_SENDER,
        payer_is_user: bool = False
    ) -> bytes:
        """
        Encode V3_SWAP_EXACT_IN command input.

        payer_is_user is False because the router pays from the WETH it
        just wrapped.
        """
        return encode(
            ['address', 'uint256', 'uint256', 'bytes', 'bool'],
            [recipient, amount_in, min_amount_out, path, payer_is_user]
        )

    def build_swap(
        self,
        path: bytes,
        amount_in: int,
        min_amount_out: int
    ) -> Tuple[bytes, List[bytes]]:
        """Commands and inputs for execute(): wrap then swap."""
        commands = bytes([COMMANDS['WRAP_ETH'], COMMANDS['V3_SWAP_EXACT_IN']])
        inputs = [
            self.encode_wrap_eth(amount_in),
            self.encode_v3_swap_exact_in(path, amount_in, min_amount_out),
        ]
        return commands, inputs


def apply_slippage(quoted_amount: int, slippage_bps: int) -> int:
    """Minimum acceptable output after slippage, rounded down."""
    if quoted_amount < 0:
        raise ValueError("Quoted amount cannot be negative")
    return quoted_amount * (BPS_DENOMINATOR - slippage_bps) // BPS_DENOMINATOR


def canonical_pair(
    token_a: str,
    token_b: str,
    amount_a: int,
    amount_b: int
) -> Tuple[str, str, int, int]:
    """
    Order a token pair the way pools expect it.

    Token0 is the lexicographically smaller address (case-insensitive);
    amounts follow their tokens.
    """
    if token_a.lower() > token_b.lower():
        return token_b, token_a, amount_b, amount_a
    return token_a, token_b, amount_a, amount_b


def deadline_from_now(seconds: int, now: Optional[float] = None) -> int:
    """Unix timestamp ``seconds`` in the future."""
    if now is None:
        now = time.time()
    return int(now) + seconds
