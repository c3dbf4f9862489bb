"""
Utility Module

Error taxonomy, unit conversion, formatting and validation helpers shared by
the chain client, the operation catalog and the CLI.
"""

import re
from decimal import Decimal, InvalidOperation, ROUND_DOWN
from typing import Optional, Set, Union


class BotError(Exception):
    """Base class for all bot errors."""
    pass


class PreconditionError(BotError):
    """A pre-flight check failed; the action is skipped, never submitted."""
    pass


class NoAccountsError(PreconditionError):
    """No usable private keys were found."""
    pass


class InvalidCredentialError(PreconditionError):
    """A private key could not be turned into an account."""
    pass


class InsufficientBalanceError(PreconditionError):
    """Wallet balance is below the amount an action needs."""

    def __init__(self, symbol: str, available: int, required: int, decimals: int = 18):
        self.symbol = symbol
        self.available = available
        self.required = required
        self.decimals = decimals
        super().__init__(
            f"Insufficient {symbol} balance: {format_units(available, decimals)} available, "
            f"need {format_units(required, decimals)}"
        )


class ChainError(BotError):
    """Base class for failures talking to the chain."""
    pass


class NetworkError(ChainError):
    """RPC endpoint unreachable or returned a transport error."""
    pass


class ConfirmationTimeoutError(NetworkError):
    """Transaction was not mined within the confirmation timeout."""
    pass


class QuoteError(ChainError):
    """Swap quote could not be obtained."""
    pass


class SubmissionError(ChainError):
    """Node rejected the transaction or gas estimation failed."""
    pass


class RevertError(ChainError):
    """Transaction was mined but reported a failed status."""

    def __init__(self, message: str, tx_hash: Optional[str] = None):
        self.tx_hash = tx_hash
        super().__init__(message)


class ConfigError(BotError):
    """Configuration file or values are invalid."""
    pass


class UserInputError(BotError):
    """Operator typed something we can't use."""
    pass


# Unit conversion

def to_base_units(amount: Union[int, float, str, Decimal], decimals: int = 18) -> int:
    """Convert a human-readable amount to integer base units."""
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {amount!r}")
    if value < 0:
        raise ValueError(f"Amount cannot be negative: {amount}")
    return int(value.scaleb(decimals).to_integral_value(rounding=ROUND_DOWN))


def from_base_units(amount: int, decimals: int = 18) -> Decimal:
    """Convert integer base units to a Decimal amount."""
    return Decimal(amount).scaleb(-decimals)


# Formatting utilities

def format_units(amount: int, decimals: int = 18) -> str:
    """Format base units as a plain decimal string without trailing zeros."""
    if amount == 0:
        return "0"
    value = from_base_units(amount, decimals).normalize()
    return f"{value:f}"


def format_amount(value: Decimal, places: int = 6) -> str:
    """Format a Decimal balance for tables."""
    return f"{value:.{places}f}"


def format_address(address: Optional[str]) -> str:
    """Shorten an address to 0x1234...abcd."""
    if not address:
        return "N/A"
    if len(address) <= 10:
        return address
    return f"{address[:6]}...{address[-4:]}"


def format_duration(seconds: float) -> str:
    """Format duration in seconds to human-readable string."""
    seconds = int(seconds)
    if seconds < 60:
        return f"{seconds}s"
    elif seconds < 3600:
        minutes = seconds // 60
        secs = seconds % 60
        return f"{minutes}m {secs}s" if secs > 0 else f"{minutes}m"
    else:
        hours = seconds // 3600
        minutes = (seconds % 3600) // 60
        return f"{hours}h {minutes}m" if minutes > 0 else f"{hours}h"


# Key handling

def normalize_private_key(key: str) -> str:
    """Trim a key and make sure it carries exactly one 0x prefix."""
    key = key.strip()
    if key.startswith("0x") or key.startswith("0X"):
        key = key[2:]
    return "0x" + key


# Keys loaded at runtime. Transaction hashes share the 0x + 64 hex shape, so
# prefixed values are only redacted when they are known secrets.
_registered_secrets: Set[str] = set()


def register_secret(value: str):
    """Remember a secret so log lines and error messages never show it."""
    if value:
        _registered_secrets.add(value)
        if value.startswith("0x"):
            _registered_secrets.add(value[2:])


def redact(text: str) -> str:
    """Replace registered secrets, bare 64-hex keys and URL credentials."""
    for secret in sorted(_registered_secrets, key=len, reverse=True):
        if secret in text:
            text = text.replace(secret, "[PRIVATE_KEY]")

    patterns = [
        (r'(?<![a-fA-F0-9xX])[a-fA-F0-9]{64}(?![a-fA-F0-9])', '[PRIVATE_KEY]'),
        (r'(\w+://)[^/\s:@]+:[^/\s@]+@', r'\1[CREDENTIALS]@'),
    ]
    for pattern, replacement in patterns:
        text = re.sub(pattern, replacement, text)
    return text


def sanitize_error_message(error: Union[str, BaseException], max_length: int = 160) -> str:
    """
    Strip private keys and proxy credentials from an error message and cap
    its length so it fits on one console line.
    """
    if not isinstance(error, str):
        error = str(error) or error.__class__.__name__

    sanitized = redact(error)

    sanitized = " ".join(sanitized.split())
    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length - 3] + "..."
    return sanitized
