"""
Account Source Module
=====================
Loads signing keys from accounts.txt and optional proxy endpoints from
proxies.txt, and derives wallet accounts from keys.

accounts.txt holds one private key per line. Lines are trimmed, the 0x
prefix is normalized and anything that isn't 0x + 64 characters is
silently dropped.
"""

from pathlib import Path
from typing import List

from eth_account import Account

from .logging_utils import get_logger
from .models import WalletAccount
from .utils import (
    InvalidCredentialError,
    normalize_private_key,
    register_secret,
    sanitize_error_message,
)


logger = get_logger(__name__)

KEY_LENGTH = 66  # 0x + 32 bytes hex


class AccountSource:
    """Reads credentials and proxies from plain text files."""

    def __init__(self, accounts_file: str = "accounts.txt", proxies_file: str = "proxies.txt"):
        self.accounts_path = Path(accounts_file)
        self.proxies_path = Path(proxies_file)

    @classmethod
    def from_config(cls, config) -> "AccountSource":
        return cls(config.accounts_file, config.proxies_file)

    def exists(self) -> bool:
        """True when the accounts file is present."""
        return self.accounts_path.is_file()

    def load_private_keys(self) -> List[str]:
        """
        Load and normalize private keys.

        Returns an empty list when the file is missing, unreadable or holds no
        well-formed entries; the caller treats that as a fatal precondition.
        """
        try:
            text = self.accounts_path.read_text(encoding="utf-8")
        except OSError as e:
            logger.error(f"Cannot read {self.accounts_path}: {sanitize_error_message(e)}")
            return []

        keys = []
        for line in text.splitlines():
            if not line.strip():
                continue
            key = normalize_private_key(line)
            if len(key) != KEY_LENGTH:
                continue
            register_secret(key)
            keys.append(key)

        if not keys:
            logger.error(f"No valid private keys found in {self.accounts_path}")
        else:
            logger.debug(f"Loaded {len(keys)} private keys from {self.accounts_path}")
        return keys

    def load_proxies(self) -> List[str]:
        """Load proxy URLs; a missing or empty file means no proxying."""
        if not self.proxies_path.is_file():
            return []

        try:
            text = self.proxies_path.read_text(encoding="utf-8")
        except OSError as e:
            logger.warning(f"Cannot read {self.proxies_path}: {sanitize_error_message(e)}")
            return []

        proxies = [normalize_proxy(line) for line in text.splitlines() if line.strip()]
        logger.debug(f"Loaded {len(proxies)} proxies from {self.proxies_path}")
        return proxies


def normalize_proxy(proxy: str) -> str:
    """Trim a proxy entry and default its scheme to http://."""
    proxy = proxy.strip()
    if "://" not in proxy:
        proxy = f"http://{proxy}"
    return proxy


def derive_account(key: str) -> WalletAccount:
    """Derive the wallet address for a private key."""
    try:
        account = Account.from_key(key)
    except Exception as e:
        raise InvalidCredentialError(f"Generate address failed: {sanitize_error_message(e)}")
    return WalletAccount(address=account.address, key=key)
