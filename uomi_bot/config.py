"""
Configuration Management Module

Bot settings live in an immutable BotConfig value that is handed to every
component at construction time. An optional YAML file overrides the defaults.
"""

from dataclasses import dataclass, asdict, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from .logging_utils import get_logger
from .utils import ConfigError


logger = get_logger(__name__)

DEFAULT_TOKENS = {
    "USDC": "0xAA9C4829415BCe70c434b7349b628017C59EC2b1",
    "SYN": "0x2922B2Ca5EB6b02fc5E1EBE57Fc1972eBB99F7e0",
    "SIM": "0x04B03e3859A25040E373cC9E8806d79596D70686",
}

# (token A, token B, amount of each side)
DEFAULT_LIQUIDITY_PAIRS = (
    ("WUOMI", "SIM", 0.001),
    ("WUOMI", "SYN", 0.001),
    ("USDC", "WUOMI", 0.001),
    ("USDC", "SYN", 0.001),
)


@dataclass(frozen=True)
class BotConfig:
    """Bot configuration settings."""

    # Network
    rpc_url: str = "https://finney.uomi.ai/"
    chain_id: int = 4386
    explorer_url: str = "https://explorer.uomi.ai"
    request_timeout_seconds: int = 30
    confirmation_timeout_seconds: int = 180

    # Assets
    native_symbol: str = "UOMI"
    wrapped_native_symbol: str = "WUOMI"
    wrapped_native_address: str = "0x5FCa78E132dF589c1c799F906dC867124a2567b2"
    tokens: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_TOKENS))

    # Contracts
    quoter_address: str = "0xCcB2B2F8395e4462d28703469F84c95293845332"
    router_address: str = "0x197EEAd5Fe3DB82c4Cd55C5752Bc87AEdE11f230"
    position_manager_address: str = "0x906515Dc7c32ab887C8B8Dce6463ac3a7816Af38"

    # Swap settings
    swap_targets: Tuple[str, ...] = ("USDC", "SYN", "SIM")
    swap_amount_min: float = 0.001
    swap_amount_max: float = 0.003
    slippage_bps: int = 50  # 0.5%
    pool_fee: int = 3000
    deadline_seconds: int = 600

    # Wrap / unwrap settings
    wrap_amount_min: float = 0.001
    wrap_amount_max: float = 0.004

    # Liquidity settings
    liquidity_pairs: Tuple[Tuple[str, str, float], ...] = DEFAULT_LIQUIDITY_PAIRS
    tick_lower: int = -887220
    tick_upper: int = 887220

    # Gas settings
    priority_fee_gwei: float = 2.0
    fixed_base_fee_gwei: float = 50.0
    swap_priority_fee_gwei: float = 28.54
    gas_limit_buffer: float = 1.2
    wrap_gas_limit: int = 42242
    unwrap_gas_limit: int = 50000
    approve_gas_limit: int = 200000
    mint_gas_limit: int = 500000

    # Pacing (seconds)
    step_delay_seconds: float = 1.0
    liquidity_delay_min: float = 1.0
    liquidity_delay_max: float = 1.0
    swap_delay_min: float = 5.0
    swap_delay_max: float = 10.0

    # Operation
    repetitions: int = 1
    accounts_file: str = "accounts.txt"
    proxies_file: str = "proxies.txt"
    dry_run: bool = False
    log_level: str = "INFO"
    log_file: str = "./logs/uomi_bot.log"

    def __post_init__(self):
        self.validate()

    def validate(self):
        """Raise ConfigError when values can't produce a sane run."""
        ranges = [
            ("swap_amount", self.swap_amount_min, self.swap_amount_max),
            ("wrap_amount", self.wrap_amount_min, self.wrap_amount_max),
            ("liquidity_delay", self.liquidity_delay_min, self.liquidity_delay_max),
            ("swap_delay", self.swap_delay_min, self.swap_delay_max),
        ]
        for name, low, high in ranges:
            if low < 0 or low > high:
                raise ConfigError(f"{name} range must satisfy 0 <= min <= max, got [{low}, {high}]")

        if not 0 <= self.slippage_bps < 10000:
            raise ConfigError(f"slippage_bps must be in [0, 10000), got {self.slippage_bps}")
        if self.gas_limit_buffer < 1:
            raise ConfigError(f"gas_limit_buffer must be >= 1, got {self.gas_limit_buffer}")
        if self.step_delay_seconds < 0:
            raise ConfigError("step_delay_seconds cannot be negative")
        if self.repetitions < 1:
            raise ConfigError(f"repetitions must be > 0, got {self.repetitions}")
        if not self.swap_targets:
            raise ConfigError("swap_targets cannot be empty")

        for symbol in self.swap_targets:
            self.token_address(symbol)
        for token_a, token_b, _ in self.liquidity_pairs:
            self.token_address(token_a)
            self.token_address(token_b)

    def token_address(self, symbol: str) -> str:
        """Resolve a configured ERC20 symbol to its contract address."""
        if symbol == self.wrapped_native_symbol:
            return self.wrapped_native_address
        try:
            return self.tokens[symbol]
        except KeyError:
            raise ConfigError(f"Unknown token symbol: {symbol}")

    def tx_url(self, tx_hash: str) -> str:
        """Explorer link for a transaction."""
        return f"{self.explorer_url.rstrip('/')}/tx/{tx_hash}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a YAML friendly dictionary."""
        data = asdict(self)
        data['swap_targets'] = list(self.swap_targets)
        data['liquidity_pairs'] = [list(pair) for pair in self.liquidity_pairs]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BotConfig":
        """Create BotConfig from dictionary, ignoring unknown keys."""
        valid_fields = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in valid_fields}

        if 'swap_targets' in values:
            values['swap_targets'] = tuple(values['swap_targets'])
        if 'liquidity_pairs' in values:
            values['liquidity_pairs'] = tuple(
                _parse_liquidity_pair(pair) for pair in values['liquidity_pairs']
            )
        if 'tokens' in values:
            values['tokens'] = dict(values['tokens'] or {})

        try:
            return cls(**values)
        except TypeError as e:
            raise ConfigError(f"Invalid configuration: {e}")


def _parse_liquidity_pair(pair: Any) -> Tuple[str, str, float]:
    if isinstance(pair, dict):
        pair = (pair.get('token_a'), pair.get('token_b'), pair.get('amount'))
    try:
        token_a, token_b, amount = pair
        return str(token_a), str(token_b), float(amount)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid liquidity pair: {pair!r}")


class ConfigManager:
    """Loads and writes the optional YAML configuration file."""

    def __init__(self, config_path: Path = Path("./bot_config.yaml")):
        self.config_path = Path(config_path)

    def load_config(self, overrides: Optional[Dict[str, Any]] = None) -> BotConfig:
        """Load configuration, falling back to defaults when no file exists."""
        data = self.read_raw_config() if self.config_path.exists() else {}
        if not data:
            logger.debug(f"No configuration at {self.config_path}, using defaults")
        if overrides:
            data.update(overrides)

        config = BotConfig.from_dict(data)
        logger.debug("Configuration loaded", fields={'path': str(self.config_path)})
        return config

    def read_raw_config(self) -> Dict[str, Any]:
        """Read the YAML file without building a BotConfig."""
        try:
            with open(self.config_path, 'r') as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot read {self.config_path}: {e}")

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(f"{self.config_path} must contain a mapping")
        return data

    def write_default(self, overwrite: bool = False) -> Path:
        """Write the commented default template."""
        if self.config_path.exists() and not overwrite:
            raise ConfigError(f"{self.config_path} already exists")

        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        self.config_path.write_text(DEFAULT_CONFIG + "\n")
        logger.info(f"Configuration template written to {self.config_path}")
        return self.config_path

    def save_config(self, config: BotConfig):
        """Save configuration to YAML file."""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_path, 'w') as f:
            yaml.safe_dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)
        logger.info(f"Configuration saved to {self.config_path}")


# Default configuration template
DEFAULT_CONFIG = """
# UOMI Testnet Bot Configuration
# Every key is optional; omitted keys use the built-in defaults.

rpc_url: https://finney.uomi.ai/
chain_id: 4386
explorer_url: https://explorer.uomi.ai

# Assets
native_symbol: UOMI
wrapped_native_symbol: WUOMI
wrapped_native_address: "0x5FCa78E132dF589c1c799F906dC867124a2567b2"
tokens:
  USDC: "0xAA9C4829415BCe70c434b7349b628017C59EC2b1"
  SYN: "0x2922B2Ca5EB6b02fc5E1EBE57Fc1972eBB99F7e0"
  SIM: "0x04B03e3859A25040E373cC9E8806d79596D70686"

# Contracts
quoter_address: "0xCcB2B2F8395e4462d28703469F84c95293845332"
router_address: "0x197EEAd5Fe3DB82c4Cd55C5752Bc87AEdE11f230"
position_manager_address: "0x906515Dc7c32ab887C8B8Dce6463ac3a7816Af38"

# Swaps (native amounts, randomised per swap within [min, max])
swap_targets: [USDC, SYN, SIM]
swap_amount_min: 0.001
swap_amount_max: 0.003
slippage_bps: 50

# Wrap / unwrap
wrap_amount_min: 0.001
wrap_amount_max: 0.004

# Liquidity: [token A, token B, amount per side]; amount <= 0 disables a pair
liquidity_pairs:
  - [WUOMI, SIM, 0.001]
  - [WUOMI, SYN, 0.001]
  - [USDC, WUOMI, 0.001]
  - [USDC, SYN, 0.001]

# Pacing (seconds)
step_delay_seconds: 1
liquidity_delay_min: 1
liquidity_delay_max: 1
swap_delay_min: 5
swap_delay_max: 10

# Operation
repetitions: 1
accounts_file: accounts.txt
proxies_file: proxies.txt
dry_run: false
log_level: INFO
log_file: ./logs/uomi_bot.log
""".strip()
