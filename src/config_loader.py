"""
Run configuration loading.

A run is described by one YAML file. String values may reference the
environment as ${VAR}; the environment is populated from .env first.
"""

import json
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from solders.pubkey import Pubkey

from bundling.jito import MAX_BUNDLE_TRANSACTIONS, resolve_endpoint
from bundling.orchestrator import Batching, BundlePolicy, SignerPolicy, TokenMetadata
from core.curve_math import FeeParameters
from core.errors import AddressError, ConfigError
from core.pubkeys import LAMPORTS_PER_SOL, to_pubkey
from core.wallet import Wallet
from interfaces.core import Platform
from utils.logger import get_logger

logger = get_logger(__name__)

_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")

OPERATIONS = (
    "bundle_buy",
    "dump",
    "create_and_bundle",
    "maker",
    "staggered_buy",
    "bump",
)

# Sections that must be present in every config
REQUIRED_FIELDS = ["name", "rpc.endpoint", "operation.type", "wallets.file"]


@dataclass
class BundlerConfig:
    """Validated run configuration."""

    name: str
    rpc: dict[str, Any]
    operation: str
    wallets_file: Path

    platform: Platform = Platform.PUMP_FUN
    mint: Pubkey | None = None

    block_engines: list[str] = field(default_factory=lambda: ["frankfurt"])
    jito_mode: str = "broadcast"
    jito_uuid: str | None = None
    jito_timeout: float = 10.0
    tip_lamports: int = 1_000_000

    fees: FeeParameters = field(default_factory=FeeParameters)
    flat_fee_lamports: int = 100_000
    network_margin_lamports: int = 10_000
    fee_recipient: Pubkey | None = None

    policy: BundlePolicy = field(default_factory=BundlePolicy)
    compute_unit_limit: int | None = None
    compute_unit_price: int | None = None
    confirmation_attempts: int = 25
    confirmation_interval: float = 0.4

    min_delay: float = 1.0
    max_delay: float = 3.0

    buy_amount: int = 0
    dev_buy_amount: int = 0
    amount_per_maker: int = 0
    dump_percentage: float = 100.0
    bump_rounds: int | None = None
    bump_interval: float = 1.0
    metadata: TokenMetadata | None = None

    dev_key: str | None = None
    funder_key: str | None = None
    aggregator_key: str | None = None


def sol_to_lamports(value: float) -> int:
    return round(float(value) * LAMPORTS_PER_SOL)


def resolve_env_vars(value: Any) -> Any:
    """Recursively replace ${VAR} placeholders with environment values.

    Raises:
        ConfigError: A referenced variable is not set
    """
    if isinstance(value, dict):
        return {key: resolve_env_vars(item) for key, item in value.items()}
    if isinstance(value, list):
        return [resolve_env_vars(item) for item in value]
    if not isinstance(value, str):
        return value

    def replace(match: re.Match) -> str:
        name = match.group(1)
        resolved = os.getenv(name)
        if resolved is None:
            raise ConfigError(f"Environment variable {name} is not set")
        return resolved

    return _ENV_PATTERN.sub(replace, value)


def _get_nested(config: dict, path: str) -> Any:
    value: Any = config
    for key in path.split("."):
        if not isinstance(value, dict) or key not in value:
            return None
        value = value[key]
    return value


def load_bot_config(path: str) -> dict:
    """Read a YAML config, resolve placeholders and check required fields.

    Args:
        path: Path to the YAML file

    Returns:
        Raw config dictionary
    """
    load_dotenv()
    try:
        with open(path) as f:
            config = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read config {path}: {e}") from e

    config = resolve_env_vars(config)
    missing = [key for key in REQUIRED_FIELDS if _get_nested(config, key) is None]
    if missing:
        raise ConfigError(f"Missing required config fields: {', '.join(missing)}")
    return config


def get_platform_from_config(config: dict) -> Platform:
    scheme = config.get("trade", {}).get("scheme", Platform.PUMP_FUN.value)
    try:
        return Platform(scheme)
    except ValueError as e:
        raise ConfigError(
            f"Unknown scheme {scheme!r}; expected one of {[p.value for p in Platform]}"
        ) from e


def _optional_pubkey(value: str | None, name: str) -> Pubkey | None:
    if value is None:
        return None
    try:
        return to_pubkey(value)
    except AddressError as e:
        raise ConfigError(f"{name}: {e}") from e


def _enum_value(enum_type, value: str, name: str):
    try:
        return enum_type(value)
    except ValueError as e:
        choices = [item.value for item in enum_type]
        raise ConfigError(f"{name} must be one of {choices}, got {value!r}") from e


def _check_range(name: str, value: float, low: float, high: float) -> None:
    if not low <= value <= high:
        raise ConfigError(f"{name} must be between {low} and {high}, got {value}")


def build_policy(config: dict) -> BundlePolicy:
    policy_cfg = config.get("policy", {})
    trade = config.get("trade", {})
    max_txs = policy_cfg.get("max_txs_per_bundle", MAX_BUNDLE_TRANSACTIONS)
    _check_range("policy.max_txs_per_bundle", max_txs, 1, MAX_BUNDLE_TRANSACTIONS)
    return BundlePolicy(
        batching=_enum_value(Batching, policy_cfg.get("batching", "batched"), "policy.batching"),
        aggregate_sells=policy_cfg.get("aggregate_sells", True),
        chunk_size=policy_cfg.get("chunk_size", 3),
        signer_policy=_enum_value(
            SignerPolicy, policy_cfg.get("signer_policy", "chunk_leader"), "policy.signer_policy"
        ),
        max_txs_per_bundle=max_txs,
        transfers_per_tx=policy_cfg.get("transfers_per_tx", 3),
        confirm=policy_cfg.get("confirm", False),
        buy_slippage_bps=trade.get("buy_slippage_bps", 8_500),
        sell_slippage_bps=trade.get("sell_slippage_bps", 7_000),
    )


def build_bundler_config(config: dict) -> BundlerConfig:
    """Validate a raw config dictionary into a BundlerConfig.

    Raises:
        ConfigError: Any value is out of range or of the wrong kind
    """
    operation = config["operation"]["type"]
    if operation not in OPERATIONS:
        raise ConfigError(f"operation.type must be one of {list(OPERATIONS)}, got {operation!r}")

    jito = config.get("jito", {})
    trade = config.get("trade", {})
    fees_cfg = config.get("fees", {})
    op = config["operation"]
    wallets = config["wallets"]

    block_engines = jito.get("block_engines", ["frankfurt"])
    if isinstance(block_engines, str):
        block_engines = [block_engines]
    for endpoint in block_engines:
        resolve_endpoint(endpoint)
    jito_mode = jito.get("mode", "broadcast")
    if jito_mode not in ("single", "broadcast"):
        raise ConfigError(f"jito.mode must be 'single' or 'broadcast', got {jito_mode!r}")

    for key in ("buy_slippage_bps", "sell_slippage_bps"):
        if key in trade:
            _check_range(f"trade.{key}", trade[key], 1, 10_000)

    fees = FeeParameters(
        service_fee_bps=fees_cfg.get("service_fee_bps", 100),
        service_fee_floor=fees_cfg.get("service_fee_floor", 1_000),
    )
    _check_range("fees.service_fee_bps", fees.service_fee_bps, 0, 10_000)

    dump_percentage = op.get("percentage", 100.0)
    _check_range("operation.percentage", dump_percentage, 0, 100)

    metadata = None
    if "metadata" in config:
        meta = config["metadata"]
        try:
            metadata = TokenMetadata(meta["name"], meta["symbol"], meta["uri"])
        except KeyError as e:
            raise ConfigError(f"metadata.{e.args[0]} is required") from e

    mint = _optional_pubkey(trade.get("mint"), "trade.mint")
    if operation in ("bundle_buy", "dump", "maker", "bump") and mint is None:
        raise ConfigError(f"Operation {operation} requires trade.mint")
    if operation == "create_and_bundle" and metadata is None:
        raise ConfigError("Operation create_and_bundle requires a metadata section")
    if operation == "staggered_buy" and mint is None and metadata is None:
        raise ConfigError("Operation staggered_buy requires trade.mint or metadata")

    stagger = config.get("stagger", {})
    priority = config.get("priority_fees", {})
    confirmation = config.get("confirmation", {})

    return BundlerConfig(
        name=config["name"],
        rpc=config["rpc"],
        operation=operation,
        wallets_file=Path(wallets["file"]),
        platform=get_platform_from_config(config),
        mint=mint,
        block_engines=list(block_engines),
        jito_mode=jito_mode,
        jito_uuid=jito.get("uuid") or None,
        jito_timeout=jito.get("timeout", 10.0),
        tip_lamports=sol_to_lamports(jito.get("tip_sol", 0.001)),
        fees=fees,
        flat_fee_lamports=fees_cfg.get("flat_fee_lamports", 100_000),
        network_margin_lamports=fees_cfg.get("network_margin_lamports", 10_000),
        fee_recipient=_optional_pubkey(fees_cfg.get("fee_recipient"), "fees.fee_recipient"),
        policy=build_policy(config),
        compute_unit_limit=priority.get("compute_unit_limit"),
        compute_unit_price=priority.get("compute_unit_price"),
        confirmation_attempts=confirmation.get("attempts", 25),
        confirmation_interval=confirmation.get("interval", 0.4),
        min_delay=stagger.get("min_delay", 1.0),
        max_delay=stagger.get("max_delay", 3.0),
        buy_amount=sol_to_lamports(op.get("buy_sol", 0)),
        dev_buy_amount=sol_to_lamports(op.get("dev_buy_sol", 0)),
        amount_per_maker=sol_to_lamports(op.get("maker_sol", 0)),
        dump_percentage=dump_percentage,
        bump_rounds=op.get("rounds"),
        bump_interval=op.get("interval", 1.0),
        metadata=metadata,
        dev_key=wallets.get("dev_key"),
        funder_key=wallets.get("funder_key"),
        aggregator_key=wallets.get("aggregator_key"),
    )


def load_bundler_config(path: str) -> BundlerConfig:
    return build_bundler_config(load_bot_config(path))


def load_wallets(path: str | Path) -> list[Wallet]:
    """Load participant wallets from a JSON list of keys.

    Each entry is a base58 secret key or a byte array.
    """
    try:
        entries = json.loads(Path(path).read_text())
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Cannot read wallets file {path}: {e}") from e
    if not isinstance(entries, list):
        raise ConfigError(f"Wallets file {path} must contain a JSON list")
    return [
        Wallet(entry if isinstance(entry, str) else json.dumps(entry)) for entry in entries
    ]


def print_config_summary(config: BundlerConfig) -> None:
    logger.info(f"Run: {config.name} ({config.operation} on {config.platform.value})")
    if config.mint:
        logger.info(f"Mint: {config.mint}")
    logger.info(
        f"Block engines: {', '.join(config.block_engines)} ({config.jito_mode}), "
        f"tip {config.tip_lamports / LAMPORTS_PER_SOL:.6f} SOL"
    )
    policy = config.policy
    logger.info(
        f"Policy: {policy.batching.value}, chunk size {policy.chunk_size}, "
        f"signer {policy.signer_policy.value}, confirm {policy.confirm}"
    )
    logger.info(
        f"Slippage: buy {policy.buy_slippage_bps} bps, sell {policy.sell_slippage_bps} bps"
    )
    if config.fee_recipient is None:
        logger.info("Service fee: none (no recipient configured)")
    else:
        logger.info(
            f"Service fee: {config.fees.service_fee_bps} bps, floor "
            f"{config.fees.service_fee_floor} lamports -> {config.fee_recipient}"
        )
