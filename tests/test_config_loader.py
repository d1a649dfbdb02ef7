import json

import pytest
from solders.keypair import Keypair

from bundling.orchestrator import Batching, SignerPolicy
from config_loader import (
    build_bundler_config,
    load_bot_config,
    load_bundler_config,
    load_wallets,
    resolve_env_vars,
)
from core.errors import ConfigError
from interfaces.core import Platform

MINT = "So11111111111111111111111111111111111111112"


def _raw_config(**overrides) -> dict:
    config = {
        "name": "test-run",
        "rpc": {"endpoint": "https://rpc.example"},
        "operation": {"type": "bundle_buy", "buy_sol": 0.05},
        "trade": {"scheme": "pump_fun", "mint": MINT},
        "wallets": {"file": "wallets.json"},
    }
    config.update(overrides)
    return config


def test_defaults():
    cfg = build_bundler_config(_raw_config())

    assert cfg.platform is Platform.PUMP_FUN
    assert cfg.buy_amount == 50_000_000
    assert cfg.tip_lamports == 1_000_000
    assert cfg.fee_recipient is None
    assert cfg.policy.chunk_size == 3
    assert cfg.policy.buy_slippage_bps == 8_500
    assert cfg.policy.sell_slippage_bps == 7_000
    assert cfg.policy.batching is Batching.BATCHED
    assert cfg.jito_mode == "broadcast"


def test_policy_and_fee_sections():
    cfg = build_bundler_config(
        _raw_config(
            policy={"batching": "sequential", "signer_policy": "funder", "chunk_size": 2},
            fees={"fee_recipient": MINT, "service_fee_bps": 50, "network_margin_lamports": 0},
            trade={"scheme": "pump_swap", "mint": MINT, "buy_slippage_bps": 9_000},
        )
    )

    assert cfg.policy.batching is Batching.SEQUENTIAL
    assert cfg.policy.signer_policy is SignerPolicy.FUNDER
    assert cfg.policy.buy_slippage_bps == 9_000
    assert cfg.fees.service_fee_bps == 50
    assert cfg.network_margin_lamports == 0
    assert str(cfg.fee_recipient) == MINT
    assert cfg.platform is Platform.PUMP_SWAP


@pytest.mark.parametrize(
    "overrides",
    [
        {"operation": {"type": "launch"}},
        {"operation": {"type": "dump", "percentage": 150}},
        {"trade": {"scheme": "raydium", "mint": MINT}},
        {"trade": {"mint": MINT, "sell_slippage_bps": 0}},
        {"trade": {"mint": "not-a-key"}},
        {"trade": {}},
        {"jito": {"block_engines": ["mars"]}},
        {"jito": {"mode": "sometimes"}},
        {"policy": {"chunk_size": 0}},
        {"policy": {"max_txs_per_bundle": 6}},
        {"policy": {"batching": "parallel"}},
        {"operation": {"type": "create_and_bundle"}},
    ],
)
def test_invalid_values_raise_config_error(overrides):
    with pytest.raises(ConfigError):
        build_bundler_config(_raw_config(**overrides))


def test_env_placeholders(monkeypatch):
    monkeypatch.setenv("TEST_RPC", "https://from-env.example")
    assert resolve_env_vars({"rpc": ["${TEST_RPC}/v1"]}) == {"rpc": ["https://from-env.example/v1"]}

    monkeypatch.delenv("TEST_MISSING", raising=False)
    with pytest.raises(ConfigError, match="TEST_MISSING"):
        resolve_env_vars("${TEST_MISSING}")


def test_load_from_yaml(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("TEST_RPC", "https://from-env.example")
    path = tmp_path / "run.yaml"
    path.write_text(
        "name: yaml-run\n"
        "rpc:\n  endpoint: ${TEST_RPC}\n"
        "operation:\n  type: dump\n  percentage: 40\n"
        f"trade:\n  mint: {MINT}\n"
        "wallets:\n  file: w.json\n"
        "jito:\n  block_engines: ny\n  uuid: abc\n"
    )

    cfg = load_bundler_config(str(path))

    assert cfg.rpc["endpoint"] == "https://from-env.example"
    assert cfg.dump_percentage == 40
    assert cfg.block_engines == ["ny"]
    assert cfg.jito_uuid == "abc"


def test_missing_required_fields(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    path = tmp_path / "run.yaml"
    path.write_text("name: incomplete\n")
    with pytest.raises(ConfigError, match="rpc.endpoint"):
        load_bot_config(str(path))


def test_load_wallets_accepts_base58_and_byte_arrays(tmp_path):
    first, second = Keypair(), Keypair()
    path = tmp_path / "wallets.json"
    path.write_text(json.dumps([str(first), list(bytes(second))]))

    wallets = load_wallets(path)

    assert [w.pubkey for w in wallets] == [first.pubkey(), second.pubkey()]


def test_load_wallets_rejects_bad_keys(tmp_path):
    path = tmp_path / "wallets.json"
    path.write_text(json.dumps(["abc"]))
    with pytest.raises(ConfigError):
        load_wallets(path)
