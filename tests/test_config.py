from __future__ import annotations

import json

import base58
import pytest
from solders.keypair import Keypair

from drift_common import (
    DEFAULT_DEVNET_RPC_URL,
    DEFAULT_KEYPAIR_PATH,
    DRIFT_DEVNET_PROGRAM_ID,
    ConfigError,
    load_config,
    load_keypair,
    load_keypair_file,
    load_keypair_from_base58,
    parse_config,
    parse_program_id,
)


class TestParseConfig:
    def test_defaults(self):
        cfg = parse_config({})
        assert cfg.network == "devnet"
        assert cfg.rpc_url == DEFAULT_DEVNET_RPC_URL
        assert cfg.program_id == DRIFT_DEVNET_PROGRAM_ID
        assert cfg.keypair_path == DEFAULT_KEYPAIR_PATH
        assert cfg.market_index == 0
        assert cfg.include_initialize is False
        assert cfg.simulate is True
        assert cfg.enable_submit is True
        assert cfg.commitment == "confirmed"
        assert cfg.rpc_mode == "client"
        assert cfg.order.order_type == 1
        assert cfg.order.post_only is True

    def test_order_overrides(self):
        cfg = parse_config({"order": {"direction": 1, "price": 5, "reduce_only": True}})
        assert cfg.order.direction == 1
        assert cfg.order.price == 5
        assert cfg.order.reduce_only is True
        assert cfg.order.base_asset_amount == 10_000

    @pytest.mark.parametrize(
        "raw",
        [
            {"network": "localnet"},
            {"commitment": "max"},
            {"rpc_mode": "grpc"},
            {"market_index": 70000},
            {"market_index": "abc"},
            {"rpc_timeout_s": 0},
            {"simulate": "yes"},
            {"order": {"post_only": 1}},
            {"order": []},
            {"program_id": "not-a-key!"},
            {"program_id": "abc"},
        ],
    )
    def test_invalid_values(self, raw):
        with pytest.raises(ConfigError):
            parse_config(raw)

    def test_explicit_rpc_url_skips_network_check(self):
        cfg = parse_config({"network": "localnet", "rpc_url": "http://127.0.0.1:8899 "})
        assert cfg.rpc_url == "http://127.0.0.1:8899"

    def test_private_key_means_no_default_key_file(self):
        cfg = parse_config({"private_key": "abc"})
        assert cfg.keypair_path is None

    def test_program_id_roundtrip(self):
        assert str(parse_program_id(DRIFT_DEVNET_PROGRAM_ID)) == DRIFT_DEVNET_PROGRAM_ID


class TestLoadConfig:
    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="config_example.json"):
            load_config(str(tmp_path / "nope.json"))

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_config(str(path))

    def test_loads_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"market_index": 2, "include_initialize": True}), encoding="utf-8")
        cfg = load_config(str(path))
        assert cfg.market_index == 2
        assert cfg.include_initialize is True


class TestKeypair:
    def test_from_json_file(self, tmp_path):
        kp = Keypair()
        path = tmp_path / "kp.json"
        path.write_text(json.dumps(list(bytes(kp))), encoding="utf-8")
        assert load_keypair_file(str(path)).pubkey() == kp.pubkey()

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="不存在"):
            load_keypair_file(str(tmp_path / "missing.json"))

    @pytest.mark.parametrize("content", ["[1, 2, 3]", "{}", "not json", json.dumps([256] * 64)])
    def test_malformed_file(self, tmp_path, content):
        path = tmp_path / "kp.json"
        path.write_text(content, encoding="utf-8")
        with pytest.raises(ConfigError):
            load_keypair_file(str(path))

    def test_from_base58(self):
        kp = Keypair()
        encoded = base58.b58encode(bytes(kp)).decode("utf-8")
        assert load_keypair_from_base58(f"  {encoded}\n").pubkey() == kp.pubkey()

    def test_bad_base58(self):
        with pytest.raises(ConfigError):
            load_keypair_from_base58("0OIl")

    def test_private_key_takes_precedence(self, tmp_path):
        kp = Keypair()
        cfg = parse_config(
            {
                "private_key": base58.b58encode(bytes(kp)).decode("utf-8"),
                "keypair_path": str(tmp_path / "missing.json"),
            }
        )
        assert load_keypair(cfg).pubkey() == kp.pubkey()
