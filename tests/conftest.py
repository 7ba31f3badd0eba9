from __future__ import annotations

import json
from types import SimpleNamespace

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from drift_common import DRIFT_DEVNET_PROGRAM_ID
from drift_pda import derive_addresses


class FakeClient:
    """只实现 ExecutionClient 用到的几个 solana-py Client 方法, 并记录调用顺序. """

    def __init__(
        self, sim_err=None, sim_logs=None, units_consumed=4321, send_exc=None, confirm_err=None, confirm_exc=None
    ):
        self.sim_err = sim_err
        self.sim_logs = sim_logs if sim_logs is not None else ["Program log: Instruction: PlaceOrder"]
        self.units_consumed = units_consumed
        self.send_exc = send_exc
        self.confirm_err = confirm_err
        self.confirm_exc = confirm_exc
        self.send_opts = []
        self.calls: list[str] = []
        self.sent = []

    def get_latest_blockhash(self, commitment=None):
        self.calls.append("get_latest_blockhash")
        return SimpleNamespace(value=SimpleNamespace(blockhash=Hash.default(), last_valid_block_height=1000))

    def simulate_transaction(self, txn, sig_verify=False, commitment=None):
        self.calls.append("simulate_transaction")
        return SimpleNamespace(
            value=SimpleNamespace(err=self.sim_err, logs=self.sim_logs, units_consumed=self.units_consumed)
        )

    def send_transaction(self, txn, opts=None):
        self.calls.append("send_transaction")
        if self.send_exc is not None:
            raise self.send_exc
        self.sent.append(txn)
        self.send_opts.append(opts)
        return SimpleNamespace(value=txn.signatures[0])

    def confirm_transaction(self, tx_sig, commitment=None, sleep_seconds=0.5, last_valid_block_height=None):
        self.calls.append("confirm_transaction")
        if self.confirm_exc is not None:
            raise self.confirm_exc
        return SimpleNamespace(value=[SimpleNamespace(err=self.confirm_err, confirmation_status="confirmed")])


@pytest.fixture
def fake_client_cls():
    return FakeClient


@pytest.fixture
def program_id() -> Pubkey:
    return Pubkey.from_string(DRIFT_DEVNET_PROGRAM_ID)


@pytest.fixture
def keypair() -> Keypair:
    return Keypair.from_seed(bytes(range(32)))


@pytest.fixture
def addresses(program_id, keypair):
    return derive_addresses(program_id, keypair.pubkey(), 0)


@pytest.fixture
def write_config(tmp_path, keypair):
    """在 tmp_path 下写入密钥文件和配置文件, 返回配置文件路径. """

    def _write(**overrides) -> str:
        key_path = tmp_path / "wallet.json"
        key_path.write_text(json.dumps(list(bytes(keypair))), encoding="utf-8")
        raw = {
            "network": "devnet",
            "keypair_path": str(key_path),
            "market_index": 0,
        }
        raw.update(overrides)
        cfg_path = tmp_path / "config.json"
        cfg_path.write_text(json.dumps(raw), encoding="utf-8")
        return str(cfg_path)

    return _write
