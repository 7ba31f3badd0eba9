# -*- coding: utf-8 -*-
"""
交易执行: 获取 blockhash、模拟、发送并等待一次确认.

支持两种传输方式:
- client: 使用 solana-py 的 Client (默认)
- raw: 通过 requests 直接调用 JSON-RPC 的 simulateTransaction / sendTransaction
确认交易状态两种方式都走 solana-py 的 confirm_transaction. 不做任何重试.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import requests
from solana.exceptions import SolanaRpcException
from solana.rpc.api import Client
from solana.rpc.commitment import Commitment, Confirmed
from solana.rpc.core import RPCException, TransactionExpiredBlockheightExceededError, UnconfirmedTxError
from solana.rpc.types import TxOpts
from solders.hash import Hash
from solders.signature import Signature
from solders.transaction import VersionedTransaction

from drift_common import LOGGER_NAME, RpcError, SimulationError, SubmissionError


@dataclass
class SimulationResult:
    success: bool
    logs: list[str] = field(default_factory=list)
    units_consumed: Optional[int] = None
    err: Optional[str] = None


def _extract_solana_error_details(e: Exception) -> tuple[str, list[str]]:
    """从 RPC 异常中提取错误信息和程序日志.

    solana-py 的 RPCException 把节点返回的错误对象放在 args[0] 里,
    预检失败时其中带有 data.logs.
    """

    logs: list[str] = []
    parts = [str(e)]
    payload = e.args[0] if e.args else None

    data = None
    if isinstance(payload, dict):
        if payload.get("message"):
            parts = [str(payload["message"])]
        if payload.get("code") is not None:
            parts.append(f"code={payload['code']}")
        data = payload.get("data")
    else:
        data = getattr(payload, "data", None)
        message = getattr(payload, "message", None)
        if message:
            parts = [str(message)]

    if isinstance(data, dict):
        if data.get("err"):
            parts.append(f"err={data['err']}")
        logs = [str(line) for line in data.get("logs") or []]
    elif data is not None:
        err_val = getattr(data, "err", None)
        if err_val:
            parts.append(f"err={err_val}")
        logs = [str(line) for line in getattr(data, "logs", None) or []]

    return ", ".join(parts), logs


class ExecutionClient:
    """封装一次下单所需的全部 RPC 调用. """

    def __init__(
        self,
        client: Client,
        logger: Optional[logging.Logger] = None,
        commitment: Commitment = Confirmed,
        rpc_url: Optional[str] = None,
        rpc_mode: str = "client",
        timeout_s: int = 30,
        session: Optional[requests.Session] = None,
    ):
        if rpc_mode == "raw" and not rpc_url:
            raise ValueError("rpc_mode=raw 需要提供 rpc_url")
        self.client = client
        self.logger = logger or logging.getLogger(LOGGER_NAME)
        self.commitment = commitment
        self.rpc_url = rpc_url
        self.rpc_mode = rpc_mode
        self.timeout_s = timeout_s
        self.session = session
        self.last_valid_block_height: Optional[int] = None

    # ---------- 通用 ----------

    def latest_blockhash(self) -> Hash:
        try:
            resp = self.client.get_latest_blockhash(self.commitment)
        except (RPCException, SolanaRpcException) as e:
            raise RpcError(f"获取 blockhash 失败: {_extract_solana_error_details(e)[0]}") from e
        self.last_valid_block_height = resp.value.last_valid_block_height
        self.logger.debug(
            "最新 blockhash=%s, last_valid_block_height=%s",
            resp.value.blockhash,
            self.last_valid_block_height,
        )
        return resp.value.blockhash

    def _post_rpc(self, method: str, params: list) -> Any:
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        poster = self.session if self.session is not None else requests
        try:
            http_resp = poster.post(
                self.rpc_url,
                json=payload,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout_s,
            )
            http_resp.raise_for_status()
            data = http_resp.json()
        except (requests.RequestException, ValueError) as e:
            raise RPCException({"message": f"{method} 请求失败: {e}"}) from e

        if "error" in data:
            raise RPCException(data["error"])
        return data.get("result") or {}

    # ---------- 模拟 ----------

    def simulate(self, tx: VersionedTransaction) -> SimulationResult:
        """模拟执行交易, 不会修改链上状态.

        程序执行失败返回 success=False 的结果; 请求本身失败抛出 SimulationError.
        """

        try:
            if self.rpc_mode == "raw":
                result = self._simulate_raw(tx)
            else:
                result = self._simulate_client(tx)
        except (RPCException, SolanaRpcException) as e:
            message, logs = _extract_solana_error_details(e)
            raise SimulationError(f"模拟交易请求失败: {message}", logs) from e

        if result.success:
            self.logger.info("模拟成功, 消耗计算单元: %s", result.units_consumed)
        else:
            self.logger.error("模拟失败: %s", result.err)
        for line in result.logs:
            self.logger.debug("  %s", line)
        return result

    def _simulate_client(self, tx: VersionedTransaction) -> SimulationResult:
        resp = self.client.simulate_transaction(tx, sig_verify=True, commitment=self.commitment)
        value = resp.value
        return SimulationResult(
            success=value.err is None,
            logs=list(value.logs or []),
            units_consumed=value.units_consumed,
            err=None if value.err is None else str(value.err),
        )

    def _simulate_raw(self, tx: VersionedTransaction) -> SimulationResult:
        encoded = base64.b64encode(bytes(tx)).decode("utf-8")
        result = self._post_rpc(
            "simulateTransaction",
            [encoded, {"encoding": "base64", "sigVerify": True, "commitment": str(self.commitment)}],
        )
        value = result.get("value") or {}
        err = value.get("err")
        return SimulationResult(
            success=err is None,
            logs=list(value.get("logs") or []),
            units_consumed=value.get("unitsConsumed"),
            err=None if err is None else str(err),
        )

    # ---------- 发送 ----------

    def submit(self, tx: VersionedTransaction) -> str:
        """发送交易并等待达到配置的确认级别, 返回签名字符串.

        任何失败都抛出 SubmissionError, 不重试.
        """

        try:
            if self.rpc_mode == "raw":
                signature = self._send_raw(tx)
            else:
                signature = self.client.send_transaction(
                    tx,
                    opts=TxOpts(skip_confirmation=True, preflight_commitment=self.commitment, max_retries=0),
                ).value
        except (RPCException, SolanaRpcException) as e:
            message, logs = _extract_solana_error_details(e)
            raise SubmissionError(f"发送交易失败: {message}", logs) from e

        self.logger.info("交易已发送: %s", signature)
        self.logger.info("等待交易确认 (commitment=%s)...", self.commitment)

        try:
            resp = self.client.confirm_transaction(
                signature,
                commitment=self.commitment,
                last_valid_block_height=self.last_valid_block_height,
            )
        except (UnconfirmedTxError, TransactionExpiredBlockheightExceededError) as e:
            raise SubmissionError(f"交易 {signature} 未能确认: {e}") from e
        except (RPCException, SolanaRpcException) as e:
            message, logs = _extract_solana_error_details(e)
            raise SubmissionError(f"查询交易 {signature} 确认状态失败: {message}", logs) from e

        statuses = resp.value or []
        status = statuses[0] if statuses else None
        if status is not None and status.err is not None:
            raise SubmissionError(f"交易 {signature} 在链上执行失败: {status.err}")

        return str(signature)

    def _send_raw(self, tx: VersionedTransaction) -> Signature:
        encoded = base64.b64encode(bytes(tx)).decode("utf-8")
        result = self._post_rpc(
            "sendTransaction",
            [
                encoded,
                {
                    "encoding": "base64",
                    "skipPreflight": False,
                    "preflightCommitment": str(self.commitment),
                    "maxRetries": 0,
                },
            ],
        )
        if not result:
            raise RPCException({"message": "sendTransaction 未返回签名"})
        return Signature.from_string(str(result))
