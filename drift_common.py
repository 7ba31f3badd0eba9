# -*- coding: utf-8 -*-
"""
Drift 下单工具的公共部分: 常量、异常、配置加载、日志初始化、私钥加载.

其它模块 (drift_pda / drift_codec / drift_tx / drift_exec) 只依赖这里的常量和异常,
入口脚本 place_order.py 负责把它们串起来.
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import os
import sys
from dataclasses import dataclass, field
from typing import Optional

import base58
from solders.keypair import Keypair
from solders.pubkey import Pubkey

# ===== 全局常量 =====
# Drift 在 devnet 上部署的程序 ID
DRIFT_DEVNET_PROGRAM_ID = "dRiftyHA39MWEi3m9aunc5MzRF1JYuBsbn6VPcn33UH"

# 默认 RPC URL 常量, 便于集中管理和修改
DEFAULT_DEVNET_RPC_URL = "https://api.devnet.solana.com"
DEFAULT_TESTNET_RPC_URL = "https://api.testnet.solana.com"
DEFAULT_MAINNET_RPC_URL = "https://solana-rpc.publicnode.com"

DEFAULT_RPC_URLS = {
    "devnet": DEFAULT_DEVNET_RPC_URL,
    "testnet": DEFAULT_TESTNET_RPC_URL,
    "mainnet": DEFAULT_MAINNET_RPC_URL,
}

# Solana CLI 默认的密钥文件格式: 64 个数字组成的 JSON 数组
DEFAULT_KEYPAIR_PATH = "drift-dev-wallet.json"

COMMITMENT_LEVELS = ("processed", "confirmed", "finalized")
RPC_MODES = ("client", "raw")

# 可以通过环境变量 DRIFT_ORDER_CONFIG 覆盖配置文件路径
DEFAULT_CONFIG_PATH = "config.json"
CONFIG_PATH = os.environ.get("DRIFT_ORDER_CONFIG", DEFAULT_CONFIG_PATH)

LOGGER_NAME = "drift_order"


# ===== 异常 =====

class DriftTxError(Exception):
    """本工具所有可预期错误的基类, 入口处统一捕获并转换为非 0 退出码. """


class ConfigError(DriftTxError, ValueError):
    """配置错误: 配置文件、程序 ID、私钥文件等有问题, 在任何网络请求之前发生. """


class DerivationError(DriftTxError):
    """PDA 派生失败 (种子非法或 256 个 bump 全部落在曲线上). """


class UnsupportedMarketError(DerivationError):
    """预言机表中没有该市场索引. """

    def __init__(self, market_index: int):
        self.market_index = market_index
        super().__init__(f"unsupported market: 市场索引 {market_index} 不在预言机表中")


class EncodingError(DriftTxError, ValueError):
    """指令字段序列化失败, 通常说明调用方传入了越界的值. """


class RpcError(DriftTxError, RuntimeError):
    """远端节点或链上程序拒绝了请求. """

    def __init__(self, message: str, logs: Optional[list[str]] = None):
        super().__init__(message)
        self.logs = list(logs or [])


class SimulationError(RpcError):
    pass


class SubmissionError(RpcError):
    pass


# ===== 配置 =====

@dataclass
class OrderConfig:
    """place_order 指令的字段, 默认值即 devnet 示例订单 (限价、做多、只挂单). """

    order_type: int = 1
    direction: int = 0
    base_asset_amount: int = 10_000
    price: int = 10_000_000
    reduce_only: bool = False
    immediate_or_cancel: bool = False
    post_only: bool = True


@dataclass
class AppConfig:
    """应用配置对象, 便于在代码中类型提示和访问字段. """

    network: str  # devnet / testnet / mainnet
    rpc_url: str
    program_id: str
    keypair_path: Optional[str]
    private_key: Optional[str]  # Base58 编码的私钥字符串, 优先于 keypair_path
    market_index: int
    include_initialize: bool  # 是否在同一笔交易里先执行 initialize_user
    simulate: bool
    enable_submit: bool
    commitment: str
    rpc_mode: str  # client: solana-py Client, raw: 直接发 JSON-RPC
    rpc_timeout_s: int
    order: OrderConfig = field(default_factory=OrderConfig)


def _as_int(raw: dict, key: str, default: int) -> int:
    value = raw.get(key, default)
    if isinstance(value, bool):
        raise ConfigError(f"配置项 {key} 必须是整数, 当前值: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"配置项 {key} 必须是整数, 当前值: {value!r}") from exc


def _as_bool(raw: dict, key: str, default: bool) -> bool:
    value = raw.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"配置项 {key} 必须是 true / false, 当前值: {value!r}")
    return value


def parse_program_id(program_id: str) -> Pubkey:
    """把 Base58 字符串解析为程序 ID, 格式错误时抛出 ConfigError. """

    try:
        raw = base58.b58decode(program_id.strip())
    except ValueError as exc:
        raise ConfigError(f"程序 ID 不是合法的 Base58 字符串: {program_id!r}") from exc
    if len(raw) != 32:
        raise ConfigError(f"程序 ID 长度错误(应为 32 字节, 实际 {len(raw)} 字节): {program_id!r}")
    return Pubkey.from_bytes(raw)


def parse_config(raw: dict) -> AppConfig:
    """校验 JSON 配置内容并填充默认值. """

    if not isinstance(raw, dict):
        raise ConfigError("配置文件顶层必须是 JSON 对象. ")

    network = str(raw.get("network", "devnet")).lower()
    rpc_url = raw.get("rpc_url")
    if not rpc_url:
        if network not in DEFAULT_RPC_URLS:
            raise ConfigError(f"未知 network 类型: {network}, 请使用 devnet / testnet / mainnet 之一. ")
        rpc_url = DEFAULT_RPC_URLS[network]

    program_id = str(raw.get("program_id", DRIFT_DEVNET_PROGRAM_ID))
    parse_program_id(program_id)

    private_key = raw.get("private_key") or None
    keypair_path = raw.get("keypair_path") or None
    if private_key is None and keypair_path is None:
        keypair_path = DEFAULT_KEYPAIR_PATH

    market_index = _as_int(raw, "market_index", 0)
    if not 0 <= market_index <= 0xFFFF:
        raise ConfigError(f"配置项 market_index 必须在 0~65535 之间, 当前值: {market_index}")

    commitment = str(raw.get("commitment", "confirmed")).lower()
    if commitment not in COMMITMENT_LEVELS:
        raise ConfigError(f"配置项 commitment 无效: {commitment}, 可选: {', '.join(COMMITMENT_LEVELS)}")

    rpc_mode = str(raw.get("rpc_mode", "client")).lower()
    if rpc_mode not in RPC_MODES:
        raise ConfigError(f"配置项 rpc_mode 无效: {rpc_mode}, 可选: {', '.join(RPC_MODES)}")

    rpc_timeout_s = _as_int(raw, "rpc_timeout_s", 30)
    if rpc_timeout_s <= 0:
        raise ConfigError(f"配置项 rpc_timeout_s 必须大于 0, 当前值: {rpc_timeout_s}")

    order_raw = raw.get("order", {})
    if not isinstance(order_raw, dict):
        raise ConfigError("配置项 order 必须是 JSON 对象. ")
    defaults = OrderConfig()
    order = OrderConfig(
        order_type=_as_int(order_raw, "order_type", defaults.order_type),
        direction=_as_int(order_raw, "direction", defaults.direction),
        base_asset_amount=_as_int(order_raw, "base_asset_amount", defaults.base_asset_amount),
        price=_as_int(order_raw, "price", defaults.price),
        reduce_only=_as_bool(order_raw, "reduce_only", defaults.reduce_only),
        immediate_or_cancel=_as_bool(order_raw, "immediate_or_cancel", defaults.immediate_or_cancel),
        post_only=_as_bool(order_raw, "post_only", defaults.post_only),
    )

    return AppConfig(
        network=network,
        rpc_url=str(rpc_url).strip(),
        program_id=program_id.strip(),
        keypair_path=keypair_path,
        private_key=private_key,
        market_index=market_index,
        include_initialize=_as_bool(raw, "include_initialize", False),
        simulate=_as_bool(raw, "simulate", True),
        enable_submit=_as_bool(raw, "enable_submit", True),
        commitment=commitment,
        rpc_mode=rpc_mode,
        rpc_timeout_s=rpc_timeout_s,
        order=order,
    )


def load_config(path: str) -> AppConfig:
    """从 JSON 文件加载配置, 并做基本校验和默认值处理. """

    if not os.path.exists(path):
        raise ConfigError(f"配置文件不存在: {path}, 请先复制 config_example.json 为 {path} 并按说明填写. ")

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"配置文件不是合法的 JSON: {path} ({exc})") from exc

    return parse_config(raw)


# ===== 私钥 =====

def load_keypair_from_base58(secret: str) -> Keypair:
    """从 Base58 编码的私钥字符串创建 Keypair.

    很多钱包(如 Phantom)导出的私钥是 Base58 字符串, 而不是 64 个数字数组.
    """

    # 先用 base58 解码再交给 solders, Keypair.from_base58_string 遇到非法字符会直接 panic
    try:
        raw = base58.b58decode(secret.strip())
        if len(raw) != 64:
            raise ValueError(f"解码后长度为 {len(raw)} 字节, 应为 64 字节")
        return Keypair.from_bytes(raw)
    except Exception as e:  # noqa: BLE001 - 需要捕获所有错误并给出清晰提示
        raise ConfigError(
            "私钥格式错误: 请确认是 Base58 编码的 Solana 私钥字符串, 且不要包含多余空格或换行. "
        ) from e


def load_keypair_file(path: str) -> Keypair:
    """读取 Solana CLI 格式的密钥文件 (64 个 0~255 整数组成的 JSON 数组).

    文件不存在或内容不合法时抛出 ConfigError, 不会让进程带着半初始化状态继续.
    """

    path = os.path.expanduser(path)
    if not os.path.exists(path):
        raise ConfigError(f"密钥文件不存在: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"读取密钥文件失败: {path} ({exc})") from exc

    if (
        not isinstance(data, list)
        or len(data) != 64
        or not all(isinstance(b, int) and not isinstance(b, bool) and 0 <= b <= 255 for b in data)
    ):
        raise ConfigError(f"密钥文件格式错误: {path}, 应为 64 个 0~255 整数组成的 JSON 数组. ")

    try:
        return Keypair.from_bytes(bytes(data))
    except Exception as e:  # noqa: BLE001
        raise ConfigError(f"密钥文件内容无效: {path} ({e})") from e


def load_keypair(cfg: AppConfig) -> Keypair:
    """按配置加载签名私钥: 优先 private_key, 否则读取 keypair_path. """

    if cfg.private_key:
        return load_keypair_from_base58(cfg.private_key)
    if not cfg.keypair_path:
        raise ConfigError("配置中既没有 private_key 也没有 keypair_path. ")
    return load_keypair_file(cfg.keypair_path)


# ===== 日志 =====

def setup_logging(log_dir: str = "logs") -> tuple[logging.Logger, logging.Logger]:
    """初始化日志系统.

    - 主日志 logger: 打印到控制台 + 写入 logs/app.log
    - 交易日志 tx_logger: 专门写入 logs/transactions.log, 只记录已发送交易的签名
    """

    os.makedirs(log_dir, exist_ok=True)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()

    log_format = logging.Formatter("[%(asctime)s] [%(levelname)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S")

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG)
    console_handler.setFormatter(log_format)
    logger.addHandler(console_handler)

    file_handler = logging.handlers.RotatingFileHandler(
        os.path.join(log_dir, "app.log"),
        maxBytes=5 * 1024 * 1024,  # 5 MB
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(log_format)
    logger.addHandler(file_handler)

    tx_logger = logging.getLogger(f"{LOGGER_NAME}.tx")
    tx_logger.setLevel(logging.INFO)
    tx_logger.handlers.clear()
    tx_logger.propagate = False  # 禁止向上传播到主 logger, 避免重复输出

    tx_file_handler = logging.handlers.RotatingFileHandler(
        os.path.join(log_dir, "transactions.log"),
        maxBytes=5 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    tx_file_handler.setLevel(logging.INFO)
    tx_file_handler.setFormatter(log_format)
    tx_logger.addHandler(tx_file_handler)

    return logger, tx_logger
