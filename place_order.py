#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Drift devnet 下单脚本.

流程 (严格顺序执行, 任意一步失败即退出, 退出码为 1):
1. 加载配置和签名私钥
2. 派生 User / UserStats / State / PerpMarket PDA, 查询预言机地址
3. 编码 place_order (可选在前面加上 initialize_user) 指令
4. 获取最新 blockhash, 组装并签名交易
5. 模拟交易 (可关闭), 模拟失败则不会发送
6. 发送交易并等待确认

使用说明(简要):
1. 安装依赖:
   pip install -e .
2. 复制 config_example.json 为 config.json, 填写密钥文件路径等信息
3. 运行脚本:
   python place_order.py
"""

from __future__ import annotations

import logging
import sys
import traceback
from typing import Optional

from solana.rpc.api import Client
from solana.rpc.commitment import Commitment

from drift_codec import PlaceOrderParams
from drift_common import (
    CONFIG_PATH,
    AppConfig,
    DriftTxError,
    load_config,
    load_keypair,
    parse_program_id,
    setup_logging,
)
from drift_exec import ExecutionClient
from drift_pda import derive_addresses
from drift_tx import build_instructions, build_transaction


def build_client(cfg: AppConfig) -> Client:
    """根据配置创建 Solana RPC 客户端. """
    return Client(cfg.rpc_url, commitment=Commitment(cfg.commitment), timeout=cfg.rpc_timeout_s)


def order_params_from_config(cfg: AppConfig) -> PlaceOrderParams:
    order = cfg.order
    return PlaceOrderParams(
        order_type=order.order_type,
        market_index=cfg.market_index,
        direction=order.direction,
        base_asset_amount=order.base_asset_amount,
        price=order.price,
        reduce_only=order.reduce_only,
        immediate_or_cancel=order.immediate_or_cancel,
        post_only=order.post_only,
    )


def _fail(logger: logging.Logger, label: str, e: Exception) -> int:
    logger.error("%s: %s", label, e)
    for line in getattr(e, "logs", None) or []:
        logger.error("  %s", line)
    logger.debug("%s异常堆栈: \n%s", label, traceback.format_exc())
    return 1


def run_place_order(config_path: str = CONFIG_PATH, log_dir: str = "logs") -> int:
    """主入口: 返回进程退出码 (0 成功, 1 失败). """

    logger, tx_logger = setup_logging(log_dir)
    logger.info("===== 启动 Drift 下单程序 =====")

    # 1. 配置和私钥, 任何网络请求之前完成
    try:
        cfg = load_config(config_path)
        program_id = parse_program_id(cfg.program_id)
        keypair = load_keypair(cfg)
    except DriftTxError as e:
        return _fail(logger, "加载配置或私钥失败", e)

    logger.info(
        "当前配置: network=%s, rpc_url=%s, rpc_mode=%s, commitment=%s, market_index=%d, include_initialize=%s",
        cfg.network,
        cfg.rpc_url,
        cfg.rpc_mode,
        cfg.commitment,
        cfg.market_index,
        cfg.include_initialize,
    )
    logger.info("钱包地址: %s", keypair.pubkey())
    logger.info("Program: %s", program_id)

    # 2. 派生地址
    try:
        addresses = derive_addresses(program_id, keypair.pubkey(), cfg.market_index)
    except DriftTxError as e:
        return _fail(logger, "派生地址失败", e)

    logger.info("User PDA: %s (bump=%d)", addresses.user, addresses.user_bump)
    logger.info("User Stats PDA: %s (bump=%d)", addresses.user_stats, addresses.user_stats_bump)
    logger.info("State PDA: %s", addresses.state)
    logger.info("Market PDA: %s", addresses.perp_market)
    logger.info("Oracle: %s (market_index=%d)", addresses.oracle, addresses.market_index)

    # 3. 编码指令
    params = order_params_from_config(cfg)
    try:
        instructions = build_instructions(addresses, params, include_initialize=cfg.include_initialize)
    except (DriftTxError, ValueError) as e:
        return _fail(logger, "构建指令失败", e)

    logger.info("订单参数: %s", params)
    for ix in instructions:
        logger.debug("指令数据: %s (%d 个账户)", bytes(ix.data).hex(), len(ix.accounts))

    # 4. 组装交易
    try:
        client = build_client(cfg)
        executor = ExecutionClient(
            client,
            logger=logger,
            commitment=Commitment(cfg.commitment),
            rpc_url=cfg.rpc_url,
            rpc_mode=cfg.rpc_mode,
            timeout_s=cfg.rpc_timeout_s,
        )
        blockhash = executor.latest_blockhash()
        tx = build_transaction(instructions, keypair, blockhash)
    except (DriftTxError, ValueError) as e:
        return _fail(logger, "组装交易失败", e)

    # 5. 模拟
    units_consumed: Optional[int] = None
    if cfg.simulate:
        logger.info("正在模拟交易...")
        try:
            simulation = executor.simulate(tx)
        except DriftTxError as e:
            return _fail(logger, "模拟交易失败", e)
        if not simulation.success:
            for line in simulation.logs:
                logger.error("  %s", line)
            logger.error("模拟未通过, 不发送交易")
            return 1
        units_consumed = simulation.units_consumed

    if not cfg.enable_submit:
        logger.info("enable_submit=false, 仅模拟, 不发送交易")
        return 0

    # 6. 发送
    logger.info("正在发送交易...")
    try:
        signature = executor.submit(tx)
    except DriftTxError as e:
        return _fail(logger, "发送交易失败", e)

    logger.info("交易已确认! Signature: %s", signature)
    cluster = "" if cfg.network == "mainnet" else f"?cluster={cfg.network}"
    logger.info("Solscan: https://solscan.io/tx/%s%s", signature, cluster)
    if units_consumed is not None:
        logger.info("预计消耗计算单元: %s", units_consumed)
    tx_logger.info(
        "signature=%s, market_index=%d, order=%s, include_initialize=%s",
        signature,
        cfg.market_index,
        params,
        cfg.include_initialize,
    )
    logger.info("===== 程序结束 =====")
    return 0


def main() -> None:
    sys.exit(run_place_order())


if __name__ == "__main__":
    main()
