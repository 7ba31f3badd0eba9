# -*- coding: utf-8 -*-
"""
组装 Drift 指令和交易.

账户列表的顺序和 signer / writable 标记由 Drift 程序的 Anchor 定义决定,
这里用常量表描述, 新增指令只需要加一张表.
"""

from __future__ import annotations

from typing import Optional, Sequence

from solders import message as solders_message
from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from solders.sysvar import RENT as RENT_SYSVAR_ID
from solders.transaction import VersionedTransaction

from drift_codec import (
    INITIALIZE_USER,
    PLACE_ORDER,
    PlaceOrderParams,
    encode_initialize_user,
    encode_place_order,
)
from drift_pda import DriftAddresses

# (账户角色, is_writable, is_signer)
ACCOUNT_SCHEMAS: dict[str, tuple[tuple[str, bool, bool], ...]] = {
    INITIALIZE_USER: (
        ("user", True, False),
        ("user_stats", True, False),
        ("state", False, False),
        ("authority", False, True),
        ("system_program", False, False),
    ),
    PLACE_ORDER: (
        ("user", True, False),
        ("user_stats", True, False),
        ("state", False, False),
        ("perp_market", True, False),
        ("oracle", False, False),
        ("authority", False, True),
        ("rent", False, False),
        ("system_program", False, False),
    ),
}


def resolve_roles(addresses: DriftAddresses) -> dict[str, Pubkey]:
    """账户角色 -> 地址. """

    return {
        "user": addresses.user,
        "user_stats": addresses.user_stats,
        "state": addresses.state,
        "perp_market": addresses.perp_market,
        "oracle": addresses.oracle,
        "authority": addresses.authority,
        "rent": RENT_SYSVAR_ID,
        "system_program": SYSTEM_PROGRAM_ID,
    }


def build_account_metas(kind: str, roles: dict[str, Pubkey]) -> list[AccountMeta]:
    schema = ACCOUNT_SCHEMAS.get(kind)
    if schema is None:
        raise ValueError(f"没有为指令 {kind} 定义账户列表")

    metas = []
    for role, is_writable, is_signer in schema:
        if role not in roles:
            raise ValueError(f"指令 {kind} 缺少账户: {role}")
        metas.append(AccountMeta(pubkey=roles[role], is_signer=is_signer, is_writable=is_writable))
    return metas


def build_initialize_user_instruction(addresses: DriftAddresses) -> Instruction:
    return Instruction(
        program_id=addresses.program_id,
        accounts=build_account_metas(INITIALIZE_USER, resolve_roles(addresses)),
        data=encode_initialize_user(),
    )


def build_place_order_instruction(addresses: DriftAddresses, params: PlaceOrderParams) -> Instruction:
    if params.market_index != addresses.market_index:
        raise ValueError(
            f"订单市场索引 {params.market_index} 与派生地址使用的市场索引 {addresses.market_index} 不一致"
        )
    return Instruction(
        program_id=addresses.program_id,
        accounts=build_account_metas(PLACE_ORDER, resolve_roles(addresses)),
        data=encode_place_order(params),
    )


def build_instructions(
    addresses: DriftAddresses,
    params: PlaceOrderParams,
    include_initialize: bool = False,
) -> list[Instruction]:
    """按执行顺序返回指令列表; initialize_user 创建的账户被 place_order 使用, 必须排在前面. """

    instructions = []
    if include_initialize:
        instructions.append(build_initialize_user_instruction(addresses))
    instructions.append(build_place_order_instruction(addresses, params))
    return instructions


def build_transaction(
    instructions: Sequence[Instruction],
    payer: Keypair,
    recent_blockhash: Hash,
    signers: Optional[Sequence[Keypair]] = None,
) -> VersionedTransaction:
    """编译 MessageV0 并签名.

    payer 是手续费支付者, 同时也是签名者; signers 为额外的签名者.
    指令严格按传入顺序执行.
    """

    if not instructions:
        raise ValueError("交易中至少需要一条指令")

    message = MessageV0.try_compile(
        payer=payer.pubkey(),
        instructions=list(instructions),
        address_lookup_table_accounts=[],
        recent_blockhash=recent_blockhash,
    )

    keypairs = {kp.pubkey(): kp for kp in [payer, *(signers or [])]}
    required = message.account_keys[: message.header.num_required_signatures]
    missing = [str(pk) for pk in required if pk not in keypairs]
    if missing:
        raise ValueError(f"缺少签名者私钥: {', '.join(missing)}")

    # 签名顺序必须与 message 中签名账户的顺序一致
    return VersionedTransaction(message, [keypairs[pk] for pk in required])


def message_bytes(tx: VersionedTransaction) -> bytes:
    """被签名的消息字节. """
    return solders_message.to_bytes_versioned(tx.message)
