# -*- coding: utf-8 -*-
"""
Drift 程序相关的 PDA (Program Derived Address) 派生.

PDA 派生: sha256(seeds + bump + program_id + "ProgramDerivedAddress"),
从 bump = 255 开始递减, 直到结果不在 ed25519 曲线上.
种子的顺序和字节编码是 Drift 程序的约定, 必须完全一致.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass

from solders.pubkey import Pubkey

from drift_common import DerivationError, UnsupportedMarketError

PDA_MARKER = b"ProgramDerivedAddress"
MAX_SEEDS = 16
MAX_SEED_LEN = 32

USER_SEED = b"user"
USER_STATS_SEED = b"user_stats"
STATE_SEED = b"state"
PERP_MARKET_SEED = b"perp_market"

# 市场索引 -> 预言机地址 (devnet), 新增市场只需要在这里加一行
ORACLE_PUBKEYS: dict[int, str] = {
    0: "EdVCmQ9FSPcVe5YySXDPCRmc8aDQLKJ9xvYBMZPie1Vw",
    1: "HovQMDrbAgAYPCmHVSrezcSmkMtXSSUsLDFANExrZh2J",
    2: "CtJ8EkqLmeYyGB8PB2afdHDQYHE2a4Cbc4WLQoe8vFsP",
}


def find_program_address(seeds: list[bytes], program_id: Pubkey) -> tuple[Pubkey, int]:
    """计算 PDA, 返回 (地址, bump).

    与 Pubkey.find_program_address 结果一致, 这里自己实现是为了把种子校验
    和失败情况统一成 DerivationError.
    """

    if len(seeds) > MAX_SEEDS - 1:
        raise DerivationError(f"种子数量过多: {len(seeds)} (最多 {MAX_SEEDS - 1} 个, 另需 1 个 bump)")
    for seed in seeds:
        if len(seed) > MAX_SEED_LEN:
            raise DerivationError(f"种子长度超过 {MAX_SEED_LEN} 字节: {seed!r}")

    prefix = b"".join(bytes(s) for s in seeds)
    suffix = bytes(program_id) + PDA_MARKER

    for bump in range(255, -1, -1):
        digest = hashlib.sha256(prefix + bytes([bump]) + suffix).digest()
        candidate = Pubkey.from_bytes(digest)
        # 在曲线上说明存在对应私钥, 不能作为程序控制的地址
        if not candidate.is_on_curve():
            return candidate, bump

    raise DerivationError(f"无法找到有效的 bump: seeds={seeds!r}, program_id={program_id}")


def market_index_seed(market_index: int) -> bytes:
    """市场索引按 u16 小端编码. """

    if not 0 <= market_index <= 0xFFFF:
        raise DerivationError(f"市场索引超出 u16 范围: {market_index}")
    return market_index.to_bytes(2, "little")


def derive_user_pda(program_id: Pubkey, authority: Pubkey) -> tuple[Pubkey, int]:
    return find_program_address([USER_SEED, bytes(authority)], program_id)


def derive_user_stats_pda(program_id: Pubkey, authority: Pubkey) -> tuple[Pubkey, int]:
    return find_program_address([USER_STATS_SEED, bytes(authority)], program_id)


def derive_state_pda(program_id: Pubkey) -> Pubkey:
    """全局 State 账户, 整个程序只有一个. """
    return find_program_address([STATE_SEED], program_id)[0]


def derive_perp_market_pda(program_id: Pubkey, market_index: int) -> Pubkey:
    return find_program_address([PERP_MARKET_SEED, market_index_seed(market_index)], program_id)[0]


def get_oracle_pubkey(market_index: int) -> Pubkey:
    """查预言机表, 不在表中的市场索引直接抛出 UnsupportedMarketError (不会发起网络请求). """

    address = ORACLE_PUBKEYS.get(market_index)
    if address is None:
        raise UnsupportedMarketError(market_index)
    return Pubkey.from_string(address)


@dataclass(frozen=True)
class DriftAddresses:
    """一次下单需要用到的全部地址. """

    program_id: Pubkey
    authority: Pubkey
    user: Pubkey
    user_bump: int
    user_stats: Pubkey
    user_stats_bump: int
    state: Pubkey
    perp_market: Pubkey
    oracle: Pubkey
    market_index: int


def derive_addresses(program_id: Pubkey, authority: Pubkey, market_index: int) -> DriftAddresses:
    """一次性派生所有地址.

    预言机表最先检查, 不支持的市场不会浪费任何派生计算.
    """

    oracle = get_oracle_pubkey(market_index)
    user, user_bump = derive_user_pda(program_id, authority)
    user_stats, user_stats_bump = derive_user_stats_pda(program_id, authority)
    return DriftAddresses(
        program_id=program_id,
        authority=authority,
        user=user,
        user_bump=user_bump,
        user_stats=user_stats,
        user_stats_bump=user_stats_bump,
        state=derive_state_pda(program_id),
        perp_market=derive_perp_market_pda(program_id, market_index),
        oracle=oracle,
        market_index=market_index,
    )
