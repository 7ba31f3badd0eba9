# -*- coding: utf-8 -*-
"""
Drift (Anchor) 指令数据编码.

指令格式: discriminator (8 bytes) + 按声明顺序排列的定长小端字段.
- discriminator = sha256("global:" + 指令名)[:8]
- 整数为定宽小端, bool 为 1 字节 (0/1), 没有填充也没有长度前缀
程序按位置解析数据, 任何一个字节不对交易都会被拒绝.
"""

from __future__ import annotations

import enum
import hashlib
import struct
from dataclasses import astuple, dataclass, fields
from functools import lru_cache

from drift_common import EncodingError

INITIALIZE_USER = "initialize_user"
PLACE_ORDER = "place_order"

DISCRIMINATOR_LEN = 8

# 字段类型 -> struct 格式字符; bool 按 u8 编解码, 解码时再校验只能是 0/1
_FIELD_FORMATS = {
    "u8": "B",
    "u16": "H",
    "u64": "Q",
    "bool": "B",
}

# 每种指令的字段布局 (字段名, 类型), 顺序即序列化顺序
INSTRUCTION_LAYOUTS: dict[str, tuple[tuple[str, str], ...]] = {
    INITIALIZE_USER: (),
    PLACE_ORDER: (
        ("order_type", "u8"),
        ("market_index", "u16"),
        ("direction", "u8"),
        ("base_asset_amount", "u64"),
        ("price", "u64"),
        ("reduce_only", "bool"),
        ("immediate_or_cancel", "bool"),
        ("post_only", "bool"),
    ),
}


class OrderType(enum.IntEnum):
    MARKET = 0
    LIMIT = 1
    TRIGGER_MARKET = 2
    TRIGGER_LIMIT = 3
    ORACLE = 4


class PositionDirection(enum.IntEnum):
    LONG = 0
    SHORT = 1


@dataclass(frozen=True)
class PlaceOrderParams:
    """place_order 的参数, 字段顺序必须与 INSTRUCTION_LAYOUTS[PLACE_ORDER] 一致. """

    order_type: int = OrderType.LIMIT
    market_index: int = 0
    direction: int = PositionDirection.LONG
    base_asset_amount: int = 10_000
    price: int = 10_000_000
    reduce_only: bool = False
    immediate_or_cancel: bool = False
    post_only: bool = True


@lru_cache(maxsize=None)
def instruction_discriminator(name: str, namespace: str = "global") -> bytes:
    """Anchor 函数签名哈希的前 8 字节. """
    return hashlib.sha256(f"{namespace}:{name}".encode("utf-8")).digest()[:DISCRIMINATOR_LEN]


@lru_cache(maxsize=None)
def _layout_struct(name: str) -> struct.Struct:
    try:
        layout = INSTRUCTION_LAYOUTS[name]
    except KeyError:
        raise EncodingError(f"未知指令: {name}") from None
    return struct.Struct("<" + "".join(_FIELD_FORMATS[kind] for _, kind in layout))


def encode_fields(name: str, values: tuple) -> bytes:
    """按指令布局序列化字段 (不含 discriminator). """

    layout = INSTRUCTION_LAYOUTS.get(name)
    if layout is None:
        raise EncodingError(f"未知指令: {name}")
    if len(values) != len(layout):
        raise EncodingError(f"{name} 需要 {len(layout)} 个字段, 实际 {len(values)} 个")

    packed = []
    for (field_name, kind), value in zip(layout, values):
        if kind == "bool":
            if not isinstance(value, bool):
                raise EncodingError(f"{name}.{field_name} 必须是 bool, 当前值: {value!r}")
            value = int(value)
        elif isinstance(value, bool) or not isinstance(value, int):
            raise EncodingError(f"{name}.{field_name} 必须是整数, 当前值: {value!r}")
        packed.append(int(value))

    try:
        return _layout_struct(name).pack(*packed)
    except struct.error as exc:
        raise EncodingError(f"{name} 字段越界: {exc}") from exc


def decode_fields(name: str, data: bytes) -> tuple:
    """encode_fields 的逆过程, 长度不符或 bool 字节不是 0/1 时报错. """

    st = _layout_struct(name)
    if len(data) != st.size:
        raise EncodingError(f"{name} 字段长度应为 {st.size} 字节, 实际 {len(data)} 字节")

    values = []
    for (field_name, kind), value in zip(INSTRUCTION_LAYOUTS[name], st.unpack(data)):
        if kind == "bool":
            if value not in (0, 1):
                raise EncodingError(f"{name}.{field_name} 的 bool 字节非法: {value}")
            value = bool(value)
        values.append(value)
    return tuple(values)


def encode_instruction(name: str, values: tuple = ()) -> bytes:
    return instruction_discriminator(name) + encode_fields(name, values)


def decode_instruction(name: str, data: bytes) -> tuple:
    disc = instruction_discriminator(name)
    if data[:DISCRIMINATOR_LEN] != disc:
        raise EncodingError(f"discriminator 与 {name} 不匹配: {data[:DISCRIMINATOR_LEN].hex()}")
    return decode_fields(name, data[DISCRIMINATOR_LEN:])


def encode_initialize_user() -> bytes:
    """initialize_user 没有参数, 数据只有 discriminator. """
    return encode_instruction(INITIALIZE_USER)


def encode_place_order(params: PlaceOrderParams) -> bytes:
    return encode_instruction(PLACE_ORDER, astuple(params))


def decode_place_order(data: bytes) -> PlaceOrderParams:
    values = decode_instruction(PLACE_ORDER, data)
    names = [f.name for f in fields(PlaceOrderParams)]
    return PlaceOrderParams(**dict(zip(names, values)))
