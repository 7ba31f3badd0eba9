from __future__ import annotations

import hashlib

import pytest

from drift_codec import (
    DISCRIMINATOR_LEN,
    INITIALIZE_USER,
    PLACE_ORDER,
    OrderType,
    PlaceOrderParams,
    PositionDirection,
    decode_instruction,
    decode_place_order,
    encode_fields,
    encode_initialize_user,
    encode_place_order,
    instruction_discriminator,
)
from drift_common import EncodingError

EXAMPLE_ORDER = PlaceOrderParams(
    order_type=1,
    market_index=0,
    direction=0,
    base_asset_amount=10_000,
    price=10_000_000,
    reduce_only=False,
    immediate_or_cancel=False,
    post_only=True,
)


class TestDiscriminator:
    @pytest.mark.parametrize("name", [PLACE_ORDER, INITIALIZE_USER, "cancel_order"])
    def test_is_sha256_prefix(self, name):
        expected = hashlib.sha256(f"global:{name}".encode()).digest()[:8]
        assert instruction_discriminator(name) == expected

    def test_is_stable(self):
        assert instruction_discriminator(PLACE_ORDER) == instruction_discriminator(PLACE_ORDER)
        assert len(instruction_discriminator(PLACE_ORDER)) == DISCRIMINATOR_LEN

    def test_names_differ(self):
        assert instruction_discriminator(PLACE_ORDER) != instruction_discriminator(INITIALIZE_USER)


class TestPlaceOrder:
    def test_example_payload_bytes(self):
        data = encode_place_order(EXAMPLE_ORDER)
        expected_fields = bytes.fromhex(
            "01" "0000" "00" "1027000000000000" "8096980000000000" "00" "00" "01"
        )
        assert data == instruction_discriminator(PLACE_ORDER) + expected_fields
        assert len(data) == 8 + 23

    def test_default_params_are_example_order(self):
        assert PlaceOrderParams() == EXAMPLE_ORDER

    def test_decode_reproduces_fields(self):
        params = PlaceOrderParams(
            order_type=OrderType.TRIGGER_LIMIT,
            market_index=513,
            direction=PositionDirection.SHORT,
            base_asset_amount=2**64 - 1,
            price=123_456_789,
            reduce_only=True,
            immediate_or_cancel=True,
            post_only=False,
        )
        decoded = decode_place_order(encode_place_order(params))
        assert decoded == params
        assert isinstance(decoded.reduce_only, bool)

    def test_enums_encode_like_ints(self):
        with_enums = PlaceOrderParams(order_type=OrderType.LIMIT, direction=PositionDirection.LONG)
        assert encode_place_order(with_enums) == encode_place_order(EXAMPLE_ORDER)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"order_type": 256},
            {"market_index": -1},
            {"market_index": 0x10000},
            {"base_asset_amount": 2**64},
            {"price": -5},
        ],
    )
    def test_out_of_range_fields(self, overrides):
        params = PlaceOrderParams(**overrides)
        with pytest.raises(EncodingError):
            encode_place_order(params)

    def test_flag_must_be_bool(self):
        with pytest.raises(EncodingError, match="post_only"):
            encode_place_order(PlaceOrderParams(post_only=1))

    def test_int_field_rejects_bool_and_float(self):
        with pytest.raises(EncodingError):
            encode_place_order(PlaceOrderParams(price=True))
        with pytest.raises(EncodingError):
            encode_place_order(PlaceOrderParams(price=1.5))

    def test_decode_rejects_wrong_discriminator(self):
        data = encode_initialize_user() + bytes(23)
        with pytest.raises(EncodingError, match="discriminator"):
            decode_place_order(data)

    def test_decode_rejects_wrong_length(self):
        with pytest.raises(EncodingError):
            decode_place_order(encode_place_order(EXAMPLE_ORDER)[:-1])

    def test_decode_rejects_bad_bool_byte(self):
        data = bytearray(encode_place_order(EXAMPLE_ORDER))
        data[-1] = 2
        with pytest.raises(EncodingError, match="bool"):
            decode_place_order(bytes(data))


class TestInitializeUser:
    def test_payload_is_discriminator_only(self):
        assert encode_initialize_user() == instruction_discriminator(INITIALIZE_USER)

    def test_decode_has_no_fields(self):
        assert decode_instruction(INITIALIZE_USER, encode_initialize_user()) == ()


def test_unknown_instruction():
    with pytest.raises(EncodingError, match="未知指令"):
        encode_fields("withdraw", ())


def test_wrong_field_count():
    with pytest.raises(EncodingError):
        encode_fields(PLACE_ORDER, (1, 0))
