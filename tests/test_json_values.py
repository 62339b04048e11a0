import pytest

from sharepool.json_values import (
    parse_bool,
    parse_difficulty,
    parse_hash,
    parse_string,
    parse_uint8,
    parse_uint64,
)
from sharepool.types import Difficulty, Hash

SPEND_KEY = "d2e232e441546a695b27187692d035ef7be5c54692700c9f470dcd706753a833"


def test_parse_string():
    assert parse_string({"name": "value"}, "name") == "value"


@pytest.mark.parametrize(
    "obj",
    [{"name": 1}, {"other": "x"}, ["name"], "name", None],
)
def test_parse_string_errors(obj):
    with pytest.raises(ValueError):
        parse_string(obj, "name")


def test_parse_uint64_range():
    assert parse_uint64({"v": 0}, "v") == 0
    assert parse_uint64({"v": 2**64 - 1}, "v") == 2**64 - 1


@pytest.mark.parametrize("value", [-1, 2**64, 1.0, True, "1", None])
def test_parse_uint64_rejects(value):
    with pytest.raises(ValueError):
        parse_uint64({"v": value}, "v")


def test_parse_uint8_truncates():
    assert parse_uint8({"v": 16}, "v") == 16
    assert parse_uint8({"v": 256}, "v") == 0


@pytest.mark.parametrize("value", [2**32, -5, False, 3.5])
def test_parse_uint8_rejects(value):
    with pytest.raises(ValueError):
        parse_uint8({"v": value}, "v")


def test_parse_bool():
    assert parse_bool({"b": True}, "b") is True
    assert parse_bool({"b": False}, "b") is False
    with pytest.raises(ValueError):
        parse_bool({"b": 1}, "b")


def test_parse_hash_round_trip():
    h = parse_hash({"id": SPEND_KEY}, "id")
    assert h.hex() == SPEND_KEY
    assert h == Hash(bytes.fromhex(SPEND_KEY))


def test_parse_hash_upper_case():
    assert parse_hash({"id": SPEND_KEY.upper()}, "id").hex() == SPEND_KEY


@pytest.mark.parametrize(
    "value",
    [SPEND_KEY[:-1], SPEND_KEY + "0", SPEND_KEY[:-1] + "g", " " + SPEND_KEY[1:], 123],
)
def test_parse_hash_rejects(value):
    with pytest.raises(ValueError):
        parse_hash({"id": value}, "id")


@pytest.mark.parametrize("text", ["", "0x"])
def test_parse_difficulty_empty_is_zero(text):
    assert parse_difficulty({"d": text}, "d").is_empty()


def test_parse_difficulty_prefix_is_optional():
    with_prefix = parse_difficulty({"d": "0x4dfa67a7e"}, "d")
    without_prefix = parse_difficulty({"d": "4dfa67a7e"}, "d")
    assert with_prefix == without_prefix
    assert with_prefix.hi == 0


def test_parse_difficulty_max_64_bits():
    assert parse_difficulty({"d": "ffffffffffffffff"}, "d") == Difficulty(2**64 - 1, 0)


def test_parse_difficulty_carries_into_high_half():
    assert parse_difficulty({"d": "0x10000000000000000"}, "d") == Difficulty(0, 1)


@pytest.mark.parametrize("value", ["0xzz", "12 34", 100])
def test_parse_difficulty_rejects(value):
    with pytest.raises(ValueError):
        parse_difficulty({"d": value}, "d")