import json

import pytest
from hypothesis import given
from hypothesis import strategies as st

from torrentwire.ws_common import (
    ANNOUNCE_ACTION,
    SCRAPE_ACTION,
    ProtocolError,
    check_action,
    decode_id,
    encode_id,
)


def test_deserialize_20_bytes():
    assert decode_id(json.loads('"aaaabbbbccccddddeeee"')) == b"aaaabbbbccccddddeeee"

    with pytest.raises(ProtocolError):
        decode_id(json.loads('"aaaabbbbccccddddeee"'))

    with pytest.raises(ProtocolError):
        decode_id(json.loads('"aaaabbbbccccddddeee\U0001d54a"'))


def test_serde_20_bytes():
    info_hash = b"aaaabbbbccccddddeeee"
    out = json.dumps(encode_id(info_hash))
    assert decode_id(json.loads(out)) == info_hash


@given(st.binary(min_size=20, max_size=20))
def test_serde_20_bytes_round_trip(info_hash):
    assert decode_id(json.loads(json.dumps(encode_id(info_hash)))) == info_hash


def test_encode_id_maps_bytes_to_code_points():
    assert encode_id(bytes(range(20))) == "".join(chr(i) for i in range(20))
    assert encode_id(b"\xff" * 20) == "\u00ff" * 20


def test_encode_id_rejects_wrong_length():
    with pytest.raises(ValueError):
        encode_id(b"short")


def test_decode_id_ignores_extra_characters():
    assert decode_id("aaaabbbbccccddddeeeeEXTRA\U0001d54a") == b"aaaabbbbccccddddeeee"


@pytest.mark.parametrize("value", [None, 5, ["a"] * 20, b"aaaabbbbccccddddeeee"])
def test_decode_id_rejects_non_strings(value):
    with pytest.raises(ProtocolError):
        decode_id(value)


def test_check_action_accepts_expected():
    assert check_action("announce", ANNOUNCE_ACTION) == "announce"
    assert check_action("scrape", SCRAPE_ACTION) == "scrape"


@pytest.mark.parametrize(
    ("value", "expected"),
    [("scrape", ANNOUNCE_ACTION), ("announce", SCRAPE_ACTION), (None, SCRAPE_ACTION), ("", ANNOUNCE_ACTION)],
)
def test_check_action_rejects_other_values(value, expected):
    with pytest.raises(ProtocolError):
        check_action(value, expected)