from vrcd.codec import CONTENT_CBOR, CONTENT_JSON, decode, decode_body, encode, encode_body
from vrcd.messages import JoinGrant


def test_codec_round_trip() -> None:
    wire = JoinGrant(
        virtual_ip="10.0.1.2",
        session_key="00" * 16,
        transport="udp",
        keepalive_interval_s=15,
        overlay_subnet="10.0.1.0/24",
    ).to_wire()
    assert decode(encode(wire)) == wire


def test_body_codec_follows_content_type() -> None:
    ctype, data = encode_body({"sequence": 1}, "application/cbor; charset=binary")
    assert ctype == CONTENT_CBOR
    assert decode_body(data, ctype) == {"sequence": 1}

    ctype, data = encode_body({"sequence": 1})
    assert ctype == CONTENT_JSON
    assert decode_body(data) == {"sequence": 1}
    assert decode_body(b"", CONTENT_CBOR) == {}
