# [TESTER] v1

from __future__ import annotations

import json

import pytest
import requests
from py_ecc.optimized_bn128 import G2, multiply

from shieldvault.config import BeaconConfig
from shieldvault.errors import BeaconError, TimelockError
from shieldvault.integration.beacon import (
    DrandBeacon,
    current_round,
    is_round_available,
    minimum_round,
    round_for_timestamp,
    timestamp_for_round,
)
from shieldvault.integration.timelock import (
    Bn254Timelock,
    aes_decrypt,
    aes_encrypt,
    encode_g1,
    encode_g2,
    parse_g1_signature,
    parse_g2_public_key,
    round_point,
)


BEACON_SECRET = 0x1F2E3D4C5B6A7988
ROUND = 1234


def _public_key() -> bytes:
    return encode_g2(multiply(G2, BEACON_SECRET))


def _signature(round_: int) -> bytes:
    return encode_g1(multiply(round_point(round_), BEACON_SECRET))


def test_envelope_opens_with_the_round_signature() -> None:
    tl = Bn254Timelock(_public_key())
    plaintext = b'{"order":"swap","shares":"300000"}'
    ct = tl.encrypt(ROUND, plaintext)

    env = json.loads(ct)
    assert env["round"] == ROUND
    assert set(env["timelock"]) == {"V", "C1"}
    assert tl.target_round(ct) == ROUND
    assert plaintext not in ct

    assert tl.decrypt(ct, _signature(ROUND)) == plaintext

    try:
        opened = tl.decrypt(ct, _signature(ROUND + 1))
    except TimelockError:
        opened = None
    assert opened != plaintext


def test_signature_parsing() -> None:
    sig = _signature(ROUND)
    assert len(sig) == 64
    assert encode_g1(parse_g1_signature("0x" + sig.hex())) == sig
    with pytest.raises(TimelockError):
        parse_g1_signature(sig[:63])
    bad = sig[:32] + (int.from_bytes(sig[32:], "big") ^ 1).to_bytes(32, "big")
    with pytest.raises(TimelockError):
        parse_g1_signature(bad)


def test_public_key_coordinate_orders() -> None:
    pk = _public_key()
    assert encode_g2(parse_g2_public_key(pk)) == pk
    w = [pk[i : i + 32] for i in range(0, 128, 32)]
    swapped = w[1] + w[0] + w[3] + w[2]
    assert encode_g2(parse_g2_public_key(swapped)) == pk
    with pytest.raises(TimelockError):
        parse_g2_public_key(pk[:96])
    with pytest.raises(TimelockError):
        parse_g2_public_key(b"\x00" * 127 + b"\x05")


def test_malformed_envelopes() -> None:
    tl = Bn254Timelock(_public_key())
    with pytest.raises(TimelockError):
        tl.target_round(b"not json")
    with pytest.raises(TimelockError):
        tl.decrypt(b'{"round": 1}', _signature(1))
    with pytest.raises(ValueError):
        tl.encrypt(0, b"x")


def test_aes_layer() -> None:
    key = bytes(range(16))
    iv, ct = aes_encrypt(key, b"hello")
    assert len(iv) == 16
    assert len(ct) == 16
    assert aes_decrypt(key, iv, ct) == b"hello"
    with pytest.raises(TimelockError):
        aes_decrypt(key, iv, ct[:15])


CFG = BeaconConfig(base_url="https://beacon.test/", beacon_id="evmnet", genesis_time=1000, period_s=3, timeout_s=2.0)


def test_round_arithmetic() -> None:
    assert [round_for_timestamp(t, CFG) for t in (999, 1000, 1001, 1003, 1004)] == [0, 0, 1, 1, 2]
    assert timestamp_for_round(2, CFG) == 1006
    assert current_round(CFG, now=999) == 0
    assert current_round(CFG, now=1005) == 1
    assert minimum_round(30, CFG, now=1000) == 10
    assert timestamp_for_round(minimum_round(31, CFG, now=1000), CFG) >= 1031
    assert is_round_available(1, CFG, now=1003)
    assert not is_round_available(2, CFG, now=1005)


class _Response:
    def __init__(self, status_code: int, payload: object = None) -> None:
        self.status_code = status_code
        self._payload = payload

    def json(self) -> object:
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class _Session:
    def __init__(self, response: object) -> None:
        self.response = response
        self.requests: list = []

    def get(self, url: str, timeout: float) -> _Response:
        self.requests.append((url, timeout))
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


def test_fetch_signature_published_round() -> None:
    sig = "ab" * 64
    session = _Session(_Response(200, {"round": 5, "signature": sig}))
    beacon = DrandBeacon(CFG, session=session)
    assert beacon.fetch_signature(5) == bytes.fromhex(sig)
    assert session.requests == [("https://beacon.test/v2/beacons/evmnet/rounds/5", 2.0)]


@pytest.mark.parametrize("status", [404, 425])
def test_fetch_signature_locked_round(status: int) -> None:
    assert DrandBeacon(CFG, session=_Session(_Response(status))).fetch_signature(5) is None


@pytest.mark.parametrize(
    "response",
    [
        _Response(500),
        _Response(200, ValueError("bad json")),
        _Response(200, {"round": 5}),
        _Response(200, {"signature": "zz"}),
        requests.ConnectionError("down"),
    ],
)
def test_fetch_signature_failures(response: object) -> None:
    with pytest.raises(BeaconError):
        DrandBeacon(CFG, session=_Session(response)).fetch_signature(5)


def test_fetch_signature_rejects_bad_round() -> None:
    with pytest.raises(ValueError):
        DrandBeacon(CFG, session=_Session(_Response(200))).fetch_signature(0)
