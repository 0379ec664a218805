import cbor2
import pytest
from hypothesis import given, settings, strategies as st

from shardkit.address import derive_address
from shardkit.errors import AlreadySigned, EnvelopeError, MissingSignature
from shardkit.tx.build import DeployPayload, call_envelope, deploy_envelope
from shardkit.tx.envelope import MessageEnvelope
from shardkit.utils.hash import sha3_256

TO = bytes.fromhex("0002" + "ab" * 18)


def _call(**kw):
    base = dict(is_deploy=False, to=TO, chain_id=1, seqno=0, data=b"\x01\x02", value=0)
    base.update(kw)
    return MessageEnvelope(**base)


def test_hash_is_identical_before_and_after_signing(signer):
    env = _call()
    before = env.hash()
    env.sign(signer)
    assert env.signed
    assert env.hash() == before
    assert env.hash_hex() == "0x" + before.hex()


def test_hash_covers_canonical_fields_without_auth_data(signer):
    env = _call(seqno=7, value=3)
    expected = sha3_256(cbor2.dumps([False, TO, 1, 7, b"\x01\x02", 3], canonical=True))
    assert env.hash() == expected
    assert env.sign(signer).hash() == expected


def test_signature_verifies_against_hash(signer):
    env = _call().sign(signer)
    assert len(env.auth_data) == 64
    assert signer.verify(env.hash(), env.auth_data)


def test_second_sign_raises(signer):
    env = _call().sign(signer)
    with pytest.raises(AlreadySigned):
        env.sign(signer)


@pytest.mark.parametrize(
    "kw",
    [dict(data=b"\x01"), dict(is_deploy=True, data=b"")],
)
def test_encode_requires_signature_for_payload_or_deploy(kw):
    with pytest.raises(MissingSignature):
        _call(**kw).encode()


def test_bare_value_transfer_may_be_encoded_unsigned():
    env = _call(data=b"", value=5)
    raw = env.encode()
    assert MessageEnvelope.decode(raw) == env


def test_encode_is_idempotent_and_decodes_back(signer):
    env = _call().sign(signer)
    raw = env.encode()
    assert env.encode() == raw
    back = MessageEnvelope.decode(raw)
    assert back == env
    assert back.encode() == raw


@pytest.mark.parametrize(
    "raw",
    [
        b"\xff\xff",
        cbor2.dumps([1, 2, 3]),
        cbor2.dumps(["x", TO, 1, 0, b"", 0, b""]),
        cbor2.dumps([False, TO, 1, 0, "data", 0, b""]),
        cbor2.dumps([False, b"\x00", 1, 0, b"", 0, b""]),
        cbor2.dumps([False, TO, -1, 0, b"", 0, b""]),
    ],
)
def test_decode_rejects_malformed(raw):
    with pytest.raises(EnvelopeError):
        MessageEnvelope.decode(raw)


def test_negative_fields_rejected():
    with pytest.raises(EnvelopeError):
        _call(seqno=-1)


def test_deploy_payload_roundtrip_and_address():
    payload = DeployPayload(code=b"\x60\x00", salt=100, public_key=b"\x02" * 33)
    assert payload.salt == (100).to_bytes(32, "big")
    assert DeployPayload.decode(payload.encode()) == payload
    assert payload.address(2) == derive_address(b"\x02" * 33, 2, 100, b"\x60\x00")


def test_deploy_envelope_targets_derived_address(signer):
    payload = DeployPayload(code=b"\x60\x00", salt=1)
    env = deploy_envelope(payload, shard_id=1, chain_id=3, seqno=0, value=9)
    assert env.is_deploy
    assert env.to == derive_address(b"", 1, 1, b"\x60\x00")
    assert env.value == 9
    assert DeployPayload.decode(env.data) == payload
    with pytest.raises(MissingSignature):
        env.encode()
    assert env.sign(signer).encode()


def test_call_envelope_accepts_hex_address():
    env = call_envelope("0x" + TO.hex(), chain_id=1, seqno=2, data=b"")
    assert env.to == TO and not env.is_deploy


@settings(max_examples=50)
@given(
    is_deploy=st.booleans(),
    chain_id=st.integers(min_value=0, max_value=2**64),
    seqno=st.integers(min_value=0, max_value=2**64),
    data=st.binary(max_size=128),
    value=st.integers(min_value=0, max_value=2**256 - 1),
    auth=st.binary(min_size=1, max_size=96),
)
def test_encoding_is_canonical_for_arbitrary_envelopes(is_deploy, chain_id, seqno, data, value, auth):
    env = MessageEnvelope(
        is_deploy=is_deploy, to=TO, chain_id=chain_id, seqno=seqno, data=data, value=value, auth_data=auth
    )
    raw = env.encode()
    again = MessageEnvelope.decode(raw)
    assert again.encode() == raw
    assert again.hash() == env.hash()
