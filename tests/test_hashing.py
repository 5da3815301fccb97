import pytest

from ckbkit.hashing import (
    blake160,
    blake2b_256,
    convert_keccak256_hash,
    keccak160,
    serialize_signature,
    zeroize_slice,
)


def test_blake2b_256_of_empty_input():
    assert blake2b_256(b"").hex() == (
        "44f4c69744d5f8c55d642062949dcae49bc4e7ef43d388c5a12f42b5633d163e"
    )


def test_blake2b_256_length_and_determinism():
    digest = blake2b_256(b"hello")
    assert len(digest) == 32
    assert digest == blake2b_256(bytearray(b"hello"))
    assert digest != blake2b_256(b"hello!")


def test_blake160_is_prefix_of_blake2b():
    assert blake160(b"abc") == blake2b_256(b"abc")[:20]
    assert len(blake160(b"")) == 20


def test_keccak160_of_empty_input():
    assert keccak160(b"").hex() == "dcc703c0e500b653ca82273b7bfad8045d85a470"


def test_convert_keccak256_hash_properties():
    first = convert_keccak256_hash(bytes(32))
    assert len(first) == 32
    assert first == convert_keccak256_hash(bytes(32))
    assert first != convert_keccak256_hash(b"\x01" * 32)
    assert first[12:] != keccak160(bytes(32))


def test_serialize_signature_appends_recovery_id():
    compact = bytes(range(64))
    signature = serialize_signature(compact, 1)
    assert len(signature) == 65
    assert signature[:64] == compact
    assert signature[64] == 1


def test_serialize_signature_rejects_bad_length():
    with pytest.raises(ValueError):
        serialize_signature(bytes(63), 0)


def test_serialize_signature_rejects_bad_recovery_id():
    with pytest.raises(ValueError):
        serialize_signature(bytes(64), 4)


def test_zeroize_slice_clears_buffer():
    buffer = bytearray(b"\x01\x02\x03\xff")
    zeroize_slice(buffer)
    assert buffer == bytearray(4)


def test_zeroize_slice_rejects_immutable():
    with pytest.raises(TypeError):
        zeroize_slice(b"\x01\x02")