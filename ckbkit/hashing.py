"""Hash helpers used across the toolkit: CKB blake2b, keccak and signature packing."""

from __future__ import annotations

import hashlib

from Crypto.Hash import keccak

_CKB_PERSONALIZATION = b"ckb-default-hash"
_ETH_MESSAGE_PREFIX = b"\x19Ethereum Signed Message:\n32"


def blake2b_256(data: bytes) -> bytes:
    """Return the 32-byte blake2b digest with the CKB personalization."""
    return hashlib.blake2b(
        bytes(data), digest_size=32, person=_CKB_PERSONALIZATION
    ).digest()


def blake160(message: bytes) -> bytes:
    """Return the first 20 bytes of the CKB blake2b digest."""
    return blake2b_256(message)[:20]


def _keccak256(*parts: bytes) -> bytes:
    hasher = keccak.new(digest_bits=256)
    for part in parts:
        hasher.update(bytes(part))
    return hasher.digest()


def keccak160(message: bytes) -> bytes:
    """Ethereum style public key hash: the last 20 bytes of keccak256."""
    return _keccak256(message)[12:]


def convert_keccak256_hash(message: bytes) -> bytes:
    """Hash a message the way Ethereum does before signing it."""
    return _keccak256(_ETH_MESSAGE_PREFIX, message)


def serialize_signature(compact: bytes, recovery_id: int) -> bytes:
    """Pack a 64-byte compact signature and its recovery id into 65 bytes."""
    compact = bytes(compact)
    if len(compact) != 64:
        raise ValueError(f"compact signature must be 64 bytes, got {len(compact)}")
    if not 0 <= recovery_id <= 3:
        raise ValueError(f"recovery id must be within 0..3, got {recovery_id}")
    return compact + bytes([recovery_id])


def zeroize_slice(data: bytearray) -> None:
    """Overwrite a mutable buffer with zero bytes in place."""
    data[:] = bytes(len(data))