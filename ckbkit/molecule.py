"""Molecule serialization for the structures used by the lock scripts."""

from __future__ import annotations

from dataclasses import dataclass
from itertools import pairwise
from typing import Iterable

_AUTH_SIZE = 21
_BYTE32_SIZE = 32
_RC_RULE_ID = 0
_RC_CELL_VEC_ID = 1


class MoleculeError(ValueError):
    """Raised when bytes do not form a valid molecule structure."""


def _u32(value: int) -> bytes:
    return value.to_bytes(4, "little")


def _read_u32(data: bytes, pos: int) -> int:
    if pos + 4 > len(data):
        raise MoleculeError("header is truncated")
    return int.from_bytes(data[pos : pos + 4], "little")


def pack_bytes(data: bytes) -> bytes:
    """Encode a byte string as a molecule ``Bytes`` vector."""
    data = bytes(data)
    return _u32(len(data)) + data


def unpack_bytes(data: bytes) -> bytes:
    """Decode a molecule ``Bytes`` vector into its raw content."""
    data = bytes(data)
    count = _read_u32(data, 0)
    if len(data) != 4 + count:
        raise MoleculeError(
            f"Bytes: expected {4 + count} bytes in total, got {len(data)}"
        )
    return data[4:]


def pack_fixvec(items: Iterable[bytes]) -> bytes:
    """Encode items of one fixed size as a molecule fixvec."""
    parts = [bytes(item) for item in items]
    if parts and any(len(part) != len(parts[0]) for part in parts):
        raise ValueError("fixvec items must all have the same size")
    return _u32(len(parts)) + b"".join(parts)


def _unpack_fixvec(data: bytes, item_size: int) -> list[bytes]:
    data = bytes(data)
    count = _read_u32(data, 0)
    if len(data) != 4 + count * item_size:
        raise MoleculeError(
            f"fixvec: expected {4 + count * item_size} bytes, got {len(data)}"
        )
    return [data[4 + i * item_size : 4 + (i + 1) * item_size] for i in range(count)]


def _pack_dynamic(parts: Iterable[bytes]) -> bytes:
    chunks = [bytes(part) for part in parts]
    position = 4 * (1 + len(chunks))
    offsets = []
    for chunk in chunks:
        offsets.append(position)
        position += len(chunk)
    return _u32(position) + b"".join(map(_u32, offsets)) + b"".join(chunks)


def _unpack_dynamic(data: bytes) -> list[bytes]:
    data = bytes(data)
    total = _read_u32(data, 0)
    if total != len(data):
        raise MoleculeError(f"total size {total} does not match length {len(data)}")
    if total == 4:
        return []
    first = _read_u32(data, 4)
    if first % 4 or first < 8 or first > total:
        raise MoleculeError(f"invalid first offset: {first}")
    count = first // 4 - 1
    offsets = [_read_u32(data, 4 * (i + 1)) for i in range(count)] + [total]
    if any(end < start for start, end in pairwise(offsets)):
        raise MoleculeError("offsets are not in order")
    return [data[start:end] for start, end in pairwise(offsets)]


def pack_table(fields: Iterable[bytes]) -> bytes:
    """Encode already serialized fields as a molecule table."""
    return _pack_dynamic(fields)


def unpack_table(data: bytes, field_count: int) -> list[bytes]:
    """Split a molecule table into its serialized fields."""
    fields = _unpack_dynamic(data)
    if len(fields) != field_count:
        raise MoleculeError(
            f"table: expected {field_count} fields, got {len(fields)}"
        )
    return fields


def pack_dynvec(items: Iterable[bytes]) -> bytes:
    """Encode serialized items of varying size as a molecule dynvec."""
    return _pack_dynamic(items)


def unpack_dynvec(data: bytes) -> list[bytes]:
    """Split a molecule dynvec into its serialized items."""
    return _unpack_dynamic(data)


def _pack_opt_bytes(value: bytes | None) -> bytes:
    return b"" if value is None else pack_bytes(value)


def _unpack_opt_bytes(data: bytes) -> bytes | None:
    return None if not data else unpack_bytes(data)


def _check_byte(value: int, what: str) -> None:
    if not 0 <= value <= 0xFF:
        raise ValueError(f"{what} must fit in one byte, got {value}")


@dataclass(frozen=True)
class WitnessArgs:
    """The lock, input type and output type parts of a witness."""

    lock: bytes | None = None
    input_type: bytes | None = None
    output_type: bytes | None = None

    def to_bytes(self) -> bytes:
        """Serialize as a molecule table."""
        return pack_table(
            [
                _pack_opt_bytes(self.lock),
                _pack_opt_bytes(self.input_type),
                _pack_opt_bytes(self.output_type),
            ]
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> WitnessArgs:
        """Parse a serialized WitnessArgs table."""
        lock, input_type, output_type = unpack_table(data, 3)
        return cls(
            lock=_unpack_opt_bytes(lock),
            input_type=_unpack_opt_bytes(input_type),
            output_type=_unpack_opt_bytes(output_type),
        )


@dataclass(frozen=True)
class SmtProofEntry:
    """A compiled SMT proof together with the mask it applies to."""

    mask: int = 0
    proof: bytes = b""

    def __post_init__(self) -> None:
        _check_byte(self.mask, "mask")
        object.__setattr__(self, "proof", bytes(self.proof))

    def to_bytes(self) -> bytes:
        """Serialize as a molecule table."""
        return pack_table([bytes([self.mask]), pack_bytes(self.proof)])

    @classmethod
    def from_bytes(cls, data: bytes) -> SmtProofEntry:
        """Parse a serialized SmtProofEntry table."""
        mask, proof = unpack_table(data, 2)
        if len(mask) != 1:
            raise MoleculeError(f"SmtProofEntry: mask must be 1 byte, got {len(mask)}")
        return cls(mask=mask[0], proof=unpack_bytes(proof))


def pack_smt_proof_entries(entries: Iterable[SmtProofEntry]) -> bytes:
    """Serialize a list of proof entries as an SmtProofEntryVec."""
    return pack_dynvec(entry.to_bytes() for entry in entries)


def unpack_smt_proof_entries(data: bytes) -> list[SmtProofEntry]:
    """Parse a serialized SmtProofEntryVec."""
    return [SmtProofEntry.from_bytes(item) for item in unpack_dynvec(data)]


@dataclass(frozen=True)
class OmniIdentity:
    """A 21-byte auth with the SMT proofs that go with it."""

    identity: bytes
    proofs: tuple[SmtProofEntry, ...] = ()

    def __post_init__(self) -> None:
        identity = bytes(self.identity)
        if len(identity) != _AUTH_SIZE:
            raise ValueError(f"identity must be {_AUTH_SIZE} bytes, got {len(identity)}")
        object.__setattr__(self, "identity", identity)
        object.__setattr__(self, "proofs", tuple(self.proofs))

    def to_bytes(self) -> bytes:
        """Serialize as a molecule table."""
        return pack_table([self.identity, pack_smt_proof_entries(self.proofs)])

    @classmethod
    def from_bytes(cls, data: bytes) -> OmniIdentity:
        """Parse a serialized Identity table."""
        identity, proofs = unpack_table(data, 2)
        if len(identity) != _AUTH_SIZE:
            raise MoleculeError(
                f"Identity: auth must be {_AUTH_SIZE} bytes, got {len(identity)}"
            )
        return cls(identity=identity, proofs=tuple(unpack_smt_proof_entries(proofs)))


@dataclass(frozen=True)
class OmniLockWitnessLock:
    """The content of the witness lock field of an omnilock input."""

    signature: bytes | None = None
    omni_identity: OmniIdentity | None = None
    preimage: bytes | None = None

    def to_bytes(self) -> bytes:
        """Serialize as a molecule table."""
        identity = b"" if self.omni_identity is None else self.omni_identity.to_bytes()
        return pack_table(
            [_pack_opt_bytes(self.signature), identity, _pack_opt_bytes(self.preimage)]
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> OmniLockWitnessLock:
        """Parse a serialized OmniLockWitnessLock table."""
        signature, identity, preimage = unpack_table(data, 3)
        return cls(
            signature=_unpack_opt_bytes(signature),
            omni_identity=OmniIdentity.from_bytes(identity) if identity else None,
            preimage=_unpack_opt_bytes(preimage),
        )


@dataclass(frozen=True)
class RcRule:
    """An SMT root with its white/black list and emergency flags."""

    smt_root: bytes
    flags: int = 0

    def __post_init__(self) -> None:
        root = bytes(self.smt_root)
        if len(root) != _BYTE32_SIZE:
            raise ValueError(f"smt_root must be 32 bytes, got {len(root)}")
        _check_byte(self.flags, "flags")
        object.__setattr__(self, "smt_root", root)


def pack_rc_data_rule(rule: RcRule) -> bytes:
    """Serialize an RCData union holding an RCRule."""
    return _u32(_RC_RULE_ID) + rule.smt_root + bytes([rule.flags])


def pack_rc_data_cell_vec(hashes: Iterable[bytes]) -> bytes:
    """Serialize an RCData union holding a vector of 32-byte hashes."""
    items = [bytes(h) for h in hashes]
    for item in items:
        if len(item) != _BYTE32_SIZE:
            raise ValueError(f"cell hash must be 32 bytes, got {len(item)}")
    return _u32(_RC_CELL_VEC_ID) + pack_fixvec(items)


def unpack_rc_data(data: bytes) -> RcRule | list[bytes]:
    """Parse an RCData union into an RcRule or a list of cell hashes."""
    data = bytes(data)
    item_id = _read_u32(data, 0)
    body = data[4:]
    if item_id == _RC_RULE_ID:
        if len(body) != _BYTE32_SIZE + 1:
            raise MoleculeError(f"RCRule: expected 33 bytes, got {len(body)}")
        return RcRule(smt_root=body[:_BYTE32_SIZE], flags=body[_BYTE32_SIZE])
    if item_id == _RC_CELL_VEC_ID:
        return _unpack_fixvec(body, _BYTE32_SIZE)
    raise MoleculeError(f"RCData: unknown item id {item_id}")