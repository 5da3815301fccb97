"""Transaction structures with their molecule serialization and hashes."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import IntEnum
from typing import Iterable

from .hashing import blake2b_256
from .molecule import pack_bytes, pack_dynvec, pack_fixvec, pack_table

_BYTE32_SIZE = 32
_U32_MAX = (1 << 32) - 1
_U64_MAX = (1 << 64) - 1


class ScriptHashType(IntEnum):
    """How a script's code hash is matched against cell deps."""

    DATA = 0
    TYPE = 1
    DATA1 = 2


class DepType(IntEnum):
    """Whether a cell dep is a code cell or a group of out points."""

    CODE = 0
    DEP_GROUP = 1


def _byte32(value: bytes, what: str) -> bytes:
    data = bytes(value)
    if len(data) != _BYTE32_SIZE:
        raise ValueError(f"{what} must be {_BYTE32_SIZE} bytes, got {len(data)}")
    return data


def _check_range(value: int, upper: int, what: str) -> None:
    if not 0 <= value <= upper:
        raise ValueError(f"{what} out of range: {value}")


def _u32(value: int) -> bytes:
    return value.to_bytes(4, "little")


def _u64(value: int) -> bytes:
    return value.to_bytes(8, "little")


@dataclass(frozen=True)
class Script:
    """A lock or type script: code hash, hash type and arguments."""

    code_hash: bytes = bytes(_BYTE32_SIZE)
    hash_type: ScriptHashType = ScriptHashType.DATA
    args: bytes = b""

    def __post_init__(self) -> None:
        object.__setattr__(self, "code_hash", _byte32(self.code_hash, "code_hash"))
        object.__setattr__(self, "hash_type", ScriptHashType(self.hash_type))
        object.__setattr__(self, "args", bytes(self.args))

    def to_bytes(self) -> bytes:
        """Serialize as a molecule table."""
        return pack_table(
            [self.code_hash, bytes([self.hash_type]), pack_bytes(self.args)]
        )

    def hash(self) -> bytes:
        """The script hash."""
        return blake2b_256(self.to_bytes())


@dataclass(frozen=True)
class OutPoint:
    """A reference to an output of a transaction."""

    tx_hash: bytes = bytes(_BYTE32_SIZE)
    index: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "tx_hash", _byte32(self.tx_hash, "tx_hash"))
        _check_range(self.index, _U32_MAX, "out point index")

    def to_bytes(self) -> bytes:
        """Serialize as a molecule struct."""
        return self.tx_hash + _u32(self.index)


@dataclass(frozen=True)
class CellInput:
    """A transaction input: the spent out point and its since value."""

    previous_output: OutPoint = field(default_factory=OutPoint)
    since: int = 0

    def __post_init__(self) -> None:
        _check_range(self.since, _U64_MAX, "since")

    def to_bytes(self) -> bytes:
        """Serialize as a molecule struct."""
        return _u64(self.since) + self.previous_output.to_bytes()


@dataclass(frozen=True)
class CellOutput:
    """A cell: its capacity, lock script and optional type script."""

    capacity: int = 0
    lock: Script = field(default_factory=Script)
    type_script: Script | None = None

    def __post_init__(self) -> None:
        _check_range(self.capacity, _U64_MAX, "capacity")

    def to_bytes(self) -> bytes:
        """Serialize as a molecule table."""
        type_bytes = b"" if self.type_script is None else self.type_script.to_bytes()
        return pack_table([_u64(self.capacity), self.lock.to_bytes(), type_bytes])

    def lock_hash(self) -> bytes:
        """The hash of the lock script."""
        return self.lock.hash()

    def type_hash(self) -> bytes | None:
        """The hash of the type script, or None when there is none."""
        return None if self.type_script is None else self.type_script.hash()


@dataclass(frozen=True)
class CellDep:
    """A cell dependency of a transaction."""

    out_point: OutPoint = field(default_factory=OutPoint)
    dep_type: DepType = DepType.CODE

    def __post_init__(self) -> None:
        object.__setattr__(self, "dep_type", DepType(self.dep_type))

    def to_bytes(self) -> bytes:
        """Serialize as a molecule struct."""
        return self.out_point.to_bytes() + bytes([self.dep_type])


@dataclass(frozen=True)
class Transaction:
    """A transaction with its witnesses."""

    version: int = 0
    cell_deps: tuple[CellDep, ...] = ()
    header_deps: tuple[bytes, ...] = ()
    inputs: tuple[CellInput, ...] = ()
    outputs: tuple[CellOutput, ...] = ()
    outputs_data: tuple[bytes, ...] = ()
    witnesses: tuple[bytes, ...] = ()

    def __post_init__(self) -> None:
        _check_range(self.version, _U32_MAX, "version")
        object.__setattr__(self, "cell_deps", tuple(self.cell_deps))
        object.__setattr__(
            self,
            "header_deps",
            tuple(_byte32(h, "header dep") for h in self.header_deps),
        )
        object.__setattr__(self, "inputs", tuple(self.inputs))
        object.__setattr__(self, "outputs", tuple(self.outputs))
        object.__setattr__(self, "outputs_data", tuple(bytes(d) for d in self.outputs_data))
        object.__setattr__(self, "witnesses", tuple(bytes(w) for w in self.witnesses))

    def raw_bytes(self) -> bytes:
        """Serialize the transaction without its witnesses."""
        return pack_table(
            [
                _u32(self.version),
                pack_fixvec(dep.to_bytes() for dep in self.cell_deps),
                pack_fixvec(self.header_deps),
                pack_fixvec(inp.to_bytes() for inp in self.inputs),
                pack_dynvec(out.to_bytes() for out in self.outputs),
                pack_dynvec(pack_bytes(data) for data in self.outputs_data),
            ]
        )

    def hash(self) -> bytes:
        """The transaction hash; witnesses do not take part in it."""
        return blake2b_256(self.raw_bytes())

    def with_witnesses(self, witnesses: Iterable[bytes]) -> Transaction:
        """A copy of this transaction with the witnesses replaced."""
        return replace(self, witnesses=tuple(bytes(w) for w in witnesses))


@dataclass(frozen=True)
class ScriptGroup:
    """A script together with the inputs and outputs that carry it."""

    script: Script
    input_indices: tuple[int, ...] = ()
    output_indices: tuple[int, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "input_indices", tuple(self.input_indices))
        object.__setattr__(self, "output_indices", tuple(self.output_indices))