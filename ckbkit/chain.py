"""Chain level helpers: epochs, DAO data, cellbase maturity and withdraw amounts."""

from __future__ import annotations

import math
import struct
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from fractions import Fraction
from typing import Any, NamedTuple

_U64_MASK = (1 << 64) - 1
LOCK_PERIOD_EPOCHS = 180


class MaturityError(Exception):
    """Raised when the maximum mature block number cannot be determined."""


@dataclass(frozen=True)
class EpochNumberWithFraction:
    """An epoch number together with a position inside the epoch."""

    number: int
    index: int = 0
    length: int = 0

    def __post_init__(self) -> None:
        if not 0 <= self.number < 1 << 24:
            raise ValueError(f"epoch number out of range: {self.number}")
        if not 0 <= self.index < 1 << 16:
            raise ValueError(f"epoch index out of range: {self.index}")
        if not 0 <= self.length < 1 << 16:
            raise ValueError(f"epoch length out of range: {self.length}")

    @classmethod
    def from_full_value(cls, value: int) -> EpochNumberWithFraction:
        """Decode the packed 64-bit representation."""
        return cls(
            number=value & 0xFFFFFF,
            index=(value >> 24) & 0xFFFF,
            length=(value >> 40) & 0xFFFF,
        )

    def full_value(self) -> int:
        """Encode into the packed 64-bit representation."""
        return self.number | (self.index << 24) | (self.length << 40)

    def to_fraction(self) -> Fraction:
        """The epoch as an exact rational number."""
        if self.length == 0:
            return Fraction(self.number)
        return Fraction(self.number) + Fraction(self.index, self.length)

    def __str__(self) -> str:
        return f"{self.number}({self.index}/{self.length})"


@dataclass(frozen=True)
class EpochInfo:
    """Epoch number, first block number and length in blocks."""

    number: int
    start_number: int
    length: int


@dataclass(frozen=True)
class Header:
    """The header fields the helpers in this module need."""

    number: int = 0
    epoch: EpochNumberWithFraction = field(
        default_factory=lambda: EpochNumberWithFraction(0)
    )
    dao: bytes = bytes(32)


@dataclass(frozen=True)
class LiveCell:
    """A live cell with its location in the chain."""

    block_number: int
    tx_index: int
    output: Any = None
    output_data: bytes = b""
    out_point: Any = None


class ChainRpc(ABC):
    """The node queries needed to work out cellbase maturity."""

    @abstractmethod
    def cellbase_maturity(self) -> EpochNumberWithFraction:
        """Return the consensus cellbase maturity."""

    @abstractmethod
    def tip_epoch(self) -> EpochNumberWithFraction:
        """Return the epoch of the tip header."""

    @abstractmethod
    def get_epoch_by_number(self, number: int) -> EpochInfo | None:
        """Return the epoch with the given number, or None if unknown."""


class DaoData(NamedTuple):
    c: int
    ar: int
    s: int
    u: int


def pack_dao_data(c: int, ar: int, s: int, u: int) -> bytes:
    """Pack the four DAO fields into the 32-byte header field."""
    try:
        return struct.pack("<4Q", c, ar, s, u)
    except struct.error as exc:
        raise ValueError(f"invalid dao field: {exc}") from exc


def extract_dao_data(dao: bytes) -> DaoData:
    """Unpack the 32-byte header DAO field."""
    dao = bytes(dao)
    if len(dao) != 32:
        raise ValueError(f"dao field must be 32 bytes, got {len(dao)}")
    return DaoData(*struct.unpack("<4Q", dao))


def get_max_mature_number(rpc_client: ChainRpc) -> int:
    """Return the highest block number whose cellbase outputs are mature."""
    maturity = rpc_client.cellbase_maturity().to_fraction()
    tip = rpc_client.tip_epoch().to_fraction()
    if tip < maturity:
        return 0
    difference = tip - maturity
    rounded_down = math.floor(difference)
    delta = difference - rounded_down
    epoch = rpc_client.get_epoch_by_number(rounded_down & _U64_MASK)
    if epoch is None:
        raise MaturityError("Can not get epoch less than current epoch number")
    return math.floor(delta * epoch.length + epoch.start_number) & _U64_MASK


def is_mature(cell: LiveCell, max_mature_number: int) -> bool:
    """Whether a live cell can be spent with respect to cellbase maturity."""
    return (
        cell.tx_index > 0
        or cell.block_number == 0
        or cell.block_number <= max_mature_number
    )


def minimal_unlock_point(
    deposit_header: Header, prepare_header: Header
) -> EpochNumberWithFraction:
    """The earliest epoch at which a prepared DAO deposit can be withdrawn."""
    deposit = deposit_header.epoch
    prepare = prepare_header.epoch
    if prepare.number < deposit.number:
        raise ValueError("prepare epoch is earlier than deposit epoch")
    prepare_fraction = prepare.index * deposit.length
    deposit_fraction = deposit.index * prepare.length
    passed = prepare.number - deposit.number
    if prepare_fraction > deposit_fraction:
        passed += 1
    rest = (passed + LOCK_PERIOD_EPOCHS - 1) // LOCK_PERIOD_EPOCHS * LOCK_PERIOD_EPOCHS
    return EpochNumberWithFraction(deposit.number + rest, deposit.index, deposit.length)


def calculate_dao_maximum_withdraw4(
    deposit_header: Header,
    prepare_header: Header,
    output_capacity: int,
    occupied_capacity: int,
) -> int:
    """Maximum capacity withdrawable from a DAO deposit cell."""
    if occupied_capacity > output_capacity:
        raise ValueError(
            f"occupied capacity {occupied_capacity} exceeds output capacity {output_capacity}"
        )
    deposit_ar = extract_dao_data(deposit_header.dao).ar
    prepare_ar = extract_dao_data(prepare_header.dao).ar
    counted = output_capacity - occupied_capacity
    withdraw_counted = counted * prepare_ar // deposit_ar
    return occupied_capacity + (withdraw_counted & _U64_MASK)