"""Multisig configuration and the omnilock unlock mode."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .hashing import blake160
from .molecule import WitnessArgs

_SIGNATURE_SIZE = 65
_ADDRESS_SIZE = 20


class InvalidMultisigConfigError(ValueError):
    """Raised when a multisig configuration is inconsistent."""


class OmniUnlockMode(Enum):
    """How an omnilock transaction is unlocked."""

    NORMAL = 1
    ADMIN = 2


@dataclass(frozen=True)
class MultisigConfig:
    """The set of sighash addresses and the signature threshold of a multisig lock."""

    sighash_addresses: tuple[bytes, ...]
    require_first_n: int
    threshold: int

    def __post_init__(self) -> None:
        addresses = tuple(bytes(addr) for addr in self.sighash_addresses)
        object.__setattr__(self, "sighash_addresses", addresses)
        seen: set[bytes] = set()
        for addr in addresses:
            if len(addr) != _ADDRESS_SIZE:
                raise InvalidMultisigConfigError(
                    f"Invalid address length {len(addr)}, expected {_ADDRESS_SIZE}"
                )
            if addr in seen:
                raise InvalidMultisigConfigError(f"Duplicated address: 0x{addr.hex()}")
            seen.add(addr)
        if len(addresses) > 0xFF:
            raise InvalidMultisigConfigError(f"Too many addresses: {len(addresses)}")
        if not 0 <= self.threshold <= 0xFF or not 0 <= self.require_first_n <= 0xFF:
            raise InvalidMultisigConfigError("threshold and require-first-n must fit in a byte")
        if self.threshold > len(addresses):
            raise InvalidMultisigConfigError(
                f"Invalid threshold {self.threshold} > {len(addresses)}"
            )
        if self.require_first_n > self.threshold:
            raise InvalidMultisigConfigError(
                f"Invalid require-first-n {self.require_first_n} > {self.threshold}"
            )

    def contains_address(self, target: bytes) -> bool:
        """Whether the given 20-byte address is one of the signers."""
        return bytes(target) in self.sighash_addresses

    def hash160(self) -> bytes:
        """The blake160 hash of the witness data, used as lock args."""
        return blake160(self.to_witness_data())

    def to_witness_data(self) -> bytes:
        """The multisig script header placed in front of the signatures."""
        header = bytes(
            [0, self.require_first_n, self.threshold, len(self.sighash_addresses)]
        )
        return header + b"".join(self.sighash_addresses)

    def placeholder_lock(self) -> bytes:
        """The witness data followed by zeroed room for every signature."""
        return self.to_witness_data() + bytes(_SIGNATURE_SIZE * self.threshold)

    def placeholder_witness(self) -> WitnessArgs:
        """A witness whose lock field holds the placeholder lock."""
        return WitnessArgs(lock=self.placeholder_lock())