"""Builders for omnilock RC rules and their SMT proofs."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Iterable

from .molecule import RcRule, SmtProofEntry, pack_rc_data_rule
from .smt import SmtError, SparseMerkleTree

SMT_EXISTING = bytes([1]) + bytes(31)
SMT_NOT_EXISTING = bytes(32)

# on(1): white list, off(0): black list
WHITE_BLACK_LIST_MASK = 0x2
# on(1): emergency halt mode
EMERGENCY_HALT_MODE_MASK = 0x1


class RcDataError(Exception):
    """Base error for RC data building."""


class BuildTreeError(RcDataError):
    """Raised when the SMT proof cannot be built."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"fail to build the smt tree:`{reason}`")
        self.reason = reason


class CompileProofError(RcDataError):
    """Raised when the SMT proof cannot be compiled."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"fail to compile proof, reason:`{reason}`")
        self.reason = reason


class ListType(Enum):
    """Whether an admin rule list is a white list or a black list."""

    WHITE = "white"
    BLACK = "black"


class Mask(IntEnum):
    """Which cells a rule applies to."""

    NEITHER = 0
    INPUT = 1
    OUTPUT = 2
    BOTH = 3


class RcRuleDataBuilder:
    """Builds an RC rule from an SMT and generates proofs against it."""

    def __init__(self, list_type: ListType, is_emergency: bool) -> None:
        self.smt = SparseMerkleTree()
        self.list_type = list_type
        self.is_emergency = is_emergency

    @classmethod
    def from_pairs(
        cls,
        pairs: Iterable[tuple[bytes, bytes]],
        list_type: ListType,
        is_emergency: bool,
    ) -> RcRuleDataBuilder:
        """Create a builder whose tree already holds the given pairs."""
        builder = cls(list_type, is_emergency)
        builder.update(pairs)
        return builder

    def update(self, pairs: Iterable[tuple[bytes, bytes]]) -> None:
        """Store key/value pairs in the tree."""
        for key, value in pairs:
            self.smt.update(key, value)

    def root(self) -> bytes:
        """The root hash of the tree."""
        return self.smt.root()

    def update_hashes(self, hashes: Iterable[bytes]) -> None:
        """Mark the given keys as existing in the tree."""
        self.update((key, SMT_EXISTING) for key in hashes)

    def proof_keys(self, keys: Iterable[bytes]) -> bytes:
        """A compiled proof for the given keys."""
        keys = [bytes(key) for key in keys]
        if not keys:
            raise BuildTreeError("empty keys")
        try:
            return self.smt.compiled_proof(keys)
        except SmtError as exc:
            raise CompileProofError(str(exc)) from exc

    def build_rc_rule(self) -> bytes:
        """Serialize the current tree root and flags as RCData."""
        flags = 0
        if self.list_type is ListType.WHITE:
            flags ^= WHITE_BLACK_LIST_MASK
        if self.is_emergency:
            flags ^= EMERGENCY_HALT_MODE_MASK
        return pack_rc_data_rule(RcRule(smt_root=self.smt.root(), flags=flags))

    def build_single_proof(
        self, smt_keys: Iterable[bytes], on: bool
    ) -> tuple[bytes, bytes]:
        """Optionally add the keys, then return their proof and the RC rule."""
        keys = [bytes(key) for key in smt_keys]
        if on:
            self.update_hashes(keys)
        proof = self.proof_keys(keys)
        return proof, self.build_rc_rule()


@dataclass(frozen=True)
class ProofWithMask:
    """A compiled proof and the mask it applies to."""

    proof: bytes
    mask: Mask


@dataclass
class RcRuleVecBuilder:
    """Collects proofs and their RC rules."""

    proofs: list[ProofWithMask] = field(default_factory=list)
    rc_rules: list[bytes] = field(default_factory=list)

    def add_rule(self, proof: ProofWithMask, rc_rule: bytes) -> None:
        """Append a proof and the rule it belongs to."""
        self.proofs.append(proof)
        self.rc_rules.append(bytes(rc_rule))

    def build_single_proof_and_rule(
        self,
        smt_keys: Iterable[bytes],
        mask: Mask,
        list_type: ListType,
        is_emergency: bool,
        on: bool,
    ) -> None:
        """Build a fresh rule with one proof and add both."""
        builder = RcRuleDataBuilder(list_type, is_emergency)
        proof, rc_rule = builder.build_single_proof(smt_keys, on)
        self.add_rule(ProofWithMask(proof, Mask(mask)), rc_rule)

    def build_proofs(self) -> tuple[SmtProofEntry, ...]:
        """The collected proofs as SMT proof entries."""
        return tuple(
            SmtProofEntry(mask=int(item.mask), proof=item.proof) for item in self.proofs
        )