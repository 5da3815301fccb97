"""Script unlockers: decide whether a script group needs signing and unlock it."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace

from .molecule import MoleculeError, WitnessArgs
from .multisig import MultisigConfig
from .signer import (
    AcpScriptSigner,
    SecpMultisigScriptSigner,
    SecpSighashScriptSigner,
    Signer,
)
from .transaction import CellOutput, OutPoint, ScriptGroup, Transaction

_U64_MAX = (1 << 64) - 1
_U128_MAX = (1 << 128) - 1
_SIGHASH_PLACEHOLDER = bytes(65)


class UnlockError(Exception):
    """Raised when a script group cannot be unlocked."""


class InvalidWitnessIndexError(UnlockError):
    """Raised when the witness at an index is not in WitnessArgs format."""

    def __init__(self, index: int) -> None:
        super().__init__(f"invalid witness args: witness index=`{index}`")
        self.index = index


class TransactionDependencyError(Exception):
    """Raised by a dependency provider that cannot find what was asked for."""


class TransactionDependencyProvider(ABC):
    """Looks up the cells a transaction depends on."""

    @abstractmethod
    def get_cell(self, out_point: OutPoint) -> CellOutput:
        """The output behind an out point."""

    @abstractmethod
    def get_cell_data(self, out_point: OutPoint) -> bytes:
        """The data of the output behind an out point."""


class ScriptUnlocker(ABC):
    """Parses script args, signs and adds any extra unlock information."""

    @abstractmethod
    def match_args(self, args: bytes) -> bool:
        """Whether this unlocker handles a script with these args."""

    def is_unlocked(
        self,
        tx: Transaction,
        script_group: ScriptGroup,
        tx_dep_provider: TransactionDependencyProvider,
    ) -> bool:
        """Whether the script group is already unlocked."""
        return False

    @abstractmethod
    def unlock(
        self,
        tx: Transaction,
        script_group: ScriptGroup,
        tx_dep_provider: TransactionDependencyProvider,
    ) -> Transaction:
        """Sign the group, or reset its witness when already unlocked."""

    def clear_placeholder_witness(
        self, tx: Transaction, script_group: ScriptGroup
    ) -> Transaction:
        """Remove the placeholder put in by fill_placeholder_witness."""
        return tx

    @abstractmethod
    def fill_placeholder_witness(
        self,
        tx: Transaction,
        script_group: ScriptGroup,
        tx_dep_provider: TransactionDependencyProvider,
    ) -> Transaction:
        """Put a placeholder lock in place before balancing the transaction."""


def _first_index(script_group: ScriptGroup) -> int:
    if not script_group.input_indices:
        raise UnlockError("script group has no inputs")
    return script_group.input_indices[0]


def _parse_at(data: bytes, index: int) -> WitnessArgs:
    try:
        return WitnessArgs.from_bytes(data)
    except MoleculeError as exc:
        raise InvalidWitnessIndexError(index) from exc


def fill_witness_lock(
    tx: Transaction, script_group: ScriptGroup, lock_field: bytes
) -> Transaction:
    """Set the lock of the group's first witness unless it already has one."""
    witness_idx = _first_index(script_group)
    witnesses = list(tx.witnesses)
    witnesses.extend(b"" for _ in range(witness_idx + 1 - len(witnesses)))
    data = witnesses[witness_idx]
    witness = _parse_at(data, witness_idx) if data else WitnessArgs()
    if witness.lock is None:
        witness = replace(witness, lock=bytes(lock_field))
    witnesses[witness_idx] = witness.to_bytes()
    return tx.with_witnesses(witnesses)


def reset_witness_lock(tx: Transaction, witness_idx: int) -> Transaction:
    """Drop the lock of a witness, emptying it if nothing else is left."""
    if witness_idx >= len(tx.witnesses) or not tx.witnesses[witness_idx]:
        return tx
    witness = _parse_at(tx.witnesses[witness_idx], witness_idx)
    if witness.input_type is None and witness.output_type is None:
        data = b""
    else:
        data = replace(witness, lock=None).to_bytes()
    witnesses = list(tx.witnesses)
    witnesses[witness_idx] = data
    return tx.with_witnesses(witnesses)


@dataclass
class _InputWallet:
    type_hash: bytes | None
    ckb_amount: int
    udt_amount: int
    output_cnt: int = 0


def _udt_amount(type_hash: bytes | None, data: bytes, error: str) -> int:
    if type_hash is None:
        return 0
    if len(data) < 16:
        raise UnlockError(error)
    return int.from_bytes(data[:16], "little")


def acp_is_unlocked(
    tx: Transaction,
    script_group: ScriptGroup,
    tx_dep_provider: TransactionDependencyProvider,
    acp_args: bytes,
) -> bool:
    """Whether every anyone-can-pay input is paired with a sufficient output."""
    acp_args = bytes(acp_args)
    min_ckb_amount = 0
    if acp_args:
        if acp_args[0] >= 20:
            raise UnlockError(
                f"invalid min ckb amount config in script.args, got: {acp_args[0]}, "
                "expected: value >=0 and value < 20"
            )
        min_ckb_amount = 10 ** acp_args[0]
    min_udt_amount = 0
    if len(acp_args) > 1:
        if acp_args[1] >= 39:
            raise UnlockError(
                f"invalid min udt amount config in script.args, got: {acp_args[1]}, "
                "expected: value >=0 and value < 39"
            )
        min_udt_amount = 10 ** acp_args[1]

    wallets = []
    for idx in script_group.input_indices:
        if idx >= len(tx.inputs):
            raise UnlockError(f"input index in script group is out of bound: {idx}")
        cell_input = tx.inputs[idx]
        output = tx_dep_provider.get_cell(cell_input.previous_output)
        output_data = tx_dep_provider.get_cell_data(cell_input.previous_output)
        type_hash = output.type_hash()
        udt_amount = _udt_amount(
            type_hash, output_data, f"invalid udt output data in input cell: {cell_input!r}"
        )
        wallets.append(_InputWallet(type_hash, output.capacity, udt_amount))

    for output_idx, output in enumerate(tx.outputs):
        if output.lock != script_group.script:
            continue
        if output_idx >= len(tx.outputs_data):
            raise UnlockError(
                f"output data index in script group is out of bound: {output_idx}"
            )
        type_hash = output.type_hash()
        udt_amount = _udt_amount(
            type_hash,
            tx.outputs_data[output_idx],
            f"invalid udt output data in output cell: index={output_idx}",
        )
        ckb_amount = output.capacity
        found_inputs = 0
        for wallet in wallets:
            if wallet.type_hash != type_hash:
                continue
            min_output_ckb = wallet.ckb_amount + min_ckb_amount
            meet_ckb = min_output_ckb <= _U64_MAX and ckb_amount >= min_output_ckb
            min_output_udt = wallet.udt_amount + min_udt_amount
            meet_udt = min_output_udt <= _U128_MAX and udt_amount >= min_output_udt
            if not (meet_ckb or meet_udt):
                return False
            if (not meet_ckb and ckb_amount != wallet.ckb_amount) or (
                not meet_udt and udt_amount != wallet.udt_amount
            ):
                return False
            found_inputs += 1
            wallet.output_cnt += 1
            if found_inputs > 1 or wallet.output_cnt > 1:
                return False
        if found_inputs != 1:
            return False
    return all(wallet.output_cnt == 1 for wallet in wallets)


class SecpSighashUnlocker(ScriptUnlocker):
    """Unlocker for the secp256k1 sighash-all lock script."""

    def __init__(self, signer: SecpSighashScriptSigner) -> None:
        self.signer = signer

    @classmethod
    def from_signer(cls, signer: Signer) -> SecpSighashUnlocker:
        """Build an unlocker around a raw signer."""
        return cls(SecpSighashScriptSigner(signer))

    def match_args(self, args: bytes) -> bool:
        return self.signer.match_args(args)

    def unlock(self, tx, script_group, tx_dep_provider):
        return self.signer.sign_tx(tx, script_group)

    def fill_placeholder_witness(self, tx, script_group, tx_dep_provider):
        return fill_witness_lock(tx, script_group, _SIGHASH_PLACEHOLDER)


class SecpMultisigUnlocker(ScriptUnlocker):
    """Unlocker for the secp256k1 multisig-all lock script."""

    def __init__(self, signer: SecpMultisigScriptSigner) -> None:
        self.signer = signer

    @classmethod
    def from_signer(cls, signer: Signer, config: MultisigConfig) -> SecpMultisigUnlocker:
        """Build an unlocker around a raw signer and a multisig configuration."""
        return cls(SecpMultisigScriptSigner(signer, config))

    def match_args(self, args: bytes) -> bool:
        return len(args) in (20, 28) and self.signer.match_args(args)

    def unlock(self, tx, script_group, tx_dep_provider):
        return self.signer.sign_tx(tx, script_group)

    def fill_placeholder_witness(self, tx, script_group, tx_dep_provider):
        return fill_witness_lock(tx, script_group, self.signer.config.placeholder_lock())


class AcpUnlocker(ScriptUnlocker):
    """Unlocker for the anyone-can-pay lock script."""

    def __init__(self, signer: AcpScriptSigner) -> None:
        self.signer = signer

    @classmethod
    def from_signer(cls, signer: Signer) -> AcpUnlocker:
        """Build an unlocker around a raw signer."""
        return cls(AcpScriptSigner(signer))

    def match_args(self, args: bytes) -> bool:
        return self.signer.match_args(args)

    def is_unlocked(self, tx, script_group, tx_dep_provider):
        args = script_group.script.args
        acp_args = args[20:] if len(args) > 20 else b""
        return acp_is_unlocked(tx, script_group, tx_dep_provider, acp_args)

    def unlock(self, tx, script_group, tx_dep_provider):
        if self.is_unlocked(tx, script_group, tx_dep_provider):
            return self.clear_placeholder_witness(tx, script_group)
        return self.signer.sign_tx(tx, script_group)

    def clear_placeholder_witness(self, tx, script_group):
        return reset_witness_lock(tx, _first_index(script_group))

    def fill_placeholder_witness(self, tx, script_group, tx_dep_provider):
        if self.is_unlocked(tx, script_group, tx_dep_provider):
            return tx
        return fill_witness_lock(tx, script_group, _SIGHASH_PLACEHOLDER)