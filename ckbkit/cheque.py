"""Unlocker for the cheque lock script."""

from __future__ import annotations

from .molecule import MoleculeError, WitnessArgs
from .signer import ChequeAction, ChequeScriptSigner, Signer
from .transaction import ScriptGroup, Transaction
from .unlocker import (
    ScriptUnlocker,
    TransactionDependencyProvider,
    UnlockError,
    fill_witness_lock,
    reset_witness_lock,
)

CHEQUE_CLAIM_SINCE = 0
CHEQUE_WITHDRAW_SINCE = 0xA000000000000006

_CHEQUE_ARGS_LEN = 40
_HASH_PREFIX_LEN = 20
_SIGHASH_PLACEHOLDER = bytes(65)


def _first_index(script_group: ScriptGroup) -> int:
    if not script_group.input_indices:
        raise UnlockError("script group has no inputs")
    return script_group.input_indices[0]


def _has_lock(witness: bytes) -> bool:
    if not witness:
        return False
    try:
        return WitnessArgs.from_bytes(witness).lock is not None
    except MoleculeError:
        return False


class ChequeUnlocker(ScriptUnlocker):
    """Unlocks cheque cells for the receiver (claim) or the sender (withdraw)."""

    def __init__(self, signer: ChequeScriptSigner) -> None:
        self.signer = signer

    @classmethod
    def from_signer(cls, signer: Signer, action: ChequeAction) -> ChequeUnlocker:
        """Build an unlocker around a raw signer for the given action."""
        return cls(ChequeScriptSigner(signer, action))

    def match_args(self, args: bytes) -> bool:
        return self.signer.match_args(args)

    def is_unlocked(
        self,
        tx: Transaction,
        script_group: ScriptGroup,
        tx_dep_provider: TransactionDependencyProvider,
    ) -> bool:
        """Whether an input locked by the acting party already unlocks the group."""
        args = script_group.script.args
        if len(args) != _CHEQUE_ARGS_LEN:
            raise UnlockError(
                f"invalid script args length, expected: 40, got: {len(args)}"
            )
        group_since = []
        for idx in script_group.input_indices:
            if idx >= len(tx.inputs):
                raise UnlockError(f"input index in script group is out of bound: {idx}")
            group_since.append(tx.inputs[idx].since)

        receiver_lock_hash = args[:_HASH_PREFIX_LEN]
        sender_lock_hash = args[_HASH_PREFIX_LEN:_CHEQUE_ARGS_LEN]
        receiver_witness: bytes | None = None
        sender_witness: bytes | None = None
        for input_idx, cell_input in enumerate(tx.inputs):
            output = tx_dep_provider.get_cell(cell_input.previous_output)
            prefix = output.lock_hash()[:_HASH_PREFIX_LEN]
            witness = tx.witnesses[input_idx] if input_idx < len(tx.witnesses) else b""
            if prefix == receiver_lock_hash:
                if receiver_witness is None:
                    receiver_witness = witness
            elif prefix == sender_lock_hash:
                if sender_witness is None:
                    sender_witness = witness

        if self.signer.action is ChequeAction.CLAIM:
            if receiver_witness is None:
                return False
            if any(since != CHEQUE_CLAIM_SINCE for since in group_since):
                raise UnlockError("claim action must have all zero since in cheque inputs")
            return _has_lock(receiver_witness)

        if sender_witness is None:
            return False
        if any(since != CHEQUE_WITHDRAW_SINCE for since in group_since):
            raise UnlockError(
                "withdraw action must have all relative 6 epochs since in cheque inputs"
            )
        return _has_lock(sender_witness)

    def unlock(
        self,
        tx: Transaction,
        script_group: ScriptGroup,
        tx_dep_provider: TransactionDependencyProvider,
    ) -> Transaction:
        if self.is_unlocked(tx, script_group, tx_dep_provider):
            return self.clear_placeholder_witness(tx, script_group)
        return self.signer.sign_tx(tx, script_group)

    def clear_placeholder_witness(
        self, tx: Transaction, script_group: ScriptGroup
    ) -> Transaction:
        return reset_witness_lock(tx, _first_index(script_group))

    def fill_placeholder_witness(
        self,
        tx: Transaction,
        script_group: ScriptGroup,
        tx_dep_provider: TransactionDependencyProvider,
    ) -> Transaction:
        if self.is_unlocked(tx, script_group, tx_dep_provider):
            return tx
        return fill_witness_lock(tx, script_group, _SIGHASH_PLACEHOLDER)