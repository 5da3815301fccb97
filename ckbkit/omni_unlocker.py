"""Unlocker for the omnilock script."""

from __future__ import annotations

import copy

from .multisig import OmniUnlockMode
from .omni_lock import NoAdminConfigError, OmniLockConfig, OmniLockFlags
from .signer import OmniLockScriptSigner, Signer
from .transaction import ScriptGroup, Transaction
from .unlocker import (
    ScriptUnlocker,
    TransactionDependencyError,
    TransactionDependencyProvider,
    UnlockError,
    acp_is_unlocked,
    fill_witness_lock,
)

_BASE_ARGS_LEN = 22
_ADMIN_ARGS_LEN = 32
_HASH_PREFIX_LEN = 20


class OmniLockUnlocker(ScriptUnlocker):
    """Unlocks omnilock cells through a signature, ACP or an owner lock input."""

    def __init__(self, signer: OmniLockScriptSigner, config: OmniLockConfig) -> None:
        self.signer = signer
        self.config = config

    @classmethod
    def from_signer(
        cls,
        signer: Signer,
        config: OmniLockConfig,
        unlock_mode: OmniUnlockMode = OmniUnlockMode.NORMAL,
    ) -> OmniLockUnlocker:
        """Build an unlocker around a raw signer, a configuration and a mode."""
        own_config = copy.deepcopy(config)
        return cls(OmniLockScriptSigner(signer, config, unlock_mode), own_config)

    def match_args(self, args: bytes) -> bool:
        return self.signer.match_args(args)

    def is_unlocked(
        self,
        tx: Transaction,
        script_group: ScriptGroup,
        tx_dep_provider: TransactionDependencyProvider,
    ) -> bool:
        """Whether the group is unlocked by ACP rules or by an owner lock input."""
        flags = self.config.omni_lock_flags
        args = script_group.script.args
        if OmniLockFlags.ACP in flags:
            offset = _BASE_ARGS_LEN
            if OmniLockFlags.ADMIN in flags:
                offset += _ADMIN_ARGS_LEN
            acp_args = args[offset:] if len(args) > offset else b""
            if acp_is_unlocked(tx, script_group, tx_dep_provider, acp_args):
                return True

        if not self.signer.config.is_ownerlock():
            return False
        if len(args) < _BASE_ARGS_LEN:
            raise UnlockError(
                f"invalid script args length, expected not less than 22, got: {len(args)}"
            )
        if OmniLockFlags.ADMIN in flags:
            if self.config.admin_config is None:
                raise NoAdminConfigError()
            auth_content = self.config.admin_config.auth.auth_content
        else:
            auth_content = self.config.id.auth_content

        if len(tx.inputs) < 2:
            raise UnlockError(f"expect more than 1 input, got: {len(tx.inputs)}")

        group_indices = set(script_group.input_indices)
        for idx, cell_input in enumerate(tx.inputs):
            if idx in group_indices:
                continue
            try:
                output = tx_dep_provider.get_cell(cell_input.previous_output)
            except TransactionDependencyError:
                continue
            if output.lock_hash()[:_HASH_PREFIX_LEN] == auth_content:
                return True
        raise UnlockError("can not find according owner lock input")

    def unlock(
        self,
        tx: Transaction,
        script_group: ScriptGroup,
        tx_dep_provider: TransactionDependencyProvider,
    ) -> Transaction:
        return self.signer.sign_tx(tx, script_group)

    def fill_placeholder_witness(
        self,
        tx: Transaction,
        script_group: ScriptGroup,
        tx_dep_provider: TransactionDependencyProvider,
    ) -> Transaction:
        lock_field = self.signer.config.placeholder_witness_lock(self.signer.unlock_mode)
        return fill_witness_lock(tx, script_group, lock_field)