"""Script signers: build the signing message and put signatures into witnesses."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import replace
from enum import Enum
from typing import Callable, Iterable

from .hashing import blake2b_256, convert_keccak256_hash
from .molecule import MoleculeError, OmniLockWitnessLock, WitnessArgs
from .multisig import MultisigConfig, OmniUnlockMode
from .omni_lock import (
    ConfigError,
    Identity,
    IdentityFlag,
    NoAdminConfigError,
    NoMultisigConfigError,
    OmniLockConfig,
)
from .transaction import ScriptGroup, Transaction

_SIGNATURE_SIZE = 65
_EMPTY_SLOT = bytes(_SIGNATURE_SIZE)
_ADMIN_ARGS_END = 54
_BASE_ARGS_LEN = 22


class SignerError(Exception):
    """Raised by a signer that cannot produce a signature."""


class ScriptSignError(Exception):
    """Raised when a script group cannot be signed."""


class WitnessNotEnoughError(ScriptSignError):
    """Raised when the transaction lacks a witness for the script group."""

    def __init__(self) -> None:
        super().__init__(
            "witness count in current transaction not enough to cover current script group"
        )


class InvalidWitnessArgsError(ScriptSignError):
    """Raised when a non-empty witness is not in WitnessArgs format."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"the witness is not empty and not WitnessArgs format: `{reason}`")
        self.reason = reason


class InvalidOmniLockWitnessLockError(ScriptSignError):
    """Raised when the omnilock witness lock field is invalid."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"the Omni lock witness lock field is invalid: `{reason}`")
        self.reason = reason


class TooManySignaturesError(ScriptSignError):
    """Raised when there is no free slot left for a new signature."""

    def __init__(self) -> None:
        super().__init__(
            "there already too many signatures in current WitnessArgs.lock field "
            "(old_count + new_count > threshold)"
        )


class Signer(ABC):
    """Something holding keys that can sign messages for given ids."""

    @abstractmethod
    def match_id(self, id: bytes) -> bool:
        """Whether this signer can sign for the given id."""

    @abstractmethod
    def sign(self, id: bytes, message: bytes, recoverable: bool, tx: Transaction) -> bytes:
        """Sign the message with the key behind id."""


class ScriptSigner(ABC):
    """Generates the message of a script group, signs it and stores the signature."""

    @abstractmethod
    def match_args(self, args: bytes) -> bool:
        """Whether this signer can sign for a script with these args."""

    @abstractmethod
    def sign_tx(self, tx: Transaction, script_group: ScriptGroup) -> Transaction:
        """Return the transaction with the signature put into its witnesses."""


def _first_index(script_group: ScriptGroup) -> int:
    if not script_group.input_indices:
        raise ScriptSignError("script group has no inputs")
    return script_group.input_indices[0]


def _padded_witnesses(tx: Transaction, witness_idx: int) -> list[bytes]:
    witnesses = list(tx.witnesses)
    witnesses.extend(b"" for _ in range(witness_idx + 1 - len(witnesses)))
    return witnesses


def _parse_witness(data: bytes) -> WitnessArgs:
    if not data:
        return WitnessArgs()
    try:
        return WitnessArgs.from_bytes(data)
    except MoleculeError as exc:
        raise InvalidWitnessArgsError(str(exc)) from exc


def _with_len(data: bytes) -> bytes:
    return len(data).to_bytes(8, "little") + data


def generate_message(
    tx: Transaction, script_group: ScriptGroup, zero_lock: bytes
) -> bytes:
    """The 32-byte message to sign for a script group."""
    first = _first_index(script_group)
    witnesses = tx.witnesses
    if len(witnesses) <= first:
        raise WitnessNotEnoughError()
    init_witness = replace(_parse_witness(witnesses[first]), lock=bytes(zero_lock))
    init_bytes = init_witness.to_bytes()
    parts = [tx.hash(), _with_len(init_bytes)]
    parts.extend(
        _with_len(witnesses[idx])
        for idx in script_group.input_indices[1:]
        if idx < len(witnesses)
    )
    parts.extend(_with_len(witness) for witness in witnesses[len(tx.inputs) :])
    return blake2b_256(b"".join(parts))


def _sign_single(
    tx: Transaction,
    script_group: ScriptGroup,
    zero_lock: bytes,
    sign: Callable[[bytes], bytes],
    build_lock: Callable[[bytes | None, bytes], bytes],
) -> Transaction:
    witness_idx = _first_index(script_group)
    witnesses = _padded_witnesses(tx, witness_idx)
    message = generate_message(tx.with_witnesses(witnesses), script_group, zero_lock)
    signature = sign(message)
    current = _parse_witness(witnesses[witness_idx])
    lock = build_lock(current.lock, signature)
    witnesses[witness_idx] = replace(current, lock=lock).to_bytes()
    return tx.with_witnesses(witnesses)


def _collect_signatures(
    signer: Signer, config: MultisigConfig, message: bytes, tx: Transaction
) -> list[bytes]:
    return [
        signer.sign(address, message, True, tx)
        for address in config.sighash_addresses
        if signer.match_id(address)
    ]


def _place_signatures(lock: bytearray, start: int, signatures: Iterable[bytes]) -> None:
    for signature in signatures:
        signature = bytes(signature)
        if len(signature) != _SIGNATURE_SIZE:
            raise ScriptSignError(
                f"invalid signature length: {len(signature)}, expected: {_SIGNATURE_SIZE}"
            )
        for idx in range(start, len(lock), _SIGNATURE_SIZE):
            slot = bytes(lock[idx : idx + _SIGNATURE_SIZE])
            if slot == signature:
                break
            if slot == _EMPTY_SLOT:
                lock[idx : idx + _SIGNATURE_SIZE] = signature
                break
        else:
            raise TooManySignaturesError()


def _replace_lock(_old: bytes | None, signature: bytes) -> bytes:
    return signature


class SecpSighashScriptSigner(ScriptSigner):
    """Signer for the secp256k1 sighash-all lock script."""

    def __init__(self, signer: Signer) -> None:
        self.signer = signer

    def match_args(self, args: bytes) -> bool:
        return len(args) == 20 and self.signer.match_id(bytes(args))

    def sign_tx(self, tx: Transaction, script_group: ScriptGroup) -> Transaction:
        return self.sign_tx_with_owner_id(script_group.script.args, tx, script_group)

    def sign_tx_with_owner_id(
        self, owner_id: bytes, tx: Transaction, script_group: ScriptGroup
    ) -> Transaction:
        """Sign with the key behind owner_id and store the signature as the lock."""
        owner_id = bytes(owner_id)
        return _sign_single(
            tx,
            script_group,
            _EMPTY_SLOT,
            lambda message: self.signer.sign(owner_id, message, True, tx),
            _replace_lock,
        )


class SecpMultisigScriptSigner(ScriptSigner):
    """Signer for the secp256k1 multisig-all lock script."""

    def __init__(self, signer: Signer, config: MultisigConfig) -> None:
        self.signer = signer
        self.config = config
        self.config_hash = blake2b_256(config.to_witness_data())

    def match_args(self, args: bytes) -> bool:
        return self.config_hash[:20] == bytes(args[:20]) and any(
            self.signer.match_id(address) for address in self.config.sighash_addresses
        )

    def sign_tx(self, tx: Transaction, script_group: ScriptGroup) -> Transaction:
        witness_idx = _first_index(script_group)
        witnesses = _padded_witnesses(tx, witness_idx)
        zero_lock = self.config.placeholder_lock()
        message = generate_message(tx.with_witnesses(witnesses), script_group, zero_lock)
        signatures = _collect_signatures(self.signer, self.config, message, tx)

        current = _parse_witness(witnesses[witness_idx])
        lock = bytearray(zero_lock if current.lock is None else current.lock)
        if len(lock) != len(zero_lock):
            raise ScriptSignError(
                f"invalid witness lock field length: {len(lock)}, expected: {len(zero_lock)}"
            )
        _place_signatures(lock, len(self.config.to_witness_data()), signatures)
        witnesses[witness_idx] = replace(current, lock=bytes(lock)).to_bytes()
        return tx.with_witnesses(witnesses)


class AcpScriptSigner(ScriptSigner):
    """Signer for the anyone-can-pay lock script."""

    def __init__(self, signer: Signer) -> None:
        self.sighash_signer = SecpSighashScriptSigner(signer)

    def match_args(self, args: bytes) -> bool:
        return 20 <= len(args) <= 22 and self.sighash_signer.signer.match_id(
            bytes(args[:20])
        )

    def sign_tx(self, tx: Transaction, script_group: ScriptGroup) -> Transaction:
        owner_id = script_group.script.args[:20]
        return self.sighash_signer.sign_tx_with_owner_id(owner_id, tx, script_group)


class ChequeAction(Enum):
    """Who spends a cheque cell: the receiver claims, the sender withdraws."""

    CLAIM = "claim"
    WITHDRAW = "withdraw"


class ChequeScriptSigner(ScriptSigner):
    """Signer for the cheque lock script."""

    def __init__(self, signer: Signer, action: ChequeAction) -> None:
        self.sighash_signer = SecpSighashScriptSigner(signer)
        self.action = action

    def owner_id(self, args: bytes) -> bytes:
        """The part of the args identifying the key that signs for the action."""
        args = bytes(args)
        if len(args) != 40:
            return b""
        if self.action is ChequeAction.CLAIM:
            return args[:20]
        return args[20:40]

    def match_args(self, args: bytes) -> bool:
        return len(args) == 40 and self.sighash_signer.signer.match_id(self.owner_id(args))

    def sign_tx(self, tx: Transaction, script_group: ScriptGroup) -> Transaction:
        owner_id = self.owner_id(script_group.script.args)
        return self.sighash_signer.sign_tx_with_owner_id(owner_id, tx, script_group)


class OmniLockScriptSigner(ScriptSigner):
    """Signer for the omnilock script."""

    def __init__(
        self,
        signer: Signer,
        config: OmniLockConfig,
        unlock_mode: OmniUnlockMode = OmniUnlockMode.NORMAL,
    ) -> None:
        self.signer = signer
        self.config = config
        self.unlock_mode = unlock_mode

    @staticmethod
    def build_witness_lock(orig_lock: bytes | None, signature: bytes) -> bytes:
        """Put the signature into an existing or empty omnilock witness lock."""
        if orig_lock is None:
            witness_lock = OmniLockWitnessLock()
        else:
            try:
                witness_lock = OmniLockWitnessLock.from_bytes(orig_lock)
            except MoleculeError as exc:
                raise InvalidWitnessArgsError(str(exc)) from exc
        return replace(witness_lock, signature=bytes(signature)).to_bytes()

    def _matches_any(self, config: MultisigConfig) -> bool:
        return any(self.signer.match_id(address) for address in config.sighash_addresses)

    def match_args(self, args: bytes) -> bool:
        args = bytes(args)
        if len(args) != self.config.get_args_len():
            return False
        if self.unlock_mode is OmniUnlockMode.ADMIN:
            admin_config = self.config.admin_config
            if admin_config is None or len(args) < _ADMIN_ARGS_END:
                return False
            if admin_config.rc_type_id != args[_BASE_ARGS_LEN:_ADMIN_ARGS_END]:
                return False
            if admin_config.multisig_config is not None:
                return self._matches_any(admin_config.multisig_config)
            return self.signer.match_id(admin_config.auth.auth_content)

        identity = self.config.id
        if int(identity.flag) != args[0]:
            return False
        if identity.flag in (IdentityFlag.PUBKEY_HASH, IdentityFlag.ETHEREUM):
            return self.signer.match_id(identity.auth_content)
        if identity.flag is IdentityFlag.MULTISIG:
            multisig_config = self.config.multisig_config
            return (
                multisig_config is not None
                and identity.auth_content == args[1:21]
                and self._matches_any(multisig_config)
            )
        if identity.flag is IdentityFlag.OWNER_LOCK:
            return True
        raise ConfigError(f"auth type {identity.flag.name} is not supported")

    def _identity(self) -> Identity:
        if self.unlock_mode is OmniUnlockMode.ADMIN:
            if self.config.admin_config is None:
                raise NoAdminConfigError()
            return self.config.admin_config.auth
        return self.config.id

    def _multisig_config(self) -> MultisigConfig:
        if self.unlock_mode is OmniUnlockMode.ADMIN:
            if self.config.admin_config is None:
                raise NoAdminConfigError()
            config = self.config.admin_config.multisig_config
        else:
            config = self.config.multisig_config
        if config is None:
            raise NoMultisigConfigError()
        return config

    def _sign_multisig_tx(self, tx: Transaction, script_group: ScriptGroup) -> Transaction:
        witness_idx = _first_index(script_group)
        witnesses = _padded_witnesses(tx, witness_idx)
        zero_lock = self.config.zero_lock(self.unlock_mode)
        message = generate_message(tx.with_witnesses(witnesses), script_group, zero_lock)
        multisig_config = self._multisig_config()
        signatures = _collect_signatures(self.signer, multisig_config, message, tx)

        current = _parse_witness(witnesses[witness_idx])
        if current.lock is None:
            witness_lock = OmniLockWitnessLock()
        else:
            if len(current.lock) != len(zero_lock):
                raise ScriptSignError(
                    f"invalid witness lock field length: {len(current.lock)}, "
                    f"expected: {len(zero_lock)}"
                )
            try:
                witness_lock = OmniLockWitnessLock.from_bytes(current.lock)
            except MoleculeError as exc:
                raise InvalidWitnessArgsError(str(exc)) from exc

        omni_sig = bytearray(
            multisig_config.placeholder_lock()
            if witness_lock.signature is None
            else witness_lock.signature
        )
        _place_signatures(omni_sig, len(multisig_config.to_witness_data()), signatures)
        lock = replace(witness_lock, signature=bytes(omni_sig)).to_bytes()
        witnesses[witness_idx] = replace(current, lock=lock).to_bytes()
        return tx.with_witnesses(witnesses)

    def sign_tx(self, tx: Transaction, script_group: ScriptGroup) -> Transaction:
        identity = self._identity()
        flag = identity.flag
        if flag in (IdentityFlag.PUBKEY_HASH, IdentityFlag.ETHEREUM):
            zero_lock = self.config.zero_lock(self.unlock_mode)

            def sign(message: bytes) -> bytes:
                if flag is IdentityFlag.ETHEREUM:
                    message = convert_keccak256_hash(message)
                return self.signer.sign(identity.auth_content, message, True, tx)

            return _sign_single(
                tx, script_group, zero_lock, sign, self.build_witness_lock
            )
        if flag is IdentityFlag.MULTISIG:
            return self._sign_multisig_tx(tx, script_group)
        if flag is IdentityFlag.OWNER_LOCK:
            return tx
        raise ConfigError(f"signing for auth type {flag.name} is not supported")