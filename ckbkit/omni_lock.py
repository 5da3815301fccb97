"""Omnilock identities, lock arguments and placeholder witnesses."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum, IntFlag

from .molecule import OmniIdentity, OmniLockWitnessLock, SmtProofEntry, WitnessArgs
from .multisig import MultisigConfig, OmniUnlockMode

_AUTH_CONTENT_SIZE = 20
_HASH_SIZE = 32
_SIGNATURE_SIZE = 65
_U128_MAX = (1 << 128) - 1
_U64_MAX = (1 << 64) - 1
_BASE_ARGS_LEN = 22


class ConfigError(Exception):
    """Raised when an omnilock configuration cannot serve a request."""


class NoAdminConfigError(ConfigError):
    """Raised when the admin configuration is required but missing."""

    def __init__(self) -> None:
        super().__init__("there is no admin configuration in the OmniLockConfig")


class NoMultisigConfigError(ConfigError):
    """Raised when the multisig configuration is required but missing."""

    def __init__(self) -> None:
        super().__init__("there is no multisig config in the OmniLockConfig")


class IdentityFlag(IntEnum):
    """What the auth content of an identity stands for."""

    PUBKEY_HASH = 0
    ETHEREUM = 1
    EOS = 2
    TRON = 3
    BITCOIN = 4
    DOGECOIN = 5
    MULTISIG = 6
    OWNER_LOCK = 0xFC
    EXEC = 0xFD
    DL = 0xFE


def _fixed(value: bytes, size: int, what: str) -> bytes:
    data = bytes(value)
    if len(data) != size:
        raise ValueError(f"{what} must be {size} bytes, got {len(data)}")
    return data


@dataclass(frozen=True)
class Identity:
    """A flag with its 20-byte auth content."""

    flag: IdentityFlag = IdentityFlag.PUBKEY_HASH
    auth_content: bytes = bytes(_AUTH_CONTENT_SIZE)

    def __post_init__(self) -> None:
        object.__setattr__(self, "flag", IdentityFlag(self.flag))
        object.__setattr__(
            self,
            "auth_content",
            _fixed(self.auth_content, _AUTH_CONTENT_SIZE, "auth content"),
        )

    @classmethod
    def new_pubkey_hash(cls, pubkey_hash: bytes) -> Identity:
        """An identity holding the blake160 hash of a public key."""
        return cls(IdentityFlag.PUBKEY_HASH, pubkey_hash)

    @classmethod
    def new_multisig(cls, multisig_config: MultisigConfig) -> Identity:
        """An identity holding the hash of a multisig configuration."""
        return cls(IdentityFlag.MULTISIG, multisig_config.hash160())

    @classmethod
    def new_ethereum(cls, pubkey_hash: bytes) -> Identity:
        """An identity holding the keccak160 hash of a public key."""
        return cls(IdentityFlag.ETHEREUM, pubkey_hash)

    @classmethod
    def new_ownerlock(cls, script_hash: bytes) -> Identity:
        """An identity holding the blake160 hash of an owner lock script."""
        return cls(IdentityFlag.OWNER_LOCK, script_hash)

    def to_smt_key(self) -> bytes:
        """The 32-byte SMT key: flag, auth content, then zero padding."""
        return self.to_bytes() + bytes(_HASH_SIZE - _AUTH_CONTENT_SIZE - 1)

    def to_bytes(self) -> bytes:
        """The 21-byte auth: flag followed by auth content."""
        return bytes([self.flag]) + self.auth_content

    @classmethod
    def from_bytes(cls, data: bytes) -> Identity:
        """Parse an identity from the first 21 bytes of data."""
        data = bytes(data)
        if len(data) < _AUTH_CONTENT_SIZE + 1:
            raise ValueError("Not enough bytes to parse")
        try:
            flag = IdentityFlag(data[0])
        except ValueError as exc:
            raise ValueError(
                f"can't parse {data[0]} to valid IdentityFlag."
            ) from exc
        return cls(flag, data[1 : _AUTH_CONTENT_SIZE + 1])

    def format(self, alternate: bool = False) -> str:
        """Render as ``(flag,content)`` in hex, with 0x prefixes if alternate."""
        prefix = "0x" if alternate else ""
        return f"({prefix}{int(self.flag):02x},{prefix}{self.auth_content.hex()})"

    def __str__(self) -> str:
        return self.format()


class OmniLockFlags(IntFlag):
    """Which optional parts are present in the omnilock args."""

    ADMIN = 1
    ACP = 1 << 1
    TIME_LOCK = 1 << 2
    SUPPLY = 1 << 3


@dataclass(frozen=True)
class InfoCellData:
    """The data held by the info cell of the supply mode."""

    current_supply: int
    max_supply: int
    sudt_script_hash: bytes
    other_data: bytes = b""
    version: int = 0

    def __post_init__(self) -> None:
        for name in ("current_supply", "max_supply"):
            value = getattr(self, name)
            if not 0 <= value <= _U128_MAX:
                raise ValueError(f"{name} out of range: {value}")
        if not 0 <= self.version <= 0xFF:
            raise ValueError(f"version out of range: {self.version}")
        object.__setattr__(
            self,
            "sudt_script_hash",
            _fixed(self.sudt_script_hash, _HASH_SIZE, "sudt script hash"),
        )
        object.__setattr__(self, "other_data", bytes(self.other_data))

    def pack(self) -> bytes:
        """Serialize for storage in the cell data."""
        return (
            bytes([self.version])
            + self.current_supply.to_bytes(16, "little")
            + self.max_supply.to_bytes(16, "little")
            + self.sudt_script_hash
            + self.other_data
        )


@dataclass
class AdminConfig:
    """The administrator mode configuration."""

    rc_type_id: bytes = bytes(_HASH_SIZE)
    proofs: tuple[SmtProofEntry, ...] = ()
    auth: Identity = field(default_factory=Identity)
    multisig_config: MultisigConfig | None = None
    rce_in_input: bool = False

    def __post_init__(self) -> None:
        self.rc_type_id = _fixed(self.rc_type_id, _HASH_SIZE, "rc type id")
        self.proofs = tuple(self.proofs)


@dataclass(frozen=True)
class OmniLockAcpConfig:
    """Minimum transfer amounts as powers of ten; 0 means no minimum."""

    ckb_minimum: int = 0
    udt_minimum: int = 0

    def __post_init__(self) -> None:
        for name in ("ckb_minimum", "udt_minimum"):
            value = getattr(self, name)
            if not 0 <= value <= 0xFF:
                raise ValueError(f"{name} must fit in one byte, got {value}")


@dataclass(frozen=True)
class SinceSource:
    """Where the since value comes from: an offset in lock args or a fixed value."""

    value: int = 0
    lock_args_offset: int | None = None


@dataclass
class OmniLockConfig:
    """The full omnilock configuration behind a lock script's args."""

    id: Identity
    multisig_config: MultisigConfig | None = None
    omni_lock_flags: OmniLockFlags = OmniLockFlags(0)
    admin_config: AdminConfig | None = None
    acp_config: OmniLockAcpConfig | None = None
    time_lock_config: int | None = None
    info_cell: bytes | None = None

    @classmethod
    def _from_flag(cls, flag: IdentityFlag, auth_content: bytes) -> OmniLockConfig:
        if flag not in (
            IdentityFlag.PUBKEY_HASH,
            IdentityFlag.ETHEREUM,
            IdentityFlag.OWNER_LOCK,
        ):
            auth_content = bytes(_AUTH_CONTENT_SIZE)
        return cls(id=Identity(flag, auth_content))

    @classmethod
    def new_pubkey_hash(cls, lock_arg: bytes) -> OmniLockConfig:
        """A pubkey hash omnilock for the given blake160 public key hash."""
        return cls._from_flag(IdentityFlag.PUBKEY_HASH, lock_arg)

    @classmethod
    def new_multisig(cls, multisig_config: MultisigConfig) -> OmniLockConfig:
        """A multisig omnilock for the given configuration."""
        return cls(
            id=Identity.new_multisig(multisig_config),
            multisig_config=multisig_config,
        )

    @classmethod
    def new_ethereum(cls, pubkey_hash: bytes) -> OmniLockConfig:
        """An Ethereum style omnilock for the given keccak160 public key hash."""
        return cls._from_flag(IdentityFlag.ETHEREUM, pubkey_hash)

    @classmethod
    def new_ownerlock(cls, script_hash: bytes) -> OmniLockConfig:
        """An owner lock omnilock for the given blake160 script hash."""
        return cls._from_flag(IdentityFlag.OWNER_LOCK, script_hash)

    def set_admin_config(self, admin_config: AdminConfig) -> None:
        """Set the admin configuration and the ADMIN flag."""
        self.omni_lock_flags |= OmniLockFlags.ADMIN
        self.admin_config = admin_config

    def clear_admin_config(self) -> None:
        """Remove the admin configuration and the ADMIN flag."""
        self.omni_lock_flags &= ~OmniLockFlags.ADMIN
        self.admin_config = None

    def set_acp_config(self, acp_config: OmniLockAcpConfig) -> None:
        """Set the anyone-can-pay configuration and the ACP flag."""
        self.omni_lock_flags |= OmniLockFlags.ACP
        self.acp_config = acp_config

    def clear_acp_config(self) -> None:
        """Remove the anyone-can-pay configuration and the ACP flag."""
        self.omni_lock_flags &= ~OmniLockFlags.ACP
        self.acp_config = None

    def set_time_lock_config(self, since: int) -> None:
        """Set the raw since value and the TIME_LOCK flag."""
        if not 0 <= since <= _U64_MAX:
            raise ValueError(f"since out of range: {since}")
        self.omni_lock_flags |= OmniLockFlags.TIME_LOCK
        self.time_lock_config = since

    def clear_time_lock_config(self) -> None:
        """Remove the since value and the TIME_LOCK flag."""
        self.omni_lock_flags &= ~OmniLockFlags.TIME_LOCK
        self.time_lock_config = None

    def set_info_cell(self, type_script_hash: bytes) -> None:
        """Set the info cell type script hash and the SUPPLY flag."""
        self.omni_lock_flags |= OmniLockFlags.SUPPLY
        self.info_cell = _fixed(type_script_hash, _HASH_SIZE, "type script hash")

    def clear_info_cell(self) -> None:
        """Remove the info cell and the SUPPLY flag."""
        self.omni_lock_flags &= ~OmniLockFlags.SUPPLY
        self.info_cell = None

    def use_rc(self) -> bool:
        """Whether an admin (RC) configuration is present."""
        return self.admin_config is not None

    def build_args(self) -> bytes:
        """Serialize the lock script args."""
        parts = [self.id.to_bytes(), bytes([int(self.omni_lock_flags)])]
        if self.admin_config is not None:
            parts.append(self.admin_config.rc_type_id)
        if self.acp_config is not None:
            parts.append(
                bytes([self.acp_config.ckb_minimum, self.acp_config.udt_minimum])
            )
        if self.time_lock_config is not None:
            parts.append(self.time_lock_config.to_bytes(8, "little"))
        if self.info_cell is not None:
            parts.append(self.info_cell)
        return b"".join(parts)

    def get_args_len(self) -> int:
        """The expected length of the lock script args."""
        length = _BASE_ARGS_LEN
        if OmniLockFlags.ADMIN in self.omni_lock_flags:
            length += 32
        if OmniLockFlags.ACP in self.omni_lock_flags:
            length += 2
        if OmniLockFlags.TIME_LOCK in self.omni_lock_flags:
            length += 8
        if OmniLockFlags.SUPPLY in self.omni_lock_flags:
            length += 32
        return length

    def get_since_source(self) -> SinceSource:
        """Where the time lock since value is found."""
        if OmniLockFlags.TIME_LOCK not in self.omni_lock_flags:
            return SinceSource(value=0)
        offset = _BASE_ARGS_LEN
        if OmniLockFlags.ADMIN in self.omni_lock_flags:
            offset += 32
        if OmniLockFlags.ACP in self.omni_lock_flags:
            offset += 2
        return SinceSource(lock_args_offset=offset)

    def is_pubkey_hash(self) -> bool:
        """Whether the identity is a pubkey hash."""
        return self.id.flag is IdentityFlag.PUBKEY_HASH

    def is_ethereum(self) -> bool:
        """Whether the identity is an Ethereum public key hash."""
        return self.id.flag is IdentityFlag.ETHEREUM

    def is_multisig(self) -> bool:
        """Whether the identity is a multisig hash."""
        return self.id.flag is IdentityFlag.MULTISIG

    def is_ownerlock(self) -> bool:
        """Whether the identity is an owner lock hash."""
        return self.id.flag is IdentityFlag.OWNER_LOCK

    def _multisig_for(self, unlock_mode: OmniUnlockMode) -> MultisigConfig:
        if unlock_mode is OmniUnlockMode.ADMIN:
            if self.admin_config is None:
                raise NoAdminConfigError()
            config = self.admin_config.multisig_config
        else:
            config = self.multisig_config
        if config is None:
            raise NoMultisigConfigError()
        return config

    def placeholder_witness_lock(self, unlock_mode: OmniUnlockMode) -> bytes:
        """A serialized witness lock with zeroed room for signatures."""
        flag = self.id.flag
        if flag in (IdentityFlag.PUBKEY_HASH, IdentityFlag.ETHEREUM):
            signature: bytes | None = bytes(_SIGNATURE_SIZE)
        elif flag is IdentityFlag.MULTISIG:
            signature = self._multisig_for(unlock_mode).placeholder_lock()
        elif flag is IdentityFlag.OWNER_LOCK:
            signature = None
        else:
            raise ConfigError(f"placeholder witness lock not supported for {flag.name}")

        omni_identity = None
        if unlock_mode is OmniUnlockMode.ADMIN:
            if self.admin_config is None:
                raise NoAdminConfigError()
            omni_identity = OmniIdentity(
                identity=self.admin_config.auth.to_bytes(),
                proofs=self.admin_config.proofs,
            )
        return OmniLockWitnessLock(
            signature=signature, omni_identity=omni_identity
        ).to_bytes()

    def zero_lock(self, unlock_mode: OmniUnlockMode) -> bytes:
        """All zero bytes of the placeholder witness lock's length."""
        return bytes(len(self.placeholder_witness_lock(unlock_mode)))

    def placeholder_witness(self, unlock_mode: OmniUnlockMode) -> WitnessArgs:
        """A witness holding the placeholder lock, where one is needed."""
        flag = self.id.flag
        if flag in (
            IdentityFlag.PUBKEY_HASH,
            IdentityFlag.ETHEREUM,
            IdentityFlag.MULTISIG,
        ):
            return WitnessArgs(lock=self.placeholder_witness_lock(unlock_mode))
        if flag is IdentityFlag.OWNER_LOCK:
            if self.admin_config is not None:
                return WitnessArgs(lock=self.placeholder_witness_lock(unlock_mode))
            return WitnessArgs()
        raise ConfigError(f"placeholder witness not supported for {flag.name}")