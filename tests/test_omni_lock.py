from itertools import cycle, islice

import pytest

from ckbkit.molecule import (
    OmniLockWitnessLock,
    SmtProofEntry,
    WitnessArgs,
    pack_smt_proof_entries,
    unpack_smt_proof_entries,
)
from ckbkit.multisig import MultisigConfig, OmniUnlockMode
from ckbkit.omni_lock import (
    AdminConfig,
    ConfigError,
    Identity,
    IdentityFlag,
    InfoCellData,
    NoAdminConfigError,
    NoMultisigConfigError,
    OmniLockAcpConfig,
    OmniLockConfig,
    OmniLockFlags,
)

AUTH = bytes(range(20))


def _multisig():
    return MultisigConfig((bytes([1]) * 20, bytes([2]) * 20), 0, 1)


def test_identity_round_trip():
    ident = Identity.new_ethereum(AUTH)
    data = ident.to_bytes()
    assert data == bytes([1]) + AUTH
    assert Identity.from_bytes(data) == ident


def test_identity_from_short_bytes():
    with pytest.raises(ValueError):
        Identity.from_bytes(bytes(20))


def test_identity_from_bad_flag():
    with pytest.raises(ValueError):
        Identity.from_bytes(bytes([7]) + AUTH)


def test_identity_smt_key():
    key = Identity.new_ownerlock(AUTH).to_smt_key()
    assert len(key) == 32
    assert key[0] == 0xFC
    assert key[1:21] == AUTH
    assert key[21:] == bytes(11)


def test_identity_format():
    ident = Identity.new_pubkey_hash(AUTH)
    assert ident.format() == "(00," + AUTH.hex() + ")"
    assert ident.format(True) == "(0x00,0x" + AUTH.hex() + ")"
    assert str(ident) == ident.format()


def test_identity_multisig():
    cfg = _multisig()
    ident = Identity.new_multisig(cfg)
    assert ident.flag is IdentityFlag.MULTISIG
    assert ident.auth_content == cfg.hash160()


def test_info_cell_pack():
    data = InfoCellData(1, 2, bytes([9]) * 32, b"xy").pack()
    assert len(data) == 67
    assert data[0] == 0
    assert data[1:17] == (1).to_bytes(16, "little")
    assert data[17:33] == (2).to_bytes(16, "little")
    assert data[33:65] == bytes([9]) * 32
    assert data[65:] == b"xy"


def test_info_cell_rejects_large_supply():
    with pytest.raises(ValueError):
        InfoCellData(1 << 128, 0, bytes(32))


def test_build_args_full():
    cfg = OmniLockConfig.new_pubkey_hash(AUTH)
    cfg.set_admin_config(AdminConfig(rc_type_id=bytes([3]) * 32))
    cfg.set_acp_config(OmniLockAcpConfig(4, 5))
    cfg.set_time_lock_config(0x0102)
    cfg.set_info_cell(bytes([6]) * 32)
    args = cfg.build_args()
    assert len(args) == cfg.get_args_len() == 22 + 32 + 2 + 8 + 32
    assert args[21] == 0x0F
    assert args[22:54] == bytes([3]) * 32
    assert args[54:56] == bytes([4, 5])
    assert args[56:64] == bytes([2, 1, 0, 0, 0, 0, 0, 0])
    assert args[64:] == bytes([6]) * 32
    assert cfg.use_rc()


def test_clear_configs():
    cfg = OmniLockConfig.new_pubkey_hash(AUTH)
    cfg.set_admin_config(AdminConfig())
    cfg.set_acp_config(OmniLockAcpConfig())
    cfg.clear_admin_config()
    cfg.clear_acp_config()
    assert cfg.omni_lock_flags == OmniLockFlags(0)
    assert cfg.build_args() == bytes([0]) + AUTH + bytes([0])
    assert not cfg.use_rc()


def test_since_source():
    cfg = OmniLockConfig.new_pubkey_hash(AUTH)
    assert cfg.get_since_source().value == 0
    assert cfg.get_since_source().lock_args_offset is None
    cfg.set_time_lock_config(1)
    assert cfg.get_since_source().lock_args_offset == 22
    cfg.set_admin_config(AdminConfig())
    cfg.set_acp_config(OmniLockAcpConfig())
    assert cfg.get_since_source().lock_args_offset == 56


def test_type_predicates():
    assert OmniLockConfig.new_pubkey_hash(AUTH).is_pubkey_hash()
    assert OmniLockConfig.new_ethereum(AUTH).is_ethereum()
    assert OmniLockConfig.new_ownerlock(AUTH).is_ownerlock()
    cfg = OmniLockConfig.new_multisig(_multisig())
    assert cfg.is_multisig()
    assert cfg.id.auth_content == _multisig().hash160()


def test_placeholder_pubkey_hash():
    cfg = OmniLockConfig.new_pubkey_hash(AUTH)
    lock = OmniLockWitnessLock.from_bytes(
        cfg.placeholder_witness_lock(OmniUnlockMode.NORMAL)
    )
    assert lock.signature == bytes(65)
    assert lock.omni_identity is None


def test_placeholder_multisig():
    msig = _multisig()
    cfg = OmniLockConfig.new_multisig(msig)
    lock = OmniLockWitnessLock.from_bytes(
        cfg.placeholder_witness_lock(OmniUnlockMode.NORMAL)
    )
    assert lock.signature == msig.placeholder_lock()


def test_placeholder_multisig_missing_config():
    cfg = OmniLockConfig(id=Identity(IdentityFlag.MULTISIG, AUTH))
    with pytest.raises(NoMultisigConfigError):
        cfg.placeholder_witness_lock(OmniUnlockMode.NORMAL)


def test_placeholder_admin_missing_config():
    cfg = OmniLockConfig.new_pubkey_hash(AUTH)
    with pytest.raises(NoAdminConfigError):
        cfg.placeholder_witness_lock(OmniUnlockMode.ADMIN)


def test_placeholder_admin_identity():
    auth = Identity.new_pubkey_hash(bytes([8]) * 20)
    proofs = (SmtProofEntry(mask=1, proof=b"\x4c\x4f\x00"),)
    cfg = OmniLockConfig.new_pubkey_hash(AUTH)
    cfg.set_admin_config(AdminConfig(proofs=proofs, auth=auth))
    lock = OmniLockWitnessLock.from_bytes(
        cfg.placeholder_witness_lock(OmniUnlockMode.ADMIN)
    )
    assert lock.omni_identity.identity == auth.to_bytes()
    assert lock.omni_identity.proofs == proofs


def test_zero_lock():
    cfg = OmniLockConfig.new_multisig(_multisig())
    zero = cfg.zero_lock(OmniUnlockMode.NORMAL)
    assert zero == bytes(len(cfg.placeholder_witness_lock(OmniUnlockMode.NORMAL)))


def test_placeholder_witness_ownerlock():
    cfg = OmniLockConfig.new_ownerlock(AUTH)
    assert cfg.placeholder_witness(OmniUnlockMode.NORMAL) == WitnessArgs()
    cfg.set_admin_config(AdminConfig())
    witness = cfg.placeholder_witness(OmniUnlockMode.ADMIN)
    assert witness.lock == cfg.placeholder_witness_lock(OmniUnlockMode.ADMIN)


def test_unsupported_flag():
    cfg = OmniLockConfig(id=Identity(IdentityFlag.EOS, AUTH))
    with pytest.raises(ConfigError):
        cfg.placeholder_witness(OmniUnlockMode.NORMAL)


def test_adminconfig_proofs_round_trip():
    counter = cycle(range(256))
    entries = [
        SmtProofEntry(mask=0, proof=bytes(islice(counter, 8))) for _ in range(2)
    ]
    type_id = bytes.fromhex("00" * 16 + "1234567890abcdeffedcba0987654321")
    cfg = AdminConfig(rc_type_id=type_id, proofs=entries)
    restored = AdminConfig(
        rc_type_id=cfg.rc_type_id,
        proofs=unpack_smt_proof_entries(pack_smt_proof_entries(cfg.proofs)),
    )
    assert restored == cfg
    assert restored.proofs[1].proof == bytes(range(8, 16))


def test_config_error_message():
    assert (
        str(NoAdminConfigError())
        == "there is no admin configuration in the OmniLockConfig"
    )