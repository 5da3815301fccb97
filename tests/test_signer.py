import pytest

from ckbkit.hashing import blake2b_256, convert_keccak256_hash
from ckbkit.molecule import OmniLockWitnessLock, WitnessArgs
from ckbkit.multisig import MultisigConfig, OmniUnlockMode
from ckbkit.omni_lock import NoAdminConfigError, OmniLockConfig
from ckbkit.signer import (
    AcpScriptSigner,
    ChequeAction,
    ChequeScriptSigner,
    InvalidWitnessArgsError,
    OmniLockScriptSigner,
    ScriptSignError,
    SecpMultisigScriptSigner,
    SecpSighashScriptSigner,
    Signer,
    TooManySignaturesError,
    WitnessNotEnoughError,
    generate_message,
)
from ckbkit.transaction import CellInput, OutPoint, Script, ScriptGroup, Transaction

ADDR_A = bytes([0xA1]) * 20
ADDR_B = bytes([0xB2]) * 20
ADDR_C = bytes([0xC3]) * 20


class FakeSigner(Signer):
    def __init__(self, *ids):
        self.ids = {bytes(i) for i in ids}
        self.calls = []

    def match_id(self, id):
        return bytes(id) in self.ids

    def sign(self, id, message, recoverable, tx):
        signature = blake2b_256(bytes(id) + bytes(message)) * 2 + b"\x01"
        self.calls.append((bytes(id), bytes(message), signature))
        return signature


def make_tx(input_count=1, witnesses=()):
    inputs = tuple(
        CellInput(OutPoint(bytes([i + 1]) * 32, i)) for i in range(input_count)
    )
    return Transaction(inputs=inputs, witnesses=witnesses)


def group(args, *indices):
    return ScriptGroup(script=Script(args=args), input_indices=indices or (0,))


def lock_of(tx, idx=0):
    return WitnessArgs.from_bytes(tx.witnesses[idx]).lock


def test_witness_not_enough_message():
    assert str(WitnessNotEnoughError()) == (
        "witness count in current transaction not enough to cover current script group"
    )


def test_generate_message_requires_witness():
    with pytest.raises(WitnessNotEnoughError):
        generate_message(make_tx(), group(ADDR_A), bytes(65))


def test_generate_message_ignores_existing_lock():
    tx1 = make_tx(witnesses=(WitnessArgs(lock=b"a").to_bytes(),))
    tx2 = make_tx(witnesses=(WitnessArgs(lock=b"bb").to_bytes(),))
    msg1 = generate_message(tx1, group(ADDR_A), bytes(65))
    assert len(msg1) == 32
    assert msg1 == generate_message(tx2, group(ADDR_A), bytes(65))


def test_generate_message_depends_on_zero_lock():
    tx = make_tx(witnesses=(b"",))
    assert generate_message(tx, group(ADDR_A), bytes(65)) != generate_message(
        tx, group(ADDR_A), bytes(64)
    )


def test_generate_message_covers_outer_witnesses():
    tx1 = make_tx(witnesses=(b"", b"extra"))
    tx2 = make_tx(witnesses=(b"", b"other"))
    assert generate_message(tx1, group(ADDR_A), bytes(65)) != generate_message(
        tx2, group(ADDR_A), bytes(65)
    )


def test_generate_message_covers_group_witnesses_only():
    tx1 = make_tx(2, witnesses=(b"", b"one"))
    tx2 = make_tx(2, witnesses=(b"", b"two"))
    single = group(ADDR_A, 0)
    both = group(ADDR_A, 0, 1)
    assert generate_message(tx1, single, bytes(65)) == generate_message(
        tx2, single, bytes(65)
    )
    assert generate_message(tx1, both, bytes(65)) != generate_message(
        tx2, both, bytes(65)
    )


def test_sighash_match_args():
    script_signer = SecpSighashScriptSigner(FakeSigner(ADDR_A))
    assert script_signer.match_args(ADDR_A) is True
    assert script_signer.match_args(ADDR_B) is False
    assert script_signer.match_args(ADDR_A + b"\x00") is False


def test_sighash_sign_puts_signature_into_lock():
    fake = FakeSigner(ADDR_A)
    tx = make_tx(witnesses=(WitnessArgs(input_type=b"keep").to_bytes(),))
    signed = SecpSighashScriptSigner(fake).sign_tx(tx, group(ADDR_A))
    witness = WitnessArgs.from_bytes(signed.witnesses[0])
    owner, message, signature = fake.calls[-1]
    assert owner == ADDR_A
    assert message == generate_message(tx, group(ADDR_A), bytes(65))
    assert witness.lock == signature
    assert witness.input_type == b"keep"


def test_sighash_sign_pads_witnesses():
    fake = FakeSigner(ADDR_A)
    tx = make_tx(2)
    signed = SecpSighashScriptSigner(fake).sign_tx(tx, group(ADDR_A, 1))
    assert len(signed.witnesses) == 2
    assert signed.witnesses[0] == b""
    assert lock_of(signed, 1) == fake.calls[-1][2]


def test_sighash_sign_rejects_bad_witness():
    tx = make_tx(witnesses=(b"\x01\x02",))
    with pytest.raises(InvalidWitnessArgsError):
        SecpSighashScriptSigner(FakeSigner(ADDR_A)).sign_tx(tx, group(ADDR_A))


def multisig_config():
    return MultisigConfig((ADDR_A, ADDR_B, ADDR_C), 0, 2)


def test_multisig_match_args():
    config = multisig_config()
    assert SecpMultisigScriptSigner(FakeSigner(ADDR_A), config).match_args(
        config.hash160()
    )
    assert not SecpMultisigScriptSigner(FakeSigner(bytes(20)), config).match_args(
        config.hash160()
    )
    assert not SecpMultisigScriptSigner(FakeSigner(ADDR_A), config).match_args(bytes(20))


def test_multisig_sign_fills_slots_in_order():
    config = multisig_config()
    fake = FakeSigner(ADDR_A, ADDR_C)
    tx = make_tx(witnesses=(b"",))
    signed = SecpMultisigScriptSigner(fake, config).sign_tx(tx, group(config.hash160()))
    lock = lock_of(signed)
    data = config.to_witness_data()
    sig_a = next(c[2] for c in fake.calls if c[0] == ADDR_A)
    sig_c = next(c[2] for c in fake.calls if c[0] == ADDR_C)
    assert lock[: len(data)] == data
    assert lock[len(data) : len(data) + 65] == sig_a
    assert lock[len(data) + 65 :] == sig_c


def test_multisig_sign_is_idempotent():
    config = multisig_config()
    script_signer = SecpMultisigScriptSigner(FakeSigner(ADDR_A), config)
    once = script_signer.sign_tx(make_tx(witnesses=(b"",)), group(config.hash160()))
    twice = script_signer.sign_tx(once, group(config.hash160()))
    assert twice == once


def test_multisig_too_many_signatures():
    config = multisig_config()
    script_signer = SecpMultisigScriptSigner(FakeSigner(ADDR_A, ADDR_B, ADDR_C), config)
    with pytest.raises(TooManySignaturesError):
        script_signer.sign_tx(make_tx(witnesses=(b"",)), group(config.hash160()))


def test_multisig_wrong_lock_length():
    config = multisig_config()
    script_signer = SecpMultisigScriptSigner(FakeSigner(ADDR_A), config)
    tx = make_tx(witnesses=(WitnessArgs(lock=bytes(10)).to_bytes(),))
    with pytest.raises(ScriptSignError, match="invalid witness lock field length"):
        script_signer.sign_tx(tx, group(config.hash160()))


@pytest.mark.parametrize(
    "args, expected",
    [
        (ADDR_A, True),
        (ADDR_A + b"\x01", True),
        (ADDR_A + b"\x01\x02", True),
        (ADDR_A + b"\x01\x02\x03", False),
        (ADDR_A[:19], False),
        (ADDR_B, False),
    ],
)
def test_acp_match_args(args, expected):
    assert AcpScriptSigner(FakeSigner(ADDR_A)).match_args(args) is expected


def test_acp_sign_uses_first_20_bytes():
    fake = FakeSigner(ADDR_A)
    tx = make_tx(witnesses=(b"",))
    signed = AcpScriptSigner(fake).sign_tx(tx, group(ADDR_A + b"\x02"))
    assert fake.calls[-1][0] == ADDR_A
    assert lock_of(signed) == fake.calls[-1][2]


def test_cheque_owner_id():
    args = ADDR_A + ADDR_B
    claim = ChequeScriptSigner(FakeSigner(ADDR_A), ChequeAction.CLAIM)
    withdraw = ChequeScriptSigner(FakeSigner(ADDR_B), ChequeAction.WITHDRAW)
    assert claim.owner_id(args) == ADDR_A
    assert withdraw.owner_id(args) == ADDR_B
    assert claim.owner_id(args[:39]) == b""
    assert claim.match_args(args) is True
    assert withdraw.match_args(args) is True
    assert ChequeScriptSigner(FakeSigner(ADDR_A), ChequeAction.WITHDRAW).match_args(
        args
    ) is False


def test_cheque_sign_withdraw():
    fake = FakeSigner(ADDR_B)
    signed = ChequeScriptSigner(fake, ChequeAction.WITHDRAW).sign_tx(
        make_tx(witnesses=(b"",)), group(ADDR_A + ADDR_B)
    )
    assert fake.calls[-1][0] == ADDR_B
    assert lock_of(signed) == fake.calls[-1][2]


def test_build_witness_lock():
    signature = bytes([9]) * 65
    assert OmniLockScriptSigner.build_witness_lock(None, signature) == (
        OmniLockWitnessLock(signature=signature).to_bytes()
    )
    existing = OmniLockWitnessLock(signature=bytes(65), preimage=b"pre").to_bytes()
    rebuilt = OmniLockWitnessLock.from_bytes(
        OmniLockScriptSigner.build_witness_lock(existing, signature)
    )
    assert rebuilt.signature == signature
    assert rebuilt.preimage == b"pre"
    with pytest.raises(InvalidWitnessArgsError):
        OmniLockScriptSigner.build_witness_lock(b"bad", signature)


def test_omni_pubkey_hash_match_and_sign():
    config = OmniLockConfig.new_pubkey_hash(ADDR_A)
    fake = FakeSigner(ADDR_A)
    script_signer = OmniLockScriptSigner(fake, config, OmniUnlockMode.NORMAL)
    args = config.build_args()
    assert script_signer.match_args(args) is True
    assert script_signer.match_args(args + b"\x00") is False

    tx = make_tx(witnesses=(b"",))
    signed = script_signer.sign_tx(tx, group(args))
    witness_lock = OmniLockWitnessLock.from_bytes(lock_of(signed))
    assert witness_lock.signature == fake.calls[-1][2]
    assert fake.calls[-1][1] == generate_message(
        tx, group(args), config.zero_lock(OmniUnlockMode.NORMAL)
    )


def test_omni_ethereum_signs_converted_message():
    config = OmniLockConfig.new_ethereum(ADDR_B)
    fake = FakeSigner(ADDR_B)
    tx = make_tx(witnesses=(b"",))
    args = config.build_args()
    OmniLockScriptSigner(fake, config).sign_tx(tx, group(args))
    expected = convert_keccak256_hash(
        generate_message(tx, group(args), config.zero_lock(OmniUnlockMode.NORMAL))
    )
    assert fake.calls[-1][1] == expected


def test_omni_multisig_sign():
    mconfig = multisig_config()
    config = OmniLockConfig.new_multisig(mconfig)
    fake = FakeSigner(ADDR_B)
    script_signer = OmniLockScriptSigner(fake, config)
    args = config.build_args()
    assert script_signer.match_args(args) is True
    signed = script_signer.sign_tx(make_tx(witnesses=(b"",)), group(args))
    signature = OmniLockWitnessLock.from_bytes(lock_of(signed)).signature
    data = mconfig.to_witness_data()
    assert signature[: len(data)] == data
    assert signature[len(data) : len(data) + 65] == fake.calls[-1][2]
    assert signature[len(data) + 65 :] == bytes(65)


def test_omni_ownerlock_sign_returns_tx_unchanged():
    config = OmniLockConfig.new_ownerlock(ADDR_C)
    tx = make_tx(witnesses=(b"",))
    assert OmniLockScriptSigner(FakeSigner(), config).sign_tx(
        tx, group(config.build_args())
    ) == tx


def test_omni_admin_without_admin_config():
    config = OmniLockConfig.new_pubkey_hash(ADDR_A)
    script_signer = OmniLockScriptSigner(FakeSigner(ADDR_A), config, OmniUnlockMode.ADMIN)
    assert script_signer.match_args(config.build_args()) is False
    with pytest.raises(NoAdminConfigError):
        script_signer.sign_tx(make_tx(witnesses=(b"",)), group(config.build_args()))