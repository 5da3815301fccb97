# ckbkit

Building blocks for working with CKB transactions in Python: hashing
helpers, DAO and cellbase-maturity arithmetic, Molecule serialization,
sparse Merkle tree proofs, multisig and Omnilock configuration, script
signers and script unlockers.

The only runtime dependency is `pycryptodome` (for keccak). The `test`
extra adds `pytest` for running the test suite.

## Modules

- `ckbkit.hashing` – `blake2b_256` (CKB personalization), `blake160`,
  `keccak160`, `convert_keccak256_hash` (Ethereum signed-message hash),
  `serialize_signature` (64-byte compact signature plus recovery id into 65
  bytes) and `zeroize_slice` (overwrites a `bytearray` with zeros).
- `ckbkit.chain` – `EpochNumberWithFraction` (with `from_full_value`,
  `full_value`, `to_fraction`), `EpochInfo`, `Header`, `LiveCell`, the
  abstract `ChainRpc` node interface, `pack_dao_data` / `extract_dao_data`,
  `get_max_mature_number`, `is_mature`, `minimal_unlock_point` and
  `calculate_dao_maximum_withdraw4`. `MaturityError` is raised when the
  needed epoch cannot be fetched.
- `ckbkit.smt` – `SparseMerkleTree` (`update`, `get`, `root`,
  `compiled_proof`) and `verify_compiled_proof`; `SmtError` for empty key
  sets and malformed proofs.
- `ckbkit.molecule` – Molecule encoding helpers (`pack_bytes`,
  `pack_table`, `pack_fixvec`, `pack_dynvec` and their `unpack_*`
  counterparts) and the structures `WitnessArgs`, `SmtProofEntry`,
  `OmniIdentity`, `OmniLockWitnessLock` and `RcRule`, plus
  `pack_rc_data_rule`, `pack_rc_data_cell_vec` and `unpack_rc_data`.
  Malformed input raises `MoleculeError`.
- `ckbkit.multisig` – `MultisigConfig` (validated on construction,
  `hash160`, `to_witness_data`, `placeholder_lock`, `placeholder_witness`)
  and `OmniUnlockMode`.
- `ckbkit.transaction` – `Script`, `OutPoint`, `CellInput`, `CellOutput`,
  `CellDep`, `Transaction` (`raw_bytes`, `hash`, `with_witnesses`) and
  `ScriptGroup`, with `ScriptHashType` and `DepType`.
- `ckbkit.rc_data` – `RcRuleDataBuilder` and `RcRuleVecBuilder` for
  Omnilock administrator (RC) rules, with `ListType`, `Mask` and
  `ProofWithMask`.
- `ckbkit.omni_lock` – `IdentityFlag`, `Identity`, `OmniLockFlags`,
  `InfoCellData`, `AdminConfig`, `OmniLockAcpConfig`, `SinceSource` and
  `OmniLockConfig` (lock args, args length, since source, placeholder
  witnesses).
- `ckbkit.signer` – the abstract `Signer` interface, `generate_message` and
  the script signers `SecpSighashScriptSigner`, `SecpMultisigScriptSigner`,
  `AcpScriptSigner`, `ChequeScriptSigner` (with `ChequeAction`) and
  `OmniLockScriptSigner`.
- `ckbkit.unlocker` – `ScriptUnlocker`, the abstract
  `TransactionDependencyProvider`, `fill_witness_lock`,
  `reset_witness_lock`, `acp_is_unlocked`, and `SecpSighashUnlocker`,
  `SecpMultisigUnlocker`, `AcpUnlocker`.
- `ckbkit.cheque` – `ChequeUnlocker`.
- `ckbkit.omni_unlocker` – `OmniLockUnlocker`.

## Examples

```python
from ckbkit.chain import EpochNumberWithFraction, Header, minimal_unlock_point

deposit = Header(epoch=EpochNumberWithFraction(5, 5, 1000))
prepare = Header(epoch=EpochNumberWithFraction(185, 6, 1000))
print(minimal_unlock_point(deposit, prepare))  # 365(5/1000)
```

```python
from ckbkit.hashing import blake160
from ckbkit.omni_lock import OmniLockConfig

config = OmniLockConfig.new_pubkey_hash(blake160(b"public key bytes"))
args = config.build_args()
assert len(args) == config.get_args_len()
```

## What this package does not do

- It holds no private keys and computes no secp256k1 signatures. Signing
  goes through a `ckbkit.signer.Signer` that you supply: `match_id` says
  which identifiers it can sign for and `sign` returns the 65-byte
  signature.
- It does not talk to a node. `ckbkit.chain.ChainRpc` and
  `ckbkit.unlocker.TransactionDependencyProvider` are abstract interfaces
  you implement over your own RPC client or cell store.
- It does not collect cells, balance capacity, pay fees or run scripts to
  verify a transaction; it only fills placeholder witnesses and puts
  signatures into them.
- Omnilock identities other than pubkey hash, Ethereum, multisig and owner
  lock are not supported for signing or placeholders; a `ConfigError` is
  raised for them.