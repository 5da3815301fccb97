"""Hashing, Molecule, SMT, multisig and Omnilock helpers, script signers and unlockers for CKB transactions."""

__version__ = "0.1.0"