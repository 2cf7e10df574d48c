"""
Hashing Module - Black Box Interface

Purpose: Turn a plaintext password into the value Argo CD stores
Interface: create_hasher(), derive_password_hash(), HashedPassword
Hidden: bcrypt backend choice, identifier rewriting, base64 encoding
"""

from .hasher import (
    BcryptHasher,
    HashedPassword,
    HtpasswdHasher,
    PasswordHasher,
    create_hasher,
    decode_hash,
    derive_password_hash,
    encode_for_storage,
    encode_hash,
    hash_for_argocd,
    normalize_identifier,
    verify_password,
)

__all__ = [
    "BcryptHasher",
    "HashedPassword",
    "HtpasswdHasher",
    "PasswordHasher",
    "create_hasher",
    "decode_hash",
    "derive_password_hash",
    "encode_for_storage",
    "encode_hash",
    "hash_for_argocd",
    "normalize_identifier",
    "verify_password",
]
