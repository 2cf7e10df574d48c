"""
Secret Module - Black Box Interface

Purpose: Edit the password field of the argocd-secret manifest
Interface: SecretDocument, rewrite_secret_file(), validate_username()
Hidden: YAML parsing and serialization details
"""

from .document import (
    FieldChange,
    SecretDocument,
    password_key,
    rewrite_secret_file,
    validate_username,
)

__all__ = [
    "FieldChange",
    "SecretDocument",
    "password_key",
    "rewrite_secret_file",
    "validate_username",
]
