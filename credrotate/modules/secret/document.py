"""
Structured editing of the argocd-secret document.

The document is parsed into plain Python mappings, the one password key is
set, and the result is dumped back as block-style YAML. Every other key is
carried through unchanged and in its original order.
"""

import logging
import re
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from credrotate.exceptions import SecretDocumentError

logger = logging.getLogger("credrotate.secret")

# Valid Secret data keys: alphanumerics, '-', '_' and '.'
USERNAME_PATTERN = re.compile(r"[-._a-zA-Z0-9]+")
MAX_KEY_LENGTH = 253
PASSWORD_SUFFIX = ".password"
YAML_LINE_WIDTH = 1 << 30

_TIMESTAMP_TAG = "tag:yaml.org,2002:timestamp"


class _SecretLoader(yaml.SafeLoader):
    """SafeLoader that keeps timestamps as the strings they were written as."""


_SecretLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != _TIMESTAMP_TAG]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


class FieldChange(Enum):
    """How the password key ended up in the document."""

    INSERTED = "inserted"
    REPLACED = "replaced"


def validate_username(username: str) -> str:
    """
    Check that ``<username>.password`` is a legal Secret data key.

    Raises:
        SecretDocumentError: if the username cannot form a valid key
    """
    if not username or not USERNAME_PATTERN.fullmatch(username):
        raise SecretDocumentError(
            f"Invalid username '{username}': only letters, digits, '-', '_' and '.' are allowed"
        )
    if len(username) + len(PASSWORD_SUFFIX) > MAX_KEY_LENGTH:
        raise SecretDocumentError(f"Invalid username '{username}': key would exceed {MAX_KEY_LENGTH} characters")
    return username


def password_key(username: str) -> str:
    return f"{username}{PASSWORD_SUFFIX}"


class SecretDocument:
    """In-memory Secret manifest with field-level edits."""

    def __init__(self, manifest: Dict[str, Any]):
        self.manifest = manifest

    @classmethod
    def from_yaml(cls, text: str) -> "SecretDocument":
        """
        Parse a ``kubectl get secret -o yaml`` dump.

        Raises:
            SecretDocumentError: if the text is not a YAML mapping
        """
        try:
            manifest = yaml.load(text, Loader=_SecretLoader)
        except yaml.YAMLError as e:
            raise SecretDocumentError(f"Secret document is not valid YAML: {e}") from e

        if not isinstance(manifest, dict):
            raise SecretDocumentError("Secret document is not a mapping")

        data = manifest.get("data")
        if data is not None and not isinstance(data, dict):
            raise SecretDocumentError("Secret 'data' block is not a mapping")

        return cls(manifest)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "SecretDocument":
        return cls.from_yaml(Path(path).read_text(encoding="utf-8"))

    @property
    def data(self) -> Dict[str, Any]:
        """The ``data`` block; empty dict when absent or null."""
        return self.manifest.get("data") or {}

    def data_keys(self) -> List[str]:
        return list(self.data.keys())

    def get_password_field(self, username: str) -> Optional[str]:
        return self.data.get(password_key(username))

    def has_password_field(self, username: str) -> bool:
        return password_key(username) in self.data

    def set_password_field(self, username: str, encoded_hash: str) -> FieldChange:
        """
        Set ``<username>.password`` to the encoded hash.

        An existing key keeps its position; a new key becomes the first
        entry of ``data``.
        """
        validate_username(username)
        key = password_key(username)
        data = self.manifest.get("data")

        if isinstance(data, dict) and key in data:
            data[key] = encoded_hash
            logger.debug(f"Replaced existing {key}")
            return FieldChange.REPLACED

        new_data = {key: encoded_hash}
        if isinstance(data, dict):
            new_data.update(data)
        self._replace_data(new_data)
        logger.debug(f"Inserted {key}")
        return FieldChange.INSERTED

    def _replace_data(self, new_data: Dict[str, Any]) -> None:
        """Swap the data block, keeping its position among top-level keys."""
        if "data" not in self.manifest:
            self.manifest["data"] = new_data
            return
        self.manifest = {
            key: (new_data if key == "data" else value) for key, value in self.manifest.items()
        }

    def to_yaml(self) -> str:
        return yaml.safe_dump(
            self.manifest,
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
            width=YAML_LINE_WIDTH,
        )

    def save(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.write_text(self.to_yaml(), encoding="utf-8")
        return path


def rewrite_secret_file(
    backup_path: Union[str, Path],
    output_path: Union[str, Path],
    username: str,
    encoded_hash: str,
) -> FieldChange:
    """
    Write a copy of the backup with the password key set.

    The backup file itself is only read.
    """
    document = SecretDocument.load(backup_path)
    change = document.set_password_field(username, encoded_hash)
    document.save(output_path)
    return change
