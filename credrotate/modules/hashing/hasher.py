"""
Password hashing for Argo CD local accounts.

Argo CD stores bcrypt hashes with the ``$2a$`` identifier, base64 encoded,
under ``<username>.password`` in argocd-secret. Two backends produce the
hash: the ``bcrypt`` library (default) and the ``htpasswd`` utility.
"""

import base64
import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from typing import List, Protocol

import bcrypt

from credrotate.exceptions import HashingError, PrerequisiteError

logger = logging.getLogger("credrotate.hashing")

ARGOCD_IDENTIFIER = "$2a$"
# Identifiers of the same algorithm that Argo CD does not expect verbatim
FOREIGN_IDENTIFIERS = ("$2y$", "$2b$")
# bcrypt reads at most this many bytes of a password
BCRYPT_MAX_PASSWORD_BYTES = 72


@dataclass(frozen=True)
class HashedPassword:
    """A bcrypt hash and the base64 form stored in the secret."""
    hash: str
    encoded: str


def normalize_identifier(hashed: str) -> str:
    """Rewrite a ``$2y$``/``$2b$`` bcrypt hash to the ``$2a$`` variant."""
    for identifier in FOREIGN_IDENTIFIERS:
        if hashed.startswith(identifier):
            return ARGOCD_IDENTIFIER + hashed[len(identifier):]
    return hashed


def encode_hash(hashed: str) -> str:
    """Base64 without line wrapping."""
    return base64.b64encode(hashed.encode("utf-8")).decode("ascii")


def bcrypt_input(password: str) -> bytes:
    """UTF-8 bytes of a password, cut to what bcrypt reads."""
    return password.encode("utf-8")[:BCRYPT_MAX_PASSWORD_BYTES]


def decode_hash(encoded: str) -> str:
    return base64.b64decode(encoded.encode("ascii")).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    """Check a plaintext password against a bcrypt hash."""
    try:
        return bcrypt.checkpw(bcrypt_input(password), hashed.encode("utf-8"))
    except ValueError:
        return False


class PasswordHasher(Protocol):
    """Protocol for hashing backends."""

    name: str

    def is_available(self) -> bool:
        ...

    def ensure_available(self) -> None:
        ...

    def hash_password(self, password: str) -> str:
        ...


class BcryptHasher:
    """Hash with the bcrypt library."""

    name = "bcrypt"

    def __init__(self, cost: int = 10):
        self.cost = cost

    def is_available(self) -> bool:
        return True

    def ensure_available(self) -> None:
        """The library is a hard dependency; nothing to install."""

    def hash_password(self, password: str) -> str:
        hashed = bcrypt.hashpw(bcrypt_input(password), bcrypt.gensalt(rounds=self.cost))
        return normalize_identifier(hashed.decode("utf-8"))


class HtpasswdHasher:
    """Hash with ``htpasswd -bnBC <cost>``, installing apache2-utils if missing."""

    name = "htpasswd"
    package = "apache2-utils"

    def __init__(self, cost: int = 10, binary: str = "htpasswd", timeout: int = 120):
        self.cost = cost
        self.binary = binary
        self.timeout = timeout

    def is_available(self) -> bool:
        return shutil.which(self.binary) is not None

    def _install_commands(self) -> List[List[str]]:
        sudo = [] if os.geteuid() == 0 else ["sudo"]
        return [
            sudo + ["apt-get", "update", "-qq"],
            sudo + ["apt-get", "install", "-y", "-qq", self.package],
        ]

    def ensure_available(self) -> None:
        """
        Make sure htpasswd can be run.

        Raises:
            PrerequisiteError: if the install fails or the binary is still missing
        """
        if self.is_available():
            return

        logger.warning(f"{self.binary} not found, installing {self.package}")
        for cmd in self._install_commands():
            try:
                subprocess.run(cmd, check=True, capture_output=True, text=True, timeout=self.timeout)
            except (subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError) as e:
                raise PrerequisiteError(f"Failed to install {self.package}: {e}") from e

        if not self.is_available():
            raise PrerequisiteError(f"{self.binary} still not available after installing {self.package}")
        logger.info(f"{self.package} installed", extra={"kind": "success"})

    def hash_password(self, password: str) -> str:
        cmd = [self.binary, "-bnBC", str(self.cost), "", password]
        try:
            process = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except (subprocess.TimeoutExpired, OSError) as e:
            raise HashingError(f"htpasswd failed: {e}") from e

        if process.returncode != 0:
            raise HashingError(f"htpasswd failed: {process.stderr.strip()}")

        # Output is ":<hash>\n\n" for an empty user name
        hashed = process.stdout.replace(":", "").replace("\n", "").replace("\r", "")
        return normalize_identifier(hashed)


def create_hasher(backend: str, cost: int = 10) -> PasswordHasher:
    """Build the hashing backend named in configuration."""
    if backend == "bcrypt":
        return BcryptHasher(cost=cost)
    if backend == "htpasswd":
        return HtpasswdHasher(cost=cost)
    raise ValueError(f"Unknown hasher backend: {backend}")


def hash_for_argocd(hasher: PasswordHasher, password: str) -> str:
    """
    Produce the ``$2a$`` bcrypt hash of a password.

    Raises:
        HashingError: on a backend error or an empty hash
    """
    try:
        hashed = hasher.hash_password(password)
    except ValueError as e:
        raise HashingError(f"Failed to generate password hash: {e}") from e

    if not hashed:
        raise HashingError("Failed to generate password hash")
    return hashed


def encode_for_storage(hashed: str) -> str:
    """Base64 form stored in the secret; empty output is fatal."""
    encoded = encode_hash(hashed)
    if not encoded:
        raise HashingError("Failed to encode hash to base64")
    return encoded


def derive_password_hash(hasher: PasswordHasher, password: str) -> HashedPassword:
    """Hash a password and encode it for storage."""
    hashed = hash_for_argocd(hasher, password)
    return HashedPassword(hash=hashed, encoded=encode_for_storage(hashed))
