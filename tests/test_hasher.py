"""
Unit tests for the hashing module.

Tests cover:
- $2a$ identifier and cost of generated hashes
- base64 storage encoding
- htpasswd backend output parsing and install fallback
- fatal conditions (empty hash, backend errors)
- passwords past the 72-byte bcrypt input limit
"""

import base64
import re
import subprocess
from unittest.mock import MagicMock, patch

import pytest

from credrotate.exceptions import HashingError, PrerequisiteError
from credrotate.modules.hashing import (
    BcryptHasher,
    HtpasswdHasher,
    create_hasher,
    decode_hash,
    derive_password_hash,
    encode_for_storage,
    encode_hash,
    hash_for_argocd,
    normalize_identifier,
    verify_password,
)

BCRYPT_2A = re.compile(r"^\$2a\$10\$[./A-Za-z0-9]{53}$")


class StaticHasher:
    """Backend returning a fixed value."""

    name = "static"

    def __init__(self, value):
        self.value = value

    def is_available(self):
        return True

    def ensure_available(self):
        pass

    def hash_password(self, password):
        return self.value


# =============================================================================
# Identifier rewriting and encoding
# =============================================================================


class TestNormalizeIdentifier:
    def test_rewrites_2y(self):
        assert normalize_identifier("$2y$10$abcdef") == "$2a$10$abcdef"

    def test_rewrites_2b(self):
        assert normalize_identifier("$2b$10$abcdef") == "$2a$10$abcdef"

    def test_keeps_2a(self):
        assert normalize_identifier("$2a$10$abcdef") == "$2a$10$abcdef"

    def test_only_prefix_is_touched(self):
        assert normalize_identifier("$2y$10$xx$2y$yy") == "$2a$10$xx$2y$yy"


def test_encode_hash_has_no_line_wrapping():
    long_hash = "$2a$10$" + "A" * 200
    encoded = encode_hash(long_hash)

    assert "\n" not in encoded
    assert base64.b64decode(encoded).decode() == long_hash
    assert decode_hash(encoded) == long_hash


def test_encode_for_storage_matches_base64():
    hashed = "$2a$10$N9qo8uLOickgx2ZMRZoMyeIjZAgcfl7p92ldGxad68LJZdL17lhWy"
    assert encode_for_storage(hashed) == base64.b64encode(hashed.encode()).decode()


# =============================================================================
# bcrypt backend
# =============================================================================


class TestBcryptHasher:
    def test_hash_format(self):
        hashed = BcryptHasher(cost=10).hash_password("hunter2")

        assert BCRYPT_2A.match(hashed)
        assert not hashed.endswith("\n")

    def test_hash_verifies(self):
        hashed = BcryptHasher(cost=10).hash_password("hunter2")

        assert verify_password("hunter2", hashed)
        assert not verify_password("hunter3", hashed)

    def test_salted(self):
        hasher = BcryptHasher(cost=4)
        assert hasher.hash_password("same") != hasher.hash_password("same")

    def test_cost_is_encoded(self):
        hashed = BcryptHasher(cost=4).hash_password("pw")
        assert hashed.startswith("$2a$04$")

    def test_always_available(self):
        hasher = BcryptHasher()
        assert hasher.is_available()
        hasher.ensure_available()


def test_verify_password_rejects_garbage():
    assert verify_password("pw", "not-a-hash") is False


def test_stored_value_decodes_to_valid_2a_hash():
    hashed = derive_password_hash(BcryptHasher(cost=10), "hunter2")

    decoded = base64.b64decode(hashed.encoded).decode()
    assert decoded == hashed.hash
    assert BCRYPT_2A.match(decoded)
    assert verify_password("hunter2", decoded)


def test_unicode_password():
    hashed = derive_password_hash(BcryptHasher(cost=4), "pässwörd-密码")
    assert verify_password("pässwörd-密码", hashed.hash)


# =============================================================================
# Fatal conditions
# =============================================================================


def test_empty_hash_is_fatal():
    with pytest.raises(HashingError, match="Failed to generate password hash"):
        hash_for_argocd(StaticHasher(""), "pw")


def test_backend_value_error_is_fatal():
    hasher = MagicMock()
    hasher.hash_password.side_effect = ValueError("password may not contain NUL bytes")

    with pytest.raises(HashingError):
        hash_for_argocd(hasher, "bad\x00pw")


def test_password_over_bcrypt_limit_hashes_and_verifies():
    password = "a" * 73

    hashed = hash_for_argocd(BcryptHasher(cost=4), password)

    assert hashed.startswith("$2a$04$")
    assert verify_password(password, hashed)


def test_only_first_72_bytes_count():
    hashed = hash_for_argocd(BcryptHasher(cost=4), "a" * 72 + "tail-one")

    assert verify_password("a" * 72 + "tail-two", hashed)
    assert not verify_password("a" * 71, hashed)


def test_multibyte_password_over_limit():
    password = "\u00e9" * 40

    hashed = hash_for_argocd(BcryptHasher(cost=4), password)

    assert verify_password(password, hashed)


def test_password_at_bcrypt_limit_is_accepted():
    hashed = hash_for_argocd(BcryptHasher(cost=4), "x" * 72)
    assert verify_password("x" * 72, hashed)


# =============================================================================
# htpasswd backend
# =============================================================================


def _completed(stdout="", stderr="", returncode=0):
    result = MagicMock()
    result.stdout = stdout
    result.stderr = stderr
    result.returncode = returncode
    return result


class TestHtpasswdHasher:
    def test_parses_output_and_rewrites_identifier(self):
        output = ":$2y$10$N9qo8uLOickgx2ZMRZoMyeIjZAgcfl7p92ldGxad68LJZdL17lhWy\n\n"
        with patch("subprocess.run", return_value=_completed(stdout=output)) as run:
            hashed = HtpasswdHasher(cost=10).hash_password("hunter2")

        assert hashed == "$2a$10$N9qo8uLOickgx2ZMRZoMyeIjZAgcfl7p92ldGxad68LJZdL17lhWy"
        cmd = run.call_args[0][0]
        assert cmd == ["htpasswd", "-bnBC", "10", "", "hunter2"]

    def test_failure_raises(self):
        with patch("subprocess.run", return_value=_completed(stderr="boom", returncode=1)):
            with pytest.raises(HashingError, match="boom"):
                HtpasswdHasher().hash_password("pw")

    def test_empty_output_is_fatal(self):
        with patch("subprocess.run", return_value=_completed(stdout="\n")):
            with pytest.raises(HashingError):
                hash_for_argocd(HtpasswdHasher(), "pw")

    def test_available_when_on_path(self):
        with patch("shutil.which", return_value="/usr/bin/htpasswd"):
            assert HtpasswdHasher().is_available()

    def test_ensure_available_skips_install_when_present(self):
        with patch("shutil.which", return_value="/usr/bin/htpasswd"), \
                patch("subprocess.run") as run:
            HtpasswdHasher().ensure_available()
        run.assert_not_called()

    def test_ensure_available_installs_apache2_utils(self):
        found = iter([None, "/usr/bin/htpasswd"])
        with patch("shutil.which", side_effect=lambda name: next(found)), \
                patch("os.geteuid", return_value=1000), \
                patch("subprocess.run", return_value=_completed()) as run:
            HtpasswdHasher().ensure_available()

        commands = [c[0][0] for c in run.call_args_list]
        assert commands == [
            ["sudo", "apt-get", "update", "-qq"],
            ["sudo", "apt-get", "install", "-y", "-qq", "apache2-utils"],
        ]

    def test_install_as_root_skips_sudo(self):
        found = iter([None, "/usr/bin/htpasswd"])
        with patch("shutil.which", side_effect=lambda name: next(found)), \
                patch("os.geteuid", return_value=0), \
                patch("subprocess.run", return_value=_completed()) as run:
            HtpasswdHasher().ensure_available()

        assert run.call_args_list[0][0][0][0] == "apt-get"

    def test_install_failure_is_fatal(self):
        error = subprocess.CalledProcessError(100, ["apt-get"])
        with patch("shutil.which", return_value=None), \
                patch("os.geteuid", return_value=0), \
                patch("subprocess.run", side_effect=error):
            with pytest.raises(PrerequisiteError, match="apache2-utils"):
                HtpasswdHasher().ensure_available()

    def test_still_missing_after_install_is_fatal(self):
        with patch("shutil.which", return_value=None), \
                patch("os.geteuid", return_value=0), \
                patch("subprocess.run", return_value=_completed()):
            with pytest.raises(PrerequisiteError, match="still not available"):
                HtpasswdHasher().ensure_available()


def test_create_hasher():
    assert isinstance(create_hasher("bcrypt", cost=12), BcryptHasher)
    assert create_hasher("bcrypt", cost=12).cost == 12
    assert isinstance(create_hasher("htpasswd"), HtpasswdHasher)
    with pytest.raises(ValueError):
        create_hasher("md5")
