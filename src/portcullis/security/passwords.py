"""Password hashing: argon2id, with verification of legacy scrypt hashes.

New hashes are always argon2id (``argon2-cffi``). Stored scrypt hashes in
PHC form (``$scrypt$n=..,r=..,p=..$salt$dk``) still verify, and
``needs_rehash`` reports them so callers can upgrade on next login.

bcrypt hashes (``$2y$``, ``$2b$``, ``$2a$``) are not accepted: they never
verify, and a warning is logged so accounts still carrying one can be
sent through a password reset.

Usage::

    from portcullis.security.passwords import hash_password, verify_password

    stored = hash_password("correct horse")
    if verify_password(attempt, stored) and needs_rehash(stored):
        stored = hash_password(attempt)
"""

import base64
import hashlib
import hmac
import logging

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

_ARGON2_PREFIX = "$argon2"
_SCRYPT_PREFIX = "$scrypt$"
_BCRYPT_PREFIXES = ("$2y$", "$2b$", "$2a$")

logger = logging.getLogger("portcullis.security.passwords")

_hasher = PasswordHasher()


def _verify_scrypt(password: str, phc_hash: str) -> bool:
    # ['', 'scrypt', 'n=..,r=..,p=..', salt, dk]
    parts = phc_hash.split("$")
    if len(parts) != 5:
        return False
    try:
        cost = {}
        for item in parts[2].split(","):
            key, _, value = item.partition("=")
            cost[key] = int(value)
        salt = base64.b64decode(parts[3])
        expected = base64.b64decode(parts[4])
        derived = hashlib.scrypt(
            password.encode("utf-8"),
            salt=salt,
            n=cost["n"],
            r=cost["r"],
            p=cost["p"],
            dklen=len(expected),
        )
    except (KeyError, ValueError):
        return False
    return hmac.compare_digest(derived, expected)


def hash_password(password: str) -> str:
    """Hash *password* with argon2id and return the PHC string.

    Raises ``ValueError`` for an empty password.
    """
    if not password:
        msg = "Password must not be empty."
        raise ValueError(msg)
    return _hasher.hash(password)


def verify_password(password: str, phc_hash: str) -> bool:
    """Check *password* against a stored hash.

    Returns ``False`` for empty input, a mismatch, or a hash in a format
    this module does not understand.
    """
    if not password or not phc_hash:
        return False
    if phc_hash.startswith(_ARGON2_PREFIX):
        try:
            return _hasher.verify(phc_hash, password)
        except (VerificationError, InvalidHashError):
            return False
    if phc_hash.startswith(_SCRYPT_PREFIX):
        return _verify_scrypt(password, phc_hash)
    if phc_hash.startswith(_BCRYPT_PREFIXES):
        logger.warning("Rejected bcrypt password hash; the account needs a password reset")
    return False


def needs_rehash(phc_hash: str) -> bool:
    """True when *phc_hash* is not argon2id with the current parameters."""
    if not phc_hash.startswith(_ARGON2_PREFIX):
        return True
    try:
        return _hasher.check_needs_rehash(phc_hash)
    except InvalidHashError:
        return True
