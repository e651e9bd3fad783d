"""Password hashing, verification and strength checks."""
from __future__ import annotations

import math
import secrets
import string
from typing import Optional

from passlib.context import CryptContext

from .errors import WeakCredentialError

DEFAULT_MIN_ENTROPY = 40.0

_SPECIAL_CHARACTERS = frozenset(string.punctuation + " ")
_OTHER_CHARSET_SIZE = 32

# bcrypt stays verifiable so hashes written by earlier deployments keep working.
_pwd_context = CryptContext(schemes=["pbkdf2_sha256", "bcrypt"], deprecated="auto")


def _charset_size(password: str) -> int:
    size = 0
    if any(char in string.ascii_lowercase for char in password):
        size += len(string.ascii_lowercase)
    if any(char in string.ascii_uppercase for char in password):
        size += len(string.ascii_uppercase)
    if any(char in string.digits for char in password):
        size += len(string.digits)
    if any(char in _SPECIAL_CHARACTERS for char in password):
        size += len(_SPECIAL_CHARACTERS)
    if any(
        char not in string.ascii_letters
        and char not in string.digits
        and char not in _SPECIAL_CHARACTERS
        for char in password
    ):
        size += _OTHER_CHARSET_SIZE
    return size


def _effective_length(password: str) -> int:
    """Length of ``password`` with runs of a repeated character capped at two."""

    length = 0
    previous: Optional[str] = None
    run = 0
    for char in password:
        run = run + 1 if char == previous else 1
        previous = char
        if run <= 2:
            length += 1
    return length


def estimate_entropy(password: str) -> float:
    """Rough entropy estimate in bits: ``log2(charset) * effective length``."""

    size = _charset_size(password)
    if size == 0:
        return 0.0
    return math.log2(size) * _effective_length(password)


class PasswordHasher:
    """Salted one-way hashing of passwords through passlib."""

    def __init__(self, *, min_entropy: float = DEFAULT_MIN_ENTROPY) -> None:
        self._min_entropy = min_entropy
        self._dummy_hash: Optional[str] = None

    @property
    def min_entropy(self) -> float:
        return self._min_entropy

    def hash(self, password: str) -> str:
        if not password:
            raise WeakCredentialError("Password is required")
        return _pwd_context.hash(password)

    def verify(self, password: str, hashed: str) -> bool:
        if not password or not hashed:
            return False
        try:
            return _pwd_context.verify(password, hashed)
        except (ValueError, TypeError):
            return False

    def verify_dummy(self, password: str) -> bool:
        """Spend the same work as :meth:`verify` against a throwaway hash.

        Used for unknown accounts so their response time matches a wrong
        password.
        """

        if self._dummy_hash is None:
            self._dummy_hash = _pwd_context.hash(secrets.token_urlsafe(16))
        self.verify(password or "-", self._dummy_hash)
        return False

    def check_strength(self, password: str) -> None:
        if not password:
            raise WeakCredentialError("Password is required")
        if estimate_entropy(password) < self._min_entropy:
            raise WeakCredentialError(
                "Insecure password, try including more special characters, "
                "using uppercase letters, using numbers or using a longer password"
            )

    def hash_new_password(self, password: str) -> str:
        """Apply the strength policy, then hash."""

        self.check_strength(password)
        return self.hash(password)


__all__ = ["DEFAULT_MIN_ENTROPY", "PasswordHasher", "estimate_entropy"]
