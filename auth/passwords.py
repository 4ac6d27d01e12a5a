"""
auth/passwords.py -- Credential Verifier: bcrypt hashing and strength rules.

Security design decisions:
  bcrypt, used directly (no passlib wrapper). Cost factor comes from
       Settings.bcrypt_rounds (12 in production). The salt is generated per
       hash by bcrypt.gensalt().

  verify_password() never raises. Malformed hashes, empty input and bcrypt
       errors all collapse to False so callers treat every mismatch as
       "credentials did not match".

  bcrypt only reads the first 72 bytes (bcrypt 5 refuses longer input), while
       the rules allow 128 characters of any script. Every password is
       therefore reduced to base64(sha256(utf-8)), 44 ASCII bytes, before
       it reaches bcrypt, so no two passwords collide on a shared prefix.

  _DUMMY_HASH enables timing equalization in AuthService.login(): an unknown
       email still costs one bcrypt comparison.

  Strength enforcement (validate_password_strength) is separate from the
  advisory score (password_strength). Only the former can reject a password.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import base64
import hashlib
import re
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import bcrypt

from auth.errors import WeakPassword
from auth.schema import parse_iso
from core.config import get_settings

_settings = get_settings()

MIN_LENGTH = 8
MAX_LENGTH = 128

_LOWER = re.compile(r"[a-z]")
_UPPER = re.compile(r"[A-Z]")
_DIGIT = re.compile(r"\d")
_SYMBOL = re.compile(r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?]")

COMMON_PASSWORDS = frozenset(
    {
        "password",
        "123456",
        "123456789",
        "qwerty",
        "abc123",
        "password123",
        "admin",
        "letmein",
        "welcome",
        "monkey",
    }
)


@dataclass
class PasswordStrength:
    score: int
    level: str


@dataclass
class PasswordValidation:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    strength: PasswordStrength | None = None


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


def validate_password_strength(plain: str | None) -> PasswordValidation:
    """Check a candidate password against the enforced rules.

    Collects every violation rather than stopping at the first, so the client
    can show the full list at once.
    """
    if not plain or not isinstance(plain, str):
        return PasswordValidation(is_valid=False, errors=["Password is required"])

    errors: list[str] = []
    if len(plain) < MIN_LENGTH:
        errors.append(f"Password must be at least {MIN_LENGTH} characters long")
    if len(plain) > MAX_LENGTH:
        errors.append(f"Password must be less than {MAX_LENGTH} characters long")
    if not _LOWER.search(plain):
        errors.append("Password must contain at least one lowercase letter")
    if not _UPPER.search(plain):
        errors.append("Password must contain at least one uppercase letter")
    if not _DIGIT.search(plain):
        errors.append("Password must contain at least one number")
    if not _SYMBOL.search(plain):
        errors.append("Password must contain at least one special character")
    if plain.lower() in COMMON_PASSWORDS:
        errors.append("Password is too common, please choose a stronger password")

    return PasswordValidation(is_valid=not errors, errors=errors, strength=password_strength(plain))


def password_strength(plain: str | None) -> PasswordStrength:
    """Advisory score for UX hints. Never used to accept or reject."""
    if not plain:
        return PasswordStrength(score=0, level="very-weak")

    score = 0
    score += sum(1 for threshold in (8, 12, 16) if len(plain) >= threshold)

    has_lower = bool(_LOWER.search(plain))
    has_upper = bool(_UPPER.search(plain))
    has_digit = bool(_DIGIT.search(plain))
    has_symbol = bool(_SYMBOL.search(plain))
    score += sum((has_lower, has_upper, has_digit, has_symbol))

    if has_lower and has_upper and has_digit:
        score += 1
        if has_symbol:
            score += 1

    if score >= 7:
        level = "very-strong"
    elif score >= 5:
        level = "strong"
    elif score >= 3:
        level = "medium"
    elif score >= 1:
        level = "weak"
    else:
        level = "very-weak"
    return PasswordStrength(score=score, level=level)


# ---------------------------------------------------------------------------
# Hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Validate and return a bcrypt hash of the given plaintext password.

    Raises WeakPassword listing every violated rule.
    """
    result = validate_password_strength(plain)
    if not result.is_valid:
        raise WeakPassword(result.errors)
    return _bcrypt_hash(plain)


def verify_password(plain: str | None, hashed: str | None) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    if not plain or not hashed:
        return False
    try:
        return bcrypt.checkpw(_bcrypt_input(plain), hashed.encode("utf-8"))
    except Exception:
        return False


def _bcrypt_input(plain: str) -> bytes:
    return base64.b64encode(hashlib.sha256(plain.encode("utf-8")).digest())


def _bcrypt_hash(plain: str) -> str:
    return bcrypt.hashpw(_bcrypt_input(plain), bcrypt.gensalt(rounds=_settings.bcrypt_rounds)).decode("utf-8")


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones. Bypasses the strength rules on purpose: it is
# never a real credential.
_DUMMY_HASH: str = _bcrypt_hash("harbordesk_timing_dummy")


def burn_dummy_check(plain: str | None) -> None:
    """Spend one bcrypt comparison on a throwaway hash (unknown-user path)."""
    verify_password(plain or "x", _DUMMY_HASH)


def is_password_expired(password_changed_at: str | None, now: datetime | None = None) -> bool:
    """True once PASSWORD_EXPIRY_DAYS have passed since the last change.

    Advisory: the flag is surfaced on the identity so clients can prompt for
    a change; it does not block login. PASSWORD_EXPIRY_DAYS=0 disables it.
    """
    if _settings.password_expiry_days <= 0 or not password_changed_at:
        return False
    now = now or datetime.now(timezone.utc)
    return now - parse_iso(password_changed_at) >= timedelta(days=_settings.password_expiry_days)


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------

_LOWERCASE = "abcdefghijklmnopqrstuvwxyz"
_UPPERCASE = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
_DIGITS = "0123456789"
_SYMBOLS = "!@#$%^&*()_+-=[]{}|;:,.<>?"


def generate_random_password(length: int = 12) -> str:
    """Generate a password that always passes validate_password_strength().

    One character from each class is guaranteed; the rest are drawn from the
    combined alphabet, then the whole is shuffled with a CSPRNG.
    """
    length = max(length, MIN_LENGTH)
    alphabet = _LOWERCASE + _UPPERCASE + _DIGITS + _SYMBOLS
    while True:
        chars = [
            secrets.choice(_LOWERCASE),
            secrets.choice(_UPPERCASE),
            secrets.choice(_DIGITS),
            secrets.choice(_SYMBOLS),
        ]
        chars += [secrets.choice(alphabet) for _ in range(length - len(chars))]
        secrets.SystemRandom().shuffle(chars)
        candidate = "".join(chars)
        if validate_password_strength(candidate).is_valid:
            return candidate
