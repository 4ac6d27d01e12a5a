"""
tests/test_passwords.py -- Unit tests for auth/passwords.py.

Covers:
  - Strength rules collect every violation
  - Advisory score levels
  - hash_password rejects weak input with WeakPassword
  - verify_password never raises on garbage
  - Passwords longer than bcrypt.s 72-byte window, ASCII and multi-byte
  - Expiry flag honours PASSWORD_EXPIRY_DAYS
  - Generated passwords always satisfy the rules
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from auth import passwords
from auth.errors import WeakPassword
from auth.passwords import (
    generate_random_password,
    hash_password,
    is_password_expired,
    password_strength,
    validate_password_strength,
    verify_password,
)
from auth.schema import iso


def test_valid_password_has_no_errors():
    result = validate_password_strength("Harbor#Dock42")
    assert result.is_valid
    assert result.errors == []
    assert result.strength.level in ("strong", "very-strong")


def test_every_violation_is_reported():
    result = validate_password_strength("abc")
    assert not result.is_valid
    joined = " ".join(result.errors)
    assert "at least 8 characters" in joined
    assert "uppercase" in joined
    assert "number" in joined
    assert "special character" in joined


def test_common_password_rejected_even_with_classes():
    # Lowercased match against the common list.
    result = validate_password_strength("Password123")
    assert any("too common" in e for e in result.errors)


def test_empty_password_is_required():
    result = validate_password_strength("")
    assert not result.is_valid
    assert result.errors == ["Password is required"]


@pytest.mark.parametrize(
    "plain, level",
    [
        ("", "very-weak"),
        ("abc", "weak"),
        ("abcdefgh", "weak"),
        ("abcdEFGH", "medium"),
        ("abcdEF12", "strong"),
        ("abcdEF12!xyzQRST", "very-strong"),
    ],
)
def test_strength_levels(plain, level):
    assert password_strength(plain).level == level


def test_hash_password_rejects_weak_input():
    with pytest.raises(WeakPassword) as exc_info:
        hash_password("short")
    assert exc_info.value.status_code == 400
    assert exc_info.value.to_dict()["detail"]["errors"]


def test_hash_and_verify_round_trip():
    hashed = hash_password("Harbor#Dock42")
    assert hashed.startswith("$2")
    assert verify_password("Harbor#Dock42", hashed)
    assert not verify_password("Harbor#Dock43", hashed)


LONG_PASSWORD = "Aa1!" + "x" * 76


def test_passwords_beyond_72_bytes_hash_and_verify():
    assert len(LONG_PASSWORD.encode("utf-8")) == 80
    hashed = hash_password(LONG_PASSWORD)
    assert verify_password(LONG_PASSWORD, hashed)
    # Same first 72 bytes, different tail: must not match.
    assert not verify_password(LONG_PASSWORD[:-1] + "y", hashed)


def test_multibyte_password_hashes_and_verifies():
    plain = "Aa1!" + "\u00e9" * 40
    assert len(plain) == 44
    assert len(plain.encode("utf-8")) == 84
    hashed = hash_password(plain)
    assert verify_password(plain, hashed)
    assert not verify_password("Aa1!" + "\u00e9" * 39 + "e", hashed)


def test_longest_allowed_password_is_accepted():
    plain = "Aa1!" + "\u4e2d" * 124
    assert len(plain) == passwords.MAX_LENGTH
    assert verify_password(plain, hash_password(plain))


@pytest.mark.parametrize("plain, hashed", [(None, "x"), ("x", None), ("x", "not-a-bcrypt-hash"), ("", "")])
def test_verify_password_never_raises(plain, hashed):
    assert verify_password(plain, hashed) is False


def test_password_expiry(monkeypatch):
    monkeypatch.setattr(passwords._settings, "password_expiry_days", 90)
    now = datetime.now(timezone.utc)
    assert not is_password_expired(iso(now - timedelta(days=10)), now=now)
    assert is_password_expired(iso(now - timedelta(days=91)), now=now)
    assert not is_password_expired(None, now=now)


def test_password_expiry_disabled(monkeypatch):
    monkeypatch.setattr(passwords._settings, "password_expiry_days", 0)
    old = iso(datetime.now(timezone.utc) - timedelta(days=3650))
    assert not is_password_expired(old)


def test_generated_passwords_pass_the_rules():
    for _ in range(25):
        candidate = generate_random_password()
        assert len(candidate) == 12
        assert validate_password_strength(candidate).is_valid, candidate


def test_generated_password_length_has_floor():
    assert len(generate_random_password(4)) == 8
