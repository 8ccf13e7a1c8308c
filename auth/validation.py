"""
auth/validation.py -- Field-level checks for registration and login payloads.

Every rule is evaluated on its own and every violation is reported, so a
client learns about a short username AND a weak password in one round trip.
Password rules are only run when a password was supplied at all; "missing"
is reported once instead of five times.

Messages are fixed strings. They never echo the submitted password.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

USERNAME_MIN_LEN = 3
USERNAME_MAX_LEN = 50
PASSWORD_MIN_LEN = 8
PASSWORD_MAX_LEN = 128
PASSWORD_SYMBOLS = '!@#$%^&*(),.?":{}|<>'

_USERNAME_RE = re.compile(r"^[A-Za-z0-9_]+$")
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_SYMBOL_RE = re.compile("[" + re.escape(PASSWORD_SYMBOLS) + "]")


@dataclass
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)


def validate_registration(username: str | None, email: str | None, password: str | None) -> ValidationResult:
    errors: list[str] = []

    name = (username or "").strip()
    if len(name) < USERNAME_MIN_LEN:
        errors.append(f"Username must be at least {USERNAME_MIN_LEN} characters long")
    elif len(name) > USERNAME_MAX_LEN:
        errors.append(f"Username must be at most {USERNAME_MAX_LEN} characters long")
    elif not _USERNAME_RE.match(name):
        errors.append("Username can only contain letters, numbers, and underscores")

    if not email or not _EMAIL_RE.match(email.strip()):
        errors.append("Please enter a valid email address")

    if not password:
        errors.append("Password is required")
    else:
        if len(password) < PASSWORD_MIN_LEN:
            errors.append(f"Password must be at least {PASSWORD_MIN_LEN} characters long")
        if len(password) > PASSWORD_MAX_LEN:
            errors.append(f"Password must be at most {PASSWORD_MAX_LEN} characters long")
        if not re.search(r"[A-Z]", password):
            errors.append("Password must contain at least one uppercase letter")
        if not re.search(r"[a-z]", password):
            errors.append("Password must contain at least one lowercase letter")
        if not re.search(r"[0-9]", password):
            errors.append("Password must contain at least one number")
        if not _SYMBOL_RE.search(password):
            errors.append("Password must contain at least one special character")

    return ValidationResult(valid=not errors, errors=errors)


def validate_login(email: str | None, password: str | None) -> ValidationResult:
    if not email or not email.strip() or not password:
        return ValidationResult(valid=False, errors=["Email and password are required"])
    return ValidationResult(valid=True)


def normalize_email(email: str) -> str:
    return email.strip().lower()
