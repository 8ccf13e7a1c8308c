"""
auth/accounts.py -- Registration, login and role management.

Every check that can fail runs before the store is written to, so a rejected
request never leaves a partial user or a half-applied role change behind.

Layer rule: no imports from api/, audit/ or tasks/. Errors are core.errors
classes; api/main.py maps them onto HTTP responses.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from auth.models import ROLE_ADMIN, ROLE_USER, ROLES, Identity, User
from auth.store import UserStore
from auth.tokens import authenticate_user, hash_password
from auth.validation import normalize_email, validate_login, validate_registration
from core.errors import AuthenticationError, ConflictError, NotFoundError, ValidationError

logger = logging.getLogger("tasktrack.auth")

# Same object for "no such email" and "wrong password" so both responses
# serialize to identical bytes.
_BAD_CREDENTIALS_MESSAGE = "Invalid credentials"


def register_user(store: UserStore, username: str | None, email: str | None, password: str | None) -> User:
    """Create a regular user account.

    The role is always "user"; a role supplied by the client never reaches
    this function. Raises ValidationError (every violated rule listed) or
    ConflictError (email taken).
    """
    return _create_account(store, username, email, password, ROLE_USER)


def create_admin(store: UserStore, username: str | None, email: str | None, password: str | None) -> User:
    """Create an admin account. Only reachable from the command line."""
    return _create_account(store, username, email, password, ROLE_ADMIN)


def _create_account(store: UserStore, username, email, password, role: str) -> User:
    result = validate_registration(username, email, password)
    if not result.valid:
        raise ValidationError("Validation errors", errors=result.errors)

    normalized = normalize_email(email)
    if store.get_by_email(normalized) is not None:
        raise ConflictError("Email already exists.", code="email_taken")

    user = User(
        username=username.strip(),
        email=normalized,
        hashed_password=hash_password(password),
        role=role,
    )
    try:
        user.id = store.create_user(user)
    except IntegrityError as exc:
        # A concurrent registration for the same email won the insert.
        raise ConflictError("Email already exists.", code="email_taken") from exc
    logger.info("Registered %s id=%s", role, user.id)
    return user


def login(store: UserStore, email: str | None, password: str | None) -> User:
    """Return the user for a valid email/password pair.

    Unknown email and wrong password raise the same error with the same
    message; authenticate_user() also equalizes their timing [C1].
    """
    result = validate_login(email, password)
    if not result.valid:
        raise ValidationError(result.errors[0], errors=result.errors)

    user = authenticate_user(store, normalize_email(email), password)
    if user is None:
        raise AuthenticationError(_BAD_CREDENTIALS_MESSAGE, code="bad_credentials")
    return user


def landing_page_for(user: User) -> str:
    return "/admin/dashboard" if user.role == ROLE_ADMIN else "/user/dashboard"


def update_user_role(store: UserStore, actor: Identity, target_id: int, role: str) -> User:
    """Set another user's role. Admin authorization is the caller's job.

    Order matters: the role value and the self-targeting rule are checked
    before the store is queried, so a rejected request performs no I/O.
    """
    if role not in ROLES:
        raise ValidationError(
            f"Invalid role. Allowed roles: {', '.join(sorted(ROLES))}",
            code="invalid_role",
        )
    if target_id == actor.id:
        raise ValidationError("You cannot change your own role.", code="self_role_change")

    target = store.get_by_id(target_id)
    if target is None:
        raise NotFoundError("User not found.")

    store.update_role(target_id, role)
    logger.info("User id=%s set role of user id=%s to %s", actor.id, target_id, role)
    target.role = role
    return target
