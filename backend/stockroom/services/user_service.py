# Overview: Service-layer operations for user administration and self-service profile edits.

"""
User management.

Admins list users, change role/name/email and deactivate or reactivate
accounts. Deactivation is a soft delete: the row stays (sales and stock
history still point at it) and every live session is revoked in the same
unit of work.

Admins cannot demote or deactivate themselves, so there is always at least
the acting admin left.
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import User, ROLE_ADMIN, ROLES
from ..validation import ValidationError
from . import session_service
from .auth_service import UserExistsError, hash_password, verify_password
from .concurrency import atomic

logger = logging.getLogger(__name__)


class SelfModificationError(ValueError):
    """Raised when an admin tries to demote or deactivate their own account."""


def list_users(include_inactive: bool = True) -> list[User]:
    query = db.session.query(User)
    if not include_inactive:
        query = query.filter(User.is_active.is_(True))
    return query.order_by(User.username.asc()).all()


def get_user(user_id: int) -> User | None:
    return db.session.get(User, user_id)


def _normalize_identity(patch: dict) -> None:
    if patch.get("username") is not None:
        patch["username"] = patch["username"].strip()
    if patch.get("email") is not None:
        patch["email"] = patch["email"].strip().lower()


def _check_unique_identity(patch: dict, *, exclude_id: int) -> None:
    username = patch.get("username")
    if username:
        taken = db.session.query(User.id).filter(
            User.username == username, User.id != exclude_id
        ).first()
        if taken:
            raise UserExistsError("Username already taken")

    email = patch.get("email")
    if email:
        taken = db.session.query(User.id).filter(
            User.email == email, User.id != exclude_id
        ).first()
        if taken:
            raise UserExistsError("Email already registered")


def _revoke_sessions(user: User, reason: str) -> int:
    revoked = session_service.revoke_all_user_sessions(user.id, reason=reason)
    logger.info("Deactivated user %s (%s); revoked %d session(s)", user.id, user.username, revoked)
    return revoked


def update_user(user_id: int, patch: dict, *, actor_id: int) -> User | None:
    """
    Admin edit of name, email, role and is_active.

    Setting is_active to False revokes the user's sessions.
    Returns None when the user does not exist.

    Raises:
        ValidationError: unknown role
        SelfModificationError: actor demoting or deactivating themselves
        UserExistsError: email already used by another account
    """
    user = db.session.get(User, user_id)
    if user is None:
        return None

    if "role" in patch and patch["role"] not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}")

    if user.id == actor_id:
        if patch.get("role", ROLE_ADMIN) != ROLE_ADMIN:
            raise SelfModificationError("Cannot change your own role")
        if patch.get("is_active", True) is False:
            raise SelfModificationError("Cannot deactivate your own account")

    _normalize_identity(patch)
    _check_unique_identity(patch, exclude_id=user.id)

    with atomic():
        deactivating = user.is_active and patch.get("is_active") is False
        for key, value in patch.items():
            setattr(user, key, value)
        if deactivating:
            _revoke_sessions(user, reason="Account deactivated by admin")

    logger.info("User %s updated by %s: %s", user.id, actor_id, sorted(patch))
    return user


def deactivate_user(user_id: int, *, actor_id: int) -> tuple[User, int] | None:
    """
    Soft delete: is_active=False plus revocation of every live session.

    Returns (user, sessions_revoked), or None when the user does not exist.
    """
    user = db.session.get(User, user_id)
    if user is None:
        return None
    if user.id == actor_id:
        raise SelfModificationError("Cannot deactivate your own account")
    if not user.is_active:
        raise ValidationError("User is already deactivated")

    with atomic():
        user.is_active = False
        revoked = _revoke_sessions(user, reason="Account deactivated by admin")

    return user, revoked


def update_profile(
    user: User,
    patch: dict,
    *,
    password: str | None = None,
    current_password: str | None = None,
) -> User:
    """
    Self-service edit of username, email, name and password.

    Changing the password requires the current one.
    """
    if password is not None:
        if not verify_password(current_password or "", user.password_hash):
            raise ValidationError("Current password is incorrect")
        # Raises PasswordValidationError for weak passwords
        patch["password_hash"] = hash_password(password)

    _normalize_identity(patch)
    _check_unique_identity(patch, exclude_id=user.id)

    with atomic():
        for key, value in patch.items():
            setattr(user, key, value)

    return user
