# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

WHY: Every ledger mutation, invoice and role decision must be attributable.
Uses bcrypt for password hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, 12 by default)
- Minimum 8 characters; upper, lower, digit and special character required
- Credentials live apart from user profiles; deleting a profile emits a
  CredentialDeletionEvent and the credential is removed by the maintenance job
- Session tokens managed separately (see session_service.py)
"""

from __future__ import annotations

import re

import bcrypt
from flask import current_app

from ..errors import ConflictError, InvalidArgumentError
from ..extensions import db
from ..models import Credential, User
from ..permissions import DEFAULT_ROLE, ROLES, is_valid_role
from ..time_utils import utcnow
from . import change_feed
from .concurrency import begin_write, run_with_retry
from .permission_service import require_permission

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class PasswordValidationError(InvalidArgumentError):
    """Raised when password doesn't meet strength requirements."""


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At most 72 bytes once UTF-8 encoded (bcrypt input limit)
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)

    Raises PasswordValidationError if requirements not met.
    """
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if len(password.encode("utf-8")) > 72:
        raise PasswordValidationError("Password must be at most 72 bytes long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Validate strength, then hash with bcrypt."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=current_app.config["BCRYPT_ROUNDS"])
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt comparison; malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def normalize_email(email) -> str:
    if not isinstance(email, str) or not _EMAIL_RE.match(email.strip()):
        raise InvalidArgumentError("A valid email address is required", {"field": "email"})
    return email.strip().lower()


def provision_user(*, email: str, password: str, role: str, display_name: str | None = None, created_by: str = "") -> User:
    """
    Insert a user and its credential. No permission check: callers are
    register_user(), create_user() and the CLI bootstrap.
    """
    if not is_valid_role(role):
        raise InvalidArgumentError("Unknown role", {"role": role, "allowed": list(ROLES)})
    email = normalize_email(email)
    password_hash = hash_password(password)
    display_name = display_name.strip() if isinstance(display_name, str) and display_name.strip() else None

    def _op():
        begin_write()
        if db.session.query(User.id).filter_by(email=email).first() is not None:
            raise ConflictError("Email already registered", {"email": email})

        user = User(
            email=email,
            display_name=display_name,
            role=role,
            is_active=True,
            created_by=created_by or email,
        )
        db.session.add(user)
        db.session.flush()

        db.session.add(Credential(user_id=user.id, password_hash=password_hash))
        db.session.flush()

        change_feed.record_change("users", "created", user.id, {"email": user.email, "role": user.role})
        db.session.commit()
        return user

    return run_with_retry(_op)


def register_user(email: str, password: str, display_name: str | None = None) -> User:
    """Self-registration: new accounts start as viewer."""
    user = provision_user(
        email=email,
        password=password,
        role=DEFAULT_ROLE,
        display_name=display_name,
        created_by="",
    )
    current_app.logger.info("User %s registered", user.email)
    return user


def create_user(admin, email: str, password: str, role: str, display_name: str | None = None) -> User:
    """Admin-created account with an explicit role."""
    require_permission(admin, "CREATE_USER")

    user = provision_user(
        email=email,
        password=password,
        role=role,
        display_name=display_name,
        created_by=admin.email,
    )
    current_app.logger.info("User %s created by %s with role %s", user.email, admin.email, role)
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Returns User if credentials valid, None otherwise.
    Updates last_login_at on success.
    """
    if not isinstance(email, str) or not isinstance(password, str):
        return None

    user = db.session.query(User).filter(
        User.email == email.strip().lower(),
        User.is_active.is_(True),
    ).first()
    if user is None:
        return None

    credential = db.session.query(Credential).filter_by(user_id=user.id).first()
    if credential is None or not verify_password(password, credential.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def delete_credential(user_id: int) -> bool:
    """
    Remove the stored credential for `user_id`. Caller commits.

    Returns True if a credential was removed, False if none existed. Both
    count as success: deletion is delivered at-least-once.
    """
    credential = db.session.query(Credential).filter_by(user_id=user_id).first()
    if credential is None:
        return False
    db.session.delete(credential)
    db.session.flush()
    return True
