# Overview: Password hashing, user management, and step-up re-authentication.

"""
Authentication Service

Uses bcrypt for password hashing and validates password strength.

Step-up re-authentication guards destructive operations:
- verify_actor_password: the acting user re-enters their own password.
- verify_admin_key: the sale "master key" rule. An ADMIN actor re-enters their own
  password; any other actor must supply the password of an active ADMIN.
Both run before a transaction starts, so a refusal never leaves partial writes.
"""

import re

import bcrypt
from flask import current_app
from sqlalchemy import or_

from ..errors import ConflictError, ForbiddenError, NotFoundError, ValidationError, AuthenticationError
from ..extensions import db
from ..models import User
from ..models.auth import ROLE_ADMIN, ROLES
from ..time_utils import utcnow


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""

    def __init__(self, message: str):
        super().__init__(message, "password")


def validate_password_strength(password: str) -> None:
    """
    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter, one lowercase letter, one digit
    """
    if not password or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")
    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")
    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")
    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    """Hash password using bcrypt (cost from BCRYPT_ROUNDS, default 12; strength validated first)."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_ROUNDS", 12))
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt check; malformed hashes never match."""
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    username: str,
    email: str,
    password: str,
    role: str,
    name: str | None = None,
) -> User:
    """Create a user; username and email must be unique."""
    role = (role or "").upper()
    if role not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(sorted(ROLES))}", "role")
    if not username:
        raise ValidationError("username is required", "username")
    if not email:
        raise ValidationError("email is required", "email")

    if db.session.query(User).filter_by(username=username).first():
        raise ConflictError(f"Username '{username}' already exists")
    if db.session.query(User).filter_by(email=email).first():
        raise ConflictError(f"Email '{email}' already exists")

    user = User(
        username=username,
        email=email,
        name=name,
        role=role,
        password_hash=hash_password(password),
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    return user


def update_user(user_id: int, *, role: str | None = None, is_active: bool | None = None,
                name: str | None = None, password: str | None = None) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")

    if role is not None:
        role = role.upper()
        if role not in ROLES:
            raise ValidationError(f"role must be one of: {', '.join(sorted(ROLES))}", "role")
        user.role = role
    if is_active is not None:
        user.is_active = bool(is_active)
    if name is not None:
        user.name = name
    if password:
        user.password_hash = hash_password(password)

    db.session.commit()
    return user


def list_users() -> list[User]:
    return db.session.query(User).order_by(User.username.asc()).all()


def authenticate(identifier: str, password: str) -> User:
    """
    Authenticate by username or email.

    Raises AuthenticationError with a generic message on any mismatch.
    """
    if not identifier or not password:
        raise AuthenticationError("Invalid credentials")

    user = db.session.query(User).filter(
        or_(User.username == identifier, User.email == identifier)
    ).first()

    if not user or not user.is_active or not verify_password(password, user.password_hash):
        raise AuthenticationError("Invalid credentials")

    user.last_login_at = utcnow()
    db.session.commit()
    return user


# =============================================================================
# Step-up re-authentication
# =============================================================================

def _require_password(password: str | None) -> str:
    if not password:
        raise ValidationError("password is required", "password")
    return password


def verify_actor_password(actor: User, password: str | None) -> None:
    """Raise ForbiddenError unless password matches the acting user."""
    password = _require_password(password)
    if not verify_password(password, actor.password_hash):
        raise ForbiddenError("Invalid password")


def verify_admin_key(actor: User, password: str | None) -> None:
    """
    Raise ForbiddenError unless password is the admin master key.

    ADMIN actors must use their own password; other actors must supply the
    password of any active ADMIN.
    """
    password = _require_password(password)

    if actor.role == ROLE_ADMIN:
        if verify_password(password, actor.password_hash):
            return
        raise ForbiddenError("Invalid admin password")

    admins = db.session.query(User).filter_by(role=ROLE_ADMIN, is_active=True).all()
    if any(verify_password(password, admin.password_hash) for admin in admins):
        return
    raise ForbiddenError("Invalid admin password")
