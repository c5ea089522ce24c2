# Overview: Service-layer operations for auth; user accounts and password checks.

"""
Authentication Service

WHY: Every ledger entry must be attributable (created_by). Uses bcrypt for
password hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, default 12)
- Minimum 8 characters, mixed case, a digit and a special character
- Session tokens managed separately (see session_service.py)
"""

import logging
import re

import bcrypt
from flask import current_app

from ..errors import ConflictError, ValidationError
from ..extensions import db
from ..models import User
from ..models.auth import ROLES
from stockledger.time_utils import utcnow

logger = logging.getLogger(__name__)


def validate_password_strength(password) -> None:
    """
    Raises ValidationError(field="password") unless the password has at
    least 8 characters, an uppercase letter, a lowercase letter, a digit and
    a special character.
    """
    if not isinstance(password, str) or len(password) < 8:
        raise ValidationError("Password must be at least 8 characters long", field="password")

    if not re.search(r'[A-Z]', password):
        raise ValidationError("Password must contain at least one uppercase letter", field="password")

    if not re.search(r'[a-z]', password):
        raise ValidationError("Password must contain at least one lowercase letter", field="password")

    if not re.search(r'\d', password):
        raise ValidationError("Password must contain at least one digit", field="password")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>_\-]", password):
        raise ValidationError("Password must contain at least one special character", field="password")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_ROUNDS", 12))
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash. Timing-safe via bcrypt.checkpw().

    A malformed stored hash verifies as False rather than raising.
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    username: str,
    password: str,
    full_name: str = "",
    role: str = "STAFF",
) -> User:
    """
    Create new user with bcrypt password hashing.

    Raises:
        ValidationError: blank username, unknown role, weak password
        ConflictError: username already taken
    """
    if not isinstance(username, str) or not username.strip():
        raise ValidationError("username is required", field="username")
    username = username.strip()
    if len(username) > 64:
        raise ValidationError("username exceeds max length 64", field="username")

    role = (role or "").strip().upper()
    if role not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}", field="role")

    existing = db.session.query(User).filter(User.username == username).first()
    if existing:
        raise ConflictError("Username already exists", field="username", username=username)

    # Hash password with bcrypt (validates strength automatically)
    password_hash = hash_password(password)

    user = User(
        username=username,
        full_name=(full_name or "").strip(),
        password_hash=password_hash,
        role=role,
    )

    db.session.add(user)
    db.session.commit()
    logger.info("Created user id=%s username=%s role=%s", user.id, user.username, user.role)
    return user


def authenticate(username: str, password: str) -> User | None:
    """
    Authenticate user with username and password.

    Returns User if credentials valid, None otherwise.
    Updates last_login_at timestamp on successful authentication.
    """
    if not username or not password:
        return None

    user = db.session.query(User).filter(
        User.username == username.strip(),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    logger.warning("Failed login for username=%s", username)
    return None
