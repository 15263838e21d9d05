# Overview: Service-layer operations for auth; encapsulates user credentials and database work.

"""
Authentication Service

Every session starts here: credentials are checked against a bcrypt hash,
then session_service issues the token pair.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, at least one letter and one digit
- Emails are normalized (trimmed, lower-cased) before storage and lookup
- Session tokens managed separately (see session_service.py)
"""

import re

import bcrypt

from ..extensions import db
from ..models import User, ROLES, ROLE_USER
from ..time_utils import utcnow
from .storage import storage_operation


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


class UserExistsError(ValueError):
    """Raised when the email is already registered."""
    pass


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one letter
    - At least one digit

    Raises PasswordValidationError if requirements not met.
    """
    if not password or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r"[A-Za-z]", password):
        raise PasswordValidationError("Password must contain at least one letter")

    if not re.search(r"\d", password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str, rounds: int = 12) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() is timing-safe. A malformed stored hash verifies as False.
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_user(
    email: str,
    password: str,
    name: str | None = None,
    role: str = ROLE_USER,
    *,
    bcrypt_rounds: int = 12,
) -> User:
    """
    Create new user with bcrypt password hashing.

    Raises:
        UserExistsError: If the email is already registered
        PasswordValidationError: If password doesn't meet requirements
        ValueError: If email or role is invalid
    """
    email = normalize_email(email)
    if not email or "@" not in email:
        raise ValueError("A valid email is required")
    if role not in ROLES:
        raise ValueError(f"Invalid role '{role}'. Must be one of: {', '.join(ROLES)}")

    existing = db.session.query(User).filter_by(email=email).first()
    if existing:
        raise UserExistsError("Email already registered")

    user = User(
        email=email,
        name=name,
        password_hash=hash_password(password, rounds=bcrypt_rounds),
        role=role,
        is_active=True,
    )

    db.session.add(user)
    db.session.commit()
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Authenticate user with email and password.

    Returns User if credentials valid and the account is active, None otherwise.
    Updates last_login_at timestamp on successful authentication.
    """
    user = db.session.query(User).filter(
        User.email == normalize_email(email),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


@storage_operation
def get_active_user(user_id: int) -> User | None:
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        return None
    return user
