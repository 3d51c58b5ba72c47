# Overview: Service-layer operations for auth; password hashing, user creation and sign-in events.

"""
Authentication Service

WHY: Every catalog, order and customer row is scoped by the signed-in
user's id. This module owns how that id is established.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, with upper, lower, digit and special char
- Session tokens managed separately (see session_service.py)

Sign-in and sign-out transitions are published through AuthEvents so the
till-side layer can open and close per-user terminals.
"""

import logging
import re

import bcrypt

from ..extensions import db
from ..models import User
from ..validation import ConflictError, ValidationError
from .subscription_service import initialize_free_trial
from fastbill.time_utils import utcnow

logger = logging.getLogger(__name__)

SIGNED_IN = "signed_in"
SIGNED_OUT = "signed_out"


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


class AuthEvents:
    """
    Listener list for sign-in / sign-out transitions.

    Listeners are called as listener(event, user_id). One failing listener
    is logged and does not stop the others.
    """

    def __init__(self):
        self._listeners = []

    def subscribe(self, listener):
        self._listeners.append(listener)

        def _unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def emit(self, event: str, user_id: int) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, user_id)
            except Exception:
                logger.exception("Auth listener failed for %s of user %s", event, user_id)


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Hash password using bcrypt with cost factor 12, after the strength check."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() is timing-safe. A malformed stored hash reads as a
    mismatch.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(username: str, password: str, email: str | None = None) -> User:
    """
    Create a user (a new tenant) with a hashed password.

    Raises:
        ValidationError: username missing
        PasswordValidationError: weak password
        ConflictError: username already taken
    """
    username = (username or "").strip()
    if not username:
        raise ValidationError("Username is required")

    existing = db.session.query(User).filter(User.username == username).first()
    if existing:
        raise ConflictError("Username already exists")

    user = User(
        username=username,
        email=(email or "").strip() or None,
        password_hash=hash_password(password),
    )

    db.session.add(user)
    db.session.commit()
    return initialize_free_trial(user.id)


def authenticate(username: str, password: str) -> User | None:
    """
    Returns the active User if credentials are valid, None otherwise.
    Updates last_login_at on success.
    """
    user = db.session.query(User).filter(
        db.or_(User.username == username, User.email == username),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None
