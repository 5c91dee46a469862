"""
Staff account service.

WHY: Accounts are managed by an administrator; there is no self-signup and
no login session here. Passwords are stored only as bcrypt hashes.

Rules:
- username at least 3 characters, unique
- password at least PASSWORD_MIN_LENGTH characters (6 by default)
- role is 'admin' or 'user'
- email, when given, looks like an address
- mobile_number, when given, matches MOBILE_NUMBER_PATTERN
"""

import re

import bcrypt
from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..database import ConstraintViolation
from ..models import User, USER_ROLES
from ..validation import ValidationError
from .concurrency import run_orm_with_retry


USERNAME_MIN_LENGTH = 3

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class UserError(Exception):
    """Raised when a user account cannot be found or changed."""
    pass


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt.

    Cost factor comes from BCRYPT_ROUNDS (12 by default; tests lower it).
    """
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_ROUNDS", 12))
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe comparison of a candidate password with a stored hash."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash
        return False


def _check_password(password) -> str:
    if password is None:
        raise ValidationError("Missing required fields: password")
    if not isinstance(password, str):
        raise ValidationError("password must be a string")
    min_length = current_app.config.get("PASSWORD_MIN_LENGTH", 6)
    if len(password) < min_length:
        raise ValidationError(f"Password must be at least {min_length} characters")
    return password


def _check_fields(patch: dict) -> None:
    if "username" in patch and len(patch["username"]) < USERNAME_MIN_LENGTH:
        raise ValidationError(f"Username must be at least {USERNAME_MIN_LENGTH} characters")

    if "role" in patch and patch["role"] not in USER_ROLES:
        raise ValidationError(f"Invalid role: {patch['role']}. Must be one of: {', '.join(USER_ROLES)}")

    email = patch.get("email")
    if email and not EMAIL_PATTERN.match(email):
        raise ValidationError("Invalid email format")

    mobile = patch.get("mobile_number")
    pattern = current_app.config.get("MOBILE_NUMBER_PATTERN")
    if mobile and pattern and not re.fullmatch(pattern, mobile):
        raise ValidationError(f"Mobile number must match {pattern}")


def _write(op):
    """Run add/modify + commit as one retryable unit; map username collisions."""
    try:
        return run_orm_with_retry(db.session, op)
    except IntegrityError as exc:
        db.session.rollback()
        raise ConstraintViolation("Username already exists", constraint="users.username", is_unique=True) from exc


def list_users(*, limit: int, offset: int) -> tuple[list[User], int]:
    query = db.session.query(User)
    total = query.count()
    users = query.order_by(User.id.asc()).limit(limit).offset(offset).all()
    return users, total


def get_user(user_id: int) -> User | None:
    return db.session.get(User, user_id)


def create_user(patch: dict, password) -> User:
    """
    Create an account from a validated patch plus a plain-text password.

    Raises:
        ValidationError: field rules above
        ConstraintViolation: username already taken
    """
    _check_fields(patch)
    password_hash = hash_password(_check_password(password))

    def _op():
        user = User(password_hash=password_hash, **patch)
        db.session.add(user)
        db.session.commit()
        return user
    user = _write(_op)
    current_app.logger.info("User %s created with role %s", user.username, user.role)
    return user


def update_user(user_id: int, patch: dict, password=None) -> User:
    """Partial update; the password is only re-hashed when one is supplied."""
    _check_fields(patch)
    if password:
        patch = dict(patch, password_hash=hash_password(_check_password(password)))

    def _op():
        user = db.session.get(User, user_id)
        if user is None:
            raise UserError(f"User {user_id} not found")
        for key, value in patch.items():
            setattr(user, key, value)
        db.session.commit()
        return user
    return _write(_op)


def delete_user(user_id: int) -> None:
    user = db.session.get(User, user_id)
    if user is None:
        raise UserError(f"User {user_id} not found")
    db.session.delete(user)
    db.session.commit()
    current_app.logger.info("User %s deleted", user_id)
