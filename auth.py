"""
auth.py
Authentication utilities (bcrypt hashing, verify, login, register, change password).

Local mode keeps identities in SQLite. In http mode credentials are exchanged with
the external identity provider for a bearer token; nothing is stored locally.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

import bcrypt
import requests

import config
import db
from backend import BackendError, Identity

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


def _to_bcrypt_secret(password: str) -> bytes:
    """
    bcrypt only uses the first 72 BYTES of the password.
    We truncate to 72 bytes to avoid ValueError and to make behavior explicit.
    """
    pw = password.encode("utf-8")
    if len(pw) > 72:
        pw = pw[:72]
    return pw


def hash_password(password: str, rounds: int | None = None) -> str:
    """
    Returns a bcrypt hash as a UTF-8 string (stored in SQLite).
    """
    secret = _to_bcrypt_secret(password)
    salt = bcrypt.gensalt(rounds=rounds or config.load_settings().bcrypt_rounds)
    hashed = bcrypt.hashpw(secret, salt)
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against stored bcrypt hash.
    """
    secret = _to_bcrypt_secret(password)
    stored = password_hash.encode("utf-8")
    return bcrypt.checkpw(secret, stored)


def get_identity_row(username: str):
    return db.fetch_one("SELECT * FROM identities WHERE principal = ?", (username,))


def _remote_login(settings: config.Settings, username: str, password: str) -> Identity | None:
    try:
        resp = requests.post(
            f"{settings.identity_url}/login",
            json={"username": username, "password": password},
            timeout=settings.request_timeout,
        )
    except requests.exceptions.RequestException as e:
        raise BackendError(f"Identity provider unreachable: {e.__class__.__name__}") from None
    if resp.status_code in (400, 401, 403):
        return None
    if not resp.ok:
        raise BackendError(f"Identity provider error {resp.status_code}")
    body = resp.json()
    return Identity(principal=body["principal"], token=body.get("token"))


def login(username: str, password: str) -> Identity | None:
    settings = config.load_settings()
    if settings.backend == "http":
        return _remote_login(settings, username, password)

    row = get_identity_row(username)
    if not row or not verify_password(password, row["password_hash"]):
        logger.info("Failed login for %r", username)
        return None
    return Identity(principal=row["principal"])


def validate_new_password(new1: str, new2: str) -> str | None:
    if len(new1) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters."
    if new1 != new2:
        return "Passwords do not match."
    return None


def register(username: str, password: str) -> Identity:
    """Create a local identity with the `user` role. Raises BackendError if the name is taken."""
    username = username.strip()
    if not username:
        raise BackendError("Username is required.")
    if get_identity_row(username):
        raise BackendError("This username is already registered.")
    now = datetime.now(timezone.utc).isoformat(timespec="seconds")
    with db.get_conn() as conn:
        conn.execute(
            "INSERT INTO identities(principal, password_hash, created_at) VALUES(?,?,?)",
            (username, hash_password(password), now),
        )
        conn.execute(
            "INSERT INTO user_roles(principal, role) VALUES(?, 'user') ON CONFLICT(principal) DO NOTHING",
            (username,),
        )
    logger.info("Registered identity %r", username)
    return Identity(principal=username)


def change_password(username: str, new_password: str) -> None:
    new_hash = hash_password(new_password)
    db.execute(
        "UPDATE identities SET password_hash = ? WHERE principal = ?",
        (new_hash, username),
    )
