"""
config.py
Settings (environment / .env) and logging setup.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

BACKENDS = ("local", "http")


@dataclass(frozen=True)
class Settings:
    backend: str
    api_url: str
    identity_url: str
    db_file: Path
    request_timeout: float
    query_retry: int
    query_retry_delay: float
    bcrypt_rounds: int
    admin_username: str
    admin_password: str
    log_level: str


def _env_number(name: str, default, cast, minimum=None):
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
    if minimum is not None and value < minimum:
        raise ValueError(f"{name} must be at least {minimum}, got {raw!r}")
    return value


def load_settings() -> Settings:
    backend = os.environ.get("TAHANET_BACKEND", "local").strip().lower()
    if backend not in BACKENDS:
        raise ValueError(f"TAHANET_BACKEND must be one of {BACKENDS}, got {backend!r}")

    api_url = os.environ.get("TAHANET_API_URL", "http://localhost:8000").rstrip("/")
    identity_url = os.environ.get("TAHANET_IDENTITY_URL", f"{api_url}/auth").rstrip("/")
    db_file = Path(os.environ.get("TAHANET_DB_FILE") or Path(__file__).with_name("tahanet.db"))

    return Settings(
        backend=backend,
        api_url=api_url,
        identity_url=identity_url,
        db_file=db_file,
        request_timeout=_env_number("TAHANET_REQUEST_TIMEOUT", 15.0, float),
        query_retry=_env_number("TAHANET_QUERY_RETRY", 3, int, minimum=0),
        query_retry_delay=_env_number("TAHANET_QUERY_RETRY_DELAY", 0.25, float, minimum=0),
        bcrypt_rounds=_env_number("TAHANET_BCRYPT_ROUNDS", 12, int),
        admin_username=os.environ.get("TAHANET_ADMIN_USERNAME", "admin"),
        admin_password=os.environ.get("TAHANET_ADMIN_PASSWORD", "admin123"),
        log_level=os.environ.get("TAHANET_LOG_LEVEL", "INFO").upper(),
    )


_logging_configured = False


def setup_logging(level: str | None = None) -> None:
    """Configure the root logger once per process (Streamlit reruns the script)."""
    global _logging_configured
    if _logging_configured:
        return
    logging.basicConfig(
        level=level or load_settings().log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    _logging_configured = True
