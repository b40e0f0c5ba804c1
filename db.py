"""
db.py
SQLite helpers + initialization for the local backend (creates DB/tables, seeds the owner account).
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable

import config

logger = logging.getLogger(__name__)


@contextmanager
def get_conn():
    conn = sqlite3.connect(config.load_settings().db_file, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
        conn.commit()
    finally:
        conn.close()


def execute(sql: str, params: tuple = ()) -> int:
    with get_conn() as conn:
        cur = conn.execute(sql, params)
        return cur.lastrowid


def execute_count(sql: str, params: tuple = ()) -> int:
    """Run a write and return the number of affected rows."""
    with get_conn() as conn:
        cur = conn.execute(sql, params)
        return cur.rowcount


def fetch_one(sql: str, params: tuple = ()):
    with get_conn() as conn:
        cur = conn.execute(sql, params)
        return cur.fetchone()


def fetch_all(sql: str, params: tuple = ()) -> list[sqlite3.Row]:
    with get_conn() as conn:
        cur = conn.execute(sql, params)
        return cur.fetchall()


def _create_tables() -> None:
    with get_conn() as conn:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS identities (
                principal TEXT PRIMARY KEY,
                password_hash TEXT NOT NULL,
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS user_roles (
                principal TEXT PRIMARY KEY,
                role TEXT NOT NULL CHECK(role IN ('admin','user','guest'))
            );

            CREATE TABLE IF NOT EXISTS user_profiles (
                principal TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                phone TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS packages (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                price_usd INTEGER NOT NULL CHECK(price_usd >= 0)
            );

            CREATE TABLE IF NOT EXISTS subscribers (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                full_name TEXT NOT NULL,
                phone TEXT NOT NULL UNIQUE,
                package_id INTEGER NOT NULL,
                subscription_start_date INTEGER NOT NULL,
                active INTEGER NOT NULL DEFAULT 1,
                claimed_by TEXT,
                FOREIGN KEY(package_id) REFERENCES packages(id)
            );

            CREATE TABLE IF NOT EXISTS billing_months (
                subscriber_id INTEGER NOT NULL,
                year INTEGER NOT NULL,
                month INTEGER NOT NULL CHECK(month BETWEEN 1 AND 12),
                due INTEGER NOT NULL DEFAULT 0,
                paid INTEGER NOT NULL DEFAULT 0,
                PRIMARY KEY(subscriber_id, year, month),
                FOREIGN KEY(subscriber_id) REFERENCES subscribers(id) ON DELETE CASCADE
            );
            """
        )


def init_db(admin_username: str, admin_hash: Callable[[], str]) -> None:
    """
    Initialize the database.
    - Create tables
    - Insert the owner identity with the admin role if no admin exists yet
      (`admin_hash` is only called in that case; bcrypt is slow on purpose)
    """
    _create_tables()

    admin = fetch_one("SELECT principal FROM user_roles WHERE role = 'admin' LIMIT 1")
    if admin:
        return

    now = datetime.now(timezone.utc).isoformat(timespec="seconds")
    with get_conn() as conn:
        conn.execute(
            """
            INSERT INTO identities(principal, password_hash, created_at) VALUES(?,?,?)
            ON CONFLICT(principal) DO UPDATE SET password_hash=excluded.password_hash
            """,
            (admin_username, admin_hash(), now),
        )
        conn.execute(
            """
            INSERT INTO user_roles(principal, role) VALUES(?, 'admin')
            ON CONFLICT(principal) DO UPDATE SET role=excluded.role
            """,
            (admin_username,),
        )
    logger.info("Seeded owner account %r", admin_username)
