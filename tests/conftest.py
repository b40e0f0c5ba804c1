# tests/conftest.py
"""
Pytest fixtures: every test gets its own SQLite file and a local backend.
"""

import pytest

import auth
import db
from backend import Identity
from local_backend import LocalBackend
from models import UserProfile


@pytest.fixture(autouse=True)
def local_env(tmp_path, monkeypatch):
    db_file = tmp_path / "tahanet.db"
    monkeypatch.setenv("TAHANET_BACKEND", "local")
    monkeypatch.setenv("TAHANET_DB_FILE", str(db_file))
    monkeypatch.setenv("TAHANET_BCRYPT_ROUNDS", "4")
    monkeypatch.setenv("TAHANET_QUERY_RETRY_DELAY", "0")
    monkeypatch.setenv("TAHANET_ADMIN_USERNAME", "owner")
    monkeypatch.setenv("TAHANET_ADMIN_PASSWORD", "secret123")
    return db_file


@pytest.fixture
def seeded_db(local_env):
    db.init_db("owner", lambda: auth.hash_password("secret123"))
    return local_env


@pytest.fixture
def admin(seeded_db):
    backend = LocalBackend(Identity(principal="owner"))
    backend.save_caller_user_profile(UserProfile(name="Taha", phone="0911111111"))
    return backend


@pytest.fixture
def regular_user(seeded_db):
    """A registered identity with the `user` role and no profile yet."""
    auth.register("ali", "password1")
    return LocalBackend(Identity(principal="ali"))


@pytest.fixture
def basic_package(admin):
    return admin.create_package("Basic 10Mb", 2500)


@pytest.fixture
def subscriber(admin, basic_package):
    return admin.create_subscriber("Ali Hassan", "0912345678", basic_package.id, 1_704_067_200_000_000_000)
