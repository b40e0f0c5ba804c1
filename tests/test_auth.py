import pytest
import requests

import auth
from backend import BackendError


def test_hash_and_verify(local_env):
    h = auth.hash_password("secret123")
    assert h.startswith("$2")
    assert auth.verify_password("secret123", h)
    assert not auth.verify_password("wrong", h)


def test_passwords_past_72_bytes_are_truncated(local_env):
    h = auth.hash_password("a" * 72 + "tail-one")
    assert auth.verify_password("a" * 72 + "tail-two", h)


def test_local_login(seeded_db):
    identity = auth.login("owner", "secret123")
    assert identity.principal == "owner"
    assert identity.token is None
    assert auth.login("owner", "nope") is None
    assert auth.login("ghost", "secret123") is None


def test_register_and_change_password(seeded_db):
    auth.register("  ali ", "password1")
    assert auth.login("ali", "password1").principal == "ali"

    with pytest.raises(BackendError, match="already registered"):
        auth.register("ali", "another1")
    with pytest.raises(BackendError, match="required"):
        auth.register("   ", "password1")

    auth.change_password("ali", "password2")
    assert auth.login("ali", "password1") is None
    assert auth.login("ali", "password2") is not None


def test_validate_new_password():
    assert auth.validate_new_password("abc", "abc") == "Password must be at least 6 characters."
    assert auth.validate_new_password("abcdef", "abcdeg") == "Passwords do not match."
    assert auth.validate_new_password("abcdef", "abcdef") is None


class _Resp:
    def __init__(self, status_code, body=None):
        self.status_code = status_code
        self.ok = status_code < 400
        self._body = body

    def json(self):
        return self._body


@pytest.fixture
def remote(monkeypatch):
    monkeypatch.setenv("TAHANET_BACKEND", "http")
    monkeypatch.setenv("TAHANET_IDENTITY_URL", "https://id.example")
    calls = []

    def install(response=None, exc=None):
        def fake_post(url, json=None, timeout=None):
            calls.append((url, json))
            if exc:
                raise exc
            return response

        monkeypatch.setattr(auth.requests, "post", fake_post)
        return calls

    return install


def test_remote_login_returns_token(remote):
    calls = remote(_Resp(200, {"principal": "p-1", "token": "abc"}))
    identity = auth.login("ali", "pw")
    assert (identity.principal, identity.token) == ("p-1", "abc")
    assert calls == [("https://id.example/login", {"username": "ali", "password": "pw"})]


def test_remote_login_rejected(remote):
    remote(_Resp(401))
    assert auth.login("ali", "bad") is None


def test_remote_login_failures(remote):
    remote(_Resp(500))
    with pytest.raises(BackendError, match="Identity provider error 500"):
        auth.login("ali", "pw")

    remote(exc=requests.exceptions.ConnectionError())
    with pytest.raises(BackendError, match="unreachable"):
        auth.login("ali", "pw")
