import os
from datetime import datetime, timedelta, timezone

import jwt
import pytest

# Memory backend and a known signing secret for every test
os.environ["PERSISTENCE_BACKEND"] = "memory"
os.environ["AUTH_JWT_SECRET"] = "test-secret-key-for-session-tokens-0123456789"
os.environ.pop("AUTH_JWT_AUDIENCE", None)

from src.api.main import app  # noqa: E402
from src.api.repositories import InMemoryRepository, get_repository  # noqa: E402


def make_token(user_id: str = "user-1", expires_in: timedelta = timedelta(hours=1), secret=None) -> str:
    now = datetime.now(timezone.utc)
    claims = {"sub": user_id, "email": f"{user_id}@example.com", "iat": now, "exp": now + expires_in}
    return jwt.encode(claims, secret or os.environ["AUTH_JWT_SECRET"], algorithm="HS256")


def auth_headers(user_id: str = "user-1") -> dict:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


class FakeGenerator:
    """Stands in for the hosted model: returns a canned object or raises."""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def generate(self, prompt, schema):
        self.calls.append((prompt, schema))
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def repo():
    repository = InMemoryRepository()
    app.dependency_overrides[get_repository] = lambda: repository
    yield repository
    app.dependency_overrides.pop(get_repository, None)


@pytest.fixture
def token_factory():
    return make_token


@pytest.fixture
def headers():
    return auth_headers


@pytest.fixture
def generator_factory():
    return FakeGenerator
