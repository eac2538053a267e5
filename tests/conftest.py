"""tests/conftest.py

Pytest configuration and shared fixtures for the LMS assistant test suite.
"""

from __future__ import annotations

# Third-Party Libraries
import pytest
from fastapi.testclient import TestClient

# Local Modules
from lms_agent.api import create_app
from lms_agent.auth import issue_token
from lms_agent.config import AgentSettings
from lms_agent.registry import ToolRegistry
from lms_agent.store import InMemoryStore, User
from lms_agent.tools import build_lms_registry

from fakes import FakeEngine


@pytest.fixture
def settings() -> AgentSettings:
    """Settings with pacing disabled and a fixed signing secret."""
    return AgentSettings(
        _env_file=None,
        ollama_model="qwen2.5:7b",
        direct_emit_delay=0.0,
        jwt_secret="test-secret",
    )


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def professor(store: InMemoryStore) -> User:
    return store.create_user(
        name="Dr. Sarah Johnson",
        email="prof1@college.edu",
        password="prof123",
        role="professor",
    )


@pytest.fixture
def admin(store: InMemoryStore) -> User:
    return store.create_user(
        name="Admin User",
        email="admin@college.edu",
        password="admin123",
        role="admin",
    )


@pytest.fixture
def registry(store: InMemoryStore) -> ToolRegistry:
    return build_lms_registry(store)


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def client(
    settings: AgentSettings,
    store: InMemoryStore,
    fake_engine: FakeEngine,
) -> TestClient:
    """TestClient over an app wired to the in-memory store and fake engine."""
    app = create_app(settings=settings, store=store, engine=fake_engine)
    return TestClient(app)


@pytest.fixture
def admin_headers(admin: User, settings: AgentSettings) -> dict[str, str]:
    return {"Authorization": f"Bearer {issue_token(admin.id, settings)}"}
