"""Pytest configuration and fixtures."""

import os
from contextlib import ExitStack
from unittest.mock import patch

import pytest

from tests.fakes.fake_supabase import FakeSupabase

DB_MODULES = (
    "app.db.documents",
    "app.db.conversations",
    "app.db.evaluations",
    "app.db.feedback",
    "app.db.insights",
    "app.db.instructions",
)

ADMIN_KEY = "test-admin-key"

TEST_ENV = {
    "SUPABASE_URL": "https://test.supabase.co",
    "SUPABASE_SERVICE_ROLE_KEY": "test-key",
    "OPENAI_API_KEY": "test-openai-key",
    "ASSISTANT_ENV": "test",
    "ADMIN_API_KEY": ADMIN_KEY,
    "EVAL_RETRY_BASE_DELAY_SECONDS": "0",
}

# Test modules import app.main at collection time, before any fixture runs
os.environ.update(TEST_ENV)


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ.update(TEST_ENV)


@pytest.fixture
def fake_db():
    """Route every app.db module to one in-memory Supabase double."""
    db = FakeSupabase()
    with ExitStack() as stack:
        for module in DB_MODULES:
            stack.enter_context(patch(f"{module}.get_supabase", return_value=db))
        yield db


@pytest.fixture
def settings(monkeypatch):
    """Cached settings object; override fields with monkeypatch.setattr."""
    from app.core.config import get_settings

    return get_settings()
