"""Shared test fixtures for all test modules."""

from __future__ import annotations

import os

# Settings are read at import time.
os.environ.setdefault("AUTH_JWT_SECRET", "test-secret")
os.environ.setdefault("RESEND_API_KEY", "")

import pytest  # noqa: E402

from tests.factories import NOW, make_activities, make_widget  # noqa: E402


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def widget():
    return make_widget()


@pytest.fixture
def activities():
    return make_activities()
