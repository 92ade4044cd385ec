"""
Pytest configuration and shared fixtures.

Test env vars are set here before any wxmp import, since settings are read
once at import time. Values already in the environment take precedence.
"""

import json
import os

import pytest

PLAIN_TOKEN = "GreedIsGood"
STRICT_APP_ID = "wxabb8e5e80f591861"
STRICT_KEY = "h7ZycbpEh2vNdfkYulfw9pG95HjLYwmrKBFeqIktff6"

TEST_ACCOUNTS = {
    "test": {
        "account_id": "gh_de0f036ce08f",
        "app_id": "wxd3a0f6c8176edcab",
        "token": PLAIN_TOKEN,
        "mode": "plain",
    },
    "mp": {
        "account_id": "gh_b4f0e22ae50e",
        "app_id": STRICT_APP_ID,
        "token": PLAIN_TOKEN,
        "key": STRICT_KEY,
        "mode": "strict",
    },
    "mixed": {
        "account_id": "gh_b4f0e22ae50e",
        "app_id": STRICT_APP_ID,
        "token": PLAIN_TOKEN,
        "key": STRICT_KEY,
        "mode": "permissive",
    },
}

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_wxmp.db")
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ.setdefault("ACCOUNTS", json.dumps(TEST_ACCOUNTS))

# Clear settings cache before any app imports to ensure test env vars are used
from wxmp.config import get_settings, get_account_contexts  # noqa: E402
get_settings.cache_clear()
get_account_contexts.cache_clear()


@pytest.fixture
def plain_ctx():
    return get_account_contexts()["test"]


@pytest.fixture
def strict_ctx():
    return get_account_contexts()["mp"]


@pytest.fixture
def permissive_ctx():
    return get_account_contexts()["mixed"]
