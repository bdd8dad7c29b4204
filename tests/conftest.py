"""
Global pytest configuration and fixtures for the lending bot tests.

This conftest.py provides:
- Custom pytest markers for test categorization
- A clean environment for every test (no credentials, no .env loading)
- Shared configuration and logger fixtures
"""

import os
import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest


# Add src to Python path for imports
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from ftxlendbot.modules import Configuration  # noqa: E402
from ftxlendbot.modules.Configuration import (  # noqa: E402
    BotConfig,
    Credentials,
    LendingPolicy,
    ScheduleConfig,
)


def pytest_configure(config):
    """Configure pytest with custom markers.

    Markers:
    - unit: Fast, isolated tests with no external dependencies
    - slow: Tests that take more than 1 second to run
    """
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, isolated, no external dependencies)"
    )
    config.addinivalue_line("markers", "slow: Slow-running tests (take > 1 second)")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Removes bot settings from the environment and disables .env loading."""
    for name in ("SUB_ACCOUNT", "API_KEY", "SECRET_KEY", "CURRENCY"):
        monkeypatch.delenv(name, raising=False)

    for name in list(os.environ):
        if name.split("_", 1)[0] in ("API", "BOT", "LENDING", "SCHEDULE") and "_" in name:
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(Configuration, "load_dotenv", lambda *_args, **_kwargs: False)
    monkeypatch.chdir(Path(__file__).parent)
    yield
    Configuration.config.clear()


@pytest.fixture
def bot_config():
    return BotConfig(
        credentials=Credentials(
            sub_account="lending",
            api_key="key",
            secret="secret",
            currency="USD",
        ),
        policy=LendingPolicy(),
        schedule=ScheduleConfig(
            cycle_window=5.0,
            retry_interval=0.01,
            max_backoff=0.02,
            max_attempts=3,
        ),
        timeout=30,
        log_file="",
    )


@pytest.fixture
def mock_log():
    return MagicMock()
