"""Pytest configuration for test discovery."""

import sys
from pathlib import Path

import pytest

# Ensure the project root is in sys.path for proper imports
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from dockerexec.config import Settings, reset_settings  # noqa: E402


@pytest.fixture
def settings() -> Settings:
    return Settings(
        docker_url="tcp://127.0.0.1:2375",
        auth_mode="simple",
        helper_path="/opt/hadoop/bin/container-executor",
        client="docker",
        strategy="create_start",
        watch_events=False,
        verify_daemon=False,
    )


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    reset_settings()
    yield
    reset_settings()
