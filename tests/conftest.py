"""
Pytest configuration and fixtures for compose-harness tests.

Provides common fixtures and test utilities across all test modules.
"""

import os
import shutil
import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest

from compose_harness.config import HarnessConfig
from compose_harness.logging_config import setup_logging

from .mock_compose import FakeClock, MockDockerCompose


@pytest.fixture
def isolated_test_env() -> Generator[dict[str, str], None, None]:
    """
    Create isolated test environment with clean environment variables.

    Yields:
        Dictionary of original environment variables
    """
    original_env = os.environ.copy()

    for key in list(os.environ.keys()):
        if key.startswith("COMPOSE_HARNESS_") or key.startswith("DOCKER_"):
            del os.environ[key]

    yield original_env

    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def temp_workspace() -> Generator[Path, None, None]:
    """
    Create temporary workspace directory for test files.

    Yields:
        Path to temporary workspace
    """
    temp_dir = tempfile.mkdtemp(prefix="compose_harness_workspace_")
    workspace = Path(temp_dir)

    yield workspace

    shutil.rmtree(temp_dir)


@pytest.fixture
def test_config(isolated_test_env: dict[str, str], temp_workspace: Path) -> HarnessConfig:
    """
    Create test configuration with safe defaults.

    Returns:
        Test configuration instance
    """
    return HarnessConfig(
        log_level="DEBUG",
        verbose=True,
        log_dir=str(temp_workspace / "logs"),
        poll_interval=0.01,
        service_timeout=1.0,
        command_timeout=30.0,
    )


@pytest.fixture
def test_logger(test_config: HarnessConfig):
    """Configure logging for tests."""
    return setup_logging(
        log_dir=test_config.log_dir,
        verbose=test_config.verbose,
        log_level=test_config.log_level,
        enable_file_logging=False,
    )


@pytest.fixture
def mock_compose(isolated_test_env: dict[str, str]) -> MockDockerCompose:
    """Compose accessor with a running 'web' service publishing port 80."""
    compose = MockDockerCompose()
    compose.set_service("web", "80/tcp -> 0.0.0.0:32768\n80/tcp -> [::]:32768\n")
    return compose


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def compose_file(temp_workspace: Path) -> Path:
    """Write a small two-service compose file."""
    path = temp_workspace / "docker-compose.yml"
    path.write_text(
        "services:\n"
        "  web:\n"
        "    image: nginx:alpine\n"
        "    ports:\n"
        "      - \"80\"\n"
        "  db:\n"
        "    image: postgres:16\n"
        "    ports:\n"
        "      - \"5432\"\n"
    )
    return path


# Pytest configuration
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow")
    config.addinivalue_line("markers", "integration: marks tests as integration tests")


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers automatically."""
    for item in items:
        if "integration" in item.nodeid:
            item.add_marker(pytest.mark.integration)

        if any(keyword in item.nodeid for keyword in ["slow", "timeout"]):
            item.add_marker(pytest.mark.slow)
