"""
Tests for logging configuration.
"""

import logging
from pathlib import Path

from compose_harness.logging_config import (
    SubprocessLogHandler,
    mask_sensitive_data,
    setup_logging,
)


class TestMaskSensitiveData:
    def test_masks_password_variables(self):
        message = "docker compose up -e POSTGRES_PASSWORD=hunter2 -e API_TOKEN=abc123"

        masked = mask_sensitive_data(message)

        assert "hunter2" not in masked
        assert "abc123" not in masked
        assert "POSTGRES_PASSWORD=***" in masked

    def test_masks_url_credentials(self):
        assert mask_sensitive_data("postgresql://app:s3cret@db:5432/app") == "postgresql://app:***@db:5432/app"

    def test_leaves_plain_text(self):
        assert mask_sensitive_data("docker compose ps") == "docker compose ps"


class TestSetupLogging:
    def test_console_only(self, temp_workspace):
        logger = setup_logging(log_dir=str(temp_workspace / "logs"), log_level="WARNING")

        assert logger.name == "compose_harness"
        assert logging.getLogger().level == logging.WARNING
        assert not (temp_workspace / "logs").exists()

    def test_configured_from_harness_settings(self, test_logger):
        assert test_logger.name == "compose_harness"
        assert logging.getLogger().level == logging.DEBUG

    def test_file_logging_creates_log_file(self, temp_workspace):
        setup_logging(log_dir=str(temp_workspace), verbose=True, enable_file_logging=True)

        assert logging.getLogger().level == logging.DEBUG
        assert list(temp_workspace.glob("compose_harness_*.log"))


class TestSubprocessLogHandler:
    def test_writes_dedicated_file(self, temp_workspace):
        handler = SubprocessLogHandler("itest_up", str(temp_workspace), write_to_file=True)

        handler.log_command(["docker", "compose", "up", "-d", "DB_PASSWORD=x"])
        handler.log_output("Container web-1 Started")
        handler.log_completion(0, 1.5)

        log_file = Path(handler.get_log_file_path())
        assert log_file.parent == temp_workspace / "compose"
        content = log_file.read_text()
        assert "Executing command: docker compose up -d DB_PASSWORD=***" in content
        assert "Container web-1 Started" in content
        assert "itest_up completed successfully" in content

    def test_reuses_existing_file_handler(self, temp_workspace):
        first = SubprocessLogHandler("itest_reuse", str(temp_workspace), write_to_file=True)
        second = SubprocessLogHandler("itest_reuse", str(temp_workspace), write_to_file=True)

        assert second.get_log_file_path() == first.get_log_file_path()
        assert len(second.logger.handlers) == 1

    def test_no_file_by_default(self, temp_workspace):
        handler = SubprocessLogHandler("itest_quiet", str(temp_workspace))

        assert handler.get_log_file_path() is None
