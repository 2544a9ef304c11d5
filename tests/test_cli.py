"""
Tests for CLI functionality.
"""

import os
from unittest.mock import patch

import click
import pytest
from click.testing import CliRunner

from compose_harness.cli import cli, parse_http_wait
from compose_harness.composition import DockerComposition
from compose_harness.ports import DockerPort


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def patched_builder(mock_compose):
    """Route every CLI command to the mock compose accessor."""
    with patch(
        "compose_harness.cli._builder",
        side_effect=lambda config, files: DockerComposition.of_compose(mock_compose, config),
    ) as builder:
        yield builder


class TestCLIBasics:
    """Test basic CLI functionality."""

    def test_cli_help(self, runner):
        result = runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        assert "docker-compose environments for integration tests" in result.output
        assert "up" in result.output
        assert "port" in result.output

    def test_cli_version(self, runner):
        with patch.dict(os.environ, {}, clear=True):
            result = runner.invoke(cli, ["version"])

        assert result.exit_code == 0
        assert "compose-harness version 0.1.0" in result.output
        assert "Author: compose-harness contributors" in result.output

    def test_config_show(self, runner):
        with patch.dict(os.environ, {"COMPOSE_HARNESS_PROJECT_NAME": "itest"}, clear=True):
            result = runner.invoke(cli, ["config-show"])

        assert result.exit_code == 0
        assert "Current compose-harness Configuration" in result.output
        assert "itest" in result.output

    def test_up_requires_compose_file(self, runner):
        result = runner.invoke(cli, ["up"])

        assert result.exit_code != 0
        assert "--file" in result.output


class TestParseHttpWait:
    def test_service_and_port(self):
        assert parse_http_wait("web:80") == ("web", 80, "/")

    def test_with_path(self):
        assert parse_http_wait("api:8080:health/ready") == ("api", 8080, "/health/ready")

    @pytest.mark.parametrize("value", ["web", ":80", "web:http"])
    def test_malformed(self, value):
        with pytest.raises(click.BadParameter):
            parse_http_wait(value)


class TestEnvironmentCommands:
    """Test up, down and port against the mock compose accessor."""

    def test_up_and_tear_down(self, runner, compose_file, mock_compose, patched_builder, temp_workspace):
        with patch.object(DockerPort, "is_listening_now", return_value=True):
            result = runner.invoke(
                cli,
                ["--log-dir", str(temp_workspace), "up", "-f", str(compose_file), "--wait-ports", "web"],
            )

        assert result.exit_code == 0, result.output
        assert "Environment is ready" in result.output
        assert "web: 80 -> 127.0.0.1:32768" in result.output
        assert mock_compose.lifecycle_calls() == ["build", "up", "down", "kill", "rm"]

    def test_up_keep_leaves_environment_running(self, runner, compose_file, mock_compose, patched_builder):
        result = runner.invoke(cli, ["up", "-f", str(compose_file), "--keep"])

        assert result.exit_code == 0, result.output
        assert mock_compose.lifecycle_calls() == ["build", "up"]

    def test_up_failure_tears_down(self, runner, compose_file, mock_compose, patched_builder):
        with patch.object(DockerPort, "is_listening_now", return_value=False):
            result = runner.invoke(
                cli,
                ["up", "-f", str(compose_file), "--wait-ports", "web", "--timeout", "0.1"],
            )

        assert result.exit_code == 1
        assert "Failed to start environment" in result.output
        assert mock_compose.lifecycle_calls() == ["build", "up", "down", "kill", "rm"]

    def test_up_rejects_bad_http_wait(self, runner, compose_file, mock_compose, patched_builder):
        result = runner.invoke(cli, ["up", "-f", str(compose_file), "--wait-http", "web"])

        assert result.exit_code != 0
        assert mock_compose.calls == []

    def test_down(self, runner, compose_file, mock_compose, patched_builder):
        result = runner.invoke(cli, ["down", "-f", str(compose_file)])

        assert result.exit_code == 0, result.output
        assert mock_compose.lifecycle_calls() == ["down", "kill", "rm"]

    def test_down_failure(self, runner, compose_file, mock_compose, patched_builder):
        mock_compose.fail("kill", output="daemon unavailable")

        result = runner.invoke(cli, ["down", "-f", str(compose_file)])

        assert result.exit_code == 1
        assert "Teardown failed" in result.output

    def test_port(self, runner, compose_file, patched_builder):
        result = runner.invoke(cli, ["port", "-f", str(compose_file), "web", "80"])

        assert result.exit_code == 0, result.output
        assert result.output.strip() == "127.0.0.1:32768"

    def test_port_internal(self, runner, compose_file, patched_builder):
        result = runner.invoke(cli, ["port", "-f", str(compose_file), "--internal", "web", "80"])

        assert result.output.strip() == "web:80"

    def test_port_not_declared(self, runner, compose_file, patched_builder):
        result = runner.invoke(cli, ["port", "-f", str(compose_file), "web", "443"])

        assert result.exit_code == 1
        assert "No port 443" in result.output
