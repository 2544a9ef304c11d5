"""
Tests for container handles and the container cache.
"""

from unittest.mock import patch

import pytest

from compose_harness.container import Container, ContainerCache
from compose_harness.errors import ContainerNotRunningError, PortNotExposedError
from compose_harness.models import SuccessOrFailure
from compose_harness.ports import DockerPort
from compose_harness.waiting import ReadinessWaiter


@pytest.fixture
def cache(mock_compose, fake_clock):
    waiter = ReadinessWaiter(0.05, clock=fake_clock, sleep=fake_clock.sleep)
    return ContainerCache(mock_compose, mock_compose.machine, waiter)


class TestContainerCache:
    """Test handle identity guarantees."""

    def test_same_name_returns_same_instance(self, cache):
        assert cache.get("web") is cache.get("web")

    def test_different_names_return_distinct_instances(self, cache):
        web = cache.get("web")
        db = cache.get("db")

        assert web is not db
        assert web.name == "web"
        assert db.name == "db"

    def test_membership_and_size(self, cache):
        cache.get("web")
        cache.get("db")
        cache.get("web")

        assert "web" in cache
        assert "cache" not in cache
        assert len(cache) == 2
        assert cache.names() == ["web", "db"]

    def test_handles_do_not_query_on_creation(self, cache, mock_compose):
        cache.get("web")

        assert mock_compose.calls == []


class TestContainer:
    """Test the container view against the mock compose accessor."""

    def test_is_running_queries_each_time(self, cache, mock_compose):
        web = cache.get("web")
        assert web.is_running()

        mock_compose.running.discard("web")

        assert not web.is_running()

    def test_port_mapped_externally(self, cache):
        port = cache.get("web").port_mapped_externally_to(80)

        assert port == DockerPort("127.0.0.1", 32768, 80)

    def test_port_mapped_internally(self, cache):
        assert cache.get("web").port_mapped_internally_to(80) == DockerPort("web", 80, 80)

    def test_port_errors(self, cache, mock_compose):
        with pytest.raises(PortNotExposedError):
            cache.get("web").port_mapped_externally_to(443)

        mock_compose.set_service("db", running=False)
        with pytest.raises(ContainerNotRunningError):
            cache.get("db").port_mapped_externally_to(5432)

    def test_ports_lists_every_declared_port(self, cache, mock_compose):
        mock_compose.set_service("proxy", "80/tcp -> 0.0.0.0:1080\n443/tcp -> 0.0.0.0:1443")

        ports = cache.get("proxy").ports()

        assert [p.internal_port for p in ports] == [80, 443]

    def test_check_ports_open_lists_closed_ports(self, cache, mock_compose):
        mock_compose.set_service("proxy", "80/tcp -> 0.0.0.0:1080\n443/tcp -> 0.0.0.0:1443")

        with patch.object(DockerPort, "is_listening_now", autospec=True) as listening:
            listening.side_effect = lambda port, *args: port.internal_port == 80
            outcome = cache.get("proxy").check_ports_open()

        assert outcome.failed()
        assert "443" in outcome.failure_message()
        assert "80 (" not in outcome.failure_message()

    def test_no_declared_ports_counts_as_open(self, cache, mock_compose):
        mock_compose.set_service("worker", "")

        assert cache.get("worker").are_all_ports_open()

    def test_wait_for_ports_true_once_open(self, cache, fake_clock):
        results = iter([False, False, True])

        with patch.object(DockerPort, "is_listening_now", side_effect=lambda *a, **k: next(results)):
            assert cache.get("web").wait_for_ports(timeout=5)

        assert len(fake_clock.sleeps) == 2

    def test_wait_for_ports_false_on_timeout(self, cache, fake_clock):
        with patch.object(DockerPort, "is_listening_now", return_value=False):
            assert cache.get("web").wait_for_ports(timeout=1) is False

        assert sum(fake_clock.sleeps) == pytest.approx(1.0)

    def test_wait_for_ports_connect_timeout_within_wait(self, cache):
        with patch.object(DockerPort, "is_listening_now", return_value=True) as listening:
            cache.get("web").wait_for_ports(timeout=0.3)

        listening.assert_called_once_with(0.3)

    def test_wait_for_http_port_request_timeout_within_wait(self, cache):
        with patch.object(DockerPort, "check_http", return_value=SuccessOrFailure.success()) as check:
            cache.get("web").wait_for_http_port(80, str, timeout=2)

        assert check.call_args[0][1] == 2

    def test_wait_for_ports_retries_while_not_running(self, cache, mock_compose, fake_clock):
        mock_compose.running.discard("web")

        assert cache.get("web").wait_for_ports(timeout=0.2) is False

    def test_wait_for_http_port(self, cache):
        outcomes = iter([SuccessOrFailure.failure("refused"), SuccessOrFailure.success()])

        with patch.object(DockerPort, "check_http", side_effect=lambda *a, **k: next(outcomes)) as check:
            assert cache.get("web").wait_for_http_port(80, lambda p: "http://x/", timeout=5)

        assert check.call_count == 2

    def test_wait_for_http_port_false_on_timeout(self, cache):
        with patch.object(DockerPort, "check_http", return_value=SuccessOrFailure.failure("503")):
            assert cache.get("web").wait_for_http_port(80, lambda p: "http://x/", timeout=1) is False

    def test_wait_for_http_port_undeclared_port_raises(self, cache):
        with pytest.raises(PortNotExposedError):
            cache.get("web").wait_for_http_port(8080, lambda p: "http://x/", timeout=1)

    def test_check_http_port_uses_external_endpoint(self, cache):
        with patch.object(DockerPort, "check_http", autospec=True) as check:
            check.return_value = SuccessOrFailure.success()
            cache.get("web").check_http_port(80, str, 3.0)

        endpoint, builder, timeout = check.call_args[0]
        assert endpoint == DockerPort("127.0.0.1", 32768, 80)
        assert timeout == 3.0

    def test_repr(self, cache):
        assert repr(cache.get("web")) == "Container(name='web')"

    def test_handle_type(self, cache):
        assert isinstance(cache.get("web"), Container)
