"""
Docker host description

A DockerMachine says which daemon the compose tool talks to and which
address the test process uses to reach ports published by that daemon.
"""

import logging
import os
from dataclasses import dataclass, field, replace
from typing import Dict, Mapping, Optional
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

LOCALHOST = "127.0.0.1"

# Variables forwarded from the calling environment to every tool invocation
DOCKER_ENVIRONMENT_VARIABLES = ("DOCKER_HOST", "DOCKER_TLS_VERIFY", "DOCKER_CERT_PATH")

WILDCARD_HOSTS = {"", "0.0.0.0", "::", "[::]"}


@dataclass(frozen=True)
class DockerMachine:
    """Docker daemon host and the environment used to reach it."""

    ip: str = LOCALHOST
    environment: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def local_machine(cls, environ: Optional[Mapping[str, str]] = None) -> "DockerMachine":
        """
        Describe the daemon configured in the calling environment.

        Args:
            environ: Environment to read (defaults to os.environ)

        Returns:
            DockerMachine for DOCKER_HOST, or localhost when unset
        """
        environ = os.environ if environ is None else environ
        forwarded = {
            name: environ[name] for name in DOCKER_ENVIRONMENT_VARIABLES if environ.get(name)
        }
        ip = host_from_docker_host(forwarded.get("DOCKER_HOST"))
        logger.debug(f"Local docker machine resolved to {ip}")
        return cls(ip=ip, environment=forwarded)

    @classmethod
    def remote_machine(cls, host: str, cert_path: Optional[str] = None) -> "DockerMachine":
        """
        Describe a remote daemon reachable over TCP.

        Args:
            host: Hostname or IP of the remote daemon, optionally with a port
            cert_path: Directory of TLS client certificates; enables TLS

        Returns:
            DockerMachine for the remote daemon
        """
        default_port = 2376 if cert_path else 2375
        address = host if ":" in host else f"{host}:{default_port}"
        environment = {"DOCKER_HOST": f"tcp://{address}"}
        if cert_path:
            environment["DOCKER_TLS_VERIFY"] = "1"
            environment["DOCKER_CERT_PATH"] = cert_path
        return cls(ip=host_from_docker_host(environment["DOCKER_HOST"]), environment=environment)

    def with_environment(self, **variables: str) -> "DockerMachine":
        """Return a copy with additional environment variables."""
        environment = dict(self.environment)
        environment.update(variables)
        return replace(self, environment=environment)

    def process_environment(self, base: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        """Build the environment for a tool subprocess."""
        env = dict(os.environ if base is None else base)
        env.update(self.environment)
        return env

    def resolve_host(self, reported_host: str) -> str:
        """Map a wildcard bind address reported by docker to this machine's ip."""
        if reported_host in WILDCARD_HOSTS:
            return self.ip
        return reported_host


def host_from_docker_host(docker_host: Optional[str]) -> str:
    """Extract the host from a DOCKER_HOST value; unix sockets map to localhost."""
    if not docker_host:
        return LOCALHOST
    parsed = urlparse(docker_host)
    if parsed.scheme in ("tcp", "http", "https") and parsed.hostname:
        return parsed.hostname
    return LOCALHOST
