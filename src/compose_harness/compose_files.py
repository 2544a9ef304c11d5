"""
Compose manifest location

Resolves one or more compose file paths into a validated set of files
passed to the compose tool.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Tuple, Union

import yaml

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

# Top-level keys of a version 2/3 compose file that are not services
NON_SERVICE_KEYS = {"version", "services", "networks", "volumes", "secrets", "configs", "name"}


@dataclass(frozen=True)
class ComposeFiles:
    """Ordered set of compose files making up one environment."""

    files: Tuple[Path, ...]

    @classmethod
    def from_paths(cls, *paths: Union[str, Path]) -> "ComposeFiles":
        """
        Validate and collect compose files.

        Args:
            *paths: Compose file paths, later files override earlier ones

        Returns:
            ComposeFiles instance

        Raises:
            ConfigurationError: If no path is given or a path is not a file
        """
        if not paths:
            raise ConfigurationError("A docker-compose file must be specified")

        resolved = []
        for path in paths:
            file_path = Path(path)
            if not file_path.is_file():
                raise ConfigurationError(f"docker-compose file does not exist: {file_path}")
            resolved.append(file_path.absolute())

        return cls(tuple(resolved))

    @property
    def working_directory(self) -> Path:
        """Directory the compose tool runs in."""
        return self.files[0].parent

    def command_arguments(self) -> List[str]:
        """Get the -f arguments for the compose command line."""
        arguments = []
        for file_path in self.files:
            arguments.extend(["-f", str(file_path)])
        return arguments

    def service_names(self) -> List[str]:
        """
        List the services declared across all files.

        Returns:
            Service names in declaration order without duplicates

        Raises:
            ConfigurationError: If a file is not valid YAML
        """
        names: List[str] = []
        for file_path in self.files:
            for name in _services_in_file(file_path):
                if name not in names:
                    names.append(name)
        return names


def _services_in_file(file_path: Path) -> List[str]:
    try:
        with open(file_path, "r") as f:
            document = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid docker-compose file {file_path}: {e}")

    if not document:
        logger.warning(f"Empty docker-compose file: {file_path}")
        return []
    if not isinstance(document, dict):
        raise ConfigurationError(f"docker-compose file {file_path} is not a mapping")

    services = document.get("services")
    if isinstance(services, dict):
        return [str(name) for name in services]

    # Version 1 files declare services at the top level
    return [str(name) for name in document if name not in NON_SERVICE_KEYS]
