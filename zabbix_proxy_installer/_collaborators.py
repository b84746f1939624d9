"""Collaborator interfaces the reconciler depends on.

The reconciler never shells out directly. It talks to the host through the
narrow protocols below, bundled in :class:`Collaborators`, and reads current
state through :class:`SystemState`, which forwards every query to a
collaborator so nothing observed in one step leaks into the next.
"""

from __future__ import annotations

from collections.abc import Collection, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from zabbix_proxy_installer._installer_models import (
    MARKER_TABLE,
    PROXY_PACKAGES,
    DirectorySpec,
    DirectoryStatus,
    InstallLayout,
    NetworkConfig,
)


class PackageManager(Protocol):
    def update_index(self) -> None: ...

    def install(self, names: Collection[str]) -> None: ...

    def install_file(self, path: Path) -> None: ...

    def installed_version(self, name: str) -> str | None: ...


class RepositoryRegistrar(Protocol):
    def fetch_available_versions(self) -> Sequence[str]: ...

    def register_repository(self, version: str) -> None: ...

    def registered_version(self) -> str | None: ...


class DatabaseClient(Protocol):
    def execute(self, sql: str, *, database: str | None = None) -> list[list[str]]: ...

    def table_exists(self, database: str, table: str) -> bool: ...

    def ping(self) -> bool: ...


class ServiceManager(Protocol):
    def start(self, name: str) -> None: ...

    def stop(self, name: str) -> None: ...

    def restart(self, name: str) -> None: ...

    def enable_on_boot(self, name: str) -> None: ...

    def is_active(self, name: str) -> bool: ...

    def is_enabled(self, name: str) -> bool: ...


class NetworkConfigurator(Protocol):
    def apply_static_config(self, network: NetworkConfig, cidr: int) -> None: ...

    def current_address(self, interface: str) -> str | None:
        """Return ``address/prefix`` for *interface*, or ``None``."""
        ...

    def config_matches(self, network: NetworkConfig, cidr: int) -> bool:
        """Return whether the persisted settings already describe *network*."""
        ...


class HostnameConfigurator(Protocol):
    def current_hostname(self) -> str: ...

    def set_hostname(self, name: str) -> None: ...

    def hosts_entry_present(self, name: str) -> bool: ...

    def ensure_hosts_entry(self, name: str) -> None: ...


class Filesystem(Protocol):
    def read_text(self, path: Path) -> str | None: ...

    def write_text(
        self, path: Path, content: str, *, mode: int = 0o640, group: str | None = None
    ) -> None: ...

    def inspect_directory(self, path: Path) -> DirectoryStatus | None: ...

    def ensure_directory(self, spec: DirectorySpec) -> None: ...


class HostResources(Protocol):
    def memory_mb(self) -> int: ...

    def free_disk_gb(self, path: Path) -> float: ...


class PortProbe(Protocol):
    def is_listening(self, port: int) -> bool: ...

    def can_connect(self, host: str, port: int, timeout: float) -> bool: ...


class Prompter(Protocol):
    def ask(self, question: str) -> bool: ...


@dataclass(frozen=True, slots=True)
class CannedPrompter:
    """Answer every question with a fixed value (non-interactive mode).

    Examples
    --------
    >>> CannedPrompter(answer=False).ask("Continue anyway?")
    False
    """

    answer: bool

    def ask(self, question: str) -> bool:
        return self.answer


@dataclass(frozen=True, slots=True)
class Collaborators:
    """Every external dependency of one reconciliation run."""

    packages: PackageManager
    repository: RepositoryRegistrar
    database: DatabaseClient
    services: ServiceManager
    network: NetworkConfigurator
    hostname: HostnameConfigurator
    filesystem: Filesystem
    resources: HostResources
    ports: PortProbe
    prompter: Prompter


class SystemState:
    """Live, uncached view of the host.

    Every property re-queries its collaborator; callers that need a stable
    value within a step should read it once into a local.
    """

    def __init__(self, collaborators: Collaborators, layout: InstallLayout) -> None:
        self._c = collaborators
        self.layout = layout

    def package_version(self, name: str) -> str | None:
        return self._c.packages.installed_version(name)

    def packages_installed(self, names: Collection[str] = PROXY_PACKAGES) -> bool:
        return all(self.package_version(name) is not None for name in names)

    def release_version(self) -> str | None:
        return self._c.repository.registered_version()

    def config_text(self) -> str | None:
        return self._c.filesystem.read_text(self.layout.config_path)

    def directory(self, path: Path) -> DirectoryStatus | None:
        return self._c.filesystem.inspect_directory(path)

    def interface_address(self, interface: str) -> str | None:
        return self._c.network.current_address(interface)

    def network_config_matches(self, network: NetworkConfig, cidr: int) -> bool:
        return self._c.network.config_matches(network, cidr)

    def hostname(self) -> str:
        return self._c.hostname.current_hostname()

    def hosts_entry_present(self, name: str) -> bool:
        return self._c.hostname.hosts_entry_present(name)

    def schema_present(self, database: str, table: str = MARKER_TABLE) -> bool:
        return self._c.database.table_exists(database, table)

    def database_reachable(self) -> bool:
        return self._c.database.ping()

    def service_active(self, name: str) -> bool:
        return self._c.services.is_active(name)

    def service_enabled(self, name: str) -> bool:
        return self._c.services.is_enabled(name)

    def port_listening(self, port: int) -> bool:
        return self._c.ports.is_listening(port)

    def server_reachable(self, host: str, port: int, timeout: float) -> bool:
        return self._c.ports.can_connect(host, port, timeout)

    def memory_mb(self) -> int:
        return self._c.resources.memory_mb()

    def free_disk_gb(self, path: Path = Path("/")) -> float:
        return self._c.resources.free_disk_gb(path)


__all__ = [
    "CannedPrompter",
    "Collaborators",
    "DatabaseClient",
    "Filesystem",
    "HostResources",
    "HostnameConfigurator",
    "NetworkConfigurator",
    "PackageManager",
    "PortProbe",
    "Prompter",
    "RepositoryRegistrar",
    "ServiceManager",
    "SystemState",
]
