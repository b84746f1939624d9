from __future__ import annotations

import sys
from collections.abc import Collection, Sequence
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from zabbix_proxy_installer._collaborators import Collaborators  # noqa: E402
from zabbix_proxy_installer._installer_errors import CollaboratorFailure  # noqa: E402
from zabbix_proxy_installer._installer_models import (  # noqa: E402
    RELEASE_PACKAGE,
    DesiredState,
    DirectorySpec,
    DirectoryStatus,
    InstallLayout,
    NetworkConfig,
)

SCHEMA_SQL = "CREATE TABLE hosts (hostid bigint unsigned NOT NULL);\n"


class FakeHost:
    """In-memory Debian host implementing every collaborator protocol.

    Every call, reads included, is appended to ``calls`` as
    ``(collaborator, method)`` so tests can assert what a run touched.
    """

    def __init__(self, layout: InstallLayout | None = None) -> None:
        self.layout = layout or InstallLayout()
        self.calls: list[tuple[str, str]] = []
        self.available_versions: list[str] = ["5.0", "6.0", "6.4", "7.0"]
        self.packages: dict[str, str] = {}
        self.tables: set[tuple[str, str]] = set()
        self.sql: list[tuple[str, str | None]] = []
        self.database_up = True
        self.active: set[str] = set()
        self.enabled: set[str] = set()
        self.service_starts = True
        self.addresses: dict[str, str] = {}
        self.network_configs: dict[str, tuple[NetworkConfig, int]] = {}
        self.network_applies = True
        self.hostname_value = "debian"
        self.hosts_names: set[str] = set()
        self.files: dict[Path, str] = {}
        self.file_modes: dict[Path, tuple[int, str | None]] = {}
        self.directories: dict[Path, DirectoryStatus] = {}
        self.memory = 2048
        self.disk = 20.0
        self.server_reachable = True
        self.answers: list[bool] = []
        self.default_answer = False
        self.questions: list[str] = []
        self.failures: dict[tuple[str, str], CollaboratorFailure] = {}

    def _record(self, collaborator: str, method: str) -> None:
        self.calls.append((collaborator, method))
        failure = self.failures.get((collaborator, method))
        if failure is not None:
            raise failure

    def mutations(self) -> list[tuple[str, str]]:
        readonly = {
            "installed_version",
            "fetch_available_versions",
            "registered_version",
            "table_exists",
            "ping",
            "is_active",
            "is_enabled",
            "current_address",
            "config_matches",
            "current_hostname",
            "hosts_entry_present",
            "read_text",
            "inspect_directory",
            "memory_mb",
            "free_disk_gb",
            "is_listening",
            "can_connect",
            "ask",
        }
        return [call for call in self.calls if call[1] not in readonly]

    def collaborators(self) -> Collaborators:
        return Collaborators(
            packages=_Packages(self),
            repository=_Repository(self),
            database=_Database(self),
            services=_Services(self),
            network=_Network(self),
            hostname=_Hostname(self),
            filesystem=_Filesystem(self),
            resources=_Resources(self),
            ports=_Ports(self),
            prompter=_Prompter(self),
        )


class _Packages:
    def __init__(self, host: FakeHost) -> None:
        self.host = host

    def update_index(self) -> None:
        self.host._record("packages", "update_index")

    def install(self, names: Collection[str]) -> None:
        self.host._record("packages", "install")
        for name in names:
            self.host.packages[name] = "1:7.0.0-1+debian12"
            if name == "zabbix-sql-scripts":
                self.host.files[self.host.layout.schema_path] = SCHEMA_SQL

    def install_file(self, path: Path) -> None:
        self.host._record("packages", "install_file")

    def installed_version(self, name: str) -> str | None:
        self.host._record("packages", "installed_version")
        return self.host.packages.get(name)


class _Repository:
    def __init__(self, host: FakeHost) -> None:
        self.host = host

    def fetch_available_versions(self) -> Sequence[str]:
        self.host._record("repository", "fetch_available_versions")
        return list(self.host.available_versions)

    def register_repository(self, version: str) -> None:
        self.host._record("repository", "register_repository")
        self.host.packages[RELEASE_PACKAGE] = f"1:{version}-1+debian12"

    def registered_version(self) -> str | None:
        self.host._record("repository", "registered_version")
        installed = self.host.packages.get(RELEASE_PACKAGE)
        if installed is None:
            return None
        return installed.split(":", 1)[1].split("-", 1)[0]


class _Database:
    def __init__(self, host: FakeHost) -> None:
        self.host = host

    def execute(self, sql: str, *, database: str | None = None) -> list[list[str]]:
        self.host._record("database", "execute")
        self.host.sql.append((sql, database))
        if database is not None and "CREATE TABLE hosts" in sql:
            self.host.tables.add((database, "hosts"))
        return []

    def table_exists(self, database: str, table: str) -> bool:
        self.host._record("database", "table_exists")
        return (database, table) in self.host.tables

    def ping(self) -> bool:
        self.host._record("database", "ping")
        return self.host.database_up


class _Services:
    def __init__(self, host: FakeHost) -> None:
        self.host = host

    def start(self, name: str) -> None:
        self.host._record("services", "start")
        if self.host.service_starts:
            self.host.active.add(name)

    def stop(self, name: str) -> None:
        self.host._record("services", "stop")
        self.host.active.discard(name)

    def restart(self, name: str) -> None:
        self.host._record("services", "restart")
        if self.host.service_starts:
            self.host.active.add(name)
        else:
            self.host.active.discard(name)

    def enable_on_boot(self, name: str) -> None:
        self.host._record("services", "enable_on_boot")
        self.host.enabled.add(name)

    def is_active(self, name: str) -> bool:
        self.host._record("services", "is_active")
        return name in self.host.active

    def is_enabled(self, name: str) -> bool:
        self.host._record("services", "is_enabled")
        return name in self.host.enabled


class _Network:
    def __init__(self, host: FakeHost) -> None:
        self.host = host

    def apply_static_config(self, network: NetworkConfig, cidr: int) -> None:
        self.host._record("network", "apply_static_config")
        self.host.network_configs[network.interface] = (network, cidr)
        if self.host.network_applies:
            self.host.addresses[network.interface] = f"{network.address}/{cidr}"

    def config_matches(self, network: NetworkConfig, cidr: int) -> bool:
        self.host._record("network", "config_matches")
        return self.host.network_configs.get(network.interface) == (network, cidr)

    def current_address(self, interface: str) -> str | None:
        self.host._record("network", "current_address")
        return self.host.addresses.get(interface)


class _Hostname:
    def __init__(self, host: FakeHost) -> None:
        self.host = host

    def current_hostname(self) -> str:
        self.host._record("hostname", "current_hostname")
        return self.host.hostname_value

    def set_hostname(self, name: str) -> None:
        self.host._record("hostname", "set_hostname")
        self.host.hostname_value = name

    def hosts_entry_present(self, name: str) -> bool:
        self.host._record("hostname", "hosts_entry_present")
        return name in self.host.hosts_names

    def ensure_hosts_entry(self, name: str) -> None:
        self.host._record("hostname", "ensure_hosts_entry")
        self.host.hosts_names = {name}


class _Filesystem:
    def __init__(self, host: FakeHost) -> None:
        self.host = host

    def read_text(self, path: Path) -> str | None:
        self.host._record("filesystem", "read_text")
        return self.host.files.get(path)

    def write_text(
        self, path: Path, content: str, *, mode: int = 0o640, group: str | None = None
    ) -> None:
        self.host._record("filesystem", "write_text")
        self.host.files[path] = content
        self.host.file_modes[path] = (mode, group)

    def inspect_directory(self, path: Path) -> DirectoryStatus | None:
        self.host._record("filesystem", "inspect_directory")
        return self.host.directories.get(path)

    def ensure_directory(self, spec: DirectorySpec) -> None:
        self.host._record("filesystem", "ensure_directory")
        self.host.directories[spec.path] = DirectoryStatus(spec.owner, spec.group, spec.mode)


class _Resources:
    def __init__(self, host: FakeHost) -> None:
        self.host = host

    def memory_mb(self) -> int:
        self.host._record("resources", "memory_mb")
        return self.host.memory

    def free_disk_gb(self, path: Path) -> float:
        self.host._record("resources", "free_disk_gb")
        return self.host.disk


class _Ports:
    def __init__(self, host: FakeHost) -> None:
        self.host = host

    def is_listening(self, port: int) -> bool:
        self.host._record("ports", "is_listening")
        return "zabbix-proxy" in self.host.active

    def can_connect(self, host: str, port: int, timeout: float) -> bool:
        self.host._record("ports", "can_connect")
        return self.host.server_reachable


class _Prompter:
    def __init__(self, host: FakeHost) -> None:
        self.host = host

    def ask(self, question: str) -> bool:
        self.host._record("prompter", "ask")
        self.host.questions.append(question)
        if self.host.answers:
            return self.host.answers.pop(0)
        return self.host.default_answer


@pytest.fixture
def fake_host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def desired() -> DesiredState:
    return DesiredState(
        zabbix_version="7.0",
        server_address="192.168.1.1",
        proxy_hostname="zabbix-proxy",
        database_name="zabbix_proxy",
        database_password="zabbix",
    )

