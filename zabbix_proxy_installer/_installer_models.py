"""Data models shared by the Zabbix proxy reconciler.

These models keep the data flow between validation, the step sequencer and
the verifier explicit: the desired configuration is an immutable value built
once per run, and every step reports exactly one tagged :class:`StepResult`.

Examples
--------
>>> StepResult.skipped("no network configuration requested").outcome
<StepOutcome.SKIPPED: 'skipped'>
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path

ZABBIX_PROXY_PORT = 10051
SERVICE_NAME = "zabbix-proxy"
MARKER_TABLE = "hosts"
PROXY_PACKAGES: tuple[str, ...] = (
    "zabbix-proxy-mysql",
    "zabbix-sql-scripts",
    "mariadb-server",
)
RELEASE_PACKAGE = "zabbix-release"


class ProxyMode(enum.StrEnum):
    """Proxy operating mode; the config value is the Zabbix enum index."""

    ACTIVE = "active"
    PASSIVE = "passive"

    @property
    def config_value(self) -> str:
        """Return the ``ProxyMode=`` value understood by zabbix_proxy.

        Examples
        --------
        >>> ProxyMode.PASSIVE.config_value
        '1'
        """

        return "0" if self is ProxyMode.ACTIVE else "1"


@dataclass(frozen=True, slots=True)
class NetworkConfig:
    """Static IPv4 settings for one interface.

    Attributes
    ----------
    interface
        Interface name (for example ``ens18``).
    address
        IPv4 address to assign.
    netmask
        Dotted-quad netmask; converted to a prefix length when applied.
    gateway
        Optional default gateway.
    dns
        Zero or more nameserver addresses.
    mtu
        Optional interface MTU.
    """

    interface: str
    address: str
    netmask: str
    gateway: str | None = None
    dns: tuple[str, ...] = ()
    mtu: int | None = None


@dataclass(frozen=True, slots=True)
class DesiredState:
    """Target configuration for one installer run.

    Examples
    --------
    >>> state = DesiredState("7.0", "192.168.1.1", "zabbix-proxy")
    >>> state.database_name, state.proxy_mode.config_value
    ('zabbix_proxy', '0')
    """

    zabbix_version: str
    server_address: str
    proxy_hostname: str
    database_name: str = "zabbix_proxy"
    database_user: str = "zabbix"
    database_password: str = field(default="zabbix", repr=False)
    database_host: str = "localhost"
    proxy_mode: ProxyMode = ProxyMode.ACTIVE
    network: NetworkConfig | None = None
    manage_hostname: bool = False


@dataclass(frozen=True, slots=True)
class InstallLayout:
    """Filesystem locations touched by the installer."""

    config_path: Path = Path("/etc/zabbix/zabbix_proxy.conf")
    schema_path: Path = Path("/usr/share/zabbix-sql-scripts/mysql/proxy.sql")
    log_dir: Path = Path("/var/log/zabbix")
    run_dir: Path = Path("/run/zabbix")
    data_dir: Path = Path("/var/lib/zabbix")
    service_user: str = "zabbix"
    service_group: str = "zabbix"

    @property
    def log_file(self) -> Path:
        return self.log_dir / "zabbix_proxy.log"

    @property
    def pid_file(self) -> Path:
        return self.run_dir / "zabbix_proxy.pid"


@dataclass(frozen=True, slots=True)
class DirectorySpec:
    """Ownership and permission bits expected for a directory."""

    path: Path
    owner: str
    group: str
    mode: int


@dataclass(frozen=True, slots=True)
class DirectoryStatus:
    """Observed ownership and permission bits for an existing directory."""

    owner: str
    group: str
    mode: int

    def matches(self, spec: DirectorySpec) -> bool:
        return (
            self.owner == spec.owner
            and self.group == spec.group
            and self.mode == spec.mode
        )


def runtime_directories(layout: InstallLayout) -> tuple[DirectorySpec, ...]:
    """Return the directories the proxy needs at runtime.

    Examples
    --------
    >>> [spec.path.name for spec in runtime_directories(InstallLayout())]
    ['zabbix', 'zabbix', 'zabbix']
    """

    return (
        DirectorySpec(layout.run_dir, layout.service_user, layout.service_group, 0o755),
        DirectorySpec(layout.log_dir, layout.service_user, layout.service_group, 0o755),
        DirectorySpec(layout.data_dir, layout.service_user, layout.service_group, 0o750),
    )


class StepOutcome(enum.StrEnum):
    """Tag carried by every :class:`StepResult`."""

    APPLIED = "applied"
    ALREADY_SATISFIED = "already-satisfied"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class StepResult:
    """Outcome of one reconciliation step.

    ``detail`` holds the skip reason or the failure cause; it is empty for
    the other outcomes unless the step adds a note.
    """

    outcome: StepOutcome
    detail: str = ""

    @classmethod
    def applied(cls, detail: str = "") -> StepResult:
        return cls(StepOutcome.APPLIED, detail)

    @classmethod
    def already_satisfied(cls, detail: str = "") -> StepResult:
        return cls(StepOutcome.ALREADY_SATISFIED, detail)

    @classmethod
    def skipped(cls, reason: str) -> StepResult:
        return cls(StepOutcome.SKIPPED, reason)

    @classmethod
    def failed(cls, cause: str) -> StepResult:
        return cls(StepOutcome.FAILED, cause)

    @property
    def changed(self) -> bool:
        return self.outcome is StepOutcome.APPLIED

    @property
    def is_failure(self) -> bool:
        return self.outcome is StepOutcome.FAILED


__all__ = [
    "MARKER_TABLE",
    "PROXY_PACKAGES",
    "RELEASE_PACKAGE",
    "SERVICE_NAME",
    "ZABBIX_PROXY_PORT",
    "DesiredState",
    "DirectorySpec",
    "DirectoryStatus",
    "InstallLayout",
    "NetworkConfig",
    "ProxyMode",
    "StepOutcome",
    "StepResult",
    "runtime_directories",
]
