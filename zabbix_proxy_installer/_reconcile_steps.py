"""Reconciliation steps for a Zabbix proxy host.

Each step pairs a read-only ``precondition`` (is the host already in the
desired shape?) with an ``apply`` action that changes it. Steps only talk to
the host through :class:`StepContext`, which carries the immutable desired
state, a live :class:`SystemState`, and the results of earlier steps in the
same run.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

from zabbix_proxy_installer._collaborators import Collaborators, SystemState
from zabbix_proxy_installer._config_render import render_proxy_config
from zabbix_proxy_installer._installer_models import (
    PROXY_PACKAGES,
    SERVICE_NAME,
    DesiredState,
    InstallLayout,
    StepResult,
    runtime_directories,
)
from zabbix_proxy_installer._system_commands import sql_literal
from zabbix_proxy_installer._validators import netmask_to_cidr
from zabbix_proxy_installer._verifier import PollSchedule, wait_until

logger = logging.getLogger(__name__)

MIN_MEMORY_MB = 1024
MIN_FREE_DISK_GB = 5.0
PROBE_PACKAGE = "zabbix-proxy-mysql"
# Steps whose changes only take effect after the proxy restarts.
RESTART_TRIGGERS: tuple[str, ...] = ("repository", "database", "directories", "configuration")


@dataclass(slots=True)
class StepContext:
    """Everything a step may read or act on during one run."""

    desired: DesiredState
    system: SystemState
    collaborators: Collaborators
    layout: InstallLayout
    previous: dict[str, StepResult] = field(default_factory=dict)
    schedule: PollSchedule = field(default_factory=PollSchedule)
    sleep: Callable[[float], None] = time.sleep


@dataclass(frozen=True, slots=True)
class Step:
    """One idempotent unit of reconciliation.

    Attributes
    ----------
    name
        Short identifier used in logs and reports.
    precondition
        Returns ``True`` when the host already satisfies the step.
    apply
        Changes the host and reports the outcome.
    fatal
        Whether a failure halts the run without asking.
    skip_reason
        When set, the step is skipped without consulting the host.
    """

    name: str
    precondition: Callable[[StepContext], bool]
    apply: Callable[[StepContext], StepResult]
    fatal: bool = True
    skip_reason: str | None = None


def _requirements_met(ctx: StepContext) -> bool:
    return ctx.system.package_version(PROBE_PACKAGE) is not None


def _check_requirements(ctx: StepContext) -> StepResult:
    memory = ctx.system.memory_mb()
    disk = ctx.system.free_disk_gb()
    shortfalls = []
    if memory < MIN_MEMORY_MB:
        shortfalls.append(f"memory {memory} MB is below {MIN_MEMORY_MB} MB")
    if disk < MIN_FREE_DISK_GB:
        shortfalls.append(f"free disk {disk:.1f} GB is below {MIN_FREE_DISK_GB:g} GB")
    if shortfalls:
        return StepResult.failed("; ".join(shortfalls))
    return StepResult.applied(f"memory {memory} MB, free disk {disk:.1f} GB")


def _expected_address(desired: DesiredState) -> str:
    assert desired.network is not None
    return f"{desired.network.address}/{netmask_to_cidr(desired.network.netmask)}"


def _network_converged(ctx: StepContext) -> bool:
    network = ctx.desired.network
    assert network is not None
    if ctx.system.interface_address(network.interface) != _expected_address(ctx.desired):
        return False
    return ctx.system.network_config_matches(network, netmask_to_cidr(network.netmask))


def _configure_network(ctx: StepContext) -> StepResult:
    network = ctx.desired.network
    assert network is not None
    cidr = netmask_to_cidr(network.netmask)
    ctx.collaborators.network.apply_static_config(network, cidr)
    current = ctx.system.interface_address(network.interface)
    expected = f"{network.address}/{cidr}"
    if current != expected:
        return StepResult.failed(
            f"{network.interface} reports {current or 'no address'} after applying {expected}"
        )
    return StepResult.applied(f"{network.interface} set to {expected}")


def _hostname_converged(ctx: StepContext) -> bool:
    name = ctx.desired.proxy_hostname
    return ctx.system.hostname() == name and ctx.system.hosts_entry_present(name)


def _configure_hostname(ctx: StepContext) -> StepResult:
    name = ctx.desired.proxy_hostname
    configurator = ctx.collaborators.hostname
    if ctx.system.hostname() != name:
        configurator.set_hostname(name)
    if not ctx.system.hosts_entry_present(name):
        configurator.ensure_hosts_entry(name)
    return StepResult.applied(f"hostname set to {name}")


def _repository_converged(ctx: StepContext) -> bool:
    return (
        ctx.system.release_version() == ctx.desired.zabbix_version
        and ctx.system.packages_installed()
    )


def _install_packages(ctx: StepContext) -> StepResult:
    version = ctx.desired.zabbix_version
    if ctx.system.release_version() != version:
        logger.info("registering Zabbix %s repository", version)
        ctx.collaborators.repository.register_repository(version)
    missing = [name for name in PROXY_PACKAGES if ctx.system.package_version(name) is None]
    if missing:
        logger.info("installing %s", ", ".join(missing))
        ctx.collaborators.packages.install(missing)
    return StepResult.applied(f"Zabbix {version} repository and packages installed")


def provisioning_sql(desired: DesiredState) -> str:
    """Return the idempotent database and account statements.

    Examples
    --------
    >>> print(provisioning_sql(DesiredState("7.0", "192.0.2.1", "proxy")).splitlines()[0])
    CREATE DATABASE IF NOT EXISTS `zabbix_proxy` CHARACTER SET utf8mb4 COLLATE utf8mb4_bin;
    """

    database = desired.database_name
    account = f"{sql_literal(desired.database_user)}@{sql_literal('localhost')}"
    password = sql_literal(desired.database_password)
    return "\n".join(
        [
            f"CREATE DATABASE IF NOT EXISTS `{database}` "
            "CHARACTER SET utf8mb4 COLLATE utf8mb4_bin;",
            f"CREATE USER IF NOT EXISTS {account} IDENTIFIED BY {password};",
            f"ALTER USER {account} IDENTIFIED BY {password};",
            f"GRANT ALL PRIVILEGES ON `{database}`.* TO {account};",
            "FLUSH PRIVILEGES;",
        ]
    )


def _schema_present(ctx: StepContext) -> bool:
    return ctx.system.schema_present(ctx.desired.database_name)


def _provision_database(ctx: StepContext) -> StepResult:
    database = ctx.collaborators.database
    schema_path = ctx.layout.schema_path
    schema = ctx.collaborators.filesystem.read_text(schema_path)
    if schema is None:
        return StepResult.failed(f"schema file {schema_path} not found")
    database.execute(provisioning_sql(ctx.desired))
    database.execute("SET GLOBAL log_bin_trust_function_creators = 1;")
    try:
        logger.info("importing schema into %s", ctx.desired.database_name)
        database.execute(schema, database=ctx.desired.database_name)
    finally:
        database.execute("SET GLOBAL log_bin_trust_function_creators = 0;")
    if not ctx.system.schema_present(ctx.desired.database_name):
        return StepResult.failed("schema import finished but the marker table is missing")
    return StepResult.applied(f"database {ctx.desired.database_name!r} provisioned")


def _directories_converged(ctx: StepContext) -> bool:
    for spec in runtime_directories(ctx.layout):
        status = ctx.system.directory(spec.path)
        if status is None or not status.matches(spec):
            return False
    return True


def _prepare_directories(ctx: StepContext) -> StepResult:
    specs = runtime_directories(ctx.layout)
    for spec in specs:
        ctx.collaborators.filesystem.ensure_directory(spec)
    return StepResult.applied(", ".join(str(spec.path) for spec in specs))


def _config_converged(ctx: StepContext) -> bool:
    return ctx.system.config_text() == render_proxy_config(ctx.desired, ctx.layout)


def _write_config(ctx: StepContext) -> StepResult:
    ctx.collaborators.filesystem.write_text(
        ctx.layout.config_path,
        render_proxy_config(ctx.desired, ctx.layout),
        mode=0o640,
        group=ctx.layout.service_group,
    )
    return StepResult.applied(f"wrote {ctx.layout.config_path}")


def _changed_since_start(previous: Mapping[str, StepResult]) -> list[str]:
    return [name for name in RESTART_TRIGGERS if name in previous and previous[name].changed]


def _service_converged(ctx: StepContext) -> bool:
    return (
        not _changed_since_start(ctx.previous)
        and ctx.system.service_active(SERVICE_NAME)
        and ctx.system.service_enabled(SERVICE_NAME)
    )


def _start_service(ctx: StepContext) -> StepResult:
    services = ctx.collaborators.services
    if not ctx.system.service_enabled(SERVICE_NAME):
        services.enable_on_boot(SERVICE_NAME)
    if ctx.system.service_active(SERVICE_NAME):
        services.restart(SERVICE_NAME)
    else:
        services.start(SERVICE_NAME)
    active = wait_until(
        lambda: ctx.system.service_active(SERVICE_NAME), ctx.schedule, sleep=ctx.sleep
    )
    if not active:
        return StepResult.failed(
            f"{SERVICE_NAME} did not become active within {ctx.schedule.timeout:g}s"
        )
    return StepResult.applied(f"{SERVICE_NAME} enabled and active")


def build_steps(desired: DesiredState) -> tuple[Step, ...]:
    """Return the ordered reconciliation steps for *desired*.

    Examples
    --------
    >>> [step.name for step in build_steps(DesiredState("7.0", "192.0.2.1", "proxy"))][:3]
    ['requirements', 'network', 'hostname']
    """

    return (
        Step("requirements", _requirements_met, _check_requirements, fatal=False),
        Step(
            "network",
            _network_converged,
            _configure_network,
            skip_reason=None if desired.network else "no network configuration requested",
        ),
        Step(
            "hostname",
            _hostname_converged,
            _configure_hostname,
            skip_reason=None if desired.manage_hostname else "hostname management not requested",
        ),
        Step("repository", _repository_converged, _install_packages),
        Step("database", _schema_present, _provision_database),
        Step("directories", _directories_converged, _prepare_directories),
        Step("configuration", _config_converged, _write_config),
        Step("service", _service_converged, _start_service),
    )


__all__ = [
    "MIN_FREE_DISK_GB",
    "MIN_MEMORY_MB",
    "RESTART_TRIGGERS",
    "Step",
    "StepContext",
    "build_steps",
    "provisioning_sql",
]
