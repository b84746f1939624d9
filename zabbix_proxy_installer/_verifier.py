"""Post-run health checks for the Zabbix proxy.

Each check is independent and read-only. :func:`verify_installation` runs
them all, even after a failure, so the report shows every problem at once;
the run is healthy only when every check passes.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass

from zabbix_proxy_installer._collaborators import SystemState
from zabbix_proxy_installer._installer_errors import CollaboratorFailure
from zabbix_proxy_installer._installer_models import (
    MARKER_TABLE,
    SERVICE_NAME,
    ZABBIX_PROXY_PORT,
    DesiredState,
    ProxyMode,
)

logger = logging.getLogger(__name__)

SERVICE_WAIT_SECONDS = 30.0
SERVER_CONNECT_TIMEOUT = 5.0


@dataclass(frozen=True, slots=True)
class PollSchedule:
    """Bounded polling with exponential backoff.

    Examples
    --------
    >>> list(PollSchedule(timeout=3.0, initial_interval=0.5, max_interval=1.0).intervals())
    [0.5, 1.0, 1.0, 0.5]
    """

    timeout: float = SERVICE_WAIT_SECONDS
    initial_interval: float = 0.5
    max_interval: float = 4.0

    def intervals(self) -> Iterator[float]:
        """Yield sleep durations whose sum never exceeds ``timeout``."""

        remaining = self.timeout
        interval = self.initial_interval
        while remaining > 0:
            step = min(interval, remaining)
            yield step
            remaining -= step
            interval = min(interval * 2, self.max_interval)


def wait_until(
    probe: Callable[[], bool],
    schedule: PollSchedule | None = None,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Return ``True`` as soon as *probe* succeeds, ``False`` on timeout."""

    if probe():
        return True
    for interval in (schedule or PollSchedule()).intervals():
        sleep(interval)
        if probe():
            return True
    return False


@dataclass(frozen=True, slots=True)
class CheckResult:
    name: str
    passed: bool
    detail: str


@dataclass(frozen=True, slots=True)
class VerificationReport:
    """Aggregate of every post-run check."""

    checks: tuple[CheckResult, ...]

    @property
    def passed(self) -> bool:
        return all(check.passed for check in self.checks)

    def failures(self) -> list[CheckResult]:
        return [check for check in self.checks if not check.passed]


def check_service_active(
    system: SystemState,
    schedule: PollSchedule | None = None,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> CheckResult:
    active = wait_until(lambda: system.service_active(SERVICE_NAME), schedule, sleep=sleep)
    if active:
        return CheckResult("service", True, f"{SERVICE_NAME} is active")
    timeout = (schedule or PollSchedule()).timeout
    return CheckResult("service", False, f"{SERVICE_NAME} not active after {timeout:g}s")


def check_listening_port(system: SystemState) -> CheckResult:
    if system.port_listening(ZABBIX_PROXY_PORT):
        return CheckResult("listener", True, f"port {ZABBIX_PROXY_PORT} is listening")
    return CheckResult("listener", False, f"nothing listens on port {ZABBIX_PROXY_PORT}")


def check_server_reachable(state: DesiredState, system: SystemState) -> CheckResult:
    reachable = system.server_reachable(
        state.server_address, ZABBIX_PROXY_PORT, SERVER_CONNECT_TIMEOUT
    )
    target = f"{state.server_address}:{ZABBIX_PROXY_PORT}"
    if reachable:
        return CheckResult("server", True, f"Zabbix server {target} is reachable")
    return CheckResult("server", False, f"cannot connect to Zabbix server {target}")


def check_database(state: DesiredState, system: SystemState) -> CheckResult:
    if not system.database_reachable():
        return CheckResult("database", False, "database server is not reachable")
    if not system.schema_present(state.database_name):
        return CheckResult(
            "database",
            False,
            f"table {MARKER_TABLE!r} missing from {state.database_name!r}",
        )
    return CheckResult("database", True, f"schema present in {state.database_name!r}")


def _guarded(name: str, check: Callable[[], CheckResult]) -> CheckResult:
    try:
        return check()
    except CollaboratorFailure as exc:
        return CheckResult(name, False, f"{exc} {exc.stderr}".strip())


def verify_installation(
    state: DesiredState,
    system: SystemState,
    schedule: PollSchedule | None = None,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> VerificationReport:
    """Run every post-run check for *state* and return the aggregate."""

    checks = [
        _guarded("service", lambda: check_service_active(system, schedule, sleep=sleep)),
    ]
    if state.proxy_mode is ProxyMode.PASSIVE:
        checks.append(_guarded("listener", lambda: check_listening_port(system)))
    else:
        checks.append(_guarded("server", lambda: check_server_reachable(state, system)))
    checks.append(_guarded("database", lambda: check_database(state, system)))
    for check in checks:
        log = logger.info if check.passed else logger.error
        log("verify %s: %s", check.name, check.detail)
    return VerificationReport(checks=tuple(checks))


__all__ = [
    "CheckResult",
    "PollSchedule",
    "VerificationReport",
    "check_database",
    "check_listening_port",
    "check_server_reachable",
    "check_service_active",
    "verify_installation",
    "wait_until",
]
