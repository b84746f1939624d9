"""Persist a summary of an installer run.

The record lists the applied configuration, each step outcome and the
verification checks. Credentials are never written: the database password
is left out, and only the account name is kept.
"""

from __future__ import annotations

import datetime as dt
import json
import os
from contextlib import suppress
from dataclasses import dataclass, field
from pathlib import Path

from zabbix_proxy_installer._installer_errors import InstallerError
from zabbix_proxy_installer._installer_models import DesiredState
from zabbix_proxy_installer._reconcile_flow import RunReport

DEFAULT_RECORD_PATH = Path("/var/lib/zabbix-proxy-installer/last-run.json")


@dataclass(slots=True)
class RunRecord:
    """JSON-serialisable summary of one run."""

    installed_at: str
    status: str
    exit_code: int
    configuration: dict[str, object]
    steps: list[dict[str, str]] = field(default_factory=list)
    verification: list[dict[str, object]] = field(default_factory=list)
    halted_at: str | None = None

    def to_mapping(self) -> dict[str, object]:
        return {
            "installed_at": self.installed_at,
            "status": self.status,
            "exit_code": self.exit_code,
            "halted_at": self.halted_at,
            "configuration": self.configuration,
            "steps": self.steps,
            "verification": self.verification,
        }


def _configuration_summary(desired: DesiredState) -> dict[str, object]:
    summary: dict[str, object] = {
        "zabbix_version": desired.zabbix_version,
        "server_address": desired.server_address,
        "proxy_hostname": desired.proxy_hostname,
        "proxy_mode": str(desired.proxy_mode),
        "database_host": desired.database_host,
        "database_name": desired.database_name,
        "database_user": desired.database_user,
        "manage_hostname": desired.manage_hostname,
    }
    if desired.network is not None:
        network = desired.network
        summary["network"] = {
            "interface": network.interface,
            "address": network.address,
            "netmask": network.netmask,
            "gateway": network.gateway,
            "dns": list(network.dns),
            "mtu": network.mtu,
        }
    return summary


def build_run_record(
    desired: DesiredState,
    report: RunReport,
    *,
    now: dt.datetime | None = None,
) -> RunRecord:
    """Summarise *report* for *desired*.

    Examples
    --------
    >>> record = build_run_record(desired, report)
    >>> "database_password" in record.configuration
    False
    """

    timestamp = (now or dt.datetime.now(dt.UTC)).isoformat(timespec="seconds")
    checks = report.verification.checks if report.verification else ()
    return RunRecord(
        installed_at=timestamp,
        status="success" if report.succeeded else "failed",
        exit_code=int(report.exit_code),
        configuration=_configuration_summary(desired),
        steps=[
            {"name": name, "outcome": str(result.outcome), "detail": result.detail}
            for name, result in report.results
        ],
        verification=[
            {"name": check.name, "passed": check.passed, "detail": check.detail}
            for check in checks
        ],
        halted_at=report.halted_at,
    )


def save_run_record(path: Path, record: RunRecord) -> None:
    """Write *record* to ``path`` atomically with mode ``0600``."""

    tmp_path = path.with_suffix(path.suffix + ".tmp")
    payload = json.dumps(record.to_mapping(), indent=2)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        tmp_path.replace(path)
        os.chmod(path, 0o600)
    except OSError as exc:
        with suppress(FileNotFoundError):
            os.unlink(tmp_path)
        msg = f"Failed to write run record {path}: {exc}"
        raise InstallerError(msg) from exc


__all__ = [
    "DEFAULT_RECORD_PATH",
    "RunRecord",
    "build_run_record",
    "save_run_record",
]
