#!/usr/bin/env -S uv run python
# /// script
# requires-python = ">=3.13"
# dependencies = ["cyclopts>=2.9", "plumbum", "pyyaml", "requests", "psutil", "rich"]
# ///
"""Update selected keys of an existing ``zabbix_proxy.conf`` in place.

Unlike the installer, which rewrites the whole file, this command only
touches ``Server``, ``Hostname``, ``ProxyMode``, ``DBHost``, ``DBName`` and
``DBPassword``; every other line, including hand-made edits, is kept.
"""

from __future__ import annotations

import logging
import sys
from collections import abc as cabc
from pathlib import Path

from cyclopts import App, Parameter

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from zabbix_proxy_installer._collaborators import Filesystem, ServiceManager
from zabbix_proxy_installer._config_render import patch_config_keys, read_config_value
from zabbix_proxy_installer._host_probes import LocalFilesystem
from zabbix_proxy_installer._input_resolution import parse_bool
from zabbix_proxy_installer._installer_errors import InstallerError, ValidationError
from zabbix_proxy_installer._installer_models import SERVICE_NAME, InstallLayout, ProxyMode
from zabbix_proxy_installer._system_commands import SystemdServiceManager
from zabbix_proxy_installer._validators import (
    validate_hostname,
    validate_identifier,
    validate_password,
    validate_proxy_mode,
    validate_server_address,
)
from zabbix_proxy_installer.install_zabbix_proxy import configure_logging

app = App(help="Update selected keys of zabbix_proxy.conf in place.")
logger = logging.getLogger(__name__)


def build_updates(
    *,
    server: str | None = None,
    hostname: str | None = None,
    proxy_mode: str | None = None,
    db_host: str | None = None,
    db_name: str | None = None,
    db_password: str | None = None,
) -> dict[str, str]:
    """Validate the requested values and map them to configuration keys.

    Examples
    --------
    >>> build_updates(server="192.0.2.10", proxy_mode="passive")
    {'Server': '192.0.2.10', 'ProxyMode': '1'}
    """

    reasons: list[str] = []
    updates: dict[str, str] = {}
    if server is not None:
        if check := validate_server_address(server):
            updates["Server"] = server
        else:
            reasons.append(check.reason)
    if hostname is not None:
        if check := validate_hostname(hostname):
            updates["Hostname"] = hostname
        else:
            reasons.append(check.reason)
    if proxy_mode is not None:
        if check := validate_proxy_mode(proxy_mode):
            updates["ProxyMode"] = ProxyMode(proxy_mode.strip().lower()).config_value
        else:
            reasons.append(check.reason)
    if db_host is not None:
        if check := validate_server_address(db_host):
            updates["DBHost"] = db_host
        else:
            reasons.append(check.reason)
    if db_name is not None:
        if check := validate_identifier(db_name, label="database name"):
            updates["DBName"] = db_name
        else:
            reasons.append(check.reason)
    if db_password is not None:
        if check := validate_password(db_password):
            updates["DBPassword"] = db_password
        else:
            reasons.append(check.reason)
    if reasons:
        raise ValidationError(*reasons)
    return updates


def changed_keys(text: str, updates: cabc.Mapping[str, str]) -> list[str]:
    return [key for key, value in updates.items() if read_config_value(text, key) != value]


def apply_updates(
    config_path: Path,
    updates: cabc.Mapping[str, str],
    filesystem: Filesystem,
    *,
    group: str | None = None,
) -> list[str]:
    """Patch *config_path* and return the keys whose value changed.

    Raises
    ------
    InstallerError
        If the configuration file does not exist.
    """

    current = filesystem.read_text(config_path)
    if current is None:
        msg = f"{config_path} not found; run install_zabbix_proxy.py first"
        raise InstallerError(msg)
    changed = changed_keys(current, updates)
    if changed:
        filesystem.write_text(
            config_path, patch_config_keys(current, updates), mode=0o640, group=group
        )
    return changed


def restart_service(services: ServiceManager) -> None:
    services.restart(SERVICE_NAME)
    logger.info("restarted %s", SERVICE_NAME)


@app.command()
def main(
    server: str | None = Parameter(),
    hostname: str | None = Parameter(),
    proxy_mode: str | None = Parameter(),
    db_host: str | None = Parameter(),
    db_name: str | None = Parameter(),
    db_password: str | None = Parameter(),
    config_path: Path | None = Parameter(),
    restart: str | None = Parameter(),
) -> int:
    """Patch the proxy configuration and optionally restart the service."""

    configure_logging()
    layout = InstallLayout()
    target = config_path or layout.config_path
    try:
        updates = build_updates(
            server=server,
            hostname=hostname,
            proxy_mode=proxy_mode,
            db_host=db_host,
            db_name=db_name,
            db_password=db_password,
        )
    except ValidationError as exc:
        for reason in exc.reasons:
            print(f"error: {reason}", file=sys.stderr)
        return 2
    if not updates:
        print("error: no keys to update", file=sys.stderr)
        return 2

    try:
        changed = apply_updates(
            target, updates, LocalFilesystem(), group=layout.service_group
        )
        if changed and parse_bool(restart, default=True):
            restart_service(SystemdServiceManager())
    except InstallerError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    if changed:
        print(f"Updated {', '.join(changed)} in {target}")
    else:
        print(f"{target} already up to date")
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    raise SystemExit(app())
