#!/usr/bin/env -S uv run python
# /// script
# requires-python = ">=3.13"
# dependencies = ["cyclopts>=2.9", "plumbum", "pyyaml", "requests", "psutil", "rich"]
# ///
"""Install and configure a Zabbix proxy on a Debian or Ubuntu host.

This script:
- resolves the desired proxy configuration from flags, environment
  variables or interactive prompts;
- registers the upstream Zabbix repository and installs the proxy packages;
- provisions the MariaDB database and imports the proxy schema;
- renders ``/etc/zabbix/zabbix_proxy.conf`` and starts the service; and
- verifies that the proxy is healthy, then writes a run record.

Re-running with the same inputs changes nothing on a converged host.
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path

from cyclopts import App, Parameter

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from zabbix_proxy_installer._collaborators import CannedPrompter, Collaborators, Prompter
from zabbix_proxy_installer._host_probes import (
    LocalFilesystem,
    PsutilHostResources,
    RichPrompter,
    SocketPortProbe,
    ZabbixRepository,
)
from zabbix_proxy_installer._input_resolution import (
    InputPrompter,
    InputResolution,
    parse_bool,
    resolve_input,
)
from zabbix_proxy_installer._installer_errors import InstallerError, ValidationError
from zabbix_proxy_installer._installer_models import DesiredState, NetworkConfig, ProxyMode
from zabbix_proxy_installer._reconcile_flow import ExitCode, RunReport, reconcile
from zabbix_proxy_installer._run_record import (
    DEFAULT_RECORD_PATH,
    build_run_record,
    save_run_record,
)
from zabbix_proxy_installer._system_commands import (
    AptPackageManager,
    HostnamectlConfigurator,
    MySQLClient,
    NetplanConfigurator,
    SystemdServiceManager,
)
from zabbix_proxy_installer._validators import (
    Validation,
    validate_hostname,
    validate_identifier,
    validate_ipv4_address,
    validate_local_database_host,
    validate_mtu,
    validate_netmask,
    validate_password,
    validate_proxy_mode,
    validate_server_address,
    validate_version_format,
)

app = App(help="Install and configure a Zabbix proxy.")
logger = logging.getLogger(__name__)

LOG_FORMAT = "[%(asctime)s] %(levelname)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True, slots=True)
class RawInstallInputs:
    """Raw installer inputs from CLI flags."""

    zabbix_version: str | None = None
    server: str | None = None
    proxy_hostname: str | None = None
    proxy_mode: str | None = None
    db_host: str | None = None
    db_name: str | None = None
    db_user: str | None = None
    db_password: str | None = None
    net_interface: str | None = None
    net_address: str | None = None
    net_netmask: str | None = None
    net_gateway: str | None = None
    net_dns: str | None = None
    net_mtu: str | None = None
    manage_hostname: str | None = None


@dataclass(frozen=True, slots=True)
class RunOptions:
    """How the run behaves, independent of the desired state."""

    interactive: bool
    assume_yes: bool
    dry_run: bool
    run_record: Path | None


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        stream=sys.stderr,
    )


def _validate_mtu_text(value: str) -> Validation:
    if not value.isdigit():
        return Validation(False, f"MTU {value!r} is not a number")
    return validate_mtu(int(value))


def _split_dns(value: str | None) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(part for part in value.replace(",", " ").split() if part)


def resolve_network(raw: RawInstallInputs, prompter: InputPrompter) -> NetworkConfig | None:
    """Return the static network request, or ``None`` to leave networking alone."""

    interface = prompter.resolve(raw.net_interface, InputResolution(env_key="NET_INTERFACE"))
    address = prompter.resolve(raw.net_address, InputResolution(env_key="NET_ADDRESS"))
    if interface is None and address is None:
        return None
    address = prompter.resolve(
        address,
        InputResolution(env_key="NET_ADDRESS", required=True, prompt="Static IPv4 address"),
        validate_ipv4_address,
    )
    interface = prompter.resolve(
        interface,
        InputResolution(env_key="NET_INTERFACE", required=True, prompt="Network interface"),
    )
    netmask = prompter.resolve(
        raw.net_netmask,
        InputResolution(
            env_key="NET_NETMASK", default="255.255.255.0", prompt="Netmask"
        ),
        validate_netmask,
    )
    gateway = prompter.resolve(
        raw.net_gateway,
        InputResolution(env_key="NET_GATEWAY"),
        validate_ipv4_address,
    )
    dns = prompter.resolve(raw.net_dns, InputResolution(env_key="NET_DNS"))
    mtu = prompter.resolve(raw.net_mtu, InputResolution(env_key="NET_MTU"), _validate_mtu_text)
    return NetworkConfig(
        interface=str(interface),
        address=str(address),
        netmask=str(netmask),
        gateway=gateway or None,
        dns=_split_dns(dns),
        mtu=int(mtu) if mtu else None,
    )


def resolve_desired_state(raw: RawInstallInputs, prompter: InputPrompter) -> DesiredState:
    """Resolve every installer input into a :class:`DesiredState`."""

    version = prompter.resolve(
        raw.zabbix_version,
        InputResolution(env_key="ZABBIX_VERSION", required=True, prompt="Zabbix version"),
        validate_version_format,
    )
    server = prompter.resolve(
        raw.server,
        InputResolution(
            env_key="ZABBIX_SERVER", required=True, prompt="Zabbix server address"
        ),
        validate_server_address,
    )
    hostname = prompter.resolve(
        raw.proxy_hostname,
        InputResolution(
            env_key="PROXY_HOSTNAME",
            default="zabbix-proxy",
            prompt="Proxy hostname",
        ),
        validate_hostname,
    )
    mode = prompter.resolve(
        raw.proxy_mode,
        InputResolution(env_key="PROXY_MODE", default="active", prompt="Proxy mode"),
        validate_proxy_mode,
    )
    db_host = prompter.resolve(
        raw.db_host,
        InputResolution(env_key="DB_HOST", default="localhost"),
        validate_local_database_host,
    )
    db_name = prompter.resolve(
        raw.db_name,
        InputResolution(env_key="DB_NAME", default="zabbix_proxy", prompt="Database name"),
        lambda value: validate_identifier(value, label="database name"),
    )
    db_user = prompter.resolve(
        raw.db_user,
        InputResolution(env_key="DB_USER", default="zabbix"),
        lambda value: validate_identifier(value, label="database user"),
    )
    db_password = prompter.resolve(
        raw.db_password,
        InputResolution(
            env_key="DB_PASSWORD",
            required=True,
            prompt="Database password",
            secret=True,
        ),
        validate_password,
    )
    manage_hostname = prompter.resolve(
        raw.manage_hostname, InputResolution(env_key="MANAGE_HOSTNAME", default="false")
    )
    return DesiredState(
        zabbix_version=str(version),
        server_address=str(server),
        proxy_hostname=str(hostname),
        database_name=str(db_name),
        database_user=str(db_user),
        database_password=str(db_password),
        database_host=str(db_host),
        proxy_mode=ProxyMode(str(mode).strip().lower()),
        network=resolve_network(raw, prompter),
        manage_hostname=parse_bool(manage_hostname),
    )


def resolve_run_options(
    non_interactive: str | None,
    assume_yes: str | None,
    dry_run: str | None,
    run_record: Path | None,
) -> RunOptions:
    yes = parse_bool(resolve_input(assume_yes, InputResolution(env_key="ASSUME_YES")))
    batch = parse_bool(
        resolve_input(non_interactive, InputResolution(env_key="NON_INTERACTIVE"))
    )
    record = run_record
    if record is None:
        record_raw = resolve_input(
            None,
            InputResolution(env_key="RUN_RECORD", default=str(DEFAULT_RECORD_PATH)),
        )
        record = Path(record_raw) if record_raw else None
    return RunOptions(
        interactive=not batch and sys.stdin.isatty(),
        assume_yes=yes,
        dry_run=parse_bool(resolve_input(dry_run, InputResolution(env_key="DRY_RUN"))),
        run_record=record,
    )


def select_prompter(options: RunOptions) -> Prompter:
    """Return the prompter answering "continue anyway?" checkpoints."""

    if options.assume_yes:
        return CannedPrompter(answer=True)
    if not options.interactive:
        return CannedPrompter(answer=False)
    return RichPrompter()


def build_collaborators(prompter: Prompter) -> Collaborators:
    """Wire the production collaborators for a Debian host."""

    filesystem = LocalFilesystem()
    packages = AptPackageManager()
    return Collaborators(
        packages=packages,
        repository=ZabbixRepository(packages),
        database=MySQLClient(),
        services=SystemdServiceManager(),
        network=NetplanConfigurator(filesystem),
        hostname=HostnamectlConfigurator(filesystem),
        filesystem=filesystem,
        resources=PsutilHostResources(),
        ports=SocketPortProbe(),
        prompter=prompter,
    )


def print_summary(desired: DesiredState, report: RunReport) -> None:
    """Print the per-step outcomes and verification checks."""

    print("\n=== Zabbix proxy installation summary ===")
    print(f"Version: {desired.zabbix_version}")
    print(f"Server: {desired.server_address}")
    print(f"Proxy: {desired.proxy_hostname} ({desired.proxy_mode})")
    for name, result in report.results:
        suffix = f" - {result.detail}" if result.detail else ""
        print(f"  {name:<14} {result.outcome}{suffix}")
    if report.verification is not None:
        for check in report.verification.checks:
            status = "pass" if check.passed else "FAIL"
            print(f"  verify {check.name:<7} {status} - {check.detail}")
    if report.halted_at is not None:
        print(f"Halted at: {report.halted_at}")


def is_root() -> bool:
    return os.geteuid() == 0


@app.command()
def main(
    zabbix_version: str | None = Parameter(),
    server: str | None = Parameter(),
    proxy_hostname: str | None = Parameter(),
    proxy_mode: str | None = Parameter(),
    db_host: str | None = Parameter(),
    db_name: str | None = Parameter(),
    db_user: str | None = Parameter(),
    db_password: str | None = Parameter(),
    net_interface: str | None = Parameter(),
    net_address: str | None = Parameter(),
    net_netmask: str | None = Parameter(),
    net_gateway: str | None = Parameter(),
    net_dns: str | None = Parameter(),
    net_mtu: str | None = Parameter(),
    manage_hostname: str | None = Parameter(),
    non_interactive: str | None = Parameter(),
    assume_yes: str | None = Parameter(),
    dry_run: str | None = Parameter(),
    run_record: Path | None = Parameter(),
    verbose: bool = False,
) -> int:
    """Install a Zabbix proxy and report the outcome of every step."""

    configure_logging(verbose)
    options = resolve_run_options(non_interactive, assume_yes, dry_run, run_record)
    if not options.dry_run and not is_root():
        print("error: the installer must run as root", file=sys.stderr)
        return int(ExitCode.STEP_FAILED)

    raw = RawInstallInputs(
        zabbix_version=zabbix_version,
        server=server,
        proxy_hostname=proxy_hostname,
        proxy_mode=proxy_mode,
        db_host=db_host,
        db_name=db_name,
        db_user=db_user,
        db_password=db_password,
        net_interface=net_interface,
        net_address=net_address,
        net_netmask=net_netmask,
        net_gateway=net_gateway,
        net_dns=net_dns,
        net_mtu=net_mtu,
        manage_hostname=manage_hostname,
    )
    desired = resolve_desired_state(raw, InputPrompter(interactive=options.interactive))
    collaborators = build_collaborators(select_prompter(options))

    try:
        report = reconcile(desired, collaborators, dry_run=options.dry_run)
    except ValidationError as exc:
        for reason in exc.reasons:
            print(f"error: {reason}", file=sys.stderr)
        return int(ExitCode.INVALID_INPUT)

    print_summary(desired, report)
    if options.run_record is not None and not options.dry_run:
        try:
            save_run_record(options.run_record, build_run_record(desired, report))
        except InstallerError as exc:
            logger.warning("%s", exc)
    try:
        report.ensure_healthy()
    except InstallerError as exc:
        print(f"error: verification failed: {exc}", file=sys.stderr)
    if report.succeeded:
        print("\nZabbix proxy installation complete.")
    return int(report.exit_code)


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    raise SystemExit(app())
