"""Command-backed collaborators for Debian hosts.

Each class wraps one family of system tools (``apt-get``/``dpkg``,
``mysql``, ``systemctl``, ``ip``/``netplan``, ``hostnamectl``) behind the
protocols in :mod:`._collaborators`. All invocations go through
:func:`run_command` or :func:`run_command_status`, which turn process
failures into :class:`CollaboratorFailure` carrying the raw stderr.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
from collections.abc import Collection
from dataclasses import dataclass
from pathlib import Path

from plumbum import CommandNotFound, local
from plumbum.commands.processes import ProcessExecutionError, ProcessTimedOut

from zabbix_proxy_installer._collaborators import Filesystem
from zabbix_proxy_installer._installer_errors import CollaboratorFailure
from zabbix_proxy_installer._installer_models import NetworkConfig
from zabbix_proxy_installer._network_render import (
    hosts_entry_present,
    reconcile_hosts,
    render_ifupdown,
    render_netplan,
)

logger = logging.getLogger(__name__)

APT_TIMEOUT_SECONDS = 900
DEFAULT_TIMEOUT_SECONDS = 120


@dataclass(slots=True)
class CommandContext:
    """Execution options for :func:`run_command`."""

    env: dict[str, str] | None = None
    stdin: str | None = None
    timeout: int | None = DEFAULT_TIMEOUT_SECONDS


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Exit status and captured output of a command.

    Examples
    --------
    >>> CommandResult(return_code=3, stdout="inactive\\n", stderr="").success
    False
    """

    return_code: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.return_code == 0


def _bind(command: str, args: tuple[str, ...], ctx: CommandContext):
    try:
        bound = local[command][list(args)]
    except CommandNotFound as exc:
        msg = f"Command {command!r} is not installed"
        raise CollaboratorFailure(msg, command=(command, *args)) from exc
    if ctx.stdin is not None:
        bound = bound << ctx.stdin
    return bound


def _merged_env(ctx: CommandContext) -> dict[str, str] | None:
    if ctx.env is None:
        return None
    return {**os.environ, **ctx.env}


def run_command_status(
    command: str,
    *args: str,
    context: CommandContext | None = None,
) -> CommandResult:
    """Execute *command* and return its status without raising on failure.

    Examples
    --------
    >>> run_command_status("false").success
    False
    """

    ctx = context or CommandContext()
    bound = _bind(command, args, ctx)
    logger.debug("running %s %s", command, " ".join(args))
    try:
        code, stdout, stderr = bound.run(
            retcode=None, env=_merged_env(ctx), timeout=ctx.timeout
        )
    except ProcessTimedOut as exc:
        msg = f"Command {command!r} timed out after {ctx.timeout}s"
        raise CollaboratorFailure(msg, command=(command, *args)) from exc
    return CommandResult(return_code=code, stdout=stdout, stderr=stderr)


def run_command(
    command: str,
    *args: str,
    context: CommandContext | None = None,
) -> str:
    """Execute an external command and return its standard output.

    Examples
    --------
    >>> run_command("printf", "hello")
    'hello'
    """

    ctx = context or CommandContext()
    bound = _bind(command, args, ctx)
    logger.debug("running %s %s", command, " ".join(args))
    try:
        _, stdout, _ = bound.run(env=_merged_env(ctx), timeout=ctx.timeout)
    except ProcessExecutionError as exc:
        stderr = (exc.stderr or "").strip()
        msg = f"Command {command!r} failed: {stderr or f'exit status {exc.retcode}'}"
        raise CollaboratorFailure(msg, command=(command, *args), stderr=stderr) from exc
    except ProcessTimedOut as exc:
        msg = f"Command {command!r} timed out after {ctx.timeout}s"
        raise CollaboratorFailure(msg, command=(command, *args)) from exc
    return stdout


class AptPackageManager:
    """Install packages with ``apt-get`` and query them with ``dpkg-query``."""

    _APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}

    def update_index(self) -> None:
        run_command(
            "apt-get",
            "update",
            context=CommandContext(env=self._APT_ENV, timeout=APT_TIMEOUT_SECONDS),
        )

    def install(self, names: Collection[str]) -> None:
        if not names:
            return
        run_command(
            "apt-get",
            "install",
            "-y",
            *sorted(names),
            context=CommandContext(env=self._APT_ENV, timeout=APT_TIMEOUT_SECONDS),
        )

    def install_file(self, path: Path) -> None:
        run_command(
            "dpkg",
            "-i",
            str(path),
            context=CommandContext(env=self._APT_ENV, timeout=APT_TIMEOUT_SECONDS),
        )

    def installed_version(self, name: str) -> str | None:
        """Return the installed version of *name*, or ``None``.

        Examples
        --------
        >>> from cmd_mox import CmdMox
        >>> with CmdMox() as mox:
        ...     _ = mox.stub('dpkg-query').returns(stdout='installed 1:7.0-2+debian12')
        ...     mox.replay(); AptPackageManager().installed_version('zabbix-release')
        '1:7.0-2+debian12'
        """

        result = run_command_status(
            "dpkg-query",
            "-W",
            "--showformat=${db:Status-Status} ${Version}",
            name,
        )
        if not result.success:
            return None
        status, _, version = result.stdout.strip().partition(" ")
        if status != "installed" or not version:
            return None
        return version


def sql_literal(value: str) -> str:
    """Quote *value* as a MySQL string literal.

    Examples
    --------
    >>> sql_literal("it's")
    "'it\\\\'s'"
    """

    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


class MySQLClient:
    """Run SQL through the ``mysql`` command-line client.

    The client authenticates as the invoking user (root over the local
    socket on a stock MariaDB install) unless *defaults_file* is given.
    """

    def __init__(self, defaults_file: Path | None = None) -> None:
        self._defaults_file = defaults_file

    def _base_args(self) -> list[str]:
        args: list[str] = []
        if self._defaults_file is not None:
            args.append(f"--defaults-extra-file={self._defaults_file}")
        args.extend(["--batch", "--skip-column-names"])
        return args

    def execute(self, sql: str, *, database: str | None = None) -> list[list[str]]:
        args = self._base_args()
        if database is not None:
            args.append(database)
        stdout = run_command(
            "mysql",
            *args,
            context=CommandContext(stdin=sql, timeout=600),
        )
        return [line.split("\t") for line in stdout.splitlines() if line]

    def table_exists(self, database: str, table: str) -> bool:
        rows = self.execute(
            "SELECT COUNT(*) FROM information_schema.tables "
            f"WHERE table_schema = {sql_literal(database)} "
            f"AND table_name = {sql_literal(table)};"
        )
        return bool(rows) and rows[0][0] != "0"

    def ping(self) -> bool:
        try:
            self.execute("SELECT 1;")
        except CollaboratorFailure as exc:
            logger.debug("database ping failed: %s", exc)
            return False
        return True


class SystemdServiceManager:
    """Drive units through ``systemctl``."""

    def start(self, name: str) -> None:
        run_command("systemctl", "start", name)

    def stop(self, name: str) -> None:
        run_command("systemctl", "stop", name)

    def restart(self, name: str) -> None:
        run_command("systemctl", "restart", name)

    def enable_on_boot(self, name: str) -> None:
        run_command("systemctl", "enable", name)

    def is_active(self, name: str) -> bool:
        return run_command_status("systemctl", "is-active", "--quiet", name).success

    def is_enabled(self, name: str) -> bool:
        return run_command_status("systemctl", "is-enabled", "--quiet", name).success


_INET_PATTERN = re.compile(r"\binet\s+(\d+\.\d+\.\d+\.\d+/\d+)")


class NetplanConfigurator:
    """Apply static IPv4 settings with netplan, or ifupdown as a fallback."""

    def __init__(
        self,
        filesystem: Filesystem,
        *,
        netplan_dir: Path = Path("/etc/netplan"),
        interfaces_dir: Path = Path("/etc/network/interfaces.d"),
        file_name: str = "01-zabbix-network.yaml",
    ) -> None:
        self._filesystem = filesystem
        self._netplan_dir = netplan_dir
        self._interfaces_dir = interfaces_dir
        self._file_name = file_name

    def _netplan_available(self) -> bool:
        return shutil.which("netplan") is not None and self._netplan_dir.is_dir()

    def _rendered(self, network: NetworkConfig, cidr: int) -> tuple[Path, str]:
        if self._netplan_available():
            return self._netplan_dir / self._file_name, render_netplan(network, cidr)
        return self._interfaces_dir / network.interface, render_ifupdown(
            network, network.netmask
        )

    def apply_static_config(self, network: NetworkConfig, cidr: int) -> None:
        target, content = self._rendered(network, cidr)
        if self._netplan_available():
            self._filesystem.write_text(target, content, mode=0o600)
            logger.info("wrote %s", target)
            run_command("netplan", "apply")
            return
        logger.warning("netplan not found; writing an ifupdown stanza instead")
        self._filesystem.write_text(target, content, mode=0o644)
        run_command("systemctl", "restart", "networking")

    def config_matches(self, network: NetworkConfig, cidr: int) -> bool:
        """Return whether the netplan file (or ifupdown stanza) is current.

        Gateway, DNS and MTU are only visible in this file, not on the
        live interface.
        """

        target, content = self._rendered(network, cidr)
        return self._filesystem.read_text(target) == content

    def current_address(self, interface: str) -> str | None:
        """Return the first ``address/prefix`` on *interface*.

        Examples
        --------
        >>> from cmd_mox import CmdMox
        >>> with CmdMox() as mox:
        ...     _ = mox.stub('ip').returns(stdout='2: ens18    inet 10.0.0.5/24 brd 10.0.0.255 scope global ens18')
        ...     mox.replay(); NetplanConfigurator(None).current_address('ens18')
        '10.0.0.5/24'
        """

        result = run_command_status("ip", "-4", "-o", "addr", "show", "dev", interface)
        if not result.success:
            return None
        match = _INET_PATTERN.search(result.stdout)
        return match.group(1) if match else None


class HostnamectlConfigurator:
    """Manage the static hostname and its ``/etc/hosts`` alias."""

    def __init__(self, filesystem: Filesystem, hosts_path: Path = Path("/etc/hosts")) -> None:
        self._filesystem = filesystem
        self._hosts_path = hosts_path

    def current_hostname(self) -> str:
        return run_command("hostname").strip()

    def set_hostname(self, name: str) -> None:
        run_command("hostnamectl", "set-hostname", name)

    def hosts_entry_present(self, name: str) -> bool:
        return hosts_entry_present(self._filesystem.read_text(self._hosts_path) or "", name)

    def ensure_hosts_entry(self, name: str) -> None:
        current = self._filesystem.read_text(self._hosts_path) or ""
        self._filesystem.write_text(
            self._hosts_path, reconcile_hosts(current, name), mode=0o644
        )


__all__ = [
    "AptPackageManager",
    "CommandContext",
    "CommandResult",
    "HostnamectlConfigurator",
    "MySQLClient",
    "NetplanConfigurator",
    "SystemdServiceManager",
    "run_command",
    "run_command_status",
    "sql_literal",
]
