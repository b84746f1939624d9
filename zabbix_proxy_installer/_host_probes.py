"""Library-backed collaborators: upstream repository, filesystem and probes."""

from __future__ import annotations

import grp
import logging
import os
import pwd
import re
import shutil
import socket
import tempfile
from collections.abc import Sequence
from contextlib import suppress
from dataclasses import dataclass
from pathlib import Path

import psutil
import requests
from rich.console import Console
from rich.prompt import Confirm

from zabbix_proxy_installer._collaborators import PackageManager
from zabbix_proxy_installer._installer_errors import CollaboratorFailure
from zabbix_proxy_installer._installer_models import RELEASE_PACKAGE, DirectorySpec, DirectoryStatus
from zabbix_proxy_installer._validators import version_key

logger = logging.getLogger(__name__)

REPOSITORY_ROOT = "https://repo.zabbix.com/zabbix/"
HTTP_TIMEOUT = (5, 60)

_INDEX_ENTRY = re.compile(r'href="(\d+\.\d+)/"')
_RELEASE_VERSION = re.compile(r"^(?:\d+:)?(\d+\.\d+)")


@dataclass(frozen=True, slots=True)
class Platform:
    """Distribution identifier and release as used in repository paths."""

    distro: str
    release: str

    @property
    def suffix(self) -> str:
        return f"{self.distro}{self.release}"


def parse_os_release(text: str) -> Platform:
    """Return the platform described by ``/etc/os-release`` *text*.

    Examples
    --------
    >>> parse_os_release('ID=debian\\nVERSION_ID="12"\\n')
    Platform(distro='debian', release='12')
    """

    values: dict[str, str] = {}
    for line in text.splitlines():
        key, sep, value = line.partition("=")
        if sep:
            values[key.strip()] = value.strip().strip('"')
    distro = values.get("ID", "")
    release = values.get("VERSION_ID", "")
    if distro not in {"debian", "ubuntu"} or not release:
        msg = f"Unsupported platform {distro or 'unknown'} {release}".rstrip()
        raise CollaboratorFailure(msg)
    return Platform(distro=distro, release=release)


def detect_platform(path: Path = Path("/etc/os-release")) -> Platform:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CollaboratorFailure(f"Cannot read {path}: {exc}") from exc
    return parse_os_release(text)


def parse_version_index(html: str) -> list[str]:
    """Return the ``major.minor`` directories listed in an index page.

    Examples
    --------
    >>> parse_version_index('<a href="7.0/">7.0/</a><a href="6.0/">6.0/</a>')
    ['6.0', '7.0']
    """

    return sorted(set(_INDEX_ENTRY.findall(html)), key=version_key)


def release_package_urls(version: str, platform: Platform) -> list[str]:
    """Return candidate URLs of the ``zabbix-release`` package, newest naming first."""

    pool = f"{REPOSITORY_ROOT}{version}/{platform.distro}/pool/main/z/zabbix-release/"
    return [
        f"{pool}zabbix-release_latest_{version}+{platform.suffix}_all.deb",
        f"{pool}zabbix-release_{version}-1+{platform.suffix}_all.deb",
    ]


class ZabbixRepository:
    """Discover upstream versions and register the matching apt source."""

    def __init__(
        self,
        packages: PackageManager,
        platform: Platform | None = None,
        *,
        session: requests.Session | None = None,
    ) -> None:
        self._packages = packages
        self._platform = platform
        self._session = session or requests.Session()

    @property
    def platform(self) -> Platform:
        if self._platform is None:
            self._platform = detect_platform()
        return self._platform

    def fetch_available_versions(self) -> Sequence[str]:
        try:
            response = self._session.get(REPOSITORY_ROOT, timeout=HTTP_TIMEOUT)
            response.raise_for_status()
        except requests.RequestException as exc:
            msg = f"Cannot list upstream versions at {REPOSITORY_ROOT}: {exc}"
            raise CollaboratorFailure(msg, stderr=str(exc)) from exc
        versions = parse_version_index(response.text)
        if not versions:
            raise CollaboratorFailure(f"No versions listed at {REPOSITORY_ROOT}")
        return versions

    def _download(self, version: str, destination: Path) -> Path:
        errors: list[str] = []
        for url in release_package_urls(version, self.platform):
            try:
                response = self._session.get(url, timeout=HTTP_TIMEOUT)
            except requests.RequestException as exc:
                errors.append(f"{url}: {exc}")
                continue
            if response.status_code == 404:
                errors.append(f"{url}: not found")
                continue
            try:
                response.raise_for_status()
            except requests.HTTPError as exc:
                errors.append(f"{url}: {exc}")
                continue
            target = destination / url.rsplit("/", 1)[-1]
            try:
                target.write_bytes(response.content)
            except OSError as exc:
                msg = f"Cannot save the release package to {target}: {exc}"
                raise CollaboratorFailure(msg, stderr=str(exc)) from exc
            logger.info("downloaded %s", url)
            return target
        msg = f"Cannot download the release package for Zabbix {version}"
        raise CollaboratorFailure(msg, stderr="\n".join(errors))

    def register_repository(self, version: str) -> None:
        with tempfile.TemporaryDirectory(prefix="zabbix-release-") as workdir:
            package = self._download(version, Path(workdir))
            self._packages.install_file(package)
        self._packages.update_index()

    def registered_version(self) -> str | None:
        installed = self._packages.installed_version(RELEASE_PACKAGE)
        if installed is None:
            return None
        match = _RELEASE_VERSION.match(installed)
        return match.group(1) if match else None


class LocalFilesystem:
    """Read and write host files; writes are atomic."""

    def read_text(self, path: Path) -> str | None:
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def write_text(
        self, path: Path, content: str, *, mode: int = 0o640, group: str | None = None
    ) -> None:
        """Write *content* to ``path`` atomically with permissions *mode*.

        When *group* is given the file is handed to that group before it
        replaces ``path``, so a reader never sees it with the wrong owner.
        """

        tmp_path = path.with_name(f".{path.name}.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(content)
                handle.flush()
                os.fsync(handle.fileno())
            os.chmod(tmp_path, mode)
            if group is not None:
                shutil.chown(tmp_path, group=group)
            tmp_path.replace(path)
        except (OSError, LookupError) as exc:
            with suppress(FileNotFoundError, NotADirectoryError):
                os.unlink(tmp_path)
            raise CollaboratorFailure(f"Cannot write {path}: {exc}", stderr=str(exc)) from exc

    def inspect_directory(self, path: Path) -> DirectoryStatus | None:
        try:
            info = path.stat()
        except FileNotFoundError:
            return None
        try:
            owner = pwd.getpwuid(info.st_uid).pw_name
        except KeyError:
            owner = str(info.st_uid)
        try:
            group = grp.getgrgid(info.st_gid).gr_name
        except KeyError:
            group = str(info.st_gid)
        return DirectoryStatus(owner=owner, group=group, mode=info.st_mode & 0o7777)

    def ensure_directory(self, spec: DirectorySpec) -> None:
        try:
            spec.path.mkdir(parents=True, exist_ok=True)
            shutil.chown(spec.path, user=spec.owner, group=spec.group)
            spec.path.chmod(spec.mode)
        except (OSError, LookupError) as exc:
            msg = f"Cannot prepare directory {spec.path}: {exc}"
            raise CollaboratorFailure(msg, stderr=str(exc)) from exc


class PsutilHostResources:
    """Report memory and disk capacity via psutil."""

    def memory_mb(self) -> int:
        return psutil.virtual_memory().total // (1024 * 1024)

    def free_disk_gb(self, path: Path) -> float:
        return psutil.disk_usage(str(path)).free / (1024**3)


class SocketPortProbe:
    """Check local listeners with psutil and remote ports with a TCP connect."""

    def is_listening(self, port: int) -> bool:
        try:
            connections = psutil.net_connections(kind="tcp")
        except psutil.AccessDenied as exc:
            raise CollaboratorFailure("Listing sockets requires root", stderr=str(exc)) from exc
        return any(
            conn.status == psutil.CONN_LISTEN and conn.laddr and conn.laddr.port == port
            for conn in connections
        )

    def can_connect(self, host: str, port: int, timeout: float) -> bool:
        try:
            with socket.create_connection((host, port), timeout=timeout):
                return True
        except OSError as exc:
            logger.debug("connect to %s:%s failed: %s", host, port, exc)
            return False


class RichPrompter:
    """Ask yes/no questions on the terminal."""

    def __init__(self, console: Console | None = None, *, default: bool = False) -> None:
        self._console = console or Console(stderr=True)
        self._default = default

    def ask(self, question: str) -> bool:
        return Confirm.ask(question, console=self._console, default=self._default)


__all__ = [
    "LocalFilesystem",
    "Platform",
    "PsutilHostResources",
    "RichPrompter",
    "SocketPortProbe",
    "ZabbixRepository",
    "detect_platform",
    "parse_os_release",
    "parse_version_index",
    "release_package_urls",
]
