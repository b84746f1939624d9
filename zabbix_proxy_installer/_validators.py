"""Pure input validators for the Zabbix proxy installer.

Every validator returns a :class:`Validation` instead of raising so callers
can decide whether to re-prompt, abort, or ask for confirmation. The one
exception is :func:`netmask_to_cidr`, which must produce a number and raises
:class:`InvalidNetmask` when it cannot.

Examples
--------
>>> validate_ipv4_address("256.1.1.1").accepted
False
>>> netmask_to_cidr("255.255.255.128")
25
"""

from __future__ import annotations

import enum
import re
from collections.abc import Sequence
from dataclasses import dataclass

from zabbix_proxy_installer._installer_errors import InvalidNetmask, ValidationError
from zabbix_proxy_installer._installer_models import DesiredState, NetworkConfig, ProxyMode

NETMASK_BITS: dict[int, int] = {
    255: 8,
    254: 7,
    252: 6,
    248: 5,
    240: 4,
    224: 3,
    192: 2,
    128: 1,
    0: 0,
}

MINIMUM_MAJOR_VERSION = 4
VERSION_YEAR_OFFSET = 2010
MTU_RANGE = (68, 9000)
LOCAL_DATABASE_HOSTS = frozenset({"localhost", "127.0.0.1"})

_OCTET_PATTERN = re.compile(r"[0-9]{1,3}")
_HOSTNAME_PATTERN = re.compile(r"[A-Za-z0-9.-]+")
_VERSION_PATTERN = re.compile(r"([0-9]+)\.([0-9]+)")
_IDENTIFIER_PATTERN = re.compile(r"[A-Za-z0-9_]{1,64}")
_INTERFACE_PATTERN = re.compile(r"[A-Za-z0-9_.:-]{1,15}")


@dataclass(frozen=True, slots=True)
class Validation:
    """Accept/reject decision with a reason on rejection."""

    accepted: bool
    reason: str = ""

    def __bool__(self) -> bool:
        return self.accepted


_ACCEPT = Validation(accepted=True)


def _reject(reason: str) -> Validation:
    return Validation(accepted=False, reason=reason)


def validate_ipv4_address(value: str) -> Validation:
    """Accept four dot-separated decimal octets in the range 0-255.

    Leading zeros are accepted.

    Examples
    --------
    >>> validate_ipv4_address("255.255.255.0").accepted
    True
    >>> validate_ipv4_address("10.0.0").reason
    "'10.0.0' must have four dot-separated octets"
    """

    octets = value.split(".")
    if len(octets) != 4:
        return _reject(f"{value!r} must have four dot-separated octets")
    for position, octet in enumerate(octets, start=1):
        if not _OCTET_PATTERN.fullmatch(octet):
            return _reject(f"octet {position} of {value!r} is not a decimal number")
        if int(octet) > 255:
            return _reject(f"octet {position} of {value!r} exceeds 255")
    return _ACCEPT


def validate_netmask(value: str) -> Validation:
    """Accept a contiguous-prefix IPv4 netmask.

    Each octet must be one of the canonical mask values, octets must not
    increase from left to right, and once an octet is below 255 every octet
    after it must be 0.

    Examples
    --------
    >>> validate_netmask("255.255.240.0").accepted
    True
    >>> validate_netmask("255.0.255.0").reason
    "octet 3 of '255.0.255.0' is larger than the octet before it"
    """

    shape = validate_ipv4_address(value)
    if not shape:
        return shape
    octets = [int(octet) for octet in value.split(".")]
    for position, octet in enumerate(octets, start=1):
        if octet not in NETMASK_BITS:
            return _reject(f"octet {position} of {value!r} is not a valid netmask value ({octet})")
    for position in range(1, len(octets)):
        previous, current = octets[position - 1], octets[position]
        if current > previous:
            return _reject(f"octet {position + 1} of {value!r} is larger than the octet before it")
        if previous != 255 and current != 0:
            return _reject(f"octet {position + 1} of {value!r} must be 0 after a partial octet")
    return _ACCEPT


def netmask_to_cidr(value: str) -> int:
    """Return the prefix length for *value*.

    Raises
    ------
    InvalidNetmask
        When *value* is not a contiguous-prefix netmask.

    Examples
    --------
    >>> netmask_to_cidr("255.255.255.0")
    24
    """

    validation = validate_netmask(value)
    if not validation:
        raise InvalidNetmask(validation.reason)
    return sum(NETMASK_BITS[int(octet)] for octet in value.split("."))


def validate_hostname(value: str) -> Validation:
    """Accept a non-empty hostname made of letters, digits, dots and hyphens.

    Examples
    --------
    >>> validate_hostname("-bad.host").accepted
    False
    >>> validate_hostname("good-host.local").accepted
    True
    """

    if not value:
        return _reject("hostname must not be empty")
    if not _HOSTNAME_PATTERN.fullmatch(value):
        return _reject(f"hostname {value!r} may only contain letters, digits, '.' and '-'")
    if value[0] in ".-" or value[-1] in ".-":
        return _reject(f"hostname {value!r} must not start or end with '.' or '-'")
    return _ACCEPT


def validate_server_address(value: str) -> Validation:
    """Accept either an IPv4 address or a hostname."""

    if all(part.isdigit() for part in value.split(".")) and value:
        return validate_ipv4_address(value)
    return validate_hostname(value)


def validate_mtu(value: int) -> Validation:
    low, high = MTU_RANGE
    if not low <= value <= high:
        return _reject(f"MTU {value} must be between {low} and {high}")
    return _ACCEPT


def validate_proxy_mode(value: str) -> Validation:
    try:
        ProxyMode(value.strip().lower())
    except ValueError:
        return _reject(f"proxy mode {value!r} must be 'active' or 'passive'")
    return _ACCEPT


def validate_identifier(value: str, *, label: str) -> Validation:
    """Accept a MySQL database or account name without quoting hazards."""

    if not _IDENTIFIER_PATTERN.fullmatch(value):
        return _reject(f"{label} {value!r} may only contain letters, digits and '_' (max 64)")
    return _ACCEPT


def validate_password(value: str) -> Validation:
    """Accept a non-empty password that fits on one configuration line.

    Examples
    --------
    >>> validate_password("s3cret").accepted
    True
    >>> validate_password("a\\nDBHost=evil").reason
    'database password must not contain control characters'
    """

    if not value:
        return _reject("database password must not be empty")
    if any(ord(char) < 0x20 or ord(char) == 0x7F for char in value):
        return _reject("database password must not contain control characters")
    return _ACCEPT


def validate_local_database_host(value: str) -> Validation:
    """Accept only hosts that resolve to the MariaDB installed on this machine."""

    if value not in LOCAL_DATABASE_HOSTS:
        return _reject(
            f"database host {value!r} is not local; the installer provisions "
            "MariaDB on this host (use 'localhost')"
        )
    return _ACCEPT


def validate_version_format(value: str) -> Validation:
    """Accept ``major.minor`` where both parts are non-negative integers.

    Examples
    --------
    >>> validate_version_format("7.0").accepted
    True
    >>> validate_version_format("7").accepted
    False
    """

    if not _VERSION_PATTERN.fullmatch(value):
        return _reject(f"version {value!r} must look like 'major.minor'")
    return _ACCEPT


def version_key(value: str) -> tuple[int, int]:
    """Return a sortable ``(major, minor)`` tuple for a validated version."""

    major, minor = value.split(".")
    return int(major), int(minor)


class VersionVerdict(enum.StrEnum):
    """Decision returned by :func:`check_version`."""

    ACCEPT = "accept"
    REJECT = "reject"
    CONFIRM = "confirm"


@dataclass(frozen=True, slots=True)
class VersionCheck:
    """Version decision plus the reason behind it."""

    verdict: VersionVerdict
    reason: str = ""


def check_version_floor(value: str) -> VersionCheck | None:
    """Return a rejection for malformed or too-old versions, else ``None``.

    This needs no upstream data, so it runs before any collaborator call.

    Examples
    --------
    >>> check_version_floor("3.9").reason
    'version 3.9 is too old; the minimum supported major version is 4'
    """

    shape = validate_version_format(value)
    if not shape:
        return VersionCheck(VersionVerdict.REJECT, shape.reason)
    major, _ = version_key(value)
    if major < MINIMUM_MAJOR_VERSION:
        return VersionCheck(
            VersionVerdict.REJECT,
            f"version {value} is too old; the minimum supported major version "
            f"is {MINIMUM_MAJOR_VERSION}",
        )
    return None


def check_version(
    value: str,
    available: Sequence[str],
    *,
    current_year: int,
) -> VersionCheck:
    """Decide whether *value* can be installed.

    Versions above ``current_year - 2010`` are not rejected; the verdict asks
    the caller to obtain confirmation.

    Examples
    --------
    >>> check_version("7.0", ["6.0", "7.0"], current_year=2026).verdict
    <VersionVerdict.ACCEPT: 'accept'>
    >>> check_version("7.2", ["6.0", "7.0"], current_year=2026).verdict
    <VersionVerdict.REJECT: 'reject'>
    """

    floor = check_version_floor(value)
    if floor is not None:
        return floor
    if value not in available:
        listed = ", ".join(available) or "none"
        return VersionCheck(
            VersionVerdict.REJECT,
            f"version {value} is not published upstream (available: {listed})",
        )
    major, _ = version_key(value)
    ceiling = current_year - VERSION_YEAR_OFFSET
    if major > ceiling:
        return VersionCheck(
            VersionVerdict.CONFIRM,
            f"version {value} is newer than expected for {current_year} "
            f"(major {major} > {ceiling})",
        )
    return VersionCheck(VersionVerdict.ACCEPT)


def _network_rejections(network: NetworkConfig) -> list[str]:
    reasons: list[str] = []
    if not _INTERFACE_PATTERN.fullmatch(network.interface):
        reasons.append(f"interface name {network.interface!r} is not valid")
    checks = [
        validate_ipv4_address(network.address),
        validate_netmask(network.netmask),
    ]
    if network.gateway:
        checks.append(validate_ipv4_address(network.gateway))
    checks.extend(validate_ipv4_address(server) for server in network.dns)
    if network.mtu is not None:
        checks.append(validate_mtu(network.mtu))
    reasons.extend(check.reason for check in checks if not check)
    return reasons


def validate_desired_state(state: DesiredState) -> None:
    """Raise :class:`ValidationError` listing every malformed field.

    The version is only checked for shape and floor here; upstream
    membership is checked separately because it needs the repository.
    """

    checks = [
        validate_server_address(state.server_address),
        validate_hostname(state.proxy_hostname),
        validate_identifier(state.database_name, label="database name"),
        validate_identifier(state.database_user, label="database user"),
        validate_local_database_host(state.database_host),
        validate_password(state.database_password),
    ]
    reasons = [check.reason for check in checks if not check]
    floor = check_version_floor(state.zabbix_version)
    if floor is not None:
        reasons.insert(0, floor.reason)
    if state.network is not None:
        reasons.extend(_network_rejections(state.network))
    if reasons:
        raise ValidationError(*reasons)


__all__ = [
    "LOCAL_DATABASE_HOSTS",
    "NETMASK_BITS",
    "Validation",
    "VersionCheck",
    "VersionVerdict",
    "check_version",
    "check_version_floor",
    "netmask_to_cidr",
    "validate_desired_state",
    "validate_hostname",
    "validate_identifier",
    "validate_ipv4_address",
    "validate_local_database_host",
    "validate_mtu",
    "validate_netmask",
    "validate_password",
    "validate_proxy_mode",
    "validate_server_address",
    "validate_version_format",
    "version_key",
]
