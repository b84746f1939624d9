"""Tests for installer input validators."""

from __future__ import annotations

from dataclasses import replace

import pytest

from zabbix_proxy_installer._installer_errors import InvalidNetmask, ValidationError
from zabbix_proxy_installer._installer_models import DesiredState, NetworkConfig
from zabbix_proxy_installer._validators import (
    VersionVerdict,
    check_version,
    check_version_floor,
    netmask_to_cidr,
    validate_desired_state,
    validate_hostname,
    validate_identifier,
    validate_ipv4_address,
    validate_mtu,
    validate_netmask,
    validate_password,
    validate_proxy_mode,
    validate_server_address,
    validate_version_format,
    version_key,
)


@pytest.mark.parametrize(
    "value",
    ["255.255.255.0", "0.0.0.0", "192.168.001.010", "10.0.0.1"],
)
def test_ipv4_accepts_valid_addresses(value: str) -> None:
    assert validate_ipv4_address(value)


@pytest.mark.parametrize(
    ("value", "reason"),
    [
        pytest.param("256.1.1.1", "exceeds 255", id="octet-range"),
        pytest.param("10.0.0", "four dot-separated", id="too-short"),
        pytest.param("10.0.0.0.1", "four dot-separated", id="too-long"),
        pytest.param("10.a.0.1", "not a decimal", id="letters"),
        pytest.param("10..0.1", "not a decimal", id="empty-octet"),
        pytest.param("1000.0.0.1", "not a decimal", id="four-digits"),
    ],
)
def test_ipv4_rejects_malformed_addresses(value: str, reason: str) -> None:
    result = validate_ipv4_address(value)

    assert not result
    assert reason in result.reason


@pytest.mark.parametrize(
    ("mask", "prefix"),
    [
        ("255.255.255.0", 24),
        ("255.255.255.128", 25),
        ("255.255.240.0", 20),
        ("255.0.0.0", 8),
        ("0.0.0.0", 0),
        ("255.255.255.255", 32),
    ],
)
def test_netmask_to_cidr(mask: str, prefix: int) -> None:
    assert netmask_to_cidr(mask) == prefix


def test_netmask_to_cidr_rejects_non_canonical_octet() -> None:
    with pytest.raises(InvalidNetmask, match="not a valid netmask value"):
        netmask_to_cidr("255.255.255.1")


def test_netmask_rejects_increasing_octets() -> None:
    result = validate_netmask("255.0.255.0")

    assert not result
    assert "larger than the octet before it" in result.reason


def test_netmask_rejects_bits_after_partial_octet() -> None:
    result = validate_netmask("255.128.128.0")

    assert not result
    assert "must be 0 after a partial octet" in result.reason


def test_netmask_and_cidr_agree() -> None:
    """A mask rejected by the validator never yields a prefix."""

    for mask in ("255.0.255.0", "255.255.255.1", "255.128.128.0", "bad"):
        assert not validate_netmask(mask)
        with pytest.raises(InvalidNetmask):
            netmask_to_cidr(mask)


@pytest.mark.parametrize(
    ("value", "accepted"),
    [
        ("good-host.local", True),
        ("zabbix-proxy", True),
        ("-bad.host", False),
        ("bad.host.", False),
        ("", False),
        ("under_score", False),
        ("has space", False),
    ],
)
def test_hostname(value: str, accepted: bool) -> None:
    assert validate_hostname(value).accepted is accepted


def test_server_address_accepts_ip_or_name() -> None:
    assert validate_server_address("192.168.1.1")
    assert validate_server_address("zabbix.example.com")
    assert not validate_server_address("999.1.1.1")


def test_mtu_bounds() -> None:
    assert validate_mtu(1500)
    assert validate_mtu(68)
    assert not validate_mtu(67)
    assert not validate_mtu(9001)


def test_proxy_mode_is_case_insensitive() -> None:
    assert validate_proxy_mode("Passive")
    assert not validate_proxy_mode("hybrid")


def test_identifier_rejects_quoting_hazards() -> None:
    assert validate_identifier("zabbix_proxy", label="database name")
    result = validate_identifier("zabbix`; DROP", label="database name")
    assert not result
    assert result.reason.startswith("database name")


@pytest.mark.parametrize(
    ("value", "accepted"),
    [("7.0", True), ("10.12", True), ("7", False), ("7.0.1", False), ("v7.0", False)],
)
def test_version_format(value: str, accepted: bool) -> None:
    assert validate_version_format(value).accepted is accepted


def test_version_key_sorts_numerically() -> None:
    assert sorted(["6.4", "10.0", "7.0"], key=version_key) == ["6.4", "7.0", "10.0"]


def test_version_floor_rejects_old_versions() -> None:
    floor = check_version_floor("3.9")

    assert floor is not None
    assert floor.verdict is VersionVerdict.REJECT
    assert "too old" in floor.reason
    assert check_version_floor("4.0") is None


def test_check_version_ceiling_requires_confirmation() -> None:
    decision = check_version("17.0", ["7.0", "17.0"], current_year=2026)

    assert decision.verdict is VersionVerdict.CONFIRM
    assert "newer than expected" in decision.reason


def test_check_version_membership() -> None:
    assert check_version("7.0", ["6.0", "7.0"], current_year=2026).verdict is (
        VersionVerdict.ACCEPT
    )
    rejected = check_version("7.2", ["6.0", "7.0"], current_year=2026)
    assert rejected.verdict is VersionVerdict.REJECT
    assert "6.0, 7.0" in rejected.reason


def test_check_version_floor_runs_before_membership() -> None:
    decision = check_version("3.9", [], current_year=2026)

    assert "too old" in decision.reason


def test_desired_state_collects_every_reason() -> None:
    state = DesiredState(
        "3.9",
        "192.168.1.1",
        "-proxy",
        database_password="",
        network=NetworkConfig("ens18", "10.0.0.300", "255.0.255.0", mtu=20),
    )

    with pytest.raises(ValidationError) as excinfo:
        validate_desired_state(state)

    reasons = excinfo.value.reasons
    assert "too old" in reasons[0]
    assert any("hostname" in reason for reason in reasons)
    assert any("password" in reason for reason in reasons)
    assert any("exceeds 255" in reason for reason in reasons)
    assert any("larger than the octet before it" in reason for reason in reasons)
    assert any("MTU" in reason for reason in reasons)


def test_desired_state_accepts_valid_network() -> None:
    state = DesiredState(
        "7.0",
        "192.168.1.1",
        "zabbix-proxy",
        network=NetworkConfig(
            "ens18", "10.0.0.5", "255.255.255.0", gateway="10.0.0.1", dns=("1.1.1.1",)
        ),
    )

    validate_desired_state(state)
    validate_desired_state(replace(state, network=None))


@pytest.mark.parametrize(
    ("password", "reason"),
    [
        ("", "must not be empty"),
        ("secret\nDBHost=10.6.6.6", "control characters"),
        ("tab\tseparated", "control characters"),
    ],
)
def test_password_rejects_values_that_break_the_config_line(password: str, reason: str) -> None:
    check = validate_password(password)

    assert not check
    assert reason in check.reason


def test_password_accepts_punctuation() -> None:
    assert validate_password("p@ss word;'#=")


def test_desired_state_rejects_remote_database_host() -> None:
    state = DesiredState("7.0", "192.168.1.1", "zabbix-proxy", database_host="db.example.net")

    with pytest.raises(ValidationError) as excinfo:
        validate_desired_state(state)

    assert excinfo.value.reasons == (
        "database host 'db.example.net' is not local; the installer provisions "
        "MariaDB on this host (use 'localhost')",
    )
    validate_desired_state(replace(state, database_host="127.0.0.1"))
