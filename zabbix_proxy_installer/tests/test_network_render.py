"""Tests for netplan, ifupdown and hosts-file rendering."""

from __future__ import annotations

import yaml

from zabbix_proxy_installer._installer_models import NetworkConfig
from zabbix_proxy_installer._network_render import (
    hosts_entry_present,
    reconcile_hosts,
    render_ifupdown,
    render_netplan,
)


def test_netplan_document_round_trips_through_yaml() -> None:
    network = NetworkConfig(
        "ens18",
        "10.0.0.5",
        "255.255.255.0",
        gateway="10.0.0.1",
        dns=("1.1.1.1", "8.8.8.8"),
        mtu=1450,
    )

    document = yaml.safe_load(render_netplan(network, 24))

    interface = document["network"]["ethernets"]["ens18"]
    assert document["network"]["version"] == 2
    assert interface["dhcp4"] is False
    assert interface["addresses"] == ["10.0.0.5/24"]
    assert interface["routes"] == [{"to": "default", "via": "10.0.0.1"}]
    assert interface["nameservers"] == {"addresses": ["1.1.1.1", "8.8.8.8"]}
    assert interface["mtu"] == 1450


def test_netplan_omits_optional_settings() -> None:
    document = yaml.safe_load(
        render_netplan(NetworkConfig("eth0", "192.168.1.20", "255.255.0.0"), 16)
    )

    assert set(document["network"]["ethernets"]["eth0"]) == {"dhcp4", "addresses"}


def test_ifupdown_stanza_lists_gateway_and_dns() -> None:
    network = NetworkConfig("eth0", "10.0.0.5", "255.255.255.0", "10.0.0.1", ("1.1.1.1",))

    stanza = render_ifupdown(network, network.netmask)

    assert stanza.splitlines() == [
        "auto eth0",
        "iface eth0 inet static",
        "    address 10.0.0.5",
        "    netmask 255.255.255.0",
        "    gateway 10.0.0.1",
        "    dns-nameservers 1.1.1.1",
    ]


def test_reconcile_hosts_adds_missing_alias() -> None:
    text = "127.0.0.1 localhost\n"

    updated = reconcile_hosts(text, "zabbix-proxy")

    assert updated == "127.0.0.1 localhost\n127.0.1.1 zabbix-proxy\n"
    assert hosts_entry_present(updated, "zabbix-proxy")


def test_hosts_entry_ignores_other_lines() -> None:
    text = "127.0.0.1 localhost zabbix-proxy\n# 127.0.1.1 zabbix-proxy\n"

    assert not hosts_entry_present(text, "zabbix-proxy")
