"""Render static network configuration and ``/etc/hosts`` entries.

Netplan is preferred when present; hosts without it get an ifupdown stanza
under ``/etc/network/interfaces.d``.
"""

from __future__ import annotations

import yaml

from zabbix_proxy_installer._installer_models import NetworkConfig

HOSTS_LOOPBACK = "127.0.1.1"


def netplan_document(network: NetworkConfig, cidr: int) -> dict[str, object]:
    """Return the netplan mapping for *network*.

    Examples
    --------
    >>> doc = netplan_document(NetworkConfig("ens18", "10.0.0.5", "255.255.255.0"), 24)
    >>> doc["network"]["ethernets"]["ens18"]["addresses"]
    ['10.0.0.5/24']
    """

    interface: dict[str, object] = {
        "dhcp4": False,
        "addresses": [f"{network.address}/{cidr}"],
    }
    if network.gateway:
        interface["routes"] = [{"to": "default", "via": network.gateway}]
    if network.dns:
        interface["nameservers"] = {"addresses": list(network.dns)}
    if network.mtu is not None:
        interface["mtu"] = network.mtu
    return {
        "network": {
            "version": 2,
            "renderer": "networkd",
            "ethernets": {network.interface: interface},
        }
    }


def render_netplan(network: NetworkConfig, cidr: int) -> str:
    return yaml.safe_dump(netplan_document(network, cidr), sort_keys=False)


def render_ifupdown(network: NetworkConfig, netmask: str) -> str:
    """Return an ``interfaces.d`` stanza for *network*.

    Examples
    --------
    >>> print(render_ifupdown(NetworkConfig("eth0", "10.0.0.5", "255.255.255.0", mtu=1450), "255.255.255.0"), end="")
    auto eth0
    iface eth0 inet static
        address 10.0.0.5
        netmask 255.255.255.0
        mtu 1450
    """

    lines = [
        f"auto {network.interface}",
        f"iface {network.interface} inet static",
        f"    address {network.address}",
        f"    netmask {netmask}",
    ]
    if network.gateway:
        lines.append(f"    gateway {network.gateway}")
    if network.dns:
        lines.append(f"    dns-nameservers {' '.join(network.dns)}")
    if network.mtu is not None:
        lines.append(f"    mtu {network.mtu}")
    return "\n".join(lines) + "\n"


def hosts_entry_present(text: str, hostname: str) -> bool:
    """Return whether the loopback alias line already names *hostname*."""

    for line in text.splitlines():
        fields = line.split("#", 1)[0].split()
        if fields and fields[0] == HOSTS_LOOPBACK:
            return hostname in fields[1:]
    return False


def reconcile_hosts(text: str, hostname: str) -> str:
    """Point the ``127.0.1.1`` alias at *hostname*, adding it if missing.

    Examples
    --------
    >>> reconcile_hosts("127.0.0.1 localhost\\n127.0.1.1 old\\n", "proxy")
    '127.0.0.1 localhost\\n127.0.1.1 proxy\\n'
    """

    lines = text.splitlines()
    entry = f"{HOSTS_LOOPBACK} {hostname}"
    for index, line in enumerate(lines):
        fields = line.split()
        if fields and fields[0] == HOSTS_LOOPBACK:
            lines[index] = entry
            break
    else:
        lines.append(entry)
    return "\n".join(lines) + "\n"


__all__ = [
    "HOSTS_LOOPBACK",
    "hosts_entry_present",
    "netplan_document",
    "reconcile_hosts",
    "render_ifupdown",
    "render_netplan",
]
