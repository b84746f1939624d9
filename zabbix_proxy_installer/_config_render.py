"""Render and patch ``zabbix_proxy.conf``.

:func:`render_proxy_config` produces the whole file from a
:class:`DesiredState`; the reconciler always writes that text in full, so
keys added by hand are discarded on the next run. :func:`patch_config_keys`
is the narrower in-place update used by ``update_proxy_config.py``.

Examples
--------
>>> text = render_proxy_config(DesiredState("7.0", "192.0.2.1", "proxy-1"))
>>> "Hostname=proxy-1" in text.splitlines()
True
"""

from __future__ import annotations

import re
from collections.abc import Mapping

from zabbix_proxy_installer._installer_models import DesiredState, InstallLayout

# Fixed operational defaults written after the per-run keys.
OPERATIONAL_DEFAULTS: tuple[tuple[str, str], ...] = (
    ("LogFileSize", "0"),
    ("CacheSize", "64M"),
    ("HistoryCacheSize", "16M"),
    ("StartPollers", "5"),
    ("StartPingers", "1"),
    ("StartDiscoverers", "1"),
    ("Timeout", "4"),
    ("LogSlowQueries", "3000"),
    ("FpingLocation", "/usr/bin/fping"),
    ("StatsAllowedIP", "127.0.0.1"),
)

_HEADER = "# Managed by zabbix-proxy-installer; local edits are overwritten.\n"


def config_entries(
    state: DesiredState,
    layout: InstallLayout | None = None,
) -> list[tuple[str, str]]:
    """Return the ordered ``(key, value)`` pairs for *state*."""

    layout = layout or InstallLayout()
    entries = [
        ("Server", state.server_address),
        ("Hostname", state.proxy_hostname),
        ("ProxyMode", state.proxy_mode.config_value),
        ("DBHost", state.database_host),
        ("DBName", state.database_name),
        ("DBUser", state.database_user),
        ("DBPassword", state.database_password),
        ("LogFile", str(layout.log_file)),
        ("PidFile", str(layout.pid_file)),
        ("SocketDir", str(layout.run_dir)),
    ]
    entries.extend(OPERATIONAL_DEFAULTS)
    return entries


def render_proxy_config(
    state: DesiredState,
    layout: InstallLayout | None = None,
) -> str:
    """Return the full configuration file text for *state*."""

    body = "".join(f"{key}={value}\n" for key, value in config_entries(state, layout))
    return _HEADER + body


def patch_config_keys(text: str, updates: Mapping[str, str]) -> str:
    """Replace or append ``key=value`` lines in existing config *text*.

    A commented default such as ``# DBHost=`` is replaced in place when the
    key has no active line; otherwise missing keys are appended. Every other
    line is preserved.

    Examples
    --------
    >>> patch_config_keys("Server=old\\n# DBHost=\\n", {"Server": "new", "DBHost": "db"})
    'Server=new\\nDBHost=db\\n'
    """

    lines = text.splitlines()
    for key, value in updates.items():
        replacement = f"{key}={value}"
        active = re.compile(rf"^{re.escape(key)}=")
        commented = re.compile(rf"^#\s*{re.escape(key)}=")
        indices = [index for index, line in enumerate(lines) if active.match(line)]
        if indices:
            for index in indices:
                lines[index] = replacement
            continue
        placeholder = next(
            (index for index, line in enumerate(lines) if commented.match(line)),
            None,
        )
        if placeholder is None:
            lines.append(replacement)
        else:
            lines[placeholder] = replacement
    return "\n".join(lines) + "\n"


def read_config_value(text: str, key: str) -> str | None:
    """Return the last active value of *key* in *text*, if any."""

    value = None
    for line in text.splitlines():
        name, sep, rest = line.partition("=")
        if sep and name.strip() == key and not name.lstrip().startswith("#"):
            value = rest.strip()
    return value


__all__ = [
    "OPERATIONAL_DEFAULTS",
    "config_entries",
    "patch_config_keys",
    "read_config_value",
    "render_proxy_config",
]
