"""Tests for proxy configuration rendering and patching."""

from __future__ import annotations

from pathlib import Path

from zabbix_proxy_installer._config_render import (
    OPERATIONAL_DEFAULTS,
    config_entries,
    patch_config_keys,
    read_config_value,
    render_proxy_config,
)
from zabbix_proxy_installer._installer_models import DesiredState, InstallLayout, ProxyMode


def test_render_contains_every_recognised_key(desired: DesiredState) -> None:
    text = render_proxy_config(desired)

    for key, value in [
        ("Server", "192.168.1.1"),
        ("Hostname", "zabbix-proxy"),
        ("ProxyMode", "0"),
        ("DBHost", "localhost"),
        ("DBName", "zabbix_proxy"),
        ("DBUser", "zabbix"),
        ("DBPassword", "zabbix"),
    ]:
        assert read_config_value(text, key) == value


def test_render_appends_operational_defaults(desired: DesiredState) -> None:
    entries = config_entries(desired)

    assert entries[-len(OPERATIONAL_DEFAULTS) :] == list(OPERATIONAL_DEFAULTS)
    assert [key for key, _ in entries[:3]] == ["Server", "Hostname", "ProxyMode"]


def test_render_uses_layout_paths(desired: DesiredState) -> None:
    layout = InstallLayout(log_dir=Path("/srv/log"), run_dir=Path("/srv/run"))

    text = render_proxy_config(desired, layout)

    assert read_config_value(text, "LogFile") == "/srv/log/zabbix_proxy.log"
    assert read_config_value(text, "PidFile") == "/srv/run/zabbix_proxy.pid"
    assert read_config_value(text, "SocketDir") == "/srv/run"


def test_render_is_deterministic(desired: DesiredState) -> None:
    assert render_proxy_config(desired) == render_proxy_config(desired)


def test_passive_mode_renders_one() -> None:
    state = DesiredState("7.0", "192.0.2.1", "proxy", proxy_mode=ProxyMode.PASSIVE)

    assert read_config_value(render_proxy_config(state), "ProxyMode") == "1"


def test_patch_replaces_active_line_and_keeps_others() -> None:
    text = "# comment\nServer=10.0.0.1\nCacheSize=128M\n"

    patched = patch_config_keys(text, {"Server": "10.0.0.2"})

    assert patched == "# comment\nServer=10.0.0.2\nCacheSize=128M\n"


def test_patch_fills_commented_placeholder() -> None:
    text = "### Option: DBHost\n# DBHost=\nServer=10.0.0.1\n"

    patched = patch_config_keys(text, {"DBHost": "db.local"})

    assert patched.splitlines() == ["### Option: DBHost", "DBHost=db.local", "Server=10.0.0.1"]


def test_patch_appends_missing_key() -> None:
    patched = patch_config_keys("Server=10.0.0.1\n", {"ProxyMode": "1"})

    assert patched == "Server=10.0.0.1\nProxyMode=1\n"


def test_read_config_value_ignores_comments() -> None:
    text = "# Hostname=old\nHostname=first\nHostname=last\n"

    assert read_config_value(text, "Hostname") == "last"
    assert read_config_value(text, "DBHost") is None
