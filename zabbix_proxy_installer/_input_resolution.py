"""Shared helpers for resolving CLI, environment and prompted inputs."""

from __future__ import annotations

import os
from collections import abc as cabc
from dataclasses import dataclass

from rich.console import Console
from rich.prompt import Prompt

from zabbix_proxy_installer._validators import Validation


@dataclass(frozen=True, slots=True)
class InputResolution:
    """Configuration for resolving an input from multiple sources."""

    env_key: str
    default: str | None = None
    required: bool = False
    prompt: str | None = None
    secret: bool = False


def parse_bool(value: str | None, *, default: bool = False) -> bool:
    """Parse a boolean string value.

    Examples
    --------
    >>> parse_bool("yes")
    True
    >>> parse_bool(None, default=True)
    True
    """
    if value is None:
        return default
    return value.strip().lower() in ("true", "1", "yes", "y", "on")


def resolve_input(
    param_value: str | None,
    resolution: InputResolution,
    env: cabc.Mapping[str, str] | None = None,
) -> str | None:
    """Resolve input from parameter, environment variable, or default."""

    if param_value is not None:
        return param_value

    env_value = (os.environ if env is None else env).get(resolution.env_key)
    if env_value is not None:
        return env_value

    if resolution.required and resolution.default is None:
        msg = f"{resolution.env_key} is required"
        raise SystemExit(msg)

    return resolution.default


class InputPrompter:
    """Resolve inputs, asking the operator for missing or rejected values.

    In non-interactive mode a missing required value or a rejected value
    aborts instead of prompting.
    """

    def __init__(
        self,
        *,
        interactive: bool,
        env: cabc.Mapping[str, str] | None = None,
        console: Console | None = None,
    ) -> None:
        self.interactive = interactive
        self._env = env
        self._console = console or Console(stderr=True)

    def _ask(self, resolution: InputResolution, default: str | None) -> str:
        question = resolution.prompt or resolution.env_key
        if default is None:
            return Prompt.ask(question, console=self._console, password=resolution.secret)
        return Prompt.ask(
            question, console=self._console, password=resolution.secret, default=default
        )

    def resolve(
        self,
        param_value: str | None,
        resolution: InputResolution,
        validator: cabc.Callable[[str], Validation] | None = None,
    ) -> str | None:
        """Return a validated value for *resolution*.

        Examples
        --------
        >>> InputPrompter(interactive=False, env={}).resolve(
        ...     None, InputResolution(env_key="DB_NAME", default="zabbix_proxy")
        ... )
        'zabbix_proxy'
        """

        if self.interactive:
            candidate = resolve_input(
                param_value,
                InputResolution(env_key=resolution.env_key),
                env=self._env,
            )
            if candidate is None and resolution.prompt is not None:
                candidate = self._ask(resolution, resolution.default)
            elif candidate is None:
                candidate = resolution.default
        else:
            candidate = resolve_input(param_value, resolution, env=self._env)

        while candidate is not None and validator is not None:
            verdict = validator(candidate)
            if verdict:
                break
            if not self.interactive or resolution.prompt is None:
                msg = f"{resolution.env_key}: {verdict.reason}"
                raise SystemExit(msg)
            self._console.print(f"[red]{verdict.reason}[/red]")
            candidate = self._ask(resolution, None)

        if candidate is None and resolution.required:
            msg = f"{resolution.env_key} is required"
            raise SystemExit(msg)
        return candidate


__all__ = ["InputPrompter", "InputResolution", "parse_bool", "resolve_input"]
