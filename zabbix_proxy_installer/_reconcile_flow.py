"""Drive a Zabbix proxy host to its desired state.

The flow has three phases. Input validation rejects malformed requests
before anything touches the host (the version floor needs no upstream data,
so ``3.9`` never reaches a collaborator). The step sequence then runs every
step from :func:`build_steps` strictly in order. Verification runs last and
decides whether a run whose steps all succeeded is actually healthy.

Examples
--------
Reconcile against production collaborators:

>>> report = reconcile(desired, collaborators)
>>> report.exit_code
<ExitCode.OK: 0>
"""

from __future__ import annotations

import datetime as dt
import enum
import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from zabbix_proxy_installer._collaborators import Collaborators, SystemState
from zabbix_proxy_installer._installer_errors import (
    CollaboratorFailure,
    ValidationError,
    VerificationFailure,
)
from zabbix_proxy_installer._installer_models import (
    DesiredState,
    InstallLayout,
    StepOutcome,
    StepResult,
)
from zabbix_proxy_installer._reconcile_steps import Step, StepContext, build_steps
from zabbix_proxy_installer._validators import (
    VersionVerdict,
    check_version,
    validate_desired_state,
)
from zabbix_proxy_installer._verifier import (
    PollSchedule,
    VerificationReport,
    verify_installation,
)

logger = logging.getLogger(__name__)

DRY_RUN_REASON = "dry run: would apply"
VERSION_GATE = "version"


class ExitCode(enum.IntEnum):
    """Process exit status of an installer run."""

    OK = 0
    STEP_FAILED = 1
    INVALID_INPUT = 2
    VERIFICATION_FAILED = 3


@dataclass(frozen=True, slots=True)
class RunReport:
    """Ordered step results, the verification report and the exit code."""

    results: tuple[tuple[str, StepResult], ...]
    verification: VerificationReport | None
    halted_at: str | None
    exit_code: ExitCode

    def outcomes(self) -> list[StepOutcome]:
        return [result.outcome for _, result in self.results]

    def result(self, name: str) -> StepResult | None:
        for step_name, result in self.results:
            if step_name == name:
                return result
        return None

    @property
    def succeeded(self) -> bool:
        return self.exit_code is ExitCode.OK

    def ensure_healthy(self) -> None:
        """Raise :class:`VerificationFailure` when a post-run check failed."""

        if self.verification is None or self.verification.passed:
            return
        details = [f"{check.name}: {check.detail}" for check in self.verification.failures()]
        raise VerificationFailure("; ".join(details))


def validate_inputs(
    desired: DesiredState,
    collaborators: Collaborators,
    *,
    current_year: int,
) -> bool:
    """Validate *desired* and gate its version against upstream.

    Returns ``False`` when the operator declines a version above the
    expected ceiling.

    Raises
    ------
    ValidationError
        If any field is malformed or the version is not published upstream.
    CollaboratorFailure
        If the upstream version list cannot be fetched.
    """

    validate_desired_state(desired)
    available = collaborators.repository.fetch_available_versions()
    decision = check_version(desired.zabbix_version, available, current_year=current_year)
    if decision.verdict is VersionVerdict.REJECT:
        raise ValidationError(decision.reason)
    if decision.verdict is VersionVerdict.CONFIRM:
        logger.warning("%s", decision.reason)
        return collaborators.prompter.ask(f"{decision.reason}. Install it anyway?")
    return True


def _failure(exc: CollaboratorFailure) -> StepResult:
    cause = str(exc)
    if exc.stderr and exc.stderr not in cause:
        cause = f"{cause}: {exc.stderr}"
    return StepResult.failed(cause)


def _evaluate(step: Step, ctx: StepContext, *, dry_run: bool) -> StepResult:
    if step.skip_reason is not None:
        return StepResult.skipped(step.skip_reason)
    try:
        satisfied = step.precondition(ctx)
    except CollaboratorFailure as exc:
        if not dry_run:
            return _failure(exc)
        # An earlier skipped step may not have installed the tool this
        # precondition queries.
        logger.info("step %s: cannot inspect the host (%s)", step.name, exc)
        return StepResult.skipped(DRY_RUN_REASON)
    if satisfied:
        return StepResult.already_satisfied()
    if dry_run:
        return StepResult.skipped(DRY_RUN_REASON)
    try:
        return step.apply(ctx)
    except CollaboratorFailure as exc:
        return _failure(exc)


def _log_result(name: str, result: StepResult) -> None:
    if result.is_failure:
        logger.error("step %s: %s (%s)", name, result.outcome, result.detail)
    elif result.detail:
        logger.info("step %s: %s (%s)", name, result.outcome, result.detail)
    else:
        logger.info("step %s: %s", name, result.outcome)


def run_steps(
    steps: Sequence[Step],
    ctx: StepContext,
    *,
    dry_run: bool = False,
) -> tuple[list[tuple[str, StepResult]], str | None]:
    """Run *steps* in order and return the results plus the halting step.

    A failed fatal step halts the run. A failed non-fatal step continues only
    when the prompter affirms.
    """

    results: list[tuple[str, StepResult]] = []
    for step in steps:
        logger.info("step %s: checking", step.name)
        result = _evaluate(step, ctx, dry_run=dry_run)
        ctx.previous[step.name] = result
        results.append((step.name, result))
        _log_result(step.name, result)
        if not result.is_failure:
            continue
        if step.fatal:
            return results, step.name
        logger.warning("step %s failed but is not fatal", step.name)
        if not ctx.collaborators.prompter.ask(
            f"Step {step.name!r} failed: {result.detail}. Continue anyway?"
        ):
            return results, step.name
    return results, None


def reconcile(
    desired: DesiredState,
    collaborators: Collaborators,
    layout: InstallLayout | None = None,
    *,
    dry_run: bool = False,
    current_year: int | None = None,
    schedule: PollSchedule | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> RunReport:
    """Validate *desired*, run every step, then verify the host.

    Raises
    ------
    ValidationError
        If *desired* is malformed; the host is left untouched.
    """

    layout = layout or InstallLayout()
    schedule = schedule or PollSchedule()
    year = current_year or dt.datetime.now(dt.UTC).year

    try:
        accepted = validate_inputs(desired, collaborators, current_year=year)
    except CollaboratorFailure as exc:
        logger.error("cannot check version %s: %s", desired.zabbix_version, exc)
        return RunReport((), None, VERSION_GATE, ExitCode.STEP_FAILED)
    if not accepted:
        logger.error("version %s declined", desired.zabbix_version)
        return RunReport((), None, VERSION_GATE, ExitCode.STEP_FAILED)

    system = SystemState(collaborators, layout)
    ctx = StepContext(
        desired=desired,
        system=system,
        collaborators=collaborators,
        layout=layout,
        schedule=schedule,
        sleep=sleep,
    )
    results, halted_at = run_steps(build_steps(desired), ctx, dry_run=dry_run)
    if halted_at is not None:
        logger.error("run halted at step %s", halted_at)
        return RunReport(tuple(results), None, halted_at, ExitCode.STEP_FAILED)
    if dry_run:
        return RunReport(tuple(results), None, None, ExitCode.OK)

    verification = verify_installation(desired, system, schedule, sleep=sleep)
    exit_code = ExitCode.OK if verification.passed else ExitCode.VERIFICATION_FAILED
    return RunReport(tuple(results), verification, None, exit_code)


__all__ = [
    "DRY_RUN_REASON",
    "ExitCode",
    "RunReport",
    "reconcile",
    "run_steps",
    "validate_inputs",
]
