"""Exception hierarchy for the Zabbix proxy installer.

Callers can catch :class:`InstallerError` to handle every failure raised by
the reconciler, or one of the narrower types when the distinction matters
(validation problems never mutate the host, collaborator failures may have).

Examples
--------
>>> raise InvalidNetmask("octet 1 is not a valid netmask value")
"""

from __future__ import annotations


class InstallerError(Exception):
    """Base error for installer operations."""


class ValidationError(InstallerError):
    """Raised when operator input is malformed.

    Parameters
    ----------
    reasons
        One or more human-readable rejection reasons.

    Examples
    --------
    >>> str(ValidationError("bad address", "bad hostname"))
    'bad address; bad hostname'
    """

    def __init__(self, *reasons: str) -> None:
        self.reasons = tuple(reasons)
        super().__init__("; ".join(reasons))


class InvalidNetmask(ValidationError):
    """Raised when a netmask cannot be converted to a prefix length."""


class CollaboratorFailure(InstallerError):
    """Raised when an external system call fails.

    Parameters
    ----------
    message
        Summary of the failed action.
    command
        The command line that was executed, when there was one.
    stderr
        Raw error output reported by the collaborator.

    Examples
    --------
    >>> exc = CollaboratorFailure("apt failed", command=("apt-get",), stderr="E: lock")
    >>> exc.stderr
    'E: lock'
    """

    def __init__(
        self,
        message: str,
        *,
        command: tuple[str, ...] = (),
        stderr: str = "",
    ) -> None:
        self.command = command
        self.stderr = stderr
        super().__init__(message)


class VerificationFailure(InstallerError):
    """Raised when post-run checks report an unhealthy system."""


__all__ = [
    "CollaboratorFailure",
    "InstallerError",
    "InvalidNetmask",
    "ValidationError",
    "VerificationFailure",
]
