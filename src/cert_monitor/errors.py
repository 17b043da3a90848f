"""Exception hierarchy for cert-monitor.

Per-certificate failures (issuance, persistence) are recorded against the
certificate that raised them and never abort a batch unless fail-fast is
requested. Configuration failures stop a run before any certificate is
touched. Reload failures are logged only.
"""
from __future__ import annotations


class CertMonitorError(Exception):
    """Base class for every error raised by cert-monitor."""


class ConfigError(CertMonitorError):
    """Main or certificate configuration could not be read or validated."""


# ------------------------------------------------------------------
# Issuance backend
# ------------------------------------------------------------------


class IssuanceError(CertMonitorError):
    """A call to the secret-issuance backend failed.

    Parameters
    ----------
    message:
        Human-readable description of the failure.
    step:
        The protocol step that failed: ``"login"`` or ``"certificate"``.
    """

    def __init__(self, message: str, step: str) -> None:
        super().__init__(message)
        self.step = step


class _StatusError(IssuanceError):
    """Backend answered with a non-success HTTP status."""

    def __init__(
        self,
        message: str,
        step: str,
        status_code: int,
        errors: list[str] | None = None,
    ) -> None:
        if errors:
            message = f"{message} errors: {errors}"
        super().__init__(message, step)
        self.status_code = status_code
        self.errors: list[str] = list(errors or [])


class AuthError(_StatusError):
    """Login with role/secret credentials was rejected."""


class IssueError(_StatusError):
    """Certificate request was rejected."""


class ProtocolError(IssuanceError):
    """The backend answered successfully but the envelope was malformed."""


class TransportError(IssuanceError):
    """The backend could not be reached or did not answer in time."""


# ------------------------------------------------------------------
# Persistence
# ------------------------------------------------------------------


class PersistError(CertMonitorError):
    """Issued material could not be written to disk."""


class OutputSpecError(PersistError):
    """Output specification names an unknown item or file kind."""


class OwnershipError(PersistError):
    """Owner of the output file could not be resolved or applied."""


# ------------------------------------------------------------------
# Reload
# ------------------------------------------------------------------


class ReloadExecutionError(CertMonitorError):
    """A reload command exited with an error.

    Parameters
    ----------
    command:
        The shell command that failed.
    output:
        Combined stdout/stderr captured from the command.
    """

    def __init__(self, command: str, message: str, output: str = "") -> None:
        super().__init__(message)
        self.command = command
        self.output = output
