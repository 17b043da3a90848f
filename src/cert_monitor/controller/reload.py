"""Reload of services depending on renewed certificates.

Reloading is best-effort: the certificate is already renewed by the time a
reload runs, so a failing command is logged and never reported as a
failure of the batch.
"""
from __future__ import annotations

import logging
import subprocess
from abc import ABC, abstractmethod
from typing import Iterable

from cert_monitor.errors import ReloadExecutionError

logger = logging.getLogger(__name__)

DEFAULT_SHELL = "/bin/bash"


class Reloader(ABC):
    """Runs reload commands once per batch."""

    @abstractmethod
    def reload(self, commands: Iterable[str]) -> None:
        """Run every distinct non-empty command once.

        Implementations must not raise on command failure.
        """


class ShellReloader(Reloader):
    """Runs reload commands through a shell, one at a time.

    A command that hangs blocks the remaining ones; no timeout is applied.

    Parameters
    ----------
    shell:
        Shell executable used to interpret each command.
    """

    def __init__(self, shell: str = DEFAULT_SHELL) -> None:
        self._shell = shell

    def reload(self, commands: Iterable[str]) -> None:
        for command in sorted(set(commands)):
            if not command:
                logger.info("No reload command specified. Skipping.")
                continue
            try:
                self.run_command(command)
            except ReloadExecutionError as exc:
                logger.error("Error executing command %r: %s", exc.command, exc)
                logger.error("Output: %r", exc.output)

    def run_command(self, command: str) -> str:
        """Run *command* and return its combined output.

        Raises
        ------
        ReloadExecutionError
            If the command cannot be started or exits non-zero.
        """
        logger.info("Executing command `%s'", command)
        try:
            completed = subprocess.run(
                [self._shell, "-c", command],
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
                check=False,
            )
        except OSError as exc:
            raise ReloadExecutionError(command, f"cannot start shell: {exc}") from exc

        if completed.returncode != 0:
            raise ReloadExecutionError(
                command,
                f"exit status {completed.returncode}",
                output=completed.stdout or "",
            )
        return completed.stdout or ""
