from __future__ import annotations

import logging
import subprocess
from collections.abc import Mapping, Sequence
from typing import Protocol


class CommandError(Exception):
    def __init__(self, args: Sequence[str], message: str, *, returncode: int | None = None):
        super().__init__(f"Command `{' '.join(args)}` {message}")
        self.command = list(args)
        self.returncode = returncode


class CommandRunner(Protocol):
    def run(self, args: Sequence[str], *, env: Mapping[str, str]) -> None:
        ...


class SubprocessCommandRunner:
    """Runs commands with an explicit environment (never the ambient one)."""

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger(__name__)

    def run(self, args: Sequence[str], *, env: Mapping[str, str]) -> None:
        argv = [str(arg) for arg in args]
        self.logger.info("Running: %s", " ".join(argv))
        try:
            subprocess.run(argv, env=dict(env), check=True)
        except FileNotFoundError as exc:
            raise CommandError(argv, f"could not be started: {exc}") from exc
        except subprocess.CalledProcessError as exc:
            raise CommandError(
                argv, f"exited with status {exc.returncode}", returncode=exc.returncode
            ) from exc
