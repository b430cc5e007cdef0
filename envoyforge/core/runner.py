"""External command invocation.

Every external collaborator (git, apt-get, bazel, docker) is driven
through ``CommandRunner.run``. Commands are passed as argv lists and never
through a shell. The runner owns the environment overrides exported by
earlier stages (for example ``CC``/``CXX`` selected during environment
preparation) so that later stages see them, mirroring how a CI job
carries exported variables between steps.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import time
from collections.abc import Mapping, Sequence
from pathlib import Path

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

COMMAND_NOT_FOUND = 127


class CommandResult(BaseModel):
    """Outcome of one external command."""

    model_config = ConfigDict(frozen=True)

    argv: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    duration_seconds: float = 0.0
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    @property
    def output(self) -> str:
        """Combined stdout and stderr, exactly as the tool produced them."""
        if self.stdout and self.stderr:
            return f"{self.stdout}\n{self.stderr}"
        return self.stdout or self.stderr

    @property
    def command_line(self) -> str:
        return shlex.join(self.argv)


class CommandFailedError(RuntimeError):
    """Raised when a checked command exits non-zero, times out, or is missing."""

    def __init__(self, result: CommandResult) -> None:
        if result.timed_out:
            reason = "timed out"
        elif result.returncode == COMMAND_NOT_FOUND:
            reason = "command not found"
        else:
            reason = f"exit status {result.returncode}"
        super().__init__(f"`{result.command_line}` failed: {reason}")
        self.result = result


class CommandRunner:
    """Runs external commands with the pipeline's environment overrides.

    Parameters
    ----------
    use_sudo:
        Prefix privileged commands (package installs, system paths) with
        ``sudo``.
    timeout:
        Optional wall-clock limit in seconds applied to every command.
    """

    def __init__(self, *, use_sudo: bool = True, timeout: float | None = None) -> None:
        self.use_sudo = use_sudo
        self.timeout = timeout
        self._exports: dict[str, str] = {}

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    def export(self, name: str, value: str) -> None:
        """Set an environment variable for every later command of the run."""
        logger.info("export %s=%s", name, value)
        self._exports[name] = value

    @property
    def exported(self) -> dict[str, str]:
        return dict(self._exports)

    def environment(self, extra: Mapping[str, str] | None = None) -> dict[str, str]:
        env = dict(os.environ)
        env.update(self._exports)
        if extra:
            env.update(extra)
        return env

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def run(
        self,
        argv: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        capture: bool = False,
        input_text: str | None = None,
        check: bool = True,
        privileged: bool = False,
    ) -> CommandResult:
        """Run one command and return its result.

        With ``capture=False`` the tool's output goes straight to the
        terminal. With ``check=True`` a failing command raises
        ``CommandFailedError``.
        """
        command = list(argv)
        if privileged and self.use_sudo:
            command = ["sudo", *command]

        logger.info("$ %s", shlex.join(command))
        started = time.monotonic()
        try:
            completed = subprocess.run(
                command,
                cwd=str(cwd) if cwd is not None else None,
                env=self.environment(env),
                input=input_text,
                capture_output=capture,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError:
            result = CommandResult(
                argv=tuple(command),
                returncode=COMMAND_NOT_FOUND,
                stderr=f"{command[0]}: command not found",
                duration_seconds=time.monotonic() - started,
            )
        except subprocess.TimeoutExpired as exc:
            result = CommandResult(
                argv=tuple(command),
                returncode=-1,
                stdout=_decode(exc.stdout),
                stderr=_decode(exc.stderr),
                duration_seconds=time.monotonic() - started,
                timed_out=True,
            )
        else:
            result = CommandResult(
                argv=tuple(command),
                returncode=completed.returncode,
                stdout=completed.stdout or "",
                stderr=completed.stderr or "",
                duration_seconds=time.monotonic() - started,
            )

        logger.debug(
            "%s -> %d (%.1fs)", command[0], result.returncode, result.duration_seconds
        )
        if check and not result.ok:
            raise CommandFailedError(result)
        return result


def _decode(stream: bytes | str | None) -> str:
    if stream is None:
        return ""
    if isinstance(stream, bytes):
        return stream.decode("utf-8", errors="replace")
    return stream
