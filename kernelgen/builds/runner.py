"""Make runner for the kernel build system.

This module handles:
- Composing ``make`` commands for kernel targets
- Executing make with subprocess
- Capturing stdout/stderr to transcript files
- Enforcing timeouts

Success is judged from the exit status only. Kernel builds print plenty
of warnings that look like errors; the log text is never inspected.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)


class MakeExecutionError(Exception):
    """Raised when make cannot be run to completion."""

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        code: str = "make_error",
    ) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.code = code


@dataclass
class MakeResult:
    """Result of a make invocation.

    Attributes:
        success: Whether make exited with status 0.
        exit_code: Process exit code.
        log_path: Transcript file.
        started_at: Start time.
        finished_at: Finish time.
        command: The command that was executed.
        error_message: Error message if make failed.
    """

    success: bool
    exit_code: int
    log_path: Path
    started_at: datetime
    finished_at: datetime
    command: str
    error_message: str | None = None

    @property
    def duration(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()


def compose_make_command(
    arch: str,
    output_dir: str = "out",
    targets: list[str] | None = None,
    jobs: int | None = None,
    make_vars: dict[str, str] | None = None,
) -> list[str]:
    """Compose an out-of-tree kernel make command.

    Args:
        arch: Kernel architecture (ARCH=).
        output_dir: Out-of-tree build directory (O=).
        targets: Make targets; the default target builds the image.
        jobs: Parallel jobs hint (-j).
        make_vars: Extra make variables, e.g. KCFLAGS.

    Returns:
        Command as list of strings suitable for subprocess.
    """
    cmd = ["make", f"O={output_dir}", f"ARCH={arch}"]

    if targets:
        cmd.extend(targets)

    if jobs:
        cmd.append(f"-j{jobs}")

    if make_vars:
        cmd.extend(f"{key}={value}" for key, value in make_vars.items())

    return cmd


def run_make(
    cmd: list[str],
    kernel_dir: Path,
    log_path: Path,
    env_override: dict[str, str] | None = None,
    timeout: int | None = None,
    append: bool = False,
) -> MakeResult:
    """Execute make in the kernel tree with output captured to a log file.

    Args:
        cmd: Command from compose_make_command().
        kernel_dir: Kernel source tree (working directory).
        log_path: Transcript file.
        env_override: Environment variable overrides.
        timeout: Timeout in seconds (None = no timeout).
        append: Append to the transcript instead of overwriting it.

    Returns:
        MakeResult with execution details.

    Raises:
        MakeExecutionError: If make cannot be started or times out.
    """
    log_path.parent.mkdir(parents=True, exist_ok=True)

    cmd_str = shlex.join(cmd)
    logger.info("Executing: %s", cmd_str)
    logger.debug("Working directory: %s", kernel_dir)

    started_at = datetime.now(timezone.utc)
    error_message: str | None = None

    env: dict[str, str] | None = None
    if env_override:
        env = dict(os.environ)
        env.update(env_override)

    try:
        with log_path.open("a" if append else "w") as log_file:
            log_file.write(f"# Command: {cmd_str}\n")
            log_file.write(f"# Started: {started_at.isoformat()}\n")
            log_file.write(f"# CWD: {kernel_dir}\n")
            log_file.write("# " + "=" * 70 + "\n\n")
            log_file.flush()

            result = subprocess.run(
                cmd,
                cwd=kernel_dir,
                stdout=log_file,
                stderr=subprocess.STDOUT,
                timeout=timeout,
                env=env,
                check=False,
            )

        exit_code = result.returncode
        success = exit_code == 0
        if not success:
            error_message = f"make exited with code {exit_code}"
            logger.debug("%s. See log: %s", error_message, log_path)

    except subprocess.TimeoutExpired as e:
        error_message = f"make timed out after {timeout} seconds"
        logger.error("%s. See log: %s", error_message, log_path)

        with log_path.open("a") as log_file:
            log_file.write(f"\n# TIMEOUT after {timeout} seconds\n")

        raise MakeExecutionError(
            error_message,
            exit_code=-1,
            code="build_timeout",
        ) from e

    except OSError as e:
        error_message = f"Failed to execute make: {e}"
        logger.error(error_message)
        raise MakeExecutionError(
            error_message,
            exit_code=None,
            code="execution_error",
        ) from e

    finished_at = datetime.now(timezone.utc)

    with log_path.open("a") as log_file:
        log_file.write(f"\n# Finished: {finished_at.isoformat()}\n")
        log_file.write(f"# Exit code: {exit_code}\n")
        duration = (finished_at - started_at).total_seconds()
        log_file.write(f"# Duration: {duration:.1f}s\n\n")

    return MakeResult(
        success=success,
        exit_code=exit_code,
        log_path=log_path,
        started_at=started_at,
        finished_at=finished_at,
        command=cmd_str,
        error_message=error_message,
    )


__all__ = [
    "MakeExecutionError",
    "MakeResult",
    "compose_make_command",
    "run_make",
]
