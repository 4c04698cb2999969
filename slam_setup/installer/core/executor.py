"""
Step Executor - Install Step Execution
======================================

Runs one InstallStep at a time inside the provisioned environment and reports
what happened as a tagged ExecutionResult.

OUTCOME TAGS:
------------
Every step ends in exactly one of:

- OK:        the command exited 0 (on any attempt)
- TOLERATED: an optional step (required=False) exhausted its attempts
- FATAL:     a required step exhausted its attempts

The executor never raises for a failed command. The orchestrator looks at
the tag and decides whether to stop, which keeps the single tolerated
failure (torchcodec) visible in the registry data instead of buried in an
except clause.

RETRY LOGIC:
-----------
conda and pip both fail transiently on flaky channel/index connections. Each
step is attempted up to max_retries times with retry_delay seconds between
attempts. Timeouts and "command not found" count as failed attempts.

ENVIRONMENT:
-----------
Each command receives context.environ(include_build=step.needs_build_env):
the activation variables always, the CUDA build paths only for steps that
compile extensions. os.environ is never modified.
"""

import logging
import subprocess
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional

from .config import (
    DEFAULT_RETRY_COUNT,
    DEFAULT_RETRY_DELAY,
    DEFAULT_TIMEOUT,
)
from .environment import BuildContext, EnvironmentHandle
from .process import CommandRunner, run_command
from .registry import InstallStep, StepKind

logger = logging.getLogger(__name__)


# =============================================================================
# Data Classes
# =============================================================================


class StepOutcome(Enum):
    OK = "ok"
    TOLERATED = "tolerated"
    FATAL = "fatal"


@dataclass
class ExecutionResult:
    """
    Result of an install step.

    FIELDS:
    - step_name: Which step was run
    - outcome: OK / TOLERATED / FATAL
    - attempt: Which attempt succeeded (or total attempts if failed)
    - duration_seconds: How long the step took, retries included
    - returncode: Exit status of the last attempt (None if it never exited)
    - error: Error message if failed
    - stdout/stderr: Output of the last attempt
    """
    step_name: str
    outcome: StepOutcome
    attempt: int
    duration_seconds: float
    returncode: Optional[int] = None
    error: Optional[str] = None
    stdout: Optional[str] = None
    stderr: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome == StepOutcome.OK

    def __str__(self) -> str:
        """Human-readable summary."""
        if self.outcome == StepOutcome.OK:
            return f"{self.step_name}: installed in {self.duration_seconds:.1f}s (attempt {self.attempt})"
        label = "skipped (optional)" if self.outcome == StepOutcome.TOLERATED else "FAILED"
        return f"{self.step_name}: {label} after {self.attempt} attempts - {self.error}"


# =============================================================================
# Step Executor Class
# =============================================================================


class StepExecutor:
    """
    Executes install steps with retry and logging.

    USAGE:
    -----
        executor = StepExecutor(handle, project_dir=Path("."), conda_path="/opt/conda/bin/conda")
        for step in get_steps_in_install_order():
            result = executor.run_step(step, cuda_version="12.1", context=context)
            if result.outcome == StepOutcome.FATAL:
                raise InstallStepError(...)

    THREADING NOTE:
    ---------------
    Not thread-safe, and not meant to be: conda and pip must never run
    concurrently against the same prefix.
    """

    def __init__(
        self,
        environment: EnvironmentHandle,
        project_dir: Path,
        conda_path: str = "conda",
        git_path: str = "git",
        runner: CommandRunner = run_command,
        max_retries: int = DEFAULT_RETRY_COUNT,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        timeout: int = DEFAULT_TIMEOUT,
    ):
        self.environment = environment
        self.project_dir = Path(project_dir)
        self.conda_path = conda_path
        self.git_path = git_path
        self.runner = runner
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.timeout = timeout

        self._install_count = 0
        self._tolerated_count = 0
        self._fail_count = 0

    # =========================================================================
    # Command Building
    # =========================================================================

    def build_command(self, step: InstallStep, cuda_version: str) -> List[str]:
        """
        Full command line for a step.

        conda steps get "-n <env>" right after the subcommand so they target
        the environment without activating it.
        """
        args = step.render_args(cuda_version)

        if step.kind == StepKind.CONDA:
            subcommand, rest = args[0], args[1:]
            return [self.conda_path, subcommand, "-n", self.environment.name, *rest]
        if step.kind == StepKind.GIT:
            return [self.git_path, *args]
        return [str(self.environment.python), "-m", "pip", *args]

    # =========================================================================
    # Step Execution
    # =========================================================================

    def run_step(
        self,
        step: InstallStep,
        cuda_version: str,
        context: BuildContext,
    ) -> ExecutionResult:
        """
        Run a step with retry logic.

        Args:
            step: Step definition from the registry
            cuda_version: Resolved pytorch-cuda version for {cuda}
            context: Activation/build variables for the subprocess

        Returns:
            ExecutionResult tagged OK, TOLERATED or FATAL
        """
        start_time = time.time()
        cmd = self.build_command(step, cuda_version)
        env = context.environ(include_build=step.needs_build_env)

        logger.info(f">>> {step.name}: {step.reason}" if step.reason else f">>> {step.name}")
        logger.debug("    " + " ".join(cmd))

        last_error = None
        last_returncode = None
        last_stdout = None
        last_stderr = None

        for attempt in range(1, self.max_retries + 1):
            if self.max_retries > 1:
                logger.info(f"  [{attempt}/{self.max_retries}] Installing {step.name}...")

            try:
                result = self.runner(
                    cmd,
                    cwd=self.project_dir,
                    env=env,
                    timeout=self.timeout,
                )

                last_returncode = result.returncode
                last_stdout = result.stdout
                last_stderr = result.stderr

                logger.debug(f"stdout: {result.stdout}")
                if result.stderr:
                    logger.debug(f"stderr: {result.stderr}")

                if result.returncode == 0:
                    duration = time.time() - start_time
                    self._install_count += 1
                    logger.info(f"  [OK] {step.name} ({duration:.1f}s)")
                    return ExecutionResult(
                        step_name=step.name,
                        outcome=StepOutcome.OK,
                        attempt=attempt,
                        duration_seconds=duration,
                        returncode=0,
                        stdout=result.stdout,
                    )

                last_error = f"Exit code {result.returncode}"
                logger.warning(f"  [!] Failed (attempt {attempt}): {last_error}")

            except subprocess.TimeoutExpired:
                last_error = f"Timeout after {self.timeout}s"
                logger.warning(f"  [!] {last_error}")

            except OSError as e:
                last_error = str(e)
                logger.error(f"  [!] Error: {last_error}")

            if attempt < self.max_retries:
                logger.info(f"  Retrying in {self.retry_delay}s...")
                time.sleep(self.retry_delay)

        # -----------------------------------------------------------------
        # All attempts exhausted
        # -----------------------------------------------------------------
        duration = time.time() - start_time
        if step.required:
            outcome = StepOutcome.FATAL
            self._fail_count += 1
            logger.error(f"  [FAIL] {step.name} failed after {self.max_retries} attempts")
            # Surface the tail of the output; the full text is in the debug log
            if last_stderr:
                for line in last_stderr.strip().splitlines()[-10:]:
                    logger.error(f"    {line}")
        else:
            outcome = StepOutcome.TOLERATED
            self._tolerated_count += 1

        return ExecutionResult(
            step_name=step.name,
            outcome=outcome,
            attempt=self.max_retries,
            duration_seconds=duration,
            returncode=last_returncode,
            error=last_error or "Unknown error",
            stdout=last_stdout,
            stderr=last_stderr,
        )

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_stats(self) -> dict:
        """
        Get installation statistics.

        Returns:
            Dict with install_count, tolerated_count, fail_count, total
        """
        return {
            "install_count": self._install_count,
            "tolerated_count": self._tolerated_count,
            "fail_count": self._fail_count,
            "total": self._install_count + self._tolerated_count + self._fail_count,
        }

    def print_summary(self):
        """Log installation summary."""
        stats = self.get_stats()
        logger.info("")
        logger.info("=" * 40)
        logger.info("  Installation Summary")
        logger.info("=" * 40)
        logger.info(f"  Installed: {stats['install_count']}")
        logger.info(f"  Optional failures: {stats['tolerated_count']}")
        logger.info(f"  Failed:    {stats['fail_count']}")
        logger.info(f"  Total:     {stats['total']}")
        logger.info("=" * 40)
