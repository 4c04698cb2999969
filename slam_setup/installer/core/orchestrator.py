"""
Provisioning Orchestrator
=========================

Takes a machine from "nothing installed" to "ready to run" in five ordered
stages:

    1. Preflight          conda must be on PATH, otherwise abort
    2. Toolchain          nvcc version -> pytorch-cuda (never fails)
    3. Environment        reuse or create the conda env, derive its context
    4. Dependencies       ordered install steps, one tolerated failure
    5. Checkpoints        download whatever is not already present

Each stage runs to completion before the next starts. Any fatal error is
raised as an InstallationError subclass and stops the run; later stages are
never reached. Rerunning after a failure is safe: the environment is reused,
satisfied installs are cheap no-ops for conda/pip, and present checkpoints
are skipped.
"""

import logging
import shutil
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, List, Optional

from .artifacts import ArtifactFetcher, FetchReport, FileStore, build_artifact_specs
from .detector import (
    ToolchainInfo,
    check_prerequisites,
    detect_cuda_toolkit,
    match_compat_entry,
    resolve_pytorch_cuda,
    toolchain_from_override,
)
from .environment import (
    BuildContext,
    CondaEnvironmentRegistry,
    EnvironmentHandle,
    EnvironmentRegistry,
    provision_environment,
)
from .errors import InstallStepError, PrerequisiteError
from .executor import ExecutionResult, StepExecutor, StepOutcome
from .process import CommandRunner, run_command
from .registry import InstallStep, get_steps_in_install_order

if TYPE_CHECKING:
    from ...config.settings import ProvisionSettings

logger = logging.getLogger(__name__)

# Step after which the CUDA build paths exist in the prefix
RUNTIME_STEP_NAME = "pytorch"


@dataclass
class ProvisionReport:
    """Everything a completed (or partially completed) run produced."""
    toolchain: Optional[ToolchainInfo] = None
    pytorch_cuda: Optional[str] = None
    environment: Optional[EnvironmentHandle] = None
    environment_created: bool = False
    install_results: List[ExecutionResult] = field(default_factory=list)
    fetch_report: Optional[FetchReport] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def tolerated_failures(self) -> List[str]:
        return [
            r.step_name for r in self.install_results
            if r.outcome == StepOutcome.TOLERATED
        ]


def _banner(title: str):
    logger.info("")
    logger.info("=" * 60)
    logger.info(f"  {title}")
    logger.info("=" * 60)


def format_next_steps(env_name: str) -> str:
    """The closing message shown after a successful run."""
    return (
        "\n=== Installation Complete ===\n"
        "To use MASt3R-SLAM:\n"
        f"  conda activate {env_name}\n"
        "  python main.py --dataset <path/to/folder> --config config/base.yaml\n"
    )


class Provisioner:
    """
    Runs the provisioning stages against injected collaborators.

    Args:
        settings: Validated ProvisionSettings
        registry: EnvironmentRegistry (conda-backed by default, built in preflight)
        fetcher: ArtifactFetcher (requests-backed by default)
        file_store: FileStore for the default fetcher
        runner: CommandRunner for every subprocess call
        toolchain_detector: Callable returning ToolchainInfo (nvcc by default)
        prerequisite_checker: Callable returning check_prerequisites()-style dict
        steps: Install steps (registry order by default)
    """

    def __init__(
        self,
        settings: "ProvisionSettings",
        registry: Optional[EnvironmentRegistry] = None,
        fetcher: Optional[ArtifactFetcher] = None,
        file_store: Optional[FileStore] = None,
        runner: CommandRunner = run_command,
        toolchain_detector: Callable[[], ToolchainInfo] = detect_cuda_toolkit,
        prerequisite_checker: Callable[[], dict] = check_prerequisites,
        steps: Optional[List[InstallStep]] = None,
    ):
        self.settings = settings
        self.registry = registry
        self.fetcher = fetcher
        self.file_store = file_store
        self.runner = runner
        self.toolchain_detector = toolchain_detector
        self.prerequisite_checker = prerequisite_checker
        self.steps = steps if steps is not None else get_steps_in_install_order()

        self.conda_path = "conda"
        self.git_path = "git"
        self.report = ProvisionReport()

    def _warn(self, message: str):
        logger.warning(message)
        self.report.warnings.append(message)

    # =========================================================================
    # Stage 1: Preflight
    # =========================================================================

    def preflight(self) -> dict:
        """
        Verify conda is installed.

        Raises:
            PrerequisiteError: conda not found (nothing else has run yet)
        """
        results = self.prerequisite_checker()
        conda = results["conda"]
        if not conda.found:
            raise PrerequisiteError("conda", f"Error: {conda.message}")

        self.conda_path = conda.path or shutil.which("conda") or "conda"
        logger.info(f"  [OK] {conda.message}")

        git = results.get("git")
        if git is not None:
            if git.found:
                self.git_path = git.path or self.git_path
                logger.info(f"  [OK] {git.message}")
            else:
                self._warn(f"  [!] {git.message}")

        if self.registry is None:
            self.registry = CondaEnvironmentRegistry(
                self.conda_path, runner=self.runner, timeout=self.settings.timeout
            )
        return results

    # =========================================================================
    # Stage 2: Toolchain
    # =========================================================================

    def resolve_toolchain(self) -> str:
        """
        Detect (or take the override for) the CUDA toolkit version and map it
        to a pytorch-cuda release. Never raises.
        """
        if self.settings.cuda_version:
            toolchain = toolchain_from_override(self.settings.cuda_version)
        else:
            toolchain = self.toolchain_detector()

        if toolchain.detected:
            logger.info(f"  {toolchain.message}")
        else:
            self._warn(f"  Warning: {toolchain.message}")

        if match_compat_entry(toolchain.version) is None:
            self._warn(
                f"  Warning: CUDA {toolchain.version} is not in the compatibility table"
            )
        pytorch_cuda = resolve_pytorch_cuda(toolchain.version)
        logger.info(f"  Using pytorch-cuda={pytorch_cuda}")

        self.report.toolchain = toolchain
        self.report.pytorch_cuda = pytorch_cuda
        return pytorch_cuda

    # =========================================================================
    # Stage 3: Environment
    # =========================================================================

    def provision_environment(self) -> BuildContext:
        """Reuse or create the environment; return its activation context."""
        if self.registry is None:
            raise RuntimeError("preflight() must run before provision_environment()")

        handle, created = provision_environment(
            self.registry,
            self.settings.env_name,
            self.settings.python_version,
        )
        self.report.environment = handle
        self.report.environment_created = created
        return BuildContext.activate(handle)

    # =========================================================================
    # Stage 4: Dependencies
    # =========================================================================

    def install_dependencies(self, pytorch_cuda: str, context: BuildContext) -> List[ExecutionResult]:
        """
        Run every install step in order.

        After the runtime step the context gains the CUDA build paths, which
        are handed to the steps flagged needs_build_env.

        Raises:
            InstallStepError: a required step failed (later steps are not run)
        """
        executor = StepExecutor(
            self.report.environment,
            project_dir=self.settings.project_dir,
            conda_path=self.conda_path,
            git_path=self.git_path,
            runner=self.runner,
            max_retries=self.settings.max_retries,
            retry_delay=self.settings.retry_delay,
            timeout=self.settings.timeout,
        )

        results: List[ExecutionResult] = []
        for step in self.steps:
            result = executor.run_step(step, pytorch_cuda, context)
            results.append(result)
            self.report.install_results.append(result)

            if result.outcome == StepOutcome.FATAL:
                raise InstallStepError(
                    step.name,
                    f"Installation step '{step.name}' failed: {result.error}",
                    returncode=result.returncode,
                )
            if result.outcome == StepOutcome.TOLERATED:
                self._warn(
                    f"  Warning: {step.name} installation failed (optional): {result.error}"
                )

            if step.name == RUNTIME_STEP_NAME:
                context = context.with_cuda_build_paths()
                logger.info(f"  CUDA_HOME set to: {context.build['CUDA_HOME']}")

        executor.print_summary()
        return results

    # =========================================================================
    # Stage 5: Checkpoints
    # =========================================================================

    def fetch_artifacts(self) -> FetchReport:
        """
        Download missing checkpoints.

        Raises:
            ArtifactFetchError: a download failed
        """
        if self.fetcher is None:
            self.fetcher = ArtifactFetcher(file_store=self.file_store)

        specs = build_artifact_specs(
            self.settings.checkpoints, self.settings.checkpoint_base_url
        )
        report = self.fetcher.fetch_all(specs, self.settings.resolved_checkpoint_dir)
        self.report.fetch_report = report
        return report

    # =========================================================================
    # Full Run
    # =========================================================================

    def run(self) -> ProvisionReport:
        """Run all stages in order. Fatal errors propagate to the caller."""
        _banner("MASt3R-SLAM Installation")

        _banner("Step 1/5: Checking prerequisites")
        self.preflight()

        _banner("Step 2/5: Resolving CUDA version")
        pytorch_cuda = self.resolve_toolchain()

        _banner("Step 3/5: Preparing conda environment")
        context = self.provision_environment()

        _banner("Step 4/5: Installing dependencies")
        self.install_dependencies(pytorch_cuda, context)

        if self.settings.skip_checkpoints:
            logger.info("")
            logger.info("Skipping checkpoint download (--skip-checkpoints)")
        else:
            _banner("Step 5/5: Downloading checkpoints")
            self.fetch_artifacts()

        logger.info(format_next_steps(self.settings.env_name))
        return self.report
