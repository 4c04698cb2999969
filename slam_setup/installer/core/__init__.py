"""
slam-setup Installer Core Module
================================

This subpackage contains the provisioning engine:

- config.py: Centralized constants (CUDA table, pins, checkpoints, timeouts)
- detector.py: Preflight checks and nvcc version detection/resolution
- environment.py: conda environment registry and BuildContext
- registry.py: Single Source of Truth for the ordered install steps
- executor.py: Step execution with retry and OK/TOLERATED/FATAL outcomes
- artifacts.py: Skip-if-present checkpoint downloads
- orchestrator.py: The five-stage Provisioner
- errors.py: Fatal error hierarchy carrying exit statuses

IMPORT RULES:
------------
- Core modules may import from Python stdlib, requests and tqdm
- Core modules may import from each other (no circles)
- orchestrator.py only imports the settings model for type checking
"""

from .artifacts import (
    ArtifactFetcher,
    ArtifactSpec,
    FetchReport,
    FileStore,
    LocalFileStore,
    build_artifact_specs,
)
from .detector import (
    PrerequisiteResult,
    ToolchainInfo,
    check_conda,
    check_git,
    check_prerequisites,
    detect_cuda_toolkit,
    parse_nvcc_version,
    resolve_pytorch_cuda,
)
from .environment import (
    BuildContext,
    CondaEnvironmentRegistry,
    EnvironmentHandle,
    EnvironmentRegistry,
    provision_environment,
)
from .errors import (
    ArtifactFetchError,
    EnvironmentCreationError,
    InstallationError,
    InstallStepError,
    PrerequisiteError,
)
from .executor import ExecutionResult, StepExecutor, StepOutcome
from .orchestrator import ProvisionReport, Provisioner, format_next_steps
from .registry import (
    INSTALL_STEPS,
    InstallStep,
    StepKind,
    get_step_by_name,
    get_steps_in_install_order,
)

__all__ = [
    # Artifacts
    "ArtifactFetcher",
    "ArtifactSpec",
    "FetchReport",
    "FileStore",
    "LocalFileStore",
    "build_artifact_specs",

    # Detector
    "PrerequisiteResult",
    "ToolchainInfo",
    "check_conda",
    "check_git",
    "check_prerequisites",
    "detect_cuda_toolkit",
    "parse_nvcc_version",
    "resolve_pytorch_cuda",

    # Environment
    "BuildContext",
    "CondaEnvironmentRegistry",
    "EnvironmentHandle",
    "EnvironmentRegistry",
    "provision_environment",

    # Errors
    "ArtifactFetchError",
    "EnvironmentCreationError",
    "InstallationError",
    "InstallStepError",
    "PrerequisiteError",

    # Executor
    "ExecutionResult",
    "StepExecutor",
    "StepOutcome",

    # Orchestrator
    "ProvisionReport",
    "Provisioner",
    "format_next_steps",

    # Registry
    "INSTALL_STEPS",
    "InstallStep",
    "StepKind",
    "get_step_by_name",
    "get_steps_in_install_order",
]
