"""
Prerequisite and CUDA Toolkit Detector
======================================

This module provides:
- Preflight checks for the tools the provisioner shells out to (conda, git)
- Detection of the installed CUDA toolkit version via `nvcc --version`
- Resolution of the detected version to a pytorch-cuda release

DETECTION IS BEST-EFFORT:
------------------------
Only conda is a hard requirement. A missing or broken nvcc is not an error:
the detector falls back to DEFAULT_CUDA_VERSION and the caller logs a warning.
A machine without a system toolkit is still perfectly provisionable, since the
conda step installs cuda-nvcc into the environment anyway.

WHY nvcc AND NOT nvidia-smi:
---------------------------
nvidia-smi reports the *driver's* maximum CUDA version. The extensions are
compiled by nvcc, so the toolkit version is what has to line up with
pytorch-cuda.
"""

import fnmatch
import platform
import shutil
import subprocess
import sys
from typing import NamedTuple, Optional, Sequence

from .config import (
    CUDA_COMPAT_TABLE,
    CUDACompatEntry,
    DEFAULT_CUDA_VERSION,
    DEFAULT_PYTORCH_CUDA,
    NVCC_RELEASE_PATTERN,
    NVCC_TIMEOUT,
)


# =============================================================================
# Types
# =============================================================================


class PrerequisiteResult(NamedTuple):
    """
    Result of prerequisite check.

    FIELDS:
    - name: Prerequisite name (e.g., "conda", "Git")
    - found: Was it found?
    - version: Version string if found
    - path: Path to executable if found
    - message: Human-readable status
    """
    name: str
    found: bool
    version: Optional[str] = None
    path: Optional[str] = None
    message: str = ""


class ToolchainInfo(NamedTuple):
    """
    CUDA toolkit detection result.

    FIELDS:
    - detected: Did nvcc run and report a parseable version?
    - version: Detected major.minor, or DEFAULT_CUDA_VERSION when not detected
    - path: Path to nvcc if found
    - detection_method: "nvcc", "default" or "override"
    - message: Human-readable status
    """
    detected: bool
    version: str
    path: Optional[str]
    detection_method: str
    message: str


# =============================================================================
# Platform
# =============================================================================


def get_platform_name() -> str:
    """Human-readable platform name, e.g. "Linux (x86_64)"."""
    system = sys.platform
    machine = platform.machine() or "unknown"
    if system.startswith("linux"):
        return f"Linux ({machine})"
    if system == "darwin":
        return f"macOS ({machine})"
    if system == "win32":
        return f"Windows ({machine})"
    return f"Unknown ({system})"


# =============================================================================
# Prerequisites Checking
# =============================================================================


def _tool_version(path: str, args: Sequence[str]) -> str:
    try:
        result = subprocess.run(
            [path, *args],
            capture_output=True,
            text=True,
            timeout=10,
        )
        output = (result.stdout or result.stderr or "").strip()
        return output.splitlines()[0] if output else "unknown"
    except (OSError, subprocess.SubprocessError):
        return "unknown"


def check_conda() -> PrerequisiteResult:
    """
    Check if conda is available.

    WHY CONDA IS REQUIRED:
    - The environment itself is a conda environment
    - pytorch-cuda, cuda-nvcc and cuda-cudart-dev only exist as conda packages
    """
    conda_path = shutil.which("conda")

    if not conda_path:
        return PrerequisiteResult(
            name="conda",
            found=False,
            message="conda not found. Please install miniconda/anaconda first.",
        )

    # "conda 24.7.1"
    version = _tool_version(conda_path, ["--version"]).replace("conda ", "")

    return PrerequisiteResult(
        name="conda",
        found=True,
        version=version,
        path=conda_path,
        message=f"conda {version} - OK",
    )


def check_git() -> PrerequisiteResult:
    """
    Check if Git is available.

    WHY GIT:
    - thirdparty/mast3r and thirdparty/in3d are git submodules
    """
    git_path = shutil.which("git")

    if not git_path:
        return PrerequisiteResult(
            name="Git",
            found=False,
            message="Git not found in PATH. Submodule initialization will fail.",
        )

    # "git version 2.39.0"
    version = _tool_version(git_path, ["--version"]).replace("git version ", "")

    return PrerequisiteResult(
        name="Git",
        found=True,
        version=version,
        path=git_path,
        message=f"Git {version} - OK",
    )


def check_prerequisites() -> dict:
    """
    Check all provisioning prerequisites.

    Returns dict with:
    - conda: PrerequisiteResult (required)
    - git: PrerequisiteResult (reported only)
    - platform: str
    - all_ok: bool, True when every required check passed
    """
    results = {
        "conda": check_conda(),
        "git": check_git(),
        "platform": get_platform_name(),
    }
    results["all_ok"] = results["conda"].found
    return results


# =============================================================================
# CUDA Toolkit Detection
# =============================================================================


def parse_nvcc_version(output: str) -> Optional[str]:
    """
    Extract major.minor from `nvcc --version` output.

    Only the line mentioning "release" is considered:

        Cuda compilation tools, release 12.4, V12.4.131

    Returns:
        "12.4", or None if no release token is present
    """
    for line in (output or "").splitlines():
        if "release" not in line:
            continue
        match = NVCC_RELEASE_PATTERN.search(line)
        if match:
            return match.group(1)
    return None


def _default_toolchain(path: Optional[str], reason: str) -> ToolchainInfo:
    return ToolchainInfo(
        detected=False,
        version=DEFAULT_CUDA_VERSION,
        path=path,
        detection_method="default",
        message=f"{reason}. Defaulting to CUDA {DEFAULT_CUDA_VERSION}",
    )


def detect_cuda_toolkit() -> ToolchainInfo:
    """
    Detect the installed CUDA toolkit version using nvcc.

    Never raises: every failure mode degrades to DEFAULT_CUDA_VERSION with
    detected=False so the caller can warn and carry on.
    """
    nvcc = shutil.which("nvcc")
    if not nvcc:
        return _default_toolchain(None, "nvcc not found")

    try:
        result = subprocess.run(
            [nvcc, "--version"],
            capture_output=True,
            text=True,
            timeout=NVCC_TIMEOUT,
        )
    except subprocess.TimeoutExpired:
        return _default_toolchain(nvcc, "nvcc timed out")
    except OSError as e:
        return _default_toolchain(nvcc, f"nvcc error: {e}")

    version = parse_nvcc_version(result.stdout)
    if version is None:
        return _default_toolchain(nvcc, "Could not parse nvcc version")

    return ToolchainInfo(
        detected=True,
        version=version,
        path=nvcc,
        detection_method="nvcc",
        message=f"Detected CUDA version: {version}",
    )


def toolchain_from_override(version: str) -> ToolchainInfo:
    """ToolchainInfo for a user-supplied CUDA version (skips nvcc entirely)."""
    return ToolchainInfo(
        detected=True,
        version=version,
        path=None,
        detection_method="override",
        message=f"Using requested CUDA version: {version}",
    )


# =============================================================================
# Version Resolution
# =============================================================================


def match_compat_entry(
    version: Optional[str],
    table: Sequence[CUDACompatEntry] = CUDA_COMPAT_TABLE,
) -> Optional[CUDACompatEntry]:
    """Return the first table entry whose pattern matches version, if any."""
    if not version:
        return None
    for entry in table:
        if fnmatch.fnmatchcase(version, entry.pattern):
            return entry
    return None


def resolve_pytorch_cuda(
    version: Optional[str],
    table: Sequence[CUDACompatEntry] = CUDA_COMPAT_TABLE,
    default: str = DEFAULT_PYTORCH_CUDA,
) -> str:
    """
    Map a detected toolkit version to a pytorch-cuda release.

    Examples:
        "11.8.0" -> "11.8"
        "12.4.1" -> "12.4"
        "12.6"   -> "12.1"  (generic 12.x entry)
        "9.9.9"  -> "12.1"  (no match, default)
    """
    entry = match_compat_entry(version, table)
    return entry.pytorch_cuda if entry else default
