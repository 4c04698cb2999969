"""
Install Step Registry - Single Source of Truth
==============================================

INSTITUTIONAL KNOWLEDGE - THE ORDER IN THIS FILE IS LOAD-BEARING

This module defines every install step the provisioner runs, in the order it
runs them. Later steps assume earlier ones have already made packages
importable or linkable:

  10  pytorch      conda: torch + cuda-nvcc + cuda-cudart-dev
                   (the orchestrator derives the CUDA build paths here)
  20  submodules   git: fetch thirdparty/ sources
  30  mast3r       pip: editable, builds the curope CUDA extension
  40  imgui        pip: prebuilt wheel from PyPI
  50  in3d         pip: editable, --no-deps
  51  in3d-deps    pip: in3d's real dependencies, minus imgui
  60  mast3r-slam  pip: editable, builds the lietorch CUDA extension
  90  torchcodec   pip: optional, failure tolerated

WHY --no-build-isolation (mast3r, mast3r-slam):
----------------------------------------------
Their setup.py imports torch.utils.cpp_extension. In an isolated build
environment pip would install a fresh CPU torch from PyPI to satisfy that
import, and the extension would be compiled against the wrong runtime.

WHY imgui BEFORE in3d (AND in3d WITH --no-deps):
-----------------------------------------------
thirdparty/in3d vendors a copy of pyimgui that does not build. Installing the
prebuilt imgui[glfw] wheel first, then in3d with --no-deps, means pip never
tries to build the vendored copy. in3d's remaining dependencies are installed
explicitly by the in3d-deps step.

WHY torchcodec IS OPTIONAL:
--------------------------
It only speeds up mp4 loading; the application falls back to its own reader.
Wheels do not exist for every torch/CUDA combination, so a failure here must
not abort an otherwise complete install.
"""

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import List, Optional, Set

from .config import (
    CONDA_CHANNELS,
    TORCH_VERSION,
    TORCHAUDIO_VERSION,
    TORCHVISION_VERSION,
)


# =============================================================================
# Enums
# =============================================================================


class StepKind(Enum):
    """
    Which tool runs the step.

    - CONDA: conda install -n <env> <args>
    - GIT:   git <args> (in the project directory)
    - PIP:   <env python> -m pip <args> (in the project directory)
    """
    CONDA = auto()
    GIT = auto()
    PIP = auto()


# =============================================================================
# InstallStep Dataclass
# =============================================================================


CUDA_PLACEHOLDER = "{cuda}"


@dataclass
class InstallStep:
    """
    One install command with its execution metadata.

    FIELDS:
    - name: Unique step name used in logs and errors
    - kind: Tool that runs the step
    - args: Arguments after the tool prefix; may contain {cuda}
    - order: Execution priority (lower = earlier)
    - required: If False, failure is tolerated and logged as a warning
    - needs_build_env: Pass CUDA_HOME/CPATH/... to this step
    - reason: Why the step exists (for humans and future developers)
    """
    name: str
    kind: StepKind
    args: List[str] = field(default_factory=list)
    order: int = 100
    required: bool = True
    needs_build_env: bool = False
    reason: str = ""

    def render_args(self, cuda_version: str) -> List[str]:
        """Arguments with {cuda} replaced by the resolved pytorch-cuda version."""
        return [arg.replace(CUDA_PLACEHOLDER, cuda_version) for arg in self.args]


def _channel_args() -> List[str]:
    args: List[str] = []
    for channel in CONDA_CHANNELS:
        args.extend(["-c", channel])
    return args


# =============================================================================
# THE STEPS
# =============================================================================

INSTALL_STEPS: List[InstallStep] = [
    InstallStep(
        name="pytorch",
        kind=StepKind.CONDA,
        args=[
            "install",
            f"pytorch=={TORCH_VERSION}",
            f"torchvision=={TORCHVISION_VERSION}",
            f"torchaudio=={TORCHAUDIO_VERSION}",
            "pytorch-cuda={cuda}",
            "cuda-nvcc={cuda}",
            "cuda-cudart-dev={cuda}",
            *_channel_args(),
            "-y",
        ],
        order=10,
        reason="PyTorch with matching nvcc and CUDA headers for extension builds",
    ),
    InstallStep(
        name="submodules",
        kind=StepKind.GIT,
        args=["submodule", "update", "--init", "--recursive"],
        order=20,
        reason="thirdparty/mast3r and thirdparty/in3d are git submodules",
    ),
    InstallStep(
        name="mast3r",
        kind=StepKind.PIP,
        args=["install", "--no-build-isolation", "-e", "thirdparty/mast3r"],
        order=30,
        needs_build_env=True,
        reason="MASt3R model code with the curope CUDA extension",
    ),
    InstallStep(
        name="imgui",
        kind=StepKind.PIP,
        args=["install", "imgui[glfw]"],
        order=40,
        reason="Prebuilt wheel; the copy vendored in thirdparty/in3d fails to build",
    ),
    InstallStep(
        name="in3d",
        kind=StepKind.PIP,
        args=["install", "--no-deps", "-e", "thirdparty/in3d"],
        order=50,
        reason="Visualization toolkit, installed without its broken imgui dependency",
    ),
    InstallStep(
        name="in3d-deps",
        kind=StepKind.PIP,
        args=[
            "install",
            "PyOpenGL",
            "PyOpenGL_accelerate",
            "glfw",
            "pyglm",
            "trimesh",
            "pillow",
        ],
        order=51,
        reason="in3d's remaining dependencies (imgui already satisfied)",
    ),
    InstallStep(
        name="mast3r-slam",
        kind=StepKind.PIP,
        args=["install", "--no-build-isolation", "-e", "."],
        order=60,
        needs_build_env=True,
        reason="The application itself, with the lietorch CUDA extension",
    ),
    InstallStep(
        name="torchcodec",
        kind=StepKind.PIP,
        args=["install", "torchcodec==0.1"],
        order=90,
        required=False,
        reason="Optional: faster mp4 loading",
    ),
]


# =============================================================================
# Helper Functions
# =============================================================================


def get_steps_in_install_order() -> List[InstallStep]:
    """All steps sorted by order (lowest first)."""
    return sorted(INSTALL_STEPS, key=lambda step: step.order)


def get_step_by_name(name: str) -> Optional[InstallStep]:
    for step in INSTALL_STEPS:
        if step.name == name:
            return step
    return None


def get_optional_steps() -> List[InstallStep]:
    return [step for step in get_steps_in_install_order() if not step.required]


def get_all_step_names() -> Set[str]:
    return {step.name for step in INSTALL_STEPS}


# =============================================================================
# Validation
# =============================================================================


def validate_registry():
    """
    Validate registry consistency.

    Checks:
    - Unique names and orders
    - pytorch runs first (everything after it links against it)
    - Exactly one optional step, and it runs last
    - {cuda} only appears in conda steps
    """
    names = [step.name for step in INSTALL_STEPS]
    if len(names) != len(set(names)):
        raise ValueError(f"Duplicate step names in INSTALL_STEPS: {names}")

    orders = [step.order for step in INSTALL_STEPS]
    if len(orders) != len(set(orders)):
        raise ValueError(f"Duplicate step orders in INSTALL_STEPS: {orders}")

    ordered = get_steps_in_install_order()
    if ordered[0].name != "pytorch":
        raise ValueError(f"pytorch must be the first step, found {ordered[0].name}")

    optional = get_optional_steps()
    if len(optional) != 1:
        raise ValueError(f"Expected exactly one optional step, found {len(optional)}")
    if optional[0] is not ordered[-1]:
        raise ValueError(f"Optional step {optional[0].name} must run last")

    for step in INSTALL_STEPS:
        if step.kind != StepKind.CONDA and any(CUDA_PLACEHOLDER in a for a in step.args):
            raise ValueError(f"{CUDA_PLACEHOLDER} used outside a conda step: {step.name}")


# Run validation at import time
validate_registry()
