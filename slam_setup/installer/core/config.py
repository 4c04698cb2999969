"""
Provisioning Configuration Constants
====================================

INSTITUTIONAL KNOWLEDGE - DO NOT SIMPLIFY WITHOUT UNDERSTANDING

This module centralizes ALL provisioning-related constants: the environment
name, the pinned PyTorch stack, the nvcc → pytorch-cuda compatibility table,
retry/timeout values and the checkpoint list.

MODIFICATION RULES:
------------------
1. When adding a CUDA release, add an entry to CUDA_COMPAT_TABLE *above* any
   broader pattern that would otherwise swallow it (first match wins).
2. When bumping PyTorch, bump torch/torchvision/torchaudio together; the three
   are released as a matched set.
3. Checkpoint names are the exact filenames on the Naver Labs host. Renaming
   one locally means it will be downloaded again.
"""

import re
from typing import NamedTuple, Tuple


# =============================================================================
# Environment
# =============================================================================

ENV_NAME = "mast3r-slam"
"""Name of the conda environment created (or reused) by the provisioner."""

ENV_PYTHON_VERSION = "3.11"
"""
Python version pinned at environment creation.

WHY 3.11:
- Oldest version all three local components build against
- torch 2.5.1 ships cp311 wheels for every supported CUDA build
"""


# =============================================================================
# PyTorch Runtime
# =============================================================================
#
# The runtime is installed from conda (not pip) because the same command also
# brings cuda-nvcc and cuda-cudart-dev into the environment prefix. The CUDA
# extensions in mast3r (curope) and MASt3R-SLAM (lietorch) are compiled
# against those headers later on.
#

TORCH_VERSION = "2.5.1"
TORCHVISION_VERSION = "0.20.1"
TORCHAUDIO_VERSION = "2.5.1"

CONDA_CHANNELS: Tuple[str, ...] = ("pytorch", "nvidia")


# =============================================================================
# CUDA Compatibility Table
# =============================================================================
#
# WHY A TABLE AND NOT THE RAW nvcc VERSION:
# pytorch-cuda is only published for a handful of CUDA releases. Passing the
# detected toolkit version straight through ("12.2", "12.6") makes conda fail
# with an unsatisfiable spec. The table maps whatever nvcc reports onto a
# release that actually exists.
#
# MATCHING:
# Patterns are shell-style globs compared against the detected version string
# ("11.8", "12.4.1", ...). Entries are evaluated top to bottom and the first
# match wins; order encodes priority, nothing is sorted.
#


class CUDACompatEntry(NamedTuple):
    """
    Entry in the CUDA compatibility table.

    WHY NamedTuple:
    - Immutable (the table is shared module state)
    - Self-documenting field names
    """
    pattern: str        # Glob matched against the detected version
    pytorch_cuda: str   # Value passed as pytorch-cuda=/cuda-nvcc=/cuda-cudart-dev=
    description: str    # Human-readable explanation


CUDA_COMPAT_TABLE: Tuple[CUDACompatEntry, ...] = (
    CUDACompatEntry(
        pattern="11.8*",
        pytorch_cuda="11.8",
        description="CUDA 11.8 toolkit",
    ),
    CUDACompatEntry(
        pattern="12.1*",
        pytorch_cuda="12.1",
        description="CUDA 12.1 toolkit",
    ),
    CUDACompatEntry(
        pattern="12.4*",
        pytorch_cuda="12.4",
        description="CUDA 12.4 toolkit",
    ),
    # Any other 12.x release is driven with the 12.1 runtime; the 12.x
    # minor releases are ABI compatible with each other.
    CUDACompatEntry(
        pattern="12.*",
        pytorch_cuda="12.1",
        description="CUDA 12.x toolkit (using 12.1 runtime)",
    ),
)

DEFAULT_CUDA_VERSION = "12.1"
"""
Toolkit version assumed when nvcc is missing or its output cannot be parsed.

WHY 12.1:
- Most common toolkit on current research machines
- pytorch-cuda=12.1 has the broadest driver coverage of the 12.x builds
"""

DEFAULT_PYTORCH_CUDA = "12.1"
"""pytorch-cuda value used when no CUDA_COMPAT_TABLE entry matches."""

NVCC_RELEASE_PATTERN = re.compile(r"release (\d+\.\d+)")
"""Extracts major.minor from nvcc's "Cuda compilation tools, release 12.4, V12.4.131"."""


# =============================================================================
# Build Configuration
# =============================================================================
#
# conda's cuda-cudart-dev puts headers under <prefix>/targets/<triple>/include
# rather than <prefix>/include, so CPATH must point there explicitly or the
# extension builds fail with "cuda_runtime.h: No such file or directory".
#

CUDA_TARGET_TRIPLES = {
    "x86_64": "x86_64-linux",
    "amd64": "x86_64-linux",
    "aarch64": "sbsa-linux",
    "arm64": "sbsa-linux",
}
DEFAULT_CUDA_TARGET_TRIPLE = "x86_64-linux"


# =============================================================================
# Retry and Timeout Configuration
# =============================================================================

DEFAULT_RETRY_COUNT = 3
"""
Number of attempts for each install step.

WHY 3:
- Transient index/channel hiccups almost always clear on the second attempt
- A compile error in a CUDA extension will fail three times identically,
  so more attempts only delay the diagnosis
"""

DEFAULT_RETRY_DELAY = 5
"""Seconds to wait between attempts."""

DEFAULT_TIMEOUT = 3600
"""
Maximum seconds for a single install command (60 minutes).

WHY 60 MINUTES:
- The conda solve plus the pytorch/nvidia downloads are several GB
- Building lietorch from source takes 10-20 minutes on a laptop GPU
"""

ENV_QUERY_TIMEOUT = 120
"""Seconds allowed for `conda env list`."""

NVCC_TIMEOUT = 10
"""Seconds allowed for `nvcc --version`."""


# =============================================================================
# Checkpoints
# =============================================================================

CHECKPOINT_BASE_URL = "https://download.europe.naverlabs.com/ComputerVision/MASt3R"

CHECKPOINTS: Tuple[str, ...] = (
    "MASt3R_ViTLarge_BaseDecoder_512_catmlpdpt_metric.pth",
    "MASt3R_ViTLarge_BaseDecoder_512_catmlpdpt_metric_retrieval_trainingfree.pth",
    "MASt3R_ViTLarge_BaseDecoder_512_catmlpdpt_metric_retrieval_codebook.pkl",
)

CHECKPOINT_DIR_NAME = "checkpoints"

DOWNLOAD_TIMEOUT = 60
"""Seconds to wait for the server to respond (connect/read), not the whole transfer."""

DOWNLOAD_CHUNK_SIZE = 1024 * 1024


# =============================================================================
# Validation
# =============================================================================

_MAJOR_MINOR = re.compile(r"^\d+\.\d+$")


def validate_config():
    """
    Validate configuration consistency.

    Call this at module load time to catch configuration errors early.
    """
    if not CUDA_COMPAT_TABLE:
        raise ValueError("CUDA_COMPAT_TABLE must not be empty")

    patterns = [entry.pattern for entry in CUDA_COMPAT_TABLE]
    if len(patterns) != len(set(patterns)):
        raise ValueError(f"Duplicate patterns in CUDA_COMPAT_TABLE: {patterns}")

    for entry in CUDA_COMPAT_TABLE:
        if not _MAJOR_MINOR.match(entry.pytorch_cuda):
            raise ValueError(
                f"CUDA_COMPAT_TABLE entry {entry.pattern!r} maps to "
                f"{entry.pytorch_cuda!r}, expected major.minor"
            )

    for value in (DEFAULT_CUDA_VERSION, DEFAULT_PYTORCH_CUDA, ENV_PYTHON_VERSION):
        if not _MAJOR_MINOR.match(value):
            raise ValueError(f"Expected major.minor version, got {value!r}")

    if len(CHECKPOINTS) != len(set(CHECKPOINTS)):
        raise ValueError("Duplicate entries in CHECKPOINTS")


# Run validation at import time
validate_config()
