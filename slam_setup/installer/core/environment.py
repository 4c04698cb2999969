"""
Environment Provisioner
=======================

Creates the conda environment if it does not exist yet, and describes the
"activated" state of that environment as an explicit BuildContext value.

WHY NO `conda activate`:
-----------------------
A shell script activates the environment by mutating its own process state
(`eval "$(conda shell.bash hook)"; conda activate ...`) and every later
command inherits it implicitly. Here the activation variables are computed
once and handed to each subprocess call, so:

1. Nothing in os.environ is modified
2. Each step's effective environment is a plain dict that tests can inspect
3. The CUDA build paths are only given to the steps that compile extensions

IDEMPOTENCE:
-----------
The environment is looked up by exact name before creation. An existing
environment is reused as-is; it is never removed or recreated.
"""

import logging
import os
import platform
import sys
import subprocess
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Mapping, Optional, Protocol, Tuple

from .config import (
    CUDA_TARGET_TRIPLES,
    DEFAULT_CUDA_TARGET_TRIPLE,
    ENV_QUERY_TIMEOUT,
    DEFAULT_TIMEOUT,
)
from .errors import EnvironmentCreationError
from .process import CommandRunner, run_command

logger = logging.getLogger(__name__)


# =============================================================================
# Environment Handle
# =============================================================================


@dataclass(frozen=True)
class EnvironmentHandle:
    """A named conda environment and its install prefix."""
    name: str
    prefix: Path

    @property
    def bin_dir(self) -> Path:
        if sys.platform == "win32":
            return self.prefix / "Scripts"
        return self.prefix / "bin"

    @property
    def python(self) -> Path:
        """Interpreter inside the environment; pip is always run through it."""
        if sys.platform == "win32":
            return self.prefix / "python.exe"
        return self.prefix / "bin" / "python"


class EnvironmentRegistry(Protocol):
    """Query/create capability for named environments."""

    def find(self, name: str) -> Optional[EnvironmentHandle]:
        ...

    def create(self, name: str, python_version: str) -> EnvironmentHandle:
        ...


# =============================================================================
# Conda Implementation
# =============================================================================


def parse_env_list(output: str) -> Dict[str, Path]:
    """
    Parse `conda env list` output into {name: prefix}.

    Example input:

        # conda environments:
        #
        base                     /opt/conda
        mast3r-slam           *  /home/Jane Doe/miniconda3/envs/mast3r-slam
                                 /home/me/other-prefix

    The name is the first token; everything after it (minus the "*" marking
    the active environment) is the prefix, which may contain spaces.
    Unnamed environments (path-only lines) are skipped. Names are compared
    as whole tokens by the caller, so "mast3r-slam-old" never matches
    "mast3r-slam".
    """
    envs: Dict[str, Path] = {}
    for raw in (output or "").splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        parts = line.split(None, 1)
        if len(parts) < 2:
            continue
        name, prefix = parts[0], parts[1].strip()
        if name == "*" or _looks_like_path(name):
            continue
        if prefix.startswith("*"):
            prefix = prefix[1:].strip()
        if not prefix:
            continue
        envs[name] = Path(prefix)
    return envs


def _looks_like_path(token: str) -> bool:
    return "/" in token or "\\" in token or os.path.isabs(token)


class CondaEnvironmentRegistry:
    """EnvironmentRegistry backed by the conda CLI."""

    def __init__(
        self,
        conda_path: str,
        runner: CommandRunner = run_command,
        timeout: int = DEFAULT_TIMEOUT,
    ):
        self.conda_path = conda_path
        self.runner = runner
        self.timeout = timeout

    def list_environments(self, env_name: str = "") -> Dict[str, Path]:
        """
        Query existing environments.

        Raises:
            EnvironmentCreationError: the query failed, so it is unknown
                whether the environment exists
        """
        try:
            result = self.runner(
                [self.conda_path, "env", "list"],
                timeout=ENV_QUERY_TIMEOUT,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise EnvironmentCreationError(
                env_name, f"Could not list conda environments: {e}"
            ) from e

        if result.returncode != 0:
            if result.stderr:
                logger.debug(f"stderr: {result.stderr}")
            raise EnvironmentCreationError(
                env_name,
                f"conda env list failed (exit {result.returncode})",
                returncode=result.returncode,
            )
        return parse_env_list(result.stdout)

    def find(self, name: str) -> Optional[EnvironmentHandle]:
        prefix = self.list_environments(name).get(name)
        if prefix is None:
            return None
        return EnvironmentHandle(name=name, prefix=prefix)

    def create(self, name: str, python_version: str) -> EnvironmentHandle:
        cmd = [self.conda_path, "create", "-n", name, f"python={python_version}", "-y"]
        try:
            result = self.runner(cmd, timeout=self.timeout)
        except OSError as e:
            raise EnvironmentCreationError(name, f"Could not run conda: {e}") from e

        logger.debug(f"stdout: {result.stdout}")
        if result.returncode != 0:
            if result.stderr:
                logger.debug(f"stderr: {result.stderr}")
            raise EnvironmentCreationError(
                name,
                f"conda create failed for '{name}' (exit {result.returncode})",
                returncode=result.returncode,
            )

        handle = self.find(name)
        if handle is None:
            raise EnvironmentCreationError(
                name, f"Environment '{name}' not listed after creation"
            )
        return handle


def provision_environment(
    registry: EnvironmentRegistry,
    name: str,
    python_version: str,
) -> Tuple[EnvironmentHandle, bool]:
    """
    Reuse the named environment or create it.

    Returns:
        (handle, created) - created is False when an existing one was reused
    """
    existing = registry.find(name)
    if existing is not None:
        logger.info(f"Environment '{name}' already exists. Activating...")
        return existing, False

    logger.info(f"Creating conda environment '{name}' (python={python_version})...")
    handle = registry.create(name, python_version)
    logger.info(f"  [OK] Created environment at {handle.prefix}")
    return handle, True


# =============================================================================
# Build Context
# =============================================================================


def cuda_target_triple(machine: Optional[str] = None) -> str:
    """conda's targets/<triple> directory name for this machine."""
    machine = (machine or platform.machine() or "").lower()
    return CUDA_TARGET_TRIPLES.get(machine, DEFAULT_CUDA_TARGET_TRIPLE)


def _prepend(value: str, existing: Optional[str]) -> str:
    if existing:
        return f"{value}{os.pathsep}{existing}"
    return value


@dataclass(frozen=True)
class BuildContext:
    """
    Explicit environment-variable context for subprocesses.

    - activation: what `conda activate` would set (prefix, name, PATH)
    - build: CUDA search paths for native extension builds; empty until
      with_cuda_build_paths() is called after the runtime is installed
    """
    prefix: Path
    activation: Mapping[str, str] = field(default_factory=dict)
    build: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def activate(
        cls,
        handle: EnvironmentHandle,
        base: Optional[Mapping[str, str]] = None,
    ) -> "BuildContext":
        base = os.environ if base is None else base
        activation = {
            "CONDA_PREFIX": str(handle.prefix),
            "CONDA_DEFAULT_ENV": handle.name,
            "PATH": _prepend(str(handle.bin_dir), base.get("PATH")),
        }
        return cls(prefix=handle.prefix, activation=activation)

    def with_cuda_build_paths(
        self,
        base: Optional[Mapping[str, str]] = None,
        machine: Optional[str] = None,
    ) -> "BuildContext":
        """
        Add CUDA_HOME/CPATH/LIBRARY_PATH/LD_LIBRARY_PATH rooted at the prefix.

        Existing values from base are kept after the environment's own paths.
        """
        base = os.environ if base is None else base
        include_dir = self.prefix / "targets" / cuda_target_triple(machine) / "include"
        lib_dir = self.prefix / "lib"
        build = {
            "CUDA_HOME": str(self.prefix),
            "CPATH": _prepend(str(include_dir), base.get("CPATH")),
            "LIBRARY_PATH": _prepend(str(lib_dir), base.get("LIBRARY_PATH")),
            "LD_LIBRARY_PATH": _prepend(str(lib_dir), base.get("LD_LIBRARY_PATH")),
        }
        return replace(self, build=build)

    def environ(
        self,
        include_build: bool = True,
        base: Optional[Mapping[str, str]] = None,
    ) -> Dict[str, str]:
        """Full environment mapping for one subprocess call."""
        env = dict(os.environ if base is None else base)
        env.update(self.activation)
        if include_build:
            env.update(self.build)
        return env
