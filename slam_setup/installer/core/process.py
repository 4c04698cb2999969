"""
Subprocess runner shared by the environment registry and the step executor.

Everything that shells out goes through a CommandRunner so tests can swap in
a fake that records commands instead of touching conda, git or pip.
"""

import logging
import subprocess
from pathlib import Path
from typing import Callable, Mapping, Optional, Sequence, Union

logger = logging.getLogger(__name__)

CommandRunner = Callable[..., subprocess.CompletedProcess]
"""
Signature: runner(cmd, *, cwd=None, env=None, timeout=None) -> CompletedProcess

The CompletedProcess must carry returncode, stdout and stderr (text).
"""


def run_command(
    cmd: Sequence[str],
    *,
    cwd: Optional[Union[str, Path]] = None,
    env: Optional[Mapping[str, str]] = None,
    timeout: Optional[float] = None,
) -> subprocess.CompletedProcess:
    """
    Run a command to completion and capture its output.

    Raises subprocess.TimeoutExpired and OSError (e.g. FileNotFoundError)
    unchanged; a non-zero exit is reported through returncode, not raised.
    """
    logger.debug("$ " + " ".join(str(part) for part in cmd))
    return subprocess.run(
        [str(part) for part in cmd],
        cwd=str(cwd) if cwd is not None else None,
        env=dict(env) if env is not None else None,
        capture_output=True,
        text=True,
        timeout=timeout,
        encoding="utf-8",
        errors="replace",  # Compiler output is not always valid UTF-8
    )
