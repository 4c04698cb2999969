"""
slam-setup Installation System
==============================

Provisions a conda environment for MASt3R-SLAM and downloads its
checkpoints.

    ┌──────────────────────────────────────────────────────────┐
    │                 PROVISIONER (orchestrator.py)            │
    │   preflight → toolchain → environment → deps → fetch     │
    └───────┬─────────────┬──────────────┬─────────────┬───────┘
            ▼             ▼              ▼             ▼
      detector.py   environment.py   executor.py   artifacts.py
      conda / nvcc  conda env list   retries,      requests +
      CUDA table    BuildContext     OK/TOLERATED  tqdm, skip
                                     /FATAL        if present
                                         ▲
                                    registry.py
                                (ordered install steps)

USAGE:
-----

    from slam_setup.config import load_settings
    from slam_setup.installer import Provisioner

    report = Provisioner(load_settings(project_dir=".")).run()
"""

from .core import *  # noqa: F401,F403
from .core import __all__
