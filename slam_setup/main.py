#!/usr/bin/env python3
"""
slam-setup command line entry point.

Provisions the MASt3R-SLAM conda environment and downloads its checkpoints.
Run it from the MASt3R-SLAM checkout (or pass --project-dir).

Exit status:
    0    success (an optional package failing still counts as success)
    1    missing prerequisite, failed download, or unknown failure
    2    invalid settings
    N    exit status of the failing conda/git/pip command
    130  interrupted
"""

import argparse
import logging
import sys
from typing import List, Optional

from .__version__ import __version_display__
from .config import ConfigurationError, load_settings
from .installer.core.errors import InstallationError
from .installer.core.orchestrator import Provisioner
from .utils.logger import setup_logger

logger = logging.getLogger("slam_setup")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="slam-setup",
        description="MASt3R-SLAM environment provisioning",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  slam-setup                            # Full install in the current checkout
  slam-setup --project-dir ~/MASt3R-SLAM
  slam-setup --cuda 11.8                # Skip nvcc detection
  slam-setup --skip-checkpoints         # Environment and packages only
  slam-setup --config setup.yaml        # Settings from a YAML file
"""
    )

    parser.add_argument(
        '--config',
        help='YAML settings file (CLI flags override its values)'
    )
    parser.add_argument(
        '--project-dir',
        help='MASt3R-SLAM checkout to install (default: current directory)'
    )
    parser.add_argument(
        '--env-name',
        help='conda environment name (default: mast3r-slam)'
    )
    parser.add_argument(
        '--cuda',
        dest='cuda_version',
        help='CUDA toolkit version to target instead of detecting it with nvcc'
    )
    parser.add_argument(
        '--skip-checkpoints',
        action='store_true',
        default=None,
        help='Do not download model checkpoints'
    )
    parser.add_argument(
        '--retries',
        dest='max_retries',
        type=int,
        help='Attempts per install step (default: 3)'
    )
    parser.add_argument(
        '--log-file',
        help='Write a detailed DEBUG log (including conda/pip output) to this file'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Show DEBUG output on the console'
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version_display__}'
    )

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point. Returns the process exit status."""
    args = parse_args(argv)

    try:
        settings = load_settings(
            args.config,
            project_dir=args.project_dir,
            env_name=args.env_name,
            cuda_version=args.cuda_version,
            skip_checkpoints=args.skip_checkpoints,
            max_retries=args.max_retries,
            log_file=args.log_file,
            log_level="DEBUG" if args.verbose else None,
        )
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    setup_logger("slam_setup", log_level=settings.log_level, log_file=settings.log_file)

    try:
        Provisioner(settings).run()
    except InstallationError as e:
        logger.error("")
        logger.error(str(e))
        return e.exit_code
    except KeyboardInterrupt:
        logger.error("\nInterrupted")
        return 130

    return 0


if __name__ == "__main__":
    sys.exit(main())
