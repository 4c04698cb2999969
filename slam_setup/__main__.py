"""Allow `python -m slam_setup`."""

import sys

from .main import main

if __name__ == "__main__":
    sys.exit(main())
