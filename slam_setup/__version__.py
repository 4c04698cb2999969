#!/usr/bin/env python3
"""Version information for slam-setup."""

# PEP 440 compliant version for pip/wheel
__version__ = "1.0.0"

# Human-readable version for display
__version_display__ = "1.0.0"

# Version metadata
__version_info__ = {
    "major": 1,
    "minor": 0,
    "patch": 0,
    "release": "",
}
