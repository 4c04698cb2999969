"""slam-setup - provisioning for MASt3R-SLAM"""

from slam_setup.__version__ import __version__, __version_info__

__all__ = [
    "__version__",
    "__version_info__",
]
