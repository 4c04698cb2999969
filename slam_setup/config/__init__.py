"""
slam-setup settings.

- ProvisionSettings: pydantic model of every provisioning option
- load_settings(): YAML file + CLI overrides -> ProvisionSettings
"""

from .errors import ConfigurationError, ConfigValidationError
from .settings import ProvisionSettings, load_settings

__all__ = [
    "ConfigurationError",
    "ConfigValidationError",
    "ProvisionSettings",
    "load_settings",
]
