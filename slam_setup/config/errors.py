"""
Custom exceptions for the slam-setup settings layer.

These exceptions provide clear, actionable error messages for configuration issues.
"""

from pathlib import Path
from typing import Any, Optional


class ConfigurationError(Exception):
    """Base exception for all configuration errors."""

    def __init__(self, message: str, file_path: Optional[Path] = None, line: Optional[int] = None):
        self.file_path = file_path
        self.line = line
        super().__init__(message)

    def __str__(self):
        message = self.args[0]
        if self.file_path and self.line:
            return f"{self.file_path}:{self.line}: {message}"
        if self.file_path:
            return f"{self.file_path}: {message}"
        return message


class ConfigValidationError(ConfigurationError):
    """
    Raised when configuration validation fails.

    Provides context about which field failed and what value was provided.
    """

    def __init__(self, message: str, field: str = None, value: Any = None,
                 file_path: Optional[Path] = None):
        self.field = field
        self.value = value
        super().__init__(message, file_path=file_path)

    def __str__(self):
        prefix = f"{self.file_path}: " if self.file_path else ""
        if self.field:
            return f"{prefix}Validation error for '{self.field}': {self.args[0]} (got: {self.value!r})"
        return f"{prefix}{self.args[0]}"
