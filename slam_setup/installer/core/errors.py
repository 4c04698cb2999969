"""
Provisioning exceptions.

Every fatal condition in the provisioning run is raised as a subclass of
InstallationError. Each carries the process exit status the CLI should
terminate with, which is the failing subprocess's own status where there is
one.
"""

from typing import Optional


class InstallationError(Exception):
    """Base exception for all fatal provisioning errors."""

    def __init__(self, message: str, exit_code: int = 1):
        self.exit_code = exit_code if exit_code else 1
        super().__init__(message)


class PrerequisiteError(InstallationError):
    """Raised when a required tool (conda) is not installed."""

    def __init__(self, name: str, message: str):
        self.name = name
        super().__init__(message, exit_code=1)


class EnvironmentCreationError(InstallationError):
    """Raised when the isolated environment cannot be created."""

    def __init__(self, env_name: str, message: str, returncode: Optional[int] = None):
        self.env_name = env_name
        self.returncode = returncode
        super().__init__(message, exit_code=returncode or 1)


class InstallStepError(InstallationError):
    """
    Raised when a mandatory install step fails.

    Carries the step name and the exit status of the last attempt so the CLI
    can propagate it.
    """

    def __init__(self, step_name: str, message: str, returncode: Optional[int] = None):
        self.step_name = step_name
        self.returncode = returncode
        super().__init__(message, exit_code=returncode or 1)


class ArtifactFetchError(InstallationError):
    """Raised when a checkpoint download fails."""

    def __init__(self, filename: str, url: str, message: str):
        self.filename = filename
        self.url = url
        super().__init__(message, exit_code=1)
