"""
Pytest configuration for slam-setup tests.

Registers custom markers and provides fakes for the provisioner's injected
collaborators (command runner, environment registry, HTTP session).
"""

import subprocess
from pathlib import Path
from typing import Dict, List, Optional
from unittest.mock import MagicMock

import pytest


def pytest_configure(config):
    """Register custom pytest markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests that run several stages together"
    )


# =============================================================================
# Fakes
# =============================================================================


class FakeRunner:
    """
    CommandRunner that records every call and succeeds unless told otherwise.

    fail_on(token, returncode) makes any command whose joined text contains
    token exit with returncode.
    """

    def __init__(self):
        self.calls: List[dict] = []
        self.failures: Dict[str, int] = {}

    def fail_on(self, token: str, returncode: int = 1):
        self.failures[token] = returncode

    def __call__(self, cmd, *, cwd=None, env=None, timeout=None):
        cmd = [str(c) for c in cmd]
        self.calls.append({"cmd": cmd, "cwd": cwd, "env": env, "timeout": timeout})
        joined = " ".join(cmd)
        for token, returncode in self.failures.items():
            if token in joined:
                return subprocess.CompletedProcess(cmd, returncode, "", "boom")
        return subprocess.CompletedProcess(cmd, 0, "", "")

    def commands_containing(self, token: str) -> List[List[str]]:
        return [c["cmd"] for c in self.calls if token in " ".join(c["cmd"])]


class FakeRegistry:
    """In-memory EnvironmentRegistry."""

    def __init__(self, existing=(), root: Path = Path("/opt/conda/envs")):
        self.root = root
        self.envs: Dict[str, Path] = {name: root / name for name in existing}
        self.created: List[tuple] = []

    def find(self, name: str):
        from slam_setup.installer.core.environment import EnvironmentHandle

        prefix = self.envs.get(name)
        if prefix is None:
            return None
        return EnvironmentHandle(name=name, prefix=prefix)

    def create(self, name: str, python_version: str):
        self.created.append((name, python_version))
        self.envs[name] = self.root / name
        return self.find(name)


def make_response(data: bytes = b"weights", status_error: Optional[Exception] = None):
    """MagicMock standing in for a streamed requests.Response."""
    response = MagicMock()
    response.headers = {"Content-Length": str(len(data))}
    response.iter_content.return_value = [data]
    if status_error is not None:
        response.raise_for_status.side_effect = status_error
    return response


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def session():
    session = MagicMock()
    session.get.return_value = make_response()
    return session


@pytest.fixture
def prerequisites():
    """check_prerequisites()-style result with conda and git present."""
    from slam_setup.installer.core.detector import PrerequisiteResult

    return {
        "conda": PrerequisiteResult(
            name="conda", found=True, version="24.7.1",
            path="/opt/conda/bin/conda", message="conda 24.7.1 - OK",
        ),
        "git": PrerequisiteResult(
            name="Git", found=True, version="2.43.0",
            path="/usr/bin/git", message="Git 2.43.0 - OK",
        ),
        "platform": "Linux (x86_64)",
        "all_ok": True,
    }


@pytest.fixture
def response_factory():
    return make_response


@pytest.fixture
def registry_factory():
    return FakeRegistry
