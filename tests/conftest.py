"""
Shared pytest fixtures for credrotate tests.

This module provides common fixtures including:
- KubectlMocker: Mock kubectl subprocess calls with canned or computed responses
- argocd_cluster: a small in-memory Argo CD namespace wired into the mocker
- rotation_config: a RotationConfig that never sleeps and keeps backups under tmp_path
"""

import logging
import os
import subprocess
import sys
from dataclasses import dataclass
from typing import Callable, List, Optional, Pattern, Union
from unittest.mock import MagicMock, patch

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from credrotate.config import RotationConfig


# =============================================================================
# Kubectl Mocking Infrastructure
# =============================================================================

@dataclass
class KubectlResponse:
    """Represents a mocked kubectl command response."""
    stdout: str = ""
    stderr: str = ""
    returncode: int = 0
    timed_out: bool = False

    def to_completed_process(self) -> MagicMock:
        """Convert to a subprocess.CompletedProcess-like mock."""
        result = MagicMock()
        result.stdout = self.stdout
        result.stderr = self.stderr
        result.returncode = self.returncode
        return result


Responder = Union[KubectlResponse, Callable[[List[str]], KubectlResponse]]


@dataclass
class KubectlCall:
    """Record of a kubectl call made during testing."""
    command: List[str]
    full_command_str: str
    matched_pattern: Optional[str] = None
    response: Optional[KubectlResponse] = None


class KubectlMocker:
    """
    Mock kubectl subprocess calls with pattern-matched responses.

    A registered response is either a fixed KubectlResponse or a callable
    that receives the kubectl arguments and builds one, which lets a fake
    cluster keep state between calls.

    Usage:
        def test_namespace_check(kubectl_mocker):
            kubectl_mocker.register("get namespace argocd", KubectlResponse(
                stdout="namespace/argocd"
            ))

            assert Kubectl().namespace_exists("argocd")
            assert kubectl_mocker.was_called_with("get namespace argocd")
    """

    def __init__(self, binary: str = "kubectl"):
        self.binary = binary
        self.available_binaries = {binary}
        self._responses: List[tuple] = []
        self._call_history: List[KubectlCall] = []
        self._default_response = KubectlResponse(
            stderr="Error: mock not configured for this command",
            returncode=1
        )

    def register(
        self,
        pattern: Union[str, Pattern],
        response: Responder,
        priority: int = 0
    ) -> "KubectlMocker":
        """
        Register a response for commands matching the pattern.

        Args:
            pattern: String (substring match) or regex pattern
            response: KubectlResponse, or callable building one from the args
            priority: Higher priority patterns are checked first

        Returns:
            self for chaining
        """
        self._responses.append((pattern, response, priority))
        # Sort by priority (highest first)
        self._responses.sort(key=lambda x: x[2], reverse=True)
        return self

    def register_scenario(self, scenario_name: str) -> "KubectlMocker":
        """Register all responses of a named scenario from fixtures.cluster_scenarios."""
        from fixtures.cluster_scenarios import SCENARIOS

        if scenario_name not in SCENARIOS:
            raise ValueError(
                f"Unknown scenario: {scenario_name}. "
                f"Available: {list(SCENARIOS.keys())}"
            )

        for pattern, response in SCENARIOS[scenario_name].items():
            self.register(pattern, response)

        return self

    def set_default_response(self, response: KubectlResponse) -> "KubectlMocker":
        """Set the default response for unmatched commands."""
        self._default_response = response
        return self

    def which(self, name: str) -> Optional[str]:
        """Stand-in for shutil.which honouring ``available_binaries``."""
        if name in self.available_binaries:
            return f"/usr/local/bin/{name}"
        return None

    def mock_run(
        self,
        cmd: List[str],
        capture_output: bool = True,
        text: bool = True,
        timeout: Optional[int] = None,
        **kwargs
    ) -> MagicMock:
        """
        Mock implementation of subprocess.run for kubectl commands.

        This method is used as a side_effect for patching subprocess.run.
        Anything other than kubectl is refused so no real process is started.
        """
        cmd_str = " ".join(cmd)

        if cmd[0] != self.binary:
            raise RuntimeError(f"Non-kubectl command blocked: {cmd_str}")

        # Find matching response
        kubectl_args = " ".join(cmd[1:])
        matched_pattern = None
        response = self._default_response

        for pattern, resp, _ in self._responses:
            if isinstance(pattern, str):
                if pattern in kubectl_args:
                    matched_pattern = pattern
                    response = resp
                    break
            else:  # Compiled regex
                if pattern.search(kubectl_args):
                    matched_pattern = pattern.pattern
                    response = resp
                    break

        if callable(response):
            response = response(cmd[1:])

        # Record the call
        call = KubectlCall(
            command=cmd,
            full_command_str=cmd_str,
            matched_pattern=matched_pattern,
            response=response
        )
        self._call_history.append(call)

        if response.timed_out:
            raise subprocess.TimeoutExpired(cmd, timeout or 0)

        return response.to_completed_process()

    @property
    def calls(self) -> List[KubectlCall]:
        """Get all kubectl calls made during the test."""
        return self._call_history

    @property
    def call_count(self) -> int:
        """Get the number of kubectl calls made."""
        return len(self._call_history)

    def was_called_with(self, pattern: str) -> bool:
        """Check if any call contained the given pattern."""
        return any(pattern in call.full_command_str for call in self._call_history)

    def get_calls_matching(self, pattern: str) -> List[KubectlCall]:
        """Get all calls containing the given pattern."""
        return [c for c in self._call_history if pattern in c.full_command_str]

    def reset(self):
        """Clear call history (but keep registered responses)."""
        self._call_history = []

    def clear(self):
        """Clear both responses and call history."""
        self._responses = []
        self._call_history = []


@pytest.fixture
def kubectl_mocker():
    """
    Fixture that provides a KubectlMocker with subprocess.run and shutil.which patched.

    Usage:
        def test_something(kubectl_mocker):
            kubectl_mocker.register("get namespace", KubectlResponse(stdout="..."))
            # Your test code that calls kubectl
            assert kubectl_mocker.was_called_with("get namespace")
    """
    mocker = KubectlMocker()
    with patch("subprocess.run", side_effect=mocker.mock_run), \
            patch("shutil.which", side_effect=mocker.which):
        yield mocker


@pytest.fixture
def argocd_cluster(kubectl_mocker):
    """An in-memory argocd namespace answering the mocked kubectl calls."""
    from fixtures.cluster_scenarios import ArgoCDCluster

    cluster = ArgoCDCluster()
    cluster.install(kubectl_mocker)
    return cluster


# =============================================================================
# Configuration
# =============================================================================

@pytest.fixture
def rotation_config(tmp_path):
    """Configuration for workflow tests: no settle delay, backups kept under tmp_path."""
    return RotationConfig(
        settle_seconds=0,
        recovery_dir=str(tmp_path / "recovery"),
        use_color=False,
    )


@pytest.fixture(autouse=True)
def reset_credrotate_logging():
    """Undo dictConfig changes made by CLI runs so caplog sees every record."""
    yield
    package_logger = logging.getLogger("credrotate")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)


class RecordingSleep:
    """Callable stand-in for time.sleep that records requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def no_sleep():
    return RecordingSleep()


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "kubectl_mock: Tests using mocked kubectl subprocess calls"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take a long time to run"
    )
