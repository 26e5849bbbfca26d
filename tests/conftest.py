"""
Shared pytest fixtures for Rollgate tests.

This module provides common fixtures including:
- KubectlMocker: Mock kubectl/k3d/docker subprocess calls with canned responses
- FakeClock: Deterministic time source for readiness polling tests
- Plan builders for the shopcarts deployment
"""

import os
import sys
from dataclasses import dataclass
from typing import List, Optional, Pattern, Sequence, Union
from unittest.mock import MagicMock, patch

import pytest

# Add repository root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from rollgate.modules.models import (
    ReadinessKind,
    ReadinessPolicy,
    ResourceKind,
    ResourceSpec,
)


# =============================================================================
# Command Mocking Infrastructure
# =============================================================================

@dataclass
class KubectlResponse:
    """Represents a mocked command response."""
    stdout: str = ""
    stderr: str = ""
    returncode: int = 0

    def to_process(self) -> MagicMock:
        """Convert to a subprocess.Popen-like mock that has already finished."""
        process = MagicMock()
        process.returncode = self.returncode
        process.communicate.return_value = (self.stdout, self.stderr)
        process.poll.return_value = self.returncode
        return process


@dataclass
class KubectlCall:
    """Record of a command made during testing."""
    command: List[str]
    full_command_str: str
    matched_pattern: Optional[str] = None
    response: Optional[KubectlResponse] = None


ResponseSpec = Union[KubectlResponse, Sequence[KubectlResponse]]


class KubectlMocker:
    """
    Mock external command calls with pattern-matched responses.

    Patterns are matched against the whole command line, binary included,
    so "apply -f" and "k3d cluster list" both work. Registering a list of
    responses returns them one per call, repeating the last one.

    Usage:
        def test_apply(kubectl_mocker):
            kubectl_mocker.register("apply -f", KubectlResponse(stdout="created"))

            executor.apply(spec)

            assert kubectl_mocker.was_called_with("apply -f")
    """

    def __init__(self):
        self._responses: List[tuple] = []
        self._cursors = {}
        self._call_history: List[KubectlCall] = []
        self._default_response = KubectlResponse(
            stderr="Error: mock not configured for this command",
            returncode=1
        )

    def register(
        self,
        pattern: Union[str, Pattern],
        response: ResponseSpec,
        priority: int = 0
    ) -> "KubectlMocker":
        """
        Register a response for commands matching the pattern.

        Args:
            pattern: String (substring match) or regex pattern
            response: KubectlResponse, or a list returned in order
            priority: Higher priority patterns are checked first

        Returns:
            self for chaining
        """
        self._responses.append((pattern, response, priority))
        # Sort by priority (highest first); stable for equal priorities
        self._responses.sort(key=lambda x: x[2], reverse=True)
        return self

    def register_scenario(self, scenario_name: str) -> "KubectlMocker":
        """Register all responses for a named scenario."""
        from fixtures.kubectl_scenarios import SCENARIOS

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

    def _next_response(self, pattern, response: ResponseSpec) -> KubectlResponse:
        if isinstance(response, KubectlResponse):
            return response
        key = id(response)
        index = self._cursors.get(key, 0)
        self._cursors[key] = index + 1
        return response[min(index, len(response) - 1)]

    def mock_popen(self, cmd: List[str], *args, **kwargs) -> MagicMock:
        """
        Mock implementation of subprocess.Popen.

        This method is used as a side_effect for patching subprocess.Popen.
        """
        cmd_str = " ".join(cmd)
        matched_pattern = None
        response = self._default_response

        for pattern, resp, _ in self._responses:
            if isinstance(pattern, str):
                if pattern in cmd_str:
                    matched_pattern = pattern
                    response = self._next_response(pattern, resp)
                    break
            else:  # Compiled regex
                if pattern.search(cmd_str):
                    matched_pattern = pattern.pattern
                    response = self._next_response(pattern, resp)
                    break

        self._call_history.append(KubectlCall(
            command=list(cmd),
            full_command_str=cmd_str,
            matched_pattern=matched_pattern,
            response=response
        ))

        return response.to_process()

    @property
    def calls(self) -> List[KubectlCall]:
        """Get all calls made during the test."""
        return self._call_history

    @property
    def call_count(self) -> int:
        return len(self._call_history)

    def was_called_with(self, pattern: str) -> bool:
        """Check if any call contained the given pattern."""
        return any(pattern in call.full_command_str for call in self._call_history)

    def get_calls_matching(self, pattern: str) -> List[KubectlCall]:
        """Get all calls containing the given pattern."""
        return [c for c in self._call_history if pattern in c.full_command_str]

    def applied_manifests(self) -> List[str]:
        """Manifest paths passed to `kubectl apply -f`, in call order."""
        manifests = []
        for call in self.get_calls_matching("apply -f"):
            index = call.command.index("-f")
            manifests.append(call.command[index + 1])
        return manifests

    def reset(self):
        """Clear call history (but keep registered responses)."""
        self._call_history = []

    def clear(self):
        """Clear both responses and call history."""
        self._responses = []
        self._cursors = {}
        self._call_history = []


@pytest.fixture
def kubectl_mocker():
    """
    Fixture that provides a KubectlMocker with subprocess.Popen patched.

    Unmatched commands fail with exit code 1.
    """
    mocker = KubectlMocker()
    with patch("subprocess.Popen", side_effect=mocker.mock_popen):
        yield mocker


@pytest.fixture
def kubectl_mocker_strict():
    """
    Strict mocker that fails on any unregistered command with exit 127.
    """
    mocker = KubectlMocker()
    mocker.set_default_response(KubectlResponse(
        stderr="STRICT MODE: No mock registered for this command",
        returncode=127
    ))
    with patch("subprocess.Popen", side_effect=mocker.mock_popen):
        yield mocker


# =============================================================================
# Timing
# =============================================================================

class FakeClock:
    """Monotonic clock that only advances when sleep() is called."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_clock():
    return FakeClock()


# =============================================================================
# Plans
# =============================================================================

def rollout(poll_interval: float = 1.0) -> ReadinessPolicy:
    return ReadinessPolicy(kind=ReadinessKind.ROLLOUT_COMPLETE, poll_interval=poll_interval)


def endpoints(poll_interval: float = 1.0) -> ReadinessPolicy:
    return ReadinessPolicy(kind=ReadinessKind.ENDPOINTS_NON_EMPTY, poll_interval=poll_interval)


def shopcarts_plan(timeout: float = 30.0) -> List[ResourceSpec]:
    """Namespace, postgres, shopcarts deployment and ingress."""
    return [
        ResourceSpec(
            name="shopcarts-namespace",
            kind=ResourceKind.NAMESPACE,
            object_name="shopcarts",
            manifest_path="k8s/namespace.yaml",
        ),
        ResourceSpec(
            name="postgres",
            kind=ResourceKind.STATEFUL_WORKLOAD,
            namespace="shopcarts",
            manifest_path="k8s/postgres/statefulset.yaml",
            depends_on=["shopcarts-namespace"],
            readiness=rollout(),
            timeout=timeout,
        ),
        ResourceSpec(
            name="shopcarts",
            kind=ResourceKind.DEPLOYMENT,
            namespace="shopcarts",
            manifest_path="k8s/shopcarts-deployment.yaml",
            depends_on=["shopcarts-namespace"],
            readiness=rollout(),
            timeout=timeout,
        ),
        ResourceSpec(
            name="shopcarts-ingress",
            kind=ResourceKind.INGRESS,
            object_name="shopcarts",
            namespace="shopcarts",
            manifest_path="k8s/ingress.yaml",
            depends_on=["shopcarts"],
            readiness=endpoints(),
            timeout=timeout,
        ),
    ]


@pytest.fixture
def shopcarts_specs():
    return shopcarts_plan()


# =============================================================================
# Test Markers Configuration
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "kubectl_mock: Tests using mocked kubectl subprocess calls"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests across several modules"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take a long time to run"
    )
