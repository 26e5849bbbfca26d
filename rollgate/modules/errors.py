"""
Rollgate error taxonomy.

Every failure the core can raise derives from RollgateError so that the CLI
can report it uniformly. All of them are fatal to the current run.
"""

from typing import List, Optional


class RollgateError(Exception):
    """Base class for all Rollgate errors."""


class InvalidPlan(RollgateError):
    """Structural problem with a plan, detected before anything is applied."""

    def __init__(self, message: str, problems: Optional[List[str]] = None):
        super().__init__(message)
        self.problems = problems or []


class PlanLoadError(InvalidPlan):
    """Plan file could not be read or parsed."""


class ExecutionError(RollgateError):
    """An external command returned a non-zero exit status."""

    def __init__(self, message: str, exit_code: int, stderr: str = "", result=None):
        super().__init__(message)
        self.exit_code = exit_code
        self.stderr = stderr
        # ExecutionResult of the failed apply, when there is one
        self.result = result


class ReadinessTimeout(RollgateError):
    """A resource did not reach its ready condition before its deadline."""

    def __init__(self, resource: str, timeout: float, detail: Optional[str] = None, result=None):
        message = f"Resource '{resource}' not ready after {timeout:g}s"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.resource = resource
        self.timeout = timeout
        self.detail = detail
        self.result = result


class OperationCancelled(RollgateError):
    """The caller cancelled the run."""


class ClusterError(RollgateError):
    """k3d cluster lifecycle operation failed."""


class ImageError(RollgateError):
    """Container image build, tag or push failed."""


__all__ = [
    "RollgateError",
    "InvalidPlan",
    "PlanLoadError",
    "ExecutionError",
    "ReadinessTimeout",
    "OperationCancelled",
    "ClusterError",
    "ImageError",
]
