"""
Executor Module - Black Box Interface

Purpose: Run external cluster-management commands
Interface: CommandExecutor.run(), KubectlExecutor.apply(), KubectlExecutor.get_json()
Hidden: Process management, timeouts, cancellation, retry loop

Can be replaced with a Kubernetes API client without affecting other modules.
"""

from .executor import (
    COMMAND_NOT_FOUND,
    CommandExecutor,
    CommandOutput,
    KubectlExecutor,
    RetryPolicy,
    format_command,
)

__all__ = [
    "COMMAND_NOT_FOUND",
    "CommandExecutor",
    "CommandOutput",
    "KubectlExecutor",
    "RetryPolicy",
    "format_command",
]
