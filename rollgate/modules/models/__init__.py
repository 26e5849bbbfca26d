"""
Models Module - Black Box Interface

Purpose: Shared data contracts between modules
Interface: ResourceSpec, ReadinessPolicy, ExecutionResult, RunReport, ...
Hidden: Validation rules and serialization details
"""

from .models import (
    KUBECTL_RESOURCE_TYPES,
    ROUTING_KINDS,
    WORKLOAD_KINDS,
    DiagnosticEntry,
    Diagnostics,
    DiagnosticsContext,
    EntryPoint,
    ExecutionResult,
    ReadinessKind,
    ReadinessPolicy,
    ReadinessResult,
    ResourceKind,
    ResourceSpec,
    RunReport,
    RunStatus,
)

__all__ = [
    "ResourceKind",
    "ReadinessKind",
    "RunStatus",
    "ReadinessPolicy",
    "ResourceSpec",
    "ExecutionResult",
    "ReadinessResult",
    "DiagnosticEntry",
    "DiagnosticsContext",
    "Diagnostics",
    "RunReport",
    "EntryPoint",
    "KUBECTL_RESOURCE_TYPES",
    "WORKLOAD_KINDS",
    "ROUTING_KINDS",
]
