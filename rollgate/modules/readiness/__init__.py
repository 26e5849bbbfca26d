"""
Readiness Module - Black Box Interface

Purpose: Gate the orchestrator on resource readiness
Interface: ReadinessProbe.wait(), ReadinessProbe.check()
Hidden: Condition evaluation per readiness kind, polling and deadlines
"""

from .probe import CRASH_REASONS, ReadinessProbe, ingress_backend_services

__all__ = ["ReadinessProbe", "CRASH_REASONS", "ingress_backend_services"]
