"""
Orchestrator Module - Black Box Interface

Purpose: Sequence applies and readiness gates for a plan
Interface: Orchestrator.run(), Orchestrator.plan(), Orchestrator.cancel()
Hidden: Failure handling and report assembly
"""

from .orchestrator import Orchestrator

__all__ = ["Orchestrator"]
