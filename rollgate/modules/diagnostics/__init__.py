"""
Diagnostics Module - Black Box Interface

Purpose: Capture cluster state when a run fails
Interface: DiagnosticsCollector.collect()
Hidden: Which kubectl queries are run and how output is trimmed
"""

from .collector import DiagnosticsCollector

__all__ = ["DiagnosticsCollector"]
