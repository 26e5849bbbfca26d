"""
Plan Module - Black Box Interface

Purpose: Turn resource definitions into an executable order
Interface: load_plan(), default_plan(), resolve_plan(), validate_plan()
Hidden: YAML layout, path resolution, topological sort
"""

from .plan import default_plan, find_cycle, load_plan, resolve_plan, validate_plan

__all__ = ["default_plan", "find_cycle", "load_plan", "resolve_plan", "validate_plan"]
