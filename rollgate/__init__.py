"""
Rollgate - Ordered, readiness-gated deployments for local Kubernetes

A system for provisioning a multi-resource application onto a k3d cluster.

Architecture:
- Each module is self-contained with clear interfaces
- External tools (kubectl, k3d, docker) are only reached through the executor
- Configuration is passed in explicitly, never read from globals in the core

Modules:
- models: Shared data models (resource specs, results, reports)
- plan: Plan loading and dependency resolution
- executor: External command execution (kubectl, k3d, docker)
- readiness: Readiness polling for applied resources
- diagnostics: Best-effort cluster state snapshots for failed runs
- orchestrator: The sequential apply/gate loop
- cluster: k3d cluster lifecycle, image publishing and ingress URL lookup
"""

__version__ = "1.0.0"
