"""
Rollgate shared data models.

These models define the structure of all data passed between
components in the Rollgate system.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Enums


class ResourceKind(str, Enum):
    """Kinds of deployable units a plan can contain."""

    NAMESPACE = "Namespace"
    CONFIG_MAP = "ConfigMap"
    STATEFUL_WORKLOAD = "StatefulWorkload"
    DEPLOYMENT = "Deployment"
    SERVICE = "Service"
    INGRESS = "Ingress"


class ReadinessKind(str, Enum):
    """Conditions a resource can be gated on."""

    ROLLOUT_COMPLETE = "RolloutComplete"
    ENDPOINTS_NON_EMPTY = "EndpointsNonEmpty"
    CUSTOM_CHECK = "CustomCheck"


class RunStatus(str, Enum):
    """Final status of an orchestration run."""

    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    TIMED_OUT = "TimedOut"
    CANCELLED = "Cancelled"


# kubectl resource type for each kind
KUBECTL_RESOURCE_TYPES = {
    ResourceKind.NAMESPACE: "namespace",
    ResourceKind.CONFIG_MAP: "configmap",
    ResourceKind.STATEFUL_WORKLOAD: "statefulset",
    ResourceKind.DEPLOYMENT: "deployment",
    ResourceKind.SERVICE: "service",
    ResourceKind.INGRESS: "ingress",
}

WORKLOAD_KINDS = {ResourceKind.STATEFUL_WORKLOAD, ResourceKind.DEPLOYMENT}
ROUTING_KINDS = {ResourceKind.SERVICE, ResourceKind.INGRESS}

NAME_PATTERN = r"^[a-z0-9]([-a-z0-9.]*[a-z0-9])?$"


# Plan Models (static configuration)


class ReadinessPolicy(BaseModel):
    """How and how often to check that a resource is ready."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    kind: ReadinessKind
    poll_interval: float = Field(
        default=5.0, alias="pollInterval", description="Seconds between polls", gt=0
    )
    command: Optional[List[str]] = Field(
        default=None, description="kubectl arguments for CustomCheck; ready when exit code is 0"
    )

    @model_validator(mode="after")
    def check_command(self) -> "ReadinessPolicy":
        if self.kind == ReadinessKind.CUSTOM_CHECK and not self.command:
            raise ValueError("CustomCheck readiness requires a command")
        return self


class ResourceSpec(BaseModel):
    """Declarative description of one deployable unit."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str = Field(
        ..., description="Unique name within a plan", min_length=1, max_length=253, pattern=NAME_PATTERN
    )
    kind: ResourceKind
    manifest_path: str = Field(..., alias="manifestPath", min_length=1)
    depends_on: List[str] = Field(default_factory=list, alias="dependsOn")
    readiness: Optional[ReadinessPolicy] = None
    timeout: float = Field(default=300.0, description="Readiness deadline in seconds", gt=0)
    object_name: Optional[str] = Field(
        default=None, alias="objectName", description="Kubernetes object name, defaults to name"
    )
    namespace: Optional[str] = Field(default=None, description="Namespace of the object")
    image: Optional[str] = Field(default=None, description="Image to set after apply")
    container: Optional[str] = Field(default=None, description="Container to receive the image")

    @field_validator("depends_on")
    @classmethod
    def dedupe_dependencies(cls, v):
        """Keep declaration order, drop repeats."""
        seen = []
        for dep in v:
            if dep not in seen:
                seen.append(dep)
        return seen

    @model_validator(mode="after")
    def check_consistency(self) -> "ResourceSpec":
        if self.name in self.depends_on:
            raise ValueError(f"Resource '{self.name}' cannot depend on itself")

        if self.readiness is not None:
            if (
                self.readiness.kind == ReadinessKind.ROLLOUT_COMPLETE
                and self.kind not in WORKLOAD_KINDS
            ):
                raise ValueError(f"RolloutComplete readiness is not valid for {self.kind.value}")
            if (
                self.readiness.kind == ReadinessKind.ENDPOINTS_NON_EMPTY
                and self.kind not in ROUTING_KINDS
            ):
                raise ValueError(f"EndpointsNonEmpty readiness is not valid for {self.kind.value}")

        if self.image and self.kind not in WORKLOAD_KINDS:
            raise ValueError(f"Image override is only valid for workloads, not {self.kind.value}")
        return self

    @property
    def k8s_name(self) -> str:
        """Name of the object in the cluster."""
        return self.object_name or self.name

    @property
    def kubectl_type(self) -> str:
        return KUBECTL_RESOURCE_TYPES[self.kind]

    @property
    def target(self) -> str:
        """kubectl TYPE/NAME reference, e.g. deployment/shopcarts."""
        return f"{self.kubectl_type}/{self.k8s_name}"


# Result Models (produced during a run)


class ExecutionResult(BaseModel):
    """Outcome of applying one resource. Immutable once produced."""

    model_config = ConfigDict(frozen=True)

    resource: str
    succeeded: bool
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    elapsed: float = Field(default=0.0, description="Wall-clock seconds")
    command: List[str] = Field(default_factory=list)
    attempts: int = 1


class ReadinessResult(BaseModel):
    """Outcome of waiting on one resource."""

    model_config = ConfigDict(frozen=True)

    resource: str
    ready: bool
    attempts: int = 0
    elapsed: float = 0.0
    detail: Optional[str] = None


class DiagnosticEntry(BaseModel):
    """One piece of a diagnostics snapshot."""

    title: str
    command: Optional[List[str]] = None
    output: str = ""
    ok: bool = True


class DiagnosticsContext(BaseModel):
    """What the diagnostics collector needs to know about a failure."""

    namespace: str
    spec: Optional[ResourceSpec] = None
    error: Optional[str] = None


class Diagnostics(BaseModel):
    """Best-effort snapshot of cluster state for operators."""

    namespace: str
    resource: Optional[str] = None
    entries: List[DiagnosticEntry] = Field(default_factory=list)
    collected_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def partial(self) -> bool:
        """True when at least one sub-collection failed."""
        return any(not entry.ok for entry in self.entries)

    def render(self) -> str:
        """Plain-text rendering for logs and terminals."""
        lines = [f"[DIAG] namespace={self.namespace} resource={self.resource or '-'}"]
        for entry in self.entries:
            marker = "" if entry.ok else " (unavailable)"
            lines.append(f"--- {entry.title}{marker}")
            if entry.output:
                lines.append(entry.output.rstrip())
        return "\n".join(lines)


class RunReport(BaseModel):
    """Result of one orchestration run."""

    status: RunStatus
    failed_at: Optional[str] = None
    error: Optional[str] = None
    results: List[ExecutionResult] = Field(default_factory=list)
    readiness: List[ReadinessResult] = Field(default_factory=list)
    diagnostics: Optional[Diagnostics] = None
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None

    @property
    def succeeded(self) -> bool:
        return self.status == RunStatus.SUCCEEDED

    @property
    def exit_code(self) -> int:
        """Process exit code for this report."""
        if self.status == RunStatus.SUCCEEDED:
            return 0
        if self.status == RunStatus.CANCELLED:
            return 130
        return 1

    @property
    def applied(self) -> List[str]:
        """Names of resources whose apply succeeded, in order."""
        return [result.resource for result in self.results if result.succeeded]


class EntryPoint(BaseModel):
    """Externally reachable address of the routing layer."""

    address: str
    source: str = Field(..., pattern="^(ip|hostname)$")

    @property
    def url(self) -> str:
        return f"http://{self.address}"


__all__ = [
    # Enums
    "ResourceKind",
    "ReadinessKind",
    "RunStatus",
    # Plan models
    "ReadinessPolicy",
    "ResourceSpec",
    # Result models
    "ExecutionResult",
    "ReadinessResult",
    "DiagnosticEntry",
    "DiagnosticsContext",
    "Diagnostics",
    "RunReport",
    "EntryPoint",
    # Constants
    "KUBECTL_RESOURCE_TYPES",
    "WORKLOAD_KINDS",
    "ROUTING_KINDS",
]
