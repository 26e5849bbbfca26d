"""
Readiness polling for applied resources.

The probe asks the cluster about a resource every `pollInterval` seconds
until its condition holds or the resource's timeout expires.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from rollgate.modules.errors import ExecutionError, OperationCancelled, ReadinessTimeout
from rollgate.modules.executor import KubectlExecutor
from rollgate.modules.models import ReadinessKind, ReadinessResult, ResourceKind, ResourceSpec

logger = logging.getLogger("rollgate.readiness")

# Container waiting/terminated reasons that mean a pod will not become ready by itself
CRASH_REASONS = {
    "CrashLoopBackOff",
    "Error",
    "ImagePullBackOff",
    "ErrImagePull",
    "InvalidImageName",
    "CreateContainerConfigError",
    "CreateContainerError",
}


class ReadinessProbe:
    """Polls the cluster until a resource is ready or its deadline passes."""

    def __init__(
        self,
        executor: KubectlExecutor,
        default_namespace: str = "default",
        cancel_event: Optional[threading.Event] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        """
        Args:
            executor: kubectl executor used for all queries
            default_namespace: Namespace for specs that do not name one
            cancel_event: Aborts the current poll when set; defaults to the executor's
            clock: Monotonic time source
            sleep: Replacement for the cancellable wait between polls
        """
        self.executor = executor
        self.default_namespace = default_namespace
        self.cancel_event = cancel_event or executor.cancel_event
        self._clock = clock
        self._sleep = sleep

    def wait(self, spec: ResourceSpec) -> ReadinessResult:
        """
        Block until the resource's readiness condition holds.

        Returns:
            ReadinessResult with ready=True

        Raises:
            ReadinessTimeout: If spec.timeout elapses first
            OperationCancelled: If the cancel event is set while waiting
        """
        policy = spec.readiness
        if policy is None:
            return ReadinessResult(resource=spec.name, ready=True, detail="no readiness policy")

        start = self._clock()
        deadline = start + spec.timeout
        attempts = 0
        logger.info(
            f"Waiting for {spec.kind.value} '{spec.name}' ({policy.kind.value}, "
            f"timeout {spec.timeout:g}s)"
        )

        while True:
            if self.cancel_event.is_set():
                raise OperationCancelled(f"Cancelled while waiting for '{spec.name}'")

            attempts += 1
            ready, detail = self.check(spec, deadline=deadline + policy.poll_interval)
            elapsed = self._clock() - start

            if ready:
                logger.info(f"'{spec.name}' ready after {elapsed:.1f}s: {detail}")
                return ReadinessResult(
                    resource=spec.name, ready=True, attempts=attempts, elapsed=elapsed, detail=detail
                )

            remaining = deadline - self._clock()
            if remaining <= 0:
                logger.error(f"'{spec.name}' not ready after {spec.timeout:g}s: {detail}")
                raise ReadinessTimeout(
                    spec.name,
                    spec.timeout,
                    detail,
                    result=ReadinessResult(
                        resource=spec.name,
                        ready=False,
                        attempts=attempts,
                        elapsed=elapsed,
                        detail=detail,
                    ),
                )

            logger.debug(f"'{spec.name}' not ready ({detail}), polling again")
            self._pause(min(policy.poll_interval, remaining))

    def _pause(self, seconds: float) -> None:
        if self._sleep is not None:
            self._sleep(seconds)
            if self.cancel_event.is_set():
                raise OperationCancelled("Run cancelled")
        elif self.cancel_event.wait(seconds):
            raise OperationCancelled("Run cancelled")

    def check(self, spec: ResourceSpec, deadline: Optional[float] = None) -> Tuple[bool, str]:
        """
        Evaluate the resource's condition once.

        Query failures count as not ready; the deadline decides when to give up.

        Args:
            spec: Resource to check
            deadline: Clock time by which every query of this check must finish
        """
        kind = spec.readiness.kind
        try:
            if kind == ReadinessKind.ROLLOUT_COMPLETE:
                return self._rollout_complete(spec, deadline)
            if kind == ReadinessKind.ENDPOINTS_NON_EMPTY:
                return self._endpoints_non_empty(spec, deadline)
            return self._custom_check(spec, deadline)
        except ExecutionError as e:
            return False, str(e)

    def _namespace(self, spec: ResourceSpec) -> str:
        return spec.namespace or self.default_namespace

    def _query_timeout(self, deadline: Optional[float]) -> Optional[float]:
        """Command timeout that keeps a query inside the check deadline."""
        if deadline is None:
            return None
        remaining = deadline - self._clock()
        if remaining <= 0:
            raise ExecutionError("readiness deadline reached before the query could run", exit_code=-1)
        if self.executor.timeout:
            return min(remaining, self.executor.timeout)
        return remaining

    def _get_json(
        self, args: List[str], spec: ResourceSpec, deadline: Optional[float]
    ) -> Dict[str, Any]:
        return self.executor.get_json(
            args, namespace=self._namespace(spec), timeout=self._query_timeout(deadline)
        )

    def _rollout_complete(
        self, spec: ResourceSpec, deadline: Optional[float] = None
    ) -> Tuple[bool, str]:
        workload = self._get_json(["get", spec.kubectl_type, spec.k8s_name], spec, deadline)
        metadata = workload.get("metadata", {})
        desired_spec = workload.get("spec", {})
        status = workload.get("status", {})

        generation = metadata.get("generation")
        observed = status.get("observedGeneration")
        if generation is not None and observed is not None and observed < generation:
            return False, "waiting for the controller to observe the new generation"

        desired = desired_spec.get("replicas", 1)
        total = status.get("replicas", 0)
        ready = status.get("readyReplicas", 0)
        updated = status.get("updatedReplicas", 0)

        if ready < desired or updated < desired or total != desired:
            return False, f"{ready}/{desired} replicas ready, {updated} updated, {total} total"

        crashing = self._crashing_pods(spec, desired_spec, deadline)
        if crashing:
            return False, f"pods in crash state: {', '.join(crashing)}"

        return True, f"{ready}/{desired} replicas ready"

    def _crashing_pods(
        self, spec: ResourceSpec, workload_spec: Dict[str, Any], deadline: Optional[float] = None
    ) -> List[str]:
        labels = workload_spec.get("selector", {}).get("matchLabels", {})
        if not labels:
            return []

        selector = ",".join(f"{key}={value}" for key, value in sorted(labels.items()))
        pods = self._get_json(["get", "pods", "-l", selector], spec, deadline)

        crashing = []
        for pod in pods.get("items", []):
            pod_name = pod.get("metadata", {}).get("name", "unknown")
            pod_status = pod.get("status", {})
            statuses = pod_status.get("initContainerStatuses", []) + pod_status.get(
                "containerStatuses", []
            )
            for container in statuses:
                state = container.get("state", {})
                reason = (state.get("waiting") or {}).get("reason") or (
                    state.get("terminated") or {}
                ).get("reason")
                if reason in CRASH_REASONS:
                    crashing.append(f"{pod_name} ({reason})")
                    break
        return crashing

    def _endpoints_non_empty(
        self, spec: ResourceSpec, deadline: Optional[float] = None
    ) -> Tuple[bool, str]:
        if spec.kind == ResourceKind.INGRESS:
            ingress = self._get_json(["get", "ingress", spec.k8s_name], spec, deadline)
            services = ingress_backend_services(ingress)
            if not services:
                return False, "ingress has no service backends"
        else:
            services = [spec.k8s_name]

        for service in services:
            endpoints = self._get_json(["get", "endpoints", service], spec, deadline)
            count = sum(
                len(subset.get("addresses") or []) for subset in endpoints.get("subsets") or []
            )
            if count:
                return True, f"service '{service}' has {count} ready endpoint(s)"

        return False, f"no ready endpoints for {', '.join(services)}"

    def _custom_check(
        self, spec: ResourceSpec, deadline: Optional[float] = None
    ) -> Tuple[bool, str]:
        output = self.executor.run(spec.readiness.command, timeout=self._query_timeout(deadline))
        detail = output.output.strip() or f"exit {output.returncode}"
        return output.success, detail


def ingress_backend_services(ingress: Dict[str, Any]) -> List[str]:
    """Service names an ingress routes to, in rule order, without repeats."""
    services: List[str] = []
    ingress_spec = ingress.get("spec", {})

    backends = []
    default_backend = ingress_spec.get("defaultBackend") or ingress_spec.get("backend")
    if default_backend:
        backends.append(default_backend)
    for rule in ingress_spec.get("rules") or []:
        for path in (rule.get("http") or {}).get("paths") or []:
            if path.get("backend"):
                backends.append(path["backend"])

    for backend in backends:
        # networking.k8s.io/v1 uses backend.service.name, v1beta1 used serviceName
        name = (backend.get("service") or {}).get("name") or backend.get("serviceName")
        if name and name not in services:
            services.append(name)
    return services
