"""
Plan resolution and loading.

A plan is the ordered list of ResourceSpecs one run applies. It is computed
fresh for every run and never persisted.
"""

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Set

import yaml
from pydantic import ValidationError

from rollgate.config.provider import Settings
from rollgate.modules.errors import InvalidPlan, PlanLoadError
from rollgate.modules.models import (
    ReadinessKind,
    ReadinessPolicy,
    ResourceKind,
    ResourceSpec,
)

logger = logging.getLogger("rollgate.plan")


def find_cycle(specs: Dict[str, ResourceSpec]) -> Optional[List[str]]:
    """Return one dependency cycle as a list of names, or None."""
    visited: Set[str] = set()
    visiting: List[str] = []

    def visit(name: str) -> Optional[List[str]]:
        if name in visiting:
            return visiting[visiting.index(name):] + [name]
        if name in visited or name not in specs:
            return None
        visiting.append(name)
        for dep in specs[name].depends_on:
            cycle = visit(dep)
            if cycle:
                return cycle
        visiting.pop()
        visited.add(name)
        return None

    for name in specs:
        cycle = visit(name)
        if cycle:
            return cycle
    return None


def validate_plan(specs: Sequence[ResourceSpec]) -> List[str]:
    """
    Check a plan's structure.

    Returns:
        Human-readable problems; empty when the plan is valid
    """
    problems = []
    by_name: Dict[str, ResourceSpec] = {}

    for spec in specs:
        if spec.name in by_name:
            problems.append(f"duplicate resource name '{spec.name}'")
        by_name[spec.name] = spec

    for spec in specs:
        for dep in spec.depends_on:
            if dep not in by_name:
                problems.append(f"'{spec.name}' depends on unknown resource '{dep}'")

    cycle = find_cycle(by_name)
    if cycle:
        problems.append(f"dependency cycle: {' -> '.join(cycle)}")

    return problems


def resolve_plan(specs: Iterable[ResourceSpec]) -> List[ResourceSpec]:
    """
    Order specs so that every dependency precedes its dependents.

    The sort is stable: a plan that is already in a valid order comes back
    unchanged, and otherwise declaration order is kept wherever possible.

    Raises:
        InvalidPlan: On duplicate names, unknown dependencies or cycles
    """
    specs = list(specs)
    problems = validate_plan(specs)
    if problems:
        raise InvalidPlan(f"Invalid plan: {'; '.join(problems)}", problems)

    ordered: List[ResourceSpec] = []
    done: Set[str] = set()
    pending = list(specs)

    while pending:
        for index, spec in enumerate(pending):
            if all(dep in done for dep in spec.depends_on):
                ordered.append(spec)
                done.add(spec.name)
                del pending[index]
                break

    return ordered


def load_plan(path: str, default_namespace: str = "default") -> List[ResourceSpec]:
    """
    Load a plan from a YAML file.

    Relative manifest paths resolve against the plan file's directory, and
    resources without a namespace inherit the file's `namespace` key.

    Raises:
        PlanLoadError: If the file is missing, unparseable or malformed
    """
    plan_path = Path(path)
    try:
        with open(plan_path) as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise PlanLoadError(f"Cannot read plan file {plan_path}: {e}")
    except yaml.YAMLError as e:
        raise PlanLoadError(f"Plan file {plan_path} is not valid YAML: {e}")

    if not isinstance(data, dict) or not isinstance(data.get("resources"), list):
        raise PlanLoadError(f"Plan file {plan_path} must contain a 'resources' list")

    namespace = data.get("namespace") or default_namespace
    base_dir = plan_path.parent
    specs = []

    for index, entry in enumerate(data["resources"]):
        if not isinstance(entry, dict):
            raise PlanLoadError(f"{plan_path}: resources[{index}] must be a mapping")
        try:
            spec = ResourceSpec.model_validate(entry)
        except ValidationError as e:
            raise PlanLoadError(f"{plan_path}: resources[{index}] is invalid: {e}")

        updates = {}
        manifest = Path(spec.manifest_path)
        if not manifest.is_absolute():
            updates["manifest_path"] = str(base_dir / manifest)
        if spec.namespace is None and spec.kind != ResourceKind.NAMESPACE:
            updates["namespace"] = namespace
        specs.append(spec.model_copy(update=updates) if updates else spec)

    logger.debug(f"Loaded {len(specs)} resources from {plan_path}")
    return specs


def default_plan(settings: Settings) -> List[ResourceSpec]:
    """
    Built-in plan for the shopcarts service: namespace, postgres, config,
    application deployment and ingress.
    """
    deploy = settings.deploy
    namespace = deploy.namespace
    manifests = Path(deploy.manifests_dir)

    def rollout() -> ReadinessPolicy:
        return ReadinessPolicy(kind=ReadinessKind.ROLLOUT_COMPLETE, poll_interval=deploy.poll_interval)

    return [
        ResourceSpec(
            name="namespace",
            kind=ResourceKind.NAMESPACE,
            object_name=namespace,
            manifest_path=str(manifests / "namespace.yaml"),
        ),
        ResourceSpec(
            name="postgres-service",
            kind=ResourceKind.SERVICE,
            object_name="postgres",
            namespace=namespace,
            manifest_path=str(manifests / "postgres" / "service.yaml"),
            depends_on=["namespace"],
        ),
        ResourceSpec(
            name="postgres",
            kind=ResourceKind.STATEFUL_WORKLOAD,
            namespace=namespace,
            manifest_path=str(manifests / "postgres" / "statefulset.yaml"),
            depends_on=["namespace", "postgres-service"],
            readiness=rollout(),
            timeout=deploy.rollout_timeout,
        ),
        ResourceSpec(
            name="shopcarts-config",
            kind=ResourceKind.CONFIG_MAP,
            namespace=namespace,
            manifest_path=str(manifests / "shopcarts-configmap.yaml"),
            depends_on=["namespace"],
        ),
        ResourceSpec(
            name="shopcarts",
            kind=ResourceKind.DEPLOYMENT,
            namespace=namespace,
            manifest_path=str(manifests / "shopcarts-deployment.yaml"),
            depends_on=["namespace", "shopcarts-config", "postgres"],
            readiness=rollout(),
            timeout=deploy.rollout_timeout,
            image=settings.image.local_image,
            container=settings.image.name,
        ),
        ResourceSpec(
            name="shopcarts-ingress",
            kind=ResourceKind.INGRESS,
            namespace=namespace,
            manifest_path=str(manifests / "ingress.yaml"),
            depends_on=["shopcarts"],
            readiness=ReadinessPolicy(
                kind=ReadinessKind.ENDPOINTS_NON_EMPTY, poll_interval=deploy.poll_interval
            ),
            timeout=deploy.rollout_timeout,
        ),
    ]
