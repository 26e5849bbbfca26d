"""
The sequential apply/gate loop.

One run applies each resource in dependency order, waits for it to be ready,
and stops at the first failure. Nothing is rolled back; the cluster tooling is
declarative, so re-running the same plan picks up where it stopped.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from rollgate.modules.diagnostics import DiagnosticsCollector
from rollgate.modules.errors import ExecutionError, OperationCancelled, ReadinessTimeout
from rollgate.modules.executor import KubectlExecutor
from rollgate.modules.models import (
    DiagnosticsContext,
    ResourceSpec,
    RunReport,
    RunStatus,
)
from rollgate.modules.plan import resolve_plan
from rollgate.modules.readiness import ReadinessProbe

logger = logging.getLogger("rollgate.orchestrator")


class Orchestrator:
    """Applies a plan one resource at a time with readiness gates."""

    def __init__(
        self,
        executor: KubectlExecutor,
        probe: Optional[ReadinessProbe] = None,
        collector: Optional[DiagnosticsCollector] = None,
        namespace: str = "default",
    ):
        """
        Args:
            executor: kubectl executor; its cancel event is the run's cancel event
            probe: Readiness probe, built on the executor when omitted
            collector: Diagnostics collector, built on the executor when omitted
            namespace: Namespace used for diagnostics when a spec names none
        """
        self.executor = executor
        self.cancel_event: threading.Event = executor.cancel_event
        self.probe = probe or ReadinessProbe(
            executor, default_namespace=namespace, cancel_event=self.cancel_event
        )
        self.collector = collector or DiagnosticsCollector(executor)
        self.namespace = namespace

    def cancel(self) -> None:
        """
        Abort the current run, or the next one if none is in progress.

        Safe to call from a signal handler or another thread. The request is
        consumed when that run finishes.
        """
        logger.warning("Cancellation requested")
        self.cancel_event.set()

    def plan(self, specs: Iterable[ResourceSpec]) -> List[ResourceSpec]:
        """Resolve execution order without touching the cluster."""
        return resolve_plan(specs)

    def run(self, specs: Iterable[ResourceSpec]) -> RunReport:
        """
        Apply every resource in dependency order.

        Args:
            specs: Resources to deploy

        Returns:
            RunReport describing the outcome

        Raises:
            InvalidPlan: Before any external call, if the plan is malformed
        """
        ordered = resolve_plan(specs)
        report = RunReport(status=RunStatus.SUCCEEDED)
        logger.info(f"Running plan: {' -> '.join(spec.name for spec in ordered)}")

        for spec in ordered:
            try:
                if self.cancel_event.is_set():
                    raise OperationCancelled("Run cancelled")

                report.results.append(self.executor.apply(spec))

                if spec.readiness is not None:
                    report.readiness.append(self.probe.wait(spec))

            except ExecutionError as e:
                if e.result is not None:
                    report.results.append(e.result)
                return self._fail(report, RunStatus.FAILED, spec, e)

            except ReadinessTimeout as e:
                if e.result is not None:
                    report.readiness.append(e.result)
                return self._fail(report, RunStatus.TIMED_OUT, spec, e)

            except OperationCancelled as e:
                logger.warning(f"Run cancelled at '{spec.name}'")
                report.status = RunStatus.CANCELLED
                report.failed_at = spec.name
                report.error = str(e)
                return self._finish(report)

        logger.info(f"Plan complete: {len(report.results)} resources applied")
        return self._finish(report)

    def _fail(
        self, report: RunReport, status: RunStatus, spec: ResourceSpec, error: Exception
    ) -> RunReport:
        logger.error(f"{status.value} at '{spec.name}': {error}")
        report.status = status
        report.failed_at = spec.name
        report.error = str(error)
        report.diagnostics = self.collector.collect(
            DiagnosticsContext(
                namespace=spec.namespace or self.namespace, spec=spec, error=str(error)
            )
        )
        return self._finish(report)

    def _finish(self, report: RunReport) -> RunReport:
        report.finished_at = datetime.now(timezone.utc)
        self.cancel_event.clear()
        return report
