"""
Best-effort cluster snapshot for failed runs.

The collector runs during a run that is already failing, so it must never
raise: anything that goes wrong while collecting becomes a placeholder entry.
"""

import logging
from typing import List, Optional, Tuple

from rollgate.modules.executor import KubectlExecutor
from rollgate.modules.models import (
    WORKLOAD_KINDS,
    DiagnosticEntry,
    Diagnostics,
    DiagnosticsContext,
    ResourceKind,
)

logger = logging.getLogger("rollgate.diagnostics")

# (title, kubectl args, keep at most this many lines from the head, from the tail)
Step = Tuple[str, List[str], Optional[int], Optional[int]]


class DiagnosticsCollector:
    """Gathers workload, routing and log state for operator-facing output."""

    def __init__(
        self,
        executor: KubectlExecutor,
        log_tail_lines: int = 50,
        describe_lines: int = 160,
        event_lines: int = 30,
    ):
        self.executor = executor
        self.log_tail_lines = log_tail_lines
        self.describe_lines = describe_lines
        self.event_lines = event_lines

    def collect(self, context: DiagnosticsContext) -> Diagnostics:
        """
        Snapshot the cluster around a failure.

        Args:
            context: Namespace, failing resource and error message

        Returns:
            Diagnostics, partial if some sub-collections failed. Never raises.
        """
        spec = context.spec
        diagnostics = Diagnostics(
            namespace=context.namespace, resource=spec.name if spec else None
        )

        if context.error:
            diagnostics.entries.append(DiagnosticEntry(title="Failure", output=context.error))

        try:
            steps = self._steps(context)
        except Exception as e:
            logger.warning(f"Could not plan diagnostics collection: {e}")
            diagnostics.entries.append(
                DiagnosticEntry(title="Diagnostics", output=f"<unavailable: {e}>", ok=False)
            )
            return diagnostics

        for title, args, head, tail in steps:
            diagnostics.entries.append(self._collect_one(title, args, head, tail))

        if diagnostics.partial:
            logger.warning("Diagnostics are partial; some cluster queries failed")
        return diagnostics

    def _steps(self, context: DiagnosticsContext) -> List[Step]:
        namespace = context.namespace
        spec = context.spec

        steps: List[Step] = [
            (
                "Pods, services and endpoints",
                ["-n", namespace, "get", "pods,svc,endpoints", "-o", "wide"],
                None,
                None,
            ),
        ]

        if spec is not None:
            if spec.kind == ResourceKind.NAMESPACE:
                describe = ["describe", "namespace", spec.k8s_name]
            else:
                describe = ["-n", spec.namespace or namespace, "describe", spec.target]
            steps.append((f"Describe {spec.target}", describe, self.describe_lines, None))

        steps.append(("Ingress status", ["-n", namespace, "get", "ingress", "-o", "wide"], None, None))
        steps.append(
            (
                "Recent events",
                ["-n", namespace, "get", "events", "--sort-by=.lastTimestamp"],
                None,
                self.event_lines,
            )
        )

        if spec is not None and spec.kind in WORKLOAD_KINDS:
            steps.append(
                (
                    f"Logs {spec.target}",
                    [
                        "-n",
                        spec.namespace or namespace,
                        "logs",
                        spec.target,
                        f"--tail={self.log_tail_lines}",
                        "--all-containers=true",
                    ],
                    None,
                    None,
                )
            )
        return steps

    def _collect_one(
        self, title: str, args: List[str], head: Optional[int], tail: Optional[int]
    ) -> DiagnosticEntry:
        try:
            output = self.executor.run(args)
        except Exception as e:
            logger.warning(f"Diagnostics step '{title}' failed: {e}")
            return DiagnosticEntry(title=title, command=args, output=f"<unavailable: {e}>", ok=False)

        if not output.success:
            return DiagnosticEntry(
                title=title,
                command=output.command,
                output=f"<unavailable: exit {output.returncode}> {output.stderr.strip()}".rstrip(),
                ok=False,
            )

        lines = output.stdout.splitlines()
        if head is not None:
            lines = lines[:head]
        if tail is not None:
            lines = lines[-tail:]
        return DiagnosticEntry(title=title, command=output.command, output="\n".join(lines))
