"""
Integration tests for the orchestrator using mocked kubectl subprocess calls.

These tests run the real executor, probe and diagnostics collector against
canned cluster state, without requiring a Kubernetes cluster.

Usage:
    pytest tests/integration/test_orchestrator_mocked.py -v
"""

import sys
from pathlib import Path

import pytest

# Add tests root to path for conftest/fixtures imports
TESTS_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(TESTS_ROOT))

from conftest import FakeClock, KubectlResponse, shopcarts_plan
from fixtures.kubectl_scenarios import get_scenario_names

from rollgate.modules.diagnostics import DiagnosticsCollector
from rollgate.modules.errors import InvalidPlan
from rollgate.modules.executor import KubectlExecutor
from rollgate.modules.models import ResourceKind, ResourceSpec, RunStatus
from rollgate.modules.orchestrator import Orchestrator
from rollgate.modules.readiness import ReadinessProbe


def build_orchestrator(clock=None):
    clock = clock or FakeClock()
    executor = KubectlExecutor(timeout=30)
    probe = ReadinessProbe(executor, default_namespace="shopcarts", clock=clock, sleep=clock.sleep)
    return Orchestrator(
        executor,
        probe=probe,
        collector=DiagnosticsCollector(executor),
        namespace="shopcarts",
    )


# =============================================================================
# Happy path
# =============================================================================

class TestSuccessfulDeployment:
    """Plans where every step succeeds."""

    @pytest.mark.kubectl_mock
    def test_shopcarts_plan_succeeds_in_order(self, kubectl_mocker):
        kubectl_mocker.register_scenario("healthy_shopcarts")

        report = build_orchestrator().run(shopcarts_plan())

        assert report.status == RunStatus.SUCCEEDED
        assert report.exit_code == 0
        assert [r.resource for r in report.results] == [
            "shopcarts-namespace",
            "postgres",
            "shopcarts",
            "shopcarts-ingress",
        ]
        assert all(r.succeeded for r in report.results)
        assert [r.resource for r in report.readiness] == [
            "postgres",
            "shopcarts",
            "shopcarts-ingress",
        ]
        assert report.diagnostics is None
        assert report.finished_at is not None

    @pytest.mark.kubectl_mock
    def test_manifests_applied_in_dependency_order(self, kubectl_mocker):
        kubectl_mocker.register_scenario("healthy_shopcarts")

        build_orchestrator().run(shopcarts_plan())

        assert kubectl_mocker.applied_manifests() == [
            "k8s/namespace.yaml",
            "k8s/postgres/statefulset.yaml",
            "k8s/shopcarts-deployment.yaml",
            "k8s/ingress.yaml",
        ]

    @pytest.mark.kubectl_mock
    def test_out_of_order_plan_is_reordered(self, kubectl_mocker):
        kubectl_mocker.register_scenario("healthy_shopcarts")

        report = build_orchestrator().run(list(reversed(shopcarts_plan())))

        assert report.status == RunStatus.SUCCEEDED
        names = [r.resource for r in report.results]
        assert names.index("shopcarts-namespace") < names.index("shopcarts")
        assert names.index("shopcarts") < names.index("shopcarts-ingress")
        assert names.index("shopcarts-namespace") < names.index("postgres")

    @pytest.mark.kubectl_mock
    def test_configmap_dependency_is_applied_before_deployment(self, kubectl_mocker):
        kubectl_mocker.register_scenario("healthy_shopcarts")
        specs = shopcarts_plan()
        config = ResourceSpec(
            name="shopcarts-config",
            kind=ResourceKind.CONFIG_MAP,
            namespace="shopcarts",
            manifest_path="k8s/shopcarts-configmap.yaml",
            depends_on=["shopcarts-namespace"],
        )
        deployment = specs[2].model_copy(
            update={"depends_on": ["shopcarts-namespace", "shopcarts-config"]}
        )
        # ConfigMap declared last; the deployment still has to wait for it
        plan = [specs[0], specs[1], deployment, specs[3], config]

        report = build_orchestrator().run(plan)

        assert report.status == RunStatus.SUCCEEDED
        names = [r.resource for r in report.results]
        assert len(names) == 5
        assert names.index("shopcarts-config") < names.index("shopcarts")


# =============================================================================
# Failures
# =============================================================================

class TestFailedDeployment:
    """Plans that stop part way."""

    @pytest.mark.kubectl_mock
    def test_deployment_never_ready_times_out(self, kubectl_mocker):
        kubectl_mocker.register_scenario("shopcarts_crashloop")
        clock = FakeClock()

        report = build_orchestrator(clock).run(shopcarts_plan(timeout=10))

        assert report.status == RunStatus.TIMED_OUT
        assert report.failed_at == "shopcarts"
        assert report.exit_code == 1
        assert "k8s/ingress.yaml" not in kubectl_mocker.applied_manifests()
        assert [r.resource for r in report.results] == [
            "shopcarts-namespace",
            "postgres",
            "shopcarts",
        ]
        assert report.readiness[-1].resource == "shopcarts"
        assert report.readiness[-1].ready is False
        assert "CrashLoopBackOff" in report.error or "replicas ready" in report.error

    @pytest.mark.kubectl_mock
    def test_timeout_collects_diagnostics(self, kubectl_mocker):
        kubectl_mocker.register_scenario("shopcarts_crashloop")

        report = build_orchestrator().run(shopcarts_plan(timeout=5))

        diagnostics = report.diagnostics
        assert diagnostics is not None
        assert diagnostics.resource == "shopcarts"
        titles = [entry.title for entry in diagnostics.entries]
        assert titles[0] == "Failure"
        assert "Pods, services and endpoints" in titles
        assert "Describe deployment/shopcarts" in titles
        assert "Logs deployment/shopcarts" in titles

        describe = next(e for e in diagnostics.entries if e.title.startswith("Describe"))
        assert len(describe.output.splitlines()) == 160

        logs = next(e for e in diagnostics.entries if e.title.startswith("Logs"))
        assert "could not connect to postgres" in logs.output

    @pytest.mark.kubectl_mock
    def test_apply_failure_stops_the_run(self, kubectl_mocker):
        kubectl_mocker.register_scenario("healthy_shopcarts")
        kubectl_mocker.register(
            "apply -f k8s/postgres/statefulset.yaml",
            KubectlResponse(stderr="error: unable to recognize", returncode=1),
            priority=10,
        )

        report = build_orchestrator().run(shopcarts_plan())

        assert report.status == RunStatus.FAILED
        assert report.failed_at == "postgres"
        assert kubectl_mocker.applied_manifests() == [
            "k8s/namespace.yaml",
            "k8s/postgres/statefulset.yaml",
        ]
        assert report.results[-1].succeeded is False
        assert report.results[-1].exit_code == 1
        assert report.diagnostics is not None

    @pytest.mark.kubectl_mock
    def test_ingress_without_endpoints_times_out(self, kubectl_mocker):
        kubectl_mocker.register_scenario("ingress_no_endpoints")

        report = build_orchestrator().run(shopcarts_plan(timeout=3))

        assert report.status == RunStatus.TIMED_OUT
        assert report.failed_at == "shopcarts-ingress"
        assert "no ready endpoints" in report.error

    @pytest.mark.kubectl_mock
    def test_cycle_fails_before_any_command(self, kubectl_mocker_strict):
        specs = shopcarts_plan()
        specs[0] = specs[0].model_copy(update={"depends_on": ["shopcarts-ingress"]})

        with pytest.raises(InvalidPlan) as exc_info:
            build_orchestrator().run(specs)

        assert "cycle" in str(exc_info.value)
        assert kubectl_mocker_strict.call_count == 0

    @pytest.mark.kubectl_mock
    def test_missing_dependency_fails_before_any_command(self, kubectl_mocker_strict):
        specs = shopcarts_plan()
        specs[2] = specs[2].model_copy(
            update={"depends_on": ["shopcarts-namespace", "shopcarts-config"]}
        )

        with pytest.raises(InvalidPlan):
            build_orchestrator().run(specs)

        assert kubectl_mocker_strict.call_count == 0


# =============================================================================
# Cancellation
# =============================================================================

class TestCancelledDeployment:
    """Caller-initiated cancellation."""

    @pytest.mark.kubectl_mock
    def test_cancel_during_readiness_wait(self, kubectl_mocker):
        kubectl_mocker.register_scenario("shopcarts_crashloop")
        clock = FakeClock()
        orchestrator = build_orchestrator(clock)

        def sleep_then_cancel(seconds):
            clock.sleep(seconds)
            orchestrator.cancel()

        orchestrator.probe._sleep = sleep_then_cancel

        report = orchestrator.run(shopcarts_plan())

        assert report.status == RunStatus.CANCELLED
        assert report.exit_code == 130
        assert report.failed_at == "shopcarts"
        assert "k8s/ingress.yaml" not in kubectl_mocker.applied_manifests()
        assert report.diagnostics is None

    @pytest.mark.kubectl_mock
    def test_cancel_before_run_applies_nothing(self, kubectl_mocker):
        kubectl_mocker.register_scenario("healthy_shopcarts")
        orchestrator = build_orchestrator()
        orchestrator.cancel()

        report = orchestrator.run(shopcarts_plan())

        assert report.status == RunStatus.CANCELLED
        assert report.failed_at == "shopcarts-namespace"
        assert kubectl_mocker.call_count == 0

    @pytest.mark.kubectl_mock
    def test_cancel_is_consumed_by_the_run_it_stops(self, kubectl_mocker):
        kubectl_mocker.register_scenario("healthy_shopcarts")
        orchestrator = build_orchestrator()
        orchestrator.cancel()

        cancelled = orchestrator.run(shopcarts_plan())
        report = orchestrator.run(shopcarts_plan())

        assert cancelled.status == RunStatus.CANCELLED
        assert report.status == RunStatus.SUCCEEDED
        assert orchestrator.cancel_event.is_set() is False
        assert "k8s/ingress.yaml" in kubectl_mocker.applied_manifests()


def test_scenarios_are_registered():
    assert set(get_scenario_names()) == {
        "healthy_shopcarts",
        "shopcarts_crashloop",
        "ingress_no_endpoints",
    }
