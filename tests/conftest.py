"""Shared test fixtures for telepresence-auto tests."""

from unittest.mock import MagicMock, patch

import pytest

from telepresence_auto.cluster import Cluster
from telepresence_auto.core.orchestrator import Orchestrator
from telepresence_auto.models import AuthInfo, AuthKind, DaemonState, InterceptionSession, Provider, SessionStatus
from telepresence_auto.runner import CommandRunner
from telepresence_auto.settings import Settings
from telepresence_auto.supervisor import ProcessSupervisor
from telepresence_auto.telepresence import Telepresence

LIST_OUTPUT = """deployment orders-devend74761     : ready to intercept (traffic-agent not yet installed)
deployment payrollapi-devend74761 : replaced by user@host
   Intercepting all TCP connections
   10.0.0.5 -> 127.0.0.1
      8080 -> 5001 TCP
"""

DEPLOYMENTS = ["orders-devend74761", "payrollapi-devend74761", "payroll-devend74761-worker"]


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def mock_kube_contexts():
    """Mock kubernetes config contexts."""
    with patch("kubernetes.config.list_kube_config_contexts") as mock:
        mock.return_value = ([{"name": "test-context"}], {"name": "test-context"})
        yield mock


@pytest.fixture
def mock_kube_config():
    """Mock kubernetes config loading."""
    with patch("kubernetes.config.load_kube_config") as mock:
        yield mock


@pytest.fixture
def mock_apps_v1_api():
    """Mock AppsV1Api for deployment listing."""
    with patch("kubernetes.client.AppsV1Api") as mock:
        api_instance = MagicMock()
        mock.return_value = api_instance
        items = []
        for name, desired, ready in [("orders-devend74761", 2, 2), ("payrollapi-devend74761", 1, None)]:
            deployment = MagicMock()
            deployment.metadata.name = name
            deployment.spec.replicas = desired
            deployment.status.ready_replicas = ready
            items.append(deployment)
        api_instance.list_namespaced_deployment.return_value.items = items
        yield api_instance


@pytest.fixture
def mock_core_v1_api():
    """Mock CoreV1Api for namespace listing."""
    with patch("kubernetes.client.CoreV1Api") as mock:
        api_instance = MagicMock()
        mock.return_value = api_instance
        ns_items = []
        for name in ["default", "payments", "monitoring"]:
            ns = MagicMock()
            ns.metadata.name = name
            ns_items.append(ns)
        api_instance.list_namespace.return_value.items = ns_items
        yield api_instance


@pytest.fixture
def cluster_mocks(mock_kube_contexts, mock_kube_config, mock_core_v1_api, mock_apps_v1_api):
    """Combined fixture for creating a Cluster instance without cluster access."""
    return {
        "contexts": mock_kube_contexts,
        "config": mock_kube_config,
        "core_api": mock_core_v1_api,
        "apps_api": mock_apps_v1_api,
    }


@pytest.fixture
def mock_runner():
    """CommandRunner double; every command succeeds with empty output."""
    runner = MagicMock(spec=CommandRunner)
    runner.run.return_value = ""
    runner.is_installed.return_value = True
    return runner


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def orchestrator(mock_runner, clock):
    """Orchestrator wired to doubles of every external collaborator.

    The cluster has the deployments in DEPLOYMENTS, the daemon reports no
    connection and an empty listing, and every command succeeds.
    """
    cluster = MagicMock(spec=Cluster)
    cluster.runner = mock_runner
    cluster.current_context.return_value = "test-context"
    cluster.cluster_auth_info.return_value = AuthInfo(False, AuthKind.GENERIC, Provider.UNKNOWN)
    cluster.find_matching_deployment.side_effect = lambda namespace, term: next(
        (name for name in DEPLOYMENTS if term.lower() in name.lower()), None
    )
    cluster.deployment_replicas.return_value = {}

    telepresence = MagicMock(spec=Telepresence)
    telepresence.is_installed.return_value = True
    telepresence.status.return_value = DaemonState(connected=False, namespace=None)
    telepresence.list_raw.return_value = ""
    telepresence.list_interceptions.return_value = []
    telepresence.leave.return_value = True
    telepresence.kill_daemons.return_value = 0

    supervisor = MagicMock(spec=ProcessSupervisor)
    supervisor.launch.side_effect = lambda deployment, namespace, port: fake_process()

    return Orchestrator(
        Settings(default_namespace="payments"),
        runner=mock_runner,
        cluster=cluster,
        telepresence=telepresence,
        supervisor=supervisor,
        clock=clock,
    )


@pytest.fixture
def connected(orchestrator):
    """Orchestrator connected to the payments namespace."""
    orchestrator.connect("payments")
    return orchestrator


def fake_process(returncode=None):
    """Popen double; ``returncode=None`` means still running."""
    process = MagicMock()
    process.pid = 4242
    process.poll.return_value = returncode
    process.returncode = returncode
    return process


def make_session(deployment, namespace="payments", process=None, status=SessionStatus.CONNECTED):
    return InterceptionSession(
        id=deployment,
        namespace=namespace,
        deployment=deployment,
        original_service_name=deployment.split("-")[0],
        local_port=5002,
        status=status,
        process=process,
    )
