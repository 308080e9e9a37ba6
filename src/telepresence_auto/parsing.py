"""Parsers for telepresence CLI text output.

The telepresence CLI only offers human readable output for ``list`` and
``status``. All knowledge of that format lives here; the rest of the package
works with InterceptionRecord and DaemonState.

A typical ``telepresence list`` output looks like::

    deployment orders-devend74761     : ready to intercept (traffic-agent not yet installed)
    deployment payrollapi-devend74761 : replaced by user@host
       Intercepting all TCP connections
       10.244.13.200 -> 127.0.0.1
          8080 -> 5001 TCP
"""

import re
from functools import lru_cache

from telepresence_auto.models import DaemonState, InterceptionRecord, InterceptionStatus

DEFAULT_TARGET_PORT = 8080
DEFAULT_ENV_SUFFIX_PATTERN = r"devend\d+"

_DEPLOYMENT_LINE = re.compile(r"^deployment\s+([^\s:]+)\s*:\s*(.+)$")
_ROUTE_LINE = re.compile(r"(\d+\.\d+\.\d+\.\d+)\s*->\s*127\.0\.0\.1")
_PORT_LINE = re.compile(r"\d+\s*->\s*(\d+)\s+TCP")
_STATUS_LINE = re.compile(r"^\s*Status\s*:\s*(.+?)\s*$")
_NAMESPACE_LINE = re.compile(r"^\s*Namespace\s*:\s*(\S+)")

_REPLACED_MARKER = "replaced"


def parse_interception_list(
    output: str,
    namespace: str = "default",
    target_port: int = DEFAULT_TARGET_PORT,
) -> list[InterceptionRecord]:
    """Parse ``telepresence list`` output into records.

    Each ``deployment <name> : <status>`` line starts a record. Intercepted
    deployments are followed by a routing line and a port line; both are
    optional and the port line ends the detail scan. Unrecognised lines are
    ignored.

    Args:
        output: Raw command output.
        namespace: Namespace the listing was requested for.
        target_port: Application port reported for intercepted deployments.

    Returns:
        One record per deployment block, in output order.

    """
    records: list[InterceptionRecord] = []
    lines = [line.strip() for line in output.splitlines()]

    for index, line in enumerate(lines):
        if not line.startswith("deployment "):
            continue
        match = _DEPLOYMENT_LINE.match(line)
        if not match:
            continue

        deployment, status_text = match.groups()
        if _REPLACED_MARKER not in status_text:
            records.append(InterceptionRecord(deployment, namespace, InterceptionStatus.AVAILABLE))
            continue

        cluster_ip: str | None = None
        local_port: int | None = None
        for detail in lines[index + 1 :]:
            if detail.startswith("deployment "):
                break
            if route := _ROUTE_LINE.search(detail):
                cluster_ip = route.group(1)
                continue
            if port := _PORT_LINE.search(detail):
                local_port = int(port.group(1))
                break

        records.append(
            InterceptionRecord(
                deployment=deployment,
                namespace=namespace,
                status=InterceptionStatus.INTERCEPTED,
                cluster_ip=cluster_ip,
                local_port=local_port,
                target_port=target_port,
            )
        )

    return records


def parse_daemon_status(output: str) -> DaemonState:
    """Parse ``telepresence status`` output.

    Only the first ``Status`` and ``Namespace`` lines are considered; they
    belong to the user daemon section.

    Args:
        output: Raw command output.

    Returns:
        DaemonState with the connection flag and namespace, if any.

    """
    connected = False
    namespace: str | None = None
    status_seen = False

    for line in output.splitlines():
        if not status_seen and (status := _STATUS_LINE.match(line)):
            connected = status.group(1).startswith("Connected")
            status_seen = True
        elif namespace is None and (ns := _NAMESPACE_LINE.match(line)):
            namespace = ns.group(1)

    return DaemonState(connected=connected, namespace=namespace)


@lru_cache(maxsize=8)
def _service_name_pattern(suffix_pattern: str) -> re.Pattern[str]:
    return re.compile(rf"^([^-]+)(?:-{suffix_pattern}.*)?$")


def derive_service_name(deployment: str, suffix_pattern: str = DEFAULT_ENV_SUFFIX_PATTERN) -> str:
    """Strip environment-generated suffixes from a deployment name.

    Args:
        deployment: Full deployment name, e.g. ``payroll-devend175444-deploy``.
        suffix_pattern: Regex matching the environment suffix.

    Returns:
        The leading token (``payroll``) when the name matches, otherwise the
        full deployment name.

    """
    match = _service_name_pattern(suffix_pattern).match(deployment)
    return match.group(1) if match else deployment
