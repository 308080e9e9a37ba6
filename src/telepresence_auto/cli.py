#!/usr/bin/env python
"""Command-line interface for telepresence-auto.

This module provides the main CLI entry point, handling command-line
argument parsing and dispatching to the orchestrator.
"""

import logging
import sys
import time

import click
from icecream import ic

from telepresence_auto import __version__, console, prompts
from telepresence_auto.core.orchestrator import Orchestrator
from telepresence_auto.exceptions import TelepresenceAutoError
from telepresence_auto.models import PrerequisiteReport
from telepresence_auto.settings import Settings, load_settings


def _yes_no(value: bool) -> str:
    return "[success]yes[/success]" if value else "[error]no[/error]"


def show_prerequisites(report: PrerequisiteReport) -> None:
    """Print installed tools, contexts and authentication state.

    Args:
        report: Report returned by Orchestrator.check_prerequisites().

    """
    items = {
        "telepresence": _yes_no(report.telepresence_installed),
        "kubectl": _yes_no(report.kubectl_installed),
        "kubelogin": _yes_no(report.kubelogin_installed),
        "Current context": report.current_context or "Not configured",
        "Required context": report.required_context or "Any",
    }
    if report.auth is not None:
        items["Provider"] = report.auth.provider.value
        items["Authentication"] = "login required" if report.auth.needs_auth else "ok"
    console.summary_panel("Prerequisites", items)

    if report.auth is not None and report.auth.needs_auth:
        message, hint = report.auth.remediation()
        console.warning(f"{message}. {hint}")
    if not report.context_matches:
        console.warning(f"Current context is not {console.highlight(report.required_context)}")


def warn_on_context(orchestrator: Orchestrator, settings: Settings) -> None:
    """Warn when the current context differs from the configured one."""
    if not settings.required_context or not settings.show_context_warning:
        return
    current = orchestrator.cluster.current_context()
    if current != settings.required_context:
        console.warning(
            f"Working with {console.highlight(str(current))}, expected {console.highlight(settings.required_context)}"
        )


def run_interception(orchestrator: Orchestrator, service: str, port: int) -> None:
    """Intercept a service and keep the interception alive until Ctrl+C.

    The interception is stopped when the orchestrator context exits.

    Args:
        orchestrator: Connected orchestrator.
        service: Part of the deployment name.
        port: Local port receiving the traffic.

    """
    with console.spinner(f"Intercepting {service}..."):
        session = orchestrator.start_interception(service, port)
    console.session_panel(session)
    console.info("Press Ctrl+C to stop the interception")

    process = session.process
    try:
        while process is not None and process.poll() is None:
            time.sleep(0.5)
        if process is not None:
            console.warning(f"telepresence replace exited with code {process.returncode}")
    except KeyboardInterrupt:
        console.newline()
    console.action(f"Stopping interception of {console.highlight(session.deployment)}")


def watch_status(orchestrator: Orchestrator, interval: float) -> None:
    """Refresh and print the status until Ctrl+C.

    Args:
        orchestrator: Orchestrator to poll.
        interval: Seconds between refreshes.

    """
    try:
        while True:
            console.console.clear()
            console.status_report(orchestrator.get_formatted_status(background=True))
            time.sleep(interval)
    except KeyboardInterrupt:
        console.newline()


@click.command(help="Redirect traffic of a Kubernetes deployment to a local process with telepresence")
@click.option("--version", "-v", required=False, is_flag=True, help="print version")
@click.option("--debug", required=False, is_flag=True, help="print debug information")
@click.option("--connect", "-n", "namespace", required=False, help="connect to namespace")
@click.option("--select", required=False, is_flag=True, default=False, help="prompt for namespace to connect to")
@click.option("--disconnect", required=False, is_flag=True, help="stop all interceptions and the daemon")
@click.option("--intercept", "-i", required=False, help="service to intercept until Ctrl+C")
@click.option("--port", "-p", required=False, type=int, help="local port receiving the traffic")
@click.option("--leave", "-l", required=False, is_flag=False, flag_value="", help="interception to stop")
@click.option("--status", "show_status", required=False, is_flag=True, help="print connection and interception status")
@click.option("--watch", required=False, is_flag=True, help="refresh the status until Ctrl+C")
@click.option("--reset", required=False, is_flag=True, help="forget the local connection state")
@click.option("--check", required=False, is_flag=True, help="check installed tools and cluster access")
def cli(
    debug: bool,
    namespace: str | None,
    select: bool,
    disconnect: bool,
    intercept: str | None,
    port: int | None,
    leave: str | None,
    show_status: bool,
    watch: bool,
    reset: bool,
    check: bool,
    version: bool,
) -> None:
    """Process CLI arguments and execute the appropriate action.

    Args:
        debug: Enable debug output.
        namespace: Namespace to connect to.
        select: Prompt for the namespace to connect to.
        disconnect: Stop all interceptions and the daemon.
        intercept: Service to intercept.
        port: Local port for the interception.
        leave: Interception to stop; prompts when given without a value.
        show_status: Print the status.
        watch: Refresh the status until interrupted.
        reset: Forget the local connection state.
        check: Check installed tools and cluster access.
        version: Print version and exit.

    """
    if not debug:
        ic.disable()
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    if version:
        click.echo(__version__)
        return

    try:
        settings = load_settings()
        with Orchestrator(settings) as orchestrator:
            if check:
                show_prerequisites(orchestrator.check_prerequisites())
                return

            if disconnect:
                with console.spinner("Disconnecting..."):
                    orchestrator.disconnect()
                console.success("Disconnected")
                return

            orchestrator.detect_existing_connection()

            if reset:
                orchestrator.force_reset()
                console.success("Connection state reset")
                return

            if select:
                namespace = prompts.select_namespace(orchestrator.cluster.list_namespaces(), settings.default_namespace)

            if namespace:
                warn_on_context(orchestrator, settings)
                with console.spinner(f"Connecting to {namespace}..."):
                    orchestrator.connect(namespace)
                console.success(f"Connected to namespace {console.highlight(namespace)}")

            if leave is not None:
                orchestrator.get_formatted_status()
                session_ids = [s.id for s in orchestrator.get_sessions()]
                if not leave and not session_ids:
                    console.warning("No active interceptions")
                    return
                session_id = leave or prompts.select_session(session_ids)
                with console.spinner(f"Stopping {session_id}..."):
                    orchestrator.stop_interception(session_id)
                console.success(f"Stopped interception of {console.highlight(session_id)}")
                return

            if intercept:
                run_interception(orchestrator, intercept, port or settings.default_local_port)
                return

            if watch:
                watch_status(orchestrator, settings.poll_interval)
                return

            if show_status or not namespace:
                console.status_report(orchestrator.get_formatted_status(include_replicas=True))
    except TelepresenceAutoError as e:
        console.error(str(e))
        sys.exit(1)


if __name__ == "__main__":
    cli()
