"""Kubernetes cluster interaction utilities.

This module provides the Cluster class, a read-only adapter answering
questions about the current context, its namespaces and deployments, and
whether the context needs an interactive login.
"""

import logging
from typing import Any

from icecream import ic
from kubernetes import client, config
from kubernetes.client.exceptions import ApiException
from kubernetes.config.config_exception import ConfigException
from urllib3.exceptions import MaxRetryError

from telepresence_auto.exceptions import ClusterConnectionError, CommandFailedError
from telepresence_auto.models import AuthInfo, AuthKind, Provider
from telepresence_auto.runner import CommandRunner

# Substrings of kubectl errors that point at missing or expired credentials
_AUTH_ERROR_KEYWORDS = (
    "unauthorized",
    "forbidden",
    "authentication",
    "token",
    "auth",
    "login",
    "credential",
    "permission",
    "expired",
    "denied",
    "access",
    "certificate",
)


def detect_provider(kubeconfig: str) -> Provider:
    """Guess the cloud provider from ``kubectl config view`` output.

    Args:
        kubeconfig: Minified kubeconfig text.

    Returns:
        The detected Provider.

    """
    text = kubeconfig.lower()
    if "azmk8s.io" in text or "azure" in text or "kubelogin" in text:
        return Provider.AZURE
    if "eks.amazonaws.com" in text or "aws" in text:
        return Provider.AWS
    if "container.googleapis.com" in text or "gcp" in text or "gke" in text:
        return Provider.GCP
    return Provider.UNKNOWN


def detect_auth_kind(kubeconfig: str) -> AuthKind:
    """Guess the authentication mechanism from ``kubectl config view`` output.

    Args:
        kubeconfig: Minified kubeconfig text.

    Returns:
        The detected AuthKind.

    """
    text = kubeconfig.lower()
    if "kubelogin" in text or "azurecli" in text:
        return AuthKind.KUBELOGIN
    if "aws-iam-authenticator" in text or "eks" in text:
        return AuthKind.AWS
    if "gke-gcloud-auth-plugin" in text or "gcp" in text:
        return AuthKind.GCP
    return AuthKind.GENERIC


def is_authentication_error(message: str) -> bool:
    """Return True if a kubectl error message looks like a credentials problem."""
    text = message.lower()
    return any(keyword in text for keyword in _AUTH_ERROR_KEYWORDS)


class Cluster:
    """Read-only view of the cluster selected by the current kubeconfig context.

    Attributes:
        runner: CommandRunner used for kubectl probes.

    """

    def __init__(self, runner: CommandRunner | None = None, logger: logging.Logger | None = None) -> None:
        self.runner: CommandRunner = runner or CommandRunner()
        self._log = logger or logging.getLogger(__name__)
        self._loaded_context: str | None = None

    def __repr__(self) -> str:
        """Return a detailed string representation for debugging."""
        return f"Cluster(loaded_context={self._loaded_context!r})"

    @staticmethod
    def current_context() -> str | None:
        """Return the name of the active kubeconfig context.

        Returns:
            The context name, or None if the kubeconfig has no current context.

        Raises:
            ClusterConnectionError: If the kubeconfig is invalid or missing.

        """
        try:
            _, current_context = config.list_kube_config_contexts()
        except ConfigException as e:
            raise ClusterConnectionError(f"Invalid or missing kubeconfig: {e}") from e
        if not current_context:
            return None
        return str(current_context["name"])

    def _ensure_config(self) -> None:
        """Load the kubeconfig for the current context if it changed."""
        context = self.current_context()
        if context == self._loaded_context:
            return
        try:
            config.load_kube_config(context=context)
        except ConfigException as e:
            raise ClusterConnectionError(f"Invalid or missing kubeconfig: {e}") from e
        self._loaded_context = context

    def _call(self, what: str, func: Any, *args: Any, **kwargs: Any) -> Any:
        self._ensure_config()
        try:
            return func(*args, **kwargs)
        except MaxRetryError as e:
            raise ClusterConnectionError(f"Failed to connect to the Kubernetes cluster: {e.reason}") from e
        except ApiException as e:
            raise ClusterConnectionError(f"Failed to {what}: {e.status} {e.reason}") from e

    def list_namespaces(self) -> list[str]:
        """Get all namespaces in the cluster.

        Returns:
            List of namespace names.

        """
        res = self._call("list namespaces", lambda: client.CoreV1Api().list_namespace())
        ns_list = [ns.metadata.name for ns in res.items]
        ic(ns_list)
        return ns_list

    def _deployments(self, namespace: str) -> list[Any]:
        res = self._call(
            f"list deployments in {namespace}",
            lambda: client.AppsV1Api().list_namespaced_deployment(namespace),
        )
        return list(res.items)

    def list_deployments(self, namespace: str) -> list[str]:
        """Get all deployment names in a namespace.

        Args:
            namespace: Namespace to query.

        Returns:
            List of deployment names.

        """
        deployments = [d.metadata.name for d in self._deployments(namespace)]
        ic(deployments)
        return deployments

    def deployment_replicas(self, namespace: str) -> dict[str, tuple[int, int]]:
        """Get ready and desired replica counts per deployment.

        Args:
            namespace: Namespace to query.

        Returns:
            Mapping of deployment name to ``(ready, desired)``.

        """
        replicas: dict[str, tuple[int, int]] = {}
        for deployment in self._deployments(namespace):
            desired = deployment.spec.replicas or 0
            ready = deployment.status.ready_replicas or 0
            replicas[deployment.metadata.name] = (ready, desired)
        return replicas

    def find_matching_deployment(self, namespace: str, search_term: str) -> str | None:
        """Resolve a search term to a deployment name.

        Matching is a case-insensitive substring test; the first match wins.

        Args:
            namespace: Namespace to search.
            search_term: Part of the deployment name, usually the service name.

        Returns:
            The deployment name, or None if nothing matches.

        """
        deployments = self.list_deployments(namespace)
        needle = search_term.lower()
        match = next((name for name in deployments if needle in name.lower()), None)
        self._log.info(
            "Looking for '%s' in namespace '%s': %s (available: %s)",
            search_term,
            namespace,
            match or "none",
            ", ".join(deployments),
        )
        return match

    def cluster_auth_info(self) -> AuthInfo:
        """Probe whether the current context needs an interactive login.

        Returns:
            AuthInfo describing the detected provider and auth mechanism.

        """
        try:
            kubeconfig = self.runner.run(["kubectl", "config", "view", "--minify"])
        except CommandFailedError as e:
            self._log.warning("Config analysis failed: %s", e.message)
            return AuthInfo(
                needs_auth=True,
                auth_kind=AuthKind.GENERIC,
                provider=Provider.UNKNOWN,
                error=f"Config analysis failed: {e.message}",
            )

        provider = detect_provider(kubeconfig)
        auth_kind = detect_auth_kind(kubeconfig)
        self._log.debug("Detected provider=%s, auth_kind=%s", provider.value, auth_kind.value)

        try:
            self.runner.run(["kubectl", "auth", "whoami", "--request-timeout=10s"])
        except CommandFailedError as e:
            needs_auth = is_authentication_error(e.message)
            self._log.info("Auth probe failed (auth error: %s): %s", needs_auth, e.message)
            prefix = "Authentication required" if needs_auth else "Non-auth error"
            return AuthInfo(needs_auth, auth_kind, provider, f"{prefix}: {e.message}")

        return AuthInfo(needs_auth=False, auth_kind=auth_kind, provider=provider)
