"""Interactive user prompts.

This module provides the questionary prompts used when the CLI is run
without the values it needs.
"""

import click
import questionary
from questionary import Style

from telepresence_auto import console

# Custom color palette using ANSI 256 colors for broad terminal compatibility
PROMPT_STYLE = Style(
    [
        ("qmark", "fg:#5fafff bold"),
        ("question", "bold"),
        ("answer", "fg:#87d787 bold"),
        ("pointer", "fg:#87d787 bold"),
        ("highlighted", "fg:#1c1c1c bg:#87d787 bold"),
        ("instruction", "fg:#6c6c6c italic"),
        ("text", ""),
        ("completion-menu", "bg:#303030"),
        ("completion-menu.completion", "fg:#ffffff bg:#303030"),
        ("completion-menu.completion.current", "fg:#1c1c1c bg:#87d787 bold"),
    ]
)

POINTER = "❯ "
QMARK = "? "


def select_namespace(namespaces: list[str], default: str = "") -> str:
    """Ask the user which namespace to connect to.

    Args:
        namespaces: Namespaces available in the cluster.
        default: Pre-filled value.

    Returns:
        The chosen namespace.

    Raises:
        click.Abort: If the prompt is cancelled.

    """
    namespace = questionary.autocomplete(
        "Select or type namespace (Tab to show options)",
        choices=namespaces,
        default=default,
        validate=lambda x: True if x.strip() else "Namespace cannot be empty",
        style=PROMPT_STYLE,
        qmark=QMARK,
    ).ask()
    if namespace is None:
        console.warning("Namespace selection cancelled.")
        raise click.Abort()
    return namespace.strip()


def select_session(session_ids: list[str]) -> str:
    """Ask the user which interception to stop.

    Args:
        session_ids: Ids of the active sessions.

    Returns:
        The chosen session id.

    Raises:
        click.Abort: If the prompt is cancelled.

    """
    session_id = questionary.select(
        "Select interception to stop",
        choices=session_ids,
        style=PROMPT_STYLE,
        pointer=POINTER,
        qmark=QMARK,
    ).ask()
    if session_id is None:
        console.warning("Selection cancelled.")
        raise click.Abort()
    return session_id
