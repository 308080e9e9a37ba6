"""User configuration for telepresence-auto.

Settings are read from ``$XDG_CONFIG_HOME/telepresence-auto/config.yaml``
and may be overridden with ``TELEPRESENCE_AUTO_<FIELD>`` environment
variables.
"""

import dataclasses
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from icecream import ic

from telepresence_auto.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

_ENV_PREFIX = "TELEPRESENCE_AUTO_"
_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    """Runtime settings.

    Attributes:
        default_namespace: Namespace used when none is given.
        default_local_port: Local port used when none is given.
        target_port: Application port inside the cluster.
        env_file: Where ``telepresence replace`` writes the pod environment.
        required_context: Context the user is expected to work in, if any.
        show_context_warning: Warn when the current context differs from ``required_context``.
        command_timeout: Seconds before an external command is abandoned.
        poll_interval: Seconds between background status refreshes.
        suppression_window: Seconds after a manual disconnect during which
            background refreshes are skipped.
        env_suffix_pattern: Regex for environment suffixes appended to
            deployment names.

    """

    default_namespace: str = ""
    default_local_port: int = 5002
    target_port: int = 8080
    env_file: str = ".env"
    required_context: str | None = None
    show_context_warning: bool = True
    command_timeout: float = 60.0
    poll_interval: float = 5.0
    suppression_window: float = 30.0
    env_suffix_pattern: str = r"devend\d+"


def default_config_path() -> Path:
    """Return the XDG-compliant location of the configuration file."""
    xdg_config_home = os.environ.get("XDG_CONFIG_HOME")
    base_path = Path(xdg_config_home) if xdg_config_home else Path.home() / ".config"
    return base_path / "telepresence-auto" / "config.yaml"


def _coerce(name: str, value: Any, field_type: Any) -> Any:
    if value is None:
        return None
    try:
        if field_type is bool:
            return value if isinstance(value, bool) else str(value).strip().lower() in _TRUE_VALUES
        if field_type is int:
            return int(value)
        if field_type is float:
            return float(value)
    except (TypeError, ValueError) as err:
        raise ConfigurationError(f"Invalid value for '{name}': {value!r}") from err
    value = str(value)
    # Empty strings disable optional settings such as required_context
    if name == "required_context" and not value.strip():
        return None
    return value


def _read_file(path: Path) -> dict[str, Any]:
    try:
        with path.open() as stream:
            data = yaml.safe_load(stream)
    except FileNotFoundError:
        return {}
    except yaml.YAMLError as err:
        raise ConfigurationError(f"Config file '{path}' contains malformed YAML: {err}") from err

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file '{path}' must contain a YAML mapping")
    return data


def load_settings(path: Path | None = None, environ: dict[str, str] | None = None) -> Settings:
    """Load settings from the config file and the environment.

    Args:
        path: Config file to read. Defaults to the XDG location.
        environ: Environment mapping. Defaults to ``os.environ``.

    Returns:
        The merged Settings.

    Raises:
        ConfigurationError: If the file is malformed or a value has the wrong type.

    """
    path = path or default_config_path()
    environ = os.environ if environ is None else environ

    values = _read_file(path)
    known = {f.name: f for f in dataclasses.fields(Settings)}

    for key in list(values):
        if key not in known:
            logger.warning("Ignoring unknown setting '%s' in %s", key, path)
            del values[key]

    for name in known:
        env_value = environ.get(f"{_ENV_PREFIX}{name.upper()}")
        if env_value is not None:
            values[name] = env_value

    kwargs = {name: _coerce(name, value, known[name].type) for name, value in values.items()}
    ic(kwargs)
    return Settings(**kwargs)
