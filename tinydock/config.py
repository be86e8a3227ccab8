# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Configuration for tinydock.

Configuration is optional and loaded from a YAML file.  The default
location follows the XDG Base Directory Specification:

    ``$XDG_CONFIG_HOME/tinydock/tinydock.yaml``
    (typically ``~/.config/tinydock/tinydock.yaml``)

A missing file means all defaults.  ``!env`` tags resolve values from
environment variables at load time.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar, overload

import yaml
from platformdirs import user_config_path

from tinydock.logging import parse_level


logger = logging.getLogger(__name__)

T = TypeVar("T")

#: Application name for XDG path resolution.
_APP_NAME = "tinydock"

_BOOL_TRUTHY = frozenset({"true", "1", "yes", "on"})
_BOOL_FALSY = frozenset({"false", "0", "no", "off"})


def get_config_path() -> Path:
    """Return the default config file path.

    Uses XDG: ``$XDG_CONFIG_HOME/tinydock/tinydock.yaml`` (typically
    ``~/.config/tinydock/tinydock.yaml``).

    Returns:
        Path to the config file.
    """
    return user_config_path(_APP_NAME) / "tinydock.yaml"


class ConfigError(Exception):
    """Base exception for configuration errors."""


# ---------------------------------------------------------------------------
# YAML tag placeholders
# ---------------------------------------------------------------------------


class _EnvVar:
    """Placeholder for an unresolved ``!env VAR_NAME`` tag."""

    def __init__(self, var_name: str) -> None:
        self.var_name = var_name


def _env_constructor(loader: yaml.SafeLoader, node: yaml.Node) -> _EnvVar:
    """Handle ``!env VAR_NAME`` in YAML."""
    value = loader.construct_scalar(node)
    return _EnvVar(str(value))


def _make_loader() -> type[yaml.SafeLoader]:
    """Create a YAML loader that understands ``!env``."""

    class EnvLoader(yaml.SafeLoader):
        pass

    EnvLoader.add_constructor("!env", _env_constructor)
    return EnvLoader


# ---------------------------------------------------------------------------
# Value resolution
# ---------------------------------------------------------------------------


def _coerce_bool(value: object) -> bool:
    """Coerce a value to bool, handling string representations."""
    if isinstance(value, bool):
        return value
    s = str(value).lower().strip()
    if s in _BOOL_TRUTHY:
        return True
    if s in _BOOL_FALSY:
        return False
    raise ConfigError(f"Cannot convert {value!r} to bool")


def _raw_resolve(value: object) -> str | None:
    """Resolve an ``_EnvVar`` to its string value, or stringify literals.

    Returns None if the value is None or the env var is not set.
    """
    if isinstance(value, _EnvVar):
        return os.environ.get(value.var_name)
    if value is None:
        return None
    return str(value)


_MISSING = object()


@overload
def _resolve(value: object, coerce: type[T], *, default: T) -> T: ...


@overload
def _resolve(value: object, coerce: type[T]) -> T | None: ...


def _resolve(
    value: object,
    coerce: type[Any],
    *,
    default: object = _MISSING,
) -> Any:
    """Resolve a YAML value, handling ``!env`` tags and type coercion.

    Args:
        value: Raw value from YAML (may be ``_EnvVar``, None, or a
            literal already parsed by PyYAML).
        coerce: Target type (``str``, ``int``, ``float``, ``bool``,
            ``Path``).
        default: Default when value is absent.

    Returns:
        The resolved, coerced value, or None when absent without default.

    Raises:
        ConfigError: If the value cannot be coerced.
    """
    if not isinstance(value, _EnvVar) and value is not None:
        if coerce is bool:
            return _coerce_bool(value)
        if isinstance(value, coerce) and not isinstance(value, bool):
            return value

    resolved = _raw_resolve(value)

    if resolved is None or resolved == "":
        if default is not _MISSING:
            return default
        return None

    if coerce is bool:
        return _coerce_bool(resolved)
    if coerce is Path:
        return Path(resolved).expanduser()
    try:
        return coerce(resolved)
    except ValueError as e:
        raise ConfigError(
            f"Cannot convert {resolved!r} to {coerce.__name__}"
        ) from e


def _section(raw: dict, key: str) -> dict:
    """Return a nested mapping, treating a missing section as empty."""
    value = raw.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{key}' must be a YAML mapping")
    return value


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Config:
    """Runtime settings for a pull and run.

    Attributes:
        log_level: Numeric logging level for the CLI.
        request_timeout: Registry request timeout in seconds.  ``None``
            disables the timeout.
        max_parallel_downloads: Upper bound on concurrent layer downloads.
            ``None`` runs one download per layer.
        tar_command: External archive tool used to unpack layers.
        staging_root: Parent directory for staging directories.  ``None``
            uses the system temp root.
        keep_staging_on_failure: Keep a partially populated staging
            directory when a run fails before root restriction.
    """

    log_level: int = logging.WARNING
    request_timeout: float | None = None
    max_parallel_downloads: int | None = None
    tar_command: str = "tar"
    staging_root: Path | None = None
    keep_staging_on_failure: bool = False

    def __post_init__(self) -> None:
        """Validate configuration.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.request_timeout is not None and self.request_timeout <= 0:
            raise ValueError(
                f"Registry timeout must be > 0: {self.request_timeout}"
            )
        if (
            self.max_parallel_downloads is not None
            and self.max_parallel_downloads < 1
        ):
            raise ValueError(
                f"Max parallel downloads must be >= 1: "
                f"{self.max_parallel_downloads}"
            )
        if not self.tar_command:
            raise ValueError("tar command must not be empty")

    @classmethod
    def from_yaml(cls, config_path: Path | None = None) -> "Config":
        """Load configuration from a YAML file.

        Args:
            config_path: Path to YAML config file.  Defaults to
                ``~/.config/tinydock/tinydock.yaml`` (XDG).

        Returns:
            Config instance.  A missing file yields the defaults.

        Raises:
            ConfigError: If the file is not a mapping or holds bad values.
        """
        if config_path is None:
            config_path = get_config_path()

        if not config_path.exists():
            logger.debug("No config file at %s, using defaults", config_path)
            return cls()

        with open(config_path) as f:
            try:
                raw = yaml.load(f, Loader=_make_loader())
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

        if raw is None:
            return cls()
        if not isinstance(raw, dict):
            raise ConfigError(
                f"Config file must be a YAML mapping: {config_path}"
            )

        return cls._from_raw(raw)

    @classmethod
    def _from_raw(cls, raw: dict) -> "Config":
        """Build config from parsed (but unresolved) YAML dict."""
        registry = _section(raw, "registry")
        extract = _section(raw, "extract")
        staging = _section(raw, "staging")

        level_name = _resolve(raw.get("log_level"), str, default="WARNING")
        try:
            log_level = parse_level(level_name)
        except ValueError as e:
            raise ConfigError(str(e)) from e

        try:
            return cls(
                log_level=log_level,
                request_timeout=_resolve(registry.get("timeout"), float),
                max_parallel_downloads=_resolve(
                    registry.get("max_parallel_downloads"), int
                ),
                tar_command=_resolve(
                    extract.get("tar_command"), str, default="tar"
                ),
                staging_root=_resolve(staging.get("root"), Path),
                keep_staging_on_failure=_resolve(
                    staging.get("keep_on_failure"), bool, default=False
                ),
            )
        except ValueError as e:
            raise ConfigError(str(e)) from e
