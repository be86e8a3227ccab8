# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Centralized logging configuration with secret redaction.

Registry bearer tokens are registered as secrets as soon as they are
obtained, so request headers that end up in debug output never leak them.

Usage:
    # In the CLI entry point
    from tinydock.logging import configure_logging
    configure_logging(level=logging.INFO)

    # In library modules
    import logging
    logger = logging.getLogger(__name__)
    logger.info("Pulling %s", reference)
"""

import logging
import re
from typing import ClassVar


#: Default log format.  The launched command shares the terminal, so the
#: format stays short.
DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class SecretFilter(logging.Filter):
    """Logging filter that redacts registered secrets from log output.

    Secrets can be registered at runtime using register_secret().
    Any registered secret appearing in a log message will be replaced
    with '[REDACTED]'.

    Example:
        filter = SecretFilter()
        filter.register_secret("eyJhbGciOi...")
        logger.addFilter(filter)
        logger.debug("Authorization: Bearer eyJhbGciOi...")
        # Output: "Authorization: Bearer [REDACTED]"
    """

    _secrets: ClassVar[set[str]] = set()
    _pattern: ClassVar[re.Pattern[str] | None] = None

    def filter(self, record: logging.LogRecord) -> bool:
        """Filter log record by redacting any registered secrets.

        Args:
            record: The log record to filter.

        Returns:
            Always True (record is never suppressed, only modified).
        """
        if self._pattern is not None:
            record.msg = self._pattern.sub("[REDACTED]", str(record.msg))
            if record.args:
                record.args = tuple(
                    self._pattern.sub("[REDACTED]", str(arg))
                    if isinstance(arg, str)
                    else arg
                    for arg in record.args
                )
        return True

    @classmethod
    def register_secret(cls, secret: str) -> None:
        """Register a secret to be redacted from all log output.

        Args:
            secret: The secret string to redact. Empty strings are ignored.
        """
        if secret:
            cls._secrets.add(secret)
            cls._rebuild_pattern()

    @classmethod
    def clear_secrets(cls) -> None:
        """Clear all registered secrets. Primarily for testing."""
        cls._secrets.clear()
        cls._pattern = None

    @classmethod
    def _rebuild_pattern(cls) -> None:
        """Rebuild the compiled regex pattern from registered secrets."""
        if cls._secrets:
            # Longest first so a secret containing another is fully masked
            ordered = sorted(cls._secrets, key=len, reverse=True)
            escaped = [re.escape(s) for s in ordered]
            cls._pattern = re.compile("|".join(escaped))
        else:
            cls._pattern = None


def configure_logging(
    level: int = logging.WARNING,
    format_string: str | None = None,
    add_secret_filter: bool = True,
) -> None:
    """Configure logging for the application.

    Sets up the root logger with a stderr handler and optional secret
    redaction filter.  The default level is WARNING so progress messages
    do not interleave with the launched command's output.

    Args:
        level: The logging level (e.g., logging.INFO, logging.DEBUG).
        format_string: Custom format string. If None, uses DEFAULT_FORMAT.
        add_secret_filter: Whether to add the SecretFilter to redact secrets.
    """
    if format_string is None:
        format_string = DEFAULT_FORMAT

    handler = logging.StreamHandler()
    handler.setFormatter(
        logging.Formatter(format_string, datefmt="%Y-%m-%d %H:%M:%S")
    )

    if add_secret_filter:
        handler.addFilter(SecretFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    for existing_handler in root_logger.handlers[:]:
        root_logger.removeHandler(existing_handler)

    root_logger.addHandler(handler)

    # httpx logs every request at INFO; keep it to warnings
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))


def parse_level(name: str) -> int:
    """Convert a level name such as ``"info"`` to its numeric value.

    Args:
        name: Case-insensitive level name.

    Returns:
        Numeric logging level.

    Raises:
        ValueError: If the name is not a standard level.
    """
    value = logging.getLevelNamesMapping().get(name.strip().upper())
    if value is None:
        raise ValueError(f"Unknown log level: {name!r}")
    return value
