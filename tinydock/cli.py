# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""tinydock CLI: multi-command entry point.

Subcommands:

* ``run <image> <command> [args...]``   pull an image and run a command
  inside it (needs root)
* ``pull <image> [directory]``         pull and extract an image only
* ``check``                            verify config and system readiness
* ``init``                             create a stub config file

``run`` exits with the command's own exit status, or 1 when the pipeline
fails before the command starts.
"""

from __future__ import annotations

import argparse
import logging
import os
import shutil
import subprocess
import sys
from pathlib import Path

from tinydock.config import Config, ConfigError, get_config_path
from tinydock.errors import ChildExitError, TinydockError
from tinydock.isolation import supports_pid_namespace
from tinydock.logging import configure_logging
from tinydock.registry import ImageReference
from tinydock.runner import Runner


logger = logging.getLogger(__name__)

# Known subcommand names.
_SUBCOMMANDS = frozenset({"run", "pull", "check", "init"})

_USAGE = """\
usage: tinydock <command> [args]

commands:
  run <image> <command> [args...]  Pull an image and run a command in it
  pull <image> [directory]         Pull and extract an image
  check                            Verify config and system readiness
  init                             Create a stub config file

Images are Docker Hub library images: name or name:tag.\
"""

#: Stub configuration template written by ``tinydock init``.
_STUB_CONFIG = """\
# tinydock configuration

# log_level: WARNING

# registry:
#   timeout: 60
#   max_parallel_downloads: 4

# extract:
#   tar_command: tar

# staging:
#   root: /var/tmp
#   keep_on_failure: false
"""


# ── Terminal colors ─────────────────────────────────────────────────


def _use_color() -> bool:
    """Determine whether to use ANSI color codes in output.

    Returns True when stdout is a TTY and the ``NO_COLOR`` environment
    variable is not set.  ``TERM=dumb`` also disables color.
    """
    if os.environ.get("NO_COLOR"):
        return False
    if os.environ.get("TERM") == "dumb":
        return False
    return sys.stdout.isatty()


class _Style:
    """ANSI escape helpers.  All methods return plain text when color is off."""

    def __init__(self, color: bool) -> None:
        self._on = color

    def _wrap(self, code: str, text: str) -> str:
        if not self._on:
            return text
        return f"\033[{code}m{text}\033[0m"

    def bold(self, text: str) -> str:
        return self._wrap("1", text)

    def green(self, text: str) -> str:
        return self._wrap("32", text)

    def red(self, text: str) -> str:
        return self._wrap("31", text)

    def dim(self, text: str) -> str:
        return self._wrap("2", text)


# ── Shared setup ────────────────────────────────────────────────────


def _load_config() -> Config | None:
    """Load config and configure logging, printing any config error."""
    try:
        config = Config.from_yaml()
    except (ConfigError, ValueError) as e:
        print(f"tinydock: configuration error: {e}", file=sys.stderr)
        return None
    configure_logging(level=config.log_level)
    return config


def _parse_reference(value: str) -> ImageReference:
    try:
        return ImageReference.parse(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


# ── run subcommand ──────────────────────────────────────────────────


def cmd_run(argv: list[str]) -> int:
    """Pull an image and run a command inside it.

    Args:
        argv: ``<image> <command> [args...]``.  Everything after the
            command is passed through verbatim.

    Returns:
        The command's exit status, or 1 on pipeline failure.
    """
    parser = argparse.ArgumentParser(
        prog="tinydock run",
        description="Pull a Docker Hub image and run a command inside it.",
    )
    parser.add_argument("image", type=_parse_reference, help="name[:tag]")
    parser.add_argument("command", help="executable to run")
    parser.add_argument("args", nargs=argparse.REMAINDER)
    args = parser.parse_args(argv)

    config = _load_config()
    if config is None:
        return 1

    try:
        return Runner(config).run(args.image, args.command, args.args)
    except ChildExitError as e:
        logger.debug("%s", e)
        return e.exit_code
    except TinydockError as e:
        logger.error("%s", e)
        return 1


# ── pull subcommand ─────────────────────────────────────────────────


def cmd_pull(argv: list[str]) -> int:
    """Pull and extract an image, then print the directory holding it.

    Args:
        argv: ``<image> [directory]``.

    Returns:
        Exit code (0 on success, 1 on error).
    """
    parser = argparse.ArgumentParser(
        prog="tinydock pull",
        description="Pull a Docker Hub image and extract its layers.",
    )
    parser.add_argument("image", type=_parse_reference, help="name[:tag]")
    parser.add_argument(
        "directory",
        nargs="?",
        type=Path,
        help="target directory (default: new temporary directory)",
    )
    args = parser.parse_args(argv)

    config = _load_config()
    if config is None:
        return 1

    try:
        staging_dir = Runner(config).pull_to(args.image, args.directory)
    except TinydockError as e:
        logger.error("%s", e)
        return 1

    print(staging_dir)
    return 0


# ── check subcommand ────────────────────────────────────────────────


def _check_dependency(name: str, version_cmd: list[str]) -> tuple[bool, str]:
    """Check a single external tool is installed.

    Args:
        name: Tool name as looked up on PATH.
        version_cmd: Command printing the tool's version.

    Returns:
        ``(ok, detail)``   *ok* is True when the tool is found, *detail*
        is a human-readable status string (no leading indent).
    """
    path = shutil.which(name)
    if path is None:
        return False, f"{name}: not found"

    try:
        result = subprocess.run(
            version_cmd,
            capture_output=True,
            text=True,
            timeout=10,
        )
        raw = result.stdout.strip() or result.stderr.strip()
    except (subprocess.TimeoutExpired, OSError):
        return True, f"{name}: {path}"

    first_line = raw.splitlines()[0] if raw else path
    return True, f"{name}: {first_line}"


def cmd_check(argv: list[str]) -> int:
    """Run readiness checks and print their status.

    Args:
        argv: Extra arguments (currently unused).

    Returns:
        0 if all checks pass, 1 if any check fails.
    """
    del argv
    s = _Style(_use_color())
    all_ok = True

    # ── Configuration ───────────────────────────────────────────
    print(s.bold("Configuration"))
    config_path = get_config_path()
    print(f"  Config file: {s.dim(str(config_path))}")

    config = Config()
    if not config_path.exists():
        print(f"  Status:      {s.dim('not found, using defaults')}")
    else:
        try:
            config = Config.from_yaml(config_path)
            print(f"  Status:      {s.green('ok')}")
        except (ConfigError, ValueError) as e:
            print(f"  Status:      {s.red('error')}: {e}")
            all_ok = False
    print()

    # ── System ──────────────────────────────────────────────────
    print(s.bold("System"))
    tar = config.tar_command
    ok, detail = _check_dependency(tar, [tar, "--version"])
    print(f"  {s.green('✓') if ok else s.red('✗')} {detail}")
    all_ok = all_ok and ok

    if os.geteuid() == 0:
        print(f"  {s.green('✓')} running as root")
    else:
        print(f"  {s.red('✗')} not running as root (chroot will fail)")
        all_ok = False

    if supports_pid_namespace():
        print(f"  {s.green('✓')} PID namespaces supported")
    else:
        print(f"  {s.red('✗')} PID namespaces not supported")
        all_ok = False
    print()

    if all_ok:
        print(s.green("All checks passed."))
    else:
        print(s.red("Some checks failed."))

    return 0 if all_ok else 1


# ── init subcommand ─────────────────────────────────────────────────


def cmd_init(argv: list[str]) -> int:
    """Create a stub configuration file.

    Creates ``~/.config/tinydock/tinydock.yaml`` with a commented template
    if the file does not already exist.

    Args:
        argv: Extra arguments (currently unused).

    Returns:
        Exit code (0 on success, 1 if the file cannot be written).
    """
    del argv
    config_path = get_config_path()

    if config_path.exists():
        print(f"Config already exists: {config_path}")
        return 0

    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text(_STUB_CONFIG)
    except OSError as e:
        print(f"tinydock: cannot write {config_path}: {e}", file=sys.stderr)
        return 1
    print(f"Created stub config: {config_path}")
    return 0


# ── CLI plumbing ────────────────────────────────────────────────────


_DISPATCH: dict[str, str] = {
    "run": "cmd_run",
    "pull": "cmd_pull",
    "check": "cmd_check",
    "init": "cmd_init",
}


def cli() -> None:
    """Entry point for the ``tinydock`` console script.

    When no arguments are given, prints usage information.
    """
    argv = sys.argv[1:]

    if not argv or argv[0] in ("--help", "-h"):
        print(_USAGE)
        sys.exit(0)

    if argv[0] not in _SUBCOMMANDS:
        print(f"tinydock: unknown command '{argv[0]}'", file=sys.stderr)
        print(_USAGE, file=sys.stderr)
        sys.exit(2)

    command = argv[0]
    rest = argv[1:]

    # Look up handler by name so tests can mock individual commands.
    import tinydock.cli as _self

    handler = getattr(_self, _DISPATCH[command])
    sys.exit(handler(rest))
