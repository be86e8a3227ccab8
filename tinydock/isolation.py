# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Root restriction and namespace-isolated launch.

Bootstrap order matters:

1. ``copy_executable`` places the target binary inside the staging tree
   while the original filesystem is still visible.
2. ``prepare_devices`` creates ``/dev/null`` under the staging tree.
3. ``restrict_root`` chroots the current process.  This cannot be undone.
4. ``launch`` unshares the PID namespace (where supported) so the child
   becomes PID 1 of a fresh namespace, then runs it with inherited
   standard streams and waits for it.

Steps 3 and 4 need root privileges.
"""

from __future__ import annotations

import logging
import os
import shutil
import stat
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

from tinydock.errors import IsolationError, LaunchError


logger = logging.getLogger(__name__)

_NULL_DEVICE = os.makedev(1, 3)


@dataclass(frozen=True)
class ProcessSpec:
    """The command to run inside the staging root.

    Attributes:
        command: Command as the user gave it; becomes ``argv[0]``.
        args: Remaining arguments.
        executable: Absolute path of the binary on the original filesystem,
            which is also its path inside the staging root.
    """

    command: str
    args: list[str] = field(default_factory=list)
    executable: Path | None = None

    @property
    def argv(self) -> list[str]:
        return [self.command, *self.args]


def resolve_executable(command: str) -> Path:
    """Locate the command on the original filesystem.

    A command containing ``/`` is a path (relative ones are made absolute
    against the current directory).  A bare name is looked up on PATH.

    Raises:
        LaunchError: If no such executable exists.
    """
    if os.sep in command:
        path = Path(command).absolute()
        if not path.is_file():
            raise LaunchError(f"{command}: no such file")
        return path

    found = shutil.which(command)
    if found is None:
        raise LaunchError(f"{command}: executable not found in PATH")
    return Path(found).absolute()


def copy_executable(executable: Path, staging_dir: Path) -> Path:
    """Copy a binary to the same absolute path under the staging root.

    Whatever the image has at that path (often a symlink into busybox) is
    replaced, never written through.  Directory symlinks along the way are
    followed only while they stay inside the staging root.

    Args:
        executable: Absolute path on the original filesystem.
        staging_dir: Staging root.

    Returns:
        Destination path under the staging root.

    Raises:
        IsolationError: If the copy fails or would leave the staging root.
    """
    dest = staging_dir / executable.relative_to(executable.anchor)
    try:
        _check_inside(dest.parent, staging_dir)
        dest.parent.mkdir(parents=True, exist_ok=True)
        _check_inside(dest.parent, staging_dir)
        if dest.is_symlink() or dest.exists():
            dest.unlink()
        shutil.copyfile(executable, dest)
        shutil.copymode(executable, dest)
    except OSError as e:
        raise IsolationError(f"copy file: {e}") from e

    logger.debug("Copied %s into %s", executable, staging_dir)
    return dest


def _check_inside(path: Path, root: Path) -> None:
    """Reject a path whose nearest existing ancestor resolves outside root."""
    existing = path
    while not existing.exists() and existing != existing.parent:
        existing = existing.parent
    if not existing.resolve().is_relative_to(root.resolve()):
        raise IsolationError(f"copy file: {path} leaves the staging root")


def prepare_devices(staging_dir: Path) -> None:
    """Create ``dev/null`` under the staging root.

    A real character device is created when ``mknod`` is permitted;
    otherwise an empty placeholder file keeps the path resolvable.

    Raises:
        IsolationError: If neither can be created.
    """
    dev = staging_dir / "dev"
    null = dev / "null"
    try:
        dev.mkdir(mode=0o755, parents=True, exist_ok=True)
        if null.exists() or null.is_symlink():
            return
        try:
            os.mknod(null, stat.S_IFCHR | 0o666, _NULL_DEVICE)
        except PermissionError:
            logger.debug("mknod not permitted, using placeholder %s", null)
            null.touch(mode=0o666)
    except OSError as e:
        raise IsolationError(f"mkdir: {e}") from e


def restrict_root(staging_dir: Path) -> None:
    """Change the process root to the staging directory.

    Raises:
        IsolationError: If chroot is not permitted or fails.
    """
    try:
        os.chroot(staging_dir)
        os.chdir("/")
    except OSError as e:
        raise IsolationError(f"chroot: {e}") from e
    logger.info("Root restricted to %s", staging_dir)


def supports_pid_namespace() -> bool:
    """Return True when this interpreter can unshare the PID namespace."""
    return hasattr(os, "unshare") and hasattr(os, "CLONE_NEWPID")


def _unshare_pid_namespace() -> None:
    try:
        os.unshare(os.CLONE_NEWPID)
    except OSError as e:
        raise IsolationError(f"unshare: {e}") from e


def exit_status(returncode: int) -> int:
    """Map a subprocess return code to a shell-style exit status.

    Death by signal N (negative return code) becomes ``128 + N``.
    """
    if returncode < 0:
        return 128 - returncode
    return returncode


def launch(spec: ProcessSpec) -> int:
    """Run the command in a new PID namespace and wait for it.

    Standard streams are inherited.  Must be called after restrict_root.

    Args:
        spec: Command to run.

    Returns:
        The command's exit status.

    Raises:
        IsolationError: If the PID namespace cannot be created.
        LaunchError: If the command cannot be executed.
    """
    if supports_pid_namespace():
        _unshare_pid_namespace()
    else:
        logger.warning("PID namespaces not supported, running without one")

    executable = str(spec.executable) if spec.executable else None
    logger.debug("Launching %s", spec.argv)
    try:
        completed = subprocess.run(spec.argv, executable=executable)
    except OSError as e:
        raise LaunchError(f"exec {spec.command}: {e}") from e

    if completed.returncode < 0:
        logger.debug(
            "%s killed by signal %d", spec.command, -completed.returncode
        )
    return exit_status(completed.returncode)
