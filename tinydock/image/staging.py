# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Staging directory creation and failure cleanup."""

from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path

from tinydock.errors import IsolationError


logger = logging.getLogger(__name__)

STAGING_PREFIX = "tinydock-"


def create_staging_dir(root: Path | None = None) -> Path:
    """Create a fresh, randomly named staging directory.

    Args:
        root: Parent directory.  None uses the system temp root.

    Returns:
        Absolute path of the new directory.

    Raises:
        IsolationError: If the directory cannot be created.
    """
    try:
        path = tempfile.mkdtemp(
            prefix=STAGING_PREFIX, dir=str(root) if root else None
        )
    except OSError as e:
        raise IsolationError(f"create staging directory: {e}") from e
    logger.debug("Created staging directory %s", path)
    return Path(path).resolve()


def remove_staging_dir(path: Path) -> bool:
    """Remove a staging directory after a failed pull, best effort.

    Args:
        path: Directory to remove.

    Returns:
        True if the directory is gone afterwards.
    """
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        return True
    except OSError as e:
        logger.warning("Could not remove staging directory %s: %s", path, e)
        return False
    logger.debug("Removed staging directory %s", path)
    return True
