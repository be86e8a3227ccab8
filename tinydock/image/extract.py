# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Sequential layer extraction with the external ``tar`` tool.

Layers are applied strictly in manifest order so later layers override
earlier ones.  Each archive is removed once unpacked.  A failure stops the
sequence; layers already applied stay in place.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from tinydock.errors import ExtractionError


logger = logging.getLogger(__name__)


def extract_layer(
    archive: Path, target_dir: Path, tar_command: str = "tar"
) -> None:
    """Unpack one layer archive into the target directory, then delete it.

    Args:
        archive: Layer archive (gzip-compressed or plain tar).
        target_dir: Directory to unpack into.
        tar_command: Archive tool to run.

    Raises:
        ExtractionError: If the tool is missing, exits nonzero, or the
            archive cannot be removed afterwards.
    """
    cmd = [tar_command, "-xf", str(archive), "-C", str(target_dir)]
    logger.debug("Running: %s", " ".join(cmd))

    try:
        subprocess.run(
            cmd,
            check=True,
            capture_output=True,
            text=True,
        )
    except FileNotFoundError as e:
        raise ExtractionError(
            f"extract layer: {tar_command} not found"
        ) from e
    except subprocess.CalledProcessError as e:
        error_msg = e.stderr.strip() if e.stderr else str(e)
        logger.error("Failed to extract %s: %s", archive.name, error_msg)
        raise ExtractionError(
            f"extract layer {archive.name}: {error_msg}"
        ) from e

    try:
        archive.unlink()
    except OSError as e:
        raise ExtractionError(f"remove layer {archive.name}: {e}") from e


def extract_layers(
    archives: list[Path], target_dir: Path, tar_command: str = "tar"
) -> None:
    """Unpack archives one after another, in the given order.

    Args:
        archives: Layer archives in manifest order.
        target_dir: Directory to unpack into.
        tar_command: Archive tool to run.

    Raises:
        ExtractionError: On the first archive that fails.
    """
    for index, archive in enumerate(archives, start=1):
        extract_layer(archive, target_dir, tar_command)
        logger.info(
            "Extracted layer %d/%d: %s", index, len(archives), archive.name
        )
