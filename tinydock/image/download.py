# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Concurrent layer download into the staging directory.

One task per layer runs in a thread pool.  The tasks share a
cancellation event: the first task to fail sets it, and tasks that have
not yet started their request return without making one.  Requests
already in flight are not interrupted.  Every task is waited for before
the first error (in completion order) is raised, and archives written
by a failed pull are removed again.

Archives are written to digest-named files so concurrent writes never
touch the same path.  Results are returned in manifest order, ready for
sequential extraction.
"""

from __future__ import annotations

import concurrent.futures
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import httpx

from tinydock.errors import TinydockError
from tinydock.registry.blobs import fetch_blob
from tinydock.registry.types import LayerDescriptor, PullSession


logger = logging.getLogger(__name__)


def _download_one(
    client: httpx.Client,
    session: PullSession,
    layer: LayerDescriptor,
    cancel: threading.Event,
) -> Path | None:
    """Download one layer unless the pull was already cancelled.

    Returns:
        Archive path, or None when skipped because of cancellation.
    """
    if cancel.is_set():
        logger.debug("Skipping %s, pull cancelled", layer.digest)
        return None

    dest = session.staging_dir / layer.archive_name
    try:
        fetch_blob(client, session, layer, dest)
    except BaseException:
        cancel.set()
        raise
    return dest


def _discard_archives(
    session: PullSession, layers: list[LayerDescriptor]
) -> None:
    """Remove archives, complete or partial, left by a failed download."""
    for layer in layers:
        path = session.staging_dir / layer.archive_name
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not remove %s: %s", path, e)


def download_layers(
    client: httpx.Client,
    session: PullSession,
    layers: list[LayerDescriptor],
    max_workers: int | None = None,
) -> list[Path]:
    """Download all layers concurrently.

    Args:
        client: Shared HTTP client (safe for use from several threads).
        session: Current pull session.
        layers: Layers in manifest order.
        max_workers: Concurrency bound.  None runs one worker per layer.

    Returns:
        Archive paths, indexed like ``layers``.

    Raises:
        TinydockError: The first failure of any download task.  Archives
            already written are removed before it is raised.
    """
    if not layers:
        return []

    cancel = threading.Event()
    results: list[Path | None] = [None] * len(layers)
    first_error: Exception | None = None

    with ThreadPoolExecutor(
        max_workers=max_workers or len(layers),
        thread_name_prefix="LayerDownload",
    ) as pool:
        futures = {
            pool.submit(_download_one, client, session, layer, cancel): index
            for index, layer in enumerate(layers)
        }
        for future in concurrent.futures.as_completed(futures):
            try:
                results[futures[future]] = future.result()
            except Exception as e:
                if first_error is None:
                    first_error = e
                    logger.debug("Layer download failed, cancelling: %s", e)

    if first_error is not None:
        _discard_archives(session, layers)
        if isinstance(first_error, TinydockError):
            raise first_error
        raise TinydockError(f"pull layers: {first_error}") from first_error

    paths = [path for path in results if path is not None]
    logger.info("Downloaded %d layer(s)", len(paths))
    return paths
