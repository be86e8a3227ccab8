# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Streaming download of layer blobs."""

from __future__ import annotations

import logging
from pathlib import Path

import httpx

from tinydock.errors import LayerError, TransportError
from tinydock.registry._transport import check_status
from tinydock.registry.auth import auth_headers
from tinydock.registry.types import LayerDescriptor, PullSession


logger = logging.getLogger(__name__)

BLOBS_URL = "https://registry.hub.docker.com/v2/library/{name}/blobs/{digest}"

_CHUNK_SIZE = 64 * 1024


def fetch_blob(
    client: httpx.Client,
    session: PullSession,
    layer: LayerDescriptor,
    dest: Path,
) -> int:
    """Stream one layer blob into a file.

    Args:
        client: Shared HTTP client.
        session: Current pull session.
        layer: Layer to download.
        dest: File to write; created or truncated.

    Returns:
        Number of bytes written.

    Raises:
        RegistryError: On a non-200 status.
        TransportError: On network failure.
        LayerError: If the file cannot be written.
    """
    url = BLOBS_URL.format(name=session.reference.name, digest=layer.digest)
    written = 0
    try:
        with client.stream(
            "GET", url, headers=auth_headers(session.token)
        ) as response:
            check_status(response)
            with open(dest, "wb") as f:
                for chunk in response.iter_bytes(_CHUNK_SIZE):
                    f.write(chunk)
                    written += len(chunk)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        raise TransportError(f"pull layer {layer.digest}: {e}") from e
    except OSError as e:
        raise LayerError(f"save layer {layer.digest}: {e}") from e

    logger.debug("Downloaded %s (%d bytes)", layer.digest, written)
    return written
