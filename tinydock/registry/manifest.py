# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tag-to-layer resolution, including multi-platform manifest lists.

The first manifest fetch may return either a manifest list (one entry per
platform) or a platform manifest.  Both are decoded into the same
``ManifestResponse`` shape.  For a list, the entry matching the running
platform is re-fetched by digest to obtain its layers.
"""

from __future__ import annotations

import logging

import httpx

from tinydock.errors import (
    EmptyManifestError,
    RegistryError,
    TransportError,
    UnsupportedPlatformError,
)
from tinydock.registry._transport import get_json
from tinydock.registry.auth import auth_headers
from tinydock.registry.types import (
    MANIFEST_V2_MEDIA_TYPE,
    LayerDescriptor,
    ManifestDescriptor,
    ManifestResponse,
    Platform,
    PullSession,
    current_platform,
)


logger = logging.getLogger(__name__)

MANIFESTS_URL = (
    "https://registry.hub.docker.com/v2/library/{name}/manifests/{ref}"
)


def fetch_manifest(
    client: httpx.Client,
    session: PullSession,
    ref: str,
    media_type: str = MANIFEST_V2_MEDIA_TYPE,
) -> ManifestResponse:
    """Fetch one manifest by tag or digest.

    Args:
        client: Shared HTTP client.
        session: Current pull session (name and token).
        ref: Tag or digest.
        media_type: Value of the ``Accept`` header.

    Returns:
        Decoded manifest.

    Raises:
        RegistryError: On a non-200 status.
        TransportError: On network or decode failure.
    """
    url = MANIFESTS_URL.format(name=session.reference.name, ref=ref)
    headers = auth_headers(session.token)
    headers["Accept"] = media_type
    try:
        return get_json(client, url, ManifestResponse.from_json, headers)
    except RegistryError as e:
        raise RegistryError(
            f"get manifest {ref}: {e}", status_code=e.status_code, url=e.url
        ) from e
    except TransportError as e:
        raise TransportError(f"get manifest {ref}: {e}") from e


def select_manifest(
    manifests: list[ManifestDescriptor], platform: Platform
) -> ManifestDescriptor:
    """Pick the manifest list entry for a platform.

    Matching is exact string equality on OS and architecture.  When more
    than one entry matches (e.g. several ``arm`` variants), the first one
    wins and a warning is logged.

    Args:
        manifests: Entries of a manifest list.
        platform: Platform to match.

    Returns:
        The matching entry.

    Raises:
        UnsupportedPlatformError: If no entry matches.
    """
    matches = [m for m in manifests if m.platform == platform]
    if not matches:
        raise UnsupportedPlatformError(platform.os, platform.architecture)
    if len(matches) > 1:
        logger.warning(
            "%d manifests match %s, using %s",
            len(matches),
            platform,
            matches[0].digest,
        )
    return matches[0]


def resolve_layers(
    client: httpx.Client,
    session: PullSession,
    platform: Platform | None = None,
) -> list[LayerDescriptor]:
    """Resolve the session's tag to the layer list for a platform.

    Args:
        client: Shared HTTP client.
        session: Current pull session.
        platform: Platform to resolve for.  Defaults to the running one.

    Returns:
        Layers in manifest order (never empty).

    Raises:
        RegistryError: On a non-200 status at any step.
        TransportError: On network or decode failure.
        UnsupportedPlatformError: If a manifest list has no matching entry.
        EmptyManifestError: If the resolved manifest has no layers.
    """
    if platform is None:
        platform = current_platform()

    manifest = fetch_manifest(client, session, session.reference.tag)

    if manifest.manifests:
        entry = select_manifest(manifest.manifests, platform)
        logger.debug("Platform %s resolved to %s", platform, entry.digest)
        manifest = fetch_manifest(
            client,
            session,
            entry.digest,
            entry.media_type or MANIFEST_V2_MEDIA_TYPE,
        )
        if not manifest.layers:
            raise EmptyManifestError(
                f"no layers found in image manifest {entry.digest}"
            )
    elif not manifest.layers:
        raise EmptyManifestError(
            f"no layers found in manifest for {session.reference}"
        )

    logger.info(
        "Resolved %s to %d layer(s)", session.reference, len(manifest.layers)
    )
    return manifest.layers
