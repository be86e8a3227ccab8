# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Docker Hub registry client.

Covers the three endpoints a pull needs: anonymous token exchange,
manifest resolution (manifest lists and platform manifests) and blob
download.  All calls go through one ``httpx.Client`` per run.
"""

from tinydock.registry._transport import check_status, get_json, open_client
from tinydock.registry.auth import AUTH_URL, auth_headers, fetch_token
from tinydock.registry.blobs import BLOBS_URL, fetch_blob
from tinydock.registry.manifest import (
    MANIFESTS_URL,
    fetch_manifest,
    resolve_layers,
    select_manifest,
)
from tinydock.registry.types import (
    DEFAULT_TAG,
    MANIFEST_V2_MEDIA_TYPE,
    ImageReference,
    LayerDescriptor,
    ManifestDescriptor,
    ManifestResponse,
    Platform,
    PullSession,
    TokenResponse,
    current_platform,
)


__all__ = [
    # transport
    "check_status",
    "get_json",
    "open_client",
    # auth
    "AUTH_URL",
    "auth_headers",
    "fetch_token",
    # manifest
    "MANIFESTS_URL",
    "fetch_manifest",
    "resolve_layers",
    "select_manifest",
    # blobs
    "BLOBS_URL",
    "fetch_blob",
    # types
    "DEFAULT_TAG",
    "MANIFEST_V2_MEDIA_TYPE",
    "ImageReference",
    "LayerDescriptor",
    "ManifestDescriptor",
    "ManifestResponse",
    "Platform",
    "PullSession",
    "TokenResponse",
    "current_platform",
]
