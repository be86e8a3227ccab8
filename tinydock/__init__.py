# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""tinydock: pull a Docker Hub image and run a command inside it.

The pipeline authenticates anonymously, resolves the image manifest for
the running platform, downloads its layers concurrently, extracts them in
order into a staging directory, then chroots into that directory and runs
the command in a fresh PID namespace.
"""

from tinydock.errors import (
    AuthError,
    ChildExitError,
    EmptyManifestError,
    ExtractionError,
    IsolationError,
    LaunchError,
    LayerError,
    RegistryError,
    TinydockError,
    TransportError,
    UnsupportedPlatformError,
)
from tinydock.registry import ImageReference
from tinydock.runner import Runner, RunState


__all__ = [
    "ImageReference",
    "Runner",
    "RunState",
    # errors
    "AuthError",
    "ChildExitError",
    "EmptyManifestError",
    "ExtractionError",
    "IsolationError",
    "LaunchError",
    "LayerError",
    "RegistryError",
    "TinydockError",
    "TransportError",
    "UnsupportedPlatformError",
]
