# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Value types for the registry protocol.

Provides the image reference, platform and descriptor types, the JSON
decode shapes for the token and manifest endpoints, and the per-run
PullSession that every stage after authentication receives.
"""

from __future__ import annotations

import platform as _platform
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


#: Tag used when an image reference does not name one.
DEFAULT_TAG = "latest"

#: Media type requested for the first manifest fetch.
MANIFEST_V2_MEDIA_TYPE = "application/vnd.docker.distribution.manifest.v2+json"

# Python's machine names mapped to the registry's architecture names
_ARCH_ALIASES: dict[str, str] = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv7l": "arm",
    "armv6l": "arm",
    "i386": "386",
    "i686": "386",
}


@dataclass(frozen=True)
class ImageReference:
    """A repository name and tag in the ``library/`` namespace.

    Attributes:
        name: Repository name (``alpine``, ``busybox``).
        tag: Tag or digest to resolve.
    """

    name: str
    tag: str = DEFAULT_TAG

    @classmethod
    def parse(cls, reference: str) -> ImageReference:
        """Parse ``name`` or ``name:tag``.

        Args:
            reference: Reference as given on the command line.

        Returns:
            Parsed reference; the tag defaults to ``latest``.

        Raises:
            ValueError: If the name or tag is empty or contains whitespace,
                or the reference names a registry host.
        """
        if not reference or any(ch.isspace() for ch in reference):
            raise ValueError(f"Invalid image reference: {reference!r}")

        name, sep, tag = reference.rpartition(":")
        if not sep:
            name, tag = reference, DEFAULT_TAG

        if not name or not tag:
            raise ValueError(f"Invalid image reference: {reference!r}")
        if "/" in tag or ":" in name:
            # host:port/name names another registry
            raise ValueError(
                f"Invalid image reference: {reference!r} "
                "(only Docker Hub library images are supported)"
            )
        return cls(name=name, tag=tag)

    def __str__(self) -> str:
        return f"{self.name}:{self.tag}"


@dataclass(frozen=True)
class Platform:
    """Operating system and CPU architecture, in registry naming."""

    os: str
    architecture: str

    @classmethod
    def from_json(cls, data: Any) -> Platform:
        return cls(
            os=str(data.get("os", "")),
            architecture=str(data.get("architecture", "")),
        )

    def __str__(self) -> str:
        return f"{self.os}/{self.architecture}"


def current_platform() -> Platform:
    """Return the running platform in registry naming (``linux/amd64``)."""
    machine = _platform.machine().lower()
    return Platform(
        os=_platform.system().lower(),
        architecture=_ARCH_ALIASES.get(machine, machine),
    )


@dataclass(frozen=True)
class ManifestDescriptor:
    """One platform entry of a manifest list."""

    platform: Platform
    digest: str
    media_type: str

    @classmethod
    def from_json(cls, data: Any) -> ManifestDescriptor:
        return cls(
            platform=Platform.from_json(data.get("platform") or {}),
            digest=str(data["digest"]),
            media_type=str(data.get("mediaType", "")),
        )


@dataclass(frozen=True)
class LayerDescriptor:
    """One filesystem layer blob of an image manifest."""

    media_type: str
    size: int
    digest: str

    @classmethod
    def from_json(cls, data: Any) -> LayerDescriptor:
        return cls(
            media_type=str(data.get("mediaType", "")),
            size=int(data.get("size", 0)),
            digest=str(data["digest"]),
        )

    @property
    def archive_name(self) -> str:
        """File name for the downloaded archive (``sha256_<hex>.tar``)."""
        return self.digest.replace(":", "_").replace("/", "_") + ".tar"


@dataclass(frozen=True)
class TokenResponse:
    """Decode shape of the token endpoint."""

    token: str

    @classmethod
    def from_json(cls, data: Any) -> TokenResponse:
        # Docker Hub sends both; other token servers only access_token
        token = data.get("token")
        if token is None:
            token = data.get("access_token")
        if not isinstance(token, str):
            raise KeyError("token")
        return cls(token=token)


@dataclass(frozen=True)
class ManifestResponse:
    """Decode shape shared by manifest lists and direct manifests.

    A manifest list populates ``manifests``; a platform manifest populates
    ``layers``.  Either may be empty.
    """

    manifests: list[ManifestDescriptor] = field(default_factory=list)
    layers: list[LayerDescriptor] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: Any) -> ManifestResponse:
        return cls(
            manifests=[
                ManifestDescriptor.from_json(m)
                for m in data.get("manifests") or []
            ],
            layers=[
                LayerDescriptor.from_json(layer)
                for layer in data.get("layers") or []
            ],
        )


@dataclass(frozen=True)
class PullSession:
    """Immutable state of one pull, created once authentication succeeds.

    Attributes:
        reference: Image being pulled.
        token: Bearer token for every registry call of this pull.
        staging_dir: Directory receiving layer archives and their contents.
    """

    reference: ImageReference
    token: str
    staging_dir: Path

    def __repr__(self) -> str:
        return (
            f"PullSession(reference={self.reference!r}, token='***', "
            f"staging_dir={self.staging_dir!r})"
        )
