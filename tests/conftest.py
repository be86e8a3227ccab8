# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Shared pytest fixtures used across multiple test packages."""

import hashlib
import io
import shutil
import tarfile
import threading
from collections.abc import Callable, Iterator

import httpx
import pytest

from tinydock.logging import SecretFilter


MANIFEST_LIST_TYPE = (
    "application/vnd.docker.distribution.manifest.list.v2+json"
)
MANIFEST_TYPE = "application/vnd.docker.distribution.manifest.v2+json"
LAYER_TYPE = "application/vnd.docker.image.rootfs.diff.tar.gzip"


def digest_of(content: bytes) -> str:
    """Return the registry digest of some content."""
    return "sha256:" + hashlib.sha256(content).hexdigest()


def build_layer(files: dict[str, bytes]) -> bytes:
    """Build a gzip-compressed layer tarball from a path -> content map."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        for name, content in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(content)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(content))
    return buf.getvalue()


class FakeRegistry:
    """In-memory Docker Hub serving one ``library/`` repository.

    Attributes:
        name: Repository name served.
        token: Token handed out by the auth endpoint.
        manifests: Manifest JSON by tag or digest.
        blobs: Blob content by digest.
        failures: Status code to return for a URL path instead of content.
        requests: Every request received, in arrival order.
    """

    def __init__(self, name: str = "alpine", token: str = "test-token") -> None:
        self.name = name
        self.token = token
        self.manifests: dict[str, dict] = {}
        self.blobs: dict[str, bytes] = {}
        self.failures: dict[str, int] = {}
        self.requests: list[httpx.Request] = []
        self._lock = threading.Lock()

    # ── content setup ───────────────────────────────────────────

    def add_layers(self, *layers: bytes) -> list[dict]:
        """Register blobs and return their layer descriptors."""
        descriptors = []
        for content in layers:
            digest = digest_of(content)
            self.blobs[digest] = content
            descriptors.append(
                {
                    "mediaType": LAYER_TYPE,
                    "size": len(content),
                    "digest": digest,
                }
            )
        return descriptors

    def add_image(self, ref: str, layers: list[dict]) -> str:
        """Register a platform manifest under a tag or digest.

        Returns:
            Digest the manifest is also reachable by.
        """
        manifest = {
            "schemaVersion": 2,
            "mediaType": MANIFEST_TYPE,
            "layers": layers,
        }
        digest = digest_of(repr(manifest).encode())
        self.manifests[ref] = manifest
        self.manifests[digest] = manifest
        return digest

    def add_index(self, tag: str, platforms: dict[str, str]) -> None:
        """Register a manifest list mapping ``os/arch`` to manifest digest."""
        entries = []
        for plat, digest in platforms.items():
            os_name, arch = plat.split("/")
            entries.append(
                {
                    "mediaType": MANIFEST_TYPE,
                    "digest": digest,
                    "size": 528,
                    "platform": {"architecture": arch, "os": os_name},
                }
            )
        self.manifests[tag] = {
            "schemaVersion": 2,
            "mediaType": MANIFEST_LIST_TYPE,
            "manifests": entries,
        }

    # ── transport ───────────────────────────────────────────────

    def handler(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.requests.append(request)

        path = request.url.path
        if path in self.failures:
            return httpx.Response(self.failures[path])

        if request.url.host == "auth.docker.io":
            return httpx.Response(200, json={"token": self.token})

        if request.headers.get("Authorization") != f"Bearer {self.token}":
            return httpx.Response(401, json={"errors": ["UNAUTHORIZED"]})

        prefix = f"/v2/library/{self.name}/"
        if path.startswith(prefix + "manifests/"):
            ref = path[len(prefix + "manifests/") :]
            manifest = self.manifests.get(ref)
            if manifest is None:
                return httpx.Response(
                    404, json={"errors": ["MANIFEST_UNKNOWN"]}
                )
            return httpx.Response(200, json=manifest)

        if path.startswith(prefix + "blobs/"):
            digest = path[len(prefix + "blobs/") :]
            blob = self.blobs.get(digest)
            if blob is None:
                return httpx.Response(404)
            return httpx.Response(200, content=blob)

        return httpx.Response(404)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))

    # ── inspection ──────────────────────────────────────────────

    def paths(self) -> list[str]:
        """Return the requested URL paths, in arrival order."""
        return [r.url.path for r in self.requests]

    def blob_requests(self) -> list[str]:
        return [p for p in self.paths() if "/blobs/" in p]


@pytest.fixture
def registry() -> FakeRegistry:
    """Empty fake registry serving ``library/alpine``."""
    return FakeRegistry()


@pytest.fixture
def registry_client(registry: FakeRegistry) -> Iterator[httpx.Client]:
    """HTTP client routed to the fake registry."""
    with registry.client() as client:
        yield client


@pytest.fixture
def make_layer() -> Callable[[dict[str, bytes]], bytes]:
    """Factory for gzip layer tarballs."""
    return build_layer


@pytest.fixture
def alpine_registry(registry: FakeRegistry) -> FakeRegistry:
    """``alpine:latest`` as a two-platform manifest list.

    The amd64 image has three layers; the third overrides ``etc/motd``
    from the first.  The arm64 image has a single distinct layer.
    """
    amd64_layers = registry.add_layers(
        build_layer(
            {"bin/busybox": b"busybox", "etc/motd": b"layer one\n"}
        ),
        build_layer({"etc/os-release": b"ID=alpine\n"}),
        build_layer({"etc/motd": b"layer three\n"}),
    )
    arm64_layers = registry.add_layers(
        build_layer({"etc/arch": b"arm64\n"}),
    )
    amd64_digest = registry.add_image("amd64-image", amd64_layers)
    arm64_digest = registry.add_image("arm64-image", arm64_layers)
    registry.add_index(
        "latest",
        {"linux/amd64": amd64_digest, "linux/arm64": arm64_digest},
    )
    return registry


@pytest.fixture
def tar_available() -> None:
    """Skip the test when no ``tar`` binary is installed."""
    if shutil.which("tar") is None:
        pytest.skip("tar not installed")


@pytest.fixture(autouse=True)
def _clear_secrets() -> Iterator[None]:
    """Keep registered log secrets from leaking between tests."""
    SecretFilter.clear_secrets()
    yield
    SecretFilter.clear_secrets()
