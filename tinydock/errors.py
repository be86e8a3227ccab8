# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Exception hierarchy for the pull and run pipeline.

Every stage raises one of these with a short operation label prefixed to
the message (``"authorize: ..."``, ``"pull layers: ..."``) and the
underlying cause chained via ``raise ... from``.  Nothing in the pipeline
retries or recovers locally; the first error aborts the run.
"""

from __future__ import annotations


class TinydockError(Exception):
    """Base exception for all pipeline failures."""


class TransportError(TinydockError):
    """Raised when a registry request cannot be made or decoded."""


class RegistryError(TransportError):
    """Raised when the registry answers with a non-200 status.

    Attributes:
        status_code: HTTP status returned by the registry.
        url: Requested URL.
    """

    def __init__(self, message: str, *, status_code: int, url: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class AuthError(TinydockError):
    """Raised when an anonymous pull token cannot be obtained."""


class UnsupportedPlatformError(TinydockError):
    """Raised when a manifest list has no entry for the running platform."""

    def __init__(self, os_name: str, architecture: str) -> None:
        super().__init__(f"no manifest found for {os_name}/{architecture}")
        self.os_name = os_name
        self.architecture = architecture


class EmptyManifestError(TinydockError):
    """Raised when a resolved manifest lists no layers."""


class LayerError(TinydockError):
    """Raised when a layer blob cannot be stored in the staging directory."""


class ExtractionError(LayerError):
    """Raised when a layer archive cannot be unpacked or removed."""


class IsolationError(TinydockError):
    """Raised when the staging root cannot be prepared or entered."""


class LaunchError(TinydockError):
    """Raised when the target command cannot be started."""


class ChildExitError(TinydockError):
    """The launched command exited with a nonzero status.

    Not a tool failure: the caller mirrors ``exit_code`` as its own exit
    status instead of reporting an error.
    """

    def __init__(self, exit_code: int) -> None:
        super().__init__(f"command exited with status {exit_code}")
        self.exit_code = exit_code
