# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Pull-and-run orchestration.

A Runner drives one image through the pipeline::

    UNAUTHENTICATED -> AUTHENTICATED -> MANIFEST_RESOLVED
        -> LAYERS_DOWNLOADING -> LAYERS_READY -> ROOT_RESTRICTED
        -> PROCESS_RUNNING -> DONE | FAILED

No transition is retried.  Any error moves the runner to FAILED and
propagates.  When a run fails before the root is restricted, the staging
directory is removed unless the configuration asks to keep it.  On
success the staging directory is left behind: the process is inside it.
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path

import httpx

from tinydock.config import Config
from tinydock.errors import ChildExitError, IsolationError
from tinydock.image import (
    create_staging_dir,
    download_layers,
    extract_layers,
    remove_staging_dir,
)
from tinydock.isolation import (
    ProcessSpec,
    copy_executable,
    launch,
    prepare_devices,
    resolve_executable,
    restrict_root,
)
from tinydock.registry import (
    ImageReference,
    LayerDescriptor,
    Platform,
    PullSession,
    fetch_token,
    open_client,
    resolve_layers,
)


logger = logging.getLogger(__name__)


class RunState(Enum):
    """Lifecycle of a single pull and run."""

    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    MANIFEST_RESOLVED = "manifest_resolved"
    LAYERS_DOWNLOADING = "layers_downloading"
    LAYERS_READY = "layers_ready"
    ROOT_RESTRICTED = "root_restricted"
    PROCESS_RUNNING = "process_running"
    DONE = "done"
    FAILED = "failed"


class Runner:
    """Pulls one image and runs one command inside it.

    Lifecycle::

        runner = Runner(config)
        exit_code = runner.run(ImageReference.parse("alpine"), "/bin/sh",
                               ["-c", "echo hello"])

    A Runner is single-use: ``pull`` and ``run`` each start from
    UNAUTHENTICATED and a runner holds the state of its latest call only.
    """

    def __init__(
        self,
        config: Config | None = None,
        *,
        client: httpx.Client | None = None,
        platform: Platform | None = None,
    ) -> None:
        self._config = config or Config()
        self._client = client
        self._platform = platform
        self.state = RunState.UNAUTHENTICATED
        self.session: PullSession | None = None

    def _transition(self, state: RunState) -> None:
        logger.debug("State %s -> %s", self.state.value, state.value)
        self.state = state

    def pull(
        self, reference: ImageReference, staging_dir: Path
    ) -> list[LayerDescriptor]:
        """Authenticate, resolve, download and extract an image.

        Args:
            reference: Image to pull.
            staging_dir: Existing directory to materialize the image in.

        Returns:
            The applied layers, in manifest order.

        Raises:
            TinydockError: On the first failure of any stage.
        """
        self.state = RunState.UNAUTHENTICATED
        self.session = None
        client = self._client or open_client(self._config.request_timeout)
        try:
            return self._pull(client, reference, staging_dir)
        except BaseException:
            self._transition(RunState.FAILED)
            raise
        finally:
            if self._client is None:
                client.close()

    def _pull(
        self,
        client: httpx.Client,
        reference: ImageReference,
        staging_dir: Path,
    ) -> list[LayerDescriptor]:
        logger.info("Pulling %s", reference)
        token = fetch_token(client, reference.name)
        session = PullSession(
            reference=reference, token=token, staging_dir=staging_dir
        )
        self.session = session
        self._transition(RunState.AUTHENTICATED)

        layers = resolve_layers(client, session, self._platform)
        self._transition(RunState.MANIFEST_RESOLVED)

        self._transition(RunState.LAYERS_DOWNLOADING)
        archives = download_layers(
            client,
            session,
            layers,
            max_workers=self._config.max_parallel_downloads,
        )
        extract_layers(archives, staging_dir, self._config.tar_command)
        self._transition(RunState.LAYERS_READY)
        return layers

    def pull_to(
        self, reference: ImageReference, directory: Path | None = None
    ) -> Path:
        """Pull an image into a directory without running anything.

        Args:
            reference: Image to pull.
            directory: Target directory, created if missing.  None creates
                a fresh staging directory, which is removed again if the
                pull fails (unless configured to keep it).

        Returns:
            The directory holding the extracted image.

        Raises:
            TinydockError: On the first failure of any stage.
        """
        try:
            staging_dir = self._target_directory(directory)
        except IsolationError:
            self._transition(RunState.FAILED)
            raise

        try:
            self.pull(reference, staging_dir)
        except BaseException:
            if directory is None:
                self._cleanup(staging_dir)
            raise
        return staging_dir

    def _target_directory(self, directory: Path | None) -> Path:
        if directory is None:
            return create_staging_dir(self._config.staging_root)
        path = directory.absolute()
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise IsolationError(f"create directory: {e}") from e
        return path

    def run(
        self,
        reference: ImageReference,
        command: str,
        args: list[str] | None = None,
    ) -> int:
        """Pull an image into a fresh staging root and run a command in it.

        Args:
            reference: Image to pull.
            command: Command to run, as a path or a name on PATH.
            args: Command arguments.

        Returns:
            0 when the command succeeds.

        Raises:
            ChildExitError: If the command exits nonzero.
            TinydockError: On any pipeline failure.
        """
        staging_dir: Path | None = None
        restricted = False
        try:
            staging_dir = create_staging_dir(self._config.staging_root)
            executable = resolve_executable(command)
            spec = ProcessSpec(
                command=command, args=list(args or []), executable=executable
            )
            self.pull(reference, staging_dir)

            copy_executable(executable, staging_dir)
            prepare_devices(staging_dir)
            restrict_root(staging_dir)
            restricted = True
            self._transition(RunState.ROOT_RESTRICTED)

            self._transition(RunState.PROCESS_RUNNING)
            exit_code = launch(spec)
        except BaseException:
            if self.state is not RunState.FAILED:
                self._transition(RunState.FAILED)
            if staging_dir is not None and not restricted:
                self._cleanup(staging_dir)
            raise

        self._transition(RunState.DONE)
        if exit_code != 0:
            raise ChildExitError(exit_code)
        return 0

    def _cleanup(self, staging_dir: Path) -> None:
        if self._config.keep_staging_on_failure:
            logger.info("Keeping staging directory %s", staging_dir)
            return
        remove_staging_dir(staging_dir)
