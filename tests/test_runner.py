# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for tinydock/runner.py.

The registry is faked in memory and layers are extracted with the real
``tar``.  ``restrict_root`` is patched out everywhere since chroot needs
root and cannot be undone within the test process.
"""

from collections.abc import Iterator
from pathlib import Path
from unittest.mock import MagicMock, patch

import httpx
import pytest

from tests.conftest import FakeRegistry
from tinydock.config import Config
from tinydock.errors import (
    AuthError,
    ChildExitError,
    IsolationError,
    LaunchError,
    RegistryError,
    UnsupportedPlatformError,
)
from tinydock.registry import ImageReference, Platform
from tinydock.runner import Runner, RunState


AMD64 = Platform("linux", "amd64")
ALPINE = ImageReference.parse("alpine")


@pytest.fixture
def staging_root(tmp_path: Path) -> Path:
    path = tmp_path / "staging"
    path.mkdir()
    return path


@pytest.fixture
def runner(
    alpine_registry: FakeRegistry,
    registry_client: httpx.Client,
    staging_root: Path,
) -> Runner:
    return Runner(
        Config(staging_root=staging_root),
        client=registry_client,
        platform=AMD64,
    )


@pytest.fixture
def no_chroot() -> Iterator[MagicMock]:
    with (
        patch("tinydock.runner.restrict_root") as mock_restrict,
        patch(
            "tinydock.isolation.supports_pid_namespace", return_value=False
        ),
    ):
        yield mock_restrict


def _staging_dirs(root: Path) -> list[Path]:
    return sorted(p.resolve() for p in root.iterdir())


@pytest.mark.usefixtures("tar_available")
class TestPull:
    """Tests for the pull half of the pipeline."""

    def test_materializes_image(self, runner: Runner, tmp_path: Path) -> None:
        target = tmp_path / "rootfs"
        target.mkdir()

        layers = runner.pull(ALPINE, target)

        assert len(layers) == 3
        assert (target / "etc" / "motd").read_text() == "layer three\n"
        assert (target / "etc" / "os-release").read_text() == "ID=alpine\n"
        assert (target / "bin" / "busybox").exists()
        assert not list(target.glob("*.tar"))
        assert runner.state is RunState.LAYERS_READY

    def test_session(self, runner: Runner, tmp_path: Path) -> None:
        runner.pull(ALPINE, tmp_path)

        assert runner.session is not None
        assert runner.session.token == "test-token"
        assert runner.session.reference == ALPINE
        assert runner.session.staging_dir == tmp_path

    def test_request_order(
        self, runner: Runner, alpine_registry: FakeRegistry, tmp_path: Path
    ) -> None:
        """Token, then manifest list, then manifest, then every blob."""
        runner.pull(ALPINE, tmp_path)

        paths = alpine_registry.paths()
        assert paths[0] == "/token"
        assert paths[1] == "/v2/library/alpine/manifests/latest"
        assert paths[2].startswith("/v2/library/alpine/manifests/sha256:")
        assert len(alpine_registry.blob_requests()) == 3
        assert len(paths) == 6

    def test_other_platform(
        self,
        alpine_registry: FakeRegistry,
        registry_client: httpx.Client,
        tmp_path: Path,
    ) -> None:
        arm_runner = Runner(
            client=registry_client,
            platform=Platform("linux", "arm64"),
        )
        arm_runner.pull(ALPINE, tmp_path)
        assert (tmp_path / "etc" / "arch").read_text() == "arm64\n"
        assert not (tmp_path / "etc" / "motd").exists()

    def test_unsupported_platform(
        self,
        alpine_registry: FakeRegistry,
        registry_client: httpx.Client,
        tmp_path: Path,
    ) -> None:
        runner = Runner(
            client=registry_client,
            platform=Platform("linux", "mips"),
        )
        with pytest.raises(UnsupportedPlatformError):
            runner.pull(ALPINE, tmp_path)
        assert runner.state is RunState.FAILED
        assert runner.session is not None

    def test_auth_failure_leaves_no_session(
        self, runner: Runner, alpine_registry: FakeRegistry, tmp_path: Path
    ) -> None:
        alpine_registry.failures["/token"] = 503
        with pytest.raises(AuthError):
            runner.pull(ALPINE, tmp_path)
        assert runner.state is RunState.FAILED
        assert runner.session is None

    def test_injected_client_stays_open(
        self, runner: Runner, registry_client: httpx.Client, tmp_path: Path
    ) -> None:
        runner.pull(ALPINE, tmp_path)
        assert not registry_client.is_closed

    def test_owned_client_is_closed(self, tmp_path: Path) -> None:
        """Without an injected client the runner opens and closes one."""
        client = httpx.Client(
            transport=httpx.MockTransport(lambda r: httpx.Response(500))
        )
        with (
            patch("tinydock.runner.open_client", return_value=client),
            pytest.raises(AuthError),
        ):
            Runner().pull(ALPINE, tmp_path)
        assert client.is_closed


@pytest.mark.usefixtures("tar_available")
class TestPullTo:
    def test_fresh_staging_dir(
        self, runner: Runner, staging_root: Path
    ) -> None:
        path = runner.pull_to(ALPINE)

        assert path.parent == staging_root.resolve()
        assert (path / "etc" / "motd").exists()

    def test_given_directory_is_created(
        self, runner: Runner, tmp_path: Path
    ) -> None:
        target = tmp_path / "a" / "b"
        assert runner.pull_to(ALPINE, target) == target
        assert (target / "bin" / "busybox").exists()

    def test_failure_removes_fresh_dir(
        self,
        runner: Runner,
        alpine_registry: FakeRegistry,
        staging_root: Path,
    ) -> None:
        alpine_registry.failures["/v2/library/alpine/manifests/latest"] = 500
        with pytest.raises(RegistryError):
            runner.pull_to(ALPINE)
        assert _staging_dirs(staging_root) == []

    def test_failure_keeps_given_directory(
        self, runner: Runner, alpine_registry: FakeRegistry, tmp_path: Path
    ) -> None:
        alpine_registry.failures["/v2/library/alpine/manifests/latest"] = 500
        with pytest.raises(RegistryError):
            runner.pull_to(ALPINE, tmp_path / "keep")
        assert (tmp_path / "keep").is_dir()

    def test_download_failure_leaves_no_archives(
        self, runner: Runner, alpine_registry: FakeRegistry, tmp_path: Path
    ) -> None:
        """A given directory holds no layer archives after a failed pull."""
        layers = alpine_registry.manifests["amd64-image"]["layers"]
        digest = layers[1]["digest"]
        alpine_registry.failures[f"/v2/library/alpine/blobs/{digest}"] = 500
        target = tmp_path / "keep"

        with pytest.raises(RegistryError):
            runner.pull_to(ALPINE, target)

        assert list(target.glob("*.tar")) == []

    def test_unusable_directory(
        self, runner: Runner, alpine_registry: FakeRegistry, tmp_path: Path
    ) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        with pytest.raises(IsolationError, match="create directory"):
            runner.pull_to(ALPINE, blocker / "rootfs")
        assert runner.state is RunState.FAILED
        assert alpine_registry.requests == []


@pytest.mark.usefixtures("tar_available")
class TestRun:
    """Tests for the full pipeline up to and including launch."""

    def test_runs_command_in_staging_root(
        self,
        runner: Runner,
        staging_root: Path,
        no_chroot: MagicMock,
        capfd: pytest.CaptureFixture[str],
    ) -> None:
        """``echo hello`` prints hello and exits 0."""
        assert runner.run(ALPINE, "echo", ["hello"]) == 0

        assert capfd.readouterr().out == "hello\n"
        assert runner.state is RunState.DONE
        (staging_dir,) = _staging_dirs(staging_root)
        no_chroot.assert_called_once_with(staging_dir)

    def test_root_is_prepared(
        self, runner: Runner, staging_root: Path
    ) -> None:
        with (
            patch("tinydock.runner.restrict_root"),
            patch("tinydock.runner.launch", return_value=0) as mock_launch,
        ):
            runner.run(ALPINE, "echo", ["hello"])

        (staging_dir,) = _staging_dirs(staging_root)
        spec = mock_launch.call_args[0][0]
        assert spec.argv == ["echo", "hello"]
        assert spec.executable.is_absolute()
        copied = staging_dir / spec.executable.relative_to("/")
        assert copied.read_bytes() == spec.executable.read_bytes()
        assert (staging_dir / "dev" / "null").exists()
        assert (staging_dir / "etc" / "motd").read_text() == "layer three\n"

    def test_state_sequence(self, runner: Runner) -> None:
        states: list[RunState] = []
        original = Runner._transition

        def record(self: Runner, state: RunState) -> None:
            states.append(state)
            original(self, state)

        with (
            patch.object(Runner, "_transition", record),
            patch("tinydock.runner.restrict_root"),
            patch("tinydock.runner.launch", return_value=0),
        ):
            runner.run(ALPINE, "true")

        assert states == [
            RunState.AUTHENTICATED,
            RunState.MANIFEST_RESOLVED,
            RunState.LAYERS_DOWNLOADING,
            RunState.LAYERS_READY,
            RunState.ROOT_RESTRICTED,
            RunState.PROCESS_RUNNING,
            RunState.DONE,
        ]

    def test_nonzero_exit(self, runner: Runner) -> None:
        with (
            patch("tinydock.runner.restrict_root"),
            patch("tinydock.runner.launch", return_value=3),
            pytest.raises(ChildExitError) as exc_info,
        ):
            runner.run(ALPINE, "false")
        assert exc_info.value.exit_code == 3
        assert runner.state is RunState.DONE

    def test_download_failure_cleans_up(
        self,
        runner: Runner,
        alpine_registry: FakeRegistry,
        staging_root: Path,
    ) -> None:
        layers = alpine_registry.manifests["amd64-image"]["layers"]
        digest = layers[1]["digest"]
        alpine_registry.failures[f"/v2/library/alpine/blobs/{digest}"] = 500

        with (
            patch("tinydock.runner.launch") as mock_launch,
            pytest.raises(RegistryError),
        ):
            runner.run(ALPINE, "echo")

        mock_launch.assert_not_called()
        assert runner.state is RunState.FAILED
        assert _staging_dirs(staging_root) == []

    def test_staging_creation_failure(
        self, runner: Runner, alpine_registry: FakeRegistry
    ) -> None:
        """The run ends in FAILED when no staging root can be made."""
        error = IsolationError("create staging directory: denied")
        with (
            patch("tinydock.runner.create_staging_dir", side_effect=error),
            pytest.raises(IsolationError, match="denied"),
        ):
            runner.run(ALPINE, "echo")
        assert runner.state is RunState.FAILED
        assert alpine_registry.requests == []

    def test_failure_keeps_staging_when_configured(
        self,
        alpine_registry: FakeRegistry,
        registry_client: httpx.Client,
        staging_root: Path,
    ) -> None:
        alpine_registry.failures["/v2/library/alpine/manifests/latest"] = 404
        runner = Runner(
            Config(staging_root=staging_root, keep_staging_on_failure=True),
            client=registry_client,
            platform=AMD64,
        )
        with pytest.raises(RegistryError):
            runner.run(ALPINE, "echo")
        assert len(_staging_dirs(staging_root)) == 1

    def test_unknown_command_fails_before_pull(
        self,
        runner: Runner,
        alpine_registry: FakeRegistry,
        staging_root: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setenv("PATH", str(staging_root))
        with pytest.raises(LaunchError):
            runner.run(ALPINE, "tinydock-no-such-command")
        assert alpine_registry.requests == []
        assert runner.state is RunState.FAILED
        assert _staging_dirs(staging_root) == []

    def test_launch_failure_after_chroot_keeps_root(
        self, runner: Runner, staging_root: Path
    ) -> None:
        """Nothing is removed once the process lives inside the root."""
        with (
            patch("tinydock.runner.restrict_root"),
            patch(
                "tinydock.runner.launch",
                side_effect=LaunchError("exec echo: denied"),
            ),
            pytest.raises(LaunchError),
        ):
            runner.run(ALPINE, "echo")
        assert runner.state is RunState.FAILED
        assert len(_staging_dirs(staging_root)) == 1
