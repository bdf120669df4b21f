"""Unit tests for Notarizer class."""

import subprocess
import tempfile
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from mcrbundler import FileError, NotarizationError, Notarizer

SUBMISSION_ID = "2efe2717-52ef-43a5-96dc-0797e4ca1041"

ACCEPTED_OUTPUT = f"""\
Conducting pre-submission checks for hello.zip and initiating connection to the Apple notary service...
Submission ID received
  id: {SUBMISSION_ID}
Successfully uploaded file
Waiting for processing to complete.
Processing complete
  id: {SUBMISSION_ID}
  status: Accepted
"""

INVALID_OUTPUT = f"""\
Submission ID received
  id: {SUBMISSION_ID}
Processing complete
  id: {SUBMISSION_ID}
  status: Invalid
"""


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdirname:
        yield Path(tmpdirname)


@pytest.fixture
def bundle(temp_dir):
    path = temp_dir / "hello.app"
    (path / "Contents" / "MacOS").mkdir(parents=True)
    return path


def tool_runner(submit_output=ACCEPTED_OUTPUT):
    """Fake subprocess.run answering like ditto, notarytool and stapler."""

    def side_effect(cmd, **kwargs):
        if cmd[:3] == ["xcrun", "notarytool", "submit"]:
            return MagicMock(returncode=0, stdout=submit_output)
        if cmd[:3] == ["xcrun", "notarytool", "log"]:
            return MagicMock(returncode=0, stdout='{"issues": []}')
        if cmd[:3] == ["xcrun", "stapler", "staple"]:
            return MagicMock(
                returncode=0, stdout="The staple and validate action worked!"
            )
        return MagicMock(returncode=0, stdout="")

    return side_effect


def commands(mock_run):
    return [c[0][0] for c in mock_run.call_args_list]


class TestNotarizerInit:
    """Tests for keychain profile resolution."""

    def test_default_profile(self, monkeypatch):
        monkeypatch.delenv("KEYCHAIN_PROFILE", raising=False)
        assert Notarizer().keychain_profile == "AC_PASSWORD"

    def test_profile_from_env(self, monkeypatch):
        monkeypatch.setenv("KEYCHAIN_PROFILE", "ENV_PROFILE")
        assert Notarizer().keychain_profile == "ENV_PROFILE"

    def test_param_overrides_env(self, monkeypatch):
        monkeypatch.setenv("KEYCHAIN_PROFILE", "ENV_PROFILE")
        assert Notarizer("MINE").keychain_profile == "MINE"


class TestArchive:
    """Tests for archive creation."""

    def test_archive_path(self):
        assert Notarizer.archive_path("out/hello.app") == Path("out/hello.zip")

    def test_archive_path_installer(self):
        assert Notarizer.archive_path(
            Path("out/hello_installer.app")
        ) == Path("out/hello_installer.zip")

    @patch("subprocess.run", side_effect=tool_runner())
    def test_create_archive_removes_stale(self, mock_run, bundle):
        stale = bundle.with_suffix(".zip")
        stale.write_bytes(b"old")
        archive = Notarizer().create_archive(bundle)
        assert archive == stale
        assert not stale.exists()
        assert commands(mock_run)[0] == [
            "ditto", "-c", "-k", "--keepParent", str(bundle), str(stale),
        ]


class TestSubmit:
    """Tests for submission and verdict handling."""

    @patch("subprocess.run", side_effect=tool_runner())
    def test_accepted(self, mock_run, temp_dir):
        output = Notarizer("AC_PASSWORD").submit(temp_dir / "hello.zip")
        assert "Accepted" in output
        assert commands(mock_run)[0] == [
            "xcrun", "notarytool", "submit", str(temp_dir / "hello.zip"),
            "--keychain-profile", "AC_PASSWORD", "--wait",
        ]

    @patch("subprocess.run", side_effect=tool_runner(INVALID_OUTPUT))
    def test_rejected_fetches_log(self, mock_run, temp_dir):
        with pytest.raises(NotarizationError, match="status: Invalid"):
            Notarizer().submit(temp_dir / "hello.zip")
        log_cmd = commands(mock_run)[1]
        assert log_cmd[:4] == ["xcrun", "notarytool", "log", SUBMISSION_ID]

    @patch("subprocess.run", side_effect=tool_runner("Error: HTTP 401"))
    def test_rejected_without_id(self, mock_run, temp_dir):
        with pytest.raises(NotarizationError, match="HTTP 401"):
            Notarizer().submit(temp_dir / "hello.zip")
        assert mock_run.call_count == 1

    @patch("subprocess.run")
    def test_tool_failure(self, mock_run, temp_dir):
        mock_run.side_effect = subprocess.CalledProcessError(
            69, "xcrun", output="No Keychain password item found for profile"
        )
        with pytest.raises(NotarizationError, match="Keychain password"):
            Notarizer().submit(temp_dir / "hello.zip")

    def test_submission_id(self):
        assert Notarizer().submission_id(ACCEPTED_OUTPUT) == SUBMISSION_ID
        assert Notarizer().submission_id("nothing here") is None


class TestProcess:
    """Tests for the zip / submit / staple sequence."""

    @patch("subprocess.run", side_effect=tool_runner())
    def test_full_sequence(self, mock_run, bundle):
        archive = Notarizer().process(bundle)
        assert archive == bundle.with_suffix(".zip")
        tools = [cmd[:2] for cmd in commands(mock_run)]
        assert tools == [
            ["ditto", "-c"],
            ["xcrun", "notarytool"],
            ["xcrun", "stapler"],
        ]
        assert commands(mock_run)[-1] == [
            "xcrun", "stapler", "staple", str(bundle),
        ]

    @patch("subprocess.run", side_effect=tool_runner(INVALID_OUTPUT))
    def test_rejected_not_stapled(self, mock_run, bundle):
        with pytest.raises(NotarizationError):
            Notarizer().process(bundle)
        assert not any("stapler" in cmd for cmd in commands(mock_run))

    @patch("subprocess.run")
    def test_staple_failure(self, mock_run, bundle):
        def side_effect(cmd, **kwargs):
            if "stapler" in cmd:
                raise subprocess.CalledProcessError(65, cmd, output="Error 65")
            return tool_runner()(cmd, **kwargs)

        mock_run.side_effect = side_effect
        with pytest.raises(NotarizationError, match="Stapling failed"):
            Notarizer().process(bundle)

    def test_missing_bundle(self, temp_dir):
        with pytest.raises(FileError, match="does not exist"):
            Notarizer().process(temp_dir / "missing.app")

    @patch("subprocess.run")
    def test_dry_run(self, mock_run, temp_dir):
        Notarizer(dry_run=True).process(temp_dir / "missing.app")
        mock_run.assert_not_called()
