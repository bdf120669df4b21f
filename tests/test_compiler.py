"""Unit tests for the MATLAB Compiler driver."""

import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

import mcrcompiler
from mcrcompiler import (
    batch_command,
    find_matlab,
    installer_script,
    matlab_call,
    matlab_literal,
    standalone_application_script,
)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdirname:
        yield Path(tmpdirname)


class TestMatlabLiteral:
    """Tests for rendering python values as MATLAB source."""

    def test_string(self):
        assert matlab_literal("hello") == '"hello"'

    def test_string_with_quotes(self):
        """Embedded double quotes are doubled."""
        assert matlab_literal('say "hi"') == '"say ""hi"""'

    def test_single_quotes_untouched(self):
        assert matlab_literal("it's") == '"it\'s"'

    def test_path(self):
        assert matlab_literal(Path("src/hello.m")) == '"src/hello.m"'

    def test_bools(self):
        assert matlab_literal(True) == "true"
        assert matlab_literal(False) == "false"

    def test_numbers(self):
        assert matlab_literal(3) == "3"
        assert matlab_literal(0.5) == "0.5"

    def test_newline_rejected(self):
        with pytest.raises(ValueError, match="span lines"):
            matlab_literal("a\nb")

    def test_unsupported_type(self):
        with pytest.raises(TypeError):
            matlab_literal(["a"])


class TestMatlabCall:
    """Tests for rendering function calls."""

    def test_positional_and_pairs(self):
        result = matlab_call("f", "x", Verbose=True, Name="n")
        assert result == 'f("x", "Verbose", true, "Name", "n")'

    def test_no_arguments(self):
        assert matlab_call("f") == "f()"


class TestScripts:
    """Tests for the compiler and packager scripts."""

    def test_standalone_application_script(self):
        script = standalone_application_script("hello.m", "hello", "output")
        assert script == (
            'opts = compiler.build.StandaloneApplicationOptions("hello.m", '
            '"EmbedArchive", false, "ExecutableName", "hello", '
            '"OutputDir", "output", "Verbose", true); '
            "compiler.build.standaloneApplication(opts);"
        )

    def test_standalone_application_script_options(self):
        script = standalone_application_script(
            Path("app/main.m"), "Main", Path("dist"), embed_archive=True,
            verbose=False,
        )
        assert '"EmbedArchive", true' in script
        assert '"Verbose", false' in script
        assert '"OutputDir", "dist"' in script

    def test_installer_script(self):
        script = installer_script(
            "output/hello.app",
            "output/requiredMCRProducts.txt",
            name="hello",
            installer_name="hello_installer",
            version="0.1",
            runtime_delivery="web",
            output_dir="output",
        )
        assert script == (
            'opts = compiler.package.InstallerOptions("ApplicationName", '
            '"hello", "Version", "0.1", "InstallerName", "hello_installer", '
            '"RuntimeDelivery", "web", "OutputDir", "output"); '
            'compiler.package.installer("output/hello.app", '
            '"output/requiredMCRProducts.txt", "Options", opts);'
        )

    def test_installer_script_bad_delivery(self):
        with pytest.raises(ValueError, match="runtime delivery"):
            installer_script(
                "a.app", "r.txt", "a", "a_installer", "0.1", "cdrom", "out"
            )

    def test_batch_command(self):
        assert batch_command("disp(1);", "/opt/matlab/bin/matlab") == [
            "/opt/matlab/bin/matlab",
            "-batch",
            "disp(1);",
        ]

    def test_batch_command_default(self):
        assert batch_command("x")[0] == "matlab"


class TestFindMatlab:
    """Tests for locating MATLAB."""

    def test_explicit(self, monkeypatch):
        monkeypatch.setenv("MATLAB", "/env/matlab")
        assert find_matlab("/my/matlab") == Path("/my/matlab")

    def test_environment(self, monkeypatch):
        monkeypatch.setenv("MATLAB", "/env/matlab")
        assert find_matlab() == Path("/env/matlab")

    def test_path(self, monkeypatch):
        monkeypatch.delenv("MATLAB", raising=False)
        with patch("mcrcompiler.shutil.which", return_value="/usr/bin/matlab"):
            assert find_matlab() == Path("/usr/bin/matlab")

    def test_newest_application(self, monkeypatch, temp_dir):
        monkeypatch.delenv("MATLAB", raising=False)
        monkeypatch.setattr(mcrcompiler, "APPLICATIONS_DIR", temp_dir)
        for release in ("MATLAB_R2022b.app", "MATLAB_R2023a.app"):
            binary = temp_dir / release / "bin" / "matlab"
            binary.parent.mkdir(parents=True)
            binary.write_text("#!/bin/sh\n")
        # incomplete install is skipped
        (temp_dir / "MATLAB_R2024a.app").mkdir()

        with patch("mcrcompiler.shutil.which", return_value=None):
            result = find_matlab()
        assert result == temp_dir / "MATLAB_R2023a.app" / "bin" / "matlab"

    def test_not_found(self, monkeypatch, temp_dir):
        monkeypatch.delenv("MATLAB", raising=False)
        monkeypatch.setattr(mcrcompiler, "APPLICATIONS_DIR", temp_dir)
        with patch("mcrcompiler.shutil.which", return_value=None):
            assert find_matlab() is None
