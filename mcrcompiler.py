#!/usr/bin/env python3
"""mcrcompiler.py

Functional tools to drive the MATLAB Compiler from outside MATLAB.

- standalone_application_script() renders a compiler.build call
- installer_script() renders a compiler.package call
- batch_command() wraps MATLAB source for `matlab -batch`
- find_matlab() locates a MATLAB installation

"""
import os
import re
import shutil
from pathlib import Path
from typing import Union

Pathlike = Union[Path, str]

RUNTIME_DELIVERY_OPTIONS = ("web", "installer")

MATLAB_APPS_GLOB = "MATLAB_R*.app"

APPLICATIONS_DIR = Path("/Applications")

ENV_MATLAB = "MATLAB"


def matlab_literal(value) -> str:
    """Render a python value as MATLAB source.

    :param      value:  a str, Path, bool, int or float
    :type       value:  object
    :returns:   MATLAB source text for the value
    :rtype:     str
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, (str, Path)):
        text = str(value)
        if "\n" in text or "\r" in text:
            raise ValueError(f"MATLAB string cannot span lines: {text!r}")
        return '"' + text.replace('"', '""') + '"'
    raise TypeError(f"cannot render {type(value).__name__} as MATLAB")


def matlab_call(function: str, *args, **options) -> str:
    """Render a MATLAB function call with name-value pairs.

    Keyword options keep their insertion order.
    """
    parts = [matlab_literal(arg) for arg in args]
    for key, value in options.items():
        parts.append(matlab_literal(key))
        parts.append(matlab_literal(value))
    return f"{function}({', '.join(parts)})"


def standalone_application_script(main_file: Pathlike, name: str,
                                  output_dir: Pathlike,
                                  embed_archive: bool = False,
                                  verbose: bool = True) -> str:
    """MATLAB source building a standalone application bundle.

    :param      main_file:      entry point of the application
    :param      name:           executable (and bundle) name
    :param      output_dir:     compiler output folder
    :param      embed_archive:  embed the CTF archive in the executable
    :param      verbose:        verbose compiler output
    """
    options = matlab_call(
        "compiler.build.StandaloneApplicationOptions",
        str(main_file),
        EmbedArchive=embed_archive,
        ExecutableName=name,
        OutputDir=str(output_dir),
        Verbose=verbose,
    )
    return f"opts = {options}; compiler.build.standaloneApplication(opts);"


def installer_script(app_path: Pathlike, required_products: Pathlike,
                     name: str, installer_name: str, version: str,
                     runtime_delivery: str, output_dir: Pathlike) -> str:
    """MATLAB source packaging an application bundle into an installer."""
    if runtime_delivery not in RUNTIME_DELIVERY_OPTIONS:
        raise ValueError(
            f"runtime delivery must be one of {RUNTIME_DELIVERY_OPTIONS}, "
            f"got {runtime_delivery!r}"
        )
    options = matlab_call(
        "compiler.package.InstallerOptions",
        ApplicationName=name,
        Version=version,
        InstallerName=installer_name,
        RuntimeDelivery=runtime_delivery,
        OutputDir=str(output_dir),
    )
    package = (
        f"compiler.package.installer({matlab_literal(str(app_path))}, "
        f"{matlab_literal(str(required_products))}, \"Options\", opts)"
    )
    return f"opts = {options}; {package};"


def batch_command(script: str, matlab: Pathlike = "matlab") -> list[str]:
    """Command line running MATLAB source non-interactively."""
    return [str(matlab), "-batch", script]


def _release_key(path: Path) -> tuple:
    # MATLAB_R2023b.app -> (2023, "b")
    match = re.search(r"R(\d{4})([ab])", path.name)
    if not match:
        return (0, "")
    return (int(match.group(1)), match.group(2))


def find_matlab(explicit: Pathlike = None) -> Union[Path, None]:
    """Locate the matlab executable.

    Search order: explicit path, $MATLAB, `matlab` on PATH, then the
    newest /Applications/MATLAB_R*.app release.
    """
    if explicit:
        return Path(explicit)
    from_env = os.getenv(ENV_MATLAB)
    if from_env:
        return Path(from_env)
    on_path = shutil.which("matlab")
    if on_path:
        return Path(on_path)
    releases = sorted(APPLICATIONS_DIR.glob(MATLAB_APPS_GLOB), key=_release_key)
    for release in reversed(releases):
        candidate = release / "bin" / "matlab"
        if candidate.exists():
            return candidate
    return None
