#!/usr/bin/env python3
"""mcrbundler - build, sign and notarize MATLAB Compiler apps for macOS.

This module drives the MATLAB Compiler to produce a macOS .app bundle,
then codesigns and notarizes it, packages it into a MATLAB Runtime
installer, and codesigns and notarizes the installer as well.

The workflow follows the MathWorks guidance on signing and notarizing
compiled applications for Apple's notarization requirement:

1. Compile the entry point into <OutputDir>/<Name>.app
2. Optionally inject a framework into Contents/Frameworks and sign it
3. Sign each embedded executable, then the bundle
4. Zip, notarize and staple the bundle
5. Package <OutputDir>/<Name>_installer.app
6. Optionally rebuild the installer's embedded application archive
7. Sign, notarize and staple the installer

Usage (CLI):
    # Full release build
    mcrbundler build hello.m -i "John Doe (ABCDE12345)"

    # Individual steps
    mcrbundler sign output/hello.app -i "John Doe" -e entitlements.plist
    mcrbundler notarize output/hello.app -k AC_PASSWORD

Usage (API):
    from mcrbundler import ReleaseBuilder, make_release

    builder = ReleaseBuilder("hello.m", identity="John Doe (ABCDE12345)")
    installer = builder.process()
"""

import argparse
import datetime
import itertools
import logging
import os
import re
import shutil
import stat
import struct
import subprocess
import sys
import tempfile
import threading
import time
import zipfile
from pathlib import Path

from macholib.mach_o import CPU_TYPE_NAMES
from macholib.MachO import MachO

from mcrcompiler import (
    RUNTIME_DELIVERY_OPTIONS,
    batch_command,
    find_matlab,
    installer_script,
    standalone_application_script,
)

# ----------------------------------------------------------------------------
# Constants

__version__ = "0.1.0"

# Type aliases
Pathlike = Path | str

# Default compiler output folder
DEFAULT_OUTPUT_DIR = "output"

# Default entitlements sidecar file
DEFAULT_ENTITLEMENTS = "entitlements.plist"

# Default notarytool keychain profile
DEFAULT_KEYCHAIN_PROFILE = "AC_PASSWORD"

# Installer defaults passed to compiler.package.InstallerOptions
DEFAULT_INSTALLER_VERSION = "0.1"
DEFAULT_RUNTIME_DELIVERY = "web"
INSTALLER_SUFFIX = "_installer"

# Manifest written by the compiler next to the bundle
REQUIRED_PRODUCTS_FILE = "requiredMCRProducts.txt"

# Helper executables the compiler places in Contents/MacOS
MCR_HELPER_EXECUTABLES = ("applauncher", "prelaunch")

# Marker in notarytool output for a successful submission
NOTARIZATION_ACCEPTED = "Accepted"

# Top-level entry of the installer archive holding the application
APPLICATION_ENTRY = "application"

# Environment variable names
ENV_IDENTITY = "CODESIGN_IDENTITY"
ENV_KEYCHAIN_PROFILE = "KEYCHAIN_PROFILE"
ENV_DITTO_NO_RSRC = "DITTONORSRC"

# Hardened runtime exceptions required by the MATLAB Runtime
ENTITLEMENTS_PLIST_TMPL = """\
<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE plist PUBLIC "-//Apple//DTD PLIST 1.0//EN" "http://www.apple.com/DTDs/PropertyList-1.0.dtd">
<plist version="1.0">
<dict>
    <key>com.apple.security.cs.allow-jit</key>
    <true/>
    <key>com.apple.security.cs.allow-unsigned-executable-memory</key>
    <true/>
    <key>com.apple.security.cs.disable-library-validation</key>
    <true/>
    <key>com.apple.security.cs.allow-dyld-environment-variables</key>
    <true/>
</dict>
</plist>
"""

# ----------------------------------------------------------------------------
# Optional dotenv support


def _load_dotenv() -> None:
    """Attempt to load .env file if python-dotenv is available."""
    try:
        from dotenv import load_dotenv

        load_dotenv()
    except ImportError:
        pass


_load_dotenv()

# ----------------------------------------------------------------------------
# Configuration file support


def load_config(config_path: Path | None = None) -> dict[str, object]:
    """Load configuration from a TOML file.

    Searches for configuration in the following order:
    1. Explicit config_path if provided
    2. .mcrbundler.toml in current directory
    3. mcrbundler.toml in current directory

    Note: pyproject.toml is intentionally NOT searched because config
    may contain the signing identity and keychain profile.

    Args:
        config_path: Optional explicit path to config file

    Returns:
        Configuration dictionary (empty if no config found)

    Example .mcrbundler.toml:
        [build]
        output_dir = "dist"
        installer_version = "1.2"
        runtime_delivery = "installer"
        fix_installer = true

        [sign]
        identity = "John Doe (ABCDE12345)"
        entitlements = "entitlements.plist"

        [notarize]
        keychain_profile = "AC_PASSWORD"
    """
    try:
        import tomllib
    except ImportError:
        try:
            import tomli as tomllib  # type: ignore[import-not-found]
        except ImportError:
            return {}

    if config_path and config_path.exists():
        paths_to_try = [config_path]
    else:
        cwd = Path.cwd()
        paths_to_try = [
            cwd / ".mcrbundler.toml",
            cwd / "mcrbundler.toml",
        ]

    for path in paths_to_try:
        if path.exists():
            try:
                with open(path, "rb") as f:
                    data: dict[str, object] = tomllib.load(f)
            except tomllib.TOMLDecodeError as e:
                raise ConfigurationError(
                    f"Invalid configuration file {path}: {e}"
                ) from e
            return data

    return {}


def get_config_value(
    config: dict[str, object],
    section: str,
    key: str,
    default: str | None = None,
) -> str | None:
    """Get a string value from config with section.key lookup.

    Args:
        config: Configuration dictionary
        section: Section name (e.g., "build", "sign")
        key: Key name within section
        default: Default value if not found

    Returns:
        Configuration value or default
    """
    section_config = config.get(section, {})
    if not isinstance(section_config, dict):
        return default
    value = section_config.get(key, default)
    if value is None or isinstance(value, str):
        return value
    return default


def get_config_flag(
    config: dict[str, object],
    section: str,
    key: str,
    default: bool = False,
) -> bool:
    """Get a boolean value from config, ignoring non-boolean entries."""
    section_config = config.get(section, {})
    if not isinstance(section_config, dict):
        return default
    value = section_config.get(key, default)
    if isinstance(value, bool):
        return value
    return default


# Global config (loaded lazily)
_config: dict[str, object] | None = None


def get_config() -> dict[str, object]:
    """Get the global configuration, loading it if necessary."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


# ----------------------------------------------------------------------------
# Error handling


class BundlerError(Exception):
    """Base exception class for mcrbundler errors."""


class CommandError(BundlerError):
    """Exception raised when a command fails.

    The message carries the command's combined stdout/stderr so the raw
    tool output surfaces when the run aborts.
    """

    def __init__(
        self, command: str, returncode: int, output: str | None = None
    ):
        self.command = command
        self.returncode = returncode
        self.output = output
        message = f"Command '{command}' failed with return code {returncode}"
        if output and output.strip():
            message = f"{message}:\n{output.strip()}"
        super().__init__(message)


class FileError(BundlerError):
    """Exception raised when a file operation fails."""


class ConfigurationError(BundlerError):
    """Exception raised when configuration is invalid."""


class ValidationError(BundlerError):
    """Exception raised when validation fails."""


class CompilationError(BundlerError):
    """Exception raised when the MATLAB Compiler fails."""


class CodesignError(BundlerError):
    """Exception raised when codesigning fails."""


class NotarizationError(BundlerError):
    """Exception raised when notarization fails."""


class PackagingError(BundlerError):
    """Exception raised when installer packaging fails."""


# ----------------------------------------------------------------------------
# File and identity validation

# Maximum entry point size (100MB)
MAX_FILE_SIZE = 100 * 1024 * 1024

# Mach-O magic numbers for binary validation
MACHO_MAGIC_NUMBERS = {
    b"\xfe\xed\xfa\xce",  # MH_MAGIC (32-bit)
    b"\xce\xfa\xed\xfe",  # MH_CIGAM (32-bit, reverse byte order)
    b"\xfe\xed\xfa\xcf",  # MH_MAGIC_64 (64-bit)
    b"\xcf\xfa\xed\xfe",  # MH_CIGAM_64 (64-bit, reverse byte order)
    b"\xca\xfe\xba\xbe",  # FAT_MAGIC (universal binary)
    b"\xbe\xba\xfe\xca",  # FAT_CIGAM (universal binary, reverse byte order)
}

# Developer ID format: "Name" or "Name (TEAM_ID)" where TEAM_ID is 10 alphanumeric chars
DEVELOPER_ID_PATTERN = re.compile(
    r"^[A-Za-z][A-Za-z0-9\s\.\-\,\']+(?:\s+\([A-Z0-9]{10}\))?$"
)

# Certificate SHA-1 hash as printed by `security find-identity`
SHA1_IDENTITY_PATTERN = re.compile(r"^[0-9A-Fa-f]{40}$")

# Identities already naming their certificate type are passed through
CERTIFICATE_PREFIXES = (
    "Developer ID Application:",
    "Developer ID Installer:",
    "Apple Development:",
    "Apple Distribution:",
    "Mac Developer:",
    "3rd Party Mac Developer Application:",
)

MAX_IDENTITY_LENGTH = 200


def validate_file(
    path: Pathlike,
    check_executable: bool = False,
    check_macho: bool = False,
    max_size: int = MAX_FILE_SIZE,
) -> None:
    """Validate a file before handing it to an external tool.

    Args:
        path: Path to the file to validate
        check_executable: If True, verify the file is executable
        check_macho: If True, verify the file is a valid Mach-O binary
        max_size: Maximum allowed file size in bytes

    Raises:
        ValidationError: If any validation check fails
    """
    path = Path(path)

    if not path.exists():
        raise ValidationError(f"File does not exist: {path}")

    if path.is_symlink():
        raise ValidationError(f"File is a symbolic link: {path}")

    if not path.is_file():
        raise ValidationError(f"Path is not a regular file: {path}")

    if not os.access(path, os.R_OK):
        raise ValidationError(f"File is not readable: {path}")

    try:
        size = path.stat().st_size
    except OSError as e:
        raise ValidationError(f"Cannot stat file {path}: {e}") from e

    if size == 0:
        raise ValidationError(f"File is empty (zero bytes): {path}")

    if size > max_size:
        raise ValidationError(
            f"File exceeds maximum size ({size} > {max_size} bytes): {path}"
        )

    if check_executable and not os.access(path, os.X_OK):
        raise ValidationError(f"File is not executable: {path}")

    if check_macho and not is_valid_macho(path):
        raise ValidationError(f"File is not a valid Mach-O binary: {path}")


def resolve_identity(identity: str | None) -> str:
    """Turn a user-supplied signing identity into a codesign identity.

    Accepted forms:
    - a 40 character certificate SHA-1 hash
    - a full identity such as "Developer ID Application: John Doe (ABCDE12345)"
    - "John Doe" or "John Doe (ABCDE12345)", which get the
      "Developer ID Application: " prefix

    Ad-hoc signing ("-") is rejected since ad-hoc signatures cannot be
    notarized.

    Args:
        identity: The identity to resolve

    Returns:
        The identity string to pass to codesign

    Raises:
        ValidationError: If the identity is missing or malformed
    """
    if identity is None or not identity.strip():
        raise ValidationError(
            "Code signing identity cannot be empty. "
            f"Pass an identity or set the {ENV_IDENTITY} environment variable."
        )

    if any(ord(c) < 32 or ord(c) == 127 for c in identity):
        raise ValidationError(
            "Code signing identity contains control characters"
        )

    identity = identity.strip()

    if identity == "-":
        raise ValidationError(
            "Ad-hoc signing ('-') cannot be notarized; "
            "a Developer ID identity is required"
        )

    if len(identity) > MAX_IDENTITY_LENGTH:
        raise ValidationError(
            f"Code signing identity is too long "
            f"(max {MAX_IDENTITY_LENGTH} characters): '{identity}'"
        )

    if SHA1_IDENTITY_PATTERN.match(identity):
        return identity

    if identity.startswith(CERTIFICATE_PREFIXES):
        return identity

    if not DEVELOPER_ID_PATTERN.match(identity):
        raise ValidationError(
            f"Code signing identity has invalid format: '{identity}'. "
            "Expected a certificate hash, a full identity, "
            "or 'Name (TEAM_ID)' where TEAM_ID is 10 alphanumeric characters"
        )

    return f"Developer ID Application: {identity}"


def is_valid_macho(path: Pathlike) -> bool:
    """Check if a file starts with a Mach-O magic number.

    Args:
        path: Path to the file to check

    Returns:
        True if the file is a Mach-O binary, False otherwise
    """
    path = Path(path)
    if not path.exists() or not path.is_file():
        return False

    try:
        with open(path, "rb") as f:
            magic = f.read(4)
        return magic in MACHO_MAGIC_NUMBERS
    except OSError:
        return False


def get_binary_architectures(binary_path: Pathlike) -> list[str]:
    """Get the architectures of a Mach-O binary.

    Args:
        binary_path: Path to the binary file

    Returns:
        List of architecture names (e.g., ["x86_64", "ARM64"]),
        empty if the file cannot be parsed as Mach-O
    """
    path = Path(binary_path)
    if not is_valid_macho(path):
        return []

    try:
        macho = MachO(str(path))
    except (ValueError, struct.error, OSError):
        return []

    return [
        CPU_TYPE_NAMES.get(header.header.cputype, str(header.header.cputype))
        for header in macho.headers
    ]


def identity_in_keychain(
    identity: str, log: logging.Logger | None = None
) -> bool:
    """Check that a codesigning identity is installed and valid.

    Args:
        identity: Resolved identity (name or SHA-1 hash)
        log: Optional logger for command output

    Returns:
        True if `security find-identity` lists the identity
    """
    output = run_command(
        ["security", "find-identity", "-v", "-p", "codesigning"], log=log
    )
    if SHA1_IDENTITY_PATTERN.match(identity):
        return identity.upper() in output.upper()
    return identity in output


# ----------------------------------------------------------------------------
# Progress indicator


class ProgressSpinner:
    """A simple terminal spinner for long-running operations.

    Example:
        with ProgressSpinner("Waiting for notarization"):
            run_command([...])
    """

    SPINNER_CHARS = ["|", "/", "-", "\\"]

    def __init__(self, message: str = ""):
        self.message = message
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def _spin(self) -> None:
        """Spinner thread function."""
        spinner = itertools.cycle(self.SPINNER_CHARS)
        while not self._stop_event.is_set():
            sys.stdout.write(f"\r{self.message} {next(spinner)} ")
            sys.stdout.flush()
            time.sleep(0.1)
        sys.stdout.write(f"\r{self.message} done\n")
        sys.stdout.flush()

    def start(self) -> None:
        """Start the spinner."""
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._spin, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop the spinner."""
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=1.0)

    def __enter__(self) -> "ProgressSpinner":
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        self.stop()


# ----------------------------------------------------------------------------
# Logging configuration


class CustomFormatter(logging.Formatter):
    """Custom logging formatting class with color support."""

    class color:
        """Text colors for terminal output."""

        white = "\x1b[97;20m"
        grey = "\x1b[38;20m"
        green = "\x1b[32;20m"
        cyan = "\x1b[36;20m"
        yellow = "\x1b[33;20m"
        red = "\x1b[31;20m"
        bold_red = "\x1b[31;1m"
        reset = "\x1b[0m"

    cfmt = (
        f"{color.white}%(delta)s{color.reset} - "
        f"{{}}%(levelname)s{color.reset} - "
        f"{color.white}%(name)s.%(funcName)s{color.reset} - "
        f"{color.grey}%(message)s{color.reset}"
    )

    FORMATS = {
        logging.DEBUG: cfmt.format(color.grey),
        logging.INFO: cfmt.format(color.green),
        logging.WARNING: cfmt.format(color.yellow),
        logging.ERROR: cfmt.format(color.red),
        logging.CRITICAL: cfmt.format(color.bold_red),
    }

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color
        self.fmt = (
            "%(delta)s - %(levelname)s - %(name)s.%(funcName)s - %(message)s"
        )

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record with color if enabled."""
        if not self.use_color:
            log_fmt = self.fmt
        else:
            log_fmt = self.FORMATS[record.levelno]
        duration = datetime.datetime.fromtimestamp(
            record.relativeCreated / 1000, datetime.timezone.utc
        )
        record.delta = duration.strftime("%H:%M:%S")
        formatter = logging.Formatter(log_fmt)
        return formatter.format(record)


def setup_logging(debug: bool = True, use_color: bool = True) -> None:
    """Configure logging for the application.

    Args:
        debug: Whether to enable debug logging
        use_color: Whether to use colored output
    """
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(CustomFormatter(use_color))
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        handlers=[stream_handler],
    )


# ----------------------------------------------------------------------------
# Command execution utilities


def run_command(
    command: list[str],
    dry_run: bool = False,
    log: logging.Logger | None = None,
    env: dict[str, str] | None = None,
) -> str:
    """Run a command and return its combined output.

    Every external tool goes through here: stdout and stderr are merged,
    the exit status is checked, and a non-zero status raises with the
    tool's output. Uses shell=False.

    Args:
        command: The command as a list of arguments
        dry_run: If True, log command but don't execute (default: False)
        log: Optional logger for debug/dry-run output
        env: Optional environment for the child process

    Returns:
        The combined stdout/stderr output

    Raises:
        CommandError: If the command fails or cannot be started
    """
    cmd_str = " ".join(command)
    if log:
        log.debug("%s", cmd_str)
    if dry_run:
        if log:
            log.info("[DRY RUN] %s", cmd_str)
        return ""
    try:
        result = subprocess.run(
            command,
            shell=False,
            check=True,
            text=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            env=env,
        )
    except subprocess.CalledProcessError as e:
        raise CommandError(cmd_str, e.returncode, e.output) from e
    except FileNotFoundError as e:
        raise CommandError(cmd_str, 127, str(e)) from e
    return result.stdout or ""


def _log_output(log: logging.Logger, output: str, level: int = logging.DEBUG) -> None:
    for line in output.splitlines():
        if line.strip():
            log.log(level, "  %s", line.rstrip())


# ----------------------------------------------------------------------------
# Codesigning


class Codesigner:
    """Codesign MATLAB Compiler bundles with the hardened runtime.

    Every invocation has the form:

        codesign -s <identity> --verbose --force --options=runtime
                 [--deep] [--entitlements=<file>] <paths...>

    Args:
        identity: Signing identity (see resolve_identity)
        entitlements: Path to entitlements.plist, or None
        deep: If True, pass --deep
        dry_run: If True, only log the commands
        verify: If True, verify bundle signatures after signing

    Environment Variables:
        CODESIGN_IDENTITY: identity (fallback if identity not provided)

    Example:
        signer = Codesigner("John Doe (ABCDE12345)",
                            entitlements="entitlements.plist")
        signer.sign_bundle("output/hello.app")
    """

    def __init__(
        self,
        identity: str | None = None,
        entitlements: Pathlike | None = None,
        deep: bool = False,
        dry_run: bool = False,
        verify: bool = True,
    ) -> None:
        self.dry_run = dry_run
        self.deep = deep
        self.verify_after = verify
        self.log = logging.getLogger(self.__class__.__name__)

        if identity is None:
            identity = os.getenv(ENV_IDENTITY)
        self.identity = resolve_identity(identity)

        self.entitlements: Path | None
        if entitlements:
            self.entitlements = Path(entitlements)
            if not self.entitlements.is_file():
                raise ConfigurationError(
                    f"Entitlements file not found: {self.entitlements}"
                )
        else:
            self.entitlements = None

    def run_command(self, command: list[str]) -> str:
        """Run a command through the module-level run_command."""
        return run_command(command, dry_run=self.dry_run, log=self.log)

    def command(self, paths: list[Pathlike]) -> list[str]:
        """Build the codesign command line for one or more paths."""
        cmd = [
            "codesign",
            "-s",
            self.identity,
            "--verbose",
            "--force",
            "--options=runtime",
        ]
        if self.deep:
            cmd.append("--deep")
        if self.entitlements:
            cmd.append(f"--entitlements={self.entitlements}")
        cmd.extend(str(p) for p in paths)
        return cmd

    def sign(self, *paths: Pathlike) -> str:
        """Sign one or more paths with a single codesign invocation.

        Raises:
            CommandError: If codesign rejects the identity or a target
        """
        if not paths:
            raise ValueError("sign() requires at least one path")
        for path in paths:
            self.log.info("signing: %s", path)
        output = self.run_command(self.command(list(paths)))
        _log_output(self.log, output)
        return output

    def collect_executables(self, bundle: Pathlike) -> list[Path]:
        """Find the Mach-O executables in a bundle's Contents/MacOS.

        For a compiled MATLAB app these are the application executable
        plus the runtime's applauncher and prelaunch helpers.
        """
        bundle = Path(bundle)
        macos = bundle / "Contents" / "MacOS"
        if not macos.is_dir():
            return []

        executables = []
        for path in sorted(macos.iterdir()):
            if path.is_symlink() or not path.is_file():
                continue
            if not is_valid_macho(path):
                self.log.debug("skipping non Mach-O file: %s", path)
                continue
            archs = get_binary_architectures(path)
            self.log.debug(
                "found executable: %s (%s)",
                path.name,
                ", ".join(archs) or "unknown",
            )
            executables.append(path)

        expected = (bundle.stem,) + MCR_HELPER_EXECUTABLES
        found = {p.name for p in executables}
        for name in expected:
            if name not in found:
                self.log.warning("expected executable not found: %s", name)

        return executables

    def verify_signature(self, path: Pathlike) -> bool:
        """Verify codesigning of a path.

        Returns:
            True if verification succeeds
        """
        try:
            self.run_command(["codesign", "--verify", "--verbose", str(path)])
            self.log.info("verified: %s", path)
            return True
        except CommandError as e:
            self.log.error("verification failed for %s: %s", path, e)
            return False

    def sign_bundle(self, bundle: Pathlike, embedded: bool = True) -> None:
        """Sign a bundle, optionally signing its executables first.

        Args:
            bundle: Path to the .app bundle
            embedded: Sign each executable in Contents/MacOS before the bundle

        Raises:
            CommandError: If any codesign call fails
            CodesignError: If the final verification fails
        """
        bundle = Path(bundle)
        if embedded:
            for executable in self.collect_executables(bundle):
                self.sign(executable)
        self.sign(bundle)

        if self.verify_after and not self.dry_run:
            if not self.verify_signature(bundle):
                raise CodesignError(f"Signature verification failed: {bundle}")


# ----------------------------------------------------------------------------
# Notarization


class Notarizer:
    """Zip, notarize and staple a bundle.

    Args:
        keychain_profile: notarytool keychain profile
            (default: $KEYCHAIN_PROFILE, then AC_PASSWORD)
        dry_run: If True, only log the commands

    Example:
        Notarizer().process("output/hello.app")
    """

    SUBMISSION_ID_PATTERN = re.compile(
        r"^\s*id:\s*([0-9A-Fa-f]{8}-[0-9A-Fa-f-]{27})\s*$", re.MULTILINE
    )

    def __init__(
        self,
        keychain_profile: str | None = None,
        dry_run: bool = False,
    ) -> None:
        self.keychain_profile = (
            keychain_profile
            or os.getenv(ENV_KEYCHAIN_PROFILE)
            or DEFAULT_KEYCHAIN_PROFILE
        )
        self.dry_run = dry_run
        self.log = logging.getLogger(self.__class__.__name__)

    def run_command(self, command: list[str]) -> str:
        """Run a command through the module-level run_command."""
        return run_command(command, dry_run=self.dry_run, log=self.log)

    @staticmethod
    def archive_path(bundle: Pathlike) -> Path:
        """Path of the zip submitted for a bundle (alongside it)."""
        bundle = Path(bundle)
        return bundle.with_suffix(".zip")

    def create_archive(self, bundle: Pathlike) -> Path:
        """Zip a bundle with ditto, replacing any stale archive."""
        bundle = Path(bundle)
        archive = self.archive_path(bundle)
        self.log.info("Zipping %s for notarization", bundle)

        if archive.exists() and not self.dry_run:
            archive.unlink()

        self.run_command(
            ["ditto", "-c", "-k", "--keepParent", str(bundle), str(archive)]
        )
        return archive

    def submission_id(self, output: str) -> str | None:
        """Extract the submission id from notarytool output."""
        match = self.SUBMISSION_ID_PATTERN.search(output)
        return match.group(1) if match else None

    def fetch_log(self, submission_id: str) -> str:
        """Fetch the notary log for a submission."""
        return self.run_command(
            [
                "xcrun",
                "notarytool",
                "log",
                submission_id,
                "--keychain-profile",
                self.keychain_profile,
            ]
        )

    def submit(self, archive: Pathlike) -> str:
        """Submit an archive and block until the service returns a verdict.

        Raises:
            NotarizationError: If notarytool fails or the verdict is not
                Accepted
        """
        archive = Path(archive)
        self.log.info("Submitting %s for notarization", archive)
        command = [
            "xcrun",
            "notarytool",
            "submit",
            str(archive),
            "--keychain-profile",
            self.keychain_profile,
            "--wait",
        ]
        try:
            if self.dry_run:
                return self.run_command(command)
            with ProgressSpinner("Waiting for notarization"):
                output = self.run_command(command)
        except CommandError as e:
            raise NotarizationError(
                f"Notarization failed for {archive}: {e}"
            ) from e

        _log_output(self.log, output)
        if NOTARIZATION_ACCEPTED not in output:
            submission_id = self.submission_id(output)
            if submission_id:
                try:
                    _log_output(
                        self.log, self.fetch_log(submission_id), logging.ERROR
                    )
                except CommandError as e:
                    self.log.warning("could not fetch notary log: %s", e)
            raise NotarizationError(output.strip() or f"{archive} rejected")
        return output

    def staple(self, bundle: Pathlike) -> str:
        """Staple the notarization ticket to a bundle."""
        self.log.info("Running stapler for %s", bundle)
        command = ["xcrun", "stapler", "staple", str(bundle)]
        try:
            output = self.run_command(command)
        except CommandError as e:
            raise NotarizationError(f"Stapling failed for {bundle}: {e}") from e
        _log_output(self.log, output, logging.INFO)
        return output

    def process(self, bundle: Pathlike) -> Path:
        """Zip, submit, wait, and staple.

        Returns:
            Path to the submitted archive
        """
        bundle = Path(bundle)
        if not self.dry_run and not bundle.is_dir():
            raise FileError(f"Bundle does not exist: {bundle}")
        archive = self.create_archive(bundle)
        self.submit(archive)
        self.staple(bundle)
        return archive


# ----------------------------------------------------------------------------
# Bundle fixups


def inject_framework(
    bundle: Pathlike,
    framework: Pathlike,
    signer: Codesigner,
    dry_run: bool = False,
) -> Path:
    """Copy a framework into a bundle's Contents/Frameworks and sign it.

    Args:
        bundle: Path to the .app bundle
        framework: Path to the .framework directory
        signer: Codesigner used to sign the copied framework
        dry_run: If True, only log what would be done

    Returns:
        Path to the framework inside the bundle
    """
    log = logging.getLogger("inject_framework")
    bundle = Path(bundle)
    framework = Path(framework)

    if framework.suffix != ".framework" or not framework.is_dir():
        raise ValidationError(f"Not a framework directory: {framework}")

    dest = bundle / "Contents" / "Frameworks" / framework.name
    log.info("Injecting %s into %s", framework.name, bundle)
    if not dry_run:
        if dest.exists():
            shutil.rmtree(dest)
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copytree(framework, dest, symlinks=True)

    signer.sign(dest)
    return dest


class InstallerArchiveFixer:
    """Rebuild the application entry of an installer's embedded archive.

    The MATLAB packager mishandles symlinks when it archives the
    application into the installer. This replaces the archive's
    `application` entry with a fresh copy of the signed bundle, storing
    symlinks as symlinks, and copies every other entry unchanged.

    Args:
        installer: Path to the <Name>_installer.app bundle
        app: Path to the application bundle to embed
        archive: Archive path relative to the installer (default: search)
        dry_run: If True, only log what would be done
    """

    def __init__(
        self,
        installer: Pathlike,
        app: Pathlike,
        archive: Pathlike | None = None,
        dry_run: bool = False,
    ) -> None:
        self.installer = Path(installer)
        self.app = Path(app)
        self.archive = self.installer / archive if archive else None
        self.dry_run = dry_run
        self.log = logging.getLogger(self.__class__.__name__)

        if not self.dry_run:
            if not self.installer.is_dir():
                raise ConfigurationError(
                    f"Installer does not exist: {self.installer}"
                )
            if not self.app.is_dir():
                raise ConfigurationError(
                    f"Application does not exist: {self.app}"
                )

    @staticmethod
    def is_application_entry(name: str) -> bool:
        """True for the application entry and everything below it."""
        return name.split("/", 1)[0] == APPLICATION_ENTRY

    def locate_archive(self) -> Path:
        """Find the archive holding the application entry."""
        if self.archive is not None:
            if not self.archive.is_file():
                raise FileError(f"Installer archive not found: {self.archive}")
            return self.archive

        candidates = []
        for path in sorted(self.installer.rglob("*.zip")):
            if path.is_symlink() or not path.is_file():
                continue
            try:
                with zipfile.ZipFile(path) as zf:
                    names = zf.namelist()
            except zipfile.BadZipFile:
                self.log.debug("skipping unreadable archive: %s", path)
                continue
            if any(self.is_application_entry(n) for n in names):
                candidates.append(path)

        if not candidates:
            raise PackagingError(
                f"No archive with an '{APPLICATION_ENTRY}' entry "
                f"found in {self.installer}"
            )
        if len(candidates) > 1:
            raise PackagingError(
                "Several archives with an application entry: "
                + ", ".join(str(c) for c in candidates)
            )
        return candidates[0]

    def _add_directory_entry(self, zout: zipfile.ZipFile, arcname: str) -> None:
        info = zipfile.ZipInfo(arcname.rstrip("/") + "/")
        info.create_system = 3
        info.external_attr = ((stat.S_IFDIR | 0o755) << 16) | 0x10
        zout.writestr(info, b"")

    def _add_symlink(self, zout: zipfile.ZipFile, path: Path, arcname: str) -> None:
        info = zipfile.ZipInfo(arcname)
        info.date_time = time.localtime(max(path.lstat().st_mtime, 315619200))[:6]
        info.create_system = 3
        info.external_attr = (stat.S_IFLNK | 0o755) << 16
        zout.writestr(info, os.readlink(path))

    def _add_application(self, zout: zipfile.ZipFile) -> int:
        """Write the application bundle below the application entry."""
        base = f"{APPLICATION_ENTRY}/{self.app.name}"
        self._add_directory_entry(zout, APPLICATION_ENTRY)
        zout.write(self.app, base)
        count = 1

        for dirpath, dirnames, filenames in os.walk(self.app):
            dirnames.sort()
            current = Path(dirpath)
            for name in dirnames:
                path = current / name
                arcname = f"{base}/{path.relative_to(self.app).as_posix()}"
                if path.is_symlink():
                    self._add_symlink(zout, path, arcname)
                else:
                    zout.write(path, arcname)
                count += 1
            for name in sorted(filenames):
                path = current / name
                arcname = f"{base}/{path.relative_to(self.app).as_posix()}"
                if path.is_symlink():
                    self._add_symlink(zout, path, arcname)
                else:
                    zout.write(path, arcname)
                count += 1
        return count

    def rewrite(self, archive: Path) -> None:
        """Rewrite an archive in place with a fresh application entry."""
        fd, tmp_name = tempfile.mkstemp(
            suffix=".zip", prefix=".fix-", dir=archive.parent
        )
        os.close(fd)
        tmp = Path(tmp_name)
        try:
            with zipfile.ZipFile(archive) as zin, zipfile.ZipFile(
                tmp, "w", compression=zipfile.ZIP_DEFLATED
            ) as zout:
                dropped = 0
                for info in zin.infolist():
                    if self.is_application_entry(info.filename):
                        dropped += 1
                        continue
                    zout.writestr(info, zin.read(info))
                added = self._add_application(zout)
            shutil.copymode(archive, tmp)
            os.replace(tmp, archive)
        finally:
            if tmp.exists():
                tmp.unlink()
        self.log.info(
            "replaced %d application entries with %d from %s",
            dropped,
            added,
            self.app,
        )

    def process(self) -> Path | None:
        """Locate and rewrite the installer archive.

        Returns:
            Path to the rewritten archive (None in dry-run mode)
        """
        self.log.info("Fixing installer archive in %s", self.installer)
        if self.dry_run:
            self.log.info(
                "[DRY RUN] replace '%s' entry with %s", APPLICATION_ENTRY, self.app
            )
            return None
        archive = self.locate_archive()
        self.rewrite(archive)
        return archive


# ----------------------------------------------------------------------------
# Release workflow


class ReleaseBuilder:
    """Compile, sign, notarize and package a MATLAB application.

    Args:
        main_file: Entry point (.m or .mlapp) of the application
        identity: Code signing identity (default: $CODESIGN_IDENTITY)
        output_dir: Compiler output folder, cleared on every run
        name: Application name (default: stem of main_file)
        entitlements: Path to entitlements.plist for the application
        keychain_profile: notarytool keychain profile
        framework: Optional .framework to inject into the application
        fix_installer: Rebuild the installer's embedded application archive
        installer_version: Installer version string
        runtime_delivery: "web" or "installer"
        matlab: Path to the matlab executable (default: search)
        ditto_no_rsrc: Set DITTONORSRC for the packager
        check_identity: Look up the identity in the keychain first
        dry_run: If True, log commands without executing

    Example:
        builder = ReleaseBuilder("hello.m", identity="John Doe (ABCDE12345)")
        builder.process()
    """

    def __init__(
        self,
        main_file: Pathlike,
        identity: str | None = None,
        output_dir: Pathlike = DEFAULT_OUTPUT_DIR,
        name: str | None = None,
        entitlements: Pathlike | None = DEFAULT_ENTITLEMENTS,
        keychain_profile: str | None = None,
        framework: Pathlike | None = None,
        fix_installer: bool = False,
        installer_version: str = DEFAULT_INSTALLER_VERSION,
        runtime_delivery: str = DEFAULT_RUNTIME_DELIVERY,
        matlab: Pathlike | None = None,
        ditto_no_rsrc: bool = False,
        check_identity: bool = True,
        dry_run: bool = False,
    ) -> None:
        self.log = logging.getLogger(self.__class__.__name__)
        self.dry_run = dry_run

        self.main_file = Path(main_file)
        # the entry point may be a link; check its target
        validate_file(self.main_file.resolve())

        self.name = name or self.main_file.stem
        if "/" in self.name or self.name in (".", ".."):
            raise ConfigurationError(f"Invalid application name: '{self.name}'")

        self.output_dir = Path(output_dir)

        self.framework = Path(framework) if framework else None
        if self.framework is not None and not self.framework.is_dir():
            raise ConfigurationError(f"Framework not found: {self.framework}")

        if runtime_delivery not in RUNTIME_DELIVERY_OPTIONS:
            raise ConfigurationError(
                f"Runtime delivery must be one of "
                f"{', '.join(RUNTIME_DELIVERY_OPTIONS)}: '{runtime_delivery}'"
            )
        self.runtime_delivery = runtime_delivery
        self.installer_version = installer_version
        self.apply_installer_fix = fix_installer
        self.ditto_no_rsrc = ditto_no_rsrc
        self.check_identity = check_identity
        self.matlab = matlab
        self._matlab_executable: Path | None = None

        self.app_signer = Codesigner(
            identity, entitlements=entitlements, dry_run=dry_run
        )
        self.installer_signer = Codesigner(identity, dry_run=dry_run)
        self.framework_signer = Codesigner(identity, deep=True, dry_run=dry_run)
        self.notarizer = Notarizer(keychain_profile, dry_run=dry_run)

    @property
    def app_path(self) -> Path:
        return self.output_dir / f"{self.name}.app"

    @property
    def installer_name(self) -> str:
        return f"{self.name}{INSTALLER_SUFFIX}"

    @property
    def installer_path(self) -> Path:
        return self.output_dir / f"{self.installer_name}.app"

    @property
    def required_products_path(self) -> Path:
        return self.app_path.parent / REQUIRED_PRODUCTS_FILE

    def run_command(
        self, command: list[str], env: dict[str, str] | None = None
    ) -> str:
        """Run a command through the module-level run_command."""
        return run_command(command, dry_run=self.dry_run, log=self.log, env=env)

    def matlab_executable(self) -> Path:
        """Resolve the matlab executable once per run."""
        if self._matlab_executable is None:
            matlab = find_matlab(self.matlab)
            if matlab is None:
                if not self.dry_run:
                    raise ConfigurationError(
                        "MATLAB not found. Pass --matlab or set the "
                        "MATLAB environment variable."
                    )
                matlab = Path("matlab")
            self._matlab_executable = matlab
        return self._matlab_executable

    def packager_env(self) -> dict[str, str] | None:
        """Environment for the installer packager."""
        if not self.ditto_no_rsrc:
            return None
        env = dict(os.environ)
        env[ENV_DITTO_NO_RSRC] = "true"
        return env

    def preflight(self) -> None:
        """Fail early when the identity is not in the keychain."""
        identity = self.app_signer.identity
        if not identity_in_keychain(identity, log=self.log):
            raise ValidationError(
                f"Code signing identity not found in keychain: '{identity}'"
            )

    def clean_output_dir(self) -> None:
        """Remove artifacts of a previous run."""
        target = self.output_dir.resolve()
        protected = {
            Path("/").resolve(),
            Path.home().resolve(),
            Path.cwd().resolve(),
        }
        if target in protected or self.main_file.resolve().is_relative_to(
            target
        ):
            raise ConfigurationError(
                f"Refusing to clear output directory: {self.output_dir}"
            )

        if not self.output_dir.exists():
            return
        if not self.output_dir.is_dir():
            raise ConfigurationError(
                f"Output path is not a directory: {self.output_dir}"
            )

        self.log.info("Removing previous output: %s", self.output_dir)
        if not self.dry_run:
            shutil.rmtree(self.output_dir)

    def build_application(self) -> Path:
        """Compile the entry point into <output_dir>/<name>.app."""
        self.log.info("Compiling %s", self.main_file)
        if not self.dry_run:
            self.output_dir.mkdir(parents=True, exist_ok=True)

        # matlab -batch may start in another folder
        script = standalone_application_script(
            self.main_file.absolute(), self.name, self.output_dir.absolute()
        )
        try:
            output = self.run_command(
                batch_command(script, self.matlab_executable())
            )
        except CommandError as e:
            raise CompilationError(
                f"MATLAB Compiler failed for {self.main_file}: {e}"
            ) from e
        _log_output(self.log, output)

        if not self.dry_run and not self.app_path.is_dir():
            raise CompilationError(
                f"Compiler did not produce {self.app_path}"
            )
        return self.app_path

    def inject_framework(self) -> Path | None:
        if self.framework is None:
            return None
        return inject_framework(
            self.app_path,
            self.framework,
            self.framework_signer,
            dry_run=self.dry_run,
        )

    def sign_application(self) -> None:
        self.app_signer.sign_bundle(self.app_path)

    def notarize(self, bundle: Pathlike) -> Path:
        return self.notarizer.process(bundle)

    def make_installer(self) -> Path:
        """Package the application into <output_dir>/<name>_installer.app."""
        if not self.dry_run and not self.required_products_path.is_file():
            raise FileError(
                f"Required products manifest not found: "
                f"{self.required_products_path}"
            )

        if self.installer_path.exists():
            self.log.info("Removing old installer: %s", self.installer_path)
            if not self.dry_run:
                shutil.rmtree(self.installer_path)

        script = installer_script(
            self.app_path.absolute(),
            self.required_products_path.absolute(),
            name=self.name,
            installer_name=self.installer_name,
            version=self.installer_version,
            runtime_delivery=self.runtime_delivery,
            output_dir=self.output_dir.absolute(),
        )
        try:
            output = self.run_command(
                batch_command(script, self.matlab_executable()),
                env=self.packager_env(),
            )
        except CommandError as e:
            raise PackagingError(
                f"Installer packaging failed for {self.app_path}: {e}"
            ) from e
        _log_output(self.log, output)

        if not self.dry_run and not self.installer_path.is_dir():
            raise PackagingError(
                f"Packager did not produce {self.installer_path}"
            )
        return self.installer_path

    def fix_installer_archive(self) -> Path | None:
        fixer = InstallerArchiveFixer(
            self.installer_path, self.app_path, dry_run=self.dry_run
        )
        return fixer.process()

    def sign_installer(self) -> None:
        self.installer_signer.sign_bundle(self.installer_path, embedded=False)

    def process(self) -> Path:
        """Execute the full release workflow.

        Returns:
            Path to the signed and notarized installer
        """
        self.log.info("Starting release build for %s", self.main_file)

        if self.check_identity and not self.dry_run:
            self.preflight()

        self.clean_output_dir()
        self.build_application()

        if self.framework is not None:
            self.log.info("Inject framework")
            self.inject_framework()

        self.log.info("Codesign the application")
        self.sign_application()

        self.log.info("Notarize the application")
        self.notarize(self.app_path)

        self.log.info("Make installer")
        self.make_installer()

        if self.apply_installer_fix:
            self.log.info("Fix installer archive")
            self.fix_installer_archive()

        self.log.info("Codesign the installer")
        self.sign_installer()

        self.log.info("Notarize the installer")
        self.notarize(self.installer_path)

        self.log.info("DONE: %s", self.installer_path)
        return self.installer_path


# ----------------------------------------------------------------------------
# Functional API


def make_release(
    main_file: Pathlike,
    identity: str | None = None,
    output_dir: Pathlike = DEFAULT_OUTPUT_DIR,
    name: str | None = None,
    **options: object,
) -> Path:
    """Compile, sign, notarize and package a MATLAB application.

    This is a convenience function that creates a ReleaseBuilder
    instance and calls process() on it. Extra keyword options are
    passed to ReleaseBuilder.

    Returns:
        Path to the installer bundle

    Example:
        installer = make_release("hello.m", identity="John Doe (ABCDE12345)")
    """
    builder = ReleaseBuilder(
        main_file,
        identity=identity,
        output_dir=output_dir,
        name=name,
        **options,  # type: ignore[arg-type]
    )
    return builder.process()


def write_entitlements(path: Pathlike, force: bool = False) -> Path:
    """Write the default entitlements for MATLAB Runtime applications."""
    path = Path(path)
    if path.exists() and not force:
        raise FileError(f"File already exists: {path} (use --force)")
    path.write_text(ENTITLEMENTS_PLIST_TMPL, encoding="utf-8")
    return path


# ----------------------------------------------------------------------------
# Command-line interface


def _add_common_options(parser: argparse.ArgumentParser) -> None:
    """Add common options to a parser."""
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="enable verbose/debug logging",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="disable colored output",
    )


def _cmd_build(args: argparse.Namespace) -> None:
    """Handle 'build' subcommand."""
    setup_logging(args.verbose, not args.no_color)
    log = logging.getLogger("mcrbundler")

    config = get_config()
    identity = args.identity or get_config_value(config, "sign", "identity")
    entitlements = (
        args.entitlements
        or get_config_value(config, "sign", "entitlements")
        or DEFAULT_ENTITLEMENTS
    )
    keychain_profile = args.keychain_profile or get_config_value(
        config, "notarize", "keychain_profile"
    )
    output_dir = (
        args.output_dir
        or get_config_value(config, "build", "output_dir")
        or DEFAULT_OUTPUT_DIR
    )
    name = args.name or get_config_value(config, "build", "name")
    framework = args.framework or get_config_value(config, "build", "framework")
    installer_version = (
        args.installer_version
        or get_config_value(config, "build", "installer_version")
        or DEFAULT_INSTALLER_VERSION
    )
    runtime_delivery = (
        args.runtime_delivery
        or get_config_value(config, "build", "runtime_delivery")
        or DEFAULT_RUNTIME_DELIVERY
    )
    matlab = args.matlab or get_config_value(config, "build", "matlab")
    fix_installer = args.fix_installer
    if fix_installer is None:
        fix_installer = get_config_flag(config, "build", "fix_installer")
    ditto_no_rsrc = args.ditto_no_rsrc
    if ditto_no_rsrc is None:
        ditto_no_rsrc = get_config_flag(config, "build", "ditto_no_rsrc")

    main_file = Path(args.main_file)
    if not main_file.exists():
        log.error("Main file does not exist: %s", main_file)
        sys.exit(1)

    builder = ReleaseBuilder(
        main_file,
        identity=identity,
        output_dir=output_dir,
        name=name,
        entitlements=entitlements,
        keychain_profile=keychain_profile,
        framework=framework,
        fix_installer=fix_installer,
        installer_version=installer_version,
        runtime_delivery=runtime_delivery,
        matlab=matlab,
        ditto_no_rsrc=ditto_no_rsrc,
        check_identity=not args.no_identity_check,
        dry_run=args.dry_run,
    )
    installer = builder.process()
    log.info("Created: %s", installer)


def _cmd_sign(args: argparse.Namespace) -> None:
    """Handle 'sign' subcommand."""
    setup_logging(args.verbose, not args.no_color)
    log = logging.getLogger("mcrbundler")

    config = get_config()
    identity = args.identity or get_config_value(config, "sign", "identity")
    entitlements = args.entitlements
    if entitlements is None:
        entitlements = get_config_value(config, "sign", "entitlements")

    for path in args.paths:
        if not Path(path).exists():
            log.error("Path does not exist: %s", path)
            sys.exit(1)

    signer = Codesigner(
        identity,
        entitlements=entitlements,
        deep=args.deep,
        dry_run=args.dry_run,
    )
    signer.sign(*args.paths)
    log.info("Signed: %s", ", ".join(args.paths))


def _cmd_notarize(args: argparse.Namespace) -> None:
    """Handle 'notarize' subcommand."""
    setup_logging(args.verbose, not args.no_color)
    log = logging.getLogger("mcrbundler")

    config = get_config()
    keychain_profile = args.keychain_profile or get_config_value(
        config, "notarize", "keychain_profile"
    )

    bundle = Path(args.bundle)
    if not bundle.is_dir():
        log.error("Bundle does not exist: %s", bundle)
        sys.exit(1)

    notarizer = Notarizer(keychain_profile, dry_run=args.dry_run)
    notarizer.process(bundle)
    log.info("Notarized: %s", bundle)


def _cmd_fix_installer(args: argparse.Namespace) -> None:
    """Handle 'fix-installer' subcommand."""
    setup_logging(args.verbose, not args.no_color)
    log = logging.getLogger("mcrbundler")

    fixer = InstallerArchiveFixer(
        args.installer, args.app, archive=args.archive, dry_run=args.dry_run
    )
    archive = fixer.process()
    if archive:
        log.info("Rewrote: %s", archive)


def _cmd_entitlements(args: argparse.Namespace) -> None:
    """Handle 'entitlements' subcommand."""
    setup_logging(args.verbose, not args.no_color)
    log = logging.getLogger("mcrbundler")
    path = write_entitlements(args.output, force=args.force)
    log.info("Wrote: %s", path)


def main() -> None:
    """Command line interface for mcrbundler."""
    try:
        parser = argparse.ArgumentParser(
            prog="mcrbundler",
            description=(
                "Build, codesign and notarize MATLAB Compiler "
                "applications and installers for macOS."
            ),
            epilog=(
                "Examples:\n"
                "  mcrbundler build hello.m -i 'John Doe (ABCDE12345)'\n"
                "  mcrbundler sign output/hello.app -i 'John Doe'\n"
                "  mcrbundler notarize output/hello.app\n"
            ),
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        parser.add_argument(
            "--version",
            action="version",
            version=f"%(prog)s {__version__}",
        )

        subparsers = parser.add_subparsers(
            title="commands",
            dest="command",
            required=True,
        )

        # --- build subcommand ---
        build_parser = subparsers.add_parser(
            "build",
            help="compile, sign, notarize and package an application",
            description=(
                "Compile a MATLAB application, codesign and notarize it, "
                "then package, codesign and notarize its installer."
            ),
            epilog=(
                "Examples:\n"
                "  mcrbundler build hello.m -i 'John Doe (ABCDE12345)'\n"
                "  mcrbundler build hello.m -o dist -n Hello --fix-installer\n"
                "  mcrbundler build hello.m --framework Foo.framework --dry-run\n"
            ),
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        build_parser.add_argument(
            "main_file",
            help="entry point of the application (.m or .mlapp)",
        )
        build_parser.add_argument(
            "-i",
            "--identity",
            metavar="ID",
            help=f"code signing identity (or set {ENV_IDENTITY} env var)",
        )
        build_parser.add_argument(
            "-o",
            "--output-dir",
            metavar="DIR",
            help=f"output directory, cleared first (default: {DEFAULT_OUTPUT_DIR})",
        )
        build_parser.add_argument(
            "-n",
            "--name",
            metavar="NAME",
            help="application name (default: main file name)",
        )
        build_parser.add_argument(
            "-e",
            "--entitlements",
            metavar="FILE",
            help=f"path to entitlements.plist (default: {DEFAULT_ENTITLEMENTS})",
        )
        build_parser.add_argument(
            "-k",
            "--keychain-profile",
            metavar="PROFILE",
            help=(
                "keychain profile for notarytool "
                f"(default: {DEFAULT_KEYCHAIN_PROFILE})"
            ),
        )
        build_parser.add_argument(
            "--framework",
            metavar="PATH",
            help="framework to copy into Contents/Frameworks and sign",
        )
        build_parser.add_argument(
            "--fix-installer",
            action=argparse.BooleanOptionalAction,
            help="rebuild the installer's embedded application archive",
        )
        build_parser.add_argument(
            "--installer-version",
            metavar="VERSION",
            help=f"installer version (default: {DEFAULT_INSTALLER_VERSION})",
        )
        build_parser.add_argument(
            "--runtime-delivery",
            choices=RUNTIME_DELIVERY_OPTIONS,
            help=f"MATLAB Runtime delivery (default: {DEFAULT_RUNTIME_DELIVERY})",
        )
        build_parser.add_argument(
            "--matlab",
            metavar="PATH",
            help="path to the matlab executable",
        )
        build_parser.add_argument(
            "--ditto-no-rsrc",
            action=argparse.BooleanOptionalAction,
            help=f"set {ENV_DITTO_NO_RSRC}=true for the installer packager",
        )
        build_parser.add_argument(
            "--no-identity-check",
            action="store_true",
            help="skip looking up the identity in the keychain",
        )
        build_parser.add_argument(
            "--dry-run",
            action="store_true",
            help="show commands without executing",
        )
        _add_common_options(build_parser)
        build_parser.set_defaults(func=_cmd_build)

        # --- sign subcommand ---
        sign_parser = subparsers.add_parser(
            "sign",
            help="codesign one or more paths",
            description="Codesign paths with the hardened runtime.",
            epilog=(
                "Examples:\n"
                "  mcrbundler sign output/hello.app -i 'John Doe'\n"
                "  mcrbundler sign a b c -i 'John Doe' -e entitlements.plist\n"
            ),
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        sign_parser.add_argument(
            "paths",
            nargs="+",
            help="paths to sign",
        )
        sign_parser.add_argument(
            "-i",
            "--identity",
            metavar="ID",
            help=f"code signing identity (or set {ENV_IDENTITY} env var)",
        )
        sign_parser.add_argument(
            "-e",
            "--entitlements",
            metavar="FILE",
            help="path to entitlements.plist",
        )
        sign_parser.add_argument(
            "--deep",
            action="store_true",
            help="pass --deep to codesign",
        )
        sign_parser.add_argument(
            "--dry-run",
            action="store_true",
            help="show commands without executing",
        )
        _add_common_options(sign_parser)
        sign_parser.set_defaults(func=_cmd_sign)

        # --- notarize subcommand ---
        notarize_parser = subparsers.add_parser(
            "notarize",
            help="zip, notarize and staple a bundle",
            description="Zip a bundle, submit it for notarization and staple it.",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        notarize_parser.add_argument(
            "bundle",
            help="path to the bundle to notarize",
        )
        notarize_parser.add_argument(
            "-k",
            "--keychain-profile",
            metavar="PROFILE",
            help=(
                "keychain profile for notarytool "
                f"(default: {DEFAULT_KEYCHAIN_PROFILE})"
            ),
        )
        notarize_parser.add_argument(
            "--dry-run",
            action="store_true",
            help="show commands without executing",
        )
        _add_common_options(notarize_parser)
        notarize_parser.set_defaults(func=_cmd_notarize)

        # --- fix-installer subcommand ---
        fix_parser = subparsers.add_parser(
            "fix-installer",
            help="replace the application inside an installer archive",
            description=(
                "Replace the 'application' entry of the installer's "
                "embedded archive with a fresh copy of the application."
            ),
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        fix_parser.add_argument(
            "installer",
            help="path to the <Name>_installer.app bundle",
        )
        fix_parser.add_argument(
            "app",
            help="path to the application bundle",
        )
        fix_parser.add_argument(
            "--archive",
            metavar="RELPATH",
            help="archive path relative to the installer (default: search)",
        )
        fix_parser.add_argument(
            "--dry-run",
            action="store_true",
            help="show what would be done without doing it",
        )
        _add_common_options(fix_parser)
        fix_parser.set_defaults(func=_cmd_fix_installer)

        # --- entitlements subcommand ---
        entitlements_parser = subparsers.add_parser(
            "entitlements",
            help="write default MATLAB Runtime entitlements",
            description="Write an entitlements.plist for MATLAB Runtime apps.",
        )
        entitlements_parser.add_argument(
            "-o",
            "--output",
            default=DEFAULT_ENTITLEMENTS,
            metavar="FILE",
            help=f"output path (default: {DEFAULT_ENTITLEMENTS})",
        )
        entitlements_parser.add_argument(
            "-f",
            "--force",
            action="store_true",
            help="overwrite an existing file",
        )
        _add_common_options(entitlements_parser)
        entitlements_parser.set_defaults(func=_cmd_entitlements)

        args = parser.parse_args()
        args.func(args)

    except BundlerError as e:
        logging.error(str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        sys.exit(130)
    except Exception as e:
        logging.error("Unexpected error: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
