"""Cross-compilation environment for the 3DS target.

The target is fixed: armv6k-nintendo-3ds, linked against libctru from a
devkitPro install. The only inputs are the environment (DEVKITPRO, RUSTFLAGS,
SYSROOT/RUSTC), a `rustc -vV` check for a recent nightly, and one lookup of
the Rust sysroot for a prebuilt std.
"""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Tuple

from ctrbuild.core.protocols import (
    EnvironmentProvider,
    FileSystemService,
    ProcessExecutor,
)
from ctrbuild.errors import ToolchainNotFound

logger = logging.getLogger(__name__)

TARGET_TRIPLE = 'armv6k-nintendo-3ds'
TOOLCHAIN_ROOT_VAR = 'DEVKITPRO'
COMPILER_FLAGS_VAR = 'RUSTFLAGS'


MINIMUM_RUSTC_VERSION = (1, 63, 0)
MINIMUM_COMMIT_DATE = '2022-06-15'
# Channels that ship the unstable features cargo needs for this target
UNSTABLE_CHANNELS = ('nightly', 'dev')


@dataclass(frozen=True)
class RustcVersion:
    """What `rustc -vV` reports about the active toolchain."""
    version: Tuple[int, int, int]
    channel: str
    commit_date: Optional[str] = None

    @property
    def release(self) -> str:
        return '.'.join(str(part) for part in self.version)


def parse_rustc_version(output: str) -> RustcVersion:
    """Parse the verbose version output of rustc.

    Raises:
        ValueError: If there is no usable ``release:`` line
    """
    fields = {}
    for line in output.splitlines():
        key, sep, value = line.partition(':')
        if sep:
            fields[key.strip()] = value.strip()

    release = fields.get('release')
    if not release:
        raise ValueError(f"no release line in rustc output: {output!r}")

    number, _, pre = release.partition('-')
    try:
        version = tuple(int(part) for part in number.split('.')[:3])
    except ValueError:
        raise ValueError(f"unrecognized rustc release: {release!r}")
    if len(version) != 3:
        raise ValueError(f"unrecognized rustc release: {release!r}")

    if not pre:
        channel = 'stable'
    else:
        channel = pre.split('.')[0]

    commit_date = fields.get('commit-date')
    if commit_date == 'unknown':
        commit_date = None
    return RustcVersion(version=version, channel=channel, commit_date=commit_date)


@dataclass(frozen=True)
class BuildEnvironment:
    """Read-only result of BuildConfigurator.configure().

    Attributes:
        target_triple: Always TARGET_TRIPLE
        compiler_flags: Full RUSTFLAGS value passed to cargo
        toolchain_root: devkitPro install directory
        build_std: True when no prebuilt std exists and cargo needs -Z build-std
    """
    target_triple: str
    compiler_flags: str
    toolchain_root: Path
    build_std: bool = False

    def environ(self, base: Dict[str, str]) -> Dict[str, str]:
        """Return a copy of ``base`` with RUSTFLAGS replaced by our flags."""
        env = dict(base)
        env[COMPILER_FLAGS_VAR] = self.compiler_flags
        return env


def mandatory_flags(toolchain_root: Path) -> str:
    return f"-L{toolchain_root}/libctru/lib -lctru"


class BuildConfigurator:
    """Derives the BuildEnvironment for one invocation.

    Args:
        env_provider: Source of DEVKITPRO, RUSTFLAGS, SYSROOT, RUSTC
        filesystem: Used to check the toolchain root and sysroot
        process_executor: Runs `rustc -vV` and `rustc --print sysroot`
    """

    def __init__(
        self,
        env_provider: EnvironmentProvider,
        filesystem: FileSystemService,
        process_executor: ProcessExecutor
    ):
        self.env = env_provider
        self.fs = filesystem
        self.process = process_executor

    def find_toolchain_root(self, environ: Dict[str, str]) -> Path:
        root = environ.get(TOOLCHAIN_ROOT_VAR, '').strip()
        if not root:
            raise ToolchainNotFound(
                f"{TOOLCHAIN_ROOT_VAR} is not defined as an environment variable\n\n"
                f"Install devkitPro with the 3ds-dev group, then:\n"
                f"  export {TOOLCHAIN_ROOT_VAR}=/opt/devkitpro"
            )
        if not self.fs.is_dir(root):
            raise ToolchainNotFound(
                f"{TOOLCHAIN_ROOT_VAR} points at {root}, which is not a directory"
            )
        return Path(root)

    def check_rust_version(self, environ: Dict[str, str]) -> RustcVersion:
        """Require a nightly rustc recent enough for the 3DS target.

        Raises:
            ToolchainNotFound: If rustc cannot be run, is not nightly, or is too old
        """
        rustc = environ.get('RUSTC', 'rustc')
        try:
            result = self.process.run([rustc, '-vV'], env=environ)
        except OSError as e:
            raise ToolchainNotFound(
                f"Could not run `{rustc} -vV`: {e}\n\n"
                f"Install Rust with rustup, then run `rustup override set nightly`"
            )
        if result.returncode != 0:
            raise ToolchainNotFound(
                f"`{rustc} -vV` exited with status {result.returncode}\n{result.stderr}".rstrip()
            )

        try:
            rustc_version = parse_rustc_version(result.stdout)
        except ValueError as e:
            raise ToolchainNotFound(f"Could not determine the rustc version: {e}")
        logger.debug("rustc %s (%s, %s)", rustc_version.release, rustc_version.channel,
                     rustc_version.commit_date)

        if rustc_version.channel not in UNSTABLE_CHANNELS:
            raise ToolchainNotFound(
                f"ctrbuild requires a nightly rustc version, found {rustc_version.release} "
                f"({rustc_version.channel})\n"
                f"Please run `rustup override set nightly` to use nightly in the current directory."
            )

        old_version = rustc_version.version < MINIMUM_RUSTC_VERSION
        old_commit = (rustc_version.commit_date is not None
                      and rustc_version.commit_date < MINIMUM_COMMIT_DATE)
        if old_version or old_commit:
            raise ToolchainNotFound(
                f"ctrbuild requires rustc nightly version >= {MINIMUM_COMMIT_DATE}\n"
                f"Please run `rustup update nightly` to upgrade your nightly version."
            )
        return rustc_version

    def find_sysroot(self, environ: Dict[str, str]) -> Optional[Path]:
        """Finds the sysroot path of the current Rust toolchain, or None."""
        sysroot = environ.get('SYSROOT')
        if not sysroot:
            rustc = environ.get('RUSTC', 'rustc')
            try:
                result = self.process.run([rustc, '--print', 'sysroot'], env=environ)
            except OSError as e:
                logger.warning("Failed to run `%s --print sysroot`: %s", rustc, e)
                return None
            if result.returncode != 0:
                logger.warning("`%s --print sysroot` exited with %s", rustc, result.returncode)
                return None
            sysroot = result.stdout

        sysroot = sysroot.strip()
        return Path(sysroot) if sysroot else None

    def needs_build_std(self, environ: Dict[str, str]) -> bool:
        sysroot = self.find_sysroot(environ)
        if sysroot is None:
            return True
        return not self.fs.exists(sysroot / 'lib' / 'rustlib' / TARGET_TRIPLE)

    def configure(self, invocation=None) -> BuildEnvironment:
        """Build the environment for an invocation.

        The invocation does not influence the result today; it is accepted so
        every pipeline stage has the same shape.

        Raises:
            ToolchainNotFound: If DEVKITPRO is unset or not a directory, or rustc is not a
                recent nightly
        """
        environ = self.env.get_environ()
        root = self.find_toolchain_root(environ)
        self.check_rust_version(environ)

        flags = mandatory_flags(root)
        user_flags = environ.get(COMPILER_FLAGS_VAR, '').strip()
        if user_flags:
            flags = f"{flags} {user_flags}"

        build_std = self.needs_build_std(environ)
        if build_std:
            logger.info("No prebuilt std found for %s, using build-std", TARGET_TRIPLE)

        return BuildEnvironment(
            target_triple=TARGET_TRIPLE,
            compiler_flags=flags,
            toolchain_root=root,
            build_std=build_std,
        )
