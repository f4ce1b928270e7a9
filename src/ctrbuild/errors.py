"""
ctrbuild exceptions.

Every failure that ends an invocation is a CtrBuildError subclass carrying
the process exit code the CLI should return. Device deployment errors live in
ctrbuild.deploy.exceptions and share the same base.
"""

from typing import Optional


class CtrBuildError(Exception):
    """Base class for errors that terminate an invocation."""

    exit_code = 1

    def __init__(self, message: str, exit_code: Optional[int] = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ArgumentAmbiguity(CtrBuildError):
    """
    Raised when the command line cannot be split unambiguously.

    Examples:
        - --address given without a value
        - --retries given a non-integer
        - executable args (after a second --) passed to `build`
    """

    exit_code = 2


class ToolchainNotFound(CtrBuildError):
    """Raised when the devkitPro toolchain root cannot be located."""

    exit_code = 3


class BuildFailed(CtrBuildError):
    """Raised when cargo exits non-zero. Carries cargo's own exit code."""

    def __init__(self, exit_code: Optional[int]):
        code = exit_code if exit_code else 1
        super().__init__(f"Build failed (cargo exited with status {exit_code})", code)
        self.build_exit_code = exit_code


class NoArtifactProduced(CtrBuildError):
    """Raised when a successful build left no executable to deploy."""

    exit_code = 4


class PackagingFailed(CtrBuildError):
    """Raised when smdhtool/3dsxtool fail or RomFS configuration is invalid."""

    exit_code = 5


class ConfigError(CtrBuildError):
    """Raised when ctrbuild.yaml exists but cannot be used."""

    exit_code = 9
