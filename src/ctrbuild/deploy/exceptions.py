"""
Deployment exceptions.

Custom exceptions for device deployment failures with actionable error messages.
All of them are terminal for the invocation; only connection attempts are
retried, and that happens before ConnectionExhausted is raised.
"""

from typing import Optional

from ctrbuild.errors import CtrBuildError


class DeploymentError(CtrBuildError):
    """
    Raised when deployment fails at any step.

    Distinct from BuildFailed so that "built but not deployed" can be told
    apart from "did not build".
    """
    pass


class DeviceNotFound(DeploymentError):
    """Raised when auto-discovery gets no answer before the timeout."""

    exit_code = 6


class ConnectionExhausted(DeploymentError):
    """Raised when every connection attempt to a known address failed."""

    exit_code = 7

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts


class TransferAborted(DeploymentError):
    """
    Raised when 3dslink exits non-zero during upload (or server mode).

    Never retried automatically; the caller must start a fresh deployment.
    """

    exit_code = 8

    def __init__(self, message: str, link_exit_code: Optional[int] = None):
        super().__init__(message, link_exit_code if link_exit_code else None)
        self.link_exit_code = link_exit_code
