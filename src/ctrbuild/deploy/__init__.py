"""
Device deployment subsystem.

Sends a packaged .3dsx to a 3DS running the Homebrew Launcher netloader:
    - NetloaderTransport: UDP discovery and reachability pings
    - DeviceDeployer: resolve → connect (with retries) → 3dslink transfer

Public API:
    - Deployer, DeviceTransport: Protocol interfaces
    - DeploymentResult, DeployState: Result types
    - parse_address: Validate device addresses
    - DeploymentError and subclasses: Exceptions
"""

from .base import Deployer, DeploymentResult, DeployState, DeviceTransport
from .factory import parse_address
from .exceptions import (
    ConnectionExhausted,
    DeploymentError,
    DeviceNotFound,
    TransferAborted,
)
from .netloader import NetloaderTransport
from .link_deployer import DeviceDeployer

__all__ = [
    # Protocols and types
    "Deployer",
    "DeviceTransport",
    "DeploymentResult",
    "DeployState",

    # Address parsing
    "parse_address",

    # Exceptions
    "DeploymentError",
    "DeviceNotFound",
    "ConnectionExhausted",
    "TransferAborted",

    # Implementations
    "NetloaderTransport",
    "DeviceDeployer",
]
