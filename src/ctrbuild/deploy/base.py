"""
Deployment protocols and result types.

DeviceTransport is the discovery/reachability half of the device link
(the netloader ping); the upload itself is done by the external 3dslink
utility. Deployer is what the command router drives.
"""

import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Protocol, Sequence, runtime_checkable


class DeployState(Enum):
    IDLE = 'idle'
    RESOLVING = 'resolving'
    CONNECTING = 'connecting'
    TRANSFERRING = 'transferring'
    RUNNING = 'running'
    LISTENING_FOR_NEXT = 'listening_for_next'
    FAILED = 'failed'


@dataclass
class DeploymentResult:
    """
    Result of a deployment.

    Attributes:
        success: Whether the executable reached the device
        address: Address the executable was sent to
        attempts: Connection attempts made (1 = first try succeeded)
        state: Final state (RUNNING, or LISTENING_FOR_NEXT in server mode)
        exit_code: 3dslink's exit code (None if it was terminated by us)
        cancelled: True when server mode ended through cancellation
        states: Every state visited, in order
    """
    success: bool
    address: str
    attempts: int
    state: DeployState
    exit_code: Optional[int] = 0
    cancelled: bool = False
    states: List[DeployState] = field(default_factory=list)


@runtime_checkable
class DeviceTransport(Protocol):
    """
    Finds and pings devices running the Homebrew Launcher netloader.

    Implementations:
        - NetloaderTransport: UDP broadcast/unicast ping
    """

    def discover(self, timeout: float) -> Optional[str]:
        """
        Broadcast for a device.

        Returns:
            Address of the first device that answered, or None on timeout
        """
        ...

    def ping(self, address: str, timeout: float) -> bool:
        """Return True if the device at ``address`` answers in time."""
        ...


@runtime_checkable
class Deployer(Protocol):
    """Interface the router uses to send an executable to a device."""

    def deploy(
        self,
        executable: Path,
        options,
        exec_args: Sequence[str] = (),
        cancel: Optional[threading.Event] = None
    ) -> DeploymentResult:
        """
        Resolve, connect, transfer and (in server mode) keep listening.

        Args:
            executable: The .3dsx to send
            options: DeployOptions (address, argv0, server, retries)
            exec_args: Arguments for the executable on the device
            cancel: Ends server mode when set

        Raises:
            DeviceNotFound, ConnectionExhausted, TransferAborted
        """
        ...
