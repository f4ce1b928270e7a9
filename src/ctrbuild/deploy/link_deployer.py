"""
DeviceDeployer - send a .3dsx to a 3DS with 3dslink.

Strategy: resolve address (discover if unset) → ping with bounded retries →
3dslink upload → return, or keep 3dslink's server running until cancelled.
"""

import threading
from pathlib import Path
from typing import List, Optional, Sequence

from ctrbuild.core.protocols import Logger, ProcessExecutor, TimeProvider, ToolLocator
from .base import DeploymentResult, DeployState, DeviceTransport
from .exceptions import ConnectionExhausted, DeviceNotFound, TransferAborted

DISCOVERY_TIMEOUT = 10.0
PING_TIMEOUT = 1.0
RETRY_DELAY = 1.0
SERVER_POLL_INTERVAL = 0.5


class DeviceDeployer:
    """
    Deploys via the netloader: discover → ping → 3dslink.

    Target devices: 3DS/2DS running the Homebrew Launcher with netloader
    open (press Y in the launcher).
    Requirements: 3dslink on PATH (devkitPro 3ds-tools)

    Args:
        transport: Discovery and ping
        process_executor: Spawns 3dslink
        time_provider: Retry delays
        tool_locator: Pre-flight check for 3dslink
        logger: Console output
        link_tool: 3dslink executable
    """

    def __init__(
        self,
        transport: DeviceTransport,
        process_executor: ProcessExecutor,
        time_provider: TimeProvider,
        tool_locator: ToolLocator,
        logger: Logger,
        link_tool: str = '3dslink'
    ):
        self.transport = transport
        self.process = process_executor
        self.time = time_provider
        self.tools = tool_locator
        self.log = logger
        self.link_tool = link_tool
        self.state = DeployState.IDLE
        self.states: List[DeployState] = [DeployState.IDLE]

    def _enter(self, state: DeployState) -> None:
        self.state = state
        self.states.append(state)

    def _fail(self, error: Exception) -> Exception:
        self._enter(DeployState.FAILED)
        return error

    def resolve(self, address: Optional[str]) -> str:
        """
        Return the device address, discovering it if none was given.

        Raises:
            DeviceNotFound: If no device answers within DISCOVERY_TIMEOUT
        """
        self._enter(DeployState.RESOLVING)
        if address:
            return address

        self.log.info("Looking for a 3DS on the local network...")
        found = self.transport.discover(DISCOVERY_TIMEOUT)
        if not found:
            raise self._fail(DeviceNotFound(
                f"No 3DS answered within {DISCOVERY_TIMEOUT:.0f}s\n\n"
                f"Troubleshooting:\n"
                f"  1. Open the Homebrew Launcher and press Y to start the netloader\n"
                f"  2. Make sure the 3DS and this machine share a network\n"
                f"  3. Pass the address shown on the 3DS screen: --address <ip>"
            ))
        self.log.info(f"Found 3DS at {found}")
        return found

    def connect(self, address: str, retries: int) -> int:
        """
        Ping the device until it answers; ``retries`` + 1 attempts at most.

        Returns:
            Number of attempts made

        Raises:
            ConnectionExhausted: If every attempt failed
        """
        total = retries + 1
        for attempt in range(1, total + 1):
            self._enter(DeployState.CONNECTING)
            if self.transport.ping(address, PING_TIMEOUT):
                return attempt
            if attempt < total:
                self.log.info(f"  ... no answer from {address} (attempt {attempt}/{total}), retrying")
                self.time.sleep(RETRY_DELAY)

        raise self._fail(ConnectionExhausted(
            f"Could not reach 3DS at {address} after {total} attempt(s)\n\n"
            f"Troubleshooting:\n"
            f"  1. Check the netloader is still open on the device\n"
            f"  2. Check the address: the netloader shows it on screen\n"
            f"  3. Allow more attempts: --retries <n>",
            attempts=total,
        ))

    def link_command(
        self,
        executable: Path,
        address: str,
        options,
        exec_args: Sequence[str]
    ) -> List[str]:
        """Build the 3dslink command line."""
        cmd = [self.link_tool, str(executable), '--address', address]
        if options.argv0:
            cmd.extend(['--arg0', options.argv0])
        if options.server:
            cmd.append('--server')
        if exec_args:
            cmd.extend(['--args', '--'])
            cmd.extend(exec_args)
        return cmd

    def _wait_for_server(self, handle, cancel: threading.Event) -> Optional[int]:
        """Block until 3dslink exits or ``cancel`` is set.

        Returns:
            3dslink's exit code, or None if we stopped it
        """
        try:
            while True:
                exit_code = handle.poll()
                if exit_code is not None:
                    return exit_code
                if cancel.wait(SERVER_POLL_INTERVAL):
                    break
        except KeyboardInterrupt:
            cancel.set()

        handle.terminate()
        handle.wait()
        return None

    def check_link_tool(self) -> None:
        """
        Raises:
            TransferAborted: If 3dslink is not installed
        """
        if not self.tools.has_tool(self.link_tool):
            raise self._fail(TransferAborted(
                f"3dslink command failed, most likely due to '{self.link_tool}' not being in $PATH\n"
                f"It ships with devkitPro's 3ds-tools package"
            ))

    def transfer(
        self,
        executable: Path,
        address: str,
        options,
        exec_args: Sequence[str],
        cancel: Optional[threading.Event]
    ) -> DeploymentResult:
        """
        Run 3dslink.

        Raises:
            TransferAborted: If 3dslink exits non-zero
        """
        self._enter(DeployState.TRANSFERRING)

        cmd = self.link_command(executable, address, options, exec_args)
        self.log.info(f"Running 3dslink: {executable} -> {address}")
        handle = self.process.popen(cmd)

        if options.server:
            self._enter(DeployState.LISTENING_FOR_NEXT)
            self.log.info("3dslink server running, press Ctrl+C to stop")
            exit_code = self._wait_for_server(handle, cancel or threading.Event())
            if exit_code:
                raise self._fail(TransferAborted(
                    f"3dslink exited with status {exit_code}", exit_code
                ))
            return DeploymentResult(
                success=True,
                address=address,
                attempts=0,
                state=DeployState.LISTENING_FOR_NEXT,
                exit_code=exit_code,
                cancelled=exit_code is None,
            )

        exit_code = handle.wait()
        if exit_code != 0:
            raise self._fail(TransferAborted(
                f"3dslink exited with status {exit_code} while sending {executable.name}\n"
                f"The transfer is not retried; run the command again once the device is ready",
                exit_code,
            ))
        self._enter(DeployState.RUNNING)
        return DeploymentResult(
            success=True,
            address=address,
            attempts=0,
            state=DeployState.RUNNING,
            exit_code=0,
        )

    def deploy(
        self,
        executable: Path,
        options,
        exec_args: Sequence[str] = (),
        cancel: Optional[threading.Event] = None
    ) -> DeploymentResult:
        """
        Send the executable: resolve → connect → transfer.

        Args:
            executable: The .3dsx to send
            options: DeployOptions
            exec_args: Arguments passed to the executable on the device
            cancel: Ends server mode when set

        Returns:
            DeploymentResult; in non-server mode this returns as soon as the
            upload is done, without waiting for the program on the device

        Raises:
            DeviceNotFound: Discovery timed out
            ConnectionExhausted: All connection attempts failed
            TransferAborted: 3dslink is missing or failed (not retried)
        """
        self.state = DeployState.IDLE
        self.states = [DeployState.IDLE]
        self.check_link_tool()
        address = self.resolve(options.address)
        attempts = self.connect(address, options.retries)
        result = self.transfer(executable, address, options, exec_args, cancel)
        result.attempts = attempts
        result.states = list(self.states)
        return result
