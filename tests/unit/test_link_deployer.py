"""Unit tests for DeviceDeployer.

The transport, 3dslink process and clock are all mocked, so retries and
server mode run instantly.
"""
import threading
import pytest
from pathlib import Path
from unittest.mock import Mock, call

from ctrbuild.core.protocols import Logger, ProcessExecutor, ProcessHandle, TimeProvider, ToolLocator
from ctrbuild.deploy.base import DeployState, DeviceTransport
from ctrbuild.deploy.exceptions import ConnectionExhausted, DeviceNotFound, TransferAborted
from ctrbuild.deploy.link_deployer import (
    DISCOVERY_TIMEOUT,
    RETRY_DELAY,
    DeviceDeployer,
)
from ctrbuild.utils.arguments import DeployOptions

EXECUTABLE = Path('/work/crate/target/armv6k-nintendo-3ds/debug/app.3dsx')


class TestDeviceDeployer:
    """Test DeviceDeployer.deploy()."""

    def setup_method(self):
        """Set up a reachable device and a successful 3dslink."""
        self.transport = Mock(spec=DeviceTransport)
        self.process = Mock(spec=ProcessExecutor)
        self.time = Mock(spec=TimeProvider)
        self.tools = Mock(spec=ToolLocator)
        self.logger = Mock(spec=Logger)

        self.handle = Mock(spec=ProcessHandle)
        self.handle.wait.return_value = 0
        self.process.popen.return_value = self.handle
        self.transport.ping.return_value = True
        self.transport.discover.return_value = '192.168.1.50'
        self.tools.has_tool.return_value = True

        self.deployer = DeviceDeployer(
            transport=self.transport,
            process_executor=self.process,
            time_provider=self.time,
            tool_locator=self.tools,
            logger=self.logger,
        )

    def link_cmd(self):
        return self.process.popen.call_args[0][0]

    def test_explicit_address(self):
        """A given address skips discovery."""
        # Act
        result = self.deployer.deploy(EXECUTABLE, DeployOptions(address='10.0.0.5'))

        # Assert
        self.transport.discover.assert_not_called()
        assert result.success is True
        assert result.address == '10.0.0.5'
        assert result.attempts == 1
        assert result.state is DeployState.RUNNING
        assert self.link_cmd() == ['3dslink', str(EXECUTABLE), '--address', '10.0.0.5']

    def test_state_sequence(self):
        """IDLE → RESOLVING → CONNECTING → TRANSFERRING → RUNNING."""
        result = self.deployer.deploy(EXECUTABLE, DeployOptions(address='10.0.0.5'))

        assert result.states == [
            DeployState.IDLE,
            DeployState.RESOLVING,
            DeployState.CONNECTING,
            DeployState.TRANSFERRING,
            DeployState.RUNNING,
        ]

    def test_discovery(self):
        result = self.deployer.deploy(EXECUTABLE, DeployOptions())

        self.transport.discover.assert_called_once_with(DISCOVERY_TIMEOUT)
        assert result.address == '192.168.1.50'
        assert '192.168.1.50' in self.link_cmd()

    def test_discovery_timeout(self):
        """Nobody answering the broadcast is DeviceNotFound, nothing is sent."""
        self.transport.discover.return_value = None

        with pytest.raises(DeviceNotFound) as exc_info:
            self.deployer.deploy(EXECUTABLE, DeployOptions())

        assert exc_info.value.exit_code == 6
        assert self.deployer.state is DeployState.FAILED
        self.process.popen.assert_not_called()

    def test_zero_retries_is_one_attempt(self):
        """retries=0 means exactly one connection attempt."""
        self.transport.ping.return_value = False

        with pytest.raises(ConnectionExhausted) as exc_info:
            self.deployer.deploy(EXECUTABLE, DeployOptions(address='10.0.0.5', retries=0))

        assert self.transport.ping.call_count == 1
        assert exc_info.value.attempts == 1
        assert exc_info.value.exit_code == 7
        self.time.sleep.assert_not_called()
        self.process.popen.assert_not_called()

    def test_retries_bound_attempts(self):
        """retries=2 gives at most 3 attempts, with the fixed delay between them."""
        self.transport.ping.return_value = False

        with pytest.raises(ConnectionExhausted) as exc_info:
            self.deployer.deploy(EXECUTABLE, DeployOptions(address='10.0.0.5', retries=2))

        assert self.transport.ping.call_count == 3
        assert all(c[0][0] == '10.0.0.5' for c in self.transport.ping.call_args_list)
        assert self.time.sleep.call_args_list == [call(RETRY_DELAY), call(RETRY_DELAY)]
        assert exc_info.value.attempts == 3
        assert self.deployer.state is DeployState.FAILED

    def test_success_after_retry(self):
        self.transport.ping.side_effect = [False, False, True]

        result = self.deployer.deploy(EXECUTABLE, DeployOptions(address='10.0.0.5', retries=5))

        assert result.attempts == 3
        assert result.states.count(DeployState.CONNECTING) == 3

    def test_link_command_options(self):
        """argv0, server and exec args map onto 3dslink flags."""
        options = DeployOptions(address='10.0.0.5', argv0='sdmc:/app.3dsx', server=False)

        cmd = self.deployer.link_command(EXECUTABLE, '10.0.0.5', options, ['--verbose', '--', 'x'])

        assert cmd == [
            '3dslink', str(EXECUTABLE), '--address', '10.0.0.5',
            '--arg0', 'sdmc:/app.3dsx',
            '--args', '--', '--verbose', '--', 'x',
        ]

    def test_transfer_aborted_not_retried(self):
        """A failed 3dslink is terminal and carries its exit code."""
        self.handle.wait.return_value = 4

        with pytest.raises(TransferAborted) as exc_info:
            self.deployer.deploy(EXECUTABLE, DeployOptions(address='10.0.0.5'))

        assert exc_info.value.exit_code == 4
        assert exc_info.value.link_exit_code == 4
        assert self.process.popen.call_count == 1
        assert self.transport.ping.call_count == 1
        assert self.deployer.state is DeployState.FAILED

    def test_link_tool_missing(self):
        """A missing 3dslink is reported before discovery or connection retries."""
        self.tools.has_tool.return_value = False
        self.transport.ping.return_value = False

        with pytest.raises(TransferAborted, match='PATH') as exc_info:
            self.deployer.deploy(EXECUTABLE, DeployOptions(retries=5))

        assert exc_info.value.exit_code == 8
        self.transport.discover.assert_not_called()
        self.transport.ping.assert_not_called()
        self.time.sleep.assert_not_called()
        self.process.popen.assert_not_called()
        assert self.deployer.states == [DeployState.IDLE, DeployState.FAILED]

    def test_states_reset_between_deploys(self):
        """Each deploy() reports only its own state history."""
        options = DeployOptions(address='10.0.0.5')
        self.deployer.deploy(EXECUTABLE, options)

        result = self.deployer.deploy(EXECUTABLE, options)

        assert result.states == [
            DeployState.IDLE,
            DeployState.RESOLVING,
            DeployState.CONNECTING,
            DeployState.TRANSFERRING,
            DeployState.RUNNING,
        ]


class TestServerMode:
    """Test the LISTENING_FOR_NEXT cancellable wait."""

    def setup_method(self):
        self.transport = Mock(spec=DeviceTransport)
        self.transport.ping.return_value = True
        self.process = Mock(spec=ProcessExecutor)
        self.tools = Mock(spec=ToolLocator)
        self.tools.has_tool.return_value = True
        self.handle = Mock(spec=ProcessHandle)
        self.handle.poll.return_value = None
        self.handle.wait.return_value = -15
        self.process.popen.return_value = self.handle

        self.deployer = DeviceDeployer(
            transport=self.transport,
            process_executor=self.process,
            time_provider=Mock(spec=TimeProvider),
            tool_locator=self.tools,
            logger=Mock(spec=Logger),
        )
        self.options = DeployOptions(address='10.0.0.5', server=True)

    def test_server_flag_passed(self):
        cancel = threading.Event()
        cancel.set()

        self.deployer.deploy(EXECUTABLE, self.options, cancel=cancel)

        assert '--server' in self.process.popen.call_args[0][0]

    def test_cancel_terminates_listener(self):
        """Setting the event stops 3dslink and returns a cancelled success."""
        # Arrange
        cancel = threading.Event()
        polls = []

        def poll():
            polls.append(1)
            if len(polls) == 2:
                cancel.set()
            return None

        self.handle.poll.side_effect = poll

        # Act
        result = self.deployer.deploy(EXECUTABLE, self.options, cancel=cancel)

        # Assert
        assert result.success is True
        assert result.cancelled is True
        assert result.exit_code is None
        assert result.state is DeployState.LISTENING_FOR_NEXT
        self.handle.terminate.assert_called_once()
        assert len(polls) == 2

    def test_keyboard_interrupt_terminates_listener(self):
        """Ctrl+C in server mode is a clean stop, not a crash."""
        self.handle.poll.side_effect = KeyboardInterrupt

        result = self.deployer.deploy(EXECUTABLE, self.options, cancel=threading.Event())

        assert result.cancelled is True
        self.handle.terminate.assert_called_once()

    def test_listener_exits_cleanly(self):
        self.handle.poll.return_value = 0

        result = self.deployer.deploy(EXECUTABLE, self.options, cancel=threading.Event())

        assert result.cancelled is False
        assert result.exit_code == 0
        self.handle.terminate.assert_not_called()

    def test_listener_fails(self):
        """A listener that dies with an error before cancellation is TransferAborted."""
        self.handle.poll.return_value = 1

        with pytest.raises(TransferAborted) as exc_info:
            self.deployer.deploy(EXECUTABLE, self.options, cancel=threading.Event())

        assert exc_info.value.exit_code == 1
        self.handle.terminate.assert_not_called()
