"""Core dependency injection infrastructure for ctrbuild.

Protocol-based abstractions for every external dependency (filesystem,
subprocess, time, environment, sockets, etc.) plus their production
implementations. Components receive these through their constructors.
"""

from ctrbuild.core.protocols import (
    Logger,
    FileSystemService,
    ProcessExecutor,
    ProcessHandle,
    ProcessResult,
    TimeProvider,
    EnvironmentProvider,
    ToolLocator,
    ConfigLoader,
    DatagramSocket,
    DatagramSocketFactory,
)

from ctrbuild.core.implementations import (
    ConsoleLogger,
    RealFileSystemService,
    SubprocessExecutor,
    SystemTimeProvider,
    SystemEnvironmentProvider,
    SystemToolLocator,
    YamlConfigLoader,
    UdpSocketFactory,
)

__all__ = [
    # Protocols
    "Logger",
    "FileSystemService",
    "ProcessExecutor",
    "ProcessHandle",
    "ProcessResult",
    "TimeProvider",
    "EnvironmentProvider",
    "ToolLocator",
    "ConfigLoader",
    "DatagramSocket",
    "DatagramSocketFactory",
    # Implementations
    "ConsoleLogger",
    "RealFileSystemService",
    "SubprocessExecutor",
    "SystemTimeProvider",
    "SystemEnvironmentProvider",
    "SystemToolLocator",
    "YamlConfigLoader",
    "UdpSocketFactory",
]
