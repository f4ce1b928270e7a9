"""Production implementations of the core protocols.

Thin wrappers over pathlib, subprocess, time, os, shutil, yaml and socket.
Tests substitute mocks for all of them.
"""

import logging
import os
import shutil
import socket
import subprocess
import sys
import time
import yaml
from pathlib import Path
from typing import Dict, Any, Optional, List, Union, Iterator


class ConsoleLogger:
    """Writes user-facing messages to stderr.

    stdout is left to cargo, whose message formats may be machine-readable.
    """

    def info(self, message: str) -> None:
        print(message, file=sys.stderr)

    def warning(self, message: str) -> None:
        print(f"Warning: {message}", file=sys.stderr)

    def error(self, message: str) -> None:
        print(f"Error: {message}", file=sys.stderr)

    def debug(self, message: str) -> None:
        """Only shown with CTRBUILD_LOG=debug."""
        if logging.getLogger().isEnabledFor(logging.DEBUG):
            print(f"Debug: {message}", file=sys.stderr)


class RealFileSystemService:
    """Filesystem access through pathlib."""

    def exists(self, path: Union[str, Path]) -> bool:
        return Path(path).exists()

    def is_file(self, path: Union[str, Path]) -> bool:
        return Path(path).is_file()

    def is_dir(self, path: Union[str, Path]) -> bool:
        return Path(path).is_dir()

    def read_file(self, path: Union[str, Path]) -> str:
        return Path(path).read_text()

    def read_header(self, path: Union[str, Path], size: int) -> bytes:
        """Read at most ``size`` leading bytes (e.g. to check ELF magic)."""
        with open(path, 'rb') as f:
            return f.read(size)

    def mtime(self, path: Union[str, Path]) -> float:
        return Path(path).stat().st_mtime

    def iterdir(self, path: Union[str, Path]) -> Iterator[Path]:
        return Path(path).iterdir()

    def rglob(self, path: Union[str, Path], pattern: str) -> List[Path]:
        return list(Path(path).rglob(pattern))


class SubprocessHandle:
    """A running cargo, devkitPro tool or 3dslink child."""

    def __init__(self, popen_handle: subprocess.Popen):
        self._handle = popen_handle

    def poll(self) -> Optional[int]:
        return self._handle.poll()

    def wait(self) -> int:
        return self._handle.wait()

    def terminate(self) -> None:
        """SIGTERM on POSIX, TerminateProcess on Windows."""
        self._handle.terminate()


class SubprocessExecutor:
    """Starts child processes with the subprocess module.

    Nothing is captured by popen(): the child shares our stdin, stdout and
    stderr unless told otherwise.
    """

    def popen(
        self,
        cmd: List[str],
        stdout: Optional[Any] = None,
        stderr: Optional[Any] = None,
        cwd: Optional[str] = None,
        env: Optional[Dict[str, str]] = None
    ) -> SubprocessHandle:
        return SubprocessHandle(subprocess.Popen(cmd, stdout=stdout, stderr=stderr, cwd=cwd, env=env))

    def run(
        self,
        cmd: List[str],
        env: Optional[Dict[str, str]] = None
    ) -> subprocess.CompletedProcess:
        """Run a short query to completion, capturing its text output."""
        return subprocess.run(cmd, capture_output=True, text=True, env=env, check=False)


class SystemTimeProvider:
    """Wall clock and sleeping via the time module."""

    def current_time(self) -> float:
        return time.time()

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)


class SystemEnvironmentProvider:
    """Process environment and working directory."""

    def get_environ(self) -> Dict[str, str]:
        """Return a copy; callers may modify it for child processes."""
        return dict(os.environ)

    def get_cwd(self) -> Path:
        return Path.cwd()


class SystemToolLocator:
    """Looks up executables on PATH with shutil.which."""

    def find_tool(self, tool_name: str) -> Optional[str]:
        return shutil.which(tool_name)

    def has_tool(self, tool_name: str) -> bool:
        return self.find_tool(tool_name) is not None


class YamlConfigLoader:
    """Reads ctrbuild.yaml with PyYAML's safe loader."""

    def __init__(self, filesystem: RealFileSystemService):
        self.fs = filesystem

    def load_yaml(self, path: str) -> Dict[str, Any]:
        return yaml.safe_load(self.fs.read_file(path))


class UdpSocketFactory:
    """Opens the UDP sockets used for netloader discovery."""

    def create(self, broadcast: bool = False, port: int = 0) -> socket.socket:
        """Open a UDP socket bound to ``port``, with SO_BROADCAST when requested."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        if broadcast:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
        try:
            sock.bind(("", port))
        except OSError:
            sock.close()
            raise
        return sock
