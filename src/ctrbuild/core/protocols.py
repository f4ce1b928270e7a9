"""Protocol definitions for dependency injection.

Every external effect ctrbuild has (filesystem, child processes, time,
environment, tool lookup, config files, UDP sockets, console output) sits
behind a Protocol here. Protocols are structural: any object with matching
methods satisfies them, no inheritance needed.

Components take these as constructor arguments; tests pass
``Mock(spec=...)`` instances instead of the production implementations.
"""

from typing import Protocol, Dict, Any, Optional, List, Union, Iterator, Tuple
from pathlib import Path


class Logger(Protocol):
    """User-facing console output (progress, warnings, errors)."""

    def info(self, message: str) -> None:
        ...

    def warning(self, message: str) -> None:
        ...

    def error(self, message: str) -> None:
        ...

    def debug(self, message: str) -> None:
        ...


class FileSystemService(Protocol):
    """Filesystem queries.

    The artifact scanner and packager only look at files through this, so
    they can be tested against an in-memory target directory.
    """

    def exists(self, path: Union[str, Path]) -> bool:
        ...

    def is_file(self, path: Union[str, Path]) -> bool:
        ...

    def is_dir(self, path: Union[str, Path]) -> bool:
        ...

    def read_file(self, path: Union[str, Path]) -> str:
        """Whole file as text."""
        ...

    def read_header(self, path: Union[str, Path], size: int) -> bytes:
        """The first ``size`` bytes of a file."""
        ...

    def mtime(self, path: Union[str, Path]) -> float:
        """Modification time in seconds since epoch."""
        ...

    def iterdir(self, path: Union[str, Path]) -> Iterator[Path]:
        ...

    def rglob(self, path: Union[str, Path], pattern: str) -> List[Path]:
        ...


class ProcessHandle(Protocol):
    """A running child process (wraps subprocess.Popen)."""

    def poll(self) -> Optional[int]:
        """Exit code, or None while still running."""
        ...

    def wait(self) -> int:
        """Block until exit and return the exit code."""
        ...

    def terminate(self) -> None:
        """Ask the process to stop."""
        ...


class ProcessResult(Protocol):
    """Outcome of a finished short command (matches subprocess.CompletedProcess)."""

    returncode: int
    stdout: str
    stderr: str


class ProcessExecutor(Protocol):
    """Child process creation.

    ``popen`` leaves stdio inherited by default so cargo output streams
    straight to the terminal; ``run`` captures output for short queries such
    as ``rustc --print sysroot``.
    """

    def popen(
        self,
        cmd: List[str],
        stdout: Optional[Any] = None,
        stderr: Optional[Any] = None,
        cwd: Optional[str] = None,
        env: Optional[Dict[str, str]] = None
    ) -> ProcessHandle:
        ...

    def run(
        self,
        cmd: List[str],
        env: Optional[Dict[str, str]] = None
    ) -> ProcessResult:
        ...


class TimeProvider(Protocol):
    """Clock and sleep, so retry delays and discovery timeouts run instantly under test."""

    def current_time(self) -> float:
        """Seconds since epoch."""
        ...

    def sleep(self, seconds: float) -> None:
        ...


class EnvironmentProvider(Protocol):
    """Process environment (DEVKITPRO, RUSTFLAGS, ...) and working directory."""

    def get_environ(self) -> Dict[str, str]:
        """A copy of the environment variables."""
        ...

    def get_cwd(self) -> Path:
        ...


class ToolLocator(Protocol):
    """PATH lookup for external tools such as 3dslink."""

    def find_tool(self, tool_name: str) -> Optional[str]:
        """Absolute path of the tool, or None if it is not on PATH."""
        ...

    def has_tool(self, tool_name: str) -> bool:
        ...


class ConfigLoader(Protocol):
    """Parses the project config file."""

    def load_yaml(self, path: str) -> Dict[str, Any]:
        ...


class DatagramSocket(Protocol):
    """The subset of a UDP socket used by device discovery."""

    def sendto(self, data: bytes, address: Tuple[str, int]) -> int:
        ...

    def recvfrom(self, bufsize: int) -> Tuple[bytes, Tuple[str, int]]:
        """Receive a datagram; raises socket.timeout when none arrives."""
        ...

    def settimeout(self, value: Optional[float]) -> None:
        ...

    def close(self) -> None:
        ...


class DatagramSocketFactory(Protocol):
    """Creates UDP sockets (broadcast-enabled when asked)."""

    def create(self, broadcast: bool = False, port: int = 0) -> DatagramSocket:
        """Open a new UDP socket bound to ``port`` (0 = any)."""
        ...
