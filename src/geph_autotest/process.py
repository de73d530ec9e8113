"""Process handle for a running geph4-client."""

import subprocess
from collections.abc import Mapping, Sequence
from types import TracebackType
from typing import IO, Literal

from .exceptions import BinaryNotFoundError, ProcessError
from .logging import get_logger
from .streams import StderrRelay
from .utils import sanitize_command

logger = get_logger(__name__)


class ClientProcess:
    """Owns one geph4-client child and guarantees it is killed and reaped.

    Use it as a context manager: leaving the ``with`` block for any reason
    kills the child, waits for it, then gives the stderr relay a moment to
    flush the last lines into its channel.
    """

    def __init__(self, process: "subprocess.Popen[bytes]", relay_join_timeout: float = 1.0):
        self._process = process
        self._returncode: int | None = None
        self._stderr_taken = False
        self._relay: StderrRelay | None = None
        self.relay_join_timeout = relay_join_timeout

    @classmethod
    def spawn(
        cls,
        command: Sequence[str],
        env: Mapping[str, str] | None = None,
        relay_join_timeout: float = 1.0,
    ) -> "ClientProcess":
        """Start a child with its stderr captured.

        Args:
            command: Full command line, binary first
            env: Environment for the child (inherits ours if None)
            relay_join_timeout: Seconds to wait for the relay on exit

        Raises:
            BinaryNotFoundError: If the binary does not exist
            ProcessError: If the child cannot be executed
        """
        logger.debug("Spawning child", command=sanitize_command(command))
        try:
            process = subprocess.Popen(
                list(command),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                env=dict(env) if env is not None else None,
            )
        except FileNotFoundError as e:
            raise BinaryNotFoundError(f"Binary not found: {command[0]}") from e
        except OSError as e:
            raise ProcessError(f"Failed to start {command[0]}: {e}") from e

        logger.debug("Child started", pid=process.pid)
        return cls(process, relay_join_timeout=relay_join_timeout)

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> int | None:
        return self._returncode

    @property
    def reaped(self) -> bool:
        return self._returncode is not None

    def is_running(self) -> bool:
        if self.reaped:
            return False
        return self._process.poll() is None

    def take_stderr(self) -> IO[bytes]:
        """Hand over the stderr pipe; only one owner may ever read it."""
        if self._stderr_taken:
            raise ProcessError("stderr of the child was already taken")
        stderr = self._process.stderr
        if stderr is None:
            raise ProcessError("Child was started without a stderr pipe")
        self._stderr_taken = True
        return stderr

    def attach_relay(self, relay: StderrRelay) -> None:
        self._relay = relay

    def wait(self) -> int:
        """Block until the child exits and reap it."""
        if self._returncode is None:
            self._returncode = self._process.wait()
            logger.debug("Child reaped", pid=self.pid, returncode=self._returncode)
        return self._returncode

    def terminate(self) -> int:
        """Kill and reap the child once; later calls are no-ops.

        Returns:
            The child's exit status
        """
        if self._returncode is not None:
            return self._returncode

        logger.info("Stopping geph4-client", pid=self.pid)
        try:
            self._process.kill()
        except ProcessLookupError:
            logger.debug("Child already gone before kill", pid=self.pid)
        return self.wait()

    def __enter__(self) -> "ClientProcess":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> Literal[False]:
        """Kill and reap the child, then let the relay drain.

        Returns:
            False to propagate any exception
        """
        try:
            self.terminate()
        except Exception as e:
            logger.error("Error stopping geph4-client", pid=self.pid, error=str(e))
        if self._relay is not None and not self._relay.join(self.relay_join_timeout):
            logger.warning("Stderr relay still running after child exit", pid=self.pid)
        return False  # Don't suppress exceptions
