"""Bringing up a geph4-client tunnel.

:class:`Supervisor` runs the client in sync mode to choose an exit, then
starts it in connect mode and reads its stderr until the readiness marker
appears. A client that closes stderr before that is reaped and respawned
with the same arguments. Once ready, the stderr reader is handed to a
:class:`~geph_autotest.streams.StderrRelay` and the caller gets the live
process back.
"""

import os
import random
import time
from dataclasses import dataclass
from enum import Enum

from .config import ClientSettings, Credentials
from .exceptions import ProcessError, RetryLimitExceeded
from .logging import get_logger
from .process import ClientProcess
from .streams import LineReader, OwnedStream, RelayChannel, StderrRelay, decode_line
from .sync import ExitDescriptor, SyncInfo, run_sync

logger = get_logger(__name__)


class SupervisorState(str, Enum):
    """Supervisor lifecycle states."""

    IDLE = "idle"
    SPAWNING = "spawning"
    AWAITING_READINESS = "awaiting_readiness"
    READY = "ready"


@dataclass(frozen=True)
class ConnectionOutcome:
    """A tunnel that is up, and what it took to get there."""

    process: ClientProcess
    exit_hostname: str
    is_plus: bool
    channel: RelayChannel
    relay: StderrRelay
    attempts: int = 1


class Supervisor:
    """Spawns geph4-client and waits until its tunnel is ready."""

    def __init__(
        self,
        settings: ClientSettings,
        credentials: Credentials,
        rng: random.Random | None = None,
    ):
        self.settings = settings
        self.credentials = credentials
        self._rng = rng or random.Random()
        self.state = SupervisorState.IDLE

    def connect_command(self, exit_hostname: str) -> list[str]:
        s = self.settings
        return [
            s.binary_path,
            "connect",
            "--username",
            self.credentials.username,
            "--password",
            self.credentials.password.get_secret_value(),
            "--exit-server",
            exit_hostname,
            "--http-listen",
            s.http_listen,
            "--socks5-listen",
            s.socks5_listen,
            "--stats-listen",
            s.stats_listen,
            "--credential-cache",
            s.credential_cache,
        ]

    def child_env(self) -> dict[str, str]:
        env = dict(os.environ)
        if self.settings.recursive:
            env["GEPH_RECURSIVE"] = "1"
        else:
            env.pop("GEPH_RECURSIVE", None)
        return env

    def spawn_and_wait_ready(self, sync_info: SyncInfo | None = None) -> ConnectionOutcome:
        """Bring the tunnel up, retrying while the client dies early.

        Args:
            sync_info: Result of a previous sync; runs sync when None

        Returns:
            ConnectionOutcome with the live process and its stderr channel

        Raises:
            BinaryNotFoundError: If geph4-client is missing
            ProcessError: If the client cannot be started or its stderr fails
            SyncError: If sync output is unusable
            RetryLimitExceeded: If ``max_retries`` respawns all failed
        """
        if sync_info is None:
            sync_info = run_sync(self.settings, self.credentials)
        exit_server = sync_info.choose_exit(self._rng)
        logger.info("Picked exit", exit=exit_server.hostname, is_plus=sync_info.is_plus)

        channel = RelayChannel()
        command = self.connect_command(exit_server.hostname)
        env = self.child_env()
        attempt = 0

        while True:
            attempt += 1
            self.state = SupervisorState.SPAWNING
            process = ClientProcess.spawn(
                command, env=env, relay_join_timeout=self.settings.relay_join_timeout
            )

            self.state = SupervisorState.AWAITING_READINESS
            stream = None
            try:
                stream = OwnedStream(LineReader(process.take_stderr()))
                ready = self._await_marker(stream, channel)
                if ready:
                    relay = StderrRelay(
                        stream.transfer(), channel, name=f"stderr-relay-{process.pid}"
                    ).start()
                    process.attach_relay(relay)
            except BaseException:
                # Nothing owns the child until it is handed back
                process.terminate()
                if stream is not None:
                    stream.close()
                self.state = SupervisorState.IDLE
                raise

            if ready:
                self.state = SupervisorState.READY
                logger.info("Tunnel ready", pid=process.pid, attempts=attempt)
                return ConnectionOutcome(
                    process=process,
                    exit_hostname=exit_server.hostname,
                    is_plus=sync_info.is_plus,
                    channel=channel,
                    relay=relay,
                    attempts=attempt,
                )

            returncode = process.wait()
            stream.close()
            self._before_respawn(attempt, returncode, exit_server)

    def _await_marker(self, stream: OwnedStream, channel: RelayChannel) -> bool:
        """Read stderr until the marker (True) or end of stream (False)."""
        marker = self.settings.readiness_marker
        buffer = bytearray()
        while True:
            try:
                count = stream.read_line(buffer)
            except OSError as e:
                raise ProcessError(f"Could not read geph4-client stderr: {e}") from e

            if count == 0:
                return False

            line = decode_line(buffer)
            channel.put(line)
            if marker in line:
                return True

    def _before_respawn(
        self, attempt: int, returncode: int, exit_server: ExitDescriptor
    ) -> None:
        max_retries = self.settings.max_retries
        if max_retries is not None and attempt > max_retries:
            self.state = SupervisorState.IDLE
            raise RetryLimitExceeded(
                f"geph4-client exited before the tunnel was ready "
                f"{attempt} time(s) (last status {returncode})"
            )

        delay = self.settings.backoff_for(attempt)
        logger.warning(
            "geph4-client exited before the tunnel was ready, retrying",
            attempt=attempt,
            returncode=returncode,
            exit=exit_server.hostname,
            backoff=delay,
        )
        time.sleep(delay)
