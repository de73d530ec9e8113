"""One probe cycle: connect, measure, report, tear down."""

import random
import time
from pathlib import Path

from .config import ClientSettings, Credentials, ProbeConfig, TestDescriptor, load_config
from .exceptions import ConfigurationError, DownloadError, UploadError
from .logging import get_logger
from .measure import Downloader, Measurement, ResultRecord, ResultSink, unix_now
from .streams import RelayChannel
from .supervisor import ConnectionOutcome, Supervisor
from .utils import jittered_seconds

logger = get_logger(__name__)

# Seconds between cycles until a test plan has been loaded once
FALLBACK_GLOBAL_INTERVAL = 60


class ProbeLoop:
    """Runs connect cycles against geph4-client and uploads their results.

    Each cycle brings the tunnel up, downloads every configured test file
    through it, attaches the client's stderr to the record and posts the
    record to the collector. The child is killed and reaped whatever
    happens in between.
    """

    def __init__(
        self,
        settings: ClientSettings,
        credentials: Credentials,
        rng: random.Random | None = None,
        supervisor: Supervisor | None = None,
    ):
        self.settings = settings
        self.credentials = credentials
        self._rng = rng or random.Random()
        self.supervisor = supervisor or Supervisor(settings, credentials, rng=self._rng)
        self._stderr: list[str] = []
        self.last_config: ProbeConfig | None = None

    def run_cycle(self) -> ResultRecord:
        """Run one connect cycle and upload its record.

        Returns:
            The uploaded record

        Raises:
            AutotestError: Any fatal or upload error, after the child is reaped
        """
        start = time.monotonic()
        outcome = self.supervisor.spawn_and_wait_ready()
        with outcome.process:
            time_to_connect = int((time.monotonic() - start) * 1000)
            logger.info(
                "Connected to geph",
                time_to_connect_ms=time_to_connect,
                exit=outcome.exit_hostname,
                attempts=outcome.attempts,
            )
            self._stderr = []
            record = ResultRecord(
                exit=outcome.exit_hostname,
                is_plus=outcome.is_plus,
                time_to_connect=time_to_connect,
            )

            with Downloader(
                self.settings.proxy_url, timeout=self.settings.download_timeout
            ) as downloader:
                config = self._load_config(downloader)
                self.last_config = config
                self._run_tests(config, downloader, record, outcome)

            self._drain_stderr(outcome.channel)
            record.geph_stderr = "".join(self._stderr)
            ResultSink(config.collector, timeout=self.settings.upload_timeout).upload(record)
        return record

    def run_forever(self, max_cycles: int | None = None) -> int:
        """Repeat cycles, sleeping a jittered global interval in between.

        Upload and download failures are logged and the next cycle starts;
        fatal errors propagate.

        Returns:
            Number of cycles run
        """
        cycles = 0
        while max_cycles is None or cycles < max_cycles:
            try:
                self.run_cycle()
            except (DownloadError, UploadError) as e:
                logger.error("Cycle failed", error=str(e))
            cycles += 1

            if max_cycles is not None and cycles >= max_cycles:
                break
            interval = (
                self.last_config.global_interval
                if self.last_config
                else FALLBACK_GLOBAL_INTERVAL
            )
            delay = jittered_seconds(interval, self._rng)
            logger.info("Sleeping before next cycle", seconds=delay)
            time.sleep(delay)
        return cycles

    def _load_config(self, downloader: Downloader) -> ProbeConfig:
        source = self.settings.config_source
        if self.settings.config_is_remote:
            logger.debug("Fetching test plan through the tunnel", url=source)
            return load_config(downloader.fetch(source))

        try:
            data = Path(source).read_bytes()
        except OSError as e:
            raise ConfigurationError(f"Cannot read config file {source}: {e}") from e
        return load_config(data)

    def _run_tests(
        self,
        config: ProbeConfig,
        downloader: Downloader,
        record: ResultRecord,
        outcome: ConnectionOutcome,
    ) -> None:
        for name, test in config.endpoints.items():
            logger.info(
                "Downloading test file", test=name, iterations=test.iterations
            )
            measurements = self._run_test(name, test, downloader, record)
            self._drain_stderr(outcome.channel)
            if record.failed:
                break
            record.record(name, measurements)

    def _run_test(
        self,
        name: str,
        test: TestDescriptor,
        downloader: Downloader,
        record: ResultRecord,
    ) -> list[Measurement]:
        measurements: list[Measurement] = []
        for iteration in range(test.iterations):
            try:
                elapsed = downloader.timed_download(test.url)
            except DownloadError as e:
                logger.error(
                    "Download failed", test=name, iteration=iteration, error=str(e)
                )
                record.record_error(str(e), unix_now())
                break

            millis = int(elapsed * 1000)
            logger.info("Downloaded test file", test=name, millis=millis)
            measurements.append(Measurement(download_time=millis, timestamp=unix_now()))
            time.sleep(jittered_seconds(test.interval, self._rng))
        return measurements

    def _drain_stderr(self, channel: RelayChannel) -> None:
        for line in channel.drain():
            logger.debug("geph4-client", line=line.rstrip("\n"))
            self._stderr.append(line)
