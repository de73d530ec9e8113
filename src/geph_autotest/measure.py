"""Timed downloads through the tunnel and the result record sent upstream."""

import time
from collections.abc import Callable
from types import TracebackType
from typing import Literal

import requests
from pydantic import BaseModel, ConfigDict, Field

from .exceptions import DownloadError, UploadError
from .logging import get_logger

logger = get_logger(__name__)

CHUNK_SIZE = 64 * 1024


class Measurement(BaseModel):
    """One successful download."""

    model_config = ConfigDict(frozen=True)

    download_time: int = Field(ge=0, description="Milliseconds")
    timestamp: int = Field(ge=0, description="Unix seconds when it finished")


class MeasurementData(BaseModel):
    """Measurements per test name."""

    model_config = ConfigDict(populate_by_name=True)

    data: dict[str, list[Measurement]] = Field(default_factory=dict, alias="Data")


class MeasurementError(BaseModel):
    """The download error that cut the cycle short."""

    model_config = ConfigDict(populate_by_name=True)

    error: tuple[str, int] = Field(alias="Error")

    @property
    def message(self) -> str:
        return self.error[0]


class ResultRecord(BaseModel):
    """Aggregate outcome of one connect cycle, as the collector expects it."""

    model_config = ConfigDict(validate_assignment=True)

    exit: str
    is_plus: bool
    time_to_connect: int = Field(ge=0, description="Milliseconds")
    data_error: MeasurementData | MeasurementError = Field(
        default_factory=MeasurementData
    )
    geph_stderr: str = ""

    @property
    def failed(self) -> bool:
        return isinstance(self.data_error, MeasurementError)

    def record(self, name: str, measurements: list[Measurement]) -> None:
        if isinstance(self.data_error, MeasurementData):
            self.data_error.data[name] = measurements

    def record_error(self, message: str, timestamp: int) -> None:
        self.data_error = MeasurementError(error=(message, timestamp))

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


def unix_now() -> int:
    return int(time.time())


def measure_time(operation: Callable[[], object]) -> float:
    """Run ``operation`` and return how long it took in seconds.

    Raises:
        DownloadError: If the operation fails
    """
    start = time.monotonic()
    try:
        operation()
    except DownloadError:
        raise
    except (requests.RequestException, OSError) as e:
        raise DownloadError(f"could not download test file: {e}") from e
    return time.monotonic() - start


class Downloader:
    """HTTP client that routes every request through the tunnel's proxy."""

    def __init__(self, proxy_url: str, timeout: float = 60.0):
        self.proxy_url = proxy_url
        self.timeout = timeout
        self._session = requests.Session()
        self._session.proxies.update({"http": proxy_url, "https": proxy_url})
        # Only the tunnel's proxy, never HTTP(S)_PROXY from the environment
        self._session.trust_env = False

    def fetch(self, url: str) -> bytes:
        """Download a whole document into memory.

        Raises:
            DownloadError: On connection problems or a non-2xx response
        """
        try:
            response = self._session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise DownloadError(f"could not fetch {url}: {e}") from e
        return response.content

    def download(self, url: str) -> int:
        """Download ``url`` and throw the body away.

        Returns:
            Number of body bytes received

        Raises:
            DownloadError: On connection problems or a non-2xx response
        """
        received = 0
        try:
            with self._session.get(url, stream=True, timeout=self.timeout) as response:
                response.raise_for_status()
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    received += len(chunk)
        except requests.RequestException as e:
            raise DownloadError(f"could not download {url}: {e}") from e
        return received

    def timed_download(self, url: str) -> float:
        """Seconds taken to download ``url``."""
        return measure_time(lambda: self.download(url))

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> "Downloader":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> Literal[False]:
        self.close()
        return False


class ResultSink:
    """Posts result records to the collector."""

    def __init__(self, collector: str, timeout: float = 30.0):
        self.collector = collector
        self.timeout = timeout

    def upload(self, record: ResultRecord) -> None:
        """Send one record with a blocking POST.

        Raises:
            UploadError: If serialization fails or the collector rejects it
        """
        try:
            payload = record.to_json()
        except ValueError as e:
            raise UploadError(f"could not serialize result record: {e}") from e

        try:
            response = requests.post(
                self.collector,
                data=payload.encode("utf-8"),
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise UploadError(f"could not upload results to {self.collector}: {e}") from e

        logger.info("Uploaded test results", collector=self.collector, bytes=len(payload))
