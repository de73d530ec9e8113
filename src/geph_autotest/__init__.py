"""geph-autotest - connectivity and throughput prober for geph4-client."""

from .config import (
    ClientSettings,
    Credentials,
    ProbeConfig,
    TestDescriptor,
    load_config,
)
from .exceptions import (
    AutotestError,
    BinaryNotFoundError,
    ConfigurationError,
    DownloadError,
    ProcessError,
    RetryLimitExceeded,
    SyncError,
    UploadError,
)
from .logging import get_logger, setup_logging
from .measure import Downloader, Measurement, ResultRecord, ResultSink
from .probe import ProbeLoop
from .process import ClientProcess
from .streams import LineReader, OwnedStream, RelayChannel, StderrRelay
from .supervisor import ConnectionOutcome, Supervisor, SupervisorState
from .sync import ExitDescriptor, SyncInfo, parse_sync_output, run_sync

__version__ = "0.1.0"


__all__ = [
    # Tunnel supervision
    "Supervisor",
    "SupervisorState",
    "ConnectionOutcome",
    "ClientProcess",
    "LineReader",
    "OwnedStream",
    "RelayChannel",
    "StderrRelay",
    # Sync
    "SyncInfo",
    "ExitDescriptor",
    "parse_sync_output",
    "run_sync",
    # Probing
    "ProbeLoop",
    "Downloader",
    "ResultSink",
    "ResultRecord",
    "Measurement",
    # Configuration
    "ClientSettings",
    "Credentials",
    "ProbeConfig",
    "TestDescriptor",
    "load_config",
    # Exceptions
    "AutotestError",
    "ProcessError",
    "BinaryNotFoundError",
    "RetryLimitExceeded",
    "SyncError",
    "ConfigurationError",
    "DownloadError",
    "UploadError",
    # Logging
    "get_logger",
    "setup_logging",
]
