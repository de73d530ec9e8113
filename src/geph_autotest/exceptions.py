"""Custom exceptions for geph-autotest."""


class AutotestError(Exception):
    """Base exception for all geph-autotest errors."""
    pass


class ProcessError(AutotestError):
    """Raised when geph4-client process operations fail."""
    pass


class BinaryNotFoundError(ProcessError):
    """Raised when the geph4-client binary is not found or not executable."""
    pass


class RetryLimitExceeded(ProcessError):
    """Raised when the client keeps exiting before the tunnel comes up."""
    pass


class SyncError(AutotestError):
    """Raised when `geph4-client sync` output cannot be used."""
    pass


class ConfigurationError(AutotestError):
    """Raised when configuration is invalid."""
    pass


class DownloadError(AutotestError):
    """Raised when a download through the tunnel fails."""
    pass


class UploadError(AutotestError):
    """Raised when results cannot be sent to the collector."""
    pass
