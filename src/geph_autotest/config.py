"""Configuration models for the prober and the remote test plan."""

import tomllib
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    ValidationError,
    field_validator,
)

from .exceptions import ConfigurationError
from .logging import get_logger
from .utils import validate_listen_address, validate_non_empty_string

logger = get_logger(__name__)

DEFAULT_CONFIG_URL = (
    "https://raw.githubusercontent.com/cheekyelf/geph-autotest/main/config.toml"
)
READINESS_MARKER = "TUNNEL_MANAGER MAIN LOOP"


class ClientSettings(BaseModel):
    """How to run geph4-client and how to talk to it once it is up."""

    model_config = ConfigDict(
        str_strip_whitespace=True, validate_assignment=True, extra="forbid"
    )

    binary_path: str = Field(default="geph4-client", min_length=1)
    http_listen: str = Field(default="127.0.0.1:10910", description="HTTP proxy")
    socks5_listen: str = Field(default="127.0.0.1:10909", description="SOCKS5 proxy")
    stats_listen: str = Field(default="127.0.0.1:10809", description="Stats server")
    credential_cache: str = Field(default="/tmp/manual", min_length=1)
    readiness_marker: str = Field(default=READINESS_MARKER, min_length=1)
    recursive: bool = Field(
        default=True, description="Pass GEPH_RECURSIVE=1 to the child"
    )

    # Respawn policy for a client that exits before the tunnel is ready
    retry_backoff: float = Field(default=1.0, ge=0.0, description="Seconds")
    backoff_multiplier: float = Field(default=1.0, ge=1.0)
    max_backoff: float = Field(default=60.0, ge=0.0, description="Seconds")
    max_retries: int | None = Field(
        default=None, ge=0, description="None retries forever"
    )

    download_timeout: float = Field(default=60.0, gt=0.0, le=3600.0)
    upload_timeout: float = Field(default=30.0, gt=0.0, le=600.0)
    relay_join_timeout: float = Field(default=1.0, ge=0.0, le=30.0)

    config_source: str = Field(
        default=DEFAULT_CONFIG_URL, description="URL or path of the test plan"
    )

    @field_validator("http_listen", "socks5_listen", "stats_listen")
    @classmethod
    def validate_listen(cls, v: str) -> str:
        """Ensure listen addresses are host:port pairs"""
        return validate_listen_address(v)

    @property
    def proxy_url(self) -> str:
        """HTTP proxy URL served by the tunnel"""
        return f"http://{self.http_listen}"

    @property
    def config_is_remote(self) -> bool:
        return self.config_source.startswith(("http://", "https://"))

    def backoff_for(self, attempt: int) -> float:
        """Delay before respawn number ``attempt`` (1-based)."""
        delay = self.retry_backoff * self.backoff_multiplier ** max(attempt - 1, 0)
        return min(delay, self.max_backoff)


class Credentials(BaseModel):
    """Account passed through to geph4-client."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    username: str
    password: SecretStr

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        return validate_non_empty_string(v, "Username")


class TestDescriptor(BaseModel):
    """One named test: what to download, how often, and how far apart."""

    __test__ = False  # not a pytest test class

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    url: str = Field(min_length=1)
    iterations: int = Field(ge=0)
    interval: int = Field(ge=0, description="Mean seconds between downloads")


class ProbeConfig(BaseModel):
    """Test plan published as TOML."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    collector: str = Field(min_length=1, description="Where results are POSTed")
    global_interval: int = Field(ge=0, description="Mean seconds between cycles")
    endpoints: dict[str, TestDescriptor] = Field(default_factory=dict)


def load_config(data: bytes | str) -> ProbeConfig:
    """Parse and validate a TOML test plan.

    Args:
        data: Raw TOML document

    Returns:
        Validated ProbeConfig

    Raises:
        ConfigurationError: If the document is not TOML or misses fields
    """
    if isinstance(data, bytes):
        try:
            data = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ConfigurationError(f"Config is not valid UTF-8: {e}") from e

    try:
        raw: dict[str, Any] = tomllib.loads(data)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Cannot parse TOML config: {e}") from e

    try:
        config = ProbeConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid test plan: {e}") from e

    logger.debug(
        "Test plan loaded",
        collector=config.collector,
        tests=sorted(config.endpoints),
    )
    return config
