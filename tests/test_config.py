"""Tests for configuration models and test plan loading."""

import pytest
from pydantic import ValidationError

from geph_autotest.config import (
    DEFAULT_CONFIG_URL,
    ClientSettings,
    Credentials,
    ProbeConfig,
    load_config,
)
from geph_autotest.exceptions import ConfigurationError

PLAN = b"""
collector = "https://collector.example.net/submit"
global_interval = 300

[endpoints.small]
url = "https://speed.example.net/1mb.bin"
iterations = 3
interval = 10

[endpoints.large]
url = "https://speed.example.net/50mb.bin"
iterations = 1
interval = 0
"""


class TestClientSettings:
    """Test cases for ClientSettings"""

    def test_defaults(self):
        settings = ClientSettings()

        assert settings.binary_path == "geph4-client"
        assert settings.readiness_marker == "TUNNEL_MANAGER MAIN LOOP"
        assert settings.proxy_url == "http://127.0.0.1:10910"
        assert settings.credential_cache == "/tmp/manual"
        assert settings.recursive is True
        assert settings.max_retries is None
        assert settings.retry_backoff == 1.0
        assert settings.config_source == DEFAULT_CONFIG_URL
        assert settings.config_is_remote

    def test_local_config_source(self):
        settings = ClientSettings(config_source="/etc/geph-autotest/plan.toml")

        assert not settings.config_is_remote

    @pytest.mark.parametrize(
        "address", ["10910", "127.0.0.1:", ":10910", "127.0.0.1:http", "127.0.0.1:70000"]
    )
    def test_rejects_bad_listen_address(self, address):
        with pytest.raises(ValidationError):
            ClientSettings(http_listen=address)

    def test_accepts_ipv6_listen_address(self):
        settings = ClientSettings(socks5_listen="[::1]:10909")

        assert settings.socks5_listen == "[::1]:10909"

    def test_validates_on_assignment(self):
        settings = ClientSettings()

        with pytest.raises(ValidationError):
            settings.max_retries = -1

    def test_rejects_unknown_fields(self):
        with pytest.raises(ValidationError):
            ClientSettings(exit_server="sg-01.example.net")

    def test_fixed_backoff(self):
        settings = ClientSettings(retry_backoff=1.0)

        assert [settings.backoff_for(n) for n in (1, 2, 10)] == [1.0, 1.0, 1.0]

    def test_exponential_backoff(self):
        settings = ClientSettings(retry_backoff=0.5, backoff_multiplier=2.0, max_backoff=4.0)

        assert [settings.backoff_for(n) for n in range(1, 7)] == [0.5, 1.0, 2.0, 4.0, 4.0, 4.0]


class TestCredentials:
    def test_password_is_not_printed(self):
        credentials = Credentials(username="probe", password="hunter22")

        assert "hunter22" not in repr(credentials)
        assert credentials.password.get_secret_value() == "hunter22"

    def test_username_required(self):
        with pytest.raises(ValidationError):
            Credentials(username="   ", password="x")

    def test_username_is_stripped(self):
        assert Credentials(username=" probe ", password="x").username == "probe"


class TestLoadConfig:
    """Test cases for load_config"""

    def test_loads_plan(self):
        config = load_config(PLAN)

        assert isinstance(config, ProbeConfig)
        assert config.collector == "https://collector.example.net/submit"
        assert config.global_interval == 300
        assert list(config.endpoints) == ["small", "large"]
        assert config.endpoints["small"].iterations == 3
        assert config.endpoints["small"].interval == 10

    def test_accepts_text(self):
        assert load_config(PLAN.decode()).global_interval == 300

    def test_ignores_unknown_keys(self):
        config = load_config(PLAN + b'\nnew_setting = "later"\n')

        assert config.global_interval == 300

    def test_no_endpoints(self):
        config = load_config(b'collector = "http://c"\nglobal_interval = 1\n')

        assert config.endpoints == {}

    @pytest.mark.parametrize(
        "document",
        [
            b"collector = ",
            b"global_interval = 10\n",
            b'collector = "http://c"\nglobal_interval = -5\n',
            b'collector = "http://c"\nglobal_interval = 1\n[endpoints.x]\nurl = "u"\n',
            b"\xff\xfe",
        ],
    )
    def test_invalid_plan(self, document):
        with pytest.raises(ConfigurationError):
            load_config(document)
