"""Test utility functions."""

import random

import pytest

from geph_autotest.utils import (
    jittered_seconds,
    mask_sensitive_data,
    sanitize_command,
    validate_listen_address,
    validate_non_empty_string,
    validate_port,
)


class TestValidation:
    def test_validate_port(self):
        validate_port(1)
        validate_port(65535)

        for port in (0, 65536, -1):
            with pytest.raises(ValueError):
                validate_port(port)

    def test_validate_non_empty_string(self):
        assert validate_non_empty_string("  x ", "Field") == "x"

        with pytest.raises(ValueError, match="Field cannot be empty"):
            validate_non_empty_string("  ", "Field")

    def test_validate_listen_address(self):
        assert validate_listen_address(" 127.0.0.1:10910 ") == "127.0.0.1:10910"
        assert validate_listen_address("localhost:1") == "localhost:1"

        with pytest.raises(ValueError, match="host:port"):
            validate_listen_address("127.0.0.1")


class TestJitteredSeconds:
    """Sleep intervals are uniform over [0, 2 * interval]"""

    def test_bounds_are_inclusive(self):
        rng = random.Random(1234)
        samples = [jittered_seconds(2, rng) for _ in range(500)]

        assert set(samples) == {0, 1, 2, 3, 4}

    def test_mean_matches_interval(self):
        rng = random.Random(42)
        samples = [jittered_seconds(10, rng) for _ in range(20000)]

        assert 9.5 < sum(samples) / len(samples) < 10.5

    def test_zero_interval(self):
        assert jittered_seconds(0) == 0

    def test_negative_interval(self):
        with pytest.raises(ValueError):
            jittered_seconds(-1)


class TestMasking:
    def test_mask_sensitive_data(self):
        assert mask_sensitive_data("secret_password123") == "**************d123"
        assert mask_sensitive_data("abc") == "***"
        assert mask_sensitive_data(None) == "<None>"
        assert mask_sensitive_data("abcdef", show_chars=0) == "******"

    def test_sanitize_command(self):
        command = ["geph4-client", "sync", "--username", "probe", "--password", "hunter22"]

        sanitized = sanitize_command(command)

        assert sanitized == [
            "geph4-client",
            "sync",
            "--username",
            "probe",
            "--password",
            "********",
        ]
        assert command[-1] == "hunter22"

    def test_sanitize_command_trailing_flag(self):
        assert sanitize_command(["x", "--password"]) == ["x", "--password"]
