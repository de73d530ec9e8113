"""Shared pytest fixtures for geph-autotest tests."""

import os
from unittest.mock import Mock

import pytest
from fakes import FakePopen

from geph_autotest.config import ClientSettings, Credentials
from geph_autotest.sync import ExitDescriptor, SyncInfo


@pytest.fixture
def settings():
    """Client settings that never sleep between respawns."""
    return ClientSettings(retry_backoff=0.0, relay_join_timeout=2.0)


@pytest.fixture
def credentials():
    return Credentials(username="probe-user", password="s3cret-pass")


@pytest.fixture
def sync_info():
    return SyncInfo(is_plus=False, exits=[ExitDescriptor(hostname="sg-01.example.net")])


@pytest.fixture
def popen_queue(monkeypatch):
    """Patch subprocess.Popen to hand out queued fakes in order.

    Returns:
        tuple: (list to append FakePopen objects to, Mock recording calls)
    """
    fakes: list[FakePopen] = []

    def next_fake(*args, **kwargs):
        if not fakes:
            raise AssertionError("Popen called more often than expected")
        return fakes.pop(0)

    mock_popen = Mock(side_effect=next_fake)
    monkeypatch.setattr("subprocess.Popen", mock_popen)
    return fakes, mock_popen


@pytest.fixture
def mock_sleep(monkeypatch):
    """Mock time.sleep so retries and jitter do not slow tests down."""
    sleep = Mock()
    monkeypatch.setattr("time.sleep", sleep)
    return sleep


@pytest.fixture
def pipe():
    """A real OS pipe: (binary read end, write callable, close-writer callable)."""
    read_fd, write_fd = os.pipe()
    reader = os.fdopen(read_fd, "rb")
    state = {"open": True}

    def write(text: str) -> None:
        os.write(write_fd, text.encode())

    def close_writer() -> None:
        if state["open"]:
            os.close(write_fd)
            state["open"] = False

    yield reader, write, close_writer
    close_writer()
    if not reader.closed:
        reader.close()
