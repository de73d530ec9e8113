"""Account and exit discovery through `geph4-client sync`."""

import json
import random
import subprocess
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from .config import ClientSettings, Credentials
from .exceptions import BinaryNotFoundError, ProcessError, SyncError
from .logging import get_logger
from .utils import sanitize_command

logger = get_logger(__name__)

# sync prints [user_info, plus_exits, free_exits]
SYNC_MIN_ELEMENTS = 3
PLUS_EXITS_INDEX = 1
FREE_EXITS_INDEX = 2


class UserInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    subscription: Any = None


class ExitDescriptor(BaseModel):
    """An exit server the client can tunnel through."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    hostname: str = Field(min_length=1)


class SyncInfo(BaseModel):
    """What sync told us about the account."""

    model_config = ConfigDict(frozen=True)

    is_plus: bool
    exits: list[ExitDescriptor] = Field(min_length=1)

    def choose_exit(self, rng: random.Random | None = None) -> ExitDescriptor:
        """Pick an exit uniformly at random"""
        return (rng or random).choice(self.exits)


_exit_list = TypeAdapter(list[ExitDescriptor])


def sync_command(settings: ClientSettings, credentials: Credentials) -> list[str]:
    return [
        settings.binary_path,
        "sync",
        "--username",
        credentials.username,
        "--password",
        credentials.password.get_secret_value(),
    ]


def parse_sync_output(stdout: bytes | str) -> SyncInfo:
    """Interpret the JSON array printed by `geph4-client sync`.

    A present, non-null ``subscription`` in the first element marks a plus
    account, whose exits are the second element; free accounts use the third.

    Raises:
        SyncError: If the output is not JSON or lacks the expected elements
    """
    try:
        document = json.loads(stdout)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise SyncError(f"geph4-client sync gave bad JSON: {e}") from e

    if not isinstance(document, list) or len(document) < SYNC_MIN_ELEMENTS:
        size = len(document) if isinstance(document, list) else type(document).__name__
        raise SyncError(
            f"geph4-client sync must print an array of at least "
            f"{SYNC_MIN_ELEMENTS} elements, got {size}"
        )

    try:
        user_info = UserInfo.model_validate(document[0])
    except ValidationError as e:
        raise SyncError(f"Could not read user info from sync output: {e}") from e

    is_plus = user_info.subscription is not None
    index = PLUS_EXITS_INDEX if is_plus else FREE_EXITS_INDEX
    try:
        exits = _exit_list.validate_python(document[index])
    except ValidationError as e:
        raise SyncError(f"Could not read exit list from sync output: {e}") from e

    if not exits:
        raise SyncError("geph4-client sync returned no exits for this account")

    return SyncInfo(is_plus=is_plus, exits=exits)


def run_sync(settings: ClientSettings, credentials: Credentials) -> SyncInfo:
    """Run `geph4-client sync` to completion and parse what it prints.

    Raises:
        BinaryNotFoundError: If the binary does not exist
        ProcessError: If the binary cannot be executed
        SyncError: If its output is unusable
    """
    command = sync_command(settings, credentials)
    logger.debug("Running sync", command=sanitize_command(command))
    try:
        completed = subprocess.run(
            command,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            check=False,
        )
    except FileNotFoundError as e:
        raise BinaryNotFoundError(f"Binary not found: {settings.binary_path}") from e
    except OSError as e:
        raise ProcessError(f"Failed to run {settings.binary_path} sync: {e}") from e

    if completed.returncode != 0:
        logger.warning("sync exited with non-zero status", returncode=completed.returncode)

    info = parse_sync_output(completed.stdout)
    logger.info("Account synced", is_plus=info.is_plus, exits=len(info.exits))
    return info
