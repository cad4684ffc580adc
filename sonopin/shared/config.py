"""
Configuration loading.

The remote configuration lives in the project's store directory and is read
once per command. Server defaults can be overridden from the environment or a
.env file.
"""

import logging
import os
from pathlib import Path
from typing import Union

from dotenv import load_dotenv

from .constants import (
    STORE_DIR_NAME,
    REMOTE_CONFIG_FILENAME,
    DEFAULT_DATA_DIR,
    DEFAULT_SERVER_PORT,
    DEFAULT_SHUTDOWN_GRACE_SECONDS,
)
from .errors import CorruptState, IOFailure, NotARepo
from .models import RemoteConfig

logger = logging.getLogger(__name__)


def store_dir(root: Union[str, Path]) -> Path:
    return Path(root) / STORE_DIR_NAME


def remote_config_path(root: Union[str, Path]) -> Path:
    return store_dir(root) / REMOTE_CONFIG_FILENAME


def save_remote_config(root: Union[str, Path], config: RemoteConfig) -> Path:
    """Write the remote configuration and return its path."""
    path = remote_config_path(root)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(config.to_json())
    except OSError as e:
        raise IOFailure(f"Could not write remote config {path}: {e}") from e
    logger.debug("Remote config saved to %s", path)
    return path


def load_remote_config(root: Union[str, Path]) -> RemoteConfig:
    """
    Load the remote configuration of a project.

    Args:
        root: Project root (the directory holding the store directory)

    Returns:
        RemoteConfig instance

    Raises:
        NotARepo: if the root has no store directory
        CorruptState: if the config file is missing or unreadable
    """
    if not store_dir(root).is_dir():
        raise NotARepo(f"{Path(root).resolve()} is not a sonopin project")

    path = remote_config_path(root)
    try:
        return RemoteConfig.from_json(path.read_text())
    except FileNotFoundError as e:
        raise CorruptState(f"Remote config not found: {path}") from e
    except (ValueError, TypeError, KeyError, AttributeError) as e:
        raise CorruptState(f"Remote config {path} is invalid: {e}") from e
    except OSError as e:
        raise IOFailure(f"Could not read remote config {path}: {e}") from e


def server_defaults() -> dict:
    """
    Server settings from the environment (a .env file is honoured).

    SONOPIN_DATA_DIR, SONOPIN_PORT and SONOPIN_SHUTDOWN_GRACE override the
    built-in defaults.
    """
    load_dotenv()
    return {
        "data_dir": os.getenv("SONOPIN_DATA_DIR", DEFAULT_DATA_DIR),
        "port": int(os.getenv("SONOPIN_PORT", DEFAULT_SERVER_PORT)),
        "grace": float(os.getenv("SONOPIN_SHUTDOWN_GRACE", DEFAULT_SHUTDOWN_GRACE_SECONDS)),
    }
