"""
Default locations used by packsync.
"""

import os
import platform
from pathlib import Path

import platformdirs

from packsync.constants import APP_NAME, GAME_DIR_NAME, MACOS_GAME_DIR_NAME


def get_platform() -> str:
    """Return "windows", "mac" or "linux" for the running system."""
    system = platform.system()
    if system == "Windows":
        return "windows"
    if system == "Darwin":
        return "mac"
    return "linux"


def default_game_dir() -> Path:
    """
    Return the default game directory packs are installed into.

    - Windows: `%APPDATA%\\.minecraft` (falls back to the roaming AppData
      directory under the user profile when APPDATA is unset)
    - macOS: `~/Library/Application Support/minecraft`
    - Others: `~/.minecraft`

    This is informational; nothing in the reconciliation engine reads it.
    """
    current = get_platform()
    if current == "windows":
        appdata = os.environ.get("APPDATA")
        base = Path(appdata) if appdata else Path.home() / "AppData" / "Roaming"
        return base / GAME_DIR_NAME
    if current == "mac":
        return Path.home() / "Library" / "Application Support" / MACOS_GAME_DIR_NAME
    return Path.home() / GAME_DIR_NAME


def config_dir() -> Path:
    return Path(platformdirs.user_config_dir(APP_NAME))


def log_dir() -> Path:
    return Path(platformdirs.user_log_dir(APP_NAME))
