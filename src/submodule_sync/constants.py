import os
from pathlib import Path

"""Global constants and path definitions for Submodule Sync.

This module defines the filesystem layout (adhering to XDG standards where applicable),
application identifiers, and the GitHub wire constants used across the application.
"""

# --- Identity ---
APP_NAME = "submodule-sync"
"""str: The human-readable application name, also used as the logger name."""

USER_AGENT = "submoduleUpdater v1.0"
"""str: The User-Agent header sent with every GitHub API request."""

# --- Paths ---
_XDG_STATE = os.environ.get("XDG_STATE_HOME")
_BASE_STATE = Path(_XDG_STATE) if _XDG_STATE else Path.home() / ".local/state"

STATE_DIR = _BASE_STATE / "submodule-sync"
"""Path: The directory for runtime state data (logs)."""

LOG_FILE = STATE_DIR / "sync.log"
"""Path: The file path for the listener's rotating log."""

# --- Configuration Paths ---
_XDG_CONFIG = os.environ.get("XDG_CONFIG_HOME")
CONFIG_DIR: Path = (
    Path(_XDG_CONFIG) if _XDG_CONFIG else Path.home() / ".config"
) / "submodule-sync"
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.toml"
"""Path: The main configuration file path."""

CONFIG_ENV = "SUBMODULE_SYNC_CONFIG"
"""str: Environment variable overriding the configuration file path."""

TOKEN_ENV = "SUBMODULE_SYNC_TOKEN"
"""str: Environment variable overriding `[github].token`."""

SECRET_ENV = "SUBMODULE_SYNC_SECRET"
"""str: Environment variable overriding `[github].secret`."""

# --- Server ---
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3000
DEFAULT_PATH = "/"

# --- GitHub / Git Constants ---
GITHUB_API_URL = "https://api.github.com"
"""str: Base URL of the GitHub REST API."""

GITLINK_MODE = "160000"
"""str: Tree entry mode marking a path as a commit pointer (submodule)."""

PUSH_EVENT = "push"
"""str: The webhook event name that can trigger a sync."""

BRANCH_REF_PREFIX = "refs/heads/"
"""str: Prefix of fully qualified branch refs in push payloads."""

COMMIT_MESSAGE = "auto-update submodule {owner}/{repo} to ({sha})"
"""str: Template for the commit message written to the parent repository."""

SHA_DISPLAY_LENGTH = 8
"""int: Number of characters kept when a SHA is shown on the console."""
