import logging
import os
import re
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .constants import (
    APP_NAME,
    CONFIG_ENV,
    CONFIG_FILE,
    DEFAULT_HOST,
    DEFAULT_PATH,
    DEFAULT_PORT,
    GITHUB_API_URL,
    SECRET_ENV,
    TOKEN_ENV,
)

logger = logging.getLogger(APP_NAME)


class ConfigError(Exception):
    """Raised when the configuration cannot be used to run the listener."""


def parse_size(value: int | str) -> int:
    """Converts human-readable size strings (e.g., '5MB') to bytes."""
    if isinstance(value, int):
        return value
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([kmg]b?)$", str(value).strip().lower())
    if not match:
        raise ValueError(f"Invalid size format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "k": 1024,
        "kb": 1024,
        "m": 1024**2,
        "mb": 1024**2,
        "g": 1024**3,
        "gb": 1024**3,
    }
    return int(num * multiplier[unit])


def parse_time(value: int | float | str) -> float:
    """Converts human-readable time strings (e.g., '30s', '2m') to seconds."""
    if isinstance(value, (int, float)):
        return float(value)
    match = re.match(
        r"^(\d+(?:\.\d+)?)\s*(s|sec|m|min|h|hr)s?$", str(value).strip().lower()
    )
    if not match:
        raise ValueError(f"Invalid time format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {"s": 1, "sec": 1, "m": 60, "min": 60, "h": 3600, "hr": 3600}
    return num * multiplier[unit]


@dataclass(frozen=True)
class SubmoduleBinding:
    """A monitored submodule and where it is mounted in its parent repository.

    Attributes:
        repo (str): Name of the submodule repository (lookup key).
        branch (str): Branch of the submodule repository to watch.
        parent_repo (str): Name of the parent repository to update.
        parent_branch (str): Branch of the parent repository to advance.
        path (str): Path at which the submodule is mounted in the parent tree.
    """

    repo: str
    branch: str
    parent_repo: str
    parent_branch: str
    path: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SubmoduleBinding":
        """Builds a binding from a `[[submodules]]` table.

        Raises:
            ConfigError: If a key is missing or a value is not a non-empty string.
        """
        if not isinstance(data, dict):
            raise ConfigError(f"Submodule entry {data!r} must be a table")

        values = {}
        for key in cls.__dataclass_fields__:
            value = data.get(key)
            if not isinstance(value, str) or not value.strip():
                raise ConfigError(
                    f"Submodule entry {data!r} needs a non-empty '{key}' value"
                )
            values[key] = value.strip()

        values["path"] = values["path"].strip("/")
        if not values["path"]:
            raise ConfigError(f"Submodule '{values['repo']}' has an empty mount path")

        unknown = set(data) - set(cls.__dataclass_fields__)
        if unknown:
            logger.warning(
                f"Unknown config keys in [[submodules]] '{values['repo']}': "
                f"{', '.join(sorted(unknown))}. Ignoring."
            )
        return cls(**values)


@dataclass(frozen=True)
class GitHubConfig:
    """GitHub access settings.

    Attributes:
        owner (str): Account owning both the submodule and parent repositories.
        token (str): API token with write access to the parent repositories.
        secret (str): Shared secret used to sign webhook deliveries.
        api_url (str): Base URL of the REST API.
        timeout (float): Per-request timeout in seconds.
    """

    owner: str = ""
    token: str = field(default="", repr=False)
    secret: str = field(default="", repr=False)
    api_url: str = GITHUB_API_URL
    timeout: float = 30.0


@dataclass(frozen=True)
class ServerConfig:
    """Webhook listener settings.

    Attributes:
        host (str): Interface to bind.
        port (int): Port to listen on.
        path (str): URL path receiving webhook deliveries.
    """

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    path: str = DEFAULT_PATH


@dataclass(frozen=True)
class LimitsConfig:
    """Resource limitation settings.

    Attributes:
        max_log_size (int): Max bytes for the log file before rotation.
        backup_count (int): Number of rotated log files to keep.
    """

    max_log_size: int = 5 * 1024 * 1024
    backup_count: int = 5


@dataclass(frozen=True)
class Config:
    """Immutable application configuration, loaded once at startup.

    Attributes:
        github (GitHubConfig): GitHub access settings.
        server (ServerConfig): Webhook listener settings.
        limits (LimitsConfig): Resource limits.
        submodules (tuple[SubmoduleBinding, ...]): Monitored submodules, in file order.
        debug (bool): Whether raw API responses are logged.
    """

    github: GitHubConfig = field(default_factory=GitHubConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    submodules: tuple[SubmoduleBinding, ...] = ()
    debug: bool = False

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Loads configuration from a TOML file and the environment.

        Args:
            path (Path | None): Explicit config file. Falls back to the
                `SUBMODULE_SYNC_CONFIG` variable, then the XDG default.

        Returns:
            Config: The populated configuration object.

        Raises:
            ConfigError: If the file cannot be parsed or a submodule entry is invalid.
        """
        if path is None:
            env_path = os.environ.get(CONFIG_ENV)
            path = Path(env_path) if env_path else CONFIG_FILE

        instance = cls()
        if path.exists():
            instance = instance._merge_from_file(path)
        else:
            logger.warning(f"Config file {path} not found. Using defaults.")

        # Secrets from the environment win over the file.
        overrides = {}
        if token := os.environ.get(TOKEN_ENV):
            overrides["token"] = token
        if secret := os.environ.get(SECRET_ENV):
            overrides["secret"] = secret
        if overrides:
            instance = replace(instance, github=replace(instance.github, **overrides))

        return instance

    def _merge_from_file(self, path: Path) -> "Config":
        """Parses a TOML file and returns a copy of this config with it merged in.

        Args:
            path (Path): Path to the TOML file.
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Config syntax error in {path}: {e}") from e
        except OSError as e:
            raise ConfigError(f"Could not read config {path}: {e}") from e

        updates: dict[str, Any] = {}
        for section in ("github", "server", "limits"):
            if section in data and not isinstance(data[section], dict):
                raise ConfigError(f"[{section}] must be a table")

        if "github" in data:
            updates["github"] = self._update_dataclass(
                "github", self.github, data["github"]
            )
        if "server" in data:
            updates["server"] = self._update_dataclass(
                "server", self.server, data["server"]
            )
        if "limits" in data:
            updates["limits"] = self._update_dataclass(
                "limits", self.limits, data["limits"]
            )
        if "debug" in data:
            if isinstance(data["debug"], bool):
                updates["debug"] = data["debug"]
            else:
                logger.warning(
                    f"Config error in debug: expected true or false, got "
                    f"{data['debug']!r}. Falling back to default."
                )
        if "submodules" in data:
            entries = data["submodules"]
            if not isinstance(entries, list):
                raise ConfigError("'submodules' must be an array of tables")
            updates["submodules"] = tuple(
                SubmoduleBinding.from_dict(entry) for entry in entries
            )

        return replace(self, **updates)

    @staticmethod
    def _update_dataclass(section_name: str, instance: Any, updates: dict) -> Any:
        """Updates a dataclass, warning on invalid keys and parsing human-readable formats."""
        valid_keys = instance.__dataclass_fields__.keys()
        filtered_updates = {}

        invalid_keys = set(updates.keys()) - set(valid_keys)
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [{section_name}]: {', '.join(sorted(invalid_keys))}. Ignoring."
            )

        for k, v in updates.items():
            if k not in valid_keys:
                continue

            try:
                if k == "max_log_size":
                    filtered_updates[k] = parse_size(v)
                elif k == "timeout":
                    filtered_updates[k] = parse_time(v)
                elif k in ("port", "backup_count"):
                    filtered_updates[k] = int(v)
                elif k == "path":
                    if not isinstance(v, str) or not v.strip():
                        raise ValueError(f"Invalid path {v!r}")
                    filtered_updates[k] = "/" + v.strip().lstrip("/")
                else:
                    filtered_updates[k] = v
            except (TypeError, ValueError) as e:
                logger.warning(
                    f"Config error in [{section_name}].{k}: {e}. Falling back to default."
                )

        return replace(instance, **filtered_updates)

    def validate(self) -> None:
        """Checks that the listener has everything it needs to run.

        Raises:
            ConfigError: Describing every missing setting.
        """
        problems = []
        if not self.github.owner:
            problems.append("[github].owner is not set")
        if not self.github.token:
            problems.append(f"[github].token is not set (or export {TOKEN_ENV})")
        if not self.github.secret:
            problems.append(f"[github].secret is not set (or export {SECRET_ENV})")
        if not self.submodules:
            problems.append("no [[submodules]] are configured")
        if not self.server.path.startswith("/"):
            problems.append("[server].path must start with '/'")
        if problems:
            raise ConfigError("; ".join(problems))
