"""Structured audit logging for received events and sync outcomes.

Every decision the router and orchestrator make is recorded through `AuditLog`.
Records are plain `logging` records carrying a `fields` mapping in `extra`, so
handlers can render or ship them however they like. SHA truncation is a
console concern only and lives in `ShortShaFormatter`.
"""

import logging
import re
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from .config import Config, SubmoduleBinding
from .constants import APP_NAME, LOG_FILE, SHA_DISPLAY_LENGTH
from .events import PushNotification

MINOR = 15
"""int: Level for filtered-out events, between DEBUG and INFO."""

logging.addLevelName(MINOR, "MINOR")

logger = logging.getLogger(APP_NAME)

_SHA_GROUP = re.compile(r"\(([0-9a-fA-F]{%d,})\)" % (SHA_DISPLAY_LENGTH + 1))


def shorten_shas(text: str) -> str:
    """Shortens every parenthesized hex identifier to its display length.

    Example:
        >>> shorten_shas("UPDATED to (0123456789abcdef)")
        'UPDATED to (01234567)'
    """
    return _SHA_GROUP.sub(lambda m: f"({m.group(1)[:SHA_DISPLAY_LENGTH]})", text)


class ShortShaFormatter(logging.Formatter):
    """Formatter for human-facing output that truncates SHAs in the message."""

    def formatMessage(self, record: logging.LogRecord) -> str:
        return shorten_shas(super().formatMessage(record))


def setup_logging(
    config: Config, console: bool = True, log_file: Path = LOG_FILE
) -> None:
    """Configures the application logger.

    Args:
        config (Config): Supplies the debug flag and rotation limits.
        console (bool, optional): Whether to also log to stderr with
            shortened SHAs. Defaults to True.
        log_file (Path, optional): Rotating log file receiving full values.
    """
    fmt = "[%(asctime)s] %(levelname)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"

    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()
    logger.setLevel(logging.DEBUG if config.debug else MINOR)

    if console:
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(ShortShaFormatter(fmt, datefmt))
        logger.addHandler(stream_handler)

    log_file.parent.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=config.limits.max_log_size,
        backupCount=config.limits.backup_count,
    )
    file_handler.setFormatter(logging.Formatter(fmt, datefmt))
    logger.addHandler(file_handler)


class AuditLog:
    """Writes the audit trail of one listener.

    Messages that concern a repository are prefixed with `owner/repo: `.

    Attributes:
        owner (str): Owner of the monitored repositories.
    """

    def __init__(self, owner: str, log: logging.Logger | None = None):
        self.owner = owner
        self._log = log or logger

    def _emit(
        self,
        level: int,
        msg: str,
        repo: str = "",
        exc: BaseException | None = None,
        **fields: Any,
    ) -> None:
        if repo:
            msg = f"{self.owner}/{repo}: {msg}"
        self._log.log(level, msg, exc_info=exc, extra={"fields": fields})

    def reception(
        self, event_kind: str, notification: PushNotification, minor: bool = False
    ) -> None:
        """Records a received webhook; `minor` marks events that were filtered out."""
        origin = notification.full_name
        msg = f"Received {event_kind.upper()} event"
        if notification.after:
            msg += f" ({notification.after})"
        if origin:
            msg = f"{origin}: {msg}"
        self._emit(
            MINOR if minor else logging.INFO,
            msg,
            event=event_kind,
            repository=origin,
            ref=notification.ref,
            after=notification.after,
        )

    def step(self, binding: SubmoduleBinding, msg: str, **fields: Any) -> None:
        """Records a successful step of a sync against the parent repository."""
        self._emit(logging.INFO, msg, binding.parent_repo, **fields)

    def updated(
        self, binding: SubmoduleBinding, notification: PushNotification
    ) -> None:
        self._emit(
            logging.INFO,
            f"UPDATED submodule {self.owner}/{binding.repo} to ({notification.after})",
            binding.parent_repo,
            submodule=binding.repo,
            sha=notification.after,
        )

    def failure(
        self, binding: SubmoduleBinding, step: str, error: BaseException
    ) -> None:
        """Records the error that aborted a sync, with its traceback."""
        self._emit(
            logging.ERROR,
            f"{step} failed: {error}",
            binding.parent_repo,
            exc=error,
            step=step,
            error=type(error).__name__,
        )

    def rejected(self, binding: SubmoduleBinding, commit_sha: str) -> None:
        """Records a fast-forward rejection of the parent branch update."""
        self._emit(
            logging.WARNING,
            f"Branch '{binding.parent_branch}' moved since it was read; "
            f"commit ({commit_sha}) was not applied",
            binding.parent_repo,
            step="update_ref",
            commit=commit_sha,
        )

    def not_updated(
        self, binding: SubmoduleBinding, notification: PushNotification
    ) -> None:
        self._emit(
            logging.INFO,
            f"NOT UPDATED — submodule is still at ({notification.before})",
            binding.parent_repo,
            submodule=binding.repo,
            sha=notification.before,
        )
