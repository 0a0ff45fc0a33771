"""Submodule Sync: advance submodule pointers in parent repositories on push.

This package provides a webhook listener that watches pushes to submodule
repositories and, for each monitored one, commits the new submodule SHA to its
parent repository through the GitHub git data API. The submodule's own
automation never needs write access to the parent.
"""

from . import (
    audit,
    cli,
    config,
    constants,
    events,
    github,
    registry,
    router,
    server,
    sync,
)

__all__ = [
    "audit",
    "cli",
    "config",
    "constants",
    "events",
    "github",
    "registry",
    "router",
    "server",
    "sync",
]
