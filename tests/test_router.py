"""Tests for event classification and dispatch."""

import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from submodule_sync.audit import MINOR, AuditLog
from submodule_sync.config import SubmoduleBinding
from submodule_sync.events import PushNotification
from submodule_sync.github import (
    BranchHead,
    CommitObject,
    GitHubClient,
    RefUpdate,
    TreeObject,
)
from submodule_sync.registry import SubmoduleRegistry
from submodule_sync.router import EventRouter
from submodule_sync.sync import SyncOrchestrator, SyncResult, SyncState

LIB = SubmoduleBinding("lib", "main", "app", "main", "vendor/lib")
DOCS = SubmoduleBinding("docs", "stable", "site", "gh-pages", "content/docs")


def push(name: str = "lib", ref: str = "refs/heads/main") -> PushNotification:
    return PushNotification(f"acme/{name}", name, ref, "aaa111", "bbb222")


@pytest.fixture
def orchestrator() -> MagicMock:
    mock = MagicMock(spec=SyncOrchestrator)
    mock.run = AsyncMock(return_value=SyncResult(SyncState.REF_UPDATED))
    return mock


@pytest.fixture
def router(orchestrator: MagicMock, caplog: pytest.LogCaptureFixture) -> EventRouter:
    caplog.set_level(logging.DEBUG, logger="submodule-sync")
    return EventRouter(SubmoduleRegistry([LIB, DOCS]), orchestrator, AuditLog("acme"))


@pytest.mark.parametrize(
    ("event_kind", "notification"),
    [
        ("ping", push()),
        ("issues", push()),
        ("push", push(name="unknown")),
        ("push", push(ref="refs/heads/develop")),
        ("push", push(ref="refs/tags/v1.0")),
        ("push", push(ref="main")),
        ("push", push(name="docs", ref="refs/heads/main")),
    ],
)
def test_filtered_events_never_sync(
    router: EventRouter,
    orchestrator: MagicMock,
    caplog: pytest.LogCaptureFixture,
    event_kind: str,
    notification: PushNotification,
) -> None:
    """Verifies that non-actionable deliveries are logged as minor and ignored.

    Args:
        router (EventRouter): The router under test.
        orchestrator (MagicMock): The mocked orchestrator.
        caplog (pytest.LogCaptureFixture): Pytest fixture for capturing logs.
        event_kind (str): The webhook event name.
        notification (PushNotification): The parsed delivery.
    """
    result = asyncio.run(router.handle(event_kind, notification))

    assert result is None
    orchestrator.run.assert_not_called()
    assert [r.levelno for r in caplog.records] == [MINOR]
    assert f"Received {event_kind.upper()} event" in caplog.text


def test_matching_push_runs_sync(
    router: EventRouter, orchestrator: MagicMock, caplog: pytest.LogCaptureFixture
) -> None:
    """Verifies that an exact repo and branch match is logged in full and synced."""
    notification = push()

    result = asyncio.run(router.handle("push", notification))

    assert result.state is SyncState.REF_UPDATED
    orchestrator.run.assert_awaited_once_with(LIB, notification)
    assert caplog.records[0].levelno == logging.INFO
    assert caplog.messages[0] == "acme/lib: Received PUSH event (bbb222)"


def test_match_uses_binding_branch(router: EventRouter) -> None:
    assert router.match("push", push(name="docs", ref="refs/heads/stable")) is DOCS
    assert router.match("push", push(name="docs", ref="refs/heads/main")) is None


def test_filtered_events_make_no_remote_calls(caplog: pytest.LogCaptureFixture) -> None:
    """Verifies end to end that filtered deliveries never reach the GitHub client."""
    client = MagicMock(spec=GitHubClient)
    client.owner = "acme"
    audit = AuditLog("acme")
    router = EventRouter(
        SubmoduleRegistry([LIB]), SyncOrchestrator(client, audit), audit
    )

    async def deliver() -> None:
        await router.handle("ping", PushNotification("acme/lib", "lib"))
        await router.handle("push", push(name="other"))
        await router.handle("push", push(ref="refs/heads/feature"))

    asyncio.run(deliver())

    assert client.mock_calls == []


def test_matching_push_drives_the_client() -> None:
    """Verifies that a matched delivery reaches the client through the orchestrator."""
    client = MagicMock(spec=GitHubClient)
    client.owner = "acme"
    client.read_branch_head.return_value = BranchHead("c1", "t1")
    client.create_tree.return_value = TreeObject("t2", ())
    client.create_commit.return_value = CommitObject("c3", "t2", "c1", "m")
    client.update_ref.return_value = RefUpdate.UPDATED
    audit = AuditLog("acme")
    router = EventRouter(
        SubmoduleRegistry([LIB]), SyncOrchestrator(client, audit), audit
    )

    result = asyncio.run(router.handle("push", push()))

    assert result.updated
    client.update_ref.assert_called_once_with("app", "main", "c3")
