"""Tests for the GitHub git data client."""

import logging
import threading
from typing import Any
from unittest.mock import MagicMock

import pytest
import requests

from submodule_sync.github import (
    AuthError,
    BranchHead,
    GitHubClient,
    GitHubError,
    NotFoundError,
    RefUpdate,
    TransportError,
    TreeEntry,
    ValidationError,
)


def make_response(status: int, body: Any = None) -> MagicMock:
    """Builds a stand-in for `requests.Response`."""
    resp = MagicMock(spec=requests.Response)
    resp.status_code = status
    resp.reason = "Reason"
    resp.text = ""
    if body is None:
        resp.json.side_effect = ValueError("No JSON")
    else:
        resp.json.return_value = body
    return resp


@pytest.fixture
def session(mocker: MagicMock) -> requests.Session:
    """A real session whose `request` method never leaves the process."""
    sess = requests.Session()
    mocker.patch.object(sess, "request")
    return sess


@pytest.fixture
def client(session: requests.Session) -> GitHubClient:
    return GitHubClient("acme", "s3cr3t", timeout=5, session=session)


def test_session_headers(client: GitHubClient, session: requests.Session) -> None:
    """Verifies that every request carries the token and the user agent."""
    assert session.headers["Authorization"] == "Bearer s3cr3t"
    assert session.headers["User-Agent"] == "submoduleUpdater v1.0"
    assert session.headers["Accept"] == "application/vnd.github+json"


def test_read_branch_head(client: GitHubClient, session: MagicMock) -> None:
    """Verifies that the head commit and its tree are read from the branch payload."""
    session.request.return_value = make_response(
        200,
        {
            "name": "main",
            "commit": {"sha": "c1", "commit": {"tree": {"sha": "t1"}}},
        },
    )

    head = client.read_branch_head("app", "main")

    assert head == BranchHead(commit_sha="c1", tree_sha="t1")
    session.request.assert_called_once_with(
        "GET",
        "https://api.github.com/repos/acme/app/branches/main",
        json=None,
        timeout=5,
    )


def test_create_tree_sends_base_and_gitlink(
    client: GitHubClient, session: MagicMock
) -> None:
    """Verifies that the tree is built on the base tree with the overlay entry."""
    session.request.return_value = make_response(201, {"sha": "t2", "tree": []})
    entry = TreeEntry.gitlink("vendor/lib", "bbb222")

    tree = client.create_tree("app", "t1", [entry])

    assert tree.sha == "t2"
    assert tree.entries == (entry,)
    session.request.assert_called_once_with(
        "POST",
        "https://api.github.com/repos/acme/app/git/trees",
        json={
            "base_tree": "t1",
            "tree": [
                {
                    "path": "vendor/lib",
                    "mode": "160000",
                    "type": "commit",
                    "sha": "bbb222",
                }
            ],
        },
        timeout=5,
    )


def test_create_commit_has_single_parent(
    client: GitHubClient, session: MagicMock
) -> None:
    session.request.return_value = make_response(201, {"sha": "c3"})

    commit = client.create_commit("app", "t2", "c1", "msg")

    assert commit.sha == "c3"
    assert commit.parent_sha == "c1"
    _, kwargs = session.request.call_args
    assert kwargs["json"] == {"message": "msg", "tree": "t2", "parents": ["c1"]}


def test_update_ref_is_fast_forward_only(
    client: GitHubClient, session: MagicMock
) -> None:
    """Verifies that the ref update never asks for a forced move."""
    session.request.return_value = make_response(200, {"ref": "refs/heads/main"})

    assert client.update_ref("app", "main", "c3") is RefUpdate.UPDATED
    session.request.assert_called_once_with(
        "PATCH",
        "https://api.github.com/repos/acme/app/git/refs/heads/main",
        json={"sha": "c3", "force": False},
        timeout=5,
    )


def test_update_ref_rejection_is_an_outcome(
    client: GitHubClient, session: MagicMock
) -> None:
    """Verifies that a non-fast-forward returns REJECTED instead of raising."""
    session.request.return_value = make_response(
        422, {"message": "Update is not a fast forward"}
    )

    assert client.update_ref("app", "main", "c3") is RefUpdate.REJECTED


def test_update_ref_other_validation_errors_raise(
    client: GitHubClient, session: MagicMock
) -> None:
    session.request.return_value = make_response(
        422, {"message": "Reference does not exist"}
    )

    with pytest.raises(ValidationError, match="Reference does not exist"):
        client.update_ref("app", "main", "c3")


@pytest.mark.parametrize(
    ("status", "expected"),
    [
        (401, AuthError),
        (403, AuthError),
        (404, NotFoundError),
        (422, ValidationError),
        (500, TransportError),
        (502, TransportError),
        (418, GitHubError),
    ],
)
def test_status_codes_map_to_errors(
    client: GitHubClient,
    session: MagicMock,
    status: int,
    expected: type[GitHubError],
) -> None:
    """Verifies the HTTP status to exception mapping shared by all operations."""
    session.request.return_value = make_response(status, {"message": "nope"})

    with pytest.raises(expected) as excinfo:
        client.read_branch_head("app", "main")

    assert type(excinfo.value) is expected
    assert excinfo.value.status == status
    assert excinfo.value.message == "nope"


def test_network_failure_is_transport_error(
    client: GitHubClient, session: MagicMock
) -> None:
    session.request.side_effect = requests.ConnectionError("connection refused")

    with pytest.raises(TransportError, match="connection refused") as excinfo:
        client.create_commit("app", "t2", "c1", "msg")

    assert excinfo.value.status is None


def test_unreadable_body_is_transport_error(
    client: GitHubClient, session: MagicMock
) -> None:
    session.request.return_value = make_response(200)

    with pytest.raises(TransportError, match="unreadable body"):
        client.read_branch_head("app", "main")


def test_error_without_json_uses_reason(
    client: GitHubClient, session: MagicMock
) -> None:
    session.request.return_value = make_response(503)

    with pytest.raises(TransportError, match="Reason"):
        client.read_branch_head("app", "main")


def test_raw_responses_are_logged_at_debug(
    client: GitHubClient, session: MagicMock, caplog: pytest.LogCaptureFixture
) -> None:
    """Verifies that each decoded API response is dumped at DEBUG level."""
    caplog.set_level(logging.DEBUG, logger="submodule-sync")
    session.request.return_value = make_response(201, {"sha": "c3", "message": "m"})

    client.create_commit("app", "t2", "c1", "msg")

    debug_lines = [r.getMessage() for r in caplog.records if r.levelno == logging.DEBUG]
    assert debug_lines == [
        "POST https://api.github.com/repos/acme/app/git/commits"
        " -> {'sha': 'c3', 'message': 'm'}"
    ]


def test_each_worker_thread_gets_its_own_session() -> None:
    """Verifies that a client without an injected session never shares one
    between threads, while a single thread keeps reusing its own."""
    client = GitHubClient("acme", "s3cr3t")
    seen: list[requests.Session] = []

    def grab() -> None:
        seen.append(client.session)
        seen.append(client.session)

    workers = [threading.Thread(target=grab) for _ in range(2)]
    for worker in workers:
        worker.start()
    for worker in workers:
        worker.join()

    assert seen[0] is seen[1]
    assert seen[2] is seen[3]
    assert seen[0] is not seen[2]
    for sess in seen:
        assert sess.headers["Authorization"] == "Bearer s3cr3t"
        assert sess.headers["User-Agent"] == "submoduleUpdater v1.0"


def test_injected_session_is_shared_across_threads(
    client: GitHubClient, session: requests.Session
) -> None:
    seen: list[requests.Session] = []
    worker = threading.Thread(target=lambda: seen.append(client.session))
    worker.start()
    worker.join()

    assert seen == [session]
    assert client.session is session
