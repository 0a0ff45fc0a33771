import enum
import logging
import threading
from dataclasses import asdict, dataclass
from typing import Any
from urllib.parse import quote

import requests

from .constants import APP_NAME, GITHUB_API_URL, GITLINK_MODE, USER_AGENT

logger = logging.getLogger(APP_NAME)


class GitHubError(Exception):
    """Base class for failed GitHub API calls.

    Attributes:
        status (int | None): HTTP status code, or None if no response arrived.
        message (str): The API's error message, or the transport error text.
    """

    def __init__(self, message: str, status: int | None = None):
        super().__init__(f"{message} (HTTP {status})" if status else message)
        self.status = status
        self.message = message


class AuthError(GitHubError):
    """The token is missing, invalid, or lacks access (401/403)."""


class NotFoundError(GitHubError):
    """The repository, branch, or object does not exist (404)."""


class ValidationError(GitHubError):
    """The API refused the request body, e.g. a bad tree path or mode (422)."""


class TransportError(GitHubError):
    """Network failure, timeout, unreadable response, or server error (5xx)."""


class RefUpdate(enum.Enum):
    """Outcome of a fast-forward-only branch update."""

    UPDATED = "updated"
    REJECTED = "rejected"


@dataclass(frozen=True)
class BranchHead:
    """Snapshot of a branch at the moment it was read."""

    commit_sha: str
    tree_sha: str


@dataclass(frozen=True)
class TreeEntry:
    """A single entry overlaid onto a base tree."""

    path: str
    mode: str
    type: str
    sha: str

    @classmethod
    def gitlink(cls, path: str, sha: str) -> "TreeEntry":
        """Builds a submodule entry pointing `path` at commit `sha`."""
        return cls(path=path, mode=GITLINK_MODE, type="commit", sha=sha)


@dataclass(frozen=True)
class TreeObject:
    sha: str
    entries: tuple[TreeEntry, ...]


@dataclass(frozen=True)
class CommitObject:
    sha: str
    tree_sha: str
    parent_sha: str
    message: str


class GitHubClient:
    """A thin wrapper around the GitHub REST "git data" endpoints of one owner.

    Each method performs exactly one HTTP request. There is no retry and no
    caching; failures surface as `GitHubError` subclasses. The methods block and
    are meant to be driven from a worker thread when used from asyncio.

    Attributes:
        owner (str): The account owning the repositories addressed.
        api_url (str): Base URL of the REST API.
        timeout (float): Per-request timeout in seconds.
    """

    def __init__(
        self,
        owner: str,
        token: str,
        api_url: str = GITHUB_API_URL,
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ):
        """Initializes the client and its authenticated HTTP session.

        Args:
            owner (str): The repository owner (user or organization).
            token (str): API token sent as a bearer credential.
            api_url (str, optional): Base URL of the REST API.
            timeout (float, optional): Per-request timeout in seconds.
            session (requests.Session | None, optional): Session shared by
                every call. When omitted, each worker thread opens its own.
        """
        self.owner = owner
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._headers = {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {token}",
            "User-Agent": USER_AGENT,
            "X-GitHub-Api-Version": "2022-11-28",
        }
        self._shared = session
        self._local = threading.local()
        if session is not None:
            session.headers.update(self._headers)

    @property
    def session(self) -> requests.Session:
        """The HTTP session for the calling thread.

        Sync chains call the client from `asyncio.to_thread` workers, so each
        worker keeps its own session unless one was injected.
        """
        if self._shared is not None:
            return self._shared
        sess = getattr(self._local, "session", None)
        if sess is None:
            sess = requests.Session()
            sess.headers.update(self._headers)
            self._local.session = sess
        return sess

    def _request(
        self, method: str, repo: str, path: str, body: dict | None = None
    ) -> dict[str, Any]:
        """Executes one API request against `/repos/{owner}/{repo}/{path}`.

        Args:
            method (str): HTTP method.
            repo (str): Repository name under `self.owner`.
            path (str): Endpoint path below the repository.
            body (dict | None, optional): JSON request body.

        Returns:
            dict[str, Any]: The decoded JSON response.

        Raises:
            GitHubError: A subclass matching the failure.
        """
        url = f"{self.api_url}/repos/{self.owner}/{repo}/{path}"
        try:
            resp = self.session.request(method, url, json=body, timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportError(f"{method} {url} failed: {e}") from e

        if resp.status_code >= 400:
            raise self._error_for(resp)

        try:
            data = resp.json()
        except ValueError as e:
            raise TransportError(
                f"{method} {url} returned an unreadable body", resp.status_code
            ) from e

        logger.debug(f"{method} {url} -> {data}")
        return data

    @staticmethod
    def _error_for(resp: requests.Response) -> GitHubError:
        """Maps an error response to the matching exception type."""
        try:
            message = resp.json().get("message") or resp.reason
        except ValueError:
            message = resp.text or resp.reason
        status = resp.status_code

        if status in (401, 403):
            return AuthError(message, status)
        if status == 404:
            return NotFoundError(message, status)
        if status in (409, 422):
            return ValidationError(message, status)
        if status >= 500:
            return TransportError(message, status)
        return GitHubError(message, status)

    def read_branch_head(self, repo: str, branch: str) -> BranchHead:
        """Reads the commit and tree a branch currently points at.

        Args:
            repo (str): Repository name.
            branch (str): Branch name (without `refs/heads/`).

        Returns:
            BranchHead: The head commit SHA and its root tree SHA.
        """
        data = self._request("GET", repo, f"branches/{quote(branch, safe='')}")
        commit = data["commit"]
        return BranchHead(
            commit_sha=commit["sha"], tree_sha=commit["commit"]["tree"]["sha"]
        )

    def create_tree(
        self, repo: str, base_tree: str, entries: list[TreeEntry]
    ) -> TreeObject:
        """Creates a tree object that copies `base_tree` with `entries` overlaid.

        Args:
            repo (str): Repository name.
            base_tree (str): SHA of the tree to start from.
            entries (list[TreeEntry]): Entries replacing or adding paths.

        Returns:
            TreeObject: The new tree.
        """
        data = self._request(
            "POST",
            repo,
            "git/trees",
            {"base_tree": base_tree, "tree": [asdict(e) for e in entries]},
        )
        return TreeObject(sha=data["sha"], entries=tuple(entries))

    def create_commit(
        self, repo: str, tree_sha: str, parent_sha: str, message: str
    ) -> CommitObject:
        """Creates a commit object with a single parent.

        Args:
            repo (str): Repository name.
            tree_sha (str): SHA of the commit's tree.
            parent_sha (str): SHA of the parent commit.
            message (str): The commit message.

        Returns:
            CommitObject: The new commit.
        """
        data = self._request(
            "POST",
            repo,
            "git/commits",
            {"message": message, "tree": tree_sha, "parents": [parent_sha]},
        )
        return CommitObject(
            sha=data["sha"], tree_sha=tree_sha, parent_sha=parent_sha, message=message
        )

    def update_ref(self, repo: str, branch: str, sha: str) -> RefUpdate:
        """Moves a branch to `sha`, only if that is a fast-forward.

        Args:
            repo (str): Repository name.
            branch (str): Branch name (without `refs/heads/`).
            sha (str): The new target commit.

        Returns:
            RefUpdate: UPDATED, or REJECTED when the branch has moved and the
            update would not be a fast-forward.
        """
        try:
            self._request(
                "PATCH",
                repo,
                f"git/refs/heads/{quote(branch, safe='/')}",
                {"sha": sha, "force": False},
            )
        except ValidationError as e:
            if "fast forward" in e.message.lower():
                logger.debug(f"Ref heads/{branch} on {repo} rejected: {e.message}")
                return RefUpdate.REJECTED
            raise
        return RefUpdate.UPDATED
