"""The four-step transaction that advances a submodule pointer in its parent.

A sync reads the parent branch head, overlays the submodule's gitlink onto the
head's tree, wraps that tree in a commit and fast-forwards the branch to it.
Each step consumes the previous step's output; the first failure ends the chain
and is returned as a `SyncFailure` rather than raised. Trees and commits written
before a failure are unreferenced and need no cleanup.
"""

import asyncio
import enum
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .audit import AuditLog
from .config import SubmoduleBinding
from .constants import COMMIT_MESSAGE
from .events import PushNotification
from .github import (
    AuthError,
    BranchHead,
    CommitObject,
    GitHubClient,
    GitHubError,
    NotFoundError,
    RefUpdate,
    TransportError,
    TreeEntry,
    TreeObject,
    ValidationError,
)


class SyncState(enum.Enum):
    IDLE = "idle"
    FETCHED_HEAD = "fetched_head"
    BUILT_TREE = "built_tree"
    BUILT_COMMIT = "built_commit"
    REF_UPDATED = "ref_updated"
    ABORTED = "aborted"


class FailureKind(enum.Enum):
    AUTH = "auth"
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    TRANSPORT = "transport"
    REJECTED = "rejected"
    UNEXPECTED = "unexpected"


_KINDS: list[tuple[type[GitHubError], FailureKind]] = [
    (AuthError, FailureKind.AUTH),
    (NotFoundError, FailureKind.NOT_FOUND),
    (ValidationError, FailureKind.VALIDATION),
    (TransportError, FailureKind.TRANSPORT),
]


def classify(error: Exception) -> FailureKind:
    """Maps an exception raised by a step to its failure kind."""
    for exc_type, kind in _KINDS:
        if isinstance(error, exc_type):
            return kind
    # Generic GitHubError (unexpected 4xx) and anything else
    return FailureKind.UNEXPECTED


@dataclass(frozen=True)
class SyncFailure:
    """Why a chain aborted.

    Attributes:
        step (str): Name of the step that failed.
        kind (FailureKind): Category of the failure.
        error (Exception | None): The exception, None for a rejection.
    """

    step: str
    kind: FailureKind
    error: Exception | None = None


@dataclass(frozen=True)
class SyncResult:
    """Terminal state of one chain plus every object it produced.

    `reached` is the last state entered before the terminal one.
    """

    state: SyncState
    reached: SyncState = SyncState.IDLE
    head: BranchHead | None = None
    tree: TreeObject | None = None
    commit: CommitObject | None = None
    failure: SyncFailure | None = None

    @property
    def updated(self) -> bool:
        return self.state is SyncState.REF_UPDATED


def commit_message(owner: str, binding: SubmoduleBinding, sha: str) -> str:
    return COMMIT_MESSAGE.format(owner=owner, repo=binding.repo, sha=sha)


class SyncOrchestrator:
    """Drives the fetch-head, build-tree, build-commit, update-ref chain.

    Chains targeting the same `(parent_repo, parent_branch)` are serialized by
    a per-target lock, so a later chain always reads the head written by an
    earlier one. The fast-forward check of `update_ref` still guards against
    writers outside this process. Nothing is retried.

    Attributes:
        client (GitHubClient): The parent repository backend.
        audit (AuditLog): Receives step and outcome records.
    """

    def __init__(self, client: GitHubClient, audit: AuditLog):
        self.client = client
        self.audit = audit
        self._locks: defaultdict[tuple[str, str], asyncio.Lock] = defaultdict(
            asyncio.Lock
        )

    def lock_for(self, binding: SubmoduleBinding) -> asyncio.Lock:
        """Returns the lock serializing chains for the binding's parent branch."""
        return self._locks[(binding.parent_repo, binding.parent_branch)]

    async def run(
        self, binding: SubmoduleBinding, notification: PushNotification
    ) -> SyncResult:
        """Runs the chain for one matched push and records its outcome.

        Args:
            binding (SubmoduleBinding): The matched submodule binding.
            notification (PushNotification): The push that triggered the sync.

        Returns:
            SyncResult: REF_UPDATED, or ABORTED with the failing step.
        """
        async with self.lock_for(binding):
            result = await self._transact(binding, notification)

        if result.updated:
            self.audit.updated(binding, notification)
        else:
            self.audit.not_updated(binding, notification)
        return result

    async def _call(self, func: Callable[..., Any], *args: Any) -> Any:
        # Blocking HTTP runs off the event loop; the chain waits for it.
        return await asyncio.to_thread(func, *args)

    async def _transact(
        self, binding: SubmoduleBinding, notification: PushNotification
    ) -> SyncResult:
        owner = self.client.owner
        state = SyncState.IDLE
        head = tree = commit = None
        step = "read_branch_head"

        try:
            # 1. Fetch the parent's current head.
            head = await self._call(
                self.client.read_branch_head,
                binding.parent_repo,
                binding.parent_branch,
            )
            state = SyncState.FETCHED_HEAD
            self.audit.step(
                binding,
                f"Fetched current HEAD ({head.commit_sha}) "
                f"on branch '{binding.parent_branch}'",
                commit=head.commit_sha,
                tree=head.tree_sha,
            )

            # 2. Overlay the gitlink onto the head's tree.
            step = "create_tree"
            entry = TreeEntry.gitlink(binding.path, notification.after)
            tree = await self._call(
                self.client.create_tree, binding.parent_repo, head.tree_sha, [entry]
            )
            state = SyncState.BUILT_TREE
            self.audit.step(
                binding,
                f"Created tree ({tree.sha}) for commit ({notification.after})",
                tree=tree.sha,
                base_tree=head.tree_sha,
            )

            # 3. Wrap the tree in a commit on top of the head.
            step = "create_commit"
            commit = await self._call(
                self.client.create_commit,
                binding.parent_repo,
                tree.sha,
                head.commit_sha,
                commit_message(owner, binding, notification.after),
            )
            state = SyncState.BUILT_COMMIT
            self.audit.step(
                binding,
                f"Created commit ({commit.sha}) for module {binding.repo} "
                f"with tree ({tree.sha})",
                commit=commit.sha,
                parent=head.commit_sha,
            )

            # 4. Fast-forward the branch.
            step = "update_ref"
            outcome = await self._call(
                self.client.update_ref,
                binding.parent_repo,
                binding.parent_branch,
                commit.sha,
            )
        except Exception as e:
            # Every failure ends the chain here; the listener keeps running.
            self.audit.failure(binding, step, e)
            return SyncResult(
                SyncState.ABORTED,
                state,
                head,
                tree,
                commit,
                SyncFailure(step, classify(e), e),
            )

        if outcome is RefUpdate.REJECTED:
            self.audit.rejected(binding, commit.sha)
            return SyncResult(
                SyncState.ABORTED,
                state,
                head,
                tree,
                commit,
                SyncFailure(step, FailureKind.REJECTED),
            )

        self.audit.step(
            binding,
            f"Edited ref heads/{binding.parent_branch} to commit ({commit.sha})",
            ref=f"heads/{binding.parent_branch}",
            commit=commit.sha,
        )
        return SyncResult(SyncState.REF_UPDATED, state, head, tree, commit)
