"""Local repository operations for the cherry-pick workflow, using real git."""

import base64
import heapq
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Set

import git
from git import Repo

from cherry_pick_tool.core.errors import NetworkFailure, RepositoryUnavailable
from cherry_pick_tool.core.ticket import to_commit_record
from cherry_pick_tool.models.commit import CommitRecord
from cherry_pick_tool.models.config import RepositoryConfig

logger = logging.getLogger(__name__)

REMOTE_NAME = "origin"
MAX_SEARCH_RESULTS = 100


class RepositoryConnector:
    """Owns one working tree for the duration of one workflow.

    Besides the repository handle, the connector remembers which branch was
    checked out before `create_branch` ran, so `abort_cherry_pick` can put
    the working tree back where it found it.
    """

    def __init__(self, network_timeout: Optional[float] = None, record_origin: bool = True):
        self.network_timeout = network_timeout
        self.record_origin = record_origin
        self._repo: Optional[Repo] = None
        self._original_ref: Optional[str] = None

    @classmethod
    def from_config(cls, config: RepositoryConfig) -> "RepositoryConnector":
        """Build a connector using the timeout and trailer settings of a RepositoryConfig."""
        return cls(network_timeout=config.network_timeout, record_origin=config.record_origin)

    @property
    def repo(self) -> Repo:
        """Get the bound repository."""
        if self._repo is None:
            raise RuntimeError("Repository not opened. Call open() first.")
        return self._repo

    @property
    def current_branch(self) -> Optional[str]:
        """Name of the checked-out branch, or None for a detached HEAD."""
        if self.repo.head.is_detached:
            return None
        return self.repo.active_branch.name

    def open(self, path: Path) -> bool:
        """Bind to the working tree at `path`. Returns False if it is not usable."""
        self.close()
        try:
            repo = Repo(Path(path))
        except (git.exc.InvalidGitRepositoryError, git.exc.NoSuchPathError) as e:
            logger.warning("Could not open repository at %s: %s", path, e)
            return False
        except (git.exc.GitError, OSError, ValueError) as e:
            logger.warning("Error opening repository at %s: %s", path, e)
            return False

        if repo.bare:
            logger.warning("Repository at %s is bare, a working tree is required", path)
            repo.close()
            return False

        self._repo = repo
        self._original_ref = None
        logger.debug("Opened repository %s", repo.working_tree_dir)
        return True

    def close(self) -> None:
        if self._repo is not None:
            self._repo.close()
            self._repo = None

    def __enter__(self) -> "RepositoryConnector":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # === Remote operations ===

    def fetch(self) -> None:
        """Fetch `origin` using its configured refspecs."""
        remote = self._origin()
        logger.info("Fetching from %s", remote.name)
        try:
            remote.fetch(kill_after_timeout=self.network_timeout)
        except git.exc.GitCommandError as e:
            raise NetworkFailure(f"Fetch from '{remote.name}' failed: {_stderr(e)}") from e

    def push(self, branch_name: str, token: Optional[str] = None) -> None:
        """Push a local branch to `origin` under the same name.

        The token, when given, travels as HTTP basic credentials (token as the
        user name, empty password) in a header scoped to this one command.
        """
        remote = self._origin()
        if branch_name not in [h.name for h in self.repo.heads]:
            raise RepositoryUnavailable(f"Branch '{branch_name}' not found")

        refspec = f"refs/heads/{branch_name}:refs/heads/{branch_name}"
        git_cmd = self.repo.git
        secrets = []
        if token:
            credentials = base64.b64encode(f"{token}:".encode()).decode()
            secrets = [token, credentials]
            git_cmd = self.repo.git(c=f"http.extraheader=Authorization: Basic {credentials}")

        logger.info("Pushing %s to %s", branch_name, remote.name)
        try:
            git_cmd.push(remote.name, refspec, kill_after_timeout=self.network_timeout)
        except git.exc.GitCommandError as e:
            raise NetworkFailure(
                f"Push of '{branch_name}' to '{remote.name}' failed: {_stderr(e, *secrets)}"
            ) from e

    # === Branch lookup and commit queries ===

    def resolve_branch_tip(self, name: str) -> Optional[git.Commit]:
        """Tip of the local branch `name`, falling back to `origin/<name>`."""
        ref = self._find_branch(name)
        return ref.commit if ref is not None else None

    def list_commits(
        self, include_from: str, exclude_from: str, ticket_pattern: Optional[str] = None
    ) -> List[CommitRecord]:
        """Commits on `include_from` that are not on `exclude_from`.

        Ancestors come before descendants; among commits that do not depend on
        each other the most recent comes first.
        """
        include_tip = self.resolve_branch_tip(include_from)
        exclude_tip = self.resolve_branch_tip(exclude_from)
        if include_tip is None or exclude_tip is None:
            return []

        commits = list(self.repo.iter_commits(f"{exclude_tip.hexsha}..{include_tip.hexsha}"))
        return [to_commit_record(c, ticket_pattern) for c in _topological_order(commits)]

    def list_commits_matching(
        self, include_from: str, pattern: str, ticket_pattern: Optional[str] = None
    ) -> List[CommitRecord]:
        """Newest-first commits on `include_from` whose message matches `pattern`."""
        tip = self.resolve_branch_tip(include_from)
        if tip is None:
            return []

        try:
            regex = re.compile(pattern, re.IGNORECASE)
        except re.error as e:
            raise ValueError(f"Invalid search pattern {pattern!r}: {e}") from e

        matches = []
        for commit in self._iter_by_time(tip):
            if regex.search(_message(commit)):
                matches.append(to_commit_record(commit, ticket_pattern))
                if len(matches) >= MAX_SEARCH_RESULTS:
                    break
        return matches

    def list_commits_in_range(
        self,
        include_from: str,
        start: datetime,
        end: datetime,
        ticket_pattern: Optional[str] = None,
    ) -> List[CommitRecord]:
        """Newest-first commits on `include_from` authored within [start, end]."""
        tip = self.resolve_branch_tip(include_from)
        if tip is None:
            return []

        start, end = _as_utc(start), _as_utc(end)
        return [
            to_commit_record(commit, ticket_pattern)
            for commit in self._iter_by_time(tip)
            if start <= commit.authored_datetime <= end
        ]

    def lookup_commit(self, sha: str, ticket_pattern: Optional[str] = None) -> Optional[CommitRecord]:
        commit = self._lookup(sha)
        return to_commit_record(commit, ticket_pattern) if commit is not None else None

    # === Working tree mutations ===

    def create_branch(self, name: str, base_branch: str) -> str:
        """Create `name` at the tip of `base_branch` and check it out."""
        if self.repo.is_dirty(untracked_files=False):
            raise RepositoryUnavailable(
                f"Working tree at '{self.repo.working_tree_dir}' has uncommitted changes"
            )

        base_tip = self.resolve_branch_tip(base_branch)
        if base_tip is None:
            raise RepositoryUnavailable(f"Branch '{base_branch}' not found")

        self._original_ref = self.current_branch or self.repo.head.commit.hexsha
        logger.info("Creating branch %s from %s (%s)", name, base_branch, base_tip.hexsha[:7])

        try:
            head = self.repo.create_head(name, base_tip)
            head.checkout()
        except (OSError, git.exc.GitCommandError) as e:
            raise RepositoryUnavailable(f"Could not create branch '{name}': {e}") from e

        return name

    def cherry_pick(self, commits: Iterable[CommitRecord]) -> Optional[CommitRecord]:
        """Apply `commits` in order onto the current branch.

        Stops at the first commit that is unknown, conflicts or errors and
        returns it, leaving the working tree as git left it. Returns None when
        every commit applied cleanly.
        """
        args = ["-x"] if self.record_origin else []

        for record in commits:
            if self._lookup(record.sha) is None:
                logger.warning("Commit %s not found in repository", record.short_sha)
                return record

            logger.info("Cherry-picking %s %s", record.short_sha, record.message)
            try:
                self.repo.git.cherry_pick(*args, record.sha)
            except git.exc.GitCommandError as e:
                if self._cherry_pick_in_progress():
                    logger.warning("Conflict cherry-picking %s", record.short_sha)
                else:
                    logger.warning("Cherry-pick of %s failed: %s", record.short_sha, _stderr(e))
                return record

            if self._cherry_pick_in_progress():
                return record

        return None

    def abort_cherry_pick(self) -> None:
        """Discard partial cherry-pick state and return to the original branch.

        Does nothing when no branch was created and no cherry-pick is in
        progress, so it is safe to call more than once.
        """
        if self._original_ref is None and not self._cherry_pick_in_progress():
            logger.debug("Nothing to abort")
            return

        logger.info("Resetting working tree")
        self.repo.head.reset(index=True, working_tree=True)

        if self._original_ref is not None:
            original = self._original_ref
            if original in [h.name for h in self.repo.heads]:
                self.repo.heads[original].checkout()
            else:
                # Detached HEAD before the workflow started
                self.repo.git.checkout(original)
            logger.info("Checked out %s", original)
            self._original_ref = None

    def checkout_branch(self, name: str) -> None:
        """Check out a local branch, creating it from `origin/<name>` if needed."""
        if name in [h.name for h in self.repo.heads]:
            self.repo.heads[name].checkout()
            return

        remote_ref = self._find_remote_ref(name)
        if remote_ref is None:
            raise RepositoryUnavailable(f"Branch '{name}' not found")

        head = self.repo.create_head(name, remote_ref.commit)
        head.set_tracking_branch(remote_ref)
        head.checkout()

    # === Helpers ===

    def _origin(self) -> git.Remote:
        try:
            return self.repo.remote(REMOTE_NAME)
        except ValueError as e:
            raise RepositoryUnavailable(f"Remote '{REMOTE_NAME}' is not configured") from e

    def _find_branch(self, name: str) -> Optional[git.Reference]:
        for head in self.repo.heads:
            if head.name == name:
                return head
        return self._find_remote_ref(name)

    def _find_remote_ref(self, name: str) -> Optional[git.RemoteReference]:
        wanted = f"{REMOTE_NAME}/{name}"
        for ref in self.repo.refs:
            if isinstance(ref, git.RemoteReference) and ref.name == wanted:
                return ref
        return None

    def _lookup(self, sha: str) -> Optional[git.Commit]:
        if not sha:
            return None
        try:
            return self.repo.commit(sha)
        except (git.exc.BadName, git.exc.BadObject, ValueError):
            return None

    def _iter_by_time(self, tip: git.Commit) -> Iterator[git.Commit]:
        return self.repo.iter_commits(tip, date_order=True)

    def _cherry_pick_in_progress(self) -> bool:
        return (Path(self.repo.git_dir) / "CHERRY_PICK_HEAD").exists()


def _topological_order(commits: List[git.Commit]) -> List[git.Commit]:
    """Order commits parents-first, picking the most recent ready commit at each step."""
    by_sha: Dict[str, git.Commit] = {c.hexsha: c for c in commits}
    waiting_on: Dict[str, int] = {}
    children: Dict[str, List[str]] = {sha: [] for sha in by_sha}

    for commit in commits:
        parents = [p.hexsha for p in commit.parents if p.hexsha in by_sha]
        waiting_on[commit.hexsha] = len(parents)
        for parent in parents:
            children[parent].append(commit.hexsha)

    ready = [(-by_sha[sha].committed_date, sha) for sha, n in waiting_on.items() if n == 0]
    heapq.heapify(ready)

    ordered: List[git.Commit] = []
    seen: Set[str] = set()
    while ready:
        _, sha = heapq.heappop(ready)
        if sha in seen:
            continue
        seen.add(sha)
        ordered.append(by_sha[sha])
        for child in children[sha]:
            waiting_on[child] -= 1
            if waiting_on[child] == 0:
                heapq.heappush(ready, (-by_sha[child].committed_date, child))

    return ordered


def _message(commit: git.Commit) -> str:
    message = commit.message
    return message.decode("utf-8", errors="replace") if isinstance(message, bytes) else message


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def _stderr(error: git.exc.GitCommandError, *secrets: str) -> str:
    stderr = error.stderr.strip() if isinstance(error.stderr, str) else ""
    text = stderr or str(error)
    for secret in secrets:
        text = text.replace(secret, "***")
    return text
