"""Cherry-pick workflow: branch, cherry-pick, push, and open a pull request."""

import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Sequence, Set

from cherry_pick_tool.core.errors import (
    AuthenticationFailure,
    CherryPickToolError,
    ConflictFailure,
    RepositoryBusy,
    RepositoryUnavailable,
    WorkflowCancelled,
)
from cherry_pick_tool.core.github_client import GitHubClient, GitHubSession
from cherry_pick_tool.core.repository import RepositoryConnector
from cherry_pick_tool.models.commit import CommitRecord
from cherry_pick_tool.models.config import RepositoryConfig
from cherry_pick_tool.models.request import CherryPickRequest, CherryPickResult, ErrorKind

logger = logging.getLogger(__name__)

ProgressSink = Callable[[str], None]
ConnectorFactory = Callable[[RepositoryConfig], RepositoryConnector]

BRANCH_PREFIX = "cherry-pick/"
MAX_BRANCH_TICKETS = 3


class WorkflowState(str, Enum):
    START = "start"
    REPO_OPENED = "repo_opened"
    AUTHENTICATED = "authenticated"
    FETCHED = "fetched"
    BRANCH_CREATED = "branch_created"
    CHERRY_PICKED = "cherry_picked"
    PUSHED = "pushed"
    PR_CREATED = "pr_created"
    FAILED = "failed"


# Working trees with a workflow in flight, shared by every orchestrator in the process
_active_paths: Set[str] = set()
_active_paths_lock = threading.Lock()


@contextmanager
def _exclusive(path: Path) -> Iterator[None]:
    key = str(Path(path).expanduser().resolve())
    with _active_paths_lock:
        if key in _active_paths:
            raise RepositoryBusy(f"A cherry-pick workflow is already running for '{path}'")
        _active_paths.add(key)
    try:
        yield
    finally:
        with _active_paths_lock:
            _active_paths.discard(key)


def generate_branch_name(commits: Sequence[CommitRecord], now: Optional[datetime] = None) -> str:
    """Build `cherry-pick/<tickets>-<UTC timestamp>` from up to three distinct tickets."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    timestamp = now.strftime("%Y%m%d-%H%M%S")

    tickets: List[str] = []
    for commit in commits:
        if commit.ticket_id and commit.ticket_id not in tickets:
            tickets.append(commit.ticket_id)
        if len(tickets) == MAX_BRANCH_TICKETS:
            break

    if not tickets:
        return f"{BRANCH_PREFIX}{timestamp}"
    return f"{BRANCH_PREFIX}{'-'.join(tickets)}-{timestamp}"


def build_pr_body(request: CherryPickRequest) -> str:
    """PR description followed by a `## Commits` list of what was picked."""
    config = request.config
    body = request.pr_description or (
        f"Cherry-picked commits from {config.source_branch} to {config.target_branch}."
    )
    body += "\n\n## Commits\n"

    for commit in request.commits:
        ticket = f"[{commit.ticket_id}] " if commit.ticket_id else ""
        body += f"- `{commit.short_sha}` {ticket}{commit.message}\n"

    return body


class CherryPickOrchestrator:
    """Runs the cherry-pick workflow and unwinds local state when it fails.

    Each call to `execute` gets its own RepositoryConnector and GitHub
    session, so nothing about one request leaks into the next.
    """

    def __init__(
        self,
        github_client: Optional[GitHubClient] = None,
        connector_factory: Optional[ConnectorFactory] = None,
    ):
        self.github_client = github_client or GitHubClient()
        self.connector_factory = connector_factory or RepositoryConnector.from_config
        self.last_state: Optional[WorkflowState] = None

    def execute(
        self,
        request: CherryPickRequest,
        progress: Optional[ProgressSink] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> CherryPickResult:
        """Run the whole workflow and return its outcome. Never raises."""
        run = _WorkflowRun(self, request, progress, cancel_event)
        try:
            with _exclusive(request.config.local_path):
                return run.run()
        except RepositoryBusy as e:
            run.state = WorkflowState.FAILED
            run.report(f"Error: {e}")
            return CherryPickResult.failed(str(e), e.kind)
        finally:
            self.last_state = run.state


class _WorkflowRun:
    """State of a single `execute` call."""

    def __init__(
        self,
        orchestrator: CherryPickOrchestrator,
        request: CherryPickRequest,
        progress: Optional[ProgressSink],
        cancel_event: Optional[threading.Event],
    ):
        self.orchestrator = orchestrator
        self.request = request
        self.progress = progress
        self.cancel_event = cancel_event
        self.state = WorkflowState.START

    def run(self) -> CherryPickResult:
        request = self.request
        config = request.config
        connector: Optional[RepositoryConnector] = None
        session: Optional[GitHubSession] = None
        branch_name = request.branch_name or generate_branch_name(request.commits)
        branch_created = False

        try:
            connector = self.orchestrator.connector_factory(config)
            self.report("Opening repository...")
            if not connector.open(config.local_path):
                raise RepositoryUnavailable(f"Could not open repository at '{config.local_path}'")
            self.advance(WorkflowState.REPO_OPENED)

            self.report("Initializing GitHub client...")
            if not config.github_token:
                raise AuthenticationFailure("GitHub token is required")
            session = self.orchestrator.github_client.initialize(
                config.github_token, timeout=config.network_timeout
            )
            if not session.validate_credential():
                raise AuthenticationFailure("Invalid GitHub token")
            self.advance(WorkflowState.AUTHENTICATED)

            self.report("Fetching latest changes from remote...")
            connector.fetch()
            self.advance(WorkflowState.FETCHED)

            self.report(f"Creating branch '{branch_name}' from '{config.target_branch}'...")
            connector.create_branch(branch_name, config.target_branch)
            branch_created = True
            self.advance(WorkflowState.BRANCH_CREATED)

            self.report(f"Cherry-picking {len(request.commits)} commit(s)...")
            failed_commit = connector.cherry_pick(request.commits)
            if failed_commit is not None:
                self.report("Cherry-pick failed, aborting...")
                raise ConflictFailure(
                    f"Cherry-pick failed on commit '{failed_commit.short_sha}': {failed_commit.message}",
                    failed_commit,
                )
            self.advance(WorkflowState.CHERRY_PICKED)

            self.report(f"Pushing branch '{branch_name}' to remote...")
            connector.push(branch_name, config.github_token)
            self.advance(WorkflowState.PUSHED)

            self.report("Creating pull request...")
            pr_number, pr_url = session.create_pull_request(
                config.owner,
                config.repo_name,
                request.pr_title,
                build_pr_body(request),
                branch_name,
                config.target_branch,
            )
            self.state = WorkflowState.PR_CREATED
            self.report(f"Pull request created: {pr_url}")
            return CherryPickResult.succeeded(branch_name, pr_url, pr_number)

        except Exception as e:
            return self.fail(e, connector, branch_name if branch_created else None)
        finally:
            if session is not None:
                session.close()
            if connector is not None:
                connector.close()

    def fail(
        self,
        error: Exception,
        connector: Optional[RepositoryConnector],
        branch_name: Optional[str],
    ) -> CherryPickResult:
        failed_state = self.state
        self.state = WorkflowState.FAILED

        if isinstance(error, CherryPickToolError):
            kind = error.kind
            logger.warning("Cherry-pick workflow failed after %s: %s", failed_state.value, error)
        else:
            kind = ErrorKind.UNEXPECTED
            logger.exception("Unexpected error in cherry-pick workflow after %s", failed_state.value)

        if not isinstance(error, ConflictFailure):
            self.report(f"Error: {error}")

        # Nothing on disk has changed before the repository is fetched
        if connector is not None and failed_state not in (
            WorkflowState.START,
            WorkflowState.REPO_OPENED,
        ):
            try:
                connector.abort_cherry_pick()
            except Exception:
                logger.exception("Rollback after failed cherry-pick workflow also failed")

        return CherryPickResult.failed(
            str(error) or error.__class__.__name__,
            kind,
            failed_commit=error.commit if isinstance(error, ConflictFailure) else None,
            branch_name=branch_name,
        )

    def advance(self, state: WorkflowState) -> None:
        self.state = state
        logger.debug("Workflow state: %s", state.value)
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise WorkflowCancelled(f"Cherry-pick workflow cancelled after {state.value}")

    def report(self, message: str) -> None:
        logger.info(message)
        if self.progress is None:
            return
        try:
            self.progress(message)
        except Exception:
            logger.exception("Progress callback raised; ignoring")
