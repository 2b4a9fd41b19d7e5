"""Exceptions raised by the repository connector, GitHub client and orchestrator."""

from typing import Optional

from cherry_pick_tool.models.commit import CommitRecord
from cherry_pick_tool.models.request import ErrorKind


class CherryPickToolError(Exception):
    """Base class; `kind` is copied into the failed CherryPickResult."""

    kind = ErrorKind.UNEXPECTED


class RepositoryUnavailable(CherryPickToolError):
    """The path is not a usable repository, or a branch or remote is missing."""

    kind = ErrorKind.REPOSITORY_UNAVAILABLE


class AuthenticationFailure(CherryPickToolError):
    """The GitHub token is missing or was rejected."""

    kind = ErrorKind.AUTHENTICATION_FAILURE


class NetworkFailure(CherryPickToolError):
    """Fetch, push or an API call failed in transport."""

    kind = ErrorKind.NETWORK_FAILURE


class ConflictFailure(CherryPickToolError):
    """A commit could not be applied cleanly."""

    kind = ErrorKind.CONFLICT_FAILURE

    def __init__(self, message: str, commit: CommitRecord):
        super().__init__(message)
        self.commit = commit


class RemoteRejection(CherryPickToolError):
    """GitHub refused the request (duplicate PR, permissions, unknown branch)."""

    kind = ErrorKind.REMOTE_REJECTION

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class RepositoryBusy(CherryPickToolError):
    """Another workflow is already running against the same working tree."""

    kind = ErrorKind.REPOSITORY_BUSY


class WorkflowCancelled(CherryPickToolError):
    kind = ErrorKind.CANCELLED
