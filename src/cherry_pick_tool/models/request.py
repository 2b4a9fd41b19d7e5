"""Request and result models for the cherry-pick workflow."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from .commit import CommitRecord
from .config import RepositoryConfig


class ErrorKind(str, Enum):
    """Why a workflow failed."""

    REPOSITORY_UNAVAILABLE = "repository_unavailable"
    AUTHENTICATION_FAILURE = "authentication_failure"
    NETWORK_FAILURE = "network_failure"
    CONFLICT_FAILURE = "conflict_failure"
    REMOTE_REJECTION = "remote_rejection"
    REPOSITORY_BUSY = "repository_busy"
    CANCELLED = "cancelled"
    UNEXPECTED = "unexpected"


class CherryPickRequest(BaseModel):
    """Commits to backport onto the target branch, and the PR to open for them."""

    config: RepositoryConfig
    commits: List[CommitRecord] = Field(min_length=1)
    branch_name: Optional[str] = None
    pr_title: str
    pr_description: Optional[str] = None

    model_config = {"frozen": True}


class CherryPickResult(BaseModel):
    """Outcome of one workflow run."""

    success: bool
    branch_name: Optional[str] = None
    pull_request_url: Optional[str] = None
    pull_request_number: Optional[int] = None
    error_message: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    failed_commit: Optional[CommitRecord] = None

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_consistency(self) -> "CherryPickResult":
        if self.success:
            if not (
                self.branch_name
                and self.pull_request_url
                and self.pull_request_number is not None
            ):
                raise ValueError(
                    "A successful result needs a branch name, PR URL and PR number"
                )
            if self.error_message is not None or self.failed_commit is not None:
                raise ValueError("A successful result cannot carry an error")
        elif not self.error_message:
            raise ValueError("A failed result needs an error message")
        return self

    @classmethod
    def succeeded(cls, branch_name: str, pr_url: str, pr_number: int) -> "CherryPickResult":
        return cls(
            success=True,
            branch_name=branch_name,
            pull_request_url=pr_url,
            pull_request_number=pr_number,
        )

    @classmethod
    def failed(
        cls,
        error: str,
        kind: ErrorKind = ErrorKind.UNEXPECTED,
        failed_commit: Optional[CommitRecord] = None,
        branch_name: Optional[str] = None,
    ) -> "CherryPickResult":
        return cls(
            success=False,
            error_message=error,
            error_kind=kind,
            failed_commit=failed_commit,
            branch_name=branch_name,
        )
