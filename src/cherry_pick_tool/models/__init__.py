"""Data models for cherry-pick-tool."""

from .commit import CommitRecord
from .config import DEFAULT_TICKET_PATTERN, RepositoryConfig
from .request import CherryPickRequest, CherryPickResult, ErrorKind

__all__ = [
    "CommitRecord",
    "RepositoryConfig",
    "DEFAULT_TICKET_PATTERN",
    "CherryPickRequest",
    "CherryPickResult",
    "ErrorKind",
]
