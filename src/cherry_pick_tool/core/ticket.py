"""Ticket ID extraction and commit normalization."""

import re
from typing import Optional

import git

from cherry_pick_tool.models.commit import CommitRecord
from cherry_pick_tool.models.config import DEFAULT_TICKET_PATTERN

__all__ = ["DEFAULT_TICKET_PATTERN", "extract_ticket", "to_commit_record"]


def extract_ticket(message: str, pattern: Optional[str]) -> Optional[str]:
    """Return the first case-insensitive match of `pattern` in `message`.

    >>> extract_ticket("fix: correct overflow (PROJ-482)", r"PROJ-\\d+")
    'PROJ-482'
    """
    if not pattern or not message:
        return None

    try:
        match = re.search(pattern, message, re.IGNORECASE)
    except re.error as e:
        raise ValueError(f"Invalid ticket pattern {pattern!r}: {e}") from e

    return match.group(0) if match else None


def to_commit_record(commit: git.Commit, ticket_pattern: Optional[str] = None) -> CommitRecord:
    """Build a CommitRecord from a GitPython commit."""
    message = commit.message
    if isinstance(message, bytes):
        message = message.decode("utf-8", errors="replace")

    summary = message.split("\n", 1)[0].strip()

    return CommitRecord(
        sha=commit.hexsha,
        message=summary,
        author=commit.author.name or "",
        committed_at=commit.authored_datetime,
        ticket_id=extract_ticket(message, ticket_pattern),
    )
