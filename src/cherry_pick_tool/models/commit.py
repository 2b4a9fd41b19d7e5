"""Commit model for cherry-pick candidates."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator


class CommitRecord(BaseModel):
    """A commit selected (or selectable) for cherry-picking.

    Two records are the same commit when their full hashes match; the other
    fields are display metadata captured when the record was read.
    """

    sha: str
    message: str
    author: str
    committed_at: datetime
    ticket_id: Optional[str] = None

    model_config = {"frozen": True}

    @field_validator("committed_at")
    @classmethod
    def _require_timezone(cls, value: datetime) -> datetime:
        if value.tzinfo is None or value.utcoffset() is None:
            raise ValueError("committed_at must be timezone-aware")
        return value

    @property
    def short_sha(self) -> str:
        """Abbreviated hash used in branch names, messages and PR bodies."""
        return self.sha[:7]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CommitRecord):
            return NotImplemented
        return self.sha == other.sha

    def __hash__(self) -> int:
        return hash(self.sha)
