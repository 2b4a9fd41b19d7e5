"""Repository configuration for a cherry-pick workflow."""

import json
import re
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

DEFAULT_TICKET_PATTERN = r"betty-\d+"


class RepositoryConfig(BaseModel):
    """Settings for one repository: where it lives, where PRs go, which branches."""

    local_path: Path
    owner: str
    repo_name: str
    source_branch: str = "main"
    target_branch: str = "stable"
    github_token: Optional[str] = Field(default=None, repr=False)
    ticket_pattern: str = DEFAULT_TICKET_PATTERN
    network_timeout: Optional[float] = Field(default=None, gt=0)
    record_origin: bool = True

    model_config = {"validate_assignment": True}

    @field_validator("ticket_pattern")
    @classmethod
    def _compile_pattern(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as e:
            raise ValueError(f"Invalid ticket pattern {value!r}: {e}") from e
        return value

    @classmethod
    def load(cls, path: Path, **overrides: Any) -> "RepositoryConfig":
        """Load a config from a JSON file.

        Keyword overrides that are not None replace the file's values, so
        command-line options and environment variables win over the file.
        """
        path = Path(path)
        try:
            data = json.loads(path.read_text())
        except json.JSONDecodeError as e:
            raise ValueError(f"Config file {path} is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a JSON object")

        data.update({key: value for key, value in overrides.items() if value is not None})

        # Relative paths in the file are relative to the file itself
        local_path = data.get("local_path")
        if local_path is not None and not Path(local_path).is_absolute():
            data["local_path"] = (path.parent / local_path).resolve()

        return cls(**data)
