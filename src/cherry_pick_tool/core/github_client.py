"""GitHub pull-request operations using PyGithub."""

import logging
from typing import Optional, Tuple

import requests
from github import Auth, Github, GithubException

from cherry_pick_tool.core.errors import (
    AuthenticationFailure,
    NetworkFailure,
    RemoteRejection,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.github.com"
USER_AGENT = "cherry-pick-tool"


class GitHubClient:
    """Creates sessions bound to a single token.

    The client itself holds no credential, so one instance can serve
    requests made with different tokens.
    """

    def __init__(self, base_url: str = DEFAULT_BASE_URL, timeout: Optional[float] = None):
        self.base_url = base_url
        self.timeout = timeout

    def initialize(self, token: str, timeout: Optional[float] = None) -> "GitHubSession":
        """Bind a session to `token`. The session must be used for every API call."""
        if not token:
            raise ValueError("A GitHub token is required to initialize a session")

        kwargs = {"base_url": self.base_url, "user_agent": USER_AGENT}
        effective_timeout = timeout if timeout is not None else self.timeout
        if effective_timeout is not None:
            kwargs["timeout"] = effective_timeout

        return GitHubSession(Github(auth=Auth.Token(token), **kwargs))


class GitHubSession:
    """An authenticated GitHub API session."""

    def __init__(self, github: Github):
        self._github: Optional[Github] = github

    @property
    def github(self) -> Github:
        if self._github is None:
            raise RuntimeError("GitHub session is closed. Call GitHubClient.initialize() first.")
        return self._github

    def validate_credential(self) -> bool:
        """Check the token by looking up the authenticated user."""
        github = self.github
        try:
            login = github.get_user().login
        except Exception as e:
            logger.warning("GitHub token validation failed: %s", e)
            return False
        logger.debug("Authenticated to GitHub as %s", login)
        return True

    def validate_repository(self, owner: str, repo: str) -> bool:
        """Check that `owner/repo` exists and is readable with this token."""
        github = self.github
        try:
            github.get_repo(f"{owner}/{repo}")
        except Exception as e:
            logger.warning("Repository %s/%s is not accessible: %s", owner, repo, e)
            return False
        return True

    def create_pull_request(
        self, owner: str, repo: str, title: str, body: str, head_branch: str, base_branch: str
    ) -> Tuple[int, str]:
        """Open one pull request and return its number and web URL."""
        github = self.github
        logger.info("Creating pull request %s -> %s on %s/%s", head_branch, base_branch, owner, repo)
        try:
            repository = github.get_repo(f"{owner}/{repo}")
            pull = repository.create_pull(
                base=base_branch, head=head_branch, title=title, body=body
            )
        except GithubException as e:
            message = _describe(e)
            if e.status == 401:
                raise AuthenticationFailure(f"GitHub rejected the token: {message}") from e
            raise RemoteRejection(
                f"GitHub refused to create the pull request: {message}", status=e.status
            ) from e
        except requests.exceptions.RequestException as e:
            raise NetworkFailure(f"Could not reach GitHub: {e}") from e

        return pull.number, pull.html_url

    def close(self) -> None:
        if self._github is not None:
            self._github.close()
            self._github = None

    def __enter__(self) -> "GitHubSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def _describe(error: GithubException) -> str:
    """Pull the API's message and field errors out of a GithubException."""
    data = error.data if isinstance(error.data, dict) else {}
    parts = [str(data.get("message") or error.status)]
    for detail in data.get("errors") or []:
        if isinstance(detail, dict) and detail.get("message"):
            parts.append(detail["message"])
        elif isinstance(detail, str):
            parts.append(detail)
    return "; ".join(parts)
