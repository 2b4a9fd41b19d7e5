"""Tests for the PyGithub-backed GitHub client."""

from unittest.mock import MagicMock, patch

import pytest
import requests
from github import GithubException

from cherry_pick_tool.core.errors import AuthenticationFailure, NetworkFailure, RemoteRejection
from cherry_pick_tool.core.github_client import DEFAULT_BASE_URL, GitHubClient, USER_AGENT


@pytest.fixture
def github_cls():
    with patch("cherry_pick_tool.core.github_client.Github") as github_cls:
        yield github_cls


@pytest.fixture
def github(github_cls):
    return github_cls.return_value


class TestInitialize:
    def test_requires_token(self, github_cls):
        with pytest.raises(ValueError):
            GitHubClient().initialize("")
        github_cls.assert_not_called()

    def test_binds_token_to_session(self, github_cls):
        session = GitHubClient().initialize("ghp_example")

        _, kwargs = github_cls.call_args
        assert kwargs["auth"].token == "ghp_example"
        assert kwargs["base_url"] == DEFAULT_BASE_URL
        assert kwargs["user_agent"] == USER_AGENT
        assert "timeout" not in kwargs
        assert session.github is github_cls.return_value

    def test_timeout_is_passed_through(self, github_cls):
        GitHubClient(timeout=30).initialize("ghp_example")
        assert github_cls.call_args.kwargs["timeout"] == 30

        GitHubClient(timeout=30).initialize("ghp_example", timeout=5)
        assert github_cls.call_args.kwargs["timeout"] == 5

    def test_enterprise_base_url(self, github_cls):
        GitHubClient(base_url="https://ghe.example.com/api/v3").initialize("ghp_example")
        assert github_cls.call_args.kwargs["base_url"] == "https://ghe.example.com/api/v3"

    def test_sessions_are_independent(self, github_cls):
        github_cls.side_effect = [MagicMock(), MagicMock()]
        client = GitHubClient()

        first = client.initialize("token-one")
        second = client.initialize("token-two")

        assert first.github is not second.github
        tokens = [call.kwargs["auth"].token for call in github_cls.call_args_list]
        assert tokens == ["token-one", "token-two"]


class TestSession:
    def test_validate_credential(self, github):
        github.get_user.return_value.login = "octocat"
        assert GitHubClient().initialize("ghp_example").validate_credential() is True

    def test_validate_credential_rejected(self, github):
        github.get_user.side_effect = GithubException(401, {"message": "Bad credentials"})
        assert GitHubClient().initialize("ghp_example").validate_credential() is False

    def test_validate_repository(self, github):
        session = GitHubClient().initialize("ghp_example")
        assert session.validate_repository("acme", "widgets") is True
        github.get_repo.assert_called_once_with("acme/widgets")

    def test_validate_repository_missing(self, github):
        github.get_repo.side_effect = GithubException(404, {"message": "Not Found"})
        assert GitHubClient().initialize("ghp_example").validate_repository("acme", "nope") is False

    def test_closed_session_refuses_calls(self, github):
        session = GitHubClient().initialize("ghp_example")
        session.close()

        github.close.assert_called_once()
        with pytest.raises(RuntimeError):
            session.validate_credential()

    def test_context_manager_closes(self, github):
        with GitHubClient().initialize("ghp_example") as session:
            pass
        github.close.assert_called_once()
        with pytest.raises(RuntimeError):
            session.github


class TestCreatePullRequest:
    def test_returns_number_and_url(self, github):
        pull = github.get_repo.return_value.create_pull.return_value
        pull.number = 42
        pull.html_url = "https://github.com/acme/widgets/pull/42"
        session = GitHubClient().initialize("ghp_example")

        result = session.create_pull_request(
            "acme", "widgets", "Backport fixes", "body", "cherry-pick/x", "stable"
        )

        assert result == (42, "https://github.com/acme/widgets/pull/42")
        github.get_repo.assert_called_once_with("acme/widgets")
        github.get_repo.return_value.create_pull.assert_called_once_with(
            base="stable", head="cherry-pick/x", title="Backport fixes", body="body"
        )

    def test_bad_credentials(self, github):
        github.get_repo.side_effect = GithubException(401, {"message": "Bad credentials"})
        session = GitHubClient().initialize("ghp_example")

        with pytest.raises(AuthenticationFailure, match="Bad credentials"):
            session.create_pull_request("acme", "widgets", "t", "b", "h", "stable")

    def test_duplicate_pull_request(self, github):
        github.get_repo.return_value.create_pull.side_effect = GithubException(
            422,
            {
                "message": "Validation Failed",
                "errors": [{"message": "A pull request already exists for acme:cherry-pick/x."}],
            },
        )
        session = GitHubClient().initialize("ghp_example")

        with pytest.raises(RemoteRejection) as excinfo:
            session.create_pull_request("acme", "widgets", "t", "b", "cherry-pick/x", "stable")

        assert excinfo.value.status == 422
        assert "A pull request already exists" in str(excinfo.value)

    def test_connection_error(self, github):
        github.get_repo.side_effect = requests.exceptions.ConnectionError("connection refused")
        session = GitHubClient().initialize("ghp_example")

        with pytest.raises(NetworkFailure, match="connection refused"):
            session.create_pull_request("acme", "widgets", "t", "b", "h", "stable")
