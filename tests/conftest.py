"""Shared fixtures: a working clone with `main` and `stable` plus a bare origin."""

import tempfile
from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest
from git import Repo


def git_date(year: int, month: int, day: int, hour: int = 12) -> str:
    """Date in git's internal format, accepted by `index.commit`."""
    moment = datetime(year, month, day, hour, tzinfo=timezone.utc)
    return f"{int(moment.timestamp())} +0000"


def commit_file(repo: Repo, relative_path: str, content: str, message: str, date: str = None):
    """Write a file, stage it and commit it."""
    file_path = Path(repo.working_tree_dir) / relative_path
    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_path.write_text(content)
    repo.index.add([relative_path])
    if date:
        return repo.index.commit(message, author_date=date, commit_date=date)
    return repo.index.commit(message)


def configure_user(repo: Repo) -> None:
    with repo.config_writer() as config:
        config.set_value("user", "name", "Test User")
        config.set_value("user", "email", "test@example.com")


@pytest.fixture
def project():
    """A clone of a bare origin.

    History:
        c1 (base)  <- stable: s1 changes a.txt
                   <- main:   cA adds b.txt, cB changes a.txt, cC adds c.txt

    cA and cC apply cleanly on stable; cB conflicts with s1.
    """
    with tempfile.TemporaryDirectory() as temp_dir:
        root = Path(temp_dir)
        work_path = root / "work"
        origin_path = root / "origin.git"

        repo = Repo.init(work_path)
        configure_user(repo)

        c1 = commit_file(repo, "a.txt", "base\n", "Initial commit", git_date(2024, 2, 1))
        repo.git.checkout("-B", "main")

        repo.git.checkout("-b", "stable")
        s1 = commit_file(repo, "a.txt", "stable\n", "Stable-only change", git_date(2024, 2, 15))

        repo.git.checkout("main")
        ca = commit_file(repo, "b.txt", "feature\n", "feat: add feature (BETTY-101)", git_date(2024, 3, 1))
        cb = commit_file(repo, "a.txt", "main\n", "fix: change base (BETTY-102)", git_date(2024, 3, 5))
        cc = commit_file(repo, "c.txt", "more\n", "chore: add c (betty-103)", git_date(2024, 3, 10))

        Repo.init(origin_path, bare=True)
        repo.create_remote("origin", str(origin_path))
        repo.git.push("origin", "main", "stable")
        repo.remote("origin").fetch()

        yield SimpleNamespace(
            path=work_path,
            origin_path=origin_path,
            repo=repo,
            c1=c1,
            s1=s1,
            ca=ca,
            cb=cb,
            cc=cc,
        )

        repo.close()
