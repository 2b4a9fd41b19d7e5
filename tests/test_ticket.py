"""Tests for ticket extraction and commit normalization."""

import pytest

from cherry_pick_tool.core.ticket import DEFAULT_TICKET_PATTERN, extract_ticket, to_commit_record


def test_extracts_first_match():
    assert extract_ticket("fix: correct overflow (PROJ-482)", r"PROJ-\d+") == "PROJ-482"


def test_match_is_case_insensitive_and_keeps_literal_text():
    assert extract_ticket("proj-7 and PROJ-8", r"PROJ-\d+") == "proj-7"


def test_no_match_returns_none():
    assert extract_ticket("chore: bump dependencies", r"PROJ-\d+") is None


@pytest.mark.parametrize("pattern", [None, ""])
def test_missing_pattern_returns_none(pattern):
    assert extract_ticket("fix PROJ-1", pattern) is None


def test_default_pattern():
    assert extract_ticket("Betty-1234: handle nulls", DEFAULT_TICKET_PATTERN) == "Betty-1234"


def test_invalid_pattern_raises_value_error():
    with pytest.raises(ValueError, match="Invalid ticket pattern"):
        extract_ticket("anything", "PROJ-(")


def test_to_commit_record(project):
    record = to_commit_record(project.cb, DEFAULT_TICKET_PATTERN)

    assert record.sha == project.cb.hexsha
    assert record.short_sha == project.cb.hexsha[:7]
    assert record.message == "fix: change base (BETTY-102)"
    assert record.author == "Test User"
    assert record.committed_at.tzinfo is not None
    assert record.ticket_id == "BETTY-102"


def test_ticket_found_in_message_body(project):
    repo = project.repo
    (project.path / "d.txt").write_text("d\n")
    repo.index.add(["d.txt"])
    commit = repo.index.commit("Add d\n\nRefs betty-900")

    record = to_commit_record(commit, DEFAULT_TICKET_PATTERN)

    assert record.message == "Add d"
    assert record.ticket_id == "betty-900"
