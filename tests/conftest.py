"""Shared test fixtures."""

import pytest

from tests.fakes import FakeProvider
from trackrelay.models import (
    FetchResult,
    IssueComment,
    IssueSnapshot,
    IssueState,
    Person,
    Team,
    TrackerContext,
)


@pytest.fixture
def comment_event() -> dict:
    return {
        "action": "linear-webhook",
        "client_payload": {
            "action": "create",
            "type": "Comment",
            "data": {
                "id": "comment-uuid-123",
                "body": "@claude please fix this bug",
                "issueId": "issue-uuid-456",
                "issue": {
                    "id": "issue-uuid-456",
                    "identifier": "ENG-123",
                    "title": "Fix the login flow",
                },
                "user": {"id": "user-uuid-789", "name": "Alice", "email": "alice@example.com"},
                "createdAt": "2024-01-01T00:00:00.000Z",
                "url": "https://linear.app/eng/issue/ENG-123#comment-uuid-123",
            },
            "createdAt": "2024-01-01T00:00:00.000Z",
        },
        "repository": {"name": "test-repo", "owner": {"login": "test-owner"}},
        "sender": {"login": "test-user"},
    }


@pytest.fixture
def issue_event() -> dict:
    return {
        "action": "linear-webhook",
        "client_payload": {
            "action": "create",
            "type": "Issue",
            "data": {
                "id": "issue-uuid-456",
                "identifier": "PROJ-42",
                "title": "Add dark mode support",
                "description": "We need dark mode for accessibility",
                "state": {"name": "Todo", "type": "unstarted"},
                "priority": 2,
                "team": {"key": "PROJ", "name": "Project Team"},
                "assignee": {"name": "Bob", "email": "bob@example.com"},
                "labels": [{"name": "feature"}],
                "url": "https://linear.app/proj/issue/PROJ-42",
            },
            "createdAt": "2024-01-01T00:00:00.000Z",
        },
        "repository": {"name": "test-repo", "owner": {"login": "bob-user"}},
        "sender": {"login": "bob-user"},
    }


@pytest.fixture
def issue_node() -> dict:
    """IssueWithComments node as the Linear API returns it."""
    return {
        "id": "issue-uuid-1",
        "identifier": "ENG-123",
        "title": "Fix the login flow",
        "description": "Login fails on Safari",
        "url": "https://linear.app/eng/issue/ENG-123",
        "state": {"name": "In Progress", "type": "started"},
        "priority": 2,
        "priorityLabel": "High",
        "team": {"key": "ENG", "name": "Engineering"},
        "assignee": {"name": "Alice", "email": "alice@example.com"},
        "labels": {"nodes": [{"name": "bug"}, {"name": "urgent"}]},
        "comments": {
            "nodes": [
                {
                    "id": "c-1",
                    "body": "This is a blocker for the release",
                    "createdAt": "2024-01-01T00:00:00.000Z",
                    "user": {"name": "Bob", "email": "bob@example.com"},
                }
            ]
        },
    }


@pytest.fixture
def snapshot() -> IssueSnapshot:
    comments = [
        IssueComment(
            id="c-1",
            body="This is a blocker for the release",
            created_at="2024-01-01T00:00:00.000Z",
            author=Person(name="Bob", email="bob@example.com"),
        )
    ]
    return IssueSnapshot(
        id="issue-uuid-1",
        identifier="ENG-123",
        title="Fix the login flow",
        description="Login fails on Safari",
        url="https://linear.app/eng/issue/ENG-123",
        state=IssueState(name="In Progress", type="started"),
        priority=2,
        priority_label="High",
        team=Team(key="ENG", name="Engineering"),
        assignee=Person(name="Alice", email="alice@example.com"),
        labels=["bug"],
        comments=comments,
    )


@pytest.fixture
def fetch_result(snapshot: IssueSnapshot) -> FetchResult:
    return FetchResult(issue=snapshot, comments=snapshot.comments)


@pytest.fixture
def tracker_context() -> TrackerContext:
    return TrackerContext(
        issue_id="issue-uuid-1",
        identifier="ENG-123",
        title="Fix the login flow",
        description="Login fails on Safari",
        issue_url="https://linear.app/eng/issue/ENG-123",
        trigger_comment_body="@claude please fix the Safari login issue",
        trigger_comment_id="comment-uuid-1",
        actor_name="Alice",
        team_key="ENG",
    )


@pytest.fixture
def fake_provider(fetch_result: FetchResult) -> FakeProvider:
    return FakeProvider(fetch_result)
