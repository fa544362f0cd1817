"""Linear GraphQL API provider."""

import logging
from json import JSONDecodeError

import httpx

from trackrelay.errors import (
    CreateFailedError,
    EmptyResultError,
    NotFoundError,
    ProtocolError,
    TransportError,
    UpdateFailedError,
)
from trackrelay.models import FetchResult, IssueComment, IssueSnapshot, IssueState, Person, Team
from trackrelay.providers.base import TrackerProvider
from trackrelay.settings import LINEAR_ENDPOINT

ENDPOINT = LINEAR_ENDPOINT

logger = logging.getLogger(__name__)

_ISSUE_WITH_COMMENTS = """
query IssueWithComments($issueId: String!) {
  issue(id: $issueId) {
    id
    identifier
    title
    description
    url
    state { name type }
    priority
    priorityLabel
    team { key name }
    assignee { name email }
    labels { nodes { name } }
    comments {
      nodes {
        id
        body
        createdAt
        user { name email }
      }
    }
  }
}
"""

_CREATE_COMMENT = """
mutation CreateComment($issueId: String!, $body: String!) {
  commentCreate(input: { issueId: $issueId, body: $body }) {
    success
    comment {
      id
      body
      createdAt
    }
  }
}
"""

_UPDATE_COMMENT = """
mutation UpdateComment($commentId: String!, $body: String!) {
  commentUpdate(id: $commentId, input: { body: $body }) {
    success
    comment {
      id
      body
    }
  }
}
"""


def graphql_request(
    endpoint: str,
    api_key: str,
    query: str,
    variables: dict | None = None,
    *,
    timeout: float = 30,
    client: httpx.Client | None = None,
) -> dict:
    """POST one GraphQL request and return its ``data`` object.

    Checks run in a fixed order: HTTP status, then reported GraphQL errors,
    then a missing ``data`` payload. No retries.
    """
    post = client.post if client is not None else httpx.post
    try:
        response = post(
            endpoint,
            json={"query": query, "variables": variables or {}},
            headers={
                "Authorization": api_key,
                "Content-Type": "application/json",
            },
            timeout=timeout,
        )
    except httpx.HTTPError as exc:
        raise TransportError(None, str(exc)) from exc

    if not response.is_success:
        raise TransportError(response.status_code, response.reason_phrase)

    try:
        result = response.json()
    except JSONDecodeError as exc:
        raise ProtocolError(["response body is not valid JSON"]) from exc
    if not isinstance(result, dict):
        raise ProtocolError(["response body is not a JSON object"])

    errors = result.get("errors") or []
    if errors:
        raise ProtocolError([str(e.get("message", e)) if isinstance(e, dict) else str(e) for e in errors])

    # An empty object is still a result; only an absent or null data is not.
    data = result.get("data")
    if data is None:
        raise EmptyResultError()
    return data


class LinearProvider(TrackerProvider):
    def __init__(self, api_key: str, endpoint: str = ENDPOINT, client: httpx.Client | None = None) -> None:
        if not api_key:
            raise RuntimeError("linear_api_key is required")
        self._api_key = api_key
        self._endpoint = endpoint
        self._client = client

    def _gql(self, query: str, variables: dict | None = None) -> dict:
        return graphql_request(self._endpoint, self._api_key, query, variables, client=self._client)

    def _snapshot_from_node(self, node: dict) -> IssueSnapshot:
        raw_comments = (node.get("comments") or {}).get("nodes") or []
        comments = [
            IssueComment(
                id=c["id"],
                body=c.get("body") or "",
                created_at=c.get("createdAt") or "",
                author=Person(name=c["user"]["name"], email=c["user"].get("email")) if c.get("user") else None,
            )
            for c in raw_comments
        ]
        assignee = node.get("assignee")
        return IssueSnapshot(
            id=node["id"],
            identifier=node["identifier"],
            title=node["title"],
            description=node.get("description"),
            url=node["url"],
            state=IssueState(name=node["state"]["name"], type=node["state"]["type"]),
            priority=node.get("priority") or 0,
            priority_label=node.get("priorityLabel") or "No priority",
            team=Team(key=node["team"]["key"], name=node["team"]["name"]),
            assignee=Person(name=assignee["name"], email=assignee.get("email")) if assignee else None,
            labels=[label["name"] for label in (node.get("labels") or {}).get("nodes") or []],
            comments=comments,
        )

    def fetch_issue(self, issue_id: str) -> FetchResult:
        # Always a full re-read: the webhook body may be partial or stale.
        data = self._gql(_ISSUE_WITH_COMMENTS, {"issueId": issue_id})
        node = data.get("issue")
        if not node:
            raise NotFoundError(issue_id)
        snapshot = self._snapshot_from_node(node)
        return FetchResult(issue=snapshot, comments=snapshot.comments)

    def create_comment(self, issue_id: str, body: str) -> str:
        data = self._gql(_CREATE_COMMENT, {"issueId": issue_id, "body": body})
        result = data.get("commentCreate") or {}
        if not result.get("success") or not result.get("comment"):
            raise CreateFailedError()
        return result["comment"]["id"]

    def update_comment(self, comment_id: str, body: str) -> None:
        data = self._gql(_UPDATE_COMMENT, {"commentId": comment_id, "body": body})
        result = data.get("commentUpdate") or {}
        if not result.get("success"):
            raise UpdateFailedError()
        logger.debug("Updated Linear comment %s", comment_id)
