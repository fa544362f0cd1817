"""Normalize a relayed Linear webhook into one TrackerContext.

Comment events carry only a thin projection of their parent issue (id,
identifier, title) while issue events carry the full record, so the two
branches read different fields for the same attribute. This module is the
only place that knows both shapes exist.
"""

import logging
from collections.abc import Mapping
from typing import Any, Literal

from trackrelay.errors import MissingPayloadError
from trackrelay.models import DispatchEnvelope, TrackerContext, WebhookComment, WebhookIssue, WebhookPayload

logger = logging.getLogger(__name__)

LINEAR_DISPATCH_ACTION = "linear-webhook"

TrackerSource = Literal["github", "linear"]


def detect_tracker_source(event_name: str, envelope: Mapping[str, Any]) -> TrackerSource:
    """Return "linear" for a repository_dispatch relaying a Linear webhook, else "github"."""
    if event_name == "repository_dispatch" and envelope.get("action") == LINEAR_DISPATCH_ACTION:
        return "linear"
    return "github"


def strip_fragment(url: str) -> str:
    """Drop everything from the first '#' onward."""
    return url.split("#", 1)[0]


def team_key_from_identifier(identifier: str) -> str:
    """ENG-123 → ENG; an identifier without '-' has no derivable team key."""
    prefix, sep, _ = identifier.partition("-")
    return prefix if sep else ""


def _from_comment(payload: WebhookPayload) -> TrackerContext:
    comment = WebhookComment.model_validate(payload.data)
    # Linear puts the URL on the top-level payload for some deliveries.
    # Either way it points at the comment, so the anchor is removed.
    comment_url = comment.url or payload.url or ""
    return TrackerContext(
        issue_id=comment.issue.id,
        identifier=comment.issue.identifier,
        title=comment.issue.title,
        issue_url=strip_fragment(comment_url),
        trigger_comment_body=comment.body,
        trigger_comment_id=comment.id,
        actor_name=comment.user.name,
        team_key=team_key_from_identifier(comment.issue.identifier),
    )


def _from_issue(payload: WebhookPayload, envelope: DispatchEnvelope) -> TrackerContext:
    issue = WebhookIssue.model_validate(payload.data)
    actor = issue.actor or payload.actor
    if actor is not None:
        actor_name = actor.name
    elif envelope.sender is not None:
        actor_name = envelope.sender.login
    else:
        actor_name = "unknown"
    team_key = issue.team.key if issue.team else team_key_from_identifier(issue.identifier)
    return TrackerContext(
        issue_id=issue.id,
        identifier=issue.identifier,
        title=issue.title,
        description=issue.description,
        issue_url=issue.url or payload.url or "",
        actor_name=actor_name,
        team_key=team_key,
    )


def parse_tracker_context(event: Mapping[str, Any]) -> TrackerContext:
    """Parse a repository_dispatch event body into a TrackerContext.

    Raises MissingPayloadError when the envelope has no client_payload;
    that is a relay problem, not a Linear one.
    """
    if not event.get("client_payload"):
        raise MissingPayloadError("Missing client_payload in repository_dispatch event for Linear webhook")

    envelope = DispatchEnvelope.model_validate(event)
    payload = WebhookPayload.model_validate(event["client_payload"])

    match payload.type:
        case "Comment":
            context = _from_comment(payload)
        case _:
            context = _from_issue(payload, envelope)

    logger.debug("Normalized %s event for %s", payload.type, context.identifier)
    return context
