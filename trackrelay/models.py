"""Shared pydantic models: the contract between the tracker, the pipeline and main.py."""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

# ---------------------------------------------------------------------------
# Inbound dispatch envelope (repository_dispatch relaying a Linear webhook)
# ---------------------------------------------------------------------------


class _Payload(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)


class WebhookUser(_Payload):
    id: str | None = None
    name: str
    email: str | None = None


class WebhookTeam(_Payload):
    key: str
    name: str | None = None


class WebhookIssueRef(_Payload):
    """The thin issue projection embedded in a comment event."""

    id: str
    identifier: str
    title: str


class WebhookIssue(_Payload):
    id: str
    identifier: str  # ENG-123
    title: str
    description: str | None = None
    url: str | None = None
    team: WebhookTeam | None = None
    actor: WebhookUser | None = None


class WebhookComment(_Payload):
    id: str
    body: str
    issue: WebhookIssueRef
    user: WebhookUser
    url: str | None = None  # fragment-qualified: .../ENG-123#comment-id


class WebhookPayload(_Payload):
    """Linear webhook body as relayed in client_payload.

    ``data`` stays untyped here; its shape depends on ``type`` and only the
    context normalizer decides which model to read it as.
    """

    action: str | None = None
    type: str
    data: dict[str, Any]
    url: str | None = None
    actor: WebhookUser | None = None
    created_at: str | None = Field(default=None, alias="createdAt")


class Login(_Payload):
    login: str


class RepositoryRef(_Payload):
    name: str
    owner: Login


class DispatchEnvelope(_Payload):
    action: str | None = None
    client_payload: WebhookPayload | None = None
    repository: RepositoryRef | None = None
    sender: Login | None = None


# ---------------------------------------------------------------------------
# Canonical context
# ---------------------------------------------------------------------------


class TrackerContext(BaseModel):
    """Shape-independent view of whatever event triggered the run."""

    model_config = ConfigDict(frozen=True)

    issue_id: str  # Linear-internal UUID
    identifier: str  # ENG-123
    title: str
    description: str | None = None
    issue_url: str
    trigger_comment_body: str | None = None
    trigger_comment_id: str | None = None
    actor_name: str
    team_key: str

    @model_validator(mode="after")
    def _trigger_fields_paired(self) -> "TrackerContext":
        if (self.trigger_comment_body is None) != (self.trigger_comment_id is None):
            raise ValueError("trigger_comment_body and trigger_comment_id must be set together")
        return self

    @property
    def is_comment_triggered(self) -> bool:
        return self.trigger_comment_id is not None


# ---------------------------------------------------------------------------
# Snapshot returned by the fetcher
# ---------------------------------------------------------------------------


class Person(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    email: str | None = None


class IssueState(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    type: str  # Linear state category: backlog, unstarted, started, ...


class Team(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    name: str


class IssueComment(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    body: str
    created_at: str
    author: Person | None = None


class IssueSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    identifier: str
    title: str
    description: str | None = None
    url: str
    state: IssueState
    priority: int = 0
    priority_label: str = "No priority"
    team: Team
    assignee: Person | None = None
    labels: list[str] = []
    comments: list[IssueComment] = []


class FetchResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    issue: IssueSnapshot
    comments: list[IssueComment] = []


# ---------------------------------------------------------------------------
# Tracking comment lifecycle
# ---------------------------------------------------------------------------


class CommentPhase(StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    FINALIZED = "finalized"


class TrackingComment(BaseModel):
    """Handle to the single progress comment a run owns."""

    model_config = ConfigDict(frozen=True)

    comment_id: str
    job_url: str
    issue_id: str | None = None
    phase: CommentPhase = CommentPhase.CREATED


class FinalizeOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    branch_name: str | None = None  # None when the agent made no commits
    base_branch: str = "main"
    repository: str  # owner/repo
    job_url: str
    server_url: str = "https://github.com"


# ---------------------------------------------------------------------------
# Orchestrator output
# ---------------------------------------------------------------------------


class BranchInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    work_branch: str | None
    base_branch: str
    current_branch: str


class CleanupDescriptor(BaseModel):
    """Everything finalize needs, and nothing more. Treat it as a capability token."""

    model_config = ConfigDict(frozen=True)

    api_key: str
    issue_id: str
    comment_id: str


class PrepareResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    branch_info: BranchInfo
    agent_args: str
    prompt_path: str | None = None
    repository: str | None = None
    server_url: str = "https://github.com"
    job_url: str | None = None
    cleanup: CleanupDescriptor | None = None  # None unless the run came from Linear


class PromptOptions(BaseModel):
    """Run metadata the prompt needs beyond the issue itself."""

    model_config = ConfigDict(frozen=True)

    repository: str  # owner/repo
    work_branch: str | None = None
    base_branch: str = "main"
    comment_id: str
    job_url: str
    server_url: str = "https://github.com"
