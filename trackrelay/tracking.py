"""The tracking comment: one Linear comment per run that mirrors its progress.

Lifecycle: absent → created → updated* → finalized. A manager owns at most
one handle; every write goes through ``TrackerProvider.update_comment`` and a
failed write leaves the handle in its last successfully written phase.
"""

import logging

from trackrelay.errors import InvalidTransitionError
from trackrelay.models import CommentPhase, FinalizeOutcome, TrackingComment
from trackrelay.providers.base import TrackerProvider
from trackrelay.sanitize import sanitize_content

logger = logging.getLogger(__name__)


def branch_url(server_url: str, repository: str, branch: str) -> str:
    return f"{server_url}/{repository}/tree/{branch}"


def compare_url(server_url: str, repository: str, base_branch: str, branch: str) -> str:
    """Pre-filled "open a pull request" link for branch against base_branch."""
    return f"{server_url}/{repository}/compare/{base_branch}...{branch}?quick_pull=1"


def started_body(job_url: str) -> str:
    return f"**Claude is working…** :hourglass_flowing_sand:\n\n[View job run]({job_url})"


def finished_body(outcome: FinalizeOutcome) -> str:
    if not outcome.success:
        # Error detail stays in the job log, never in a public comment.
        return f"**Claude encountered an error.** Check the [job run]({outcome.job_url}) for details."

    links = ""
    if outcome.branch_name:
        branch = outcome.branch_name
        tree = branch_url(outcome.server_url, outcome.repository, branch)
        pr = compare_url(outcome.server_url, outcome.repository, outcome.base_branch, branch)
        links = f"\n\nBranch: [`{branch}`]({tree})\n[Create a PR]({pr})"
    return f"**Claude finished the task.**{links}\n\n[View job run]({outcome.job_url})"


class TrackingCommentManager:
    def __init__(self, provider: TrackerProvider, comment: TrackingComment | None = None) -> None:
        self._provider = provider
        self.comment = comment

    @classmethod
    def attach(cls, provider: TrackerProvider, comment_id: str, job_url: str = "") -> "TrackingCommentManager":
        """Rebuild a manager around a comment created by another process."""
        return cls(provider, TrackingComment(comment_id=comment_id, job_url=job_url))

    def _require_open(self, operation: str) -> TrackingComment:
        if self.comment is None:
            raise InvalidTransitionError(f"cannot {operation}: no tracking comment has been created")
        if self.comment.phase == CommentPhase.FINALIZED:
            raise InvalidTransitionError(f"cannot {operation}: comment {self.comment.comment_id} is finalized")
        return self.comment

    def create(self, issue_id: str, job_url: str) -> TrackingComment:
        if self.comment is not None:
            raise InvalidTransitionError(f"tracking comment {self.comment.comment_id} already exists for this run")
        comment_id = self._provider.create_comment(issue_id, started_body(job_url))
        self.comment = TrackingComment(comment_id=comment_id, job_url=job_url, issue_id=issue_id)
        logger.info("Created Linear tracking comment %s", comment_id)
        return self.comment

    def _write(self, comment: TrackingComment, body: str, phase: CommentPhase) -> TrackingComment:
        self._provider.update_comment(comment.comment_id, sanitize_content(body))
        self.comment = comment.model_copy(update={"phase": phase})
        return self.comment

    def update(self, body: str) -> TrackingComment:
        comment = self._require_open("update")
        return self._write(comment, body, CommentPhase.UPDATED)

    def finalize(self, outcome: FinalizeOutcome) -> TrackingComment:
        comment = self._require_open("finalize")
        finalized = self._write(comment, finished_body(outcome), CommentPhase.FINALIZED)
        logger.info(
            "Finalized Linear tracking comment %s (%s)",
            comment.comment_id,
            "success" if outcome.success else "failure",
        )
        return finalized
