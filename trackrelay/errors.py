"""Error taxonomy for the relay pipeline.

Every error derives from RelayError (a RuntimeError), so callers that only
care about "the run failed" can catch one type.
"""


class RelayError(RuntimeError):
    pass


class MissingPayloadError(RelayError):
    """The dispatch envelope carries no client_payload."""


class TransportError(RelayError):
    def __init__(self, status_code: int | None, reason: str) -> None:
        self.status_code = status_code
        self.reason = reason
        if status_code is None:
            super().__init__(f"Linear API request failed: {reason}")
        else:
            super().__init__(f"Linear API request failed: {status_code} {reason}")


class ProtocolError(RelayError):
    def __init__(self, messages: list[str]) -> None:
        self.messages = messages
        super().__init__(f"Linear GraphQL errors: {'; '.join(messages)}")


class EmptyResultError(RelayError):
    def __init__(self) -> None:
        super().__init__("Linear API returned no data")


class NotFoundError(RelayError):
    def __init__(self, issue_id: str) -> None:
        self.issue_id = issue_id
        super().__init__(f"Linear issue not found: {issue_id}")


class CreateFailedError(RelayError):
    def __init__(self) -> None:
        super().__init__("Failed to create Linear tracking comment")


class UpdateFailedError(RelayError):
    def __init__(self) -> None:
        super().__init__("Failed to update Linear tracking comment")


class InvalidTransitionError(RelayError):
    """A lifecycle call was made from a phase that does not allow it."""


class InvalidBranchNameError(RelayError):
    pass


class GitCommandError(RelayError):
    def __init__(self, args: list[str], stderr: str) -> None:
        self.args_run = args
        self.stderr = stderr
        super().__init__(f"git {' '.join(args)} failed: {stderr.strip()}")


class InvalidAgentArgsError(RelayError):
    """The configured extra agent arguments are not valid shell syntax."""
