"""Abstract base class for tracker providers."""

from abc import ABC, abstractmethod

from trackrelay.models import FetchResult


class TrackerProvider(ABC):
    @abstractmethod
    def fetch_issue(self, issue_id: str) -> FetchResult: ...

    @abstractmethod
    def create_comment(self, issue_id: str, body: str) -> str: ...

    @abstractmethod
    def update_comment(self, comment_id: str, body: str) -> None: ...
