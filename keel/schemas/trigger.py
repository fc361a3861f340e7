"""
Trigger schemas - what caused a pipeline run.

TriggerKind is the closed set of source-control event categories keel knows
about. TriggerContext identifies the repository and revision an event refers
to; one instance is built per incoming event and never mutated.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from keel.errors import UnhandledEventKindError


class TriggerKind(str, Enum):
    """
    Category of source-control event.

    Only PUSH is wired to the build pipeline. COMMENT and CREATE are
    recognised so they can be routed without being treated as unknown.
    """
    PUSH = "push"
    COMMENT = "comment"
    CREATE = "create"

    @classmethod
    def from_event(cls, event_type: str) -> "TriggerKind":
        """
        Map a source-control event name to a trigger kind.

        Raises:
            UnhandledEventKindError: If the event name is not known
        """
        kind = _EVENT_KINDS.get(event_type)
        if kind is None:
            raise UnhandledEventKindError(f"unhandled event: {event_type}")
        return kind

    @classmethod
    def from_string(cls, value: str) -> "TriggerKind":
        """Parse a trigger kind from its config name (e.g. 'push')."""
        try:
            return cls(value)
        except ValueError:
            valid = ", ".join(k.value for k in cls)
            raise ValueError(f"unknown trigger kind '{value}' (expected one of: {valid})")


_EVENT_KINDS = {
    "push": TriggerKind.PUSH,
    "commit_comment": TriggerKind.COMMENT,
    "create": TriggerKind.CREATE,
}


@dataclass(frozen=True)
class TriggerContext:
    """
    Identity of the repository/revision that caused a pipeline run.

    Attributes:
        owner: Owning user or organisation
        repo: Repository name
        revision: Ref or commit the event points at (e.g. refs/heads/main)
    """
    owner: str
    repo: str
    revision: str

    def __post_init__(self):
        if not self.owner:
            raise ValueError("TriggerContext requires an owner")
        if not self.repo:
            raise ValueError("TriggerContext requires a repo")

    def __str__(self) -> str:
        return f"{self.owner}/{self.repo}@{self.revision}"

    def template_vars(self) -> dict[str, Any]:
        """Lookup fields exposed to job templates."""
        return {
            "Owner": self.owner,
            "Repo": self.repo,
            "Revision": self.revision,
        }

    def annotations(self) -> dict[str, str]:
        """Annotations attached to every job submitted for this context."""
        return {
            "owner": self.owner,
            "repo": self.repo,
            "rev": self.revision,
        }
