"""
JobStatus schemas - persisted job state and annotation queries.

A JobStatus is keyed by job name. It is created on submission (or on the
first status update) and overwritten in full on every later update for the
same name; keel never merges fields and never deletes records.

AnnotationFilter narrows a job query by matching annotation values.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


def _utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


class JobPhase(str, Enum):
    """Lifecycle phase of a job as reported by the executor."""
    UNKNOWN = "unknown"
    PREPARING = "preparing"
    STARTING = "starting"
    RUNNING = "running"
    DONE = "done"

    @property
    def is_terminal(self) -> bool:
        return self is JobPhase.DONE


@dataclass(frozen=True)
class JobStatus:
    """
    The stored record of a job.

    Attributes:
        name: Unique job name assigned by the executor
        phase: Current lifecycle phase
        annotations: Key/value metadata used for filtering (owner, repo, rev, ...)
        success: Outcome once the job is done (None while running)
        details: Free-text status details from the executor
        metadata: Any further execution metadata
        created_at: When the job was created
        finished_at: When the job finished (None while running)
    """
    name: str
    phase: JobPhase = JobPhase.UNKNOWN
    annotations: dict[str, str] = field(default_factory=dict)
    success: Optional[bool] = None
    details: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_utcnow)
    finished_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.name:
            raise ValueError("JobStatus requires a name")

    @property
    def is_done(self) -> bool:
        return self.phase.is_terminal

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        result: dict[str, Any] = {
            "name": self.name,
            "phase": self.phase.value,
            "annotations": dict(self.annotations),
            "created_at": self.created_at.isoformat(),
        }
        if self.success is not None:
            result["success"] = self.success
        if self.details:
            result["details"] = self.details
        if self.metadata:
            result["metadata"] = self.metadata
        if self.finished_at is not None:
            result["finished_at"] = self.finished_at.isoformat()
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "JobStatus":
        """Deserialize from dictionary."""
        finished_at = None
        if data.get("finished_at"):
            finished_at = datetime.fromisoformat(data["finished_at"])

        return cls(
            name=data["name"],
            phase=JobPhase(data.get("phase", JobPhase.UNKNOWN.value)),
            annotations=dict(data.get("annotations", {})),
            success=data.get("success"),
            details=data.get("details", ""),
            metadata=dict(data.get("metadata", {})),
            created_at=datetime.fromisoformat(data["created_at"]) if data.get("created_at") else _utcnow(),
            finished_at=finished_at,
        )


class FilterOp(str, Enum):
    """How an AnnotationFilter compares an annotation value."""
    EQUALS = "equals"
    STARTS_WITH = "starts_with"
    CONTAINS = "contains"
    EXISTS = "exists"


# Longest operators first so "^=" is not read as "=".
_FILTER_SYNTAX = (
    ("^=", FilterOp.STARTS_WITH),
    ("~=", FilterOp.CONTAINS),
    ("=", FilterOp.EQUALS),
)


@dataclass(frozen=True)
class AnnotationFilter:
    """
    A predicate over a job's annotations.

    Filters passed to a query are ANDed together.

    Attributes:
        key: Annotation key to inspect
        op: Match rule
        value: Value to compare against (ignored for EXISTS)
        negate: Invert the result
    """
    key: str
    op: FilterOp = FilterOp.EQUALS
    value: str = ""
    negate: bool = False

    def matches(self, annotations: dict[str, str]) -> bool:
        """Check whether an annotation set satisfies this filter."""
        if self.key not in annotations:
            result = False
        else:
            actual = annotations[self.key]
            if self.op == FilterOp.EXISTS:
                result = True
            elif self.op == FilterOp.EQUALS:
                result = actual == self.value
            elif self.op == FilterOp.STARTS_WITH:
                result = actual.startswith(self.value)
            elif self.op == FilterOp.CONTAINS:
                result = self.value in actual
            else:
                raise ValueError(f"Unknown filter op: {self.op}")
        return not result if self.negate else result

    @classmethod
    def parse(cls, expression: str) -> "AnnotationFilter":
        """
        Parse a filter expression.

        Supported forms:
            key=value     equals
            key^=prefix   starts with
            key~=text     contains
            key           key exists
            !<any form>   negated
        """
        expr = expression.strip()
        negate = expr.startswith("!")
        if negate:
            expr = expr[1:].strip()

        for token, op in _FILTER_SYNTAX:
            if token in expr:
                key, value = expr.split(token, 1)
                key = key.strip()
                if not key:
                    raise ValueError(f"Filter has no key: {expression!r}")
                return cls(key=key, op=op, value=value.strip(), negate=negate)

        if not expr:
            raise ValueError(f"Empty filter expression: {expression!r}")
        return cls(key=expr, op=FilterOp.EXISTS, negate=negate)
