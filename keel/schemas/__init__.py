"""
keel.schemas - Data model for the trigger-to-job pipeline.

TriggerContext -> BuildConfig -> JobSpec -> JobStatus

Lifecycle:
1. TriggerContext: identity of the repository/revision an event refers to
2. BuildConfig: per-repository settings read from .keel.yaml
3. JobSpec: compiled job specification handed to the executor
4. JobStatus: persisted job state, overwritten on every status update
"""

from .trigger import (
    TriggerKind,
    TriggerContext,
)
from .build_config import (
    BuildConfig,
    TriggerSettings,
)
from .job_spec import (
    JobSpec,
)
from .job_status import (
    JobPhase,
    JobStatus,
    FilterOp,
    AnnotationFilter,
)

__all__ = [
    # Triggers
    "TriggerKind",
    "TriggerContext",
    # Build Config
    "BuildConfig",
    "TriggerSettings",
    # Job Spec
    "JobSpec",
    # Job Status
    "JobPhase",
    "JobStatus",
    "FilterOp",
    "AnnotationFilter",
]
