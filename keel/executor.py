"""
Executor - the boundary to the job execution subsystem.

keel does not run jobs. It hands a compiled JobSpec plus annotations to an
Executor, which returns the name it assigned to the job and later reports
status changes through a single update handler.

Implementations:
- NoOpExecutor: runs nothing; reports the job as started and done (testing,
  dry runs, local development)
- Anything wrapping a real scheduler implements `start` and calls `report`
"""

import logging
import os
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, Optional

from keel.schemas import JobPhase, JobSpec, JobStatus

logger = logging.getLogger(__name__)


# Handler invoked for every status change the executor observes
UpdateHandler = Callable[[JobStatus], None]


_CROCKFORD32 = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"


def generate_ulid() -> str:
    """
    Generate a ULID: a 48-bit millisecond timestamp followed by 80 random
    bits, as 26 Crockford base32 characters. Later ULIDs sort after earlier ones.
    """
    value = (int(time.time() * 1000) << 80) | int.from_bytes(os.urandom(10), "big")
    chars = []
    for _ in range(26):
        value, index = divmod(value, 32)
        chars.append(_CROCKFORD32[index])
    return "".join(reversed(chars))


class Executor(ABC):
    """
    Abstract base class for execution subsystems.

    The update handler is bound once, at startup, by the Service that owns
    this executor. Binding a second handler is an error.
    """

    def __init__(self):
        self._on_update: Optional[UpdateHandler] = None

    def bind(self, handler: UpdateHandler) -> None:
        """
        Register the status update handler.

        Raises:
            RuntimeError: If a handler is already bound
        """
        if self._on_update is not None:
            raise RuntimeError(f"{type(self).__name__} already has an update handler")
        self._on_update = handler

    @property
    def bound(self) -> bool:
        return self._on_update is not None

    def report(self, status: JobStatus) -> None:
        """Deliver a status update to the bound handler (dropped if none is bound)."""
        if self._on_update is None:
            logger.warning(f"Dropping status update for {status.name}: no handler bound")
            return
        self._on_update(status)

    @abstractmethod
    def start(self, spec: JobSpec, annotations: dict[str, str]) -> str:
        """
        Start a job.

        Args:
            spec: The compiled job specification
            annotations: Metadata to attach to the job

        Returns:
            The job name assigned by the executor

        Raises:
            Exception: If the job could not be accepted
        """
        pass


class NoOpExecutor(Executor):
    """
    Executor that runs nothing.

    Every job is reported as STARTING and then DONE (successful). Started
    specs are kept in `started` for inspection.
    """

    def __init__(self):
        super().__init__()
        self.started: list[tuple[str, JobSpec, dict[str, str]]] = []

    def start(self, spec: JobSpec, annotations: dict[str, str]) -> str:
        prefix = annotations.get("repo") or "job"
        name = f"{prefix}-{generate_ulid().lower()}"
        self.started.append((name, spec, dict(annotations)))

        created_at = datetime.now(timezone.utc)
        self.report(JobStatus(
            name=name,
            phase=JobPhase.STARTING,
            annotations=dict(annotations),
            created_at=created_at,
        ))
        self.report(JobStatus(
            name=name,
            phase=JobPhase.DONE,
            annotations=dict(annotations),
            success=True,
            details="no-op executor",
            created_at=created_at,
            finished_at=datetime.now(timezone.utc),
        ))
        return name
