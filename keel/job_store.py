"""
JobStore - Persist job status records.

The JobStore keeps one JobStatus per job name:
- store() upserts by name; the new record fully replaces the old one
- get() retrieves a record by name
- find() filters by annotations and pages through the result

find() orders records by name so that pagination is deterministic.

Storage backends:
- In-memory (for testing)
- File-based (one JSON file per job)
"""

import json
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, Optional, Sequence

from keel.errors import JobNotFoundError
from keel.schemas import AnnotationFilter, JobStatus


def _check_page(start: int, limit: int) -> None:
    if start < 0:
        raise ValueError(f"start must be >= 0, got {start}")
    if limit < 0:
        raise ValueError(f"limit must be >= 0, got {limit}")


def paginate(
    jobs: Iterable[JobStatus],
    filters: Optional[Sequence[AnnotationFilter]],
    start: int,
    limit: int,
) -> tuple[list[JobStatus], int]:
    """
    Filter, order and slice job records.

    Args:
        jobs: Candidate records
        filters: Annotation filters, ANDed together (empty/None = no filtering)
        start: Offset into the filtered result
        limit: Maximum records to return (0 = no limit)

    Returns:
        Tuple of (page, total) where total counts the full filtered set
    """
    _check_page(start, limit)
    filters = filters or ()
    matched = [j for j in jobs if all(f.matches(j.annotations) for f in filters)]
    matched.sort(key=lambda j: j.name)

    total = len(matched)
    if limit == 0:
        return matched[start:], total
    return matched[start:start + limit], total


class JobStore(ABC):
    """
    Abstract base class for job status storage.
    """

    @abstractmethod
    def store(self, job: JobStatus) -> None:
        """
        Store job information.

        Storing a job whose name is already known replaces the stored record.

        Args:
            job: The JobStatus to store
        """
        pass

    @abstractmethod
    def get(self, name: str) -> JobStatus:
        """
        Retrieve a job by name.

        Raises:
            JobNotFoundError: If the job is unknown
        """
        pass

    @abstractmethod
    def find(
        self,
        filters: Optional[Sequence[AnnotationFilter]] = None,
        start: int = 0,
        limit: int = 0,
    ) -> tuple[list[JobStatus], int]:
        """
        Search for jobs by their annotations.

        Args:
            filters: Annotation filters, ANDed together. Empty means no filtering.
            start: Offset into the filtered result
            limit: Maximum number of records; 0 means no limit

        Returns:
            Tuple of (page, total) where total is the size of the filtered set
        """
        pass


class InMemoryJobStore(JobStore):
    """
    In-memory implementation of JobStore for testing.

    All data is lost when the instance is garbage collected.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._jobs: dict[str, JobStatus] = {}

    def store(self, job: JobStatus) -> None:
        with self._lock:
            self._jobs[job.name] = job

    def get(self, name: str) -> JobStatus:
        with self._lock:
            job = self._jobs.get(name)
        if job is None:
            raise JobNotFoundError(f"job not found: {name}")
        return job

    def find(self, filters=None, start=0, limit=0) -> tuple[list[JobStatus], int]:
        with self._lock:
            jobs = list(self._jobs.values())
        return paginate(jobs, filters, start, limit)

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def clear(self) -> None:
        """Clear all stored data (for testing)."""
        with self._lock:
            self._jobs.clear()


class FileJobStore(JobStore):
    """
    File-based implementation of JobStore.

    Stores each job as a JSON file:
        store_dir/
            {name}.json

    Writes go to a temporary file that is atomically renamed into place, so
    a reader never sees a half-written record.
    """

    def __init__(self, store_dir: Path | str):
        self._store_dir = Path(store_dir)
        self._store_dir.mkdir(parents=True, exist_ok=True)

    @property
    def store_dir(self) -> Path:
        return self._store_dir

    def _path(self, name: str) -> Path:
        if not name or name in (".", "..") or "/" in name or "\\" in name:
            raise ValueError(f"invalid job name: {name!r}")
        return self._store_dir / f"{name}.json"

    def store(self, job: JobStatus) -> None:
        path = self._path(job.name)
        fd, tmp_path = tempfile.mkstemp(dir=self._store_dir, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(job.to_dict(), f, indent=2)
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def get(self, name: str) -> JobStatus:
        path = self._path(name)
        if not path.exists():
            raise JobNotFoundError(f"job not found: {name}")
        with open(path) as f:
            data = json.load(f)
        return JobStatus.from_dict(data)

    def find(self, filters=None, start=0, limit=0) -> tuple[list[JobStatus], int]:
        _check_page(start, limit)
        jobs = []
        for path in self._store_dir.glob("*.json"):
            if path.name.startswith(".tmp-"):
                continue
            with open(path) as f:
                jobs.append(JobStatus.from_dict(json.load(f)))
        return paginate(jobs, filters, start, limit)
