"""Tests for the executor boundary and job submission."""

import time

import pytest

from keel.errors import SubmissionError
from keel.executor import Executor, NoOpExecutor, generate_ulid
from keel.schemas import JobPhase, JobSpec, JobStatus
from keel.submitter import JobSubmitter


SPEC = JobSpec.from_document({"image": "alpine"})


class FailingExecutor(Executor):
    def start(self, spec, annotations):
        raise RuntimeError("cluster unavailable")


class NamelessExecutor(Executor):
    def start(self, spec, annotations):
        return ""


class TestGenerateUlid:

    def test_length_and_alphabet(self):
        ulid = generate_ulid()
        assert len(ulid) == 26
        assert set(ulid) <= set("0123456789ABCDEFGHJKMNPQRSTVWXYZ")

    def test_unique(self):
        assert len({generate_ulid() for _ in range(100)}) == 100

    def test_sorts_by_time(self):
        first = generate_ulid()
        time.sleep(0.002)
        assert generate_ulid() > first


class TestExecutorBinding:

    def test_bind_once(self):
        executor = NoOpExecutor()
        executor.bind(lambda status: None)
        assert executor.bound
        with pytest.raises(RuntimeError, match="already has an update handler"):
            executor.bind(lambda status: None)

    def test_report_without_handler_is_dropped(self):
        executor = NoOpExecutor()
        executor.report(JobStatus(name="j"))
        assert not executor.bound


class TestNoOpExecutor:

    def test_reports_starting_then_done(self):
        updates = []
        executor = NoOpExecutor()
        executor.bind(updates.append)

        name = executor.start(SPEC, {"repo": "widgets"})

        assert name.startswith("widgets-")
        assert [u.phase for u in updates] == [JobPhase.STARTING, JobPhase.DONE]
        assert all(u.name == name for u in updates)
        assert updates[-1].success is True
        assert executor.started == [(name, SPEC, {"repo": "widgets"})]

    def test_names_are_unique(self):
        executor = NoOpExecutor()
        names = {executor.start(SPEC, {}) for _ in range(20)}
        assert len(names) == 20
        assert all(n.startswith("job-") for n in names)


class TestJobSubmitter:

    def test_submit_passes_annotations(self, context):
        executor = NoOpExecutor()
        name = JobSubmitter(executor).submit(SPEC, context)
        assert executor.started[0][0] == name
        assert executor.started[0][2] == {
            "owner": "acme",
            "repo": "widgets",
            "rev": "refs/heads/main",
        }

    def test_executor_failure(self, context):
        with pytest.raises(SubmissionError) as exc_info:
            JobSubmitter(FailingExecutor()).submit(SPEC, context)
        assert "cannot handle push to acme/widgets@refs/heads/main" in str(exc_info.value)
        assert "cluster unavailable" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert exc_info.value.context is context

    def test_empty_name(self, context):
        with pytest.raises(SubmissionError, match="no job name"):
            JobSubmitter(NamelessExecutor()).submit(SPEC, context)
