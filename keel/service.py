"""
Service - ties the trigger-to-job pipeline together.

Pipeline for one event (runs synchronously in the caller's thread):
1. Load .keel.yaml through the revision-scoped FileProvider
2. Ask the TriggerEvaluator whether to run, and with which template
3. Fetch the template
4. Compile it into a JobSpec (render and decode run concurrently)
5. Submit the JobSpec to the executor, which assigns the job name

Status updates flow back from the executor through `on_update`, which
stores the record and then publishes it to live subscribers.

All collaborators are passed in at construction and never replaced
afterwards.
"""

import logging
import time
from typing import BinaryIO, Optional, Sequence

from keel.compiler import JobSpecCompiler
from keel.errors import KeelError, describe_failure
from keel.evaluator import TriggerEvaluator
from keel.events import StatusBroadcaster, Subscription
from keel.executor import Executor
from keel.job_store import JobStore
from keel.log_store import LogStore
from keel.resolver import ConfigResolver, FileProvider
from keel.schemas import AnnotationFilter, JobStatus, TriggerContext, TriggerKind
from keel.submitter import JobSubmitter
from keel.utils import ErrorSink, format_duration, log_error_sink

logger = logging.getLogger(__name__)


class Service:
    """
    The keel service.

    Usage:
        service = Service(
            jobs=FileJobStore(config.jobs_dir),
            logs=FileLogStore(config.logs_dir),
            executor=NoOpExecutor(),
        )
        name = service.run_job(ctx, TriggerKind.PUSH, local_file_provider(checkout))

    Args:
        jobs: Job status store
        logs: Log store
        executor: Execution subsystem; its update handler is bound to this service
        broadcaster: Live status feed (default: a new StatusBroadcaster)
        error_sink: Receives failures with no synchronous caller (default: log_error_sink)
        evaluator: Trigger policy (default: TriggerEvaluator.create_default())
        compiler: Job spec compiler (default: JobSpecCompiler())
        resolver: Config/template resolver (default: ConfigResolver())
    """

    def __init__(
        self,
        jobs: JobStore,
        logs: LogStore,
        executor: Executor,
        broadcaster: Optional[StatusBroadcaster] = None,
        error_sink: Optional[ErrorSink] = None,
        evaluator: Optional[TriggerEvaluator] = None,
        compiler: Optional[JobSpecCompiler] = None,
        resolver: Optional[ConfigResolver] = None,
    ):
        self._jobs = jobs
        self._logs = logs
        self._executor = executor
        self._broadcaster = broadcaster or StatusBroadcaster()
        self._error_sink = error_sink or log_error_sink
        self._evaluator = evaluator or TriggerEvaluator.create_default()
        self._compiler = compiler or JobSpecCompiler()
        self._resolver = resolver or ConfigResolver()
        self._submitter = JobSubmitter(executor)

        executor.bind(self.on_update)

    @property
    def jobs(self) -> JobStore:
        return self._jobs

    @property
    def logs(self) -> LogStore:
        return self._logs

    @property
    def broadcaster(self) -> StatusBroadcaster:
        return self._broadcaster

    def report_error(self, err: Exception) -> None:
        """Hand a failure to the error sink."""
        self._error_sink(err)

    def run_job(
        self,
        context: TriggerContext,
        kind: TriggerKind,
        provider: FileProvider,
    ) -> Optional[str]:
        """
        Run the pipeline for one trigger.

        Returns:
            The job name, or None if the trigger policy declined to run

        Raises:
            KeelError: Any pipeline failure, wrapped with the context descriptor
        """
        started = time.monotonic()
        logger.info(
            f"Handling {kind.value} for {context}",
            extra={"event": "trigger.received", "metadata": context.annotations()},
        )

        try:
            name = self._run(context, kind, provider)
        except KeelError as e:
            logger.warning(
                f"Failed to handle {kind.value} for {context}: {e}",
                extra={"event": "trigger.failed", "metadata": {"type": type(e).__name__}},
            )
            raise

        if name is not None:
            logger.info(
                f"Handled {kind.value} for {context} in {format_duration(time.monotonic() - started)}",
                extra={"event": "trigger.handled", "metadata": {"name": name}},
            )
        return name

    def _run(self, context: TriggerContext, kind: TriggerKind, provider: FileProvider) -> Optional[str]:
        config = self._resolver.load_config(provider, context, kind)

        if not self._evaluator.should_run(config, kind, context):
            logger.info(
                f"Not running {kind.value} for {context}: declined by trigger policy",
                extra={"event": "trigger.skipped", "metadata": context.annotations()},
            )
            return None

        try:
            template_path = self._evaluator.template_path(config, kind)
        except KeelError as e:
            raise type(e)(describe_failure(kind.value, context, e), context=context) from e

        template_text = self._resolver.load_template(provider, template_path, context, kind)
        spec = self._compiler.compile(template_text, context)
        name = self._submitter.submit(spec, context, action=kind.value)

        logger.info(
            f"Started job {name} for {context} from {template_path}",
            extra={"event": "job.started", "metadata": {"name": name, "template": template_path}},
        )
        return name

    def on_update(self, status: JobStatus) -> None:
        """
        Receive a status update from the executor.

        The record is stored before it is published, so a subscriber that
        sees an update can read it back from the job store.
        """
        self._jobs.store(status)
        self._broadcaster.publish(status)

    def get_job(self, name: str) -> JobStatus:
        """Get a job's current status. Raises JobNotFoundError."""
        return self._jobs.get(name)

    def list_jobs(
        self,
        filters: Optional[Sequence[AnnotationFilter]] = None,
        start: int = 0,
        limit: int = 0,
    ) -> tuple[list[JobStatus], int]:
        """List jobs matching all filters; returns (page, total)."""
        return self._jobs.find(filters, start, limit)

    def listen(self, name: str) -> Subscription:
        """
        Subscribe to live status updates of a job.

        The subscription ends once the job reaches a terminal phase or the
        caller closes it.
        """
        return self._broadcaster.subscribe(name)

    def read_log(self, name: str) -> BinaryIO:
        """Open a job's completed log. Raises LogNotFoundError."""
        return self._logs.read(name)

    def place_log(self, name: str, src: BinaryIO) -> None:
        """Store a job's log output. Raises AlreadyExistsError."""
        self._logs.place(name, src)
