"""
JobSubmitter - forward compiled job specs to the executor.
"""

import logging

from keel.errors import SubmissionError, describe_failure
from keel.executor import Executor
from keel.schemas import JobSpec, TriggerContext

logger = logging.getLogger(__name__)


class JobSubmitter:
    """
    Submits a JobSpec with the annotations derived from its TriggerContext.

    The submitter assigns no identifiers and writes nothing to the job store;
    status records arrive later through the executor's update handler.
    """

    def __init__(self, executor: Executor):
        self._executor = executor

    def submit(self, spec: JobSpec, context: TriggerContext, action: str = "push") -> str:
        """
        Start a job for a trigger context.

        Returns:
            The job name assigned by the executor

        Raises:
            SubmissionError: If the executor fails or returns no name
        """
        annotations = context.annotations()
        try:
            name = self._executor.start(spec, annotations)
        except Exception as e:
            raise SubmissionError(describe_failure(action, context, e), context=context) from e

        if not name:
            raise SubmissionError(
                describe_failure(action, context, "executor returned no job name"),
                context=context,
            )

        logger.info(
            f"Submitted job {name} for {context}",
            extra={"event": "job.submitted", "metadata": annotations},
        )
        return name
