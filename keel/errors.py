"""
Error classes for keel.

Every failure raised by the trigger-to-job pipeline derives from KeelError.
The taxonomy mirrors what callers need to tell apart:

- NotFoundError: config file, template file, job record or log blob absent
- AlreadyExistsError: a write-once log blob placed twice
- FetchError: a repository file could not be read (permissions, transport)
- ParseError: malformed repository config or template source
- CompileError: template execution or structured decode failed
- SubmissionError: the execution subsystem rejected the job
- UnhandledEventKindError: an event type with no defined handling

Errors raised inside the pipeline carry the originating TriggerContext in
`.context` and its descriptor in the message, so a failure can always be
attributed to a repository/revision without reading logs.
"""

from typing import Any, Optional


class KeelError(Exception):
    """Base exception for keel."""

    def __init__(self, message: str, context: Optional[Any] = None):
        super().__init__(message)
        self.context = context


class NotFoundError(KeelError):
    """Raised when something isn't found."""
    pass


class ConfigNotFoundError(NotFoundError):
    """The repository has no build configuration file."""
    pass


class TemplateNotFoundError(NotFoundError):
    """The job template referenced by the build configuration is missing."""
    pass


class JobNotFoundError(NotFoundError):
    """No job status is stored under the requested name."""
    pass


class LogNotFoundError(NotFoundError):
    """
    No completed log blob exists under the requested id.

    Also raised while the blob is still being written.
    """
    pass


class AlreadyExistsError(KeelError):
    """Raised when attempting to place something which already exists."""
    pass


class ParseError(KeelError):
    """Malformed input that could not be parsed."""
    pass


class ConfigParseError(ParseError):
    """The repository build configuration is malformed."""
    pass


class TemplateParseError(ParseError):
    """The job template source is not a valid template."""
    pass


class CompileError(KeelError):
    """Template execution or decoding of the rendered job spec failed."""
    pass


class CompileTimeoutError(CompileError):
    """Rendering and decoding did not finish before the deadline."""
    pass


class FetchError(KeelError):
    """Reading a repository file failed for a reason other than it being absent."""
    pass


class SubmissionError(KeelError):
    """The execution subsystem failed to accept a job."""
    pass


class UnhandledEventKindError(KeelError):
    """An incoming event has a type keel does not handle."""
    pass


def describe_failure(action: str, context: Any, cause: BaseException) -> str:
    """Format the message used when wrapping a pipeline failure."""
    return f"cannot handle {action} to {context}: {cause}"
