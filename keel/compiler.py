"""
Compiler - Render a job template against a TriggerContext into a JobSpec.

Compilation has two phases:
1. Parse the template text with Jinja2 plus the keel helper library.
   A parse failure ends compilation before any work is scheduled.
2. Render and decode concurrently. A render worker streams the template
   output into a BytePipe while a decode worker parses the same bytes as
   YAML. The rendered text is never materialized or exposed.

Failure handling between the two workers:
- Each worker reports through its own result slot; nothing is shared but
  the pipe and a lock-protected failure sequence.
- A worker stamps its failure with the next sequence number *before*
  closing its end of the pipe, so a failure caused by the other side
  closing always sorts after the failure that made it close.
- A failing renderer closes the write end (the decoder sees EOF); the
  decoder closes the read end when it returns (a blocked renderer gets
  PipeClosedError). Neither side can be left blocked.
- After both workers finish, the earliest stamped failure wins.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Any, BinaryIO, Callable, Optional

import jinja2
import yaml

from keel import template_funcs
from keel.errors import CompileError, CompileTimeoutError, TemplateParseError
from keel.pipe import BytePipe, PipeTimeoutError
from keel.schemas import JobSpec, TriggerContext

logger = logging.getLogger(__name__)


# Decoder turns the rendered byte stream into a structured document
Decoder = Callable[[BinaryIO], Any]


class _FailureClock:
    """Hands out a strictly increasing sequence number per failure."""

    def __init__(self):
        self._lock = threading.Lock()
        self._next = 0

    def tick(self) -> int:
        with self._lock:
            self._next += 1
            return self._next


@dataclass(frozen=True)
class _Slot:
    """Outcome of one worker."""
    value: Any = None
    error: Optional[BaseException] = None
    order: int = 0

    @property
    def failed(self) -> bool:
        return self.error is not None


def create_environment() -> jinja2.Environment:
    """Create the Jinja2 environment used for job templates."""
    env = jinja2.Environment(
        undefined=jinja2.StrictUndefined,
        autoescape=False,
        keep_trailing_newline=True,
    )
    template_funcs.register(env)
    return env


class JobSpecCompiler:
    """
    Compiles job templates into JobSpecs.

    Usage:
        compiler = JobSpecCompiler(timeout=30)
        spec = compiler.compile(template_text, ctx)

    Args:
        timeout: Deadline in seconds for render+decode (None = no deadline)
        decoder: Function parsing the rendered stream (default yaml.safe_load)
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        decoder: Optional[Decoder] = None,
    ):
        self._timeout = timeout
        self._decoder = decoder or yaml.safe_load
        self._env = create_environment()

    @property
    def timeout(self) -> Optional[float]:
        return self._timeout

    def parse(self, template_text: str, context: Optional[TriggerContext] = None) -> jinja2.Template:
        """
        Parse template source.

        Raises:
            TemplateParseError: If the source is not a valid template
        """
        try:
            return self._env.from_string(template_text)
        except jinja2.TemplateSyntaxError as e:
            raise TemplateParseError(
                f"cannot parse job template for {context}: line {e.lineno}: {e.message}",
                context=context,
            ) from e

    def compile(self, template_text: str, context: TriggerContext) -> JobSpec:
        """
        Render a template against a context and decode the result.

        Args:
            template_text: Jinja2 template source
            context: The trigger context; its template_vars() are the render variables

        Returns:
            The decoded JobSpec

        Raises:
            TemplateParseError: If the template does not parse
            CompileTimeoutError: If the deadline passes
            CompileError: If rendering or decoding fails
        """
        template = self.parse(template_text, context)
        variables = context.template_vars()

        pipe = BytePipe(timeout=self._timeout)
        clock = _FailureClock()

        pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix="keel-compile")
        finished = False
        try:
            render = pool.submit(self._render, template, variables, pipe, clock)
            decode = pool.submit(self._decode, pipe, clock)

            wait_timeout = None if self._timeout is None else self._timeout + 1.0
            done, not_done = wait([render, decode], timeout=wait_timeout)
            if not_done:
                pipe.close()
                raise CompileTimeoutError(
                    f"compiling job spec for {context} did not finish within {self._timeout}s",
                    context=context,
                )
            finished = True
        finally:
            # A worker stuck outside the pipe cannot be interrupted; don't join it.
            pool.shutdown(wait=finished)

        render_slot = render.result()
        decode_slot = decode.result()

        failures = sorted((s for s in (render_slot, decode_slot) if s.failed), key=lambda s: s.order)
        if failures:
            raise self._wrap_failure(failures[0], render_slot, context)

        return decode_slot.value

    def _render(
        self,
        template: jinja2.Template,
        variables: dict[str, Any],
        pipe: BytePipe,
        clock: _FailureClock,
    ) -> _Slot:
        """Producer: stream rendered template output into the pipe."""
        try:
            for chunk in template.generate(**variables):
                if chunk:
                    pipe.write(chunk.encode("utf-8"))
        except Exception as e:
            slot = _Slot(error=e, order=clock.tick())
            pipe.close_write()
            return slot
        pipe.close_write()
        return _Slot()

    def _decode(self, pipe: BytePipe, clock: _FailureClock) -> _Slot:
        """Consumer: decode the rendered stream into a JobSpec."""
        try:
            spec = JobSpec.from_document(self._decoder(pipe))
        except Exception as e:
            slot = _Slot(error=e, order=clock.tick())
            pipe.close_read()
            return slot
        pipe.close_read()
        return _Slot(value=spec)

    def _wrap_failure(self, slot: _Slot, render_slot: _Slot, context: TriggerContext) -> CompileError:
        error = slot.error
        if isinstance(error, PipeTimeoutError):
            return CompileTimeoutError(
                f"compiling job spec for {context} did not finish within {self._timeout}s",
                context=context,
            )
        if slot is render_slot:
            message = f"cannot render job template for {context}: {error}"
        else:
            message = f"cannot decode job spec for {context}: {error}"
        wrapped = CompileError(message, context=context)
        wrapped.__cause__ = error
        return wrapped


def compile_job_spec(
    template_text: str,
    context: TriggerContext,
    timeout: Optional[float] = None,
) -> JobSpec:
    """
    Convenience function to compile a template without keeping a compiler.

    Args:
        template_text: Jinja2 template source
        context: Trigger context to render against
        timeout: Optional deadline in seconds

    Returns:
        The decoded JobSpec
    """
    return JobSpecCompiler(timeout=timeout).compile(template_text, context)
