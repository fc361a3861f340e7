"""
Event dispatch - route already-validated source-control events to the service.

The dispatcher sits behind whatever transport receives webhooks. It gets an
event type and its parsed payload; signature checks and payload parsing have
already happened.

- push: build a TriggerContext and run the pipeline
- commit_comment, create: recognised, not handled yet
- anything else: UnhandledEventKindError

Every failure goes to the service's error sink and is then re-raised so the
transport can answer with an error response.
"""

import logging
from typing import Any, Callable, Optional

from keel.errors import ParseError
from keel.resolver import FileProvider
from keel.schemas import TriggerContext, TriggerKind
from keel.service import Service

logger = logging.getLogger(__name__)


# Builds a FileProvider scoped to the revision of a trigger context
ProviderFactory = Callable[[TriggerContext], FileProvider]


def push_context(payload: dict[str, Any]) -> TriggerContext:
    """
    Build a TriggerContext from a push event payload.

    Raises:
        ParseError: If the payload lacks the repository owner, name or ref
    """
    try:
        repository = payload["repository"]
        owner = repository["owner"]
        owner_name = owner.get("name") or owner.get("login")
        return TriggerContext(
            owner=owner_name,
            repo=repository["name"],
            revision=payload["ref"],
        )
    except (KeyError, TypeError, AttributeError, ValueError) as e:
        raise ParseError(f"malformed push event: {e}") from e


class EventDispatcher:
    """
    Dispatches parsed source-control events.

    Args:
        service: The keel service running the pipeline
        provider_factory: Creates a FileProvider for a trigger context
    """

    def __init__(self, service: Service, provider_factory: ProviderFactory):
        self._service = service
        self._provider_factory = provider_factory

    def dispatch(self, event_type: str, payload: dict[str, Any]) -> Optional[str]:
        """
        Handle one event.

        Returns:
            The started job name, or None if no job was started

        Raises:
            UnhandledEventKindError: For event types keel does not know
            KeelError: For pipeline failures
        """
        try:
            kind = TriggerKind.from_event(event_type)
            if kind == TriggerKind.PUSH:
                return self._handle_push(payload)

            logger.debug(
                f"Ignoring {event_type} event: {kind.value} triggers are not handled",
                extra={"event": "trigger.ignored"},
            )
            return None
        except Exception as e:
            self._service.report_error(e)
            raise

    def _handle_push(self, payload: dict[str, Any]) -> Optional[str]:
        context = push_context(payload)
        provider = self._provider_factory(context)
        return self._service.run_job(context, TriggerKind.PUSH, provider)
