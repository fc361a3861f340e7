"""
Trigger evaluation - decide whether a job runs and with which template.

A TriggerEvaluator holds an ordered list of rules. Every rule may veto a run;
the first rule that names a template path wins, with the config's default
template as the fallback. Swapping the rule list changes the policy without
touching the pipeline.

The built-in policy is AlwaysRunRule plus TriggerSettingsRule. For a config
without a `triggers:` section this always runs and always uses the default
template, whatever the trigger kind.
"""

import fnmatch
import logging
from abc import ABC, abstractmethod
from typing import Optional, Sequence

from keel.errors import ConfigParseError
from keel.schemas import BuildConfig, TriggerContext, TriggerKind

logger = logging.getLogger(__name__)


class TriggerRule(ABC):
    """
    A single run/template policy.

    Rules must be pure functions of their inputs.
    """

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    def should_run(
        self,
        config: BuildConfig,
        kind: TriggerKind,
        context: Optional[TriggerContext] = None,
    ) -> bool:
        """Return False to veto the run."""
        ...

    def template_path(self, config: BuildConfig, kind: TriggerKind) -> Optional[str]:
        """Return a template path for this trigger kind, or None to defer."""
        return None


class AlwaysRunRule(TriggerRule):
    """Run on every trigger using the default template."""

    def should_run(self, config, kind, context=None) -> bool:
        return True


class TriggerSettingsRule(TriggerRule):
    """
    Apply the per-trigger settings from the build config.

    - enabled: false vetoes every run of that kind
    - branches: the revision must match one of the glob patterns
    - template: overrides the default template for that kind
    """

    def should_run(self, config, kind, context=None) -> bool:
        settings = config.settings_for(kind)
        if settings is None:
            return True
        if not settings.enabled:
            return False
        if settings.branches is None:
            return True
        if context is None:
            # branch filters cannot be checked without a revision
            return False
        return any(fnmatch.fnmatchcase(context.revision, pattern) for pattern in settings.branches)

    def template_path(self, config, kind) -> Optional[str]:
        settings = config.settings_for(kind)
        if settings is None:
            return None
        return settings.template


class TriggerEvaluator:
    """
    Evaluates an ordered list of TriggerRules.

    Usage:
        evaluator = TriggerEvaluator.create_default()
        if evaluator.should_run(config, TriggerKind.PUSH, ctx):
            path = evaluator.template_path(config, TriggerKind.PUSH)
    """

    def __init__(self, rules: Sequence[TriggerRule]):
        self._rules = tuple(rules)

    @property
    def rules(self) -> tuple[TriggerRule, ...]:
        return self._rules

    def should_run(
        self,
        config: BuildConfig,
        kind: TriggerKind,
        context: Optional[TriggerContext] = None,
    ) -> bool:
        """Return True unless some rule vetoes the run."""
        for rule in self._rules:
            if not rule.should_run(config, kind, context):
                logger.debug(
                    f"{rule.name} declined {kind.value} trigger for {context}",
                    extra={"event": "trigger.declined"},
                )
                return False
        return True

    def template_path(self, config: BuildConfig, kind: TriggerKind) -> str:
        """
        Resolve the template path for a trigger kind.

        Raises:
            ConfigParseError: If no rule and no default yields a path
        """
        for rule in self._rules:
            path = rule.template_path(config, kind)
            if path:
                return path
        if not config.default_template_path:
            raise ConfigParseError(f"no job template configured for {kind.value} triggers")
        return config.default_template_path

    @classmethod
    def create_default(cls) -> "TriggerEvaluator":
        """Create the evaluator with the built-in policy."""
        return cls([AlwaysRunRule(), TriggerSettingsRule()])
