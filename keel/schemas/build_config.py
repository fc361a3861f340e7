"""
BuildConfig schema - the per-repository build configuration.

Loaded from the repository's .keel.yaml for every event; never cached
across events. Minimal form:

    defaultJob: build.yaml.tpl

Per-trigger settings are optional:

    defaultJob: build.yaml.tpl
    triggers:
      push:
        branches: ["refs/heads/main", "refs/tags/*"]
        template: release.yaml.tpl
      comment:
        enabled: false
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from .trigger import TriggerKind


@dataclass(frozen=True)
class TriggerSettings:
    """
    Settings for one trigger kind.

    Attributes:
        enabled: Whether this trigger kind may start jobs at all
        template: Template path for this kind (None = use the default)
        branches: Glob patterns the revision must match (None = any revision)
    """
    enabled: bool = True
    template: Optional[str] = None
    branches: Optional[tuple[str, ...]] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TriggerSettings":
        """Deserialize from dictionary, validating field types."""
        enabled = data.get("enabled", True)
        if not isinstance(enabled, bool):
            raise ValueError(f"'enabled' must be a boolean, got {enabled!r}")

        template = data.get("template")
        if template is not None and not isinstance(template, str):
            raise ValueError(f"'template' must be a string, got {template!r}")

        branches = data.get("branches")
        if branches is not None:
            if isinstance(branches, str):
                branches = [branches]
            if not isinstance(branches, list) or not all(isinstance(b, str) for b in branches):
                raise ValueError(f"'branches' must be a list of strings, got {branches!r}")
            branches = tuple(branches)

        unknown = set(data) - {"enabled", "template", "branches"}
        if unknown:
            raise ValueError(f"unknown trigger settings: {sorted(unknown)}")

        return cls(enabled=enabled, template=template, branches=branches)


@dataclass(frozen=True)
class BuildConfig:
    """
    The build configuration found in the repository root.

    Attributes:
        default_template_path: Template used when no trigger-specific one is set
        triggers: Optional per-trigger-kind settings
    """
    default_template_path: str = ""
    triggers: dict[TriggerKind, TriggerSettings] = field(default_factory=dict)

    def settings_for(self, kind: TriggerKind) -> Optional[TriggerSettings]:
        """Get the settings for a trigger kind, if any were configured."""
        return self.triggers.get(kind)

    @classmethod
    def from_dict(cls, data: Any) -> "BuildConfig":
        """
        Deserialize from the parsed YAML document.

        `defaultJob` is the canonical key; `defaultTemplatePath` is accepted
        as an alias.

        Raises:
            ValueError: If the document does not have the expected shape
        """
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError(f"expected a mapping, got {type(data).__name__}")

        default = data.get("defaultJob") or data.get("defaultTemplatePath") or ""
        if not isinstance(default, str):
            raise ValueError(f"'defaultJob' must be a string, got {default!r}")

        raw_triggers = data.get("triggers") or {}
        if not isinstance(raw_triggers, dict):
            raise ValueError("'triggers' must be a mapping of trigger kind to settings")

        triggers: dict[TriggerKind, TriggerSettings] = {}
        for name, settings in raw_triggers.items():
            kind = TriggerKind.from_string(str(name))
            if settings is None:
                settings = {}
            if not isinstance(settings, dict):
                raise ValueError(f"settings for trigger '{name}' must be a mapping")
            try:
                triggers[kind] = TriggerSettings.from_dict(settings)
            except ValueError as e:
                raise ValueError(f"trigger '{name}': {e}")

        return cls(default_template_path=default, triggers=triggers)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for YAML output."""
        result: dict[str, Any] = {"defaultJob": self.default_template_path}
        if self.triggers:
            result["triggers"] = {
                kind.value: {
                    "enabled": s.enabled,
                    **({"template": s.template} if s.template else {}),
                    **({"branches": list(s.branches)} if s.branches is not None else {}),
                }
                for kind, s in self.triggers.items()
            }
        return result
