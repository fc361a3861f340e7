"""
Config and template resolution.

Fetches the repository's build configuration from the well-known path and,
once the evaluator has picked a template path, the job template itself. All
access goes through a FileProvider scoped to the triggering revision, so the
same resolver works against a hosted repository, a local checkout, or an
in-memory mapping.

No retries happen here. Every failure is raised as a KeelError carrying the
trigger context; read failures other than "not found" become FetchError.
"""

import io
import logging
from pathlib import Path
from typing import BinaryIO, Callable, Mapping, Union

import yaml

from keel.errors import (
    ConfigNotFoundError,
    ConfigParseError,
    FetchError,
    NotFoundError,
    TemplateNotFoundError,
    TemplateParseError,
    describe_failure,
)
from keel.schemas import BuildConfig, TriggerContext, TriggerKind

logger = logging.getLogger(__name__)


# Well-known build configuration file in the repository root
CONFIG_FILE_NAME = ".keel.yaml"

# A FileProvider opens a repository path for reading. It raises
# FileNotFoundError or NotFoundError when the path does not exist.
FileProvider = Callable[[str], BinaryIO]


def local_file_provider(root: Union[Path, str]) -> FileProvider:
    """
    Create a FileProvider reading from a checked-out working tree.

    Paths that resolve outside the root are treated as not found.
    """
    base = Path(root).resolve()

    def provide(path: str) -> BinaryIO:
        target = (base / path).resolve()
        if base != target and base not in target.parents:
            raise NotFoundError(f"{path} is outside of {base}")
        if not target.is_file():
            raise NotFoundError(f"{path} not found in {base}")
        return open(target, "rb")

    return provide


def mapping_file_provider(files: Mapping[str, Union[str, bytes]]) -> FileProvider:
    """Create a FileProvider serving files from an in-memory mapping."""

    def provide(path: str) -> BinaryIO:
        if path not in files:
            raise NotFoundError(f"{path} not found")
        content = files[path]
        if isinstance(content, str):
            content = content.encode("utf-8")
        return io.BytesIO(content)

    return provide


class ConfigResolver:
    """
    Loads BuildConfig and job templates through a FileProvider.

    Each failure kind gets its own error class, wrapped with the trigger
    context descriptor:
        - ConfigNotFoundError: no config file at the well-known path
        - ConfigParseError: config file is not valid YAML or has the wrong shape
        - TemplateNotFoundError: the selected template does not exist
        - FetchError: any other failure opening or reading a file
    """

    def __init__(self, config_path: str = CONFIG_FILE_NAME):
        self._config_path = config_path

    @property
    def config_path(self) -> str:
        return self._config_path

    def _open(
        self,
        provider: FileProvider,
        path: str,
        context: TriggerContext,
        kind: TriggerKind,
        not_found: type[NotFoundError],
    ) -> BinaryIO:
        try:
            return provider(path)
        except (FileNotFoundError, NotFoundError) as e:
            raise not_found(describe_failure(kind.value, context, e), context=context) from e
        except Exception as e:
            raise FetchError(
                describe_failure(kind.value, context, f"cannot read {path}: {e}"), context=context
            ) from e

    def load_config(
        self,
        provider: FileProvider,
        context: TriggerContext,
        kind: TriggerKind = TriggerKind.PUSH,
    ) -> BuildConfig:
        """Fetch and parse the repository build configuration."""
        stream = self._open(provider, self._config_path, context, kind, ConfigNotFoundError)

        with stream:
            try:
                data = yaml.safe_load(stream)
            except yaml.YAMLError as e:
                raise ConfigParseError(
                    describe_failure(kind.value, context, f"invalid {self._config_path}: {e}"),
                    context=context,
                ) from e
            except OSError as e:
                raise FetchError(
                    describe_failure(kind.value, context, f"cannot read {self._config_path}: {e}"),
                    context=context,
                ) from e

        try:
            config = BuildConfig.from_dict(data)
        except ValueError as e:
            raise ConfigParseError(
                describe_failure(kind.value, context, f"invalid {self._config_path}: {e}"),
                context=context,
            ) from e

        logger.debug(f"Loaded {self._config_path} for {context}: {config}")
        return config

    def load_template(
        self,
        provider: FileProvider,
        path: str,
        context: TriggerContext,
        kind: TriggerKind = TriggerKind.PUSH,
    ) -> str:
        """Fetch a job template and return its text."""
        stream = self._open(provider, path, context, kind, TemplateNotFoundError)

        with stream:
            try:
                raw = stream.read()
            except OSError as e:
                raise FetchError(
                    describe_failure(kind.value, context, f"cannot read {path}: {e}"),
                    context=context,
                ) from e

        if isinstance(raw, bytes):
            try:
                return raw.decode("utf-8")
            except UnicodeDecodeError as e:
                raise TemplateParseError(
                    describe_failure(kind.value, context, f"template {path} is not UTF-8: {e}"),
                    context=context,
                ) from e
        return raw
