"""Tests for config and template resolution."""

import io

import pytest

from keel.errors import (
    ConfigNotFoundError,
    ConfigParseError,
    FetchError,
    NotFoundError,
    TemplateNotFoundError,
    TemplateParseError,
)
from keel.resolver import (
    CONFIG_FILE_NAME,
    ConfigResolver,
    local_file_provider,
    mapping_file_provider,
)
from keel.schemas import TriggerKind


@pytest.fixture
def resolver():
    return ConfigResolver()


class TestLoadConfig:

    def test_loads_default_template(self, resolver, provider, context):
        config = resolver.load_config(provider, context)
        assert config.default_template_path == "build.yaml.tpl"

    def test_missing_config(self, resolver, context):
        with pytest.raises(ConfigNotFoundError) as exc_info:
            resolver.load_config(mapping_file_provider({}), context)
        assert exc_info.value.context is context
        assert "cannot handle push to acme/widgets@refs/heads/main" in str(exc_info.value)

    def test_invalid_yaml(self, resolver, context):
        provider = mapping_file_provider({CONFIG_FILE_NAME: "defaultJob: [unclosed\n"})
        with pytest.raises(ConfigParseError) as exc_info:
            resolver.load_config(provider, context)
        assert isinstance(exc_info.value.__cause__, Exception)

    def test_wrong_shape(self, resolver, context):
        provider = mapping_file_provider({CONFIG_FILE_NAME: "- a\n- b\n"})
        with pytest.raises(ConfigParseError, match="mapping"):
            resolver.load_config(provider, context)

    def test_action_in_message(self, resolver, context):
        with pytest.raises(ConfigNotFoundError, match="cannot handle comment to"):
            resolver.load_config(mapping_file_provider({}), context, TriggerKind.COMMENT)

    def test_custom_config_path(self, context):
        resolver = ConfigResolver(config_path="ci/keel.yaml")
        provider = mapping_file_provider({"ci/keel.yaml": "defaultJob: ci.tpl\n"})
        assert resolver.load_config(provider, context).default_template_path == "ci.tpl"

    def test_read_failure_is_wrapped(self, resolver, context):
        def broken(path):
            raise PermissionError("denied")

        with pytest.raises(FetchError) as exc_info:
            resolver.load_config(broken, context)
        assert exc_info.value.context is context
        assert isinstance(exc_info.value.__cause__, PermissionError)
        assert "cannot handle push to acme/widgets@refs/heads/main" in str(exc_info.value)
        assert not isinstance(exc_info.value, NotFoundError)

    def test_stream_failure_is_wrapped(self, resolver, context):
        class Broken(io.RawIOBase):
            def readable(self):
                return True

            def readinto(self, b):
                raise OSError("connection reset")

        with pytest.raises(FetchError, match="connection reset") as exc_info:
            resolver.load_config(lambda path: Broken(), context)
        assert exc_info.value.context is context


class TestLoadTemplate:

    def test_loads_text(self, resolver, provider, context):
        text = resolver.load_template(provider, "build.yaml.tpl", context)
        assert text.startswith("image: alpine")

    def test_missing_template(self, resolver, provider, context):
        with pytest.raises(TemplateNotFoundError) as exc_info:
            resolver.load_template(provider, "missing.tpl", context)
        assert exc_info.value.context is context

    def test_not_utf8(self, resolver, context):
        provider = mapping_file_provider({"bin.tpl": b"\xff\xfe\x00"})
        with pytest.raises(TemplateParseError, match="not UTF-8"):
            resolver.load_template(provider, "bin.tpl", context)

    def test_read_failure_is_wrapped(self, resolver, context):
        def broken(path):
            raise PermissionError("403 from content API")

        with pytest.raises(FetchError, match="cannot read build.yaml.tpl") as exc_info:
            resolver.load_template(broken, "build.yaml.tpl", context)
        assert exc_info.value.context is context
        assert isinstance(exc_info.value.__cause__, PermissionError)


class TestLocalFileProvider:

    def test_reads_checkout(self, tmp_path, context):
        (tmp_path / CONFIG_FILE_NAME).write_text("defaultJob: jobs/build.tpl\n")
        config = ConfigResolver().load_config(local_file_provider(tmp_path), context)
        assert config.default_template_path == "jobs/build.tpl"

    def test_missing_file(self, tmp_path):
        with pytest.raises(NotFoundError):
            local_file_provider(tmp_path)("nope.yaml")

    def test_directory_is_not_a_file(self, tmp_path):
        (tmp_path / "jobs").mkdir()
        with pytest.raises(NotFoundError):
            local_file_provider(tmp_path)("jobs")

    def test_rejects_paths_outside_root(self, tmp_path):
        root = tmp_path / "repo"
        root.mkdir()
        (tmp_path / "secret.txt").write_text("x")
        with pytest.raises(NotFoundError, match="outside"):
            local_file_provider(root)("../secret.txt")
