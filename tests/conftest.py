import logging

import pytest

from keel.executor import NoOpExecutor
from keel.job_store import InMemoryJobStore
from keel.log_store import InMemoryLogStore
from keel.resolver import mapping_file_provider
from keel.schemas import TriggerContext
from keel.service import Service


JOB_TEMPLATE = """\
image: alpine:3.20
command:
  - build
  - "{{ Owner }}/{{ Repo }}"
env:
  REVISION: "{{ Revision }}"
"""


@pytest.fixture
def context():
    return TriggerContext(owner="acme", repo="widgets", revision="refs/heads/main")


@pytest.fixture
def repo_files():
    """A repository with a minimal build configuration and one job template."""
    return {
        ".keel.yaml": "defaultJob: build.yaml.tpl\n",
        "build.yaml.tpl": JOB_TEMPLATE,
    }


@pytest.fixture
def provider(repo_files):
    return mapping_file_provider(repo_files)


@pytest.fixture
def errors():
    """Collects everything handed to the error sink."""
    return []


@pytest.fixture
def service(errors):
    return Service(
        jobs=InMemoryJobStore(),
        logs=InMemoryLogStore(),
        executor=NoOpExecutor(),
        error_sink=errors.append,
    )


@pytest.fixture(autouse=True)
def reset_keel_logging():
    # CLI commands attach handlers to streams that CliRunner closes afterwards
    yield
    keel_logger = logging.getLogger("keel")
    keel_logger.handlers = []
    keel_logger.setLevel(logging.NOTSET)
