"""Tests for the keel CLI."""

import io
import json

import pytest
import yaml
from click.testing import CliRunner

from keel.cli import main
from keel.job_store import FileJobStore
from keel.log_store import FileLogStore
from keel.schemas import JobPhase, JobStatus


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def home(tmp_path, monkeypatch):
    home = tmp_path / "keel_home"
    monkeypatch.setenv("KEEL_HOME", str(home))
    return home


@pytest.fixture
def checkout(tmp_path):
    repo = tmp_path / "checkout"
    repo.mkdir()
    (repo / ".keel.yaml").write_text("defaultJob: build.yaml.tpl\n")
    (repo / "build.yaml.tpl").write_text(JOB_TEMPLATE)
    return repo


JOB_TEMPLATE = """\
image: alpine:3.20
command:
  - build
  - "{{ Owner }}/{{ Repo }}"
env:
  REVISION: "{{ Revision }}"
"""

CONTEXT_ARGS = ["--owner", "acme", "--repo", "widgets", "--revision", "refs/heads/main"]


class TestInit:

    def test_creates_config(self, runner, home):
        result = runner.invoke(main, ["init"])
        assert result.exit_code == 0
        assert "Initialized keel config" in result.output

        cfg = yaml.safe_load((home / "config.yaml").read_text())
        assert cfg["jobs_dir"] == str(home / "jobs")
        assert (home / "jobs").is_dir()
        assert (home / "logs").is_dir()

    def test_does_not_overwrite_without_force(self, runner, home):
        home.mkdir(parents=True)
        (home / "config.yaml").write_text("existing: true")

        result = runner.invoke(main, ["init"])
        assert result.exit_code == 1
        assert "Config already exists" in result.output
        assert (home / "config.yaml").read_text() == "existing: true"

    def test_force_overwrites(self, runner, home):
        home.mkdir(parents=True)
        (home / "config.yaml").write_text("existing: true")

        result = runner.invoke(main, ["init", "--force"])
        assert result.exit_code == 0
        assert "jobs_dir" in yaml.safe_load((home / "config.yaml").read_text())


class TestCompile:

    def test_prints_spec(self, runner, home, checkout):
        result = runner.invoke(main, ["compile", str(checkout), *CONTEXT_ARGS])
        assert result.exit_code == 0, result.output
        spec = yaml.safe_load(result.output)
        assert spec["command"] == ["build", "acme/widgets"]
        assert spec["env"] == {"REVISION": "refs/heads/main"}

    def test_missing_config(self, runner, home, tmp_path):
        empty = tmp_path / "empty"
        empty.mkdir()
        result = runner.invoke(main, ["compile", str(empty), *CONTEXT_ARGS])
        assert result.exit_code == 1
        assert "✗ cannot handle push to acme/widgets@refs/heads/main" in result.output

    def test_disabled_trigger(self, runner, home, checkout):
        (checkout / ".keel.yaml").write_text(
            "defaultJob: build.yaml.tpl\ntriggers:\n  push:\n    enabled: false\n"
        )
        result = runner.invoke(main, ["compile", str(checkout), *CONTEXT_ARGS])
        assert result.exit_code == 0
        assert "disabled" in result.output

    def test_unknown_trigger(self, runner, home, checkout):
        result = runner.invoke(main, ["compile", str(checkout), *CONTEXT_ARGS, "--trigger", "merge"])
        assert result.exit_code == 2
        assert "unknown trigger kind" in result.output

    def test_invalid_config_file(self, runner, home, checkout):
        home.mkdir(parents=True)
        (home / "config.yaml").write_text("log_format: xml\n")
        result = runner.invoke(main, ["compile", str(checkout), *CONTEXT_ARGS])
        assert result.exit_code == 1
        assert "Config not loaded" in result.output


class TestRun:

    def test_records_job(self, runner, home, checkout):
        result = runner.invoke(main, ["run", str(checkout), *CONTEXT_ARGS])
        assert result.exit_code == 0, result.output
        assert "✓ widgets-" in result.output

        jobs, total = FileJobStore(home / "jobs").find()
        assert total == 1
        assert jobs[0].phase == JobPhase.DONE
        assert jobs[0].annotations["rev"] == "refs/heads/main"

    def test_compile_failure(self, runner, home, checkout):
        (checkout / "build.yaml.tpl").write_text("image: {{ Branch }}\n")
        result = runner.invoke(main, ["run", str(checkout), *CONTEXT_ARGS])
        assert result.exit_code == 1
        assert "✗ cannot render job template" in result.output


class TestEvent:

    def _payload(self, tmp_path, payload):
        path = tmp_path / "event.json"
        path.write_text(json.dumps(payload))
        return str(path)

    def test_push(self, runner, home, checkout, tmp_path):
        payload = self._payload(tmp_path, {
            "ref": "refs/heads/main",
            "repository": {"name": "widgets", "owner": {"name": "acme"}},
        })
        result = runner.invoke(main, ["event", "push", payload, "--checkout", str(checkout)])
        assert result.exit_code == 0, result.output
        assert "✓ widgets-" in result.output

    def test_placeholder_event(self, runner, home, checkout, tmp_path):
        payload = self._payload(tmp_path, {})
        result = runner.invoke(main, ["event", "create", payload, "--checkout", str(checkout)])
        assert result.exit_code == 0
        assert "No job started" in result.output

    def test_unknown_event(self, runner, home, checkout, tmp_path):
        payload = self._payload(tmp_path, {})
        result = runner.invoke(main, ["event", "fork", payload, "--checkout", str(checkout)])
        assert result.exit_code == 1
        assert "✗ unhandled event: fork" in result.output

    def test_invalid_json(self, runner, home, checkout, tmp_path):
        path = tmp_path / "event.json"
        path.write_text("{not json")
        result = runner.invoke(main, ["event", "push", str(path), "--checkout", str(checkout)])
        assert result.exit_code == 1
        assert "Invalid JSON" in result.output


class TestJobs:

    @pytest.fixture
    def stored(self, home):
        store = FileJobStore(home / "jobs")
        store.store(JobStatus(name="widgets-1", phase=JobPhase.DONE, success=True,
                              annotations={"owner": "acme", "repo": "widgets"}))
        store.store(JobStatus(name="gadgets-1", phase=JobPhase.RUNNING,
                              annotations={"owner": "acme", "repo": "gadgets"}))
        return store

    def test_list(self, runner, stored):
        result = runner.invoke(main, ["jobs", "list"])
        assert result.exit_code == 0
        lines = result.output.splitlines()
        assert lines[0].startswith("gadgets-1  running")
        assert lines[1].startswith("widgets-1  done ok")
        assert "Showing 1-2 of 2" in result.output

    def test_list_filtered(self, runner, stored):
        result = runner.invoke(main, ["jobs", "list", "--filter", "repo=widgets"])
        assert result.exit_code == 0
        assert "widgets-1" in result.output
        assert "gadgets-1" not in result.output

    def test_list_paged(self, runner, stored):
        result = runner.invoke(main, ["jobs", "list", "--start", "1", "--limit", "1"])
        assert "widgets-1" in result.output
        assert "Showing 2-2 of 2" in result.output

    def test_list_empty(self, runner, home):
        result = runner.invoke(main, ["jobs", "list"])
        assert result.exit_code == 0
        assert "No jobs found" in result.output

    def test_list_invalid_filter(self, runner, stored):
        result = runner.invoke(main, ["jobs", "list", "--filter", "=x"])
        assert result.exit_code == 2

    def test_list_negative_start(self, runner, stored):
        result = runner.invoke(main, ["jobs", "list", "--start", "-1"])
        assert result.exit_code == 1
        assert "start must be >= 0" in result.output

    def test_show(self, runner, stored):
        result = runner.invoke(main, ["jobs", "show", "widgets-1"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["phase"] == "done"
        assert data["success"] is True

    def test_show_missing(self, runner, home):
        result = runner.invoke(main, ["jobs", "show", "nope"])
        assert result.exit_code == 1
        assert "✗ job not found: nope" in result.output


class TestLogs:

    def test_show(self, runner, home):
        FileLogStore(home / "logs").place("widgets-1", io.BytesIO(b"step 1\nstep 2\n"))
        result = runner.invoke(main, ["logs", "show", "widgets-1"])
        assert result.exit_code == 0
        assert result.output == "step 1\nstep 2\n"

    def test_show_missing(self, runner, home):
        result = runner.invoke(main, ["logs", "show", "widgets-1"])
        assert result.exit_code == 1
        assert "✗ log not found: widgets-1" in result.output
