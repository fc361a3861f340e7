"""
CLI interface for keel.

Provides commands to compile job specs from a repository checkout, run the
trigger pipeline locally, dispatch recorded source-control events, and
inspect stored jobs and logs.

Job records and logs live in the file-backed stores configured in
$KEEL_HOME/config.yaml. `keel run` and `keel event` use the no-op executor.
"""

import json
from pathlib import Path
from typing import Optional

import click

from keel import __version__
from keel.errors import KeelError


def _config(ctx):
    """Return the loaded config or exit with the load error."""
    if "config" not in ctx.obj:
        click.echo(f"✗ Config not loaded: {ctx.obj.get('config_error', 'Unknown error')}", err=True)
        click.echo("Run 'keel init' to create a configuration file.", err=True)
        raise SystemExit(1)
    return ctx.obj["config"]


def _context(owner: str, repo: str, revision: str):
    from keel.schemas import TriggerContext

    try:
        return TriggerContext(owner=owner, repo=repo, revision=revision)
    except ValueError as e:
        raise click.UsageError(str(e))


def _trigger_kind(value: str):
    from keel.schemas import TriggerKind

    try:
        return TriggerKind.from_string(value)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--trigger")


def _build_service(config):
    from keel.compiler import JobSpecCompiler
    from keel.events import StatusBroadcaster
    from keel.executor import NoOpExecutor
    from keel.job_store import FileJobStore
    from keel.log_store import FileLogStore
    from keel.service import Service

    return Service(
        jobs=FileJobStore(config.jobs_dir),
        logs=FileLogStore(config.logs_dir),
        executor=NoOpExecutor(),
        broadcaster=StatusBroadcaster(config.status_queue_size),
        compiler=JobSpecCompiler(timeout=config.compile_timeout),
    )


def _setup_logging(config, verbose: bool) -> None:
    from keel.utils import setup_logging

    setup_logging(
        log_level="DEBUG" if verbose else config.log_level,
        log_format=config.log_format,
    )


@click.group()
@click.version_option(version=__version__, prog_name="keel")
@click.pass_context
def main(ctx):
    """
    keel - Turn source-control events into jobs.

    Reads .keel.yaml and a job template from a repository revision, compiles
    the template into a job spec, and submits it to an executor.
    """
    from keel.config import ConfigError, load_config

    ctx.ensure_object(dict)
    try:
        ctx.obj["config"] = load_config()
    except ConfigError as e:
        # init can still run; other commands report this through _config
        ctx.obj["config_error"] = str(e)


@main.command("init")
@click.option("--force", is_flag=True, help="Overwrite existing configuration")
def init(force: bool):
    """Initialize keel configuration."""
    import yaml

    from keel.config import KeelConfig, get_keel_home

    home = get_keel_home()
    if not home.exists():
        home.mkdir(parents=True)

    cfg_path = home / "config.yaml"
    if cfg_path.exists() and not force:
        click.echo(f"Config already exists at {cfg_path}. Use --force to overwrite.", err=True)
        raise SystemExit(1)

    config = KeelConfig.defaults(home)
    cfg_path.write_text(yaml.safe_dump(config.to_dict(), sort_keys=False))
    config.jobs_dir.mkdir(parents=True, exist_ok=True)
    config.logs_dir.mkdir(parents=True, exist_ok=True)

    click.echo(f"Initialized keel config at {cfg_path}")


@main.command("compile")
@click.argument("repo_dir", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--owner", required=True, help="Repository owner")
@click.option("--repo", required=True, help="Repository name")
@click.option("--revision", default="", help="Revision (e.g. refs/heads/main)")
@click.option("--trigger", default="push", show_default=True, help="Trigger kind")
@click.pass_context
def compile_cmd(ctx, repo_dir: Path, owner: str, repo: str, revision: str, trigger: str):
    """
    Compile the job spec for REPO_DIR without submitting it.

    Prints the compiled spec as YAML.
    """
    from keel.compiler import JobSpecCompiler
    from keel.evaluator import TriggerEvaluator
    from keel.resolver import ConfigResolver, local_file_provider

    config = _config(ctx)
    context = _context(owner, repo, revision)
    kind = _trigger_kind(trigger)

    resolver = ConfigResolver()
    evaluator = TriggerEvaluator.create_default()
    provider = local_file_provider(repo_dir)

    try:
        build_config = resolver.load_config(provider, context, kind)
        if not evaluator.should_run(build_config, kind, context):
            click.echo(f"Trigger {kind.value} for {context} is disabled by {resolver.config_path}")
            return
        template_path = evaluator.template_path(build_config, kind)
        template_text = resolver.load_template(provider, template_path, context, kind)
        spec = JobSpecCompiler(timeout=config.compile_timeout).compile(template_text, context)
    except KeelError as e:
        click.echo(f"✗ {e}", err=True)
        raise SystemExit(1)

    click.echo(spec.to_yaml(), nl=False)


@main.command("run")
@click.argument("repo_dir", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--owner", required=True, help="Repository owner")
@click.option("--repo", required=True, help="Repository name")
@click.option("--revision", default="", help="Revision (e.g. refs/heads/main)")
@click.option("--trigger", default="push", show_default=True, help="Trigger kind")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.pass_context
def run(ctx, repo_dir: Path, owner: str, repo: str, revision: str, trigger: str, verbose: bool):
    """Run the trigger pipeline for REPO_DIR and record the job."""
    from keel.resolver import local_file_provider

    config = _config(ctx)
    context = _context(owner, repo, revision)
    kind = _trigger_kind(trigger)
    _setup_logging(config, verbose)

    service = _build_service(config)
    try:
        name = service.run_job(context, kind, local_file_provider(repo_dir))
    except KeelError as e:
        click.echo(f"✗ {e}", err=True)
        raise SystemExit(1)

    if name is None:
        click.echo(f"Trigger {kind.value} for {context} skipped")
        return
    status = service.get_job(name)
    click.echo(f"✓ {name} {status.phase.value}")


@main.command("event")
@click.argument("event_type")
@click.argument("payload_file", type=click.File("r"))
@click.option(
    "--checkout",
    required=True,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Checkout of the revision the event refers to",
)
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.pass_context
def event(ctx, event_type: str, payload_file, checkout: Path, verbose: bool):
    """
    Dispatch a recorded EVENT_TYPE event read from PAYLOAD_FILE (JSON).

    Files are read from --checkout, which must hold the event's revision.
    """
    from keel.dispatcher import EventDispatcher
    from keel.resolver import local_file_provider

    config = _config(ctx)
    _setup_logging(config, verbose)

    try:
        payload = json.load(payload_file)
    except json.JSONDecodeError as e:
        click.echo(f"✗ Invalid JSON in {payload_file.name}: {e}", err=True)
        raise SystemExit(1)

    service = _build_service(config)
    dispatcher = EventDispatcher(service, lambda context: local_file_provider(checkout))
    try:
        name = dispatcher.dispatch(event_type, payload)
    except KeelError as e:
        click.echo(f"✗ {e}", err=True)
        raise SystemExit(1)

    if name is None:
        click.echo(f"No job started for {event_type} event")
    else:
        click.echo(f"✓ {name}")


@main.group("jobs")
def jobs_group():
    """Inspect recorded jobs."""
    pass


@jobs_group.command("list")
@click.option(
    "--filter", "-f", "filters", multiple=True,
    help="Annotation filter: key=value, key^=prefix, key~=substring, key, !expr",
)
@click.option("--start", default=0, show_default=True, help="Offset of the first job")
@click.option("--limit", default=0, show_default=True, help="Maximum jobs to list (0 = all)")
@click.pass_context
def list_jobs(ctx, filters: tuple[str, ...], start: int, limit: int):
    """List recorded jobs, sorted by name."""
    from keel.job_store import FileJobStore
    from keel.schemas import AnnotationFilter

    config = _config(ctx)
    try:
        parsed = [AnnotationFilter.parse(expr) for expr in filters]
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--filter")

    try:
        jobs, total = FileJobStore(config.jobs_dir).find(parsed, start, limit)
    except ValueError as e:
        click.echo(f"✗ {e}", err=True)
        raise SystemExit(1)

    if not jobs:
        click.echo(f"No jobs found ({total} matching).")
        return

    for job in jobs:
        annotations = ",".join(f"{k}={v}" for k, v in sorted(job.annotations.items()))
        outcome = "" if job.success is None else (" ok" if job.success else " failed")
        click.echo(f"{job.name}  {job.phase.value}{outcome}  {annotations}")
    click.echo(f"\nShowing {start + 1}-{start + len(jobs)} of {total}")


@jobs_group.command("show")
@click.argument("name")
@click.pass_context
def show_job(ctx, name: str):
    """Show a job's stored status."""
    from keel.job_store import FileJobStore

    config = _config(ctx)
    try:
        job = FileJobStore(config.jobs_dir).get(name)
    except (KeelError, ValueError) as e:
        click.echo(f"✗ {e}", err=True)
        raise SystemExit(1)

    click.echo(json.dumps(job.to_dict(), indent=2))


@main.group("logs")
def logs_group():
    """Inspect job logs."""
    pass


@logs_group.command("show")
@click.argument("id")
@click.pass_context
def show_log(ctx, id: str):
    """Print a job's stored log."""
    from keel.log_store import CHUNK_SIZE, FileLogStore

    config = _config(ctx)
    try:
        src = FileLogStore(config.logs_dir).read(id)
    except (KeelError, ValueError) as e:
        click.echo(f"✗ {e}", err=True)
        raise SystemExit(1)

    out = click.get_binary_stream("stdout")
    with src:
        while True:
            chunk: Optional[bytes] = src.read(CHUNK_SIZE)
            if not chunk:
                break
            out.write(chunk)
    out.flush()


if __name__ == "__main__":
    main()
