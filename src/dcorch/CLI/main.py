"""
Command Line Interface for dcorch.
"""
import json
import logging
from datetime import timedelta
from pathlib import Path

import click
from pydantic import ValidationError

from ..MANAGERS.stack_orchestrator import ComposeStackOrchestrator
from ..MANAGERS.state_snapshot import STATE_FILE_ENV, StateSnapshotWriter
from ..MODELS.compose_config import ComposeConfig, LogsConfig, WaitConfig
from ..MODELS.errors import ComposeServiceError
from ..MODELS.settings import OrchestratorSettings
from ..MODELS.stack_state import ServiceStatus
from ..UTILS.project_names import generate_unique_project_name


def _orchestrator(ctx) -> ComposeStackOrchestrator:
    if 'orchestrator' not in ctx.obj:
        ctx.obj['orchestrator'] = ComposeStackOrchestrator.from_settings(ctx.obj['settings'])
    return ctx.obj['orchestrator']


def _fail(ctx, error: ComposeServiceError):
    click.echo(f"Error: {error.formatted_message}", err=True)
    ctx.exit(1)


def _wait_config(settings, project, services, target, timeout, poll) -> WaitConfig:
    try:
        return WaitConfig(
            project_name=project,
            services=list(services),
            timeout=timedelta(seconds=timeout if timeout is not None else settings.wait_timeout),
            poll_interval=timedelta(seconds=poll if poll is not None else settings.poll_interval),
            target_status=target,
        )
    except ValidationError as e:
        raise click.BadParameter(str(e))


@click.group()
@click.option('--env-file', 'settings_file', default=None, help='Dotenv file with DCORCH_* settings')
@click.option('--log-level', default=None, help='Logging level (default: DCORCH_LOG_LEVEL or INFO)')
@click.pass_context
def cli(ctx, settings_file, log_level):
    """
    dcorch - Docker Compose stack orchestration for integration tests.

    Starts stacks, waits for their services and writes state files that
    test code reads to find containers and published ports.
    """
    ctx.ensure_object(dict)
    try:
        settings = ctx.obj.get('settings') or OrchestratorSettings.load(settings_file)
    except ValidationError as e:
        raise click.ClickException(f"Invalid settings: {e}")
    ctx.obj['settings'] = settings
    logging.basicConfig(
        level=(log_level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@click.option('--file', '-f', 'files', multiple=True, required=True, help='Compose file (repeatable, in override order)')
@click.option('--project', '-p', required=True, help='Compose project name')
@click.option('--stack', default=None, help='Stack name used in the state file (default: project)')
@click.option('--env-file', 'env_files', multiple=True, help='Env file passed to compose (repeatable)')
@click.option('--wait-healthy', multiple=True, help='Service that must become healthy')
@click.option('--wait-running', multiple=True, help='Service that must be running')
@click.option('--timeout', type=float, default=None, help='Wait timeout in seconds')
@click.option('--poll', type=float, default=None, help='Poll interval in seconds')
@click.option('--state-file', type=click.Path(dir_okay=False), default=None, help='State file path')
@click.option('--unique', is_flag=True, help='Append a timestamp to the project name')
@click.option('--failure-logs-dir', type=click.Path(file_okay=False), default=None,
              help='Save the last 1000 log lines here if a wait fails')
@click.pass_context
def up(ctx, files, project, stack, env_files, wait_healthy, wait_running, timeout, poll, state_file, unique,
       failure_logs_dir):
    """Start a stack, wait for its services and write its state file."""
    settings = ctx.obj['settings']
    if unique:
        project = generate_unique_project_name(project)
    try:
        config = ComposeConfig(
            compose_files=[Path(f) for f in files],
            env_files=[Path(f) for f in env_files],
            project_name=project,
            stack_name=stack or project,
        )
    except ValidationError as e:
        raise click.BadParameter(str(e))

    waits = [
        _wait_config(settings, project, services, target, timeout, poll)
        for target, services in ((ServiceStatus.RUNNING, wait_running), (ServiceStatus.HEALTHY, wait_healthy))
        if services
    ]

    try:
        orchestrator = _orchestrator(ctx)
        orchestrator.undefined_services(config, list(wait_healthy) + list(wait_running))
        state = orchestrator.up_stack(config)
    except ComposeServiceError as e:
        _fail(ctx, e)
        return
    click.echo(f"Stack '{config.stack_name}' started (project: {project}).")

    try:
        for wait_config in waits:
            orchestrator.wait_for_services(wait_config)
            click.echo(f"Services {wait_config.target_status.value}: {', '.join(wait_config.services)}")
        if waits:
            state = orchestrator.snapshot(project, config.stack_name)
    except ComposeServiceError as e:
        click.echo("Wait failed, tearing the stack down.", err=True)
        orchestrator.cleanup_stack(config, failure_logs_dir=Path(failure_logs_dir) if failure_logs_dir else None)
        _fail(ctx, e)
        return

    try:
        path = StateSnapshotWriter(settings.state_dir).write(state, state_file)
    except ComposeServiceError as e:
        _fail(ctx, e)
        return
    click.echo(f"{STATE_FILE_ENV}={path}")


@cli.command()
@click.option('--project', '-p', required=True, help='Compose project name')
@click.option('--file', '-f', 'files', multiple=True, help='Compose file used to start the stack')
@click.pass_context
def down(ctx, project, files):
    """Stop a stack and remove its leftover containers."""
    identifier = project
    if files:
        identifier = ComposeConfig(compose_files=[Path(f) for f in files], project_name=project, stack_name=project)
    try:
        orchestrator = _orchestrator(ctx)
    except ComposeServiceError as e:
        _fail(ctx, e)
        return
    if orchestrator.cleanup_stack(identifier):
        click.echo(f"Stack stopped (project: {project}).")
    else:
        click.echo(f"Cleanup of project '{project}' was incomplete; see the log for details.", err=True)
        ctx.exit(1)


@cli.command()
@click.option('--project', '-p', required=True, help='Compose project name')
@click.option('--healthy', is_flag=True, help='Wait for healthy instead of running')
@click.option('--timeout', type=float, default=None, help='Wait timeout in seconds')
@click.option('--poll', type=float, default=None, help='Poll interval in seconds')
@click.argument('services', nargs=-1)
@click.pass_context
def wait(ctx, project, healthy, timeout, poll, services):
    """Wait for services of a running stack"""
    target = ServiceStatus.HEALTHY if healthy else ServiceStatus.RUNNING
    try:
        status = _orchestrator(ctx).wait_for_services(
            _wait_config(ctx.obj['settings'], project, services, target, timeout, poll))
    except ComposeServiceError as e:
        _fail(ctx, e)
        return
    click.echo(f"Services of project '{project}' are {status.value}.")


@cli.command()
@click.option('--project', '-p', required=True, help='Compose project name')
@click.option('--json', 'as_json', is_flag=True, help='Print the snapshot as JSON')
@click.pass_context
def ps(ctx, project, as_json):
    """List service status"""
    try:
        state = _orchestrator(ctx).snapshot(project)
    except ComposeServiceError as e:
        _fail(ctx, e)
        return

    if as_json:
        click.echo(json.dumps(state.model_dump(mode="json", by_alias=True), indent=2))
        return
    click.echo(f"{'SERVICE':15} {'STATUS':10} PORTS")
    click.echo("-" * 40)
    for name, info in state.services.items():
        ports = ", ".join(str(p) for p in info.published_ports)
        click.echo(f"{name:15} {info.state.value:10} {ports}")


@cli.command()
@click.option('--project', '-p', required=True, help='Compose project name')
@click.option('--tail', type=int, default=0, help='Lines per service, 0 for all')
@click.option('--output', '-o', type=click.Path(dir_okay=False), default=None, help='Also write logs to this file')
@click.argument('services', nargs=-1)
@click.pass_context
def logs(ctx, project, tail, output, services):
    """Capture logs"""
    try:
        config = LogsConfig(services=list(services), tail=tail, output_file=Path(output) if output else None)
    except ValidationError as e:
        raise click.BadParameter(str(e))
    try:
        text = _orchestrator(ctx).capture_logs(project, config)
    except ComposeServiceError as e:
        _fail(ctx, e)
        return
    if output is None:
        click.echo(text, nl=False)


def main():
    """
    Main entry point for the CLI.
    """
    cli(obj={})


if __name__ == '__main__':
    main()
