# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Command Line Interface for stackup.
"""
import os
import subprocess
import time

import click

from ..errors import StackupError
from ..MANAGERS.log_aggregator import LogAggregator
from ..MANAGERS.service_orchestrator import MODES, ServiceOrchestrator
from ..PARSERS.descriptor_loader import DescriptorLoader
from ..RUNNERS.dependency_resolver import DependencyResolver
from ..UTILS.log_setup import setup_logging


@click.group()
@click.option('--file', '-f', default=None, envvar='STACKUP_FILE',
              help='Compose file path (default: search the current directory)')
@click.option('--project-name', '-p', default=None, envvar='STACKUP_PROJECT_NAME',
              help='Project name (default: the compose file directory name)')
@click.option('--mode', type=click.Choice(MODES), default='container', envvar='STACKUP_MODE',
              show_default=True, help='Run services as containers or as native processes')
@click.option('--verbose', '-v', is_flag=True, help='Debug logging')
@click.pass_context
def cli(ctx, file, project_name, mode, verbose):
    """
    stackup - bring up the services of a compose file in dependency order.

    Start services, stop them, and inspect their status.
    """
    setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj.update(file=file, project_name=project_name, mode=mode)


def _load(ctx, check_files=True):
    loader = DescriptorLoader(check_files=check_files)
    try:
        return loader.load(ctx.obj['file'] or os.getcwd(), project_name=ctx.obj['project_name'])
    except StackupError as e:
        raise click.ClickException(str(e)) from e


def _orchestrator(ctx, dry_run=False, timeout=60.0):
    config = _load(ctx)
    try:
        return ServiceOrchestrator(config, mode=ctx.obj['mode'], dry_run=dry_run,
                                   readiness_timeout=timeout)
    except StackupError as e:
        raise click.ClickException(str(e)) from e


@cli.command()
@click.option('--no-check', is_flag=True, help='Skip checks for build and env files')
@click.option('--services', 'names_only', is_flag=True, help='Print service names in start order')
@click.pass_context
def config(ctx, no_check, names_only):
    """Validate the compose file and show the start order."""
    cfg = _load(ctx, check_files=not no_check)
    order = DependencyResolver().resolve_order(cfg)
    if names_only:
        for name in order:
            click.echo(name)
        return

    click.echo(f"Project: {cfg.project_name}")
    click.echo(f"{'SERVICE':15} {'SOURCE':30} {'PORTS':20} DEPENDS ON")
    for name in order:
        svc = cfg.services[name]
        source = svc.image or f"build:{svc.build.context}"
        ports = ",".join(p.render() for p in svc.ports) or "-"
        deps = ",".join(svc.dependency_names) or "-"
        click.echo(f"{name:15} {source:30} {ports:20} {deps}")


@cli.command()
@click.argument('services', nargs=-1)
@click.option('--detach', '-d', is_flag=True, help='Return once services are started')
@click.option('--dry-run', is_flag=True, help='Show engine commands without running them')
@click.option('--no-build', is_flag=True, help='Do not build images first')
@click.option('--timeout', default=60.0, show_default=True, help='Seconds to wait for each dependency condition')
@click.pass_context
def up(ctx, services, detach, dry_run, no_build, timeout):
    """Start services defined in the compose file."""
    if detach and ctx.obj['mode'] == 'native' and not dry_run:
        raise click.UsageError("--detach is not available in native mode")
    orchestrator = _orchestrator(ctx, dry_run=dry_run, timeout=timeout)
    try:
        order = orchestrator.up(services or None, build=not no_build)
    except StackupError as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"Start order: {', '.join(order)}")
    if dry_run or detach:
        return

    click.echo("Running... Press Ctrl+C to stop.")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        click.echo("\nStopping services...")
        orchestrator.down(order if services else None)


@cli.command()
@click.argument('services', nargs=-1)
@click.option('--dry-run', is_flag=True, help='Show engine commands without running them')
@click.pass_context
def down(ctx, services, dry_run):
    """Stop services, dependents first."""
    orchestrator = _orchestrator(ctx, dry_run=dry_run)
    try:
        orchestrator.down(services or None)
    except StackupError as e:
        raise click.ClickException(str(e)) from e
    click.echo("Services stopped.")


@cli.command()
@click.pass_context
def ps(ctx):
    """List service status"""
    orchestrator = _orchestrator(ctx)
    click.echo(f"{'SERVICE':15} {'STATUS':10}")
    click.echo("-" * 25)
    for name, state in orchestrator.ps().items():
        click.echo(f"{name:15} {state:10}")


@cli.command()
@click.argument('services', nargs=-1)
@click.option('--dry-run', is_flag=True, help='Show engine commands without running them')
@click.pass_context
def build(ctx, services, dry_run):
    """Build images for services with build instructions."""
    orchestrator = _orchestrator(ctx, dry_run=dry_run)
    try:
        orchestrator.build(services or None)
    except StackupError as e:
        raise click.ClickException(str(e)) from e


@cli.command()
@click.argument('services', nargs=-1)
@click.option('--follow', is_flag=True, help='Keep printing new output')
@click.pass_context
def logs(ctx, services, follow):
    """Show service logs"""
    orchestrator = _orchestrator(ctx)
    names = list(services) or list(orchestrator.config.services)
    unknown = [n for n in names if n not in orchestrator.config.services]
    if unknown:
        raise click.ClickException(f"No such service: {', '.join(unknown)}")

    if orchestrator.mode == 'native':
        aggregator = LogAggregator(os.path.join(orchestrator.config.project_dir, ".stackup", "logs"))
        if follow:
            aggregator.tail_logs(names)
        else:
            aggregator.show_logs(names)
        return

    if follow and len(names) != 1:
        raise click.UsageError("--follow takes exactly one service in container mode")
    if follow:
        command = orchestrator.builder.logs_command(orchestrator.config.services[names[0]], follow=True)
        subprocess.call(command)
        return

    width = max(len(n) for n in names)
    for name in names:
        command = orchestrator.builder.logs_command(orchestrator.config.services[name], follow=False)
        result = orchestrator.engine.run(command, check=False)
        for line in ((result.stdout or "") + (result.stderr or "")).splitlines():
            click.echo(f"{name:{width}} | {line}")


def main():
    """
    Main entry point for the CLI.
    """
    cli(obj={})


if __name__ == '__main__':
    main()
