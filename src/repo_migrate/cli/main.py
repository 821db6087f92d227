"""Main CLI entry point for repo-migrate."""

import sys
from pathlib import Path
from typing import Optional, Tuple

import click
import yaml
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .. import __version__
from ..config.config import Config
from ..exceptions import CommandLineException, EmptyChangeException, ExitCode, MigrateError
from ..migration.engine import MigrationEngine
from ..migration.monitor import LoggingEventMonitor
from ..migration.workflow import Info, MigrationSummary
from ..utils.console import RichConsole
from ..utils.logging import setup_logging
from .arguments import MainArguments, Subcommand

console = Console()

USAGE = '[subcommand] config_path [workflow_name [source_ref]]'


@click.command(
    context_settings={'help_option_names': ['-h', '--help']},
    help=(
        'Migrate changes from an origin repository to a destination repository.\n\n'
        f'Usage: repo-migrate [OPTIONS] {USAGE}\n\n'
        "subcommand defaults to 'migrate'. Available subcommands: migrate, validate, info. "
        "workflow_name defaults to 'default'. source_ref is resolved in the origin and "
        'defaults to the configured reference.'
    ),
)
@click.version_option(version=__version__, prog_name='repo-migrate')
@click.argument('arguments', nargs=-1)
@click.option(
    '--config',
    '-c',
    type=click.Path(exists=True),
    help='Path to the tool configuration file',
)
@click.option(
    '--work-dir',
    type=click.Path(file_okay=False),
    help='Directory where the transformations are performed. A temporary one by default',
)
@click.option('--dry-run', is_flag=True, help='Run the migration without publishing anything')
@click.option(
    '--force',
    is_flag=True,
    help='Migrate even if the destination is ahead or the histories are unrelated',
)
@click.option('--last-rev', help='Last migrated origin revision. Overrides the destination')
@click.option(
    '--change-request-parent',
    help='Destination commit to use as baseline for change requests',
)
@click.option(
    '--ignore-noop',
    is_flag=True,
    help='Only warn about transformations and migrations that do not change anything',
)
@click.option(
    '--check-last-rev-state',
    is_flag=True,
    help='Fail if the last migrated revision does not match the destination',
)
@click.option(
    '--read-config-from-change',
    is_flag=True,
    help='Load the configuration from the origin for every migrated change',
)
@click.option(
    '--git-first-commit',
    is_flag=True,
    help='Allow pushing to an empty or missing destination branch',
)
@click.option(
    '--folder-dir',
    type=click.Path(file_okay=False),
    help='Directory used by folder destinations',
)
@click.option(
    '--verbose',
    '-v',
    is_flag=True,
    help='Enable verbose logging',
)
def cli(
    arguments: Tuple[str, ...],
    config: Optional[str],
    work_dir: Optional[str],
    dry_run: bool,
    force: bool,
    last_rev: Optional[str],
    change_request_parent: Optional[str],
    ignore_noop: bool,
    check_last_rev_state: bool,
    read_config_from_change: bool,
    git_first_commit: bool,
    folder_dir: Optional[str],
    verbose: bool,
) -> None:
    """Run a subcommand on a workflow of a migration configuration."""
    setup_logging('DEBUG' if verbose else 'WARNING')

    try:
        args = MainArguments.parse(arguments)
    except CommandLineException as e:
        console.print(f'[red]✗[/red] {e}')
        console.print(f'Usage: repo-migrate [OPTIONS] {USAGE}')
        sys.exit(e.exit_code)

    try:
        tool_config = _load_config(config)
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f'[red]✗[/red] Failed to load configuration: {e}')
        sys.exit(ExitCode.CONFIGURATION_ERROR)

    options = tool_config.workflow
    options.dry_run = options.dry_run or dry_run
    options.force = options.force or force
    options.ignore_noop = options.ignore_noop or ignore_noop
    options.check_last_rev_state = options.check_last_rev_state or check_last_rev_state
    options.read_config_from_change = options.read_config_from_change or read_config_from_change
    if last_rev:
        options.last_revision = last_rev
    if change_request_parent:
        options.change_request_parent = change_request_parent
    if work_dir:
        options.workdir = work_dir
    if git_first_commit:
        tool_config.git.first_commit = True
    if folder_dir:
        tool_config.folder.destination_folder = folder_dir

    _setup_logging_with_config(tool_config, verbose)

    engine = MigrationEngine(
        tool_config,
        RichConsole(Console(stderr=True), verbose=verbose),
        monitor=LoggingEventMonitor(),
    )
    try:
        if args.subcommand == Subcommand.VALIDATE:
            exit_code = _validate(engine, args)
        elif args.subcommand == Subcommand.INFO:
            _display_info(engine.info(args.config_path, args.workflow_name))
            exit_code = ExitCode.SUCCESS
        else:
            exit_code = _migrate(engine, args, options.dry_run)
    except EmptyChangeException as e:
        console.print(f'[yellow]No changes to migrate:[/yellow] {e}')
        exit_code = e.exit_code
    except MigrateError as e:
        console.print(f'[red]✗[/red] {args.subcommand.value.capitalize()} failed: {e}')
        if verbose:
            console.print_exception()
        exit_code = e.exit_code

    sys.exit(int(exit_code))


def _load_config(config_path: Optional[str]) -> Config:
    """Load the tool configuration from a file or from the environment."""
    if config_path:
        if not Path(config_path).exists():
            raise FileNotFoundError(f'Configuration file not found: {config_path}')
        return Config.from_file(config_path)
    return Config.from_env()


def _setup_logging_with_config(config: Config, verbose: bool) -> None:
    """Setup logging with the settings of the tool configuration."""
    # Verbose flag wins over the configured level
    log_level = 'DEBUG' if verbose else config.logging.level
    setup_logging(level=log_level, log_file=config.logging.file, log_format=config.logging.format)


def _validate(engine: MigrationEngine, args: MainArguments) -> ExitCode:
    console.print(
        Panel.fit(
            f'[bold cyan]repo-migrate[/bold cyan]\nValidating workflow '
            f"'{args.workflow_name}' of {args.config_path}",
            border_style='cyan',
        )
    )
    result = engine.validate(args.config_path, args.workflow_name)
    for warning in result.warnings:
        console.print(f'[yellow]![/yellow] {warning}')
    for error in result.errors:
        console.print(f'[red]✗[/red] {error}')
    if result.has_errors:
        return ExitCode.CONFIGURATION_ERROR
    console.print('[green]✓[/green] Configuration is valid')
    return ExitCode.SUCCESS


def _migrate(engine: MigrationEngine, args: MainArguments, dry_run: bool) -> ExitCode:
    console.print(
        Panel.fit(
            f'[bold blue]repo-migrate[/bold blue]\nRunning workflow '
            f"'{args.workflow_name}' of {args.config_path}",
            border_style='blue',
        )
    )
    if dry_run:
        console.print('[yellow]Running in dry-run mode - nothing will be published[/yellow]')

    summary = engine.migrate(args.config_path, args.workflow_name, args.source_ref)
    _display_migration_summary(summary)
    console.print('[green]✓[/green] Migration completed successfully')
    return ExitCode.SUCCESS


def _display_migration_summary(summary: MigrationSummary) -> None:
    """Display the revisions migrated by a run and their effects."""
    table = Table(title=f"Workflow '{summary.workflow}' ({summary.mode.value})")
    table.add_column('Origin revision', style='cyan')
    table.add_column('Effect', style='green')
    table.add_column('Destination', style='blue')
    table.add_column('Summary')

    for effect in summary.effects:
        destination = effect.destination_ref.id if effect.destination_ref else ''
        table.add_row(
            ', '.join(ref.as_string() for ref in effect.origin_refs),
            effect.type.value,
            destination,
            effect.summary,
        )
    for skipped in summary.skipped:
        table.add_row(skipped, '[yellow]skipped[/yellow]', '', 'Empty change')

    console.print(table)

    if summary.completed_at:
        duration = summary.completed_at - summary.started_at
        console.print(f'\n[blue]Migration Duration:[/blue] {duration}')

    errors = [error for effect in summary.effects for error in effect.errors]
    if errors:
        console.print(f'\n[red]Errors ({len(errors)}):[/red]')
        for error in errors[:5]:
            console.print(f'  • {error}')
        if len(errors) > 5:
            console.print(f'  ... and {len(errors) - 5} more errors')


def _display_info(info: Info) -> None:
    """Display the last migrated and pending revisions of a workflow."""
    table = Table(title='Migration Status')
    table.add_column('Workflow', style='cyan')
    table.add_column('Last migrated', style='green')
    table.add_column('Next to migrate', style='yellow')
    table.add_column('Pending', style='blue')

    for reference in info.migration_references:
        next_change = reference.next_to_migrate
        table.add_row(
            reference.label,
            reference.last_migrated.as_string() if reference.last_migrated else 'None',
            next_change.ref if next_change else 'None',
            str(len(reference.available_to_migrate)),
        )
    console.print(table)

    for reference in info.migration_references:
        if not reference.available_to_migrate:
            continue
        changes = Table(title=f"Changes available to migrate for '{reference.label}'")
        changes.add_column('Revision', style='cyan')
        changes.add_column('Date')
        changes.add_column('Author', style='green')
        changes.add_column('Description')
        for change in reference.available_to_migrate:
            changes.add_row(
                change.ref,
                change.date_time.isoformat() if change.date_time else '',
                str(change.author),
                change.first_line_message(),
            )
        console.print(changes)


def main() -> None:
    """Main entry point for the CLI application."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print('\n[red]Migration interrupted by user[/red]')
        sys.exit(ExitCode.INTERRUPTED)
    except Exception as e:
        console.print(f'[red]Error: {e}[/red]')
        sys.exit(ExitCode.INTERNAL_ERROR)


if __name__ == '__main__':
    main()
