"""Main CLI entry point for Repository Migration Tool."""

import sys
from pathlib import Path
from typing import Optional

import click
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .. import __version__
from ..config.config import Config
from ..migration.builder import PlanBuilder
from ..migration.engine import MigrationEngine
from ..migration.executor import ConfirmationDeclined
from ..migration.reporter import render_plan, render_report, summary_table
from ..models.plan import (
    DEFAULT_CI_PLAN_FILE,
    DEFAULT_PLAN_FILE,
    MigrationPlan,
    ParseError,
    save_plan,
)
from ..utils.logging import setup_logging
from .wizard import CIWizard, MigrationWizard

console = Console()

DEFAULT_CONFIG_PATHS = ['config.yaml', 'config.yml', '.repo-migrate.yaml']


@click.group()
@click.version_option(version=__version__, prog_name='repo-migrate')
@click.option(
    '--config',
    '-c',
    type=click.Path(exists=True),
    help='Path to configuration file',
)
@click.option(
    '--verbose',
    '-v',
    is_flag=True,
    help='Enable verbose logging',
)
@click.pass_context
def cli(ctx: click.Context, config: Optional[str], verbose: bool) -> None:
    """Repository Migration Tool - Move repositories, teams and CI settings from Bitbucket to GitHub."""
    ctx.ensure_object(dict)

    if config:
        ctx.obj['config_path'] = config
    ctx.obj['verbose'] = verbose

    # Basic logging until the configuration is loaded
    setup_logging('DEBUG' if verbose else 'INFO')


@cli.command()
@click.option(
    '--output',
    '-o',
    default='config.yaml',
    help='Output configuration file path',
)
def init(output: str) -> None:
    """Initialize a new configuration file."""
    console.print(
        Panel.fit(
            '[bold green]Repository Migration Tool[/bold green]\n'
            'Initializing configuration...',
            border_style='green',
        )
    )

    if Path(output).exists() and not click.confirm(
        f'{output} already exists. Overwrite it?', default=False
    ):
        console.print(f'[red]✗[/red] Refusing to overwrite {output}')
        sys.exit(1)

    try:
        Config.create_template(output)
    except OSError as e:
        console.print(f'[red]✗[/red] Failed to create configuration: {e}')
        sys.exit(1)

    console.print(f'[green]✓[/green] Configuration template created at: {output}')
    console.print(
        f'[yellow]Please edit {output} with your Bitbucket and GitHub details[/yellow]'
    )


@cli.command()
@click.pass_context
def validate(ctx: click.Context) -> None:
    """Check connectivity and credentials of every configured service."""
    console.print(
        Panel.fit(
            '[bold cyan]Repository Migration Tool[/bold cyan]\nValidating configuration...',
            border_style='cyan',
        )
    )

    try:
        config = _load_config(ctx)
        _setup_logging_with_config(ctx, config)

        engine = MigrationEngine(config)
        try:
            results = engine.test_connectivity()
        finally:
            engine.close()

    except Exception as e:
        console.print(f'[red]✗[/red] Validation failed: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)

    table = Table(title='Service Connectivity')
    table.add_column('Service', style='cyan')
    table.add_column('Status')
    for service, passed in results.items():
        table.add_row(service, '[green]✓ ok[/green]' if passed else '[red]✗ failed[/red]')
    console.print(table)

    if not all(results.values()):
        console.print('[red]✗[/red] Connectivity validation failed')
        sys.exit(1)

    console.print('[green]✓[/green] Configuration validation completed')


@cli.command()
@click.option(
    '--output',
    '-o',
    default=DEFAULT_PLAN_FILE,
    show_default=True,
    help='Where to write the migration plan',
)
@click.option('--force', is_flag=True, help='Overwrite an existing plan file')
@click.pass_context
def wizard(ctx: click.Context, output: str, force: bool) -> None:
    """Interactively build a repository migration plan."""
    _check_overwrite(output, force)

    try:
        config = _load_config(ctx)
        _setup_logging_with_config(ctx, config)

        engine = MigrationEngine(config)
        try:
            selections = MigrationWizard(
                engine.source_client,
                engine.destination_client,
                console=console,
                visibility=config.migration.default_visibility,
            ).run()
        finally:
            engine.close()

        plan = PlanBuilder(config.github.organization).build(selections)
    except Exception as e:
        console.print(f'[red]✗[/red] Wizard failed: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)

    _save_plan(plan, output)


@cli.command()
@click.argument('plan_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--yes', '-y', is_flag=True, help='Do not ask for confirmation')
@click.option('--fail-fast', is_flag=True, help='Stop at the first failed action')
@click.option(
    '--strict', is_flag=True, help='Treat already existing repositories and teams as failures'
)
@click.option(
    '--report-file',
    type=click.Path(dir_okay=False),
    help='Save the run report as JSON after every action',
)
@click.pass_context
def migrate(
    ctx: click.Context,
    plan_file: str,
    yes: bool,
    fail_fast: bool,
    strict: bool,
    report_file: Optional[str],
) -> None:
    """Execute a migration plan."""
    _run_plan(ctx, plan_file, yes, fail_fast, strict, report_file, ci_only=False)


@cli.group()
def circleci() -> None:
    """Move CircleCI project settings to the migrated repositories."""
    pass


@circleci.command('wizard')
@click.option(
    '--output',
    '-o',
    default=DEFAULT_CI_PLAN_FILE,
    show_default=True,
    help='Where to write the CircleCI migration plan',
)
@click.option('--force', is_flag=True, help='Overwrite an existing plan file')
@click.pass_context
def circleci_wizard(ctx: click.Context, output: str, force: bool) -> None:
    """Interactively build a CircleCI migration plan."""
    try:
        config = _load_config(ctx)
    except Exception as e:
        console.print(f'[red]✗[/red] {e}')
        sys.exit(1)

    _require_circleci(config)
    _check_overwrite(output, force)

    try:
        _setup_logging_with_config(ctx, config)
        engine = MigrationEngine(config)
        try:
            selections = CIWizard(
                engine.destination_client, engine.ci_client, console=console
            ).run()
        finally:
            engine.close()

        plan = PlanBuilder(config.github.organization).build_ci(selections)
    except Exception as e:
        console.print(f'[red]✗[/red] Wizard failed: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)

    _save_plan(plan, output)


@circleci.command('migrate')
@click.argument('plan_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--yes', '-y', is_flag=True, help='Do not ask for confirmation')
@click.option('--fail-fast', is_flag=True, help='Stop at the first failed action')
@click.option(
    '--report-file',
    type=click.Path(dir_okay=False),
    help='Save the run report as JSON after every action',
)
@click.pass_context
def circleci_migrate(
    ctx: click.Context,
    plan_file: str,
    yes: bool,
    fail_fast: bool,
    report_file: Optional[str],
) -> None:
    """Execute a CircleCI migration plan."""
    _run_plan(ctx, plan_file, yes, fail_fast, False, report_file, ci_only=True)


def _load_config(ctx: click.Context) -> Config:
    """Load configuration from file or environment."""
    config_path = ctx.obj.get('config_path')

    if config_path:
        return Config.from_file(config_path)

    for path in DEFAULT_CONFIG_PATHS:
        if Path(path).exists():
            return Config.from_file(path)

    # Fall back to environment variables
    try:
        return Config.from_env()
    except ValidationError:
        raise FileNotFoundError(
            'No configuration found. Use --config to specify a file or run '
            '"repo-migrate init" to create one.'
        )


def _setup_logging_with_config(ctx: click.Context, config: Config) -> None:
    """Setup logging with configuration from config file."""
    verbose = ctx.obj.get('verbose', False)

    # The verbose flag overrides the configured level
    log_level = 'DEBUG' if verbose else config.logging.level
    setup_logging(
        level=log_level, log_file=config.logging.file, log_format=config.logging.format
    )


def _require_circleci(config: Config) -> None:
    if not config.ci_enabled:
        console.print(
            '[red]✗[/red] CircleCI migration is disabled. '
            'Set circleci.enabled in the configuration to use it.'
        )
        sys.exit(1)


def _check_overwrite(output: str, force: bool) -> None:
    if force or not Path(output).exists():
        return
    if not click.confirm(f'{output} already exists. Overwrite it?', default=False):
        console.print(f'[red]✗[/red] Refusing to overwrite {output}')
        sys.exit(1)


def _save_plan(plan: MigrationPlan, output: str) -> None:
    console.print(render_plan(plan), markup=False, highlight=False)
    try:
        save_plan(plan, output, overwrite=True)
    except OSError as e:
        console.print(f'[red]✗[/red] Failed to save plan: {e}')
        sys.exit(1)
    console.print(f'[green]✓[/green] Migration plan saved to: {output}')


def _run_plan(
    ctx: click.Context,
    plan_file: str,
    yes: bool,
    fail_fast: bool,
    strict: bool,
    report_file: Optional[str],
    ci_only: bool,
) -> None:
    title = 'CircleCI Migration' if ci_only else 'Repository Migration'
    console.print(Panel.fit(f'[bold blue]{title}[/bold blue]', border_style='blue'))

    try:
        config = _load_config(ctx)
    except Exception as e:
        console.print(f'[red]✗[/red] {e}')
        sys.exit(1)

    if ci_only:
        _require_circleci(config)
    _setup_logging_with_config(ctx, config)

    engine = MigrationEngine(config)
    try:
        plan = engine.load_plan(plan_file)
    except (ParseError, OSError) as e:
        engine.close()
        console.print(f'[red]✗[/red] Cannot load plan: {e}')
        sys.exit(1)

    if ci_only and not plan.is_ci_only():
        engine.close()
        console.print(
            f'[red]✗[/red] {plan_file} contains non-CircleCI actions; '
            'use "repo-migrate migrate" for it'
        )
        sys.exit(1)

    console.print(render_plan(plan), markup=False, highlight=False)
    confirmed = yes or click.confirm('Proceed with the migration?', default=False)

    try:
        report = engine.migrate(
            plan,
            confirmed=confirmed,
            stop_on_failure=True if fail_fast else None,
            strict_rerun=True if strict else None,
            report_path=report_file,
        )
    except ConfirmationDeclined as e:
        console.print(f'[yellow]{e}[/yellow]')
        sys.exit(1)
    except ParseError as e:
        console.print(f'[red]✗[/red] {e}')
        sys.exit(1)

    console.print(render_report(plan, report), markup=False, highlight=False)
    console.print(summary_table(report))

    if report.has_failures or report.aborted:
        console.print('[red]✗[/red] Migration finished with failures')
        sys.exit(1)

    console.print('[green]✓[/green] Migration completed successfully')


def main() -> None:
    """Main entry point for the CLI application."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print('\n[red]Migration interrupted by user[/red]')
        sys.exit(1)


if __name__ == '__main__':
    main()
