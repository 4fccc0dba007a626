"""Main CLI entry point for the ADO to GitHub Migration Tool."""

import sys
import asyncio
from typing import Optional
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .. import __version__
from ..config.config import Config
from ..migration.engine import MigrationEngine
from ..models.pipeline import PipelineTestSummary
from ..utils.logging import setup_logging

console = Console()


@click.group()
@click.version_option(version=__version__, prog_name='ado-github-migrate')
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
    """ADO to GitHub Migration Tool - Drive migrations and rewire Azure Pipelines to GitHub."""
    ctx.ensure_object(dict)

    if config:
        ctx.obj['config_path'] = config
    ctx.obj['verbose'] = verbose

    # Basic logging until the configuration is loaded
    log_level = 'DEBUG' if verbose else 'INFO'
    setup_logging(log_level)


@cli.command()
@click.option(
    '--output',
    '-o',
    default='config.yaml',
    help='Output configuration file path',
)
@click.pass_context
def init(ctx: click.Context, output: str) -> None:
    """Initialize a new configuration file."""
    console.print(
        Panel.fit(
            '[bold green]ADO to GitHub Migration Tool[/bold green]\n'
            'Initializing configuration...',
            border_style='green',
        )
    )

    try:
        Config.create_template(output)

        console.print(f'[green]✓[/green] Configuration template created at: {output}')
        console.print(
            f'[yellow]Please edit {output} with your Azure DevOps and GitHub '
            'details[/yellow]'
        )

    except Exception as e:
        console.print(f'[red]✗[/red] Failed to create configuration: {e}')
        sys.exit(1)


@cli.command()
@click.pass_context
def validate(ctx: click.Context) -> None:
    """Validate configuration and connectivity."""
    console.print(
        Panel.fit(
            '[bold cyan]ADO to GitHub Migration Tool[/bold cyan]\n'
            'Validating configuration...',
            border_style='cyan',
        )
    )

    engine = None
    try:
        config = _load_config(ctx)
        _setup_logging_with_config(ctx, config)

        engine = MigrationEngine(config)
        engine.test_connectivity(
            ado=config.ado is not None, github=config.github is not None
        )

        table = Table(title='Configured Platforms')
        table.add_column('Platform', style='cyan')
        table.add_column('URL', style='green')
        table.add_row('Azure DevOps', config.ado.url if config.ado else '-')
        table.add_row('GitHub', config.github.api_url if config.github else '-')
        console.print(table)

        console.print('[green]✓[/green] Connectivity validation passed')
        console.print('[green]✓[/green] Configuration validation completed')

    except Exception as e:
        console.print(f'[red]✗[/red] Validation failed: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)
    finally:
        if engine is not None:
            engine.close()


@cli.command('wait-for-migration')
@click.option('--migration-id', required=True, help='Repository (RM_) or organization (OM_) migration id')
@click.pass_context
def wait_for_migration(ctx: click.Context, migration_id: str) -> None:
    """Wait for a migration to finish."""
    _run_command(
        ctx,
        'Waiting for migration...',
        lambda engine: engine.wait_for_migration(migration_id),
    )


@cli.command('migrate-repo')
@click.option('--ado-org', required=True, help='Azure DevOps organization')
@click.option('--ado-team-project', required=True, help='Azure DevOps team project')
@click.option('--ado-repo', required=True, help='Azure Repos repository')
@click.option('--github-org', required=True, help='Target GitHub organization')
@click.option('--github-repo', required=True, help='Target GitHub repository')
@click.option(
    '--queue-only',
    is_flag=True,
    help='Only queue the migration, do not wait for it to finish',
)
@click.option(
    '--target-repo-visibility',
    type=click.Choice(['public', 'private', 'internal']),
    help='Visibility of the target repository',
)
@click.pass_context
def migrate_repo(
    ctx: click.Context,
    ado_org: str,
    ado_team_project: str,
    ado_repo: str,
    github_org: str,
    github_repo: str,
    queue_only: bool,
    target_repo_visibility: Optional[str],
) -> None:
    """Migrate an Azure Repos repository to GitHub."""
    _run_command(
        ctx,
        'Migrating repository...',
        lambda engine: engine.migrate_repository(
            ado_org,
            ado_team_project,
            ado_repo,
            github_org,
            github_repo,
            queue_only=queue_only,
            target_repo_visibility=target_repo_visibility,
        ),
    )


@cli.command('migrate-org')
@click.option('--github-source-org', required=True, help='Source GitHub organization')
@click.option('--github-target-org', required=True, help='Target GitHub organization')
@click.option(
    '--github-target-enterprise', required=True, help='Target GitHub enterprise slug'
)
@click.option(
    '--queue-only',
    is_flag=True,
    help='Only queue the migration, do not wait for it to finish',
)
@click.pass_context
def migrate_org(
    ctx: click.Context,
    github_source_org: str,
    github_target_org: str,
    github_target_enterprise: str,
    queue_only: bool,
) -> None:
    """Migrate a GitHub organization into an enterprise."""
    _run_command(
        ctx,
        'Migrating organization...',
        lambda engine: engine.migrate_organization(
            github_source_org,
            github_target_org,
            github_target_enterprise,
            queue_only=queue_only,
        ),
    )


@cli.command('download-logs')
@click.option('--github-org', required=True, help='GitHub organization')
@click.option('--github-repo', required=True, help='Migrated repository')
@click.option('--migration-log-file', help='Output file path')
@click.option('--overwrite', is_flag=True, help='Overwrite an existing log file')
@click.pass_context
def download_logs(
    ctx: click.Context,
    github_org: str,
    github_repo: str,
    migration_log_file: Optional[str],
    overwrite: bool,
) -> None:
    """Download the migration log of a repository."""
    _run_command(
        ctx,
        'Downloading migration logs...',
        lambda engine: engine.download_logs(
            github_org,
            github_repo,
            migration_log_file=migration_log_file,
            overwrite=overwrite,
        ),
    )


@cli.command('rewire-pipeline')
@click.option('--ado-org', required=True, help='Azure DevOps organization')
@click.option('--ado-team-project', required=True, help='Azure DevOps team project')
@click.option('--ado-pipeline', help='Pipeline path and name')
@click.option('--ado-pipeline-id', type=int, help='Pipeline definition id')
@click.option('--github-org', required=True, help='GitHub organization')
@click.option('--github-repo', required=True, help='GitHub repository')
@click.option(
    '--service-connection-id', required=True, help='GitHub service connection id'
)
@click.option(
    '--dry-run',
    is_flag=True,
    help='Rewire temporarily, run a test build and restore the pipeline',
)
@click.option(
    '--monitor-timeout-minutes',
    type=float,
    help='Minutes to monitor the test build in dry-run mode',
)
@click.option('--target-api-url', help='API URL of the target GitHub instance')
@click.pass_context
def rewire_pipeline(
    ctx: click.Context,
    ado_org: str,
    ado_team_project: str,
    ado_pipeline: Optional[str],
    ado_pipeline_id: Optional[int],
    github_org: str,
    github_repo: str,
    service_connection_id: str,
    dry_run: bool,
    monitor_timeout_minutes: Optional[float],
    target_api_url: Optional[str],
) -> None:
    """Rewire an Azure Pipeline to a GitHub repository."""
    if dry_run:
        console.print(
            '[yellow]Running in dry-run mode - the pipeline will be restored '
            'after the test build is queued[/yellow]'
        )

    _run_command(
        ctx,
        'Rewiring pipeline...',
        lambda engine: engine.rewire_pipeline(
            ado_org,
            ado_team_project,
            github_org,
            github_repo,
            service_connection_id,
            pipeline_name=ado_pipeline,
            pipeline_id=ado_pipeline_id,
            dry_run=dry_run,
            monitor_timeout_minutes=monitor_timeout_minutes,
            target_api_url=target_api_url,
        ),
    )


@cli.command('test-pipelines')
@click.option('--ado-org', required=True, help='Azure DevOps organization')
@click.option('--ado-team-project', required=True, help='Azure DevOps team project')
@click.option('--github-org', required=True, help='GitHub organization')
@click.option('--github-repo', required=True, help='GitHub repository')
@click.option(
    '--service-connection-id', required=True, help='GitHub service connection id'
)
@click.option('--pipeline-filter', help='Wildcard filter for pipeline names')
@click.option(
    '--max-concurrent-tests', type=click.IntRange(min=1), help='Tests run at once'
)
@click.option('--report-path', help='JSON report output path')
@click.option(
    '--monitor-timeout-minutes', type=float, help='Minutes to monitor each build'
)
@click.option('--target-api-url', help='API URL of the target GitHub instance')
@click.pass_context
def test_pipelines(
    ctx: click.Context,
    ado_org: str,
    ado_team_project: str,
    github_org: str,
    github_repo: str,
    service_connection_id: str,
    pipeline_filter: Optional[str],
    max_concurrent_tests: Optional[int],
    report_path: Optional[str],
    monitor_timeout_minutes: Optional[float],
    target_api_url: Optional[str],
) -> None:
    """Dry-run test all pipelines of a team project against GitHub."""
    summary = _run_command(
        ctx,
        'Testing pipelines...',
        lambda engine: engine.test_pipelines(
            ado_org,
            ado_team_project,
            github_org,
            github_repo,
            service_connection_id,
            pipeline_filter=pipeline_filter,
            max_concurrent_tests=max_concurrent_tests,
            report_path=report_path,
            monitor_timeout_minutes=monitor_timeout_minutes,
            target_api_url=target_api_url,
        ),
    )
    _display_test_summary(summary)


def _run_command(ctx: click.Context, title: str, operation):
    """Load configuration, run one engine coroutine and exit 1 on failure."""
    console.print(
        Panel.fit(
            f'[bold blue]ADO to GitHub Migration Tool[/bold blue]\n{title}',
            border_style='blue',
        )
    )

    engine = None
    try:
        config = _load_config(ctx)
        _setup_logging_with_config(ctx, config)

        engine = MigrationEngine(config)
        result = asyncio.run(operation(engine))

        console.print('[green]✓[/green] Command completed successfully')
        return result

    except Exception as e:
        console.print(f'[red]✗[/red] Command failed: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)
    finally:
        if engine is not None:
            engine.close()


def _load_config(ctx: click.Context) -> Config:
    """Load configuration from file or environment."""
    config_path = ctx.obj.get('config_path')

    if config_path:
        if not Path(config_path).exists():
            raise FileNotFoundError(f'Configuration file not found: {config_path}')
        return Config.from_file(config_path)
    else:
        # Try to load from default locations
        default_paths = ['config.yaml', 'config.yml', '.ado-github-migrate.yaml']
        for path in default_paths:
            if Path(path).exists():
                return Config.from_file(path)

        # Fall back to environment variables
        try:
            return Config.from_env()
        except Exception:
            raise FileNotFoundError(
                'No configuration found. Use --config to specify a file or run '
                '"ado-github-migrate init" to create one.'
            )


def _setup_logging_with_config(ctx: click.Context, config: Config) -> None:
    """Setup logging with configuration from config file."""
    verbose = ctx.obj.get('verbose', False)

    # Verbose flag overrides the configured level
    log_level = 'DEBUG' if verbose else config.logging.level

    setup_logging(
        level=log_level, log_file=config.logging.file, log_format=config.logging.format
    )


def _display_test_summary(summary: Optional[PipelineTestSummary]) -> None:
    """Display batch pipeline test results."""
    if summary is None or summary.total == 0:
        console.print('[yellow]No pipelines were tested[/yellow]')
        return

    table = Table(title='Pipeline Test Summary')
    table.add_column('Pipeline', style='cyan')
    table.add_column('ID', style='blue')
    table.add_column('Result', style='green')
    table.add_column('Restored', style='yellow')
    table.add_column('Error', style='red')

    for result in summary.results:
        table.add_row(
            result.pipeline_name or '-',
            str(result.pipeline_id) if result.pipeline_id is not None else '-',
            result.result or result.status or 'not completed',
            '✓' if result.restored_successfully else '✗',
            result.error_message or '',
        )

    console.print(table)
    console.print(
        f'\n[blue]Success Rate:[/blue] {summary.success_rate:.1f}% '
        f'({summary.successful}/{summary.total})'
    )

    restoration = summary.pipelines_needing_restoration
    if restoration:
        console.print(
            f'\n[red]Pipelines requiring manual restoration ({len(restoration)}):[/red]'
        )
        for result in restoration:
            console.print(f'  • {result.pipeline_name}: {result.pipeline_url}')


def main() -> None:
    """Main entry point for the CLI application."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print('\n[red]Operation interrupted by user[/red]')
        sys.exit(1)
    except Exception as e:
        console.print(f'[red]Error: {e}[/red]')
        sys.exit(1)


if __name__ == '__main__':
    main()
