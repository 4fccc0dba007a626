"""Migration engine - main entry point for migration and pipeline operations."""

from pathlib import Path
from typing import Optional
from urllib.parse import quote

from loguru import logger

from ..api.ado import AdoApi, InventoryCache
from ..api.client import AdoClient, GitHubClient
from ..api.exceptions import GraphQLError, NotFoundError
from ..api.github import GitHubApi
from ..config.config import Config
from ..exceptions import (
    ConfigurationError,
    MigrationToolError,
    PipelineLookupError,
    RetryExhaustedError,
)
from ..models.migration import MigrationRecord
from ..models.pipeline import PipelineTestArgs, PipelineTestResult, PipelineTestSummary
from ..pipelines.batch import BatchPipelineTester
from ..pipelines.rewire import PipelineRewirer
from ..pipelines.tester import PipelineTestService
from ..utils.logging import clear_secrets, register_secret
from .poller import MigrationPoller
from .retry import RetryPolicy

GITHUB_WEB_URL = 'https://github.com'


class MigrationEngine:
    """Coordinates the API layer, poller and pipeline services for one command.

    Clients are created on first use so that a command only needs the
    credentials of the platforms it talks to.
    """

    def __init__(
        self,
        config: Config,
        ado_api: Optional[AdoApi] = None,
        github_api: Optional[GitHubApi] = None,
    ):
        """Initialize migration engine.

        Args:
            config: Tool configuration
            ado_api: Pre-built Azure DevOps API (built from ``config`` if omitted)
            github_api: Pre-built GitHub API (built from ``config`` if omitted)
        """
        self.config = config
        self.logger = logger.bind(component='MigrationEngine')

        self.cache = InventoryCache()
        self.retry_policy = RetryPolicy(
            max_attempts=config.polling.retry_attempts,
            retry_interval=config.polling.retry_interval,
        )

        if config.ado is not None:
            register_secret(config.ado.pat)
        if config.github is not None:
            register_secret(config.github.token)

        self._ado_api = ado_api
        self._github_api = github_api
        self._clients = []

    @property
    def ado_api(self) -> AdoApi:
        if self._ado_api is None:
            client = AdoClient(self.config.require_ado())
            self._clients.append(client)
            self._ado_api = AdoApi(client, self.cache)
        return self._ado_api

    @property
    def github_api(self) -> GitHubApi:
        if self._github_api is None:
            client = GitHubClient(self.config.require_github())
            self._clients.append(client)
            self._github_api = GitHubApi(client, self.retry_policy)
        return self._github_api

    @property
    def poller(self) -> MigrationPoller:
        return MigrationPoller(
            self.github_api, self.config.polling.migration_wait_interval
        )

    @property
    def test_service(self) -> PipelineTestService:
        return PipelineTestService(
            self.ado_api,
            PipelineRewirer(self.ado_api),
            poll_interval=self.config.polling.build_poll_interval,
        )

    def close(self) -> None:
        """Close every client opened by this engine and forget its secrets."""
        for client in self._clients:
            client.close()
        self._clients.clear()
        self.cache.clear()
        clear_secrets()

    def test_connectivity(self, ado: bool = True, github: bool = True) -> None:
        """Test connectivity to the configured platforms.

        Raises:
            ConnectionError: If a connectivity test fails
        """
        self.logger.info('Testing connectivity')

        if ado and not self.ado_api.client.test_connection():
            raise ConnectionError('Cannot connect to Azure DevOps')

        if github and not self.github_api.client.test_connection():
            raise ConnectionError('Cannot connect to GitHub')

        self.logger.info('Connectivity tests passed')

    async def wait_for_migration(self, migration_id: str) -> MigrationRecord:
        """Wait for a repository (``RM_``) or organization (``OM_``) migration."""
        return await self.poller.wait_for_migration(migration_id)

    async def migrate_repository(
        self,
        ado_org: str,
        ado_team_project: str,
        ado_repo: str,
        github_org: str,
        github_repo: str,
        queue_only: bool = False,
        target_repo_visibility: Optional[str] = None,
    ) -> Optional[str]:
        """Start an Azure Repos to GitHub repository migration.

        Args:
            ado_org: Azure DevOps organization
            ado_team_project: Azure DevOps team project
            ado_repo: Azure Repos repository
            github_org: Target GitHub organization
            github_repo: Target GitHub repository
            queue_only: Return once queued instead of waiting for the result
            target_repo_visibility: ``private``, ``public`` or ``internal``

        Returns:
            The migration id, or None if the target repository already exists
        """
        self.logger.info('Migrating Repo...')

        ado_config = self.config.require_ado()
        github_config = self.config.require_github()

        ado_repo_url = (
            f'{ado_config.url}/{quote(ado_org, safe="")}/'
            f'{quote(ado_team_project, safe="")}/_git/{quote(ado_repo, safe="")}'
        )

        github_org_id = await self.github_api.get_organization_id(github_org)
        migration_source_id = await self.github_api.create_ado_migration_source(
            github_org_id, ado_config.url
        )

        try:
            migration_id = await self.github_api.start_repository_migration(
                migration_source_id,
                ado_repo_url,
                github_org_id,
                github_repo,
                ado_config.pat,
                github_config.token,
                target_repo_visibility,
            )
        except GraphQLError as e:
            if str(e) == f'A repository called {github_org}/{github_repo} already exists':
                self.logger.warning(
                    f"The Org '{github_org}' already contains a repository with the "
                    f"name '{github_repo}'. No operation will be performed"
                )
                return None
            raise

        if queue_only:
            self.logger.info(
                f'A repository migration (ID: {migration_id}) was successfully queued.'
            )
            return migration_id

        await self.poller.wait_for_repository_migration(migration_id)
        return migration_id

    async def migrate_organization(
        self,
        github_source_org: str,
        github_target_org: str,
        github_target_enterprise: str,
        queue_only: bool = False,
    ) -> str:
        """Start a GitHub organization migration into an enterprise.

        Returns:
            The organization migration id
        """
        self.logger.info('Migrating Organization...')

        github_config = self.config.require_github()
        source_org_url = f'{GITHUB_WEB_URL}/{quote(github_source_org, safe="")}'

        enterprise_id = await self.github_api.get_enterprise_id(github_target_enterprise)
        migration_id = await self.github_api.start_organization_migration(
            source_org_url, github_target_org, enterprise_id, github_config.token
        )

        if queue_only:
            self.logger.info(
                f'An organization migration (ID: {migration_id}) was successfully queued.'
            )
            return migration_id

        await self.poller.wait_for_organization_migration(migration_id)
        return migration_id

    async def download_logs(
        self,
        github_org: str,
        github_repo: str,
        migration_log_file: Optional[str] = None,
        overwrite: bool = False,
    ) -> Path:
        """Download the log of the latest migration of a repository.

        Args:
            github_org: GitHub organization
            github_repo: Migrated repository
            migration_log_file: Output path (``migration-log-<org>-<repo>.log``)
            overwrite: Replace an existing output file

        Returns:
            Path of the downloaded log

        Raises:
            MigrationToolError: If the file exists or the repository has no migration
            RetryExhaustedError: If the log URL never became available
        """
        self.logger.warning(
            'Migration logs are only available for 24 hours after a migration finishes!'
        )
        self.logger.info('Downloading migration logs...')

        log_file = migration_log_file or f'migration-log-{github_org}-{github_repo}.log'

        if Path(log_file).exists():
            if not overwrite:
                raise MigrationToolError(
                    f'File {log_file} already exists!  Use --overwrite to overwrite '
                    'this file.'
                )
            self.logger.warning(f'Overwriting {log_file} due to --overwrite option.')

        github_api = self.github_api
        outcome = await self.retry_policy.retry_on_result(
            lambda: github_api.get_migration_log_url(github_org, github_repo),
            '',
            'Waiting for migration log to populate...',
        )

        if outcome.successful and outcome.result is None:
            raise MigrationToolError(f'Migration for repository {github_repo} not found!')

        if not outcome.successful:
            raise RetryExhaustedError(
                f'Migration log for repository {github_repo} unavailable!'
            )

        self.logger.info(f'Downloading log for repository {github_repo} to {log_file}...')
        path = await github_api.client.download_file_async(outcome.result, log_file)
        self.logger.success(f'Downloaded {github_repo} log to {log_file}.')
        return path

    @staticmethod
    def _validate_pipeline_selector(
        pipeline_name: Optional[str], pipeline_id: Optional[int]
    ) -> None:
        if not pipeline_name and pipeline_id is None:
            raise ConfigurationError(
                'Either --ado-pipeline or --ado-pipeline-id must be specified'
            )
        if pipeline_name and pipeline_id is not None:
            raise ConfigurationError(
                'Cannot specify both --ado-pipeline and --ado-pipeline-id. '
                'Please use only one.'
            )

    async def rewire_pipeline(
        self,
        ado_org: str,
        ado_team_project: str,
        github_org: str,
        github_repo: str,
        service_connection_id: str,
        pipeline_name: Optional[str] = None,
        pipeline_id: Optional[int] = None,
        dry_run: bool = False,
        monitor_timeout_minutes: Optional[float] = None,
        target_api_url: Optional[str] = None,
    ) -> Optional[PipelineTestResult]:
        """Rewire one pipeline to GitHub, or dry-run test the rewiring.

        Exactly one of ``pipeline_name`` and ``pipeline_id`` must be given.

        Returns:
            The test result in dry-run mode, otherwise None
        """
        self._validate_pipeline_selector(pipeline_name, pipeline_id)

        if monitor_timeout_minutes is None:
            monitor_timeout_minutes = self.config.polling.monitor_timeout_minutes

        if dry_run:
            return await self._dry_run_pipeline(
                PipelineTestArgs(
                    ado_org=ado_org,
                    ado_team_project=ado_team_project,
                    pipeline_name=pipeline_name,
                    pipeline_id=pipeline_id,
                    github_org=github_org,
                    github_repo=github_repo,
                    service_connection_id=service_connection_id,
                    monitor_timeout_minutes=monitor_timeout_minutes,
                    target_api_url=target_api_url,
                )
            )

        self.logger.info('Rewiring Pipeline to GitHub repo...')
        ado_api = self.ado_api

        try:
            if pipeline_id is None:
                self.logger.info(f'Looking up pipeline ID for: {pipeline_name}')
                pipeline_id = await ado_api.get_pipeline_id(
                    ado_org, ado_team_project, pipeline_name
                )
                self.logger.info(f'Using resolved pipeline ID: {pipeline_id}')
            else:
                self.logger.info(f'Using provided pipeline ID: {pipeline_id}')

            rewirer = PipelineRewirer(ado_api)
            binding = await rewirer.capture_binding(
                ado_org, ado_team_project, pipeline_id
            )
            rewired = await rewirer.rewire(
                ado_org,
                ado_team_project,
                pipeline_id,
                binding,
                github_org,
                github_repo,
                service_connection_id,
                target_api_url,
            )
        except NotFoundError as e:
            self.logger.error(f'Pipeline not found: {e}')
            raise PipelineLookupError(
                'Pipeline could not be found. Please verify the pipeline name or ID '
                'and try again.',
                pipeline=pipeline_name,
            ) from e
        except PipelineLookupError as e:
            self.logger.error(f'Pipeline lookup failed: {e}')
            raise PipelineLookupError(
                'Unable to find the specified pipeline. Please verify the pipeline '
                'name and try again.',
                pipeline=pipeline_name,
            ) from e

        if rewired:
            self.logger.success('Successfully rewired pipeline')
        return None

    async def _dry_run_pipeline(self, args: PipelineTestArgs) -> PipelineTestResult:
        self.logger.info('Starting dry-run mode: Testing pipeline rewiring to GitHub...')
        self.logger.info(f'Monitor timeout: {args.monitor_timeout_minutes} minutes')

        result = await self.test_service.test_pipeline(args)

        self.logger.info('=== PIPELINE TEST REPORT ===')
        self.logger.info(f'ADO Organization: {result.ado_org}')
        self.logger.info(f'ADO Team Project: {result.ado_team_project}')
        self.logger.info(f'Pipeline Name: {result.pipeline_name}')
        self.logger.info(f'Build Result: {result.result or "not completed"}')

        if result.result == 'succeeded':
            self.logger.success('Pipeline test PASSED - Build completed successfully')
        elif result.result == 'failed':
            self.logger.error('Pipeline test FAILED - Build completed with failures')
        elif result.error_message:
            self.logger.error(f'Pipeline test FAILED - Error: {result.error_message}')
        else:
            self.logger.warning('Pipeline test completed with unknown result')

        return result

    async def test_pipelines(
        self,
        ado_org: str,
        ado_team_project: str,
        github_org: str,
        github_repo: str,
        service_connection_id: str,
        pipeline_filter: Optional[str] = None,
        max_concurrent_tests: Optional[int] = None,
        report_path: Optional[str] = None,
        monitor_timeout_minutes: Optional[float] = None,
        target_api_url: Optional[str] = None,
    ) -> PipelineTestSummary:
        """Dry-run test every matching pipeline of a team project.

        Unset options fall back to the ``pipeline_test`` and ``polling``
        configuration sections.
        """
        settings = self.config.pipeline_test
        template = PipelineTestArgs(
            ado_org=ado_org,
            ado_team_project=ado_team_project,
            github_org=github_org,
            github_repo=github_repo,
            service_connection_id=service_connection_id,
            monitor_timeout_minutes=(
                monitor_timeout_minutes
                if monitor_timeout_minutes is not None
                else self.config.polling.monitor_timeout_minutes
            ),
            target_api_url=target_api_url,
        )

        tester = BatchPipelineTester(
            self.ado_api,
            self.test_service,
            max_concurrent_tests=max_concurrent_tests or settings.max_concurrent_tests,
        )
        return await tester.test_pipelines(
            template,
            pipeline_filter=pipeline_filter or settings.pipeline_filter,
            report_path=report_path or settings.report_path,
        )
