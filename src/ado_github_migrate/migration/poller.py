"""Polling of remote migrations until they reach a terminal state."""

import asyncio

from loguru import logger

from ..exceptions import ConfigurationError, MigrationFailedError
from ..models.migration import MigrationRecord

REPOSITORY_MIGRATION_PREFIX = 'RM_'
ORGANIZATION_MIGRATION_PREFIX = 'OM_'


def warnings_message(count: int) -> str:
    if count == 1:
        return '1 warning encountered during this migration'
    return f'{count} warnings encountered during this migration'


class MigrationPoller:
    """Waits for repository and organization migrations to finish.

    Failed migrations are never retried here; the failure is raised to the
    caller as :class:`MigrationFailedError`.
    """

    def __init__(self, github_api, wait_interval_seconds: float = 10):
        """Initialize migration poller.

        Args:
            github_api: Object providing ``get_repository_migration`` and
                ``get_organization_migration``
            wait_interval_seconds: Delay between status queries
        """
        self.github_api = github_api
        self.wait_interval_seconds = wait_interval_seconds
        self.logger = logger.bind(component='MigrationPoller')

    async def _wait(self) -> None:
        self.logger.info(f'Waiting {self.wait_interval_seconds} seconds...')
        await asyncio.sleep(self.wait_interval_seconds)

    def _log_warnings(self, record: MigrationRecord) -> None:
        if record.warnings_count > 0:
            self.logger.warning(warnings_message(record.warnings_count))

    async def wait_for_repository_migration(self, migration_id: str) -> MigrationRecord:
        """Poll a repository migration until it succeeds or fails.

        Args:
            migration_id: Repository migration id

        Returns:
            The terminal, successful migration record

        Raises:
            MigrationFailedError: With the remote failure reason as message
        """
        record = await self.github_api.get_repository_migration(migration_id)
        repo = record.target_name

        self.logger.info(f'Waiting for {repo} migration (ID: {migration_id}) to finish...')

        while True:
            phase = record.phase

            if phase.is_succeeded:
                self.logger.success(f'Migration {migration_id} succeeded for {repo}')
                self._log_warnings(record)
                if record.migration_log_url:
                    self.logger.info(
                        f'Migration log available at {record.migration_log_url}'
                    )
                return record

            if phase.is_failed:
                self.logger.error(f'Migration {migration_id} failed for {repo}')
                self._log_warnings(record)
                raise MigrationFailedError(record.failure_reason or '', record=record)

            self.logger.info(f'Migration {migration_id} for {repo} is {record.state}')
            await self._wait()

            record = await self.github_api.get_repository_migration(migration_id)
            repo = record.target_name or repo

    async def wait_for_organization_migration(
        self, migration_id: str
    ) -> MigrationRecord:
        """Poll an organization migration until it succeeds or fails.

        Args:
            migration_id: Organization migration id

        Returns:
            The terminal, successful migration record

        Raises:
            MigrationFailedError: Naming source and target organizations
        """
        record = await self.github_api.get_organization_migration(migration_id)

        self.logger.info(
            f'Waiting for {record.source_url} -> {record.target_name} migration '
            f'(ID: {migration_id}) to finish...'
        )

        while True:
            phase = record.phase

            if phase.is_succeeded:
                self.logger.success(f'Migration {migration_id} succeeded')
                return record

            if phase.is_failed:
                message = (
                    f'Migration {migration_id} failed for {record.source_url} -> '
                    f'{record.target_name}. Failure reason: {record.failure_reason}'
                )
                self.logger.error(message)
                raise MigrationFailedError(message, record=record)

            if record.is_repo_migration_stage:
                self.logger.info(
                    f'Migration {migration_id} is {record.state} - '
                    f'{record.completed_repositories_count}/'
                    f'{record.total_repositories_count} repositories completed'
                )
            else:
                self.logger.info(f'Migration {migration_id} is {record.state}')
            await self._wait()

            record = await self.github_api.get_organization_migration(migration_id)

    async def wait_for_migration(self, migration_id: str) -> MigrationRecord:
        """Poll a migration of either kind, chosen by its id prefix."""
        if migration_id.startswith(REPOSITORY_MIGRATION_PREFIX):
            return await self.wait_for_repository_migration(migration_id)
        if migration_id.startswith(ORGANIZATION_MIGRATION_PREFIX):
            return await self.wait_for_organization_migration(migration_id)
        raise ConfigurationError(f'Invalid migration id: {migration_id}')
