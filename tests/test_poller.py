"""Tests for the migration poller."""

import pytest
from unittest.mock import AsyncMock, Mock, patch

from ado_github_migrate.exceptions import ConfigurationError, MigrationFailedError
from ado_github_migrate.migration.poller import MigrationPoller, warnings_message
from ado_github_migrate.models.migration import MigrationKind, MigrationRecord


def _repo_record(state, **kwargs):
    return MigrationRecord(
        id='RM_123',
        kind=MigrationKind.REPOSITORY,
        state=state,
        target_name='app',
        **kwargs,
    )


def _org_record(state, **kwargs):
    return MigrationRecord(
        id='OM_456',
        kind=MigrationKind.ORGANIZATION,
        state=state,
        source_url='https://github.com/source',
        target_name='target',
        **kwargs,
    )


class TestRepositoryPolling:
    """Test repository migration polling."""

    def setup_method(self):
        """Set up test fixtures."""
        self.github_api = Mock()
        self.github_api.get_repository_migration = AsyncMock()
        self.poller = MigrationPoller(self.github_api, wait_interval_seconds=0)

    @pytest.mark.asyncio
    async def test_polls_until_succeeded(self, log_records):
        self.github_api.get_repository_migration.side_effect = [
            _repo_record('QUEUED'),
            _repo_record('IN_PROGRESS'),
            _repo_record('SUCCEEDED', migration_log_url='https://logs/app'),
        ]

        record = await self.poller.wait_for_migration('RM_123')

        assert record.state == 'SUCCEEDED'
        assert self.github_api.get_repository_migration.await_count == 3
        messages = [m for _, m in log_records]
        assert 'Waiting for app migration (ID: RM_123) to finish...' in messages
        assert 'Migration RM_123 for app is QUEUED' in messages
        assert 'Migration RM_123 for app is IN_PROGRESS' in messages
        assert ('SUCCESS', 'Migration RM_123 succeeded for app') in log_records
        assert 'Migration log available at https://logs/app' in messages

    @pytest.mark.asyncio
    async def test_sleeps_between_polls(self):
        poller = MigrationPoller(self.github_api, wait_interval_seconds=10)
        self.github_api.get_repository_migration.side_effect = [
            _repo_record('QUEUED'),
            _repo_record('SUCCEEDED'),
        ]

        with patch('asyncio.sleep', new_callable=AsyncMock) as mock_sleep:
            await poller.wait_for_repository_migration('RM_123')

        mock_sleep.assert_awaited_once_with(10)

    @pytest.mark.asyncio
    async def test_failure_reason_is_error_message(self, log_records):
        self.github_api.get_repository_migration.side_effect = [
            _repo_record('IN_PROGRESS'),
            _repo_record(
                'FAILED', failure_reason='Repository too large', warnings_count=2
            ),
        ]

        with pytest.raises(MigrationFailedError) as exc_info:
            await self.poller.wait_for_repository_migration('RM_123')

        assert str(exc_info.value) == 'Repository too large'
        assert exc_info.value.record.state == 'FAILED'
        assert ('ERROR', 'Migration RM_123 failed for app') in log_records
        assert (
            'WARNING',
            '2 warnings encountered during this migration',
        ) in log_records

    @pytest.mark.asyncio
    async def test_failed_validation_is_terminal(self):
        self.github_api.get_repository_migration.return_value = _repo_record(
            'FAILED_VALIDATION', failure_reason='Invalid source'
        )

        with pytest.raises(MigrationFailedError, match='Invalid source'):
            await self.poller.wait_for_repository_migration('RM_123')

        assert self.github_api.get_repository_migration.await_count == 1

    @pytest.mark.asyncio
    async def test_no_warnings_line_without_warnings(self, log_records):
        self.github_api.get_repository_migration.return_value = _repo_record(
            'SUCCEEDED'
        )

        await self.poller.wait_for_repository_migration('RM_123')

        assert not any('warning' in m for _, m in log_records)

    def test_warnings_message(self):
        assert warnings_message(1) == '1 warning encountered during this migration'
        assert warnings_message(3) == '3 warnings encountered during this migration'


class TestOrganizationPolling:
    """Test organization migration polling."""

    def setup_method(self):
        """Set up test fixtures."""
        self.github_api = Mock()
        self.github_api.get_organization_migration = AsyncMock()
        self.poller = MigrationPoller(self.github_api, wait_interval_seconds=0)

    @pytest.mark.asyncio
    async def test_reports_repository_progress(self, log_records):
        self.github_api.get_organization_migration.side_effect = [
            _org_record('QUEUED'),
            _org_record(
                'REPO_MIGRATION',
                remaining_repositories_count=4,
                total_repositories_count=10,
            ),
            _org_record('SUCCEEDED'),
        ]

        record = await self.poller.wait_for_migration('OM_456')

        assert record.state == 'SUCCEEDED'
        messages = [m for _, m in log_records]
        assert (
            'Waiting for https://github.com/source -> target migration '
            '(ID: OM_456) to finish...'
        ) in messages
        assert (
            'Migration OM_456 is REPO_MIGRATION - 6/10 repositories completed'
        ) in messages
        assert ('SUCCESS', 'Migration OM_456 succeeded') in log_records

    @pytest.mark.asyncio
    async def test_failure_names_source_and_target(self):
        self.github_api.get_organization_migration.return_value = _org_record(
            'FAILED', failure_reason='Enterprise not eligible'
        )

        with pytest.raises(MigrationFailedError) as exc_info:
            await self.poller.wait_for_organization_migration('OM_456')

        assert str(exc_info.value) == (
            'Migration OM_456 failed for https://github.com/source -> target. '
            'Failure reason: Enterprise not eligible'
        )


class TestDispatch:
    """Test migration id prefix dispatch."""

    @pytest.mark.asyncio
    async def test_invalid_migration_id(self):
        poller = MigrationPoller(Mock(), wait_interval_seconds=0)

        with pytest.raises(ConfigurationError, match='Invalid migration id: XX_1'):
            await poller.wait_for_migration('XX_1')
