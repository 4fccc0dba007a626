"""Tests for CLI interface."""

import pytest
from unittest.mock import AsyncMock, Mock, patch
from click.testing import CliRunner
import tempfile
import os

from ado_github_migrate.cli.main import cli, init
from ado_github_migrate.config.config import Config
from ado_github_migrate.exceptions import MigrationFailedError
from ado_github_migrate.models.pipeline import PipelineTestResult, PipelineTestSummary


@pytest.fixture(autouse=True)
def no_logging_setup():
    """Keep loguru handlers away from CliRunner's temporary streams."""
    with patch('ado_github_migrate.cli.main.setup_logging'):
        yield


def _config():
    return Config(ado={'pat': 'ado-pat'}, github={'token': 'gh-token'})


class TestCLI:
    """Test CLI commands."""

    def setup_method(self):
        """Set up test fixtures."""
        self.runner = CliRunner()

    def test_cli_help(self):
        result = self.runner.invoke(cli, ['--help'])

        assert result.exit_code == 0
        assert 'ADO to GitHub Migration Tool' in result.output
        for command in (
            'init',
            'validate',
            'wait-for-migration',
            'migrate-repo',
            'migrate-org',
            'download-logs',
            'rewire-pipeline',
            'test-pipelines',
        ):
            assert command in result.output

    def test_cli_version(self):
        result = self.runner.invoke(cli, ['--version'])

        assert result.exit_code == 0
        assert '0.1.0' in result.output

    def test_init_command(self):
        """Test init command."""
        with tempfile.TemporaryDirectory() as temp_dir:
            config_path = os.path.join(temp_dir, 'test_config.yaml')

            result = self.runner.invoke(init, ['--output', config_path])

            assert result.exit_code == 0
            assert 'Configuration template created' in result.output
            assert os.path.exists(config_path)

            with open(config_path, 'r') as f:
                content = f.read()
                assert 'ado:' in content
                assert 'github:' in content
                assert 'pipeline_test:' in content

    @patch('ado_github_migrate.cli.main._load_config')
    def test_validate_command_success(self, mock_load_config):
        mock_load_config.return_value = _config()
        mock_engine = Mock()

        with patch(
            'ado_github_migrate.cli.main.MigrationEngine', return_value=mock_engine
        ):
            result = self.runner.invoke(cli, ['validate'])

        assert result.exit_code == 0
        assert 'Connectivity validation passed' in result.output
        mock_engine.test_connectivity.assert_called_once_with(ado=True, github=True)
        mock_engine.close.assert_called_once()

    @patch('ado_github_migrate.cli.main._load_config')
    def test_validate_command_connection_failure(self, mock_load_config):
        mock_load_config.return_value = _config()
        mock_engine = Mock()
        mock_engine.test_connectivity.side_effect = ConnectionError(
            'Cannot connect to GitHub'
        )

        with patch(
            'ado_github_migrate.cli.main.MigrationEngine', return_value=mock_engine
        ):
            result = self.runner.invoke(cli, ['validate'])

        assert result.exit_code == 1
        assert 'Validation failed' in result.output

    @patch('ado_github_migrate.cli.main._load_config')
    def test_wait_for_migration_command(self, mock_load_config):
        mock_load_config.return_value = _config()
        mock_engine = Mock()
        mock_engine.wait_for_migration = AsyncMock()

        with patch(
            'ado_github_migrate.cli.main.MigrationEngine', return_value=mock_engine
        ):
            result = self.runner.invoke(
                cli, ['wait-for-migration', '--migration-id', 'RM_123']
            )

        assert result.exit_code == 0
        mock_engine.wait_for_migration.assert_awaited_once_with('RM_123')

    @patch('ado_github_migrate.cli.main._load_config')
    def test_failed_migration_exits_non_zero(self, mock_load_config):
        mock_load_config.return_value = _config()
        mock_engine = Mock()
        mock_engine.wait_for_migration = AsyncMock(
            side_effect=MigrationFailedError('Repository too large')
        )

        with patch(
            'ado_github_migrate.cli.main.MigrationEngine', return_value=mock_engine
        ):
            result = self.runner.invoke(
                cli, ['wait-for-migration', '--migration-id', 'RM_123']
            )

        assert result.exit_code == 1
        assert 'Repository too large' in result.output

    @patch('ado_github_migrate.cli.main._load_config')
    def test_migrate_repo_command(self, mock_load_config):
        mock_load_config.return_value = _config()
        mock_engine = Mock()
        mock_engine.migrate_repository = AsyncMock(return_value='RM_1')

        with patch(
            'ado_github_migrate.cli.main.MigrationEngine', return_value=mock_engine
        ):
            result = self.runner.invoke(
                cli,
                [
                    'migrate-repo',
                    '--ado-org', 'org',
                    '--ado-team-project', 'proj',
                    '--ado-repo', 'app',
                    '--github-org', 'octo',
                    '--github-repo', 'app',
                    '--queue-only',
                    '--target-repo-visibility', 'internal',
                ],
            )

        assert result.exit_code == 0
        mock_engine.migrate_repository.assert_awaited_once_with(
            'org',
            'proj',
            'app',
            'octo',
            'app',
            queue_only=True,
            target_repo_visibility='internal',
        )

    def test_migrate_repo_requires_options(self):
        result = self.runner.invoke(cli, ['migrate-repo', '--ado-org', 'org'])

        assert result.exit_code == 2
        assert 'Missing option' in result.output

    @patch('ado_github_migrate.cli.main._load_config')
    def test_rewire_pipeline_dry_run(self, mock_load_config):
        mock_load_config.return_value = _config()
        mock_engine = Mock()
        mock_engine.rewire_pipeline = AsyncMock()

        with patch(
            'ado_github_migrate.cli.main.MigrationEngine', return_value=mock_engine
        ):
            result = self.runner.invoke(
                cli,
                [
                    'rewire-pipeline',
                    '--ado-org', 'org',
                    '--ado-team-project', 'proj',
                    '--ado-pipeline-id', '7',
                    '--github-org', 'octo',
                    '--github-repo', 'app',
                    '--service-connection-id', 'sc-1',
                    '--dry-run',
                    '--monitor-timeout-minutes', '5',
                ],
            )

        assert result.exit_code == 0
        assert 'dry-run mode' in result.output
        kwargs = mock_engine.rewire_pipeline.call_args.kwargs
        assert kwargs['pipeline_id'] == 7
        assert kwargs['pipeline_name'] is None
        assert kwargs['dry_run'] is True
        assert kwargs['monitor_timeout_minutes'] == 5.0

    @patch('ado_github_migrate.cli.main._load_config')
    def test_test_pipelines_renders_summary(self, mock_load_config):
        mock_load_config.return_value = _config()
        summary = PipelineTestSummary()
        summary.add_result(
            PipelineTestResult(
                ado_org='org',
                ado_team_project='proj',
                pipeline_name='CI',
                pipeline_id=1,
                pipeline_url='https://ado/1',
                rewired_successfully=True,
                restored_successfully=False,
                result='succeeded',
            )
        )
        summary.recalculate()
        mock_engine = Mock()
        mock_engine.test_pipelines = AsyncMock(return_value=summary)

        with patch(
            'ado_github_migrate.cli.main.MigrationEngine', return_value=mock_engine
        ):
            result = self.runner.invoke(
                cli,
                [
                    'test-pipelines',
                    '--ado-org', 'org',
                    '--ado-team-project', 'proj',
                    '--github-org', 'octo',
                    '--github-repo', 'app',
                    '--service-connection-id', 'sc-1',
                    '--pipeline-filter', 'CI*',
                    '--max-concurrent-tests', '2',
                ],
            )

        assert result.exit_code == 0
        assert 'Pipeline Test Summary' in result.output
        assert 'manual restoration' in result.output
        kwargs = mock_engine.test_pipelines.call_args.kwargs
        assert kwargs['pipeline_filter'] == 'CI*'
        assert kwargs['max_concurrent_tests'] == 2

    def test_max_concurrent_tests_must_be_positive(self):
        result = self.runner.invoke(
            cli,
            [
                'test-pipelines',
                '--ado-org', 'org',
                '--ado-team-project', 'proj',
                '--github-org', 'octo',
                '--github-repo', 'app',
                '--service-connection-id', 'sc-1',
                '--max-concurrent-tests', '0',
            ],
        )

        assert result.exit_code == 2


class TestConfigLoading:
    """Test configuration discovery."""

    def setup_method(self):
        """Set up test fixtures."""
        self.runner = CliRunner()

    def test_explicit_config_file(self, tmp_path):
        config_path = tmp_path / 'custom.yaml'
        _config().to_file(str(config_path))
        mock_engine = Mock()

        with patch(
            'ado_github_migrate.cli.main.MigrationEngine', return_value=mock_engine
        ) as mock_engine_class:
            result = self.runner.invoke(cli, ['--config', str(config_path), 'validate'])

        assert result.exit_code == 0
        loaded = mock_engine_class.call_args.args[0]
        assert loaded.github.token == 'gh-token'

    def test_missing_config_file(self):
        result = self.runner.invoke(cli, ['--config', '/nonexistent.yaml', 'validate'])

        assert result.exit_code == 2
