"""Tests for Azure DevOps pipeline and repository operations."""

import pytest
from unittest.mock import AsyncMock, Mock

from ado_github_migrate.api.ado import AdoApi, InventoryCache, normalize_pipeline_path
from ado_github_migrate.api.client import APIResponse
from ado_github_migrate.api.exceptions import NotFoundError
from ado_github_migrate.exceptions import PipelineLookupError


def _response(data):
    return APIResponse(status_code=200, data=data, headers={}, success=True)


DEFINITIONS = [
    {'id': 1, 'name': 'CI', 'path': '\\'},
    {'id': 2, 'name': 'Deploy', 'path': '\\Release'},
    {'id': 3, 'name': 'Deploy', 'path': '\\Release\\'},
    {'id': 4, 'name': 'Nightly', 'path': '\\Ops\\Scheduled'},
]


class TestNormalizePipelinePath:
    """Test pipeline path normalization."""

    def test_normalize(self):
        assert normalize_pipeline_path('\\', 'CI') == '\\CI'
        assert normalize_pipeline_path('\\Release\\', 'Deploy') == '\\Release\\Deploy'
        assert normalize_pipeline_path('Release\\\\Deploy') == '\\Release\\Deploy'


class TestAdoApi:
    """Test Azure DevOps API operations."""

    def setup_method(self):
        """Set up test fixtures."""
        self.client = Mock()
        self.client.base_url = 'https://dev.azure.com'
        self.client.get_async = AsyncMock()
        self.client.put_async = AsyncMock()
        self.client.post_async = AsyncMock()
        self.client.get_with_paging = AsyncMock()
        self.cache = InventoryCache()
        self.api = AdoApi(self.client, self.cache)

    def test_urls(self):
        assert (
            self.api.pipeline_url('my org', 'proj', 7)
            == 'https://dev.azure.com/my%20org/proj/_build/definition?definitionId=7'
        )
        assert (
            self.api.repository_url('org', 'proj', 'app')
            == 'https://dev.azure.com/org/proj/_git/app'
        )

    @pytest.mark.asyncio
    async def test_get_pipeline_id_by_path_is_cached(self):
        self.client.get_with_paging.return_value = DEFINITIONS

        first = await self.api.get_pipeline_id('org', 'proj', '\\Ops\\Scheduled\\Nightly')
        second = await self.api.get_pipeline_id('ORG', 'PROJ', 'ops\\scheduled\\nightly')

        assert first == second == 4
        assert self.client.get_with_paging.await_count == 1

    @pytest.mark.asyncio
    async def test_get_pipeline_id_duplicate_path(self, log_records):
        self.client.get_with_paging.return_value = DEFINITIONS

        pipeline_id = await self.api.get_pipeline_id('org', 'proj', '\\Release\\Deploy')

        assert pipeline_id == 2
        assert any(
            level == 'WARNING' and 'Ignoring pipeline ID 3' in message
            for level, message in log_records
        )

    @pytest.mark.asyncio
    async def test_get_pipeline_id_unique_name_fallback(self):
        self.client.get_with_paging.return_value = DEFINITIONS

        assert await self.api.get_pipeline_id('org', 'proj', 'nightly') == 4

    @pytest.mark.asyncio
    async def test_get_pipeline_id_ambiguous_name(self):
        self.client.get_with_paging.return_value = [
            {'id': 2, 'name': 'Deploy', 'path': '\\Release'},
            {'id': 5, 'name': 'Deploy', 'path': '\\Staging'},
        ]

        with pytest.raises(PipelineLookupError, match='Deploy'):
            await self.api.get_pipeline_id('org', 'proj', 'Deploy')

    @pytest.mark.asyncio
    async def test_get_pipelines_formats_names(self):
        self.client.get_with_paging.return_value = DEFINITIONS[:2]

        names = await self.api.get_pipelines('org', 'proj', 'repo-1')

        assert names == ['\\CI', '\\Release\\Deploy']

    @pytest.mark.asyncio
    async def test_get_enabled_repos(self):
        self.client.get_with_paging.return_value = [
            {'id': 'r1', 'name': 'app', 'isDisabled': False},
            {'id': 'r2', 'name': 'old', 'isDisabled': True},
        ]

        repos = await self.api.get_enabled_repos('org', 'proj')

        assert [r.name for r in repos] == ['app']

    @pytest.mark.asyncio
    async def test_get_repo_id_direct(self):
        self.client.get_async.return_value = _response({'id': 'r1', 'name': 'app'})

        assert await self.api.get_repo_id('org', 'proj', 'app') == 'r1'
        self.client.get_with_paging.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_get_repo_id_disabled_repository_fallback(self):
        self.client.get_async.side_effect = NotFoundError('missing', status_code=404)
        self.client.get_with_paging.return_value = [
            {'id': 'r2', 'name': 'Old', 'isDisabled': True}
        ]

        assert await self.api.get_repo_id('org', 'proj', 'old') == 'r2'

    @pytest.mark.asyncio
    async def test_get_repo_id_not_found(self):
        self.client.get_async.side_effect = NotFoundError('missing', status_code=404)
        self.client.get_with_paging.return_value = []

        with pytest.raises(NotFoundError):
            await self.api.get_repo_id('org', 'proj', 'ghost')

    @pytest.mark.asyncio
    async def test_get_pipeline_binding(self):
        triggers = [{'triggerType': 'continuousIntegration', 'branchFilters': ['+main']}]
        self.client.get_async.return_value = _response(
            {
                'id': 7,
                'repository': {
                    'id': 'r1',
                    'name': 'app',
                    'type': 'TfsGit',
                    'defaultBranch': 'refs/heads/main',
                    'clean': True,
                    'checkoutSubmodules': 'False',
                },
                'triggers': triggers,
            }
        )

        binding, definition = await self.api.get_pipeline_binding('org', 'proj', 7)

        assert binding.repo_name == 'app'
        assert binding.repo_id == 'r1'
        assert binding.branch_name == 'main'
        assert binding.branch_ref == 'refs/heads/main'
        assert binding.clean == 'true'
        assert binding.checkout_submodules == 'false'
        assert binding.triggers == triggers
        assert binding.triggers is not definition['triggers']
        assert binding.repository['type'] == 'TfsGit'

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        'queue_status, enabled',
        [('enabled', True), (None, True), ('disabled', False), ('paused', True)],
    )
    async def test_is_pipeline_enabled(self, queue_status, enabled):
        self.client.get_async.return_value = _response({'queueStatus': queue_status})

        assert await self.api.is_pipeline_enabled('org', 'proj', 7) is enabled

    @pytest.mark.asyncio
    async def test_queue_build(self):
        self.client.post_async.return_value = _response({'id': 101})

        build_id = await self.api.queue_build('org', 'proj', 7, 'refs/heads/main')

        assert build_id == 101
        payload = self.client.post_async.call_args.kwargs['data']
        assert payload == {
            'definition': {'id': 7},
            'sourceBranch': 'refs/heads/main',
            'reason': 'manual',
        }

    @pytest.mark.asyncio
    async def test_get_build_status(self):
        self.client.get_async.return_value = _response(
            {
                'status': 'completed',
                'result': 'succeeded',
                '_links': {'web': {'href': 'https://dev.azure.com/org/proj/_build/results?buildId=101'}},
            }
        )

        status, result, url = await self.api.get_build_status('org', 'proj', 101)

        assert status == 'completed'
        assert result == 'succeeded'
        assert url.endswith('buildId=101')
