"""Capture, rewire and restore of a pipeline's source-control binding."""

import copy
from typing import Any, Dict, Optional, Tuple
from urllib.parse import quote, urlparse

from loguru import logger

from ..api.exceptions import NotFoundError
from ..models.pipeline import PipelineBinding

# settingsSourceType values of a build definition
SETTINGS_SOURCE_UI = 1
SETTINGS_SOURCE_YAML = 2

ADO_REPOSITORY_PROPERTIES = {
    'cleanOptions': '0',
    'labelSources': '0',
    'labelSourcesFormat': '$(build.buildNumber)',
    'reportBuildStatus': 'true',
    'gitLfsSupport': 'false',
    'skipSyncSource': 'false',
    'checkoutNestedSubmodules': 'false',
    'fetchDepth': '0',
}


def github_urls(
    github_org: str, github_repo: str, target_api_url: Optional[str] = None
) -> Dict[str, str]:
    """Build the API and web URLs of a GitHub repository.

    Args:
        github_org: GitHub organization
        github_repo: GitHub repository
        target_api_url: API root of a non-github.com target

    Returns:
        Mapping with ``api``, ``web``, ``clone``, ``branches`` and ``refs`` URLs
    """
    org = quote(github_org, safe='')
    repo = quote(github_repo, safe='')

    if target_api_url:
        api_base = target_api_url.rstrip('/')
        parsed = urlparse(api_base)
        host = parsed.netloc
        if host.startswith('api.'):
            host = host[4:]
        web_base = f'{parsed.scheme}://{host}'
    else:
        api_base = 'https://api.github.com'
        web_base = 'https://github.com'

    api = f'{api_base}/repos/{org}/{repo}'
    web = f'{web_base}/{org}/{repo}'
    return {
        'api': api,
        'web': web,
        'clone': f'{web}.git',
        'branches': f'{api}/branches',
        'refs': f'{api}/git/refs',
    }


class PipelineRewirer:
    """Points pipelines at GitHub repositories and back again.

    None of the operations retry internally.
    """

    def __init__(self, ado_api):
        """Initialize pipeline rewirer.

        Args:
            ado_api: :class:`~ado_github_migrate.api.ado.AdoApi` instance
        """
        self.ado_api = ado_api
        self.logger = logger.bind(component='PipelineRewirer')

    async def capture_binding(
        self, org: str, project: str, pipeline_id: int
    ) -> PipelineBinding:
        """Read the current binding of a pipeline without changing it."""
        binding, _ = await self.ado_api.get_pipeline_binding(org, project, pipeline_id)
        self.logger.debug(
            f'Captured binding of pipeline {pipeline_id}: repository '
            f'{binding.repo_name}, branch {binding.branch_name}'
        )
        return binding

    @staticmethod
    def _github_repository(
        binding: PipelineBinding,
        github_org: str,
        github_repo: str,
        service_connection_id: str,
        target_api_url: Optional[str],
    ) -> Dict[str, Any]:
        urls = github_urls(github_org, github_repo, target_api_url)
        full_name = f'{github_org}/{github_repo}'
        return {
            'properties': {
                'apiUrl': urls['api'],
                'branchesUrl': urls['branches'],
                'cloneUrl': urls['clone'],
                'connectedServiceId': service_connection_id,
                'defaultBranch': binding.branch_name,
                'fullName': full_name,
                'manageUrl': urls['web'],
                'orgName': github_org,
                'refsUrl': urls['refs'],
                'safeRepository': (
                    f'{quote(github_org, safe="")}/{quote(github_repo, safe="")}'
                ),
                'shortName': github_repo,
                'reportBuildStatus': 'true',
            },
            'id': full_name,
            'type': 'GitHub',
            'name': full_name,
            'url': urls['clone'],
            'defaultBranch': binding.branch_name,
            'clean': binding.clean,
            'checkoutSubmodules': binding.checkout_submodules,
        }

    @staticmethod
    def _apply(
        definition: Dict[str, Any],
        repository: Dict[str, Any],
        triggers: Optional[Any],
        settings_source_type: int,
    ) -> Dict[str, Any]:
        payload = dict(definition)
        payload['repository'] = repository
        # An absent trigger configuration stays absent
        if triggers is not None or 'triggers' in payload:
            payload['triggers'] = copy.deepcopy(triggers)
        payload['settingsSourceType'] = settings_source_type
        return payload

    async def rewire(
        self,
        org: str,
        project: str,
        pipeline_id: int,
        binding: PipelineBinding,
        github_org: str,
        github_repo: str,
        service_connection_id: str,
        target_api_url: Optional[str] = None,
    ) -> bool:
        """Point a pipeline at a GitHub repository.

        Branch, clean and submodule flags and the triggers are taken from
        ``binding`` unchanged.

        Returns:
            False if the pipeline no longer exists, True once rewired
        """
        try:
            definition = await self.ado_api.get_pipeline_definition(
                org, project, pipeline_id
            )
        except NotFoundError:
            self.logger.warning(
                f'Pipeline {pipeline_id} not found in {org}/{project}. '
                'Skipping pipeline rewiring.'
            )
            return False

        repository = self._github_repository(
            binding, github_org, github_repo, service_connection_id, target_api_url
        )
        payload = self._apply(
            definition, repository, binding.triggers, SETTINGS_SOURCE_YAML
        )
        await self.ado_api.update_pipeline_definition(org, project, pipeline_id, payload)

        self.logger.info(
            f'Pipeline {pipeline_id} now builds from {github_org}/{github_repo}'
        )
        return True

    async def _ado_repository(
        self, org: str, project: str, binding: PipelineBinding
    ) -> Tuple[Dict[str, Any], str]:
        if binding.repository:
            repository = copy.deepcopy(binding.repository)
            return repository, repository.get('name') or binding.repo_name

        repo_name = binding.repo_name
        repo_id = binding.repo_id or await self.ado_api.get_repo_id(
            org, project, repo_name
        )
        repository = {
            'id': repo_id,
            'type': 'TfsGit',
            'name': repo_name,
            'url': self.ado_api.repository_url(org, project, repo_name),
            'defaultBranch': binding.default_branch,
            'clean': binding.clean,
            'checkoutSubmodules': binding.checkout_submodules,
            'properties': dict(ADO_REPOSITORY_PROPERTIES),
        }
        return repository, repo_name

    async def restore(
        self, org: str, project: str, pipeline_id: int, binding: PipelineBinding
    ) -> None:
        """Re-apply a captured binding, triggers included."""
        definition = await self.ado_api.get_pipeline_definition(
            org, project, pipeline_id
        )
        repository, repo_name = await self._ado_repository(org, project, binding)

        payload = self._apply(
            definition, repository, binding.triggers, SETTINGS_SOURCE_UI
        )
        await self.ado_api.update_pipeline_definition(org, project, pipeline_id, payload)

        self.logger.info(f'Pipeline {pipeline_id} restored to repository {repo_name}')
