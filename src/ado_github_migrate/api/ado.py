"""Azure DevOps build definition, build and repository operations."""

import copy
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

from loguru import logger

from ..exceptions import PipelineLookupError
from ..models.pipeline import AdoRepository, PipelineBinding
from .client import AdoClient
from .exceptions import NotFoundError

API_VERSION = '6.0'


def _escape(value: str) -> str:
    return quote(value, safe='')


def _flag(value: Any) -> Optional[str]:
    """Definition flags arrive as strings or booleans; store them lowercased."""
    if value is None:
        return None
    return str(value).lower()


def normalize_pipeline_path(pipeline: str, name: Optional[str] = None) -> str:
    """Normalize a ``\\folder\\name`` pipeline path.

    Args:
        pipeline: Folder path, or full path when ``name`` is omitted
        name: Pipeline name to append to the folder path

    Returns:
        Path with a single leading backslash and no empty segments
    """
    parts = [p for p in pipeline.split('\\') if p]
    if name is not None:
        parts.append(name)
    return '\\' + '\\'.join(parts)


class InventoryCache:
    """Id lookups memoized for one command invocation.

    Keys are upper-cased so lookups are case-insensitive.
    """

    def __init__(self):
        self.pipeline_ids: Dict[Tuple[str, str], Dict[str, int]] = {}
        self.repo_ids: Dict[Tuple[str, str], Dict[str, str]] = {}

    @staticmethod
    def scope(org: str, project: str) -> Tuple[str, str]:
        return org.upper(), project.upper()

    def clear(self) -> None:
        self.pipeline_ids.clear()
        self.repo_ids.clear()


class AdoApi:
    """Pipeline and repository operations against Azure DevOps."""

    def __init__(self, client: AdoClient, cache: Optional[InventoryCache] = None):
        """Initialize Azure DevOps API.

        Args:
            client: Authenticated Azure DevOps client
            cache: Invocation-scoped id cache (a fresh one if omitted)
        """
        self.client = client
        self.base_url = client.base_url
        self.cache = cache if cache is not None else InventoryCache()
        self.logger = logger.bind(component='AdoApi')

    def _project_url(self, org: str, project: str) -> str:
        return f'{self.base_url}/{_escape(org)}/{_escape(project)}'

    def _definition_url(self, org: str, project: str, pipeline_id: int) -> str:
        return (
            f'{self._project_url(org, project)}/_apis/build/definitions/'
            f'{pipeline_id}?api-version={API_VERSION}'
        )

    def pipeline_url(self, org: str, project: str, pipeline_id: Optional[int]) -> str:
        """Web URL of a pipeline definition."""
        return (
            f'{self._project_url(org, project)}/_build/definition'
            f'?definitionId={pipeline_id}'
        )

    def repository_url(self, org: str, project: str, repo_name: str) -> str:
        return f'{self._project_url(org, project)}/_git/{_escape(repo_name)}'

    async def get_pipeline_definition(
        self, org: str, project: str, pipeline_id: int
    ) -> Dict[str, Any]:
        """Fetch the full build definition document."""
        response = await self.client.get_async(
            self._definition_url(org, project, pipeline_id)
        )
        return response.data or {}

    async def update_pipeline_definition(
        self, org: str, project: str, pipeline_id: int, definition: Dict[str, Any]
    ) -> None:
        """Replace a build definition document."""
        await self.client.put_async(
            self._definition_url(org, project, pipeline_id), data=definition
        )

    async def get_pipeline_binding(
        self, org: str, project: str, pipeline_id: int
    ) -> Tuple[PipelineBinding, Dict[str, Any]]:
        """Capture the repository binding and triggers of a pipeline.

        Returns:
            The binding and the definition document it was read from
        """
        definition = await self.get_pipeline_definition(org, project, pipeline_id)
        repository = definition.get('repository') or {}

        binding = PipelineBinding(
            pipeline_id=pipeline_id,
            repo_name=repository.get('name'),
            repo_id=repository.get('id'),
            default_branch=repository.get('defaultBranch'),
            clean=_flag(repository.get('clean')),
            checkout_submodules=_flag(repository.get('checkoutSubmodules')),
            triggers=copy.deepcopy(definition.get('triggers')),
            repository=copy.deepcopy(repository) if repository else None,
        )
        return binding, definition

    async def is_pipeline_enabled(
        self, org: str, project: str, pipeline_id: int
    ) -> bool:
        """Check the definition's queue status."""
        definition = await self.get_pipeline_definition(org, project, pipeline_id)
        queue_status = str(definition.get('queueStatus') or 'enabled')
        return queue_status.lower() not in ('disabled', '2')

    async def get_repos(self, org: str, project: str) -> List[AdoRepository]:
        url = (
            f'{self._project_url(org, project)}/_apis/git/repositories'
            '?api-version=6.1-preview.1'
        )
        items = await self.client.get_with_paging(url)
        return [
            AdoRepository(
                id=item['id'],
                name=item['name'],
                is_disabled=str(item.get('isDisabled', False)).lower() == 'true',
            )
            for item in items
        ]

    async def get_enabled_repos(self, org: str, project: str) -> List[AdoRepository]:
        """Repositories of a project that are not disabled."""
        return [r for r in await self.get_repos(org, project) if not r.is_disabled]

    async def get_pipelines(self, org: str, project: str, repo_id: str) -> List[str]:
        """Names of the pipelines building a repository, as ``folder\\name``."""
        url = (
            f'{self._project_url(org, project)}/_apis/build/definitions'
            f'?repositoryId={_escape(repo_id)}&repositoryType=TfsGit'
            '&queryOrder=lastModifiedDescending'
        )
        items = await self.client.get_with_paging(url)

        names = []
        for item in items:
            path = item.get('path') or ''
            path = '' if path == '\\' else path
            names.append(f'{path}\\{item["name"]}')
        return names

    async def _populate_pipeline_ids(
        self, org: str, project: str
    ) -> List[Dict[str, Any]]:
        url = (
            f'{self._project_url(org, project)}/_apis/build/definitions'
            '?queryOrder=definitionNameAscending'
        )
        items = await self.client.get_with_paging(url)

        ids = self.cache.pipeline_ids.setdefault(self.cache.scope(org, project), {})
        for item in items:
            path = normalize_pipeline_path(item.get('path') or '', item['name'])
            key = path.upper()
            if key in ids:
                self.logger.warning(
                    f'Multiple pipelines with the same path/name were found '
                    f'[org: {org} project: {project} pipeline: {path}]. '
                    f'Ignoring pipeline ID {item["id"]}'
                )
                continue
            ids[key] = int(item['id'])
        return items

    async def get_pipeline_id(self, org: str, project: str, pipeline: str) -> int:
        """Resolve a pipeline path or name to its definition id.

        Args:
            org: Azure DevOps organization
            project: Team project
            pipeline: ``\\folder\\name`` path, or a name unique in the project

        Returns:
            Pipeline definition id

        Raises:
            PipelineLookupError: If the pipeline does not resolve
        """
        key = normalize_pipeline_path(pipeline).upper()
        scope = self.cache.scope(org, project)

        cached = self.cache.pipeline_ids.get(scope, {})
        if key in cached:
            return cached[key]

        items = await self._populate_pipeline_ids(org, project)
        ids = self.cache.pipeline_ids[scope]
        if key in ids:
            return ids[key]

        matches = [i for i in items if i['name'].upper() == pipeline.strip().upper()]
        if len(matches) == 1:
            return int(matches[0]['id'])

        raise PipelineLookupError(
            f'Unable to find the specified pipeline: {pipeline}', pipeline=pipeline
        )

    async def _populate_repo_ids(self, org: str, project: str) -> Dict[str, str]:
        scope = self.cache.scope(org, project)
        if scope in self.cache.repo_ids:
            return self.cache.repo_ids[scope]

        ids: Dict[str, str] = {}
        for repo in await self.get_repos(org, project):
            if repo.name.upper() in ids:
                self.logger.warning(
                    f'Multiple repos with the same name were found '
                    f'[org: {org} project: {project} repo: {repo.name}]. '
                    f'Ignoring repo ID {repo.id}'
                )
                continue
            ids[repo.name.upper()] = repo.id

        self.cache.repo_ids[scope] = ids
        return ids

    async def get_repo_id(self, org: str, project: str, repo: str) -> str:
        """Resolve a repository name to its id.

        Disabled repositories 404 on the direct lookup, so the project
        listing is used as a fallback.
        """
        scope = self.cache.scope(org, project)
        if scope not in self.cache.repo_ids:
            url = (
                f'{self._project_url(org, project)}/_apis/git/repositories/'
                f'{_escape(repo)}?api-version=4.1'
            )
            try:
                response = await self.client.get_async(url)
                return response.data['id']
            except NotFoundError:
                self.logger.debug(f'Repository {repo} not found directly, listing')

        ids = await self._populate_repo_ids(org, project)
        try:
            return ids[repo.upper()]
        except KeyError:
            raise NotFoundError(
                f'Repository {repo} not found in {org}/{project}'
            ) from None

    async def queue_build(
        self, org: str, project: str, pipeline_id: int, source_branch: str
    ) -> int:
        """Queue a manual build and return its id."""
        url = (
            f'{self._project_url(org, project)}/_apis/build/builds'
            f'?api-version={API_VERSION}'
        )
        payload = {
            'definition': {'id': pipeline_id},
            'sourceBranch': source_branch,
            'reason': 'manual',
        }
        response = await self.client.post_async(url, data=payload)
        return int(response.data['id'])

    async def get_build_status(
        self, org: str, project: str, build_id: int
    ) -> Tuple[Optional[str], Optional[str], Optional[str]]:
        """Return ``(status, result, web_url)`` of a build."""
        url = (
            f'{self._project_url(org, project)}/_apis/build/builds/{build_id}'
            f'?api-version={API_VERSION}'
        )
        response = await self.client.get_async(url)
        data = response.data or {}
        web_url = ((data.get('_links') or {}).get('web') or {}).get('href')
        return data.get('status'), data.get('result'), web_url
