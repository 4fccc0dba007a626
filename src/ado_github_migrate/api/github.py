"""GitHub Enterprise Importer GraphQL operations."""

from typing import Any, Dict, Optional

from loguru import logger

from ..exceptions import MigrationToolError
from ..migration.retry import RetryPolicy
from ..models.migration import MigrationKind, MigrationRecord
from .client import GitHubClient
from .exceptions import NotFoundError

GET_REPOSITORY_MIGRATION = """
query($id: ID!) {
  node(id: $id) {
    ... on Migration {
      id
      sourceUrl
      migrationLogUrl
      state
      warningsCount
      failureReason
      repositoryName
    }
  }
}
"""

GET_ORGANIZATION_MIGRATION = """
query($id: ID!) {
  node(id: $id) {
    ... on OrganizationMigration {
      state
      sourceOrgUrl
      targetOrgName
      failureReason
      remainingRepositoriesCount
      totalRepositoriesCount
    }
  }
}
"""

GET_MIGRATION_LOG_URL = """
query($org: String!, $repo: String!) {
  organization(login: $org) {
    repositoryMigrations(last: 1, repositoryName: $repo) {
      nodes {
        id
        migrationLogUrl
      }
    }
  }
}
"""

GET_ORGANIZATION_ID = """
query($login: String!) { organization(login: $login) { login, id, name } }
"""

GET_ENTERPRISE_ID = """
query($slug: String!) { enterprise(slug: $slug) { slug, id } }
"""

CREATE_MIGRATION_SOURCE = """
mutation createMigrationSource(
  $name: String!, $url: String!, $ownerId: ID!, $type: MigrationSourceType!
) {
  createMigrationSource(
    input: {name: $name, url: $url, ownerId: $ownerId, type: $type}
  ) {
    migrationSource { id, name, url, type }
  }
}
"""

START_REPOSITORY_MIGRATION = """
mutation startRepositoryMigration(
  $sourceId: ID!,
  $ownerId: ID!,
  $sourceRepositoryUrl: URI!,
  $repositoryName: String!,
  $continueOnError: Boolean!,
  $accessToken: String!,
  $githubPat: String,
  $targetRepoVisibility: String
) {
  startRepositoryMigration(
    input: {
      sourceId: $sourceId,
      ownerId: $ownerId,
      sourceRepositoryUrl: $sourceRepositoryUrl,
      repositoryName: $repositoryName,
      continueOnError: $continueOnError,
      accessToken: $accessToken,
      githubPat: $githubPat,
      targetRepoVisibility: $targetRepoVisibility
    }
  ) {
    repositoryMigration { id, sourceUrl, state, failureReason }
  }
}
"""

START_ORGANIZATION_MIGRATION = """
mutation startOrganizationMigration(
  $sourceOrgUrl: URI!,
  $targetOrgName: String!,
  $targetEnterpriseId: ID!,
  $sourceAccessToken: String!
) {
  startOrganizationMigration(
    input: {
      sourceOrgUrl: $sourceOrgUrl,
      targetOrgName: $targetOrgName,
      targetEnterpriseId: $targetEnterpriseId,
      sourceAccessToken: $sourceAccessToken
    }
  ) {
    orgMigration { id, databaseId }
  }
}
"""


def _node(data: Dict[str, Any]) -> Dict[str, Any]:
    node = data.get('node')
    if not node:
        raise NotFoundError('Migration not found')
    return node


class GitHubApi:
    """Migration queries and mutations against GitHub."""

    def __init__(self, client: GitHubClient, retry_policy: Optional[RetryPolicy] = None):
        """Initialize GitHub API.

        Args:
            client: Authenticated GitHub client
            retry_policy: Policy used to ride out transient query failures
        """
        self.client = client
        self.retry_policy = retry_policy or RetryPolicy()
        self.logger = logger.bind(component='GitHubApi')

    async def get_repository_migration(self, migration_id: str) -> MigrationRecord:
        """Fetch the current state of a repository migration."""

        async def query() -> MigrationRecord:
            data = await self.client.post_graphql(
                GET_REPOSITORY_MIGRATION, {'id': migration_id}
            )
            node = _node(data)
            return MigrationRecord(
                id=migration_id,
                kind=MigrationKind.REPOSITORY,
                state=node['state'],
                target_name=node.get('repositoryName'),
                source_url=node.get('sourceUrl'),
                warnings_count=node.get('warningsCount') or 0,
                failure_reason=node.get('failureReason'),
                migration_log_url=node.get('migrationLogUrl'),
            )

        try:
            return await self.retry_policy.retry(query)
        except Exception as e:
            raise MigrationToolError(
                f'Failed to get migration state for migration {migration_id}'
            ) from e

    async def get_organization_migration(self, migration_id: str) -> MigrationRecord:
        """Fetch the current state of an organization migration."""

        async def query() -> MigrationRecord:
            data = await self.client.post_graphql(
                GET_ORGANIZATION_MIGRATION, {'id': migration_id}
            )
            node = _node(data)
            return MigrationRecord(
                id=migration_id,
                kind=MigrationKind.ORGANIZATION,
                state=node['state'],
                target_name=node.get('targetOrgName'),
                source_url=node.get('sourceOrgUrl'),
                failure_reason=node.get('failureReason'),
                remaining_repositories_count=node.get('remainingRepositoriesCount'),
                total_repositories_count=node.get('totalRepositoriesCount'),
            )

        try:
            return await self.retry_policy.retry(query)
        except Exception as e:
            raise MigrationToolError(
                f'Failed to get migration state for migration {migration_id}'
            ) from e

    async def get_migration_log_url(self, org: str, repo: str) -> Optional[str]:
        """Log URL of the latest migration of a repository.

        Returns:
            ``None`` if the repository has no migration, an empty string while
            the log is not populated yet, otherwise the URL
        """

        async def query() -> Optional[str]:
            data = await self.client.post_graphql(
                GET_MIGRATION_LOG_URL, {'org': org, 'repo': repo}
            )
            organization = data.get('organization') or {}
            nodes = (organization.get('repositoryMigrations') or {}).get('nodes') or []
            if not nodes:
                return None
            return nodes[0].get('migrationLogUrl') or ''

        try:
            return await self.retry_policy.retry(query)
        except Exception as e:
            raise MigrationToolError('Failed to get migration log URL.') from e

    async def get_organization_id(self, org: str) -> str:
        async def query() -> str:
            data = await self.client.post_graphql(GET_ORGANIZATION_ID, {'login': org})
            return data['organization']['id']

        try:
            return await self.retry_policy.retry(query)
        except Exception as e:
            raise MigrationToolError(
                f"Failed to lookup the Organization ID for organization '{org}'"
            ) from e

    async def get_enterprise_id(self, enterprise: str) -> str:
        async def query() -> str:
            data = await self.client.post_graphql(GET_ENTERPRISE_ID, {'slug': enterprise})
            return data['enterprise']['id']

        try:
            return await self.retry_policy.retry(query)
        except Exception as e:
            raise MigrationToolError(
                f"Failed to lookup the Enterprise ID for enterprise '{enterprise}'"
            ) from e

    async def create_ado_migration_source(
        self, org_id: str, ado_server_url: Optional[str] = None
    ) -> str:
        """Register Azure DevOps as a migration source of an organization."""
        data = await self.client.post_graphql(
            CREATE_MIGRATION_SOURCE,
            {
                'name': 'Azure DevOps Source',
                'url': ado_server_url or 'https://dev.azure.com',
                'ownerId': org_id,
                'type': 'AZURE_DEVOPS',
            },
        )
        return data['createMigrationSource']['migrationSource']['id']

    async def start_repository_migration(
        self,
        migration_source_id: str,
        source_repo_url: str,
        org_id: str,
        repo: str,
        source_token: str,
        target_token: str,
        target_repo_visibility: Optional[str] = None,
    ) -> str:
        """Start a repository migration and return its id."""
        data = await self.client.post_graphql(
            START_REPOSITORY_MIGRATION,
            {
                'sourceId': migration_source_id,
                'ownerId': org_id,
                'sourceRepositoryUrl': source_repo_url,
                'repositoryName': repo,
                'continueOnError': True,
                'accessToken': source_token,
                'githubPat': target_token,
                'targetRepoVisibility': target_repo_visibility,
            },
        )
        return data['startRepositoryMigration']['repositoryMigration']['id']

    async def start_organization_migration(
        self,
        source_org_url: str,
        target_org_name: str,
        target_enterprise_id: str,
        source_access_token: str,
    ) -> str:
        """Start an organization migration and return its id."""
        data = await self.client.post_graphql(
            START_ORGANIZATION_MIGRATION,
            {
                'sourceOrgUrl': source_org_url,
                'targetOrgName': target_org_name,
                'targetEnterpriseId': target_enterprise_id,
                'sourceAccessToken': source_access_token,
            },
        )
        return data['startOrganizationMigration']['orgMigration']['id']
