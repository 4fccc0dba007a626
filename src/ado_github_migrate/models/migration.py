"""Migration state models and classifiers."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class MigrationKind(str, Enum):
    """Kind of remote migration."""

    REPOSITORY = 'repository'
    ORGANIZATION = 'organization'


class RepositoryMigrationState(str, Enum):
    """Repository migration states as reported by GitHub."""

    QUEUED = 'QUEUED'
    IN_PROGRESS = 'IN_PROGRESS'
    PENDING_VALIDATION = 'PENDING_VALIDATION'
    SUCCEEDED = 'SUCCEEDED'
    FAILED = 'FAILED'
    FAILED_VALIDATION = 'FAILED_VALIDATION'


class OrganizationMigrationState(str, Enum):
    """Organization migration states as reported by GitHub."""

    NOT_STARTED = 'NOT_STARTED'
    QUEUED = 'QUEUED'
    IN_PROGRESS = 'IN_PROGRESS'
    PRE_REPO_MIGRATION = 'PRE_REPO_MIGRATION'
    REPO_MIGRATION = 'REPO_MIGRATION'
    POST_REPO_MIGRATION = 'POST_REPO_MIGRATION'
    SUCCEEDED = 'SUCCEEDED'
    FAILED = 'FAILED'


class MigrationPhase(str, Enum):
    """Semantic state of a migration, independent of its kind."""

    PENDING = 'pending'
    SUCCEEDED = 'succeeded'
    FAILED = 'failed'
    FAILED_VALIDATION = 'failed_validation'

    @property
    def is_pending(self) -> bool:
        return self is MigrationPhase.PENDING

    @property
    def is_succeeded(self) -> bool:
        return self is MigrationPhase.SUCCEEDED

    @property
    def is_failed(self) -> bool:
        return self in (MigrationPhase.FAILED, MigrationPhase.FAILED_VALIDATION)


_REPOSITORY_PHASES = {
    RepositoryMigrationState.QUEUED: MigrationPhase.PENDING,
    RepositoryMigrationState.IN_PROGRESS: MigrationPhase.PENDING,
    RepositoryMigrationState.PENDING_VALIDATION: MigrationPhase.PENDING,
    RepositoryMigrationState.SUCCEEDED: MigrationPhase.SUCCEEDED,
    RepositoryMigrationState.FAILED: MigrationPhase.FAILED,
    RepositoryMigrationState.FAILED_VALIDATION: MigrationPhase.FAILED_VALIDATION,
}

_ORGANIZATION_PHASES = {
    OrganizationMigrationState.NOT_STARTED: MigrationPhase.PENDING,
    OrganizationMigrationState.QUEUED: MigrationPhase.PENDING,
    OrganizationMigrationState.IN_PROGRESS: MigrationPhase.PENDING,
    OrganizationMigrationState.PRE_REPO_MIGRATION: MigrationPhase.PENDING,
    OrganizationMigrationState.REPO_MIGRATION: MigrationPhase.PENDING,
    OrganizationMigrationState.POST_REPO_MIGRATION: MigrationPhase.PENDING,
    OrganizationMigrationState.SUCCEEDED: MigrationPhase.SUCCEEDED,
    OrganizationMigrationState.FAILED: MigrationPhase.FAILED,
}


def _normalize(state: Optional[str]) -> str:
    return (state or '').strip().upper().replace(' ', '_')


def classify_repository_state(state: Optional[str]) -> MigrationPhase:
    """Map a repository migration state string to its phase.

    Matching is case-insensitive. Unknown states are failures so that a
    poll loop can never spin on a value it does not understand.
    """
    try:
        return _REPOSITORY_PHASES[RepositoryMigrationState(_normalize(state))]
    except ValueError:
        return MigrationPhase.FAILED


def classify_organization_state(state: Optional[str]) -> MigrationPhase:
    """Map an organization migration state string to its phase."""
    try:
        return _ORGANIZATION_PHASES[OrganizationMigrationState(_normalize(state))]
    except ValueError:
        return MigrationPhase.FAILED


class MigrationRecord(BaseModel):
    """Snapshot of one in-flight remote migration.

    Records are never mutated locally; every poll fetches a new one.
    """

    id: str = Field(..., description='Platform-assigned migration id')
    kind: MigrationKind = Field(..., description='Repository or organization')
    state: str = Field(..., description='Raw state reported by the platform')
    target_name: Optional[str] = Field(
        default=None, description='Repository or target organization name'
    )
    source_url: Optional[str] = Field(default=None, description='Source URL')
    warnings_count: int = Field(default=0, description='Warnings so far')
    failure_reason: Optional[str] = Field(
        default=None, description='Failure reason for failure states'
    )
    migration_log_url: Optional[str] = Field(
        default=None, description='Migration log URL'
    )
    remaining_repositories_count: Optional[int] = Field(
        default=None, description='Repositories left (organization kind)'
    )
    total_repositories_count: Optional[int] = Field(
        default=None, description='Repositories in total (organization kind)'
    )

    @property
    def phase(self) -> MigrationPhase:
        if self.kind is MigrationKind.REPOSITORY:
            return classify_repository_state(self.state)
        return classify_organization_state(self.state)

    @property
    def is_repo_migration_stage(self) -> bool:
        return (
            self.kind is MigrationKind.ORGANIZATION
            and _normalize(self.state) == OrganizationMigrationState.REPO_MIGRATION.value
        )

    @property
    def completed_repositories_count(self) -> int:
        total = self.total_repositories_count or 0
        remaining = self.remaining_repositories_count or 0
        return total - remaining
