"""Data models for migrations and pipelines."""

from .migration import (
    MigrationKind,
    MigrationPhase,
    MigrationRecord,
    OrganizationMigrationState,
    RepositoryMigrationState,
    classify_organization_state,
    classify_repository_state,
)
from .pipeline import (
    AdoRepository,
    PipelineBinding,
    PipelineCandidate,
    PipelineTestArgs,
    PipelineTestResult,
    PipelineTestSummary,
)

__all__ = [
    'MigrationKind',
    'MigrationPhase',
    'MigrationRecord',
    'OrganizationMigrationState',
    'RepositoryMigrationState',
    'classify_organization_state',
    'classify_repository_state',
    'AdoRepository',
    'PipelineBinding',
    'PipelineCandidate',
    'PipelineTestArgs',
    'PipelineTestResult',
    'PipelineTestSummary',
]
