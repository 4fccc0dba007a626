"""Tests for migration state classification."""

import pytest

from ado_github_migrate.models.migration import (
    MigrationKind,
    MigrationPhase,
    MigrationRecord,
    classify_organization_state,
    classify_repository_state,
)


class TestRepositoryStates:
    """Test repository migration state classification."""

    @pytest.mark.parametrize(
        'state', ['QUEUED', 'IN_PROGRESS', 'PENDING_VALIDATION', 'in_progress']
    )
    def test_pending(self, state):
        assert classify_repository_state(state) is MigrationPhase.PENDING

    def test_succeeded(self):
        assert classify_repository_state('SUCCEEDED').is_succeeded
        assert classify_repository_state('succeeded').is_succeeded

    def test_failed(self):
        phase = classify_repository_state('FAILED')

        assert phase is MigrationPhase.FAILED
        assert phase.is_failed

    def test_failed_validation_is_failure(self):
        phase = classify_repository_state('FAILED_VALIDATION')

        assert phase is MigrationPhase.FAILED_VALIDATION
        assert phase.is_failed
        assert not phase.is_pending

    @pytest.mark.parametrize('state', ['EXPLODED', '', None])
    def test_unknown_states_are_failures(self, state):
        assert classify_repository_state(state).is_failed


class TestOrganizationStates:
    """Test organization migration state classification."""

    @pytest.mark.parametrize(
        'state',
        [
            'NOT_STARTED',
            'QUEUED',
            'IN_PROGRESS',
            'PRE_REPO_MIGRATION',
            'REPO_MIGRATION',
            'POST_REPO_MIGRATION',
        ],
    )
    def test_pending(self, state):
        assert classify_organization_state(state).is_pending

    def test_terminal(self):
        assert classify_organization_state('SUCCEEDED').is_succeeded
        assert classify_organization_state('FAILED').is_failed

    def test_repository_only_states_unknown(self):
        assert classify_organization_state('PENDING_VALIDATION').is_failed


class TestMigrationRecord:
    """Test migration record helpers."""

    def test_phase_follows_kind(self):
        repo = MigrationRecord(id='RM_1', kind=MigrationKind.REPOSITORY, state='QUEUED')
        org = MigrationRecord(
            id='OM_1', kind=MigrationKind.ORGANIZATION, state='REPO_MIGRATION'
        )

        assert repo.phase.is_pending
        assert org.phase.is_pending
        assert org.is_repo_migration_stage
        assert not repo.is_repo_migration_stage

    def test_completed_repositories_count(self):
        record = MigrationRecord(
            id='OM_1',
            kind=MigrationKind.ORGANIZATION,
            state='REPO_MIGRATION',
            remaining_repositories_count=3,
            total_repositories_count=10,
        )

        assert record.completed_repositories_count == 7
