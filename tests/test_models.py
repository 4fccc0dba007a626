"""Tests for pipeline data models."""

import json
from datetime import datetime, timedelta, timezone

from ado_github_migrate.models.pipeline import (
    TIMED_OUT,
    PipelineBinding,
    PipelineCandidate,
    PipelineTestArgs,
    PipelineTestResult,
    PipelineTestSummary,
)


def _result(**kwargs):
    values = {'ado_org': 'org', 'ado_team_project': 'proj', 'pipeline_name': 'CI'}
    values.update(kwargs)
    return PipelineTestResult(**values)


class TestPipelineTestResult:
    """Test derived result flags."""

    def test_successful_results(self):
        assert _result(result='succeeded').is_successful
        assert _result(result='partiallySucceeded').is_successful
        assert not _result(result='failed').is_successful

    def test_failed_results(self):
        assert _result(result='failed').is_failed
        assert _result(result='canceled').is_failed
        assert not _result(result='succeeded').is_failed

    def test_running_and_completed(self):
        running = _result(status='inProgress')

        assert running.is_running
        assert not running.is_completed
        assert _result(status='completed', result='failed').is_completed

    def test_timed_out(self):
        result = _result(status=TIMED_OUT)

        assert result.timed_out
        assert not result.is_completed
        assert not result.is_successful

    def test_build_duration(self):
        start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        result = _result(start_time=start, end_time=start + timedelta(seconds=90))

        assert result.build_duration == 90
        assert _result().build_duration is None

    def test_start_time_defaults_to_aware_now(self):
        assert _result().start_time.tzinfo is not None

    def test_serialized_with_camel_case_names(self):
        data = json.loads(
            _result(result='succeeded', rewired_successfully=True).model_dump_json(
                by_alias=True
            )
        )

        assert data['adoTeamProject'] == 'proj'
        assert data['rewiredSuccessfully'] is True
        assert data['isSuccessful'] is True
        assert data['isFailed'] is False


class TestPipelineTestSummary:
    """Test batch summary aggregation."""

    def test_empty_summary(self):
        summary = PipelineTestSummary()

        assert summary.success_rate == 0.0
        assert json.loads(summary.to_json())['successRate'] == 0.0

    def test_recalculate(self):
        summary = PipelineTestSummary()
        summary.add_result(
            _result(rewired_successfully=True, restored_successfully=True, result='succeeded')
        )
        summary.add_result(
            _result(rewired_successfully=True, restored_successfully=False, status=TIMED_OUT)
        )
        summary.add_result(_result(error_message='Pipeline is disabled'))

        summary.recalculate()

        assert summary.total == 3
        assert summary.successful == 1
        assert summary.timed_out == 1
        assert summary.rewiring_errors == 1
        assert summary.restoration_errors == 1
        assert round(summary.success_rate, 2) == 33.33
        assert len(summary.pipelines_needing_restoration) == 1


class TestPipelineArguments:
    """Test pipeline argument models."""

    def test_binding_branch_helpers(self):
        assert PipelineBinding(pipeline_id=1, default_branch='main').branch_ref == (
            'refs/heads/main'
        )
        assert PipelineBinding(pipeline_id=1).branch_ref is None

    def test_candidate_resolved(self):
        assert PipelineCandidate(name='CI', pipeline_id=1).resolved
        assert not PipelineCandidate(name='CI', error='missing').resolved

    def test_test_args_accept_camel_case(self):
        args = PipelineTestArgs(
            adoOrg='org',
            adoTeamProject='proj',
            githubOrg='octo',
            githubRepo='app',
            serviceConnectionId='sc-1',
        )

        assert args.ado_org == 'org'
        assert args.monitor_timeout_minutes == 30
