"""Batch dry-run testing of many pipelines with bounded concurrency."""

import asyncio
import re
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from loguru import logger

from ..exceptions import PipelineTestError
from ..models.pipeline import (
    PipelineCandidate,
    PipelineTestArgs,
    PipelineTestResult,
    PipelineTestSummary,
)

DEFAULT_REPORT_PATH = 'pipeline-test-report.json'


def is_match(text: str, pattern: Optional[str]) -> bool:
    """Case-insensitive wildcard match (``*`` any run, ``?`` one character)."""
    if not pattern or pattern == '*':
        return True

    regex = '^' + re.escape(pattern).replace(r'\*', '.*').replace(r'\?', '.') + '$'
    return re.match(regex, text, re.IGNORECASE | re.DOTALL) is not None


def pipeline_matches(pipeline: str, pattern: Optional[str]) -> bool:
    """Match a ``folder\\name`` pipeline by its full path or its name alone."""
    leaf = pipeline.rsplit('\\', 1)[-1]
    return is_match(leaf, pattern) or is_match(pipeline, pattern)


def format_duration(seconds: float) -> str:
    total = int(seconds)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f'{hours:02d}:{minutes:02d}:{secs:02d}'


def write_report(summary: PipelineTestSummary, report_path: str) -> Path:
    """Write the JSON report of a batch.

    Args:
        summary: Summary to serialize
        report_path: Output file path

    Returns:
        Path of the written report
    """
    path = Path(report_path)
    if path.parent and not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(summary.to_json(), encoding='utf-8')
    logger.info(f'Detailed report saved to: {report_path}')
    return path


class BatchPipelineTester:
    """Discovers pipelines and dry-run tests them a few at a time."""

    def __init__(self, ado_api, test_service, max_concurrent_tests: int = 3):
        """Initialize batch tester.

        Args:
            ado_api: :class:`~ado_github_migrate.api.ado.AdoApi` instance
            test_service: :class:`~ado_github_migrate.pipelines.tester.PipelineTestService`
            max_concurrent_tests: Number of tests allowed to run at once
        """
        if max_concurrent_tests < 1:
            raise ValueError('max_concurrent_tests must be at least 1')

        self.ado_api = ado_api
        self.test_service = test_service
        self.max_concurrent_tests = max_concurrent_tests
        self.logger = logger.bind(component='BatchPipelineTester')

    async def discover_pipelines(
        self, org: str, project: str, pipeline_filter: Optional[str] = None
    ) -> List[PipelineCandidate]:
        """List the pipelines of all enabled repositories of a project.

        Pipelines whose id cannot be resolved are returned unresolved, with
        the lookup error, instead of failing the discovery.
        """
        candidates: List[PipelineCandidate] = []

        for repo in await self.ado_api.get_enabled_repos(org, project):
            try:
                names = await self.ado_api.get_pipelines(org, project, repo.id)
            except Exception as e:
                self.logger.warning(
                    f"Could not get pipelines for repository '{repo.name}': {e}"
                )
                continue

            for name in names:
                if not pipeline_matches(name, pipeline_filter):
                    continue

                try:
                    pipeline_id = await self.ado_api.get_pipeline_id(org, project, name)
                except Exception as e:
                    self.logger.warning(f"Could not get ID for pipeline '{name}': {e}")
                    candidates.append(PipelineCandidate(name=name, error=str(e)))
                    continue

                candidates.append(PipelineCandidate(name=name, pipeline_id=pipeline_id))

        return candidates

    async def _run_one(
        self,
        template: PipelineTestArgs,
        candidate: PipelineCandidate,
        semaphore: asyncio.Semaphore,
        lock: asyncio.Lock,
        summary: PipelineTestSummary,
    ) -> PipelineTestResult:
        async with semaphore:
            self.logger.info(
                f'Testing pipeline: {candidate.name} (ID: {candidate.pipeline_id})'
            )
            # The id is already resolved; the name only labels the result
            args = template.model_copy(
                update={'pipeline_name': None, 'pipeline_id': candidate.pipeline_id}
            )
            result = self._new_result(template, candidate)
            try:
                result = await self.test_service.test_pipeline(args, result)
            except asyncio.CancelledError:
                # A cancelled run may have left the pipeline rewired
                async with lock:
                    summary.add_result(result)
                raise
            except PipelineTestError as e:
                self.logger.error(str(e))
                result = e.result or result
                result.error_message = result.error_message or str(e)
            except Exception as e:
                self.logger.error(f"Failed to test pipeline '{candidate.name}': {e}")
                result.error_message = str(e)
                result.end_time = datetime.now(timezone.utc)

        async with lock:
            summary.add_result(result)
        return result

    def _new_result(
        self, template: PipelineTestArgs, candidate: PipelineCandidate
    ) -> PipelineTestResult:
        return PipelineTestResult(
            ado_org=template.ado_org,
            ado_team_project=template.ado_team_project,
            pipeline_name=candidate.name,
            pipeline_id=candidate.pipeline_id,
            pipeline_url=self.ado_api.pipeline_url(
                template.ado_org, template.ado_team_project, candidate.pipeline_id
            ),
        )

    async def test_pipelines(
        self,
        template: PipelineTestArgs,
        pipeline_filter: Optional[str] = None,
        report_path: str = DEFAULT_REPORT_PATH,
    ) -> PipelineTestSummary:
        """Discover, test and report on the pipelines of a project.

        Args:
            template: Org, project and GitHub target shared by every run
            pipeline_filter: Wildcard filter on pipeline names
            report_path: JSON report output path

        Returns:
            Summary of all runs, in completion order
        """
        self.logger.info('Starting batch pipeline testing...')
        summary = PipelineTestSummary()
        started = time.monotonic()

        try:
            self.logger.info('Step 1: Discovering pipelines...')
            candidates = [
                c
                for c in await self.discover_pipelines(
                    template.ado_org, template.ado_team_project, pipeline_filter
                )
                if c.resolved
            ]
            self.logger.info(f'Found {len(candidates)} pipelines to test')

            if not candidates:
                self.logger.warning('No pipelines found matching the criteria')
                return summary

            self.logger.info(
                f'Step 2: Testing pipelines (max concurrent: '
                f'{self.max_concurrent_tests})...'
            )
            semaphore = asyncio.Semaphore(self.max_concurrent_tests)
            lock = asyncio.Lock()
            await asyncio.gather(
                *(
                    self._run_one(template, candidate, semaphore, lock, summary)
                    for candidate in candidates
                )
            )

            summary.recalculate()
            summary.total_test_time = time.monotonic() - started

            self.log_summary(summary)
            write_report(summary, report_path)
            self.logger.info(
                f'Batch testing completed. Results saved to: {report_path}'
            )
            return summary

        except (Exception, asyncio.CancelledError) as e:
            self.logger.error(f'Batch testing failed: {e!r}')
            if summary.results:
                self.logger.info('Generating partial report from completed tests...')
                summary.recalculate()
                summary.total_test_time = time.monotonic() - started
                write_report(summary, report_path)
            raise

    def log_summary(self, summary: PipelineTestSummary) -> None:
        """Log the human-readable batch summary."""
        self.logger.info('=== PIPELINE BATCH TEST SUMMARY ===')
        self.logger.info(f'Total Pipelines Tested: {summary.total}')
        self.logger.info(f'Successful Builds: {summary.successful}')
        self.logger.info(f'Failed Builds: {summary.failed}')
        self.logger.info(f'Timed Out Builds: {summary.timed_out}')
        self.logger.info(f'Rewiring Errors: {summary.rewiring_errors}')
        self.logger.info(f'Restoration Errors: {summary.restoration_errors}')
        self.logger.info(f'Success Rate: {summary.success_rate:.1f}%')
        self.logger.info(f'Total Test Time: {format_duration(summary.total_test_time)}')

        if summary.restoration_errors > 0:
            self.logger.warning('PIPELINES REQUIRING MANUAL RESTORATION:')
            for result in summary.pipelines_needing_restoration:
                self.logger.warning(
                    f'  - {result.pipeline_name} (ID: {result.pipeline_id}) in '
                    f'{result.ado_org}/{result.ado_team_project}: {result.pipeline_url}'
                )

        self.logger.info('=== END OF SUMMARY ===')
