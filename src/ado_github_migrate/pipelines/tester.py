"""Dry-run testing of a pipeline against its migrated GitHub repository."""

import asyncio
import time
from datetime import datetime, timezone
from typing import Optional, Tuple

from loguru import logger

from ..exceptions import ConfigurationError, PipelineLookupError, PipelineTestError
from ..models.pipeline import (
    TIMED_OUT,
    PipelineBinding,
    PipelineTestArgs,
    PipelineTestResult,
)
from .rewire import PipelineRewirer

DEFAULT_BRANCH_REF = 'refs/heads/main'


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PipelineTestService:
    """Rewires a pipeline to GitHub, queues a build and restores it.

    Restoration is attempted right after the build is queued, before the
    build is monitored, so the live pipeline points at GitHub only briefly.
    """

    def __init__(
        self,
        ado_api,
        rewirer: Optional[PipelineRewirer] = None,
        poll_interval: float = 30,
    ):
        """Initialize pipeline test service.

        Args:
            ado_api: :class:`~ado_github_migrate.api.ado.AdoApi` instance
            rewirer: Binding operations (built on ``ado_api`` if omitted)
            poll_interval: Seconds between build status queries
        """
        self.ado_api = ado_api
        self.rewirer = rewirer or PipelineRewirer(ado_api)
        self.poll_interval = poll_interval
        self.logger = logger.bind(component='PipelineTestService')

    async def test_pipeline(
        self,
        args: PipelineTestArgs,
        result: Optional[PipelineTestResult] = None,
    ) -> PipelineTestResult:
        """Run one dry-run test.

        Args:
            args: Pipeline to test and the GitHub repository to build from.
                Exactly one of ``pipeline_name`` and ``pipeline_id`` is set.
            result: Result to populate in place, so a caller can still read
                it when the run is cancelled (created if omitted)

        Returns:
            The test result; a timed out build is not an error

        Raises:
            ConfigurationError: If neither or both pipeline selectors are set
            PipelineTestError: If the run was aborted. ``error.result`` holds
                the partial result.
        """
        if (args.pipeline_name is None) == (args.pipeline_id is None):
            raise ConfigurationError(
                'Exactly one of pipeline name and pipeline id must be specified'
            )

        org, project = args.ado_org, args.ado_team_project
        if result is None:
            result = PipelineTestResult(
                ado_org=org,
                ado_team_project=project,
                pipeline_name=args.pipeline_name,
                pipeline_id=args.pipeline_id,
            )
        result.pipeline_url = self.ado_api.pipeline_url(org, project, args.pipeline_id)
        binding: Optional[PipelineBinding] = None
        pipeline_id = args.pipeline_id
        name = args.pipeline_name or result.pipeline_name or str(pipeline_id)

        try:
            if pipeline_id is None:
                pipeline_id = await self.ado_api.get_pipeline_id(
                    org, project, args.pipeline_name
                )
                result.pipeline_id = pipeline_id
                result.pipeline_url = self.ado_api.pipeline_url(
                    org, project, pipeline_id
                )

            if not await self.ado_api.is_pipeline_enabled(org, project, pipeline_id):
                self.logger.warning(
                    f"Pipeline '{name}' (ID: {pipeline_id}) is disabled. "
                    'Skipping pipeline test.'
                )
                result.error_message = 'Pipeline is disabled'
                result.end_time = _utcnow()
                return result

            self.logger.info(f"Capturing original configuration of pipeline '{name}'")
            binding = await self.rewirer.capture_binding(org, project, pipeline_id)
            result.repo_name = binding.repo_name

            self.logger.info(
                f"Rewiring pipeline '{name}' to {args.github_org}/{args.github_repo}"
            )
            rewired = await self.rewirer.rewire(
                org,
                project,
                pipeline_id,
                binding,
                args.github_org,
                args.github_repo,
                args.service_connection_id,
                args.target_api_url,
            )
            if not rewired:
                raise PipelineLookupError(
                    f'Pipeline {pipeline_id} not found in {org}/{project}',
                    pipeline=name,
                )
            result.rewired_successfully = True

            branch_ref = binding.branch_ref or DEFAULT_BRANCH_REF
            build_id = await self.ado_api.queue_build(
                org, project, pipeline_id, branch_ref
            )
            result.build_id = build_id
            _, _, result.build_url = await self.ado_api.get_build_status(
                org, project, build_id
            )
            self.logger.info(
                f"Queued build {build_id} of pipeline '{name}' on {branch_ref}"
            )

            self.logger.info(
                f"Restoring pipeline '{name}' to repository {binding.repo_name}"
            )
            try:
                await self.rewirer.restore(org, project, pipeline_id, binding)
                result.restored_successfully = True
            except Exception as e:
                result.error_message = f'Failed to restore: {e}'
                self.logger.error(
                    f"MANUAL RESTORATION REQUIRED for pipeline '{name}' "
                    f'(ID: {pipeline_id}): restore to repository '
                    f'{binding.repo_name} failed: {e}. Pipeline: {result.pipeline_url}'
                )

            self.logger.info(f"Monitoring build {build_id} of pipeline '{name}'")
            result.status, result.result = await self.monitor_build(
                org, project, build_id, args.monitor_timeout_minutes, name
            )

        except asyncio.CancelledError:
            result.error_message = result.error_message or 'Pipeline test was cancelled'
            result.end_time = _utcnow()
            self.logger.warning(f"Test of pipeline '{name}' was cancelled")
            await self._restore_after_abort(org, project, pipeline_id, binding, result, name)
            raise

        except Exception as e:
            result.error_message = str(e)
            result.end_time = _utcnow()
            await self._restore_after_abort(org, project, pipeline_id, binding, result, name)

            raise PipelineTestError(
                f"Failed to test pipeline '{name}': {e}", result=result
            ) from e

        result.end_time = _utcnow()
        if result.timed_out:
            self.logger.warning(
                f"Build {result.build_id} of pipeline '{name}' did not finish within "
                f'{args.monitor_timeout_minutes} minutes'
            )
        else:
            self.logger.info(
                f"Build {result.build_id} of pipeline '{name}' finished: {result.result}"
            )
        return result

    async def _restore_after_abort(
        self,
        org: str,
        project: str,
        pipeline_id: Optional[int],
        binding: Optional[PipelineBinding],
        result: PipelineTestResult,
        name: str,
    ) -> None:
        """Make the single restore attempt owed to a rewired, unrestored pipeline."""
        if (
            binding is None
            or not result.rewired_successfully
            or result.restored_successfully
        ):
            return

        # Shielded so a second cancellation cannot interrupt the restore
        try:
            await asyncio.shield(
                self.rewirer.restore(org, project, pipeline_id, binding)
            )
            result.restored_successfully = True
        except (Exception, asyncio.CancelledError) as restore_error:
            self.logger.error(
                f"MANUAL RESTORATION REQUIRED for pipeline '{name}' "
                f'(ID: {pipeline_id}): restore to repository '
                f'{binding.repo_name} failed: {restore_error!r}. '
                f'Pipeline: {result.pipeline_url}'
            )

    async def monitor_build(
        self,
        org: str,
        project: str,
        build_id: int,
        timeout_minutes: float,
        pipeline_name: str,
    ) -> Tuple[Optional[str], Optional[str]]:
        """Poll a build until it has a result or the timeout elapses.

        Reaching the timeout only stops observation; the build keeps running.

        Returns:
            ``(status, result)``, or ``('timedOut', None)`` on timeout
        """
        timeout = timeout_minutes * 60
        started = time.monotonic()

        while time.monotonic() - started < timeout:
            status, build_result, _ = await self.ado_api.get_build_status(
                org, project, build_id
            )
            if build_result:
                return status, build_result

            self.logger.debug(
                f"Still waiting on pipeline '{pipeline_name}' (Build ID: {build_id})"
            )
            await asyncio.sleep(self.poll_interval)

        return TIMED_OUT, None
