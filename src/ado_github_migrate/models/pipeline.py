"""Azure Pipelines models: bindings, test results and batch summaries."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel

BRANCH_REF_PREFIX = 'refs/heads/'

TIMED_OUT = 'timedOut'

_SUCCESSFUL_RESULTS = ('succeeded', 'partiallysucceeded')
_FAILED_RESULTS = ('failed', 'canceled')
_RUNNING_STATUSES = ('inprogress', 'notstarted')


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AdoRepository(_CamelModel):
    """Azure Repos Git repository."""

    id: str = Field(..., description='Repository id')
    name: str = Field(..., description='Repository name')
    is_disabled: bool = Field(default=False, description='Repository is disabled')


class PipelineBinding(_CamelModel):
    """Source-control binding of a pipeline, captured for later restoration.

    ``repository`` and ``triggers`` are kept exactly as the definition
    returned them; nothing here interprets trigger semantics.
    """

    pipeline_id: int = Field(..., description='Pipeline definition id')
    repo_name: Optional[str] = Field(default=None, description='Repository name')
    repo_id: Optional[str] = Field(default=None, description='Repository id')
    default_branch: Optional[str] = Field(
        default=None, description='Default branch as stored on the definition'
    )
    clean: Optional[str] = Field(default=None, description='Clean flag')
    checkout_submodules: Optional[str] = Field(
        default=None, description='Checkout submodules flag'
    )
    triggers: Optional[Any] = Field(default=None, description='Trigger configuration')
    repository: Optional[Dict[str, Any]] = Field(
        default=None, description='Raw repository block of the definition'
    )

    @property
    def branch_name(self) -> Optional[str]:
        """Default branch without the ``refs/heads/`` prefix."""
        branch = self.default_branch
        if branch and branch.startswith(BRANCH_REF_PREFIX):
            return branch[len(BRANCH_REF_PREFIX) :]
        return branch

    @property
    def branch_ref(self) -> Optional[str]:
        branch = self.branch_name
        return f'{BRANCH_REF_PREFIX}{branch}' if branch else None


class PipelineCandidate(_CamelModel):
    """Result of resolving one discovered pipeline name to its id."""

    name: str = Field(..., description='Pipeline path and name')
    pipeline_id: Optional[int] = Field(default=None, description='Resolved id')
    error: Optional[str] = Field(default=None, description='Lookup failure')

    @property
    def resolved(self) -> bool:
        return self.pipeline_id is not None and self.error is None


class PipelineTestArgs(_CamelModel):
    """Inputs of one pipeline dry-run test."""

    ado_org: str
    ado_team_project: str
    pipeline_name: Optional[str] = None
    pipeline_id: Optional[int] = None
    github_org: str
    github_repo: str
    service_connection_id: str
    monitor_timeout_minutes: float = 30
    target_api_url: Optional[str] = None


class PipelineTestResult(_CamelModel):
    """Outcome of one pipeline dry-run test."""

    ado_org: str = Field(..., description='Azure DevOps organization')
    ado_team_project: str = Field(..., description='Azure DevOps team project')
    pipeline_name: Optional[str] = Field(default=None, description='Pipeline name')
    pipeline_id: Optional[int] = Field(default=None, description='Pipeline id')
    pipeline_url: Optional[str] = Field(default=None, description='Pipeline URL')
    repo_name: Optional[str] = Field(
        default=None, description='Repository of the original binding'
    )
    rewired_successfully: bool = Field(default=False)
    restored_successfully: bool = Field(default=False)
    build_id: Optional[int] = Field(default=None, description='Queued build id')
    build_url: Optional[str] = Field(default=None, description='Queued build URL')
    status: Optional[str] = Field(default=None, description='Build status')
    result: Optional[str] = Field(default=None, description='Build result')
    start_time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    end_time: Optional[datetime] = Field(default=None)
    error_message: Optional[str] = Field(default=None)

    @computed_field(alias='isSuccessful')
    @property
    def is_successful(self) -> bool:
        return (self.result or '').lower() in _SUCCESSFUL_RESULTS

    @computed_field(alias='isFailed')
    @property
    def is_failed(self) -> bool:
        return (self.result or '').lower() in _FAILED_RESULTS

    @computed_field(alias='isCompleted')
    @property
    def is_completed(self) -> bool:
        return bool(self.result)

    @computed_field(alias='isRunning')
    @property
    def is_running(self) -> bool:
        return (self.status or '').lower() in _RUNNING_STATUSES

    @property
    def timed_out(self) -> bool:
        return self.status == TIMED_OUT

    @property
    def needs_manual_restoration(self) -> bool:
        return self.rewired_successfully and not self.restored_successfully

    @property
    def build_duration(self) -> Optional[float]:
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds()


class PipelineTestSummary(_CamelModel):
    """Aggregate of a batch of pipeline dry-run tests."""

    total: int = 0
    successful: int = 0
    failed: int = 0
    timed_out: int = 0
    rewiring_errors: int = 0
    restoration_errors: int = 0
    total_test_time: float = Field(
        default=0.0, description='Wall-clock seconds for the whole batch'
    )
    results: List[PipelineTestResult] = Field(default_factory=list)

    @computed_field(alias='successRate')
    @property
    def success_rate(self) -> float:
        if self.total == 0:
            return 0.0
        return self.successful / self.total * 100

    def add_result(self, result: PipelineTestResult) -> None:
        """Append a finished run (callers serialize concurrent appends)."""
        self.results.append(result)

    def recalculate(self) -> None:
        """Recompute the counters from the collected results."""
        results = self.results
        self.total = len(results)
        self.successful = sum(1 for r in results if r.is_successful)
        self.failed = sum(1 for r in results if r.is_failed)
        self.timed_out = sum(1 for r in results if r.timed_out)
        self.rewiring_errors = sum(1 for r in results if not r.rewired_successfully)
        self.restoration_errors = sum(
            1 for r in results if r.needs_manual_restoration
        )

    @property
    def pipelines_needing_restoration(self) -> List[PipelineTestResult]:
        return [r for r in self.results if r.needs_manual_restoration]

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)
