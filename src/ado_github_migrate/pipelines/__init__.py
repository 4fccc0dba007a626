"""Pipeline rewiring and dry-run testing."""

from .rewire import PipelineRewirer
from .tester import PipelineTestService
from .batch import BatchPipelineTester, is_match

__all__ = [
    'PipelineRewirer',
    'PipelineTestService',
    'BatchPipelineTester',
    'is_match',
]
