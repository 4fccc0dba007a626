"""Migration polling and retry.

The command engine lives in :mod:`ado_github_migrate.migration.engine`; it is
not imported here because the API layer depends on :mod:`.retry`.
"""

from .retry import OutcomeType, PolicyResult, RetryPolicy
from .poller import MigrationPoller

__all__ = [
    'OutcomeType',
    'PolicyResult',
    'RetryPolicy',
    'MigrationPoller',
]
