"""Configuration management."""

from .config import (
    AdoInstanceConfig,
    Config,
    GitHubInstanceConfig,
    LoggingConfig,
    PipelineTestConfig,
    PollingConfig,
)

__all__ = [
    'Config',
    'AdoInstanceConfig',
    'GitHubInstanceConfig',
    'PollingConfig',
    'PipelineTestConfig',
    'LoggingConfig',
]
