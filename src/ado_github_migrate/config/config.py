"""Configuration management for the ADO to GitHub Migration Tool."""

from typing import Optional, Dict, Any
from pathlib import Path
import os

from pydantic import BaseModel, ConfigDict, Field, field_validator
import yaml
from dotenv import load_dotenv

from ..exceptions import ConfigurationError


def _validate_http_url(v: str) -> str:
    if not v.startswith(('http://', 'https://')):
        raise ValueError('URL must start with http:// or https://')
    return v.rstrip('/')


class AdoInstanceConfig(BaseModel):
    """Configuration for an Azure DevOps organization host."""

    url: str = Field(
        default='https://dev.azure.com', description='Azure DevOps server URL'
    )
    pat: str = Field(..., description='Azure DevOps personal access token')
    timeout: int = Field(default=30, description='Request timeout in seconds')
    rate_limit_per_second: float = Field(
        default=10.0, description='API requests per second limit'
    )

    @field_validator('url')
    @classmethod
    def validate_url(cls, v):
        """Validate Azure DevOps URL format."""
        return _validate_http_url(v)

    @field_validator('pat')
    @classmethod
    def validate_pat(cls, v):
        """Validate that a token is provided."""
        if not v:
            raise ValueError('Azure DevOps PAT must not be empty')
        return v

    @field_validator('rate_limit_per_second')
    @classmethod
    def validate_rate_limit(cls, v):
        """Validate rate limit is positive."""
        if v <= 0:
            raise ValueError('Rate limit must be positive')
        return v


class GitHubInstanceConfig(BaseModel):
    """Configuration for the target GitHub instance."""

    api_url: str = Field(
        default='https://api.github.com', description='GitHub API URL'
    )
    token: str = Field(..., description='GitHub personal access token')
    timeout: int = Field(default=30, description='Request timeout in seconds')
    rate_limit_per_second: float = Field(
        default=10.0, description='API requests per second limit'
    )

    @field_validator('api_url')
    @classmethod
    def validate_url(cls, v):
        """Validate GitHub API URL format."""
        return _validate_http_url(v)

    @field_validator('token')
    @classmethod
    def validate_token(cls, v):
        """Validate that a token is provided."""
        if not v:
            raise ValueError('GitHub token must not be empty')
        return v

    @field_validator('rate_limit_per_second')
    @classmethod
    def validate_rate_limit(cls, v):
        """Validate rate limit is positive."""
        if v <= 0:
            raise ValueError('Rate limit must be positive')
        return v


class PollingConfig(BaseModel):
    """Polling and retry timings."""

    migration_wait_interval: float = Field(
        default=10, description='Seconds between migration status polls'
    )
    build_poll_interval: float = Field(
        default=30, description='Seconds between build status polls'
    )
    monitor_timeout_minutes: float = Field(
        default=30, description='Minutes to observe a queued build before giving up'
    )
    retry_attempts: int = Field(
        default=6, description='Attempt budget for retried operations'
    )
    retry_interval: float = Field(
        default=4, description='Seconds between retried attempts'
    )

    @field_validator(
        'migration_wait_interval',
        'build_poll_interval',
        'monitor_timeout_minutes',
        'retry_interval',
    )
    @classmethod
    def validate_non_negative(cls, v):
        """Validate timings are not negative."""
        if v < 0:
            raise ValueError('Polling intervals and timeouts must not be negative')
        return v

    @field_validator('retry_attempts')
    @classmethod
    def validate_retry_attempts(cls, v):
        """Validate at least one attempt is made."""
        if v < 1:
            raise ValueError('retry_attempts must be at least 1')
        return v


class PipelineTestConfig(BaseModel):
    """Batch pipeline testing settings."""

    max_concurrent_tests: int = Field(
        default=3, description='Maximum pipeline tests running at once'
    )
    report_path: str = Field(
        default='pipeline-test-report.json', description='JSON report output path'
    )
    pipeline_filter: Optional[str] = Field(
        default=None, description='Wildcard filter for pipeline names'
    )

    @field_validator('max_concurrent_tests')
    @classmethod
    def validate_max_concurrent_tests(cls, v):
        """Validate concurrency limit is positive."""
        if v <= 0:
            raise ValueError('max_concurrent_tests must be positive')
        return v


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default='INFO', description='Log level')
    file: Optional[str] = Field(default=None, description='Log file path')
    format: Optional[str] = Field(default=None, description='Console log format')

    @field_validator('level')
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ['DEBUG', 'INFO', 'SUCCESS', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'Log level must be one of: {valid_levels}')
        return v.upper()


class Config(BaseModel):
    """Main configuration class for the ADO to GitHub Migration Tool."""

    model_config = ConfigDict(extra='forbid')

    ado: Optional[AdoInstanceConfig] = Field(
        default=None, description='Azure DevOps source'
    )
    github: Optional[GitHubInstanceConfig] = Field(
        default=None, description='GitHub target'
    )
    polling: PollingConfig = Field(
        default_factory=PollingConfig, description='Polling and retry settings'
    )
    pipeline_test: PipelineTestConfig = Field(
        default_factory=PipelineTestConfig, description='Pipeline test settings'
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description='Logging settings'
    )

    def require_ado(self) -> AdoInstanceConfig:
        """Return the Azure DevOps section or fail if it is missing."""
        if self.ado is None:
            raise ConfigurationError(
                'Azure DevOps is not configured. Set ADO_PAT or add an "ado" section.'
            )
        return self.ado

    def require_github(self) -> GitHubInstanceConfig:
        """Return the GitHub section or fail if it is missing."""
        if self.github is None:
            raise ConfigurationError(
                'GitHub is not configured. Set GH_PAT or add a "github" section.'
            )
        return self.github

    @classmethod
    def from_file(cls, config_path: str) -> 'Config':
        """Load configuration from YAML file."""
        config_file = Path(config_path)

        if not config_file.exists():
            raise FileNotFoundError(f'Configuration file not found: {config_path}')

        with open(config_file, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f) or {}

        return cls(**config_data)

    @classmethod
    def from_env(cls) -> 'Config':
        """Load configuration from environment variables."""
        # Load .env file if it exists
        load_dotenv()

        config_data = {
            'polling': {
                'migration_wait_interval': os.getenv('MIGRATION_WAIT_INTERVAL'),
                'build_poll_interval': os.getenv('BUILD_POLL_INTERVAL'),
                'monitor_timeout_minutes': os.getenv('MONITOR_TIMEOUT_MINUTES'),
            },
            'pipeline_test': {
                'max_concurrent_tests': os.getenv('MAX_CONCURRENT_TESTS'),
                'report_path': os.getenv('REPORT_PATH'),
            },
            'logging': {
                'level': os.getenv('LOG_LEVEL', 'INFO'),
                'file': os.getenv('LOG_FILE'),
            },
        }

        if os.getenv('ADO_PAT'):
            config_data['ado'] = {
                'pat': os.getenv('ADO_PAT'),
                'url': os.getenv('ADO_SERVER_URL'),
            }
        if os.getenv('GH_PAT'):
            config_data['github'] = {
                'token': os.getenv('GH_PAT'),
                'api_url': os.getenv('GITHUB_API_URL'),
            }

        # Remove None values
        config_data = cls._remove_none_values(config_data)

        return cls(**config_data)

    @staticmethod
    def _remove_none_values(data: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively remove None values from dictionary."""
        if isinstance(data, dict):
            return {
                k: Config._remove_none_values(v)
                for k, v in data.items()
                if v is not None
            }
        return data

    def to_file(self, config_path: str) -> None:
        """Save configuration to YAML file."""
        config_file = Path(config_path)
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, 'w', encoding='utf-8') as f:
            yaml.dump(
                self.model_dump(exclude_none=True),
                f,
                default_flow_style=False,
                indent=2,
                sort_keys=False,
            )

    @staticmethod
    def create_template(output_path: str) -> None:
        """Create a configuration template file."""
        template_config = {
            'ado': {
                'url': 'https://dev.azure.com',
                'pat': 'your-azure-devops-personal-access-token',
                'timeout': 30,
            },
            'github': {
                'api_url': 'https://api.github.com',
                'token': 'your-github-personal-access-token',
                'timeout': 30,
            },
            'polling': {
                'migration_wait_interval': 10,
                'build_poll_interval': 30,
                'monitor_timeout_minutes': 30,
                'retry_attempts': 6,
                'retry_interval': 4,
            },
            'pipeline_test': {
                'max_concurrent_tests': 3,
                'report_path': 'pipeline-test-report.json',
            },
            'logging': {
                'level': 'INFO',
                'file': 'migration.log',
            },
        }

        config_file = Path(output_path)
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, 'w', encoding='utf-8') as f:
            yaml.dump(
                template_config, f, default_flow_style=False, indent=2, sort_keys=False
            )
