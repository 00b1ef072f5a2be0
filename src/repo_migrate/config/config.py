"""Configuration management for Repository Migration Tool."""

from typing import Optional, Dict, Any
from pathlib import Path
import os

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator
import yaml
from dotenv import find_dotenv, load_dotenv


VALID_VISIBILITIES = ('private', 'internal', 'public')


class ServiceConfig(BaseModel):
    """HTTP settings shared by every remote service."""

    model_config = ConfigDict(extra='forbid')

    api_url: str = Field(..., description='Base URL of the service API')
    timeout: int = Field(default=30, description='Request timeout in seconds')
    rate_limit_per_second: float = Field(
        default=10.0, description='API requests per second limit'
    )
    max_retries: int = Field(
        default=3, description='Retries for transient failures before giving up'
    )
    retry_delay: float = Field(
        default=1.0, description='Initial backoff delay between retries in seconds'
    )

    @field_validator('api_url')
    @classmethod
    def validate_url(cls, v):
        """Validate API URL format."""
        if not v.startswith(('http://', 'https://')):
            raise ValueError('URL must start with http:// or https://')
        return v.rstrip('/')

    @field_validator('rate_limit_per_second')
    @classmethod
    def validate_rate_limit(cls, v):
        """Validate rate limit is positive."""
        if v <= 0:
            raise ValueError('Rate limit must be positive')
        return v

    @field_validator('max_retries')
    @classmethod
    def validate_max_retries(cls, v):
        """Validate retry budget is not negative."""
        if v < 0:
            raise ValueError('max_retries cannot be negative')
        return v


class BitbucketConfig(ServiceConfig):
    """Configuration for the Bitbucket Cloud source workspace."""

    api_url: str = Field(
        default='https://api.bitbucket.org/2.0', description='Bitbucket API URL'
    )
    username: str = Field(..., description='Bitbucket username')
    app_password: SecretStr = Field(..., description='Bitbucket app password')
    workspace: str = Field(..., description='Workspace holding the repositories')


class GitHubConfig(ServiceConfig):
    """Configuration for the destination GitHub organization."""

    api_url: str = Field(default='https://api.github.com', description='GitHub API URL')
    username: str = Field(..., description='GitHub username')
    token: SecretStr = Field(..., description='Personal access token')
    organization: str = Field(..., description='Destination organization')


class CircleCIConfig(ServiceConfig):
    """Configuration for the optional CircleCI capability."""

    api_url: str = Field(default='https://circleci.com/api', description='CircleCI API URL')
    enabled: bool = Field(default=False, description='Enable CircleCI migration')
    token: Optional[SecretStr] = Field(default=None, description='CircleCI API token')
    bitbucket_org_id: Optional[str] = Field(
        default=None, description='CircleCI organization id of the Bitbucket workspace'
    )
    github_org_id: Optional[str] = Field(
        default=None, description='CircleCI organization id of the GitHub organization'
    )
    export_attempts: int = Field(
        default=5, description='Attempts to export environment variables'
    )

    @model_validator(mode='after')
    def validate_enabled_settings(self):
        """Ensure an enabled CircleCI capability has credentials."""
        if self.enabled:
            missing = [
                name
                for name in ('token', 'bitbucket_org_id', 'github_org_id')
                if not getattr(self, name)
            ]
            if missing:
                raise ValueError(
                    f'CircleCI is enabled but missing: {", ".join(missing)}'
                )
        return self


class GitConfig(BaseModel):
    """Git mirror operations configuration."""

    model_config = ConfigDict(extra='forbid')

    pull_ssh_key: Optional[SecretStr] = Field(
        default=None, description='Private key with read access to the source'
    )
    pull_ssh_key_file: Optional[str] = Field(
        default=None, description='Path to the private key used for cloning'
    )
    push_ssh_key: Optional[SecretStr] = Field(
        default=None, description='Private key with write access to the destination'
    )
    push_ssh_key_file: Optional[str] = Field(
        default=None, description='Path to the private key used for pushing'
    )
    temp_dir: Optional[str] = Field(
        default=None,
        description='Custom temporary directory for git operations. If not specified, uses system temp directory.',
    )
    timeout: int = Field(
        default=3600, description='Git operation timeout in seconds (default: 1 hour)'
    )
    cleanup_temp: bool = Field(
        default=True,
        description='Whether to cleanup temporary directories after migration',
    )

    @field_validator('temp_dir')
    @classmethod
    def validate_temp_dir(cls, v):
        """Validate temp directory path."""
        if v is not None and not Path(v).is_absolute():
            raise ValueError('temp_dir must be an absolute path')
        return v

    @field_validator('timeout')
    @classmethod
    def validate_timeout(cls, v):
        """Validate timeout is positive."""
        if v <= 0:
            raise ValueError('Git timeout must be positive')
        return v

    def resolve_key(self, purpose: str) -> Optional[str]:
        """Return the private key text for ``pull`` or ``push``.

        Inline keys win over key files. Returns None when neither is set, in
        which case git falls back to the operator's own SSH setup.
        """
        if purpose not in ('pull', 'push'):
            raise ValueError(f'Unknown key purpose: {purpose}')

        inline = getattr(self, f'{purpose}_ssh_key')
        if inline is not None:
            return inline.get_secret_value()

        key_file = getattr(self, f'{purpose}_ssh_key_file')
        if key_file:
            return Path(key_file).expanduser().read_text(encoding='utf-8')

        return None


class MigrationConfig(BaseModel):
    """Execution policy settings."""

    model_config = ConfigDict(extra='forbid')

    default_visibility: str = Field(
        default='private', description='Visibility of created repositories'
    )
    stop_on_failure: bool = Field(
        default=False, description='Abort the run at the first failed action'
    )
    strict_rerun: bool = Field(
        default=False,
        description='Treat already existing repositories and teams as failures',
    )
    report_file: Optional[str] = Field(
        default=None, description='Persist the run report here after every action'
    )

    @field_validator('default_visibility')
    @classmethod
    def validate_visibility(cls, v):
        """Validate repository visibility."""
        if v not in VALID_VISIBILITIES:
            raise ValueError(f'Visibility must be one of: {list(VALID_VISIBILITIES)}')
        return v


class LoggingConfig(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(extra='forbid')

    level: str = Field(default='INFO', description='Log level')
    file: Optional[str] = Field(default=None, description='Log file path')
    format: Optional[str] = Field(default=None, description='Console log format')

    @field_validator('level')
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'Log level must be one of: {valid_levels}')
        return v.upper()


class Config(BaseModel):
    """Main configuration class for Repository Migration Tool."""

    model_config = ConfigDict(extra='forbid')

    bitbucket: BitbucketConfig = Field(..., description='Source Bitbucket workspace')
    github: GitHubConfig = Field(..., description='Destination GitHub organization')
    circleci: CircleCIConfig = Field(
        default_factory=CircleCIConfig, description='Optional CircleCI settings'
    )
    git: GitConfig = Field(
        default_factory=GitConfig, description='Git operations settings'
    )
    migration: MigrationConfig = Field(
        default_factory=MigrationConfig, description='Migration settings'
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description='Logging settings'
    )

    @property
    def ci_enabled(self) -> bool:
        """Whether the CircleCI capability is switched on."""
        return self.circleci.enabled

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
        # Load .env from the working directory if it exists
        load_dotenv(find_dotenv(usecwd=True))

        config_data = {
            'bitbucket': {
                'username': os.getenv('BITBUCKET_USERNAME'),
                'app_password': os.getenv('BITBUCKET_APP_PASSWORD'),
                'workspace': os.getenv('BITBUCKET_WORKSPACE'),
            },
            'github': {
                'username': os.getenv('GITHUB_USERNAME'),
                'token': os.getenv('GITHUB_TOKEN'),
                'organization': os.getenv('GITHUB_ORGANIZATION'),
            },
            'circleci': {
                'enabled': _env_flag('CIRCLECI_ENABLED', False),
                'token': os.getenv('CIRCLECI_TOKEN'),
                'bitbucket_org_id': os.getenv('CIRCLECI_BITBUCKET_ORG_ID'),
                'github_org_id': os.getenv('CIRCLECI_GITHUB_ORG_ID'),
            },
            'git': {
                'pull_ssh_key_file': os.getenv('GIT_PULL_SSH_KEY_FILE'),
                'push_ssh_key_file': os.getenv('GIT_PUSH_SSH_KEY_FILE'),
                'temp_dir': os.getenv('GIT_TEMP_DIR'),
                'timeout': int(os.getenv('GIT_TIMEOUT', 3600)),
                'cleanup_temp': _env_flag('GIT_CLEANUP_TEMP', True),
            },
            'migration': {
                'stop_on_failure': _env_flag('MIGRATION_STOP_ON_FAILURE', False),
                'strict_rerun': _env_flag('MIGRATION_STRICT_RERUN', False),
                'report_file': os.getenv('MIGRATION_REPORT_FILE'),
            },
            'logging': {
                'level': os.getenv('LOG_LEVEL', 'INFO'),
                'file': os.getenv('LOG_FILE'),
            },
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

    @staticmethod
    def create_template(output_path: str) -> None:
        """Create a configuration template file."""
        template_config = {
            'bitbucket': {
                'username': 'your-bitbucket-username',
                'app_password': 'your-bitbucket-app-password',
                'workspace': 'your-workspace',
                'timeout': 30,
            },
            'github': {
                'username': 'your-github-username',
                'token': 'your-github-personal-access-token',
                'organization': 'your-organization',
                'timeout': 30,
            },
            'circleci': {
                'enabled': False,
                'token': 'your-circleci-token',
                'bitbucket_org_id': 'circleci-org-id-of-bitbucket-workspace',
                'github_org_id': 'circleci-org-id-of-github-organization',
            },
            'git': {
                'pull_ssh_key_file': '~/.ssh/bitbucket_deploy_key',
                'push_ssh_key_file': '~/.ssh/github_deploy_key',
                'timeout': 3600,
                'cleanup_temp': True,
            },
            'migration': {
                'default_visibility': 'private',
                'stop_on_failure': False,
                'strict_rerun': False,
                'report_file': 'migration-report.json',
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


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')
