"""Tests for configuration management."""

import pytest
import yaml
from pydantic import ValidationError

from repo_migrate.config.config import (
    BitbucketConfig,
    CircleCIConfig,
    Config,
    GitConfig,
    GitHubConfig,
    LoggingConfig,
    MigrationConfig,
)

MINIMAL = {
    'bitbucket': {'username': 'bb-user', 'app_password': 'bb-pass', 'workspace': 'ws'},
    'github': {'username': 'gh-user', 'token': 'gh-token', 'organization': 'acme'},
}


class TestServiceConfig:
    """Test service configuration models."""

    def test_defaults(self):
        """Test default API URLs and retry settings."""
        config = GitHubConfig(username='u', token='gh-secret', organization='acme')

        assert config.api_url == 'https://api.github.com'
        assert config.max_retries == 3
        assert config.token.get_secret_value() == 'gh-secret'
        assert 'gh-secret' not in repr(config)

    def test_url_validation(self):
        """Test API URL validation."""
        with pytest.raises(ValidationError):
            BitbucketConfig(
                api_url='api.bitbucket.org', username='u', app_password='p', workspace='w'
            )

        config = BitbucketConfig(
            api_url='https://bitbucket.example.com/2.0/',
            username='u',
            app_password='p',
            workspace='w',
        )
        assert config.api_url == 'https://bitbucket.example.com/2.0'

    def test_invalid_numbers(self):
        """Test rate limit and retries must be sensible."""
        with pytest.raises(ValidationError):
            GitHubConfig(username='u', token='t', organization='o', rate_limit_per_second=0)
        with pytest.raises(ValidationError):
            GitHubConfig(username='u', token='t', organization='o', max_retries=-1)

    def test_missing_token(self):
        """Test credentials are required."""
        with pytest.raises(ValidationError):
            GitHubConfig(username='u', organization='acme')

    def test_unknown_field(self):
        """Test typos in settings are reported."""
        with pytest.raises(ValidationError):
            GitHubConfig(username='u', token='t', organization='o', tokne='x')


class TestCircleCIConfig:
    """Test the optional CircleCI settings."""

    def test_disabled_by_default(self):
        """Test CircleCI needs no settings while disabled."""
        config = CircleCIConfig()

        assert config.enabled is False
        assert config.token is None

    def test_enabled_requires_credentials(self):
        """Test an enabled capability must be configured."""
        with pytest.raises(ValidationError, match='github_org_id'):
            CircleCIConfig(enabled=True, token='t', bitbucket_org_id='b')


class TestGitConfig:
    """Test git settings."""

    def test_temp_dir_must_be_absolute(self):
        """Test relative temp directories are refused."""
        with pytest.raises(ValidationError):
            GitConfig(temp_dir='tmp/git')

    def test_timeout_must_be_positive(self):
        """Test timeouts must be positive."""
        with pytest.raises(ValidationError):
            GitConfig(timeout=0)

    def test_inline_key_wins(self, tmp_path):
        """Test inline keys are preferred over key files."""
        key_file = tmp_path / 'key'
        key_file.write_text('FILE')

        config = GitConfig(push_ssh_key='INLINE', push_ssh_key_file=str(key_file))

        assert config.resolve_key('push') == 'INLINE'

    def test_unknown_key_purpose(self):
        """Test only pull and push keys exist."""
        with pytest.raises(ValueError):
            GitConfig().resolve_key('deploy')


class TestMigrationAndLoggingConfig:
    """Test policy and logging settings."""

    def test_visibility_validation(self):
        """Test repository visibility values."""
        assert MigrationConfig(default_visibility='internal').default_visibility == 'internal'
        with pytest.raises(ValidationError):
            MigrationConfig(default_visibility='hidden')

    def test_log_level_normalized(self):
        """Test log levels are upper-cased and validated."""
        assert LoggingConfig(level='debug').level == 'DEBUG'
        with pytest.raises(ValidationError):
            LoggingConfig(level='LOUD')


class TestConfig:
    """Test main configuration."""

    def test_config_creation(self):
        """Test configuration with defaults."""
        config = Config(**MINIMAL)

        assert config.bitbucket.workspace == 'ws'
        assert config.github.organization == 'acme'
        assert config.ci_enabled is False
        assert config.migration.stop_on_failure is False
        assert config.migration.strict_rerun is False
        assert config.git.cleanup_temp is True

    def test_config_from_file(self, tmp_path):
        """Test configuration loading from YAML file."""
        config_content = """
bitbucket:
  username: bb-user
  app_password: bb-pass
  workspace: ws

github:
  username: gh-user
  token: gh-token
  organization: acme

circleci:
  enabled: true
  token: circle-token
  bitbucket_org_id: bb-org
  github_org_id: gh-org

migration:
  stop_on_failure: true
  report_file: report.json
"""
        path = tmp_path / 'config.yaml'
        path.write_text(config_content)

        config = Config.from_file(str(path))

        assert config.ci_enabled is True
        assert config.circleci.token.get_secret_value() == 'circle-token'
        assert config.migration.stop_on_failure is True
        assert config.migration.report_file == 'report.json'

    def test_config_from_env(self, monkeypatch, tmp_path):
        """Test configuration loading from environment variables."""
        monkeypatch.chdir(tmp_path)
        env_vars = {
            'BITBUCKET_USERNAME': 'bb-user',
            'BITBUCKET_APP_PASSWORD': 'bb-pass',
            'BITBUCKET_WORKSPACE': 'ws',
            'GITHUB_USERNAME': 'gh-user',
            'GITHUB_TOKEN': 'gh-token',
            'GITHUB_ORGANIZATION': 'acme',
            'MIGRATION_STRICT_RERUN': 'true',
            'GIT_TIMEOUT': '60',
            'LOG_LEVEL': 'warning',
        }
        for key, value in env_vars.items():
            monkeypatch.setenv(key, value)

        config = Config.from_env()

        assert config.bitbucket.app_password.get_secret_value() == 'bb-pass'
        assert config.github.organization == 'acme'
        assert config.migration.strict_rerun is True
        assert config.git.timeout == 60
        assert config.logging.level == 'WARNING'
        assert config.ci_enabled is False

    def test_config_from_dotenv(self, monkeypatch, tmp_path):
        """Test a .env file in the working directory is read."""
        monkeypatch.chdir(tmp_path)
        for key in ('BITBUCKET_USERNAME', 'BITBUCKET_APP_PASSWORD', 'BITBUCKET_WORKSPACE',
                    'GITHUB_USERNAME', 'GITHUB_TOKEN', 'GITHUB_ORGANIZATION'):
            monkeypatch.delenv(key, raising=False)
        (tmp_path / '.env').write_text(
            'BITBUCKET_USERNAME=bb-user\n'
            'BITBUCKET_APP_PASSWORD=bb-pass\n'
            'BITBUCKET_WORKSPACE=dotenv-ws\n'
            'GITHUB_USERNAME=gh-user\n'
            'GITHUB_TOKEN=gh-token\n'
            'GITHUB_ORGANIZATION=acme\n'
        )

        # monkeypatch also removes the variables load_dotenv sets
        config = Config.from_env()

        assert config.bitbucket.workspace == 'dotenv-ws'

    def test_missing_env_config(self, monkeypatch, tmp_path):
        """Test missing credentials fail validation."""
        monkeypatch.chdir(tmp_path)
        for key in ('BITBUCKET_USERNAME', 'GITHUB_TOKEN'):
            monkeypatch.delenv(key, raising=False)

        with pytest.raises(ValidationError):
            Config.from_env()

    def test_invalid_config_file(self, tmp_path):
        """Test handling of invalid configuration file."""
        path = tmp_path / 'config.yaml'
        path.write_text('invalid: yaml: content:')

        with pytest.raises(yaml.YAMLError):
            Config.from_file(str(path))

    def test_unknown_section(self, tmp_path):
        """Test unknown sections are reported."""
        path = tmp_path / 'config.yaml'
        path.write_text(yaml.dump({**MINIMAL, 'gitlab': {}}))

        with pytest.raises(ValidationError):
            Config.from_file(str(path))

    def test_missing_config_file(self):
        """Test handling of missing configuration file."""
        with pytest.raises(FileNotFoundError):
            Config.from_file('/nonexistent/config.yaml')

    def test_create_template(self, tmp_path):
        """Test the template contains every section."""
        path = tmp_path / 'nested' / 'config.yaml'

        Config.create_template(str(path))
        data = yaml.safe_load(path.read_text())

        assert list(data) == ['bitbucket', 'github', 'circleci', 'git', 'migration', 'logging']
        assert Config(**data).github.organization == 'your-organization'
