"""Tool configuration for repo-migrate."""

import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, validator

_CHANGE_ID = re.compile(r'^I[0-9a-f]{40}$')


class WorkflowOptions(BaseModel):
    """Options that change how a workflow runs."""

    dry_run: bool = Field(default=False, description='Run without publishing anything')
    force: bool = Field(
        default=False, description='Migrate even if the destination is ahead or unrelated'
    )
    change_request_parent: Optional[str] = Field(
        default=None, description='Destination commit to use as baseline for change requests'
    )
    last_revision: Optional[str] = Field(
        default=None, description='Last migrated origin revision, overrides the destination'
    )
    ignore_noop: bool = Field(
        default=False, description='Only warn about transformations and changes with no effect'
    )
    check_last_rev_state: bool = Field(
        default=False, description='Check that the last migrated revision matches the destination'
    )
    read_config_from_change: bool = Field(
        default=False, description='Load the configuration from the origin for every change'
    )
    workdir: Optional[str] = Field(
        default=None, description='Directory for checkouts. A temporary one if not set'
    )


class GitConfig(BaseModel):
    """Git operations configuration."""

    committer_name: str = Field(default='Repo Migrate', description='Git committer name')
    committer_email: str = Field(
        default='repo-migrate@localhost', description='Git committer email'
    )
    repo_storage: Optional[str] = Field(
        default=None,
        description='Directory to cache origin repositories. Defaults to ~/.cache/repo-migrate',
    )
    temp_dir: Optional[str] = Field(
        default=None,
        description='Custom temporary directory for git operations. If not specified, uses system temp directory.',
    )
    timeout: int = Field(default=3600, description='Git operation timeout in seconds')
    first_commit: bool = Field(
        default=False, description='Allow pushing to an empty or missing destination branch'
    )
    allow_empty_diff: bool = Field(
        default=False, description='Create a commit even if the tree did not change'
    )

    @validator('temp_dir')
    def validate_temp_dir(cls, v):
        """Validate temp directory path."""
        if v is not None:
            temp_path = Path(v)
            if not temp_path.is_absolute():
                raise ValueError('temp_dir must be an absolute path')
            temp_path.mkdir(parents=True, exist_ok=True)
            if not temp_path.is_dir():
                raise ValueError(f'temp_dir path is not a directory: {v}')
        return v

    @validator('timeout')
    def validate_timeout(cls, v):
        """Validate timeout is positive."""
        if v <= 0:
            raise ValueError('Git timeout must be positive')
        return v

    def storage_dir(self) -> Path:
        if self.repo_storage:
            return Path(self.repo_storage)
        return Path.home() / '.cache' / 'repo-migrate'


class FolderConfig(BaseModel):
    """Local folder origin and destination configuration."""

    destination_folder: Optional[str] = Field(
        default=None, description='Folder destination directory. A temporary one if not set'
    )
    origin_author: str = Field(
        default='Repo Migrate <noreply@repo-migrate.local>',
        description='Author used for changes read from a folder',
    )
    origin_message: str = Field(
        default='Project import generated by repo-migrate',
        description='Message used for changes read from a folder',
    )
    materialize_outside_symlinks: bool = Field(
        default=False, description='Copy the target of symlinks pointing outside the folder'
    )


class GerritConfig(BaseModel):
    """Gerrit destination configuration."""

    change_id: Optional[str] = Field(
        default=None, description='Change-Id to use instead of a generated one'
    )
    http_user: Optional[str] = Field(default=None, description='User for the REST API')
    http_password: Optional[str] = Field(default=None, description='HTTP password for the REST API')
    timeout: int = Field(default=30, description='Request timeout in seconds')

    @validator('change_id')
    def validate_change_id(cls, v):
        """Validate the Change-Id format."""
        if v is not None and not _CHANGE_ID.match(v):
            raise ValueError(f"Invalid Change-Id '{v}'. Expected 'I' followed by 40 hex chars")
        return v

    @validator('timeout')
    def validate_timeout(cls, v):
        """Validate timeout is positive."""
        if v <= 0:
            raise ValueError('Gerrit timeout must be positive')
        return v


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default='WARNING', description='Log level')
    file: Optional[str] = Field(default=None, description='Log file path')
    format: Optional[str] = Field(default=None, description='Log format for the terminal')

    @validator('level')
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'Log level must be one of: {valid_levels}')
        return v.upper()


class Config(BaseModel):
    """Main configuration class for repo-migrate."""

    workflow: WorkflowOptions = Field(
        default_factory=WorkflowOptions, description='Workflow run options'
    )
    git: GitConfig = Field(default_factory=GitConfig, description='Git operations settings')
    folder: FolderConfig = Field(default_factory=FolderConfig, description='Folder settings')
    gerrit: GerritConfig = Field(default_factory=GerritConfig, description='Gerrit settings')
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description='Logging settings'
    )

    class Config:
        """Pydantic configuration."""

        extra = 'forbid'  # Don't allow extra fields

    @classmethod
    def from_file(cls, config_path: str) -> 'Config':
        """Load configuration from YAML file."""
        config_file = Path(config_path)

        if not config_file.exists():
            raise FileNotFoundError(f'Configuration file not found: {config_path}')

        with open(config_file, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f)

        return cls(**(config_data or {}))

    @classmethod
    def from_env(cls) -> 'Config':
        """Load configuration from environment variables."""
        # Load .env file if it exists
        load_dotenv()

        config_data = {
            'workflow': {
                'workdir': os.getenv('REPO_MIGRATE_WORKDIR'),
            },
            'git': {
                'committer_name': os.getenv('GIT_COMMITTER_NAME'),
                'committer_email': os.getenv('GIT_COMMITTER_EMAIL'),
                'repo_storage': os.getenv('REPO_MIGRATE_REPO_STORAGE'),
                'temp_dir': os.getenv('GIT_TEMP_DIR'),
                'timeout': _int_env('GIT_TIMEOUT'),
            },
            'gerrit': {
                'http_user': os.getenv('GERRIT_HTTP_USER'),
                'http_password': os.getenv('GERRIT_HTTP_PASSWORD'),
            },
            'logging': {
                'level': os.getenv('LOG_LEVEL'),
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

    def to_file(self, config_path: str) -> None:
        """Save configuration to YAML file."""
        config_file = Path(config_path)
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, 'w', encoding='utf-8') as f:
            yaml.dump(
                self.dict(), f, default_flow_style=False, indent=2, sort_keys=False
            )


def _int_env(name: str) -> Optional[int]:
    value = os.getenv(name)
    return int(value) if value else None
