"""Repository, project and team models returned by the capability clients."""

import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RepoHandle(BaseModel):
    """A repository as seen by one of the hosting services."""

    model_config = ConfigDict(frozen=True)

    full_name: str = Field(..., description='Owner-qualified name, e.g. acme/api')
    name: str = Field(..., description='Repository name')
    clone_url: Optional[str] = Field(default=None, description='SSH clone URL')
    default_branch: Optional[str] = Field(
        default=None, description='Default branch name'
    )
    private: Optional[bool] = Field(default=None, description='Repository is private')
    service: str = Field(..., description='Service hosting the repository')

    def __str__(self) -> str:
        if self.default_branch:
            return f'{self.full_name} (branch: {self.default_branch})'
        return self.full_name


class CreateRepositorySpec(BaseModel):
    """Request for a new destination repository."""

    owner: str = Field(..., description='Organization owning the repository')
    name: str = Field(..., description='Repository name')
    visibility: str = Field(default='private', description='Repository visibility')
    auto_init: bool = Field(default=False, description='Initialize with README')

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        """Validate repository name."""
        if not re.match(r'^[A-Za-z0-9._-]+$', v):
            raise ValueError(
                'Repository name can only contain letters, digits, ".", "_" and "-"'
            )
        return v

    @property
    def full_name(self) -> str:
        return f'{self.owner}/{self.name}'


class Project(BaseModel):
    """Bitbucket project grouping repositories."""

    key: str = Field(..., description='Project key')
    name: str = Field(..., description='Project name')
    uuid: Optional[str] = Field(default=None, description='Project UUID')

    def __str__(self) -> str:
        return f'{self.name} (Key: {self.key})'


class Team(BaseModel):
    """GitHub organization team."""

    id: int = Field(..., description='Team ID')
    name: str = Field(..., description='Team name')
    slug: str = Field(..., description='Team slug')
    privacy: str = Field(default='closed', description='Team privacy')

    def __str__(self) -> str:
        return self.name


def slugify_team_name(name: str) -> str:
    """Approximate the slug GitHub derives from a team name."""
    slug = re.sub(r'[^a-z0-9_]+', '-', name.strip().lower())
    return slug.strip('-')


class Branch(BaseModel):
    """Branch of a source repository."""

    name: str = Field(..., description='Branch name')
    commit: Optional[str] = Field(default=None, description='Head commit hash')


class CIContext(BaseModel):
    """CircleCI context owned by an organization."""

    id: str = Field(..., description='Context ID')
    name: str = Field(..., description='Context name')

    def __str__(self) -> str:
        return self.name
