"""Capability interfaces the executor depends on.

Each interface wraps one remote service. Implementations retry transient
failures themselves and raise :mod:`repo_migrate.api.exceptions` errors (or
:class:`~repo_migrate.git.GitOperationError`) once their retry budget is spent.
"""

from abc import ABC, abstractmethod
from typing import Dict, List

from ..models.repository import CreateRepositorySpec, Project, RepoHandle, Team


class SourceHost(ABC):
    """Service the repositories are moved away from."""

    @abstractmethod
    def fetch_repository(self, identifier: str) -> RepoHandle:
        """Look up a repository. Raises NotFoundError when it is missing."""

    @abstractmethod
    def fetch_access_list(self, identifier: str) -> List[str]:
        """Logins of the principals with access to a repository."""

    @abstractmethod
    def list_projects(self) -> List[Project]:
        """Projects available for selection."""

    @abstractmethod
    def list_repositories(self, project_key: str) -> List[RepoHandle]:
        """Repositories of one project."""


class DestinationHost(ABC):
    """Service the repositories are moved into."""

    @abstractmethod
    def create_repository(self, spec: CreateRepositorySpec) -> RepoHandle:
        """Create an empty repository. Raises AlreadyExistsError if taken."""

    @abstractmethod
    def get_repository(self, identifier: str) -> RepoHandle:
        """Look up a repository. Raises NotFoundError when it is missing."""

    @abstractmethod
    def push_full_history(self, source: RepoHandle, destination: RepoHandle) -> None:
        """Mirror every ref of ``source`` into ``destination``."""

    @abstractmethod
    def set_team_permission(self, repository: str, team: str, level: str) -> None:
        """Grant ``team`` the ``level`` permission on ``repository``."""

    @abstractmethod
    def set_default_branch(self, repository: str, branch: str) -> None:
        """Raises InvalidBranchError when the branch does not exist."""

    @abstractmethod
    def create_team(self, name: str, privacy: str = 'closed') -> Team:
        """Create a team. Raises AlreadyExistsError if taken."""

    @abstractmethod
    def add_team_member(self, team: str, member: str) -> None:
        """Add ``member`` to the team with slug ``team``."""

    @abstractmethod
    def list_teams(self) -> List[Team]:
        """Teams available for selection."""


class CIHost(ABC):
    """Optional continuous integration service."""

    @abstractmethod
    def migrate_project_config(self, identifier: str) -> None:
        """Move the CI settings of the project for ``identifier``."""

    @abstractmethod
    def create_context(self, name: str, variables: Dict[str, str]) -> bool:
        """Create the context ``name`` unless it exists and set its variables.

        Returns:
            True when the context was created, False when it already existed
        """

    @abstractmethod
    def start_pipeline(self, identifier: str, branch: str) -> None:
        """Follow the project for ``identifier`` and build ``branch``."""
