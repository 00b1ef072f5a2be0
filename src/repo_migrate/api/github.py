"""GitHub client: the destination host."""

import base64
from typing import Any, Dict, List, Optional

import requests

from ..config.config import GitHubConfig
from ..git.operations import GitOperationError, GitOperations
from ..migration.capabilities import DestinationHost
from ..models.repository import Branch, CreateRepositorySpec, RepoHandle, Team
from .client import APIClient
from .exceptions import AlreadyExistsError, InvalidBranchError, ValidationError


class GitHubClient(APIClient, DestinationHost):
    """Creates repositories and teams inside one organization."""

    service_name = 'github'

    def __init__(
        self,
        config: GitHubConfig,
        git: Optional[GitOperations] = None,
        **kwargs,
    ):
        """Initialize GitHub client.

        Args:
            config: GitHub organization configuration
            git: Git operations used to mirror repository history
            **kwargs: Passed on to :class:`APIClient`
        """
        self.organization = config.organization
        self.git = git or GitOperations()
        super().__init__(config, **kwargs)

    def _configure_auth(self, session: requests.Session) -> None:
        session.headers.update(
            {
                'Authorization': f'Bearer {self.config.token.get_secret_value()}',
                'Accept': 'application/vnd.github+json',
                'X-GitHub-Api-Version': '2022-11-28',
                'User-Agent': f'{self.user_agent} ({self.config.username})',
            }
        )

    def _connection_endpoint(self) -> str:
        return f'/orgs/{self.organization}'

    def _full_name(self, identifier: str) -> str:
        identifier = identifier.strip('/')
        if '/' in identifier:
            return identifier
        return f'{self.organization}/{identifier}'

    def create_repository(self, spec: CreateRepositorySpec) -> RepoHandle:
        body = {
            'name': spec.name,
            'private': spec.visibility != 'public',
            'visibility': spec.visibility,
            'auto_init': spec.auto_init,
        }
        try:
            response = self.post(f'/orgs/{spec.owner}/repos', data=body)
        except ValidationError as e:
            if _mentions_already_exists(e):
                raise AlreadyExistsError(
                    f'github: repository {spec.full_name} already exists',
                    status_code=e.status_code,
                    response_data=e.response_data,
                    service=self.service_name,
                ) from e
            raise

        self.logger.info(f'Created repository {spec.full_name}')
        return self._to_handle(response.data)

    def get_repository(self, identifier: str) -> RepoHandle:
        response = self.get(f'/repos/{self._full_name(identifier)}')
        return self._to_handle(response.data)

    def push_full_history(self, source: RepoHandle, destination: RepoHandle) -> None:
        for handle in (source, destination):
            if not handle.clone_url:
                raise GitOperationError(
                    f'{handle.service} repository {handle.full_name} has no SSH clone URL'
                )
        self.git.mirror(source.clone_url, destination.clone_url, label=destination.full_name)

    def set_team_permission(self, repository: str, team: str, level: str) -> None:
        full_name = self._full_name(repository)
        self.put(
            f'/orgs/{self.organization}/teams/{team}/repos/{full_name}',
            data={'permission': level},
        )
        self.logger.info(f'Granted {level} on {full_name} to team {team}')

    def set_default_branch(self, repository: str, branch: str) -> None:
        full_name = self._full_name(repository)
        try:
            self.patch(f'/repos/{full_name}', data={'default_branch': branch})
        except ValidationError as e:
            raise InvalidBranchError(
                f'github: cannot use {branch!r} as default branch of {full_name}: {e}',
                status_code=e.status_code,
                response_data=e.response_data,
                service=self.service_name,
            ) from e
        self.logger.info(f'Set default branch of {full_name} to {branch}')

    def create_team(self, name: str, privacy: str = 'closed') -> Team:
        try:
            response = self.post(
                f'/orgs/{self.organization}/teams',
                data={'name': name, 'privacy': privacy},
            )
        except ValidationError as e:
            if _mentions_already_exists(e):
                raise AlreadyExistsError(
                    f'github: team {name} already exists',
                    status_code=e.status_code,
                    response_data=e.response_data,
                    service=self.service_name,
                ) from e
            raise
        return self._to_team(response.data)

    def add_team_member(self, team: str, member: str) -> None:
        self.put(
            f'/orgs/{self.organization}/teams/{team}/memberships/{member}',
            data={'role': 'member'},
        )

    def list_teams(self) -> List[Team]:
        teams = [
            self._to_team(item)
            for item in self.get_paginated(f'/orgs/{self.organization}/teams')
        ]
        return [team for team in teams if team.privacy != 'secret']

    def list_team_repositories(self, team: str) -> List[RepoHandle]:
        return [
            self._to_handle(item)
            for item in self.get_paginated(f'/orgs/{self.organization}/teams/{team}/repos')
        ]

    def list_members(self) -> List[str]:
        return [
            item['login']
            for item in self.get_paginated(f'/orgs/{self.organization}/members')
        ]

    def list_branches(self, identifier: str) -> List[Branch]:
        return [
            Branch(name=item['name'], commit=(item.get('commit') or {}).get('sha'))
            for item in self.get_paginated(f'/repos/{self._full_name(identifier)}/branches')
        ]

    def get_file_contents(self, identifier: str, path: str) -> str:
        """Text of the file at ``path`` on the default branch of ``identifier``.

        Raises:
            NotFoundError: The file does not exist
        """
        response = self.get(
            f'/repos/{self._full_name(identifier)}/contents/{path.lstrip("/")}'
        )
        return base64.b64decode(response.data['content']).decode('utf-8')

    def _to_handle(self, data: Dict[str, Any]) -> RepoHandle:
        return RepoHandle(
            full_name=data['full_name'],
            name=data['name'],
            clone_url=data.get('ssh_url'),
            default_branch=data.get('default_branch'),
            private=data.get('private'),
            service=self.service_name,
        )

    @staticmethod
    def _to_team(data: Dict[str, Any]) -> Team:
        return Team(
            id=data['id'],
            name=data['name'],
            slug=data['slug'],
            privacy=data.get('privacy') or 'closed',
        )


def _mentions_already_exists(error: ValidationError) -> bool:
    return 'already exists' in f'{error} {error.response_data}'.lower()
