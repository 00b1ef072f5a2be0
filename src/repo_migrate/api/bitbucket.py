"""Bitbucket Cloud client: the source host."""

from typing import Any, Dict, List, Optional

import requests

from ..config.config import BitbucketConfig
from ..migration.capabilities import SourceHost
from ..models.repository import Branch, Project, RepoHandle
from .client import APIClient


class BitbucketClient(APIClient, SourceHost):
    """Reads projects, repositories and permissions of one workspace."""

    service_name = 'bitbucket'

    def __init__(self, config: BitbucketConfig, **kwargs):
        self.workspace = config.workspace
        super().__init__(config, **kwargs)

    def _configure_auth(self, session: requests.Session) -> None:
        session.auth = (self.config.username, self.config.app_password.get_secret_value())

    def _connection_endpoint(self) -> str:
        return f'/workspaces/{self.workspace}'

    def _full_name(self, identifier: str) -> str:
        identifier = identifier.strip('/')
        if '/' in identifier:
            return identifier
        return f'{self.workspace}/{identifier}'

    def get_all_pages(
        self, endpoint: str, params: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        """Follow Bitbucket's ``next`` links and collect every ``values`` item."""
        items: List[Dict[str, Any]] = []
        response = self.get(endpoint, params=params)

        while True:
            page = response.data or {}
            items.extend(page.get('values', []))

            next_url = page.get('next')
            if not next_url:
                break
            response = self.get(next_url)

        self.logger.debug(f'Retrieved {len(items)} items from {endpoint}')
        return items

    def list_projects(self) -> List[Project]:
        values = self.get_all_pages(f'/workspaces/{self.workspace}/projects')
        return [
            Project(key=v['key'], name=v['name'], uuid=v.get('uuid')) for v in values
        ]

    def list_repositories(self, project_key: str) -> List[RepoHandle]:
        values = self.get_all_pages(
            f'/repositories/{self.workspace}',
            params={'q': f'project.key="{project_key}"', 'pagelen': 100},
        )
        return [self._to_handle(v) for v in values]

    def fetch_repository(self, identifier: str) -> RepoHandle:
        response = self.get(f'/repositories/{self._full_name(identifier)}')
        return self._to_handle(response.data)

    def fetch_access_list(self, identifier: str) -> List[str]:
        values = self.get_all_pages(
            f'/repositories/{self._full_name(identifier)}/permissions-config/users'
        )
        principals = []
        for entry in values:
            user = entry.get('user') or {}
            login = user.get('nickname') or user.get('display_name')
            if login:
                principals.append(login)
        return principals

    def list_branches(self, identifier: str) -> List[Branch]:
        values = self.get_all_pages(
            f'/repositories/{self._full_name(identifier)}/refs/branches',
            params={'pagelen': 100},
        )
        return [
            Branch(name=v['name'], commit=(v.get('target') or {}).get('hash'))
            for v in values
        ]

    def _to_handle(self, data: Dict[str, Any]) -> RepoHandle:
        clone_url = None
        for link in (data.get('links') or {}).get('clone', []):
            if link.get('name') == 'ssh':
                clone_url = link.get('href')
                break

        main_branch = data.get('mainbranch') or {}

        return RepoHandle(
            full_name=data['full_name'],
            name=data.get('name') or data['full_name'].split('/')[-1],
            clone_url=clone_url,
            default_branch=main_branch.get('name'),
            private=data.get('is_private'),
            service=self.service_name,
        )
