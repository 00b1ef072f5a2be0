"""CircleCI client: the optional CI host."""

from typing import Any, Dict, List, Optional, Set

import requests
import yaml

from ..config.config import CircleCIConfig
from ..migration.capabilities import CIHost
from ..models.repository import CIContext
from .client import APIClient
from .exceptions import APIError, NotFoundError


class CircleCIClient(APIClient, CIHost):
    """Moves project environment variables from Bitbucket to GitHub projects.

    Also creates organization contexts on the GitHub side and starts the first
    pipeline of a migrated project.

    CircleCI answers the export request successfully even when no variable
    reached the target project yet, so the export is repeated until every
    variable shows up or ``config.export_attempts`` is used up.
    """

    service_name = 'circleci'

    def __init__(self, config: CircleCIConfig, source_workspace: str, **kwargs):
        """Initialize CircleCI client.

        Args:
            config: CircleCI configuration
            source_workspace: Bitbucket workspace the projects come from
            **kwargs: Passed on to :class:`APIClient`
        """
        self.source_workspace = source_workspace
        super().__init__(config, **kwargs)

    def _configure_auth(self, session: requests.Session) -> None:
        if self.config.token is not None:
            session.headers['Circle-Token'] = self.config.token.get_secret_value()

    def _connection_endpoint(self) -> str:
        return '/v2/me'

    def get_env_vars(self, project_slug: str) -> List[str]:
        """Names of the environment variables of ``vcs/org/repo``."""
        response = self.get(f'/v2/project/{project_slug}/envvar')
        return [item['name'] for item in (response.data or {}).get('items', [])]

    def export_environment(
        self, from_repository: str, to_repository: str, env_vars: List[str]
    ) -> None:
        self.post(
            f'/v1.1/project/bitbucket/{from_repository}/info/export-environment',
            data={
                'projects': [f'https://github.com/{to_repository}'],
                'env-vars': env_vars,
            },
        )

    def migrate_project_config(self, identifier: str) -> None:
        """Copy environment variables into the GitHub project ``identifier``.

        ``identifier`` is the destination ``org/repo``; the Bitbucket project
        with the same repository name in the source workspace is the origin.
        """
        repo_name = identifier.strip('/').split('/')[-1]
        source_repository = f'{self.source_workspace}/{repo_name}'

        env_vars = self.get_env_vars(f'bitbucket/{source_repository}')
        if not env_vars:
            self.logger.info(f'{source_repository} has no environment variables to move')
            return

        expected = set(env_vars)
        arrived: set = set()
        for attempt in range(1, self.config.export_attempts + 1):
            self.export_environment(source_repository, identifier, env_vars)
            try:
                arrived = set(self.get_env_vars(f'gh/{identifier}'))
            except NotFoundError:
                arrived = set()
            if expected <= arrived:
                self.logger.info(
                    f'Moved {len(env_vars)} environment variables from '
                    f'{source_repository} to {identifier} (attempt {attempt})'
                )
                return

        missing = sorted(expected - arrived)
        raise APIError(
            f'circleci: {len(missing)} of {len(expected)} environment variables did not '
            f'reach {identifier}: {", ".join(missing)}',
            service=self.service_name,
        )

    def org_id(self, vcs: str) -> str:
        """CircleCI organization id for ``vcs`` (``github`` or ``bitbucket``)."""
        if vcs == 'github':
            return self.config.github_org_id
        if vcs == 'bitbucket':
            return self.config.bitbucket_org_id
        raise ValueError(f'Unknown VCS: {vcs}')

    def _get_items(
        self, endpoint: str, params: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        """Collect every item of a v2 endpoint paginated with ``next_page_token``."""
        params = dict(params or {})
        items: List[Dict[str, Any]] = []
        while True:
            data = self.get(endpoint, params=params).data or {}
            items.extend(data.get('items', []))
            token = data.get('next_page_token')
            if not token:
                return items
            params = {**params, 'page-token': token}

    def list_contexts(self, vcs: str = 'github') -> List[CIContext]:
        """Contexts owned by the organization of ``vcs``."""
        items = self._get_items('/v2/context', params={'owner-id': self.org_id(vcs)})
        return [CIContext(id=item['id'], name=item['name']) for item in items]

    def list_context_variables(self, context_id: str) -> List[str]:
        """Names of the environment variables of a context."""
        items = self._get_items(f'/v2/context/{context_id}/environment-variable')
        return [item['variable'] for item in items]

    def find_context(self, name: str, vcs: str = 'github') -> Optional[CIContext]:
        return next((c for c in self.list_contexts(vcs) if c.name == name), None)

    def create_context(self, name: str, variables: Dict[str, str]) -> bool:
        """Create the GitHub side context ``name`` and set its variables.

        An existing context of that name is reused; its variables are
        overwritten with the given values.

        Returns:
            True if the context was created by this call
        """
        context = self.find_context(name)
        created = context is None
        if created:
            response = self.post(
                '/v2/context',
                data={
                    'name': name,
                    'owner': {'id': self.org_id('github'), 'type': 'organization'},
                },
            )
            context = CIContext(id=response.data['id'], name=response.data['name'])
            self.logger.info(f'Created context {name}')

        for variable, value in variables.items():
            self.put(
                f'/v2/context/{context.id}/environment-variable/{variable}',
                data={'value': value},
            )
        if variables:
            self.logger.info(f'Set {len(variables)} variables on context {name}')
        return created

    def start_pipeline(self, identifier: str, branch: str) -> None:
        """Follow the GitHub project ``org/repo`` and build ``branch``."""
        self.post(f'/v1.1/project/gh/{identifier}/follow', data={'branch': branch})
        self.logger.info(f'Started pipeline of {identifier} on {branch}')


def parse_config_contexts(text: str) -> Set[str]:
    """Context names referenced by the workflows of a ``.circleci/config.yml``.

    A job's ``context`` is either one name or a list of names. Unparseable
    configuration references no context.
    """
    try:
        config = yaml.safe_load(text)
    except yaml.YAMLError:
        return set()
    if not isinstance(config, dict):
        return set()

    contexts: Set[str] = set()
    workflows = config.get('workflows') or {}
    if not isinstance(workflows, dict):
        return contexts
    for workflow in workflows.values():
        if not isinstance(workflow, dict):
            continue
        for job in workflow.get('jobs') or []:
            if not isinstance(job, dict):
                continue
            for job_config in job.values():
                if not isinstance(job_config, dict):
                    continue
                context = job_config.get('context')
                if isinstance(context, str):
                    contexts.add(context)
                elif isinstance(context, list):
                    contexts.update(c for c in context if isinstance(c, str))
    return contexts
