"""Shared fixtures and capability test doubles."""

from datetime import datetime, timezone

import pytest

from repo_migrate.api.exceptions import NotFoundError
from repo_migrate.migration.capabilities import CIHost, DestinationHost, SourceHost
from repo_migrate.models.plan import MigrationPlan
from repo_migrate.models.repository import (
    Branch,
    Project,
    RepoHandle,
    Team,
    slugify_team_name,
)


class RecordingHost:
    """Records every call and raises configured errors.

    ``fail(method, error, arg)`` makes ``method`` raise ``error``, either for
    every call or only when its first argument equals ``arg``. ``before`` maps
    method names to callables run before the call is answered.
    """

    service_name = 'fake'

    def __init__(self):
        self.calls = []
        self.errors = {}
        self.before = {}
        self.closed = False

    def fail(self, method, error, arg=None):
        self.errors[(method, arg)] = error

    def _call(self, method, *args):
        self.calls.append((method,) + args)
        if method in self.before:
            self.before[method](*args)
        key = args[0] if args else None
        error = self.errors.get((method, key)) or self.errors.get((method, None))
        if error is not None:
            raise error

    def methods(self):
        return [call[0] for call in self.calls]

    def test_connection(self):
        return True

    def close(self):
        self.closed = True


class FakeSource(RecordingHost, SourceHost):
    service_name = 'bitbucket'

    def __init__(self):
        super().__init__()
        self.projects = [Project(key='PRJ', name='Project')]
        self.repositories = []
        self.branches = {}

    def fetch_repository(self, identifier):
        self._call('fetch_repository', identifier)
        return RepoHandle(
            full_name=identifier,
            name=identifier.split('/')[-1],
            clone_url=f'git@bitbucket.org:{identifier}.git',
            default_branch='master',
            service=self.service_name,
        )

    def fetch_access_list(self, identifier):
        self._call('fetch_access_list', identifier)
        return ['alice']

    def list_projects(self):
        self._call('list_projects')
        return list(self.projects)

    def list_repositories(self, project_key):
        self._call('list_repositories', project_key)
        return list(self.repositories)

    def list_branches(self, identifier):
        self._call('list_branches', identifier)
        return [Branch(name=name) for name in self.branches.get(identifier, [])]


class FakeDestination(RecordingHost, DestinationHost):
    service_name = 'github'

    def __init__(self):
        super().__init__()
        self.teams = []
        self.members = []
        self.team_repositories = {}
        self.files = {}
        self.branches = {}

    def create_repository(self, spec):
        self._call('create_repository', spec.full_name)
        return RepoHandle(
            full_name=spec.full_name,
            name=spec.name,
            clone_url=f'git@github.com:{spec.full_name}.git',
            service=self.service_name,
        )

    def get_repository(self, identifier):
        self._call('get_repository', identifier)
        return RepoHandle(
            full_name=identifier,
            name=identifier.split('/')[-1],
            clone_url=f'git@github.com:{identifier}.git',
            service=self.service_name,
        )

    def push_full_history(self, source, destination):
        self._call('push_full_history', destination.full_name, source.full_name)

    def set_team_permission(self, repository, team, level):
        self._call('set_team_permission', repository, team, level)

    def set_default_branch(self, repository, branch):
        self._call('set_default_branch', repository, branch)

    def create_team(self, name, privacy='closed'):
        self._call('create_team', name, privacy)
        return Team(id=1, name=name, slug=slugify_team_name(name), privacy=privacy)

    def add_team_member(self, team, member):
        self._call('add_team_member', team, member)

    def list_teams(self):
        self._call('list_teams')
        return list(self.teams)

    def list_members(self):
        self._call('list_members')
        return list(self.members)

    def list_team_repositories(self, team):
        self._call('list_team_repositories', team)
        return list(self.team_repositories.get(team, []))

    def get_file_contents(self, identifier, path):
        self._call('get_file_contents', identifier, path)
        if (identifier, path) not in self.files:
            raise NotFoundError(f'github: {path} not found', status_code=404)
        return self.files[(identifier, path)]

    def list_branches(self, identifier):
        self._call('list_branches', identifier)
        return [Branch(name=name) for name in self.branches.get(identifier, [])]


class FakeCI(RecordingHost, CIHost):
    service_name = 'circleci'

    def __init__(self):
        super().__init__()
        self.contexts = {'github': [], 'bitbucket': []}
        self.context_variables = {}
        self.existing_contexts = set()

    def migrate_project_config(self, identifier):
        self._call('migrate_project_config', identifier)

    def create_context(self, name, variables):
        self._call('create_context', name, dict(variables))
        return name not in self.existing_contexts

    def start_pipeline(self, identifier, branch):
        self._call('start_pipeline', identifier, branch)

    def list_contexts(self, vcs='github'):
        self._call('list_contexts', vcs)
        return list(self.contexts[vcs])

    def list_context_variables(self, context_id):
        self._call('list_context_variables', context_id)
        return list(self.context_variables.get(context_id, []))


@pytest.fixture
def source():
    return FakeSource()


@pytest.fixture
def destination():
    return FakeDestination()


@pytest.fixture
def ci():
    return FakeCI()


@pytest.fixture
def make_plan():
    """Build a plan with a fixed creation time."""

    def _make_plan(*actions):
        return MigrationPlan(
            created_at=datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc),
            actions=tuple(actions),
        )

    return _make_plan
