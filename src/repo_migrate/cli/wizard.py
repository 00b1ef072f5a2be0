"""Interactive selection flows feeding the plan builder."""

from typing import Dict, List, Optional, Sequence, Set

import click
from rich.console import Console

from ..api.bitbucket import BitbucketClient
from ..api.circleci import CircleCIClient, parse_config_contexts
from ..api.exceptions import NotFoundError
from ..api.github import GitHubClient
from ..migration.builder import (
    CIRepositorySelection,
    CISelections,
    NewContext,
    NewTeam,
    RepositorySelection,
    TeamGrant,
    WizardSelections,
)
from ..models.repository import RepoHandle, slugify_team_name

PERMISSION_LEVELS = ['pull', 'triage', 'push', 'maintain', 'admin']
PREFERRED_DEFAULT_BRANCH = 'development'
CIRCLECI_CONFIG_PATH = '.circleci/config.yml'


def parse_selection(text: str, count: int) -> List[int]:
    """Parse ``1,3-5`` or ``all`` into zero-based indexes.

    Raises:
        click.BadParameter: The text does not select valid items
    """
    text = text.strip().lower()
    if text == 'all':
        return list(range(count))

    indexes: List[int] = []
    for part in text.split(','):
        part = part.strip()
        if not part:
            continue
        try:
            if '-' in part:
                first, last = (int(v) for v in part.split('-', 1))
                numbers = range(first, last + 1)
            else:
                numbers = [int(part)]
        except ValueError:
            raise click.BadParameter(f'"{part}" is not a number or range')
        for number in numbers:
            if not 1 <= number <= count:
                raise click.BadParameter(f'{number} is not between 1 and {count}')
            if number - 1 not in indexes:
                indexes.append(number - 1)

    if not indexes:
        raise click.BadParameter('Select at least one item')
    return indexes


def _print_items(console: Console, items: Sequence) -> None:
    for number, item in enumerate(items, start=1):
        console.print(f'  {number}. {item}')


def _select_many(console: Console, prompt: str, items: Sequence) -> List:
    _print_items(console, items)
    while True:
        answer = click.prompt(f'{prompt} (e.g. 1,3-5 or all)')
        try:
            return [items[i] for i in parse_selection(answer, len(items))]
        except click.BadParameter as e:
            console.print(f'[red]✗[/red] {e.message}')


def _select_one(console: Console, prompt: str, items: Sequence, default: int = 1):
    _print_items(console, items)
    number = click.prompt(prompt, type=click.IntRange(1, len(items)), default=default)
    return items[number - 1]


class MigrationWizard:
    """Asks which repositories, teams and branches to migrate."""

    def __init__(
        self,
        source: BitbucketClient,
        destination: GitHubClient,
        console: Optional[Console] = None,
        visibility: str = 'private',
    ):
        self.source = source
        self.destination = destination
        self.console = console or Console()
        self.visibility = visibility

    def run(self) -> WizardSelections:
        self.console.print('[bold]Welcome to the Bitbucket to GitHub migration wizard![/bold]')

        projects = self.source.list_projects()
        if not projects:
            raise click.ClickException('No projects found in the Bitbucket workspace')
        project = _select_one(self.console, 'Select a project', projects)

        repositories = self.source.list_repositories(project.key)
        if not repositories:
            raise click.ClickException(f'Project {project.name} has no repositories')
        chosen = _select_many(self.console, 'Select repositories', repositories)

        selections = self._check_already_migrated(chosen)
        if not selections:
            raise click.ClickException('No repositories to take actions on')

        teams = self.destination.list_teams()
        if teams:
            self.console.print('These teams already exist on GitHub:')
            for team in teams:
                self.console.print(f'  - {team.name}')

        new_team = self._ask_create_team(project.name, [t.name for t in teams])
        grants = self._ask_additional_teams(teams)
        self._ask_default_branches(chosen, selections)

        return WizardSelections(
            repositories=selections,
            visibility=self.visibility,
            new_team=new_team,
            team_grants=grants,
        )

    def _check_already_migrated(
        self, repositories: List[RepoHandle]
    ) -> List[RepositorySelection]:
        selections = []
        for repo in repositories:
            try:
                self.destination.get_repository(repo.name)
                exists = True
            except NotFoundError:
                exists = False

            if exists:
                keep = click.confirm(
                    f'{repo.name} already exists on GitHub. '
                    'Keep it for team and branch settings?',
                    default=False,
                )
                if not keep:
                    continue

            selections.append(
                RepositorySelection(
                    source_identifier=repo.full_name, name=repo.name, create=not exists
                )
            )
        return selections

    def _ask_create_team(
        self, project_name: str, existing_names: List[str]
    ) -> Optional[NewTeam]:
        if not click.confirm('Create a new team for the selected repositories?'):
            return None

        lowered = {name.lower() for name in existing_names}
        while True:
            name = click.prompt('Team name', default=project_name)
            if name.lower() not in lowered:
                break
            self.console.print(f'[red]✗[/red] Team "{name}" already exists')

        members: List[str] = []
        people = self.destination.list_members()
        if people and click.confirm(f'Add members to the "{name}" team?', default=True):
            members = _select_many(self.console, 'Select members', people)

        permission = click.prompt(
            f'Permission for team "{name}"',
            type=click.Choice(PERMISSION_LEVELS),
            default='push',
        )
        return NewTeam(
            name=name,
            slug=slugify_team_name(name),
            members=members,
            permission_level=permission,
        )

    def _ask_additional_teams(self, teams) -> List[TeamGrant]:
        if not teams or not click.confirm(
            'Give other existing teams access to these repositories?'
        ):
            return []

        grants = []
        for team in _select_many(self.console, 'Select teams', teams):
            permission = click.prompt(
                f'Permission for team "{team.name}"',
                type=click.Choice(PERMISSION_LEVELS),
                default='push',
            )
            grants.append(TeamGrant(team=team.slug, permission_level=permission))
        return grants

    def _ask_default_branches(
        self, repositories: List[RepoHandle], selections: List[RepositorySelection]
    ) -> None:
        if not click.confirm('Change the default branch of selected repositories?'):
            return

        by_name = {repo.name: repo for repo in repositories}
        for selection in selections:
            repo = by_name[selection.name]
            if not click.confirm(f'Change the default branch of {repo.full_name}?'):
                continue

            branches = [b.name for b in self.source.list_branches(repo.full_name)]
            if not branches:
                self.console.print(f'[yellow]{repo.full_name} has no branches[/yellow]')
                continue

            if PREFERRED_DEFAULT_BRANCH in branches:
                default = PREFERRED_DEFAULT_BRANCH
            elif repo.default_branch in branches:
                default = repo.default_branch
            else:
                default = branches[0]

            selection.default_branch = click.prompt(
                f'New default branch for {repo.full_name}',
                type=click.Choice(branches),
                default=default,
            )


class CIWizard:
    """Asks what CircleCI work to do for migrated repositories.

    For every selected repository the wizard reads ``.circleci/config.yml``
    from GitHub; repositories without one are skipped.
    """

    def __init__(
        self,
        destination: GitHubClient,
        ci: CircleCIClient,
        console: Optional[Console] = None,
    ):
        self.destination = destination
        self.ci = ci
        self.console = console or Console()

    def run(self) -> CISelections:
        self.console.print('[bold]Welcome to the CircleCI migration wizard![/bold]')

        teams = self.destination.list_teams()
        if not teams:
            raise click.ClickException('No teams found in the GitHub organization')
        team = _select_one(self.console, 'Select a team', teams)

        repositories = self.destination.list_team_repositories(team.slug)
        if not repositories:
            raise click.ClickException(f'Team {team.name} has no repositories')
        chosen = _select_many(self.console, 'Select repositories', repositories)

        existing = {context.name for context in self.ci.list_contexts('github')}
        source_contexts = {
            context.name: context for context in self.ci.list_contexts('bitbucket')
        }

        selections: List[CIRepositorySelection] = []
        planned: Set[str] = set()
        for repo in chosen:
            selection = self._ask_repository(repo, existing | planned, source_contexts)
            if selection is None:
                continue
            planned.update(context.name for context in selection.contexts)
            selections.append(selection)

        if not selections:
            raise click.ClickException('No repositories to take actions on')
        return CISelections(repositories=selections)

    def _ask_repository(
        self, repo: RepoHandle, known_contexts: Set[str], source_contexts
    ) -> Optional[CIRepositorySelection]:
        try:
            config = self.destination.get_file_contents(repo.full_name, CIRCLECI_CONFIG_PATH)
        except NotFoundError:
            self.console.print(
                f'[yellow]{repo.full_name} has no {CIRCLECI_CONFIG_PATH}, skipping[/yellow]'
            )
            return None

        self.console.print(f'[bold]{repo.full_name}[/bold]')
        move_environment = click.confirm(
            f'Move the environment variables of {repo.name}?', default=True
        )
        contexts = self._ask_contexts(
            sorted(parse_config_contexts(config) - known_contexts), source_contexts
        )
        branch = self._ask_pipeline_branch(repo)

        if not (move_environment or contexts or branch):
            return None
        return CIRepositorySelection(
            name=repo.name,
            move_environment=move_environment,
            contexts=contexts,
            pipeline_branch=branch,
        )

    def _ask_contexts(self, candidates: List[str], source_contexts) -> List[NewContext]:
        if not candidates or not click.confirm(
            f'Create missing contexts ({", ".join(candidates)})?', default=True
        ):
            return []

        contexts = []
        for name in _select_many(self.console, 'Select contexts', candidates):
            variables: Dict[str, str] = {}
            source = source_contexts.get(name)
            if source is not None and click.confirm(
                f'Enter values for the variables of context {name}?', default=False
            ):
                for variable in self.ci.list_context_variables(source.id):
                    variables[variable] = click.prompt(variable, hide_input=True)
            contexts.append(NewContext(name=name, variables=variables))
        return contexts

    def _ask_pipeline_branch(self, repo: RepoHandle) -> Optional[str]:
        if not click.confirm(f'Start a CircleCI build of {repo.name}?', default=False):
            return None
        if repo.default_branch and click.confirm(
            f'Build the default branch {repo.default_branch}?', default=True
        ):
            return repo.default_branch

        branches = [branch.name for branch in self.destination.list_branches(repo.full_name)]
        if not branches:
            self.console.print(f'[yellow]{repo.full_name} has no branches[/yellow]')
            return None
        return _select_one(self.console, 'Select a branch', branches)
