"""Turn the operator's wizard selections into migration plans."""

from typing import Dict, List, Optional

from loguru import logger
from pydantic import BaseModel, Field

from ..models.plan import (
    AddTeamMember,
    BaseAction,
    ContextVariable,
    CreateCIContext,
    CreateRepository,
    CreateTeam,
    MigrateCIConfig,
    MigrationPlan,
    SetDefaultBranch,
    SetTeamAccess,
    StartCIPipeline,
    TransferRepository,
    normalize_identifier,
)
from ..models.repository import slugify_team_name


class PlanBuildError(ValueError):
    """The selections do not describe a usable plan."""

    pass


class RepositorySelection(BaseModel):
    """A source repository picked for migration."""

    source_identifier: str = Field(..., description='Source workspace/repo')
    name: str = Field(..., description='Repository name at the destination')
    create: bool = Field(
        default=True, description='Create and transfer; false when already migrated'
    )
    default_branch: Optional[str] = Field(
        default=None, description='New default branch, if it should change'
    )


class NewTeam(BaseModel):
    """A team to create for the migrated repositories."""

    name: str = Field(..., description='Team name')
    slug: Optional[str] = Field(default=None, description='Team slug')
    privacy: str = Field(default='closed', description='Team privacy')
    members: List[str] = Field(default_factory=list, description='Member logins')
    permission_level: str = Field(default='push', description='Access to grant')

    @property
    def resolved_slug(self) -> str:
        return self.slug or slugify_team_name(self.name)


class TeamGrant(BaseModel):
    """Access for an existing team on every selected repository."""

    team: str = Field(..., description='Team slug')
    permission_level: str = Field(default='push', description='Access to grant')


class WizardSelections(BaseModel):
    """Everything the operator chose in the wizard."""

    repositories: List[RepositorySelection] = Field(default_factory=list)
    visibility: str = Field(default='private', description='Visibility of new repositories')
    new_team: Optional[NewTeam] = None
    team_grants: List[TeamGrant] = Field(default_factory=list)


class NewContext(BaseModel):
    """A CircleCI context to create on the GitHub organization."""

    name: str = Field(..., description='Context name')
    variables: Dict[str, str] = Field(
        default_factory=dict, description='Environment variable values by name'
    )


class CIRepositorySelection(BaseModel):
    """CI work picked for one migrated repository."""

    name: str = Field(..., description='Repository name at the destination')
    move_environment: bool = Field(
        default=True, description='Move project environment variables'
    )
    contexts: List[NewContext] = Field(default_factory=list)
    pipeline_branch: Optional[str] = Field(
        default=None, description='Branch to build once everything is in place'
    )


class CISelections(BaseModel):
    """Everything the operator chose in the CircleCI wizard."""

    repositories: List[CIRepositorySelection] = Field(default_factory=list)


class PlanBuilder:
    """Builds plans for one destination organization."""

    def __init__(self, owner: str):
        """Initialize plan builder.

        Args:
            owner: Destination organization owning the new repositories
        """
        self.owner = owner
        self.logger = logger.bind(component='PlanBuilder')

    def destination_identifier(self, name: str) -> str:
        return f'{self.owner}/{name}'

    def build(self, selections: WizardSelections) -> MigrationPlan:
        """Build the repository migration plan.

        Repositories are created and transferred first, then the new team is
        created and filled, then team access and default branches are set.

        Raises:
            PlanBuildError: No repositories were selected
        """
        repositories = self._unique_repositories(selections.repositories)
        if not repositories:
            raise PlanBuildError('No repositories to take actions on')

        actions: List[BaseAction] = []

        for repo in repositories:
            if not repo.create:
                continue
            actions.append(
                CreateRepository(
                    name=repo.name, visibility=selections.visibility, owner=self.owner
                )
            )
            actions.append(
                TransferRepository(
                    source_identifier=repo.source_identifier,
                    destination_identifier=self.destination_identifier(repo.name),
                )
            )

        grants = list(selections.team_grants)
        if selections.new_team is not None:
            team = selections.new_team
            slug = team.resolved_slug
            actions.append(CreateTeam(name=team.name, slug=slug, privacy=team.privacy))
            for member in dict.fromkeys(team.members):
                actions.append(AddTeamMember(team=slug, member=member))
            grants.insert(0, TeamGrant(team=slug, permission_level=team.permission_level))

        seen_teams = set()
        for grant in grants:
            if normalize_identifier(grant.team) in seen_teams:
                continue
            seen_teams.add(normalize_identifier(grant.team))
            for repo in repositories:
                actions.append(
                    SetTeamAccess(
                        repository=self.destination_identifier(repo.name),
                        team=grant.team,
                        permission_level=grant.permission_level,
                    )
                )

        for repo in repositories:
            if repo.default_branch:
                actions.append(
                    SetDefaultBranch(
                        repository=self.destination_identifier(repo.name),
                        branch_name=repo.default_branch,
                    )
                )

        self.logger.info(
            f'Built plan with {len(actions)} actions for {len(repositories)} repositories'
        )
        return MigrationPlan(actions=tuple(actions))

    def build_ci(self, selections: CISelections) -> MigrationPlan:
        """Build the CircleCI plan.

        For each repository, in order: move its environment variables, create
        the contexts it needs that no earlier repository asked for, then start
        its pipeline.

        Raises:
            PlanBuildError: No repositories were selected, or nothing to do
        """
        unique: Dict[str, CIRepositorySelection] = {}
        for repo in selections.repositories:
            unique.setdefault(normalize_identifier(repo.name), repo)
        if not unique:
            raise PlanBuildError('No repositories to take actions on')

        actions: List[BaseAction] = []
        planned_contexts = set()
        for repo in unique.values():
            identifier = self.destination_identifier(repo.name)
            if repo.move_environment:
                actions.append(MigrateCIConfig(project_identifier=identifier))
            for context in repo.contexts:
                if context.name.strip() in planned_contexts:
                    continue
                planned_contexts.add(context.name.strip())
                actions.append(
                    CreateCIContext(
                        name=context.name,
                        variables=tuple(
                            ContextVariable(name=name, value=value)
                            for name, value in context.variables.items()
                        ),
                    )
                )
            if repo.pipeline_branch:
                actions.append(
                    StartCIPipeline(project_identifier=identifier, branch=repo.pipeline_branch)
                )

        if not actions:
            raise PlanBuildError('No CircleCI actions selected')

        self.logger.info(f'Built CI plan with {len(actions)} actions')
        return MigrationPlan(actions=tuple(actions))

    @staticmethod
    def _unique_repositories(
        repositories: List[RepositorySelection],
    ) -> List[RepositorySelection]:
        unique = {}
        for repo in repositories:
            unique.setdefault(normalize_identifier(repo.name), repo)
        return list(unique.values())
