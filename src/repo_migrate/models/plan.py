"""Migration plan model and its on-disk format.

A plan is an ordered list of tagged actions plus the time it was built. It is
stored as pretty-printed JSON whose top-level ``version`` gates loading: a file
written by a newer format is refused rather than partially understood.

Each action lists the services it talks to and the targets it requires or
produces. Targets are keys such as ``repo:acme/api``, ``team:backend`` or
``context:deploy``; the executor uses them to skip actions whose prerequisite
failed earlier in a run.
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Annotated, ClassVar, FrozenSet, Literal, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

PLAN_FORMAT_VERSION = 1
SUPPORTED_VERSIONS = frozenset({PLAN_FORMAT_VERSION})

DEFAULT_PLAN_FILE = 'migration.json'
DEFAULT_CI_PLAN_FILE = 'ci-migration.json'

SOURCE = 'source'
DESTINATION = 'destination'
CI = 'ci'

Visibility = Literal['private', 'internal', 'public']
PermissionLevel = Literal['pull', 'triage', 'push', 'maintain', 'admin']
TeamPrivacy = Literal['closed', 'secret']
NonEmpty = Annotated[str, Field(min_length=1)]


class ParseError(Exception):
    """The plan file is malformed or cannot be understood."""

    pass


class UnsupportedAction(ParseError):
    """An action kind is unknown or not enabled in this configuration."""

    pass


class UnsupportedVersion(ParseError):
    """The plan was written with a format version this tool cannot read."""

    pass


def normalize_identifier(identifier: str) -> str:
    """Canonical form used to compare repository and team identifiers."""
    value = identifier.strip().strip('/').lower()
    if value.endswith('.git'):
        value = value[: -len('.git')]
    return value


def repo_target(identifier: str) -> str:
    return f'repo:{normalize_identifier(identifier)}'


def team_target(slug: str) -> str:
    return f'team:{normalize_identifier(slug)}'


def context_target(name: str) -> str:
    return f'context:{name.strip()}'


class BaseAction(BaseModel):
    """Common behaviour of every plan action."""

    model_config = ConfigDict(extra='forbid', frozen=True)

    services: ClassVar[Tuple[str, ...]] = (DESTINATION,)

    def requires(self) -> Tuple[str, ...]:
        """Targets that must not have failed earlier in the run."""
        return ()

    def produces(self) -> Tuple[str, ...]:
        """Targets that later actions cannot use if this action fails."""
        return ()


class CreateRepository(BaseAction):
    kind: Literal['create_repository'] = 'create_repository'
    name: NonEmpty
    visibility: Visibility = 'private'
    owner: NonEmpty

    @property
    def full_name(self) -> str:
        return f'{self.owner}/{self.name}'

    def produces(self) -> Tuple[str, ...]:
        return (repo_target(self.full_name),)


class TransferRepository(BaseAction):
    """Mirror the full history of a source repository into the destination."""

    kind: Literal['transfer_repository'] = 'transfer_repository'
    source_identifier: NonEmpty
    destination_identifier: NonEmpty

    services: ClassVar[Tuple[str, ...]] = (SOURCE, DESTINATION)

    def requires(self) -> Tuple[str, ...]:
        return (repo_target(self.destination_identifier),)

    def produces(self) -> Tuple[str, ...]:
        return (repo_target(self.destination_identifier),)


class SetTeamAccess(BaseAction):
    kind: Literal['set_team_access'] = 'set_team_access'
    repository: NonEmpty
    team: NonEmpty
    permission_level: PermissionLevel = 'push'

    def requires(self) -> Tuple[str, ...]:
        return (repo_target(self.repository), team_target(self.team))


class SetDefaultBranch(BaseAction):
    kind: Literal['set_default_branch'] = 'set_default_branch'
    repository: NonEmpty
    branch_name: NonEmpty

    def requires(self) -> Tuple[str, ...]:
        return (repo_target(self.repository),)


class MigrateCIConfig(BaseAction):
    """Move CI settings of a project. Only valid with the CI capability on."""

    kind: Literal['migrate_ci_config'] = 'migrate_ci_config'
    project_identifier: NonEmpty

    services: ClassVar[Tuple[str, ...]] = (CI,)

    def requires(self) -> Tuple[str, ...]:
        return (repo_target(self.project_identifier),)


class ContextVariable(BaseModel):
    """A variable stored in a CI context.

    Values are written to the plan file as entered.
    """

    model_config = ConfigDict(extra='forbid', frozen=True)

    name: NonEmpty
    value: str


class CreateCIContext(BaseAction):
    """Create a CI context for the destination organization and fill it."""

    kind: Literal['create_ci_context'] = 'create_ci_context'
    name: NonEmpty
    variables: Tuple[ContextVariable, ...] = ()

    services: ClassVar[Tuple[str, ...]] = (CI,)

    def produces(self) -> Tuple[str, ...]:
        return (context_target(self.name),)


class StartCIPipeline(BaseAction):
    """Follow a migrated project on the CI host and build one branch."""

    kind: Literal['start_ci_pipeline'] = 'start_ci_pipeline'
    project_identifier: NonEmpty
    branch: NonEmpty

    services: ClassVar[Tuple[str, ...]] = (CI,)

    def requires(self) -> Tuple[str, ...]:
        return (repo_target(self.project_identifier),)


class CreateTeam(BaseAction):
    kind: Literal['create_team'] = 'create_team'
    name: NonEmpty
    slug: NonEmpty
    privacy: TeamPrivacy = 'closed'

    def produces(self) -> Tuple[str, ...]:
        return (team_target(self.slug),)


class AddTeamMember(BaseAction):
    kind: Literal['add_team_member'] = 'add_team_member'
    team: NonEmpty
    member: NonEmpty

    def requires(self) -> Tuple[str, ...]:
        return (team_target(self.team),)


Action = Annotated[
    Union[
        CreateRepository,
        TransferRepository,
        SetTeamAccess,
        SetDefaultBranch,
        MigrateCIConfig,
        CreateCIContext,
        StartCIPipeline,
        CreateTeam,
        AddTeamMember,
    ],
    Field(discriminator='kind'),
]

CORE_ACTION_KINDS = frozenset(
    {
        'create_repository',
        'transfer_repository',
        'set_team_access',
        'set_default_branch',
        'create_team',
        'add_team_member',
    }
)
CI_ACTION_KINDS = frozenset(
    {'migrate_ci_config', 'create_ci_context', 'start_ci_pipeline'}
)


def supported_action_kinds(ci_enabled: bool) -> FrozenSet[str]:
    """Action vocabulary available for a configuration."""
    if ci_enabled:
        return CORE_ACTION_KINDS | CI_ACTION_KINDS
    return CORE_ACTION_KINDS


class MigrationPlan(BaseModel):
    """Ordered, immutable description of a migration."""

    model_config = ConfigDict(extra='forbid', frozen=True)

    version: int = Field(default=PLAN_FORMAT_VERSION, description='Plan format version')
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description='When the plan was built',
    )
    actions: Tuple[Action, ...] = Field(default=(), description='Actions in execution order')

    @field_validator('created_at')
    @classmethod
    def ensure_timezone(cls, v: datetime) -> datetime:
        """Naive timestamps are taken as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    def has_ci_actions(self) -> bool:
        return any(action.kind in CI_ACTION_KINDS for action in self.actions)

    def is_ci_only(self) -> bool:
        """True when every action belongs to the CI capability."""
        return all(action.kind in CI_ACTION_KINDS for action in self.actions)


def serialize(plan: MigrationPlan) -> bytes:
    """Encode a plan as versioned, human readable JSON."""
    payload = plan.model_dump(mode='json')
    return (json.dumps(payload, indent=2, ensure_ascii=False) + '\n').encode('utf-8')


def deserialize(data: Union[bytes, str], ci_enabled: bool = True) -> MigrationPlan:
    """Decode a plan, refusing anything it does not fully understand.

    Raises:
        UnsupportedVersion: Unknown format version
        UnsupportedAction: Unknown or disabled action kind
        ParseError: Any other malformed content
    """
    try:
        payload = json.loads(data)
    except (ValueError, UnicodeDecodeError) as e:
        raise ParseError(f'Plan is not valid JSON: {e}') from e

    if not isinstance(payload, dict):
        raise ParseError('Plan must be a JSON object')

    if 'version' not in payload:
        raise UnsupportedVersion('Plan has no format version')

    version = payload['version']
    if (
        not isinstance(version, int)
        or isinstance(version, bool)
        or version not in SUPPORTED_VERSIONS
    ):
        raise UnsupportedVersion(
            f'Plan format version {version!r} is not supported by this tool '
            f'(supported: {", ".join(str(v) for v in sorted(SUPPORTED_VERSIONS))}). '
            'Regenerate the plan with the `wizard` command.'
        )

    for key in ('created_at', 'actions'):
        if key not in payload:
            raise ParseError(f'Plan is missing required field "{key}"')

    raw_actions = payload['actions']
    if not isinstance(raw_actions, list):
        raise ParseError('Plan field "actions" must be a list')

    allowed = supported_action_kinds(ci_enabled)
    for position, raw in enumerate(raw_actions, start=1):
        if not isinstance(raw, dict):
            raise ParseError(f'Action #{position} must be a JSON object')
        kind = raw.get('kind')
        if kind is None:
            raise ParseError(f'Action #{position} is missing required field "kind"')
        if kind not in allowed:
            if kind in CI_ACTION_KINDS:
                raise UnsupportedAction(
                    f'Action #{position} ({kind}) requires the CircleCI capability, '
                    'which is disabled'
                )
            raise UnsupportedAction(f'Action #{position} has unsupported kind {kind!r}')

    try:
        return MigrationPlan.model_validate(payload)
    except ValidationError as e:
        raise ParseError(_describe_validation_error(e)) from e


def load_plan(path: Union[str, Path], ci_enabled: bool = True) -> MigrationPlan:
    """Read and decode a plan file."""
    plan_path = Path(path)
    try:
        return deserialize(plan_path.read_bytes(), ci_enabled=ci_enabled)
    except ParseError as e:
        raise type(e)(f'{plan_path}: {e}') from e


def save_plan(
    plan: MigrationPlan, path: Union[str, Path], overwrite: bool = False
) -> Path:
    """Write a plan file.

    Raises:
        FileExistsError: The file exists and ``overwrite`` is false
    """
    plan_path = Path(path)
    if plan_path.exists() and not overwrite:
        raise FileExistsError(f'Plan file already exists: {plan_path}')

    plan_path.parent.mkdir(parents=True, exist_ok=True)
    plan_path.write_bytes(serialize(plan))
    return plan_path


def _describe_validation_error(error: ValidationError) -> str:
    problems = []
    for item in error.errors():
        location = '.'.join(str(part) for part in item['loc'])
        problems.append(f'{location}: {item["msg"]}')
    return 'Invalid plan: ' + '; '.join(problems)
