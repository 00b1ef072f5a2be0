"""Tests for the migration plan model and file format."""

import json
from datetime import datetime

import pytest
from pydantic import ValidationError

from repo_migrate.models.plan import (
    CI_ACTION_KINDS,
    CORE_ACTION_KINDS,
    PLAN_FORMAT_VERSION,
    AddTeamMember,
    ContextVariable,
    CreateCIContext,
    CreateRepository,
    CreateTeam,
    MigrateCIConfig,
    MigrationPlan,
    ParseError,
    SetDefaultBranch,
    SetTeamAccess,
    StartCIPipeline,
    TransferRepository,
    UnsupportedAction,
    UnsupportedVersion,
    deserialize,
    load_plan,
    normalize_identifier,
    save_plan,
    serialize,
    supported_action_kinds,
)

ALL_VARIANTS = [
    CreateRepository(name='api', visibility='internal', owner='acme'),
    TransferRepository(source_identifier='workspace/api', destination_identifier='acme/api'),
    SetTeamAccess(repository='acme/api', team='backend', permission_level='maintain'),
    SetDefaultBranch(repository='acme/api', branch_name='development'),
    MigrateCIConfig(project_identifier='acme/api'),
    CreateTeam(name='Backend Team', slug='backend-team', privacy='secret'),
    AddTeamMember(team='backend-team', member='alice'),
    CreateCIContext(
        name='deploy', variables=(ContextVariable(name='AWS_KEY', value='s3cr3t'),)
    ),
    StartCIPipeline(project_identifier='acme/api', branch='main'),
]


def payload(**overrides):
    data = {
        'version': PLAN_FORMAT_VERSION,
        'created_at': '2024-05-01T12:30:00Z',
        'actions': [{'kind': 'create_repository', 'name': 'api', 'owner': 'acme'}],
    }
    data.update(overrides)
    return json.dumps(data)


class TestSerialization:
    """Test plan encoding and decoding."""

    @pytest.mark.parametrize('action', ALL_VARIANTS, ids=lambda a: a.kind)
    def test_every_variant_round_trips(self, make_plan, action):
        """Test each action kind survives encoding and decoding."""
        plan = make_plan(action)

        assert deserialize(serialize(plan)) == plan

    def test_order_is_preserved(self, make_plan):
        """Test action order survives serialization."""
        plan = make_plan(*reversed(ALL_VARIANTS))

        restored = deserialize(serialize(plan))

        assert [a.kind for a in restored.actions] == [a.kind for a in reversed(ALL_VARIANTS)]

    def test_reserialization_is_byte_identical(self, make_plan):
        """Test decoding then encoding reproduces the same bytes."""
        data = serialize(make_plan(*ALL_VARIANTS))

        assert serialize(deserialize(data)) == data

    def test_format_is_readable_json(self, make_plan):
        """Test the file layout: indented, versioned, kind first."""
        data = serialize(make_plan(ALL_VARIANTS[0]))
        decoded = json.loads(data)

        assert data.endswith(b'\n')
        assert b'\n  "version": 1' in data
        assert list(decoded) == ['version', 'created_at', 'actions']
        assert list(decoded['actions'][0])[0] == 'kind'
        assert decoded['actions'][0] == {
            'kind': 'create_repository',
            'name': 'api',
            'visibility': 'internal',
            'owner': 'acme',
        }

    def test_empty_plan_is_valid(self, make_plan):
        """Test a plan without actions round trips."""
        plan = make_plan()

        restored = deserialize(serialize(plan))

        assert restored.actions == ()
        assert restored.created_at == plan.created_at

    def test_naive_timestamp_is_utc(self):
        """Test naive creation times are taken as UTC."""
        plan = MigrationPlan(created_at=datetime(2024, 1, 1, 8, 0))

        assert plan.created_at.tzinfo is not None
        assert plan.created_at.utcoffset().total_seconds() == 0

    def test_plan_is_immutable(self, make_plan):
        """Test plans cannot be changed after creation."""
        plan = make_plan(ALL_VARIANTS[0])

        with pytest.raises(ValidationError):
            plan.version = 2


class TestDeserializationErrors:
    """Test malformed plans are refused."""

    def test_unknown_version(self):
        """Test newer format versions are refused."""
        with pytest.raises(UnsupportedVersion, match='not supported'):
            deserialize(payload(version=2))

    def test_missing_version(self):
        """Test a plan without version is refused."""
        data = json.loads(payload())
        del data['version']

        with pytest.raises(UnsupportedVersion):
            deserialize(json.dumps(data))

    @pytest.mark.parametrize('version', ['1', 1.0, True, None])
    def test_non_integer_version(self, version):
        """Test only the integer version is accepted."""
        with pytest.raises(UnsupportedVersion):
            deserialize(payload(version=version))

    def test_version_error_is_parse_error(self):
        """Test version errors belong to the parse error family."""
        assert issubclass(UnsupportedVersion, ParseError)
        assert issubclass(UnsupportedAction, ParseError)

    def test_unknown_kind(self):
        """Test unknown action kinds are refused."""
        with pytest.raises(UnsupportedAction, match='delete_repository'):
            deserialize(payload(actions=[{'kind': 'delete_repository', 'name': 'api'}]))

    def test_ci_action_requires_ci_enabled(self):
        """Test CI actions are only known with the CI capability."""
        actions = [{'kind': 'migrate_ci_config', 'project_identifier': 'acme/api'}]

        with pytest.raises(UnsupportedAction, match='CircleCI'):
            deserialize(payload(actions=actions), ci_enabled=False)

        plan = deserialize(payload(actions=actions), ci_enabled=True)
        assert plan.actions[0] == MigrateCIConfig(project_identifier='acme/api')

    @pytest.mark.parametrize(
        'action',
        [
            {'kind': 'create_ci_context', 'name': 'deploy'},
            {'kind': 'start_ci_pipeline', 'project_identifier': 'acme/api', 'branch': 'main'},
        ],
    )
    def test_context_and_pipeline_require_ci_enabled(self, action):
        """Test context and pipeline actions are CircleCI actions too."""
        with pytest.raises(UnsupportedAction, match='CircleCI'):
            deserialize(payload(actions=[action]), ci_enabled=False)

        assert deserialize(payload(actions=[action])).actions[0].kind == action['kind']

    def test_context_variable_fields(self):
        """Test context variables need a name and nothing else."""
        actions = [
            {'kind': 'create_ci_context', 'name': 'deploy',
             'variables': [{'name': '', 'value': 'x'}]}
        ]

        with pytest.raises(ParseError):
            deserialize(payload(actions=actions))

    @pytest.mark.parametrize(
        'data',
        [
            b'not json',
            b'[]',
            b'"plan"',
            b'\xff\xfe',
        ],
    )
    def test_not_a_plan_object(self, data):
        """Test payloads that are not JSON objects are refused."""
        with pytest.raises(ParseError):
            deserialize(data)

    @pytest.mark.parametrize('field', ['created_at', 'actions'])
    def test_missing_required_field(self, field):
        """Test required top-level fields are enforced."""
        data = json.loads(payload())
        del data[field]

        with pytest.raises(ParseError, match=field):
            deserialize(json.dumps(data))

    def test_actions_must_be_list(self):
        """Test actions must be a list."""
        with pytest.raises(ParseError):
            deserialize(payload(actions={'kind': 'create_repository'}))

    def test_action_must_be_object(self):
        """Test each action must be an object."""
        with pytest.raises(ParseError, match='#1'):
            deserialize(payload(actions=['create_repository']))

    def test_action_without_kind(self):
        """Test actions must name their kind."""
        with pytest.raises(ParseError, match='kind'):
            deserialize(payload(actions=[{'name': 'api', 'owner': 'acme'}]))

    def test_missing_action_field(self):
        """Test missing action fields are refused."""
        with pytest.raises(ParseError, match='owner'):
            deserialize(payload(actions=[{'kind': 'create_repository', 'name': 'api'}]))

    def test_unknown_action_field(self):
        """Test unknown action fields are refused."""
        actions = [{'kind': 'create_repository', 'name': 'api', 'owner': 'acme', 'x': 1}]

        with pytest.raises(ParseError):
            deserialize(payload(actions=actions))

    def test_unknown_top_level_field(self):
        """Test unknown plan fields are refused."""
        with pytest.raises(ParseError):
            deserialize(payload(author='someone'))

    def test_wrong_field_type(self):
        """Test wrongly typed fields are refused."""
        actions = [{'kind': 'set_team_access', 'repository': 'acme/api', 'team': 'a',
                    'permission_level': 'owner'}]

        with pytest.raises(ParseError, match='permission_level'):
            deserialize(payload(actions=actions))

    def test_empty_identifier(self):
        """Test empty identifiers are refused."""
        actions = [{'kind': 'set_default_branch', 'repository': 'acme/api', 'branch_name': ''}]

        with pytest.raises(ParseError):
            deserialize(payload(actions=actions))

    def test_invalid_timestamp(self):
        """Test unparseable creation times are refused."""
        with pytest.raises(ParseError, match='created_at'):
            deserialize(payload(created_at='yesterday'))


class TestActionVocabulary:
    """Test the action vocabulary and dependency targets."""

    def test_supported_action_kinds(self):
        """Test the CI flag adds exactly the CI actions."""
        assert supported_action_kinds(False) == CORE_ACTION_KINDS
        assert supported_action_kinds(True) == CORE_ACTION_KINDS | CI_ACTION_KINDS
        assert 'migrate_ci_config' not in supported_action_kinds(False)
        assert CI_ACTION_KINDS == {
            'migrate_ci_config',
            'create_ci_context',
            'start_ci_pipeline',
        }

    def test_normalize_identifier(self):
        """Test identifier normalization."""
        assert normalize_identifier(' Acme/API.git ') == 'acme/api'
        assert normalize_identifier('/acme/api/') == 'acme/api'

    def test_targets(self):
        """Test required and produced targets of each action."""
        create, transfer, access, branch, ci, team, member, context, pipeline = ALL_VARIANTS

        assert create.produces() == ('repo:acme/api',)
        assert create.requires() == ()
        assert transfer.requires() == ('repo:acme/api',)
        assert transfer.produces() == ('repo:acme/api',)
        assert access.requires() == ('repo:acme/api', 'team:backend')
        assert access.produces() == ()
        assert branch.requires() == ('repo:acme/api',)
        assert ci.requires() == ('repo:acme/api',)
        assert team.produces() == ('team:backend-team',)
        assert member.requires() == ('team:backend-team',)
        assert context.produces() == ('context:deploy',)
        assert context.requires() == ()
        assert pipeline.requires() == ('repo:acme/api',)
        assert pipeline.produces() == ()

    def test_ci_only(self, make_plan):
        """Test CI-only detection."""
        ci = MigrateCIConfig(project_identifier='acme/api')

        assert make_plan(ci).is_ci_only()
        assert not make_plan(ci, ALL_VARIANTS[0]).is_ci_only()
        assert make_plan(ci, ALL_VARIANTS[0]).has_ci_actions()
        assert not make_plan(ALL_VARIANTS[0]).has_ci_actions()
        assert make_plan(ALL_VARIANTS[-2], ALL_VARIANTS[-1]).is_ci_only()


class TestPlanFiles:
    """Test reading and writing plan files."""

    def test_save_and_load(self, make_plan, tmp_path):
        """Test a saved plan loads back unchanged."""
        plan = make_plan(*ALL_VARIANTS)
        path = save_plan(plan, tmp_path / 'plans' / 'migration.json')

        assert load_plan(path) == plan
        assert path.read_bytes() == serialize(plan)

    def test_save_refuses_to_overwrite(self, make_plan, tmp_path):
        """Test existing plan files are kept unless overwrite is asked."""
        path = tmp_path / 'migration.json'
        path.write_text('keep me')

        with pytest.raises(FileExistsError):
            save_plan(make_plan(), path)
        assert path.read_text() == 'keep me'

        save_plan(make_plan(), path, overwrite=True)
        assert load_plan(path) == make_plan()

    def test_load_error_names_file(self, tmp_path):
        """Test load errors mention the plan file and keep their type."""
        path = tmp_path / 'migration.json'
        path.write_text(payload(version=7))

        with pytest.raises(UnsupportedVersion, match='migration.json'):
            load_plan(path)

    def test_load_respects_ci_flag(self, make_plan, tmp_path):
        """Test loading with CI disabled refuses CI actions."""
        path = save_plan(
            make_plan(MigrateCIConfig(project_identifier='acme/api')), tmp_path / 'ci.json'
        )

        with pytest.raises(UnsupportedAction):
            load_plan(path, ci_enabled=False)
