"""Tests for plan and report rendering."""

from rich.table import Table

from repo_migrate.migration.reporter import (
    describe_action,
    render_plan,
    render_report,
    summary_table,
)
from repo_migrate.models.plan import (
    AddTeamMember,
    ContextVariable,
    CreateCIContext,
    CreateRepository,
    CreateTeam,
    MigrateCIConfig,
    SetDefaultBranch,
    SetTeamAccess,
    StartCIPipeline,
    TransferRepository,
)
from repo_migrate.models.report import ActionOutcome, RunReport, utcnow


class TestDescribeAction:
    """Test one-line action descriptions."""

    def test_descriptions_name_targets(self):
        """Test every action kind is described with its targets."""
        cases = [
            (CreateRepository(name='api', owner='acme'), 'Create private repository acme/api'),
            (
                TransferRepository(
                    source_identifier='ws/api', destination_identifier='acme/api'
                ),
                'Transfer history of ws/api to acme/api',
            ),
            (
                SetTeamAccess(repository='acme/api', team='backend', permission_level='pull'),
                'Grant team backend pull access to acme/api',
            ),
            (
                SetDefaultBranch(repository='acme/api', branch_name='main'),
                'Set default branch of acme/api to main',
            ),
            (
                MigrateCIConfig(project_identifier='acme/api'),
                'Migrate CI configuration of acme/api',
            ),
            (
                CreateTeam(name='Backend', slug='backend'),
                'Create closed team Backend (backend)',
            ),
            (AddTeamMember(team='backend', member='alice'), 'Add alice to team backend'),
            (
                CreateCIContext(
                    name='deploy',
                    variables=(
                        ContextVariable(name='A', value='1'),
                        ContextVariable(name='B', value='2'),
                    ),
                ),
                'Create CircleCI context deploy with 2 variables',
            ),
            (CreateCIContext(name='docker'), 'Create CircleCI context docker with 0 variables'),
            (
                StartCIPipeline(project_identifier='acme/api', branch='main'),
                'Start CircleCI pipeline of acme/api on branch main',
            ),
        ]

        for action, expected in cases:
            assert describe_action(action) == expected

    def test_context_values_not_shown(self):
        """Test context variable values stay out of descriptions."""
        action = CreateCIContext(
            name='deploy', variables=(ContextVariable(name='TOKEN', value='hunter2'),)
        )

        assert 'hunter2' not in describe_action(action)


class TestRenderPlan:
    """Test plan previews."""

    def test_numbered_in_order(self, make_plan):
        """Test the preview numbers actions in execution order."""
        plan = make_plan(
            CreateRepository(name='api', owner='acme'),
            SetDefaultBranch(repository='acme/api', branch_name='main'),
        )

        lines = render_plan(plan).splitlines()

        assert '2 actions' in lines[0]
        assert '2024-05-01T12:30:00+00:00' in lines[0]
        assert lines[1] == '1. Create private repository acme/api'
        assert lines[2] == '2. Set default branch of acme/api to main'

    def test_empty_plan(self, make_plan):
        """Test an empty plan renders only its header."""
        assert render_plan(make_plan()).splitlines()[0].endswith('(0 actions)')


class TestRenderReport:
    """Test run report rendering."""

    def test_statuses_and_tally(self, make_plan):
        """Test each outcome is labeled and tallied."""
        now = utcnow()
        plan = make_plan(
            CreateRepository(name='api', owner='acme'),
            CreateRepository(name='web', owner='acme'),
            SetDefaultBranch(repository='acme/web', branch_name='main'),
        )
        report = RunReport()
        report.record(ActionOutcome.succeeded(0, now, now, note='already exists'))
        report.record(ActionOutcome.failed(1, 'quota exceeded', now, now))
        report.record(ActionOutcome.skipped(2, 'dependency unmet'))
        report.close(aborted=False)

        lines = render_report(plan, report).splitlines()

        assert lines[0] == '[OK] 1. Create private repository acme/api: already exists'
        assert lines[1] == '[FAILED] 2. Create private repository acme/web: quota exceeded'
        assert lines[2].startswith('[SKIPPED] 3.')
        assert lines[3] == '1 succeeded, 1 failed, 1 skipped'

    def test_aborted_run_shows_unreached_actions(self, make_plan):
        """Test actions after an abort are listed as not run."""
        now = utcnow()
        plan = make_plan(
            CreateRepository(name='api', owner='acme'),
            CreateRepository(name='web', owner='acme'),
            CreateRepository(name='ops', owner='acme'),
        )
        report = RunReport()
        report.record(ActionOutcome.failed(0, 'boom', now, now))
        report.close(aborted=True)

        lines = render_report(plan, report).splitlines()

        assert lines[0].startswith('[FAILED] 1.')
        assert lines[1] == (
            '[NOT RUN] 2. Create private repository acme/web: not attempted (run aborted)'
        )
        assert lines[2].startswith('[NOT RUN] 3.')
        assert lines[3] == '0 succeeded, 1 failed, 0 skipped, 2 not run (run aborted)'


class TestSummaryTable:
    """Test the rich summary table."""

    def test_table_rows(self):
        """Test the table has one row per status."""
        now = utcnow()
        report = RunReport()
        report.record(ActionOutcome.succeeded(0, now, now))
        report.close(aborted=False)

        table = summary_table(report)

        assert isinstance(table, Table)
        assert table.row_count == 3
        assert table.caption.startswith('Duration:')
