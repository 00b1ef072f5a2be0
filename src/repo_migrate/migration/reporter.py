"""Plain text and rich renderings of plans and run reports."""

from typing import List

from rich.table import Table

from ..models.plan import (
    AddTeamMember,
    BaseAction,
    CreateCIContext,
    CreateRepository,
    CreateTeam,
    MigrateCIConfig,
    MigrationPlan,
    SetDefaultBranch,
    SetTeamAccess,
    StartCIPipeline,
    TransferRepository,
)
from ..models.report import ActionStatus, RunReport

STATUS_LABELS = {
    ActionStatus.SUCCEEDED: '[OK]',
    ActionStatus.FAILED: '[FAILED]',
    ActionStatus.SKIPPED: '[SKIPPED]',
}
NOT_RUN_LABEL = '[NOT RUN]'
NOT_RUN_REASON = 'not attempted (run aborted)'


def describe_action(action: BaseAction) -> str:
    """One line naming the action and its targets."""
    if isinstance(action, CreateRepository):
        return f'Create {action.visibility} repository {action.full_name}'
    if isinstance(action, TransferRepository):
        return (
            f'Transfer history of {action.source_identifier} '
            f'to {action.destination_identifier}'
        )
    if isinstance(action, SetTeamAccess):
        return (
            f'Grant team {action.team} {action.permission_level} access '
            f'to {action.repository}'
        )
    if isinstance(action, SetDefaultBranch):
        return f'Set default branch of {action.repository} to {action.branch_name}'
    if isinstance(action, MigrateCIConfig):
        return f'Migrate CI configuration of {action.project_identifier}'
    if isinstance(action, CreateCIContext):
        count = len(action.variables)
        noun = 'variable' if count == 1 else 'variables'
        return f'Create CircleCI context {action.name} with {count} {noun}'
    if isinstance(action, StartCIPipeline):
        return (
            f'Start CircleCI pipeline of {action.project_identifier} '
            f'on branch {action.branch}'
        )
    if isinstance(action, CreateTeam):
        return f'Create {action.privacy} team {action.name} ({action.slug})'
    if isinstance(action, AddTeamMember):
        return f'Add {action.member} to team {action.team}'
    return action.kind


def render_plan(plan: MigrationPlan) -> str:
    """Numbered preview of every action, in execution order."""
    count = len(plan.actions)
    noun = 'action' if count == 1 else 'actions'
    lines = [
        f'Migration plan created {plan.created_at.isoformat()} ({count} {noun})'
    ]
    for number, action in enumerate(plan.actions, start=1):
        lines.append(f'{number}. {describe_action(action)}')
    return '\n'.join(lines)


def render_report(plan: MigrationPlan, report: RunReport) -> str:
    """Outcome of every action of ``plan``, followed by a tally line.

    Actions the run never reached are listed as not run.
    """
    lines: List[str] = []
    for index, action in enumerate(plan.actions):
        number = index + 1
        description = describe_action(action)

        if index < len(report.outcomes):
            outcome = report.outcomes[index]
            line = f'{STATUS_LABELS[outcome.status]} {number}. {description}'
            if outcome.reason:
                line += f': {outcome.reason}'
        else:
            line = f'{NOT_RUN_LABEL} {number}. {description}: {NOT_RUN_REASON}'
        lines.append(line)

    counts = report.counts()
    not_run = len(plan.actions) - len(report.outcomes)
    tally = (
        f'{counts["succeeded"]} succeeded, {counts["failed"]} failed, '
        f'{counts["skipped"]} skipped'
    )
    if not_run:
        tally += f', {not_run} not run'
    if report.aborted:
        tally += ' (run aborted)'
    lines.append(tally)
    return '\n'.join(lines)


def summary_table(report: RunReport) -> Table:
    table = Table(title='Migration Summary')
    table.add_column('Status', style='cyan')
    table.add_column('Actions', justify='right')

    counts = report.counts()
    table.add_row('[green]Succeeded[/green]', str(counts['succeeded']))
    table.add_row('[red]Failed[/red]', str(counts['failed']))
    table.add_row('[yellow]Skipped[/yellow]', str(counts['skipped']))

    if report.finished_at is not None:
        table.caption = f'Duration: {report.finished_at - report.started_at}'
    return table
