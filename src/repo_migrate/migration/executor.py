"""Plan executor.

Applies the actions of a :class:`MigrationPlan` one at a time, in plan order,
and records one :class:`ActionOutcome` per attempted action.

Failure policy:

* A failed action does not stop the run. Later actions keep going unless the
  failure makes them meaningless: when an action that *produces* a target
  (creates or transfers a repository, creates a team) fails, every later action
  that requires that target is skipped.
* When a service rejects its credentials, later actions needing that service
  are skipped instead of hammering it with a known-bad token.
* With ``stop_on_failure`` the first failure aborts the run. Actions after it
  get no outcome at all.
* ``AlreadyExistsError`` while creating a repository or team counts as success
  (resuming an interrupted run) unless ``strict_rerun`` is set.
"""

from pathlib import Path
from typing import Callable, Dict, Optional, Tuple, Union

from loguru import logger
from pydantic import BaseModel, Field
from pydantic import ValidationError as ModelValidationError

from ..api.exceptions import AlreadyExistsError, APIError, AuthenticationError
from ..git.operations import GitOperationError
from ..models.plan import (
    CI,
    DESTINATION,
    SOURCE,
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
    UnsupportedAction,
)
from ..models.report import ActionOutcome, ActionStatus, RunReport, RunState, utcnow
from ..models.repository import CreateRepositorySpec
from .capabilities import CIHost, DestinationHost, SourceHost
from .reporter import describe_action

IDEMPOTENT_CREATES = frozenset({'create_repository', 'create_team'})


class ConfirmationDeclined(Exception):
    """The operator did not confirm the migration."""

    pass


class ActionFailure(Exception):
    """An action could not be carried out for a reason found locally."""

    pass


class DependencyUnmet(Exception):
    """An earlier failure makes the action pointless."""

    pass


class FailurePolicy(BaseModel):
    """How the executor reacts to failed actions."""

    stop_on_failure: bool = Field(
        default=False, description='Abort the run at the first failed action'
    )
    strict_rerun: bool = Field(
        default=False, description='Treat already existing resources as failures'
    )


class Executor:
    """Runs migration plans against the capability clients."""

    def __init__(
        self,
        source: SourceHost,
        destination: DestinationHost,
        ci: Optional[CIHost] = None,
        policy: Optional[FailurePolicy] = None,
        report_path: Optional[Union[str, Path]] = None,
    ):
        """Initialize executor.

        Args:
            source: Source host client
            destination: Destination host client
            ci: CI host client; CI actions are only accepted when given
            policy: Failure policy, defaults to continue-on-failure
            report_path: When set, the report is saved here after every action
        """
        self.source = source
        self.destination = destination
        self.ci = ci
        self.policy = policy or FailurePolicy()
        self.report_path = Path(report_path) if report_path else None
        self.state = RunState.NOT_STARTED
        self.logger = logger.bind(component='Executor')

        self._clients = {SOURCE: source, DESTINATION: destination, CI: ci}
        self._roles_by_service = {
            getattr(client, 'service_name', role): role
            for role, client in self._clients.items()
            if client is not None
        }
        self._dispatch = self._build_dispatch_table()

    @property
    def ci_enabled(self) -> bool:
        return self.ci is not None

    def _build_dispatch_table(self) -> Dict[str, Callable[[BaseAction], Optional[str]]]:
        table: Dict[str, Callable[[BaseAction], Optional[str]]] = {
            'create_repository': self._create_repository,
            'transfer_repository': self._transfer_repository,
            'set_team_access': self._set_team_access,
            'set_default_branch': self._set_default_branch,
            'create_team': self._create_team,
            'add_team_member': self._add_team_member,
        }
        if self.ci_enabled:
            table['migrate_ci_config'] = self._migrate_ci_config
            table['create_ci_context'] = self._create_ci_context
            table['start_ci_pipeline'] = self._start_ci_pipeline
        return table

    def supported_kinds(self):
        return frozenset(self._dispatch)

    def execute(self, plan: MigrationPlan, confirmed: bool) -> RunReport:
        """Execute every action of ``plan`` in order.

        Args:
            plan: Plan to execute. It is never modified.
            confirmed: The operator's decision, obtained by the caller

        Returns:
            The closed run report

        Raises:
            ConfirmationDeclined: ``confirmed`` is not true; nothing was called
            UnsupportedAction: The plan needs a capability that is not configured
        """
        if confirmed is not True:
            raise ConfirmationDeclined('Migration canceled: not confirmed by the operator')

        unsupported = sorted(
            {action.kind for action in plan.actions if action.kind not in self._dispatch}
        )
        if unsupported:
            raise UnsupportedAction(
                f'No client configured for action kinds: {", ".join(unsupported)}'
            )

        total = len(plan.actions)
        report = RunReport(plan_created_at=plan.created_at)
        poisoned: Dict[str, Tuple[int, str]] = {}
        rejected: Dict[str, int] = {}

        self.state = RunState.RUNNING
        self.logger.info(f'Executing {total} actions')

        for index, action in enumerate(plan.actions):
            if self.state == RunState.ABORTED:
                break

            self.logger.info(f'[{index + 1}/{total}] {describe_action(action)}')
            outcome = self._run_action(index, action, poisoned, rejected)
            report.record(outcome)
            self._persist(report)

            if outcome.status == ActionStatus.FAILED and self.policy.stop_on_failure:
                self.logger.error(
                    f'Stopping after failed action #{index + 1}; '
                    f'{total - index - 1} actions not attempted'
                )
                self.state = RunState.ABORTED

        aborted = self.state == RunState.ABORTED
        if not aborted:
            self.state = RunState.COMPLETED

        report.close(aborted=aborted)
        self._persist(report)

        counts = report.counts()
        self.logger.info(
            f'Run {self.state.value}: {counts["succeeded"]} succeeded, '
            f'{counts["failed"]} failed, {counts["skipped"]} skipped'
        )
        return report

    def _run_action(
        self,
        index: int,
        action: BaseAction,
        poisoned: Dict[str, Tuple[int, str]],
        rejected: Dict[str, int],
    ) -> ActionOutcome:
        try:
            self._check_dependencies(action, poisoned, rejected)
        except DependencyUnmet as e:
            self.logger.warning(f'Skipping action #{index + 1}: {e}')
            return ActionOutcome.skipped(index, str(e))

        started_at = utcnow()
        handler = self._dispatch[action.kind]

        try:
            note = handler(action)
        except AlreadyExistsError as e:
            if action.kind in IDEMPOTENT_CREATES and not self.policy.strict_rerun:
                self.logger.info(f'Action #{index + 1}: {e}; treating as done')
                return ActionOutcome.succeeded(
                    index, started_at, utcnow(), note='already exists'
                )
            self._record_failure(index, action, e, poisoned, rejected)
            return ActionOutcome.failed(index, str(e), started_at, utcnow())
        except (APIError, GitOperationError, ActionFailure, OSError) as e:
            self._record_failure(index, action, e, poisoned, rejected)
            return ActionOutcome.failed(index, str(e), started_at, utcnow())

        return ActionOutcome.succeeded(index, started_at, utcnow(), note=note)

    def _check_dependencies(
        self,
        action: BaseAction,
        poisoned: Dict[str, Tuple[int, str]],
        rejected: Dict[str, int],
    ) -> None:
        for target in action.requires():
            if target in poisoned:
                failed_index, failed_kind = poisoned[target]
                raise DependencyUnmet(
                    f'dependency unmet: {failed_kind} of {target.split(":", 1)[1]} '
                    f'failed at action #{failed_index + 1}'
                )

        for role in action.services:
            if role in rejected:
                raise DependencyUnmet(
                    f'{role} credentials rejected at action #{rejected[role] + 1}'
                )

    def _record_failure(
        self,
        index: int,
        action: BaseAction,
        error: Exception,
        poisoned: Dict[str, Tuple[int, str]],
        rejected: Dict[str, int],
    ) -> None:
        self.logger.error(f'Action #{index + 1} failed: {error}')

        for target in action.produces():
            poisoned.setdefault(target, (index, action.kind))

        if isinstance(error, AuthenticationError):
            role = self._roles_by_service.get(error.service)
            roles = (role,) if role in action.services else action.services
            for role in roles:
                rejected.setdefault(role, index)

    def _persist(self, report: RunReport) -> None:
        if self.report_path is None:
            return
        try:
            report.save(self.report_path)
        except OSError as e:
            self.logger.warning(f'Could not save run report to {self.report_path}: {e}')

    def _create_repository(self, action: CreateRepository) -> Optional[str]:
        try:
            spec = CreateRepositorySpec(
                owner=action.owner, name=action.name, visibility=action.visibility
            )
        except ModelValidationError as e:
            raise ActionFailure(f'invalid repository {action.full_name}: {e}') from e
        self.destination.create_repository(spec)
        return None

    def _transfer_repository(self, action: TransferRepository) -> Optional[str]:
        source_handle = self.source.fetch_repository(action.source_identifier)
        destination_handle = self.destination.get_repository(action.destination_identifier)
        self.destination.push_full_history(source_handle, destination_handle)
        return None

    def _set_team_access(self, action: SetTeamAccess) -> Optional[str]:
        self.destination.set_team_permission(
            action.repository, action.team, action.permission_level
        )
        return None

    def _set_default_branch(self, action: SetDefaultBranch) -> Optional[str]:
        self.destination.set_default_branch(action.repository, action.branch_name)
        return None

    def _migrate_ci_config(self, action: MigrateCIConfig) -> Optional[str]:
        self.ci.migrate_project_config(action.project_identifier)
        return None

    def _create_ci_context(self, action: CreateCIContext) -> Optional[str]:
        variables = {variable.name: variable.value for variable in action.variables}
        if not self.ci.create_context(action.name, variables):
            return 'context already existed'
        return None

    def _start_ci_pipeline(self, action: StartCIPipeline) -> Optional[str]:
        self.ci.start_pipeline(action.project_identifier, action.branch)
        return None

    def _create_team(self, action: CreateTeam) -> Optional[str]:
        team = self.destination.create_team(action.name, action.privacy)
        if team is not None and team.slug != action.slug:
            return f'created with slug {team.slug}'
        return None

    def _add_team_member(self, action: AddTeamMember) -> Optional[str]:
        self.destination.add_team_member(action.team, action.member)
        return None
