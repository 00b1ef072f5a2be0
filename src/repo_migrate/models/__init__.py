"""Data models for plans, run reports and hosted repositories."""

from .plan import (
    Action,
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
    save_plan,
    serialize,
)
from .report import ActionOutcome, ActionStatus, RunReport, RunState
from .repository import Branch, CIContext, CreateRepositorySpec, Project, RepoHandle, Team

__all__ = [
    'Action',
    'AddTeamMember',
    'ContextVariable',
    'CreateCIContext',
    'CreateRepository',
    'CreateTeam',
    'MigrateCIConfig',
    'MigrationPlan',
    'ParseError',
    'SetDefaultBranch',
    'SetTeamAccess',
    'StartCIPipeline',
    'TransferRepository',
    'UnsupportedAction',
    'UnsupportedVersion',
    'deserialize',
    'load_plan',
    'save_plan',
    'serialize',
    'ActionOutcome',
    'ActionStatus',
    'RunReport',
    'RunState',
    'Branch',
    'CIContext',
    'CreateRepositorySpec',
    'Project',
    'RepoHandle',
    'Team',
]
