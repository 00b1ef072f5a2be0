"""Plan building, execution and reporting.

The engine lives in :mod:`repo_migrate.migration.engine`; it is not imported
here because the service clients import the capability interfaces from this
package.
"""

from .capabilities import CIHost, DestinationHost, SourceHost
from .builder import CISelections, PlanBuilder, PlanBuildError, WizardSelections
from .executor import ConfirmationDeclined, Executor, FailurePolicy
from .reporter import describe_action, render_plan, render_report, summary_table

__all__ = [
    'PlanBuilder',
    'PlanBuildError',
    'WizardSelections',
    'CISelections',
    'CIHost',
    'DestinationHost',
    'SourceHost',
    'ConfirmationDeclined',
    'Executor',
    'FailurePolicy',
    'describe_action',
    'render_plan',
    'render_report',
    'summary_table',
]
