"""Migration engine - wires configuration, clients and the executor."""

from pathlib import Path
from typing import Dict, Optional, Union

from loguru import logger

from ..api.bitbucket import BitbucketClient
from ..api.circleci import CircleCIClient
from ..api.github import GitHubClient
from ..config.config import Config
from ..git.operations import GitOperations
from ..models.plan import MigrationPlan, load_plan
from ..models.report import RunReport
from .executor import Executor, FailurePolicy


class MigrationEngine:
    """Main migration engine that coordinates the migration process."""

    def __init__(
        self,
        config: Config,
        source: Optional[BitbucketClient] = None,
        destination: Optional[GitHubClient] = None,
        ci: Optional[CircleCIClient] = None,
    ):
        """Initialize migration engine.

        Args:
            config: Migration configuration
            source: Source client, built from ``config`` when omitted
            destination: Destination client, built from ``config`` when omitted
            ci: CI client, built from ``config`` when omitted and enabled
        """
        self.config = config
        self.logger = logger.bind(component='MigrationEngine')

        self.source_client = source or BitbucketClient(config.bitbucket)
        self.destination_client = destination or GitHubClient(
            config.github, git=GitOperations(config.git)
        )
        self.ci_client = ci
        if self.ci_client is None and config.ci_enabled:
            self.ci_client = CircleCIClient(
                config.circleci, source_workspace=config.bitbucket.workspace
            )

    @property
    def ci_enabled(self) -> bool:
        return self.config.ci_enabled

    def load_plan(self, path: Union[str, Path]) -> MigrationPlan:
        """Load a plan using the action vocabulary of this configuration."""
        return load_plan(path, ci_enabled=self.ci_enabled)

    def create_executor(
        self,
        stop_on_failure: Optional[bool] = None,
        strict_rerun: Optional[bool] = None,
        report_path: Optional[Union[str, Path]] = None,
    ) -> Executor:
        """Create an executor; unset arguments fall back to the configuration."""
        migration = self.config.migration
        policy = FailurePolicy(
            stop_on_failure=(
                migration.stop_on_failure if stop_on_failure is None else stop_on_failure
            ),
            strict_rerun=migration.strict_rerun if strict_rerun is None else strict_rerun,
        )
        return Executor(
            source=self.source_client,
            destination=self.destination_client,
            ci=self.ci_client,
            policy=policy,
            report_path=report_path or migration.report_file,
        )

    def migrate(
        self, plan: MigrationPlan, confirmed: bool, **executor_options
    ) -> RunReport:
        """Execute ``plan``.

        Raises:
            ConfirmationDeclined: ``confirmed`` is not true
            UnsupportedAction: The plan needs a capability that is disabled
        """
        executor = self.create_executor(**executor_options)
        self.logger.info(f'Starting migration of {len(plan.actions)} actions')
        try:
            return executor.execute(plan, confirmed=confirmed)
        finally:
            self.close()

    def test_connectivity(self) -> Dict[str, bool]:
        """Check every configured service with its credentials.

        Returns:
            Service name mapped to whether the connection test passed
        """
        self.logger.info('Testing connectivity to configured services')
        clients = [self.source_client, self.destination_client]
        if self.ci_client is not None:
            clients.append(self.ci_client)

        results = {client.service_name: client.test_connection() for client in clients}
        if all(results.values()):
            self.logger.info('Connectivity tests passed')
        return results

    def close(self) -> None:
        """Close every client session."""
        self.source_client.close()
        self.destination_client.close()
        if self.ci_client is not None:
            self.ci_client.close()
