"""Migration engine - main entry point for migration operations."""

import shutil
import tempfile
from pathlib import Path
from typing import Optional

from loguru import logger

from ..config.config import Config
from ..config.loader import FileConfigLoader, MigrationConfig, OriginConfigLoader
from ..config.validator import ConfigValidator, ValidationResult
from ..exceptions import ExitCode, MigrateError, ValidationException
from ..utils.console import Console
from .monitor import EventMonitor, InfoFinishedEvent, MigrationFinishedEvent, MigrationStartedEvent
from .reloading import ReloadingWorkflow
from .workflow import Info, MigrationSummary, Workflow


class MigrationEngine:
    """Loads workflows from a configuration file and runs them."""

    def __init__(
        self,
        config: Config,
        console: Console,
        monitor: Optional[EventMonitor] = None,
        validator: Optional[ConfigValidator] = None,
    ):
        """Initialize migration engine.

        Args:
            config: Tool configuration, with command line overrides applied
            console: Console for user facing output
            monitor: Event monitor
            validator: Configuration validator
        """
        self.config = config
        self.console = console
        self.monitor = monitor or EventMonitor()
        self.validator = validator or ConfigValidator()
        self.logger = logger.bind(component='MigrationEngine')

    def load(self, config_path: str) -> MigrationConfig:
        return FileConfigLoader(config_path, self.config).load(self.console)

    def validate(self, config_path: str, workflow_name: str) -> ValidationResult:
        """Validate a workflow without running it.

        Loading errors are reported as validation errors.
        """
        try:
            migration_config = self.load(config_path)
        except ValidationException as e:
            return ValidationResult(errors=[str(e)])
        return self.validator.validate(migration_config, workflow_name)

    def workflow(self, config_path: str, workflow_name: str) -> Workflow:
        """Load and validate a workflow.

        Raises:
            ValidationException: If the configuration has errors
        """
        migration_config = self.load(config_path)
        result = self.validator.validate(migration_config, workflow_name)
        for warning in result.warnings:
            self.console.warn(warning)
        if result.errors:
            raise ValidationException(
                f"Invalid configuration '{config_path}' for workflow '{workflow_name}':\n"
                + '\n'.join(result.errors)
            )

        workflow = migration_config.get_migration(workflow_name)
        if self.config.workflow.read_config_from_change:
            loader = OriginConfigLoader(
                workflow.origin,
                Path(config_path).name,
                initial=FileConfigLoader(config_path, self.config),
                tool_config=self.config,
            )
            workflow = ReloadingWorkflow.wrap(workflow, loader, self.validator)
        return workflow

    def migrate(
        self, config_path: str, workflow_name: str, source_ref: Optional[str] = None
    ) -> MigrationSummary:
        """Run a workflow.

        Args:
            config_path: Migration configuration file
            workflow_name: Workflow to run
            source_ref: Origin reference, the configured one if None

        Returns:
            Summary of the run
        """
        self.monitor.on_migration_started(MigrationStartedEvent(workflow_name))
        self.logger.info(f"Starting workflow '{workflow_name}' from {config_path}")
        exit_code = ExitCode.INTERNAL_ERROR
        workdir, temporary = self._workdir()
        try:
            workflow = self.workflow(config_path, workflow_name)
            summary = workflow.run(workdir, source_ref, self.console, self.monitor)
            exit_code = ExitCode.SUCCESS
            self.logger.info(
                f"Workflow '{workflow_name}' migrated {len(summary.migrated)} revision(s)"
            )
            return summary
        except MigrateError as e:
            exit_code = e.exit_code
            self.logger.error(f"Workflow '{workflow_name}' failed: {e}")
            raise
        except KeyboardInterrupt:
            exit_code = ExitCode.INTERRUPTED
            raise
        finally:
            if temporary:
                shutil.rmtree(workdir, ignore_errors=True)
            self.monitor.on_migration_finished(MigrationFinishedEvent(exit_code))

    def info(self, config_path: str, workflow_name: str) -> Info:
        """Return what was last migrated and what is pending for a workflow."""
        workflow = self.workflow(config_path, workflow_name)
        info = workflow.get_info()
        self.monitor.on_info_finished(
            InfoFinishedEvent(info, {'workflow': workflow_name, 'config': config_path})
        )
        return info

    def _workdir(self):
        if self.config.workflow.workdir:
            workdir = Path(self.config.workflow.workdir)
            workdir.mkdir(parents=True, exist_ok=True)
            return workdir, False
        return Path(tempfile.mkdtemp(prefix='repo-migrate-workdir-')), True
