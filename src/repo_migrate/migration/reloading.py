"""Workflow that reloads its configuration from the origin for every change."""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from loguru import logger

from ..config.loader import ConfigLoader
from ..config.validator import ConfigValidator
from ..exceptions import ValidationException
from ..models.change import Change
from ..models.revision import Revision
from ..utils.console import Console
from .destination import Writer
from .monitor import EventMonitor
from .origin import Reader
from .workflow import MigrationSummary, RunHelper, Workflow


@dataclass(frozen=True)
class ReloadingWorkflow(Workflow):
    """A workflow whose run helper reads the configuration of each change.

    Before migrating a change, the configuration file is loaded from the
    origin at that change revision and validated. The change is then migrated
    with the freshly loaded workflow of the same name.
    """

    config_loader: Optional[ConfigLoader] = None
    config_validator: Optional[ConfigValidator] = None

    @classmethod
    def wrap(
        cls,
        workflow: Workflow,
        config_loader: ConfigLoader,
        config_validator: Optional[ConfigValidator] = None,
    ) -> 'ReloadingWorkflow':
        return cls(
            name=workflow.name,
            origin=workflow.origin,
            destination=workflow.destination,
            authoring=workflow.authoring,
            transformation=workflow.transformation,
            mode=workflow.mode,
            origin_files=workflow.origin_files,
            destination_files=workflow.destination_files,
            options=workflow.options,
            reversible_check=workflow.reversible_check,
            ask_for_confirmation=workflow.ask_for_confirmation,
            description=workflow.description,
            config_loader=config_loader,
            config_validator=config_validator or ConfigValidator(),
        )

    def new_run_helper(
        self,
        workdir: Path,
        resolved_ref: Revision,
        raw_source_ref: Optional[str],
        console: Console,
        monitor: EventMonitor,
    ) -> 'ReloadingRunHelper':
        if self.config_loader is None:
            raise ValidationException(f"Workflow '{self.name}' has no configuration loader")
        return ReloadingRunHelper(
            self,
            self.config_loader,
            self.config_validator or ConfigValidator(),
            workdir,
            resolved_ref,
            self.origin.new_reader(self.origin_files, self.authoring),
            console,
            raw_source_ref=raw_source_ref,
            monitor=monitor,
            dry_run=self.options.dry_run,
            old_writer=None,
        )


class ReloadingRunHelper(RunHelper):
    """Run helper that returns a new helper bound to the configuration of each change.

    The writer of the last helper is carried forward so that iterative runs
    keep the destination state between changes. Dry runs never reuse it.
    """

    def __init__(
        self,
        workflow: Workflow,
        config_loader: ConfigLoader,
        config_validator: ConfigValidator,
        workdir: Path,
        resolved_ref: Revision,
        reader: Reader,
        console: Console,
        raw_source_ref: Optional[str] = None,
        monitor: Optional[EventMonitor] = None,
        dry_run: bool = False,
        old_writer: Optional[Writer] = None,
        summary: Optional[MigrationSummary] = None,
        state: Optional['_ReloadState'] = None,
    ):
        writer = workflow.destination.new_writer(
            workflow.destination_files, dry_run=dry_run, old_writer=old_writer
        )
        super().__init__(
            workflow,
            workdir,
            resolved_ref,
            reader,
            writer,
            console,
            raw_source_ref=raw_source_ref,
            monitor=monitor,
            dry_run=dry_run,
            summary=summary,
        )
        self.config_loader = config_loader
        self.config_validator = config_validator
        self.state = state or _ReloadState()
        self.state.last_writer = writer
        self.logger = logger.bind(component='ReloadingRunHelper')

    def for_change(self, change: Change) -> 'ReloadingRunHelper':
        """Helper bound to the configuration stored in ``change``.

        Raises:
            ValidationException: If the configuration of the change is invalid
                or the migration is not a workflow anymore
        """
        name = self.workflow.name
        self.logger.info(
            f"Loading configuration for change '{change.ref} {change.first_line_message()}'"
        )
        config = self.config_loader.load_for_revision(self.console, change.revision)

        errors = self.config_validator.validate(config, name).errors
        if errors:
            raise ValidationException(
                "Invalid configuration [ref '%s': %s ]: '%s': \n%s"
                % (change.ref, self.config_loader.location(), name, '\n'.join(errors))
            )

        migration = config.get_migration(name)
        if not isinstance(migration, Workflow):
            raise ValidationException(
                "Invalid configuration [ref '%s': %s ]: '%s' is not a workflow"
                % (change.ref, self.config_loader.location(), name)
            )

        workflow = migration.with_options(self.options)
        dry_run = self.dry_run
        helper = ReloadingRunHelper(
            workflow,
            self.config_loader,
            self.config_validator,
            self.workdir,
            self.resolved_ref,
            workflow.origin.new_reader(workflow.origin_files, workflow.authoring),
            self.console,
            raw_source_ref=self.raw_source_ref,
            monitor=self.monitor,
            dry_run=dry_run,
            old_writer=None if dry_run else self.state.last_writer,
            summary=self.summary,
            state=self.state,
        )
        helper._last_rev = self._last_rev
        helper._last_rev_loaded = self._last_rev_loaded
        return helper

    def with_dry_run(self) -> 'ReloadingRunHelper':
        return ReloadingRunHelper(
            self.workflow,
            self.config_loader,
            self.config_validator,
            self.workdir,
            self.resolved_ref,
            self.reader,
            self.console,
            raw_source_ref=self.raw_source_ref,
            monitor=self.monitor,
            dry_run=True,
            old_writer=None,
            # Speculative runs keep their own writer bookkeeping
            state=_ReloadState(),
        )


class _ReloadState:
    """Mutable state shared by the helpers of one run."""

    def __init__(self):
        self.last_writer: Optional[Writer] = None
