"""Migration workflows and the orchestration of a single run."""

import shutil
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence

from loguru import logger
from pydantic import BaseModel, Field

from ..config.config import WorkflowOptions
from ..exceptions import (
    CannotResolveRevisionException,
    EmptyChangeException,
    ValidationException,
)
from ..models.author import Author, Authoring
from ..models.change import Change, EmptyReason
from ..models.revision import Revision
from ..transform.base import Transformation
from ..utils.console import Console, ProgressPrefixConsole
from ..utils.glob import Glob
from ..utils.tree_state import TreeState
from .destination import Destination, DestinationEffect, Writer, WriterResult
from .monitor import ChangeMigrationFinishedEvent, ChangeMigrationStartedEvent, EventMonitor
from .origin import Origin, Reader, VisitResult
from .transform_result import TransformResult
from .transform_work import Metadata, TransformWork

CHANGE_REQUEST_PARENT_FLAG = '--change-request-parent'
LAST_REV_FLAG = '--last-rev'
FORCE_FLAG = '--force'

SUMMARY_HEADER = 'Project import generated by repo-migrate.'


class WorkflowMode(str, Enum):
    """How origin changes are grouped into migration units."""

    SQUASH = 'SQUASH'
    ITERATIVE = 'ITERATIVE'
    CHANGE_REQUEST = 'CHANGE_REQUEST'

    def run(self, helper: 'RunHelper') -> None:
        _MODE_RUNNERS[self](helper)


class MigrationReference(BaseModel):
    """Migration state of a workflow."""

    label: str = Field(..., description='Name of the migration')
    last_migrated: Optional[Revision] = Field(
        default=None, description='Last origin revision migrated to the destination'
    )
    available_to_migrate: List[Change] = Field(
        default_factory=list, description='Origin changes pending migration, oldest first'
    )

    @property
    def next_to_migrate(self) -> Optional[Change]:
        return self.available_to_migrate[0] if self.available_to_migrate else None


class Info(BaseModel):
    """Result of the info subcommand."""

    migration_references: List[MigrationReference] = Field(default_factory=list)


class MigrationSummary(BaseModel):
    """Summary of a workflow run."""

    workflow: str = Field(..., description='Workflow name')
    mode: WorkflowMode = Field(..., description='Workflow mode')
    resolved_ref: Optional[str] = Field(default=None, description='Origin revision requested')
    migrated: List[str] = Field(default_factory=list, description='Migrated origin revisions')
    skipped: List[str] = Field(
        default_factory=list, description='Origin revisions that produced empty changes'
    )
    effects: List[DestinationEffect] = Field(
        default_factory=list, description='Effects in the destination'
    )
    dry_run: bool = Field(default=False, description='Nothing was published')

    # Timing
    started_at: datetime = Field(default_factory=datetime.now, description='Run start time')
    completed_at: Optional[datetime] = Field(default=None, description='Run completion time')

    class Config:
        """Pydantic configuration."""

        json_encoders = {datetime: lambda v: v.isoformat() if v else None}


@dataclass(frozen=True)
class Workflow:
    """A migration from an origin to a destination.

    Workflows are immutable. Run options can be replaced with
    ``with_options`` to get a new workflow.
    """

    name: str
    origin: Origin
    destination: Destination
    authoring: Authoring
    transformation: Transformation
    mode: WorkflowMode = WorkflowMode.SQUASH
    origin_files: Glob = Glob.ALL_FILES
    destination_files: Glob = Glob.ALL_FILES
    options: WorkflowOptions = field(default_factory=WorkflowOptions)
    reversible_check: bool = False
    ask_for_confirmation: bool = False
    description: Optional[str] = None

    def with_options(self, options: WorkflowOptions) -> 'Workflow':
        return replace(self, options=options)

    def reverse_transformation(self) -> Optional[Transformation]:
        """Reverse pipeline used to check reversibility, None if the check is disabled.

        Raises:
            NonReversibleValidationException: If a transformation cannot be reversed
        """
        if not self.reversible_check:
            return None
        return self.transformation.reverse()

    def run(
        self,
        workdir: Path,
        source_ref: Optional[str],
        console: Console,
        monitor: Optional[EventMonitor] = None,
    ) -> MigrationSummary:
        """Run the workflow.

        Args:
            workdir: Directory owned by this run for checkouts
            source_ref: Origin reference to migrate, the configured one if None
            console: Console for progress and confirmations
            monitor: Event monitor

        Returns:
            Summary of the run

        Raises:
            EmptyChangeException: If nothing was migrated and no-ops are not ignored
        """
        run_logger = logger.bind(component='Workflow')
        monitor = monitor or EventMonitor()
        workdir = Path(workdir)
        workdir.mkdir(parents=True, exist_ok=True)

        console.progress(f"Running workflow '{self.name}' in {self.mode.value} mode")
        resolved_ref = self.origin.resolve(source_ref)
        run_logger.info(f"Resolved '{source_ref or '<default>'}' to {resolved_ref.as_string()}")

        helper = self.new_run_helper(workdir, resolved_ref, source_ref, console, monitor)
        if self.options.check_last_rev_state and self.mode != WorkflowMode.CHANGE_REQUEST:
            helper.check_last_rev_state()

        try:
            self.mode.run(helper)
        except EmptyChangeException as e:
            if not self.options.ignore_noop:
                raise
            run_logger.info(f'Ignoring empty migration: {e}')
            console.warn(f'Migration produced no changes: {e}')

        summary = helper.summary
        summary.completed_at = datetime.now()
        return summary

    def new_run_helper(
        self,
        workdir: Path,
        resolved_ref: Revision,
        raw_source_ref: Optional[str],
        console: Console,
        monitor: EventMonitor,
    ) -> 'RunHelper':
        reader = self.origin.new_reader(self.origin_files, self.authoring)
        writer = self.destination.new_writer(
            self.destination_files, dry_run=self.options.dry_run, old_writer=None
        )
        return RunHelper(
            self,
            workdir,
            resolved_ref,
            reader,
            writer,
            console,
            raw_source_ref=raw_source_ref,
            monitor=monitor,
            dry_run=self.options.dry_run,
        )

    def get_info(self) -> Info:
        """Return what was last migrated and what is pending."""
        resolved_ref = self.origin.resolve(None)
        last_migrated = self._last_migrated()
        reader = self.origin.new_reader(self.origin_files, self.authoring)
        response = reader.changes(last_migrated, resolved_ref)
        return Info(
            migration_references=[
                MigrationReference(
                    label=self.name,
                    last_migrated=last_migrated,
                    available_to_migrate=list(response.changes),
                )
            ]
        )

    def _last_migrated(self) -> Optional[Revision]:
        if self.options.last_revision:
            return self.origin.resolve(self.options.last_revision)
        previous = self.destination.get_previous_ref(self.origin.label_name)
        if previous is None:
            return None
        try:
            return self.origin.resolve(previous)
        except CannotResolveRevisionException as e:
            raise CannotResolveRevisionException(
                f"Could not resolve the last migrated revision '{previous}' in the origin. "
                f'Use {LAST_REV_FLAG} to set it: {e}'
            ) from e


class RunHelper:
    """State and operations of a workflow run.

    The helper owns the reader and the writer of the run. Subclasses can
    return a different helper per change (``for_change``) to reload the
    workflow while a run is in progress.
    """

    def __init__(
        self,
        workflow: Workflow,
        workdir: Path,
        resolved_ref: Revision,
        reader: Reader,
        writer: Writer,
        console: Console,
        raw_source_ref: Optional[str] = None,
        monitor: Optional[EventMonitor] = None,
        dry_run: bool = False,
        summary: Optional[MigrationSummary] = None,
    ):
        self.workflow = workflow
        self.workdir = Path(workdir)
        self.resolved_ref = resolved_ref
        self.reader = reader
        self.writer = writer
        self.console = console
        self.raw_source_ref = raw_source_ref
        self.monitor = monitor or EventMonitor()
        self.dry_run = dry_run
        self.summary = summary or MigrationSummary(
            workflow=workflow.name,
            mode=workflow.mode,
            resolved_ref=resolved_ref.as_string(),
            dry_run=dry_run,
        )
        self.logger = logger.bind(component='RunHelper')
        self._last_rev: Optional[Revision] = None
        self._last_rev_loaded = False

    @property
    def origin(self) -> Origin:
        return self.workflow.origin

    @property
    def destination(self) -> Destination:
        return self.workflow.destination

    @property
    def authoring(self) -> Authoring:
        return self.workflow.authoring

    @property
    def options(self) -> WorkflowOptions:
        return self.workflow.options

    def for_change(self, change: Change) -> 'RunHelper':
        """Helper to use for migrating ``change``. The same one by default."""
        return self

    def with_dry_run(self) -> 'RunHelper':
        """Helper for a speculative run. Writer state is never shared with it."""
        writer = self.destination.new_writer(
            self.workflow.destination_files, dry_run=True, old_writer=None
        )
        return RunHelper(
            self.workflow,
            self.workdir,
            self.resolved_ref,
            self.reader,
            writer,
            self.console,
            raw_source_ref=self.raw_source_ref,
            monitor=self.monitor,
            dry_run=True,
        )

    def get_last_rev(self) -> Optional[Revision]:
        """Last migrated origin revision, read once per run."""
        if not self._last_rev_loaded:
            self._last_rev = self.workflow._last_migrated()
            self._last_rev_loaded = True
        return self._last_rev

    def changes_since_last_import(self) -> List[Change]:
        """Changes to migrate in iterative mode, oldest first.

        Raises:
            EmptyChangeException: If there is nothing new to migrate
            ValidationException: If the histories are unrelated and force is not set
        """
        last_rev = self.get_last_rev()
        response = self.reader.changes(last_rev, self.resolved_ref)
        if not response.is_empty():
            return list(response.changes)

        reason = response.empty_reason
        if reason == EmptyReason.NO_CHANGES:
            raise EmptyChangeException(
                f"No new changes to import for resolved ref: {self.resolved_ref.as_string()}"
            )
        if self.options.force:
            self.console.warn(
                f"'{self.resolved_ref.as_string()}' is not a descendant of the last migrated "
                f"revision '{last_rev}'. Migrating it as a single change because of {FORCE_FLAG}"
            )
            return [self.reader.change(self.resolved_ref)]
        if reason == EmptyReason.TO_IS_ANCESTOR:
            raise EmptyChangeException(
                f"'{self.resolved_ref.as_string()}' has been already migrated. Use {FORCE_FLAG} "
                'if you really want to run the migration again (For example if the copy of '
                'the destination is not in sync)'
            )
        raise ValidationException(
            f"Last imported revision '{last_rev}' is not an ancestor of the revision currently "
            f"being migrated ('{self.resolved_ref.as_string()}'). Use {FORCE_FLAG} if you really "
            'want to migrate the reference.'
        )

    def squash_changes(self) -> List[Change]:
        """Changes folded into a squash unit. Only used for the message and labels."""
        try:
            last_rev = self.get_last_rev()
        except CannotResolveRevisionException as e:
            self.console.warn(f'Cannot list the changes being squashed: {e}')
            return []
        response = self.reader.changes(last_rev, self.resolved_ref)
        return list(response.changes)

    @staticmethod
    def changes_summary_message(changes: Sequence[Change]) -> str:
        if not changes:
            return SUMMARY_HEADER + '\n'
        lines = [SUMMARY_HEADER, '', 'Included changes:', '']
        for change in reversed(list(changes)):
            lines.append(f'  - {change.ref} {change.first_line_message()} by {change.author}')
        return '\n'.join(lines) + '\n'

    def check_last_rev_state(self) -> None:
        """Fail if migrating the last migrated revision would change the destination.

        Raises:
            ValidationException: If the destination is out of sync
        """
        last_rev = self.get_last_rev()
        if last_rev is None:
            self.console.warn('No previous migration found. Skipping the last revision state check')
            return
        self.console.progress(f'Checking that the destination is in sync with {last_rev}')
        try:
            self.with_dry_run().migrate(
                last_rev,
                self.authoring.default_author,
                self.console,
                SUMMARY_HEADER + '\n',
            )
        except EmptyChangeException:
            self.logger.info(f'Destination is in sync with {last_rev}')
            return
        raise ValidationException(
            f"Migrating the last migrated revision '{last_rev}' produced changes in the "
            f'destination. The destination is out of sync with the origin. Use {LAST_REV_FLAG} '
            'to choose another revision or fix the destination first.'
        )

    def migrate(
        self,
        revision: Revision,
        author: Author,
        console: Console,
        message: str,
        baseline: Optional[str] = None,
        changes: Sequence[Change] = (),
    ) -> WriterResult:
        """Migrate one unit: checkout, transform and write.

        Raises:
            EmptyChangeException: If the destination did not change
        """
        self.monitor.on_change_migration_started(ChangeMigrationStartedEvent(revision.as_string()))
        result = self._do_migrate(revision, author, console, message, baseline, changes)
        self.summary.migrated.append(revision.as_string())
        self.summary.effects.extend(result.effects)
        self.monitor.on_change_migration_finished(
            ChangeMigrationFinishedEvent(revision.as_string(), list(result.effects))
        )
        return result

    def _do_migrate(
        self,
        revision: Revision,
        author: Author,
        console: Console,
        message: str,
        baseline: Optional[str],
        changes: Sequence[Change],
    ) -> WriterResult:
        reverse = self.workflow.reverse_transformation()
        checkout_dir = self.workdir / 'checkout'
        console.progress(f'Checking out the change {revision.as_string()}')
        self.reader.checkout(revision, checkout_dir)

        origin_copy = None
        if reverse is not None:
            origin_copy = self.workdir / 'origin'
            _copy_tree(checkout_dir, origin_copy)

        work = TransformWork(
            checkout_dir=checkout_dir,
            metadata=Metadata(message=message, author=self.authoring.resolve(author)),
            console=console,
            origin_label=self.origin.label_name,
            resolved_reference=self.resolved_ref,
            changes=tuple(changes),
            last_rev=self._last_rev,
            current_rev=revision,
            ignore_noop=self.options.ignore_noop,
        )
        self.logger.info(f'Transforming {revision.as_string()}')
        work = self.workflow.transformation.transform(work)

        if origin_copy is not None:
            self._check_reversible(origin_copy, work, reverse)

        transform_result = TransformResult.create(
            checkout_dir,
            revision,
            work.author,
            work.message,
            self.workflow.destination_files,
            self.origin.label_name,
            changes=tuple(changes),
        ).with_hidden_labels(work.metadata.hidden_labels)
        if baseline is not None:
            transform_result = transform_result.with_baseline(baseline)
        transform_result = transform_result.with_ask_for_confirmation(
            self.workflow.ask_for_confirmation and not self.dry_run
        )
        return self.writer.write(transform_result, console)

    def _check_reversible(
        self, origin_copy: Path, work: TransformWork, reverse: Transformation
    ) -> None:
        console = work.console
        console.progress('Checking that the transformations can be reverted')
        reverse_dir = self.workdir / 'reverse'
        _copy_tree(work.checkout_dir, reverse_dir)
        reverse_work = TransformWork(
            checkout_dir=reverse_dir,
            metadata=work.metadata,
            console=console,
            origin_label=work.origin_label,
            resolved_reference=work.resolved_reference,
            changes=work.changes,
            ignore_noop=True,
        )
        reverse.transform(reverse_work)

        origin_files = self.workflow.origin_files
        original = {
            path: digest
            for path, digest in TreeState(origin_copy).fingerprints().items()
            if origin_files.matches(path)
        }
        reverted = {
            path: digest
            for path, digest in TreeState(reverse_dir).fingerprints().items()
            if origin_files.matches(path)
        }
        if original != reverted:
            differing = sorted(
                path
                for path in set(original) | set(reverted)
                if original.get(path) != reverted.get(path)
            )
            raise ValidationException(
                f"Workflow '{self.workflow.name}' is not reversible. Files that differ after "
                f"reverting the transformations: {', '.join(differing)}"
            )


def _copy_tree(source: Path, target: Path) -> None:
    if target.exists():
        shutil.rmtree(target)
    shutil.copytree(source, target, symlinks=True)


def _run_squash(helper: RunHelper) -> None:
    changes = helper.squash_changes()
    helper.migrate(
        helper.resolved_ref,
        # Squash workflows always use the default author
        helper.authoring.default_author,
        helper.console,
        helper.changes_summary_message(changes),
        changes=changes,
    )


def _run_iterative(helper: RunHelper) -> None:
    changes = helper.changes_since_last_import()
    migrated = 0
    for index, change in enumerate(changes, start=1):
        prefix = '[%2d/%d] Migrating change %s: ' % (index, len(changes), change.ref)
        try:
            helper.for_change(change).migrate(
                change.revision,
                change.author,
                ProgressPrefixConsole(prefix, helper.console),
                change.message,
                changes=[change],
            )
            migrated += 1
        except EmptyChangeException as e:
            helper.console.warn(
                f'Migration of origin revision {change.ref} resulted in an empty change '
                f'in the destination: {e}'
            )
            helper.summary.skipped.append(change.ref)
        except Exception as e:
            helper.console.error(f'Migration of origin revision {change.ref} failed: {e}')
            raise
    if not migrated:
        raise EmptyChangeException(
            f'Iterative workflow produced no changes in the destination for resolved ref: '
            f'{helper.resolved_ref.as_string()}'
        )


def _run_change_request(helper: RunHelper) -> None:
    parent = helper.options.change_request_parent
    label = helper.destination.label_name_when_origin
    if not parent and label:
        found: List[str] = []

        def visitor(change: Change) -> VisitResult:
            values = change.labels.get(label)
            if values:
                found.append(values[-1])
                return VisitResult.TERMINATE
            return VisitResult.CONTINUE

        helper.reader.visit_changes(helper.resolved_ref, visitor)
        parent = found[0] if found else None

    if not parent:
        raise ValidationException(
            "Cannot find matching parent commit in the destination. Use "
            f"'{CHANGE_REQUEST_PARENT_FLAG}' flag to force a parent commit to use as baseline "
            'in the destination.'
        )
    change = helper.reader.change(helper.resolved_ref)
    helper.for_change(change).migrate(
        helper.resolved_ref,
        change.author,
        helper.console,
        change.message,
        baseline=parent,
        changes=[change],
    )


_MODE_RUNNERS = {
    WorkflowMode.SQUASH: _run_squash,
    WorkflowMode.ITERATIVE: _run_iterative,
    WorkflowMode.CHANGE_REQUEST: _run_change_request,
}
