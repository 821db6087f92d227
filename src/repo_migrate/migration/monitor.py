"""Hooks invoked when high level migration events happen."""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional

from loguru import logger

from ..exceptions import ExitCode
from .destination import DestinationEffect

if TYPE_CHECKING:
    from .workflow import Info


@dataclass
class MigrationStartedEvent:
    workflow_name: str


@dataclass
class ChangeMigrationStartedEvent:
    revision: str


@dataclass
class ChangeMigrationFinishedEvent:
    revision: str
    destination_effects: List[DestinationEffect] = field(default_factory=list)


@dataclass
class MigrationFinishedEvent:
    exit_code: ExitCode


@dataclass
class InfoFinishedEvent:
    info: 'Info'
    context: Dict[str, str] = field(default_factory=dict)


class EventMonitor:
    """Monitor that ignores every event. Subclasses override what they need."""

    def on_migration_started(self, event: MigrationStartedEvent) -> None:
        pass

    def on_change_migration_started(self, event: ChangeMigrationStartedEvent) -> None:
        pass

    def on_change_migration_finished(self, event: ChangeMigrationFinishedEvent) -> None:
        pass

    def on_migration_finished(self, event: MigrationFinishedEvent) -> None:
        pass

    def on_info_finished(self, event: InfoFinishedEvent) -> None:
        pass


class LoggingEventMonitor(EventMonitor):
    """Monitor that logs every event with loguru."""

    def __init__(self, component: Optional[str] = None):
        self.logger = logger.bind(component=component or 'EventMonitor')

    def on_migration_started(self, event: MigrationStartedEvent) -> None:
        self.logger.info(f'Migration started: {event.workflow_name}')

    def on_change_migration_started(self, event: ChangeMigrationStartedEvent) -> None:
        self.logger.info(f'Change migration started: {event.revision}')

    def on_change_migration_finished(self, event: ChangeMigrationFinishedEvent) -> None:
        summaries = ', '.join(
            f'{effect.type.value}: {effect.summary}' for effect in event.destination_effects
        )
        self.logger.info(f'Change migration finished: {event.revision} [{summaries}]')

    def on_migration_finished(self, event: MigrationFinishedEvent) -> None:
        level = 'INFO' if event.exit_code in (ExitCode.SUCCESS, ExitCode.NO_OP) else 'ERROR'
        self.logger.log(level, f'Migration finished with exit code {event.exit_code.name}')

    def on_info_finished(self, event: InfoFinishedEvent) -> None:
        for reference in event.info.migration_references:
            self.logger.info(
                f'Info for {reference.label}: last migrated {reference.last_migrated}, '
                f'{len(reference.available_to_migrate)} change(s) available'
            )
