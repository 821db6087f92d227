"""Destination capability contract."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Dict, List, Optional

from ..models.revision import Revision
from ..utils.console import Console
from ..utils.glob import Glob

if TYPE_CHECKING:
    from .transform_result import TransformResult


class EffectType(str, Enum):
    """Effect of a write in the destination."""

    CREATED = 'created'
    UPDATED = 'updated'
    NOOP = 'noop'
    ERROR = 'error'


@dataclass
class DestinationRef:
    """Reference to something created in the destination."""

    id: str
    type: str
    url: Optional[str] = None


@dataclass
class DestinationEffect:
    """What a write did in the destination."""

    type: EffectType
    summary: str
    origin_refs: List[Revision] = field(default_factory=list)
    destination_ref: Optional[DestinationRef] = None
    errors: List[str] = field(default_factory=list)


@dataclass
class WriterResult:
    """Result of a write.

    ``previous_ref`` is the origin revision string the destination now
    records as migrated.
    """

    effects: List[DestinationEffect] = field(default_factory=list)
    previous_ref: Optional[str] = None


class Writer(ABC):
    """Write session for a destination.

    A writer may keep state between writes (for example a local clone with
    the commits of previous iterative units).
    """

    @abstractmethod
    def write(self, transform_result: 'TransformResult', console: Console) -> WriterResult:
        """Commit the transformed tree.

        Raises:
            EmptyChangeException: If the diff against the destination is empty
            RedundantChangeException: If the same change is already pending
            ChangeRejectedException: If the user declines the confirmation
        """
        pass


class Destination(ABC):
    """A repository changes are written to."""

    @abstractmethod
    def new_writer(
        self,
        destination_files: Glob,
        dry_run: bool = False,
        old_writer: Optional[Writer] = None,
    ) -> Writer:
        """Create a writer.

        Args:
            destination_files: Files in the destination owned by the migration
            dry_run: Don't publish anything
            old_writer: Writer whose state should be carried forward
        """
        pass

    @abstractmethod
    def get_previous_ref(self, label_name: str) -> Optional[str]:
        """Most recent origin revision recorded with ``label_name``, or None."""
        pass

    @property
    def label_name_when_origin(self) -> Optional[str]:
        """Label the destination adds when it is used as an origin."""
        return None

    @property
    def destination_type(self) -> str:
        return self.__class__.__name__

    def describe(self, destination_files: Glob) -> Dict[str, List[str]]:
        return {
            'type': [self.destination_type],
            'destination_files': [repr(destination_files)],
        }
