"""Origin capability contract.

An origin resolves references to revisions and, through a reader bound to a
file selector and an authoring policy, enumerates changes and materializes
trees. Implementations may use worker pools internally but every call here
is synchronous.
"""

from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional

from ..models.author import Authoring
from ..models.change import Change, ChangesResponse
from ..models.revision import Revision
from ..utils.glob import Glob


class VisitResult(str, Enum):
    """Returned by a changes visitor to continue or stop the walk."""

    CONTINUE = 'continue'
    TERMINATE = 'terminate'


ChangesVisitor = Callable[[Change], VisitResult]


class Reader(ABC):
    """Read session scoped to a file selector and an authoring policy."""

    @abstractmethod
    def checkout(self, revision: Revision, workdir: Path) -> None:
        """Materialize the tree of ``revision`` in ``workdir``.

        Any previous content of ``workdir`` is removed.
        """
        pass

    @abstractmethod
    def changes(self, from_revision: Optional[Revision], to_revision: Revision) -> ChangesResponse:
        """Changes after ``from_revision`` up to ``to_revision``, oldest first.

        When there are none the response carries the reason.
        """
        pass

    @abstractmethod
    def change(self, revision: Revision) -> Change:
        """Return the change at ``revision``.

        Raises:
            EmptyChangeException: If it doesn't touch any selected file
        """
        pass

    @abstractmethod
    def visit_changes(self, start: Revision, visitor: ChangesVisitor) -> None:
        """Walk history backwards from ``start`` until the visitor terminates."""
        pass


class Origin(ABC):
    """A repository changes are read from."""

    @abstractmethod
    def resolve(self, reference: Optional[str]) -> Revision:
        """Resolve a reference, or the configured default one, to a revision.

        Raises:
            CannotResolveRevisionException: If it cannot be resolved
        """
        pass

    @abstractmethod
    def new_reader(self, origin_files: Glob, authoring: Authoring) -> Reader:
        pass

    @property
    @abstractmethod
    def label_name(self) -> str:
        """Label used in destination messages to record origin revisions."""
        pass

    @property
    def origin_type(self) -> str:
        return self.__class__.__name__

    def describe(self, origin_files: Glob) -> Dict[str, List[str]]:
        return {'type': [self.origin_type], 'origin_files': [repr(origin_files)]}
