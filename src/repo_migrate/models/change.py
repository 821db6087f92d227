"""Change models produced by origin enumeration."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from pydantic import BaseModel, Field

from .author import Author
from .message import ChangeMessage
from .revision import Revision


class Change(BaseModel):
    """A logical change in the origin: one authored delta at a revision."""

    revision: Revision = Field(..., description='Revision of the change')
    author: Author = Field(..., description='Author after applying the authoring policy')
    message: str = Field(..., description='Change description')
    date_time: Optional[datetime] = Field(default=None, description='Change timestamp')
    files: Optional[FrozenSet[str]] = Field(
        default=None, description='Files touched by the change, None if unknown'
    )
    merge: bool = Field(default=False, description='Change is a merge')

    class Config:
        """Pydantic configuration."""

        frozen = True
        json_encoders = {datetime: lambda v: v.isoformat() if v else None}

    @property
    def ref(self) -> str:
        return self.revision.as_string()

    @property
    def labels(self) -> Dict[str, List[str]]:
        """Labels from the message label paragraph plus the revision labels."""
        labels = ChangeMessage.parse_message(self.message).label_map()
        for name, values in self.revision.labels.items():
            labels.setdefault(name, []).extend(values)
        return labels

    def first_line_message(self) -> str:
        return extract_first_line(self.message)


def extract_first_line(message: str) -> str:
    """Return the first line of a message."""
    return message.split('\n', 1)[0]


class EmptyReason(str, Enum):
    """Why there are no changes between two revisions."""

    NO_CHANGES = 'NO_CHANGES'
    TO_IS_ANCESTOR = 'TO_IS_ANCESTOR'
    UNRELATED_REVISIONS = 'UNRELATED_REVISIONS'


@dataclass
class ChangesResponse:
    """Result of enumerating changes between two revisions."""

    changes: List[Change] = field(default_factory=list)
    empty_reason: Optional[EmptyReason] = None

    @classmethod
    def for_changes(cls, changes: List[Change]) -> 'ChangesResponse':
        if not changes:
            raise ValueError('Use no_changes() for an empty response')
        return cls(changes=list(changes))

    @classmethod
    def no_changes(cls, reason: EmptyReason) -> 'ChangesResponse':
        return cls(changes=[], empty_reason=reason)

    def is_empty(self) -> bool:
        return not self.changes

    def __iter__(self):
        return iter(self.changes)

    def __len__(self) -> int:
        return len(self.changes)
