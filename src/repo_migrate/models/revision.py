"""Revision model."""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class Revision(BaseModel):
    """A point in the history of a repository.

    Revisions are immutable: a given identifier always resolves to the same
    tree content in its origin.
    """

    id: str = Field(..., description='Identifier in the origin addressing scheme')
    context_reference: Optional[str] = Field(
        default=None, description='Human facing reference, like a branch or a review'
    )
    timestamp: Optional[datetime] = Field(
        default=None, description='When the revision was created in the origin'
    )
    labels: Dict[str, List[str]] = Field(
        default_factory=dict, description='Origin specific metadata labels'
    )
    url: Optional[str] = Field(default=None, description='Repository the revision belongs to')

    class Config:
        """Pydantic configuration."""

        frozen = True
        json_encoders = {datetime: lambda v: v.isoformat() if v else None}

    def as_string(self) -> str:
        """Stable string form of the revision."""
        return self.id

    def associated_label(self, name: str) -> List[str]:
        """Return the values of an origin label, empty if missing."""
        return list(self.labels.get(name, []))

    def read_timestamp(self) -> Optional[int]:
        """Return the timestamp as seconds since the epoch, if known."""
        if self.timestamp is None:
            return None
        return int(self.timestamp.timestamp())

    def __str__(self) -> str:
        return self.id
