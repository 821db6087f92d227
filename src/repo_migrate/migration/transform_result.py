"""Transformed tree and metadata handed to a destination writer."""

import time
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional, Tuple

from ..models.author import Author
from ..models.change import Change
from ..models.revision import Revision
from ..utils.glob import Glob


@dataclass(frozen=True)
class TransformResult:
    """Result of transforming one migration unit.

    Attributes:
        path: Directory containing the tree to put in the destination
        origin_ref: Origin revision being moved
        author: Destination author
        timestamp: Seconds since the epoch when the change was submitted to the origin
        summary: Description of the migrated changes. Destinations may add labels.
        destination_files: Files in the destination owned by the migration
        origin_label: Label destinations use to record the origin revision
        baseline: Destination revision to apply the change on. None means head.
        ask_for_confirmation: Destinations that could do damage should ask the user
        changes: Origin changes folded into this unit
        hidden_labels: Labels not present in the summary but visible to the destination
    """

    path: Path
    origin_ref: Revision
    author: Author
    timestamp: int
    summary: str
    destination_files: Glob
    origin_label: str
    baseline: Optional[str] = None
    ask_for_confirmation: bool = False
    changes: Tuple[Change, ...] = ()
    hidden_labels: Tuple[Tuple[str, str], ...] = ()

    @classmethod
    def create(
        cls,
        path: Path,
        origin_ref: Revision,
        author: Author,
        summary: str,
        destination_files: Glob,
        origin_label: str,
        changes: Tuple[Change, ...] = (),
    ) -> 'TransformResult':
        """Build a result timestamped with the origin time, or now if unknown."""
        timestamp = origin_ref.read_timestamp()
        if timestamp is None:
            timestamp = int(time.time())
        return cls(
            path=Path(path),
            origin_ref=origin_ref,
            author=author,
            timestamp=timestamp,
            summary=summary,
            destination_files=destination_files,
            origin_label=origin_label,
            changes=tuple(changes),
        )

    def with_baseline(self, baseline: str) -> 'TransformResult':
        return replace(self, baseline=baseline)

    def with_ask_for_confirmation(self, ask: bool) -> 'TransformResult':
        return replace(self, ask_for_confirmation=ask)

    def with_hidden_labels(self, hidden_labels: Tuple[Tuple[str, str], ...]) -> 'TransformResult':
        return replace(self, hidden_labels=tuple(hidden_labels))
