"""Per migration unit context threaded through the transformation pipeline."""

import os
import re
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple, Union
from zoneinfo import ZoneInfo

from ..exceptions import ValidationException
from ..models.author import Author
from ..models.change import Change, extract_first_line
from ..models.message import ChangeMessage
from ..models.revision import Revision
from ..utils.console import Console
from ..utils.glob import Glob
from ..utils.tree_state import TreeState

if TYPE_CHECKING:
    from ..transform.base import Transformation

CONTEXT_REFERENCE_LABEL = 'REPO_MIGRATE_CONTEXT_REFERENCE'
LAST_REV_LABEL = 'REPO_MIGRATE_LAST_REV'
CURRENT_REV_LABEL = 'REPO_MIGRATE_CURRENT_REV'
CURRENT_MESSAGE_LABEL = 'REPO_MIGRATE_CURRENT_MESSAGE'
AUTHOR_LABEL = 'REPO_MIGRATE_AUTHOR'
CURRENT_MESSAGE_TITLE_LABEL = 'REPO_MIGRATE_CURRENT_MESSAGE_TITLE'

# Revisions may carry metadata after a space (like a snapshot number)
_REVISION_METADATA = re.compile(r' .*', re.DOTALL)

# Java style date patterns accepted by now_as_string
_DATE_TOKENS = [
    ('yyyy', '%Y'),
    ('MM', '%m'),
    ('dd', '%d'),
    ('HH', '%H'),
    ('mm', '%M'),
    ('ss', '%S'),
]


@dataclass(frozen=True)
class Metadata:
    """Message, author and hidden labels of the change being created."""

    message: str
    author: Author
    hidden_labels: Tuple[Tuple[str, str], ...] = ()

    def with_message(self, message: str) -> 'Metadata':
        return replace(self, message=message)

    def with_author(self, author: Author) -> 'Metadata':
        return replace(self, author=author)

    def add_hidden_labels(self, labels: Dict[str, List[str]]) -> 'Metadata':
        extra = tuple((name, value) for name, values in labels.items() for value in values)
        return replace(self, hidden_labels=self.hidden_labels + extra)

    def hidden_label_values(self, name: str) -> List[str]:
        return [value for label, value in self.hidden_labels if label == name]


class RunnableKind(str, Enum):
    """What ``TransformWork.run`` is asked to execute."""

    GLOB = 'glob'
    TRANSFORM = 'transform'


@dataclass(frozen=True)
class Runnable:
    """Either a file selector or a transformation, for ``TransformWork.run``."""

    kind: RunnableKind
    glob: Optional[Glob] = None
    transformation: Optional['Transformation'] = None

    @classmethod
    def of_glob(cls, glob: Glob) -> 'Runnable':
        return cls(kind=RunnableKind.GLOB, glob=glob)

    @classmethod
    def of_transform(cls, transformation: 'Transformation') -> 'Runnable':
        return cls(kind=RunnableKind.TRANSFORM, transformation=transformation)


@dataclass(frozen=True)
class TransformWork:
    """Immutable context for one migration unit.

    Every operation that changes the metadata, or that a transformation
    performs, returns a new value. The checkout directory is borrowed from
    the workflow run and is mutated in place by the transformations, so the
    tree state has to be refreshed (``with_updated_tree_state``) whenever a
    nested transformation starts.
    """

    checkout_dir: Path
    metadata: Metadata
    console: Console
    origin_label: str
    resolved_reference: Revision
    changes: Tuple[Change, ...] = ()
    last_rev: Optional[Revision] = None
    current_rev: Optional[Revision] = None
    tree_state: TreeState = None
    inside_explicit_transform: bool = False
    ignore_noop: bool = False

    def __post_init__(self):
        object.__setattr__(self, 'checkout_dir', Path(self.checkout_dir))
        if self.tree_state is None:
            object.__setattr__(self, 'tree_state', TreeState(self.checkout_dir))

    @property
    def message(self) -> str:
        return self.metadata.message

    @property
    def author(self) -> Author:
        return self.metadata.author

    # Metadata updates

    def with_message(self, message: str) -> 'TransformWork':
        return replace(self, metadata=self.metadata.with_message(message))

    def with_author(self, author: Author) -> 'TransformWork':
        return replace(self, metadata=self.metadata.with_author(author))

    def with_metadata(self, metadata: Metadata) -> 'TransformWork':
        return replace(self, metadata=metadata)

    def with_hidden_labels(self, labels: Dict[str, List[str]]) -> 'TransformWork':
        return replace(self, metadata=self.metadata.add_hidden_labels(labels))

    def add_label(
        self, label: str, value: str, separator: str = '=', hidden: bool = False
    ) -> 'TransformWork':
        """Add a label at the end of the message.

        Hidden labels are not written in the message but can be found with
        ``find_label`` by later steps and by the destination.
        """
        if hidden:
            return self.with_hidden_labels({label: [value]})
        message = ChangeMessage.parse_message(self.message).with_label(label, separator, value)
        return self.with_message(str(message))

    def add_or_replace_label(self, label: str, value: str, separator: str = '=') -> 'TransformWork':
        message = ChangeMessage.parse_message(self.message).with_new_or_replaced_label(
            label, separator, value
        )
        return self.with_message(str(message))

    def replace_label(
        self, label: str, value: str, separator: str = '=', whole_message: bool = False
    ) -> 'TransformWork':
        message = self._parse_message(whole_message).with_replaced_label(label, separator, value)
        return self.with_message(str(message))

    def remove_label(self, label: str, whole_message: bool = False) -> 'TransformWork':
        message = self._parse_message(whole_message).with_removed_label_by_name(label)
        return self.with_message(str(message))

    def add_text_before_labels(self, text: str) -> 'TransformWork':
        message = ChangeMessage.parse_message(self.message)
        message = message.with_text(message.text + '\n' + text)
        return self.with_message(str(message))

    def _parse_message(self, whole_message: bool) -> ChangeMessage:
        if whole_message:
            return ChangeMessage.parse_all_as_labels(self.message)
        return ChangeMessage.parse_message(self.message)

    # Label lookup

    def find_label(self, label: str) -> Optional[str]:
        """Find the most relevant value of a label.

        Core labels win, then the current message, then hidden labels, then
        the changes being migrated and finally the resolved reference.
        """
        values = self._find_label_values(label, find_all=False)
        return values[-1] if values else None

    def find_all_labels(self, label: str) -> List[str]:
        return self._find_label_values(label, find_all=True)

    def _find_label_values(self, label: str, find_all: bool) -> List[str]:
        core = self._core_labels()
        if label in core:
            return core[label]

        result: List[str] = []
        in_message = ChangeMessage.parse_all_as_labels(self.message).label_values(label)
        if in_message:
            result.extend(in_message)
            if not find_all:
                return result

        hidden = self.metadata.hidden_label_values(label)
        if hidden:
            if not find_all:
                return [hidden[-1]]
            result.extend(hidden)

        # Current changes are more specific than the resolved reference
        for change in self.changes:
            for values in (change.labels.get(label), change.revision.associated_label(label)):
                if values:
                    result.extend(values)
                    if not find_all:
                        return result

        result.extend(self.resolved_reference.associated_label(label))
        return result

    def _core_labels(self) -> Dict[str, List[str]]:
        context_reference = self.resolved_reference.context_reference
        return {
            CONTEXT_REFERENCE_LABEL: [context_reference] if context_reference else [],
            LAST_REV_LABEL: [_strip_metadata(self.last_rev)] if self.last_rev else [],
            CURRENT_REV_LABEL: [_strip_metadata(self.current_rev)] if self.current_rev else [],
            CURRENT_MESSAGE_LABEL: [self.message],
            AUTHOR_LABEL: [str(self.author)],
            CURRENT_MESSAGE_TITLE_LABEL: [extract_first_line(self.message)],
        }

    # Checkout access

    def read_path(self, path: Union[str, Path]) -> str:
        return self._checkout_path(path).read_text(encoding='utf-8')

    def write_path(self, path: Union[str, Path], content: str) -> None:
        full_path = self._checkout_path(path)
        full_path.parent.mkdir(parents=True, exist_ok=True)
        full_path.write_text(content, encoding='utf-8')

    def create_symlink(self, link: Union[str, Path], target: Union[str, Path]) -> None:
        """Create a relative symlink from ``link`` to ``target``.

        Both paths are relative to the checkout directory and must stay
        inside it.
        """
        link_path = self._checkout_path(link)
        target_path = self._checkout_path(target)
        if link_path.is_symlink():
            raise ValidationException(f"'{link}' already exists and is a symlink")
        if link_path.is_dir():
            raise ValidationException(f"'{link}' already exists and is a directory")
        if link_path.exists():
            raise ValidationException(f"'{link}' already exists and is a regular file")
        link_path.parent.mkdir(parents=True, exist_ok=True)
        os.symlink(os.path.relpath(target_path, link_path.parent), link_path)

    def _checkout_path(self, path: Union[str, Path]) -> Path:
        root = Path(os.path.abspath(self.checkout_dir))
        normalized = Path(os.path.normpath(root / path))
        if normalized != root and root not in normalized.parents:
            raise ValidationException(f'{path} is not inside the checkout directory')
        return normalized

    def now_as_string(self, format: str = 'yyyy-MM-dd', zone: str = 'UTC') -> str:
        """Current date formatted with a yyyy-MM-dd style pattern."""
        tz = timezone.utc if zone == 'UTC' else ZoneInfo(zone)
        pattern = format
        for token, directive in _DATE_TOKENS:
            pattern = pattern.replace(token, directive)
        return datetime.now(tz).strftime(pattern)

    def run(self, runnable: Runnable) -> Tuple['TransformWork', List[str]]:
        """Run a glob or a transformation against the checkout.

        Returns:
            The updated context and, for globs, the matching files
        """
        if runnable.kind == RunnableKind.GLOB:
            return self, runnable.glob.files(self.checkout_dir)
        if runnable.kind == RunnableKind.TRANSFORM:
            result = runnable.transformation.transform(self.with_updated_tree_state())
            return self.with_metadata(result.metadata).with_updated_tree_state(), []
        raise ValidationException(f'Only globs or transforms can be run, not {runnable.kind}')

    # Copies

    def with_updated_tree_state(self) -> 'TransformWork':
        return replace(self, tree_state=self.tree_state.new_tree_state())

    def with_console(self, console: Console) -> 'TransformWork':
        return replace(self, console=console)

    def with_changes(self, changes) -> 'TransformWork':
        return replace(self, changes=tuple(changes))

    def with_last_rev(self, last_rev: Optional[Revision]) -> 'TransformWork':
        return replace(self, last_rev=last_rev)

    def with_current_rev(self, current_rev: Revision) -> 'TransformWork':
        return replace(self, current_rev=current_rev)

    def with_inside_explicit_transform(self, ignore_noop: bool) -> 'TransformWork':
        return replace(self, inside_explicit_transform=True, ignore_noop=ignore_noop)


def _strip_metadata(revision: Revision) -> str:
    return _REVISION_METADATA.sub('', revision.as_string())
