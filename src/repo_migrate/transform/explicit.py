"""Nested transformation groups with explicit reversal and no-op handling."""

from typing import List, Optional, Sequence as SequenceType

from loguru import logger

from ..exceptions import VoidOperationException
from ..migration.transform_work import Metadata, TransformWork
from .base import Transformation
from .sequence import Sequence


class ExplicitTransform(Transformation):
    """A group of transformations.

    The group fails with ``VoidOperationException`` when it leaves the tree
    and the metadata untouched. With ``ignore_noop`` no-op errors of the
    group and of its elements are only reported as warnings.
    """

    def __init__(
        self,
        transformations: SequenceType[Transformation],
        reversal: Optional[SequenceType[Transformation]] = None,
        ignore_noop: bool = False,
        name: Optional[str] = None,
    ):
        self.forward: List[Transformation] = list(transformations)
        self.reversal: Optional[List[Transformation]] = (
            list(reversal) if reversal is not None else None
        )
        self.ignore_noop = ignore_noop
        self.name = name
        self.logger = logger.bind(component='ExplicitTransform')

    def transform(self, work: TransformWork) -> TransformWork:
        before_tree = work.tree_state.new_tree_state().fingerprints()
        before_metadata = work.metadata

        inner = work.with_inside_explicit_transform(self.ignore_noop)
        console = inner.console
        for transformation in self.forward:
            try:
                inner = transformation.transform(inner.with_updated_tree_state())
            except VoidOperationException as e:
                if not self.ignore_noop:
                    raise
                self.logger.warning(f'Ignored no-op in {transformation.describe()}: {e}')
                console.warn(str(e))
            inner = inner.with_console(console)

        after_tree = inner.tree_state.new_tree_state().fingerprints()
        if before_tree == after_tree and _same_metadata(inner.metadata, before_metadata):
            message = f"Transformation '{self.describe()}' was a no-op"
            if not self.ignore_noop:
                raise VoidOperationException(message)
            console.warn(message)

        # The caller flags are kept, only the metadata flows out of the group
        return work.with_metadata(inner.metadata).with_updated_tree_state()

    def reverse(self) -> 'ExplicitTransform':
        if self.reversal is not None:
            return ExplicitTransform(
                self.reversal, reversal=self.forward, ignore_noop=self.ignore_noop, name=self.name
            )
        reversed_elements = Sequence(self.forward).reverse().sequence
        return ExplicitTransform(
            reversed_elements, reversal=self.forward, ignore_noop=self.ignore_noop, name=self.name
        )

    def describe(self) -> str:
        return self.name or 'transform'

    def __repr__(self) -> str:
        return f'ExplicitTransform({self.forward!r}, ignore_noop={self.ignore_noop})'


def _same_metadata(current: Metadata, previous: Metadata) -> bool:
    # Author equality is by email, a renamed author is still a change here
    return (
        current.message == previous.message
        and str(current.author) == str(previous.author)
        and current.hidden_labels == previous.hidden_labels
    )
