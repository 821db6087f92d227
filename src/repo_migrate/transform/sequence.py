"""Ordered composition of transformations."""

from typing import Iterable, List

from loguru import logger

from ..migration.transform_work import TransformWork
from ..utils.console import ProgressPrefixConsole
from .base import Transformation


class Sequence(Transformation):
    """Runs its transformations in order, threading the context through them."""

    def __init__(self, sequence: Iterable[Transformation]):
        self.sequence: List[Transformation] = list(sequence)
        self.logger = logger.bind(component='Sequence')

    @classmethod
    def create(cls, elements: Iterable[Transformation]) -> 'Sequence':
        """Create a sequence without nesting a single sequence twice."""
        elements = list(elements)
        if len(elements) == 1 and isinstance(elements[0], Sequence):
            return elements[0]
        return cls(elements)

    def transform(self, work: TransformWork) -> TransformWork:
        console = work.console
        total = len(self.sequence)
        for index, transformation in enumerate(self.sequence, start=1):
            message = '[%2d/%d] Transform %s' % (index, total, transformation.describe())
            self.logger.info(message)
            console.progress(message)

            work = work.with_console(ProgressPrefixConsole(message + ': ', console))
            work = transformation.transform(work.with_updated_tree_state())
        return work.with_console(console).with_updated_tree_state()

    def reverse(self) -> 'Sequence':
        """Reverse every element and the order.

        The first non reversible element aborts the reversal.
        """
        reversed_elements = [element.reverse() for element in self.sequence]
        reversed_elements.reverse()
        return Sequence(reversed_elements)

    def describe(self) -> str:
        return 'sequence'

    def __repr__(self) -> str:
        return f'Sequence{self.sequence!r}'
