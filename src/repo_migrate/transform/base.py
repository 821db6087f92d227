"""Transformation interface."""

from abc import ABC, abstractmethod

from ..migration.transform_work import TransformWork


class Transformation(ABC):
    """A tree and metadata mutation applied to a migration unit."""

    @abstractmethod
    def transform(self, work: TransformWork) -> TransformWork:
        """Transform the checkout and/or the metadata of ``work``.

        Args:
            work: Context of the migration unit

        Returns:
            Context carrying the updated metadata

        Raises:
            ValidationException: If the transformation is misused
            EmptyChangeException: If the change turns out to be vacuous
        """
        pass

    @abstractmethod
    def reverse(self) -> 'Transformation':
        """Return the inverse transformation.

        Raises:
            NonReversibleValidationException: If it cannot be reversed
        """
        pass

    def describe(self) -> str:
        """Short text used in progress messages."""
        return self.__class__.__name__.lower()
