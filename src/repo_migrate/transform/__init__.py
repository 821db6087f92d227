"""Transformations applied to the checkout of a migration unit."""

from .base import Transformation
from .explicit import ExplicitTransform
from .files import Move, Replace
from .metadata import MapAuthor
from .sequence import Sequence

__all__ = [
    'Transformation',
    'ExplicitTransform',
    'Move',
    'Replace',
    'MapAuthor',
    'Sequence',
]
