"""Git origin and destination."""

from .destination import GitDestination, GitWriter
from .origin import GitOrigin, GitReader
from .repository import GIT_ORIGIN_REV_ID, GitRepository

__all__ = [
    'GIT_ORIGIN_REV_ID',
    'GitDestination',
    'GitOrigin',
    'GitReader',
    'GitRepository',
    'GitWriter',
]
