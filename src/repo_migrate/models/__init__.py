"""Data models for revisions, changes and authors."""

from .author import Author, Authoring, AuthoringMode, InvalidAuthorException
from .change import Change, ChangesResponse, EmptyReason
from .message import ChangeMessage, LabelLine
from .revision import Revision

__all__ = [
    'Author',
    'Authoring',
    'AuthoringMode',
    'InvalidAuthorException',
    'Change',
    'ChangesResponse',
    'EmptyReason',
    'ChangeMessage',
    'LabelLine',
    'Revision',
]
