"""Local folder origin and destination."""

from .destination import FolderDestination, FolderWriter
from .origin import FOLDER_ORIGIN_REV_ID, FolderOrigin, FolderReader

__all__ = [
    'FOLDER_ORIGIN_REV_ID',
    'FolderDestination',
    'FolderOrigin',
    'FolderReader',
    'FolderWriter',
]
