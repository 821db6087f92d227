"""Gerrit destination and REST API client."""

from .client import (
    ChangeInfo,
    GerritAPIError,
    GerritAuthenticationError,
    GerritClient,
    GerritNotFoundError,
)
from .destination import CHANGE_ID_LABEL, GerritDestination, compute_change_id

__all__ = [
    'CHANGE_ID_LABEL',
    'ChangeInfo',
    'GerritAPIError',
    'GerritAuthenticationError',
    'GerritClient',
    'GerritDestination',
    'GerritNotFoundError',
    'compute_change_id',
]
