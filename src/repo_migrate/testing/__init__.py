"""Test doubles for origins, destinations and the console."""

from .console import Message, MessageType, TestingConsole
from .dummy import (
    DUMMY_REV_ID,
    DummyOrigin,
    DummyReader,
    ProcessedChange,
    RecordsProcessCallDestination,
    RecordsWriter,
)

__all__ = [
    'DUMMY_REV_ID',
    'DummyOrigin',
    'DummyReader',
    'Message',
    'MessageType',
    'ProcessedChange',
    'RecordsProcessCallDestination',
    'RecordsWriter',
    'TestingConsole',
]
