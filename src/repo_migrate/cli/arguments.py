"""Positional arguments of the command line."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from ..exceptions import CommandLineException

DEFAULT_WORKFLOW = 'default'
CONFIG_SUFFIXES = ('.yaml', '.yml')


class Subcommand(str, Enum):
    """Task performed by the command line tool."""

    MIGRATE = 'migrate'
    VALIDATE = 'validate'
    INFO = 'info'


@dataclass(frozen=True)
class MainArguments:
    """Parsed ``[subcommand] config_path [workflow_name [source_ref]]``."""

    subcommand: Subcommand
    config_path: str
    workflow_name: str = DEFAULT_WORKFLOW
    source_ref: Optional[str] = None

    @classmethod
    def parse(cls, unnamed: Sequence[str]) -> 'MainArguments':
        """Parse the positional arguments.

        Raises:
            CommandLineException: If the arguments are missing, too many or invalid
        """
        if len(unnamed) < 1:
            raise CommandLineException('Expected at least a configuration file.')
        if len(unnamed) > 4:
            raise CommandLineException('Expected at most four arguments.')

        subcommand = Subcommand.MIGRATE
        index = 0
        first = unnamed[0]
        if not first.endswith(CONFIG_SUFFIXES):
            try:
                subcommand = Subcommand(first.lower())
            except ValueError:
                raise CommandLineException(f"Invalid subcommand '{first}'")
            index += 1

        if index >= len(unnamed):
            raise CommandLineException(
                f"Configuration file missing for '{subcommand.value}' subcommand."
            )
        config_path = unnamed[index]
        index += 1

        workflow_name = DEFAULT_WORKFLOW
        if index < len(unnamed):
            workflow_name = unnamed[index]
            index += 1

        source_ref = None
        if index < len(unnamed):
            if subcommand in (Subcommand.INFO, Subcommand.VALIDATE):
                raise CommandLineException(
                    f"Too many arguments for subcommand '{subcommand.value}'"
                )
            source_ref = unnamed[index]

        return cls(subcommand, config_path, workflow_name, source_ref)
