"""Console used to report progress to the user and ask for confirmation."""

from abc import ABC, abstractmethod
from typing import Optional

from loguru import logger
from rich.console import Console as RichTerminal
from rich.markup import escape
from rich.prompt import Confirm


class Console(ABC):
    """Structured sink for user facing messages."""

    @abstractmethod
    def error(self, message: str) -> None:
        pass

    @abstractmethod
    def warn(self, message: str) -> None:
        pass

    @abstractmethod
    def info(self, message: str) -> None:
        pass

    @abstractmethod
    def progress(self, message: str) -> None:
        pass

    @abstractmethod
    def prompt_confirmation(self, message: str) -> bool:
        """Return True if the user answers yes to the prompt."""
        pass

    def is_verbose(self) -> bool:
        return False

    def verbose(self, message: str) -> None:
        """Print an info message only when verbose output is enabled."""
        if self.is_verbose():
            self.info(message)


class RichConsole(Console):
    """Console that renders to the terminal with rich and logs with loguru."""

    def __init__(self, terminal: Optional[RichTerminal] = None, verbose: bool = False):
        self.terminal = terminal or RichTerminal(stderr=True)
        self._verbose = verbose
        self.logger = logger.bind(component='Console')

    def error(self, message: str) -> None:
        self.logger.error(message)
        self.terminal.print(f'[red]✗ {escape(message)}[/red]')

    def warn(self, message: str) -> None:
        self.logger.warning(message)
        self.terminal.print(f'[yellow]WARN: {escape(message)}[/yellow]')

    def info(self, message: str) -> None:
        self.logger.info(message)
        self.terminal.print(f'[green]INFO:[/green] {escape(message)}')

    def progress(self, message: str) -> None:
        self.logger.debug(message)
        self.terminal.print(f'[blue]Task:[/blue] {escape(message)}')

    def prompt_confirmation(self, message: str) -> bool:
        return Confirm.ask(message, console=self.terminal, default=False)

    def is_verbose(self) -> bool:
        return self._verbose


class LogConsole(Console):
    """Non interactive console that only logs. Prompts get a fixed answer."""

    def __init__(self, answer: bool = False, verbose: bool = False):
        self.answer = answer
        self._verbose = verbose
        self.logger = logger.bind(component='LogConsole')

    def error(self, message: str) -> None:
        self.logger.error(message)

    def warn(self, message: str) -> None:
        self.logger.warning(message)

    def info(self, message: str) -> None:
        self.logger.info(message)

    def progress(self, message: str) -> None:
        self.logger.info(message)

    def prompt_confirmation(self, message: str) -> bool:
        self.logger.warning(f'{message} (answering {"yes" if self.answer else "no"})')
        return self.answer

    def is_verbose(self) -> bool:
        return self._verbose


class ProgressPrefixConsole(Console):
    """Delegating console that prefixes progress messages."""

    def __init__(self, prefix: str, delegate: Console):
        self.prefix = prefix
        self.delegate = delegate

    def error(self, message: str) -> None:
        self.delegate.error(message)

    def warn(self, message: str) -> None:
        self.delegate.warn(message)

    def info(self, message: str) -> None:
        self.delegate.info(message)

    def progress(self, message: str) -> None:
        self.delegate.progress(self.prefix + message)

    def prompt_confirmation(self, message: str) -> bool:
        return self.delegate.prompt_confirmation(message)

    def is_verbose(self) -> bool:
        return self.delegate.is_verbose()
