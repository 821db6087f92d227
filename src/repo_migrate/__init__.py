"""repo-migrate

Moves source-code changes from an origin repository to a destination
repository, running a pipeline of transformations on every migrated tree.
"""

__version__ = '0.1.0'
__author__ = 'Repo Migrate Team'
__email__ = 'team@example.com'

from .cli.main import main

__all__ = ['main']
