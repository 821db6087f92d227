"""Thin synchronous wrapper around the git command line."""

import os
import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from loguru import logger

from ..exceptions import CannotResolveRevisionException, RepoException

GIT_ORIGIN_REV_ID = 'GitOrigin-RevId'

_FIELD_SEP = '\x1f'
_RECORD_SEP = '\x1e'
_LOG_FORMAT = _FIELD_SEP.join(['%H', '%P', '%an', '%ae', '%at', '%B']) + _RECORD_SEP


class GitCommandError(RepoException):
    """A git command exited with a non zero status."""

    def __init__(self, message: str, returncode: int, stderr: str = ''):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class CannotFindReferenceException(GitCommandError):
    """A fetched reference does not exist in the remote."""

    pass


@dataclass
class CommandOutput:
    """Output of a git command."""

    stdout: str
    stderr: str
    returncode: int


@dataclass
class GitLogEntry:
    """A commit read from ``git log``."""

    sha: str
    parents: List[str]
    author_name: str
    author_email: str
    timestamp: datetime
    body: str
    files: Optional[List[str]] = None

    @property
    def is_merge(self) -> bool:
        return len(self.parents) > 1


def git_available() -> bool:
    return shutil.which('git') is not None


class GitRepository:
    """A git repository, bare or with a work tree.

    Every command is run synchronously and raises ``GitCommandError`` when
    git fails.
    """

    def __init__(
        self,
        git_dir: Path,
        work_tree: Optional[Path] = None,
        timeout: int = 3600,
        environment: Optional[Dict[str, str]] = None,
    ):
        """Initialize the repository wrapper.

        Args:
            git_dir: The .git directory, or the repository for bare ones
            work_tree: Work tree, None for bare repositories
            timeout: Timeout in seconds for every command
            environment: Extra environment variables for git
        """
        self.git_dir = Path(git_dir)
        self.work_tree = Path(work_tree) if work_tree is not None else None
        self.timeout = timeout
        self.environment = dict(environment or {})
        self.logger = logger.bind(component='GitRepository')

    @classmethod
    def init_bare(cls, path: Path, timeout: int = 3600, environment=None) -> 'GitRepository':
        path = Path(path)
        path.mkdir(parents=True, exist_ok=True)
        repo = cls(path, timeout=timeout, environment=environment)
        if not (path / 'HEAD').exists():
            repo.git('init', '--bare', '-q')
        return repo

    @classmethod
    def init_scratch(cls, timeout: int = 3600, environment=None, temp_dir=None) -> 'GitRepository':
        """Create a non bare repository in a new temporary directory."""
        work_tree = Path(tempfile.mkdtemp(prefix='repo-migrate-scratch-', dir=temp_dir))
        repo = cls(work_tree / '.git', work_tree, timeout=timeout, environment=environment)
        repo.git('init', '-q')
        return repo

    def with_work_tree(self, work_tree: Path) -> 'GitRepository':
        """Same repository using a different work tree."""
        return GitRepository(self.git_dir, work_tree, self.timeout, self.environment)

    def git(self, *args: str, check: bool = True, input: Optional[str] = None) -> CommandOutput:
        """Run a git command.

        Args:
            *args: Git arguments
            check: Raise if the command fails
            input: Text sent to stdin

        Returns:
            Command output
        """
        cmd = ['git', f'--git-dir={self.git_dir}']
        if self.work_tree is not None:
            cmd.append(f'--work-tree={self.work_tree}')
        cmd.extend(args)
        cwd = self.work_tree or self.git_dir

        env = dict(os.environ)
        env.update(self.environment)
        env.setdefault('GIT_TERMINAL_PROMPT', '0')

        self.logger.debug(f'Running git command: {" ".join(cmd)} in {cwd}')
        try:
            process = subprocess.run(
                cmd,
                cwd=str(cwd),
                env=env,
                input=input,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise RepoException(
                f'Git command timed out after {self.timeout}s: {" ".join(args)}'
            ) from e
        except OSError as e:
            raise RepoException(f'Cannot execute git: {e}') from e

        self.logger.debug(f'Git command return code: {process.returncode}')
        if process.stderr:
            self.logger.debug(f'Git command stderr: {process.stderr.strip()}')

        output = CommandOutput(process.stdout, process.stderr, process.returncode)
        if check and process.returncode != 0:
            raise GitCommandError(
                f'Error executing git {" ".join(args)}: {process.stderr.strip()}',
                process.returncode,
                process.stderr,
            )
        return output

    def fetch(self, url: str, refspecs: Sequence[str], force: bool = True) -> None:
        """Fetch refspecs from a remote.

        Raises:
            CannotFindReferenceException: If a reference doesn't exist in the remote
        """
        args = ['fetch', '-q', '--no-tags']
        if force:
            args.append('-f')
        args.append(url)
        args.extend(refspecs)
        try:
            self.git(*args)
        except GitCommandError as e:
            if "couldn't find remote ref" in e.stderr or 'not our ref' in e.stderr:
                raise CannotFindReferenceException(str(e), e.returncode, e.stderr) from e
            raise

    def rev_parse(self, reference: str) -> Optional[str]:
        """Resolve a reference to a commit sha, None if it doesn't exist."""
        output = self.git(
            'rev-parse', '--verify', '--quiet', f'{reference}^{{commit}}', check=False
        )
        if output.returncode != 0:
            return None
        return output.stdout.strip()

    def resolve(self, reference: str) -> str:
        sha = self.rev_parse(reference)
        if sha is None:
            raise CannotResolveRevisionException(f"Cannot find reference '{reference}'")
        return sha

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        output = self.git('merge-base', '--is-ancestor', ancestor, descendant, check=False)
        if output.returncode not in (0, 1):
            raise GitCommandError(
                f'Error checking ancestry of {ancestor} and {descendant}: {output.stderr.strip()}',
                output.returncode,
                output.stderr,
            )
        return output.returncode == 0

    def log(
        self,
        revision_range: str,
        first_parent: bool = True,
        limit: Optional[int] = None,
        skip: int = 0,
        reverse: bool = False,
        include_files: bool = False,
    ) -> List[GitLogEntry]:
        """Read commits of ``revision_range`` (newest first unless ``reverse``)."""
        args = ['log', '--no-color', f'--format={_LOG_FORMAT}']
        if first_parent:
            args.append('--first-parent')
        if limit is not None:
            args.append(f'-{limit}')
        if skip:
            args.append(f'--skip={skip}')
        if reverse:
            args.append('--reverse')
        args.extend([revision_range, '--'])
        output = self.git(*args)

        entries = []
        for record in output.stdout.split(_RECORD_SEP):
            record = record.lstrip('\n')
            if not record:
                continue
            sha, parents, name, email, timestamp, body = record.split(_FIELD_SEP, 5)
            entry = GitLogEntry(
                sha=sha,
                parents=parents.split(),
                author_name=name,
                author_email=email,
                timestamp=datetime.fromtimestamp(int(timestamp), tz=timezone.utc),
                body=body,
            )
            if include_files:
                parent = entry.parents[0] if entry.parents else None
                entry.files = self.changed_files(entry.sha, parent)
            entries.append(entry)
        return entries

    def changed_files(self, sha: str, parent: Optional[str] = None) -> List[str]:
        """Files changed by a commit against ``parent``, or all of them for root commits."""
        args = ['diff-tree', '--no-commit-id', '--name-only', '-r', '-z']
        if parent is None:
            args.extend(['--root', sha])
        else:
            args.extend([parent, sha])
        output = self.git(*args)
        return sorted({name for name in output.stdout.split('\0') if name})

    def commit_body(self, sha: str) -> str:
        return self.git('log', '--no-color', '--format=%B', '-1', sha).stdout

    def parents(self, sha: str) -> List[str]:
        return self.git('log', '--no-color', '--format=%P', '-1', sha).stdout.split()

    def checkout_tree(self, sha: str, target: Path) -> None:
        """Write the tree of ``sha`` into ``target`` without touching any index."""
        target = Path(target)
        if target.exists():
            shutil.rmtree(target)
        target.mkdir(parents=True)
        with tempfile.TemporaryDirectory(prefix='repo-migrate-index-') as index_dir:
            repo = GitRepository(
                self.git_dir,
                target,
                self.timeout,
                {**self.environment, 'GIT_INDEX_FILE': str(Path(index_dir) / 'index')},
            )
            repo.git('read-tree', sha)
            repo.git('checkout-index', '-a', '-f')

    def config(self, key: str, value: str) -> None:
        self.git('config', key, value)

    def config_list(self) -> Dict[str, str]:
        result = {}
        for line in self.git('config', '-l').stdout.splitlines():
            if '=' in line:
                key, value = line.split('=', 1)
                result[key] = value
        return result

    def add_all(self) -> None:
        self.git('add', '--all')

    def staged_diff(self) -> str:
        return self.git('diff', '--staged', '--no-color').stdout

    def has_staged_changes(self) -> bool:
        return self.git('diff', '--staged', '--quiet', check=False).returncode != 0

    def commit(self, author: str, timestamp: int, message: str, allow_empty: bool = False) -> None:
        args = ['commit', '-q', f'--author={author}', f'--date=@{timestamp} +0000', '-F', '-']
        if allow_empty:
            args.append('--allow-empty')
        self.git(*args, input=message)

    def rebase(self, upstream: str) -> None:
        try:
            self.git('rebase', '-q', upstream)
        except GitCommandError as e:
            self.git('rebase', '--abort', check=False)
            raise RepoException(f'Conflict rebasing the change on top of {upstream}: {e}') from e

    def push(self, url: str, refspec: str) -> str:
        """Push and return git's output (written to stderr)."""
        return self.git('push', url, refspec).stderr

    def __repr__(self) -> str:
        return f'GitRepository(git_dir={self.git_dir}, work_tree={self.work_tree})'
