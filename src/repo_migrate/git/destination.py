"""Git repository destination."""

import os
import shutil
from pathlib import Path
from typing import Callable, Dict, List, Optional

from loguru import logger

from ..config.config import GitConfig
from ..exceptions import ChangeRejectedException, EmptyChangeException, RepoException
from ..migration.destination import (
    Destination,
    DestinationEffect,
    DestinationRef,
    EffectType,
    Writer,
    WriterResult,
)
from ..migration.transform_result import TransformResult
from ..models.message import LabelLine
from ..utils.console import Console
from ..utils.glob import Glob
from .repository import GIT_ORIGIN_REV_ID, CannotFindReferenceException, GitRepository

GIT_FIRST_COMMIT_FLAG = '--git-first-commit'

CommitGenerator = Callable[[TransformResult, GitRepository], str]
PushOutputProcessor = Callable[[str], None]


def default_commit_message(transform_result: TransformResult, repo: GitRepository) -> str:
    """Summary followed by the origin revision label."""
    return (
        f'{transform_result.summary}\n'
        f'{transform_result.origin_label}: {transform_result.origin_ref.as_string()}\n'
    )


def _ignore_push_output(output: str) -> None:
    pass


class GitDestination(Destination):
    """Commits migrated trees on top of a branch of a git repository and pushes them."""

    def __init__(
        self,
        url: str,
        fetch: str,
        push: Optional[str] = None,
        config: Optional[GitConfig] = None,
        commit_generator: CommitGenerator = default_commit_message,
        process_push_output: PushOutputProcessor = _ignore_push_output,
        environment: Optional[Dict[str, str]] = None,
    ):
        """Initialize the destination.

        Args:
            url: Repository URL or local path
            fetch: Reference used as baseline for new commits
            push: Reference to push to, ``fetch`` if not set
            config: Git configuration
            commit_generator: Builds the commit message from the staged change
            process_push_output: Receives git push output
            environment: Extra environment variables for git
        """
        self.url = url
        self.fetch = fetch
        self.push = push or fetch
        self.config = config or GitConfig()
        self.commit_generator = commit_generator
        self.process_push_output = process_push_output
        self.environment = dict(environment or {})
        self.logger = logger.bind(component='GitDestination')

    @property
    def label_name_when_origin(self) -> Optional[str]:
        return GIT_ORIGIN_REV_ID

    @property
    def destination_type(self) -> str:
        return 'git.destination'

    def describe(self, destination_files: Glob):
        description = super().describe(destination_files)
        description['url'] = [self.url]
        description['fetch'] = [self.fetch]
        description['push'] = [self.push]
        return description

    def new_writer(
        self,
        destination_files: Glob,
        dry_run: bool = False,
        old_writer: Optional[Writer] = None,
    ) -> 'GitWriter':
        scratch_clone = None
        if isinstance(old_writer, GitWriter) and old_writer.destination is self and not dry_run:
            scratch_clone = old_writer.scratch_clone
        return GitWriter(self, destination_files, dry_run, scratch_clone)

    def clone_baseline(self) -> GitRepository:
        """Fetch the baseline reference into a new scratch repository.

        Raises:
            RepoException: If the reference is missing and this is not a first
                commit, or if it exists and this is a first commit
        """
        repo = GitRepository.init_scratch(
            timeout=self.config.timeout,
            environment=self.environment,
            temp_dir=self.config.temp_dir,
        )
        try:
            repo.fetch(self.url, [self.fetch])
        except CannotFindReferenceException as e:
            if not self.config.first_commit:
                raise RepoException(
                    f"'{self.fetch}' doesn't exist in '{self.url}'. "
                    f'Use {GIT_FIRST_COMMIT_FLAG} flag if you want to push anyway'
                ) from e
            return repo
        if self.config.first_commit:
            raise RepoException(f"'{self.fetch}' already exists in '{self.url}'.")
        return repo

    def get_previous_ref(self, label_name: str) -> Optional[str]:
        """Walk first parents from the fetch reference looking for ``label_name``.

        Raises:
            RepoException: If a merge commit is found before the label
        """
        if self.config.first_commit:
            return None
        repo = self.clone_baseline()
        try:
            commit = repo.rev_parse('FETCH_HEAD')
            while commit:
                for line in repo.commit_body(commit).split('\n'):
                    label = LabelLine(line)
                    if label.is_label(label_name) and label.separator.strip() == ':':
                        return label.value.strip()
                parents = repo.parents(commit)
                if len(parents) > 1:
                    raise RepoException(
                        'Found commit with multiple parents (merge commit) when looking for '
                        f'{label_name}. Please invoke with the --last-rev flag.'
                    )
                commit = parents[0] if parents else None
            return None
        finally:
            shutil.rmtree(repo.work_tree, ignore_errors=True)

    def __repr__(self) -> str:
        return f'GitDestination(url={self.url!r}, fetch={self.fetch!r}, push={self.push!r})'


class GitWriter(Writer):
    """Writer that keeps a scratch clone across writes of the same run."""

    def __init__(
        self,
        destination: GitDestination,
        destination_files: Glob,
        dry_run: bool = False,
        scratch_clone: Optional[GitRepository] = None,
    ):
        self.destination = destination
        self.destination_files = destination_files
        self.dry_run = dry_run
        self.scratch_clone = scratch_clone
        self.logger = logger.bind(component='GitWriter')

    def write(self, transform_result: TransformResult, console: Console) -> WriterResult:
        destination = self.destination
        config = destination.config
        baseline = transform_result.baseline
        self.logger.info(f'Exporting from {transform_result.path} to {destination!r}')

        if self.scratch_clone is None:
            console.progress(f'Git Destination: Fetching {destination.url}')
            self.scratch_clone = destination.clone_baseline()
            if config.first_commit and baseline is not None:
                raise RepoException(
                    f'Cannot use {GIT_FIRST_COMMIT_FLAG} and a previous baseline ({baseline}). '
                    f'Migrate some code to {destination.url}:{destination.fetch} first.'
                )
            if not config.first_commit:
                console.progress(f'Git Destination: Checking out {destination.fetch}')
                # Commit on top of the baseline and rebase onto FETCH_HEAD later
                self.scratch_clone.git('checkout', '-q', baseline or 'FETCH_HEAD')
            if config.committer_name:
                self.scratch_clone.config('user.name', config.committer_name)
            if config.committer_email:
                self.scratch_clone.config('user.email', config.committer_email)
            _verify_user_info_configured(self.scratch_clone)

        console.progress('Git Destination: Adding files for push')
        alternate = self.scratch_clone.with_work_tree(transform_result.path)
        alternate.add_all()
        self._add_files_not_owned(transform_result.destination_files)

        if not alternate.has_staged_changes() and not config.allow_empty_diff:
            raise EmptyChangeException(
                'Migration of the revision resulted in an empty change. '
                'Is the change already migrated?'
            )

        if transform_result.ask_for_confirmation:
            console.info(alternate.staged_diff())
            if not console.prompt_confirmation(
                f'Proceed with push to {destination.url} {destination.push}?'
            ):
                console.warn('Migration aborted by user.')
                raise ChangeRejectedException(
                    'User aborted execution: did not confirm diff changes.'
                )

        alternate.commit(
            str(transform_result.author),
            transform_result.timestamp,
            destination.commit_generator(transform_result, alternate),
            allow_empty=config.allow_empty_diff,
        )
        if baseline is not None:
            alternate.rebase('FETCH_HEAD')
        sha = alternate.resolve('HEAD')

        if self.dry_run:
            console.info(
                f'Dry run: not pushing {sha} to {destination.url} {destination.push}'
            )
            effect_type = EffectType.NOOP
        else:
            console.progress(f'Git Destination: Pushing to {destination.url} {destination.push}')
            destination.process_push_output(
                alternate.push(destination.url, f'HEAD:{destination.push}')
            )
            effect_type = EffectType.CREATED

        effect = DestinationEffect(
            type=effect_type,
            summary=f'Created revision {sha}',
            origin_refs=[transform_result.origin_ref],
            destination_ref=DestinationRef(id=sha, type='commit', url=destination.url),
        )
        return WriterResult(effects=[effect], previous_ref=transform_result.origin_ref.as_string())

    def _add_files_not_owned(self, destination_files: Glob) -> None:
        """Restore destination files the migration does not own.

        ``add --all`` against the transformed tree stages their deletion.
        """
        if destination_files.is_all_files():
            return
        repo = self.scratch_clone
        work_tree = repo.work_tree
        paths: List[str] = []
        for dirpath, dirnames, filenames in os.walk(work_tree):
            current = Path(dirpath)
            if current == work_tree and '.git' in dirnames:
                dirnames.remove('.git')
            for name in filenames:
                relative = (current / name).relative_to(work_tree).as_posix()
                if not destination_files.matches(relative):
                    paths.append(relative)
        if paths:
            repo.git('add', '-f', '--', *paths)


def _verify_user_info_configured(repo: GitRepository) -> None:
    """Raise if user.name or user.email are missing, so commits get a proper committer."""
    config = repo.config_list()
    if 'user.name' not in config or 'user.email' not in config:
        raise RepoException(
            "'user.name' and/or 'user.email' are not configured. Please run "
            '`git config --global SETTING VALUE` to set them'
        )
