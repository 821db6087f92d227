"""Git repository origin."""

import os
import re
from pathlib import Path
from typing import Optional

from loguru import logger

from ..config.config import GitConfig
from ..exceptions import CannotResolveRevisionException, EmptyChangeException
from ..migration.origin import ChangesVisitor, Origin, Reader, VisitResult
from ..models.author import Author, Authoring
from ..models.change import Change, ChangesResponse, EmptyReason
from ..models.revision import Revision
from ..utils.glob import Glob
from .repository import (
    GIT_ORIGIN_REV_ID,
    CannotFindReferenceException,
    GitLogEntry,
    GitRepository,
)

_SHA = re.compile(r'^[0-9a-f]{7,40}$')
_FETCHED_REF = 'refs/repo-migrate/fetched'
_VISIT_PAGE_SIZE = 100


class GitOrigin(Origin):
    """Reads changes from a git repository.

    The repository is fetched into a bare cache under the configured storage
    directory and history is read following first parents only.
    """

    def __init__(self, url: str, ref: Optional[str] = None, config: Optional[GitConfig] = None):
        """Initialize the origin.

        Args:
            url: Repository URL or local path
            ref: Default reference when none is passed
            config: Git configuration
        """
        self.url = url
        self.ref = ref
        self.config = config or GitConfig()
        self.logger = logger.bind(component='GitOrigin')
        self._repo: Optional[GitRepository] = None
        self._fetched = False

    @property
    def label_name(self) -> str:
        return GIT_ORIGIN_REV_ID

    @property
    def origin_type(self) -> str:
        return 'git.origin'

    def describe(self, origin_files: Glob):
        description = super().describe(origin_files)
        description['url'] = [self.url]
        if self.ref:
            description['ref'] = [self.ref]
        return description

    def repository(self) -> GitRepository:
        """Local bare cache of the origin, fetched once per instance."""
        if self._repo is None:
            name = re.sub(r'[^\w.-]', '_', self.url)
            self._repo = GitRepository.init_bare(
                self.config.storage_dir() / 'origins' / name, timeout=self.config.timeout
            )
        if not self._fetched:
            self.logger.info(f'Fetching {self.url}')
            self._repo.fetch(self.url, ['+refs/heads/*:refs/heads/*', '+refs/tags/*:refs/tags/*'])
            self._fetched = True
        return self._repo

    def resolve(self, reference: Optional[str]) -> Revision:
        reference = reference or self.ref
        if not reference:
            raise CannotResolveRevisionException(
                'No reference was passed as a command line argument and no default reference '
                'was configured in the git origin'
            )
        repo = self.repository()
        sha = repo.rev_parse(reference)
        if sha is None and not _SHA.match(reference):
            try:
                repo.fetch(self.url, [f'+{reference}:{_FETCHED_REF}'])
            except CannotFindReferenceException as e:
                raise CannotResolveRevisionException(
                    f"Cannot find reference '{reference}' in '{self.url}'"
                ) from e
            sha = repo.rev_parse(_FETCHED_REF)
        if sha is None:
            raise CannotResolveRevisionException(
                f"Cannot find reference '{reference}' in '{self.url}'"
            )

        entry = repo.log(sha, limit=1)[0]
        return Revision(
            id=sha,
            context_reference=reference if reference != sha else None,
            timestamp=entry.timestamp,
            url=self.url,
        )

    def new_reader(self, origin_files: Glob, authoring: Authoring) -> 'GitReader':
        return GitReader(self, origin_files, authoring)

    def __repr__(self) -> str:
        return f'GitOrigin(url={self.url!r}, ref={self.ref!r})'


class GitReader(Reader):
    """Reader of a git origin."""

    def __init__(self, origin: GitOrigin, origin_files: Glob, authoring: Authoring):
        self.origin = origin
        self.origin_files = origin_files
        self.authoring = authoring
        self.logger = logger.bind(component='GitReader')

    def checkout(self, revision: Revision, workdir: Path) -> None:
        workdir = Path(workdir)
        self.logger.info(f'Checking out {revision.as_string()} into {workdir}')
        self.origin.repository().checkout_tree(revision.id, workdir)
        if not self.origin_files.is_all_files():
            _remove_unselected(workdir, self.origin_files)

    def changes(self, from_revision: Optional[Revision], to_revision: Revision) -> ChangesResponse:
        repo = self.origin.repository()
        if from_revision is None:
            revision_range = to_revision.id
        else:
            if from_revision.id == to_revision.id or repo.is_ancestor(
                to_revision.id, from_revision.id
            ):
                return ChangesResponse.no_changes(EmptyReason.TO_IS_ANCESTOR)
            if not repo.is_ancestor(from_revision.id, to_revision.id):
                return ChangesResponse.no_changes(EmptyReason.UNRELATED_REVISIONS)
            revision_range = f'{from_revision.id}..{to_revision.id}'

        entries = repo.log(revision_range, reverse=True, include_files=True)
        changes = [
            self._to_change(entry, to_revision) for entry in entries if self._selected(entry)
        ]
        if not changes:
            return ChangesResponse.no_changes(EmptyReason.NO_CHANGES)
        return ChangesResponse.for_changes(changes)

    def change(self, revision: Revision) -> Change:
        entries = self.origin.repository().log(revision.id, limit=1, include_files=True)
        if not entries or not self._selected(entries[0]):
            raise EmptyChangeException(
                f"'{revision.as_string()}' doesn't include any change for {self.origin_files!r}"
            )
        return self._to_change(entries[0], revision)

    def visit_changes(self, start: Revision, visitor: ChangesVisitor) -> None:
        repo = self.origin.repository()
        skip = 0
        while True:
            entries = repo.log(start.id, limit=_VISIT_PAGE_SIZE, skip=skip, include_files=True)
            for entry in entries:
                if not self._selected(entry):
                    continue
                if visitor(self._to_change(entry, start)) == VisitResult.TERMINATE:
                    return
            if len(entries) < _VISIT_PAGE_SIZE:
                return
            skip += _VISIT_PAGE_SIZE

    def _selected(self, entry: GitLogEntry) -> bool:
        if self.origin_files.is_all_files() or entry.files is None:
            return True
        return any(self.origin_files.matches(path) for path in entry.files)

    def _to_change(self, entry: GitLogEntry, context: Revision) -> Change:
        revision = Revision(
            id=entry.sha,
            context_reference=context.context_reference if entry.sha == context.id else None,
            timestamp=entry.timestamp,
            url=self.origin.url,
        )
        author = Author(name=entry.author_name, email=entry.author_email)
        return Change(
            revision=revision,
            author=self.authoring.resolve(author),
            message=entry.body,
            date_time=entry.timestamp,
            files=frozenset(entry.files) if entry.files is not None else None,
            merge=entry.is_merge,
        )


def _remove_unselected(root: Path, selector: Glob) -> None:
    for dirpath, dirnames, filenames in os.walk(root, topdown=False):
        current = Path(dirpath)
        for name in filenames + [d for d in dirnames if (current / d).is_symlink()]:
            path = current / name
            if not selector.matches(path.relative_to(root).as_posix()):
                path.unlink()
        if current != root and not any(current.iterdir()):
            current.rmdir()
