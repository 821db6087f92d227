"""Local folder origin."""

import os
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from loguru import logger

from ..config.config import FolderConfig
from ..exceptions import CannotResolveRevisionException, ValidationException
from ..migration.origin import ChangesVisitor, Origin, Reader
from ..models.author import Author, Authoring
from ..models.change import Change, ChangesResponse
from ..models.revision import Revision
from ..utils.glob import Glob

FOLDER_ORIGIN_REV_ID = 'FolderOrigin-RevId'


class FolderOrigin(Origin):
    """Uses a local directory as a history with a single change.

    The revision id is the absolute path of the folder. Changes get the
    configured default author and message.
    """

    def __init__(self, config: Optional[FolderConfig] = None, cwd: Optional[Path] = None):
        self.config = config or FolderConfig()
        self.cwd = Path(cwd) if cwd is not None else Path.cwd()
        self.author = Author.parse(self.config.origin_author)
        self.message = self.config.origin_message
        self.materialize_outside_symlinks = self.config.materialize_outside_symlinks

    @property
    def label_name(self) -> str:
        return FOLDER_ORIGIN_REV_ID

    @property
    def origin_type(self) -> str:
        return 'folder.origin'

    def resolve(self, reference: Optional[str]) -> Revision:
        if not reference:
            raise CannotResolveRevisionException(
                'A path is expected as reference in the command line for a folder origin'
            )
        path = Path(reference)
        if not path.is_absolute():
            path = self.cwd / path
        path = Path(os.path.normpath(path))
        if not path.is_dir():
            raise CannotResolveRevisionException(f"'{path}' doesn't exist or is not a directory")
        if not os.access(path, os.R_OK):
            raise CannotResolveRevisionException(f"'{path}' is not readable")
        return Revision(id=str(path), timestamp=datetime.now(timezone.utc))

    def new_reader(self, origin_files: Glob, authoring: Authoring) -> 'FolderReader':
        return FolderReader(self, origin_files, authoring)


class FolderReader(Reader):
    """Reader of a folder origin."""

    def __init__(self, origin: FolderOrigin, origin_files: Glob, authoring: Authoring):
        self.origin = origin
        self.origin_files = origin_files
        self.authoring = authoring
        self.logger = logger.bind(component='FolderReader')

    def checkout(self, revision: Revision, workdir: Path) -> None:
        """Copy the selected files of the folder into ``workdir``.

        Raises:
            ValidationException: If a symlink points outside of the folder and
                outside symlinks are not materialized
        """
        source = Path(revision.id)
        workdir = Path(workdir)
        if workdir.exists():
            shutil.rmtree(workdir)
        workdir.mkdir(parents=True)

        outside = []
        for relative in self.origin_files.files(source):
            path = source / relative
            target = workdir / relative
            target.parent.mkdir(parents=True, exist_ok=True)
            if path.is_symlink():
                if _points_inside(path, source):
                    os.symlink(os.readlink(path), target)
                    continue
                if not self.origin.materialize_outside_symlinks:
                    outside.append(relative)
                    continue
                if path.is_dir():
                    shutil.copytree(path, target)
                    continue
            shutil.copy2(path, target)

        if outside:
            raise ValidationException(
                'Some symlinks refer to locations outside of the folder and '
                "'materialize_outside_symlinks' config option was not used: "
                + ', '.join(outside)
            )
        self.logger.info(f'Copied folder {source} to {workdir}')

    def changes(self, from_revision: Optional[Revision], to_revision: Revision) -> ChangesResponse:
        return ChangesResponse.for_changes([self.change(to_revision)])

    def change(self, revision: Revision) -> Change:
        return Change(
            revision=revision,
            author=self.authoring.resolve(self.origin.author),
            message=self.origin.message,
            date_time=revision.timestamp,
        )

    def visit_changes(self, start: Revision, visitor: ChangesVisitor) -> None:
        visitor(self.change(start))


def _points_inside(link: Path, root: Path) -> bool:
    target = os.readlink(link)
    if os.path.isabs(target):
        resolved = Path(os.path.normpath(target))
    else:
        resolved = Path(os.path.normpath(link.parent / target))
    root = Path(os.path.normpath(root))
    return resolved == root or root in resolved.parents
