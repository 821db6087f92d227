"""Local folder destination."""

import os
import shutil
import tempfile
from pathlib import Path
from typing import Dict, Optional

from loguru import logger

from ..config.config import FolderConfig
from ..exceptions import EmptyChangeException
from ..migration.destination import (
    Destination,
    DestinationEffect,
    DestinationRef,
    EffectType,
    Writer,
    WriterResult,
)
from ..migration.transform_result import TransformResult
from ..utils.console import Console
from ..utils.glob import Glob
from ..utils.tree_state import TreeState


class FolderDestination(Destination):
    """Writes the migrated tree into a local directory.

    Files owned by the migration are replaced on every write; the rest of
    the directory is left untouched. The folder keeps no history, so there
    is never a previous reference.
    """

    def __init__(self, config: Optional[FolderConfig] = None):
        self.config = config or FolderConfig()
        self.logger = logger.bind(component='FolderDestination')
        self._folder: Optional[Path] = None

    @property
    def folder(self) -> Path:
        if self._folder is None:
            if self.config.destination_folder:
                self._folder = Path(self.config.destination_folder).absolute()
            else:
                self._folder = Path(tempfile.mkdtemp(prefix='repo-migrate-folder-'))
        return self._folder

    @property
    def destination_type(self) -> str:
        return 'folder.destination'

    def new_writer(
        self,
        destination_files: Glob,
        dry_run: bool = False,
        old_writer: Optional[Writer] = None,
    ) -> 'FolderWriter':
        return FolderWriter(self, destination_files, dry_run)

    def get_previous_ref(self, label_name: str) -> Optional[str]:
        return None


class FolderWriter(Writer):
    """Writer of a folder destination."""

    def __init__(self, destination: FolderDestination, destination_files: Glob, dry_run: bool):
        self.destination = destination
        self.destination_files = destination_files
        self.dry_run = dry_run

    def write(self, transform_result: TransformResult, console: Console) -> WriterResult:
        """Replace the owned files of the folder with the transformed ones.

        Raises:
            EmptyChangeException: If the owned files would not change
        """
        folder = self.destination.folder
        owned = transform_result.destination_files
        before = _owned_fingerprints(folder, owned)
        after = _owned_fingerprints(transform_result.path, owned)
        if before == after:
            raise EmptyChangeException(
                f"Migration of '{transform_result.origin_ref.as_string()}' resulted in no "
                f'changes in {folder}'
            )

        effect_type = EffectType.NOOP
        if self.dry_run:
            console.info(f'Dry run: not writing {len(after)} files to {folder}')
        else:
            console.progress(f'FolderDestination: creating {folder}')
            folder.mkdir(parents=True, exist_ok=True)
            for relative in before:
                (folder / relative).unlink()
            _remove_empty_dirs(folder)
            for relative in after:
                _copy(transform_result.path / relative, folder / relative)
            effect_type = EffectType.CREATED if not before else EffectType.UPDATED

        effect = DestinationEffect(
            type=effect_type,
            summary=f'Wrote {len(after)} files to {folder}',
            origin_refs=[transform_result.origin_ref],
            destination_ref=DestinationRef(id=str(folder), type='folder'),
        )
        return WriterResult(effects=[effect], previous_ref=transform_result.origin_ref.as_string())


def _owned_fingerprints(root: Path, owned: Glob) -> Dict[str, str]:
    return {
        path: digest
        for path, digest in TreeState(root).fingerprints().items()
        if owned.matches(path)
    }


def _copy(source: Path, target: Path) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    if source.is_symlink():
        os.symlink(os.readlink(source), target)
    else:
        shutil.copy2(source, target)


def _remove_empty_dirs(root: Path) -> None:
    for dirpath, dirnames, filenames in os.walk(root, topdown=False):
        current = Path(dirpath)
        if current != root and not current.is_symlink() and not any(current.iterdir()):
            current.rmdir()
