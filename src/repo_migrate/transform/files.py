"""Transformations of the checkout files."""

import os
import re
import shutil
from pathlib import Path
from typing import Dict, List, Optional

from loguru import logger

from ..exceptions import (
    NonReversibleValidationException,
    ValidationException,
    VoidOperationException,
)
from ..migration.transform_work import TransformWork
from ..utils.glob import Glob
from .base import Transformation

_INTERPOLATION = re.compile(r'\$\{(\w+)\}')


def _check_path(path: str, field_name: str) -> None:
    if not path:
        return
    normalized = os.path.normpath(path)
    if os.path.isabs(path) or normalized != path.rstrip('/') or normalized.startswith('..'):
        raise ValidationException(f"'{field_name}' must be a normalized relative path: '{path}'")


def _noop(work: TransformWork, message: str) -> None:
    if work.ignore_noop:
        work.console.warn(message)
    else:
        raise VoidOperationException(message)


class Move(Transformation):
    """Move a file or a directory inside the checkout.

    An empty ``before`` moves the whole tree into ``after``. An empty
    ``after`` moves the content of ``before`` to the root.
    """

    def __init__(
        self,
        before: str,
        after: str,
        paths: Optional[Glob] = None,
        overwrite: bool = False,
    ):
        _check_path(before, 'before')
        _check_path(after, 'after')
        ValidationException.check(
            before != after,
            "Moving from the same folder to the same folder is a noop: '%s'",
            before,
        )
        self.before = before.rstrip('/')
        self.after = after.rstrip('/')
        self.paths = paths
        self.overwrite = overwrite
        self.logger = logger.bind(component='Move')

    def transform(self, work: TransformWork) -> TransformWork:
        root = work.checkout_dir
        source = root / self.before if self.before else root
        if not os.path.lexists(source):
            _noop(work, f"Error moving '{self.before}'. It doesn't exist in the workdir")
            return work

        if source.is_file() or source.is_symlink():
            self._move_file(source, root / self.after)
            return work

        files = self._files_to_move(source, root)
        if not files:
            _noop(work, f"Error moving '{self.before}'. No files matched")
            return work
        for relative in files:
            target = root / self.after / relative if self.after else root / relative
            self._move_file(source / relative, target)
        _remove_empty_dirs(source, keep=source == root)
        return work

    def _files_to_move(self, source: Path, root: Path) -> List[str]:
        selector = self.paths or Glob.ALL_FILES
        files = selector.files(source)
        if not self.before and self.after:
            # Don't move the destination folder into itself
            files = [f for f in files if f != self.after and not f.startswith(self.after + '/')]
        return files

    def _move_file(self, source: Path, target: Path) -> None:
        if os.path.lexists(target):
            if target.is_dir() and not target.is_symlink():
                raise ValidationException(
                    f"Cannot move file to '{target}' because it is a directory"
                )
            if not self.overwrite:
                raise ValidationException(
                    f"Cannot move file to '{target}' because it already exists"
                )
            target.unlink()
        target.parent.mkdir(parents=True, exist_ok=True)
        self.logger.debug(f'Moving {source} to {target}')
        shutil.move(str(source), str(target))

    def reverse(self) -> 'Move':
        return Move(self.after, self.before, paths=self.paths, overwrite=self.overwrite)

    def describe(self) -> str:
        return f"Moving {self.before or '<root>'}"

    def __repr__(self) -> str:
        return f'Move(before={self.before!r}, after={self.after!r}, paths={self.paths!r})'


def _remove_empty_dirs(directory: Path, keep: bool) -> None:
    for dirpath, _, _ in sorted(os.walk(directory), key=lambda entry: -len(entry[0])):
        path = Path(dirpath)
        if path.is_symlink() or (keep and path == directory):
            continue
        if not any(path.iterdir()):
            path.rmdir()


class Replace(Transformation):
    """Replace text in the checkout files using ``${name}`` templates.

    Each interpolation in ``before`` is matched with the regex configured for
    that name in ``regex_groups`` and can be referenced from ``after``.
    Without ``multiline`` the replacement is applied line by line.
    """

    def __init__(
        self,
        before: str,
        after: str,
        regex_groups: Optional[Dict[str, str]] = None,
        paths: Optional[Glob] = None,
        multiline: bool = False,
    ):
        ValidationException.check(before != '', "'before' cannot be empty")
        self.before = before
        self.after = after
        self.regex_groups = dict(regex_groups or {})
        self.paths = paths or Glob.ALL_FILES
        self.multiline = multiline

        self.before_groups = _INTERPOLATION.findall(before)
        after_groups = _INTERPOLATION.findall(after)
        for name in list(self.before_groups) + after_groups:
            ValidationException.check(
                name in self.regex_groups, "Interpolation '%s' is not defined in regex_groups", name
            )
        for name in after_groups:
            ValidationException.check(
                name in self.before_groups,
                "Interpolation '%s' is used in 'after' but not in 'before'",
                name,
            )
        for name in self.regex_groups:
            ValidationException.check(
                name in self.before_groups,
                "regex_groups key '%s' is not used in 'before'",
                name,
            )
        self.pattern = re.compile(
            self._to_regex(before), re.MULTILINE if multiline else 0
        )
        self.replacement = _INTERPOLATION.sub(
            lambda m: '\\g<' + m.group(1) + '>', after.replace('\\', '\\\\')
        )

    def _to_regex(self, template: str) -> str:
        parts = []
        seen = set()
        position = 0
        for match in _INTERPOLATION.finditer(template):
            parts.append(re.escape(template[position:match.start()]))
            name = match.group(1)
            if name in seen:
                parts.append(f'(?P={name})')
            else:
                parts.append(f'(?P<{name}>{self.regex_groups[name]})')
                seen.add(name)
            position = match.end()
        parts.append(re.escape(template[position:]))
        return ''.join(parts)

    def transform(self, work: TransformWork) -> TransformWork:
        changed = 0
        for relative in self.paths.files(work.checkout_dir):
            path = work.checkout_dir / relative
            if path.is_symlink():
                continue
            try:
                content = path.read_text(encoding='utf-8')
            except UnicodeDecodeError:
                continue
            new_content = self._replace(content)
            if new_content != content:
                path.write_text(new_content, encoding='utf-8')
                changed += 1
        if not changed:
            _noop(
                work,
                f"Transformation '{self.describe()}' was a no-op because it didn't change "
                'any of the matching files',
            )
        return work

    def _replace(self, content: str) -> str:
        if self.multiline:
            return self.pattern.sub(self.replacement, content)
        return ''.join(
            self.pattern.sub(self.replacement, line[:-1]) + '\n'
            if line.endswith('\n')
            else self.pattern.sub(self.replacement, line)
            for line in content.splitlines(keepends=True)
        )

    def reverse(self) -> 'Replace':
        after_groups = _INTERPOLATION.findall(self.after)
        missing = [name for name in self.before_groups if name not in after_groups]
        if missing:
            raise NonReversibleValidationException(
                f"The transformation is not automatically reversible because 'after' doesn't "
                f'use the groups {missing}. Add an explicit reversal.'
            )
        return Replace(
            self.after,
            self.before,
            regex_groups=self.regex_groups,
            paths=self.paths,
            multiline=self.multiline,
        )

    def describe(self) -> str:
        return f'Replace {self.before}'

    def __repr__(self) -> str:
        return f'Replace(before={self.before!r}, after={self.after!r}, paths={self.paths!r})'
