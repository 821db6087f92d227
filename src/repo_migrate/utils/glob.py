"""Include/exclude path selectors."""

import os
import re
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Set, Union

from ..exceptions import ValidationException

_META_CHARS = set('*?[{\\')


def _check_normalized_relative(pattern: str) -> None:
    if not pattern:
        raise ValidationException('Unexpected empty string in glob list')
    if pattern.startswith('/'):
        raise ValidationException(f"Glob '{pattern}' must be a relative path")
    for segment in pattern.split('/'):
        if segment in ('', '.', '..'):
            raise ValidationException(
                f"Glob '{pattern}' is not a normalized relative path "
                "(empty, '.' or '..' segments are not allowed)"
            )


def _translate(pattern: str) -> str:
    """Translate a glob pattern to a regular expression.

    '*' matches inside a path segment, '**' crosses directories, '?' matches a
    single non separator character, '{a,b}' are alternatives and '[...]' (with
    '!' negation) are character classes.
    """
    result = []
    i = 0
    in_group = False
    while i < len(pattern):
        char = pattern[i]
        if char == '*':
            if pattern[i + 1 : i + 2] == '*':
                result.append('.*')
                i += 1
            else:
                result.append('[^/]*')
        elif char == '?':
            result.append('[^/]')
        elif char == '\\' and i + 1 < len(pattern):
            i += 1
            result.append(re.escape(pattern[i]))
        elif char == '[':
            end = pattern.find(']', i + 1)
            if end == -1:
                raise ValidationException(f"Unclosed character class in glob '{pattern}'")
            body = pattern[i + 1 : end]
            if body.startswith('!'):
                body = '^' + body[1:]
            result.append('[' + body.replace('\\', '\\\\') + ']')
            i = end
        elif char == '{':
            if in_group:
                raise ValidationException(f"Nested groups are not allowed in glob '{pattern}'")
            in_group = True
            result.append('(?:')
        elif char == '}' and in_group:
            in_group = False
            result.append(')')
        elif char == ',' and in_group:
            result.append('|')
        else:
            result.append(re.escape(char))
        i += 1
    if in_group:
        raise ValidationException(f"Unclosed group in glob '{pattern}'")
    return ''.join(result)


class Glob:
    """A list of include patterns with an optional exclude glob.

    A path is selected when it matches any include pattern and does not
    match the exclude glob.
    """

    def __init__(
        self,
        include: Iterable[str],
        exclude: Optional[Union['Glob', Iterable[str]]] = None,
    ):
        self.include: List[str] = list(include)
        if exclude is not None and not isinstance(exclude, Glob):
            exclude = Glob(exclude)
        self.exclude: Optional[Glob] = exclude

        for pattern in self.include:
            _check_normalized_relative(pattern)
        self._regexes = [re.compile(_translate(p) + r'\Z', re.DOTALL) for p in self.include]

    def matches(self, relative_path: Union[str, Path]) -> bool:
        """Return True if the relative path is selected."""
        path = Path(relative_path).as_posix()
        if not any(regex.match(path) for regex in self._regexes):
            return False
        return self.exclude is None or not self.exclude.matches(path)

    def relative_to(self, root: Union[str, Path]) -> Callable[[Union[str, Path]], bool]:
        """Return a matcher of paths under ``root``.

        Paths outside of ``root`` never match.
        """
        root = Path(root)

        def matcher(path: Union[str, Path]) -> bool:
            path = Path(path)
            if path.is_absolute():
                try:
                    path = path.relative_to(root)
                except ValueError:
                    return False
            return self.matches(path)

        return matcher

    def roots(self) -> Set[str]:
        """Shallowest literal directories that contain every selectable file.

        An empty string means the whole tree has to be visited.
        """
        roots: Set[str] = set()
        for pattern in self.include:
            segments = pattern.split('/')
            literal = []
            for segment in segments[:-1]:
                if _META_CHARS & set(segment):
                    break
                literal.append(segment)
            roots.add('/'.join(literal))
        if '' in roots:
            return {''}
        return {
            root
            for root in roots
            if not any(other != root and root.startswith(other + '/') for other in roots)
        }

    def files(self, root: Union[str, Path]) -> List[str]:
        """List the selected regular files and symlinks under ``root``."""
        root = Path(root)
        result = []
        for walk_root in sorted(self.roots()):
            start = root / walk_root if walk_root else root
            if not start.is_dir():
                continue
            for dirpath, dirnames, filenames in os.walk(start):
                dirnames.sort()
                current = Path(dirpath)
                for name in sorted(filenames) + [
                    d for d in dirnames if (current / d).is_symlink()
                ]:
                    relative = (current / name).relative_to(root).as_posix()
                    if self.matches(relative):
                        result.append(relative)
        return sorted(result)

    def is_all_files(self) -> bool:
        return self.include == ['**'] and self.exclude is None

    def __eq__(self, other) -> bool:
        if not isinstance(other, Glob):
            return NotImplemented
        return self.include == other.include and self.exclude == other.exclude

    def __hash__(self) -> int:
        return hash((tuple(self.include), self.exclude))

    def __repr__(self) -> str:
        include = '[' + ', '.join(f'"{p}"' for p in self.include) + ']'
        if self.exclude is None:
            return f'glob(include = {include})'
        exclude = '[' + ', '.join(f'"{p}"' for p in self.exclude.include) + ']'
        return f'glob(include = {include}, exclude = {exclude})'


Glob.ALL_FILES = Glob(['**'])
