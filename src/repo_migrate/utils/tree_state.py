"""Cached snapshots of a checkout directory."""

import hashlib
import os
from pathlib import Path
from typing import Dict, List, Optional

from .glob import Glob


class TreeState:
    """Snapshot of the files under a checkout directory.

    The tree is walked lazily, once per instance. A transformation that
    mutates the checkout must be followed by ``new_tree_state()`` so later
    steps do not see stale content.
    """

    def __init__(self, root: Path):
        self.root = Path(root)
        self._fingerprints: Optional[Dict[str, str]] = None

    def new_tree_state(self) -> 'TreeState':
        return TreeState(self.root)

    def fingerprints(self) -> Dict[str, str]:
        """Map of relative path to content hash (or symlink target)."""
        if self._fingerprints is None:
            self._fingerprints = self._walk()
        return self._fingerprints

    def find(self, glob: Glob) -> List[str]:
        return sorted(path for path in self.fingerprints() if glob.matches(path))

    def differs_from(self, other: 'TreeState') -> bool:
        return self.fingerprints() != other.fingerprints()

    def _walk(self) -> Dict[str, str]:
        result: Dict[str, str] = {}
        if not self.root.is_dir():
            return result
        for dirpath, dirnames, filenames in os.walk(self.root):
            current = Path(dirpath)
            for name in filenames + [d for d in dirnames if (current / d).is_symlink()]:
                path = current / name
                relative = path.relative_to(self.root).as_posix()
                if path.is_symlink():
                    result[relative] = 'symlink:' + os.readlink(path)
                else:
                    result[relative] = _hash_file(path)
        return result


def _hash_file(path: Path) -> str:
    digest = hashlib.sha256()
    with open(path, 'rb') as f:
        for chunk in iter(lambda: f.read(65536), b''):
            digest.update(chunk)
    return digest.hexdigest()
