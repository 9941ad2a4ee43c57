"""
Path Resolver

Design Decision: Confinement Check
==================================

Options Considered:
1. Strip leading ``../`` segments with a regex, then join
   - Misses ``a/../../x``, absolute names and symlinks
   - Checks the pattern, not the path that is actually opened

2. Normalize, join, then prefix-check the absolute result
   - Checks exactly the path that will be opened
   - Independent of how the escape was spelled

3. chroot / openat2(RESOLVE_BENEATH)
   - Strongest, but platform specific

Decision: Normalize + prefix check, twice
- Lexical pass: ``normpath(join(root, name))`` must start with
  ``root + os.sep``. Nothing outside the root is touched if this fails.
- Canonical pass: ``realpath`` of the candidate must still be inside the
  canonical root, so a symlink inside the root cannot point outside it.
"""

import os
from pathlib import Path
from typing import Union

from ..exceptions import AccessDenied, NotFound

PathLike = Union[str, os.PathLike]


def _is_within(path: str, root: str) -> bool:
    return path == root or path.startswith(root.rstrip(os.sep) + os.sep)


def confine_path(root: PathLike, name: str) -> Path:
    """
    Join ``name`` to ``root`` and make sure the result stays inside it.

    Purely lexical: the filesystem is not consulted.

    Raises:
        AccessDenied: if the normalized path escapes ``root``
    """
    if '\x00' in name:
        raise AccessDenied(f"NUL byte in requested name {name!r}")
    if os.path.isabs(name):
        raise AccessDenied(f"Absolute name not allowed: {name!r}")

    root_str = os.path.normpath(os.path.abspath(root))
    candidate = os.path.normpath(os.path.join(root_str, name))
    if not _is_within(candidate, root_str):
        raise AccessDenied(f"{name!r} resolves outside {root_str}")
    return Path(candidate)


class PathResolver:
    """
    Maps client-supplied relative names to files under a server root.

    Stateless apart from the root, so one instance is shared by every
    connection and datagram handler.
    """

    def __init__(self, root_dir: PathLike):
        self.root_dir = Path(os.path.abspath(root_dir))
        self._canonical_root = os.path.realpath(self.root_dir)

    def resolve(self, requested_name: str) -> Path:
        """
        Resolve a requested name to an absolute, servable file path.

        Raises:
            AccessDenied: the name escapes the root (lexically or via symlink)
            NotFound: the path does not exist or is not a regular file

        Returns:
            The canonical (symlink-free) path that was checked
        """
        candidate = confine_path(self.root_dir, requested_name)

        canonical = os.path.realpath(candidate)
        if not _is_within(canonical, self._canonical_root):
            raise AccessDenied(f"{requested_name!r} links outside {self._canonical_root}")

        if not os.path.isfile(canonical):
            raise NotFound(f"No such file: {requested_name!r}")

        # Open exactly the path that passed the checks
        return Path(canonical)
