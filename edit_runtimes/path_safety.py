# edit_runtimes/path_safety.py
"""edit_runtimes.path_safety

Helpers to safely resolve and validate filesystem paths against the
configured project_root before the gateway mutates anything.

Key APIs:
- check_sandbox(target_path, project_root, ...) -> pathlib.Path:
  The gate every edit target passes through. Normalizes the path (resolving
  "." / ".." and following symlinks) and then enforces, in order:
    1. the path is a strict descendant of project_root and carries no ".."
       segment after normalization;
    2. no dependency-cache component (node_modules) appears anywhere in it;
    3. it is not, and does not live under, a public/static asset directory.
  Violations raise ForbiddenPathError.

- resolve_within_root(project_root, rel_path) -> pathlib.Path:
  Strict resolver for repo-relative input. It *rejects* absolute paths and any
  path containing ".." traversal parts, resolves under project_root (following
  symlinks), and guarantees the result is an absolute Path within project_root.

- validate_within_root(target_path, project_root) -> bool:
  Non-raising containment predicate.

Containment checks are performed on the resolved path to prevent escapes via
symlinks.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, Union

DEFAULT_FORBIDDEN_COMPONENTS = ("node_modules",)
DEFAULT_PUBLIC_DIRS = ("public",)


class ForbiddenPathError(ValueError):
    """Raised when a target path violates the project sandbox."""

    def __init__(self, path: Union[str, Path], reason: str) -> None:
        self.path = str(path)
        self.reason = reason
        super().__init__(f"Forbidden path {self.path}: {reason}")


def _to_path(p: Union[str, Path]) -> Path:
    if isinstance(p, Path):
        return p
    return Path(str(p))


def _normalize(candidate: Path) -> Path:
    # Lexical normalization first so "a/../b" never reaches the filesystem as-is.
    lexical = Path(os.path.normpath(str(candidate)))
    try:
        return lexical.resolve()
    except (OSError, RuntimeError):
        return lexical.absolute()


def validate_within_root(target_path: Union[str, Path], project_root: Union[str, Path]) -> bool:
    """
    Return True if `target_path` is the same as or located beneath `project_root`.

    `target_path` may be absolute or relative. If relative, it is interpreted
    as relative to `project_root`.
    """
    root = _to_path(project_root).resolve()
    tp = _to_path(target_path)
    candidate = (root / tp) if not tp.is_absolute() else tp
    try:
        _normalize(candidate).relative_to(root)
        return True
    except ValueError:
        return False


def resolve_within_root(project_root: Union[str, Path], rel_path: str) -> Path:
    """Resolve a repo-relative path within project_root.

    Rejects absolute paths and any path containing '..' traversal parts,
    resolves under project_root (following symlinks), and guarantees the
    returned Path is absolute and contained within project_root.

    Raises ForbiddenPathError with deterministic messages on rejection.
    """
    root = Path(project_root).resolve()
    p = Path(rel_path)

    if p.is_absolute():
        raise ForbiddenPathError(rel_path, "absolute paths are not allowed")
    if any(part == ".." for part in p.parts):
        raise ForbiddenPathError(rel_path, "path traversal '..' is not allowed")

    resolved = _normalize(root / p)
    try:
        resolved.relative_to(root)
    except ValueError:
        raise ForbiddenPathError(resolved, f"outside project root {root}")
    return resolved


def check_sandbox(
    target_path: Union[str, Path],
    project_root: Union[str, Path],
    *,
    forbidden_components: Iterable[str] = DEFAULT_FORBIDDEN_COMPONENTS,
    public_dirs: Iterable[str] = DEFAULT_PUBLIC_DIRS,
) -> Path:
    """Validate an edit target against the project sandbox.

    Returns the normalized absolute path on success. Nothing is read or written.
    """
    root = _normalize(_to_path(project_root))
    tp = _to_path(target_path)
    candidate = tp if tp.is_absolute() else root / tp
    normalized = _normalize(candidate)

    # Rule 1: strict containment.
    try:
        rel = normalized.relative_to(root)
    except ValueError:
        raise ForbiddenPathError(normalized, f"outside project root {root}")
    if not rel.parts:
        raise ForbiddenPathError(normalized, "the project root itself is not an editable file")
    if ".." in normalized.parts or ".." in rel.parts:
        raise ForbiddenPathError(normalized, "traversal segment survived normalization")

    # Rule 2: dependency caches, anywhere in the path.
    blocked = set(forbidden_components)
    hit = next((part for part in normalized.parts if part in blocked), None)
    if hit is not None:
        raise ForbiddenPathError(normalized, f"inside dependency directory '{hit}'")

    # Rule 3: public/static assets inside the project.
    public = set(public_dirs)
    hit = next((part for part in rel.parts if part in public), None)
    if hit is not None:
        raise ForbiddenPathError(normalized, f"inside public asset directory '{hit}'")

    return normalized


def project_relative(path: Union[str, Path], project_root: Union[str, Path]) -> str:
    """Return '/'-prefixed POSIX path of `path` relative to `project_root`."""
    root = _to_path(project_root).resolve()
    rel = _normalize(_to_path(path)).relative_to(root)
    return "/" + rel.as_posix()


__all__ = [
    "ForbiddenPathError",
    "check_sandbox",
    "project_relative",
    "resolve_within_root",
    "validate_within_root",
]
