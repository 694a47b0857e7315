"""
edit_runtimes/patcher.py

Crash-safe replacement of source files.

Each write keeps a recovery copy next to the target (`<target>.backup` by
default) for exactly as long as the write is in flight:

    read current bytes -> copy to backup -> atomic replace -> delete backup

If the replace fails the backup stays on disk and PatchApplyError is raised.
Nothing here restores a backup automatically; `find_orphaned_backups` and
`restore_backup` exist for the operator-driven recovery path.

IMPORTANT: callers are expected to have validated `target` with
`edit_runtimes.path_safety.check_sandbox` first. This module does not
re-implement containment logic.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Iterable, List, Optional

log = logging.getLogger(__name__)

DEFAULT_BACKUP_SUFFIX = ".backup"


class PatchError(Exception):
    """Base class for write-related errors."""


class PatchApplyError(PatchError):
    """Raised when new content cannot be written to the target."""


def backup_path_for(target: Path, suffix: str = DEFAULT_BACKUP_SUFFIX) -> Path:
    return Path(str(target) + suffix)


def read_text_exact(path: Path, encoding: str = "utf-8") -> str:
    """Read a file without newline translation so offsets match the bytes on disk."""
    with open(path, "r", encoding=encoding, newline="") as fh:
        return fh.read()


def write_text_atomic(path: Path, text: str, encoding: str = "utf-8") -> None:
    """Atomically replace `path` with `text` (temp file in the same dir + os.replace).

    Line endings are written exactly as given.
    """
    resolved_str = os.fspath(path)
    dirpath = os.path.dirname(resolved_str) or "."
    fd = None
    tmp_path = None
    try:
        fd, tmp_path = tempfile.mkstemp(prefix=".tmp.visual-edit.", dir=dirpath)
        with os.fdopen(fd, "w", encoding=encoding, newline="") as fh:
            fd = None
            fh.write(text)
            fh.flush()
            os.fsync(fh.fileno())
        if os.path.exists(resolved_str):
            shutil.copymode(resolved_str, tmp_path)
        os.replace(tmp_path, resolved_str)
        tmp_path = None
    finally:
        if fd is not None:
            try:
                os.close(fd)
            except OSError:
                pass
        if tmp_path is not None and os.path.exists(tmp_path):
            try:
                os.remove(tmp_path)
            except OSError:
                pass


def write_with_backup(
    target: Path,
    new_text: str,
    *,
    backup_suffix: str = DEFAULT_BACKUP_SUFFIX,
    encoding: str = "utf-8",
) -> Optional[Path]:
    """Replace `target` with `new_text`, holding a backup copy during the write.

    Returns the backup path that was used (already deleted on success), or None
    if the target did not exist beforehand.

    Raises PatchApplyError if the backup or the replacement cannot be written.
    When the replacement fails the backup is left in place, byte-identical to
    the pre-edit content.
    """
    target = Path(target)
    backup: Optional[Path] = None

    if target.exists():
        backup = backup_path_for(target, backup_suffix)
        try:
            shutil.copy2(target, backup)
        except OSError as e:
            raise PatchApplyError(f"Could not write backup {backup}: {e}") from e

    try:
        write_text_atomic(target, new_text, encoding=encoding)
    except OSError as e:
        if backup is not None:
            log.error("write failed for %s; backup kept at %s", target, backup)
        raise PatchApplyError(f"Could not write {target}: {e}") from e

    if backup is not None:
        try:
            backup.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            # The write itself succeeded; a stale backup is only clutter.
            log.warning("could not remove backup %s: %s", backup, e)
    return backup


def find_orphaned_backups(
    project_root: Path,
    *,
    backup_suffix: str = DEFAULT_BACKUP_SUFFIX,
    exclude_dirs: Iterable[str] = ("node_modules", ".git"),
) -> List[Path]:
    """List backup copies left behind by interrupted writes, sorted by path."""
    root = Path(project_root).resolve()
    skip = set(exclude_dirs)
    found: List[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [d for d in dirnames if d not in skip]
        for name in filenames:
            if name.endswith(backup_suffix) and len(name) > len(backup_suffix):
                found.append(Path(dirpath) / name)
    found.sort()
    return found


def restore_backup(backup: Path, *, backup_suffix: str = DEFAULT_BACKUP_SUFFIX) -> Path:
    """Move a backup copy over its original target. Returns the restored target."""
    backup = Path(backup)
    if not backup.name.endswith(backup_suffix) or backup.name == backup_suffix:
        raise PatchError(f"Not a backup file: {backup}")
    if not backup.is_file():
        raise PatchError(f"Backup does not exist: {backup}")
    target = Path(str(backup)[: -len(backup_suffix)])
    os.replace(backup, target)
    return target


__all__ = [
    "DEFAULT_BACKUP_SUFFIX",
    "PatchError",
    "PatchApplyError",
    "backup_path_for",
    "find_orphaned_backups",
    "read_text_exact",
    "restore_backup",
    "write_text_atomic",
    "write_with_backup",
]
