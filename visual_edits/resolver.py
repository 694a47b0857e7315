# visual_edits/resolver.py
"""Map a logical (extension-less) file name onto a file in the project tree.

The walk is an explicit stack-based depth-first traversal in directory-listing
order. Listing order is filesystem dependent, so when several files share a
logical name the "first" match is not stable across machines; the resolver
therefore reports every candidate it saw and lets the caller decide whether
that is a warning or an error.
"""

from __future__ import annotations

import logging
import os
import unicodedata
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Sequence

log = logging.getLogger(__name__)


class InvalidFileNameError(ValueError):
    """The logical name could be used to address something other than a file name."""


@dataclass
class ResolvedTarget:
    logical_name: str
    path: Path
    candidates: List[Path] = field(default_factory=list)
    fallback: bool = False

    @property
    def ambiguous(self) -> bool:
        return len(self.candidates) > 1


MAX_NAME_BYTES = 255


def validate_logical_name(name: str, max_bytes: int = MAX_NAME_BYTES) -> str:
    """Reject names that are empty, contain control characters, look like paths,
    or would not fit in a directory entry once an extension is added."""
    if not isinstance(name, str) or not name.strip():
        raise InvalidFileNameError("fileName must be a non-empty string")
    if any(unicodedata.category(ch) in ("Cc", "Cf") for ch in name):
        raise InvalidFileNameError("fileName contains control characters")
    if "/" in name or "\\" in name or os.sep in name:
        raise InvalidFileNameError("fileName must not contain path separators")
    if name in (".", "..") or ".." in name:
        raise InvalidFileNameError("fileName must not contain '..'")
    if len(name.encode("utf-8")) > max_bytes:
        raise InvalidFileNameError(f"fileName is longer than {max_bytes} bytes")
    return name


def _strip_extension(entry_name: str, extensions: Sequence[str]) -> Optional[str]:
    for ext in extensions:
        if entry_name.endswith(ext) and len(entry_name) > len(ext):
            return entry_name[: -len(ext)]
    return None


class FileResolver:
    """Find source files by logical name under `project_root`."""

    def __init__(
        self,
        project_root: Path,
        *,
        exclude_dirs: Iterable[str],
        extensions: Sequence[str],
        fallback_dir: str = "src/components",
        default_ext: str = ".js",
    ) -> None:
        self.project_root = Path(project_root)
        self.exclude_dirs = frozenset(exclude_dirs)
        # Longest first so ".d.ts" wins over ".ts" when both are configured.
        self.extensions = tuple(sorted(extensions, key=len, reverse=True))
        self.fallback_dir = fallback_dir
        self.default_ext = default_ext
        longest_ext = max((len(e.encode("utf-8")) for e in (*self.extensions, default_ext)), default=0)
        self.max_name_bytes = MAX_NAME_BYTES - longest_ext

    @classmethod
    def from_config(cls, cfg) -> "FileResolver":
        return cls(
            cfg.project_root,
            exclude_dirs=cfg.exclude_dirs,
            extensions=cfg.extensions,
            fallback_dir=cfg.fallback_dir,
            default_ext=cfg.default_ext,
        )

    def _list(self, directory: str) -> Optional[List[os.DirEntry]]:
        try:
            with os.scandir(directory) as it:
                return list(it)
        except OSError as e:
            log.debug("skipping unreadable directory %s: %s", directory, e)
            return None

    def find_all(self, logical_name: str) -> List[Path]:
        """Every file matching `logical_name`, in depth-first traversal order.

        A subdirectory is descended into at the point it is listed, before the
        entries that follow it.
        """
        matches: List[Path] = []
        stack: List[Iterator[os.DirEntry]] = []
        top = self._list(str(self.project_root))
        if top is not None:
            stack.append(iter(top))

        while stack:
            entry = next(stack[-1], None)
            if entry is None:
                stack.pop()
                continue
            try:
                if entry.is_dir(follow_symlinks=False):
                    if entry.name not in self.exclude_dirs:
                        children = self._list(entry.path)
                        if children is not None:
                            stack.append(iter(children))
                    continue
                if not entry.is_file():
                    continue
            except OSError:
                continue
            if _strip_extension(entry.name, self.extensions) == logical_name:
                matches.append(Path(entry.path))
        return matches

    def resolve(self, logical_name: str) -> ResolvedTarget:
        """Pick the target for `logical_name`.

        Falls back to `<root>/<fallback_dir>/<name><default_ext>` when nothing
        matches; that path may not exist, which a later stage reports.
        """
        validate_logical_name(logical_name, self.max_name_bytes)
        candidates = self.find_all(logical_name)
        if candidates:
            if len(candidates) > 1:
                log.warning(
                    "logical name %r matches %d files; using %s",
                    logical_name,
                    len(candidates),
                    candidates[0],
                )
            return ResolvedTarget(logical_name, candidates[0], candidates)

        fallback = self.project_root / self.fallback_dir / f"{logical_name}{self.default_ext}"
        return ResolvedTarget(logical_name, fallback, [], fallback=True)


__all__ = ["FileResolver", "InvalidFileNameError", "ResolvedTarget", "validate_logical_name"]
