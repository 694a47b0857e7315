# visual_edits/gateway.py
"""The edit gateway: everything POST /edit-file does after the HTTP layer.

Per request:

    credential check -> payload shape -> group by fileName -> per group:
        name check -> resolve -> sandbox -> exists -> transform -> write -> audit

Request-level problems (credentials, payload shape) are answered by the HTTP
layer before any I/O. Everything after grouping is file-scoped: a group that
fails produces a RejectedChange and the remaining groups still run, so the
client always sees which files were edited and which were not.
"""

from __future__ import annotations

import logging
import threading
import time
import weakref
from pathlib import Path
from typing import Any, List, Optional

from edit_runtimes.patcher import PatchError, read_text_exact, write_with_backup
from edit_runtimes.path_safety import ForbiddenPathError, check_sandbox, project_relative

from .config import GatewayConfig
from .credentials import check_credential
from .models import (
    AMBIGUOUS_FILE_NAME,
    FORBIDDEN_PATH,
    INVALID_FILE_NAME,
    NOT_FOUND,
    TRANSFORM_FAILED,
    WRITE_FAILED,
    ChangeGroup,
    EditResponse,
    EditResult,
    RejectedChange,
    group_changes,
)
from .origins import OriginPolicy
from .resolver import FileResolver, InvalidFileNameError
from .transform import TransformError, transform_file_text
from .vcs.commit import AuditCommitter

log = logging.getLogger(__name__)


class EditRejected(Exception):
    """A single ChangeGroup could not be applied."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


class EditGateway:
    def __init__(
        self,
        config: GatewayConfig,
        *,
        resolver: Optional[FileResolver] = None,
        committer: Optional[AuditCommitter] = None,
        origin_policy: Optional[OriginPolicy] = None,
    ) -> None:
        self.config = config
        self.resolver = resolver or FileResolver.from_config(config)
        if committer is None and config.audit_enabled:
            committer = AuditCommitter.from_config(config)
        self.committer = committer
        self.origins = origin_policy or OriginPolicy.from_config(config)
        # Entries drop out once no request holds the lock for that path.
        self._locks: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    # ---------- request-level gates ----------

    def is_authorized(self, provided_key: Optional[str]) -> bool:
        return check_credential(provided_key, self.config.secret)

    def is_allowed_origin(self, origin: Optional[str]) -> bool:
        return self.origins.is_allowed(origin)

    # ---------- per-file processing ----------

    def _lock_for(self, path: Path) -> threading.Lock:
        key = str(path)
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def _relative(self, path: Path) -> str:
        try:
            return project_relative(path, self.config.project_root)
        except ValueError:
            return str(path)

    def _process_group(self, group: ChangeGroup) -> EditResult:
        cfg = self.config
        name = group.file_name

        try:
            target = self.resolver.resolve(name)
        except InvalidFileNameError as e:
            raise EditRejected(INVALID_FILE_NAME, f"Invalid file name {name!r}: {e}")

        warnings: List[str] = []
        if target.ambiguous:
            listed = ", ".join(self._relative(p) for p in target.candidates)
            if cfg.on_ambiguous == "error":
                raise EditRejected(AMBIGUOUS_FILE_NAME, f"File name {name!r} matches several files: {listed}")
            warnings.append(f"file name {name!r} matches several files ({listed}); edited the first")

        try:
            path = check_sandbox(
                target.path,
                cfg.project_root,
                forbidden_components=cfg.forbidden_components,
                public_dirs=cfg.public_dirs,
            )
        except ForbiddenPathError as e:
            raise EditRejected(FORBIDDEN_PATH, f"Forbidden path for file {name}: {e.reason}")

        rel = self._relative(path)
        with self._lock_for(path):
            try:
                exists = path.is_file()
            except OSError as e:
                raise EditRejected(NOT_FOUND, f"File not found: {rel} ({e.strerror or e})")
            if not exists:
                raise EditRejected(NOT_FOUND, f"File not found: {rel}")

            try:
                current = read_text_exact(path, cfg.encoding)
            except UnicodeDecodeError as e:
                raise EditRejected(TRANSFORM_FAILED, f"{rel} is not valid {cfg.encoding} text: {e.reason}")
            except OSError as e:
                raise EditRejected(WRITE_FAILED, f"Could not read {rel}: {e}")

            try:
                result = transform_file_text(path, current, group.records)
            except TransformError as e:
                raise EditRejected(TRANSFORM_FAILED, f"{rel}: {e}")

            try:
                write_with_backup(path, result.text, backup_suffix=cfg.backup_suffix, encoding=cfg.encoding)
            except PatchError as e:
                raise EditRejected(WRITE_FAILED, str(e))

            commit = self.committer.commit_file(path) if self.committer is not None else None

        return EditResult(
            file_name=name,
            path=rel,
            applied=result.applied,
            changed=result.changed,
            commit=commit,
            warnings=warnings,
        )

    def process(self, changes: List[Any]) -> EditResponse:
        """Apply a validated, non-empty `changes` list; never raises EditRejected."""
        t0 = time.time()
        groups, rejected = group_changes(changes)
        edits: List[EditResult] = []

        for group in groups:
            try:
                result = self._process_group(group)
            except EditRejected as e:
                log.warning(
                    "edit rejected",
                    extra={"file_name": group.file_name, "error_code": e.code, "meta": {"reason": e.message}},
                )
                rejected.append(
                    RejectedChange(
                        file_name=group.file_name,
                        error=e.code,
                        message=e.message,
                        change_indices=list(group.indices),
                    )
                )
                continue
            log.info(
                "edit applied",
                extra={"file_name": result.file_name, "path": result.path, "meta": {"changed": result.changed}},
            )
            edits.append(result)

        if not rejected:
            status = "ok"
        elif edits:
            status = "partial"
        else:
            status = "rejected"

        rejected.sort(key=lambda r: min(r.change_indices) if r.change_indices else -1)
        log.info(
            "edit request finished",
            extra={
                "status": status,
                "latency_ms": round((time.time() - t0) * 1000.0, 1),
                "meta": {"edited": len(edits), "rejected": len(rejected)},
            },
        )
        return EditResponse(status=status, edits=edits, rejected_changes=rejected)


__all__ = ["EditGateway", "EditRejected"]
