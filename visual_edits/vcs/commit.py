# visual_edits/vcs/commit.py
from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from edit_runtimes.runner import run_command

log = logging.getLogger(__name__)


def _run_git(args: List[str], cwd: Path, *, timeout: Optional[float]) -> Dict[str, Any]:
    return run_command(["git", *args], cwd=str(cwd), timeout=timeout)


def is_git_repo(root: Path, *, timeout: Optional[float] = 5.0) -> bool:
    res = _run_git(["rev-parse", "--is-inside-work-tree"], root, timeout=timeout)
    return bool(res["ok"]) and res["stdout"].strip() == "true"


def _summary(stage: str, res: Dict[str, Any]) -> Dict[str, str]:
    return {
        "stage": stage,
        "returncode": str(res.get("returncode")),
        "stdout": str(res.get("stdout") or "").strip(),
        "stderr": str(res.get("stderr") or res.get("error") or "").strip(),
        "timed_out": "true" if res.get("timed_out") else "false",
        "ok": "true" if res.get("ok") else "false",
    }


class AuditCommitter:
    """Best-effort audit trail: one git commit per successfully written file.

    Commits use a synthetic identity and the message `<prefix><token>`, where the
    token is a millisecond timestamp that strictly increases for the lifetime of
    the process. Every failure (git missing, not a repository, non-zero exit,
    timeout) is logged and returned, never raised.
    """

    def __init__(
        self,
        root: Path,
        *,
        user_name: str = "visual-edit",
        user_email: str = "visual-edit@localhost",
        message_prefix: str = "visual_edit_",
        timeout: Optional[float] = 15.0,
        allow_empty: bool = True,
    ) -> None:
        self.root = Path(root)
        self.user_name = user_name
        self.user_email = user_email
        self.message_prefix = message_prefix
        self.timeout = timeout
        self.allow_empty = allow_empty
        self._lock = threading.Lock()
        # One index per repository: add+commit pairs must not interleave.
        self._git_lock = threading.Lock()
        self._last_token = 0

    @classmethod
    def from_config(cls, cfg) -> "AuditCommitter":
        return cls(
            cfg.project_root,
            user_name=cfg.audit_user_name,
            user_email=cfg.audit_user_email,
            message_prefix=cfg.audit_message_prefix,
            timeout=cfg.audit_timeout_sec,
            allow_empty=cfg.audit_allow_empty,
        )

    def next_token(self) -> int:
        with self._lock:
            token = max(time.time_ns() // 1_000_000, self._last_token + 1)
            self._last_token = token
            return token

    def _identity(self) -> List[str]:
        return ["-c", f"user.name={self.user_name}", "-c", f"user.email={self.user_email}"]

    def commit_file(self, path: Path) -> Dict[str, str]:
        """Stage exactly `path` and commit the index.

        Returns a dict describing the last step executed, with "ok" set to
        "true" or "false" and "message" holding the commit message used.
        """
        with self._git_lock:
            return self._add_and_commit(str(Path(path)))

    def _add_and_commit(self, target: str) -> Dict[str, str]:
        message = f"{self.message_prefix}{self.next_token()}"
        add = _run_git([*self._identity(), "add", "--", target], self.root, timeout=self.timeout)
        if not add["ok"]:
            out = _summary("add", add)
            out["message"] = message
            log.warning("audit commit failed at git add", extra={"meta": {**out, "path": target}})
            return out

        args = [*self._identity(), "commit", "-m", message]
        if self.allow_empty:
            args.append("--allow-empty")

        com = _run_git(args, self.root, timeout=self.timeout)
        out = _summary("commit", com)
        out["message"] = message
        if not com["ok"]:
            log.warning("audit commit failed at git commit", extra={"meta": {**out, "path": target}})
        else:
            log.info("audit commit created", extra={"meta": {"path": target, "commit_message": message}})
        return out


__all__ = ["AuditCommitter", "is_git_repo"]
