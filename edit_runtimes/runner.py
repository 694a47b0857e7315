# edit_runtimes/runner.py
"""
Canonical subprocess runner for the gateway.

Goals:
- One implementation for every git call the audit committer makes.
- Argument vectors only. There is no shell mode: every argument reaches the
  child process verbatim, so file paths can never be reinterpreted as shell
  syntax.
- Safe decoding by using encoding="utf-8", errors="replace".
- Timeouts return a structured result (no uncaught TimeoutExpired).
- Missing executables return a structured result by default (optionally raise).

Return shape (always a dict):
  {
    "argv": list[str],
    "returncode": int | None,
    "stdout": str,
    "stderr": str,
    "timed_out": bool,
    "missing_executable": bool,
    "resolved_path": str | None,
    "elapsed_sec": float,
    "ok": bool,
    "error": str | None,
  }
"""

from __future__ import annotations

import os
import shutil
import time
from typing import Any, Dict, List, Optional, Sequence, Tuple


class UnresolvedCommandError(FileNotFoundError):
    """Raised when the requested command binary cannot be resolved."""

    def __init__(self, command: Sequence[str]):
        super().__init__(f"command not found: {' '.join(map(str, command))}")


def _resolve_binary(argv: List[str]) -> Tuple[Optional[str], Optional[str]]:
    """
    Resolve argv[0] to an absolute path if possible.

    Returns (resolved_path, error_msg). If resolved_path is None, error_msg is set.
    """
    if not argv:
        return None, "empty command provided"

    exe = argv[0]
    if os.path.sep in exe:
        abs_path = os.path.abspath(exe)
        resolved = abs_path if os.path.exists(abs_path) else None
    else:
        resolved = shutil.which(exe)

    if not resolved:
        return None, f"executable not found: {exe}"
    return os.path.abspath(resolved), None


def _normalize_output(val: Any) -> str:
    if val is None:
        return ""
    if isinstance(val, str):
        return val
    if isinstance(val, (bytes, bytearray)):
        return val.decode("utf-8", errors="replace")
    return str(val)


def _communicate(proc, timeout: Optional[float], timeout_exc) -> Tuple[str, str, bool]:
    """Wait for `proc`; on timeout kill it and collect whatever output is left."""
    try:
        out, err = proc.communicate(timeout=timeout)
        return _normalize_output(out), _normalize_output(err), False
    except timeout_exc:
        pass

    try:
        proc.kill()
    except OSError:
        pass
    try:
        out, err = proc.communicate(timeout=1)
    except (timeout_exc, OSError, ValueError):
        out, err = "", ""
    return _normalize_output(out), _normalize_output(err), True


def run_command(
    argv: Sequence[str],
    *,
    cwd: Optional[str] = None,
    timeout: Optional[float] = None,
    env: Optional[Dict[str, str]] = None,
    raise_on_missing: bool = False,
    subprocess_module=None,
) -> Dict[str, Any]:
    """
    Run an argument vector and return a structured result. By default this function
    does NOT raise for missing executables; set raise_on_missing=True to raise
    UnresolvedCommandError.

    `subprocess_module` is injectable for tests (defaults to stdlib subprocess).
    """
    if subprocess_module is None:
        import subprocess as subprocess_module  # type: ignore

    if isinstance(argv, (str, bytes)):
        raise TypeError("run_command expects an argument vector, not a string")

    started = time.monotonic()
    args: List[str] = [str(a) for a in argv]
    result: Dict[str, Any] = {
        "argv": list(args),
        "returncode": None,
        "stdout": "",
        "stderr": "",
        "timed_out": False,
        "missing_executable": False,
        "resolved_path": None,
        "elapsed_sec": 0.0,
        "ok": False,
        "error": None,
    }

    def finish(**updates: Any) -> Dict[str, Any]:
        result.update(updates)
        result["elapsed_sec"] = round(time.monotonic() - started, 6)
        result["ok"] = result["returncode"] == 0 and not result["timed_out"]
        return result

    resolved, err = _resolve_binary(args)
    if not resolved:
        if raise_on_missing and args:
            raise UnresolvedCommandError(args)
        return finish(missing_executable=bool(args), error=err)

    proc_env = dict(os.environ)
    proc_env.update(env or {})

    try:
        proc = subprocess_module.Popen(
            [resolved, *args[1:]],
            cwd=cwd,
            env=proc_env,
            shell=False,
            stdout=subprocess_module.PIPE,
            stderr=subprocess_module.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
    except FileNotFoundError as e:
        # The binary vanished between resolution and exec.
        return finish(resolved_path=resolved, missing_executable=True, error=str(e))
    except OSError as e:
        return finish(resolved_path=resolved, error=str(e))

    stdout, stderr, timed_out = _communicate(proc, timeout, subprocess_module.TimeoutExpired)
    return finish(
        resolved_path=resolved,
        returncode=None if timed_out else proc.returncode,
        stdout=stdout,
        stderr=stderr,
        timed_out=timed_out,
        error="timeout" if timed_out else None,
    )
