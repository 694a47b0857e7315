# edit_runtimes/__init__.py
"""
edit_runtimes package public surface.

Filesystem and subprocess helpers the gateway builds on: sandbox checks for
edit targets, crash-safe writes with backup copies, and the argv-only
command runner.
"""

from __future__ import annotations

from .path_safety import ForbiddenPathError, check_sandbox
from .patcher import PatchApplyError, PatchError, write_with_backup
from .runner import UnresolvedCommandError, run_command

__all__ = [
    "ForbiddenPathError",
    "PatchApplyError",
    "PatchError",
    "UnresolvedCommandError",
    "check_sandbox",
    "run_command",
    "write_with_backup",
]
