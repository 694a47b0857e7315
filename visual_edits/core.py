# visual_edits/core.py
from __future__ import annotations

import argparse
import dataclasses
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List

from edit_runtimes.patcher import PatchError, find_orphaned_backups, restore_backup

from .config import ConfigError, load_gateway_config, load_project_config, save_default_config
from .logging_utils import configure_logging


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser("visual-edits", add_help=True)

    p.add_argument("--project-root", default="", help="Project root (defaults to VISUAL_EDITS_PROJECT_ROOT or CWD)")
    p.add_argument("--config", default="", help="Path to .visual_edits/config.json (optional)")
    p.add_argument("--log-level", default=os.getenv("VISUAL_EDITS_LOGLEVEL", "INFO"), help="Logging level")
    p.add_argument("--log-file", default="", help="Also write JSON logs to this file (rotated)")
    p.add_argument("--plain-logs", action="store_true", help="Human-readable logs instead of JSON lines")

    sub = p.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the edit gateway")
    serve.add_argument("--host", default=None, help="Bind address (overrides config)")
    serve.add_argument("--port", type=int, default=None, help="Bind port (overrides config)")
    serve.add_argument("--no-audit", action="store_true", help="Do not create git audit commits")

    sub.add_parser("backups", help="List backup copies left behind by interrupted writes")

    restore = sub.add_parser("restore", help="Move a backup copy back over its target")
    restore.add_argument("backup", help="Path of the *.backup file to restore")

    sub.add_parser("init-config", help="Write default .visual_edits/config.json and exit")
    return p


def _project_root(args_ns: argparse.Namespace) -> Path:
    if args_ns.project_root:
        return Path(args_ns.project_root).resolve()
    return Path(os.getenv("VISUAL_EDITS_PROJECT_ROOT") or ".").resolve()


def _run_serve_mode(args_ns: argparse.Namespace) -> int:
    from .server import run as run_server

    explicit_root = Path(args_ns.project_root).resolve() if args_ns.project_root else None
    config, cfg = load_gateway_config(explicit_root, args_ns.config or None)
    log_cfg = cfg.get("logging") or {}
    if log_cfg.get("log_file") or not log_cfg.get("structured", True):
        configure_logging(
            level=args_ns.log_level,
            structured=bool(log_cfg.get("structured", True)) and not args_ns.plain_logs,
            log_file=args_ns.log_file or log_cfg.get("log_file"),
        )

    overrides: Dict[str, Any] = {"log_level": str(args_ns.log_level).lower()}
    if getattr(args_ns, "host", None):
        overrides["host"] = args_ns.host
    if getattr(args_ns, "port", None):
        overrides["port"] = args_ns.port
    if getattr(args_ns, "no_audit", False):
        overrides["audit_enabled"] = False
    config = dataclasses.replace(config, **overrides)

    if not config.project_root.is_dir():
        logging.error("Project root %s is not a directory.", config.project_root)
        return 1
    try:
        return int(run_server(config)) or 0
    except SystemExit as e:
        return int(e.code or 0)


def _run_backups(args_ns: argparse.Namespace) -> int:
    cfg, _ = load_project_config(_project_root(args_ns), args_ns.config or None)
    root = Path(cfg.get("project_root") or _project_root(args_ns))
    found = find_orphaned_backups(
        root,
        backup_suffix=cfg["write"]["backup_suffix"],
        exclude_dirs=cfg["resolver"]["exclude_dirs"],
    )
    for path in found:
        print(path)
    if not found:
        logging.info("No backups found under %s", root)
    return 0


def _run_restore(args_ns: argparse.Namespace) -> int:
    cfg, _ = load_project_config(_project_root(args_ns), args_ns.config or None)
    try:
        target = restore_backup(Path(args_ns.backup), backup_suffix=cfg["write"]["backup_suffix"])
    except PatchError as e:
        logging.error("%s", e)
        return 1
    logging.info("Restored %s", target)
    return 0


def main(argv: List[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    args_ns = _build_parser().parse_args(argv)

    configure_logging(
        level=args_ns.log_level,
        structured=not args_ns.plain_logs,
        log_file=args_ns.log_file or None,
    )

    # bare `visual-edits` behaves like `visual-edits serve`
    command = args_ns.command or "serve"

    try:
        if command == "init-config":
            _, cfg_path = load_project_config(_project_root(args_ns), args_ns.config or None)
            save_default_config(cfg_path)
            logging.info("Wrote default config to %s", cfg_path)
            return 0
        if command == "backups":
            return _run_backups(args_ns)
        if command == "restore":
            return _run_restore(args_ns)
        return _run_serve_mode(args_ns)
    except ConfigError as e:
        logging.error("%s", e)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
