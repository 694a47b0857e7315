# visual_edits/config.py
from __future__ import annotations
"""
Configuration loader for the visual-edits gateway.

Layering (later wins):
  1. DEFAULT_CONFIG below
  2. <project_root>/.visual_edits/config.json (or an explicit --config path)
  3. Environment variables:

- VISUAL_EDITS_PROJECT_ROOT=...     # project tree the gateway may edit
- VISUAL_EDITS_SECRET_FILE=...      # operator-managed file holding the API secret
- VISUAL_EDITS_HOST=127.0.0.1
- VISUAL_EDITS_PORT=8765
- VISUAL_EDITS_GIT_TIMEOUT_SEC=15
- VISUAL_EDITS_AUDIT=1              # 0/false disables audit commits
- VISUAL_EDITS_LOGLEVEL=INFO

The merged dict is validated with JSON Schema and then frozen into a
GatewayConfig, which is built once at startup (secret included) and handed to
the gateway and the app factory explicitly.

Notes:
- The secret itself is never stored in config.json; only the path of the file
  it is read from.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import jsonschema
from dotenv import load_dotenv

from .credentials import load_secret

log = logging.getLogger(__name__)

CONFIG_DIR = ".visual_edits"
CONFIG_FILE = "config.json"


class ConfigError(ValueError):
    """Raised when the merged configuration is invalid."""


def load_env_variables() -> None:
    """Load a local .env if present (non-destructive)."""
    load_dotenv(override=False)


DEFAULT_CONFIG: Dict[str, Any] = {
    "project_root": None,
    "auth": {
        "secret_file": "/etc/supervisor/conf.d/supervisord_code_server.conf",
        # First capture group is the secret; null means "whole file, stripped".
        "secret_pattern": r'PASSWORD="([^"]+)"',
        "header": "x-api-key",
    },
    "cors": {
        "allow_localhost": True,
        "exact_origins": [
            "https://ai-money-agent-frontend.onrender.com",
            "https://ai-money-agent-backend.onrender.com",
        ],
        # Any subdomain of these (https only) is allowed.
        "wildcard_domains": ["emergent.sh", "emergentagent.com", "appspot.com"],
        "allow_headers": "Content-Type, x-api-key",
        "allow_methods": "POST, OPTIONS",
    },
    "resolver": {
        "exclude_dirs": ["node_modules", "public", ".git", "build", "dist", "coverage"],
        "extensions": [".js", ".jsx", ".ts", ".tsx"],
        "fallback_dir": "src/components",
        "default_ext": ".js",
        # "warn" keeps the first match, "error" rejects ambiguous names.
        "on_ambiguous": "warn",
    },
    "sandbox": {
        "forbidden_components": ["node_modules"],
        "public_dirs": ["public"],
    },
    "write": {
        "backup_suffix": ".backup",
        "encoding": "utf-8",
    },
    "audit": {
        "enabled": True,
        "user_name": "visual-edit",
        "user_email": "visual-edit@localhost",
        "message_prefix": "visual_edit_",
        "timeout_sec": 15.0,
        # A no-op round trip still leaves an audit entry.
        "allow_empty": True,
    },
    "server": {
        "host": "127.0.0.1",
        "port": 8765,
        "log_level": "info",
    },
    "logging": {
        "structured": True,
        "log_file": None,
    },
}


_STR_LIST = {"type": "array", "items": {"type": "string"}}

CONFIG_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "project_root": {"type": ["string", "null"]},
        "auth": {
            "type": "object",
            "properties": {
                "secret_file": {"type": ["string", "null"]},
                "secret_pattern": {"type": ["string", "null"]},
                "header": {"type": "string", "minLength": 1},
            },
            "required": ["secret_file", "header"],
        },
        "cors": {
            "type": "object",
            "properties": {
                "allow_localhost": {"type": "boolean"},
                "exact_origins": _STR_LIST,
                "wildcard_domains": _STR_LIST,
                "allow_headers": {"type": "string"},
                "allow_methods": {"type": "string"},
            },
            "required": ["exact_origins", "wildcard_domains"],
        },
        "resolver": {
            "type": "object",
            "properties": {
                "exclude_dirs": _STR_LIST,
                "extensions": {"type": "array", "items": {"type": "string", "pattern": r"^\."}, "minItems": 1},
                "fallback_dir": {"type": "string"},
                "default_ext": {"type": "string", "pattern": r"^\."},
                "on_ambiguous": {"enum": ["warn", "error"]},
            },
            "required": ["exclude_dirs", "extensions", "fallback_dir", "default_ext"],
        },
        "sandbox": {
            "type": "object",
            "properties": {
                "forbidden_components": _STR_LIST,
                "public_dirs": _STR_LIST,
            },
            "required": ["forbidden_components", "public_dirs"],
        },
        "write": {
            "type": "object",
            "properties": {
                "backup_suffix": {"type": "string", "minLength": 1},
                "encoding": {"type": "string"},
            },
            "required": ["backup_suffix"],
        },
        "audit": {
            "type": "object",
            "properties": {
                "enabled": {"type": "boolean"},
                "user_name": {"type": "string"},
                "user_email": {"type": "string"},
                "message_prefix": {"type": "string"},
                "timeout_sec": {"type": "number", "exclusiveMinimum": 0},
                "allow_empty": {"type": "boolean"},
            },
            "required": ["enabled", "user_name", "user_email", "message_prefix", "timeout_sec"],
        },
        "server": {
            "type": "object",
            "properties": {
                "host": {"type": "string"},
                "port": {"type": "integer", "minimum": 1, "maximum": 65535},
                "log_level": {"type": "string"},
            },
            "required": ["host", "port"],
        },
        "logging": {"type": "object"},
    },
    "additionalProperties": True,
}


def _env_int(name: str, default: int, min_value: int | None = None) -> int:
    val = os.getenv(name)
    if val is None:
        return default
    try:
        ival = int(val)
    except ValueError:
        return default
    if min_value is not None and ival < min_value:
        return default
    return ival


def _env_float(name: str, default: float) -> float:
    val = os.getenv(name)
    if val is None or not val.strip():
        return default
    try:
        fval = float(val)
    except ValueError:
        return default
    return fval if fval > 0 else default


def _env_bool(name: str, default: bool) -> bool:
    """Read an environment variable as a boolean with sensible string parsing.

    Accepts (case-insensitive): '1','true','yes','on' -> True; '0','false','no','off' -> False.
    If the variable is not set or the value is unrecognized, returns the provided default.
    """
    val = os.getenv(name)
    if val is None:
        return default
    v = str(val).strip().lower()
    if v in ("1", "true", "yes", "on"):
        return True
    if v in ("0", "false", "no", "off"):
        return False
    return default


def _deep_merge(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(a)
    for k, v in b.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _validate(cfg: Dict[str, Any]) -> None:
    try:
        jsonschema.validate(cfg, CONFIG_SCHEMA)
    except jsonschema.ValidationError as e:
        where = "/".join(str(p) for p in e.absolute_path) or "<root>"
        raise ConfigError(f"invalid configuration at {where}: {e.message}") from e


def _apply_env_overrides(cfg: Dict[str, Any]) -> None:
    root = os.getenv("VISUAL_EDITS_PROJECT_ROOT")
    if root and root.strip():
        cfg["project_root"] = root.strip()

    secret_file = os.getenv("VISUAL_EDITS_SECRET_FILE")
    if secret_file and secret_file.strip():
        cfg["auth"] = dict(cfg["auth"], secret_file=secret_file.strip())

    server = dict(cfg["server"])
    server["host"] = os.getenv("VISUAL_EDITS_HOST", server["host"])
    server["port"] = _env_int("VISUAL_EDITS_PORT", int(server["port"]), min_value=1)
    server["log_level"] = os.getenv("VISUAL_EDITS_LOGLEVEL", server.get("log_level", "info")).lower()
    cfg["server"] = server

    audit = dict(cfg["audit"])
    audit["enabled"] = _env_bool("VISUAL_EDITS_AUDIT", bool(audit["enabled"]))
    audit["timeout_sec"] = _env_float("VISUAL_EDITS_GIT_TIMEOUT_SEC", float(audit["timeout_sec"]))
    cfg["audit"] = audit


def load_project_config(project_root: Path, explicit_path: str | None = None) -> Tuple[Dict[str, Any], Path]:
    """
    Load `.visual_edits/config.json` if present, deep-merge onto defaults,
    then apply environment overrides and validate.
    Returns (config, path_used).

    Raises ConfigError if the file is not valid JSON or the result fails validation.
    """
    root = Path(project_root).resolve()
    path = Path(explicit_path).resolve() if explicit_path else (root / CONFIG_DIR / CONFIG_FILE)

    cfg = json.loads(json.dumps(DEFAULT_CONFIG))
    if path.exists():
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"could not read {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"{path} must contain a JSON object")
        cfg = _deep_merge(cfg, data)
    elif explicit_path:
        raise ConfigError(f"config file not found: {path}")

    # Env overrides read typed values out of the file layer, so check it first.
    _validate(cfg)
    _apply_env_overrides(cfg)
    _validate(cfg)
    return cfg, path


def save_default_config(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    text = json.dumps(DEFAULT_CONFIG, indent=2, ensure_ascii=False)
    path.write_text(text, encoding="utf-8")


@dataclass(frozen=True)
class GatewayConfig:
    """Everything the gateway needs, resolved once at startup."""

    project_root: Path
    secret: Optional[str] = field(default=None, repr=False)
    api_key_header: str = "x-api-key"

    allow_localhost: bool = True
    exact_origins: Tuple[str, ...] = ()
    wildcard_domains: Tuple[str, ...] = ()
    cors_allow_headers: str = "Content-Type, x-api-key"
    cors_allow_methods: str = "POST, OPTIONS"

    exclude_dirs: Tuple[str, ...] = ("node_modules", "public", ".git", "build", "dist", "coverage")
    extensions: Tuple[str, ...] = (".js", ".jsx", ".ts", ".tsx")
    fallback_dir: str = "src/components"
    default_ext: str = ".js"
    on_ambiguous: str = "warn"

    forbidden_components: Tuple[str, ...] = ("node_modules",)
    public_dirs: Tuple[str, ...] = ("public",)

    backup_suffix: str = ".backup"
    encoding: str = "utf-8"

    audit_enabled: bool = True
    audit_user_name: str = "visual-edit"
    audit_user_email: str = "visual-edit@localhost"
    audit_message_prefix: str = "visual_edit_"
    audit_timeout_sec: float = 15.0
    audit_allow_empty: bool = True

    host: str = "127.0.0.1"
    port: int = 8765
    log_level: str = "info"

    @classmethod
    def from_dict(cls, cfg: Dict[str, Any], *, project_root: Path, secret: Optional[str]) -> "GatewayConfig":
        auth = cfg["auth"]
        cors = cfg["cors"]
        res = cfg["resolver"]
        sandbox = cfg["sandbox"]
        write = cfg["write"]
        audit = cfg["audit"]
        server = cfg["server"]
        return cls(
            project_root=Path(project_root).resolve(),
            secret=secret,
            api_key_header=str(auth.get("header") or "x-api-key"),
            allow_localhost=bool(cors.get("allow_localhost", True)),
            exact_origins=tuple(cors.get("exact_origins") or ()),
            wildcard_domains=tuple(cors.get("wildcard_domains") or ()),
            cors_allow_headers=str(cors.get("allow_headers") or "Content-Type, x-api-key"),
            cors_allow_methods=str(cors.get("allow_methods") or "POST, OPTIONS"),
            exclude_dirs=tuple(res["exclude_dirs"]),
            extensions=tuple(res["extensions"]),
            fallback_dir=str(res["fallback_dir"]),
            default_ext=str(res["default_ext"]),
            on_ambiguous=str(res.get("on_ambiguous") or "warn"),
            forbidden_components=tuple(sandbox["forbidden_components"]),
            public_dirs=tuple(sandbox["public_dirs"]),
            backup_suffix=str(write["backup_suffix"]),
            encoding=str(write.get("encoding") or "utf-8"),
            audit_enabled=bool(audit["enabled"]),
            audit_user_name=str(audit["user_name"]),
            audit_user_email=str(audit["user_email"]),
            audit_message_prefix=str(audit["message_prefix"]),
            audit_timeout_sec=float(audit["timeout_sec"]),
            audit_allow_empty=bool(audit.get("allow_empty", True)),
            host=str(server["host"]),
            port=int(server["port"]),
            log_level=str(server.get("log_level") or "info"),
        )


def load_gateway_config(
    project_root: Optional[Path] = None,
    explicit_path: str | None = None,
) -> Tuple[GatewayConfig, Dict[str, Any]]:
    """Build the startup GatewayConfig: merged config plus the secret read once.

    The project root comes from (in order) the argument, VISUAL_EDITS_PROJECT_ROOT
    or config.json, and finally the current directory.
    Returns (gateway_config, merged_config_dict).
    """
    load_env_variables()
    base = Path(project_root) if project_root else Path(os.getenv("VISUAL_EDITS_PROJECT_ROOT") or ".")
    cfg, cfg_path = load_project_config(base, explicit_path)

    root = Path(project_root) if project_root else Path(cfg.get("project_root") or base)
    auth = cfg["auth"]
    secret = load_secret(auth.get("secret_file"), auth.get("secret_pattern"))
    if secret is None:
        log.warning("no API secret loaded from %s; every edit request will be rejected", auth.get("secret_file"))

    gw = GatewayConfig.from_dict(cfg, project_root=root, secret=secret)
    log.info("configuration loaded", extra={"meta": {"config_path": str(cfg_path), "project_root": str(gw.project_root)}})
    return gw, cfg


__all__ = [
    "CONFIG_SCHEMA",
    "ConfigError",
    "DEFAULT_CONFIG",
    "GatewayConfig",
    "load_env_variables",
    "load_gateway_config",
    "load_project_config",
    "save_default_config",
]
