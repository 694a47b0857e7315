import shutil
import subprocess

import pytest

from visual_edits.config import GatewayConfig

SECRET = "s3cr3t"

FOO_JSX = """import React from "react";

// Greeting card
export default function Foo({ name }) {
  return (
    <div className="card">
      <h1 id="title">Hello, {name}!</h1>
      <p>Welcome back</p>
    </div>
  );
}
"""


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (
        "VISUAL_EDITS_PROJECT_ROOT",
        "VISUAL_EDITS_SECRET_FILE",
        "VISUAL_EDITS_HOST",
        "VISUAL_EDITS_PORT",
        "VISUAL_EDITS_LOGLEVEL",
        "VISUAL_EDITS_AUDIT",
        "VISUAL_EDITS_GIT_TIMEOUT_SEC",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def project(tmp_path):
    root = tmp_path / "app"
    (root / "src" / "components").mkdir(parents=True)
    (root / "src" / "components" / "Foo.jsx").write_text(FOO_JSX, encoding="utf-8")
    return root.resolve()


@pytest.fixture
def make_config(project):
    def _make(**overrides):
        overrides.setdefault("secret", SECRET)
        overrides.setdefault("audit_enabled", False)
        overrides.setdefault("wildcard_domains", ("emergentagent.com",))
        overrides.setdefault("exact_origins", ("https://app.example.onrender.com",))
        return GatewayConfig(project_root=overrides.pop("project_root", project), **overrides)

    return _make


def _git(root, *args):
    return subprocess.run(
        ["git", "-c", "user.name=test", "-c", "user.email=test@example.com", "-c", "commit.gpgsign=false", *args],
        cwd=root,
        check=True,
        capture_output=True,
        text=True,
    )


@pytest.fixture
def git(project):
    if shutil.which("git") is None:
        pytest.skip("git is not installed")
    _git(project, "init", "-q")
    _git(project, "add", "-A")
    _git(project, "commit", "-q", "-m", "initial")
    return lambda *args: _git(project, *args).stdout
