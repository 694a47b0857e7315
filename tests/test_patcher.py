import os

import pytest

from edit_runtimes import patcher
from edit_runtimes.patcher import (
    PatchApplyError,
    PatchError,
    backup_path_for,
    find_orphaned_backups,
    read_text_exact,
    restore_backup,
    write_text_atomic,
    write_with_backup,
)


def test_write_with_backup_replaces_and_removes_backup(tmp_path):
    target = tmp_path / "Foo.jsx"
    target.write_text("old\n", encoding="utf-8")

    used = write_with_backup(target, "new\n")

    assert target.read_text(encoding="utf-8") == "new\n"
    assert used == backup_path_for(target)
    assert not used.exists()
    assert [p.name for p in tmp_path.iterdir()] == ["Foo.jsx"]


def test_failed_replace_keeps_byte_identical_backup(tmp_path, monkeypatch):
    target = tmp_path / "Foo.jsx"
    original = b"const a = 1;\r\n// \xc3\xa9\n"
    target.write_bytes(original)

    def boom(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(patcher.os, "replace", boom)
    with pytest.raises(PatchApplyError, match="disk full"):
        write_with_backup(target, "const a = 2;\n")
    monkeypatch.undo()

    backup = backup_path_for(target)
    assert backup.read_bytes() == original
    assert target.read_bytes() == original
    assert not [p for p in tmp_path.iterdir() if p.name.startswith(".tmp.visual-edit.")]


def test_write_with_backup_on_new_file_has_no_backup(tmp_path):
    target = tmp_path / "New.js"
    assert write_with_backup(target, "x\n") is None
    assert target.read_text(encoding="utf-8") == "x\n"


def test_atomic_write_preserves_line_endings_and_mode(tmp_path):
    target = tmp_path / "a.js"
    target.write_text("", encoding="utf-8")
    os.chmod(target, 0o640)
    write_text_atomic(target, "a\r\nb\n")
    assert target.read_bytes() == b"a\r\nb\n"
    assert read_text_exact(target) == "a\r\nb\n"
    assert (os.stat(target).st_mode & 0o777) == 0o640


def test_find_and_restore_orphaned_backup(tmp_path):
    (tmp_path / "src").mkdir()
    (tmp_path / "node_modules").mkdir()
    target = tmp_path / "src" / "Foo.jsx"
    target.write_text("half-written", encoding="utf-8")
    backup = backup_path_for(target)
    backup.write_text("good", encoding="utf-8")
    (tmp_path / "node_modules" / "x.js.backup").write_text("ignored", encoding="utf-8")

    assert find_orphaned_backups(tmp_path) == [backup]

    assert restore_backup(backup) == target
    assert target.read_text(encoding="utf-8") == "good"
    assert not backup.exists()
    assert find_orphaned_backups(tmp_path) == []


def test_restore_rejects_non_backup_paths(tmp_path):
    plain = tmp_path / "a.js"
    plain.write_text("x", encoding="utf-8")
    with pytest.raises(PatchError, match="Not a backup"):
        restore_backup(plain)
    with pytest.raises(PatchError, match="does not exist"):
        restore_backup(tmp_path / "gone.js.backup")
