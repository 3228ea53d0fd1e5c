"""Tests for moving persistent folders between deployments and the store."""

import errno
import os

import pytest

from deploy_agent.core.exceptions import InvalidPathError, MoveFailedError
from deploy_agent.deploy import persistent
from deploy_agent.deploy.persistent import backup_folders, move_directory, restore_folders


@pytest.fixture
def layout(tmp_path):
    deployment = tmp_path / "deployments" / "A"
    store = tmp_path / "persistent"
    deployment.mkdir(parents=True)
    return deployment, store


class TestBackupAndRestore:
    """Round trips through the durable store."""

    def test_round_trip_preserves_content(self, layout, tmp_path):
        deployment, store = layout
        (deployment / "uploads" / "img").mkdir(parents=True)
        (deployment / "uploads" / "test.txt").write_text("hello")
        (deployment / "uploads" / "img" / "a.bin").write_bytes(b"\x00\x01\x02")

        assert backup_folders(deployment, store, ["uploads"]) == ["uploads"]
        assert not (deployment / "uploads").exists()
        assert (store / "uploads" / "test.txt").read_text() == "hello"

        target = tmp_path / "deployments" / "B"
        target.mkdir()
        assert restore_folders(target, store, ["uploads"]) == ["uploads"]

        assert (target / "uploads" / "test.txt").read_text() == "hello"
        assert (target / "uploads" / "img" / "a.bin").read_bytes() == b"\x00\x01\x02"
        assert not (store / "uploads").exists()

    def test_missing_folder_is_skipped(self, layout, tmp_path):
        deployment, store = layout

        assert backup_folders(deployment, store, ["nonexistent"]) == []
        assert not (store / "nonexistent").exists()

        target = tmp_path / "deployments" / "B"
        target.mkdir()
        assert restore_folders(target, store, ["nonexistent"]) == []
        assert not (target / "nonexistent").exists()

    def test_nested_folder_creates_parents(self, layout, tmp_path):
        deployment, store = layout
        (deployment / "frontend" / "node_modules" / "pkg").mkdir(parents=True)
        (deployment / "frontend" / "node_modules" / "pkg" / "index.js").write_text("x")
        (deployment / "frontend" / "src.js").write_text("src")

        backup_folders(deployment, store, ["frontend/node_modules"])

        assert (store / "frontend" / "node_modules" / "pkg" / "index.js").read_text() == "x"
        assert (deployment / "frontend" / "src.js").exists()

        target = tmp_path / "deployments" / "B"
        target.mkdir()
        restore_folders(target, store, ["frontend\\node_modules"])
        assert (target / "frontend" / "node_modules" / "pkg" / "index.js").read_text() == "x"

    def test_stale_copy_is_replaced(self, layout):
        deployment, store = layout
        (store / "data").mkdir(parents=True)
        (store / "data" / "old.db").write_text("stale")
        (deployment / "data").mkdir()
        (deployment / "data" / "new.db").write_text("fresh")

        backup_folders(deployment, store, ["data"])

        assert not (store / "data" / "old.db").exists()
        assert (store / "data" / "new.db").read_text() == "fresh"

    def test_stored_copy_kept_when_source_missing(self, layout):
        """Backing up a folder the deployment lacks leaves the store untouched."""
        deployment, store = layout
        (store / "data").mkdir(parents=True)
        (store / "data" / "only-copy.db").write_text("precious")

        assert backup_folders(deployment, store, ["data"]) == []
        assert (store / "data" / "only-copy.db").read_text() == "precious"

    def test_restore_replaces_shipped_folder(self, layout, tmp_path):
        deployment, store = layout
        (store / "uploads").mkdir(parents=True)
        (store / "uploads" / "user.png").write_text("user")
        (deployment / "uploads").mkdir()
        (deployment / "uploads" / "placeholder").write_text("shipped")

        restore_folders(deployment, store, ["uploads"])

        assert (deployment / "uploads" / "user.png").read_text() == "user"
        assert not (deployment / "uploads" / "placeholder").exists()

    def test_restore_keeps_shipped_folder_without_backup(self, layout):
        deployment, store = layout
        (deployment / "uploads").mkdir()
        (deployment / "uploads" / "placeholder").write_text("shipped")

        assert restore_folders(deployment, store, ["uploads"]) == []
        assert (deployment / "uploads" / "placeholder").exists()

    def test_no_specs_is_noop(self, layout):
        deployment, store = layout
        (deployment / "uploads").mkdir()

        assert backup_folders(deployment, store, []) == []
        assert (deployment / "uploads").exists()
        assert not store.exists()

    def test_missing_deployment_is_noop(self, tmp_path):
        store = tmp_path / "persistent"

        assert backup_folders(tmp_path / "gone", store, ["uploads"]) == []
        assert restore_folders(tmp_path / "gone", store, ["uploads"]) == []
        assert not (tmp_path / "gone").exists()

    def test_invalid_spec_is_rejected(self, layout):
        deployment, store = layout

        with pytest.raises(InvalidPathError):
            backup_folders(deployment, store, ["../outside"])

    def test_decorated_specs_are_canonicalized(self, layout):
        deployment, store = layout
        (deployment / "uploads").mkdir()

        assert backup_folders(deployment, store, ["/uploads/", "./uploads"]) == ["uploads"]
        assert (store / "uploads").is_dir()


class TestMoveDirectory:
    """Rename with cross-device fallback."""

    def test_rename(self, tmp_path):
        source = tmp_path / "src"
        source.mkdir()
        (source / "f.txt").write_text("x")
        target = tmp_path / "a" / "b" / "dst"

        move_directory(source, target)

        assert (target / "f.txt").read_text() == "x"
        assert not source.exists()

    def test_cross_device_falls_back_to_copy(self, tmp_path, monkeypatch):
        source = tmp_path / "src"
        (source / "nested").mkdir(parents=True)
        (source / "nested" / "f.txt").write_text("payload")
        target = tmp_path / "dst"

        def fake_rename(src, dst):
            raise OSError(errno.EXDEV, os.strerror(errno.EXDEV))

        monkeypatch.setattr(persistent.os, "rename", fake_rename)

        move_directory(source, target)

        assert (target / "nested" / "f.txt").read_text() == "payload"
        assert not source.exists()

    def test_other_errors_raise(self, tmp_path, monkeypatch):
        source = tmp_path / "src"
        source.mkdir()

        def fake_rename(src, dst):
            raise OSError(errno.EACCES, os.strerror(errno.EACCES))

        monkeypatch.setattr(persistent.os, "rename", fake_rename)

        with pytest.raises(MoveFailedError):
            move_directory(source, tmp_path / "dst")
        assert source.exists()

    def test_missing_source_raises(self, tmp_path):
        with pytest.raises(MoveFailedError):
            move_directory(tmp_path / "missing", tmp_path / "dst")
