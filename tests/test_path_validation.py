"""Tests for persistent folder path validation."""

import pytest

from deploy_agent.core.exceptions import InvalidPathError
from deploy_agent.deploy.paths import parse_persistent_folders, validate_folder_path


class TestValidateFolderPath:
    """Canonicalization of relative folder paths."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("uploads", "uploads"),
            ("/uploads/", "uploads"),
            ("\\frontend\\dist\\", "frontend/dist"),
            ("/src/assets/", "src/assets"),
            ("./uploads", "uploads"),
            ("frontend/./dist", "frontend/dist"),
            ("./src/./assets", "src/assets"),
            ("uploads/", "uploads"),
            ("frontend\\node_modules", "frontend/node_modules"),
            ("  data  ", "data"),
            ("a//b///c", "a/b/c"),
        ],
    )
    def test_accepts_relative_paths(self, raw, expected):
        assert validate_folder_path(raw) == expected

    @pytest.mark.parametrize(
        "raw",
        [
            "../uploads",
            "uploads/../data",
            "../../etc/passwd",
            "uploads/../../data",
            "/etc/passwd",
            "/home/user/uploads",
            "C:\\Windows\\System32",
            "C:",
            "c:/data",
            "\\\\server\\share",
            "//server/share",
            "",
            "   ",
            "/",
            "\\",
            ".",
            "./",
        ],
    )
    def test_rejects_unsafe_paths(self, raw):
        with pytest.raises(InvalidPathError):
            validate_folder_path(raw)

    @pytest.mark.parametrize("raw", [None, 123, ["uploads"]])
    def test_rejects_non_strings(self, raw):
        with pytest.raises(InvalidPathError):
            validate_folder_path(raw)

    def test_canonical_form_is_stable(self):
        """Validating a canonical path returns it unchanged."""
        for raw in ["/uploads/", "\\frontend\\dist\\", "./src/./assets", "a//b"]:
            canonical = validate_folder_path(raw)
            assert validate_folder_path(canonical) == canonical

    def test_error_carries_status(self):
        with pytest.raises(InvalidPathError) as exc_info:
            validate_folder_path("../x")
        assert exc_info.value.status_code == 400
        assert "'..'" in str(exc_info.value)


class TestParsePersistentFolders:
    """Parsing of the comma-separated folder list."""

    def test_empty_values(self):
        assert parse_persistent_folders(None) == []
        assert parse_persistent_folders("") == []
        assert parse_persistent_folders(" , ,") == []

    def test_splits_and_canonicalizes(self):
        assert parse_persistent_folders("uploads, data ,/logs/") == ["uploads", "data", "logs"]

    def test_duplicates_collapse(self):
        assert parse_persistent_folders("uploads,./uploads,/uploads/") == ["uploads"]

    def test_nested_entries_are_dropped(self):
        assert parse_persistent_folders("frontend/node_modules,frontend") == ["frontend"]
        assert parse_persistent_folders("frontend,frontend/node_modules") == ["frontend"]

    def test_sibling_prefix_is_not_nested(self):
        assert parse_persistent_folders("data,data2") == ["data", "data2"]

    def test_invalid_entry_rejects_whole_list(self):
        with pytest.raises(InvalidPathError):
            parse_persistent_folders("uploads,../secrets")
