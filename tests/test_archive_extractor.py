"""Tests for archive validation and extraction."""

import io
import zipfile

import pytest

from deploy_agent.core.exceptions import (
    ArchiveError,
    ArchiveFormatInvalidError,
    ArchiveTooSmallError,
    ExtractionFailedError,
)
from deploy_agent.deploy.archive import extract_archive, validate_archive


class TestValidateArchive:
    """Header checks before extraction."""

    def test_too_small(self, tmp_path):
        path = tmp_path / "tiny.zip"
        path.write_bytes(b"PK\x03")

        with pytest.raises(ArchiveTooSmallError) as exc_info:
            validate_archive(path)
        assert exc_info.value.status_code == 400

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.zip"
        path.write_bytes(b"")

        with pytest.raises(ArchiveTooSmallError):
            validate_archive(path)

    def test_invalid_magic(self, tmp_path):
        path = tmp_path / "zeros.zip"
        path.write_bytes(b"\x00" * 10)

        with pytest.raises(ArchiveFormatInvalidError) as exc_info:
            validate_archive(path)
        assert "00000000" in str(exc_info.value)

    def test_tarball_rejected(self, tmp_path):
        path = tmp_path / "bundle.tar.gz"
        path.write_bytes(b"\x1f\x8b\x08\x00" + b"\x00" * 20)

        with pytest.raises(ArchiveFormatInvalidError):
            validate_archive(path)

    def test_valid_magic(self, make_zip):
        path = make_zip({"index.js": "console.log('hi')"})
        assert validate_archive(path) == "504b0304"

    def test_empty_zip_magic(self, tmp_path):
        path = tmp_path / "empty.zip"
        with zipfile.ZipFile(path, "w"):
            pass
        assert validate_archive(path) == "504b0506"


class TestExtractArchive:
    """Extraction into a deployment directory."""

    def test_extracts_nested_files(self, make_zip, tmp_path):
        path = make_zip({
            "package.json": '{"name": "app"}',
            "src/index.js": "console.log('hi')",
            "public/img/logo.png": b"\x89PNG\r\n",
        })
        dest = tmp_path / "out"

        count = extract_archive(path, dest)

        assert count == 3
        assert (dest / "package.json").read_text() == '{"name": "app"}'
        assert (dest / "src" / "index.js").read_text() == "console.log('hi')"
        assert (dest / "public" / "img" / "logo.png").read_bytes() == b"\x89PNG\r\n"

    def test_directory_entries_are_created(self, make_zip, tmp_path):
        path = make_zip({"uploads/": "", "app.js": "x"})
        dest = tmp_path / "out"

        count = extract_archive(path, dest)

        assert count == 2
        assert (dest / "uploads").is_dir()
        assert list((dest / "uploads").iterdir()) == []

    def test_empty_zip_extracts_nothing(self, tmp_path):
        path = tmp_path / "empty.zip"
        with zipfile.ZipFile(path, "w"):
            pass
        dest = tmp_path / "out"

        assert extract_archive(path, dest) == 0
        assert dest.is_dir()

    def test_rejects_path_traversal(self, tmp_path):
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as zf:
            zf.writestr("../escape.txt", "nope")
        path = tmp_path / "evil.zip"
        path.write_bytes(buffer.getvalue())
        dest = tmp_path / "out"

        with pytest.raises(ExtractionFailedError):
            extract_archive(path, dest)
        assert not (tmp_path / "escape.txt").exists()

    def test_corrupt_body_fails_extraction(self, tmp_path):
        path = tmp_path / "corrupt.zip"
        path.write_bytes(b"PK\x03\x04" + b"garbage" * 10)

        with pytest.raises(ExtractionFailedError) as exc_info:
            extract_archive(path, tmp_path / "out")
        assert exc_info.value.status_code == 500

    def test_header_errors_are_archive_errors(self, tmp_path):
        path = tmp_path / "bad.zip"
        path.write_bytes(b"nope nope")

        with pytest.raises(ArchiveError):
            extract_archive(path, tmp_path / "out")
