"""Validation and extraction of uploaded ZIP bundles."""

from __future__ import annotations

import shutil
import zipfile
from pathlib import Path

import structlog

from deploy_agent.core.exceptions import (
    ArchiveFormatInvalidError,
    ArchiveTooSmallError,
    ExtractionFailedError,
)

logger = structlog.get_logger()

MIN_ARCHIVE_SIZE = 4

# Local file header, empty archive, spanned archive
ZIP_MAGIC = frozenset({"504b0304", "504b0506", "504b0708"})


def validate_archive(archive_path: Path) -> str:
    """Check size and magic bytes of an archive.

    Returns:
        The hex-encoded magic header

    Raises:
        ArchiveTooSmallError: If the file is smaller than 4 bytes
        ArchiveFormatInvalidError: If the header is not a ZIP signature
    """
    size = archive_path.stat().st_size
    logger.info("Validating archive", path=str(archive_path), size=size)
    if size < MIN_ARCHIVE_SIZE:
        raise ArchiveTooSmallError(f"Archive is too small to be a valid zip ({size} bytes)")

    with open(archive_path, "rb") as f:
        magic = f.read(MIN_ARCHIVE_SIZE).hex()

    if magic not in ZIP_MAGIC:
        logger.warning("Archive has invalid magic header", path=str(archive_path), magic=magic)
        raise ArchiveFormatInvalidError(f"Archive is not a valid zip (magic header {magic})")
    return magic


def extract_archive(archive_path: Path, dest_dir: Path) -> int:
    """Extract every entry of a ZIP archive into dest_dir.

    Entries keep their relative path; intermediate directories are created.
    A failed extraction leaves dest_dir as-is.

    Returns:
        Number of entries extracted

    Raises:
        ArchiveTooSmallError, ArchiveFormatInvalidError: On header checks
        ExtractionFailedError: On unsafe entries or any I/O / ZIP error
    """
    validate_archive(archive_path)

    dest_dir.mkdir(parents=True, exist_ok=True)
    base = dest_dir.resolve()
    count = 0

    try:
        with zipfile.ZipFile(archive_path, "r") as zf:
            members = zf.infolist()
            logger.debug("Found archive entries", count=len(members))
            for member in members:
                member_path = Path(member.filename)
                if member_path.is_absolute() or ".." in member_path.parts:
                    raise ExtractionFailedError(f"Archive entry has unsafe path: {member.filename}")
                target = (base / member_path).resolve()
                if target != base and base not in target.parents:
                    raise ExtractionFailedError(f"Archive entry escapes destination: {member.filename}")

                if member.is_dir():
                    target.mkdir(parents=True, exist_ok=True)
                else:
                    target.parent.mkdir(parents=True, exist_ok=True)
                    with zf.open(member, "r") as src, open(target, "wb") as dst:
                        shutil.copyfileobj(src, dst)
                count += 1
    except ExtractionFailedError:
        raise
    except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError, RuntimeError, ValueError) as e:
        logger.error("Archive extraction failed", path=str(archive_path), dest=str(dest_dir), error=str(e))
        raise ExtractionFailedError(f"Failed to extract archive: {e}") from e

    logger.info("Archive extracted", path=str(archive_path), dest=str(dest_dir), entries=count)
    return count
