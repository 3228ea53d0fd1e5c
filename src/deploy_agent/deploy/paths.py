"""Validation and normalization of persistent folder paths."""

import re
from typing import Any, List, Optional

from deploy_agent.core.exceptions import InvalidPathError

SEPARATORS = "/\\"
_DRIVE_RE = re.compile(r"^[a-zA-Z]:")
_SPLIT_RE = re.compile(r"[\\/]+")


def validate_folder_path(raw: Any) -> str:
    """Return the canonical form of a relative folder path.

    Canonical paths use ``/`` separators and carry no leading or trailing
    separator, no ``.`` segment and no ``..`` segment. A name wrapped in
    separators (``/uploads/``, ``\\frontend\\dist\\``) is treated as a
    decorated relative folder; a rooted path without the trailing separator
    (``/etc/passwd``), a drive-letter path or a UNC path is absolute and
    rejected.

    Raises:
        InvalidPathError: If the path is empty, absolute or escapes its root
    """
    if not isinstance(raw, str):
        raise InvalidPathError(f"Folder path must be a non-empty string, got {type(raw).__name__}")

    trimmed = raw.strip()
    if not trimmed:
        raise InvalidPathError("Folder path must be a non-empty string")

    if _DRIVE_RE.match(trimmed):
        raise InvalidPathError(f"Invalid folder path: {raw}. Paths must be relative.")
    if len(trimmed) > 1 and trimmed[0] in SEPARATORS and trimmed[1] in SEPARATORS:
        raise InvalidPathError(f"Invalid folder path: {raw}. UNC paths are not allowed.")
    if trimmed[0] in SEPARATORS and trimmed[-1] not in SEPARATORS:
        raise InvalidPathError(f"Invalid folder path: {raw}. Paths must be relative.")

    stripped = trimmed.strip(SEPARATORS)
    if not stripped:
        raise InvalidPathError(f"Invalid folder path: {raw}. Path cannot be empty after normalization.")

    segments = [segment for segment in _SPLIT_RE.split(stripped) if segment not in ("", ".")]
    if ".." in segments:
        raise InvalidPathError(f"Invalid folder path: {raw}. Paths cannot contain '..' components.")
    if not segments:
        raise InvalidPathError(f"Invalid folder path: {raw}. Path cannot be empty after normalization.")

    return "/".join(segments)


def _is_nested(path: str, parent: str) -> bool:
    return path.startswith(parent + "/")


def parse_persistent_folders(spec: Optional[str]) -> List[str]:
    """Parse a comma-separated folder list into canonical, non-overlapping paths.

    Duplicates collapse to one entry and folders nested under another
    configured folder are dropped, since moving the parent carries them.
    First-seen order is kept.
    """
    if not spec:
        return []

    folders: List[str] = []
    for entry in spec.split(","):
        if not entry.strip():
            continue
        canonical = validate_folder_path(entry)
        if canonical not in folders:
            folders.append(canonical)

    return [
        folder for folder in folders
        if not any(_is_nested(folder, other) for other in folders if other != folder)
    ]
