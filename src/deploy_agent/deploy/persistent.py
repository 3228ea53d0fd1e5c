"""Relocation of persistent folders between a deployment and the durable store.

Backup moves each configured folder out of a deployment into the store;
restore moves it from the store into a deployment. Ownership transfers on
every move, so a folder lives in exactly one place at a time.
"""

from __future__ import annotations

import errno
import os
import shutil
from pathlib import Path
from typing import Iterable, List

import structlog

from deploy_agent.core.exceptions import MoveFailedError
from deploy_agent.deploy.paths import validate_folder_path

logger = structlog.get_logger()


def _exists(path: Path) -> bool:
    return os.path.lexists(path)


def _remove(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()


def move_directory(source: Path, target: Path) -> None:
    """Move source to target, falling back to copy+delete across devices.

    Parent directories of target are created first.

    Raises:
        MoveFailedError: On any error other than a cross-device rename
    """
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        os.rename(source, target)
        return
    except OSError as e:
        if e.errno != errno.EXDEV:
            raise MoveFailedError(f"Failed to move {source} to {target}: {e}") from e

    logger.info("Cross-device move, copying", source=str(source), target=str(target))
    try:
        if source.is_dir() and not source.is_symlink():
            shutil.copytree(source, target, symlinks=True)
        else:
            shutil.copy2(source, target, follow_symlinks=False)
        _remove(source)
    except (OSError, shutil.Error) as e:
        raise MoveFailedError(f"Failed to copy {source} to {target}: {e}") from e


def _canonical(specs: Iterable[str]) -> List[str]:
    folders: List[str] = []
    for spec in specs:
        folder = validate_folder_path(spec)
        if folder not in folders:
            folders.append(folder)
    return folders


def backup_folders(deployment_path: Path, store_root: Path, specs: Iterable[str]) -> List[str]:
    """Move persistent folders from a deployment into the store.

    A stored copy is replaced only by a folder actually present in the
    deployment; a folder missing from the deployment leaves the store as-is.

    Returns:
        Folders that were moved
    """
    folders = _canonical(specs)
    if not folders:
        logger.debug("No persistent folders configured")
        return []
    if not deployment_path or not deployment_path.is_dir():
        logger.debug("No deployment to back up persistent folders from", deployment=str(deployment_path))
        return []

    store_root.mkdir(parents=True, exist_ok=True)
    moved: List[str] = []
    for folder in folders:
        source = deployment_path / folder
        if not _exists(source):
            # The store copy may be the only one left after an aborted upload
            logger.debug("Persistent folder not in deployment, keeping stored copy", folder=folder)
            continue

        stale = store_root / folder
        if _exists(stale):
            logger.debug("Removing stale persistent copy", folder=folder, path=str(stale))
            try:
                _remove(stale)
            except OSError as e:
                raise MoveFailedError(f"Failed to remove stale copy {stale}: {e}") from e

        move_directory(source, stale)
        moved.append(folder)
        logger.info("Backed up persistent folder", folder=folder, deployment=deployment_path.name)

    return moved


def restore_folders(deployment_path: Path, store_root: Path, specs: Iterable[str]) -> List[str]:
    """Move persistent folders from the store into a deployment.

    A folder shipped with the deployment (e.g. an empty one created by
    extraction) is replaced only when a stored copy exists. Without a stored
    copy the shipped folder is kept rather than removed, so a bundle can seed
    a persistent folder on its first deploy.

    Returns:
        Folders that were moved
    """
    folders = _canonical(specs)
    if not folders:
        logger.debug("No persistent folders configured")
        return []
    if not deployment_path or not deployment_path.is_dir():
        logger.debug("No deployment to restore persistent folders to", deployment=str(deployment_path))
        return []

    restored: List[str] = []
    for folder in folders:
        source = store_root / folder
        if not _exists(source):
            logger.debug("No persistent folder to restore", folder=folder)
            continue

        target = deployment_path / folder
        if _exists(target):
            logger.debug("Replacing folder shipped with deployment", folder=folder, path=str(target))
            try:
                _remove(target)
            except OSError as e:
                raise MoveFailedError(f"Failed to remove {target}: {e}") from e

        move_directory(source, target)
        restored.append(folder)
        logger.info("Restored persistent folder", folder=folder, deployment=deployment_path.name)

    return restored
