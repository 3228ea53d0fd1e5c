"""Deployment primitives: path validation, archives, versioned store, persistent folders."""

from .archive import extract_archive, validate_archive
from .models import Deployment
from .orchestrator import DeploymentOrchestrator
from .paths import parse_persistent_folders, validate_folder_path
from .persistent import backup_folders, move_directory, restore_folders
from .store import DeploymentStore

__all__ = [
    "Deployment",
    "DeploymentOrchestrator",
    "DeploymentStore",
    "backup_folders",
    "extract_archive",
    "move_directory",
    "parse_persistent_folders",
    "restore_folders",
    "validate_archive",
    "validate_folder_path",
]
