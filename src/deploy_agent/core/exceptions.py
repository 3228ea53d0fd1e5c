"""Custom exceptions for Deploy Agent."""

from typing import Optional


class DeployAgentError(Exception):
    """Base exception for all agent errors."""

    status_code: int = 500

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class InvalidPathError(DeployAgentError):
    """Persistent folder path is unsafe or empty."""

    status_code = 400

    def __init__(self, message: str, code: Optional[str] = "invalid_path"):
        super().__init__(message, code)


class ArchiveError(DeployAgentError):
    """Archive-related errors."""
    pass


class ArchiveTooSmallError(ArchiveError):
    """Archive is too small to be a ZIP file."""

    status_code = 400

    def __init__(self, message: str, code: Optional[str] = "archive_too_small"):
        super().__init__(message, code)


class ArchiveFormatInvalidError(ArchiveError):
    """Archive does not start with a ZIP signature."""

    status_code = 400

    def __init__(self, message: str, code: Optional[str] = "archive_format_invalid"):
        super().__init__(message, code)


class ExtractionFailedError(ArchiveError):
    """Extracting an archive entry failed."""

    def __init__(self, message: str, code: Optional[str] = "extraction_failed"):
        super().__init__(message, code)


class ProcessError(DeployAgentError):
    """Supervised process errors."""
    pass


class AlreadyRunningError(ProcessError):
    """A process is already running or transitioning."""

    status_code = 409

    def __init__(self, message: str, code: Optional[str] = "already_running"):
        super().__init__(message, code)


class ProcessStuckError(ProcessError):
    """The process survived force-kill; an agent restart is pending."""

    status_code = 409

    def __init__(self, message: str, code: Optional[str] = "process_stuck"):
        super().__init__(message, code)


class ConfigMissingError(ProcessError):
    """Command or working directory not configured."""

    status_code = 400

    def __init__(self, message: str, code: Optional[str] = "config_missing"):
        super().__init__(message, code)


class VersionNotFoundError(DeployAgentError):
    """Deployment version not found."""

    status_code = 404

    def __init__(self, message: str, code: Optional[str] = "version_not_found"):
        super().__init__(message, code)


class MoveFailedError(DeployAgentError):
    """Relocating a persistent folder failed."""

    def __init__(self, message: str, code: Optional[str] = "move_failed"):
        super().__init__(message, code)


class ConfigurationError(DeployAgentError):
    """Configuration error."""
    pass


class EnvFileError(DeployAgentError):
    """Environment file errors."""
    pass


class InvalidEnvNameError(EnvFileError):
    """Environment file name is not allowed."""

    status_code = 400

    def __init__(self, message: str, code: Optional[str] = "invalid_env_name"):
        super().__init__(message, code)


class EnvNotFoundError(EnvFileError):
    """Environment file does not exist."""

    status_code = 404

    def __init__(self, message: str, code: Optional[str] = "env_not_found"):
        super().__init__(message, code)
