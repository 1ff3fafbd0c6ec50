"""Custom Exceptions for the MediaScribe application."""

from typing import Optional


class MediaScribeError(Exception):
    """Base class for exceptions in this package."""
    pass

class ConfigurationError(MediaScribeError):
    """Exception raised for errors in configuration loading or validation."""
    pass

class ProbeError(MediaScribeError):
    """Exception raised when an audio file cannot be read or decoded."""
    pass

class SegmentationError(MediaScribeError):
    """Exception raised when an audio file cannot be split into chunks."""

    def __init__(self, message: str, index: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.index = index

    def __str__(self) -> str:
        if self.index is None:
            return self.message
        return f"chunk {self.index}: {self.message}"

class BackendError(MediaScribeError):
    """
    Exception raised when the transcription backend fails.

    When the failure belongs to one chunk of a larger file, ``index`` holds
    that chunk's sequence index.
    """

    def __init__(self, message: str, index: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.index = index

    def __str__(self) -> str:
        if self.index is None:
            return self.message
        return f"chunk {self.index}: {self.message}"

class ResolutionError(MediaScribeError):
    """Exception raised when source metadata or audio cannot be obtained."""
    pass

class FileSystemError(MediaScribeError):
    """Exception raised for file system related errors (permissions, not found etc)."""
    pass
