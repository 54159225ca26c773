"""
Exception classes raised by the comic2epub pipeline.
"""

class ApplicationBaseException(Exception):
    """Base class of every application error."""
    def __init__(self, message="An application error occurred."):
        self.message = message
        super().__init__(self.message)

class ConfigError(ApplicationBaseException):
    """Invalid option or configuration file."""
    def __init__(self, message="Invalid configuration."):
        super().__init__(message)

class FileOperationError(ApplicationBaseException):
    """Unreadable container or failed file write."""
    def __init__(self, message="A file or directory operation failed."):
        super().__init__(message)

class UnsupportedFormatError(FileOperationError):
    """Input file extension is not a supported container."""
    def __init__(self, message="Unsupported input format."):
        super().__init__(message)

class NoImagesFoundError(ApplicationBaseException):
    """The container was readable but holds no supported image."""
    def __init__(self, message="no images found"):
        super().__init__(message)

class DecodeError(ApplicationBaseException):
    """A single page could not be opened, read or decoded."""
    def __init__(self, source_identifier, cause=None):
        self.source_identifier = source_identifier
        self.cause = cause
        super().__init__(f"error processing image {source_identifier}: {cause}")

class EpubProcessingError(ApplicationBaseException):
    """Normalization or EPUB assembly failed."""
    def __init__(self, message="EPUB generation failed."):
        super().__init__(message)
