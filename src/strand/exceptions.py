"""Plugin installation exceptions.

Fatal errors (configuration, resolution, plugin root reset) abort a run
before any network activity. Per-plugin errors (fetch, extract) are
captured into that plugin's outcome and never reach the caller.
"""


class StrandError(Exception):
    """Base exception for plugin operations."""

    def __init__(self, message: str, context: dict | None = None):
        """Initialize with message and optional context.

        Args:
            message: Human-readable error message
            context: Optional dict with additional context (paths, URLs, etc.)
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}


class ConfigError(StrandError):
    """Configuration file missing or invalid."""


class ResolutionError(StrandError):
    """Plugin declaration cannot be turned into a download source."""


class DirectoryError(StrandError):
    """Plugin root or plugin directory could not be prepared."""


class FetchError(StrandError):
    """Archive download failed."""


class ExtractError(StrandError):
    """Archive could not be unpacked."""
