"""
Custom exception hierarchy for the design bridge agent.

Fatal configuration problems, per-file failures and collaborator failures
each get their own type so callers can decide what aborts a cycle.
"""


class DesignBridgeError(Exception):
    """Base exception for all bridge agent errors."""
    pass


class ConfigError(DesignBridgeError):
    """Raised when required configuration is missing or malformed."""
    pass


class ScanRootError(DesignBridgeError):
    """Raised when a configured scan root is missing or not a directory."""
    pass


class FileHashError(DesignBridgeError):
    """Raised when file fingerprinting fails."""
    pass


class StateFileError(DesignBridgeError):
    """Raised when the persisted scan state cannot be read or written."""
    pass


class ThumbnailError(DesignBridgeError):
    """Raised when every extraction strategy fails for a type that must render."""
    pass


class CatalogError(DesignBridgeError):
    """Raised when a call to the remote catalog API fails."""
    pass


class CatalogNotFoundError(CatalogError):
    """Raised when the catalog answers 404 for the record an action refers to."""
    pass
