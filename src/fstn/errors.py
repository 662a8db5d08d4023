"""Custom exceptions for fstn.

This module defines typed exceptions for better error handling and clearer
error messages throughout the client. Every failure the CLI reports derives
from FstnError so the command boundary can map it to a non-zero exit.
"""


class FstnError(RuntimeError):
    """Base class for all fstn errors."""
    pass


# Session Errors
class AuthError(FstnError):
    """Authentication failed, or the session is invalid or expired (401/403)."""
    pass


class NoSessionError(AuthError):
    """No usable session is stored for the selected server and profile."""

    def __init__(self, server: str, profile: str, reason: str = "no token found"):
        self.server = server
        self.profile = profile
        super().__init__(
            f"Not logged in to {server} as '{profile}' ({reason}). "
            f"Run 'fstn login' first."
        )


# Transport Errors
class NetworkError(FstnError):
    """Network connectivity issue or unusable response from the server."""
    pass


class NotFoundError(FstnError):
    """Key or content id not found on the server (404)."""
    pass


# Integrity Errors
class IntegrityError(FstnError):
    """Base class for data integrity errors."""
    pass


class DigestMismatchError(IntegrityError):
    """Blob digest doesn't match the content id it was requested by."""

    def __init__(self, key: str, expected: str, actual: str):
        self.key = key
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Digest verification failed for {key}\n"
            f"  Expected: {expected}\n"
            f"  Got:      {actual}\n"
            f"The blob may be corrupted or the server is inconsistent."
        )


# Local Errors
class IoError(FstnError):
    """Reading or writing a local file failed."""

    def __init__(self, path, action: str, cause: OSError):
        self.path = path
        self.action = action
        super().__init__(f"Cannot {action} {path}: {cause.strerror or cause}")


class InvalidKeyError(FstnError, ValueError):
    """Key is empty or has an empty segment."""

    def __init__(self, key: str, reason: str):
        self.key = key
        super().__init__(f"Invalid key '{key}': {reason}")


# Configuration Errors
class ConfigError(FstnError):
    """Credential file or environment configuration is unusable."""
    pass
