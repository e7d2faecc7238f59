"""
Snapvote Exceptions

Error taxonomy shared by every contract in the package. Module-specific
errors inherit from their module base *and* one of the kinds below, so
callers can catch either by component or by kind.
"""


class SnapvoteError(Exception):
    """Base exception for Snapvote."""
    pass


class AuthorizationError(SnapvoteError):
    """Caller lacks a required role or ownership."""
    pass


class StateError(SnapvoteError):
    """Operation is invalid for the current lifecycle state."""
    pass


class ReplayError(SnapvoteError):
    """Write-once record already written (vote, claim, schedule, nonce)."""
    pass


class ValidationError(SnapvoteError):
    """Malformed or insufficient input."""
    pass


class DependencyError(SnapvoteError):
    """A prerequisite operation or an underlying call failed."""
    pass


class ConfigurationError(SnapvoteError):
    """Configuration error."""
    pass
