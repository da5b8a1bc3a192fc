"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class NexusBridgeError(Exception):
    """Base exception for all application-specific errors."""


class ConfigurationError(NexusBridgeError):
    """Raised for issues related to configuration loading or validation."""


class ParseError(NexusBridgeError):
    """Raised when a collection manifest cannot be decoded."""


class AuthenticationError(NexusBridgeError):
    """Raised when the Nexus API rejects the configured API key."""


class CollectionFetchError(NexusBridgeError):
    """Raised when a collection cannot be resolved or downloaded from its URL."""


class TransferError(NexusBridgeError):
    """Base class for failures while talking to a remote endpoint."""


class TransientTransferError(TransferError):
    """
    Raised for failures that are worth retrying: timeouts, refused connections,
    DNS failures, empty responses and server-side errors.
    """


class TransferRejectedError(TransferError):
    """Raised when the remote explicitly refuses a request. Never retried."""


class PremiumRequiredError(TransferRejectedError):
    """Raised when download links are refused because the account is not premium."""


class ExtractionError(NexusBridgeError):
    """Raised when an archive cannot be unpacked."""


class MaterializationError(NexusBridgeError):
    """Raised when extracted files cannot be placed into a mod folder."""
