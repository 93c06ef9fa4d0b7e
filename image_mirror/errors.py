"""
Error types raised while mirroring images.

Missing destinations and architectures absent from a source are not errors;
they are reported through return values instead.
"""


class MirrorError(Exception):
    """Base class for all mirror failures."""


class ConfigurationError(MirrorError):
    """Malformed reference, empty tag, or unreadable input."""


class TransportError(MirrorError):
    """A registry command failed, timed out, or could not be started."""

    def __init__(self, message, command=None, stderr=""):
        super().__init__(message)
        self.command = command
        self.stderr = stderr


class SourceNotFoundError(TransportError):
    """The source manifest does not exist."""


class UnsupportedSchemaError(MirrorError):
    """The manifest classifier cannot pick a strategy for a manifest."""
