"""Error types raised by the discovery engine."""


class DiscoveryError(RuntimeError):
    """Base class for failures that abort a discovery run."""


class ContainerDecodeError(DiscoveryError):
    """Raised when a compound container is corrupt, truncated or lacks a stream."""


class DocumentParseError(DiscoveryError):
    """Raised when an extracted XML document is malformed or unsafe."""


class ChangeSetError(DiscoveryError):
    """Raised when git trees or blobs cannot be read."""


class MissingResourceWarning(UserWarning):
    """An action's parameter folder or resource.mtr file is absent."""


__all__ = [
    "ChangeSetError",
    "ContainerDecodeError",
    "DiscoveryError",
    "DocumentParseError",
    "MissingResourceWarning",
]
