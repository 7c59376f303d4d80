class BridgeError(Exception):
    """Base class for everything the bridge raises on purpose."""


class ConfigurationError(BridgeError):
    """The watched path is missing or not a regular file."""


class WatchError(BridgeError):
    """The directory watch broke. Fatal."""


class TransientReadError(BridgeError):
    """The file could not be read when the debounce timer fired."""


class InjectionTimeout(BridgeError):
    """The content-editable node never became editable."""


class InjectionFailure(BridgeError):
    """Neither injection path could write the new content."""


class TriggerNotFound(BridgeError):
    """No evaluate control matched any selector pass."""
