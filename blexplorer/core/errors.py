"""Domain-specific errors for blexplorer."""


class BlexplorerError(Exception):
    """Base error for blexplorer."""


class AlreadyStartedError(BlexplorerError):
    """Raised when a registry is started more than once."""


class UnknownPeripheralError(BlexplorerError):
    """Raised when an event references a peripheral that was never discovered."""


class UnknownServiceError(BlexplorerError):
    """Raised when characteristics arrive for a service never reported for the device."""


class UnrecognizedAdapterStateError(BlexplorerError):
    """Raised when the radio reports a power state outside the known set."""


class ReentrantMutationError(BlexplorerError):
    """Raised when a change listener tries to mutate the registry."""


class ConfigLoadError(BlexplorerError):
    """Raised when the config file cannot be read."""


class ConfigValidationError(BlexplorerError):
    """Raised when the config file does not conform to schema."""


class AdapterError(BlexplorerError):
    """Raised on radio adapter misuse."""
