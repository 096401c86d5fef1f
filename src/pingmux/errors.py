class PingerSetupError(RuntimeError):
    """Raised when the send socket or the capture handle cannot be opened."""


class PingerStateError(RuntimeError):
    """Raised when the engine is used outside of its started lifetime."""


class ResolutionError(RuntimeError):
    """Raised when a target cannot be resolved to an IPv4 address."""
