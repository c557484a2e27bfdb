"""Transport error types."""


class TransportError(RuntimeError):
    """Raised when a listener cannot bind or listen."""


__all__ = ["TransportError"]
