"""Live status tracking for concurrently running Claude sessions."""

__version__ = "0.3.0"

__all__ = ["__version__"]
