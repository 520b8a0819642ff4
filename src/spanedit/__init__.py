"""Selection-driven editing of raw chat message text."""

__version__ = "0.3.0"

__all__ = ["__version__"]
