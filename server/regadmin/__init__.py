"""Admin proxy for product registration records on a hosted backend."""

__version__ = "1.0.0"
