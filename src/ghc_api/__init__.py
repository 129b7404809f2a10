"""Authentication and transport core for a GitHub command-line client."""

__version__ = "0.1.0"
