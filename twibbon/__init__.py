"""Profile picture frame campaign server."""

__version__ = '0.1.0'
