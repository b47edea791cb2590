"""portio - find and kill processes listening on ports."""

__version__ = "1.0.0"
