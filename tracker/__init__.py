"""Device location tracker: live registry plus SQL-backed report history."""

__version__ = "0.1.0"
