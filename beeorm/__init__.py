"""Query conditions, registry configuration, logged Redis commands and MySQL schema alters."""

__version__ = "3.0.0"