"""Migrate IBM i source physical file members to IFS stream files."""

__version__ = "0.1.0"
