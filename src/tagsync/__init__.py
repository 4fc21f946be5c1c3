# src/tagsync/__init__.py
"""Mirror upstream tags as sync branches in a fork."""

__version__ = "0.1.0"
