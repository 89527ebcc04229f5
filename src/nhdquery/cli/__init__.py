"""
Command-line interface for nhdquery.

This package provides the Typer-based CLI for running configured query
batches and ad hoc overlay and reach queries.
"""

from .main import app

__all__ = ["app"]
