"""
CLI layer for buildxpert.

Terminal transport only: argument parsing, coloured output and tables.
Migration logic lives in ``buildxpert.migrations``.

Entry point::

    buildxpert-migrate --help
"""

from buildxpert.cli.app import app

__all__ = ["app"]
