"""Command modules for the ``zen`` CLI."""
