"""
Top-level package for gitsum.

This package exposes the main CLI entry point via the
``gitsum.cli`` module and the summarization pipeline via
``gitsum.pipeline``.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
