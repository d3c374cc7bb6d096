#!/usr/bin/env python
"""
Thin wrapper script to invoke the gitsum CLI.

Running ``python run_gitsum.py`` is equivalent to running the ``gitsum``
console script installed via ``pyproject.toml``.
"""

from gitsum.cli import run


if __name__ == "__main__":
    run()
