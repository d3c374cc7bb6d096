"""
Diff extraction.

See :mod:`gitsum.diff.diff_extractor` for how two repository points are
compared and :mod:`gitsum.diff.diff_model` for the resulting data types.
"""

from .diff_extractor import DiffExtractor  # noqa: F401
from .diff_model import ChangeKind, DiffSet, DiffStats, FileChange  # noqa: F401
