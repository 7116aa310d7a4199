"""
injuryflow utilities.

- IncrementalTopoSort: ordered dependency graph that rejects cycles edge by edge
"""

from .cycle_detector import IncrementalTopoSort

__all__ = ["IncrementalTopoSort"]
