"""
Output generation.

Only syndication documents are produced here; page markup belongs to the
rendering collaborator.
"""

from .feed import FeedBuilder

__all__ = ["FeedBuilder"]
