"""
Differ - package changes between image releases

Tracks images, their dated releases and installed packages, and answers
which packages were added, upgraded, downgraded or removed between two
releases. Computed diffs are cached in memory or in Redis.
"""

__version__ = "1.0.0"
