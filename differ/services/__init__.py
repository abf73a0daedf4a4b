"""
Differ services

- diff_service: cached diffs between two releases of an image
"""
