"""
Movie catalog cache.

Reconciles a remote movie catalog with a local SQL cache of movies and
genres.
"""

__version__ = "0.1.0"
