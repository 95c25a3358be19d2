"""
Todo API package.

FastAPI service exposing todo items stored in a remote key-value cache
(an index of ids plus one JSON record per todo).
"""

__version__ = "1.0.0"
