"""
Cache package initialization.

Redis connection management and cache key helpers.
"""
