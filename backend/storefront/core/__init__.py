"""
Core package for shared utilities.

Configuration, structured logging and security helpers used across the
checkout service.
"""
