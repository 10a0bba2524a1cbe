"""
Shared helpers: formatting, paths and structured logging.
"""
