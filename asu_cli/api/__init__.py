"""
ASU API Layer.

This package handles all communication with the Attended SysUpgrade build API.
"""

from .client import AsuAPIClient

__all__ = ["AsuAPIClient"]
