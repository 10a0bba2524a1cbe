"""
Storage Layer.

This package manages the persistent configuration file.
"""

from .config_manager import ConfigManager

__all__ = ["ConfigManager"]
