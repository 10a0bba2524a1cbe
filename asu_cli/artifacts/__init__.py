"""
Artifact Layer.

This package is responsible for firmware image files: streaming them from the
artifact store, verifying their digests and placing them atomically.
"""

from .downloader import ChecksumDownloader
from .integrity import FileIntegrityChecker

__all__ = ["ChecksumDownloader", "FileIntegrityChecker"]
