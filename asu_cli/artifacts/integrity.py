"""
Provides methods for checking the integrity of downloaded firmware images.
"""

import hashlib
import logging
import os
import time
from datetime import datetime
from email.utils import parsedate_to_datetime
from pathlib import Path
from typing import Optional

from asu_cli.exceptions import ChecksumMismatchError
from asu_cli.models.build import BuildResult

log = logging.getLogger(__name__)


class FileIntegrityChecker:
    """A collection of static methods for validating image file integrity."""

    READ_SIZE = 1048576

    @staticmethod
    def sha256_of(filepath: Path) -> str:
        """Computes the hex SHA-256 digest of a file on disk."""
        digest = hashlib.sha256()
        with open(filepath, "rb") as f:
            while chunk := f.read(FileIntegrityChecker.READ_SIZE):
                digest.update(chunk)
        return digest.hexdigest()

    @staticmethod
    def check_sha256(filepath: Path, expected: str) -> bool:
        """
        Checks a file on disk against an expected SHA-256 digest.

        Args:
            filepath: Path to the image file.
            expected: Expected lowercase hex digest.

        Returns:
            True if the file exists and matches, False otherwise.
        """
        try:
            actual = FileIntegrityChecker.sha256_of(filepath)
        except OSError as e:
            log.warning(f"Integrity check failed for '{filepath}': {e}")
            return False
        if actual != expected.lower():
            log.warning(
                f"Integrity check failed for '{filepath}': "
                f"expected sha256:{expected}, got sha256:{actual}"
            )
            return False
        return True


def verify_digest(name: str, expected: str, actual: str) -> None:
    """Raises ChecksumMismatchError unless both hex digests agree."""
    if actual.lower() != expected.lower():
        raise ChecksumMismatchError(name, expected, actual)


def parse_http_date(value: Optional[str]) -> Optional[datetime]:
    """Parses a Last-Modified header; returns None if absent or malformed."""
    if not value:
        return None
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError):
        log.debug(f"Ignoring malformed HTTP date: {value!r}")
        return None


def apply_mtime(path: Path, when: Optional[datetime]) -> None:
    """Sets a file's modification time. Best effort: failures are only logged."""
    if when is None:
        return
    try:
        os.utime(path, (time.time(), when.timestamp()))
    except (OSError, OverflowError, ValueError) as e:
        log.debug(f"Could not set mtime on '{path}': {e}")


def verify_build_output(metadata_path: Path) -> dict[str, bool]:
    """
    Re-checks every image listed in a saved `<image_prefix>.json` file.

    Returns:
        A mapping of image name to whether the file next to the metadata
        exists and matches its recorded digest.

    Raises:
        pydantic.ValidationError: If the metadata file is not a build result.
        OSError: If the metadata file cannot be read.
    """
    result = BuildResult.model_validate_json(metadata_path.read_bytes())
    directory = metadata_path.parent
    return {
        image.name: FileIntegrityChecker.check_sha256(directory / image.name, image.sha256)
        for image in result.images
    }
