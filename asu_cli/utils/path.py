"""
Utilities for handling the output directory.
"""

import logging
import shutil
from pathlib import Path

from asu_cli.exceptions import OutputExistsError

log = logging.getLogger(__name__)


def create_dir(directory_path: Path) -> None:
    """Creates a directory if it does not already exist."""
    directory_path.mkdir(parents=True, exist_ok=True)


def prepare_output_dir(directory_path: Path, clean: bool = False) -> Path:
    """
    Makes sure a fresh, empty output directory exists.

    An existing empty directory is reused. A non-empty one is removed first
    when `clean` is set and rejected otherwise, so earlier images are never
    mixed with new ones.
    """
    if directory_path.exists():
        if not directory_path.is_dir():
            raise OutputExistsError(str(directory_path))
        if any(directory_path.iterdir()):
            if not clean:
                raise OutputExistsError(str(directory_path))
            log.info(f"Removing previous output in [dim]{directory_path}[/dim]")
            shutil.rmtree(directory_path)
    create_dir(directory_path)
    return directory_path
