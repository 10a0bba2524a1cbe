"""
Manages loading, validation, and migration of the INI configuration file.
"""

import configparser
import logging
import re
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from asu_cli.exceptions import ConfigurationError
from asu_cli.models.config import (
    DEFAULT_DEVICES,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_PACKAGES,
    DEFAULT_SERVER,
    DEFAULT_SNAPSHOT_TARGETS,
    DEFAULT_VERSION,
    BuildConfig,
)

log = logging.getLogger(__name__)

MAIN_SECTION = "asu"
DEVICE_PREFIX = "device"

_LIST_SPLIT = re.compile(r"[,\s]+")


def _split_list(value: str) -> list[str]:
    return [item for item in _LIST_SPLIT.split(value) if item]


def _join_list(values: list[str], per_line: int = 6) -> str:
    """Formats a list as comma-separated lines so long lists stay readable."""
    lines = [
        ", ".join(values[i : i + per_line]) for i in range(0, len(values), per_line)
    ]
    return ",\n".join(lines)


def device_section(target: str, profile: str) -> str:
    return f"{DEVICE_PREFIX} {target} {profile}"


class ConfigManager:
    """Handles all operations related to the application's INI config file."""

    def __init__(self, config_file_path: Path):
        self.config_file_path = config_file_path
        self._parser = configparser.ConfigParser(interpolation=None)

    def load_config(self, cli_options: Optional[dict[str, Any]] = None) -> BuildConfig:
        """
        Loads configuration from the INI file, applies CLI overrides, and validates it.

        Args:
            cli_options: A dictionary of options provided via the command line.

        Returns:
            A validated BuildConfig object.

        Raises:
            ConfigurationError: If the config file is missing, invalid, or validation
            fails.
        """
        if not self.config_file_path.is_file():
            raise ConfigurationError(
                f"Configuration file not found at '{self.config_file_path}'. "
                "Please run 'asu-cli init' first."
            )

        try:
            self._parser.read(self.config_file_path, encoding="utf-8")
        except configparser.Error as e:
            raise ConfigurationError(f"Error parsing configuration file: {e}") from e

        if self._migrate_if_needed():
            log.info(
                "[yellow]Configuration file was updated with new default values."
                "[/yellow]"
            )

        config_from_file = self._get_config_as_dict()

        if cli_options:
            config_from_file.update(cli_options)

        try:
            config_dir = self.config_file_path.parent
            return BuildConfig(**config_from_file, config_path=str(config_dir))
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    def save_new_config(self, settings: Optional[dict[str, Any]] = None) -> None:
        """
        Creates and saves a new configuration file seeded with the default
        package list and devices.

        Args:
            settings: Values overriding the defaults in the [asu] section.
        """
        settings = settings or {}
        config = configparser.ConfigParser(interpolation=None)
        config[MAIN_SECTION] = {
            key: self._format_value(value)
            for key, value in self._defaults().items()
        }
        for key, value in settings.items():
            config[MAIN_SECTION][key] = self._format_value(value)

        for target, profile, extra in DEFAULT_DEVICES:
            section = device_section(target, profile)
            config[section] = {}
            if extra:
                config[section]["extra_packages"] = _join_list(extra, per_line=2)

        try:
            self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file_path, "w", encoding="utf-8") as configfile:
                config.write(configfile)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration file: {e}") from e

    @staticmethod
    def _defaults() -> dict[str, Any]:
        return {
            "server": DEFAULT_SERVER,
            "version": DEFAULT_VERSION,
            "output_dir": DEFAULT_OUTPUT_DIR,
            "poll_interval": 1.0,
            "packages": DEFAULT_PACKAGES,
            "snapshot_targets": DEFAULT_SNAPSHOT_TARGETS,
            "snapshot_release_targets": [],
        }

    @staticmethod
    def _format_value(value: Any) -> str:
        if isinstance(value, list):
            return _join_list([str(v) for v in value])
        return str(value)

    def _get_config_as_dict(self) -> dict[str, Any]:
        """Reads the [asu] section and every device section into a dictionary."""
        if not self._parser.has_section(MAIN_SECTION):
            raise ConfigurationError(
                f"Configuration file is missing the [{MAIN_SECTION}] section."
            )
        section = self._parser[MAIN_SECTION]
        try:
            poll_interval = section.getfloat("poll_interval", 1.0)
        except ValueError as e:
            raise ConfigurationError(f"Invalid poll_interval: {e}") from e

        return {
            "server": section.get("server", DEFAULT_SERVER),
            "version": section.get("version", DEFAULT_VERSION),
            "output_dir": section.get("output_dir", DEFAULT_OUTPUT_DIR),
            "poll_interval": poll_interval,
            "packages": _split_list(section.get("packages", "")),
            "snapshot_targets": _split_list(section.get("snapshot_targets", "")),
            "snapshot_release_targets": _split_list(
                section.get("snapshot_release_targets", "")
            ),
            "devices": self._get_devices(),
        }

    def _get_devices(self) -> list[dict[str, Any]]:
        devices = []
        for name in self._parser.sections():
            parts = name.split()
            if not parts or parts[0] != DEVICE_PREFIX:
                continue
            if len(parts) != 3:
                raise ConfigurationError(
                    f"Invalid device section [{name}]. "
                    f"Expected [{DEVICE_PREFIX} <target> <profile>]."
                )
            devices.append(
                {
                    "target": parts[1],
                    "profile": parts[2],
                    "extra_packages": _split_list(
                        self._parser[name].get("extra_packages", "")
                    ),
                }
            )
        return devices

    def _migrate_if_needed(self) -> bool:
        """Adds missing default values to the [asu] section of an existing file."""
        if not self._parser.has_section(MAIN_SECTION):
            return False

        config_section = self._parser[MAIN_SECTION]
        needs_saving = False
        for key, default_value in self._defaults().items():
            if key in BuildConfig.get_ini_keys() and key not in config_section:
                # Missing lists are added empty so existing builds do not change.
                if isinstance(default_value, list):
                    default_value = []
                config_section[key] = self._format_value(default_value)
                needs_saving = True
                log.debug(
                    f"Migrating config: added missing key '{key}' with "
                    f"value '{config_section[key]}'."
                )

        if needs_saving:
            try:
                with open(self.config_file_path, "w", encoding="utf-8") as f:
                    self._parser.write(f)
            except OSError as e:
                log.error(f"Could not save migrated configuration file: {e}")
                return False

        return needs_saving
