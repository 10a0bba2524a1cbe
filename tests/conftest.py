import hashlib
from pathlib import Path
from typing import Optional

import pytest

from asu_cli.models.build import BuildImage, BuildResult
from asu_cli.models.config import BuildConfig, DeviceConfig
from asu_cli.storage.config_manager import ConfigManager


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def make_result(prefix: str, images: Optional[dict[str, bytes]] = None) -> BuildResult:
    """A finished build whose images hash to the given payloads."""
    images = images or {}
    result = BuildResult(
        bin_dir="store/abc123",
        image_prefix=prefix,
        images=[
            BuildImage(name=name, sha256=sha256_hex(data), type="sysupgrade")
            for name, data in images.items()
        ],
        request_hash="abc123",
    )
    return result.model_copy(update={"raw": result.model_dump_json().encode()})


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "config" / "config.ini"
    ConfigManager(path).save_new_config()
    return path


@pytest.fixture
def build_config(tmp_path: Path) -> BuildConfig:
    out = tmp_path / "img"
    out.mkdir()
    return BuildConfig(
        server="https://asu.example.org",
        version="23.05.2",
        poll_interval=0.01,
        packages=["luci"],
        devices=[
            DeviceConfig(target="ath79/generic", profile="tplink_archer-c7-v5"),
            DeviceConfig(target="ipq40xx/mikrotik", profile="mikrotik_hap-ac2"),
            DeviceConfig(target="mediatek/mt7622", profile="linksys_e8450-ubi"),
        ],
        output_dir=str(out),
    )
