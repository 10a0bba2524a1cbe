"""
Pydantic model for application configuration.
Provides robust validation for all settings.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .events import BuildTask

DEFAULT_SERVER = "https://sysupgrade.openwrt.org"
DEFAULT_VERSION = "22.03.4"
DEFAULT_OUTPUT_DIR = "img"

# Seed values written by `asu-cli init`.
DEFAULT_PACKAGES = [
    "luci", "-luci-theme-bootstrap", "luci-theme-openwrt",
    "luci-mod-admin-full", "luci-app-firewall",
    "-libustream-wolfssl", "libustream-openssl",
    "kmod-macvlan",
    "6rd", "6in4",
    "ppp", "luci-proto-ppp", "ppp-mod-pppoe",
    "kmod-wireguard", "wireguard-tools", "luci-app-wireguard", "luci-proto-wireguard",
    "kmod-usb-net-rndis", "kmod-usb-net-cdc-ncm",
    "relayd", "luci-proto-relay",
    "gre", "luci-proto-gre",
    "ipip", "luci-proto-ipip",
    "vxlan", "luci-proto-vxlan",
    "-wpad-basic-wolfssl", "wpad-openssl",
    "ddns-scripts", "luci-app-ddns",
    "qosify",
    "usteer",
    "umdns",
    "tcpdump", "iperf3", "ss", "knot-host", "knot-dig", "curl", "tc-full",
    "ip-full", "iw-full",
    "nano", "htop", "ncdu", "xxd", "strace", "htop", "jq", "netcat", "nmap", "mtr",
    "conntrack", "iputils-ping", "iputils-arping", "socat", "ip-bridge",
    "muninlite",
    "prometheus-node-exporter-lua", "prometheus-node-exporter-lua-wifi",
    "prometheus-node-exporter-lua-wifi_stations",
    "prometheus-node-exporter-lua-openwrt", "prometheus-node-exporter-lua-uci_dhcp_host",
]  # fmt: skip

_ATH10K_FULL = [
    "-ath10k-firmware-qca988x-ct", "ath10k-firmware-qca988x",
    "-kmod-ath10k-ct", "kmod-ath10k",
]  # fmt: skip

DEFAULT_DEVICES = [
    ("ipq40xx/mikrotik", "mikrotik_hap-ac2", []),
    ("ath79/generic", "tplink_archer-c7-v4", _ATH10K_FULL),
    ("ath79/generic", "tplink_archer-c7-v5", _ATH10K_FULL),
    ("mediatek/mt7622", "linksys_e8450-ubi", []),
]

DEFAULT_SNAPSHOT_TARGETS = ["ipq40xx/mikrotik"]


def _check_package_names(packages: list[str]) -> list[str]:
    for name in packages:
        if not name or name == "-" or any(c.isspace() for c in name):
            raise ValueError(f"Invalid package name: {name!r}")
    return packages


class DeviceConfig(BaseModel):
    """A single device to build for, with packages added on top of the global list."""

    target: str
    profile: str
    extra_packages: list[str] = Field(default_factory=list)

    model_config = ConfigDict(str_strip_whitespace=True)

    @field_validator("target")
    @classmethod
    def validate_target(cls, v: str) -> str:
        if v.count("/") != 1 or v.startswith("/") or v.endswith("/"):
            raise ValueError(f"Target must look like 'arch/subtarget', got: {v!r}")
        return v

    @field_validator("profile")
    @classmethod
    def validate_profile(cls, v: str) -> str:
        if not v or any(c.isspace() for c in v):
            raise ValueError(f"Invalid profile: {v!r}")
        return v

    @field_validator("extra_packages")
    @classmethod
    def validate_extra_packages(cls, v: list[str]) -> list[str]:
        return _check_package_names(v)

    @property
    def label(self) -> str:
        return f"{self.target}/{self.profile}"


class BuildConfig(BaseModel):
    """A validated configuration model for the application."""

    # Build service
    server: str = DEFAULT_SERVER
    version: str = DEFAULT_VERSION
    poll_interval: float = 1.0

    # Firmware contents
    packages: list[str] = Field(default_factory=list)
    snapshot_targets: list[str] = Field(default_factory=list)
    snapshot_release_targets: list[str] = Field(default_factory=list)
    devices: list[DeviceConfig] = Field(default_factory=list)

    # Output
    output_dir: str = DEFAULT_OUTPUT_DIR
    clean: bool = False

    # Internal fields not loaded from INI file
    config_path: str = Field("", repr=False)
    log_dir: Optional[str] = Field(None, repr=False)

    model_config = ConfigDict(validate_assignment=True, str_strip_whitespace=True)

    @field_validator("server")
    @classmethod
    def validate_server(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Server must be an http(s) URL, got: {v!r}")
        return v.rstrip("/")

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        if not v:
            raise ValueError("Version cannot be empty.")
        return v

    @field_validator("poll_interval")
    @classmethod
    def validate_poll_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Poll interval must be greater than zero.")
        return v

    @field_validator("packages")
    @classmethod
    def validate_packages(cls, v: list[str]) -> list[str]:
        return _check_package_names(v)

    @field_validator("output_dir")
    @classmethod
    def validate_output_dir(cls, v: str) -> str:
        if not v:
            raise ValueError("Output directory cannot be empty.")
        return v

    @model_validator(mode="after")
    def validate_devices(self) -> "BuildConfig":
        """Requires at least one device and rejects duplicates."""
        if not self.devices:
            raise ValueError("No devices configured. Add a [device <target> <profile>] section.")
        seen = set()
        for device in self.devices:
            key = (device.target, device.profile)
            if key in seen:
                raise ValueError(f"Device listed twice: {device.label}")
            seen.add(key)
        return self

    def version_for(self, target: str) -> str:
        """Resolves the firmware version to request for a target."""
        if target in self.snapshot_targets:
            return "SNAPSHOT"
        if target in self.snapshot_release_targets:
            return self.version.rsplit(".", 1)[0] + "-SNAPSHOT"
        return self.version

    def packages_for(self, device: DeviceConfig) -> list[str]:
        return [*self.packages, *device.extra_packages]

    def build_tasks(self) -> list[BuildTask]:
        """Creates one pending task per configured device, in config order."""
        return [
            BuildTask(
                target=device.target,
                profile=device.profile,
                version=self.version_for(device.target),
                packages=self.packages_for(device),
            )
            for device in self.devices
        ]

    def select_devices(self, selectors: list[str]) -> "BuildConfig":
        """
        Returns a copy restricted to devices matching `selectors`.

        A selector is either a profile name or a full 'target/profile' label.
        """
        unknown = [
            s
            for s in selectors
            if not any(s in (d.profile, d.label) for d in self.devices)
        ]
        if unknown:
            raise ValueError(f"Unknown device(s): {', '.join(unknown)}")
        devices = [
            d for d in self.devices if d.profile in selectors or d.label in selectors
        ]
        return self.model_copy(update={"devices": devices})

    def defconfig_lines(self) -> list[str]:
        """
        Lists the global packages as OpenWrt defconfig lines, additions first.
        """
        added = [f"CONFIG_PACKAGE_{p}=y" for p in self.packages if not p.startswith("-")]
        removed = [
            f"# CONFIG_PACKAGE_{p[1:]} is not set"
            for p in self.packages
            if p.startswith("-")
        ]
        return added + removed

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the [asu] INI section."""
        internal_fields = {"config_path", "log_dir", "devices", "clean"}
        return {key for key in cls.model_fields if key not in internal_fields}
