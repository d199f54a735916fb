"""
Type definitions for hackinstall.

This module contains the enumerations and typed records shared by the wizard,
the installation pipeline and the render layer.
"""

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import TypedDict


class DefaultsConfig(TypedDict):
  """Configuration defaults loaded from config.json."""

  hostname: str
  locale: str
  timezone: str
  mirror: str
  populate: str
  mount_point: str
  distributor: str
  pool_name: str
  kernel_marker: str
  overlay: str


class Step(IntEnum):
  """Wizard positions, in presentation order."""

  WELCOME = 0
  USERNAME = 1
  PASSWORD = 2
  ROOT_PASSWORD = 3
  EDITION = 4
  BRANCH = 5
  FILESYSTEM = 6
  PARTITION_MODE = 7
  DISK = 8
  HOSTNAME = 9
  TIMEZONE = 10
  LOCALE = 11
  KERNEL = 12
  SUMMARY = 13


class Edition(Enum):
  OFFICIAL = "official"
  GNOME = "gnome"
  XFCE = "xfce"
  BLUE = "blue"
  HYDRA = "hydra"
  CYBERSECURITY = "cybersecurity"
  WAYFIRE = "wayfire"
  ATOMIC = "atomic"


class Branch(Enum):
  """Debian branches and their codenames."""

  STABLE = "trixie"
  TESTING = "forky"
  UNSTABLE = "sid"


class Filesystem(Enum):
  BTRFS = "btrfs"
  EXT4 = "ext4"
  ZFS = "zfs"


class PartitionMode(Enum):
  AUTO = "auto"
  MANUAL = "manual"


class KernelPreference(Enum):
  """Kernel choice made in the wizard; AUTO defers to the target's marker file."""

  AUTO = "auto"
  DEFAULT = "default"
  LIQUORIX = "liquorix"
  XANMOD = "xanmod"


class KernelFamily(Enum):
  DEFAULT = "default"
  LIQUORIX = "liquorix"
  XANMOD = "xanmod"


class FirmwareMode(Enum):
  UEFI = "uefi"
  BIOS = "bios"


class GPUVendor(Enum):
  """Enumeration of GPU vendors."""

  NVIDIA = "nvidia"
  AMD = "amd"
  INTEL = "intel"
  UNKNOWN = "unknown"


class PipelineStatus(Enum):
  NOT_STARTED = "not started"
  RUNNING = "running"
  DONE = "done"
  FAILED = "failed"


@dataclass
class InstallOptions:
  """Typed configuration object merged from config.json and command line arguments."""

  dry: bool
  populate: str
  mirror: str
  mount_point: str
  distributor: str
  pool_name: str
  kernel_marker: str
  overlay: str
  gpu_packages: dict[str, list[str]]
