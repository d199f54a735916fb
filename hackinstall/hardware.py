"""Host hardware facts: firmware mode, candidate disks and GPU vendor."""

import os
import re
import subprocess
from pathlib import Path

from hackinstall.types import FirmwareMode, GPUVendor

# Checked in this order; the first vendor string found wins.
GPU_VENDOR_PRIORITY: list[tuple[str, GPUVendor]] = [
  ("NVIDIA", GPUVendor.NVIDIA),
  ("AMD", GPUVendor.AMD),
  ("Intel", GPUVendor.INTEL),
]

DISKS_REGEX = r"^(nvme\d+n\d+|sd[a-z]+|vd[a-z]+|mmcblk\d+)$"


def detect_firmware(sys_path: str = "/sys/firmware/efi") -> FirmwareMode:
  """Firmware mode of the running live environment."""
  return FirmwareMode.UEFI if Path(sys_path).exists() else FirmwareMode.BIOS


def detect_gpu_vendor(enumeration: str) -> GPUVendor:
  """
  Pick a single GPU vendor from hardware enumeration text (lspci output).

  Matching is a case-sensitive substring search over the whole text, so a
  machine with both an NVIDIA and an Intel device reports NVIDIA.
  """
  for signature, vendor in GPU_VENDOR_PRIORITY:
    if signature in enumeration:
      return vendor

  return GPUVendor.UNKNOWN


def host_gpu_vendor() -> GPUVendor:
  """Best-effort vendor detection used for the wizard summary."""
  try:
    result = subprocess.run(["lspci"], capture_output=True, text=True, check=False)

  except FileNotFoundError:
    return GPUVendor.UNKNOWN

  if result.returncode != 0:
    return GPUVendor.UNKNOWN

  return detect_gpu_vendor(result.stdout)


def _disk_size(name: str, sys_block: str) -> str:
  try:
    sectors = int(Path(sys_block, name, "size").read_text().strip())

  except (OSError, ValueError):
    return "?"

  return f"{sectors * 512 / 1024**3:.1f} GiB"


def list_disks(dev_path: str = "/dev", sys_block: str = "/sys/block") -> list[str]:
  """Whole disks visible in dev_path, formatted as '/dev/sda (238.5 GiB)'."""
  try:
    names = sorted(disk for disk in os.listdir(dev_path) if re.match(DISKS_REGEX, disk))

  except OSError:
    return []

  return [f"{dev_path}/{name} ({_disk_size(name, sys_block)})" for name in names]
