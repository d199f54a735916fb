from hackinstall.hardware import detect_firmware, detect_gpu_vendor, list_disks
from hackinstall.types import FirmwareMode, GPUVendor


def test_gpu_vendor_priority_order():
  both = "00:02.0 VGA compatible controller: Intel Corporation\n01:00.0 3D controller: NVIDIA Corporation\n"
  assert detect_gpu_vendor(both) is GPUVendor.NVIDIA
  assert detect_gpu_vendor("Advanced Micro Devices [AMD/ATI] Navi\nIntel Corporation") is GPUVendor.AMD
  assert detect_gpu_vendor("VGA compatible controller: Intel Corporation") is GPUVendor.INTEL


def test_gpu_vendor_match_is_case_sensitive():
  assert detect_gpu_vendor("vga: nvidia geforce") is GPUVendor.UNKNOWN
  assert detect_gpu_vendor("") is GPUVendor.UNKNOWN


def test_detect_firmware(tmp_path):
  efi = tmp_path / "efi"
  assert detect_firmware(str(efi)) is FirmwareMode.BIOS
  efi.mkdir()
  assert detect_firmware(str(efi)) is FirmwareMode.UEFI


def test_list_disks_filters_partitions(tmp_path):
  dev = tmp_path / "dev"
  sys_block = tmp_path / "block"
  dev.mkdir()
  for name in ("sda", "sda1", "nvme0n1", "nvme0n1p1", "loop0", "tty0"):
    (dev / name).touch()
  (sys_block / "sda").mkdir(parents=True)
  (sys_block / "sda" / "size").write_text("2097152\n")

  disks = list_disks(str(dev), str(sys_block))

  assert disks == [f"{dev}/nvme0n1 (?)", f"{dev}/sda (1.0 GiB)"]


def test_list_disks_missing_directory(tmp_path):
  assert list_disks(str(tmp_path / "missing")) == []
